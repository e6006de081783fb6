"""Progress tracking for sequential batch runs."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from resilient_deployer.utils.logger import get_logger

if TYPE_CHECKING:
    from resilient_deployer.models.batch import BatchItemResult

logger = get_logger(__name__)


@dataclass
class ProgressTracker:
    """Running counters for a batch, logged as items complete.

    ``total`` counts the items this run will attempt, which is less than
    the item list when resuming from a start index.
    """

    total: int
    processed: int = 0
    successful: int = 0
    failed: int = 0
    attempts: int = 0
    errors: list[str] = field(default_factory=list)
    start_time: float = field(default_factory=time.monotonic)

    def record(self, result: BatchItemResult) -> None:
        """Count one finished item."""
        self.processed += 1
        self.attempts += result.attempts
        if result.success:
            self.successful += 1
        else:
            self.failed += 1
            self.errors.append(f"#{result.index} {result.symbol}: {result.error}")

    @property
    def elapsed_seconds(self) -> float:
        return time.monotonic() - self.start_time

    @property
    def progress_percentage(self) -> float:
        if self.total == 0:
            return 100.0
        return (self.processed / self.total) * 100.0

    def log_progress(self, every_n: int = 1) -> None:
        """Log progress every N items and on the last one."""
        if self.processed % every_n == 0 or self.processed == self.total:
            logger.info(
                "batch_progress",
                processed=self.processed,
                total=self.total,
                successful=self.successful,
                failed=self.failed,
                attempts=self.attempts,
                percentage=f"{self.progress_percentage:.1f}%",
                elapsed=f"{self.elapsed_seconds:.1f}s",
            )
