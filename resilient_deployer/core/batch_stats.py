"""Display helpers derived from a batch summary."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from resilient_deployer.models.batch import BatchSummary


@dataclass(frozen=True)
class BatchStats:
    success_rate: int  # whole percent
    average_seconds_per_item: float
    total_duration: str


def format_duration(seconds: float) -> str:
    """Format as ``"Xm Ys"``, or ``"Ys"`` under a minute."""
    total_seconds = round(max(seconds, 0.0))
    minutes, secs = divmod(total_seconds, 60)
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def batch_stats(summary: BatchSummary) -> BatchStats:
    if summary.total == 0:
        return BatchStats(0, 0.0, format_duration(summary.duration_seconds))
    return BatchStats(
        success_rate=round(summary.successful / summary.total * 100),
        average_seconds_per_item=round(summary.duration_seconds / summary.total, 2),
        total_duration=format_duration(summary.duration_seconds),
    )


def format_batch_summary(summary: BatchSummary, max_errors: int = 10) -> str:
    """Format a summary as human-readable lines, listing failed items."""
    stats = batch_stats(summary)
    lines = [
        f"[SUMMARY] Chain: {summary.chain.value} ({summary.chain_id})",
        f"  Deployed: {summary.successful} of {summary.total}",
        f"  Failed: {summary.failed}",
        f"  Success rate: {stats.success_rate}%",
        f"  Duration: {stats.total_duration} (avg {stats.average_seconds_per_item}s per item)",
    ]

    failures = [r for r in summary.results if not r.success]
    if failures:
        lines.append(f"  Errors ({len(failures)}):")
        for result in failures[:max_errors]:
            lines.append(f"    - #{result.index} {result.symbol}: {result.error}")
        if len(failures) > max_errors:
            lines.append(f"    ... and {len(failures) - max_errors} more")

    return "\n".join(lines)
