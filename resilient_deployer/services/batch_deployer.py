"""Sequential batch deployment with per-item retries and resume support."""

from __future__ import annotations

import random
import time
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog

from resilient_deployer.core.allocation import normalize_or_raise
from resilient_deployer.core.backoff import compute_backoff_delay
from resilient_deployer.core.errors import AllocationError, BatchValidationError, classify_error
from resilient_deployer.core.metadata import normalize_image_url
from resilient_deployer.models.batch import (
    MAX_BATCH_SIZE,
    BatchItem,
    BatchItemResult,
    BatchOptions,
    BatchSummary,
    DeployRequest,
    FeeSettings,
)
from resilient_deployer.models.recipient import NormalizedRecipient, RewardRecipient
from resilient_deployer.utils.progress import ProgressTracker

if TYPE_CHECKING:
    from collections.abc import Callable

    from resilient_deployer.services.protocols import DeployClientProtocol

logger = structlog.get_logger(__name__)


def _utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


def validate_batch(items: list[BatchItem], options: BatchOptions) -> None:
    """Reject structurally invalid batches before anything is deployed."""
    if not items:
        msg = "At least 1 item is required"
        raise BatchValidationError(msg)
    if len(items) > MAX_BATCH_SIZE:
        msg = f"Maximum {MAX_BATCH_SIZE} items per batch"
        raise BatchValidationError(msg, context={"count": len(items)})
    if options.start_index >= len(items):
        msg = f"start_index {options.start_index} is past the last item (count {len(items)})"
        raise BatchValidationError(msg, context={"start_index": options.start_index})


def export_results(summary: BatchSummary) -> str:
    """Serialize a summary as indented JSON for persisting."""
    return summary.model_dump_json(indent=2)


def load_summary(payload: str | bytes) -> BatchSummary:
    """Reload a summary written by export_results."""
    return BatchSummary.model_validate_json(payload)


class BatchDeployer:
    """Deploys 1-100 items one after another against a deploy client.

    Items run strictly in index order. Each item gets ``retries + 1``
    attempts; a failed item never aborts the run unless
    ``continue_on_error`` is off, in which case the summary stops at it.
    """

    def __init__(
        self,
        client: DeployClientProtocol,
        *,
        sleep: Callable[[float], None] = time.sleep,
        now: Callable[[], datetime] = _utc_now,
        uniform: Callable[[float, float], float] = random.uniform,
    ) -> None:
        self.client = client
        self._sleep = sleep
        self._now = now
        self._uniform = uniform

    @property
    def address(self) -> str:
        """Wallet address of the deploy client."""
        return self.client.address

    def deploy(
        self,
        items: list[BatchItem],
        options: BatchOptions | None = None,
    ) -> BatchSummary:
        """Deploy ``items`` from ``options.start_index`` onward and summarize.

        Raises BatchValidationError for an empty or oversized list; every
        per-item failure is captured in the summary instead.
        """
        options = options or BatchOptions()
        validate_batch(items, options)

        total = len(items)
        started_at = self._now()
        results: list[BatchItemResult] = []
        tracker = ProgressTracker(total=total - options.start_index)
        log = logger.bind(chain=options.chain.value, total=total)
        log.info("batch_started", start_index=options.start_index, retries=options.retries)

        for index in range(options.start_index, total):
            result = self._deploy_item(items[index], index, options)
            results.append(result)
            tracker.record(result)
            tracker.log_progress()

            if options.on_progress:
                options.on_progress(index, total, result)

            if not result.success and not options.continue_on_error:
                log.warning("batch_stopped_on_error", index=index, error=result.error)
                break

            if index < total - 1:
                delay = self._inter_item_delay(options)
                if delay > 0:
                    self._sleep(delay)

        summary = BatchSummary.from_results(options.chain, results, started_at, self._now())
        log.info(
            "batch_finished",
            successful=summary.successful,
            failed=summary.failed,
            duration=round(summary.duration_seconds, 2),
        )
        return summary

    def retry_failed(
        self,
        summary: BatchSummary,
        items: list[BatchItem],
        options: BatchOptions | None = None,
    ) -> BatchSummary:
        """Deploy again only the items that failed in ``summary``.

        Returns ``summary`` itself when nothing failed. The new summary
        indexes into the failed subset; merging the two is up to the caller.
        """
        failed_indices = summary.failed_indices
        if not failed_indices:
            return summary
        if max(failed_indices) >= len(items):
            msg = "summary refers to items that are not in the item list"
            raise BatchValidationError(msg, context={"failed_indices": failed_indices})

        retry_items = [items[i] for i in failed_indices]
        retry_options = (options or BatchOptions()).model_copy(update={"start_index": 0})
        logger.info("batch_retrying_failed", count=len(retry_items), indices=failed_indices)
        return self.deploy(retry_items, retry_options)

    # ------------------------------------------------------------------
    # Per-item processing
    # ------------------------------------------------------------------

    def _deploy_item(self, item: BatchItem, index: int, options: BatchOptions) -> BatchItemResult:
        token_admin = item.token_admin or options.default_token_admin or self.client.address
        reward_recipient = item.reward_recipient or options.default_reward_recipient or token_admin

        try:
            recipients = self._build_reward_recipients(item, token_admin, reward_recipient)
        except AllocationError as exc:
            # validation failures are not retryable, so no attempt is made
            logger.warning("batch_item_invalid", index=index, symbol=item.symbol, error=str(exc))
            return self._failed_result(item, index, str(exc), 0, token_admin, reward_recipient)

        request = self._build_request(item, options, token_admin, recipients)
        last_error = "Deploy failed"
        attempts = 0

        for attempt in range(options.retries + 1):
            attempts = attempt + 1
            if attempt > 0:
                if options.on_retry:
                    options.on_retry(index, attempt, item)
                delay = compute_backoff_delay(
                    options.retry_backoff,
                    options.retry_delay,
                    attempt - 1,
                    options.max_retry_delay,
                )
                if delay > 0:
                    self._sleep(delay)

            try:
                receipt = self.client.deploy(request)
            except Exception as exc:
                last_error = str(exc) or type(exc).__name__
                logger.warning(
                    "batch_item_attempt_failed",
                    index=index,
                    symbol=item.symbol,
                    attempt=attempts,
                    error_kind=classify_error(exc).value,
                    error=last_error,
                )
                if options.on_error:
                    options.on_error(index, exc, item)
                continue

            if receipt.success and receipt.token_address:
                logger.info(
                    "batch_item_deployed",
                    index=index,
                    symbol=item.symbol,
                    token_address=receipt.token_address,
                    attempts=attempts,
                )
                return BatchItemResult(
                    index=index,
                    id=item.id,
                    name=item.name,
                    symbol=item.symbol,
                    success=True,
                    token_address=receipt.token_address,
                    tx_hash=receipt.tx_hash,
                    explorer_url=receipt.explorer_url,
                    attempts=attempts,
                    timestamp=self._now(),
                    token_admin=token_admin,
                    reward_recipient=reward_recipient,
                )

            last_error = receipt.error or "Deploy failed - no token address"
            logger.warning(
                "batch_item_attempt_failed",
                index=index,
                symbol=item.symbol,
                attempt=attempts,
                error=last_error,
            )

        logger.error("batch_item_failed", index=index, symbol=item.symbol, attempts=attempts)
        return self._failed_result(item, index, last_error, attempts, token_admin, reward_recipient)

    def _build_reward_recipients(
        self,
        item: BatchItem,
        token_admin: str,
        reward_recipient: str,
    ) -> list[NormalizedRecipient]:
        if item.reward_recipients:
            return normalize_or_raise(item.reward_recipients, reward_recipient)
        # single recipient; any share it does not take goes to the admin
        allocation = item.reward_allocation if item.reward_allocation is not None else 100
        return normalize_or_raise(
            [RewardRecipient(address=reward_recipient, allocation=allocation)],
            token_admin,
        )

    def _build_request(
        self,
        item: BatchItem,
        options: BatchOptions,
        token_admin: str,
        recipients: list[NormalizedRecipient],
    ) -> DeployRequest:
        return DeployRequest(
            chain=options.chain,
            chain_id=options.chain.chain_id,
            name=item.name,
            symbol=item.symbol,
            image=normalize_image_url(item.image),
            description=item.description or "",
            token_admin=token_admin,
            mev=options.mev,
            fees=FeeSettings(clanker_fee=options.fee_percent, paired_fee=options.fee_percent),
            reward_recipients=recipients,
        )

    def _failed_result(
        self,
        item: BatchItem,
        index: int,
        error: str,
        attempts: int,
        token_admin: str,
        reward_recipient: str,
    ) -> BatchItemResult:
        return BatchItemResult(
            index=index,
            id=item.id,
            name=item.name,
            symbol=item.symbol,
            success=False,
            error=error,
            attempts=attempts,
            timestamp=self._now(),
            token_admin=token_admin,
            reward_recipient=reward_recipient,
        )

    def _inter_item_delay(self, options: BatchOptions) -> float:
        delay = options.delay
        if options.random_delay_max > options.random_delay_min:
            delay += self._uniform(options.random_delay_min, options.random_delay_max)
        return delay
