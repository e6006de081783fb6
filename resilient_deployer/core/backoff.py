"""Backoff delay computation shared by the executor and the batch deployer."""

from __future__ import annotations

from resilient_deployer.models.retry_profile import BackoffStrategy

MAX_JITTER_FRACTION = 0.1


def compute_backoff_delay(
    strategy: BackoffStrategy,
    base_delay: float,
    attempt_index: int,
    max_delay: float,
    jitter: float = 0.0,
) -> float:
    """Delay in seconds before the retry that follows attempt ``attempt_index``.

    ``attempt_index`` is 0 for the delay after the first failed attempt.
    ``jitter`` is a draw from [0, 1) scaled to at most 10% of the delay.
    The result never exceeds ``max_delay``.
    """
    if base_delay < 0:
        msg = "base_delay must not be negative"
        raise ValueError(msg)
    if attempt_index < 0:
        msg = "attempt_index must not be negative"
        raise ValueError(msg)

    if strategy == BackoffStrategy.EXPONENTIAL:
        # exponent capped so huge attempt counts cannot overflow float
        delay = base_delay * (2 ** min(attempt_index, 64))
    elif strategy == BackoffStrategy.LINEAR:
        delay = base_delay * (attempt_index + 1)
    else:
        delay = base_delay

    delay += min(max(jitter, 0.0), 1.0) * MAX_JITTER_FRACTION * delay
    return min(delay, max_delay)
