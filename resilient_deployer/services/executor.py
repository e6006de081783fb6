"""Resilient execution of single remote operations.

Wraps a zero-argument callable with tenacity-driven retries using the
per-class backoff profile, and gates it behind a circuit breaker keyed by
operation id. One executor instance owns the breaker and statistics maps;
construct it once and pass it to every call site that should share them.
"""

from __future__ import annotations

import random
import time
from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Generic, TypeVar

import structlog
from tenacity import RetryCallState, Retrying, retry_if_exception, stop_after_attempt

from resilient_deployer.core.backoff import compute_backoff_delay
from resilient_deployer.core.errors import (
    CircuitOpenError,
    ErrorKind,
    classify_error,
    is_error_retryable,
    retry_after_hint,
)
from resilient_deployer.models.retry_profile import (
    OperationClass,
    RetryProfile,
    resolve_profile,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def _utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


class CircuitPhase(StrEnum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"  # cool-down elapsed, one trial attempt in flight


@dataclass(frozen=True)
class OperationAttempt:
    """One try of an operation. ``delay`` is the sleep that preceded it."""

    attempt_number: int
    delay: float
    timestamp: datetime
    error: BaseException | None = None
    error_kind: ErrorKind | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass
class CircuitBreakerState:
    """Breaker bookkeeping for one operation id. Times come from the executor clock."""

    phase: CircuitPhase = CircuitPhase.CLOSED
    failure_count: int = 0
    last_failure_at: float | None = None
    next_attempt_at: float | None = None


@dataclass(frozen=True)
class ExecutionResult(Generic[T]):
    """Outcome of ResilientExecutor.execute."""

    success: bool
    value: T | None = None
    error: BaseException | None = None
    attempts: list[OperationAttempt] = field(default_factory=list)
    elapsed_seconds: float = 0.0
    circuit_breaker_triggered: bool = False

    def unwrap(self) -> T:
        """Return the value, or raise the final error."""
        if self.success:
            return self.value  # type: ignore[return-value]
        if self.error is not None:
            raise self.error
        msg = "Operation failed without recording an error"
        raise RuntimeError(msg)


@dataclass(frozen=True)
class _OperationRecord:
    key: str
    success: bool
    attempts: int
    error_kinds: tuple[ErrorKind, ...]


@dataclass(frozen=True)
class RetryStats:
    """Aggregate view over every execute call since the last reset."""

    total_operations: int
    successful_operations: int
    failed_operations: int
    average_attempts: float
    open_circuits: int
    most_common_errors: list[tuple[str, int]]


class ResilientExecutor:
    """Run fallible remote operations with retry, backoff and circuit breaking."""

    def __init__(
        self,
        base_profile: RetryProfile | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        jitter: Callable[[], float] = random.random,
        now: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._base_profile = base_profile or RetryProfile()
        self._clock = clock
        self._sleep = sleep
        self._jitter = jitter
        self._now = now
        self._breakers: dict[str, CircuitBreakerState] = {}
        self._history: list[_OperationRecord] = []

    @property
    def base_profile(self) -> RetryProfile:
        return self._base_profile

    def profile_for(
        self,
        operation_class: OperationClass | str,
        overrides: Mapping[str, Any] | None = None,
    ) -> RetryProfile:
        """Effective profile for a class after base and per-call overrides."""
        return resolve_profile(operation_class, self._base_profile, overrides)

    def execute(
        self,
        operation: Callable[[], T],
        operation_class: OperationClass | str,
        operation_id: str | None = None,
        overrides: Mapping[str, Any] | None = None,
    ) -> ExecutionResult[T]:
        """Run ``operation`` under the retry profile of ``operation_class``.

        ``operation_id`` scopes the circuit breaker; calls without one share
        the breaker of their class. Failures are returned, not raised.
        """
        profile = self.profile_for(operation_class, overrides)
        key = operation_id or OperationClass(operation_class).value
        started = self._clock()

        half_open = False
        breaker = self._breakers.get(key)
        if breaker is not None and breaker.phase == CircuitPhase.OPEN:
            if breaker.next_attempt_at is not None and started < breaker.next_attempt_at:
                logger.warning(
                    "circuit_open_rejected",
                    operation_id=key,
                    failure_count=breaker.failure_count,
                    retry_in=round(breaker.next_attempt_at - started, 3),
                )
                error = CircuitOpenError(
                    "Circuit breaker is open - too many recent failures",
                    context={
                        "operation_id": key,
                        "threshold": profile.circuit_breaker_threshold,
                    },
                )
                self._history.append(_OperationRecord(key, False, 0, (error.kind,)))
                return ExecutionResult(
                    success=False,
                    error=error,
                    elapsed_seconds=self._clock() - started,
                    circuit_breaker_triggered=True,
                )
            breaker.phase = CircuitPhase.HALF_OPEN
            half_open = True
            logger.info("circuit_half_open", operation_id=key)

        attempts: list[OperationAttempt] = []
        pending_delay = 0.0

        def run_attempt() -> T:
            nonlocal pending_delay
            attempt_number = len(attempts) + 1
            delay, pending_delay = pending_delay, 0.0
            try:
                value = operation()
            except Exception as exc:
                attempts.append(
                    OperationAttempt(
                        attempt_number=attempt_number,
                        delay=delay,
                        timestamp=self._now(),
                        error=exc,
                        error_kind=classify_error(exc),
                    )
                )
                self._record_failure(key)
                raise
            attempts.append(
                OperationAttempt(attempt_number=attempt_number, delay=delay, timestamp=self._now())
            )
            return value

        stop_limit = 1 if half_open else profile.max_attempts

        def wait(retry_state: RetryCallState) -> float:
            nonlocal pending_delay
            # tenacity asks for the wait before checking stop
            if retry_state.attempt_number >= stop_limit:
                return 0.0
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            pending_delay = self._retry_delay(exc, profile, retry_state.attempt_number - 1)
            return pending_delay

        def log_retry(retry_state: RetryCallState) -> None:
            logger.warning(
                "retry_scheduled",
                operation_id=key,
                attempt=retry_state.attempt_number,
                max_attempts=stop_limit,
                delay=round(pending_delay, 3),
                error=str(retry_state.outcome.exception()) if retry_state.outcome else "unknown",
            )

        retrying = Retrying(
            stop=stop_after_attempt(stop_limit),
            wait=wait,
            retry=retry_if_exception(lambda exc: self._should_retry(exc, profile)),
            before_sleep=log_retry,
            sleep=self._sleep,
            reraise=True,
        )

        try:
            value = retrying(run_attempt)
        except Exception as exc:
            self._after_failed_call(key, profile, half_open)
            self._history.append(
                _OperationRecord(
                    key,
                    False,
                    len(attempts),
                    tuple(a.error_kind for a in attempts if a.error_kind is not None),
                )
            )
            logger.error(
                "operation_failed",
                operation_id=key,
                attempts=len(attempts),
                error_kind=classify_error(exc).value,
                error=str(exc),
            )
            return ExecutionResult(
                success=False,
                error=exc,
                attempts=attempts,
                elapsed_seconds=self._clock() - started,
            )

        self._reset_breaker(key)
        self._history.append(
            _OperationRecord(
                key,
                True,
                len(attempts),
                tuple(a.error_kind for a in attempts if a.error_kind is not None),
            )
        )
        if len(attempts) > 1:
            logger.info("operation_recovered", operation_id=key, attempts=len(attempts))
        return ExecutionResult(
            success=True,
            value=value,
            attempts=attempts,
            elapsed_seconds=self._clock() - started,
        )

    # ------------------------------------------------------------------
    # Retry decisions
    # ------------------------------------------------------------------

    def _should_retry(self, exc: BaseException, profile: RetryProfile) -> bool:
        if not isinstance(exc, Exception) or not is_error_retryable(exc):
            return False
        return classify_error(exc) in profile.retryable_kinds

    def _retry_delay(
        self,
        exc: BaseException | None,
        profile: RetryProfile,
        attempt_index: int,
    ) -> float:
        hint = retry_after_hint(exc) if exc is not None else None
        if hint is not None and hint > 0:
            return min(hint, profile.max_delay)
        return compute_backoff_delay(
            profile.backoff,
            profile.base_delay,
            attempt_index,
            profile.max_delay,
            jitter=self._jitter(),
        )

    # ------------------------------------------------------------------
    # Circuit breaker
    # ------------------------------------------------------------------

    def _record_failure(self, key: str) -> None:
        breaker = self._breakers.setdefault(key, CircuitBreakerState())
        breaker.failure_count += 1
        breaker.last_failure_at = self._clock()

    def _after_failed_call(self, key: str, profile: RetryProfile, half_open: bool) -> None:
        breaker = self._breakers.setdefault(key, CircuitBreakerState())
        if half_open or breaker.failure_count >= profile.circuit_breaker_threshold:
            breaker.phase = CircuitPhase.OPEN
            breaker.next_attempt_at = self._clock() + profile.circuit_breaker_timeout
            logger.warning(
                "circuit_opened",
                operation_id=key,
                failure_count=breaker.failure_count,
                cool_down=profile.circuit_breaker_timeout,
                from_half_open=half_open,
            )

    def _reset_breaker(self, key: str) -> None:
        breaker = self._breakers.get(key)
        if breaker is None:
            return
        if breaker.phase != CircuitPhase.CLOSED:
            logger.info("circuit_closed", operation_id=key)
        breaker.phase = CircuitPhase.CLOSED
        breaker.failure_count = 0
        breaker.next_attempt_at = None

    def circuit_state(self, key: str) -> CircuitBreakerState | None:
        """Snapshot of the breaker for ``key``, or None if it never failed."""
        breaker = self._breakers.get(key)
        return replace(breaker) if breaker is not None else None

    def circuit_status(self) -> list[dict[str, Any]]:
        """Breaker state for every id that has recorded a failure."""
        return [
            {
                "key": key,
                "phase": state.phase.value,
                "failure_count": state.failure_count,
                "last_failure_at": state.last_failure_at,
                "next_attempt_at": (
                    state.next_attempt_at if state.phase == CircuitPhase.OPEN else None
                ),
            }
            for key, state in self._breakers.items()
        ]

    def reset_circuit_breakers(self) -> None:
        """Forget all breaker state, closing every circuit."""
        self._breakers.clear()

    # ------------------------------------------------------------------
    # Statistics and configuration
    # ------------------------------------------------------------------

    def retry_stats(self) -> RetryStats:
        total = len(self._history)
        successful = sum(1 for record in self._history if record.success)
        attempts = sum(record.attempts for record in self._history)
        kinds = Counter(kind.value for record in self._history for kind in record.error_kinds)
        return RetryStats(
            total_operations=total,
            successful_operations=successful,
            failed_operations=total - successful,
            average_attempts=attempts / total if total else 0.0,
            open_circuits=sum(
                1 for state in self._breakers.values() if state.phase == CircuitPhase.OPEN
            ),
            most_common_errors=kinds.most_common(5),
        )

    def reset_stats(self) -> None:
        self._history.clear()

    def update_profile(self, **changes: Any) -> None:
        """Replace fields of the base profile for subsequent calls."""
        self._base_profile = self._base_profile.with_overrides(changes)
