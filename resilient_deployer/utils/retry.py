"""Raise-on-failure wrappers around ResilientExecutor."""

from __future__ import annotations

import functools
from typing import TYPE_CHECKING, Any, ParamSpec, TypeVar

from resilient_deployer.utils.logger import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from resilient_deployer.models.retry_profile import OperationClass
    from resilient_deployer.services.executor import ResilientExecutor

P = ParamSpec("P")
T = TypeVar("T")

logger = get_logger(__name__)


def run_with_retry(
    executor: ResilientExecutor,
    operation: Callable[[], T],
    operation_class: OperationClass | str,
    operation_id: str | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> T:
    """Execute through the executor and return the value, raising the final error."""
    result = executor.execute(operation, operation_class, operation_id, overrides)
    if not result.success:
        logger.warning(
            "retried_operation_gave_up",
            operation_id=operation_id or str(operation_class),
            attempts=len(result.attempts),
            circuit_open=result.circuit_breaker_triggered,
        )
    return result.unwrap()


def resilient(
    executor: ResilientExecutor,
    operation_class: OperationClass | str,
    operation_id: str | None = None,
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """Decorator running every call of the wrapped function through ``executor``.

    Calls share the breaker of ``operation_id`` (or of the class when unset).
    """

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @functools.wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            return run_with_retry(
                executor,
                lambda: func(*args, **kwargs),
                operation_class,
                operation_id,
            )

        return wrapper

    return decorator
