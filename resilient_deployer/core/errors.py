"""Error taxonomy for deploy operations.

Every failure that crosses a retry boundary is mapped to an ``ErrorKind``.
The kind is attached where the failure is raised (``DeployError`` subclasses)
or derived from the exception type (``classify_error``), never from the
message text.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

import requests


class ErrorKind(StrEnum):
    """Retry-relevant category of a failure."""

    NETWORK = "network"
    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"
    SERVER = "server"
    CONTRACT = "contract"
    AUTHORIZATION = "authorization"
    VALIDATION = "validation"
    CONFIGURATION = "configuration"
    DEPLOYMENT = "deployment"
    CIRCUIT_OPEN = "circuit_open"
    UNKNOWN = "unknown"


# Kinds that no retry profile may retry.
NEVER_RETRYABLE: frozenset[ErrorKind] = frozenset(
    {
        ErrorKind.AUTHORIZATION,
        ErrorKind.VALIDATION,
        ErrorKind.CONFIGURATION,
        ErrorKind.CIRCUIT_OPEN,
    }
)


class DeployError(Exception):
    """Base class for failures raised by deploy collaborators and this package."""

    kind: ErrorKind = ErrorKind.UNKNOWN
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        retryable: bool | None = None,
        retry_after: float | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.retryable = self.default_retryable if retryable is None else retryable
        self.retry_after = retry_after
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logging."""
        return {
            "type": type(self).__name__,
            "kind": self.kind.value,
            "message": self.message,
            "retryable": self.retryable,
            "retry_after": self.retry_after,
            "context": self.context,
        }


class NetworkError(DeployError):
    kind = ErrorKind.NETWORK
    default_retryable = True


class TimeoutExceededError(DeployError):
    kind = ErrorKind.TIMEOUT
    default_retryable = True


class RateLimitError(DeployError):
    kind = ErrorKind.RATE_LIMIT
    default_retryable = True


class ServerError(DeployError):
    kind = ErrorKind.SERVER
    default_retryable = True


class ContractError(DeployError):
    """Contract call failure. Only retryable when the caller says so."""

    kind = ErrorKind.CONTRACT


class DeploymentError(DeployError):
    kind = ErrorKind.DEPLOYMENT


class AuthorizationError(DeployError):
    kind = ErrorKind.AUTHORIZATION


class AllocationError(DeployError):
    """Reward allocation does not validate."""

    kind = ErrorKind.VALIDATION


class ConfigurationError(DeployError):
    kind = ErrorKind.CONFIGURATION


class CircuitOpenError(DeployError):
    """Raised in place of a call the circuit breaker refused to run."""

    kind = ErrorKind.CIRCUIT_OPEN


class BatchValidationError(DeployError, ValueError):
    """Structural problem with a batch request, detected before any deploy call."""

    kind = ErrorKind.VALIDATION


def _classify_http_status(status_code: int | None) -> ErrorKind:
    if status_code is None:
        return ErrorKind.NETWORK
    if status_code in (401, 403):
        return ErrorKind.AUTHORIZATION
    if status_code == 429:
        return ErrorKind.RATE_LIMIT
    if status_code >= 500:
        return ErrorKind.SERVER
    if status_code >= 400:
        return ErrorKind.VALIDATION
    return ErrorKind.UNKNOWN


def classify_error(exc: BaseException) -> ErrorKind:
    """Map an exception to its ErrorKind by type."""
    if isinstance(exc, DeployError):
        return exc.kind
    # requests exceptions subclass OSError, so check them before the builtins
    if isinstance(exc, requests.Timeout):
        return ErrorKind.TIMEOUT
    if isinstance(exc, requests.HTTPError):
        response = exc.response
        return _classify_http_status(response.status_code if response is not None else None)
    if isinstance(exc, requests.ConnectionError):
        return ErrorKind.NETWORK
    if isinstance(exc, TimeoutError):
        return ErrorKind.TIMEOUT
    if isinstance(exc, ConnectionError):
        return ErrorKind.NETWORK
    if isinstance(exc, PermissionError):
        return ErrorKind.AUTHORIZATION
    if isinstance(exc, (ValueError, TypeError)):
        return ErrorKind.VALIDATION
    return ErrorKind.UNKNOWN


def is_error_retryable(exc: BaseException) -> bool:
    """Whether the error itself permits a retry, before any profile is consulted.

    ``DeployError`` instances decide through their ``retryable`` flag; other
    exceptions are retryable unless their kind is in ``NEVER_RETRYABLE``.
    """
    kind = classify_error(exc)
    if kind in NEVER_RETRYABLE:
        return False
    if isinstance(exc, DeployError):
        return exc.retryable
    return True


def retry_after_hint(exc: BaseException) -> float | None:
    """Server-provided delay in seconds, if the error carries one."""
    if isinstance(exc, DeployError):
        return exc.retry_after
    if isinstance(exc, requests.HTTPError) and exc.response is not None:
        header = exc.response.headers.get("Retry-After")
        if header:
            try:
                return float(header)
            except ValueError:
                return None
    return None
