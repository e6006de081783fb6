"""Retry and circuit breaker profiles per operation class."""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from resilient_deployer.core.errors import ErrorKind


class BackoffStrategy(StrEnum):
    """How the delay grows between attempts."""

    EXPONENTIAL = "exponential"
    LINEAR = "linear"
    FIXED = "fixed"


class OperationClass(StrEnum):
    """Kind of remote call, selecting a default retry profile."""

    DIRECT = "direct"  # contract calls through an RPC node
    API = "api"  # remote deployment API
    AUTO = "auto"  # either, decided at call time


class RetryProfile(BaseModel):
    """Retry, backoff and circuit breaker settings for one operation class.

    Delays are in seconds.
    """

    model_config = ConfigDict(frozen=True)

    max_retries: int = Field(default=3, ge=0)
    base_delay: float = Field(default=1.0, ge=0)
    max_delay: float = Field(default=30.0, ge=0)
    backoff: BackoffStrategy = BackoffStrategy.EXPONENTIAL
    retryable_kinds: frozenset[ErrorKind] = frozenset(
        {
            ErrorKind.NETWORK,
            ErrorKind.RATE_LIMIT,
            ErrorKind.SERVER,
            ErrorKind.TIMEOUT,
        }
    )
    circuit_breaker_threshold: int = Field(default=5, ge=1)
    circuit_breaker_timeout: float = Field(default=60.0, ge=0)

    @property
    def max_attempts(self) -> int:
        """Total attempts including the first one."""
        return self.max_retries + 1

    def with_overrides(self, overrides: Mapping[str, Any] | None) -> RetryProfile:
        """Return a validated copy with the given fields replaced."""
        if not overrides:
            return self
        unknown = set(overrides) - set(type(self).model_fields)
        if unknown:
            msg = f"Unknown retry profile fields: {', '.join(sorted(unknown))}"
            raise ValueError(msg)
        return type(self).model_validate({**self.model_dump(), **overrides})


CLASS_PROFILE_OVERRIDES: dict[OperationClass, dict[str, Any]] = {
    OperationClass.DIRECT: {
        "max_retries": 5,
        "base_delay": 2.0,
        "backoff": BackoffStrategy.EXPONENTIAL,
        "retryable_kinds": frozenset({ErrorKind.NETWORK, ErrorKind.CONTRACT}),
    },
    OperationClass.API: {
        "max_retries": 3,
        "base_delay": 1.0,
        "backoff": BackoffStrategy.LINEAR,
        "retryable_kinds": frozenset(
            {ErrorKind.NETWORK, ErrorKind.RATE_LIMIT, ErrorKind.SERVER}
        ),
    },
    OperationClass.AUTO: {
        "max_retries": 4,
        "base_delay": 1.5,
        "backoff": BackoffStrategy.EXPONENTIAL,
    },
}


def resolve_profile(
    operation_class: OperationClass | str,
    base: RetryProfile | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> RetryProfile:
    """Layer base profile, class defaults and per-call overrides, in that order."""
    profile = base or RetryProfile()
    profile = profile.with_overrides(CLASS_PROFILE_OVERRIDES[OperationClass(operation_class)])
    return profile.with_overrides(overrides)
