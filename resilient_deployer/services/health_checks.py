"""Endpoint connectivity checks run through the resilient executor."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import requests
import structlog

from resilient_deployer.core.errors import ServerError
from resilient_deployer.models.retry_profile import OperationClass

if TYPE_CHECKING:
    from collections.abc import Mapping

    from resilient_deployer.services.executor import ResilientExecutor

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class EndpointHealth:
    url: str
    healthy: bool
    chain_id: int | None
    attempts: int
    circuit_open: bool
    error: str | None = None


def _fetch_chain_id(url: str, timeout: float) -> int:
    response = requests.post(
        url,
        json={"jsonrpc": "2.0", "id": 1, "method": "eth_chainId", "params": []},
        timeout=timeout,
    )
    response.raise_for_status()
    payload = response.json()
    if "error" in payload:
        raise ServerError(f"RPC error: {payload['error']}", context={"url": url})
    return int(payload["result"], 16)


def check_rpc_endpoint(
    executor: ResilientExecutor,
    url: str,
    *,
    timeout: float = 10.0,
    overrides: Mapping[str, Any] | None = None,
) -> EndpointHealth:
    """Probe a JSON-RPC endpoint with ``eth_chainId``.

    Retries and circuit breaking follow the ``api`` profile, with the URL as
    breaker id so one dead endpoint does not block others.
    """
    result = executor.execute(
        lambda: _fetch_chain_id(url, timeout),
        OperationClass.API,
        operation_id=f"rpc:{url}",
        overrides=overrides,
    )
    if not result.success:
        logger.warning(
            "rpc_health_check_failed",
            url=url,
            attempts=len(result.attempts),
            circuit_open=result.circuit_breaker_triggered,
            error=str(result.error),
        )
    return EndpointHealth(
        url=url,
        healthy=result.success,
        chain_id=result.value,
        attempts=len(result.attempts),
        circuit_open=result.circuit_breaker_triggered,
        error=None if result.success else str(result.error),
    )
