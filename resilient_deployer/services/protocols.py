"""Service protocols defining interfaces for dependency injection."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from resilient_deployer.models.batch import DeployReceipt, DeployRequest


class DeployClientProtocol(Protocol):
    """Performs one token deployment on chain.

    ``address`` is the wallet the client signs with; it is the last-resort
    token admin. ``deploy`` either returns a receipt or raises.
    """

    @property
    def address(self) -> str: ...

    def deploy(self, request: DeployRequest) -> DeployReceipt: ...
