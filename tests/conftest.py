"""Shared test fixtures for the resilient batch deployer."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import pytest

from resilient_deployer.models.batch import BatchItem, DeployReceipt

if TYPE_CHECKING:
    from resilient_deployer.models.batch import DeployRequest

WALLET = "0x" + "1" * 40
ADMIN = "0x" + "a" * 40
RECIPIENT = "0x" + "b" * 40
OTHER = "0x" + "c" * 40


def token_address(n: int) -> str:
    """Deterministic fake token address."""
    return "0x" + f"{n:040x}"


class FakeDeployClient:
    """Deploy client that plays back scripted outcomes.

    Each script entry is an exception to raise or a receipt to return. Once
    the script runs out every call succeeds with a fresh token address.
    """

    def __init__(self, script: list[BaseException | DeployReceipt] | None = None) -> None:
        self.address = WALLET
        self.script = list(script or [])
        self.requests: list[DeployRequest] = []

    def deploy(self, request: DeployRequest) -> DeployReceipt:
        self.requests.append(request)
        if self.script:
            outcome = self.script.pop(0)
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome
        return DeployReceipt(
            token_address=token_address(len(self.requests)),
            tx_hash="0x" + f"{len(self.requests):064x}",
        )


class FakeClock:
    """Monotonic clock that only moves when told to, or when slept on."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class SteppingNow:
    """UTC timestamp source that advances one second per call."""

    def __init__(self) -> None:
        self.current = datetime(2025, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        value = self.current
        self.current += timedelta(seconds=1)
        return value


@pytest.fixture
def fake_client() -> FakeDeployClient:
    """Deploy client where every call succeeds."""
    return FakeDeployClient()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sample_items() -> list[BatchItem]:
    """Five plain items with no admin or recipient of their own."""
    return [BatchItem(name=f"Token {i}", symbol=f"TK{i}") for i in range(5)]


@pytest.fixture
def make_client() -> type[FakeDeployClient]:
    """Factory for clients with a scripted sequence of outcomes."""
    return FakeDeployClient


@pytest.fixture
def stepping_now() -> SteppingNow:
    return SteppingNow()
