"""Batch deployment models: items, options, per-item results and the run summary."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)

from resilient_deployer.models.recipient import NormalizedRecipient, RewardRecipient
from resilient_deployer.models.retry_profile import BackoffStrategy

if TYPE_CHECKING:
    from resilient_deployer.models.config import Config

MAX_BATCH_SIZE = 100


def _utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


class Chain(StrEnum):
    """Chains a batch can target."""

    BASE = "base"
    ETHEREUM = "ethereum"
    ARBITRUM = "arbitrum"
    UNICHAIN = "unichain"
    MONAD = "monad"

    @property
    def chain_id(self) -> int:
        return CHAIN_IDS[self]


CHAIN_IDS: dict[Chain, int] = {
    Chain.BASE: 8453,
    Chain.ETHEREUM: 1,
    Chain.ARBITRUM: 42161,
    Chain.UNICHAIN: 130,
    Chain.MONAD: 10143,
}


class BatchItem(BaseModel):
    """One token to deploy. Unset admin/recipient fields fall back to batch defaults."""

    name: str
    symbol: str
    id: str | None = None
    image: str | None = None
    description: str | None = None
    token_admin: str | None = None
    reward_recipient: str | None = None
    reward_allocation: float | None = Field(default=None, gt=0, le=100)
    reward_recipients: list[RewardRecipient] | None = None

    @field_validator("name", "symbol")
    @classmethod
    def validate_not_blank(cls, value: str) -> str:
        """Name and symbol are required."""
        if not value.strip():
            msg = "name and symbol must not be empty"
            raise ValueError(msg)
        return value.strip()


class FeeSettings(BaseModel):
    """Static fee applied to both sides of the pool, in percent."""

    model_config = ConfigDict(frozen=True)

    type: Literal["static"] = "static"
    clanker_fee: int | float
    paired_fee: int | float


class DeployRequest(BaseModel):
    """Fully resolved configuration handed to the deploy client for one attempt."""

    model_config = ConfigDict(frozen=True)

    chain: Chain
    chain_id: int
    name: str
    symbol: str
    image: str = ""
    description: str = ""
    token_admin: str
    mev: int
    fees: FeeSettings
    reward_recipients: list[NormalizedRecipient]


class DeployReceipt(BaseModel):
    """What the deploy client reports back for one attempt."""

    success: bool = True
    token_address: str | None = None
    tx_hash: str | None = None
    explorer_url: str | None = None
    error: str | None = None


class BatchItemResult(BaseModel):
    """Final outcome of one item after its retry loop ended."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=0)
    id: str | None = None
    name: str
    symbol: str
    success: bool
    token_address: str | None = None
    tx_hash: str | None = None
    explorer_url: str | None = None
    error: str | None = None
    attempts: int = Field(ge=0)
    timestamp: datetime = Field(default_factory=_utc_now)
    token_admin: str | None = None
    reward_recipient: str | None = None

    @model_validator(mode="after")
    def validate_outcome(self) -> BatchItemResult:
        """Successful results carry an address, failed ones an error message."""
        if self.success and not self.token_address:
            msg = "successful result requires token_address"
            raise ValueError(msg)
        if not self.success and not self.error:
            msg = "failed result requires error"
            raise ValueError(msg)
        return self


ProgressCallback = Callable[[int, int, BatchItemResult], Any]
ErrorCallback = Callable[[int, BaseException, BatchItem], Any]
RetryCallback = Callable[[int, int, BatchItem], Any]


class BatchOptions(BaseModel):
    """Run-wide settings for BatchDeployer.deploy. Delays are in seconds."""

    chain: Chain = Chain.BASE
    mev: int = Field(default=8, ge=0, le=20)
    fee_percent: float = Field(default=5.0, ge=1, le=80)
    delay: float = Field(default=3.0, ge=0)
    random_delay_min: float = Field(default=0.0, ge=0)
    random_delay_max: float = Field(default=0.0, ge=0)
    retries: int = Field(default=2, ge=0)
    retry_delay: float = Field(default=5.0, ge=0)
    retry_backoff: BackoffStrategy = BackoffStrategy.FIXED
    max_retry_delay: float = Field(default=60.0, ge=0)
    start_index: int = Field(default=0, ge=0)
    continue_on_error: bool = True
    default_token_admin: str | None = None
    default_reward_recipient: str | None = None
    on_progress: ProgressCallback | None = Field(default=None, exclude=True)
    on_error: ErrorCallback | None = Field(default=None, exclude=True)
    on_retry: RetryCallback | None = Field(default=None, exclude=True)

    @classmethod
    def from_config(cls, config: Config, **overrides: Any) -> BatchOptions:
        """Build options from application configuration, then apply overrides."""
        values: dict[str, Any] = {
            "chain": config.default_chain,
            "mev": config.mev_blocks,
            "fee_percent": config.fee_percent,
            "delay": config.batch_delay_seconds,
            "retries": config.retries,
            "retry_delay": config.retry_delay_seconds,
            "max_retry_delay": config.max_retry_delay_seconds,
            "continue_on_error": config.continue_on_error,
        }
        values.update(overrides)
        return cls(**values)


class BatchSummary(BaseModel):
    """Aggregate over one deploy run. Safe to persist and reload."""

    model_config = ConfigDict(frozen=True)

    chain: Chain
    chain_id: int
    results: list[BatchItemResult]
    successful: int = Field(ge=0)
    failed: int = Field(ge=0)
    total: int = Field(ge=0)
    started_at: datetime
    ended_at: datetime

    @model_validator(mode="after")
    def validate_counts(self) -> BatchSummary:
        """Counts must agree with the result list."""
        if self.successful + self.failed != len(self.results) or self.total != len(self.results):
            msg = "successful + failed must equal total and the number of results"
            raise ValueError(msg)
        if self.successful != sum(1 for r in self.results if r.success):
            msg = "successful count does not match results"
            raise ValueError(msg)
        return self

    @computed_field  # type: ignore[prop-decorator]
    @property
    def duration_seconds(self) -> float:
        return max(0.0, (self.ended_at - self.started_at).total_seconds())

    @computed_field  # type: ignore[prop-decorator]
    @property
    def tokens(self) -> list[dict[str, str | None]]:
        """Name, symbol and address of every deployed token, in result order."""
        return [
            {"name": r.name, "symbol": r.symbol, "address": r.token_address}
            for r in self.results
            if r.success
        ]

    @property
    def failed_indices(self) -> list[int]:
        return [r.index for r in self.results if not r.success]

    @classmethod
    def from_results(
        cls,
        chain: Chain,
        results: list[BatchItemResult],
        started_at: datetime,
        ended_at: datetime,
    ) -> BatchSummary:
        successful = sum(1 for r in results if r.success)
        return cls(
            chain=chain,
            chain_id=chain.chain_id,
            results=results,
            successful=successful,
            failed=len(results) - successful,
            total=len(results),
            started_at=started_at,
            ended_at=ended_at,
        )
