"""Pydantic data models for the resilient batch deployer."""

from resilient_deployer.models.batch import (
    CHAIN_IDS,
    MAX_BATCH_SIZE,
    BatchItem,
    BatchItemResult,
    BatchOptions,
    BatchSummary,
    Chain,
    DeployReceipt,
    DeployRequest,
    FeeSettings,
)
from resilient_deployer.models.config import Config
from resilient_deployer.models.recipient import NormalizedRecipient, RewardRecipient
from resilient_deployer.models.retry_profile import (
    BackoffStrategy,
    OperationClass,
    RetryProfile,
    resolve_profile,
)

__all__ = [
    "CHAIN_IDS",
    "MAX_BATCH_SIZE",
    "BackoffStrategy",
    "BatchItem",
    "BatchItemResult",
    "BatchOptions",
    "BatchSummary",
    "Chain",
    "Config",
    "DeployReceipt",
    "DeployRequest",
    "FeeSettings",
    "NormalizedRecipient",
    "OperationClass",
    "RetryProfile",
    "RewardRecipient",
    "resolve_profile",
]
