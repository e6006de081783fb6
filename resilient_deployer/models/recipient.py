"""Reward recipient models, before and after allocation normalization."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, field_validator


class RewardRecipient(BaseModel):
    """A reward recipient as supplied by the caller.

    ``allocation`` and ``percentage`` are alternate spellings of the same
    share; ``allocation`` wins when both are set. Entries with neither get
    an equal part of whatever the explicit entries leave over.
    """

    model_config = ConfigDict(frozen=True)

    address: str
    allocation: int | float | None = None
    percentage: int | float | None = None

    @field_validator("address")
    @classmethod
    def validate_address(cls, value: str) -> str:
        """Address must not be blank. Format is checked by validate_recipients."""
        if not value.strip():
            msg = "address must not be empty"
            raise ValueError(msg)
        return value.strip()

    @property
    def explicit_share(self) -> int | float | None:
        """The caller-provided share, if any."""
        if self.allocation is not None:
            return self.allocation
        return self.percentage


class NormalizedRecipient(BaseModel):
    """A recipient with its resolved share of the rewards."""

    model_config = ConfigDict(frozen=True)

    address: str
    allocation: int | float
