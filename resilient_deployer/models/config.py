"""Application configuration model using pydantic-settings."""

from __future__ import annotations

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from resilient_deployer.models.batch import Chain


class Config(BaseSettings):
    """Application configuration loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    log_level: str = "INFO"
    log_format: Literal["console", "json"] = "console"
    default_chain: Chain = Chain.BASE
    batch_delay_seconds: float = Field(default=3.0, ge=0)
    retries: int = 2
    retry_delay_seconds: float = Field(default=5.0, ge=0)
    max_retry_delay_seconds: float = Field(default=60.0, ge=0)
    fee_percent: float = 5.0
    mev_blocks: int = 8
    continue_on_error: bool = True
    circuit_breaker_threshold: int = Field(default=5, ge=1)
    circuit_breaker_timeout_seconds: float = Field(default=60.0, ge=0)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Log level must be a valid Python logging level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_value = value.upper()
        if upper_value not in valid_levels:
            msg = f"log_level must be one of {', '.join(sorted(valid_levels))}"
            raise ValueError(msg)
        return upper_value

    @field_validator("retries")
    @classmethod
    def validate_retries(cls, value: int) -> int:
        """Retries must be between 0 and 10."""
        if value < 0 or value > 10:
            msg = "retries must be between 0 and 10"
            raise ValueError(msg)
        return value

    @field_validator("fee_percent")
    @classmethod
    def validate_fee_percent(cls, value: float) -> float:
        """Static fee must be between 1 and 80 percent."""
        if value < 1 or value > 80:
            msg = "fee_percent must be between 1 and 80"
            raise ValueError(msg)
        return value

    @field_validator("mev_blocks")
    @classmethod
    def validate_mev_blocks(cls, value: int) -> int:
        """MEV protection must be between 0 and 20 blocks."""
        if value < 0 or value > 20:
            msg = "mev_blocks must be between 0 and 20"
            raise ValueError(msg)
        return value

    def retry_profile_overrides(self) -> dict[str, float | int]:
        """Circuit breaker settings to apply on top of the executor's base profile."""
        return {
            "circuit_breaker_threshold": self.circuit_breaker_threshold,
            "circuit_breaker_timeout": self.circuit_breaker_timeout_seconds,
        }
