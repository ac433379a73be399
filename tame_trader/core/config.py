"""Configuration management for the trading client."""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from tame_trader.core.constants import (
    BRACKET_SLIPPAGE_DIVISOR,
    DEFAULT_CHASE_INTERVAL_SECONDS,
    DEFAULT_LOG_DIR,
    DEFAULT_RISK_RETURN_RATIO_THRESHOLD,
    DEFAULT_VENUE,
    SLOW_VENUE_CHASE_INTERVAL_SECONDS,
)


class TameConfig(BaseSettings):
    """Venue connection and order engine configuration.

    Uses Pydantic v2 settings with environment variable support.
    Defaults to the venue sandbox for safety.
    """

    model_config = SettingsConfigDict(
        env_prefix="TAME_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Venue connection
    venue: str = Field(default=DEFAULT_VENUE, description="ccxt exchange id")
    api_key: str | None = Field(default=None, description="Venue API key")
    api_secret: str | None = Field(default=None, description="Venue API secret")
    sandbox: bool = Field(default=True, description="Use the venue testnet/sandbox")
    default_type: str = Field(
        default="swap", description="ccxt defaultType option (spot, swap, future)"
    )

    # Chase loop
    chase_interval_seconds: float = Field(
        default=DEFAULT_CHASE_INTERVAL_SECONDS,
        description="Seconds between chase repricing ticks",
    )
    slow_chase_interval_seconds: float = Field(
        default=SLOW_VENUE_CHASE_INTERVAL_SECONDS,
        description="Tick interval for venues with slow order confirmation",
    )

    # Planners
    risk_return_ratio_threshold: Decimal = Field(
        default=DEFAULT_RISK_RETURN_RATIO_THRESHOLD,
        description="Entries whose risk/return ratio is at or below this are rejected",
    )
    bracket_slippage_divisor: Decimal = Field(
        default=BRACKET_SLIPPAGE_DIVISOR,
        description="Bracket entry quantity is divided by this to absorb fill slippage",
    )
    default_capital: Decimal | None = Field(
        default=None, description="Capital used by range/bracket when none is given"
    )

    log_dir: Path = Field(default=DEFAULT_LOG_DIR, description="Directory for logs")

    @field_validator("venue")
    @classmethod
    def normalize_venue(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("venue cannot be empty")
        return value.strip().lower()

    @field_validator("chase_interval_seconds", "slow_chase_interval_seconds")
    @classmethod
    def validate_interval(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("chase intervals must be positive")
        return value

    @field_validator("bracket_slippage_divisor")
    @classmethod
    def validate_slippage_divisor(cls, value: Decimal) -> Decimal:
        if value < 1:
            raise ValueError("bracket_slippage_divisor must be >= 1")
        return value

    @field_validator("risk_return_ratio_threshold")
    @classmethod
    def validate_threshold(cls, value: Decimal) -> Decimal:
        if value < 0:
            raise ValueError("risk_return_ratio_threshold cannot be negative")
        return value

    def model_post_init(self, __context: object) -> None:
        """Create directories after initialization."""
        self.log_dir.mkdir(parents=True, exist_ok=True)

    def chase_interval_for(self, high_confirmation_latency: bool) -> float:
        """Tick interval to use for a venue."""
        if high_confirmation_latency:
            return max(self.slow_chase_interval_seconds, self.chase_interval_seconds)
        return self.chase_interval_seconds


def load_config() -> TameConfig:
    """Load configuration from environment and .env file."""
    return TameConfig()
