"""Application configuration via pydantic-settings."""

from __future__ import annotations

from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

CONFIDENCE_DIMENSIONS = ("technical", "sentiment", "on_chain", "risk")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Account size used for position sizing when the caller doesn't pass one
    account_balance: float = 10_000.0

    # Max fraction of the account risked per trade (0.02 = 2%)
    max_risk_fraction: float = 0.02

    # Stop distance = ATR * multiplier
    atr_stop_multiplier: float = 2.0

    # Fibonacci extensions of the stop distance for tp1/tp2/tp3
    take_profit_multipliers: tuple[float, float, float] = (1.618, 2.618, 4.236)

    # Advisory risk:reward floor
    min_risk_reward: float = 2.0

    # Per-dimension weights for the overall confidence (normalized on use)
    confidence_weights: dict[str, float] = {
        "technical": 0.25,
        "sentiment": 0.25,
        "on_chain": 0.25,
        "risk": 0.25,
    }

    # Below this overall data quality the confidence label is down-weighted
    min_data_quality: float = 90.0

    # Below this overall data quality the recommendation is "insufficient"
    insufficient_data_quality: float = 70.0

    # Relative price / whale value move treated as significant on refresh
    significant_change_threshold: float = 0.02

    # Put the replacement from a "modify" decision straight back in review
    auto_present_modified: bool = True

    # Overall deadline for the multi-source fetch, seconds
    fetch_timeout: float = 15.0

    # HTTP request timeout seconds
    http_timeout: float = 10.0

    # Attempts per data service request (transient errors only)
    http_retries: int = 3

    # Upstream market data service
    data_api_url: str = "http://localhost:3000/api"

    # SQLite database path for decision tracking
    db_path: Path = Path.home() / ".signal-desk" / "decisions.db"

    @field_validator("max_risk_fraction")
    @classmethod
    def _max_risk_fraction_in_range(cls, v: float) -> float:
        if not 0.0 < v <= 1.0:
            raise ValueError(f"max_risk_fraction must be in (0, 1], got {v}")
        return v

    @field_validator("account_balance", "atr_stop_multiplier", "fetch_timeout", "http_retries")
    @classmethod
    def _positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"value must be > 0, got {v}")
        return v

    @field_validator("take_profit_multipliers")
    @classmethod
    def _multipliers_increasing(cls, v: tuple[float, float, float]) -> tuple[float, float, float]:
        if v[0] <= 0 or not v[0] < v[1] < v[2]:
            raise ValueError(f"take_profit_multipliers must be positive and strictly increasing, got {v}")
        return v

    @field_validator("confidence_weights")
    @classmethod
    def _weights_valid(cls, v: dict[str, float]) -> dict[str, float]:
        unknown = set(v) - set(CONFIDENCE_DIMENSIONS)
        if unknown:
            raise ValueError(f"unknown confidence dimensions: {sorted(unknown)}")
        if any(w < 0 for w in v.values()):
            raise ValueError("confidence weights must be >= 0")
        if sum(v.values()) <= 0:
            raise ValueError("confidence weights must not all be zero")
        return v

    @field_validator("min_data_quality", "insufficient_data_quality")
    @classmethod
    def _percentage(cls, v: float) -> float:
        if not 0.0 <= v <= 100.0:
            raise ValueError(f"data quality threshold must be in [0, 100], got {v}")
        return v


def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
