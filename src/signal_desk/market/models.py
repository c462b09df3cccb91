"""Validated market snapshot models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

NEUTRAL = "NEUTRAL"
UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class Reading:
    """Canonical numeric indicator value.

    Attributes:
        value: parsed numeric value
        label: signal label from upstream ("OVERBOUGHT", "BULLISH", ...) or a
            neutral sentinel
        is_default: True when the value is a placeholder, not a measurement
    """

    value: float
    label: str = NEUTRAL
    is_default: bool = False

    @classmethod
    def placeholder(cls, value: float, label: str = NEUTRAL) -> Reading:
        return cls(value=value, label=label, is_default=True)


@dataclass(frozen=True)
class Bands:
    upper: float
    middle: float
    lower: float

    @property
    def width(self) -> float:
        return self.upper - self.lower


@dataclass(frozen=True)
class SupportResistance:
    support: float | None = None
    resistance: float | None = None
    strong_support: float | None = None
    strong_resistance: float | None = None


@dataclass(frozen=True)
class Zone:
    """A supply or demand price zone."""

    low: float
    high: float
    strength: str = UNKNOWN


@dataclass(frozen=True)
class TechnicalSnapshot:
    rsi: Reading = field(default_factory=lambda: Reading.placeholder(50.0))
    macd: Reading = field(default_factory=lambda: Reading.placeholder(0.0))
    ema20: float | None = None
    ema50: float | None = None
    atr: float | None = None
    historical_atr: float | None = None
    bollinger: Bands | None = None
    support_resistance: SupportResistance | None = None
    supply_zones: tuple[Zone, ...] = ()
    demand_zones: tuple[Zone, ...] = ()
    trend: str = UNKNOWN
    score: float | None = None


@dataclass(frozen=True)
class SentimentSnapshot:
    overall: str = UNKNOWN
    fear_greed: Reading = field(default_factory=lambda: Reading.placeholder(50.0))
    social: str = UNKNOWN
    institutional_flow: str = UNKNOWN
    score: float | None = None


@dataclass(frozen=True)
class OnChainSnapshot:
    whale_transactions: float | None = None
    whale_value: float | None = None
    exchange_net_flow: float | None = None
    trend: str = UNKNOWN
    score: float | None = None


@dataclass(frozen=True)
class RiskSnapshot:
    volatility: float | None = None  # percent, e.g. 3.2 for 3.2%
    level: str = UNKNOWN
    score: float | None = None


@dataclass(frozen=True)
class DataQuality:
    """Availability of each analytical dimension, as percentages (0-100).

    Attributes:
        overall: weighted overall quality
        market: price / volume completeness
        sentiment: sentiment completeness
        on_chain: on-chain completeness
        technical: technical indicator completeness
        successful: sources that answered within the deadline
        failed: sources that failed or returned nothing
        flags: per-dimension "has any real reading" flags for display
    """

    overall: float = 0.0
    market: float = 0.0
    sentiment: float = 0.0
    on_chain: float = 0.0
    technical: float = 0.0
    successful: tuple[str, ...] = ()
    failed: tuple[str, ...] = ()
    flags: dict[str, bool] = field(default_factory=dict, hash=False, compare=False)

    def to_dict(self) -> dict:
        return {
            "overall": self.overall,
            "market": self.market,
            "sentiment": self.sentiment,
            "onChain": self.on_chain,
            "technical": self.technical,
            "sources": {
                "successful": list(self.successful),
                "failed": list(self.failed),
            },
        }


@dataclass(frozen=True)
class MarketSnapshot:
    """One validated, point-in-time view of a symbol/timeframe.

    Only the validator builds these; price and liveness are always real.
    """

    symbol: str
    timeframe: str
    price: float
    is_live: bool
    technical: TechnicalSnapshot
    sentiment: SentimentSnapshot
    on_chain: OnChainSnapshot
    risk: RiskSnapshot
    data_quality: DataQuality
    last_updated: datetime
    timestamp: datetime
    change_24h: float | None = None
    volume_24h: float | None = None
    news_count: int = 0
