"""Signal data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from signal_desk.market.models import DataQuality, MarketSnapshot

# Share of the position closed at tp1 / tp2 / tp3
TAKE_PROFIT_ALLOCATIONS = (50.0, 30.0, 20.0)


class PositionType(Enum):
    LONG = "LONG"
    SHORT = "SHORT"

    @property
    def sign(self) -> int:
        """+1 when profit is above entry, -1 when below."""
        return 1 if self is PositionType.LONG else -1


class QualityFlag(Enum):
    """How the data quality behind a confidence score should be read."""

    OK = "ok"
    DEGRADED = "degraded"  # below min_data_quality: label down-weighted
    INSUFFICIENT = "insufficient"  # below insufficient_data_quality


class DecisionOutcome(Enum):
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    MODIFIED = "MODIFIED"


@dataclass(frozen=True)
class TakeProfit:
    price: float
    allocation: float  # percent of the position


@dataclass(frozen=True)
class TakeProfitLadder:
    """Three partial exits at increasing distance from entry.

    Allocations are fixed at 50/30/20 by policy.
    """

    tp1: TakeProfit
    tp2: TakeProfit
    tp3: TakeProfit

    @classmethod
    def from_prices(cls, tp1: float, tp2: float, tp3: float) -> TakeProfitLadder:
        a1, a2, a3 = TAKE_PROFIT_ALLOCATIONS
        return cls(
            tp1=TakeProfit(tp1, a1),
            tp2=TakeProfit(tp2, a2),
            tp3=TakeProfit(tp3, a3),
        )

    @property
    def tiers(self) -> tuple[TakeProfit, TakeProfit, TakeProfit]:
        return (self.tp1, self.tp2, self.tp3)

    @property
    def total_allocation(self) -> float:
        return sum(tp.allocation for tp in self.tiers)

    def to_dict(self) -> dict:
        return {
            name: {"price": tp.price, "allocation": tp.allocation}
            for name, tp in zip(("tp1", "tp2", "tp3"), self.tiers)
        }


@dataclass(frozen=True)
class Confidence:
    """Aggregated confidence across the four analytical dimensions.

    Attributes:
        overall: weighted mean of the dimension scores (0-100)
        technical, sentiment, on_chain, risk: dimension scores (0-100)
        label: "High", "Medium" or "Low" after any data-quality down-weighting
        raw_label: label from the overall score alone
        quality_flag: how trustworthy the underlying data is
        recommendation: "proceed", "review" (degraded data) or "insufficient"
    """

    overall: float
    technical: float
    sentiment: float
    on_chain: float
    risk: float
    label: str
    raw_label: str
    quality_flag: QualityFlag = QualityFlag.OK
    recommendation: str = "proceed"

    @property
    def display_label(self) -> str:
        if self.quality_flag is QualityFlag.OK:
            return self.label
        return f"{self.label} ({self.quality_flag.value} data)"

    def to_dict(self) -> dict:
        return {
            "overall": self.overall,
            "technical": self.technical,
            "sentiment": self.sentiment,
            "onChain": self.on_chain,
            "risk": self.risk,
            "label": self.display_label,
            "qualityFlag": self.quality_flag.value,
            "recommendation": self.recommendation,
        }


@dataclass(frozen=True)
class RiskPlan:
    """Stop, sizing and exit ladder for one trade.

    Attributes:
        max_loss: account_balance * max_risk_fraction, the loss at the stop
        max_loss_percent: max_loss as a percentage of the account
        potential_profit: profit if the whole position exits at tp3
        volatility: volatility measure the stop distance was derived from
        volatility_source: "atr", "bollinger", "volatility" or "manual"
    """

    position_type: PositionType
    entry: float
    stop_loss: float
    take_profits: TakeProfitLadder
    position_size: float
    max_loss: float
    max_loss_percent: float
    risk_reward: float
    meets_min_risk_reward: bool
    potential_profit: float
    volatility: float | None = None
    volatility_source: str = "manual"

    @property
    def risk_distance(self) -> float:
        return abs(self.entry - self.stop_loss)

    @property
    def risk_reward_status(self) -> str:
        return "meets minimum requirement" if self.meets_min_risk_reward else "unfavorable"


@dataclass(frozen=True)
class TradeSignal:
    """A risk-managed trade proposal awaiting human review.

    Immutable. A modification produces a new signal whose ``parent_id``
    points back at this one.
    """

    id: str
    symbol: str
    timeframe: str
    position_type: PositionType
    entry: float
    stop_loss: float
    take_profits: TakeProfitLadder
    confidence: Confidence
    risk_reward: float
    meets_min_risk_reward: bool
    position_size: float
    max_loss: float
    data_quality: DataQuality
    created_at: datetime
    snapshot: MarketSnapshot | None = field(default=None, compare=False, repr=False)
    parent_id: str | None = None
    volatility_source: str = "manual"

    @property
    def risk_reward_status(self) -> str:
        return "meets minimum requirement" if self.meets_min_risk_reward else "unfavorable"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "symbol": self.symbol,
            "timeframe": self.timeframe,
            "positionType": self.position_type.value,
            "entry": self.entry,
            "stopLoss": self.stop_loss,
            "takeProfits": self.take_profits.to_dict(),
            "confidence": self.confidence.to_dict(),
            "riskReward": self.risk_reward,
            "riskRewardStatus": self.risk_reward_status,
            "positionSize": self.position_size,
            "maxLoss": self.max_loss,
            "dataQuality": self.data_quality.to_dict(),
            "createdAt": self.created_at.isoformat(),
            "parentId": self.parent_id,
        }


@dataclass(frozen=True)
class ApprovalDecision:
    """Outcome of a human review. Created once per terminal transition."""

    signal_id: str
    outcome: DecisionOutcome
    timestamp: datetime
    reason: str | None = None
    reviewer: str | None = None
    replacement_id: str | None = None  # new signal id for MODIFIED

    def to_dict(self) -> dict:
        return {
            "signalId": self.signal_id,
            "outcome": self.outcome.value,
            "reason": self.reason,
            "reviewer": self.reviewer,
            "replacementId": self.replacement_id,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class SnapshotChanges:
    """Differences between two validated snapshots of the same market."""

    price_changed: bool = False
    price_delta: float = 0.0
    price_change_percent: float = 0.0
    indicators_changed: tuple[str, ...] = ()
    sentiment_changed: bool = False
    on_chain_changed: bool = False
    significant: bool = False

    def to_dict(self) -> dict:
        return {
            "priceChanged": self.price_changed,
            "priceDelta": self.price_delta,
            "indicatorsChanged": list(self.indicators_changed),
            "sentimentChanged": self.sentiment_changed,
            "onChainChanged": self.on_chain_changed,
            "significantChanges": self.significant,
        }
