"""Trade signal assembly: direction, confidence and risk plan."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from signal_desk.market.models import UNKNOWN, MarketSnapshot
from signal_desk.signals.confidence import ConfidenceScorer
from signal_desk.signals.models import PositionType, RiskPlan, TradeSignal
from signal_desk.signals.risk import RiskEngine

logger = logging.getLogger(__name__)

_BULLISH = {"BULLISH", "BUY", "STRONG_BUY", "UP", "UPTREND", "POSITIVE", "ACCUMULATION", "GREED"}
_BEARISH = {"BEARISH", "SELL", "STRONG_SELL", "DOWN", "DOWNTREND", "NEGATIVE", "DISTRIBUTION", "FEAR"}


def _vote(label: str) -> int:
    if label in _BULLISH:
        return 1
    if label in _BEARISH:
        return -1
    return 0


def infer_position_type(snapshot: MarketSnapshot) -> PositionType:
    """Majority vote of directional labels; ties go LONG.

    Placeholder readings don't vote. RSI extremes vote for mean reversion
    (oversold -> LONG, overbought -> SHORT).
    """
    technical = snapshot.technical
    votes = [
        _vote(technical.trend),
        _vote(snapshot.sentiment.overall),
        _vote(snapshot.on_chain.trend),
        _vote(technical.macd.label),
    ]
    if not technical.rsi.is_default:
        if technical.rsi.value < 30:
            votes.append(1)
        elif technical.rsi.value > 70:
            votes.append(-1)
    if technical.ema20 is not None and technical.ema50 is not None:
        votes.append(1 if technical.ema20 >= technical.ema50 else -1)

    total = sum(votes)
    position = PositionType.SHORT if total < 0 else PositionType.LONG
    logger.debug("%s direction votes %s -> %s", snapshot.symbol, votes, position.value)
    return position


def signal_from_plan(
    snapshot: MarketSnapshot,
    plan: RiskPlan,
    scorer: ConfidenceScorer,
    parent_id: str | None = None,
) -> TradeSignal:
    return TradeSignal(
        id=uuid.uuid4().hex,
        symbol=snapshot.symbol,
        timeframe=snapshot.timeframe,
        position_type=plan.position_type,
        entry=plan.entry,
        stop_loss=plan.stop_loss,
        take_profits=plan.take_profits,
        confidence=scorer.score(snapshot),
        risk_reward=round(plan.risk_reward, 4),
        meets_min_risk_reward=plan.meets_min_risk_reward,
        position_size=plan.position_size,
        max_loss=plan.max_loss,
        data_quality=snapshot.data_quality,
        created_at=datetime.now(timezone.utc),
        snapshot=snapshot,
        parent_id=parent_id,
        volatility_source=plan.volatility_source,
    )


def generate_signal(
    snapshot: MarketSnapshot,
    account_balance: float,
    max_risk_fraction: float = 0.02,
    position_type: PositionType | None = None,
    scorer: ConfidenceScorer | None = None,
    engine: RiskEngine | None = None,
) -> TradeSignal:
    """Build a TradeSignal from a validated snapshot.

    Signals from low-quality data are still built; their confidence carries
    the quality flag.
    """
    scorer = scorer or ConfidenceScorer()
    engine = engine or RiskEngine()
    if position_type is None:
        position_type = infer_position_type(snapshot)

    plan = engine.build_risk_plan(
        snapshot,
        account_balance=account_balance,
        max_risk_fraction=max_risk_fraction,
        position_type=position_type,
    )
    return signal_from_plan(snapshot, plan, scorer)


def describe_analysis(signal: TradeSignal) -> dict:
    """Summary of the analysis behind a signal for the presentation layer."""
    snapshot = signal.snapshot
    summary = {
        "confidenceLabel": signal.confidence.display_label,
        "recommendation": signal.confidence.recommendation,
        "riskRewardStatus": signal.risk_reward_status,
        "volatilitySource": signal.volatility_source,
        "dataQuality": signal.data_quality.overall,
    }
    if snapshot is not None:
        summary.update({
            "price": snapshot.price,
            "rsi": {"value": snapshot.technical.rsi.value, "label": snapshot.technical.rsi.label},
            "macd": snapshot.technical.macd.label,
            "trend": snapshot.technical.trend,
            "sentiment": snapshot.sentiment.overall,
            "onChainTrend": snapshot.on_chain.trend,
            "riskLevel": snapshot.risk.level,
            "defaultedFields": [
                name for name, is_default in (
                    ("rsi", snapshot.technical.rsi.is_default),
                    ("macd", snapshot.technical.macd.is_default),
                    ("fearGreed", snapshot.sentiment.fear_greed.is_default),
                    ("sentiment", snapshot.sentiment.overall == UNKNOWN),
                    ("onChain", snapshot.on_chain.trend == UNKNOWN),
                ) if is_default
            ],
        })
    return summary
