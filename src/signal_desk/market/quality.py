"""Data quality scoring per analytical dimension.

Each dimension scores the share of its fields that carry a real reading
(placeholders count as missing). The overall score weights market data
highest, then on-chain and technical, then sentiment.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from signal_desk.market.models import (
    UNKNOWN,
    DataQuality,
    OnChainSnapshot,
    RiskSnapshot,
    SentimentSnapshot,
    TechnicalSnapshot,
)

logger = logging.getLogger(__name__)

# Data older than this does not count as fresh for the market dimension
MAX_DATA_AGE = timedelta(minutes=5)

QUALITY_WEIGHTS = {
    "market": 0.30,
    "sentiment": 0.20,
    "on_chain": 0.25,
    "technical": 0.25,
}


def _pct(checks: list[bool]) -> float:
    if not checks:
        return 0.0
    return round(100.0 * sum(checks) / len(checks), 1)


def market_quality(
    change_24h: float | None,
    volume_24h: float | None,
    last_updated: datetime,
    now: datetime | None = None,
) -> float:
    now = now or datetime.now(timezone.utc)
    fresh = now - last_updated <= MAX_DATA_AGE
    if not fresh:
        logger.warning("Market data is stale: last updated %s", last_updated.isoformat())
    # Price is always real here: the validator rejects payloads without it
    return _pct([True, fresh, change_24h is not None, volume_24h is not None])


def technical_quality(technical: TechnicalSnapshot) -> float:
    return _pct([
        not technical.rsi.is_default,
        not technical.macd.is_default,
        technical.ema20 is not None and technical.ema50 is not None,
        technical.atr is not None,
        technical.bollinger is not None,
        technical.support_resistance is not None,
    ])


def sentiment_quality(sentiment: SentimentSnapshot) -> float:
    return _pct([
        sentiment.overall != UNKNOWN,
        not sentiment.fear_greed.is_default,
        sentiment.social != UNKNOWN,
        sentiment.score is not None,
    ])


def on_chain_quality(on_chain: OnChainSnapshot) -> float:
    return _pct([
        on_chain.whale_transactions is not None,
        on_chain.whale_value is not None,
        on_chain.exchange_net_flow is not None,
        on_chain.trend != UNKNOWN or on_chain.score is not None,
    ])


def assess_quality(
    technical: TechnicalSnapshot,
    sentiment: SentimentSnapshot,
    on_chain: OnChainSnapshot,
    risk: RiskSnapshot,
    *,
    change_24h: float | None,
    volume_24h: float | None,
    last_updated: datetime,
    successful: tuple[str, ...] = (),
    failed: tuple[str, ...] = (),
    now: datetime | None = None,
) -> DataQuality:
    """Score data completeness for a snapshot about to be built."""
    scores = {
        "market": market_quality(change_24h, volume_24h, last_updated, now),
        "sentiment": sentiment_quality(sentiment),
        "on_chain": on_chain_quality(on_chain),
        "technical": technical_quality(technical),
    }
    overall = round(sum(scores[k] * w for k, w in QUALITY_WEIGHTS.items()), 1)

    flags = {name: score > 0 for name, score in scores.items()}
    flags["risk"] = risk.volatility is not None or risk.score is not None

    if failed:
        logger.warning("Failed sources: %s", ", ".join(failed))

    return DataQuality(
        overall=overall,
        market=scores["market"],
        sentiment=scores["sentiment"],
        on_chain=scores["on_chain"],
        technical=scores["technical"],
        successful=successful,
        failed=failed,
        flags=flags,
    )
