"""Change detection between two validated snapshots of one market."""

from __future__ import annotations

import logging

from signal_desk.config import get_settings
from signal_desk.market.models import MarketSnapshot, Reading
from signal_desk.signals.models import SnapshotChanges

logger = logging.getLogger(__name__)

# More changed indicators than this counts as significant
MAX_QUIET_INDICATOR_CHANGES = 2


def _reading_changed(old: Reading, new: Reading) -> bool:
    return old.value != new.value or old.label != new.label


def changed_indicators(old: MarketSnapshot, new: MarketSnapshot) -> list[str]:
    a, b = old.technical, new.technical
    changed = []
    if _reading_changed(a.rsi, b.rsi):
        changed.append("RSI")
    if _reading_changed(a.macd, b.macd):
        changed.append("MACD")
    if (a.ema20, a.ema50) != (b.ema20, b.ema50):
        changed.append("EMA")
    upper_a = a.bollinger.upper if a.bollinger else None
    upper_b = b.bollinger.upper if b.bollinger else None
    if upper_a != upper_b:
        changed.append("Bollinger Bands")
    if a.atr != b.atr:
        changed.append("ATR")
    return changed


def sentiment_changed(old: MarketSnapshot, new: MarketSnapshot) -> bool:
    a, b = old.sentiment, new.sentiment
    return (
        a.overall != b.overall
        or a.social != b.social
        or _reading_changed(a.fear_greed, b.fear_greed)
    )


def on_chain_changed(old: MarketSnapshot, new: MarketSnapshot, threshold: float) -> bool:
    a, b = old.on_chain, new.on_chain
    if a.whale_transactions != b.whale_transactions:
        return True
    if a.trend != b.trend:
        return True
    if a.whale_value is None or b.whale_value is None:
        return a.whale_value != b.whale_value
    if a.whale_value == 0:
        return b.whale_value != 0
    return abs(b.whale_value - a.whale_value) / abs(a.whale_value) > threshold


def detect_changes(
    previous: MarketSnapshot,
    current: MarketSnapshot,
    threshold: float | None = None,
) -> SnapshotChanges:
    """Compare a fresh snapshot with the previously accepted one.

    Significant when price moved more than *threshold* (relative), more than
    two indicators changed, or sentiment or on-chain data changed.
    """
    if threshold is None:
        threshold = get_settings().significant_change_threshold

    delta = current.price - previous.price
    change_pct = abs(delta) / previous.price
    indicators = changed_indicators(previous, current)
    sentiment = sentiment_changed(previous, current)
    on_chain = on_chain_changed(previous, current, threshold)

    significant = (
        change_pct > threshold
        or len(indicators) > MAX_QUIET_INDICATOR_CHANGES
        or sentiment
        or on_chain
    )

    logger.info(
        "%s %s changes: delta=%.2f (%.2f%%), indicators=%s, sentiment=%s, on-chain=%s, significant=%s",
        current.symbol, current.timeframe, delta, change_pct * 100,
        ", ".join(indicators) or "none", sentiment, on_chain, significant,
    )

    return SnapshotChanges(
        price_changed=delta != 0,
        price_delta=delta,
        price_change_percent=change_pct,
        indicators_changed=tuple(indicators),
        sentiment_changed=sentiment,
        on_chain_changed=on_chain,
        significant=significant,
    )
