"""Market snapshot validation gate.

Turns a loosely typed upstream payload into a MarketSnapshot, or raises.
Price and liveness must be real; every other field may degrade to a
clearly labeled placeholder.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime, timezone

from signal_desk.common.errors import MissingPriceData, NotLiveData
from signal_desk.market.indicators import (
    normalize_label,
    normalize_macd_reading,
    normalize_reading,
    normalize_rsi_reading,
    parse_number,
)
from signal_desk.market.models import (
    UNKNOWN,
    Bands,
    MarketSnapshot,
    OnChainSnapshot,
    RiskSnapshot,
    SentimentSnapshot,
    SupportResistance,
    TechnicalSnapshot,
    Zone,
)
from signal_desk.market.quality import assess_quality

logger = logging.getLogger(__name__)


def _section(raw: Mapping, *keys: str) -> Mapping:
    """First mapping found under any of *keys*, else an empty dict."""
    for key in keys:
        value = raw.get(key)
        if isinstance(value, Mapping):
            return value
    return {}


def _parse_iso(value: object) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _positive(value: object) -> float | None:
    parsed = parse_number(value)
    if parsed is None or parsed <= 0:
        return None
    return parsed


def _score(value: object) -> float | None:
    parsed = parse_number(value)
    if parsed is None:
        return None
    return min(100.0, max(0.0, parsed))


def extract_price(raw: Mapping) -> float | None:
    """Direct ``currentPrice`` first, then ``marketData.price``."""
    price = _positive(raw.get("currentPrice"))
    if price is None:
        price = _positive(_section(raw, "marketData").get("price"))
    return price


def _parse_bands(raw: Mapping) -> Bands | None:
    upper = parse_number(raw.get("upper"))
    middle = parse_number(raw.get("middle"))
    lower = parse_number(raw.get("lower"))
    # All-zero bands are the upstream "no data" shape
    if upper is None or lower is None or upper <= lower or lower <= 0:
        return None
    if middle is None:
        middle = (upper + lower) / 2
    return Bands(upper=upper, middle=middle, lower=lower)


def _parse_support_resistance(raw: Mapping) -> SupportResistance | None:
    levels = SupportResistance(
        support=_positive(raw.get("support")),
        resistance=_positive(raw.get("resistance")),
        strong_support=_positive(raw.get("strongSupport")),
        strong_resistance=_positive(raw.get("strongResistance")),
    )
    if levels == SupportResistance():
        return None
    return levels


def _parse_zones(items: object) -> tuple[Zone, ...]:
    if not isinstance(items, list):
        return ()
    zones = []
    for item in items:
        if not isinstance(item, Mapping):
            continue
        low = _positive(item.get("low") or item.get("priceLow") or item.get("price"))
        high = _positive(item.get("high") or item.get("priceHigh") or item.get("price"))
        if low is None or high is None:
            continue
        zones.append(Zone(low=min(low, high), high=max(low, high),
                          strength=normalize_label(item.get("strength"), UNKNOWN)))
    return tuple(zones)


def parse_technical(raw: Mapping) -> TechnicalSnapshot:
    ti = _section(raw, "technicalIndicators")
    zones = _section(ti, "supplyDemandZones")
    sr = _section(ti, "supportResistance")
    if not sr:
        # Older payloads carry levels on priceAnalysis
        sr = _section(raw, "priceAnalysis")
    return TechnicalSnapshot(
        rsi=normalize_rsi_reading(ti.get("rsi")),
        macd=normalize_macd_reading(ti.get("macd")),
        ema20=_positive(ti.get("ema20")),
        ema50=_positive(ti.get("ema50")),
        atr=_positive(ti.get("atr")),
        historical_atr=_positive(ti.get("historicalAtr")),
        bollinger=_parse_bands(_section(ti, "bollinger", "bollingerBands")),
        support_resistance=_parse_support_resistance(sr),
        supply_zones=_parse_zones(zones.get("supplyZones")),
        demand_zones=_parse_zones(zones.get("demandZones")),
        trend=normalize_label(ti.get("trend"), UNKNOWN),
        score=_score(ti.get("score")),
    )


def parse_sentiment(raw: Mapping) -> SentimentSnapshot:
    ms = _section(raw, "marketSentiment")
    fear_greed = ms.get("fearGreed", ms.get("fearGreedIndex"))
    if parse_number(fear_greed) is None:
        enhanced = _section(_section(raw, "enhancedMarketData"), "realMarketSentiment")
        fear_greed = enhanced.get("fearGreedIndex", fear_greed)
    return SentimentSnapshot(
        overall=normalize_label(ms.get("overall"), UNKNOWN),
        fear_greed=normalize_reading(fear_greed, 50.0, lower=0.0, upper=100.0),
        social=normalize_label(ms.get("socialSentiment") or ms.get("socialMedia"), UNKNOWN),
        institutional_flow=normalize_label(ms.get("institutionalFlow"), UNKNOWN),
        score=_score(ms.get("score")),
    )


def parse_on_chain(raw: Mapping) -> OnChainSnapshot:
    oc = _section(raw, "onChain", "onChainData")
    whales = _section(oc, "whaleActivity")
    flows = _section(oc, "exchangeFlows")
    return OnChainSnapshot(
        whale_transactions=parse_number(whales.get("transactions")),
        whale_value=parse_number(whales.get("totalValue")),
        exchange_net_flow=parse_number(flows.get("netFlow")),
        trend=normalize_label(oc.get("trend"), UNKNOWN),
        score=_score(oc.get("score")),
    )


def parse_risk(raw: Mapping) -> RiskSnapshot:
    rm = _section(raw, "riskMetrics", "risk")
    return RiskSnapshot(
        volatility=_positive(rm.get("volatility")),
        level=normalize_label(rm.get("level") or rm.get("riskLevel"), UNKNOWN),
        score=_score(rm.get("score")),
    )


def validate(
    raw: object,
    symbol: str = "BTC",
    timeframe: str = "1h",
    successful: tuple[str, ...] = (),
    failed: tuple[str, ...] = (),
    now: datetime | None = None,
) -> MarketSnapshot:
    """Validate a raw payload into a MarketSnapshot.

    Raises:
        MissingPriceData: neither ``currentPrice`` nor ``marketData.price``
            holds a positive number
        NotLiveData: ``isLiveData`` is absent or not true
    """
    if not isinstance(raw, Mapping):
        raise MissingPriceData("Payload is not an object; no price data available")

    price = extract_price(raw)
    if price is None:
        raise MissingPriceData()

    if raw.get("isLiveData") is not True:
        raise NotLiveData()

    now = now or datetime.now(timezone.utc)
    market = _section(raw, "marketData")
    technical = parse_technical(raw)
    sentiment = parse_sentiment(raw)
    on_chain = parse_on_chain(raw)
    risk = parse_risk(raw)
    change_24h = parse_number(market.get("change24h"))
    volume_24h = _positive(market.get("volume24h"))
    last_updated = _parse_iso(raw.get("lastUpdated")) or now
    timestamp = _parse_iso(raw.get("timestamp")) or last_updated

    defaulted = [
        name for name, is_default in (
            ("rsi", technical.rsi.is_default),
            ("macd", technical.macd.is_default),
            ("fear_greed", sentiment.fear_greed.is_default),
            ("bollinger", technical.bollinger is None),
            ("atr", technical.atr is None),
        ) if is_default
    ]
    if defaulted:
        logger.debug("%s %s: defaulted %s", symbol, timeframe, ", ".join(defaulted))

    quality = assess_quality(
        technical, sentiment, on_chain, risk,
        change_24h=change_24h,
        volume_24h=volume_24h,
        last_updated=last_updated,
        successful=successful,
        failed=failed,
        now=now,
    )

    news = raw.get("newsContext")
    return MarketSnapshot(
        symbol=symbol,
        timeframe=timeframe,
        price=price,
        is_live=True,
        technical=technical,
        sentiment=sentiment,
        on_chain=on_chain,
        risk=risk,
        data_quality=quality,
        last_updated=last_updated,
        timestamp=timestamp,
        change_24h=change_24h,
        volume_24h=volume_24h,
        news_count=len(news) if isinstance(news, list) else 0,
    )
