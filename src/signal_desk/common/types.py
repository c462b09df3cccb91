"""Shared type aliases."""

from __future__ import annotations

from typing import Awaitable, Callable, TypeAlias

# JSON-like dict
JsonDict: TypeAlias = dict[str, object]

# (symbol, timeframe) pair keying per-market state
MarketKey: TypeAlias = tuple[str, str]

# Named async source fetcher used by the collector
SourceFetcher: TypeAlias = Callable[[], Awaitable[JsonDict]]


def market_key(symbol: str, timeframe: str) -> MarketKey:
    """Normalize a symbol/timeframe pair (``btc``, ``1H`` -> ``BTC``, ``1h``)."""
    return (symbol.strip().upper(), timeframe.strip().lower())
