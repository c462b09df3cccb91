"""Shared test fixtures."""

from __future__ import annotations

import copy
from datetime import datetime, timezone

import pytest

from signal_desk.market.validator import validate
from signal_desk.signals.analyzer import generate_signal
from signal_desk.signals.lifecycle import SignalLifecycle


@pytest.fixture
def now():
    return datetime.now(timezone.utc)


@pytest.fixture
def full_payload(now):
    """Upstream analysis payload with every dimension populated.

    Expected derived values (balance 10,000, 2% risk, default settings):
    direction LONG, ATR 1200 -> stop distance 2400, stop 92,600,
    max loss 200, size 0.0833, confidence 67.5 "Medium", data quality 100.
    """
    return {
        "currentPrice": 95000,
        "isLiveData": True,
        "lastUpdated": now.isoformat(),
        "timestamp": now.isoformat(),
        "marketData": {"price": 95000, "change24h": 2.5, "volume24h": 32_000_000_000},
        "technicalIndicators": {
            "rsi": {"value": "58.4", "signal": "NEUTRAL"},
            "macd": {"signal": "BULLISH", "histogram": 120.5},
            "ema20": 94500,
            "ema50": 93000,
            "atr": 1200,
            "historicalAtr": 1100,
            "bollingerBands": {"upper": 98000, "middle": 95000, "lower": 92000},
            "supportResistance": {
                "support": 93000,
                "resistance": 97500,
                "strongSupport": 91000,
                "strongResistance": 99000,
            },
            "supplyDemandZones": {
                "supplyZones": [{"low": 97000, "high": 97800, "strength": "strong"}],
                "demandZones": [{"low": 92500, "high": 93200, "strength": "moderate"}],
            },
            "trend": "bullish",
            "score": 72,
        },
        "marketSentiment": {
            "overall": "bullish",
            "fearGreed": 65,
            "socialSentiment": "positive",
            "institutionalFlow": "inflow",
            "score": 68,
        },
        "onChain": {
            "whaleActivity": {"transactions": 42, "totalValue": 1_500_000_000},
            "exchangeFlows": {"netFlow": -2500},
            "trend": "accumulation",
            "score": 70,
        },
        "riskMetrics": {"volatility": 3.2, "level": "medium", "score": 60},
        "newsContext": [{"title": "ETF inflows"}, {"title": "Hashrate record"}],
    }


@pytest.fixture
def minimal_payload():
    """Only the fields the validation gate requires."""
    return {"marketData": {"price": 95000}, "isLiveData": True}


@pytest.fixture
def make_payload(full_payload):
    """Deep copy of the full payload with top-level overrides applied."""

    def _make(**overrides):
        payload = copy.deepcopy(full_payload)
        payload.update(overrides)
        return payload

    return _make


@pytest.fixture
def snapshot(full_payload, now):
    return validate(full_payload, symbol="BTC", timeframe="1h", successful=("analysis",), now=now)


@pytest.fixture
def signal(snapshot):
    return generate_signal(snapshot, account_balance=10_000, max_risk_fraction=0.02)


@pytest.fixture
def pending(signal):
    """Lifecycle already presented for review."""
    lifecycle = SignalLifecycle(signal)
    lifecycle.present()
    return lifecycle
