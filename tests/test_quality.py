"""Tests for per-dimension data quality scoring."""

from __future__ import annotations

from datetime import timedelta

import pytest

from signal_desk.market.models import (
    Bands,
    OnChainSnapshot,
    Reading,
    RiskSnapshot,
    SentimentSnapshot,
    TechnicalSnapshot,
)
from signal_desk.market.quality import (
    QUALITY_WEIGHTS,
    assess_quality,
    market_quality,
    on_chain_quality,
    sentiment_quality,
    technical_quality,
)


def test_weights_sum_to_one():
    assert sum(QUALITY_WEIGHTS.values()) == pytest.approx(1.0)


def test_market_quality_fresh_and_complete(now):
    assert market_quality(1.5, 1e9, now, now) == 100.0


def test_market_quality_stale(now):
    assert market_quality(1.5, 1e9, now - timedelta(minutes=6), now) == 75.0


def test_market_quality_price_only(now):
    assert market_quality(None, None, now, now) == 50.0


def test_technical_quality_counts_placeholders_as_missing():
    assert technical_quality(TechnicalSnapshot()) == 0.0

    partial = TechnicalSnapshot(
        rsi=Reading(61.0),
        atr=900.0,
        bollinger=Bands(upper=100.0, middle=95.0, lower=90.0),
    )
    assert technical_quality(partial) == 50.0


def test_sentiment_quality():
    assert sentiment_quality(SentimentSnapshot()) == 0.0
    assert sentiment_quality(SentimentSnapshot(overall="BULLISH", fear_greed=Reading(70.0))) == 50.0


def test_on_chain_quality():
    assert on_chain_quality(OnChainSnapshot()) == 0.0
    assert on_chain_quality(OnChainSnapshot(whale_transactions=3, score=55.0)) == 50.0


def test_assess_quality_weights_dimensions(now):
    quality = assess_quality(
        TechnicalSnapshot(),
        SentimentSnapshot(),
        OnChainSnapshot(),
        RiskSnapshot(volatility=2.0),
        change_24h=1.0,
        volume_24h=1e9,
        last_updated=now,
        successful=("analysis",),
        failed=("sentiment",),
        now=now,
    )
    assert quality.market == 100.0
    assert quality.overall == 30.0
    assert quality.failed == ("sentiment",)
    assert quality.flags["market"] is True
    assert quality.flags["technical"] is False
    assert quality.flags["risk"] is True


def test_to_dict_shape(snapshot):
    body = snapshot.data_quality.to_dict()
    assert set(body) == {"overall", "market", "sentiment", "onChain", "technical", "sources"}
    assert body["sources"] == {"successful": ["analysis"], "failed": []}
