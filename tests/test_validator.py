"""Tests for the market snapshot validation gate."""

from __future__ import annotations

from datetime import timedelta

import pytest

from signal_desk.common.errors import MissingPriceData, NotLiveData, ValidationError
from signal_desk.market.validator import extract_price, parse_sentiment, validate


class TestGate:
    def test_missing_price_fields(self):
        with pytest.raises(MissingPriceData):
            validate({"isLiveData": True})

    def test_missing_price_and_liveness_reports_price(self):
        with pytest.raises(MissingPriceData):
            validate({"technicalIndicators": {"rsi": 55}})

    def test_price_without_liveness(self):
        with pytest.raises(NotLiveData):
            validate({"currentPrice": 95000})

    @pytest.mark.parametrize("flag", [False, "true", 1, None])
    def test_liveness_must_be_literal_true(self, flag):
        with pytest.raises(NotLiveData):
            validate({"currentPrice": 95000, "isLiveData": flag})

    @pytest.mark.parametrize("price", [0, -10, "abc", None, float("nan")])
    def test_unusable_price(self, price):
        with pytest.raises(MissingPriceData):
            validate({"currentPrice": price, "isLiveData": True})

    def test_non_mapping_payload(self):
        with pytest.raises(MissingPriceData):
            validate(["not", "a", "payload"])

    def test_validation_errors_are_retryable(self):
        with pytest.raises(ValidationError) as exc_info:
            validate({"currentPrice": 95000})
        assert exc_info.value.to_dict() == {
            "error": "NotLiveData",
            "message": str(exc_info.value),
            "retryable": True,
        }


def test_extract_price_prefers_current_price():
    assert extract_price({"currentPrice": "96000", "marketData": {"price": 95000}}) == 96000.0
    assert extract_price({"currentPrice": 0, "marketData": {"price": 95000}}) == 95000.0
    assert extract_price({}) is None


class TestMinimalPayload:
    def test_placeholders(self, minimal_payload):
        snap = validate(minimal_payload)

        assert snap.price == 95000.0
        assert snap.is_live
        assert snap.technical.rsi.value == 50.0
        assert snap.technical.rsi.label == "NEUTRAL"
        assert snap.technical.rsi.is_default
        assert snap.technical.macd.label == "NEUTRAL"
        assert snap.technical.macd.is_default
        assert snap.sentiment.fear_greed.value == 50.0
        assert snap.sentiment.overall == "UNKNOWN"
        assert snap.on_chain.trend == "UNKNOWN"

    def test_optional_numbers_are_none_not_zero(self, minimal_payload):
        snap = validate(minimal_payload)

        assert snap.technical.atr is None
        assert snap.technical.ema20 is None
        assert snap.technical.bollinger is None
        assert snap.on_chain.whale_value is None
        assert snap.risk.volatility is None
        assert snap.change_24h is None

    def test_low_quality(self, minimal_payload):
        snap = validate(minimal_payload)
        assert snap.data_quality.overall < 70
        assert snap.data_quality.technical == 0.0


class TestFullPayload:
    def test_parses_all_dimensions(self, snapshot):
        tech = snapshot.technical
        assert snapshot.symbol == "BTC"
        assert snapshot.timeframe == "1h"
        assert tech.rsi.value == pytest.approx(58.4)
        assert not tech.rsi.is_default
        assert tech.macd.label == "BULLISH"
        assert tech.macd.value == pytest.approx(120.5)
        assert tech.atr == 1200
        assert tech.historical_atr == 1100
        assert tech.bollinger.upper == 98000
        assert tech.bollinger.width == 6000
        assert tech.support_resistance.strong_support == 91000
        assert tech.supply_zones[0].strength == "STRONG"
        assert tech.demand_zones[0].low == 92500
        assert tech.trend == "BULLISH"

        assert snapshot.sentiment.overall == "BULLISH"
        assert snapshot.sentiment.fear_greed.value == 65
        assert snapshot.on_chain.whale_transactions == 42
        assert snapshot.on_chain.exchange_net_flow == -2500
        assert snapshot.risk.volatility == pytest.approx(3.2)
        assert snapshot.news_count == 2

    def test_full_quality(self, snapshot):
        quality = snapshot.data_quality
        assert quality.overall == 100.0
        assert quality.successful == ("analysis",)
        assert quality.failed == ()

    def test_all_zero_bollinger_is_unknown(self, make_payload):
        payload = make_payload()
        payload["technicalIndicators"]["bollingerBands"] = {"upper": 0, "middle": 0, "lower": 0}
        assert validate(payload).technical.bollinger is None

    def test_alternate_section_names(self, make_payload):
        payload = make_payload()
        payload["onChainData"] = payload.pop("onChain")
        payload["risk"] = payload.pop("riskMetrics")
        snap = validate(payload)
        assert snap.on_chain.whale_transactions == 42
        assert snap.risk.level == "MEDIUM"

    def test_stale_data_lowers_market_quality(self, make_payload, now):
        payload = make_payload(lastUpdated=(now - timedelta(minutes=10)).isoformat())
        snap = validate(payload, now=now)
        assert snap.data_quality.market == 75.0

    def test_naive_timestamp_is_utc(self, make_payload):
        snap = validate(make_payload(lastUpdated="2024-05-01T12:00:00"))
        assert snap.last_updated.tzinfo is not None

    def test_records_failed_sources(self, full_payload):
        snap = validate(full_payload, successful=("analysis",), failed=("onchain",))
        assert snap.data_quality.failed == ("onchain",)


def test_fear_greed_fallback_to_enhanced_data():
    sentiment = parse_sentiment({
        "marketSentiment": {"overall": "neutral"},
        "enhancedMarketData": {"realMarketSentiment": {"fearGreedIndex": "22"}},
    })
    assert sentiment.fear_greed.value == 22.0
    assert not sentiment.fear_greed.is_default
