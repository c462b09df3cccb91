"""Tests for confidence aggregation."""

from __future__ import annotations

import dataclasses

import pytest

from signal_desk.market.models import DataQuality
from signal_desk.signals.confidence import ConfidenceScorer, confidence_label, downgrade_label
from signal_desk.signals.models import QualityFlag


def _with_quality(snapshot, overall):
    quality = dataclasses.replace(snapshot.data_quality, overall=overall)
    return dataclasses.replace(snapshot, data_quality=quality)


@pytest.mark.parametrize(
    "overall,label",
    [(100, "High"), (80, "High"), (79.9, "Medium"), (60, "Medium"), (59.9, "Low"), (0, "Low")],
)
def test_confidence_label(overall, label):
    assert confidence_label(overall) == label


def test_downgrade_label():
    assert downgrade_label("High") == "Medium"
    assert downgrade_label("Medium") == "Low"
    assert downgrade_label("Low") == "Low"


class TestScorer:
    def test_equal_weights_by_default(self, snapshot):
        scorer = ConfidenceScorer()
        assert scorer.weights == pytest.approx(
            {"technical": 0.25, "sentiment": 0.25, "on_chain": 0.25, "risk": 0.25}
        )
        confidence = scorer.score(snapshot)

        assert confidence.technical == 72
        assert confidence.sentiment == 68
        assert confidence.on_chain == 70
        assert confidence.risk == 60
        assert confidence.overall == pytest.approx(67.5)
        assert confidence.label == "Medium"
        assert confidence.quality_flag is QualityFlag.OK
        assert confidence.recommendation == "proceed"

    def test_custom_weights_are_normalized(self, snapshot):
        scorer = ConfidenceScorer(weights={"technical": 2, "sentiment": 0, "on_chain": 0, "risk": 0})
        assert scorer.score(snapshot).overall == 72

    def test_missing_weight_counts_as_zero(self, snapshot):
        scorer = ConfidenceScorer(weights={"technical": 1, "risk": 1})
        assert scorer.score(snapshot).overall == pytest.approx(66.0)

    @pytest.mark.parametrize(
        "weights",
        [{"technical": -1, "risk": 2}, {"technical": 0}, {"macro": 1}],
    )
    def test_invalid_weights(self, weights):
        with pytest.raises(ValueError):
            ConfidenceScorer(weights=weights)

    def test_missing_scores_fall_back_to_quality(self, minimal_payload):
        from signal_desk.market.validator import validate

        snap = validate(minimal_payload)
        scores = ConfidenceScorer().dimension_scores(snap)
        assert scores["technical"] == snap.data_quality.technical
        assert scores["risk"] == snap.data_quality.overall

    def test_degraded_quality_downgrades_label(self, snapshot):
        high = dataclasses.replace(snapshot, technical=dataclasses.replace(snapshot.technical, score=95))
        high = dataclasses.replace(
            high,
            sentiment=dataclasses.replace(high.sentiment, score=90),
            on_chain=dataclasses.replace(high.on_chain, score=90),
            risk=dataclasses.replace(high.risk, score=85),
        )
        confidence = ConfidenceScorer().score(_with_quality(high, 85.0))

        assert confidence.raw_label == "High"
        assert confidence.label == "Medium"
        assert confidence.quality_flag is QualityFlag.DEGRADED
        assert confidence.recommendation == "review"
        assert confidence.display_label == "Medium (degraded data)"

    def test_insufficient_quality(self, snapshot):
        confidence = ConfidenceScorer().score(_with_quality(snapshot, 65.0))

        assert confidence.quality_flag is QualityFlag.INSUFFICIENT
        assert confidence.recommendation == "insufficient"
        assert confidence.label == "Low"

    def test_thresholds_configurable(self, snapshot):
        scorer = ConfidenceScorer(min_data_quality=50, insufficient_data_quality=10)
        assert scorer.score(_with_quality(snapshot, 65.0)).quality_flag is QualityFlag.OK

    def test_risk_falls_back_to_overall_quality(self, snapshot):
        snap = dataclasses.replace(snapshot, data_quality=DataQuality(overall=88.0, technical=100.0))
        snap = dataclasses.replace(snap, risk=dataclasses.replace(snap.risk, score=None))
        assert ConfidenceScorer().dimension_scores(snap)["risk"] == 88.0
