"""Confidence aggregation across technical, sentiment, on-chain and risk."""

from __future__ import annotations

import logging
from collections.abc import Mapping

import numpy as np

from signal_desk.config import CONFIDENCE_DIMENSIONS, get_settings
from signal_desk.market.models import MarketSnapshot
from signal_desk.signals.models import Confidence, QualityFlag

logger = logging.getLogger(__name__)

_LABELS = ("Low", "Medium", "High")


def confidence_label(overall: float) -> str:
    """>= 80 High, 60-79 Medium, < 60 Low."""
    if overall >= 80:
        return "High"
    if overall >= 60:
        return "Medium"
    return "Low"


def downgrade_label(label: str) -> str:
    idx = _LABELS.index(label)
    return _LABELS[max(0, idx - 1)]


def _clamp(value: float) -> float:
    return float(min(100.0, max(0.0, value)))


class ConfidenceScorer:
    """Combines per-dimension scores into one overall confidence.

    Dimension scores come from the snapshot. A dimension without its own
    score contributes its data-quality percentage instead, so a thin
    dimension pulls the overall down rather than being skipped.

    Args:
        weights: per-dimension weights, normalized on use. Defaults to
            ``Settings.confidence_weights`` (equal weighting).
        min_data_quality: below this the label is down-weighted one step
        insufficient_data_quality: below this the recommendation is
            "insufficient"
    """

    def __init__(
        self,
        weights: Mapping[str, float] | None = None,
        min_data_quality: float | None = None,
        insufficient_data_quality: float | None = None,
    ) -> None:
        settings = get_settings()
        weights = dict(weights if weights is not None else settings.confidence_weights)
        unknown = set(weights) - set(CONFIDENCE_DIMENSIONS)
        if unknown:
            raise ValueError(f"unknown confidence dimensions: {sorted(unknown)}")
        vector = np.array([float(weights.get(d, 0.0)) for d in CONFIDENCE_DIMENSIONS])
        if (vector < 0).any() or vector.sum() <= 0:
            raise ValueError(f"confidence weights must be >= 0 and not all zero, got {weights}")
        self._weights = vector / vector.sum()
        self._min_quality = (
            settings.min_data_quality if min_data_quality is None else min_data_quality
        )
        self._insufficient_quality = (
            settings.insufficient_data_quality
            if insufficient_data_quality is None
            else insufficient_data_quality
        )

    @property
    def weights(self) -> dict[str, float]:
        return {d: float(w) for d, w in zip(CONFIDENCE_DIMENSIONS, self._weights)}

    def dimension_scores(self, snapshot: MarketSnapshot) -> dict[str, float]:
        quality = snapshot.data_quality
        candidates = {
            "technical": (snapshot.technical.score, quality.technical),
            "sentiment": (snapshot.sentiment.score, quality.sentiment),
            "on_chain": (snapshot.on_chain.score, quality.on_chain),
            "risk": (snapshot.risk.score, quality.overall),
        }
        return {
            name: _clamp(score if score is not None else fallback)
            for name, (score, fallback) in candidates.items()
        }

    def score(self, snapshot: MarketSnapshot) -> Confidence:
        scores = self.dimension_scores(snapshot)
        values = np.array([scores[d] for d in CONFIDENCE_DIMENSIONS])
        overall = round(float(np.average(values, weights=self._weights)), 1)

        raw_label = confidence_label(overall)
        label = raw_label
        flag = QualityFlag.OK
        recommendation = "proceed"

        quality = snapshot.data_quality.overall
        if quality < self._insufficient_quality:
            flag = QualityFlag.INSUFFICIENT
            recommendation = "insufficient"
            label = downgrade_label(raw_label)
            logger.warning(
                "%s %s: data quality %.1f%% below %.0f%%, recommendation is insufficient",
                snapshot.symbol, snapshot.timeframe, quality, self._insufficient_quality,
            )
        elif quality < self._min_quality:
            flag = QualityFlag.DEGRADED
            recommendation = "review"
            label = downgrade_label(raw_label)
            logger.warning(
                "%s %s: data quality %.1f%% below %.0f%%, confidence label down-weighted",
                snapshot.symbol, snapshot.timeframe, quality, self._min_quality,
            )

        return Confidence(
            overall=overall,
            technical=round(scores["technical"], 1),
            sentiment=round(scores["sentiment"], 1),
            on_chain=round(scores["on_chain"], 1),
            risk=round(scores["risk"], 1),
            label=label,
            raw_label=raw_label,
            quality_flag=flag,
            recommendation=recommendation,
        )
