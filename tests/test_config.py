"""Tests for settings validation."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from signal_desk.config import Settings


def test_defaults():
    settings = Settings(_env_file=None)
    assert settings.max_risk_fraction == 0.02
    assert settings.take_profit_multipliers == (1.618, 2.618, 4.236)
    assert sum(settings.confidence_weights.values()) == pytest.approx(1.0)
    assert settings.fetch_timeout == 15.0


def test_env_override(monkeypatch):
    monkeypatch.setenv("ACCOUNT_BALANCE", "25000")
    monkeypatch.setenv("CONFIDENCE_WEIGHTS", '{"technical": 0.4, "sentiment": 0.2, "on_chain": 0.2, "risk": 0.2}')
    settings = Settings(_env_file=None)
    assert settings.account_balance == 25000
    assert settings.confidence_weights["technical"] == 0.4


@pytest.mark.parametrize(
    "overrides",
    [
        {"max_risk_fraction": 0},
        {"max_risk_fraction": 1.5},
        {"account_balance": -1},
        {"take_profit_multipliers": (2.0, 1.5, 3.0)},
        {"confidence_weights": {"technical": 0, "risk": 0}},
        {"confidence_weights": {"macro": 1}},
        {"min_data_quality": 120},
        {"http_retries": 0},
    ],
)
def test_invalid_settings(overrides):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **overrides)
