"""Indicator normalization for inconsistently shaped upstream fields.

Upstream feeds send the same indicator as a bare number, a numeric string,
or a record like ``{"value": "73.2", "signal": "OVERBOUGHT"}``. Each shape
has one handler; anything unparseable falls back to a neutral default rather
than zero (an RSI of 0 would read as deeply oversold).
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from functools import singledispatch

from signal_desk.market.models import NEUTRAL, Reading

RSI_NEUTRAL = 50.0


@singledispatch
def parse_number(value: object) -> float | None:
    """Parse an indicator value of any upstream shape. None if unusable."""
    return None


@parse_number.register
def _(value: bool) -> float | None:
    # bool is an int subclass; True is not an indicator reading
    return None


@parse_number.register(int)
@parse_number.register(float)
def _(value: float) -> float | None:
    value = float(value)
    return value if math.isfinite(value) else None


@parse_number.register
def _(value: str) -> float | None:
    text = value.strip().rstrip("%").replace(",", "")
    if not text:
        return None
    try:
        return parse_number(float(text))
    except ValueError:
        return None


@parse_number.register(Mapping)
def _(value: Mapping) -> float | None:
    if "value" not in value:
        return None
    inner = value["value"]
    if isinstance(inner, Mapping):
        return None
    return parse_number(inner)


def normalize_indicator(value: object, default: float) -> float:
    """Parse *value*, returning *default* when it can't be read."""
    parsed = parse_number(value)
    return default if parsed is None else parsed


def normalize_rsi(value: object) -> float:
    """RSI in [0, 100]; 50 when absent or unparseable."""
    parsed = parse_number(value)
    if parsed is None:
        return RSI_NEUTRAL
    return min(100.0, max(0.0, parsed))


def normalize_label(value: object, default: str = NEUTRAL) -> str:
    """Upper-cased label string, or *default*."""
    if isinstance(value, str) and value.strip():
        return value.strip().upper()
    return default


def normalize_reading(
    value: object,
    default: float,
    default_label: str = NEUTRAL,
    lower: float | None = None,
    upper: float | None = None,
) -> Reading:
    """Normalize to a Reading, keeping the upstream signal label if present.

    A record with only a label (``{"signal": "BULLISH"}``) keeps the label
    but is still marked as a default value.
    """
    label = default_label
    if isinstance(value, Mapping):
        label = normalize_label(value.get("signal") or value.get("label"), default_label)

    parsed = parse_number(value)
    if parsed is None:
        return Reading(value=default, label=label, is_default=True)

    if lower is not None:
        parsed = max(lower, parsed)
    if upper is not None:
        parsed = min(upper, parsed)
    return Reading(value=parsed, label=label, is_default=False)


def rsi_label(rsi: float) -> str:
    if rsi > 70:
        return "OVERBOUGHT"
    if rsi < 30:
        return "OVERSOLD"
    return NEUTRAL


def normalize_rsi_reading(value: object) -> Reading:
    """RSI as a Reading; the label is derived from the value when upstream omits it."""
    reading = normalize_reading(value, RSI_NEUTRAL, lower=0.0, upper=100.0)
    if not reading.is_default and reading.label == NEUTRAL:
        return Reading(value=reading.value, label=rsi_label(reading.value))
    return reading


def normalize_macd_reading(value: object) -> Reading:
    """MACD as a Reading.

    Upstream sends either a histogram number, a string label
    ("BULLISH"), or ``{"signal": ..., "histogram": ...}``.
    """
    if isinstance(value, str) and parse_number(value) is None:
        return Reading(value=0.0, label=normalize_label(value), is_default=True)
    if isinstance(value, Mapping) and "value" not in value and "histogram" in value:
        value = {**value, "value": value["histogram"]}
    return normalize_reading(value, 0.0)
