"""Tests for signal output formatters: Rich tables and JSON."""

from __future__ import annotations

import json
from io import StringIO

import pytest
from rich.console import Console

from signal_desk.pipeline import GenerationResult
from signal_desk.signals.formatters import format_decisions_table, format_json, format_table


@pytest.fixture
def result(pending, snapshot):
    return GenerationResult(signal=pending.signal, snapshot=snapshot, lifecycle=pending)


def _console():
    return Console(file=StringIO(), width=160, force_terminal=False)


def test_format_table(result):
    console = _console()
    format_table(result, console)
    output = console.file.getvalue()

    assert "BTC 1h Trade Signal" in output
    assert "LONG" in output
    assert "$92,600.00" in output
    assert "PENDING_REVIEW" in output
    assert "TP3" in output
    assert "50%" in output


def test_format_table_flags_degraded_data(minimal_payload):
    from signal_desk.market.validator import validate
    from signal_desk.signals.analyzer import generate_signal
    from signal_desk.signals.lifecycle import SignalLifecycle

    snap = validate({**minimal_payload, "riskMetrics": {"volatility": 2.0}})
    lifecycle = SignalLifecycle(generate_signal(snap, 10_000))
    console = _console()
    format_table(GenerationResult(lifecycle.signal, snap, lifecycle), console)
    output = console.file.getvalue()

    assert "insufficient data" in output
    assert "Recommendation: insufficient" in output


def test_format_json(result):
    body = json.loads(format_json(result))
    assert body["signal"]["symbol"] == "BTC"
    assert body["lifecycle"]["state"] == "PENDING_REVIEW"
    assert sum(tp["allocation"] for tp in body["signal"]["takeProfits"].values()) == 100


def test_format_decisions_table():
    console = _console()
    format_decisions_table(
        [
            {
                "signal_id": "abc",
                "outcome": "REJECTED",
                "reason": "macro event",
                "symbol": "BTC",
                "timeframe": "1h",
                "position_type": "LONG",
                "entry": 95_000.0,
                "stop_loss": 92_600.0,
                "risk_reward": 2.44,
                "confidence_overall": 67.5,
            }
        ],
        console,
    )
    output = console.file.getvalue()
    assert "REJECTED" in output
    assert "macro event" in output
    assert "1 decision(s) total" in output


def test_format_decisions_table_empty():
    console = _console()
    format_decisions_table([], console)
    assert "No decisions recorded yet" in console.file.getvalue()


def test_format_decisions_table_fits_narrow_console():
    console = Console(file=StringIO(), width=80, force_terminal=False)
    format_decisions_table(
        [
            {
                "signal_id": "abc",
                "outcome": "APPROVED",
                "reason": None,
                "symbol": "BTC",
                "timeframe": "1h",
                "position_type": "SHORT",
                "entry": 95_000.0,
                "stop_loss": 97_400.0,
                "risk_reward": 2.44,
                "confidence_overall": 67.5,
            }
        ],
        console,
    )
    output = console.file.getvalue()
    assert "APPROVED" in output
    assert "SHORT" in output
    assert "$95,000.00" in output
    assert "$97,400.00" in output
    assert "2.44" in output
