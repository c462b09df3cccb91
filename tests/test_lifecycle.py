"""Tests for the signal review state machine."""

from __future__ import annotations

import pytest

from signal_desk.common.errors import InvalidModification, InvalidStateTransition
from signal_desk.signals.lifecycle import SignalLifecycle, SignalModification, SignalState
from signal_desk.signals.models import DecisionOutcome, SnapshotChanges


def test_starts_generated(signal):
    lifecycle = SignalLifecycle(signal)
    assert lifecycle.state is SignalState.GENERATED
    assert lifecycle.allowed() == frozenset({SignalState.PENDING_REVIEW})
    assert lifecycle.decision is None


def test_cannot_decide_before_present(signal):
    lifecycle = SignalLifecycle(signal)
    with pytest.raises(InvalidStateTransition) as exc_info:
        lifecycle.approve()
    assert exc_info.value.current == "GENERATED"
    assert exc_info.value.attempted == "approve"
    assert lifecycle.state is SignalState.GENERATED


def test_approve(pending, signal):
    decision = pending.approve(reviewer="desk", reason="clean setup")

    assert pending.state is SignalState.APPROVED
    assert decision.outcome is DecisionOutcome.APPROVED
    assert decision.signal_id == signal.id
    assert decision.reviewer == "desk"
    assert pending.decision is decision
    assert [s for s, _ in pending.history] == [
        SignalState.GENERATED, SignalState.PENDING_REVIEW, SignalState.APPROVED,
    ]


def test_reject(pending):
    decision = pending.reject(reason="news risk")
    assert pending.state is SignalState.REJECTED
    assert decision.reason == "news risk"


def _act(lifecycle, action):
    if action == "modify":
        return lifecycle.modify(SignalModification(stop_loss=93_500))[0]
    return getattr(lifecycle, action)()


@pytest.mark.parametrize("first", ["approve", "reject", "modify"])
@pytest.mark.parametrize("second", ["approve", "reject", "present", "modify"])
def test_terminal_states_reject_transitions(pending, first, second):
    decision = _act(pending, first)
    state = pending.state

    with pytest.raises(InvalidStateTransition) as exc_info:
        _act(pending, second)

    assert pending.state is state
    assert pending.decision is decision
    assert "already" in exc_info.value.reason


def test_present_twice(pending):
    with pytest.raises(InvalidStateTransition):
        pending.present()
    assert pending.state is SignalState.PENDING_REVIEW


class TestModify:
    def test_modify_stop_creates_linked_signal(self, pending, signal):
        decision, replacement = pending.modify(SignalModification(stop_loss=93_500), reason="tighter")

        new = replacement.signal
        assert pending.state is SignalState.MODIFIED
        assert decision.outcome is DecisionOutcome.MODIFIED
        assert decision.replacement_id == new.id
        assert replacement.state is SignalState.GENERATED
        assert new.parent_id == signal.id
        assert new.id != signal.id
        assert new.stop_loss == 93_500
        assert new.max_loss == signal.max_loss
        assert new.position_size == pytest.approx(signal.max_loss / 1500)
        assert new.risk_reward != signal.risk_reward
        assert new.take_profits == signal.take_profits
        assert new.volatility_source == "manual"

    def test_modify_targets(self, pending):
        _, replacement = pending.modify(SignalModification(take_profit_prices=(97_000, 99_000, 101_000)))
        tiers = replacement.signal.take_profits.tiers
        assert [tp.price for tp in tiers] == [97_000, 99_000, 101_000]
        assert [tp.allocation for tp in tiers] == [50.0, 30.0, 20.0]

    def test_replacement_has_its_own_lifecycle(self, pending):
        _, replacement = pending.modify(SignalModification(entry=94_800))
        replacement.present()
        replacement.approve()
        assert replacement.state is SignalState.APPROVED
        assert pending.state is SignalState.MODIFIED

    @pytest.mark.parametrize(
        "modification",
        [
            SignalModification(stop_loss=96_000),
            SignalModification(entry=-1),
            SignalModification(take_profit_prices=(99_000, 98_000, 101_000)),
            SignalModification(take_profit_prices=(94_000, 99_000, 101_000)),
            SignalModification(),
        ],
    )
    def test_invalid_modification_keeps_pending(self, pending, modification):
        with pytest.raises(InvalidModification):
            pending.modify(modification)
        assert pending.state is SignalState.PENDING_REVIEW
        assert pending.decision is None

    def test_modify_after_terminal(self, pending):
        pending.reject()
        with pytest.raises(InvalidStateTransition):
            pending.modify(SignalModification(stop_loss=93_000))


def test_annotate_changes_keeps_state(pending):
    pending.annotate_changes(SnapshotChanges(price_changed=True, price_delta=2500, significant=True))
    assert pending.state is SignalState.PENDING_REVIEW
    assert pending.changes_detected

    body = pending.to_dict()
    assert body["state"] == "PENDING_REVIEW"
    assert body["changes"]["priceDelta"] == 2500
    assert body["decision"] is None


def test_modification_to_dict():
    body = SignalModification(stop_loss=1.0).to_dict()
    assert body == {"entry": None, "stopLoss": 1.0, "takeProfits": None}
