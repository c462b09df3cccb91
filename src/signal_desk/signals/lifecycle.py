"""Signal review lifecycle.

GENERATED -> PENDING_REVIEW -> APPROVED | REJECTED | MODIFIED

The three outcomes are terminal for a signal. MODIFIED also yields a new
signal (linked by ``parent_id``) starting its own lifecycle at GENERATED.
Only explicit reviewer actions leave PENDING_REVIEW.
"""

from __future__ import annotations

import dataclasses
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from signal_desk.common.errors import InvalidModification, InvalidStateTransition, RiskEngineError
from signal_desk.signals.models import (
    ApprovalDecision,
    DecisionOutcome,
    SnapshotChanges,
    TakeProfitLadder,
    TradeSignal,
)
from signal_desk.signals.risk import RiskEngine

logger = logging.getLogger(__name__)


class SignalState(Enum):
    GENERATED = "GENERATED"
    PENDING_REVIEW = "PENDING_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    MODIFIED = "MODIFIED"

    @property
    def is_terminal(self) -> bool:
        return not _TRANSITIONS[self]


_TRANSITIONS: dict[SignalState, frozenset[SignalState]] = {
    SignalState.GENERATED: frozenset({SignalState.PENDING_REVIEW}),
    SignalState.PENDING_REVIEW: frozenset({
        SignalState.APPROVED,
        SignalState.REJECTED,
        SignalState.MODIFIED,
    }),
    SignalState.APPROVED: frozenset(),
    SignalState.REJECTED: frozenset(),
    SignalState.MODIFIED: frozenset(),
}

_OUTCOMES = {
    SignalState.APPROVED: DecisionOutcome.APPROVED,
    SignalState.REJECTED: DecisionOutcome.REJECTED,
    SignalState.MODIFIED: DecisionOutcome.MODIFIED,
}


@dataclass(frozen=True)
class SignalModification:
    """Reviewer adjustments. ``None`` keeps the original value.

    Allocations stay at 50/30/20; only target prices can move.
    """

    entry: float | None = None
    stop_loss: float | None = None
    take_profit_prices: tuple[float, float, float] | None = None

    @property
    def is_empty(self) -> bool:
        return self.entry is None and self.stop_loss is None and self.take_profit_prices is None

    def to_dict(self) -> dict:
        return {
            "entry": self.entry,
            "stopLoss": self.stop_loss,
            "takeProfits": list(self.take_profit_prices) if self.take_profit_prices else None,
        }


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SignalLifecycle:
    """State machine for one TradeSignal.

    Holds the single source of truth for the signal's review state, the
    decision that ended it (if any), and the refresh annotations made while
    it was pending.
    """

    def __init__(self, signal: TradeSignal, engine: RiskEngine | None = None) -> None:
        self.signal = signal
        self._engine = engine or RiskEngine()
        self._state = SignalState.GENERATED
        self.decision: ApprovalDecision | None = None
        self.history: list[tuple[SignalState, datetime]] = [(self._state, _now())]
        self.changes: SnapshotChanges | None = None

    @property
    def state(self) -> SignalState:
        return self._state

    @property
    def changes_detected(self) -> bool:
        return self.changes is not None and self.changes.significant

    def allowed(self) -> frozenset[SignalState]:
        return _TRANSITIONS[self._state]

    def _check(self, target: SignalState, action: str) -> None:
        if target not in _TRANSITIONS[self._state]:
            if self._state.is_terminal:
                reason = f"signal already {self._state.value}"
            else:
                reason = f"{self._state.value} cannot move to {target.value}"
            raise InvalidStateTransition(self.signal.id, self._state.value, action, reason)

    def _move(self, target: SignalState) -> None:
        self._state = target
        self.history.append((target, _now()))
        logger.info("Signal %s -> %s", self.signal.id, target.value)

    def _decide(
        self,
        target: SignalState,
        reason: str | None,
        reviewer: str | None,
        replacement_id: str | None = None,
    ) -> ApprovalDecision:
        decision = ApprovalDecision(
            signal_id=self.signal.id,
            outcome=_OUTCOMES[target],
            timestamp=_now(),
            reason=reason,
            reviewer=reviewer,
            replacement_id=replacement_id,
        )
        self._move(target)
        self.decision = decision
        return decision

    def present(self) -> None:
        """Put the signal in front of a reviewer."""
        self._check(SignalState.PENDING_REVIEW, "present")
        self._move(SignalState.PENDING_REVIEW)

    def approve(self, reviewer: str | None = None, reason: str | None = None) -> ApprovalDecision:
        self._check(SignalState.APPROVED, "approve")
        return self._decide(SignalState.APPROVED, reason, reviewer)

    def reject(self, reason: str | None = None, reviewer: str | None = None) -> ApprovalDecision:
        self._check(SignalState.REJECTED, "reject")
        return self._decide(SignalState.REJECTED, reason, reviewer)

    def modify(
        self,
        modification: SignalModification,
        reviewer: str | None = None,
        reason: str | None = None,
    ) -> tuple[ApprovalDecision, SignalLifecycle]:
        """Close this signal as MODIFIED and start a lifecycle for its replacement.

        The replacement keeps the original loss budget; position size and
        risk:reward are recomputed for the new levels.

        Raises:
            InvalidStateTransition: the signal is not pending review
            InvalidModification: the adjusted levels are inconsistent; the
                signal stays pending
        """
        self._check(SignalState.MODIFIED, "modify")
        replacement = self._build_replacement(modification)
        decision = self._decide(SignalState.MODIFIED, reason, reviewer, replacement.id)
        return decision, SignalLifecycle(replacement, self._engine)

    def _build_replacement(self, modification: SignalModification) -> TradeSignal:
        if modification.is_empty:
            raise InvalidModification("Modification changes nothing")

        original = self.signal
        entry = original.entry if modification.entry is None else modification.entry
        stop_loss = original.stop_loss if modification.stop_loss is None else modification.stop_loss
        if modification.take_profit_prices is None:
            take_profits = original.take_profits
        else:
            take_profits = TakeProfitLadder.from_prices(*modification.take_profit_prices)

        try:
            plan = self._engine.assemble(
                original.position_type,
                entry,
                stop_loss,
                take_profits,
                max_loss=original.max_loss,
            )
        except RiskEngineError as exc:
            raise InvalidModification(str(exc)) from exc

        return dataclasses.replace(
            original,
            id=uuid.uuid4().hex,
            entry=plan.entry,
            stop_loss=plan.stop_loss,
            take_profits=plan.take_profits,
            risk_reward=round(plan.risk_reward, 4),
            meets_min_risk_reward=plan.meets_min_risk_reward,
            position_size=plan.position_size,
            max_loss=plan.max_loss,
            created_at=_now(),
            parent_id=original.id,
            volatility_source="manual",
        )

    def annotate_changes(self, changes: SnapshotChanges) -> None:
        """Attach refresh results. Never changes state."""
        self.changes = changes
        if changes.significant:
            logger.info("Signal %s: significant changes detected on refresh", self.signal.id)

    def to_dict(self) -> dict:
        return {
            "signalId": self.signal.id,
            "state": self._state.value,
            "decision": self.decision.to_dict() if self.decision else None,
            "changesDetected": self.changes_detected,
            "changes": self.changes.to_dict() if self.changes else None,
        }
