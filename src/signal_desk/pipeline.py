"""Top-level pipeline orchestrator.

Wires together: source collection → validation → confidence + risk →
signal → review lifecycle → decision persistence.
Generations are keyed by (symbol, timeframe); a second request for a key
already in flight joins the running one instead of starting another.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TypeVar

from rich.console import Console

from signal_desk.common.errors import PersistenceFailure, ReviewPending, SignalDeskError, UnknownSignal
from signal_desk.common.types import MarketKey, SourceFetcher, market_key
from signal_desk.config import get_settings
from signal_desk.market.client import DataServiceClient, default_fetchers
from signal_desk.market.collector import collect_sources
from signal_desk.market.models import DataQuality, MarketSnapshot
from signal_desk.market.validator import validate
from signal_desk.signals.analyzer import describe_analysis, generate_signal
from signal_desk.signals.changes import detect_changes
from signal_desk.signals.confidence import ConfidenceScorer
from signal_desk.signals.lifecycle import SignalLifecycle, SignalModification, SignalState
from signal_desk.signals.models import ApprovalDecision, PositionType, SnapshotChanges, TradeSignal
from signal_desk.signals.risk import RiskEngine
from signal_desk.signals.tracker import DecisionStore

logger = logging.getLogger(__name__)
console = Console()

T = TypeVar("T")

FetcherFactory = Callable[[str, str], Mapping[str, SourceFetcher]]


class InFlightRegistry:
    """One running task per key; later callers for the same key share it."""

    def __init__(self) -> None:
        self._tasks: dict[MarketKey, asyncio.Task] = {}

    def in_flight(self, key: MarketKey) -> bool:
        return key in self._tasks

    async def _tracked(self, key: MarketKey, factory: Callable[[], Awaitable[T]]) -> T:
        try:
            return await factory()
        finally:
            # Cleared before the task completes
            if self._tasks.get(key) is asyncio.current_task():
                del self._tasks[key]

    async def run(self, key: MarketKey, factory: Callable[[], Awaitable[T]]) -> T:
        task = self._tasks.get(key)
        if task is not None:
            logger.info("Generation for %s %s already in flight, joining it", *key)
        else:
            task = asyncio.ensure_future(self._tracked(key, factory))
            self._tasks[key] = task
        # A cancelled caller must not cancel the generation others are waiting on
        return await asyncio.shield(task)


@dataclass
class MarketState:
    """Per-(symbol, timeframe) state. Never shared across keys."""

    last_snapshot: MarketSnapshot | None = None
    lifecycle: SignalLifecycle | None = None


@dataclass
class GenerationResult:
    signal: TradeSignal
    snapshot: MarketSnapshot
    lifecycle: SignalLifecycle

    @property
    def state(self) -> SignalState:
        return self.lifecycle.state

    @property
    def analysis(self) -> dict:
        return describe_analysis(self.signal)

    def to_dict(self) -> dict:
        return {
            "signal": self.signal.to_dict(),
            "analysis": self.analysis,
            "lifecycle": self.lifecycle.to_dict(),
        }


@dataclass
class RefreshResult:
    success: bool
    data_quality: DataQuality
    changes: SnapshotChanges
    timestamp: datetime
    duration: float  # seconds
    error: dict | None = field(default=None)

    def to_dict(self) -> dict:
        body = {
            "success": self.success,
            "dataQuality": self.data_quality.to_dict(),
            "changes": self.changes.to_dict(),
            "timestamp": self.timestamp.isoformat(),
            "duration": round(self.duration, 3),
        }
        if self.error is not None:
            body["error"] = self.error
        return body


class SignalPipeline:
    """Generates signals per market and routes reviewer decisions.

    Args:
        fetcher_factory: builds the named source fetchers for a market.
            Defaults to the data service client's analysis feed.
        store: persistence collaborator for decisions; None skips saving
        account_balance: defaults to ``Settings.account_balance``
        max_risk_fraction: defaults to ``Settings.max_risk_fraction``
    """

    def __init__(
        self,
        fetcher_factory: FetcherFactory | None = None,
        store: DecisionStore | None = None,
        scorer: ConfidenceScorer | None = None,
        engine: RiskEngine | None = None,
        account_balance: float | None = None,
        max_risk_fraction: float | None = None,
        timeout: float | None = None,
    ) -> None:
        settings = get_settings()
        self._client: DataServiceClient | None = None
        self._fetcher_factory = fetcher_factory or self._default_fetchers
        self._store = store
        self._scorer = scorer or ConfidenceScorer()
        self._engine = engine or RiskEngine()
        self.account_balance = account_balance or settings.account_balance
        self.max_risk_fraction = max_risk_fraction or settings.max_risk_fraction
        self._timeout = timeout or settings.fetch_timeout
        self._auto_present_modified = settings.auto_present_modified
        self._registry = InFlightRegistry()
        self._states: dict[MarketKey, MarketState] = {}

    def _default_fetchers(self, symbol: str, timeframe: str) -> Mapping[str, SourceFetcher]:
        if self._client is None:
            self._client = DataServiceClient()
        return default_fetchers(self._client, symbol, timeframe)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None

    def _state(self, key: MarketKey) -> MarketState:
        return self._states.setdefault(key, MarketState())

    def in_flight(self, symbol: str, timeframe: str) -> bool:
        return self._registry.in_flight(market_key(symbol, timeframe))

    # --- Generation ---

    async def fetch_snapshot(self, symbol: str, timeframe: str) -> MarketSnapshot:
        """Collect all sources under the deadline and validate the merged payload.

        Raises:
            TimeoutExceeded: the fetch deadline passed
            MissingPriceData, NotLiveData: the payload failed the gate
        """
        symbol, timeframe = market_key(symbol, timeframe)
        collected = await collect_sources(self._fetcher_factory(symbol, timeframe), self._timeout)
        return validate(
            collected.payload,
            symbol=symbol,
            timeframe=timeframe,
            successful=tuple(collected.successful),
            failed=tuple(collected.failed),
        )

    async def generate(
        self,
        symbol: str,
        timeframe: str,
        position_type: PositionType | None = None,
    ) -> GenerationResult:
        """Run the full pipeline and put the signal up for review.

        Nothing is created if any stage fails.

        Raises:
            ReviewPending: the market already has a signal awaiting a decision
        """
        key = market_key(symbol, timeframe)
        return await self._registry.run(key, lambda: self._generate(key, position_type))

    async def _generate(self, key: MarketKey, position_type: PositionType | None) -> GenerationResult:
        symbol, timeframe = key
        current = self._state(key).lifecycle
        if current is not None and current.state is SignalState.PENDING_REVIEW:
            raise ReviewPending(current.signal.id, symbol, timeframe)

        console.print(f"[bold]Generating signal for {symbol} {timeframe}...[/bold]")
        started = time.monotonic()

        snapshot = await self.fetch_snapshot(symbol, timeframe)
        quality = snapshot.data_quality
        console.print(
            f"  Price ${snapshot.price:,.2f} | data quality {quality.overall:.0f}% "
            f"({len(quality.successful)} ok, {len(quality.failed)} failed)"
        )

        signal = generate_signal(
            snapshot,
            account_balance=self.account_balance,
            max_risk_fraction=self.max_risk_fraction,
            position_type=position_type,
            scorer=self._scorer,
            engine=self._engine,
        )
        lifecycle = SignalLifecycle(signal, self._engine)
        lifecycle.present()

        state = self._state(key)
        state.last_snapshot = snapshot
        state.lifecycle = lifecycle

        console.print(
            f"  [green]{signal.position_type.value}[/green] entry ${signal.entry:,.2f} "
            f"stop ${signal.stop_loss:,.2f} | confidence {signal.confidence.overall:.0f} "
            f"({signal.confidence.display_label}) | R:R {signal.risk_reward:.2f} "
            f"[dim]({time.monotonic() - started:.1f}s)[/dim]"
        )
        return GenerationResult(signal=signal, snapshot=snapshot, lifecycle=lifecycle)

    # --- Refresh ---

    async def refresh(self, symbol: str, timeframe: str) -> RefreshResult:
        """Re-run validation on fresh data and diff against the signal's snapshot.

        Annotates a pending review; never changes its state.

        Raises:
            UnknownSignal: nothing has been generated for this market yet
        """
        key = market_key(symbol, timeframe)
        state = self._states.get(key)
        if state is None or state.last_snapshot is None:
            raise UnknownSignal(*key)

        started = time.monotonic()
        try:
            snapshot = await self.fetch_snapshot(*key)
        except SignalDeskError as exc:
            logger.warning("Refresh for %s %s failed: %s", *key, exc)
            return RefreshResult(
                success=False,
                data_quality=DataQuality(),
                changes=SnapshotChanges(),
                timestamp=datetime.now(timezone.utc),
                duration=time.monotonic() - started,
                error=exc.to_dict(),
            )

        lifecycle = state.lifecycle
        baseline = state.last_snapshot
        if lifecycle is not None and lifecycle.signal.snapshot is not None:
            baseline = lifecycle.signal.snapshot

        changes = detect_changes(baseline, snapshot)
        if lifecycle is not None and lifecycle.state is SignalState.PENDING_REVIEW:
            lifecycle.annotate_changes(changes)
        state.last_snapshot = snapshot

        return RefreshResult(
            success=True,
            data_quality=snapshot.data_quality,
            changes=changes,
            timestamp=datetime.now(timezone.utc),
            duration=time.monotonic() - started,
        )

    # --- Review ---

    def lifecycle(self, symbol: str, timeframe: str) -> SignalLifecycle:
        key = market_key(symbol, timeframe)
        state = self._states.get(key)
        if state is None or state.lifecycle is None:
            raise UnknownSignal(*key)
        return state.lifecycle

    async def _persist(self, signal: TradeSignal, decision: ApprovalDecision) -> None:
        if self._store is None:
            return
        try:
            await self._store.save(signal, decision)
        except Exception as exc:
            logger.error("Failed to save decision for signal %s: %s", signal.id, exc)
            raise PersistenceFailure(signal, decision, exc) from exc

    async def approve(
        self,
        symbol: str,
        timeframe: str,
        reviewer: str | None = None,
        reason: str | None = None,
    ) -> ApprovalDecision:
        lifecycle = self.lifecycle(symbol, timeframe)
        decision = lifecycle.approve(reviewer=reviewer, reason=reason)
        await self._persist(lifecycle.signal, decision)
        return decision

    async def reject(
        self,
        symbol: str,
        timeframe: str,
        reason: str | None = None,
        reviewer: str | None = None,
    ) -> ApprovalDecision:
        lifecycle = self.lifecycle(symbol, timeframe)
        decision = lifecycle.reject(reason=reason, reviewer=reviewer)
        await self._persist(lifecycle.signal, decision)
        return decision

    async def modify(
        self,
        symbol: str,
        timeframe: str,
        modification: SignalModification,
        reviewer: str | None = None,
        reason: str | None = None,
    ) -> tuple[ApprovalDecision, SignalLifecycle]:
        """Close the pending signal as MODIFIED and track its replacement.

        The replacement becomes the market's current signal; with
        ``auto_present_modified`` it goes straight back to review.
        """
        key = market_key(symbol, timeframe)
        lifecycle = self.lifecycle(*key)
        decision, replacement = lifecycle.modify(modification, reviewer=reviewer, reason=reason)
        if self._auto_present_modified:
            replacement.present()
        self._states[key].lifecycle = replacement
        await self._persist(lifecycle.signal, decision)
        return decision, replacement

    async def retry_save(self, failure: PersistenceFailure) -> None:
        """Save a decision whose first save failed. The review is not redone."""
        await self._persist(failure.signal, failure.decision)
