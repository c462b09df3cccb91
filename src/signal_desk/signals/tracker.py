"""Decision persistence: reviewed signals and their outcomes in SQLite."""

from __future__ import annotations

import json
from typing import Protocol

import aiosqlite

from signal_desk.config import get_settings
from signal_desk.signals.models import ApprovalDecision, TradeSignal

_CREATE_SIGNALS = """
CREATE TABLE IF NOT EXISTS signals (
    id TEXT PRIMARY KEY,
    parent_id TEXT,
    symbol TEXT NOT NULL,
    timeframe TEXT NOT NULL,
    position_type TEXT NOT NULL,
    entry REAL NOT NULL,
    stop_loss REAL NOT NULL,
    tp1_price REAL NOT NULL,
    tp1_allocation REAL NOT NULL,
    tp2_price REAL NOT NULL,
    tp2_allocation REAL NOT NULL,
    tp3_price REAL NOT NULL,
    tp3_allocation REAL NOT NULL,
    confidence_overall REAL,
    confidence_technical REAL,
    confidence_sentiment REAL,
    confidence_onchain REAL,
    confidence_risk REAL,
    confidence_label TEXT,
    risk_reward REAL,
    position_size REAL NOT NULL,
    max_loss REAL NOT NULL,
    data_quality_overall REAL,
    data_quality TEXT,
    created_at TEXT NOT NULL
);
"""

_CREATE_DECISIONS = """
CREATE TABLE IF NOT EXISTS decisions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    signal_id TEXT NOT NULL UNIQUE,
    outcome TEXT NOT NULL,
    reason TEXT,
    reviewer TEXT,
    replacement_id TEXT,
    timestamp TEXT NOT NULL
);
"""

_CREATE_INDEX = """
CREATE INDEX IF NOT EXISTS idx_signals_symbol ON signals(symbol, timeframe);
"""


class DecisionStore(Protocol):
    """Persistence collaborator called on every terminal transition.

    Implementations raise on failure; the caller surfaces it as a
    PersistenceFailure.
    """

    async def save(self, signal: TradeSignal, decision: ApprovalDecision) -> None:
        ...


class DecisionTracker:
    """SQLite (via aiosqlite) decision log."""

    def __init__(self) -> None:
        settings = get_settings()
        self._db_path = settings.db_path

    async def _ensure_db(self) -> None:
        """Create database and tables if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_CREATE_SIGNALS)
            await db.execute(_CREATE_DECISIONS)
            await db.execute(_CREATE_INDEX)
            await db.commit()

    async def save(self, signal: TradeSignal, decision: ApprovalDecision) -> None:
        """Record a signal and the decision made on it in one transaction."""
        await self._ensure_db()
        tp1, tp2, tp3 = signal.take_profits.tiers
        c = signal.confidence
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(
                """INSERT OR IGNORE INTO signals
                   (id, parent_id, symbol, timeframe, position_type, entry, stop_loss,
                    tp1_price, tp1_allocation, tp2_price, tp2_allocation,
                    tp3_price, tp3_allocation,
                    confidence_overall, confidence_technical, confidence_sentiment,
                    confidence_onchain, confidence_risk, confidence_label,
                    risk_reward, position_size, max_loss,
                    data_quality_overall, data_quality, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    signal.id, signal.parent_id, signal.symbol, signal.timeframe,
                    signal.position_type.value, signal.entry, signal.stop_loss,
                    tp1.price, tp1.allocation, tp2.price, tp2.allocation,
                    tp3.price, tp3.allocation,
                    c.overall, c.technical, c.sentiment, c.on_chain, c.risk,
                    c.display_label,
                    signal.risk_reward, signal.position_size, signal.max_loss,
                    signal.data_quality.overall,
                    json.dumps(signal.data_quality.to_dict()),
                    signal.created_at.isoformat(),
                ),
            )
            await db.execute(
                """INSERT INTO decisions
                   (signal_id, outcome, reason, reviewer, replacement_id, timestamp)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (
                    decision.signal_id,
                    decision.outcome.value,
                    decision.reason,
                    decision.reviewer,
                    decision.replacement_id,
                    decision.timestamp.isoformat(),
                ),
            )
            await db.commit()

    async def get_decisions(self, symbol: str | None = None) -> list[dict]:
        """All decisions joined with their signals, newest first."""
        await self._ensure_db()
        query = """
            SELECT d.signal_id, d.outcome, d.reason, d.reviewer, d.replacement_id,
                   d.timestamp, s.symbol, s.timeframe, s.position_type, s.entry,
                   s.stop_loss, s.risk_reward, s.confidence_overall,
                   s.data_quality_overall, s.parent_id
            FROM decisions d
            JOIN signals s ON s.id = d.signal_id
        """
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            if symbol:
                cursor = await db.execute(
                    query + " WHERE s.symbol = ? ORDER BY d.id DESC", (symbol.upper(),),
                )
            else:
                cursor = await db.execute(query + " ORDER BY d.id DESC")
            rows = await cursor.fetchall()
            return [dict(row) for row in rows]

    async def get_summary(self) -> dict:
        """Decision counts by outcome."""
        await self._ensure_db()
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT outcome, COUNT(*) AS n FROM decisions GROUP BY outcome"
            )
            counts = {row["outcome"]: row["n"] for row in await cursor.fetchall()}

            cursor = await db.execute(
                """SELECT AVG(s.risk_reward) AS avg_rr FROM decisions d
                   JOIN signals s ON s.id = d.signal_id
                   WHERE d.outcome IN ('APPROVED', 'MODIFIED')"""
            )
            avg_rr = (await cursor.fetchone())["avg_rr"]

        total = sum(counts.values())
        approved = counts.get("APPROVED", 0) + counts.get("MODIFIED", 0)
        return {
            "total_decisions": total,
            "approved": counts.get("APPROVED", 0),
            "rejected": counts.get("REJECTED", 0),
            "modified": counts.get("MODIFIED", 0),
            "approval_rate": approved / total if total > 0 else None,
            "avg_risk_reward": avg_rr,
        }
