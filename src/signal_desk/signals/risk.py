"""Position sizing, volatility-based stops and the take-profit ladder."""

from __future__ import annotations

import logging

import numpy as np

from signal_desk.common.errors import InsufficientVolatilityData, RiskEngineError
from signal_desk.config import get_settings
from signal_desk.market.models import MarketSnapshot
from signal_desk.signals.models import PositionType, RiskPlan, TakeProfitLadder

logger = logging.getLogger(__name__)

# ATR relative to its historical average beyond which the stop is adjusted
HIGH_VOLATILITY_RATIO = 1.5
LOW_VOLATILITY_RATIO = 0.5


def compute_risk_reward(entry: float, stop_loss: float, take_profits: TakeProfitLadder) -> float:
    """Allocation-weighted reward distance divided by the risk distance."""
    risk = abs(entry - stop_loss)
    if risk == 0:
        raise RiskEngineError("Stop distance cannot be zero")
    distances = np.array([abs(tp.price - entry) for tp in take_profits.tiers])
    allocations = np.array([tp.allocation for tp in take_profits.tiers])
    reward = float(np.dot(distances, allocations) / 100.0)
    return reward / risk


def check_levels(
    position_type: PositionType,
    entry: float,
    stop_loss: float,
    take_profits: TakeProfitLadder,
) -> str | None:
    """Return why the levels are inconsistent with the position, or None."""
    if entry <= 0:
        return "Entry price must be greater than 0"
    if stop_loss <= 0:
        return "Stop loss must be greater than 0"
    prices = [tp.price for tp in take_profits.tiers]
    if position_type is PositionType.LONG:
        if stop_loss >= entry:
            return "Stop loss must be below entry price for LONG positions"
        if any(p <= entry for p in prices):
            return "Take profit targets must be above entry price for LONG positions"
        if not prices[0] < prices[1] < prices[2]:
            return "Take profit targets must be ordered: TP1 < TP2 < TP3 for LONG"
    else:
        if stop_loss <= entry:
            return "Stop loss must be above entry price for SHORT positions"
        if any(p >= entry for p in prices):
            return "Take profit targets must be below entry price for SHORT positions"
        if any(p <= 0 for p in prices):
            return "Take profit targets must be greater than 0"
        if not prices[0] > prices[1] > prices[2]:
            return "Take profit targets must be ordered: TP1 > TP2 > TP3 for SHORT"
    if abs(take_profits.total_allocation - 100.0) > 0.01:
        return "Take profit allocations must sum to 100%"
    return None


class RiskEngine:
    """Derives stop, size and exits from volatility and account limits.

    The engine never refuses a trade for a poor risk:reward ratio; it flags
    it and leaves the call to the reviewer.
    """

    def __init__(
        self,
        atr_stop_multiplier: float | None = None,
        take_profit_multipliers: tuple[float, float, float] | None = None,
        min_risk_reward: float | None = None,
    ) -> None:
        settings = get_settings()
        self.atr_stop_multiplier = atr_stop_multiplier or settings.atr_stop_multiplier
        self.take_profit_multipliers = take_profit_multipliers or settings.take_profit_multipliers
        self.min_risk_reward = (
            settings.min_risk_reward if min_risk_reward is None else min_risk_reward
        )

    def volatility_measure(self, snapshot: MarketSnapshot) -> tuple[float, str]:
        """Best available volatility in price units, and where it came from.

        ATR first; then a quarter of the Bollinger band width (the bands sit
        about two standard deviations either side); then the risk
        dimension's percentage volatility applied to price.
        """
        technical = snapshot.technical
        if technical.atr is not None:
            return technical.atr, "atr"
        if technical.bollinger is not None:
            return technical.bollinger.width / 4.0, "bollinger"
        if snapshot.risk.volatility is not None:
            return snapshot.price * snapshot.risk.volatility / 100.0, "volatility"
        raise InsufficientVolatilityData()

    def stop_distance(self, snapshot: MarketSnapshot) -> tuple[float, float, str]:
        """Stop distance, the volatility it came from, and the source name."""
        volatility, source = self.volatility_measure(snapshot)
        distance = volatility * self.atr_stop_multiplier

        historical = snapshot.technical.historical_atr
        if source == "atr" and historical:
            ratio = volatility / historical
            if ratio > HIGH_VOLATILITY_RATIO:
                distance += (volatility - historical) * self.atr_stop_multiplier
                logger.info("%s: ATR %.2fx normal, widening stop", snapshot.symbol, ratio)
            elif ratio < LOW_VOLATILITY_RATIO:
                base = distance
                distance -= (historical - volatility) * self.atr_stop_multiplier * 0.5
                # Tightening never removes more than half the base stop
                distance = max(distance, base * 0.5)
                logger.info("%s: ATR %.2fx normal, tightening stop", snapshot.symbol, ratio)

        if distance <= 0:
            raise RiskEngineError(f"Non-positive stop distance {distance:.4f}")
        return distance, volatility, source

    def ladder(
        self,
        entry: float,
        distance: float,
        position_type: PositionType,
        snapshot: MarketSnapshot | None = None,
    ) -> TakeProfitLadder:
        """Targets at Fibonacci extensions of the stop distance.

        tp3 reaches out to the Bollinger band on the profit side when the band
        is further away than the extension.
        """
        sign = position_type.sign
        tp1, tp2, tp3 = (entry + sign * distance * m for m in self.take_profit_multipliers)

        bands = snapshot.technical.bollinger if snapshot is not None else None
        if bands is not None:
            if position_type is PositionType.LONG:
                tp3 = max(tp3, bands.upper)
            else:
                tp3 = min(tp3, bands.lower)

        return TakeProfitLadder.from_prices(tp1, tp2, tp3)

    def assemble(
        self,
        position_type: PositionType,
        entry: float,
        stop_loss: float,
        take_profits: TakeProfitLadder,
        max_loss: float,
        account_balance: float | None = None,
        volatility: float | None = None,
        volatility_source: str = "manual",
    ) -> RiskPlan:
        """Size a position so that a move to the stop loses exactly *max_loss*."""
        problem = check_levels(position_type, entry, stop_loss, take_profits)
        if problem:
            raise RiskEngineError(problem)
        if max_loss <= 0:
            raise RiskEngineError("Max loss must be positive")

        risk_distance = abs(entry - stop_loss)
        position_size = max_loss / risk_distance
        risk_reward = compute_risk_reward(entry, stop_loss, take_profits)
        meets = risk_reward >= self.min_risk_reward
        if not meets:
            logger.warning(
                "Risk:reward %.2f below minimum %.1f (unfavorable)",
                risk_reward, self.min_risk_reward,
            )

        return RiskPlan(
            position_type=position_type,
            entry=entry,
            stop_loss=stop_loss,
            take_profits=take_profits,
            position_size=position_size,
            max_loss=max_loss,
            max_loss_percent=(100.0 * max_loss / account_balance) if account_balance else 0.0,
            risk_reward=risk_reward,
            meets_min_risk_reward=meets,
            potential_profit=abs(take_profits.tp3.price - entry) * position_size,
            volatility=volatility,
            volatility_source=volatility_source,
        )

    def build_risk_plan(
        self,
        snapshot: MarketSnapshot,
        account_balance: float,
        max_risk_fraction: float = 0.02,
        position_type: PositionType = PositionType.LONG,
    ) -> RiskPlan:
        """Full risk plan for entering at the snapshot price.

        Raises:
            RiskEngineError: invalid account inputs or levels that can't be
                placed (e.g. a SHORT ladder running below zero)
            InsufficientVolatilityData: no volatility measure in the snapshot
        """
        _check_account(account_balance, max_risk_fraction)
        entry = snapshot.price
        distance, volatility, source = self.stop_distance(snapshot)
        stop_loss = entry - position_type.sign * distance
        take_profits = self.ladder(entry, distance, position_type, snapshot)

        plan = self.assemble(
            position_type,
            entry,
            stop_loss,
            take_profits,
            max_loss=account_balance * max_risk_fraction,
            account_balance=account_balance,
            volatility=volatility,
            volatility_source=source,
        )
        logger.info(
            "%s %s %s: entry=%.2f stop=%.2f size=%.6f rr=%.2f (%s)",
            snapshot.symbol, snapshot.timeframe, position_type.value,
            entry, plan.stop_loss, plan.position_size, plan.risk_reward, source,
        )
        return plan

    def plan_from_stop(
        self,
        entry: float,
        stop_loss: float,
        position_type: PositionType,
        account_balance: float,
        max_risk_fraction: float = 0.02,
        take_profits: TakeProfitLadder | None = None,
    ) -> RiskPlan:
        """Risk plan for an explicit stop; ladder defaults to the stop distance extensions."""
        _check_account(account_balance, max_risk_fraction)
        if take_profits is None:
            take_profits = self.ladder(entry, abs(entry - stop_loss), position_type)
        return self.assemble(
            position_type,
            entry,
            stop_loss,
            take_profits,
            max_loss=account_balance * max_risk_fraction,
            account_balance=account_balance,
        )


def _check_account(account_balance: float, max_risk_fraction: float) -> None:
    if account_balance <= 0:
        raise RiskEngineError("Account balance must be positive")
    if not 0.0 < max_risk_fraction <= 1.0:
        raise RiskEngineError(f"max_risk_fraction must be in (0, 1], got {max_risk_fraction}")
