"""
Signal-driven backtest: replay trade signals in order through the simulator.

Each BUY/SELL signal is executed at its quoted price plus slippage; fees are
charged once per fill. HOLD signals only refresh the price marks.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Mapping

from trade_core.contracts import OpportunitySellPlan

from execution.models import Fill, PortfolioState
from execution.simulator import TradeSimulator

logger = logging.getLogger("rebal.backtest")


class SignalAction(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


@dataclass(frozen=True)
class TradeSignal:
    """One strategy decision to replay."""

    timestamp: datetime
    asset_id: str
    action: SignalAction
    price: float
    prices: Mapping[str, float] = field(default_factory=dict)
    confidence: float | None = None
    quantity: float | None = None
    percentage: float | None = None
    daily_volume: float | None = None


@dataclass(frozen=True)
class Rejection:
    timestamp: datetime
    asset_id: str
    action: SignalAction
    reason: str


@dataclass
class BacktestResult:
    """Result of a backtest run."""

    initial_cash: float
    final_cash: float
    final_value: float
    final_portfolio: PortfolioState
    fills: list[Fill] = field(default_factory=list)
    rejections: list[Rejection] = field(default_factory=list)
    opportunity_plans: list[OpportunitySellPlan] = field(default_factory=list)

    @property
    def total_return_pct(self) -> float:
        if self.initial_cash <= 0:
            return 0.0
        return (self.final_value - self.initial_cash) / self.initial_cash * 100

    @property
    def total_fees(self) -> float:
        return sum(f.fee for f in self.fills)

    @property
    def realized_pnl(self) -> float:
        return sum(f.realized_pnl for f in self.fills if f.realized_pnl is not None)


def run_backtest(
    signals: list[TradeSignal],
    simulator: TradeSimulator,
    *,
    initial_cash: float = 100_000.0,
    algo_rankings: Mapping[str, int] | None = None,
    journal_callback: Callable[[str, dict], None] | None = None,
) -> BacktestResult:
    """Replay signals through the simulator.

    Parameters
    ----------
    signals:
        Trade signals, replayed in list order.
    simulator:
        Configured TradeSimulator (fees, slippage, sizing, opportunity selling).
    initial_cash:
        Starting cash; the portfolio starts flat.
    algo_rankings:
        Optional asset -> rank map used when scoring positions for
        opportunity selling.
    journal_callback:
        Optional callback for event journaling. Receives ``fill``,
        ``rejection`` and ``opportunity_sell`` events.
    """
    portfolio = PortfolioState(cash=initial_cash)
    marks: dict[str, float] = {}
    fills: list[Fill] = []
    rejections: list[Rejection] = []
    plans: list[OpportunitySellPlan] = []

    for signal in signals:
        marks.update(signal.prices)
        marks[signal.asset_id] = signal.price

        if signal.action == SignalAction.HOLD:
            continue

        if signal.action == SignalAction.BUY:
            result = simulator.buy(
                portfolio,
                signal.asset_id,
                signal.price,
                marks,
                quantity=signal.quantity,
                percentage=signal.percentage,
                confidence=signal.confidence,
                daily_volume=signal.daily_volume,
                now=signal.timestamp,
                algo_rankings=algo_rankings,
            )
        else:
            result = simulator.sell(
                portfolio,
                signal.asset_id,
                signal.price,
                quantity=signal.quantity,
                percentage=signal.percentage,
                confidence=signal.confidence,
                daily_volume=signal.daily_volume,
                now=signal.timestamp,
            )

        # Partial progress (executed opportunity sells) is kept even on failure.
        portfolio = result.portfolio
        fills.extend(result.fills)
        if journal_callback:
            for fill in result.fills:
                journal_callback("fill", {"fill": fill})

        if result.opportunity_plan is not None:
            plans.append(result.opportunity_plan)
            if journal_callback:
                journal_callback("opportunity_sell", {"plan": result.opportunity_plan})

        if not result.success:
            rejection = Rejection(
                timestamp=signal.timestamp,
                asset_id=signal.asset_id,
                action=signal.action,
                reason=result.error or "",
            )
            rejections.append(rejection)
            if journal_callback:
                journal_callback("rejection", {"rejection": rejection})

    final_value = portfolio.total_value(marks)
    logger.info(
        "Backtest complete: %d fills, %d rejections, final value %.2f",
        len(fills), len(rejections), final_value,
    )
    return BacktestResult(
        initial_cash=initial_cash,
        final_cash=portfolio.cash,
        final_value=final_value,
        final_portfolio=portfolio,
        fills=fills,
        rejections=rejections,
        opportunity_plans=plans,
    )
