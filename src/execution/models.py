"""PortfolioState, Fill, ExecutionResult for simulated execution."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Mapping

from trade_core.contracts import OpportunitySellPlan, Position


@dataclass(frozen=True)
class PortfolioState:
    """Cash plus open positions. Replaced, never mutated, by each fill."""

    cash: float
    positions: Mapping[str, Position] = field(default_factory=dict)

    @property
    def open_position_count(self) -> int:
        return sum(1 for p in self.positions.values() if p.quantity > 0)

    def positions_value(self, prices: Mapping[str, float]) -> float:
        """Mark positions to ``prices``; assets without a price keep their last total_value."""
        total = 0.0
        for asset_id, pos in self.positions.items():
            price = prices.get(asset_id)
            total += pos.quantity * price if price is not None else pos.total_value
        return total

    def total_value(self, prices: Mapping[str, float]) -> float:
        return self.cash + self.positions_value(prices)

    def with_cash(self, cash: float) -> PortfolioState:
        return replace(self, cash=cash)

    def with_position(self, asset_id: str, position: Position | None) -> PortfolioState:
        positions = dict(self.positions)
        if position is None:
            positions.pop(asset_id, None)
        else:
            positions[asset_id] = position
        return PortfolioState(cash=self.cash, positions=positions)


@dataclass(frozen=True)
class Fill:
    asset_id: str
    side: str  # "buy" | "sell"
    quantity: float
    base_price: float
    execution_price: float
    slippage_bps: float
    fee: float
    fee_rate: float
    total_value: float
    timestamp: datetime
    order_type: str | None = None  # "maker" | "taker" under maker/taker fees
    realized_pnl: float | None = None  # sells only, net of the sell fee
    cost_basis: float | None = None  # sells only


@dataclass(frozen=True)
class ExecutionResult:
    success: bool
    portfolio: PortfolioState
    fills: tuple[Fill, ...] = ()
    error: str | None = None
    opportunity_plan: OpportunitySellPlan | None = None
