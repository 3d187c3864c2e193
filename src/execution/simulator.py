"""
Trade simulator: composes fees, slippage, position sizing and opportunity
selling into buy/sell executions against an immutable PortfolioState.

Each call returns a new PortfolioState; nothing is mutated in place. The fee
is charged exactly once per fill, on the slippage-adjusted trade value.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

from config.engine_config import EngineConfig
from trade_core.contracts import (
    DEFAULT_OPPORTUNITY_SELLING_CONFIG,
    ClosePositionInput,
    FeeConfig,
    OpenPositionInput,
    OpportunitySellingUserConfig,
    OpportunitySellPlan,
    OpportunitySellRequest,
    PositionActionResult,
    PositionErrorCode,
    PositionSizingConfig,
    SlippageConfig,
    SlippageInput,
    SlippageResult,
)
from trade_core.fees import DEFAULT_FEE_CONFIG, calculate_fee, get_rate
from trade_core.opportunity_sell import evaluate_opportunity_sell
from trade_core.position_manager import (
    DEFAULT_POSITION_CONFIG,
    close_position,
    open_position,
    resolve_close_quantity,
    resolve_open_quantity,
    validate_position,
)
from trade_core.slippage import DEFAULT_SLIPPAGE_CONFIG, calculate_slippage, calculate_slippage_bps

from execution.models import ExecutionResult, Fill, PortfolioState

logger = logging.getLogger("rebal.execution")

EventCallback = Callable[[str, dict[str, Any]], None]

# Relative haircut so the affordable quantity survives float rounding.
_AFFORDABILITY_MARGIN = 1e-9
# Fills trimmed by more than this fraction of the requested quantity are logged.
_TRIM_TOLERANCE = 1e-6


def _utc(ts: datetime | None) -> datetime:
    if ts is None:
        return datetime.now(timezone.utc)
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


class TradeSimulator:
    """
    Simulated execution of buy and sell orders.

    When opportunity selling is enabled and a buy fails for lack of cash,
    the simulator asks the opportunity sell evaluator for a liquidation plan,
    executes the approved sells, then retries the buy with whatever cash is
    now available.
    """

    def __init__(
        self,
        fee_config: FeeConfig = DEFAULT_FEE_CONFIG,
        slippage_config: SlippageConfig = DEFAULT_SLIPPAGE_CONFIG,
        sizing_config: PositionSizingConfig = DEFAULT_POSITION_CONFIG,
        *,
        opportunity_config: OpportunitySellingUserConfig | None = None,
        opportunity_enabled: bool = False,
        event_callback: EventCallback | None = None,
    ) -> None:
        self.fee_config = fee_config
        self.slippage_config = slippage_config
        self.sizing_config = sizing_config
        self.opportunity_config = opportunity_config or DEFAULT_OPPORTUNITY_SELLING_CONFIG
        self.opportunity_enabled = opportunity_enabled
        self._event_callback = event_callback

    @classmethod
    def from_engine_config(
        cls,
        cfg: EngineConfig,
        *,
        opportunity_enabled: bool = False,
        event_callback: EventCallback | None = None,
    ) -> TradeSimulator:
        return cls(
            cfg.fees,
            cfg.slippage,
            cfg.sizing,
            opportunity_config=cfg.opportunity_selling,
            opportunity_enabled=opportunity_enabled,
            event_callback=event_callback,
        )

    def _emit(self, event: str, payload: dict[str, Any]) -> None:
        if self._event_callback is not None:
            self._event_callback(event, payload)

    def _reject(
        self,
        portfolio: PortfolioState,
        asset_id: str,
        side: str,
        reason: str,
        *,
        fills: tuple[Fill, ...] = (),
        plan: OpportunitySellPlan | None = None,
    ) -> ExecutionResult:
        logger.info("Rejected %s %s: %s", side, asset_id, reason)
        self._emit("rejected", {"asset_id": asset_id, "side": side, "reason": reason})
        return ExecutionResult(
            success=False,
            portfolio=portfolio,
            fills=fills,
            error=reason,
            opportunity_plan=plan,
        )

    # ------------------------------------------------------------------
    # Buy
    # ------------------------------------------------------------------

    def buy(
        self,
        portfolio: PortfolioState,
        asset_id: str,
        price: float,
        prices: Mapping[str, float] | None = None,
        *,
        quantity: float | None = None,
        percentage: float | None = None,
        confidence: float | None = None,
        daily_volume: float | None = None,
        is_maker: bool | None = None,
        now: datetime | None = None,
        algo_rankings: Mapping[str, int] | None = None,
    ) -> ExecutionResult:
        """Buy ``asset_id`` at ``price`` plus slippage.

        Parameters
        ----------
        portfolio:
            State before the trade.
        price:
            Quoted price; the fill happens at the slippage-adjusted price.
        prices:
            Current prices for every held asset, used to value the portfolio
            and to score positions for opportunity selling.
        quantity, percentage, confidence:
            Sizing hints, in that order of priority. With none given the
            minimum allocation is bought.

        Returns
        -------
        ExecutionResult
            ``fills`` holds any opportunity sells followed by the buy.
        """
        now = _utc(now)
        marks = dict(prices or {})
        marks[asset_id] = price
        portfolio_value = portfolio.total_value(marks)
        existing = portfolio.positions.get(asset_id)
        fee_rate = get_rate(self.fee_config, is_maker)

        inp = OpenPositionInput(
            asset_id=asset_id,
            price=price,
            available_capital=portfolio.cash / (1 + fee_rate),
            portfolio_value=portfolio_value,
            quantity=quantity,
            percentage=percentage,
            confidence=confidence,
            open_positions_count=portfolio.open_position_count,
            timestamp=now,
        )
        error = validate_position("open", existing, inp, inp.open_positions_count, self.sizing_config)
        if error is not None:
            return self._reject(portfolio, asset_id, "buy", error.message)

        estimated_qty = resolve_open_quantity(inp, self.sizing_config)
        slip = calculate_slippage(SlippageInput(price, estimated_qty, True, daily_volume), self.slippage_config)
        inp = replace(inp, price=slip.execution_price)

        result = open_position(existing, inp, self.sizing_config)
        if result.success:
            state, fill = self._settle_buy(portfolio, result, slip, is_maker, now)
            return ExecutionResult(success=True, portfolio=state, fills=(fill,))

        if result.error_code != PositionErrorCode.INSUFFICIENT_CAPITAL or not self.opportunity_enabled:
            return self._reject(portfolio, asset_id, "buy", result.error or "Buy failed")

        return self._buy_with_opportunity_sells(
            portfolio, inp, slip, marks, fee_rate, is_maker, now, algo_rankings or {}
        )

    def _buy_with_opportunity_sells(
        self,
        portfolio: PortfolioState,
        inp: OpenPositionInput,
        slip: SlippageResult,
        marks: Mapping[str, float],
        fee_rate: float,
        is_maker: bool | None,
        now: datetime,
        algo_rankings: Mapping[str, int],
    ) -> ExecutionResult:
        requested_qty = resolve_open_quantity(inp, self.sizing_config)
        buy_cost = requested_qty * inp.price * (1 + fee_rate)
        # Sells are priced at quoted marks; gross the shortfall up so net proceeds cover it.
        shortfall = max(0.0, buy_cost - portfolio.cash)
        net_factor = self._sell_net_factor()
        if net_factor > 0:
            shortfall /= net_factor
        request = OpportunitySellRequest(
            buy_signal_asset_id=inp.asset_id,
            buy_signal_confidence=inp.confidence if inp.confidence is not None else 0.0,
            required_buy_amount=portfolio.cash + shortfall,
            available_cash=portfolio.cash,
            portfolio_value=inp.portfolio_value,
            positions=dict(portfolio.positions),
            current_prices=dict(marks),
            config=self.opportunity_config,
            enabled=True,
            now=now,
            algo_rankings=dict(algo_rankings),
        )
        plan = evaluate_opportunity_sell(request)
        logger.info(
            "Opportunity sell for %s: %s (%s)", inp.asset_id, plan.decision.value, plan.reason
        )
        self._emit("opportunity_sell", {"plan": plan})

        if not plan.approved or not plan.sell_orders:
            return self._reject(portfolio, inp.asset_id, "buy", plan.reason, plan=plan)

        state = portfolio
        fills: list[Fill] = []
        for order in plan.sell_orders:
            sold = self.sell(state, order.asset_id, order.current_price, quantity=order.quantity, now=now)
            if not sold.success:
                return self._reject(
                    state,
                    inp.asset_id,
                    "buy",
                    f"Opportunity sell of {order.asset_id} failed: {sold.error}",
                    fills=tuple(fills),
                    plan=plan,
                )
            state = sold.portfolio
            fills.extend(sold.fills)

        available = state.cash / (1 + fee_rate)
        affordable_qty = available * (1 - _AFFORDABILITY_MARGIN) / inp.price
        buy_qty = min(requested_qty, affordable_qty)
        if buy_qty < requested_qty * (1 - _TRIM_TOLERANCE):
            logger.warning(
                "Opportunity sells for %s raised less than needed; buying %.6f of %.6f requested",
                inp.asset_id, buy_qty, requested_qty,
            )
        retry = replace(
            inp,
            quantity=buy_qty,
            percentage=None,
            confidence=None,
            available_capital=available,
            open_positions_count=state.open_position_count,
        )
        result = open_position(state.positions.get(inp.asset_id), retry, self.sizing_config)
        if not result.success:
            return self._reject(
                state, inp.asset_id, "buy", result.error or "Buy failed", fills=tuple(fills), plan=plan
            )

        state, fill = self._settle_buy(state, result, slip, is_maker, now)
        fills.append(fill)
        return ExecutionResult(success=True, portfolio=state, fills=tuple(fills), opportunity_plan=plan)

    def _sell_net_factor(self) -> float:
        """Fraction of quoted sell value that reaches cash after slippage and the sell fee.

        Opportunity sells run without daily volume, so their slippage does not
        depend on order size.
        """
        bps = calculate_slippage_bps(1.0, 1.0, self.slippage_config)
        return (1 - bps / 10_000) * (1 - get_rate(self.fee_config, None))

    def _settle_buy(
        self,
        portfolio: PortfolioState,
        result: PositionActionResult,
        slip: SlippageResult,
        is_maker: bool | None,
        now: datetime,
    ) -> tuple[PortfolioState, Fill]:
        fee = calculate_fee(result.total_value, is_maker, self.fee_config)
        position = result.position
        state = portfolio.with_cash(portfolio.cash - result.total_value - fee.fee)
        state = state.with_position(position.asset_id, position)
        fill = Fill(
            asset_id=position.asset_id,
            side="buy",
            quantity=result.quantity,
            base_price=slip.original_price,
            execution_price=result.price,
            slippage_bps=slip.slippage_bps,
            fee=fee.fee,
            fee_rate=fee.rate,
            total_value=result.total_value,
            timestamp=now,
            order_type=fee.order_type,
        )
        logger.info(
            "BUY %s qty=%.6f @ %.4f (slippage %.2f bps, fee %.4f)",
            fill.asset_id, fill.quantity, fill.execution_price, fill.slippage_bps, fill.fee,
        )
        self._emit("fill", {"fill": fill})
        return state, fill

    # ------------------------------------------------------------------
    # Sell
    # ------------------------------------------------------------------

    def sell(
        self,
        portfolio: PortfolioState,
        asset_id: str,
        price: float,
        *,
        quantity: float | None = None,
        percentage: float | None = None,
        confidence: float | None = None,
        daily_volume: float | None = None,
        is_maker: bool | None = None,
        now: datetime | None = None,
    ) -> ExecutionResult:
        """Sell all or part of ``asset_id``. Realized P&L on the fill is net of the sell fee."""
        now = _utc(now)
        existing = portfolio.positions.get(asset_id)
        inp = ClosePositionInput(
            asset_id=asset_id,
            price=price,
            quantity=quantity,
            percentage=percentage,
            confidence=confidence,
        )
        error = validate_position("close", existing, inp, 0, self.sizing_config)
        if error is not None:
            return self._reject(portfolio, asset_id, "sell", error.message)

        estimated_qty = resolve_close_quantity(existing, inp)
        slip = calculate_slippage(SlippageInput(price, estimated_qty, False, daily_volume), self.slippage_config)
        result = close_position(existing, replace(inp, price=slip.execution_price), self.sizing_config)
        if not result.success:
            return self._reject(portfolio, asset_id, "sell", result.error or "Sell failed")

        fee = calculate_fee(result.total_value, is_maker, self.fee_config)
        state = portfolio.with_cash(portfolio.cash + result.total_value - fee.fee)
        state = state.with_position(asset_id, result.position)
        fill = Fill(
            asset_id=asset_id,
            side="sell",
            quantity=result.quantity,
            base_price=slip.original_price,
            execution_price=result.price,
            slippage_bps=slip.slippage_bps,
            fee=fee.fee,
            fee_rate=fee.rate,
            total_value=result.total_value,
            timestamp=now,
            order_type=fee.order_type,
            realized_pnl=result.realized_pnl - fee.fee,
            cost_basis=result.cost_basis,
        )
        logger.info(
            "SELL %s qty=%.6f @ %.4f (slippage %.2f bps, fee %.4f, pnl %.4f)",
            asset_id, fill.quantity, fill.execution_price, fill.slippage_bps, fill.fee, fill.realized_pnl,
        )
        self._emit("fill", {"fill": fill})
        return ExecutionResult(success=True, portfolio=state, fills=(fill,))
