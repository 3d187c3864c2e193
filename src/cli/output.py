"""
Human-readable output for the terminal.

Every decision explains itself: fees show the rate applied, slippage shows
the bps and price impact, plans show why each position was or was not sold.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from trade_core.contracts import FeeResult, OpportunitySellPlan, SlippageResult

if TYPE_CHECKING:
    from backtest.runner import BacktestResult


def format_fee(trade_value: float, result: FeeResult) -> str:
    order_type = f" ({result.order_type})" if result.order_type else ""
    return "\n".join([
        f"Trade value  : ${trade_value:,.2f}",
        f"Fee rate     : {result.rate:.4%}{order_type}",
        f"Fee          : ${result.fee:,.4f}",
    ])


def format_slippage(quantity: float, is_buy: bool, result: SlippageResult) -> str:
    return "\n".join([
        f"Side         : {'buy' if is_buy else 'sell'} {quantity:g}",
        f"Quoted price : {result.original_price:,.4f}",
        f"Slippage     : {result.slippage_bps:.2f} bps",
        f"Exec. price  : {result.execution_price:,.4f}",
        f"Price impact : {result.price_impact:,.4f}",
    ])


def format_plan(plan: OpportunitySellPlan) -> str:
    """Format a liquidation plan with per-position reasoning."""
    lines = [
        f"=== Opportunity Sell: buy {plan.buy_signal_asset_id} (confidence {plan.buy_signal_confidence:.2f}) ===",
        f"Decision     : {plan.decision.value.upper()}",
        f"Reason       : {plan.reason}",
        f"Cash         : ${plan.available_cash:,.2f}  |  Shortfall: ${plan.shortfall:,.2f}",
        f"Portfolio    : ${plan.portfolio_value:,.2f}",
    ]

    if plan.evaluated_positions:
        lines.append("")
        lines.append(f"  Evaluated positions ({len(plan.evaluated_positions)}):")
        for s in plan.evaluated_positions:
            if s.eligible:
                lines.append(
                    f"    + {s.asset_id:10s} score {s.total_score:6.2f}  "
                    f"(pnl {s.unrealized_pnl_percent:+.1f}%, held {s.holding_period_hours:.0f}h)"
                )
            else:
                lines.append(f"    x {s.asset_id:10s} {s.ineligible_reason}")

    if plan.sell_orders:
        lines.append("")
        lines.append(f"  Sell orders ({len(plan.sell_orders)}):")
        for o in plan.sell_orders:
            lines.append(
                f"    SELL {o.asset_id:10s} qty {o.quantity:.6f} @ {o.current_price:,.4f} = ${o.estimated_proceeds:,.2f}"
            )
        lines.append(
            f"  Proceeds     : ${plan.projected_proceeds:,.2f}  ({plan.liquidation_percent:.2f}% of portfolio)"
        )

    lines.append("===")
    return "\n".join(lines)


def format_backtest_summary(result: BacktestResult) -> str:
    """Format backtest result summary."""
    lines = [
        "=== Backtest ===",
        f"Initial cash : ${result.initial_cash:,.2f}",
        f"Final cash   : ${result.final_cash:,.2f}",
        f"Final value  : ${result.final_value:,.2f}",
        f"Return       : {result.total_return_pct:+.2f}%",
        f"Fills        : {len(result.fills)}  |  Rejections: {len(result.rejections)}",
        f"Fees paid    : ${result.total_fees:,.2f}",
        f"Realized PnL : ${result.realized_pnl:+,.2f}",
        f"Opp. sells   : {sum(1 for p in result.opportunity_plans if p.approved)} approved / {len(result.opportunity_plans)} evaluated",
    ]
    if result.fills:
        lines.append("")
        for i, f in enumerate(result.fills, 1):
            pnl = f" | PnL ${f.realized_pnl:+.2f}" if f.realized_pnl is not None else ""
            lines.append(
                f"  Fill #{i}: {f.side.upper():4s} {f.asset_id} {f.quantity:.6f} @ {f.execution_price:.4f} "
                f"(quoted {f.base_price:.4f}, fee ${f.fee:.2f}){pnl}"
            )
    if result.rejections:
        lines.append("")
        for r in result.rejections:
            lines.append(f"  Rejected {r.action.value} {r.asset_id} @ {r.timestamp.isoformat()}: {r.reason}")
    if result.final_portfolio.positions:
        lines.append("")
        for asset_id, pos in result.final_portfolio.positions.items():
            lines.append(f"  Holding {asset_id}: {pos.quantity:.6f} @ avg {pos.average_price:.4f}")
    lines.append("===")
    return "\n".join(lines)
