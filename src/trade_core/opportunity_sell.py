"""
Opportunity Sell Evaluator: decide whether to liquidate held positions to fund
a buy that available cash cannot cover.

Sequential gates; the first failing gate ends the evaluation:

    1. feature disabled              -> REJECTED_DISABLED
    2. buy confidence below minimum  -> REJECTED_LOW_CONFIDENCE
    3. no cash shortfall             -> APPROVED with no sells
    -- score every held position --
    4. nothing eligible              -> REJECTED_NO_ELIGIBLE
    -- greedy sell orders, lowest score first --
    5. liquidation above the cap     -> REJECTED_MAX_LIQUIDATION
    6. shortfall still uncovered     -> REJECTED_INSUFFICIENT_PROCEEDS
    otherwise                        -> APPROVED

Pure with respect to the request: positions are read, never mutated, and the
same snapshot always yields the same plan.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable

from trade_core.contracts import (
    INELIGIBLE_SCORE,
    OpportunitySellDecision,
    OpportunitySellOrder,
    OpportunitySellPlan,
    OpportunitySellRequest,
    PositionSellScore,
)
from trade_core.position_analysis import calculate_position_sell_score

# Floating-point slack when checking whether the shortfall is covered.
_EPSILON = 1e-9


@dataclass
class _Evaluation:
    """Working state of one evaluation. Never leaves this module."""

    request: OpportunitySellRequest
    shortfall: float
    scores: list[PositionSellScore] = field(default_factory=list)
    sell_orders: list[OpportunitySellOrder] = field(default_factory=list)
    total_sell_value: float = 0.0

    @property
    def remaining_shortfall(self) -> float:
        return self.shortfall - self.total_sell_value

    @property
    def liquidation_percent(self) -> float:
        pv = self.request.portfolio_value
        return self.total_sell_value / pv * 100 if pv > 0 else 0.0


def _plan(ev: _Evaluation, decision: OpportunitySellDecision, reason: str) -> OpportunitySellPlan:
    req = ev.request
    return OpportunitySellPlan(
        buy_signal_asset_id=req.buy_signal_asset_id,
        buy_signal_confidence=req.buy_signal_confidence,
        shortfall=ev.shortfall,
        available_cash=req.available_cash,
        portfolio_value=req.portfolio_value,
        projected_proceeds=ev.total_sell_value,
        decision=decision,
        reason=reason,
        evaluated_positions=tuple(ev.scores),
        sell_orders=tuple(ev.sell_orders),
        liquidation_percent=ev.liquidation_percent,
    )


# ---------------------------------------------------------------------------
# Gates: each returns a terminal plan or None to continue
# ---------------------------------------------------------------------------


def _check_enabled(ev: _Evaluation) -> OpportunitySellPlan | None:
    if ev.request.enabled:
        return None
    return _plan(ev, OpportunitySellDecision.REJECTED_DISABLED, "Opportunity selling is disabled for this user")


def _check_confidence(ev: _Evaluation) -> OpportunitySellPlan | None:
    req = ev.request
    minimum = req.config.min_opportunity_confidence
    if req.buy_signal_confidence >= minimum:
        return None
    return _plan(
        ev,
        OpportunitySellDecision.REJECTED_LOW_CONFIDENCE,
        f"Buy signal confidence {req.buy_signal_confidence * 100:.1f}% is below minimum {minimum * 100:.1f}%",
    )


def _check_shortfall(ev: _Evaluation) -> OpportunitySellPlan | None:
    if ev.shortfall > 0:
        return None
    ev.shortfall = 0.0
    return _plan(ev, OpportunitySellDecision.APPROVED, "Sufficient cash available, no selling needed")


def _check_any_eligible(ev: _Evaluation) -> OpportunitySellPlan | None:
    if any(s.eligible for s in ev.scores):
        return None
    return _plan(
        ev,
        OpportunitySellDecision.REJECTED_NO_ELIGIBLE,
        "No eligible positions to sell (all protected, too new, or have large gains)",
    )


def _check_max_liquidation(ev: _Evaluation) -> OpportunitySellPlan | None:
    cap = ev.request.config.max_liquidation_percent
    pct = ev.liquidation_percent
    if pct <= cap + _EPSILON:
        return None
    plan = _plan(
        ev,
        OpportunitySellDecision.REJECTED_MAX_LIQUIDATION,
        f"Liquidation would require {pct:.1f}% of portfolio (max: {cap:g}%)",
    )
    return replace(plan, sell_orders=(), projected_proceeds=0.0)


def _check_proceeds(ev: _Evaluation) -> OpportunitySellPlan | None:
    if ev.remaining_shortfall <= _EPSILON:
        return None
    return _plan(
        ev,
        OpportunitySellDecision.REJECTED_INSUFFICIENT_PROCEEDS,
        f"Eligible positions can raise ${ev.total_sell_value:.2f} but shortfall is ${ev.shortfall:.2f}",
    )


Gate = Callable[[_Evaluation], OpportunitySellPlan | None]

_PRE_SCORING_GATES: tuple[Gate, ...] = (_check_enabled, _check_confidence, _check_shortfall)
_POST_SCORING_GATES: tuple[Gate, ...] = (_check_any_eligible,)
_POST_SIZING_GATES: tuple[Gate, ...] = (_check_max_liquidation, _check_proceeds)


def _run_gates(gates: tuple[Gate, ...], ev: _Evaluation) -> OpportunitySellPlan | None:
    for gate in gates:
        plan = gate(ev)
        if plan is not None:
            return plan
    return None


# ---------------------------------------------------------------------------
# Scoring and sizing steps
# ---------------------------------------------------------------------------


def _protected_score(asset_id: str) -> PositionSellScore:
    return PositionSellScore(
        asset_id=asset_id,
        eligible=False,
        unrealized_pnl_score=0.0,
        protected_gains_score=0.0,
        holding_period_score=0.0,
        opportunity_advantage_score=0.0,
        algorithm_ranking_score=0.0,
        total_score=INELIGIBLE_SCORE,
        unrealized_pnl_percent=0.0,
        holding_period_hours=0.0,
        ineligible_reason="Asset is in the protected list",
    )


def _usable_price(price: float | None) -> bool:
    return price is not None and math.isfinite(price) and price > 0


def _score_positions(ev: _Evaluation) -> None:
    req = ev.request
    now = req.now or datetime.now(timezone.utc)
    protected = set(req.config.protected_assets)

    for asset_id, position in req.positions.items():
        if asset_id == req.buy_signal_asset_id:
            continue
        if asset_id in protected:
            ev.scores.append(_protected_score(asset_id))
            continue
        price = req.current_prices.get(asset_id)
        if not _usable_price(price):
            continue
        ev.scores.append(
            calculate_position_sell_score(
                position,
                price,
                req.buy_signal_confidence,
                req.config,
                now,
                req.algo_rankings.get(asset_id),
            )
        )


def _build_sell_orders(ev: _Evaluation) -> None:
    req = ev.request
    max_sell_value = req.portfolio_value * req.config.max_liquidation_percent / 100
    # sorted() is stable: equal scores keep encounter order.
    eligible = sorted((s for s in ev.scores if s.eligible), key=lambda s: s.total_score)

    for scored in eligible:
        if ev.remaining_shortfall <= 0:
            break
        if ev.total_sell_value >= max_sell_value:
            break

        position = req.positions[scored.asset_id]
        price = req.current_prices[scored.asset_id]
        quantity = min(
            position.quantity,
            ev.remaining_shortfall / price,
            (max_sell_value - ev.total_sell_value) / price,
        )
        if quantity <= 0:
            continue

        proceeds = quantity * price
        ev.sell_orders.append(
            OpportunitySellOrder(
                asset_id=scored.asset_id,
                quantity=quantity,
                current_price=price,
                estimated_proceeds=proceeds,
                score=scored,
            )
        )
        ev.total_sell_value += proceeds


def evaluate_opportunity_sell(request: OpportunitySellRequest) -> OpportunitySellPlan:
    """Build a liquidation plan that funds ``request.required_buy_amount``.

    Parameters
    ----------
    request:
        Snapshot of the buy signal, cash, portfolio value, positions, prices
        and the user's opportunity selling policy.

    Returns
    -------
    OpportunitySellPlan
        Always returned, never raised. ``decision`` tells the caller whether
        to execute ``sell_orders``; rejected plans may still list partial
        orders for visibility.
    """
    ev = _Evaluation(
        request=request,
        shortfall=request.required_buy_amount - request.available_cash,
    )

    plan = _run_gates(_PRE_SCORING_GATES, ev)
    if plan is not None:
        return plan

    _score_positions(ev)
    plan = _run_gates(_POST_SCORING_GATES, ev)
    if plan is not None:
        return plan

    _build_sell_orders(ev)
    plan = _run_gates(_POST_SIZING_GATES, ev)
    if plan is not None:
        return plan

    return _plan(
        ev,
        OpportunitySellDecision.APPROVED,
        f"Selling {len(ev.sell_orders)} position(s) for ${ev.total_sell_value:.2f} "
        f"to fund {request.buy_signal_asset_id} buy",
    )


def plan_to_dict(plan: OpportunitySellPlan) -> dict[str, Any]:
    """Plain-dict form of ``plan`` for JSON storage; the decision becomes its string value."""
    data = asdict(plan)
    data["decision"] = plan.decision.value
    return data
