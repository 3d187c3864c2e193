"""
Position Analysis: score one held position's suitability for forced liquidation.

Pure calculations, usable from an in-memory backtest or a live trading path.

Sub-scores (each on its own scale):
    unrealized P&L       0-30   -50% P&L -> 0, +50% -> 30
    protected gains      0|100  100 when P&L% exceeds the protection threshold
    holding period       0-20|100  100 below the minimum hold, else 0->20 over 720h
    opportunity advantage 0-30  (1 - buy confidence) × 30
    algorithm ranking    0-20   rank 1 -> 20, rank >= 5 -> 0

Lower total sells first. Ineligible positions score INELIGIBLE_SCORE.
"""

from __future__ import annotations

from datetime import datetime, timezone

from trade_core.contracts import (
    INELIGIBLE_SCORE,
    OpportunitySellingUserConfig,
    Position,
    PositionSellScore,
)

PNL_SCORE_MAX = 30.0
PROTECTED_SCORE = 100.0
HOLDING_SCORE_MAX = 20.0
HOLDING_WINDOW_HOURS = 720.0
ADVANTAGE_SCORE_MAX = 30.0
RANKING_SCORE_MAX = 20.0
RANKING_STEP = 5.0


def _utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def calculate_unrealized_pnl(avg_price: float, current_price: float, quantity: float) -> tuple[float, float]:
    """Return (pnl, pnl_percent). Percent is 0 when ``avg_price`` is not positive."""
    pnl = (current_price - avg_price) * quantity
    pnl_percent = (current_price - avg_price) / avg_price * 100 if avg_price > 0 else 0.0
    return pnl, pnl_percent


def calculate_holding_period_hours(entry_date: datetime, now: datetime) -> float:
    return (_utc(now) - _utc(entry_date)).total_seconds() / 3600


def calculate_position_sell_score(
    position: Position,
    current_price: float,
    buy_confidence: float,
    config: OpportunitySellingUserConfig,
    now: datetime | None = None,
    algo_rank: int | None = None,
) -> PositionSellScore:
    """Score ``position`` against a competing buy of ``buy_confidence``.

    Parameters
    ----------
    position:
        Held position (average price, quantity, optional entry date).
    current_price:
        Latest market price of the asset.
    buy_confidence:
        Confidence (0-1) of the buy signal that needs funding.
    config:
        User's opportunity selling policy.
    now:
        Evaluation time for the holding period. Defaults to current UTC time.
    algo_rank:
        Optional rank of the algorithm holding this position (1 = best).

    Returns
    -------
    PositionSellScore
        ``eligible`` is False when gains or holding-period protection applies;
        the reason names the gains threshold first when both apply.
    """
    now = now or datetime.now(timezone.utc)
    _, pnl_percent = calculate_unrealized_pnl(position.average_price, current_price, position.quantity)
    holding_hours = (
        calculate_holding_period_hours(position.entry_date, now) if position.entry_date is not None else 0.0
    )

    pnl_score = max(0.0, min(PNL_SCORE_MAX, (pnl_percent + 50) / 100 * PNL_SCORE_MAX))

    protected_gains_score = PROTECTED_SCORE if pnl_percent > config.protect_gains_above_percent else 0.0

    if holding_hours < config.min_holding_period_hours:
        holding_score = PROTECTED_SCORE
    else:
        holding_score = min(HOLDING_SCORE_MAX, holding_hours / HOLDING_WINDOW_HOURS * HOLDING_SCORE_MAX)

    advantage_score = max(0.0, min(ADVANTAGE_SCORE_MAX, (1 - buy_confidence) * ADVANTAGE_SCORE_MAX))

    ranking_score = 0.0
    if config.use_algorithm_ranking and algo_rank is not None and algo_rank >= 1:
        ranking_score = max(0.0, RANKING_SCORE_MAX - (algo_rank - 1) * RANKING_STEP)

    eligible = protected_gains_score < PROTECTED_SCORE and holding_score < PROTECTED_SCORE

    reason: str | None = None
    if protected_gains_score >= PROTECTED_SCORE:
        reason = (
            f"Position has {pnl_percent:.1f}% gains "
            f"(protected above {config.protect_gains_above_percent:g}%)"
        )
    elif holding_score >= PROTECTED_SCORE:
        reason = f"Position held {holding_hours:.0f}h (minimum {config.min_holding_period_hours:g}h)"

    total = (
        pnl_score + advantage_score + holding_score + ranking_score
        if eligible
        else INELIGIBLE_SCORE
    )

    return PositionSellScore(
        asset_id=position.asset_id,
        eligible=eligible,
        unrealized_pnl_score=pnl_score,
        protected_gains_score=protected_gains_score,
        holding_period_score=holding_score,
        opportunity_advantage_score=advantage_score,
        algorithm_ranking_score=ranking_score,
        total_score=total,
        unrealized_pnl_percent=pnl_percent,
        holding_period_hours=holding_hours,
        ineligible_reason=reason,
    )
