"""
Position Manager: open/increase and close/reduce a single-asset position.

Stateless. Every operation takes the current Position (or None) and returns
a PositionActionResult carrying a *new* Position; the input is never mutated.

Business-rule failures (bad price, zero quantity, no position, position
limit, insufficient capital) come back as ``success=False`` results.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Literal

from trade_core.contracts import (
    CONFIDENCE_EXIT_MAX_PERCENT,
    CONFIDENCE_EXIT_MIN_PERCENT,
    ClosePositionInput,
    OpenPositionInput,
    Position,
    PositionActionResult,
    PositionErrorCode,
    PositionSizingConfig,
    PositionValidationError,
)

DEFAULT_POSITION_CONFIG = PositionSizingConfig()


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def calculate_position_size(
    portfolio_value: float,
    confidence: float,
    price: float,
    config: PositionSizingConfig = DEFAULT_POSITION_CONFIG,
) -> float:
    """Quantity to buy for a signal of the given confidence.

    allocation = min_allocation + clamp(confidence, 0, 1) × (max_allocation − min_allocation)
    quantity   = portfolio_value × allocation / price
    """
    span = config.max_allocation - config.min_allocation
    allocation = config.min_allocation + _clamp01(confidence) * span
    return portfolio_value * allocation / price


def _validate_quantity(quantity: float | None) -> PositionValidationError | None:
    if quantity is None:
        return None
    if quantity == 0:
        return PositionValidationError(PositionErrorCode.ZERO_QUANTITY, "Quantity must be greater than zero")
    if quantity < 0:
        return PositionValidationError(PositionErrorCode.NEGATIVE_QUANTITY, "Quantity cannot be negative")
    return None


def validate_position(
    action: Literal["open", "close"],
    existing: Position | None,
    inp: OpenPositionInput | ClosePositionInput,
    open_positions_count: int = 0,
    config: PositionSizingConfig = DEFAULT_POSITION_CONFIG,
) -> PositionValidationError | None:
    """Check an open/close request before sizing. Returns None when valid.

    The position limit only applies to brand-new positions; increasing an
    existing holding is always allowed.
    """
    if inp.price <= 0:
        return PositionValidationError(PositionErrorCode.INVALID_PRICE, "Price must be greater than zero")

    if action == "open":
        error = _validate_quantity(inp.quantity)
        if error is not None:
            return error
        is_new = existing is None or existing.quantity <= 0
        if is_new and open_positions_count >= config.max_positions:
            return PositionValidationError(
                PositionErrorCode.MAX_POSITIONS,
                f"Maximum number of positions ({config.max_positions}) reached",
            )
        return None

    if existing is None or existing.quantity <= 0:
        return PositionValidationError(PositionErrorCode.NO_POSITION, "No position to close")
    return _validate_quantity(inp.quantity)


def _failed(price: float, error: PositionValidationError) -> PositionActionResult:
    return PositionActionResult(
        success=False,
        quantity=0.0,
        price=price,
        total_value=0.0,
        error=error.message,
        error_code=error.code,
    )


def resolve_open_quantity(inp: OpenPositionInput, config: PositionSizingConfig) -> float:
    if inp.quantity is not None and inp.quantity > 0:
        return inp.quantity
    if inp.percentage is not None and inp.percentage > 0:
        return inp.portfolio_value * inp.percentage / inp.price
    if inp.confidence is not None:
        return calculate_position_size(inp.portfolio_value, inp.confidence, inp.price, config)
    return inp.portfolio_value * config.min_allocation / inp.price


def open_position(
    existing: Position | None,
    inp: OpenPositionInput,
    config: PositionSizingConfig = DEFAULT_POSITION_CONFIG,
) -> PositionActionResult:
    """Open a new position or add to an existing one.

    Parameters
    ----------
    existing:
        Current holding of ``inp.asset_id`` (None if flat).
    inp:
        Execution price, capital, and sizing hints.
    config:
        Allocation bounds and position limit.

    Returns
    -------
    PositionActionResult
        On success ``position`` holds the combined position with a
        volume-weighted ``average_price``.
    """
    error = validate_position("open", existing, inp, inp.open_positions_count, config)
    if error is not None:
        return _failed(inp.price, error)

    quantity = resolve_open_quantity(inp, config)
    error = _validate_quantity(quantity)
    if error is not None:
        return _failed(inp.price, error)
    total_value = quantity * inp.price

    if total_value > inp.available_capital:
        return _failed(
            inp.price,
            PositionValidationError(PositionErrorCode.INSUFFICIENT_CAPITAL, "Insufficient capital for trade"),
        )

    if existing is not None and existing.quantity > 0:
        new_quantity = existing.quantity + quantity
        new_average = (existing.average_price * existing.quantity + inp.price * quantity) / new_quantity
        position = Position(
            asset_id=inp.asset_id,
            quantity=new_quantity,
            average_price=new_average,
            total_value=new_quantity * inp.price,
            entry_date=existing.entry_date or inp.timestamp,
        )
    else:
        position = Position(
            asset_id=inp.asset_id,
            quantity=quantity,
            average_price=inp.price,
            total_value=total_value,
            entry_date=inp.timestamp,
        )

    return PositionActionResult(
        success=True,
        position=position,
        quantity=quantity,
        price=inp.price,
        total_value=total_value,
    )


def resolve_close_quantity(position: Position, inp: ClosePositionInput) -> float:
    if inp.quantity is not None and inp.quantity > 0:
        return min(inp.quantity, position.quantity)
    if inp.percentage is not None and inp.percentage > 0:
        return position.quantity * min(1.0, inp.percentage)
    if inp.confidence is not None:
        # Higher confidence sells more of the position.
        span = CONFIDENCE_EXIT_MAX_PERCENT - CONFIDENCE_EXIT_MIN_PERCENT
        return position.quantity * (CONFIDENCE_EXIT_MIN_PERCENT + _clamp01(inp.confidence) * span)
    return position.quantity


def close_position(
    position: Position | None,
    inp: ClosePositionInput,
    config: PositionSizingConfig = DEFAULT_POSITION_CONFIG,
) -> PositionActionResult:
    """Sell all or part of a position and report realized P&L.

    realized_pnl         = (price − average_price) × sold quantity
    realized_pnl_percent = (price − average_price) / average_price

    The average price of the remainder is unchanged. A fully closed
    position comes back as ``position=None``.
    """
    error = validate_position("close", position, inp, 0, config)
    if error is not None:
        return _failed(inp.price, error)

    quantity = min(resolve_close_quantity(position, inp), position.quantity)
    total_value = quantity * inp.price
    cost_basis = position.average_price

    realized_pnl = (inp.price - cost_basis) * quantity
    realized_pnl_percent = (inp.price - cost_basis) / cost_basis if cost_basis > 0 else 0.0

    remaining = position.quantity - quantity
    updated: Position | None = None
    if remaining > 0:
        updated = Position(
            asset_id=inp.asset_id,
            quantity=remaining,
            average_price=position.average_price,
            total_value=remaining * inp.price,
            entry_date=position.entry_date,
        )

    return PositionActionResult(
        success=True,
        position=updated,
        quantity=quantity,
        price=inp.price,
        total_value=total_value,
        realized_pnl=realized_pnl,
        realized_pnl_percent=realized_pnl_percent,
        cost_basis=cost_basis,
    )


def update_position_value(position: Position, current_price: float) -> Position:
    """Return a copy of ``position`` marked to ``current_price``."""
    return replace(position, total_value=position.quantity * current_price)
