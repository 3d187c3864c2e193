"""
Fee Model: trade value + order type -> fee amount.

Only computes the fee. Deducting it from a cash balance is the caller's
job and must happen exactly once per fill.
"""

from __future__ import annotations

import logging

from trade_core.contracts import (
    DEFAULT_FLAT_RATE,
    DEFAULT_MAKER_RATE,
    DEFAULT_TAKER_RATE,
    FeeConfig,
    FeeResult,
    FeeType,
    FlatFee,
    InvalidInputError,
    MakerTakerFee,
)

logger = logging.getLogger("rebal.fees")

DEFAULT_FEE_CONFIG: FeeConfig = FlatFee(rate=DEFAULT_FLAT_RATE)


def get_rate(config: FeeConfig = DEFAULT_FEE_CONFIG, is_maker: bool | None = None) -> float:
    """Return the rate ``calculate_fee`` would apply.

    ``is_maker`` is ignored for flat schedules; for maker/taker schedules a
    missing flag counts as taker.
    """
    if isinstance(config, FlatFee):
        return config.rate
    if isinstance(config, MakerTakerFee):
        return config.maker_rate if is_maker else config.taker_rate
    logger.warning("Unknown fee config %r; using default flat rate %s", config, DEFAULT_FLAT_RATE)
    return DEFAULT_FLAT_RATE


def calculate_fee(
    trade_value: float,
    is_maker: bool | None = None,
    config: FeeConfig = DEFAULT_FEE_CONFIG,
) -> FeeResult:
    """Compute the fee for a trade.

    Parameters
    ----------
    trade_value:
        Notional value of the trade (quantity × execution price). Must be >= 0.
    is_maker:
        Whether the order added liquidity. Only used by MAKER_TAKER schedules.
    config:
        Fee schedule.

    Raises
    ------
    InvalidInputError
        If ``trade_value`` is negative.
    """
    if trade_value < 0:
        raise InvalidInputError("Trade value cannot be negative")

    rate = get_rate(config, is_maker)
    order_type: str | None = None
    if isinstance(config, MakerTakerFee):
        order_type = "maker" if is_maker else "taker"

    return FeeResult(fee=trade_value * rate, rate=rate, order_type=order_type)


def from_flat_rate(rate: float) -> FlatFee:
    """Build a flat schedule from a single decimal rate (0.001 = 0.1%)."""
    return FlatFee(rate=rate)


def build_fee_config(
    fee_type: FeeType | str = FeeType.FLAT,
    *,
    flat_rate: float | None = None,
    maker_rate: float | None = None,
    taker_rate: float | None = None,
) -> FeeConfig:
    """Build a fee schedule from a type tag and optional rates.

    Rates left as None take the documented defaults. Rates that do not
    belong to the chosen variant are ignored.
    """
    try:
        kind = FeeType(fee_type)
    except ValueError:
        logger.warning("Unknown fee type %r; using FLAT", fee_type)
        kind = FeeType.FLAT

    if kind == FeeType.MAKER_TAKER:
        return MakerTakerFee(
            maker_rate=DEFAULT_MAKER_RATE if maker_rate is None else maker_rate,
            taker_rate=DEFAULT_TAKER_RATE if taker_rate is None else taker_rate,
        )
    return FlatFee(rate=DEFAULT_FLAT_RATE if flat_rate is None else flat_rate)
