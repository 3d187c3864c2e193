"""
Slippage Model: order size + price (+ optional daily volume) -> execution price.

Buys pay more, sells receive less, by the same number of basis points.
Every model's output is clamped to [0, max_slippage_bps].
"""

from __future__ import annotations

import logging
import math

from trade_core.contracts import (
    DEFAULT_BASE_BPS,
    DEFAULT_FIXED_BPS,
    DEFAULT_HISTORICAL_BPS,
    DEFAULT_MAX_SLIPPAGE_BPS,
    DEFAULT_VOLUME_IMPACT_FACTOR,
    DEFAULT_VOLUME_RATIO,
    FixedSlippage,
    HistoricalSlippage,
    InvalidInputError,
    NoSlippage,
    SlippageConfig,
    SlippageInput,
    SlippageModelType,
    SlippageResult,
    VolumeBasedSlippage,
)

logger = logging.getLogger("rebal.slippage")

DEFAULT_SLIPPAGE_CONFIG: SlippageConfig = FixedSlippage()

# Used when the config is not one of the known variants.
FALLBACK_BPS = 5.0


def apply_slippage(price: float, slippage_bps: float, is_buy: bool) -> float:
    """Shift ``price`` against the trader by ``slippage_bps``."""
    factor = slippage_bps / 10_000
    if is_buy:
        return price * (1 + factor)
    return price * (1 - factor)


def _volume_ratio(order_value: float, daily_volume: float | None) -> float:
    if daily_volume is not None and daily_volume > 0:
        return order_value / daily_volume
    return DEFAULT_VOLUME_RATIO


def calculate_slippage_bps(
    quantity: float,
    price: float,
    config: SlippageConfig = DEFAULT_SLIPPAGE_CONFIG,
    daily_volume: float | None = None,
) -> float:
    """Slippage in basis points for an order, capped at the config maximum."""
    max_bps = getattr(config, "max_slippage_bps", DEFAULT_MAX_SLIPPAGE_BPS)

    if isinstance(config, NoSlippage):
        bps = 0.0
    elif isinstance(config, FixedSlippage):
        bps = config.bps
    elif isinstance(config, VolumeBasedSlippage):
        ratio = _volume_ratio(quantity * price, daily_volume)
        bps = config.base_bps + ratio * config.volume_impact_factor
    elif isinstance(config, HistoricalSlippage):
        # TODO: source bps from recorded fills of similar size once live fills are journaled
        bps = config.bps
    else:
        logger.warning("Unknown slippage config %r; using %s bps", config, FALLBACK_BPS)
        bps = FALLBACK_BPS

    return min(max(bps, 0.0), max_bps)


def calculate_slippage(
    order: SlippageInput,
    config: SlippageConfig = DEFAULT_SLIPPAGE_CONFIG,
) -> SlippageResult:
    """Compute slippage and the resulting execution price for one order.

    Raises
    ------
    InvalidInputError
        If ``order.price`` is not a positive finite number.
    """
    price = order.price
    if not isinstance(price, (int, float)) or not math.isfinite(price) or price <= 0:
        raise InvalidInputError("Price must be a positive finite number")

    bps = calculate_slippage_bps(order.quantity, price, config, order.daily_volume)
    execution_price = apply_slippage(price, bps, order.is_buy)

    return SlippageResult(
        slippage_bps=bps,
        execution_price=execution_price,
        price_impact=abs(execution_price - price) / price,
        original_price=price,
    )


def build_slippage_config(
    model: SlippageModelType | str = SlippageModelType.FIXED,
    *,
    fixed_bps: float | None = None,
    base_bps: float | None = None,
    volume_impact_factor: float | None = None,
    historical_bps: float | None = None,
    max_slippage_bps: float | None = None,
) -> SlippageConfig:
    """Build a slippage config from a model tag and optional parameters.

    Parameters left as None take the documented defaults; parameters that
    do not belong to the chosen model are ignored.
    """
    cap = DEFAULT_MAX_SLIPPAGE_BPS if max_slippage_bps is None else max_slippage_bps
    try:
        kind = SlippageModelType(model)
    except ValueError:
        logger.warning("Unknown slippage model %r; using FIXED %s bps", model, FALLBACK_BPS)
        return FixedSlippage(bps=FALLBACK_BPS, max_slippage_bps=cap)

    if kind == SlippageModelType.NONE:
        return NoSlippage(max_slippage_bps=cap)
    if kind == SlippageModelType.VOLUME_BASED:
        return VolumeBasedSlippage(
            base_bps=DEFAULT_BASE_BPS if base_bps is None else base_bps,
            volume_impact_factor=DEFAULT_VOLUME_IMPACT_FACTOR if volume_impact_factor is None else volume_impact_factor,
            max_slippage_bps=cap,
        )
    if kind == SlippageModelType.HISTORICAL:
        return HistoricalSlippage(
            bps=DEFAULT_HISTORICAL_BPS if historical_bps is None else historical_bps,
            max_slippage_bps=cap,
        )
    return FixedSlippage(
        bps=DEFAULT_FIXED_BPS if fixed_bps is None else fixed_bps,
        max_slippage_bps=cap,
    )
