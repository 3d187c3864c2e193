"""
Data contracts for trade-core: positions, cost-model configs, sizing inputs,
sell-eligibility scores and opportunity sell plans.

trade-core consumes Position snapshots and configs and produces fills-to-be,
position action results and liquidation plans.
No I/O; these are plain dataclasses.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Mapping, Union


class InvalidInputError(ValueError):
    """Raised on contract violations (bad price, negative value, bad rate).

    These are programmer errors, not business rejections.
    """


def _require_rate(name: str, value: float) -> None:
    if not isinstance(value, (int, float)) or not math.isfinite(value) or value < 0:
        raise InvalidInputError(f"{name} must be a non-negative finite number, got {value!r}")


# ---------------------------------------------------------------------------
# Position
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Position:
    """One open holding of a single asset.

    ``total_value`` is quantity × last known price and is only refreshed
    when a new Position is built (see ``update_position_value``).
    """

    asset_id: str
    quantity: float
    average_price: float
    total_value: float = 0.0
    entry_date: datetime | None = None


# ---------------------------------------------------------------------------
# Fee model configs
# ---------------------------------------------------------------------------


DEFAULT_FLAT_RATE = 0.001
DEFAULT_MAKER_RATE = 0.0005
DEFAULT_TAKER_RATE = 0.001


class FeeType(str, Enum):
    """Fee schedule variant."""

    FLAT = "FLAT"
    MAKER_TAKER = "MAKER_TAKER"


@dataclass(frozen=True)
class FlatFee:
    """Single rate applied to every trade regardless of order type."""

    rate: float = DEFAULT_FLAT_RATE

    def __post_init__(self) -> None:
        _require_rate("Fee rate", self.rate)

    @property
    def type(self) -> FeeType:
        return FeeType.FLAT


@dataclass(frozen=True)
class MakerTakerFee:
    """Separate rates for liquidity-adding (maker) and -removing (taker) orders."""

    maker_rate: float = DEFAULT_MAKER_RATE
    taker_rate: float = DEFAULT_TAKER_RATE

    def __post_init__(self) -> None:
        _require_rate("Maker rate", self.maker_rate)
        _require_rate("Taker rate", self.taker_rate)

    @property
    def type(self) -> FeeType:
        return FeeType.MAKER_TAKER


FeeConfig = Union[FlatFee, MakerTakerFee]


@dataclass(frozen=True)
class FeeResult:
    fee: float
    rate: float
    order_type: str | None = None  # "maker" | "taker" for MAKER_TAKER only


# ---------------------------------------------------------------------------
# Slippage model configs
# ---------------------------------------------------------------------------


DEFAULT_MAX_SLIPPAGE_BPS = 500.0
DEFAULT_FIXED_BPS = 5.0
DEFAULT_BASE_BPS = 5.0
DEFAULT_VOLUME_IMPACT_FACTOR = 100.0
DEFAULT_HISTORICAL_BPS = 10.0
# Order-value / daily-volume ratio assumed when volume is missing, zero or negative.
DEFAULT_VOLUME_RATIO = 0.001


class SlippageModelType(str, Enum):
    """Slippage model variant."""

    NONE = "NONE"
    FIXED = "FIXED"
    VOLUME_BASED = "VOLUME_BASED"
    HISTORICAL = "HISTORICAL"


@dataclass(frozen=True)
class NoSlippage:
    max_slippage_bps: float = DEFAULT_MAX_SLIPPAGE_BPS

    def __post_init__(self) -> None:
        _require_rate("max_slippage_bps", self.max_slippage_bps)

    @property
    def type(self) -> SlippageModelType:
        return SlippageModelType.NONE


@dataclass(frozen=True)
class FixedSlippage:
    bps: float = DEFAULT_FIXED_BPS
    max_slippage_bps: float = DEFAULT_MAX_SLIPPAGE_BPS

    def __post_init__(self) -> None:
        _require_rate("Slippage bps", self.bps)
        _require_rate("max_slippage_bps", self.max_slippage_bps)

    @property
    def type(self) -> SlippageModelType:
        return SlippageModelType.FIXED


@dataclass(frozen=True)
class VolumeBasedSlippage:
    """bps = base_bps + (order value / daily volume) × volume_impact_factor."""

    base_bps: float = DEFAULT_BASE_BPS
    volume_impact_factor: float = DEFAULT_VOLUME_IMPACT_FACTOR
    max_slippage_bps: float = DEFAULT_MAX_SLIPPAGE_BPS

    def __post_init__(self) -> None:
        _require_rate("Base slippage bps", self.base_bps)
        _require_rate("Volume impact factor", self.volume_impact_factor)
        _require_rate("max_slippage_bps", self.max_slippage_bps)

    @property
    def type(self) -> SlippageModelType:
        return SlippageModelType.VOLUME_BASED


@dataclass(frozen=True)
class HistoricalSlippage:
    """Stand-in for historical fill data: a fixed bps value."""

    bps: float = DEFAULT_HISTORICAL_BPS
    max_slippage_bps: float = DEFAULT_MAX_SLIPPAGE_BPS

    def __post_init__(self) -> None:
        _require_rate("Historical slippage bps", self.bps)
        _require_rate("max_slippage_bps", self.max_slippage_bps)

    @property
    def type(self) -> SlippageModelType:
        return SlippageModelType.HISTORICAL


SlippageConfig = Union[NoSlippage, FixedSlippage, VolumeBasedSlippage, HistoricalSlippage]


@dataclass(frozen=True)
class SlippageInput:
    price: float
    quantity: float
    is_buy: bool
    daily_volume: float | None = None


@dataclass(frozen=True)
class SlippageResult:
    slippage_bps: float
    execution_price: float
    price_impact: float
    original_price: float


# ---------------------------------------------------------------------------
# Position manager inputs / outputs
# ---------------------------------------------------------------------------


CONFIDENCE_EXIT_MIN_PERCENT = 0.25
CONFIDENCE_EXIT_MAX_PERCENT = 1.0


@dataclass(frozen=True)
class PositionSizingConfig:
    """Allocation bounds are fractions of portfolio value (0-1)."""

    max_allocation: float = 0.12
    min_allocation: float = 0.05
    max_positions: int = 20


class PositionErrorCode(str, Enum):
    ZERO_QUANTITY = "ZERO_QUANTITY"
    NEGATIVE_QUANTITY = "NEGATIVE_QUANTITY"
    INSUFFICIENT_CAPITAL = "INSUFFICIENT_CAPITAL"
    NO_POSITION = "NO_POSITION"
    MAX_POSITIONS = "MAX_POSITIONS"
    INVALID_PRICE = "INVALID_PRICE"


@dataclass(frozen=True)
class PositionValidationError:
    code: PositionErrorCode
    message: str


@dataclass(frozen=True)
class OpenPositionInput:
    """Parameters for opening or increasing a position.

    Sizing hints are resolved in priority order:
    quantity > percentage (of portfolio value) > confidence > min allocation.
    """

    asset_id: str
    price: float
    available_capital: float
    portfolio_value: float
    quantity: float | None = None
    percentage: float | None = None
    confidence: float | None = None
    open_positions_count: int = 0
    timestamp: datetime | None = None


@dataclass(frozen=True)
class ClosePositionInput:
    """Parameters for closing or reducing a position.

    Sizing hints are resolved in priority order:
    quantity > percentage (of held quantity) > confidence > full close.
    """

    asset_id: str
    price: float
    quantity: float | None = None
    percentage: float | None = None
    confidence: float | None = None


@dataclass(frozen=True)
class PositionActionResult:
    success: bool
    quantity: float
    price: float
    total_value: float
    position: Position | None = None
    realized_pnl: float | None = None
    realized_pnl_percent: float | None = None
    cost_basis: float | None = None
    error: str | None = None
    error_code: PositionErrorCode | None = None


# ---------------------------------------------------------------------------
# Opportunity selling
# ---------------------------------------------------------------------------


# Total score given to ineligible positions so they never sort ahead of eligible ones.
INELIGIBLE_SCORE = float(2**53 - 1)


class OpportunitySellDecision(str, Enum):
    """Terminal decision of an opportunity sell evaluation."""

    APPROVED = "approved"
    REJECTED_DISABLED = "rejected_disabled"
    REJECTED_LOW_CONFIDENCE = "rejected_low_confidence"
    REJECTED_NO_ELIGIBLE = "rejected_no_eligible"
    REJECTED_INSUFFICIENT_PROCEEDS = "rejected_insufficient_proceeds"
    REJECTED_MAX_LIQUIDATION = "rejected_max_liquidation"


@dataclass(frozen=True)
class OpportunitySellingUserConfig:
    """Per-user policy for liquidating positions to fund a stronger buy."""

    min_opportunity_confidence: float = 0.7
    min_holding_period_hours: float = 48.0
    protect_gains_above_percent: float = 15.0
    protected_assets: tuple[str, ...] = ()
    min_opportunity_advantage_percent: float = 10.0
    max_liquidation_percent: float = 30.0
    use_algorithm_ranking: bool = True


DEFAULT_OPPORTUNITY_SELLING_CONFIG = OpportunitySellingUserConfig()


@dataclass(frozen=True)
class PositionSellScore:
    """Sell-eligibility breakdown for one position.

    Lower ``total_score`` sells first. A 100 on ``protected_gains_score`` or
    ``holding_period_score`` makes the position ineligible.
    """

    asset_id: str
    eligible: bool
    unrealized_pnl_score: float
    protected_gains_score: float
    holding_period_score: float
    opportunity_advantage_score: float
    algorithm_ranking_score: float
    total_score: float
    unrealized_pnl_percent: float
    holding_period_hours: float
    ineligible_reason: str | None = None


@dataclass(frozen=True)
class OpportunitySellOrder:
    asset_id: str
    quantity: float
    current_price: float
    estimated_proceeds: float
    score: PositionSellScore


@dataclass(frozen=True)
class OpportunitySellRequest:
    """Snapshot handed to the rebalancing evaluator."""

    buy_signal_asset_id: str
    buy_signal_confidence: float
    required_buy_amount: float
    available_cash: float
    portfolio_value: float
    positions: Mapping[str, Position]
    current_prices: Mapping[str, float]
    config: OpportunitySellingUserConfig = DEFAULT_OPPORTUNITY_SELLING_CONFIG
    enabled: bool = True
    now: datetime | None = None
    algo_rankings: Mapping[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class OpportunitySellPlan:
    buy_signal_asset_id: str
    buy_signal_confidence: float
    shortfall: float
    available_cash: float
    portfolio_value: float
    projected_proceeds: float
    decision: OpportunitySellDecision
    reason: str
    evaluated_positions: tuple[PositionSellScore, ...] = ()
    sell_orders: tuple[OpportunitySellOrder, ...] = ()
    liquidation_percent: float = 0.0

    @property
    def approved(self) -> bool:
        return self.decision == OpportunitySellDecision.APPROVED
