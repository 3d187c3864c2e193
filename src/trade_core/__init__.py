"""
trade-core: pure trade execution cost models, position sizing and
opportunistic rebalancing.

No I/O, no network, no shared state. Consumes positions, prices and configs;
produces fee/slippage results, new positions and liquidation plans.
Fully deterministic and unit-testable.
"""

from trade_core.contracts import (
    FeeConfig,
    FlatFee,
    InvalidInputError,
    MakerTakerFee,
    OpportunitySellDecision,
    OpportunitySellingUserConfig,
    OpportunitySellPlan,
    OpportunitySellRequest,
    Position,
    PositionSizingConfig,
    SlippageConfig,
)
from trade_core.fees import calculate_fee
from trade_core.opportunity_sell import evaluate_opportunity_sell
from trade_core.position_analysis import calculate_position_sell_score
from trade_core.position_manager import calculate_position_size, close_position, open_position
from trade_core.slippage import apply_slippage, calculate_slippage

__all__ = [
    "apply_slippage",
    "calculate_fee",
    "calculate_position_sell_score",
    "calculate_position_size",
    "calculate_slippage",
    "close_position",
    "evaluate_opportunity_sell",
    "FeeConfig",
    "FlatFee",
    "InvalidInputError",
    "MakerTakerFee",
    "open_position",
    "OpportunitySellDecision",
    "OpportunitySellingUserConfig",
    "OpportunitySellPlan",
    "OpportunitySellRequest",
    "Position",
    "PositionSizingConfig",
    "SlippageConfig",
]
