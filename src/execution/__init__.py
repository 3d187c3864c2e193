"""
Simulated execution: fees, slippage, sizing and opportunity selling applied
to an immutable PortfolioState. No live capital.
"""

from execution.models import ExecutionResult, Fill, PortfolioState
from execution.simulator import TradeSimulator

__all__ = ["ExecutionResult", "Fill", "PortfolioState", "TradeSimulator"]
