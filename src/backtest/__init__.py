"""
Backtest engine: replay trade signals through the simulator, collect fills and metrics.
"""

from backtest.runner import BacktestResult, Rejection, SignalAction, TradeSignal, run_backtest

__all__ = ["BacktestResult", "Rejection", "SignalAction", "TradeSignal", "run_backtest"]
