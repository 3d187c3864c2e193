"""
Structured journal: append-only JSON lines. Fills, round-trip trades, rejections
and opportunity sell evaluations (stored verbatim for audit).
"""

import json
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from trade_core.contracts import OpportunitySellPlan
from trade_core.opportunity_sell import plan_to_dict


def _serialize(obj: Any) -> Any:
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if hasattr(obj, "__dict__") and not isinstance(obj, type):
        return {k: _serialize(v) for k, v in vars(obj).items() if not k.startswith("_")}
    if isinstance(obj, dict):
        return {k: _serialize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_serialize(x) for x in obj]
    return obj


class JournalWriter:
    """Append-only journal. Each line is a JSON object with event type and payload."""

    def __init__(self, path: str | Path, *, echo_stdout: bool = False) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._echo = echo_stdout

    @property
    def path(self) -> Path:
        return self._path

    def _write(self, event_type: str, payload: dict) -> None:
        record = {"ts_utc": datetime.now(timezone.utc).isoformat(), "event": event_type, **payload}
        line = json.dumps(_serialize(record)) + "\n"
        with open(self._path, "a") as f:
            f.write(line)
        if self._echo:
            print(line.rstrip())

    def fill(self, asset_id: str, side: str, quantity: float, price: float, fee: float, slippage_bps: float, **extra: Any) -> None:
        self._write(
            "fill",
            {"asset_id": asset_id, "side": side, "quantity": quantity, "price": price, "fee": fee, "slippage_bps": slippage_bps, **extra},
        )

    def trade(self, asset_id: str, entry_price: float, exit_price: float, quantity: float, realized_pnl: float, **extra: Any) -> None:
        self._write(
            "trade",
            {"asset_id": asset_id, "entry_price": entry_price, "exit_price": exit_price, "quantity": quantity, "realized_pnl": realized_pnl, **extra},
        )

    def rejection(self, asset_id: str, side: str, reason: str, **extra: Any) -> None:
        self._write("rejection", {"asset_id": asset_id, "side": side, "reason": reason, **extra})

    def opportunity_sell_evaluation(
        self,
        plan: OpportunitySellPlan,
        user_id: str,
        *,
        is_backtest: bool = False,
        backtest_id: str | None = None,
    ) -> None:
        """Record one evaluation. The full plan goes under ``evaluation_details`` unchanged."""
        self._write(
            "opportunity_sell_evaluation",
            {
                "user_id": user_id,
                "buy_signal_asset_id": plan.buy_signal_asset_id,
                "buy_signal_confidence": plan.buy_signal_confidence,
                "decision": plan.decision.value,
                "reason": plan.reason,
                "shortfall": plan.shortfall,
                "projected_proceeds": plan.projected_proceeds,
                "sell_order_count": len(plan.sell_orders),
                "is_backtest": is_backtest,
                "backtest_id": backtest_id,
                "evaluation_details": plan_to_dict(plan),
            },
        )
