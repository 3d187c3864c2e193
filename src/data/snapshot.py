"""
Load evaluation snapshots and signal files (JSON). Timestamps normalized to UTC.

Snapshot layout::

    {
      "buy_signal": {"asset_id": "ETH", "confidence": 0.85, "required_amount": 20000},
      "available_cash": 5000,
      "portfolio_value": 100000,          # optional: cash + marked positions
      "positions": [
        {"asset_id": "BTC", "quantity": 0.5, "average_price": 40000,
         "entry_date": "2024-01-01T00:00:00Z"}
      ],
      "prices": {"BTC": 42000, "ETH": 2500},
      "now": "2024-01-10T00:00:00Z",      # optional
      "algo_rankings": {"BTC": 3},        # optional
      "enabled": true                     # optional
    }

Signal files are a JSON list of signal objects, or ``{"signals": [...]}``.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from trade_core.contracts import (
    DEFAULT_OPPORTUNITY_SELLING_CONFIG,
    OpportunitySellingUserConfig,
    OpportunitySellRequest,
    Position,
)

from backtest.runner import SignalAction, TradeSignal


class SnapshotError(Exception):
    """Raised when a snapshot or signal file is missing or malformed."""


def _utc_ts(raw: str) -> datetime:
    ts = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _read_json(path: str | Path) -> Any:
    p = Path(path)
    if not p.exists():
        raise SnapshotError(f"File not found: {p}")
    try:
        with open(p) as f:
            return json.load(f)
    except json.JSONDecodeError as exc:
        raise SnapshotError(f"{p.name} is not valid JSON: {exc}") from exc


def _opt_float(raw: dict[str, Any], key: str) -> float | None:
    value = raw.get(key)
    return None if value is None else float(value)


def _parse_position(raw: dict[str, Any]) -> Position:
    quantity = float(raw["quantity"])
    average_price = float(raw["average_price"])
    entry = raw.get("entry_date")
    return Position(
        asset_id=str(raw["asset_id"]),
        quantity=quantity,
        average_price=average_price,
        total_value=float(raw.get("total_value", quantity * average_price)),
        entry_date=_utc_ts(entry) if entry else None,
    )


def load_snapshot(
    path: str | Path,
    config: OpportunitySellingUserConfig = DEFAULT_OPPORTUNITY_SELLING_CONFIG,
) -> OpportunitySellRequest:
    """Build an OpportunitySellRequest from a JSON snapshot file.

    Raises
    ------
    SnapshotError
        If the file is missing, not JSON, or lacks a required field.
    """
    raw = _read_json(path)
    if not isinstance(raw, dict):
        raise SnapshotError("Snapshot must be a JSON object")

    try:
        buy = raw["buy_signal"]
        positions = {}
        for p_raw in raw.get("positions", []):
            position = _parse_position(p_raw)
            positions[position.asset_id] = position
        prices = {str(k): float(v) for k, v in (raw.get("prices") or {}).items()}
        cash = float(raw["available_cash"])

        if raw.get("portfolio_value") is not None:
            portfolio_value = float(raw["portfolio_value"])
        else:
            portfolio_value = cash + sum(
                p.quantity * prices.get(a, p.average_price) for a, p in positions.items()
            )

        return OpportunitySellRequest(
            buy_signal_asset_id=str(buy["asset_id"]),
            buy_signal_confidence=float(buy["confidence"]),
            required_buy_amount=float(buy["required_amount"]),
            available_cash=cash,
            portfolio_value=portfolio_value,
            positions=positions,
            current_prices=prices,
            config=config,
            enabled=bool(raw.get("enabled", True)),
            now=_utc_ts(raw["now"]) if raw.get("now") else None,
            algo_rankings={str(k): int(v) for k, v in (raw.get("algo_rankings") or {}).items()},
        )
    except KeyError as exc:
        raise SnapshotError(f"Snapshot is missing required field {exc}") from exc
    except (TypeError, ValueError) as exc:
        raise SnapshotError(f"Snapshot has an invalid value: {exc}") from exc


def _parse_signal(raw: dict[str, Any]) -> TradeSignal:
    return TradeSignal(
        timestamp=_utc_ts(raw["timestamp"]),
        asset_id=str(raw["asset_id"]),
        action=SignalAction(str(raw["action"]).upper()),
        price=float(raw["price"]),
        prices={str(k): float(v) for k, v in (raw.get("prices") or {}).items()},
        confidence=_opt_float(raw, "confidence"),
        quantity=_opt_float(raw, "quantity"),
        percentage=_opt_float(raw, "percentage"),
        daily_volume=_opt_float(raw, "daily_volume"),
    )


def load_signals(path: str | Path) -> list[TradeSignal]:
    """Load trade signals in file order.

    Raises
    ------
    SnapshotError
        If the file is missing, not JSON, or a signal is malformed.
    """
    raw = _read_json(path)
    if isinstance(raw, dict):
        raw = raw.get("signals")
    if not isinstance(raw, list):
        raise SnapshotError("Signal file must be a JSON list or an object with a 'signals' list")

    signals = []
    for i, s_raw in enumerate(raw):
        try:
            signals.append(_parse_signal(s_raw))
        except KeyError as exc:
            raise SnapshotError(f"Signal {i} is missing required field {exc}") from exc
        except (TypeError, ValueError) as exc:
            raise SnapshotError(f"Signal {i} has an invalid value: {exc}") from exc
    return signals
