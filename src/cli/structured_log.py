"""
Structured JSON event logger.

Emits one JSON object per line to stderr for log aggregators.

Optional webhook: when configured, decision-level events
(opportunity_sell_evaluated, trade_rejected, error) are POSTed to the URL.
"""

from __future__ import annotations

import json
import logging
import sys
import urllib.request
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger("rebal.events")


class StructuredEventLogger:
    """Emit structured JSON events to stderr and optional webhook."""

    def __init__(
        self,
        user_id: str,
        *,
        enabled: bool = True,
        webhook_url: str = "",
        stream: Any = None,
    ) -> None:
        self._user_id = user_id
        self._enabled = enabled
        self._webhook_url = webhook_url.strip()
        self._stream = stream or sys.stderr
        self._ALERT_EVENTS = {
            "opportunity_sell_evaluated",
            "trade_rejected",
            "error",
        }

    def _emit(self, event_type: str, **fields: Any) -> dict:
        record = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "event": event_type,
            "user_id": self._user_id,
            **fields,
        }
        if self._enabled:
            self._stream.write(json.dumps(record) + "\n")
            self._stream.flush()

        if self._webhook_url and event_type in self._ALERT_EVENTS:
            self._post_webhook(record)

        return record

    def _post_webhook(self, record: dict) -> None:
        try:
            data = json.dumps(record).encode("utf-8")
            req = urllib.request.Request(
                self._webhook_url,
                data=data,
                headers={"Content-Type": "application/json"},
                method="POST",
            )
            urllib.request.urlopen(req, timeout=5)
        except Exception as exc:
            logger.warning("Webhook POST failed: %s", exc)

    def fill_executed(
        self,
        asset_id: str,
        side: str,
        quantity: float,
        price: float,
        fee: float,
        slippage_bps: float,
    ) -> dict:
        return self._emit(
            "fill_executed",
            asset_id=asset_id,
            side=side,
            quantity=quantity,
            price=price,
            fee=fee,
            slippage_bps=slippage_bps,
        )

    def trade_rejected(self, asset_id: str, side: str, reason: str) -> dict:
        return self._emit("trade_rejected", asset_id=asset_id, side=side, reason=reason)

    def opportunity_sell_evaluated(
        self,
        buy_asset_id: str,
        decision: str,
        reason: str,
        sell_orders: int,
        projected_proceeds: float,
    ) -> dict:
        return self._emit(
            "opportunity_sell_evaluated",
            buy_asset_id=buy_asset_id,
            decision=decision,
            reason=reason,
            sell_orders=sell_orders,
            projected_proceeds=round(projected_proceeds, 2),
        )

    def backtest_complete(self, fills: int, rejections: int, return_pct: float) -> dict:
        return self._emit(
            "backtest_complete",
            fills=fills,
            rejections=rejections,
            return_pct=round(return_pct, 4),
        )

    def error(self, message: str, detail: str = "") -> dict:
        return self._emit("error", message=message, detail=detail)
