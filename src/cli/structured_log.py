"""
Structured JSON event logger.

Emits one JSON object per line to stderr. Events are designed to be
parsed by log aggregators (Grafana Loki, CloudWatch, ELK).

Optional webhook: when configured, alert events (order_filled, order_error,
insufficient_funds, position_exit, error) are POSTed to the URL.
"""

from __future__ import annotations

import json
import logging
import sys
import urllib.request
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger("trade_engine.events")


class StructuredEventLogger:
    """Emit structured JSON events to stderr and optional webhook."""

    def __init__(
        self,
        strategy: str,
        *,
        enabled: bool = True,
        webhook_url: str = "",
        stream: Any = None,
    ) -> None:
        self._strategy = strategy
        self._enabled = enabled
        self._webhook_url = webhook_url.strip()
        self._stream = stream or sys.stderr
        self._ALERT_EVENTS = {
            "order_filled",
            "order_error",
            "insufficient_funds",
            "position_exit",
            "error",
        }

    def _emit(self, event_type: str, **fields: Any) -> dict:
        record = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "event": event_type,
            "strategy": self._strategy,
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
        except (OSError, ValueError) as exc:
            logger.warning("Webhook POST failed: %s", exc)

    def order_sending(self, signal_id: str, symbol: str, lots: int, quantity: int, price: float) -> dict:
        return self._emit(
            "order_sending",
            signal_id=signal_id,
            symbol=symbol,
            lots=lots,
            qty=quantity,
            price=price,
        )

    def order_filled(self, signal_id: str, trade_id: str, price: float, duplicate: bool = False) -> dict:
        return self._emit(
            "order_filled",
            signal_id=signal_id,
            trade_id=trade_id,
            price=price,
            duplicate=duplicate,
        )

    def order_error(self, signal_id: str, message: str) -> dict:
        return self._emit("order_error", signal_id=signal_id, message=message)

    def trade_disabled(self, signal_id: str, reason: str, message: str) -> dict:
        return self._emit("trade_disabled", signal_id=signal_id, reason=reason, message=message)

    def insufficient_funds(self, signal_id: str, cost_per_lot: float, credit_amount: float) -> dict:
        return self._emit(
            "insufficient_funds",
            signal_id=signal_id,
            cost_per_lot=cost_per_lot,
            credit_amount=credit_amount,
        )

    def position_exit(self, position_id: str, level: str, qty: int, price: float, pnl: float, reason: str) -> dict:
        return self._emit(
            "position_exit",
            position_id=position_id,
            level=level,
            qty=qty,
            price=price,
            pnl=round(pnl, 2),
            reason=reason,
        )

    def trailing_updated(self, position_id: str, trailing_stop: float) -> dict:
        return self._emit("trailing_updated", position_id=position_id, trailing_stop=trailing_stop)

    def error(self, message: str, detail: str = "") -> dict:
        return self._emit("error", message=message, detail=detail)
