"""
Structured journal: append-only JSON lines. One line per decision, fill, exit or rejection.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any


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

    def _write(self, event_type: str, payload: dict) -> None:
        record = {"ts_utc": datetime.now(timezone.utc).isoformat(), "event": event_type, **payload}
        line = json.dumps(_serialize(record)) + "\n"
        with open(self._path, "a") as f:
            f.write(line)
        if self._echo:
            print(line.rstrip())

    def decision(self, signal_id: str, strategy: str, status: str, order: Any = None, warnings: list[str] | None = None, **extra: Any) -> None:
        self._write(
            "decision",
            {"signal_id": signal_id, "strategy": strategy, "status": status, "order": order, "warnings": warnings or [], **extra},
        )

    def rejection(self, signal_id: str, strategy: str, reason: str, message: str, **extra: Any) -> None:
        self._write("rejection", {"signal_id": signal_id, "strategy": strategy, "reason": reason, "message": message, **extra})

    def fill(self, trade_id: str, signal_id: str, symbol: str, side: str, qty: float, price: float, **extra: Any) -> None:
        self._write("fill", {"trade_id": trade_id, "signal_id": signal_id, "symbol": symbol, "side": side, "qty": qty, "price": price, **extra})

    def dispatch_error(self, signal_id: str, message: str, **extra: Any) -> None:
        self._write("dispatch_error", {"signal_id": signal_id, "message": message, **extra})

    def exit(self, position_id: str, symbol: str, level: str, qty: float, price: float, pnl: float, reason: str, **extra: Any) -> None:
        self._write(
            "exit",
            {"position_id": position_id, "symbol": symbol, "level": level, "qty": qty, "price": price, "pnl": pnl, "reason": reason, **extra},
        )
