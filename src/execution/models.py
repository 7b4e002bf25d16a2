"""Position, Wallet, Fill, ExitEvent for the virtual ledger."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class PositionSide(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"

    @property
    def sign(self) -> int:
        return 1 if self is PositionSide.LONG else -1


class PositionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PARTIAL_EXIT = "PARTIAL_EXIT"
    CLOSED = "CLOSED"


class ExitReason(str, Enum):
    STOP_HIT = "STOP_HIT"
    TARGET_HIT = "TARGET_HIT"
    PARTIAL_TARGET = "PARTIAL_TARGET"
    TRAILING_STOP = "TRAILING_STOP"
    MANUAL = "MANUAL"
    EOD = "EOD"


@dataclass
class Fill:
    trade_id: str
    position_id: str
    signal_id: str
    scrip_code: str
    side: str  # "BUY" | "SELL"
    quantity: int
    price: float
    timestamp: datetime
    duplicate: bool = False


@dataclass
class ExitEvent:
    position_id: str
    level: str  # "T1".."T4" | "T1-EQ".."T4-EQ" | "SL" | "SL-EQ" | "TRAIL" | "MANUAL" | "EOD"
    quantity: int
    price: float
    pnl: float
    reason: ExitReason
    timestamp: datetime


@dataclass
class Position:
    id: str
    signal_id: str
    trade_id: str
    strategy: str
    scrip_code: str
    instrument_symbol: str
    instrument_type: str
    exchange: str
    side: PositionSide
    quantity: int
    initial_quantity: int
    lot_size: int
    point_value: float
    avg_entry: float
    current_price: float
    stop_loss: float
    targets: list[Optional[float]]
    tranches: list[int]
    targets_hit: int
    trailing_stop: float | None
    tp1_hit: bool
    status: PositionStatus
    realized_pnl: float
    opened_at: datetime
    last_updated: datetime
    version: int
    option_type: str | None = None
    strike: float | None = None
    delta: float = 1.0
    equity_spot: float | None = None
    equity_stop_loss: float | None = None
    equity_targets: list[Optional[float]] = field(default_factory=list)
    exit_reason: ExitReason | None = None
    closed_at: datetime | None = None

    @property
    def unrealized_pnl(self) -> float:
        """Recomputed from the current price; zero once closed."""
        if self.status is PositionStatus.CLOSED:
            return 0.0
        move = (self.current_price - self.avg_entry) * self.side.sign
        return round(move * self.quantity * self.point_value, 2)

    @property
    def equity_sign(self) -> int:
        """Profit direction of the underlying: calls and longs gain as it rises."""
        if self.option_type == "PE":
            return -1
        if self.option_type == "CE":
            return 1
        return self.side.sign

    @property
    def effective_stop(self) -> float:
        """The tighter of the stop-loss and the trailing stop."""
        if self.trailing_stop is None:
            return self.stop_loss
        if self.side is PositionSide.LONG:
            return max(self.stop_loss, self.trailing_stop)
        return min(self.stop_loss, self.trailing_stop)

    @property
    def blocked_margin(self) -> float:
        return round(self.avg_entry * self.quantity * self.point_value, 2)


@dataclass
class Wallet:
    initial_capital: float
    capital: float
    blocked_margin: float
    realized_pnl: float
    unrealized_pnl: float
    day_pnl: float
    total_trades_count: int
    win_count: int
    loss_count: int
    version: int
    last_updated: datetime
    open_positions: list[Position] = field(default_factory=list)

    @property
    def available_margin(self) -> float:
        return round(max(0.0, self.capital - self.blocked_margin), 2)

    @property
    def open_positions_count(self) -> int:
        return len(self.open_positions)

    @property
    def win_rate(self) -> float:
        closed = self.win_count + self.loss_count
        return round(self.win_count / closed * 100, 2) if closed else 0.0
