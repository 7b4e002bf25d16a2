"""
Order dispatcher: READY TradeDecision -> ledger fill, tracked as an ExecutionTicket.

Ticket states:
    SENDING -> FILLED    ledger accepted the order
    SENDING -> ERROR     DispatchFailure / LedgerInvariantViolation (terminal, no retry)
    FILLED  -> DISMISSED after ``auto_dismiss_seconds``, observed via ``poll()``
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from trade_core.contracts import TradeDecision
from trade_core.errors import DispatchFailure, LedgerInvariantViolation

from execution.models import Fill
from execution.paper_ledger import VirtualLedger

logger = logging.getLogger("trade_engine.dispatch")


class TicketState(str, Enum):
    SENDING = "SENDING"
    FILLED = "FILLED"
    ERROR = "ERROR"
    DISMISSED = "DISMISSED"


@dataclass
class ExecutionTicket:
    signal_id: str
    symbol: str
    lots: int
    state: TicketState = TicketState.SENDING
    fill: Fill | None = None
    error: str = ""
    filled_at: float | None = None
    auto_dismiss_seconds: float = 3.0
    clock: Callable[[], float] = time.monotonic

    @property
    def fill_price(self) -> float | None:
        return self.fill.price if self.fill else None

    @property
    def trade_id(self) -> str | None:
        return self.fill.trade_id if self.fill else None

    def mark_filled(self, fill: Fill) -> None:
        self._require(TicketState.SENDING)
        self.fill = fill
        self.filled_at = self.clock()
        self.state = TicketState.FILLED

    def mark_error(self, message: str) -> None:
        self._require(TicketState.SENDING)
        self.error = message
        self.state = TicketState.ERROR

    def poll(self) -> TicketState:
        """Advance the timed FILLED -> DISMISSED transition if it is due."""
        if self.state is TicketState.FILLED and self.filled_at is not None:
            if self.clock() - self.filled_at >= self.auto_dismiss_seconds:
                self.state = TicketState.DISMISSED
        return self.state

    def dismiss(self) -> None:
        """User closes the overlay early. ERROR tickets stay ERROR."""
        if self.state is TicketState.FILLED:
            self.state = TicketState.DISMISSED

    def _require(self, state: TicketState) -> None:
        if self.state is not state:
            raise RuntimeError(f"Ticket {self.signal_id} is {self.state.value}, expected {state.value}")


class OrderDispatcher:
    """Submit READY decisions to the ledger. One call, one ticket; no retries."""

    def __init__(
        self,
        ledger: VirtualLedger,
        *,
        auto_dismiss_seconds: float = 3.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ledger = ledger
        self._auto_dismiss = auto_dismiss_seconds
        self._clock = clock

    def submit(self, decision: TradeDecision) -> ExecutionTicket:
        """Dispatch *decision*.

        A DISABLED decision is a programming error and raises ValueError.
        Ledger failures never raise: they come back as an ERROR ticket.
        """
        if not decision.is_ready or decision.order is None:
            raise ValueError(f"Cannot dispatch a {decision.status.value} decision: {decision.message}")

        order = decision.order
        ticket = ExecutionTicket(
            signal_id=order.signal_id,
            symbol=order.instrument_symbol,
            lots=order.lots,
            auto_dismiss_seconds=self._auto_dismiss,
            clock=self._clock,
        )
        try:
            fill = self._ledger.open_position(order, expected_version=decision.capital.version)
        except (DispatchFailure, LedgerInvariantViolation) as exc:
            logger.warning("Order for %s failed: %s", order.signal_id, exc)
            ticket.mark_error(str(exc))
            return ticket

        ticket.mark_filled(fill)
        return ticket
