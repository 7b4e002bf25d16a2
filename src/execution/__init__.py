"""
Paper execution: OrderRequest -> virtual position, wallet and exit history.
Restart-safe. No live capital.
"""

from execution.dispatcher import ExecutionTicket, OrderDispatcher, TicketState
from execution.models import ExitEvent, ExitReason, Fill, Position, PositionSide, PositionStatus, Wallet
from execution.paper_ledger import EOD_SESSIONS, VirtualLedger, allocate_lots

__all__ = [
    "EOD_SESSIONS",
    "allocate_lots",
    "ExecutionTicket",
    "ExitEvent",
    "ExitReason",
    "Fill",
    "OrderDispatcher",
    "Position",
    "PositionSide",
    "PositionStatus",
    "TicketState",
    "VirtualLedger",
    "Wallet",
]
