"""
trade-core: pure signal-to-order translation and capital allocation.

No I/O, no network, no side effects. Consumes a Signal and a capital
snapshot, produces a TradeDecision. Fully deterministic and unit-testable.
"""

from trade_core.adapters import adapt_signal
from trade_core.contracts import (
    CapitalSnapshot,
    Direction,
    InstrumentMode,
    OrderRequest,
    Signal,
    TradeDecision,
    TradePlan,
)
from trade_core.pipeline import prepare_trade

__all__ = [
    "adapt_signal",
    "CapitalSnapshot",
    "Direction",
    "InstrumentMode",
    "OrderRequest",
    "prepare_trade",
    "Signal",
    "TradeDecision",
    "TradePlan",
]
