"""
Error taxonomy for the signal-to-order engine and the ledger boundary.

TradeUnavailable subclasses are resolved inside the engine into a DISABLED
TradeDecision. DispatchFailure and LedgerInvariantViolation always surface
to the caller.
"""


class TradeEngineError(Exception):
    """Base class for all engine and ledger errors."""


class TradeUnavailable(TradeEngineError):
    """The signal cannot be turned into an order right now."""


class PlanInvalid(TradeUnavailable):
    """Entry <= 0, or stop/targets inconsistent with direction."""


class NoInstrument(TradeUnavailable):
    """No derivative is available for the signal."""


class BelowConfidenceThreshold(TradeUnavailable):
    """Confidence is below the minimum sizing threshold."""


class DispatchFailure(TradeEngineError):
    """The ledger refused or failed to accept an order. No mutation occurred."""


class StaleCapital(DispatchFailure):
    """Wallet changed between the capital read and the order submission."""


class LedgerInvariantViolation(TradeEngineError):
    """A mutation would break a position invariant (e.g. loosening a trailing stop)."""
