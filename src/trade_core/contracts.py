"""
Data contracts for trade-core: Signal, TradePlan, InstrumentSelection,
OptionLevels, PositionSizing, OrderRequest, CapitalSnapshot, TradeDecision.

trade-core consumes a Signal plus a CapitalSnapshot and produces a
TradeDecision carrying an OrderRequest. No I/O; these are plain dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Direction(str, Enum):
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"

    @property
    def sign(self) -> int:
        return 1 if self is Direction.BULLISH else -1


class OptionType(str, Enum):
    CE = "CE"
    PE = "PE"

    @classmethod
    def for_direction(cls, direction: Direction) -> "OptionType":
        return cls.CE if direction is Direction.BULLISH else cls.PE


class InstrumentMode(str, Enum):
    OPTION = "OPTION"
    FUTURES = "FUTURES"
    NONE = "NONE"


class OrderSide(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class PlanSource(str, Enum):
    """Where the plan's levels came from."""

    ENRICHED = "ENRICHED"    # stop/target supplied by the signal producer
    FALLBACK = "FALLBACK"    # synthesized from the volatility proxy


class DecisionStatus(str, Enum):
    READY = "READY"
    DISABLED = "DISABLED"


class DisableReason(str, Enum):
    PLAN_INVALID = "PLAN_INVALID"
    NO_INSTRUMENT = "NO_INSTRUMENT"
    BELOW_CONFIDENCE = "BELOW_CONFIDENCE"


Targets = tuple[Optional[float], Optional[float], Optional[float], Optional[float]]


def pad_targets(values) -> Targets:
    """Normalize up to four target values into a fixed 4-slot tuple."""
    slots = [None if v is None else float(v) for v in list(values)[:4]]
    slots += [None] * (4 - len(slots))
    return tuple(slots)  # type: ignore[return-value]


# ---------------------------------------------------------------------------
# Inbound signal
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Signal:
    """A directional, equity-priced trading signal from an upstream scorer.

    Derivative enrichment fields are optional. ``option_available`` and
    ``futures_available`` are tri-state: None means the producer never
    set the flag (legacy signal).
    """

    signal_id: str
    scrip_code: str
    direction: Direction
    entry_price: float
    confidence: float
    strategy: str = "GENERIC"
    symbol: str = ""
    exchange: str = "N"
    stop_loss: float | None = None
    targets: Targets = (None, None, None, None)
    risk_reward: float | None = None
    atr: float | None = None
    band_upper: float | None = None
    band_middle: float | None = None
    band_lower: float | None = None
    # option enrichment
    option_available: bool | None = None
    option_scrip_code: str | None = None
    option_symbol: str | None = None
    option_ltp: float | None = None
    option_strike: float | None = None
    option_type: OptionType | None = None
    option_lot_size: int | None = None
    option_multiplier: float | None = None
    option_exchange: str | None = None
    # futures enrichment
    futures_available: bool | None = None
    futures_scrip_code: str | None = None
    futures_symbol: str | None = None
    futures_ltp: float | None = None
    futures_lot_size: int | None = None
    futures_multiplier: float | None = None
    futures_expiry: str | None = None
    futures_exchange: str | None = None

    @property
    def target1(self) -> float | None:
        return self.targets[0]


# ---------------------------------------------------------------------------
# Engine stage outputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TradePlan:
    """Normalized equity-level plan. Immutable once derived."""

    direction: Direction
    entry: float
    stop_loss: float
    targets: Targets
    risk_reward: float
    atr: float
    option_type: OptionType
    strike: float
    strike_interval: float
    source: PlanSource

    @property
    def risk(self) -> float:
        return abs(self.entry - self.stop_loss)


@dataclass(frozen=True)
class InstrumentSelection:
    mode: InstrumentMode
    scrip_code: str | None = None
    instrument_symbol: str | None = None
    exchange: str | None = None
    strike: float | None = None
    option_type: OptionType | None = None
    lot_size: int = 1
    multiplier: float = 1.0
    premium: float = 0.0
    synthetic_premium: bool = False
    delta_mapped: bool = False    # levels re-expressed via delta (options only)
    reason: str = ""

    @property
    def is_tradable(self) -> bool:
        return self.mode is not InstrumentMode.NONE


@dataclass(frozen=True)
class OptionLevels:
    """Derivative-premium stop/targets re-expressed from equity levels."""

    stop_loss: float
    targets: Targets
    delta: float


@dataclass(frozen=True)
class PositionSizing:
    lots: int
    quantity: int
    disabled: bool
    insufficient_funds: bool
    credit_amount: float
    alloc_pct: float
    cost_per_lot: float = 0.0
    allocated_capital: float = 0.0


@dataclass(frozen=True)
class CapitalSnapshot:
    """Wallet capital read immediately before a sizing decision."""

    capital: float
    version: int
    read_at: datetime


@dataclass(frozen=True)
class OrderRequest:
    """One atomic submission to the ledger."""

    signal_id: str
    scrip_code: str
    instrument_symbol: str
    instrument_type: InstrumentMode
    underlying_scrip_code: str
    underlying_symbol: str
    side: OrderSide
    quantity: int
    lots: int
    lot_size: int
    multiplier: float
    entry_price: float
    stop_loss: float
    targets: Targets
    equity_spot: float
    equity_stop_loss: float
    equity_targets: Targets
    delta: float
    strategy: str
    exchange: str
    direction: Direction
    confidence: float
    option_type: OptionType | None = None
    strike: float | None = None


@dataclass(frozen=True)
class TradeDecision:
    """Output of one pass through the engine.

    DISABLED decisions carry the reason and whatever stages completed;
    they must never be dispatched.
    """

    status: DecisionStatus
    signal: Signal
    strategy: str
    capital: CapitalSnapshot
    reason: DisableReason | None = None
    message: str = ""
    plan: TradePlan | None = None
    selection: InstrumentSelection | None = None
    levels: OptionLevels | None = None
    sizing: PositionSizing | None = None
    order: OrderRequest | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def is_ready(self) -> bool:
        return self.status is DecisionStatus.READY
