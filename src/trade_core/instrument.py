"""
Instrument Resolver: Signal + TradePlan -> InstrumentSelection.

Decision order, first match wins:
    1. Real option quote (flag set, LTP > 0)          -> OPTION
    2. Real futures quote (flag set, LTP > 0)         -> FUTURES
    3. Exchange whose scrip is itself the futures     -> FUTURES on own scrip
    4. Any availability flag present, nothing usable  -> NONE (terminal)
    5. Legacy signal without availability flags       -> OPTION, synthetic premium
"""

from __future__ import annotations

import math

from config.engine_config import EngineConfig, SyntheticPremiumConfig
from trade_core.contracts import (
    InstrumentMode,
    InstrumentSelection,
    OptionType,
    Signal,
    TradePlan,
)


def estimate_synthetic_premium(
    spot: float,
    strike: float,
    option_type: OptionType,
    config: SyntheticPremiumConfig | None = None,
) -> float:
    """Conservative premium estimate: intrinsic + time value - OTM decay.

    time value = spot × IV × sqrt(days / 365)
    """
    config = config or SyntheticPremiumConfig()
    if option_type is OptionType.CE:
        intrinsic = max(0.0, spot - strike)
    else:
        intrinsic = max(0.0, strike - spot)
    time_value = spot * config.implied_vol * math.sqrt(config.days_to_expiry / 365)
    otm_distance = abs(strike - spot)
    premium = round(intrinsic + time_value - config.otm_decay * otm_distance, 2)
    return max(config.min_premium, premium)


def _has_quote(flag: bool | None, ltp: float | None) -> bool:
    return flag is True and ltp is not None and ltp > 0


def _option_symbol(signal: Signal, strike: float, option_type: OptionType) -> str:
    return f"{signal.symbol or signal.scrip_code} {strike:g} {option_type.value}"


def resolve_instrument(signal: Signal, plan: TradePlan, config: EngineConfig) -> InstrumentSelection:
    """Pick the tradable instrument for *signal*. Pure; no quotes are fetched."""
    if _has_quote(signal.option_available, signal.option_ltp):
        strike = signal.option_strike or plan.strike
        option_type = signal.option_type or plan.option_type
        return InstrumentSelection(
            mode=InstrumentMode.OPTION,
            scrip_code=signal.option_scrip_code or signal.scrip_code,
            instrument_symbol=signal.option_symbol or _option_symbol(signal, strike, option_type),
            exchange=signal.option_exchange or signal.exchange,
            strike=strike,
            option_type=option_type,
            lot_size=signal.option_lot_size or 1,
            multiplier=signal.option_multiplier or 1.0,
            premium=float(signal.option_ltp),
            delta_mapped=True,
            reason="option quote",
        )

    if _has_quote(signal.futures_available, signal.futures_ltp):
        return InstrumentSelection(
            mode=InstrumentMode.FUTURES,
            scrip_code=signal.futures_scrip_code or signal.scrip_code,
            instrument_symbol=signal.futures_symbol or f"{signal.symbol or signal.scrip_code} FUT",
            exchange=signal.futures_exchange or signal.exchange,
            lot_size=signal.futures_lot_size or 1,
            multiplier=signal.futures_multiplier or 1.0,
            premium=float(signal.futures_ltp),
            reason="futures fallback",
        )

    if signal.exchange in config.instruments.self_futures_exchanges:
        return InstrumentSelection(
            mode=InstrumentMode.FUTURES,
            scrip_code=signal.scrip_code,
            instrument_symbol=signal.symbol or signal.scrip_code,
            exchange=signal.exchange,
            lot_size=signal.futures_lot_size or signal.option_lot_size or 1,
            multiplier=signal.futures_multiplier or 1.0,
            premium=signal.entry_price,
            reason="instrument is its own futures contract",
        )

    if signal.option_available is not None or signal.futures_available is not None:
        return InstrumentSelection(
            mode=InstrumentMode.NONE,
            reason="No derivative available for this signal",
        )

    premium = estimate_synthetic_premium(
        plan.entry, plan.strike, plan.option_type, config.synthetic_premium
    )
    return InstrumentSelection(
        mode=InstrumentMode.OPTION,
        scrip_code=signal.scrip_code,
        instrument_symbol=_option_symbol(signal, plan.strike, plan.option_type),
        exchange=signal.exchange,
        strike=plan.strike,
        option_type=plan.option_type,
        lot_size=1,
        multiplier=1.0,
        premium=premium,
        synthetic_premium=True,
        delta_mapped=True,
        reason="estimated premium (no enrichment)",
    )
