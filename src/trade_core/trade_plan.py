"""
Trade Plan Builder: Signal + config -> TradePlan.

Prefers the stop/target levels enriched by the signal producer; falls back
to levels synthesized from a volatility proxy and R-multiples. Also owns
strike selection (price-bucketed interval, one strike out of the money).
"""

from __future__ import annotations

import math

from config.engine_config import EngineConfig, StrikesConfig
from trade_core.contracts import (
    Direction,
    OptionType,
    PlanSource,
    Signal,
    Targets,
    TradePlan,
    pad_targets,
)
from trade_core.errors import PlanInvalid


def _round_to(value: float, step: float) -> float:
    """Round half-up to the nearest multiple of *step*."""
    return math.floor(value / step + 0.5) * step


def strike_interval(price: float, strikes: StrikesConfig | None = None) -> float:
    """Return the strike spacing for an underlying trading at *price*."""
    strikes = strikes or StrikesConfig()
    for bucket in strikes.buckets:
        if price > bucket.above:
            return bucket.interval
    return strikes.default_interval


def otm_strike(price: float, direction: Direction, strikes: StrikesConfig | None = None) -> float:
    """One interval out of the money: above ATM for calls, below for puts."""
    interval = strike_interval(price, strikes)
    atm = _round_to(price, interval)
    if direction is Direction.BULLISH:
        return atm + interval
    return atm - interval


def risk_reward(entry: float, stop: float, target1: float | None) -> float:
    """|target1 - entry| / |entry - stop|; 0 when there is no risk or no target."""
    risk = abs(entry - stop)
    if risk == 0 or target1 is None:
        return 0.0
    return round(abs(target1 - entry) / risk, 2)


def _volatility_proxy(signal: Signal, config: EngineConfig) -> float:
    if signal.atr is not None and signal.atr > 0:
        return signal.atr
    if signal.band_upper is not None and signal.band_lower is not None:
        width = signal.band_upper - signal.band_lower
        if width > 0:
            return width / config.plan.band_width_divisor
    return signal.entry_price * config.plan.entry_fraction


def _check_direction(direction: Direction, entry: float, stop: float, targets: Targets) -> None:
    """Raise PlanInvalid unless stop < entry < t1 < t2 ... (inverted for BEARISH)."""
    sign = direction.sign
    if (entry - stop) * sign <= 0:
        raise PlanInvalid(
            f"Stop {stop} is on the wrong side of entry {entry} for {direction.value}"
        )
    previous = entry
    for i, target in enumerate(targets, 1):
        if target is None:
            continue
        if (target - previous) * sign <= 0:
            raise PlanInvalid(
                f"Target T{i} {target} is not beyond {previous} for {direction.value}"
            )
        previous = target


def build_trade_plan(signal: Signal, config: EngineConfig) -> TradePlan:
    """Derive the equity-level plan for *signal*.

    Parameters
    ----------
    signal:
        Inbound signal. When both ``stop_loss`` and the first target are
        present they are used verbatim.
    config:
        Engine configuration (fallback multiples, strike table).

    Returns
    -------
    TradePlan
        Immutable plan including the strike to trade if an option is chosen.

    Raises
    ------
    PlanInvalid
        If entry <= 0, or the levels are inconsistent with the direction.
    """
    entry = signal.entry_price
    if entry is None or entry <= 0:
        raise PlanInvalid(f"Entry price must be positive, got {entry}")

    direction = signal.direction
    proxy = _volatility_proxy(signal, config)

    if signal.stop_loss is not None and signal.target1 is not None:
        stop = float(signal.stop_loss)
        targets = pad_targets(signal.targets)
        source = PlanSource.ENRICHED
        _check_direction(direction, entry, stop, targets)
        if signal.risk_reward is not None and signal.risk_reward > 0:
            rr = float(signal.risk_reward)
        else:
            rr = risk_reward(entry, stop, targets[0])
    else:
        distance = proxy * config.plan.stop_multiplier
        if distance <= 0:
            raise PlanInvalid("Cannot derive a stop distance from the signal")
        stop = round(entry - direction.sign * distance, 2)
        targets = pad_targets(
            round(entry + direction.sign * distance * m, 2)
            for m in config.plan.target_multiples
        )
        source = PlanSource.FALLBACK
        _check_direction(direction, entry, stop, targets)
        rr = risk_reward(entry, stop, targets[0])

    interval = strike_interval(entry, config.strikes)
    strike = signal.option_strike or otm_strike(entry, direction, config.strikes)

    return TradePlan(
        direction=direction,
        entry=entry,
        stop_loss=stop,
        targets=targets,
        risk_reward=rr,
        atr=round(proxy, 4),
        option_type=signal.option_type or OptionType.for_direction(direction),
        strike=strike,
        strike_interval=interval,
        source=source,
    )
