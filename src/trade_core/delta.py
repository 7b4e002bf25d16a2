"""
Delta Mapper: re-express equity-level stop/targets as option-premium levels.

delta is approximated from moneyness and stored as an unsigned magnitude;
the option type carries the sign. Mapping is linear in the equity move:

    mapped_stop      = max(tick_floor, P - |E - S| × delta)
    mapped_target[i] = max(P + 0.01, P + |T[i] - E| × delta)

Levels are computed unrounded and rounded to 2 dp once. A premium move
below 0.01 is under price resolution: such targets collapse onto P + 0.01.
"""

from __future__ import annotations

import math

from config.engine_config import DeltaConfig
from trade_core.contracts import OptionLevels, OptionType, Targets, pad_targets
from trade_core.errors import PlanInvalid

PRICE_STEP = 0.01


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def approximate_delta(
    spot: float,
    strike: float,
    option_type: OptionType,
    config: DeltaConfig | None = None,
) -> float:
    """Approximate |delta| for an option struck at *strike* with the underlying at *spot*.

    LINEAR:   0.5 + slope × moneyness, with moneyness = (spot - strike) / spot
              (sign flipped for puts so ITM is always positive).
    LOGISTIC: 1 / (1 + exp(-steepness × m)), with m = (spot - strike) / strike
              (sign flipped for puts).

    Both are clamped to [floor, cap] and rounded to 2 dp.
    """
    config = config or DeltaConfig()
    if spot <= 0 or strike <= 0:
        raise PlanInvalid(f"Cannot approximate delta for spot={spot}, strike={strike}")
    sign = 1 if option_type is OptionType.CE else -1

    if config.model == "LOGISTIC":
        m = sign * (spot - strike) / strike
        raw = 1.0 / (1.0 + math.exp(-config.steepness * m))
    else:
        m = sign * (spot - strike) / spot
        raw = 0.5 + config.slope * m

    return round(_clamp(raw, config.floor, config.cap), 2)


def map_to_option_levels(
    premium: float,
    entry: float,
    stop: float,
    targets: Targets,
    strike: float,
    option_type: OptionType,
    config: DeltaConfig | None = None,
    delta: float | None = None,
) -> OptionLevels:
    """Map equity stop/targets onto the option premium.

    Parameters
    ----------
    premium:
        Option entry premium P.
    entry, stop, targets:
        Equity-level plan (E, S, T[]). Missing targets stay missing.
    strike, option_type:
        Contract used for the delta approximation.
    config:
        Delta model and tick floor.
    delta:
        Explicit |delta| to use instead of the approximation.

    Returns
    -------
    OptionLevels
        Stop strictly below premium, first target strictly above.

    Raises
    ------
    PlanInvalid
        If the premium is at or below the tick floor or delta is not in (0, 1].
    """
    config = config or DeltaConfig()
    tick = config.tick_floor
    if premium <= tick:
        raise PlanInvalid(f"Premium {premium} is at or below the tick floor {tick}")

    if delta is None:
        delta = approximate_delta(entry, strike, option_type, config)
    delta = abs(delta)
    if not 0 < delta <= 1:
        raise PlanInvalid(f"Delta must be in (0, 1], got {delta}")

    mapped_stop = max(tick, min(premium - abs(entry - stop) * delta, premium - tick))

    mapped: list[float | None] = []
    for target in targets:
        if target is None:
            mapped.append(None)
            continue
        level = max(premium + abs(target - entry) * delta, premium + PRICE_STEP)
        mapped.append(round(level, 2))

    return OptionLevels(
        stop_loss=round(mapped_stop, 2),
        targets=pad_targets(mapped),
        delta=round(delta, 4),
    )
