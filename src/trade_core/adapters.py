"""
Strategy adapters: raw strategy payload (camelCase dict) -> Signal.

Each strategy publishes its own record shape. An adapter only shapes the
record; everything downstream is shared. Register new shapes with
``@register("TAG")``.
"""

from __future__ import annotations

import math
from typing import Any, Callable

from trade_core.contracts import Direction, OptionType, Signal, pad_targets

Adapter = Callable[[dict[str, Any]], Signal]

_ADAPTERS: dict[str, Adapter] = {}


def register(tag: str) -> Callable[[Adapter], Adapter]:
    def decorator(fn: Adapter) -> Adapter:
        _ADAPTERS[tag.upper()] = fn
        return fn
    return decorator


def available_strategies() -> list[str]:
    return sorted(_ADAPTERS)


def adapt_signal(strategy: str, raw: dict[str, Any]) -> Signal:
    """Shape *raw* with the adapter registered for *strategy*.

    Raises ValueError for an unknown strategy tag.
    """
    tag = (strategy or "").upper()
    adapter = _ADAPTERS.get(tag)
    if adapter is None:
        raise ValueError(
            f"Unknown strategy {strategy!r}; expected one of {', '.join(available_strategies())}"
        )
    return adapter(raw)


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _num(raw: dict[str, Any], key: str) -> float | None:
    value = raw.get(key)
    if value is None or value == "":
        return None
    return float(value)


def _int(raw: dict[str, Any], key: str) -> int | None:
    value = _num(raw, key)
    return None if value is None else int(value)


def _flag(raw: dict[str, Any], key: str) -> bool | None:
    value = raw.get(key)
    if value is None:
        return None
    return bool(value)


def _direction(raw: dict[str, Any]) -> Direction:
    value = str(raw.get("direction", "")).upper()
    if value in ("BULLISH", "LONG", "BUY"):
        return Direction.BULLISH
    if value in ("BEARISH", "SHORT", "SELL"):
        return Direction.BEARISH
    raise ValueError(f"Signal has no tradable direction: {raw.get('direction')!r}")


def _signal_id(strategy: str, raw: dict[str, Any]) -> str:
    if raw.get("signalId"):
        return str(raw["signalId"])
    stamp = raw.get("triggerTimeEpoch") or raw.get("timestamp") or raw.get("triggerTime") or "0"
    return f"{strategy}-{raw['scripCode']}-{stamp}"


def _enrichment(raw: dict[str, Any]) -> dict[str, Any]:
    """Option/futures enrichment fields shared by every strategy payload."""
    option_type = raw.get("optionType")
    return {
        "option_available": _flag(raw, "optionAvailable"),
        "option_scrip_code": raw.get("optionScripCode"),
        "option_symbol": raw.get("optionSymbol"),
        "option_ltp": _num(raw, "optionLtp"),
        "option_strike": _num(raw, "optionStrike"),
        "option_type": OptionType(option_type) if option_type else None,
        "option_lot_size": _int(raw, "optionLotSize"),
        "option_multiplier": _num(raw, "optionMultiplier"),
        "option_exchange": raw.get("optionExchange"),
        "futures_available": _flag(raw, "futuresAvailable"),
        "futures_scrip_code": raw.get("futuresScripCode"),
        "futures_symbol": raw.get("futuresSymbol"),
        "futures_ltp": _num(raw, "futuresLtp"),
        "futures_lot_size": _int(raw, "futuresLotSize"),
        "futures_multiplier": _num(raw, "futuresMultiplier"),
        "futures_expiry": raw.get("futuresExpiry"),
        "futures_exchange": raw.get("futuresExchange"),
    }


def _extend_targets(entry: float, risk: float, direction: Direction, first: float | None, multiples) -> list:
    """T1 from the producer, further targets at R-multiples that lie beyond it."""
    targets = [first]
    previous = first if first is not None else entry
    for m in multiples:
        level = round(entry + direction.sign * risk * m, 2)
        if (level - previous) * direction.sign > 0:
            targets.append(level)
            previous = level
        else:
            targets.append(None)
    return targets


# ---------------------------------------------------------------------------
# Strategy adapters
# ---------------------------------------------------------------------------


def _trigger_signal(strategy: str, raw: dict[str, Any], confidence: float, **extra: Any) -> Signal:
    """Shared shape for the trigger-style strategies (FUDKII, FUKAA, MERE)."""
    return Signal(
        signal_id=_signal_id(strategy, raw),
        strategy=strategy,
        scrip_code=str(raw["scripCode"]),
        symbol=raw.get("symbol") or "",
        exchange=raw.get("exchange") or "N",
        direction=_direction(raw),
        entry_price=float(raw["triggerPrice"]),
        confidence=confidence,
        stop_loss=_num(raw, "stopLoss"),
        targets=pad_targets(_num(raw, f"target{i}") for i in range(1, 5)),
        risk_reward=_num(raw, "riskReward"),
        band_upper=_num(raw, "bbUpper"),
        band_middle=_num(raw, "bbMiddle"),
        band_lower=_num(raw, "bbLower"),
        **extra,
        **_enrichment(raw),
    )


@register("FUDKII")
def adapt_fudkii(raw: dict[str, Any]) -> Signal:
    return _trigger_signal("FUDKII", raw, float(raw.get("triggerScore") or 0))


@register("FUKAA")
def adapt_fukaa(raw: dict[str, Any]) -> Signal:
    return _trigger_signal("FUKAA", raw, float(raw.get("triggerScore") or 0))


@register("MERE")
def adapt_mere(raw: dict[str, Any]) -> Signal:
    score = raw.get("mereScore")
    if score is None:
        score = raw.get("triggerScore") or 0
    return _trigger_signal("MERE", raw, float(score), atr=_num(raw, "atr30m"))


def pivot_confidence(raw: dict[str, Any]) -> int:
    """Deterministic confidence from HTF/LTF alignment, pivot structure, SMC and ML.

    Clamped to 55-97.
    """
    conf = 40.0
    conf += float(raw.get("htfStrength") or 0) * 20
    conf += 10 if raw.get("ltfConfirmed") else 0
    conf += min(10.0, float(raw.get("pivotNearbyLevels") or 0) * 1.5)
    conf += 7 if raw.get("hasConfirmedRetest") else 0
    conf += 5 if raw.get("hasActiveBreakout") else 0
    smc = sum(bool(raw.get(k)) for k in ("smcInOrderBlock", "smcNearFVG", "smcAtLiquidityZone"))
    conf += smc * 2

    ml_conf = raw.get("mlConfidence")
    if raw.get("mlAvailable") and ml_conf:
        is_long = _direction(raw) is Direction.BULLISH
        prediction = raw.get("mlPrediction")
        if (is_long and prediction == "BUY") or (not is_long and prediction == "SELL"):
            conf += _round_half_up(ml_conf * 8)
        elif prediction == "HOLD":
            conf -= 2
        else:
            conf -= _round_half_up(ml_conf * 5)
        if float(raw.get("mlVpinToxicity") or 0) > 0.7:
            conf -= 3

    return int(_clamp(_round_half_up(conf), 55, 97))


@register("PIVOT")
def adapt_pivot(raw: dict[str, Any]) -> Signal:
    direction = _direction(raw)
    entry = float(raw["entryPrice"])
    stop = _num(raw, "stopLoss")
    risk = _num(raw, "risk")
    if risk is None and stop is not None:
        risk = abs(entry - stop)
    targets = _extend_targets(entry, risk or 0.0, direction, _num(raw, "target"), (3, 4, 5))
    return Signal(
        signal_id=_signal_id("PIVOT", raw),
        strategy="PIVOT",
        scrip_code=str(raw["scripCode"]),
        symbol=raw.get("symbol") or "",
        exchange=raw.get("exchange") or "N",
        direction=direction,
        entry_price=entry,
        confidence=pivot_confidence(raw),
        stop_loss=stop,
        targets=pad_targets(targets),
        risk_reward=_num(raw, "riskReward"),
        atr=risk,
        **_enrichment(raw),
    )


@register("MICROALPHA")
def adapt_microalpha(raw: dict[str, Any]) -> Signal:
    direction = _direction(raw)
    entry = float(raw["entryPrice"])
    stop = _num(raw, "stopLoss")
    risk = abs(entry - stop) if stop is not None else 0.0
    targets = _extend_targets(entry, risk, direction, _num(raw, "target"), (3, 4))
    confidence = _clamp(_round_half_up(float(raw.get("absConviction") or 0)), 40, 97)
    return Signal(
        signal_id=_signal_id("MICROALPHA", raw),
        strategy="MICROALPHA",
        scrip_code=str(raw["scripCode"]),
        symbol=raw.get("symbol") or "",
        exchange=raw.get("exchange") or "N",
        direction=direction,
        entry_price=entry,
        confidence=confidence,
        stop_loss=stop,
        targets=pad_targets(targets),
        risk_reward=_num(raw, "riskReward"),
        atr=risk if risk > 0 else None,
        **_enrichment(raw),
    )


@register("GENERIC")
def adapt_generic(raw: dict[str, Any]) -> Signal:
    """Already-normalized payload: entryPrice, confidence, stopLoss, targets[]."""
    targets = raw.get("targets")
    if targets is None:
        targets = [_num(raw, f"target{i}") for i in range(1, 5)]
    strategy = str(raw.get("strategy") or "GENERIC").upper()
    return Signal(
        signal_id=_signal_id(strategy, raw),
        strategy=strategy,
        scrip_code=str(raw["scripCode"]),
        symbol=raw.get("symbol") or "",
        exchange=raw.get("exchange") or "N",
        direction=_direction(raw),
        entry_price=float(raw["entryPrice"]),
        confidence=float(raw.get("confidence") or 0),
        stop_loss=_num(raw, "stopLoss"),
        targets=pad_targets(targets),
        risk_reward=_num(raw, "riskReward"),
        atr=_num(raw, "atr"),
        band_upper=_num(raw, "bbUpper"),
        band_middle=_num(raw, "bbMiddle"),
        band_lower=_num(raw, "bbLower"),
        **_enrichment(raw),
    )
