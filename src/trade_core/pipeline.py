"""
Pipeline orchestrator: chains Plan -> Instrument -> Delta -> Sizing -> OrderRequest.

Single entry point for turning one signal into a TradeDecision. Unavailable
trades (invalid plan, no instrument, low confidence) come back as DISABLED
decisions, never as exceptions.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from trade_core.contracts import (
    CapitalSnapshot,
    DecisionStatus,
    Direction,
    DisableReason,
    InstrumentMode,
    InstrumentSelection,
    OptionLevels,
    OrderRequest,
    OrderSide,
    PositionSizing,
    Signal,
    TradeDecision,
    TradePlan,
)
from trade_core.delta import map_to_option_levels
from trade_core.errors import BelowConfidenceThreshold, NoInstrument, PlanInvalid, TradeUnavailable
from trade_core.instrument import resolve_instrument
from trade_core.sizing import compute_lot_sizing
from trade_core.trade_plan import build_trade_plan

if TYPE_CHECKING:
    from config.engine_config import EngineConfig


def _disabled(
    signal: Signal,
    strategy: str,
    capital: CapitalSnapshot,
    reason: DisableReason,
    message: str,
    **stages,
) -> TradeDecision:
    """Build a DISABLED TradeDecision."""
    return TradeDecision(
        status=DecisionStatus.DISABLED,
        signal=signal,
        strategy=strategy,
        capital=capital,
        reason=reason,
        message=message,
        **stages,
    )


def _map_levels(
    plan: TradePlan,
    selection: InstrumentSelection,
    config: EngineConfig,
    delta: float | None,
) -> OptionLevels:
    if selection.delta_mapped:
        return map_to_option_levels(
            selection.premium,
            plan.entry,
            plan.stop_loss,
            plan.targets,
            selection.strike,
            selection.option_type,
            config.delta,
            delta=delta,
        )
    # Futures track the underlying one-for-one.
    return OptionLevels(stop_loss=plan.stop_loss, targets=plan.targets, delta=1.0)


def _order_side(selection: InstrumentSelection, direction: Direction) -> OrderSide:
    if selection.mode is InstrumentMode.FUTURES and direction is Direction.BEARISH:
        return OrderSide.SELL
    return OrderSide.BUY


def build_order_request(
    signal: Signal,
    strategy: str,
    plan: TradePlan,
    selection: InstrumentSelection,
    levels: OptionLevels,
    sizing: PositionSizing,
) -> OrderRequest:
    """Assemble the atomic ledger submission from the completed stages."""
    return OrderRequest(
        signal_id=signal.signal_id,
        scrip_code=selection.scrip_code,
        instrument_symbol=selection.instrument_symbol,
        instrument_type=selection.mode,
        underlying_scrip_code=signal.scrip_code,
        underlying_symbol=signal.symbol or signal.scrip_code,
        side=_order_side(selection, plan.direction),
        quantity=sizing.quantity,
        lots=sizing.lots,
        lot_size=selection.lot_size,
        multiplier=selection.multiplier,
        entry_price=round(selection.premium, 2),
        stop_loss=levels.stop_loss,
        targets=levels.targets,
        equity_spot=plan.entry,
        equity_stop_loss=plan.stop_loss,
        equity_targets=plan.targets,
        delta=levels.delta,
        strategy=strategy,
        exchange=selection.exchange or signal.exchange,
        direction=plan.direction,
        confidence=signal.confidence,
        option_type=selection.option_type,
        strike=selection.strike,
    )


_DISABLE_REASONS: dict[type[TradeUnavailable], DisableReason] = {
    PlanInvalid: DisableReason.PLAN_INVALID,
    NoInstrument: DisableReason.NO_INSTRUMENT,
    BelowConfidenceThreshold: DisableReason.BELOW_CONFIDENCE,
}


def _run_stages(
    signal: Signal,
    capital: float,
    config: EngineConfig,
    delta: float | None,
    stages: dict,
) -> None:
    """Fill *stages* in order; raise a TradeUnavailable at the first stage that fails."""
    plan = stages["plan"] = build_trade_plan(signal, config)

    selection = stages["selection"] = resolve_instrument(signal, plan, config)
    if not selection.is_tradable:
        raise NoInstrument(selection.reason)

    stages["levels"] = _map_levels(plan, selection, config, delta)

    sizing = stages["sizing"] = compute_lot_sizing(
        signal.confidence,
        capital,
        selection.premium,
        selection.lot_size,
        selection.multiplier,
        config.sizing,
    )
    if sizing.disabled:
        raise BelowConfidenceThreshold(
            f"Confidence {signal.confidence:g} below minimum {config.sizing.min_confidence:g}"
        )


def prepare_trade(
    signal: Signal,
    capital: CapitalSnapshot,
    config: EngineConfig,
    strategy: str | None = None,
    delta: float | None = None,
) -> TradeDecision:
    """Run one signal through the engine.

    Stages:
        1. TradePlanBuilder:   Signal -> TradePlan
        2. InstrumentResolver: Signal + plan -> InstrumentSelection
        3. DeltaMapper:        equity levels -> premium levels (options only)
        4. PositionSizer:      confidence + capital -> lots
        5. OrderRequest assembly

    Parameters
    ----------
    signal:
        Normalized signal (see ``trade_core.adapters``).
    capital:
        Capital snapshot read immediately before this call.
    config:
        Engine configuration (already merged with any strategy override).
    strategy:
        Strategy tag; defaults to ``signal.strategy``.
    delta:
        Explicit |delta| override for option mapping.

    Returns
    -------
    TradeDecision
        READY with an OrderRequest, or DISABLED with a reason and the
        stages that completed before it.
    """
    strategy = strategy or signal.strategy
    stages: dict = {}
    try:
        _run_stages(signal, max(0.0, capital.capital), config, delta, stages)
    except TradeUnavailable as exc:
        return _disabled(signal, strategy, capital, _DISABLE_REASONS[type(exc)], str(exc), **stages)

    selection: InstrumentSelection = stages["selection"]
    sizing: PositionSizing = stages["sizing"]
    warnings: list[str] = []
    if sizing.insufficient_funds:
        warnings.append(
            f"Insufficient funds: 1 lot costs {sizing.cost_per_lot:,.2f}; "
            f"add {sizing.credit_amount:,.2f} to cover it"
        )
    if selection.synthetic_premium:
        warnings.append(f"Premium {selection.premium:.2f} is an estimate (no live quote)")

    order = build_order_request(signal, strategy, stages["plan"], selection, stages["levels"], sizing)
    return TradeDecision(
        status=DecisionStatus.READY,
        signal=signal,
        strategy=strategy,
        order=order,
        warnings=warnings,
        capital=capital,
        **stages,
    )
