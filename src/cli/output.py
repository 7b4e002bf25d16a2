"""
Human-readable trade reasoning output for the terminal.

Every CLI command uses these formatters: the plan, the instrument chosen,
the premium mapping and the sizing all show their inputs.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from trade_core.contracts import InstrumentMode

if TYPE_CHECKING:
    from execution.dispatcher import ExecutionTicket
    from execution.models import ExitEvent, Position, Wallet
    from trade_core.contracts import TradeDecision


def _fmt_level(value: float | None) -> str:
    return "--" if value is None else f"{value:.2f}"


def _fmt_targets(targets) -> str:
    return "  ".join(f"T{i} {_fmt_level(t)}" for i, t in enumerate(targets, 1) if t is not None) or "--"


def format_decision(decision: TradeDecision) -> str:
    """Format one pass through the engine, stage by stage."""
    sig = decision.signal
    lines = [
        f"=== {decision.strategy}: {sig.symbol or sig.scrip_code} {sig.direction.value} (confidence {sig.confidence:g}) ===",
    ]

    plan = decision.plan
    if plan:
        lines.append(f"  Plan       : entry {plan.entry:.2f}  SL {plan.stop_loss:.2f}  {_fmt_targets(plan.targets)}")
        lines.append(f"               R:R {plan.risk_reward:.2f}  ATR {plan.atr:.2f}  source {plan.source.value}")

    sel = decision.selection
    if sel:
        if sel.mode is InstrumentMode.OPTION:
            tag = " (estimated)" if sel.synthetic_premium else ""
            lines.append(
                f"  Instrument : OPTION {sel.instrument_symbol}  premium {sel.premium:.2f}{tag}"
                f"  lot {sel.lot_size}  x{sel.multiplier:g}"
            )
        elif sel.mode is InstrumentMode.FUTURES:
            lines.append(
                f"  Instrument : FUTURES {sel.instrument_symbol}  LTP {sel.premium:.2f}"
                f"  lot {sel.lot_size}  x{sel.multiplier:g}"
            )
        else:
            lines.append(f"  Instrument : NONE ({sel.reason})")

    levels = decision.levels
    if levels:
        lines.append(f"  Levels     : SL {levels.stop_loss:.2f}  {_fmt_targets(levels.targets)}  delta {levels.delta:g}")

    sizing = decision.sizing
    if sizing and not sizing.disabled:
        lines.append(
            f"  Sizing     : {sizing.lots} lot(s) = {sizing.quantity} qty"
            f"  ({sizing.alloc_pct:.0%} of {decision.capital.capital:,.2f}; {sizing.cost_per_lot:,.2f}/lot)"
        )

    for warning in decision.warnings:
        lines.append(f"  WARNING    : {warning}")

    if decision.is_ready:
        order = decision.order
        lines.append(f"  Order      : {order.side.value} {order.quantity} {order.instrument_symbol} @ {order.entry_price:.2f}")
    else:
        lines.append(f"  DISABLED   : {decision.reason.value} ({decision.message})")
    lines.append("===")
    return "\n".join(lines)


def format_ticket(ticket: ExecutionTicket) -> str:
    state = ticket.state.value
    if ticket.fill:
        dup = " (already filled)" if ticket.fill.duplicate else ""
        return (
            f"  [{state}] {ticket.symbol} {ticket.lots} lot(s) @ {ticket.fill.price:.2f}"
            f"  trade {ticket.fill.trade_id}{dup}"
        )
    return f"  [{state}] {ticket.symbol}: {ticket.error}"


def format_position(pos: Position) -> str:
    trailing = _fmt_level(pos.trailing_stop)
    lines = [
        f"  {pos.id[:8]}  {pos.instrument_symbol}  {pos.side.value} {pos.quantity}/{pos.initial_quantity}"
        f"  @ {pos.avg_entry:.2f}  LTP {pos.current_price:.2f}  [{pos.status.value}]",
        f"            SL {pos.stop_loss:.2f}  trail {trailing}  {_fmt_targets(pos.targets)}",
        f"            P&L realized {pos.realized_pnl:+,.2f}  unrealized {pos.unrealized_pnl:+,.2f}",
    ]
    if pos.exit_reason:
        lines.append(f"            Exit       : {pos.exit_reason.value}")
    return "\n".join(lines)


def format_exits(exits: list[ExitEvent]) -> str:
    if not exits:
        return "  No exits."
    return "\n".join(
        f"  {e.level:6s} {e.quantity:>6d} @ {e.price:.2f}  P&L {e.pnl:+,.2f}  {e.reason.value}  {e.timestamp.isoformat()}"
        for e in exits
    )


def format_wallet(wallet: Wallet) -> str:
    """Format wallet aggregates and open positions."""
    lines = [
        "=== Wallet ===",
        f"Capital      : {wallet.capital:,.2f}  (initial {wallet.initial_capital:,.2f})",
        f"Available    : {wallet.available_margin:,.2f}  (blocked {wallet.blocked_margin:,.2f})",
        f"Realized P&L : {wallet.realized_pnl:+,.2f}",
        f"Unrealized   : {wallet.unrealized_pnl:+,.2f}",
        f"Day P&L      : {wallet.day_pnl:+,.2f}",
        f"Trades       : {wallet.total_trades_count} (W:{wallet.win_count} / L:{wallet.loss_count}, win rate {wallet.win_rate:.1f}%)",
    ]
    if wallet.open_positions:
        lines.append(f"Open ({wallet.open_positions_count}):")
        for pos in wallet.open_positions:
            lines.append(format_position(pos))
    else:
        lines.append("Open         : none")
    lines.append("===")
    return "\n".join(lines)
