"""
CLI entry point: trade-engine plan | buy | mark | trail | close | eod | status | health.

Every command loads config from --config (default config.yaml), prints
human-readable reasoning, and logs to the journal.
"""

import json
import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv

from config import load_config

load_dotenv()

logger = logging.getLogger("trade_engine")


def _setup_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s  %(message)s",
        stream=sys.stderr,
    )


@click.group()
@click.option("--config", "config_path", default="config.yaml", help="Path to config file.")
@click.pass_context
def cli(ctx: click.Context, config_path: str) -> None:
    """trade-engine: signal-to-order translation, sizing and a paper ledger."""
    _setup_logging()
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


def _engine_config(cfg, strategy: str):
    from config.engine_config import load_engine_config

    return load_engine_config(cfg.engine_config_path or None, strategy=strategy)


def _ledger(cfg, engine_cfg):
    from execution import VirtualLedger

    return VirtualLedger(
        cfg.ledger.state_path,
        initial_capital=cfg.ledger.initial_capital,
        timeout_seconds=cfg.ledger.timeout_seconds,
        slippage_bps=cfg.ledger.slippage_bps,
        target_close_pcts=engine_cfg.exits.target_close_pcts,
        trail_confirm_pct=engine_cfg.exits.trail_confirm_pct,
        break_even_on_tp1=engine_cfg.exits.break_even_on_tp1,
    )


def _events(cfg, strategy: str):
    from cli.structured_log import StructuredEventLogger

    return StructuredEventLogger(
        strategy,
        enabled=cfg.alerting.structured_logs,
        webhook_url=cfg.alerting.webhook_url,
    )


def _read_signal(path: str, strategy: str | None, default_strategy: str):
    """Load a raw strategy payload and shape it into a Signal."""
    from trade_core.adapters import adapt_signal

    raw = json.loads(Path(path).read_text())
    if not isinstance(raw, dict):
        raise click.ClickException(f"Signal file must hold one JSON object, got {type(raw).__name__}")
    tag = (strategy or raw.get("strategy") or default_strategy).upper()
    try:
        return adapt_signal(tag, raw), tag
    except (KeyError, ValueError) as exc:
        raise click.ClickException(f"Cannot read {tag} signal: {exc}") from exc


def _prepare(cfg, signal_path: str, strategy: str | None, capital: float | None, delta: float | None):
    from trade_core.contracts import CapitalSnapshot
    from trade_core.pipeline import prepare_trade

    signal, tag = _read_signal(signal_path, strategy, cfg.strategy)
    engine_cfg = _engine_config(cfg, tag)
    ledger = _ledger(cfg, engine_cfg)
    snapshot = ledger.read_capital()
    if capital is not None:
        snapshot = CapitalSnapshot(capital=capital, version=snapshot.version, read_at=snapshot.read_at)
    decision = prepare_trade(signal, snapshot, engine_cfg, strategy=tag, delta=delta)
    return decision, ledger, engine_cfg


# ---------- trade-engine plan ----------


@cli.command()
@click.argument("signal_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--strategy", default=None, help="Strategy tag (FUDKII, FUKAA, MERE, PIVOT, MICROALPHA, GENERIC).")
@click.option("--capital", default=None, type=float, help="Size against this capital instead of the wallet.")
@click.option("--delta", default=None, type=float, help="Use this |delta| instead of the approximation.")
@click.pass_context
def plan(ctx: click.Context, signal_path: str, strategy: str | None, capital: float | None, delta: float | None) -> None:
    """Show the order a signal would produce, without dispatching it."""
    cfg = load_config(ctx.obj["config_path"])
    from cli.output import format_decision

    decision, _, _ = _prepare(cfg, signal_path, strategy, capital, delta)
    click.echo(format_decision(decision))


# ---------- trade-engine buy ----------


@cli.command()
@click.argument("signal_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--strategy", default=None, help="Strategy tag (defaults to the payload's or config's).")
@click.option("--delta", default=None, type=float, help="Use this |delta| instead of the approximation.")
@click.pass_context
def buy(ctx: click.Context, signal_path: str, strategy: str | None, delta: float | None) -> None:
    """Size a signal against fresh wallet capital and open a paper position."""
    cfg = load_config(ctx.obj["config_path"])
    from cli.output import format_decision, format_ticket
    from execution import OrderDispatcher, TicketState
    from journal import JournalWriter

    decision, ledger, engine_cfg = _prepare(cfg, signal_path, strategy, None, delta)
    events = _events(cfg, decision.strategy)
    journal = JournalWriter(cfg.journal.path, echo_stdout=cfg.journal.echo_stdout)
    click.echo(format_decision(decision))

    sig_id = decision.signal.signal_id
    if not decision.is_ready:
        events.trade_disabled(sig_id, decision.reason.value, decision.message)
        journal.rejection(sig_id, decision.strategy, decision.reason.value, decision.message)
        return

    order = decision.order
    journal.decision(sig_id, decision.strategy, decision.status.value, order=order, warnings=decision.warnings)
    if decision.sizing.insufficient_funds:
        events.insufficient_funds(sig_id, decision.sizing.cost_per_lot, decision.sizing.credit_amount)

    events.order_sending(sig_id, order.instrument_symbol, order.lots, order.quantity, order.entry_price)
    dispatcher = OrderDispatcher(ledger, auto_dismiss_seconds=engine_cfg.dispatch.auto_dismiss_seconds)
    ticket = dispatcher.submit(decision)
    click.echo(format_ticket(ticket))

    if ticket.state is TicketState.ERROR:
        events.order_error(sig_id, ticket.error)
        journal.dispatch_error(sig_id, ticket.error)
        raise SystemExit(1)

    fill = ticket.fill
    events.order_filled(sig_id, fill.trade_id, fill.price, duplicate=fill.duplicate)
    if not fill.duplicate:
        journal.fill(fill.trade_id, sig_id, order.instrument_symbol, fill.side, fill.quantity, fill.price,
                     position_id=fill.position_id)


# ---------- trade-engine mark / trail / close ----------


def _report_exits(cfg, ledger, pos, seen: int) -> None:
    """Echo and log exits recorded after the first *seen* ones."""
    from cli.output import format_exits, format_position
    from journal import JournalWriter

    exits = ledger.list_exits(pos.id)[seen:]
    click.echo(format_position(pos))
    if not exits:
        return
    click.echo(format_exits(exits))
    events = _events(cfg, pos.strategy)
    journal = JournalWriter(cfg.journal.path, echo_stdout=cfg.journal.echo_stdout)
    for e in exits:
        events.position_exit(pos.id, e.level, e.quantity, e.price, e.pnl, e.reason.value)
        journal.exit(pos.id, pos.instrument_symbol, e.level, e.quantity, e.price, e.pnl, e.reason.value)


def _mutate(ctx: click.Context, position_id: str, action):
    """Run *action* on a ledger built with the exit rules of the position's own strategy."""
    from trade_core.errors import LedgerInvariantViolation

    cfg = load_config(ctx.obj["config_path"])
    existing = _ledger(cfg, _engine_config(cfg, cfg.strategy)).get_position(position_id)
    if existing is None:
        raise click.ClickException(f"No position {position_id}")
    ledger = _ledger(cfg, _engine_config(cfg, existing.strategy))
    seen = len(ledger.list_exits(position_id))
    try:
        pos = action(ledger)
    except LedgerInvariantViolation as exc:
        _events(cfg, existing.strategy).error("Ledger invariant violation", str(exc))
        raise click.ClickException(str(exc)) from exc
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc
    _report_exits(cfg, ledger, pos, seen)
    return cfg, pos


@cli.command()
@click.argument("position_id")
@click.argument("price", type=float)
@click.option("--equity", default=None, type=float, help="Live underlying price, checked against the equity levels.")
@click.pass_context
def mark(ctx: click.Context, position_id: str, price: float, equity: float | None) -> None:
    """Apply a live price to a position (stops, targets, trailing)."""
    _mutate(ctx, position_id, lambda ledger: ledger.mark_price(position_id, price, equity_price=equity))


@cli.command()
@click.argument("position_id")
@click.argument("value", type=float)
@click.pass_context
def trail(ctx: click.Context, position_id: str, value: float) -> None:
    """Tighten a position's trailing stop. Loosening is refused."""
    cfg, pos = _mutate(ctx, position_id, lambda ledger: ledger.set_trailing_stop(position_id, value))
    _events(cfg, pos.strategy).trailing_updated(pos.id, pos.trailing_stop)


@cli.command()
@click.argument("position_id")
@click.option("--price", default=None, type=float, help="Exit price (default: last marked price).")
@click.pass_context
def close(ctx: click.Context, position_id: str, price: float | None) -> None:
    """Manually close a position in full."""
    _mutate(ctx, position_id, lambda ledger: ledger.close_position(position_id, price))


# ---------- trade-engine eod ----------


def _parse_prices(values: tuple[str, ...]) -> dict[str, float]:
    prices: dict[str, float] = {}
    for item in values:
        position_id, sep, raw = item.partition("=")
        if not sep or not position_id:
            raise click.BadParameter(f"expected POSITION_ID=PRICE, got {item!r}", param_hint="--price")
        try:
            prices[position_id] = float(raw)
        except ValueError as exc:
            raise click.BadParameter(f"bad price in {item!r}", param_hint="--price") from exc
    return prices


@cli.command()
@click.argument("session", type=click.Choice(["NSE", "CURRENCY", "MCX"], case_sensitive=False))
@click.option("--price", "prices", multiple=True, help="Exit price as POSITION_ID=PRICE (repeatable).")
@click.pass_context
def eod(ctx: click.Context, session: str, prices: tuple[str, ...]) -> None:
    """Close every open position of a trading session at end of day.

    Run it before the session's cutoff (NSE 15:25, CURRENCY 16:55, MCX 23:25 IST).
    Positions without a --price exit at their last marked price.
    """
    cfg = load_config(ctx.obj["config_path"])
    from cli.output import format_exits
    from execution import EOD_SESSIONS
    from journal import JournalWriter

    exchanges, cutoff = EOD_SESSIONS[session.upper()]
    ledger = _ledger(cfg, _engine_config(cfg, cfg.strategy))
    exits = ledger.exit_all(exchanges, _parse_prices(prices))
    click.echo(f"EOD exit {session.upper()} (cutoff {cutoff} IST): {len(exits)} position(s) closed")
    if not exits:
        return
    click.echo(format_exits(exits))
    journal = JournalWriter(cfg.journal.path, echo_stdout=cfg.journal.echo_stdout)
    for e in exits:
        pos = ledger.get_position(e.position_id)
        _events(cfg, pos.strategy).position_exit(pos.id, e.level, e.quantity, e.price, e.pnl, e.reason.value)
        journal.exit(pos.id, pos.instrument_symbol, e.level, e.quantity, e.price, e.pnl, e.reason.value)


# ---------- trade-engine status ----------


@cli.command()
@click.option("--closed", default=5, help="Number of recent closed positions to show.")
@click.pass_context
def status(ctx: click.Context, closed: int) -> None:
    """Show wallet, open positions, and recently closed positions."""
    cfg = load_config(ctx.obj["config_path"])
    from cli.output import format_position, format_wallet
    from execution import PositionStatus

    ledger = _ledger(cfg, _engine_config(cfg, cfg.strategy))
    click.echo(format_wallet(ledger.get_wallet()))

    recent = [p for p in ledger.list_positions(limit=100) if p.status is PositionStatus.CLOSED][:closed]
    if recent:
        click.echo(f"\nRecently closed ({len(recent)}):")
        for pos in recent:
            click.echo(format_position(pos))
    else:
        click.echo("\nNo closed positions yet.")


# ---------- trade-engine health ----------


@cli.command()
@click.pass_context
def health(ctx: click.Context) -> None:
    """Check system health: config, engine config, ledger access.

    Exit code 0 = healthy, 1 = unhealthy.
    """
    checks: list[tuple[str, bool, str]] = []

    try:
        cfg = load_config(ctx.obj["config_path"])
        checks.append(("config", True, f"loaded (strategy={cfg.strategy})"))
    except (FileNotFoundError, ValueError) as e:
        checks.append(("config", False, str(e)))
        _print_health(checks)
        raise SystemExit(1)

    from config.engine_config import EngineConfigError

    try:
        engine_cfg = _engine_config(cfg, cfg.strategy)
        checks.append(("engine_config", True, f"validated (version={engine_cfg.version})"))
    except EngineConfigError as e:
        checks.append(("engine_config", False, str(e)))
        _print_health(checks)
        raise SystemExit(1)

    try:
        import sqlite3

        wallet = _ledger(cfg, engine_cfg).get_wallet()
        checks.append(("ledger", True, f"{wallet.open_positions_count} open, capital {wallet.capital:,.2f}"))
    except sqlite3.Error as e:
        checks.append(("ledger", False, str(e)))

    _print_health(checks)
    healthy = all(ok for _, ok, _ in checks)
    raise SystemExit(0 if healthy else 1)


def _print_health(checks: list[tuple[str, bool, str]]) -> None:
    for name, ok, detail in checks:
        status = "OK" if ok else "FAIL"
        click.echo(f"  [{status}] {name}: {detail}")
    healthy = all(ok for _, ok, _ in checks)
    click.echo(f"\nHealth: {'HEALTHY' if healthy else 'UNHEALTHY'}")


if __name__ == "__main__":
    cli()
