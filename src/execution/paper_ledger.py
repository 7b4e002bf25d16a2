"""
Virtual ledger: paper positions, wallet and exit history, restart-safe (SQLite).

Every mutation runs inside one ``BEGIN IMMEDIATE`` transaction and bumps a
version on the wallet and the touched position. Opening is idempotent by
signal id.
"""

from __future__ import annotations

import json
import logging
import math
import sqlite3
import uuid
from contextlib import closing, contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator, Mapping, Sequence

from trade_core.contracts import CapitalSnapshot, OrderRequest, OrderSide
from trade_core.errors import DispatchFailure, LedgerInvariantViolation, StaleCapital

from execution.models import (
    ExitEvent,
    ExitReason,
    Fill,
    Position,
    PositionSide,
    PositionStatus,
    Wallet,
)

logger = logging.getLogger("trade_engine.ledger")

DEFAULT_CLOSE_PCTS = (40.0, 30.0, 20.0, 10.0)

# Session -> (exchange codes, IST cutoff). NSE positions may carry an empty exchange.
EOD_SESSIONS: dict[str, tuple[tuple[str, ...], str]] = {
    "NSE": (("N", ""), "15:25"),
    "CURRENCY": (("C",), "16:55"),
    "MCX": (("M",), "23:25"),
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_ts(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def allocate_lots(total_lots: int, pcts: Sequence[float]) -> list[int]:
    """Split *total_lots* across tranches by the largest-remainder method.

    Leftover lots go to the largest fractional parts; ties favor the later
    tranche. The result always sums to *total_lots*.
    """
    if total_lots <= 0 or not pcts:
        return [0] * len(pcts)
    weight = sum(pcts)
    if weight <= 0:
        return [0] * (len(pcts) - 1) + [total_lots]
    quotas = [total_lots * p / weight for p in pcts]
    lots = [math.floor(q) for q in quotas]
    leftover = total_lots - sum(lots)
    order = sorted(range(len(pcts)), key=lambda i: (quotas[i] - lots[i], i), reverse=True)
    for i in order[:leftover]:
        lots[i] += 1
    return lots


class VirtualLedger:
    """
    Paper position/wallet store in SQLite.
    Single file, many readers; writers serialize on ``BEGIN IMMEDIATE``.
    """

    def __init__(
        self,
        state_path: str | Path,
        *,
        initial_capital: float = 100_000.0,
        timeout_seconds: float = 10.0,
        slippage_bps: float = 0.0,
        target_close_pcts: Sequence[float] = DEFAULT_CLOSE_PCTS,
        trail_confirm_pct: float = 0.01,
        break_even_on_tp1: bool = True,
    ) -> None:
        self._path = Path(state_path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._initial_capital = initial_capital
        self._timeout = timeout_seconds
        self._slippage_bps = slippage_bps
        self._close_pcts = tuple(target_close_pcts)
        self._trail_confirm_pct = trail_confirm_pct
        self._break_even_on_tp1 = break_even_on_tp1
        self._init_schema()

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._path), timeout=self._timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """All-or-nothing write: BEGIN IMMEDIATE ... COMMIT, ROLLBACK on any error."""
        with closing(self._connect()) as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    def _init_schema(self) -> None:
        with self._transaction() as c:
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS wallet (
                    id INTEGER PRIMARY KEY CHECK (id = 1),
                    initial_capital REAL NOT NULL,
                    capital REAL NOT NULL,
                    blocked_margin REAL NOT NULL DEFAULT 0,
                    realized_pnl REAL NOT NULL DEFAULT 0,
                    total_trades INTEGER NOT NULL DEFAULT 0,
                    win_count INTEGER NOT NULL DEFAULT 0,
                    loss_count INTEGER NOT NULL DEFAULT 0,
                    version INTEGER NOT NULL DEFAULT 0,
                    updated_at TEXT NOT NULL
                )
                """
            )
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS positions (
                    id TEXT PRIMARY KEY,
                    signal_id TEXT NOT NULL UNIQUE,
                    trade_id TEXT NOT NULL,
                    strategy TEXT NOT NULL,
                    scrip_code TEXT NOT NULL,
                    instrument_symbol TEXT NOT NULL,
                    instrument_type TEXT NOT NULL,
                    exchange TEXT NOT NULL,
                    option_type TEXT,
                    strike REAL,
                    side TEXT NOT NULL,
                    quantity INTEGER NOT NULL,
                    initial_quantity INTEGER NOT NULL,
                    lot_size INTEGER NOT NULL,
                    point_value REAL NOT NULL,
                    avg_entry REAL NOT NULL,
                    current_price REAL NOT NULL,
                    stop_loss REAL NOT NULL,
                    targets TEXT NOT NULL,
                    tranches TEXT NOT NULL,
                    targets_hit INTEGER NOT NULL DEFAULT 0,
                    trailing_stop REAL,
                    tp1_hit INTEGER NOT NULL DEFAULT 0,
                    status TEXT NOT NULL,
                    exit_reason TEXT,
                    realized_pnl REAL NOT NULL DEFAULT 0,
                    delta REAL NOT NULL DEFAULT 1,
                    equity_spot REAL,
                    equity_stop_loss REAL,
                    equity_targets TEXT,
                    opened_at TEXT NOT NULL,
                    last_updated TEXT NOT NULL,
                    closed_at TEXT,
                    version INTEGER NOT NULL DEFAULT 0
                )
                """
            )
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS fills (
                    id TEXT PRIMARY KEY,
                    position_id TEXT NOT NULL,
                    signal_id TEXT NOT NULL,
                    scrip_code TEXT NOT NULL,
                    side TEXT NOT NULL,
                    qty INTEGER NOT NULL,
                    price REAL NOT NULL,
                    ts_utc TEXT NOT NULL,
                    slippage_bps REAL
                )
                """
            )
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS exits (
                    id TEXT PRIMARY KEY,
                    position_id TEXT NOT NULL,
                    level TEXT NOT NULL,
                    qty INTEGER NOT NULL,
                    price REAL NOT NULL,
                    pnl REAL NOT NULL,
                    reason TEXT NOT NULL,
                    ts_utc TEXT NOT NULL
                )
                """
            )
            c.execute(
                "INSERT OR IGNORE INTO wallet (id, initial_capital, capital, updated_at) VALUES (1, ?, ?, ?)",
                (self._initial_capital, self._initial_capital, _now().isoformat()),
            )

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_position(row: sqlite3.Row) -> Position:
        return Position(
            id=row["id"],
            signal_id=row["signal_id"],
            trade_id=row["trade_id"],
            strategy=row["strategy"],
            scrip_code=row["scrip_code"],
            instrument_symbol=row["instrument_symbol"],
            instrument_type=row["instrument_type"],
            exchange=row["exchange"],
            side=PositionSide(row["side"]),
            quantity=row["quantity"],
            initial_quantity=row["initial_quantity"],
            lot_size=row["lot_size"],
            point_value=row["point_value"],
            avg_entry=row["avg_entry"],
            current_price=row["current_price"],
            stop_loss=row["stop_loss"],
            targets=json.loads(row["targets"]),
            tranches=json.loads(row["tranches"]),
            targets_hit=row["targets_hit"],
            trailing_stop=row["trailing_stop"],
            tp1_hit=bool(row["tp1_hit"]),
            status=PositionStatus(row["status"]),
            realized_pnl=row["realized_pnl"],
            opened_at=_parse_ts(row["opened_at"]),
            last_updated=_parse_ts(row["last_updated"]),
            version=row["version"],
            option_type=row["option_type"],
            strike=row["strike"],
            delta=row["delta"],
            equity_spot=row["equity_spot"],
            equity_stop_loss=row["equity_stop_loss"],
            equity_targets=json.loads(row["equity_targets"]) if row["equity_targets"] else [],
            exit_reason=ExitReason(row["exit_reason"]) if row["exit_reason"] else None,
            closed_at=_parse_ts(row["closed_at"]),
        )

    def _load_position(self, c: sqlite3.Connection, position_id: str) -> Position:
        row = c.execute("SELECT * FROM positions WHERE id = ?", (position_id,)).fetchone()
        if row is None:
            raise KeyError(f"Unknown position: {position_id}")
        return self._row_to_position(row)

    def _load_open_position(self, c: sqlite3.Connection, position_id: str) -> Position:
        pos = self._load_position(c, position_id)
        if pos.status is PositionStatus.CLOSED:
            raise LedgerInvariantViolation(f"Position {position_id} is CLOSED")
        return pos

    def _save_position(self, c: sqlite3.Connection, pos: Position) -> None:
        pos.last_updated = _now()
        pos.version += 1
        c.execute(
            """UPDATE positions SET quantity = ?, current_price = ?, targets_hit = ?, trailing_stop = ?,
                   tp1_hit = ?, status = ?, exit_reason = ?, realized_pnl = ?, last_updated = ?,
                   closed_at = ?, version = ?
               WHERE id = ?""",
            (
                pos.quantity,
                pos.current_price,
                pos.targets_hit,
                pos.trailing_stop,
                int(pos.tp1_hit),
                pos.status.value,
                pos.exit_reason.value if pos.exit_reason else None,
                pos.realized_pnl,
                pos.last_updated.isoformat(),
                pos.closed_at.isoformat() if pos.closed_at else None,
                pos.version,
                pos.id,
            ),
        )

    @staticmethod
    def _fill_from_row(row: sqlite3.Row, *, duplicate: bool) -> Fill:
        return Fill(
            trade_id=row["id"],
            position_id=row["position_id"],
            signal_id=row["signal_id"],
            scrip_code=row["scrip_code"],
            side=row["side"],
            quantity=row["qty"],
            price=row["price"],
            timestamp=_parse_ts(row["ts_utc"]),
            duplicate=duplicate,
        )

    # ------------------------------------------------------------------
    # Capital
    # ------------------------------------------------------------------

    def read_capital(self) -> CapitalSnapshot:
        """Available margin plus the wallet version it was read at."""
        with closing(self._connect()) as c:
            row = c.execute("SELECT capital, blocked_margin, version FROM wallet WHERE id = 1").fetchone()
        return CapitalSnapshot(
            capital=round(max(0.0, row["capital"] - row["blocked_margin"]), 2),
            version=row["version"],
            read_at=_now(),
        )

    # ------------------------------------------------------------------
    # Open
    # ------------------------------------------------------------------

    def _fill_price(self, price: float, side: OrderSide) -> float:
        slip = self._slippage_bps / 10_000
        if side is OrderSide.BUY:
            return round(price * (1 + slip), 2)
        return round(price * (1 - slip), 2)

    def open_position(self, order: OrderRequest, expected_version: int | None = None) -> Fill:
        """Open a position for *order*. Idempotent by ``order.signal_id``.

        Parameters
        ----------
        order:
            Sized, level-mapped order from the engine.
        expected_version:
            Wallet version the sizing capital was read at. A mismatch
            means another mutation landed in between.

        Returns
        -------
        Fill
            The new fill, or the original fill with ``duplicate=True``.

        Raises
        ------
        StaleCapital
            The wallet moved since the capital read.
        DispatchFailure
            Invalid order, non-positive fill price, or the database could
            not be locked in time. Nothing is written in either case.
        """
        if order.quantity <= 0 or order.lots <= 0:
            raise DispatchFailure(f"Order quantity must be positive, got {order.quantity}")
        if order.entry_price <= 0:
            raise DispatchFailure(f"Order entry price must be positive, got {order.entry_price}")
        price = self._fill_price(order.entry_price, order.side)
        if price <= 0:
            raise DispatchFailure(
                f"Fill price {price} after {self._slippage_bps:g} bps slippage is not positive"
            )

        try:
            with self._transaction() as c:
                existing = c.execute("SELECT * FROM fills WHERE signal_id = ?", (order.signal_id,)).fetchone()
                if existing is not None:
                    logger.info("Duplicate submission for signal %s ignored", order.signal_id)
                    return self._fill_from_row(existing, duplicate=True)

                wallet = c.execute("SELECT version FROM wallet WHERE id = 1").fetchone()
                if expected_version is not None and wallet["version"] != expected_version:
                    raise StaleCapital(
                        f"Wallet version moved from {expected_version} to {wallet['version']}; re-read capital"
                    )

                side = PositionSide.LONG if order.side is OrderSide.BUY else PositionSide.SHORT
                lot_size = max(1, order.lot_size)
                effective = order.multiplier if order.multiplier > 1 else lot_size
                point_value = effective / lot_size
                quantity = order.lots * lot_size

                targets = list(order.targets)
                live = [i for i, t in enumerate(targets) if t is not None]
                pcts = [self._close_pcts[i] if i < len(self._close_pcts) else 0.0 for i in live]
                if not self._close_pcts:
                    lot_split = [order.lots] + [0] * (len(live) - 1) if live else []
                else:
                    lot_split = allocate_lots(order.lots, pcts)
                tranches = [0] * len(targets)
                for i, lots in zip(live, lot_split):
                    tranches[i] = lots * lot_size

                position_id = str(uuid.uuid4())
                trade_id = str(uuid.uuid4())
                ts = _now().isoformat()
                c.execute(
                    """INSERT INTO positions (id, signal_id, trade_id, strategy, scrip_code, instrument_symbol,
                           instrument_type, exchange, option_type, strike, side, quantity, initial_quantity,
                           lot_size, point_value, avg_entry, current_price, stop_loss, targets, tranches,
                           status, delta, equity_spot, equity_stop_loss, equity_targets, opened_at,
                           last_updated, version)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0)""",
                    (
                        position_id,
                        order.signal_id,
                        trade_id,
                        order.strategy,
                        order.scrip_code,
                        order.instrument_symbol,
                        order.instrument_type.value,
                        order.exchange,
                        order.option_type.value if order.option_type else None,
                        order.strike,
                        side.value,
                        quantity,
                        quantity,
                        lot_size,
                        point_value,
                        price,
                        price,
                        order.stop_loss,
                        json.dumps(targets),
                        json.dumps(tranches),
                        PositionStatus.ACTIVE.value,
                        order.delta,
                        order.equity_spot,
                        order.equity_stop_loss,
                        json.dumps(list(order.equity_targets)),
                        ts,
                        ts,
                    ),
                )
                c.execute(
                    """INSERT INTO fills (id, position_id, signal_id, scrip_code, side, qty, price, ts_utc, slippage_bps)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (trade_id, position_id, order.signal_id, order.scrip_code, order.side.value,
                     quantity, price, ts, self._slippage_bps),
                )
                c.execute(
                    """UPDATE wallet SET blocked_margin = blocked_margin + ?, total_trades = total_trades + 1,
                           version = version + 1, updated_at = ? WHERE id = 1""",
                    (price * quantity * point_value, ts),
                )
        except sqlite3.OperationalError as exc:
            raise DispatchFailure(f"Ledger unavailable: {exc}") from exc

        logger.info("Opened %s %s x%d @ %.2f (signal %s)", side.value, order.instrument_symbol, quantity, price, order.signal_id)
        return Fill(
            trade_id=trade_id,
            position_id=position_id,
            signal_id=order.signal_id,
            scrip_code=order.scrip_code,
            side=order.side.value,
            quantity=quantity,
            price=price,
            timestamp=_parse_ts(ts),
        )

    # ------------------------------------------------------------------
    # Exits
    # ------------------------------------------------------------------

    def _exit(
        self,
        c: sqlite3.Connection,
        pos: Position,
        qty: int,
        price: float,
        level: str,
        reason: ExitReason,
    ) -> ExitEvent:
        """Close *qty* units of *pos* at *price* and post the P&L to the wallet."""
        qty = min(qty, pos.quantity)
        pnl = round((price - pos.avg_entry) * pos.side.sign * qty * pos.point_value, 2)
        released = pos.avg_entry * qty * pos.point_value
        ts = _now()

        pos.quantity -= qty
        pos.realized_pnl = round(pos.realized_pnl + pnl, 2)
        if pos.quantity == 0:
            pos.status = PositionStatus.CLOSED
            pos.exit_reason = reason
            pos.closed_at = ts
        else:
            pos.status = PositionStatus.PARTIAL_EXIT

        c.execute(
            "INSERT INTO exits (id, position_id, level, qty, price, pnl, reason, ts_utc) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (str(uuid.uuid4()), pos.id, level, qty, price, pnl, reason.value, ts.isoformat()),
        )
        c.execute(
            """UPDATE wallet SET capital = capital + ?, realized_pnl = realized_pnl + ?,
                   blocked_margin = MAX(0, blocked_margin - ?), version = version + 1, updated_at = ?
               WHERE id = 1""",
            (pnl, pnl, released, ts.isoformat()),
        )
        if pos.status is PositionStatus.CLOSED:
            column = "win_count" if pos.realized_pnl > 0 else "loss_count" if pos.realized_pnl < 0 else None
            if column:
                c.execute(f"UPDATE wallet SET {column} = {column} + 1 WHERE id = 1")
        logger.info("Exit %s %s x%d @ %.2f pnl %.2f (%s)", pos.instrument_symbol, level, qty, price, pnl, reason.value)
        return ExitEvent(pos.id, level, qty, price, pnl, reason, ts)

    @staticmethod
    def _at_or_through_market(pos: Position, value: float) -> bool:
        """True when a stop at *value* would already be hit at the current price."""
        return (value - pos.current_price) * pos.side.sign >= 0

    def _ratchet(self, pos: Position, value: float) -> None:
        """Move the trailing stop toward profit only.

        Looser values are ignored, and so are values at or through the
        current price.
        """
        value = round(value, 2)
        if self._at_or_through_market(pos, value):
            return
        if pos.trailing_stop is None:
            pos.trailing_stop = value
        elif pos.side is PositionSide.LONG:
            pos.trailing_stop = max(pos.trailing_stop, value)
        else:
            pos.trailing_stop = min(pos.trailing_stop, value)

    def _stop_hit(self, pos: Position, price: float) -> bool:
        return (price - pos.effective_stop) * pos.side.sign <= 0

    def _target_hit(self, pos: Position, target: float, price: float) -> bool:
        return (price - target) * pos.side.sign >= 0

    @staticmethod
    def _equity_stop_hit(pos: Position, equity_price: float | None) -> bool:
        if equity_price is None or pos.equity_stop_loss is None:
            return False
        return (equity_price - pos.equity_stop_loss) * pos.equity_sign <= 0

    @staticmethod
    def _equity_target_hit(pos: Position, i: int, equity_price: float | None) -> bool:
        if equity_price is None or i >= len(pos.equity_targets):
            return False
        level = pos.equity_targets[i]
        return level is not None and (equity_price - level) * pos.equity_sign >= 0

    def mark_price(self, position_id: str, price: float, equity_price: float | None = None) -> Position:
        """Apply a live price: stop/trailing hits, target tranches, trailing ratchet.

        Parameters
        ----------
        position_id:
            Open position to mark.
        price:
            Live price of the traded instrument.
        equity_price:
            Optional live price of the underlying. Checked against the
            equity stop and targets stored at open; whichever of the two
            prices reaches a level first triggers it. Exits triggered by
            the underlying fill at *price* and carry an ``-EQ`` level.

        Raises LedgerInvariantViolation for a CLOSED position.
        """
        if price <= 0:
            raise ValueError(f"Price must be positive, got {price}")
        if equity_price is not None and equity_price <= 0:
            raise ValueError(f"Equity price must be positive, got {equity_price}")
        with self._transaction() as c:
            pos = self._load_open_position(c, position_id)
            pos.current_price = price

            if self._stop_hit(pos, price):
                trailing = pos.trailing_stop is not None and pos.effective_stop == pos.trailing_stop
                self._exit(
                    c, pos, pos.quantity, pos.effective_stop,
                    "TRAIL" if trailing else "SL",
                    ExitReason.TRAILING_STOP if trailing else ExitReason.STOP_HIT,
                )
            elif self._equity_stop_hit(pos, equity_price):
                self._exit(c, pos, pos.quantity, price, "SL-EQ", ExitReason.STOP_HIT)
            else:
                self._apply_targets(c, pos, price, equity_price)

            self._save_position(c, pos)
            return pos

    def _apply_targets(
        self, c: sqlite3.Connection, pos: Position, price: float, equity_price: float | None = None
    ) -> None:
        live = [i for i, t in enumerate(pos.targets) if t is not None]
        last = live[-1] if live else None

        for i in live:
            if pos.status is PositionStatus.CLOSED:
                return
            if i < pos.targets_hit:
                continue
            target = pos.targets[i]
            if self._target_hit(pos, target, price):
                level, exit_price = f"T{i + 1}", target
            elif self._equity_target_hit(pos, i, equity_price):
                level, exit_price = f"T{i + 1}-EQ", price
            else:
                break
            pos.targets_hit = i + 1
            if i == 0:
                pos.tp1_hit = True
            tranche = pos.tranches[i] if i < len(pos.tranches) else 0
            if i == last or tranche >= pos.quantity:
                self._exit(c, pos, pos.quantity, exit_price, level, ExitReason.TARGET_HIT)
                return
            if tranche > 0:
                self._exit(c, pos, tranche, exit_price, level, ExitReason.PARTIAL_TARGET)
            if i == 0:
                pos.status = PositionStatus.PARTIAL_EXIT
                if self._break_even_on_tp1:
                    self._ratchet(pos, pos.avg_entry)

        if pos.status is PositionStatus.CLOSED or pos.targets_hit == 0:
            return
        highest = pos.targets[pos.targets_hit - 1]
        confirm = highest * (1 + pos.side.sign * self._trail_confirm_pct)
        if (price - confirm) * pos.side.sign >= 0:
            self._ratchet(pos, highest)

    def set_trailing_stop(self, position_id: str, value: float) -> Position:
        """Tighten the trailing stop.

        Raises LedgerInvariantViolation when *value* loosens the current
        trailing stop, or sits at or through the last marked price.
        """
        with self._transaction() as c:
            pos = self._load_open_position(c, position_id)
            if self._at_or_through_market(pos, value):
                raise LedgerInvariantViolation(
                    f"Trailing stop {value} for {pos.side.value} position must be on the protective "
                    f"side of the current price {pos.current_price}"
                )
            current = pos.trailing_stop
            if current is not None and (value - current) * pos.side.sign < 0:
                raise LedgerInvariantViolation(
                    f"Trailing stop for {pos.side.value} position may not move from {current} to {value}"
                )
            pos.trailing_stop = round(value, 2)
            self._save_position(c, pos)
            return pos

    def close_position(self, position_id: str, price: float | None = None) -> Position:
        """Manual full close at *price*, else the last marked price."""
        with self._transaction() as c:
            pos = self._load_open_position(c, position_id)
            exit_price = price if price is not None and price > 0 else pos.current_price or pos.avg_entry
            pos.current_price = exit_price
            self._exit(c, pos, pos.quantity, exit_price, "MANUAL", ExitReason.MANUAL)
            self._save_position(c, pos)
            return pos

    def exit_all(
        self,
        exchanges: Iterable[str],
        price_by_position: Mapping[str, float] | None = None,
    ) -> list[ExitEvent]:
        """End-of-day exit: close every open position on *exchanges* in one transaction.

        Each position exits at its entry in *price_by_position*, else its
        last marked price, else its entry price. Positions on other
        exchanges are left alone.
        """
        wanted = set(exchanges)
        prices = price_by_position or {}
        events: list[ExitEvent] = []
        with self._transaction() as c:
            rows = c.execute("SELECT * FROM positions WHERE status != 'CLOSED' ORDER BY opened_at").fetchall()
            for row in rows:
                pos = self._row_to_position(row)
                if pos.exchange not in wanted:
                    continue
                quoted = prices.get(pos.id)
                exit_price = quoted if quoted is not None and quoted > 0 else pos.current_price or pos.avg_entry
                pos.current_price = exit_price
                events.append(self._exit(c, pos, pos.quantity, exit_price, "EOD", ExitReason.EOD))
                self._save_position(c, pos)
        logger.info("EOD exit for %s: %d position(s) closed", sorted(wanted), len(events))
        return events

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_position(self, position_id: str) -> Position | None:
        with closing(self._connect()) as c:
            row = c.execute("SELECT * FROM positions WHERE id = ?", (position_id,)).fetchone()
        return self._row_to_position(row) if row else None

    def get_position_by_signal(self, signal_id: str) -> Position | None:
        with closing(self._connect()) as c:
            row = c.execute("SELECT * FROM positions WHERE signal_id = ?", (signal_id,)).fetchone()
        return self._row_to_position(row) if row else None

    def list_positions(self, *, open_only: bool = False, limit: int = 100) -> list[Position]:
        query = "SELECT * FROM positions"
        if open_only:
            query += " WHERE status != 'CLOSED'"
        query += " ORDER BY opened_at DESC LIMIT ?"
        with closing(self._connect()) as c:
            rows = c.execute(query, (limit,)).fetchall()
        return [self._row_to_position(r) for r in rows]

    def list_exits(self, position_id: str | None = None, limit: int = 100) -> list[ExitEvent]:
        with closing(self._connect()) as c:
            if position_id:
                rows = c.execute(
                    "SELECT * FROM exits WHERE position_id = ? ORDER BY ts_utc, rowid LIMIT ?",
                    (position_id, limit),
                ).fetchall()
            else:
                rows = c.execute("SELECT * FROM exits ORDER BY ts_utc, rowid LIMIT ?", (limit,)).fetchall()
        return [
            ExitEvent(
                position_id=r["position_id"],
                level=r["level"],
                quantity=r["qty"],
                price=r["price"],
                pnl=r["pnl"],
                reason=ExitReason(r["reason"]),
                timestamp=_parse_ts(r["ts_utc"]),
            )
            for r in rows
        ]

    def get_wallet(self) -> Wallet:
        """Wallet with unrealized and day P&L recomputed from open positions."""
        today = _now().date().isoformat()
        with closing(self._connect()) as c:
            row = c.execute("SELECT * FROM wallet WHERE id = 1").fetchone()
            day_realized = c.execute(
                "SELECT COALESCE(SUM(pnl), 0) FROM exits WHERE substr(ts_utc, 1, 10) = ?", (today,)
            ).fetchone()[0]
            open_rows = c.execute(
                "SELECT * FROM positions WHERE status != 'CLOSED' ORDER BY opened_at"
            ).fetchall()
        open_positions = [self._row_to_position(r) for r in open_rows]
        unrealized = round(sum(p.unrealized_pnl for p in open_positions), 2)
        return Wallet(
            initial_capital=row["initial_capital"],
            capital=round(row["capital"], 2),
            blocked_margin=round(row["blocked_margin"], 2),
            realized_pnl=round(row["realized_pnl"], 2),
            unrealized_pnl=unrealized,
            day_pnl=round(day_realized + unrealized, 2),
            total_trades_count=row["total_trades"],
            win_count=row["win_count"],
            loss_count=row["loss_count"],
            version=row["version"],
            last_updated=_parse_ts(row["updated_at"]),
            open_positions=open_positions,
        )
