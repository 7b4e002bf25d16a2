"""Tests for the order dispatcher and execution ticket lifecycle."""

import pytest

from config.engine_config import EngineConfig
from execution import OrderDispatcher, TicketState, VirtualLedger
from trade_core.contracts import Direction, OptionType, Signal, pad_targets
from trade_core.pipeline import prepare_trade


class _Clock:
    def __init__(self) -> None:
        self.now = 1_000.0

    def __call__(self) -> float:
        return self.now


def _signal(**overrides) -> Signal:
    fields = dict(
        signal_id="sig-1",
        scrip_code="2885",
        symbol="ACME",
        direction=Direction.BULLISH,
        entry_price=100.0,
        confidence=80.0,
        stop_loss=96.0,
        targets=pad_targets([108.0]),
        option_available=True,
        option_ltp=3.0,
        option_strike=105.0,
        option_type=OptionType.CE,
        option_lot_size=50,
    )
    fields.update(overrides)
    return Signal(**fields)


def _decision(ledger: VirtualLedger, cfg: EngineConfig, **overrides):
    return prepare_trade(_signal(**overrides), ledger.read_capital(), cfg)


class TestSubmit:
    def test_filled_then_dismissed(self, ledger: VirtualLedger, engine_config: EngineConfig) -> None:
        clock = _Clock()
        dispatcher = OrderDispatcher(ledger, clock=clock)
        ticket = dispatcher.submit(_decision(ledger, engine_config))
        assert ticket.state is TicketState.FILLED
        assert ticket.fill_price == 3.0
        assert ticket.trade_id is not None

        clock.now += 2.5
        assert ticket.poll() is TicketState.FILLED
        clock.now += 0.5
        assert ticket.poll() is TicketState.DISMISSED

    def test_stale_capital_is_error(self, ledger: VirtualLedger, engine_config: EngineConfig) -> None:
        stale = _decision(ledger, engine_config, signal_id="sig-a")
        OrderDispatcher(ledger).submit(_decision(ledger, engine_config, signal_id="sig-b"))
        ticket = OrderDispatcher(ledger).submit(stale)
        assert ticket.state is TicketState.ERROR
        assert "re-read capital" in ticket.error
        assert ticket.poll() is TicketState.ERROR
        assert ledger.get_position_by_signal("sig-a") is None

    def test_disabled_decision_raises(self, ledger: VirtualLedger, engine_config: EngineConfig) -> None:
        decision = _decision(ledger, engine_config, confidence=40.0)
        with pytest.raises(ValueError):
            OrderDispatcher(ledger).submit(decision)

    def test_resubmit_is_duplicate_fill(self, ledger: VirtualLedger, engine_config: EngineConfig) -> None:
        decision = _decision(ledger, engine_config)
        first = OrderDispatcher(ledger).submit(decision)
        again = OrderDispatcher(ledger).submit(decision)
        assert again.state is TicketState.FILLED
        assert again.fill.duplicate
        assert again.trade_id == first.trade_id


class TestTicket:
    def test_manual_dismiss(self, ledger: VirtualLedger, engine_config: EngineConfig) -> None:
        ticket = OrderDispatcher(ledger, clock=_Clock()).submit(_decision(ledger, engine_config))
        ticket.dismiss()
        assert ticket.state is TicketState.DISMISSED

    def test_error_not_dismissable(self, ledger: VirtualLedger, engine_config: EngineConfig) -> None:
        stale = _decision(ledger, engine_config, signal_id="sig-a")
        OrderDispatcher(ledger).submit(_decision(ledger, engine_config, signal_id="sig-b"))
        ticket = OrderDispatcher(ledger).submit(stale)
        ticket.dismiss()
        assert ticket.state is TicketState.ERROR

    def test_terminal_ticket_cannot_refill(self, ledger: VirtualLedger, engine_config: EngineConfig) -> None:
        ticket = OrderDispatcher(ledger).submit(_decision(ledger, engine_config))
        with pytest.raises(RuntimeError):
            ticket.mark_error("late")

    def test_custom_dismiss_delay(self, ledger: VirtualLedger, engine_config: EngineConfig) -> None:
        clock = _Clock()
        ticket = OrderDispatcher(ledger, auto_dismiss_seconds=10, clock=clock).submit(
            _decision(ledger, engine_config)
        )
        clock.now += 5
        assert ticket.poll() is TicketState.FILLED

    def test_non_positive_fill_is_error_without_position(self, tmp_path, engine_config: EngineConfig) -> None:
        ledger = VirtualLedger(tmp_path / "slip.db", slippage_bps=10_000)
        decision = _decision(
            ledger, engine_config, direction=Direction.BEARISH, stop_loss=104.0, targets=pad_targets([92.0]),
            option_available=False, futures_available=True, futures_ltp=100.5, futures_lot_size=25,
        )
        ticket = OrderDispatcher(ledger).submit(decision)
        assert ticket.state is TicketState.ERROR
        assert "not positive" in ticket.error
        assert ledger.get_position_by_signal("sig-1") is None
        assert ledger.read_capital().version == 0
