"""Tests for Instrument Resolver: option, futures, own-futures, none, legacy synthetic."""

import pytest

from config.engine_config import EngineConfig
from trade_core.contracts import Direction, InstrumentMode, OptionType, Signal, pad_targets
from trade_core.instrument import estimate_synthetic_premium, resolve_instrument
from trade_core.trade_plan import build_trade_plan


def _signal(**overrides) -> Signal:
    fields = dict(
        signal_id="sig-1",
        scrip_code="12345",
        symbol="ACME",
        exchange="N",
        direction=Direction.BULLISH,
        entry_price=1_000.0,
        confidence=80.0,
        stop_loss=990.0,
        targets=pad_targets([1_020.0]),
    )
    fields.update(overrides)
    return Signal(**fields)


def _resolve(sig: Signal, cfg: EngineConfig):
    return resolve_instrument(sig, build_trade_plan(sig, cfg), cfg)


class TestOption:
    def test_real_quote(self, engine_config: EngineConfig) -> None:
        sig = _signal(
            option_available=True, option_ltp=12.5, option_strike=1_010.0, option_type=OptionType.CE,
            option_lot_size=300, option_scrip_code="OPT-9", option_symbol="ACME 1010 CE",
            futures_available=True, futures_ltp=1_002.0,
        )
        sel = _resolve(sig, engine_config)
        assert sel.mode is InstrumentMode.OPTION
        assert sel.premium == 12.5
        assert sel.strike == 1_010.0
        assert sel.lot_size == 300
        assert sel.scrip_code == "OPT-9"
        assert not sel.synthetic_premium
        assert sel.delta_mapped

    def test_missing_strike_falls_back_to_plan(self, engine_config: EngineConfig) -> None:
        sig = _signal(option_available=True, option_ltp=12.5)
        sel = _resolve(sig, engine_config)
        assert sel.strike == 1_005.0
        assert sel.option_type is OptionType.CE
        assert sel.lot_size == 1

    def test_zero_ltp_is_not_a_quote(self, engine_config: EngineConfig) -> None:
        sig = _signal(option_available=True, option_ltp=0.0, futures_available=False)
        assert _resolve(sig, engine_config).mode is InstrumentMode.NONE


class TestFutures:
    def test_futures_fallback(self, engine_config: EngineConfig) -> None:
        sig = _signal(
            option_available=False, futures_available=True, futures_ltp=1_003.5,
            futures_lot_size=250, futures_scrip_code="FUT-1",
        )
        sel = _resolve(sig, engine_config)
        assert sel.mode is InstrumentMode.FUTURES
        assert sel.premium == 1_003.5
        assert sel.lot_size == 250
        assert sel.scrip_code == "FUT-1"
        assert not sel.delta_mapped

    def test_currency_scrip_is_its_own_future(self, engine_config: EngineConfig) -> None:
        sig = _signal(exchange="C", entry_price=83.25, stop_loss=83.0, targets=pad_targets([83.75]),
                      option_available=False, futures_available=False)
        sel = _resolve(sig, engine_config)
        assert sel.mode is InstrumentMode.FUTURES
        assert sel.scrip_code == "12345"
        assert sel.premium == 83.25


class TestNone:
    def test_flags_false(self, engine_config: EngineConfig) -> None:
        sel = _resolve(_signal(option_available=False, futures_available=False), engine_config)
        assert sel.mode is InstrumentMode.NONE
        assert not sel.is_tradable
        assert "No derivative" in sel.reason

    def test_one_flag_present_is_enough(self, engine_config: EngineConfig) -> None:
        assert _resolve(_signal(futures_available=False), engine_config).mode is InstrumentMode.NONE


class TestLegacy:
    def test_synthetic_option(self, engine_config: EngineConfig) -> None:
        sel = _resolve(_signal(), engine_config)
        assert sel.mode is InstrumentMode.OPTION
        assert sel.synthetic_premium
        assert sel.lot_size == 1
        assert sel.strike == 1_005.0
        assert sel.premium == estimate_synthetic_premium(1_000.0, 1_005.0, OptionType.CE)


class TestSyntheticPremium:
    def test_otm_call(self) -> None:
        # tv = 1000 × 0.15 × sqrt(7/365) ≈ 20.77; minus 0.3 × 10
        assert estimate_synthetic_premium(1_000.0, 1_010.0, OptionType.CE) == pytest.approx(17.77, abs=0.01)

    def test_itm_put_includes_intrinsic(self) -> None:
        otm = estimate_synthetic_premium(1_000.0, 990.0, OptionType.PE)
        itm = estimate_synthetic_premium(1_000.0, 1_010.0, OptionType.PE)
        assert itm > otm

    def test_minimum_premium(self) -> None:
        assert estimate_synthetic_premium(10.0, 30.0, OptionType.CE) == 1.0
