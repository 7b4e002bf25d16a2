"""Tests for strategy adapters: raw payloads -> Signal."""

import pytest

from trade_core.adapters import adapt_signal, available_strategies, pivot_confidence
from trade_core.contracts import Direction, OptionType


def _fudkii(**overrides) -> dict:
    raw = {
        "scripCode": "2885",
        "symbol": "RELIANCE",
        "direction": "BULLISH",
        "triggerPrice": 2_450.5,
        "triggerScore": 78.0,
        "triggerTimeEpoch": 1_772_440_200_000,
        "stopLoss": 2_430.0,
        "target1": 2_490.0,
        "target2": 2_510.0,
        "bbUpper": 2_460.0,
        "bbLower": 2_420.0,
        "optionAvailable": True,
        "optionScripCode": "51234",
        "optionSymbol": "RELIANCE 2460 CE",
        "optionLtp": 32.4,
        "optionStrike": 2_460,
        "optionType": "CE",
        "optionLotSize": 250,
    }
    raw.update(overrides)
    return raw


def _pivot(**overrides) -> dict:
    raw = {
        "scripCode": "1333",
        "direction": "LONG",
        "entryPrice": 100.0,
        "stopLoss": 96.0,
        "target": 108.0,
    }
    raw.update(overrides)
    return raw


class TestRegistry:
    def test_all_strategies_registered(self) -> None:
        assert available_strategies() == ["FUDKII", "FUKAA", "GENERIC", "MERE", "MICROALPHA", "PIVOT"]

    def test_unknown_strategy(self) -> None:
        with pytest.raises(ValueError, match="Unknown strategy"):
            adapt_signal("NOPE", _fudkii())

    def test_tag_case_insensitive(self) -> None:
        assert adapt_signal("fudkii", _fudkii()).strategy == "FUDKII"


class TestTriggerStrategies:
    def test_fudkii(self) -> None:
        sig = adapt_signal("FUDKII", _fudkii())
        assert sig.signal_id == "FUDKII-2885-1772440200000"
        assert sig.entry_price == 2_450.5
        assert sig.confidence == 78.0
        assert sig.direction is Direction.BULLISH
        assert sig.targets == (2_490.0, 2_510.0, None, None)
        assert sig.band_upper == 2_460.0
        assert sig.band_middle is None
        assert sig.option_available is True
        assert sig.option_type is OptionType.CE
        assert sig.option_lot_size == 250
        assert sig.futures_available is None

    def test_explicit_signal_id(self) -> None:
        assert adapt_signal("FUKAA", _fudkii(signalId="abc")).signal_id == "abc"

    def test_mere_score_and_atr(self) -> None:
        sig = adapt_signal("MERE", _fudkii(mereScore=66, atr30m=12.5))
        assert sig.confidence == 66.0
        assert sig.atr == 12.5
        assert sig.strategy == "MERE"

    def test_bad_direction(self) -> None:
        with pytest.raises(ValueError):
            adapt_signal("FUDKII", _fudkii(direction="NEUTRAL"))

    def test_missing_trigger_price(self) -> None:
        raw = _fudkii()
        del raw["triggerPrice"]
        with pytest.raises(KeyError):
            adapt_signal("FUDKII", raw)


class TestPivot:
    def test_extends_targets_by_r_multiples(self) -> None:
        sig = adapt_signal("PIVOT", _pivot())
        assert sig.targets == (108.0, 112.0, 116.0, 120.0)
        assert sig.atr == 4.0
        assert sig.direction is Direction.BULLISH

    def test_bearish_targets(self) -> None:
        sig = adapt_signal("PIVOT", _pivot(direction="SHORT", stopLoss=104.0, target=92.0))
        assert sig.targets == (92.0, 88.0, 84.0, 80.0)

    def test_extension_inside_t1_dropped(self) -> None:
        sig = adapt_signal("PIVOT", _pivot(target=114.0))
        assert sig.targets == (114.0, None, 116.0, 120.0)

    def test_minimal_confidence_floor(self) -> None:
        assert pivot_confidence(_pivot()) == 55

    def test_full_confluence(self) -> None:
        raw = _pivot(
            htfStrength=0.8, ltfConfirmed=True, pivotNearbyLevels=4, hasConfirmedRetest=True,
            hasActiveBreakout=True, smcInOrderBlock=True, smcNearFVG=True,
            mlAvailable=True, mlConfidence=0.75, mlPrediction="BUY", mlVpinToxicity=0.8,
        )
        # 40 + 16 + 10 + 6 + 7 + 5 + 4 + 6 - 3
        assert pivot_confidence(raw) == 91

    def test_ml_disagreement_penalized(self) -> None:
        base = _pivot(htfStrength=1.0, ltfConfirmed=True)
        against = dict(base, mlAvailable=True, mlConfidence=0.8, mlPrediction="SELL")
        assert pivot_confidence(base) == 70
        assert pivot_confidence(against) == 66

    def test_confidence_cap(self) -> None:
        raw = _pivot(
            htfStrength=2.0, ltfConfirmed=True, pivotNearbyLevels=10, hasConfirmedRetest=True,
            hasActiveBreakout=True, mlAvailable=True, mlConfidence=1.0, mlPrediction="BUY",
        )
        assert pivot_confidence(raw) == 97


class TestMicroAlpha:
    def test_conviction_clamped(self) -> None:
        raw = _pivot(absConviction=72.4)
        assert adapt_signal("MICROALPHA", raw).confidence == 72
        assert adapt_signal("MICROALPHA", dict(raw, absConviction=30)).confidence == 40
        assert adapt_signal("MICROALPHA", dict(raw, absConviction=120)).confidence == 97

    def test_targets(self) -> None:
        sig = adapt_signal("MICROALPHA", _pivot(stopLoss=98.0, target=104.0, absConviction=80))
        assert sig.targets == (104.0, 106.0, 108.0, None)
        assert sig.atr == 2.0


class TestGeneric:
    def test_targets_list(self) -> None:
        raw = {
            "signalId": "g-1", "scripCode": "99", "direction": "SELL", "entryPrice": 50.0,
            "confidence": 70, "stopLoss": 52.0, "targets": [46.0, 44.0],
            "futuresAvailable": True, "futuresLtp": 50.2,
        }
        sig = adapt_signal("GENERIC", raw)
        assert sig.direction is Direction.BEARISH
        assert sig.targets == (46.0, 44.0, None, None)
        assert sig.futures_ltp == 50.2

    def test_numbered_targets(self) -> None:
        raw = {"scripCode": "99", "direction": "BUY", "entryPrice": 50.0, "target1": 55, "target3": 60}
        sig = adapt_signal("GENERIC", raw)
        assert sig.targets == (55.0, None, 60.0, None)
        assert sig.signal_id == "GENERIC-99-0"
        assert sig.confidence == 0.0
