"""Tests for CLI commands using click CliRunner. No network; uses temp config and ledger."""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from cli.main import cli
from execution import VirtualLedger


def _signal_payload(**overrides) -> dict:
    raw = {
        "signalId": "sig-1",
        "scripCode": "2885",
        "symbol": "ACME",
        "direction": "BULLISH",
        "entryPrice": 100.0,
        "confidence": 80,
        "stopLoss": 96.0,
        "targets": [108.0, 112.0],
        "optionAvailable": True,
        "optionScripCode": "OPT-105",
        "optionSymbol": "ACME 105 CE",
        "optionLtp": 3.0,
        "optionStrike": 105,
        "optionType": "CE",
        "optionLotSize": 50,
    }
    raw.update(overrides)
    return raw


@pytest.fixture
def tmp_config(tmp_path: Path) -> Path:
    """Write a temp config.yaml pointing the ledger and journal into tmp_path."""
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        f"""
strategy: GENERIC
ledger:
  state_path: "{tmp_path / 'ledger.db'}"
  initial_capital: 100000
journal:
  path: "{tmp_path / 'journal.jsonl'}"
  echo_stdout: false
alerting:
  structured_logs: false
"""
    )
    return config_path


def _write_signal(tmp_path: Path, name: str = "signal.json", **overrides) -> Path:
    path = tmp_path / name
    path.write_text(json.dumps(_signal_payload(**overrides)))
    return path


def _run(config: Path, *args: str):
    return CliRunner().invoke(cli, ["--config", str(config), *args])


def _journal(tmp_path: Path) -> list[dict]:
    path = tmp_path / "journal.jsonl"
    if not path.exists():
        return []
    return [json.loads(line) for line in path.read_text().splitlines()]


def _open_position_id(tmp_path: Path) -> str:
    return VirtualLedger(tmp_path / "ledger.db").list_positions()[0].id


class TestPlan:
    def test_ready_plan(self, tmp_config: Path, tmp_path: Path) -> None:
        result = _run(tmp_config, "plan", str(_write_signal(tmp_path)), "--delta", "0.3")
        assert result.exit_code == 0, result.output
        assert "Plan" in result.output
        assert "OPTION ACME 105 CE" in result.output
        assert "SL 1.80" in result.output
        assert "Order      : BUY 25000" in result.output

    def test_capital_override(self, tmp_config: Path, tmp_path: Path) -> None:
        result = _run(tmp_config, "plan", str(_write_signal(tmp_path)), "--capital", "10000")
        assert result.exit_code == 0, result.output
        assert "50 lot(s)" in result.output

    def test_no_instrument(self, tmp_config: Path, tmp_path: Path) -> None:
        path = _write_signal(tmp_path, optionAvailable=False, futuresAvailable=False)
        result = _run(tmp_config, "plan", str(path))
        assert result.exit_code == 0, result.output
        assert "DISABLED" in result.output
        assert "NO_INSTRUMENT" in result.output
        assert "Sizing" not in result.output

    def test_unknown_strategy(self, tmp_config: Path, tmp_path: Path) -> None:
        result = _run(tmp_config, "plan", str(_write_signal(tmp_path)), "--strategy", "NOPE")
        assert result.exit_code != 0
        assert "Unknown strategy" in result.output

    def test_plan_does_not_touch_ledger(self, tmp_config: Path, tmp_path: Path) -> None:
        _run(tmp_config, "plan", str(_write_signal(tmp_path)))
        assert VirtualLedger(tmp_path / "ledger.db").list_positions() == []


class TestBuy:
    def test_buy_fills(self, tmp_config: Path, tmp_path: Path) -> None:
        result = _run(tmp_config, "buy", str(_write_signal(tmp_path)), "--delta", "0.3")
        assert result.exit_code == 0, result.output
        assert "[FILLED]" in result.output
        events = [r["event"] for r in _journal(tmp_path)]
        assert events == ["decision", "fill"]
        assert len(VirtualLedger(tmp_path / "ledger.db").list_positions()) == 1

    def test_buy_twice_is_idempotent(self, tmp_config: Path, tmp_path: Path) -> None:
        path = str(_write_signal(tmp_path))
        _run(tmp_config, "buy", path)
        result = _run(tmp_config, "buy", path)
        assert result.exit_code == 0, result.output
        assert "already filled" in result.output
        assert len(VirtualLedger(tmp_path / "ledger.db").list_positions()) == 1

    def test_buy_disabled_logs_rejection(self, tmp_config: Path, tmp_path: Path) -> None:
        result = _run(tmp_config, "buy", str(_write_signal(tmp_path, confidence=50)))
        assert result.exit_code == 0, result.output
        assert "BELOW_CONFIDENCE" in result.output
        [record] = _journal(tmp_path)
        assert record["event"] == "rejection"
        assert VirtualLedger(tmp_path / "ledger.db").list_positions() == []


class TestPositionCommands:
    def test_mark_partial_exit(self, tmp_config: Path, tmp_path: Path) -> None:
        _run(tmp_config, "buy", str(_write_signal(tmp_path)), "--delta", "0.3")
        pid = _open_position_id(tmp_path)
        result = _run(tmp_config, "mark", pid, "5.5")
        assert result.exit_code == 0, result.output
        assert "PARTIAL_TARGET" in result.output
        assert "PARTIAL_EXIT" in result.output
        assert _journal(tmp_path)[-1]["event"] == "exit"

    def test_trail_loosen_refused(self, tmp_config: Path, tmp_path: Path) -> None:
        _run(tmp_config, "buy", str(_write_signal(tmp_path)), "--delta", "0.3")
        pid = _open_position_id(tmp_path)
        assert _run(tmp_config, "trail", pid, "2.5").exit_code == 0
        result = _run(tmp_config, "trail", pid, "2.0")
        assert result.exit_code != 0
        assert "may not move" in result.output

    def test_mark_equity_stop(self, tmp_config: Path, tmp_path: Path) -> None:
        _run(tmp_config, "buy", str(_write_signal(tmp_path)), "--delta", "0.3")
        pid = _open_position_id(tmp_path)
        result = _run(tmp_config, "mark", pid, "2.5", "--equity", "95.5")
        assert result.exit_code == 0, result.output
        assert "SL-EQ" in result.output
        assert "STOP_HIT" in result.output
        assert _journal(tmp_path)[-1]["level"] == "SL-EQ"

    def test_trail_through_market_refused(self, tmp_config: Path, tmp_path: Path) -> None:
        _run(tmp_config, "buy", str(_write_signal(tmp_path)), "--delta", "0.3")
        pid = _open_position_id(tmp_path)
        result = _run(tmp_config, "trail", pid, "3.5")
        assert result.exit_code != 0
        assert "protective side" in result.output

    def test_close(self, tmp_config: Path, tmp_path: Path) -> None:
        _run(tmp_config, "buy", str(_write_signal(tmp_path)))
        pid = _open_position_id(tmp_path)
        result = _run(tmp_config, "close", pid, "--price", "3.5")
        assert result.exit_code == 0, result.output
        assert "MANUAL" in result.output
        assert "CLOSED" in result.output

    def test_unknown_position(self, tmp_config: Path) -> None:
        result = _run(tmp_config, "close", "missing")
        assert result.exit_code != 0
        assert "No position missing" in result.output


class TestStatusAndHealth:
    def test_status_empty(self, tmp_config: Path) -> None:
        result = _run(tmp_config, "status")
        assert result.exit_code == 0, result.output
        assert "Wallet" in result.output
        assert "No closed positions yet." in result.output

    def test_status_after_buy(self, tmp_config: Path, tmp_path: Path) -> None:
        _run(tmp_config, "buy", str(_write_signal(tmp_path)))
        result = _run(tmp_config, "status")
        assert "Open (1)" in result.output

    def test_health(self, tmp_config: Path) -> None:
        result = _run(tmp_config, "health")
        assert result.exit_code == 0, result.output
        assert "[OK] config" in result.output
        assert "[OK] engine_config" in result.output
        assert "HEALTHY" in result.output

    def test_health_missing_config(self, tmp_path: Path) -> None:
        result = _run(tmp_path / "missing.yaml", "health")
        assert result.exit_code == 1
        assert "[FAIL] config" in result.output


class TestEod:
    def test_eod_closes_session(self, tmp_config: Path, tmp_path: Path) -> None:
        _run(tmp_config, "buy", str(_write_signal(tmp_path)), "--delta", "0.3")
        pid = _open_position_id(tmp_path)
        result = _run(tmp_config, "eod", "nse", "--price", f"{pid}=3.6")
        assert result.exit_code == 0, result.output
        assert "EOD exit NSE (cutoff 15:25 IST): 1 position(s) closed" in result.output
        pos = VirtualLedger(tmp_path / "ledger.db").get_position(pid)
        assert pos.exit_reason.value == "EOD"
        assert pos.current_price == 3.6
        record = _journal(tmp_path)[-1]
        assert record["event"] == "exit"
        assert record["reason"] == "EOD"

    def test_other_session_untouched(self, tmp_config: Path, tmp_path: Path) -> None:
        _run(tmp_config, "buy", str(_write_signal(tmp_path)))
        result = _run(tmp_config, "eod", "MCX")
        assert result.exit_code == 0, result.output
        assert "0 position(s) closed" in result.output
        assert len(VirtualLedger(tmp_path / "ledger.db").list_positions(open_only=True)) == 1

    def test_bad_price_option(self, tmp_config: Path) -> None:
        result = _run(tmp_config, "eod", "NSE", "--price", "3.6")
        assert result.exit_code == 2
        assert "POSITION_ID=PRICE" in result.output


class TestStrategyExitRules:
    @pytest.fixture
    def override_config(self, tmp_path: Path) -> Path:
        """Default strategy FUDKII; GENERIC overrides the exit rules."""
        from config.engine_config import DEFAULT_CONFIG_PATH

        engine_dir = tmp_path / "engine"
        engine_dir.mkdir()
        base = engine_dir / "engine.default.json"
        base.write_text(DEFAULT_CONFIG_PATH.read_text())
        (engine_dir / "engine.GENERIC.json").write_text(
            json.dumps({"exits": {"trail_confirm_pct": 0.05, "break_even_on_tp1": False}})
        )
        config_path = tmp_path / "config.yaml"
        config_path.write_text(
            f"""
strategy: FUDKII
engine_config: "{base}"
ledger:
  state_path: "{tmp_path / 'ledger.db'}"
journal:
  path: "{tmp_path / 'journal.jsonl'}"
alerting:
  structured_logs: false
"""
        )
        return config_path

    def test_mark_uses_position_strategy(self, override_config: Path, tmp_path: Path) -> None:
        result = _run(override_config, "buy", str(_write_signal(tmp_path)), "--strategy", "GENERIC", "--delta", "0.3")
        assert result.exit_code == 0, result.output
        pid = _open_position_id(tmp_path)
        assert _run(override_config, "mark", pid, "5.5").exit_code == 0
        pos = VirtualLedger(tmp_path / "ledger.db").get_position(pid)
        assert pos.strategy == "GENERIC"
        assert pos.tp1_hit
        # default rules would have trailed to T1 (5.4)
        assert pos.trailing_stop is None
