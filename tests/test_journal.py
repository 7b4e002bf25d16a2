"""Tests for journal writer. Append-only; one JSON line per event."""

import json
from pathlib import Path

from journal.writer import JournalWriter
from trade_core.contracts import InstrumentMode


def _read(path: Path) -> list[dict]:
    return [json.loads(line) for line in path.read_text().splitlines()]


def test_journal_writer_append_only(tmp_path: Path) -> None:
    path = tmp_path / "journal.jsonl"
    j = JournalWriter(path)
    j.rejection("sig-1", "PIVOT", "NO_INSTRUMENT", "No derivative available for this signal")
    j.fill("trade-1", "sig-2", "ACME 105 CE", "BUY", 500, 3.0, position_id="pos-1")
    j.exit("pos-1", "ACME 105 CE", "T1", 200, 5.4, 480.0, "PARTIAL_TARGET")
    records = _read(path)
    assert [r["event"] for r in records] == ["rejection", "fill", "exit"]
    assert records[0]["reason"] == "NO_INSTRUMENT"
    assert records[1]["position_id"] == "pos-1"
    assert records[2]["pnl"] == 480.0
    assert all("ts_utc" in r for r in records)

    JournalWriter(path).dispatch_error("sig-3", "locked")
    assert len(_read(path)) == 4


def test_decision_serializes_enums_and_objects(tmp_path: Path) -> None:
    class _Order:
        def __init__(self) -> None:
            self.instrument_type = InstrumentMode.FUTURES
            self.targets = (92.0, None)

    path = tmp_path / "nested" / "journal.jsonl"
    JournalWriter(path).decision("sig-1", "MERE", "READY", order=_Order(), warnings=["estimate"])
    [record] = _read(path)
    assert record["order"] == {"instrument_type": "FUTURES", "targets": [92.0, None]}
    assert record["warnings"] == ["estimate"]


def test_echo_stdout(tmp_path: Path, capsys) -> None:
    JournalWriter(tmp_path / "j.jsonl", echo_stdout=True).dispatch_error("sig-1", "locked")
    assert '"dispatch_error"' in capsys.readouterr().out
