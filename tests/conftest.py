"""Pytest fixtures: engine config and a temp ledger for deterministic tests."""

from pathlib import Path

import pytest

from config.engine_config import EngineConfig
from execution.paper_ledger import VirtualLedger


@pytest.fixture
def engine_config() -> EngineConfig:
    """Built-in defaults (same values as docs/config/engine.default.json)."""
    return EngineConfig(version="test")


@pytest.fixture
def ledger(tmp_path: Path) -> VirtualLedger:
    return VirtualLedger(tmp_path / "ledger.db", initial_capital=100_000.0)
