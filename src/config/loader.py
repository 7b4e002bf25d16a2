"""
Config loader: YAML file -> frozen dataclass tree.

The alert webhook is resolved from the environment (TRADE_ENGINE_WEBHOOK_URL)
when set, so the config file holds only non-secret values.
"""

import os
from dataclasses import dataclass
from pathlib import Path

import yaml


@dataclass(frozen=True)
class LedgerConfig:
    state_path: str = "data/ledger.db"
    initial_capital: float = 100_000.0
    timeout_seconds: float = 10.0
    slippage_bps: float = 0.0


@dataclass(frozen=True)
class JournalConfig:
    path: str = "data/journal.jsonl"
    echo_stdout: bool = False


@dataclass(frozen=True)
class AlertingConfig:
    structured_logs: bool = True
    webhook_url: str = ""


@dataclass(frozen=True)
class AppConfig:
    strategy: str
    ledger: LedgerConfig
    journal: JournalConfig
    alerting: AlertingConfig = AlertingConfig()
    engine_config_path: str = ""


def load_config(path: str | Path = "config.yaml") -> AppConfig:
    """
    Load configuration from a YAML file.

    TRADE_ENGINE_WEBHOOK_URL, when set, overrides ``alerting.webhook_url``.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, dict):
        raise ValueError(f"Config file must be a YAML mapping, got {type(raw).__name__}")

    l_raw = raw.get("ledger", {})
    l_cfg = LedgerConfig(
        state_path=l_raw.get("state_path", "data/ledger.db"),
        initial_capital=float(l_raw.get("initial_capital", 100_000)),
        timeout_seconds=float(l_raw.get("timeout_seconds", 10.0)),
        slippage_bps=float(l_raw.get("slippage_bps", 0.0)),
    )

    j_raw = raw.get("journal", {})
    j_cfg = JournalConfig(
        path=j_raw.get("path", "data/journal.jsonl"),
        echo_stdout=bool(j_raw.get("echo_stdout", False)),
    )

    a_raw = raw.get("alerting", {})
    a_cfg = AlertingConfig(
        structured_logs=bool(a_raw.get("structured_logs", True)),
        webhook_url=os.environ.get("TRADE_ENGINE_WEBHOOK_URL") or str(a_raw.get("webhook_url", "")),
    )

    return AppConfig(
        strategy=str(raw.get("strategy", "GENERIC")).upper(),
        ledger=l_cfg,
        journal=j_cfg,
        alerting=a_cfg,
        engine_config_path=str(raw.get("engine_config", "") or ""),
    )
