"""
Configuration loaders.

App config:    reads config.yaml, resolves env vars for the alert webhook.
Engine config: reads engine.default.json (or override), validates against JSON Schema.
"""

from config.engine_config import (
    DeltaConfig,
    DispatchConfig,
    EngineConfig,
    EngineConfigError,
    ExitsConfig,
    InstrumentsConfig,
    PlanConfig,
    SizingConfig,
    StrikesConfig,
    SyntheticPremiumConfig,
    load_engine_config,
)
from config.loader import (
    AlertingConfig,
    AppConfig,
    JournalConfig,
    LedgerConfig,
    load_config,
)

__all__ = [
    # App config (YAML)
    "AlertingConfig",
    "AppConfig",
    "JournalConfig",
    "LedgerConfig",
    "load_config",
    # Engine config (JSON + schema)
    "DeltaConfig",
    "DispatchConfig",
    "EngineConfig",
    "EngineConfigError",
    "ExitsConfig",
    "InstrumentsConfig",
    "PlanConfig",
    "SizingConfig",
    "StrikesConfig",
    "SyntheticPremiumConfig",
    "load_engine_config",
]
