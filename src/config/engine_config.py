"""
Engine config loader: JSON file -> frozen dataclass tree, validated against JSON Schema.

Default values: docs/config/engine.default.json
Schema:         docs/config/engine_config.schema.json

Per-strategy overrides: place a partial JSON file named ``engine.{STRATEGY}.json``
next to the default config (e.g. ``docs/config/engine.PIVOT.json``). Only the
keys you want to override need to be present; they are deep-merged on top
of the base config before schema validation.

Usage:
    from config.engine_config import load_engine_config
    cfg = load_engine_config()                       # loads default
    cfg = load_engine_config(strategy="MERE")        # merges engine.MERE.json if present
    cfg.sizing.min_confidence  # -> 60
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema

logger = logging.getLogger("trade_engine.config")

# ---------------------------------------------------------------------------
# Project root detection (walk up from this file to find pyproject.toml)
# ---------------------------------------------------------------------------


def _find_project_root() -> Path:
    """Walk up from this file looking for pyproject.toml.

    Falls back to CWD when the package is installed outside the source tree.
    """
    candidate = Path(__file__).resolve().parent
    for _ in range(10):
        if (candidate / "pyproject.toml").exists():
            return candidate
        parent = candidate.parent
        if parent == candidate:
            break
        candidate = parent
    return Path.cwd()


_PROJECT_ROOT = _find_project_root()

DEFAULT_CONFIG_PATH = _PROJECT_ROOT / "docs" / "config" / "engine.default.json"
DEFAULT_SCHEMA_PATH = _PROJECT_ROOT / "docs" / "config" / "engine_config.schema.json"


# ---------------------------------------------------------------------------
# Frozen dataclass tree, mirrors engine.default.json structure exactly
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PlanConfig:
    """Fallback plan synthesis when the signal carries no enriched levels."""
    stop_multiplier: float = 1.5
    target_multiples: tuple[float, ...] = (2.0, 3.0, 4.0, 5.0)
    band_width_divisor: float = 2.5
    entry_fraction: float = 0.004


@dataclass(frozen=True)
class StrikeBucket:
    above: float
    interval: float


@dataclass(frozen=True)
class StrikesConfig:
    buckets: tuple[StrikeBucket, ...] = (
        StrikeBucket(40_000, 500),
        StrikeBucket(20_000, 200),
        StrikeBucket(10_000, 100),
        StrikeBucket(5_000, 50),
        StrikeBucket(2_000, 20),
        StrikeBucket(1_000, 10),
        StrikeBucket(500, 5),
        StrikeBucket(100, 2.5),
    )
    default_interval: float = 1.0


@dataclass(frozen=True)
class DeltaConfig:
    model: str = "LINEAR"      # "LINEAR" | "LOGISTIC"
    slope: float = 3.0
    steepness: float = 10.0
    floor: float = 0.15
    cap: float = 0.85
    tick_floor: float = 0.05


@dataclass(frozen=True)
class SyntheticPremiumConfig:
    implied_vol: float = 0.15
    days_to_expiry: float = 7.0
    otm_decay: float = 0.3
    min_premium: float = 1.0


@dataclass(frozen=True)
class InstrumentsConfig:
    self_futures_exchanges: tuple[str, ...] = ("C",)


@dataclass(frozen=True)
class SizingConfig:
    min_confidence: float = 60.0
    high_confidence_gt: float = 75.0
    high_alloc_pct: float = 0.75
    standard_alloc_pct: float = 0.50


@dataclass(frozen=True)
class ExitsConfig:
    target_close_pcts: tuple[float, ...] = (40.0, 30.0, 20.0, 10.0)
    trail_confirm_pct: float = 0.01
    break_even_on_tp1: bool = True


@dataclass(frozen=True)
class DispatchConfig:
    auto_dismiss_seconds: float = 3.0


@dataclass(frozen=True)
class EngineConfig:
    """Top-level engine configuration. All thresholds for plan, mapping, sizing and exits."""
    version: str
    plan: PlanConfig = field(default_factory=PlanConfig)
    strikes: StrikesConfig = field(default_factory=StrikesConfig)
    delta: DeltaConfig = field(default_factory=DeltaConfig)
    synthetic_premium: SyntheticPremiumConfig = field(default_factory=SyntheticPremiumConfig)
    instruments: InstrumentsConfig = field(default_factory=InstrumentsConfig)
    sizing: SizingConfig = field(default_factory=SizingConfig)
    exits: ExitsConfig = field(default_factory=ExitsConfig)
    dispatch: DispatchConfig = field(default_factory=DispatchConfig)


# ---------------------------------------------------------------------------
# Deep merge for per-strategy overrides
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge *overrides* into a copy of *base*.

    - Dict values are merged recursively (override keys win).
    - Non-dict values (lists included) in overrides replace the base value.
    - Keys in base that are absent from overrides are preserved.
    """
    merged = dict(base)
    for key, val in overrides.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(val, dict):
            merged[key] = _deep_merge(merged[key], val)
        else:
            merged[key] = val
    return merged


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------


class EngineConfigError(Exception):
    """Raised when engine config loading or validation fails."""


def _validate_schema(data: dict[str, Any], schema_path: Path) -> None:
    """Validate *data* against the JSON Schema at *schema_path*."""
    if not schema_path.exists():
        raise EngineConfigError(f"Schema file not found: {schema_path}")
    with open(schema_path) as f:
        schema = json.load(f)
    try:
        jsonschema.validate(instance=data, schema=schema)
    except jsonschema.ValidationError as exc:
        raise EngineConfigError(f"Engine config validation failed: {exc.message}") from exc


def _build_config(data: dict[str, Any]) -> EngineConfig:
    """Convert a raw dict (already validated) into the frozen dataclass tree."""
    plan_raw = data.get("plan", {})
    strikes_raw = data.get("strikes", {})
    delta_raw = data.get("delta", {})
    prem_raw = data.get("synthetic_premium", {})
    sizing_raw = data.get("sizing", {})
    exits_raw = data.get("exits", {})

    strikes = StrikesConfig()
    if "buckets" in strikes_raw:
        buckets = sorted(
            (StrikeBucket(above=b["above"], interval=b["interval"]) for b in strikes_raw["buckets"]),
            key=lambda b: b.above,
            reverse=True,
        )
        strikes = StrikesConfig(
            buckets=tuple(buckets),
            default_interval=strikes_raw.get("default_interval", 1.0),
        )

    return EngineConfig(
        version=data["version"],
        plan=PlanConfig(
            stop_multiplier=plan_raw.get("stop_multiplier", 1.5),
            target_multiples=tuple(plan_raw.get("target_multiples", (2.0, 3.0, 4.0, 5.0))),
            band_width_divisor=plan_raw.get("band_width_divisor", 2.5),
            entry_fraction=plan_raw.get("entry_fraction", 0.004),
        ),
        strikes=strikes,
        delta=DeltaConfig(
            model=delta_raw.get("model", "LINEAR"),
            slope=delta_raw.get("slope", 3.0),
            steepness=delta_raw.get("steepness", 10.0),
            floor=delta_raw.get("floor", 0.15),
            cap=delta_raw.get("cap", 0.85),
            tick_floor=delta_raw.get("tick_floor", 0.05),
        ),
        synthetic_premium=SyntheticPremiumConfig(
            implied_vol=prem_raw.get("implied_vol", 0.15),
            days_to_expiry=prem_raw.get("days_to_expiry", 7.0),
            otm_decay=prem_raw.get("otm_decay", 0.3),
            min_premium=prem_raw.get("min_premium", 1.0),
        ),
        instruments=InstrumentsConfig(
            self_futures_exchanges=tuple(
                data.get("instruments", {}).get("self_futures_exchanges", ("C",))
            ),
        ),
        sizing=SizingConfig(
            min_confidence=sizing_raw.get("min_confidence", 60.0),
            high_confidence_gt=sizing_raw.get("high_confidence_gt", 75.0),
            high_alloc_pct=sizing_raw.get("high_alloc_pct", 0.75),
            standard_alloc_pct=sizing_raw.get("standard_alloc_pct", 0.50),
        ),
        exits=ExitsConfig(
            target_close_pcts=tuple(exits_raw.get("target_close_pcts", (40.0, 30.0, 20.0, 10.0))),
            trail_confirm_pct=exits_raw.get("trail_confirm_pct", 0.01),
            break_even_on_tp1=exits_raw.get("break_even_on_tp1", True),
        ),
        dispatch=DispatchConfig(
            auto_dismiss_seconds=data.get("dispatch", {}).get("auto_dismiss_seconds", 3.0),
        ),
    )


def load_engine_config(
    config_path: str | Path | None = None,
    schema_path: str | Path | None = None,
    strategy: str | None = None,
) -> EngineConfig:
    """Load and validate engine configuration.

    Parameters
    ----------
    config_path:
        Path to an engine JSON config file.  Defaults to ``docs/config/engine.default.json``.
    schema_path:
        Path to the JSON Schema file.  Defaults to ``docs/config/engine_config.schema.json``.
    strategy:
        Optional strategy tag.  When provided, the loader looks for a
        per-strategy override file ``engine.{STRATEGY}.json`` in the same
        directory as the base config and deep-merges it before validation.
        A missing override file is not an error.

    Returns
    -------
    EngineConfig
        Frozen dataclass tree with all engine parameters.

    Raises
    ------
    EngineConfigError
        If the file is missing, unparseable, or fails schema validation.
    """
    cfg_path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
    sch_path = Path(schema_path) if schema_path else DEFAULT_SCHEMA_PATH

    if not cfg_path.exists():
        raise EngineConfigError(f"Engine config file not found: {cfg_path}")

    try:
        with open(cfg_path) as f:
            data = json.load(f)
    except json.JSONDecodeError as exc:
        raise EngineConfigError(f"Engine config is not valid JSON: {exc}") from exc

    if strategy:
        override_path = cfg_path.parent / f"engine.{strategy.upper()}.json"
        if override_path.exists():
            try:
                with open(override_path) as f:
                    overrides = json.load(f)
            except json.JSONDecodeError as exc:
                raise EngineConfigError(
                    f"Per-strategy config {override_path.name} is not valid JSON: {exc}"
                ) from exc
            data = _deep_merge(data, overrides)
            logger.info("Loaded per-strategy config: %s", override_path.name)
        else:
            logger.debug("No per-strategy config found at %s; using defaults", override_path)

    _validate_schema(data, sch_path)

    return _build_config(data)
