"""
Engine config loader: JSON file -> frozen dataclass tree, validated against JSON Schema.

Default values:      docs/config/engine.default.json
Schema:              docs/config/engine_config.schema.json

Per-profile overrides: place a partial JSON file named ``engine.{PROFILE}.json``
next to the default config (e.g. ``docs/config/engine.binance.json``). Only the
keys you want to override need to be present; they are deep-merged on top
of the base config before schema validation.

Usage:
    from config.engine_config import load_engine_config
    cfg = load_engine_config()                      # loads default
    cfg = load_engine_config(profile="binance")     # merges engine.binance.json if present
    cfg = load_engine_config("my_overrides.json")   # loads custom file
    cfg.fees.rate  # -> 0.001
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import jsonschema

from trade_core.contracts import (
    FeeConfig,
    InvalidInputError,
    OpportunitySellingUserConfig,
    PositionSizingConfig,
    SlippageConfig,
)
from trade_core.fees import build_fee_config
from trade_core.slippage import build_slippage_config

logger = logging.getLogger("rebal.config")

# ---------------------------------------------------------------------------
# Project root detection (walk up from this file to find pyproject.toml)
# ---------------------------------------------------------------------------


def _find_project_root() -> Path:
    """Walk up from this file looking for pyproject.toml.

    When running from source, finds the repo root. When installed as a
    regular package pyproject.toml won't exist, so fall back to CWD.
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


@dataclass(frozen=True)
class EngineConfig:
    """Everything the trade core needs, resolved to concrete variants."""
    version: str
    fees: FeeConfig
    slippage: SlippageConfig
    sizing: PositionSizingConfig
    opportunity_selling: OpportunitySellingUserConfig


# ---------------------------------------------------------------------------
# Deep merge for per-profile overrides
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge *overrides* into a copy of *base*.

    - Dict values are merged recursively (override keys win).
    - Non-dict values in overrides replace the base value.
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
    fees_raw = data["fees"]
    slip_raw = data["slippage"]
    sizing_raw = data["sizing"]
    opp_raw = data["opportunity_selling"]

    if sizing_raw["min_allocation"] > sizing_raw["max_allocation"]:
        raise EngineConfigError("sizing.min_allocation must not exceed sizing.max_allocation")

    try:
        fees = build_fee_config(
            fees_raw["type"],
            flat_rate=fees_raw.get("flat_rate"),
            maker_rate=fees_raw.get("maker_rate"),
            taker_rate=fees_raw.get("taker_rate"),
        )
        slippage = build_slippage_config(
            slip_raw["model"],
            fixed_bps=slip_raw.get("fixed_bps"),
            base_bps=slip_raw.get("base_bps"),
            volume_impact_factor=slip_raw.get("volume_impact_factor"),
            historical_bps=slip_raw.get("historical_bps"),
            max_slippage_bps=slip_raw.get("max_slippage_bps"),
        )
    except InvalidInputError as exc:
        raise EngineConfigError(f"Engine config has an invalid rate: {exc}") from exc

    defaults = OpportunitySellingUserConfig()
    return EngineConfig(
        version=data["version"],
        fees=fees,
        slippage=slippage,
        sizing=PositionSizingConfig(
            min_allocation=sizing_raw["min_allocation"],
            max_allocation=sizing_raw["max_allocation"],
            max_positions=sizing_raw["max_positions"],
        ),
        opportunity_selling=OpportunitySellingUserConfig(
            min_opportunity_confidence=opp_raw["min_opportunity_confidence"],
            min_holding_period_hours=opp_raw["min_holding_period_hours"],
            protect_gains_above_percent=opp_raw["protect_gains_above_percent"],
            protected_assets=tuple(opp_raw.get("protected_assets", ())),
            min_opportunity_advantage_percent=opp_raw.get(
                "min_opportunity_advantage_percent", defaults.min_opportunity_advantage_percent
            ),
            max_liquidation_percent=opp_raw["max_liquidation_percent"],
            use_algorithm_ranking=opp_raw.get("use_algorithm_ranking", defaults.use_algorithm_ranking),
        ),
    )


def load_engine_config(
    config_path: str | Path | None = None,
    schema_path: str | Path | None = None,
    profile: str | None = None,
) -> EngineConfig:
    """Load and validate the engine configuration.

    Parameters
    ----------
    config_path:
        Path to an engine JSON config file. Defaults to ``docs/config/engine.default.json``.
    schema_path:
        Path to the JSON Schema file. Defaults to ``docs/config/engine_config.schema.json``.
    profile:
        Optional profile name (e.g. an exchange). When provided, the loader
        looks for ``engine.{profile}.json`` in the same directory as the base
        config and deep-merges it on top before validation. A missing
        profile file is not an error.

    Returns
    -------
    EngineConfig
        Frozen dataclass tree with fee, slippage, sizing and opportunity
        selling settings.

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

    if profile:
        override_path = cfg_path.parent / f"engine.{profile.lower()}.json"
        if override_path.exists():
            try:
                with open(override_path) as f:
                    overrides = json.load(f)
            except json.JSONDecodeError as exc:
                raise EngineConfigError(
                    f"Profile config {override_path.name} is not valid JSON: {exc}"
                ) from exc
            data = _deep_merge(data, overrides)
            logger.info("Loaded profile config: %s", override_path.name)
        else:
            logger.debug("No profile config found at %s, using defaults", override_path)

    _validate_schema(data, sch_path)

    return _build_config(data)
