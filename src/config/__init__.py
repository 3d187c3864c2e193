"""
Configuration loaders.

App config:     reads config.yaml, resolves env vars for secrets.
Engine config:  reads engine.default.json (or override), validates against JSON Schema.
"""

from config.engine_config import (
    EngineConfig,
    EngineConfigError,
    load_engine_config,
)
from config.loader import (
    AlertingConfig,
    AppConfig,
    BacktestConfig,
    EngineRef,
    JournalConfig,
    OpportunitySellingToggle,
    load_config,
)

__all__ = [
    # App config (YAML)
    "AlertingConfig",
    "AppConfig",
    "BacktestConfig",
    "EngineRef",
    "JournalConfig",
    "OpportunitySellingToggle",
    "load_config",
    # Engine config (JSON + schema)
    "EngineConfig",
    "EngineConfigError",
    "load_engine_config",
]
