"""
Config loader: YAML file -> frozen dataclass tree.

The webhook URL may be supplied through the environment (REBAL_WEBHOOK_URL),
which takes precedence over the file. Engine parameters (fees, slippage,
sizing, opportunity selling) live in the JSON engine config, referenced here
by path and profile.
"""

import os
from dataclasses import dataclass
from pathlib import Path

import yaml


@dataclass(frozen=True)
class EngineRef:
    config_path: str = ""
    profile: str = ""


@dataclass(frozen=True)
class BacktestConfig:
    initial_cash: float = 100_000.0


@dataclass(frozen=True)
class OpportunitySellingToggle:
    enabled: bool = False


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
    user_id: str
    engine: EngineRef
    backtest: BacktestConfig
    opportunity_selling: OpportunitySellingToggle
    journal: JournalConfig
    alerting: AlertingConfig = AlertingConfig()


def load_config(path: str | Path = "config.yaml") -> AppConfig:
    """
    Load configuration from a YAML file.

    Environment overrides:
      - REBAL_WEBHOOK_URL
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, dict):
        raise ValueError(f"Config file must be a YAML mapping, got {type(raw).__name__}")

    e_raw = raw.get("engine", {}) or {}
    engine_ref = EngineRef(
        config_path=str(e_raw.get("config_path", "") or ""),
        profile=str(e_raw.get("profile", "") or ""),
    )

    bt_raw = raw.get("backtest", {}) or {}
    bt_cfg = BacktestConfig(
        initial_cash=float(bt_raw.get("initial_cash", 100_000)),
    )

    o_raw = raw.get("opportunity_selling", {}) or {}
    o_cfg = OpportunitySellingToggle(enabled=bool(o_raw.get("enabled", False)))

    j_raw = raw.get("journal", {}) or {}
    j_cfg = JournalConfig(
        path=j_raw.get("path", "data/journal.jsonl"),
        echo_stdout=bool(j_raw.get("echo_stdout", False)),
    )

    a_raw = raw.get("alerting", {}) or {}
    a_cfg = AlertingConfig(
        structured_logs=bool(a_raw.get("structured_logs", True)),
        webhook_url=os.environ.get("REBAL_WEBHOOK_URL") or str(a_raw.get("webhook_url", "")),
    )

    return AppConfig(
        user_id=str(raw.get("user_id", "default")),
        engine=engine_ref,
        backtest=bt_cfg,
        opportunity_selling=o_cfg,
        journal=j_cfg,
        alerting=a_cfg,
    )
