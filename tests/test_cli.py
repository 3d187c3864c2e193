"""Tests for CLI commands using click CliRunner. No network; uses fixture data."""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from cli.main import cli


@pytest.fixture
def tmp_config(tmp_path: Path) -> Path:
    """Write a temp config.yaml with journal under tmp_path."""
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        f"""
user_id: tester
backtest:
  initial_cash: 10000
opportunity_selling:
  enabled: true
journal:
  path: {tmp_path / "journal.jsonl"}
alerting:
  structured_logs: true
  webhook_url: ""
"""
    )
    return config_path


@pytest.fixture
def snapshot_path(tmp_path: Path) -> Path:
    p = tmp_path / "snapshot.json"
    p.write_text(json.dumps({
        "buy_signal": {"asset_id": "ETH", "confidence": 0.9, "required_amount": 6_000},
        "available_cash": 1_000,
        "positions": [
            {"asset_id": "SOL", "quantity": 100, "average_price": 100, "entry_date": "2024-01-01T00:00:00Z"},
            {"asset_id": "BTC", "quantity": 1, "average_price": 30_000, "entry_date": "2024-01-01T00:00:00Z"},
        ],
        "prices": {"SOL": 90, "BTC": 40_000},
        "now": "2024-02-01T00:00:00Z",
    }))
    return p


def _journal(tmp_path: Path) -> list[dict]:
    path = tmp_path / "journal.jsonl"
    if not path.exists():
        return []
    return [json.loads(line) for line in path.read_text().splitlines()]


def test_cli_fee_without_app_config(tmp_path: Path) -> None:
    runner = CliRunner()
    result = runner.invoke(cli, ["--config", str(tmp_path / "missing.yaml"), "fee", "--value", "10000"])
    assert result.exit_code == 0, result.output
    assert "Fee rate     : 0.1000%" in result.output
    assert "$10.0000" in result.output


def test_cli_fee_negative_value(tmp_path: Path) -> None:
    runner = CliRunner()
    result = runner.invoke(cli, ["--config", str(tmp_path / "missing.yaml"), "fee", "--value=-1"])
    assert result.exit_code != 0
    assert "cannot be negative" in result.output


def test_cli_slippage(tmp_path: Path) -> None:
    runner = CliRunner()
    result = runner.invoke(
        cli, ["--config", str(tmp_path / "missing.yaml"), "slippage", "--price", "50000", "--quantity", "1"]
    )
    assert result.exit_code == 0, result.output
    assert "5.00 bps" in result.output
    assert "50,025.0000" in result.output


def test_cli_slippage_sell(tmp_path: Path) -> None:
    runner = CliRunner()
    result = runner.invoke(
        cli, ["--config", str(tmp_path / "missing.yaml"), "slippage", "--price", "100", "--quantity", "1", "--sell"]
    )
    assert result.exit_code == 0, result.output
    assert "99.9500" in result.output


def test_cli_size(tmp_path: Path) -> None:
    runner = CliRunner()
    result = runner.invoke(
        cli,
        ["--config", str(tmp_path / "missing.yaml"), "size", "--portfolio", "100000", "--confidence", "1", "--price", "100"],
    )
    assert result.exit_code == 0, result.output
    assert "120.000000" in result.output


def test_cli_evaluate(tmp_config: Path, snapshot_path: Path, tmp_path: Path) -> None:
    runner = CliRunner()
    result = runner.invoke(cli, ["--config", str(tmp_config), "evaluate", str(snapshot_path)])
    assert result.exit_code == 0, result.output
    assert "Opportunity Sell" in result.output
    assert "APPROVED" in result.output
    assert "SELL SOL" in result.output
    records = _journal(tmp_path)
    assert len(records) == 1
    assert records[0]["event"] == "opportunity_sell_evaluation"
    assert records[0]["user_id"] == "tester"
    assert records[0]["evaluation_details"]["decision"] == "approved"


def test_cli_evaluate_no_journal(tmp_config: Path, snapshot_path: Path, tmp_path: Path) -> None:
    runner = CliRunner()
    result = runner.invoke(cli, ["--config", str(tmp_config), "evaluate", str(snapshot_path), "--no-journal"])
    assert result.exit_code == 0, result.output
    assert _journal(tmp_path) == []


def test_cli_evaluate_bad_snapshot(tmp_config: Path, tmp_path: Path) -> None:
    bad = tmp_path / "bad.json"
    bad.write_text("{}")
    runner = CliRunner()
    result = runner.invoke(cli, ["--config", str(tmp_config), "evaluate", str(bad)])
    assert result.exit_code == 1
    assert "missing required field" in result.output


def test_cli_evaluate_missing_config(tmp_path: Path, snapshot_path: Path) -> None:
    runner = CliRunner()
    result = runner.invoke(cli, ["--config", str(tmp_path / "nope.yaml"), "evaluate", str(snapshot_path)])
    assert result.exit_code == 1
    assert "Config file not found" in result.output


def test_cli_backtest(tmp_config: Path, tmp_path: Path) -> None:
    signals = tmp_path / "signals.json"
    signals.write_text(json.dumps([
        {"timestamp": "2024-01-01T00:00:00Z", "asset_id": "BTC", "action": "BUY", "price": 100, "quantity": 10},
        {"timestamp": "2024-01-02T00:00:00Z", "asset_id": "BTC", "action": "SELL", "price": 110},
        {"timestamp": "2024-01-03T00:00:00Z", "asset_id": "ETH", "action": "SELL", "price": 5},
    ]))
    runner = CliRunner()
    result = runner.invoke(cli, ["--config", str(tmp_config), "backtest", str(signals)])
    assert result.exit_code == 0, result.output
    assert "Backtest" in result.output
    assert "Return" in result.output
    assert "Rejections: 1" in result.output
    events = [r["event"] for r in _journal(tmp_path)]
    assert events.count("fill") == 2
    assert events.count("trade") == 1
    assert events.count("rejection") == 1


def test_cli_backtest_empty(tmp_config: Path, tmp_path: Path) -> None:
    signals = tmp_path / "signals.json"
    signals.write_text("[]")
    runner = CliRunner()
    result = runner.invoke(cli, ["--config", str(tmp_config), "backtest", str(signals)])
    assert result.exit_code == 0
    assert "No signals" in result.output


def test_cli_health_ok(tmp_config: Path) -> None:
    runner = CliRunner()
    result = runner.invoke(cli, ["--config", str(tmp_config), "health"])
    assert result.exit_code == 0, result.output
    assert "[OK] config" in result.output
    assert "[OK] engine_config" in result.output
    assert "HEALTHY" in result.output


def test_cli_health_missing_config(tmp_path: Path) -> None:
    runner = CliRunner()
    result = runner.invoke(cli, ["--config", str(tmp_path / "nope.yaml"), "health"])
    assert result.exit_code == 1
    assert "[FAIL] config" in result.output


def test_cli_health_bad_engine_config(tmp_path: Path) -> None:
    engine = tmp_path / "engine.json"
    engine.write_text("{}")
    config_path = tmp_path / "config.yaml"
    config_path.write_text(f"engine:\n  config_path: {engine}\n")
    runner = CliRunner()
    result = runner.invoke(cli, ["--config", str(config_path), "health"])
    assert result.exit_code == 1
    assert "[FAIL] engine_config" in result.output
