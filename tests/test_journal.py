"""Tests for journal writer. Append-only JSON lines; evaluations stored verbatim."""

import json
from datetime import datetime, timezone
from pathlib import Path

from journal import JournalWriter
from trade_core.contracts import OpportunitySellDecision, OpportunitySellPlan
from trade_core.opportunity_sell import plan_to_dict


def _plan() -> OpportunitySellPlan:
    return OpportunitySellPlan(
        buy_signal_asset_id="ETH",
        buy_signal_confidence=0.9,
        shortfall=1_000.0,
        available_cash=500.0,
        portfolio_value=10_000.0,
        projected_proceeds=0.0,
        decision=OpportunitySellDecision.REJECTED_NO_ELIGIBLE,
        reason="No eligible positions to sell",
    )


def _lines(path: Path) -> list[dict]:
    return [json.loads(line) for line in path.read_text().splitlines()]


def test_journal_writer_append_only(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "journal.jsonl"
    j = JournalWriter(path)
    j.fill("BTC", "buy", 1.5, 100.1, 0.15, 10.0, timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc))
    j.trade("BTC", 100.1, 109.89, 1.5, 14.5)
    j.rejection("ETH", "sell", "No position to close")
    records = _lines(path)
    assert [r["event"] for r in records] == ["fill", "trade", "rejection"]
    assert records[0]["timestamp"] == "2024-01-01T00:00:00+00:00"
    assert records[0]["fee"] == 0.15
    assert records[1]["realized_pnl"] == 14.5
    assert records[2]["reason"] == "No position to close"
    assert all("ts_utc" in r for r in records)


def test_opportunity_sell_evaluation_verbatim(tmp_path: Path) -> None:
    path = tmp_path / "journal.jsonl"
    plan = _plan()
    JournalWriter(path).opportunity_sell_evaluation(plan, "alice", is_backtest=True, backtest_id="bt-1")
    (record,) = _lines(path)
    assert record["event"] == "opportunity_sell_evaluation"
    assert record["user_id"] == "alice"
    assert record["decision"] == "rejected_no_eligible"
    assert record["is_backtest"] is True
    assert record["backtest_id"] == "bt-1"
    assert record["evaluation_details"] == json.loads(json.dumps(plan_to_dict(plan)))
    assert plan == _plan()


def test_echo_stdout(tmp_path: Path, capsys) -> None:
    JournalWriter(tmp_path / "j.jsonl", echo_stdout=True).rejection("BTC", "buy", "nope")
    assert '"event": "rejection"' in capsys.readouterr().out
