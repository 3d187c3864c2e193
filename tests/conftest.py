"""Pytest fixtures: positions, prices and configs for deterministic tests."""

from datetime import datetime, timedelta, timezone

import pytest

from trade_core.contracts import OpportunitySellingUserConfig, Position


def _ts(year: int, month: int, day: int, hour: int = 0) -> datetime:
    return datetime(year, month, day, hour, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    return _ts(2024, 3, 1)


@pytest.fixture
def opp_config() -> OpportunitySellingUserConfig:
    """Default policy with the liquidation cap opened up to 100%."""
    return OpportunitySellingUserConfig(max_liquidation_percent=100.0)


@pytest.fixture
def aged_positions(now: datetime) -> dict[str, Position]:
    """Three positions held well past the 48h minimum."""
    entry = now - timedelta(days=10)
    return {
        "BTC": Position("BTC", 0.5, 40_000.0, 20_000.0, entry),  # flat
        "SOL": Position("SOL", 100.0, 100.0, 10_000.0, entry),  # -20% at 80
        "ADA": Position("ADA", 10_000.0, 0.5, 5_000.0, entry),  # +10% at 0.55
    }


@pytest.fixture
def prices() -> dict[str, float]:
    return {"BTC": 40_000.0, "SOL": 80.0, "ADA": 0.55, "ETH": 2_000.0}
