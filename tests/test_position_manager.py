"""Tests for the position manager: sizing, validation, open/increase, close/reduce."""

from datetime import datetime, timezone

import pytest

from trade_core.contracts import (
    ClosePositionInput,
    OpenPositionInput,
    Position,
    PositionErrorCode,
    PositionSizingConfig,
)
from trade_core.position_manager import (
    calculate_position_size,
    close_position,
    open_position,
    update_position_value,
    validate_position,
)

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)
T1 = datetime(2024, 1, 5, tzinfo=timezone.utc)


def _open(**kwargs) -> OpenPositionInput:
    base = dict(asset_id="BTC", price=100.0, available_capital=100_000.0, portfolio_value=100_000.0, timestamp=T0)
    base.update(kwargs)
    return OpenPositionInput(**base)


class TestPositionSize:
    def test_interpolates_between_bounds(self) -> None:
        cfg = PositionSizingConfig(min_allocation=0.05, max_allocation=0.12)
        assert calculate_position_size(100_000, 0.0, 100.0, cfg) == pytest.approx(50.0)
        assert calculate_position_size(100_000, 1.0, 100.0, cfg) == pytest.approx(120.0)
        assert calculate_position_size(100_000, 0.5, 100.0, cfg) == pytest.approx(85.0)

    @pytest.mark.parametrize("confidence,expected", [(-3.0, 50.0), (7.0, 120.0)])
    def test_confidence_clamped(self, confidence: float, expected: float) -> None:
        assert calculate_position_size(100_000, confidence, 100.0) == pytest.approx(expected)

    def test_monotone_in_confidence(self) -> None:
        sizes = [calculate_position_size(50_000, c / 10, 25.0) for c in range(11)]
        assert sizes == sorted(sizes)


class TestValidate:
    def test_invalid_price(self) -> None:
        err = validate_position("open", None, _open(price=0.0))
        assert err.code == PositionErrorCode.INVALID_PRICE

    def test_zero_and_negative_quantity(self) -> None:
        assert validate_position("open", None, _open(quantity=0)).code == PositionErrorCode.ZERO_QUANTITY
        assert validate_position("open", None, _open(quantity=-1)).code == PositionErrorCode.NEGATIVE_QUANTITY

    def test_max_positions_for_new_only(self) -> None:
        cfg = PositionSizingConfig(max_positions=2)
        err = validate_position("open", None, _open(), open_positions_count=2, config=cfg)
        assert err.code == PositionErrorCode.MAX_POSITIONS
        existing = Position("BTC", 1.0, 90.0, 90.0, T0)
        assert validate_position("open", existing, _open(), open_positions_count=5, config=cfg) is None

    def test_close_without_position(self) -> None:
        inp = ClosePositionInput("BTC", 100.0)
        assert validate_position("close", None, inp).code == PositionErrorCode.NO_POSITION
        flat = Position("BTC", 0.0, 90.0)
        assert validate_position("close", flat, inp).code == PositionErrorCode.NO_POSITION
        short = Position("BTC", -1.0, 90.0)
        assert validate_position("close", short, inp).code == PositionErrorCode.NO_POSITION

    def test_valid_requests(self) -> None:
        assert validate_position("open", None, _open(quantity=1)) is None
        assert validate_position("close", Position("BTC", 1.0, 90.0), ClosePositionInput("BTC", 100.0)) is None


class TestOpenPosition:
    def test_explicit_quantity(self) -> None:
        r = open_position(None, _open(quantity=10))
        assert r.success
        assert r.quantity == 10
        assert r.total_value == pytest.approx(1_000.0)
        assert r.position == Position("BTC", 10, 100.0, 1_000.0, T0)

    def test_percentage_of_portfolio(self) -> None:
        r = open_position(None, _open(percentage=0.1))
        assert r.quantity == pytest.approx(100.0)

    def test_quantity_beats_percentage_and_confidence(self) -> None:
        r = open_position(None, _open(quantity=3, percentage=0.5, confidence=1.0))
        assert r.quantity == 3

    def test_confidence_sizing(self) -> None:
        r = open_position(None, _open(confidence=1.0))
        assert r.quantity == pytest.approx(120.0)

    def test_min_allocation_fallback(self) -> None:
        r = open_position(None, _open())
        assert r.quantity == pytest.approx(50.0)

    def test_insufficient_capital(self) -> None:
        r = open_position(None, _open(quantity=10, available_capital=999.0))
        assert not r.success
        assert r.error_code == PositionErrorCode.INSUFFICIENT_CAPITAL
        assert r.error == "Insufficient capital for trade"
        assert r.position is None

    def test_exact_capital_is_enough(self) -> None:
        assert open_position(None, _open(quantity=10, available_capital=1_000.0)).success

    def test_increase_recomputes_average(self) -> None:
        existing = Position("BTC", 10.0, 80.0, 800.0, T0)
        r = open_position(existing, _open(quantity=10, price=120.0, timestamp=T1))
        assert r.success
        assert r.position.quantity == 20
        assert r.position.average_price == pytest.approx(100.0)
        assert r.position.total_value == pytest.approx(2_400.0)
        assert r.position.entry_date == T0
        assert existing.quantity == 10.0

    def test_failed_open_reports_price(self) -> None:
        r = open_position(None, _open(price=-1.0))
        assert not r.success
        assert r.error_code == PositionErrorCode.INVALID_PRICE
        assert r.quantity == 0.0

    @pytest.mark.parametrize("hints", [{"confidence": 0.8}, {"percentage": 0.1}, {}])
    def test_zero_portfolio_value_sizes_to_nothing(self, hints: dict) -> None:
        r = open_position(None, _open(portfolio_value=0.0, **hints))
        assert not r.success
        assert r.error_code == PositionErrorCode.ZERO_QUANTITY
        assert r.position is None

    def test_negative_portfolio_value_rejected(self) -> None:
        r = open_position(None, _open(available_capital=1_000.0, portfolio_value=-1_000.0))
        assert not r.success
        assert r.error_code == PositionErrorCode.NEGATIVE_QUANTITY
        assert r.position is None
        assert r.quantity == 0.0


class TestClosePosition:
    def test_full_close(self) -> None:
        pos = Position("BTC", 2.0, 100.0, 200.0, T0)
        r = close_position(pos, ClosePositionInput("BTC", 150.0))
        assert r.success
        assert r.position is None
        assert r.quantity == 2.0
        assert r.realized_pnl == pytest.approx(100.0)
        assert r.realized_pnl_percent == pytest.approx(0.5)
        assert r.cost_basis == 100.0

    def test_confidence_close(self) -> None:
        pos = Position("BTC", 1.0, 100.0, 100.0, T0)
        r = close_position(pos, ClosePositionInput("BTC", 100.0, confidence=0.5))
        assert r.quantity == pytest.approx(0.625)
        assert r.position.quantity == pytest.approx(0.375)

    @pytest.mark.parametrize("confidence,expected", [(0.0, 0.25), (1.0, 1.0), (2.0, 1.0), (-1.0, 0.25)])
    def test_confidence_close_bounds(self, confidence: float, expected: float) -> None:
        pos = Position("BTC", 1.0, 100.0, 100.0, T0)
        r = close_position(pos, ClosePositionInput("BTC", 100.0, confidence=confidence))
        assert r.quantity == pytest.approx(expected)

    def test_partial_keeps_average_and_entry(self) -> None:
        pos = Position("BTC", 4.0, 100.0, 400.0, T0)
        r = close_position(pos, ClosePositionInput("BTC", 90.0, quantity=1.0))
        assert r.position == Position("BTC", 3.0, 100.0, 270.0, T0)
        assert r.realized_pnl == pytest.approx(-10.0)
        assert r.realized_pnl_percent == pytest.approx(-0.1)

    def test_quantity_capped_at_holding(self) -> None:
        pos = Position("BTC", 1.0, 100.0, 100.0, T0)
        r = close_position(pos, ClosePositionInput("BTC", 100.0, quantity=5.0))
        assert r.quantity == 1.0
        assert r.position is None

    def test_percentage_of_holding(self) -> None:
        pos = Position("BTC", 8.0, 100.0, 800.0, T0)
        r = close_position(pos, ClosePositionInput("BTC", 100.0, percentage=0.25))
        assert r.quantity == pytest.approx(2.0)

    @pytest.mark.parametrize("first", [0.3, 0.5, 0.9])
    def test_partial_then_rest_matches_full_close(self, first: float) -> None:
        pos = Position("BTC", 3.0, 100.0, 300.0, T0)
        full = close_position(pos, ClosePositionInput("BTC", 130.0))

        part = close_position(pos, ClosePositionInput("BTC", 130.0, percentage=first))
        rest = close_position(part.position, ClosePositionInput("BTC", 130.0, percentage=1.0))

        assert rest.position is None
        assert part.quantity + rest.quantity == pytest.approx(3.0)
        assert part.realized_pnl + rest.realized_pnl == pytest.approx(full.realized_pnl)

    def test_no_position(self) -> None:
        r = close_position(None, ClosePositionInput("BTC", 100.0))
        assert not r.success
        assert r.error_code == PositionErrorCode.NO_POSITION
        assert r.error == "No position to close"

    def test_negative_quantity(self) -> None:
        pos = Position("BTC", 1.0, 100.0)
        r = close_position(pos, ClosePositionInput("BTC", 100.0, quantity=-1.0))
        assert r.error_code == PositionErrorCode.NEGATIVE_QUANTITY


def test_update_position_value() -> None:
    pos = Position("BTC", 2.0, 100.0, 200.0, T0)
    marked = update_position_value(pos, 130.0)
    assert marked.total_value == pytest.approx(260.0)
    assert marked.average_price == 100.0
    assert pos.total_value == 200.0
