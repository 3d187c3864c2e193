"""Tests for the slippage model: variants, clamping, symmetry, config builder."""

import logging

import pytest

from trade_core.contracts import (
    DEFAULT_VOLUME_RATIO,
    FixedSlippage,
    HistoricalSlippage,
    InvalidInputError,
    NoSlippage,
    SlippageInput,
    SlippageModelType,
    VolumeBasedSlippage,
)
from trade_core.slippage import (
    DEFAULT_SLIPPAGE_CONFIG,
    apply_slippage,
    build_slippage_config,
    calculate_slippage,
    calculate_slippage_bps,
)


class TestApplySlippage:
    def test_buy_pays_more(self) -> None:
        assert apply_slippage(50_000, 10, True) == pytest.approx(50_050)

    def test_sell_receives_less(self) -> None:
        assert apply_slippage(50_000, 10, False) == pytest.approx(49_950)

    @pytest.mark.parametrize("price,bps", [(1.0, 0.0), (99.5, 3.3), (50_000, 500), (0.0001, 42)])
    def test_symmetric(self, price: float, bps: float) -> None:
        up = apply_slippage(price, bps, True) - price
        down = price - apply_slippage(price, bps, False)
        assert up == pytest.approx(down)
        assert up >= 0


class TestModels:
    def test_none(self) -> None:
        r = calculate_slippage(SlippageInput(100.0, 10, True), NoSlippage())
        assert r.slippage_bps == 0.0
        assert r.execution_price == 100.0
        assert r.price_impact == 0.0

    def test_fixed_default(self) -> None:
        r = calculate_slippage(SlippageInput(100.0, 1, True))
        assert DEFAULT_SLIPPAGE_CONFIG == FixedSlippage(5)
        assert r.slippage_bps == 5.0
        assert r.execution_price == pytest.approx(100.05)
        assert r.original_price == 100.0
        assert r.price_impact == pytest.approx(0.0005)

    def test_fixed_independent_of_size(self) -> None:
        cfg = FixedSlippage(bps=7)
        assert calculate_slippage_bps(1, 10.0, cfg) == calculate_slippage_bps(1e6, 1e4, cfg) == 7

    def test_volume_based(self) -> None:
        cfg = VolumeBasedSlippage(base_bps=5, volume_impact_factor=100)
        # order value 10_000 of 1_000_000 daily volume -> ratio 0.01 -> 5 + 1 bps
        assert calculate_slippage_bps(100, 100.0, cfg, daily_volume=1_000_000) == pytest.approx(6.0)

    @pytest.mark.parametrize("volume", [None, 0.0, -10.0])
    def test_volume_based_fallback_ratio(self, volume: float | None) -> None:
        cfg = VolumeBasedSlippage(base_bps=5, volume_impact_factor=100)
        expected = 5 + DEFAULT_VOLUME_RATIO * 100
        assert calculate_slippage_bps(100, 100.0, cfg, daily_volume=volume) == pytest.approx(expected)

    def test_historical_placeholder(self) -> None:
        assert calculate_slippage_bps(1, 1.0, HistoricalSlippage()) == 10.0

    def test_unknown_config_uses_five_bps(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="rebal.slippage"):
            assert calculate_slippage_bps(1, 1.0, object()) == 5.0  # type: ignore[arg-type]
        assert "Unknown slippage config" in caplog.text


class TestCap:
    def test_volume_based_capped(self) -> None:
        cfg = VolumeBasedSlippage(base_bps=5, volume_impact_factor=100_000, max_slippage_bps=50)
        assert calculate_slippage_bps(1_000, 100.0, cfg, daily_volume=1_000) == 50

    def test_fixed_above_cap(self) -> None:
        assert calculate_slippage_bps(1, 1.0, FixedSlippage(bps=900)) == 500

    @pytest.mark.parametrize(
        "cfg",
        [
            NoSlippage(max_slippage_bps=3),
            FixedSlippage(bps=40, max_slippage_bps=3),
            VolumeBasedSlippage(base_bps=1, volume_impact_factor=1e9, max_slippage_bps=3),
            HistoricalSlippage(bps=40, max_slippage_bps=3),
        ],
    )
    @pytest.mark.parametrize("quantity,volume", [(1, None), (1e6, 10.0), (0.001, 1e12)])
    def test_never_exceeds_cap(self, cfg, quantity: float, volume: float | None) -> None:
        bps = calculate_slippage_bps(quantity, 250.0, cfg, daily_volume=volume)
        assert 0 <= bps <= 3


class TestInvalidInput:
    @pytest.mark.parametrize("price", [0.0, -5.0, float("nan"), float("inf")])
    def test_bad_price_raises(self, price: float) -> None:
        with pytest.raises(InvalidInputError, match="positive finite"):
            calculate_slippage(SlippageInput(price, 1, True))

    def test_negative_bps_config_raises(self) -> None:
        with pytest.raises(InvalidInputError):
            FixedSlippage(bps=-1)


class TestBuildConfig:
    def test_defaults_per_model(self) -> None:
        assert build_slippage_config("NONE") == NoSlippage()
        assert build_slippage_config("FIXED") == FixedSlippage(5)
        assert build_slippage_config(SlippageModelType.VOLUME_BASED) == VolumeBasedSlippage(5, 100)
        assert build_slippage_config("HISTORICAL") == HistoricalSlippage(10)

    def test_overrides(self) -> None:
        cfg = build_slippage_config("VOLUME_BASED", base_bps=2, volume_impact_factor=50, max_slippage_bps=20)
        assert cfg == VolumeBasedSlippage(base_bps=2, volume_impact_factor=50, max_slippage_bps=20)

    def test_historical_uses_historical_bps(self) -> None:
        assert build_slippage_config("HISTORICAL", fixed_bps=3, historical_bps=12).bps == 12

    def test_unknown_model_falls_back_to_fixed_five(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="rebal.slippage"):
            cfg = build_slippage_config("ORDERBOOK", max_slippage_bps=100)
        assert cfg == FixedSlippage(bps=5, max_slippage_bps=100)
        assert "Unknown slippage model" in caplog.text
