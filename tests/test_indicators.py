"""Property-based tests for technical indicators.

Band calculations are validated against pandas rolling statistics; RSI
against a hand-worked Wilder example.
"""

import math

import pandas as pd
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from scalper.indicators import (
    BollingerAccumulator,
    RsiAccumulator,
    calculate_bollinger_bands,
    calculate_rsi,
    compute_indicators,
)


# Strategy for generating realistic price series
@st.composite
def price_series(draw, min_length: int = 1, max_length: int = 80):
    """Generate a positive price series with varied movements."""
    length = draw(st.integers(min_value=min_length, max_value=max_length))
    base_price = draw(st.floats(min_value=50.0, max_value=100_000.0))
    changes = draw(st.lists(
        st.sampled_from([-0.01, -0.005, -0.002, 0.0, 0.002, 0.005, 0.01]),
        min_size=length - 1,
        max_size=length - 1,
    ))

    prices = [base_price]
    for change in changes:
        prices.append(max(0.01, prices[-1] * (1 + change)))
    return prices


class TestStreamingMatchesFromScratch:
    """
    **Feature: scalper, Property 6: Streaming/From-Scratch Agreement**

    *For any* price series, feeding closes one at a time through the
    accumulators yields exactly the values the from-scratch functions
    compute for the same window.
    """

    @given(prices=price_series(), period=st.integers(min_value=1, max_value=30))
    @settings(max_examples=100, deadline=None)
    def test_rsi_identical(self, prices: list[float], period: int):
        acc = RsiAccumulator(period)
        streamed = [acc.next(p) for p in prices]
        assert streamed == calculate_rsi(prices, period)

    @given(
        prices=price_series(),
        period=st.integers(min_value=1, max_value=30),
        width=st.sampled_from([1.0, 1.5, 2.0, 3.0]),
    )
    @settings(max_examples=100, deadline=None)
    def test_bands_identical(self, prices: list[float], period: int, width: float):
        acc = BollingerAccumulator(period, width)
        streamed = [acc.next(p) for p in prices]
        upper, middle, lower = calculate_bollinger_bands(prices, period, width)
        assert streamed == list(zip(upper, middle, lower))


class TestBollingerAccuracy:
    """
    **Feature: scalper, Property 7: Band Accuracy**

    *For any* price series the bands equal the rolling mean plus/minus k
    population standard deviations, using partial windows during warm-up.
    """

    @given(prices=price_series(min_length=1, max_length=80))
    @settings(max_examples=100, deadline=None)
    def test_matches_pandas_rolling(self, prices: list[float]):
        period, width = 20, 2.0
        upper, middle, lower = calculate_bollinger_bands(prices, period, width)

        series = pd.Series(prices)
        ref_mid = series.rolling(window=period, min_periods=1).mean()
        ref_std = series.rolling(window=period, min_periods=1).std(ddof=0)

        for i in range(len(prices)):
            std = 0.0 if math.isnan(ref_std.iloc[i]) else ref_std.iloc[i]
            tol = max(1e-6 * prices[i], 1e-6)
            assert middle[i] == pytest.approx(ref_mid.iloc[i], abs=tol)
            assert upper[i] == pytest.approx(ref_mid.iloc[i] + width * std, abs=tol)
            assert lower[i] == pytest.approx(ref_mid.iloc[i] - width * std, abs=tol)

    def test_single_sample_collapses(self):
        upper, middle, lower = calculate_bollinger_bands([100.0], 20, 2.0)
        assert upper == middle == lower == [100.0]

    def test_lower_never_above_upper(self):
        upper, _, lower = calculate_bollinger_bands([1.0, 5.0, 2.0, 8.0, 3.0], 3, 2.0)
        assert all(lo <= up for lo, up in zip(lower, upper))


class TestRsiBehaviour:
    """
    **Feature: scalper, Property 8: RSI Range and Extremes**
    """

    @given(prices=price_series(min_length=1, max_length=80))
    @settings(max_examples=100, deadline=None)
    def test_bounded(self, prices: list[float]):
        for val in calculate_rsi(prices, 14):
            assert 0 <= val <= 100, f"RSI value {val} out of range [0, 100]"

    def test_all_gains_is_100(self):
        prices = [100.0 + i for i in range(30)]
        assert calculate_rsi(prices, 14)[-1] == 100.0

    def test_all_losses_is_0(self):
        prices = [100.0 - i for i in range(30)]
        assert calculate_rsi(prices, 14)[-1] == 0.0

    def test_flat_is_neutral(self):
        assert calculate_rsi([100.0] * 30, 14)[-1] == 50.0

    def test_first_value_neutral(self):
        assert calculate_rsi([123.0], 14) == [50.0]
        assert calculate_rsi([], 14) == []

    def test_partial_window_averages_available_changes(self):
        # two changes: +2 and -1 -> avg gain 1, avg loss 0.5 -> RS 2
        rsi = calculate_rsi([100.0, 102.0, 101.0], 14)
        assert rsi[-1] == pytest.approx(100 - 100 / 3)

    def test_wilder_reference(self):
        """Classic 14-period example: first value is simple averages, then smoothing."""
        closes = [
            44.34, 44.09, 44.15, 43.61, 44.33, 44.83, 45.10, 45.42,
            45.84, 46.08, 45.89, 46.03, 45.61, 46.28, 46.28, 46.00,
        ]
        rsi = calculate_rsi(closes, 14)
        # gains 3.34 / losses 1.40 over the first 14 changes
        assert rsi[14] == pytest.approx(70.464, abs=0.01)
        # next change -0.28 smoothed in
        assert rsi[15] == pytest.approx(66.25, abs=0.01)

    def test_invalid_period(self):
        with pytest.raises(ValueError):
            calculate_rsi([1.0, 2.0], 0)
        with pytest.raises(ValueError):
            RsiAccumulator(0)


class TestComputeIndicators:
    """Reading assembly and the warm-up flag."""

    def test_not_ready_before_windows_fill(self):
        closes = [100.0 + (i % 3) for i in range(19)]
        reading = compute_indicators(closes, rsi_period=14, band_period=20)
        assert reading.samples == 19
        assert reading.ready is False

    def test_ready_when_both_windows_full(self):
        closes = [100.0 + (i % 3) for i in range(20)]
        reading = compute_indicators(closes, rsi_period=14, band_period=20)
        assert reading.ready is True

    def test_rsi_period_gates_readiness(self):
        closes = [100.0 + (i % 3) for i in range(14)]
        reading = compute_indicators(closes, rsi_period=14, band_period=5)
        assert reading.ready is False

    def test_oversold_sequence(self):
        # 12 drops of 1.0 and 2 rises of 1.3 -> RS = 2.6 / 12
        closes = [100.0]
        for step in [-1.0] * 6 + [1.3] + [-1.0] * 6 + [1.3]:
            closes.append(closes[-1] + step)
        reading = compute_indicators(closes, rsi_period=14, band_period=15)
        assert reading.ready is True
        assert reading.rsi == pytest.approx(100 - 100 / (1 + 2.6 / 12))
        assert reading.rsi < 20

    def test_empty_window_rejected(self):
        with pytest.raises(ValueError):
            compute_indicators([])

    def test_matches_last_series_values(self):
        closes = [100.0, 101.5, 99.0, 102.0, 98.5, 100.5]
        reading = compute_indicators(closes, rsi_period=3, band_period=4, band_width=2.0)
        upper, middle, lower = calculate_bollinger_bands(closes, 4, 2.0)
        assert reading.rsi == calculate_rsi(closes, 3)[-1]
        assert (reading.band_upper, reading.band_middle, reading.band_lower) == (upper[-1], middle[-1], lower[-1])
