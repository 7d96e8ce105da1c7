"""
Tests for stock_optimizer/indicators/technical.py.

What we test
------------
sma / rsi / ema / macd / bollinger_bands:
  - Output length always equals input length.
  - Undefined prefixes are None, never 0.
  - Known values on small hand-computed series.
  - RSI is 100 on a strictly rising series and bounded in [0, 100].
  - Bollinger bands are symmetric around the middle and collapse on a flat series.

compute_snapshots():
  - One snapshot per bar, long windows undefined until enough history.
  - Rejects mixed symbols and unordered bars.
"""

from __future__ import annotations

from datetime import date

import pytest

from stock_optimizer.config import IndicatorConfig
from stock_optimizer.indicators.technical import (
    bollinger_bands,
    compute_snapshots,
    ema,
    macd,
    rsi,
    sma,
)
from stock_optimizer.models.market import PriceBar


class TestSma:
    def test_known_values(self):
        assert sma([1, 2, 3, 4, 5], 3) == [None, None, 2.0, 3.0, 4.0]

    def test_short_series_all_none(self):
        assert sma([1.0, 2.0], 5) == [None, None]

    def test_invalid_period(self):
        with pytest.raises(ValueError):
            sma([1.0], 0)


class TestRsi:
    def test_rising_series_is_100(self):
        prices = [100.0 + i for i in range(101)]
        values = rsi(prices, 14)
        assert values[:14] == [None] * 14
        assert all(v == pytest.approx(100.0) for v in values[14:])

    def test_alternating_series_is_50(self):
        assert rsi([10, 11, 10, 11, 10], 4)[4] == pytest.approx(50.0)

    def test_falling_series_is_0(self):
        values = rsi([50.0 - i for i in range(20)], 14)
        assert values[-1] == pytest.approx(0.0)

    def test_bounded(self):
        prices = [100, 103, 99, 101, 98, 104, 107, 102, 100, 105, 109, 104, 103, 108, 110, 106]
        for v in rsi(prices, 5):
            assert v is None or 0.0 <= v <= 100.0


class TestEma:
    def test_seed_and_recursion(self):
        assert ema([1, 2, 3, 4, 5], 3) == [None, None, 2.0, 3.0, 4.0]

    def test_leading_none_shifts_seed(self):
        out = ema([None, None, 2.0, 4.0, 6.0], 2)
        assert out[:3] == [None, None, None]
        assert out[3] == pytest.approx(3.0)
        assert out[4] == pytest.approx(5.0)

    def test_all_none(self):
        assert ema([None, None], 2) == [None, None]


class TestMacd:
    def test_definedness(self):
        prices = [100.0 + (i % 7) for i in range(60)]
        series = macd(prices, 12, 26, 9)
        assert series.line[24] is None
        assert series.line[25] is not None
        assert series.signal[32] is None
        assert series.signal[33] is not None
        assert series.histogram[33] == pytest.approx(series.line[33] - series.signal[33])

    def test_flat_series_is_zero(self):
        series = macd([50.0] * 40)
        assert series.line[-1] == pytest.approx(0.0)
        assert series.histogram[-1] == pytest.approx(0.0)


class TestBollinger:
    def test_symmetric(self):
        prices = [100, 102, 101, 99, 98, 103, 104, 100, 97, 101]
        bands = bollinger_bands(prices, 5, 2.0)
        for up, mid, lo in zip(bands.upper, bands.middle, bands.lower):
            if mid is None:
                assert up is None and lo is None
                continue
            assert up - mid == pytest.approx(mid - lo)
            assert up >= mid >= lo

    def test_flat_series_collapses(self):
        bands = bollinger_bands([10.0] * 5, 5, 2.0)
        assert bands.upper[-1] == bands.middle[-1] == bands.lower[-1] == pytest.approx(10.0)

    def test_population_std(self):
        # std of [1, 3] around mean 2 is 1 (population)
        bands = bollinger_bands([1.0, 3.0], 2, 2.0)
        assert bands.upper[1] == pytest.approx(4.0)
        assert bands.lower[1] == pytest.approx(0.0)


class TestComputeSnapshots:
    def test_one_snapshot_per_bar(self, make_bars):
        bars = make_bars("AAPL", [100.0 + i * 0.5 for i in range(210)])
        snaps = compute_snapshots(bars)
        assert len(snaps) == len(bars)
        assert [s.snapshot_date for s in snaps] == [b.bar_date for b in bars]
        assert snaps[18].sma20 is None and snaps[19].sma20 is not None
        assert snaps[48].sma50 is None and snaps[49].sma50 is not None
        assert snaps[198].sma200 is None and snaps[199].sma200 is not None
        assert snaps[-1].rsi14 == pytest.approx(100.0)
        assert snaps[-1].price == bars[-1].close

    def test_custom_windows(self, make_bars):
        bars = make_bars("AAPL", [100.0 + (i % 3) for i in range(30)])
        snaps = compute_snapshots(bars, IndicatorConfig(rsi_period=5, bollinger_period=10))
        assert snaps[4].rsi14 is None
        assert snaps[5].rsi14 is not None
        assert snaps[9].bollinger_middle is not None

    def test_empty(self):
        assert compute_snapshots([]) == []

    def test_mixed_symbols_rejected(self, make_bars):
        bars = make_bars("AAPL", [1.0, 2.0]) + make_bars("MSFT", [3.0], end=date(2025, 1, 5))
        with pytest.raises(ValueError, match="mixed symbols"):
            compute_snapshots(bars)

    def test_unordered_rejected(self, make_bars):
        bars = make_bars("AAPL", [1.0, 2.0, 3.0])
        with pytest.raises(ValueError, match="ascending"):
            compute_snapshots(list(reversed(bars)))

    def test_deterministic(self, make_bars):
        bars = make_bars("AAPL", [100 + (i * 7) % 11 for i in range(80)])
        assert compute_snapshots(bars) == compute_snapshots(bars)

    def test_single_bar(self):
        bar = PriceBar(symbol="X", bar_date=date(2024, 1, 2), open=1, high=1, low=1, close=1)
        snap = compute_snapshots([bar])[0]
        assert snap.sma20 is None and snap.rsi14 is None and snap.macd_line is None
