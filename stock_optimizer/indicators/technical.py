"""
Technical indicators over a closing-price series.

Purpose
-------
Pure functions from a chronologically ordered list of closes to one output
value per input index. Nothing here touches the database; ``service.py``
wraps these for storage.

Conventions
-----------
- Every function returns a list the same length as its input.
- ``None`` marks an undefined value (not enough history yet). Zero is a real
  value and is never used as a placeholder.
- Gaps in the calendar are not interpolated: the series is whatever bars
  exist, one per trading day.

Formulas
--------
SMA(k)        out[i] = mean(P[i-k+1..i]) for i >= k-1.
RSI(k)        Δ[0] = 0, Δ[i] = P[i] - P[i-1]. For i >= k, over the trailing
              k deltas: avg_gain = Σ max(Δ,0) / k, avg_loss = Σ max(-Δ,0) / k;
              RSI = 100 if avg_loss == 0 else 100 - 100 / (1 + avg_gain/avg_loss).
EMA(k)        seeded with the mean of the first k defined inputs, then
              EMA[i] = (x[i] - EMA[i-1]) * 2/(k+1) + EMA[i-1]. A None input
              after the seed makes every later value None.
MACD          line = EMA(fast) - EMA(slow); signal = EMA(line, signal);
              histogram = line - signal.
Bollinger     middle = SMA(k); std = population std of the same k closes;
              upper/lower = middle ± m·std.

The EMA seed starts at the first defined input rather than at index 0, so
the MACD signal line (whose input is undefined for the first slow-1 bars)
gets a seed once ``signal`` MACD values exist. For a fully defined price
series this is exactly "mean of P[0..k-1] at index k-1".
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence

from stock_optimizer.config import IndicatorConfig
from stock_optimizer.models.indicator import IndicatorSnapshot
from stock_optimizer.models.market import PriceBar

Series = list[Optional[float]]

SMA_SHORT = 20
SMA_MEDIUM = 50
SMA_LONG = 200


@dataclass(frozen=True)
class MacdSeries:
    line: Series
    signal: Series
    histogram: Series


@dataclass(frozen=True)
class BollingerSeries:
    upper: Series
    middle: Series
    lower: Series


def _check_period(period: int) -> None:
    if period < 1:
        raise ValueError(f"period must be >= 1, got {period}.")


def sma(prices: Sequence[float], period: int) -> Series:
    """Simple moving average; ``None`` for the first ``period - 1`` indices."""
    _check_period(period)
    out: Series = [None] * len(prices)
    for i in range(period - 1, len(prices)):
        out[i] = sum(prices[i - period + 1 : i + 1]) / period
    return out


def rsi(prices: Sequence[float], period: int = 14) -> Series:
    """Relative Strength Index in [0, 100]; ``None`` for indices below ``period``."""
    _check_period(period)
    n = len(prices)
    out: Series = [None] * n
    deltas = [0.0] + [prices[i] - prices[i - 1] for i in range(1, n)]

    for i in range(period, n):
        window = deltas[i - period + 1 : i + 1]
        avg_gain = sum(d for d in window if d > 0) / period
        avg_loss = sum(-d for d in window if d < 0) / period
        if avg_loss == 0:
            out[i] = 100.0
        else:
            out[i] = 100.0 - 100.0 / (1.0 + avg_gain / avg_loss)
    return out


def ema(values: Sequence[Optional[float]], period: int) -> Series:
    """Exponential moving average over a possibly partially undefined series."""
    _check_period(period)
    n = len(values)
    out: Series = [None] * n

    start = next((i for i, v in enumerate(values) if v is not None), None)
    if start is None:
        return out
    seed_idx = start + period - 1
    if seed_idx >= n:
        return out

    seed_window = [v for v in values[start : seed_idx + 1] if v is not None]
    out[seed_idx] = sum(seed_window) / len(seed_window)

    multiplier = 2.0 / (period + 1)
    for i in range(seed_idx + 1, n):
        prev, x = out[i - 1], values[i]
        if prev is None or x is None:
            continue
        out[i] = (x - prev) * multiplier + prev
    return out


def macd(
    prices: Sequence[float],
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> MacdSeries:
    """MACD line, signal line and histogram."""
    fast_ema = ema(prices, fast)
    slow_ema = ema(prices, slow)
    line: Series = [
        f - s if f is not None and s is not None else None
        for f, s in zip(fast_ema, slow_ema)
    ]
    signal_line = ema(line, signal)
    histogram: Series = [
        m - s if m is not None and s is not None else None
        for m, s in zip(line, signal_line)
    ]
    return MacdSeries(line=line, signal=signal_line, histogram=histogram)


def bollinger_bands(
    prices: Sequence[float],
    period: int = 20,
    multiplier: float = 2.0,
) -> BollingerSeries:
    """Bollinger Bands around ``sma(prices, period)`` using population std."""
    middle = sma(prices, period)
    upper: Series = [None] * len(prices)
    lower: Series = [None] * len(prices)

    for i, mid in enumerate(middle):
        if mid is None:
            continue
        window = prices[i - period + 1 : i + 1]
        std = math.sqrt(sum((p - mid) ** 2 for p in window) / period)
        upper[i] = mid + multiplier * std
        lower[i] = mid - multiplier * std
    return BollingerSeries(upper=upper, middle=middle, lower=lower)


def compute_snapshots(
    bars: Sequence[PriceBar],
    config: Optional[IndicatorConfig] = None,
) -> list[IndicatorSnapshot]:
    """One ``IndicatorSnapshot`` per bar, computed from the bars' closes.

    Args:
        bars: Bars for a single symbol in ascending date order.
        config: Indicator windows; defaults to ``IndicatorConfig()``.

    Raises:
        ValueError: If the bars mix symbols or are not in date order.
    """
    if not bars:
        return []
    config = config or IndicatorConfig()

    symbol = bars[0].symbol
    for prev, cur in zip(bars, bars[1:]):
        if cur.symbol != symbol:
            raise ValueError(f"compute_snapshots got mixed symbols: {symbol}, {cur.symbol}.")
        if cur.bar_date <= prev.bar_date:
            raise ValueError(f"Bars for {symbol} are not in ascending date order.")

    closes = [b.close for b in bars]
    sma20 = sma(closes, SMA_SHORT)
    sma50 = sma(closes, SMA_MEDIUM)
    sma200 = sma(closes, SMA_LONG)
    rsi14 = rsi(closes, config.rsi_period)
    macd_series = macd(closes, config.macd_fast, config.macd_slow, config.macd_signal)
    bands = bollinger_bands(closes, config.bollinger_period, config.bollinger_multiplier)

    return [
        IndicatorSnapshot(
            symbol=symbol,
            snapshot_date=bar.bar_date,
            price=bar.close,
            sma20=sma20[i],
            sma50=sma50[i],
            sma200=sma200[i],
            rsi14=rsi14[i],
            macd_line=macd_series.line[i],
            macd_signal=macd_series.signal[i],
            macd_histogram=macd_series.histogram[i],
            bollinger_upper=bands.upper[i],
            bollinger_middle=bands.middle[i],
            bollinger_lower=bands.lower[i],
        )
        for i, bar in enumerate(bars)
    ]
