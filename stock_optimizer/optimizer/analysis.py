"""
Per-symbol market analysis feeding the scorer, the action builder and the
performance estimates.

For each symbol we keep:
  - daily simple returns of the close series,
  - volatility: population std of those returns,
  - Sharpe ratio on daily figures with a 2% annual risk-free rate,
  - a ``TrendAnalysis`` read off the indicator snapshots,
  - pairwise Pearson correlation of returns with every other analysed symbol.

Trend analysis
--------------
trend        BULLISH if SMA20 > SMA50 on the latest snapshot, BEARISH if
             below, NEUTRAL otherwise (or when either is undefined).
momentum     (price_now - price_10_snapshots_ago) / price_10_snapshots_ago,
             0 with 10 or fewer snapshots.
support      highest local price minimum strictly below the latest price.
resistance   lowest local price maximum strictly above the latest price.
crossover    MACD histogram changing sign between the last two snapshots.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional, Sequence

from stock_optimizer.models.indicator import IndicatorSnapshot
from stock_optimizer.models.market import PriceBar
from stock_optimizer.models.prediction import Prediction
from stock_optimizer.taxonomy.portfolio_enums import TrendDirection

ANNUAL_RISK_FREE_RATE = 0.02
MIN_CORRELATION_POINTS = 10
FLAT_SERIES_EPSILON = 1e-12
MOMENTUM_LOOKBACK = 10


@dataclass
class TrendAnalysis:
    trend: TrendDirection = TrendDirection.NEUTRAL
    momentum: float = 0.0
    support_level: Optional[float] = None
    resistance_level: Optional[float] = None
    rsi: float = 50.0
    macd_histogram: float = 0.0
    bullish_crossover: bool = False
    bearish_crossover: bool = False


@dataclass
class SymbolAnalysis:
    """Everything the optimizer knows about one candidate symbol."""

    symbol: str
    current_price: float
    prediction: Prediction
    latest_snapshot: IndicatorSnapshot
    daily_returns: list[float]
    volatility: float
    sharpe_ratio: float
    trend: TrendAnalysis
    correlations: dict[str, float] = field(default_factory=dict)

    @property
    def predicted_return(self) -> float:
        """Predicted move over the horizon as a fraction (0.05 = +5%)."""
        return self.prediction.predicted_change_pct / 100.0

    @property
    def confidence(self) -> float:
        """Prediction confidence in [0, 1]."""
        return self.prediction.confidence_fraction


def daily_returns(bars: Sequence[PriceBar]) -> list[float]:
    """Simple close-to-close returns; one fewer than the number of bars."""
    return [
        (cur.close - prev.close) / prev.close
        for prev, cur in zip(bars, bars[1:])
    ]


def volatility(returns: Sequence[float]) -> float:
    """Population standard deviation of ``returns`` (0 for an empty list)."""
    if not returns:
        return 0.0
    mean = sum(returns) / len(returns)
    return math.sqrt(sum((r - mean) ** 2 for r in returns) / len(returns))


def sharpe_ratio(returns: Sequence[float], vol: Optional[float] = None) -> float:
    """Daily Sharpe ratio against ``ANNUAL_RISK_FREE_RATE / 365``; 0 when flat."""
    vol = volatility(returns) if vol is None else vol
    if not returns or vol <= 0:
        return 0.0
    avg = sum(returns) / len(returns)
    return (avg - ANNUAL_RISK_FREE_RATE / 365) / vol


def correlation(a: Sequence[float], b: Sequence[float]) -> float:
    """Pearson correlation over the trailing overlap of two return series.

    Returns 0 when fewer than ``MIN_CORRELATION_POINTS`` points overlap or
    either series is constant.
    """
    n = min(len(a), len(b))
    if n < MIN_CORRELATION_POINTS:
        return 0.0
    xs, ys = a[len(a) - n :], b[len(b) - n :]
    mx, my = sum(xs) / n, sum(ys) / n
    cov = sum((x - mx) * (y - my) for x, y in zip(xs, ys))
    sx = math.sqrt(sum((x - mx) ** 2 for x in xs))
    sy = math.sqrt(sum((y - my) ** 2 for y in ys))
    if sx < FLAT_SERIES_EPSILON or sy < FLAT_SERIES_EPSILON:
        return 0.0
    return cov / (sx * sy)


def analyze_trend(snapshots: Sequence[IndicatorSnapshot]) -> TrendAnalysis:
    """Summarise a chronologically ordered snapshot list. Empty → NEUTRAL."""
    analysis = TrendAnalysis()
    if not snapshots:
        return analysis

    latest = snapshots[-1]
    analysis.rsi = latest.rsi14 if latest.rsi14 is not None else 50.0
    analysis.macd_histogram = latest.macd_histogram if latest.macd_histogram is not None else 0.0

    if latest.sma20 is not None and latest.sma50 is not None:
        if latest.sma20 > latest.sma50:
            analysis.trend = TrendDirection.BULLISH
        elif latest.sma20 < latest.sma50:
            analysis.trend = TrendDirection.BEARISH

    if len(snapshots) > MOMENTUM_LOOKBACK:
        past = snapshots[-MOMENTUM_LOOKBACK].price
        analysis.momentum = (latest.price - past) / past

    supports: list[float] = []
    resistances: list[float] = []
    for prev, cur, nxt in zip(snapshots, snapshots[1:], snapshots[2:]):
        if cur.price < prev.price and cur.price < nxt.price:
            supports.append(cur.price)
        if cur.price > prev.price and cur.price > nxt.price:
            resistances.append(cur.price)
    below = [s for s in supports if s < latest.price]
    above = [r for r in resistances if r > latest.price]
    analysis.support_level = max(below) if below else None
    analysis.resistance_level = min(above) if above else None

    if len(snapshots) >= 2:
        prev_hist = snapshots[-2].macd_histogram
        cur_hist = latest.macd_histogram
        if prev_hist is not None and cur_hist is not None:
            analysis.bullish_crossover = prev_hist < 0 < cur_hist
            analysis.bearish_crossover = prev_hist > 0 > cur_hist

    return analysis


def build_analysis(
    symbol: str,
    bars: Sequence[PriceBar],
    snapshots: Sequence[IndicatorSnapshot],
    prediction: Prediction,
) -> SymbolAnalysis:
    """Assemble a ``SymbolAnalysis``; ``bars`` and ``snapshots`` must be non-empty."""
    returns = daily_returns(bars)
    vol = volatility(returns)
    return SymbolAnalysis(
        symbol=symbol,
        current_price=bars[-1].close,
        prediction=prediction,
        latest_snapshot=snapshots[-1],
        daily_returns=returns,
        volatility=vol,
        sharpe_ratio=sharpe_ratio(returns, vol),
        trend=analyze_trend(snapshots),
    )


def attach_correlations(analyses: dict[str, SymbolAnalysis]) -> None:
    """Fill every ``correlations`` map in place (self-correlation is 1)."""
    for s1, a1 in analyses.items():
        for s2, a2 in analyses.items():
            a1.correlations[s2] = 1.0 if s1 == s2 else correlation(a1.daily_returns, a2.daily_returns)
