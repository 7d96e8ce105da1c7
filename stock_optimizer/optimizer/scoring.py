"""
Per-symbol desirability scoring: turns a ``SymbolAnalysis`` into the single
number the allocation solver starts from.

Score formula (range 0–100)
---------------------------
    return_weight = 0.2 + 0.6 * risk_tolerance          # 0.2 … 0.8
    total = (
        return_score     * return_weight
        + stability_score* (1 - return_weight)
    )

    stability_score = clamp(
        trend_score          * 0.4
        + rsi_stability      * 0.3
        + band_stability     * 0.3
        - volatility_penalty * 0.5,
        0, 100)

Component explanations
----------------------
return_score (0–100):
    Confidence-weighted predicted move r = predicted_return * confidence.
    r = 0 → 50; +20% → 100; −20% → 0. Formula: clamp(50 + r * 250, 0, 100).
    Strictly increasing in predicted return for any confidence > 0, and the
    return weight is never zero, so ``total`` is monotonic in predicted
    return at every risk tolerance.

trend_score (0–100):
    BULLISH 80 / NEUTRAL 50 / BEARISH 20, plus momentum * 100 (a +10% ten-bar
    move adds 10), plus 10 for a bullish MACD crossover or minus 10 for a
    bearish one.

rsi_stability (0–100):
    100 at RSI 50, falling linearly to 0 at RSI 0 or 100:
    100 − 2 * |rsi − 50|.

band_stability (0–100):
    100 when price sits on the Bollinger middle band, 0 on either outer
    band: 100 * (1 − |2 * position − 1|). Undefined band → 50.

volatility_penalty (0–100):
    Daily return volatility; 3% daily std → 100.

The solver needs strictly positive weights, so ``desirability()`` floors the
total at ``SCORE_FLOOR``.
"""

from __future__ import annotations

from dataclasses import dataclass

from stock_optimizer.optimizer.analysis import SymbolAnalysis
from stock_optimizer.taxonomy.portfolio_enums import TrendDirection

SCORE_FLOOR = 1.0
MAX_DAILY_VOLATILITY = 0.03

_TREND_BASE: dict[TrendDirection, float] = {
    TrendDirection.BULLISH: 80.0,
    TrendDirection.NEUTRAL: 50.0,
    TrendDirection.BEARISH: 20.0,
}


@dataclass
class ScoreComponents:
    """All components of a desirability score.

    Attributes:
        return_score:       0–100, confidence-weighted predicted return.
        trend_score:        0–100, SMA regime, momentum and MACD crossovers.
        rsi_stability:      0–100, closeness of RSI to 50.
        band_stability:     0–100, closeness of price to the Bollinger middle.
        volatility_penalty: 0–100, daily return volatility.
        return_weight:      Share of ``total`` given to ``return_score``.
        weighted_return:    Raw predicted_return * confidence.
    """

    return_score:       float
    trend_score:        float
    rsi_stability:      float
    band_stability:     float
    volatility_penalty: float
    return_weight:      float
    weighted_return:    float

    @property
    def stability_score(self) -> float:
        return _clamp(
            self.trend_score          * 0.4
            + self.rsi_stability      * 0.3
            + self.band_stability     * 0.3
            - self.volatility_penalty * 0.5,
            0.0, 100.0,
        )

    @property
    def total(self) -> float:
        """Blended score in 0–100."""
        return (
            self.return_score * self.return_weight
            + self.stability_score * (1.0 - self.return_weight)
        )


def compute_score(analysis: SymbolAnalysis, risk_tolerance: float) -> ScoreComponents:
    """Score one analysed symbol at the given risk tolerance.

    Raises:
        ValueError: If ``risk_tolerance`` is outside [0, 1].
    """
    if not 0.0 <= risk_tolerance <= 1.0:
        raise ValueError(f"risk_tolerance must be in [0, 1], got {risk_tolerance}.")

    # ── Return score ──────────────────────────────────────────────────────────
    weighted_return = analysis.predicted_return * analysis.confidence
    return_score = _clamp(50.0 + weighted_return * 250.0, 0.0, 100.0)

    # ── Trend score ───────────────────────────────────────────────────────────
    trend = analysis.trend
    trend_score = _TREND_BASE[trend.trend] + trend.momentum * 100.0
    if trend.bullish_crossover:
        trend_score += 10.0
    elif trend.bearish_crossover:
        trend_score -= 10.0
    trend_score = _clamp(trend_score, 0.0, 100.0)

    # ── Stability signals ─────────────────────────────────────────────────────
    rsi_stability = _clamp(100.0 - 2.0 * abs(trend.rsi - 50.0), 0.0, 100.0)

    position = analysis.latest_snapshot.bollinger_position
    if position is None:
        band_stability = 50.0
    else:
        band_stability = _clamp(100.0 * (1.0 - abs(2.0 * position - 1.0)), 0.0, 100.0)

    volatility_penalty = _clamp(analysis.volatility / MAX_DAILY_VOLATILITY * 100.0, 0.0, 100.0)

    return ScoreComponents(
        return_score=return_score,
        trend_score=trend_score,
        rsi_stability=rsi_stability,
        band_stability=band_stability,
        volatility_penalty=volatility_penalty,
        return_weight=0.2 + 0.6 * risk_tolerance,
        weighted_return=weighted_return,
    )


def desirability(components: ScoreComponents) -> float:
    """Strictly positive solver input derived from ``components.total``."""
    return max(components.total, SCORE_FLOOR)


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))
