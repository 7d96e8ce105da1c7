"""
Forward-looking performance estimates for an allocation, and how a
recommended allocation compares with the current one.

Expected performance
--------------------
expected_return       Σ w · predicted_return · 365 / prediction_horizon   (annual %)
expected_volatility   sqrt(Σ_i Σ_j w_i w_j ρ_ij σ_i σ_j) · sqrt(252)      (annual %)
sharpe_ratio          (return − 2%) / volatility; 0 when volatility is 0
max_drawdown          2.5 × volatility                                   (%)
diversification       min(1, effective_N / 10) · 50 + (1 − mean |ρ|) · 50,
                      effective_N = 1 / Σ w²; mean |ρ| defaults to 0.5 with
                      fewer than two analysed symbols.

Symbols without an analysis (kept holdings whose prediction failed)
contribute weight but no return or risk.

Improvement
-----------
overall_score = clamp(20 · (0.4·Δreturn + 0.2·risk_reduction
                            + 0.3·Δsharpe + 0.1·Δdiversification), 0, 100)
turnover_pct  = 50 · Σ |w_target − w_current| over the union of symbols.
"""

from __future__ import annotations

import math
from typing import Mapping, Sequence

from stock_optimizer.models.recommendation import ExpectedPerformance, ImprovementMetrics
from stock_optimizer.optimizer.analysis import ANNUAL_RISK_FREE_RATE, SymbolAnalysis, volatility

TRADING_DAYS_PER_YEAR = 252
DRAWDOWN_MULTIPLIER = 2.5
CONFIDENCE_HISTORY_TARGET = 200
DEFAULT_AI_CONFIDENCE = 60.0
DEFAULT_RISK_SCORE = 50.0
MAX_DAILY_VOLATILITY = 0.03
MIN_RISK_HISTORY = 30


def expected_performance(
    allocations: Mapping[str, float],
    analyses: Mapping[str, SymbolAnalysis],
    prediction_horizon: int,
) -> ExpectedPerformance:
    """Estimate annualised return and risk for ``allocations``."""
    annualise = 365.0 / prediction_horizon
    exp_return = sum(
        w * analyses[s].predicted_return * annualise
        for s, w in allocations.items() if s in analyses
    )

    variance = 0.0
    for s1, w1 in allocations.items():
        a1 = analyses.get(s1)
        if a1 is None:
            continue
        for s2, w2 in allocations.items():
            a2 = analyses.get(s2)
            if a2 is None:
                continue
            rho = a1.correlations.get(s2, 1.0 if s1 == s2 else 0.0)
            variance += w1 * w2 * rho * a1.volatility * a2.volatility
    exp_vol = math.sqrt(max(variance, 0.0)) * math.sqrt(TRADING_DAYS_PER_YEAR)

    sharpe = (exp_return - ANNUAL_RISK_FREE_RATE) / exp_vol if exp_vol > 0 else 0.0
    n = len(allocations)
    return ExpectedPerformance(
        expected_return=exp_return * 100.0,
        expected_volatility=exp_vol * 100.0,
        sharpe_ratio=sharpe,
        max_drawdown=exp_vol * DRAWDOWN_MULTIPLIER * 100.0,
        diversification_score=diversification_score(allocations, analyses),
        number_of_positions=n,
        average_position_size=100.0 / n if n else 0.0,
    )


def diversification_score(
    allocations: Mapping[str, float],
    analyses: Mapping[str, SymbolAnalysis],
) -> float:
    """0–100: half from concentration (effective N), half from low correlation."""
    hhi = sum(w * w for w in allocations.values())
    if hhi <= 0:
        return 0.0
    effective_n = 1.0 / hhi

    pairs = [
        abs(analyses[s1].correlations.get(s2, 0.0))
        for s1 in allocations if s1 in analyses
        for s2 in allocations if s2 in analyses and s2 != s1
    ]
    avg_corr = sum(pairs) / len(pairs) if pairs else 0.5
    return min(1.0, effective_n / 10.0) * 50.0 + (1.0 - avg_corr) * 50.0


def turnover_pct(current: Mapping[str, float], target: Mapping[str, float]) -> float:
    """Half the summed absolute weight change, as a percentage."""
    symbols = set(current) | set(target)
    return sum(abs(target.get(s, 0.0) - current.get(s, 0.0)) for s in symbols) * 50.0


def improvement_metrics(
    current: ExpectedPerformance,
    recommended: ExpectedPerformance,
    current_allocations: Mapping[str, float],
    recommended_allocations: Mapping[str, float],
) -> ImprovementMetrics:
    """Compare two allocations' expected performance."""
    return_improvement = recommended.expected_return - current.expected_return
    risk_reduction = current.expected_volatility - recommended.expected_volatility
    sharpe_improvement = recommended.sharpe_ratio - current.sharpe_ratio
    diversification_improvement = (
        recommended.diversification_score - current.diversification_score
    )
    raw = (
        return_improvement            * 0.4
        + risk_reduction              * 0.2
        + sharpe_improvement          * 0.3
        + diversification_improvement * 0.1
    )
    return ImprovementMetrics(
        return_improvement=return_improvement,
        risk_reduction=risk_reduction,
        sharpe_improvement=sharpe_improvement,
        diversification_improvement=diversification_improvement,
        turnover_pct=turnover_pct(current_allocations, recommended_allocations),
        overall_score=min(100.0, max(0.0, raw * 20.0)),
    )


def ai_confidence_score(analyses: Sequence[SymbolAnalysis]) -> float:
    """Mean prediction confidence (0–100) discounted for thin price history."""
    if not analyses:
        return DEFAULT_AI_CONFIDENCE
    avg_confidence = sum(a.prediction.confidence_score for a in analyses) / len(analyses)
    avg_points = sum(len(a.daily_returns) for a in analyses) // len(analyses)
    quality = min(1.0, avg_points / CONFIDENCE_HISTORY_TARGET)
    return min(100.0, max(0.0, avg_confidence * (0.7 + 0.3 * quality)))


def portfolio_risk_score(
    weights: Mapping[str, float],
    returns_by_symbol: Mapping[str, Sequence[float]],
) -> float:
    """0–100 risk score from value-weighted daily volatility.

    Symbols priced on fewer than ``MIN_RISK_HISTORY`` bars are ignored; with
    none left the score is ``DEFAULT_RISK_SCORE``. A weighted daily
    volatility of 3% maps to 100.
    """
    usable = {
        s: r for s, r in returns_by_symbol.items()
        if s in weights and len(r) + 1 >= MIN_RISK_HISTORY
    }
    if not usable:
        return DEFAULT_RISK_SCORE
    weighted = sum(weights[s] * volatility(r) for s, r in usable.items())
    return min(100.0, max(0.0, weighted / MAX_DAILY_VOLATILITY * 100.0))
