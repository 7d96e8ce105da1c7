"""Tests for expected performance, improvement and risk estimates."""

from __future__ import annotations

import math
from datetime import date

import pytest

from stock_optimizer.models.indicator import IndicatorSnapshot
from stock_optimizer.optimizer.analysis import SymbolAnalysis, TrendAnalysis
from stock_optimizer.optimizer.performance import (
    DEFAULT_AI_CONFIDENCE,
    DEFAULT_RISK_SCORE,
    ai_confidence_score,
    diversification_score,
    expected_performance,
    improvement_metrics,
    portfolio_risk_score,
    turnover_pct,
)


def _analysis(make_prediction, symbol: str, change_pct: float, vol: float,
              confidence: float = 80.0, points: int = 0) -> SymbolAnalysis:
    return SymbolAnalysis(
        symbol=symbol,
        current_price=100.0,
        prediction=make_prediction(symbol, change_pct, confidence=confidence),
        latest_snapshot=IndicatorSnapshot(symbol=symbol, snapshot_date=date(2024, 12, 31), price=100.0),
        daily_returns=[0.0] * points,
        volatility=vol,
        sharpe_ratio=0.0,
        trend=TrendAnalysis(),
    )


class TestExpectedPerformance:
    def test_single_symbol(self, make_prediction):
        analyses = {"AAPL": _analysis(make_prediction, "AAPL", 10.0, 0.01)}
        analyses["AAPL"].correlations["AAPL"] = 1.0

        perf = expected_performance({"AAPL": 1.0}, analyses, prediction_horizon=90)

        assert perf.expected_return == pytest.approx(0.10 * 365 / 90 * 100)
        assert perf.expected_volatility == pytest.approx(0.01 * math.sqrt(252) * 100)
        assert perf.max_drawdown == pytest.approx(perf.expected_volatility * 2.5)
        assert perf.number_of_positions == 1
        assert perf.average_position_size == pytest.approx(100.0)

    def test_uncorrelated_pair_reduces_volatility(self, make_prediction):
        a = _analysis(make_prediction, "AAA", 5.0, 0.02)
        b = _analysis(make_prediction, "BBB", 5.0, 0.02)
        a.correlations.update({"AAA": 1.0, "BBB": 0.0})
        b.correlations.update({"AAA": 0.0, "BBB": 1.0})

        perf = expected_performance({"AAA": 0.5, "BBB": 0.5}, {"AAA": a, "BBB": b}, 90)

        single_vol = 0.02 * math.sqrt(252) * 100
        assert perf.expected_volatility == pytest.approx(single_vol / math.sqrt(2))

    def test_zero_volatility_sharpe(self, make_prediction):
        analyses = {"AAPL": _analysis(make_prediction, "AAPL", 10.0, 0.0)}
        perf = expected_performance({"AAPL": 1.0}, analyses, 90)
        assert perf.sharpe_ratio == 0.0

    def test_unanalysed_symbol_contributes_nothing(self, make_prediction):
        analyses = {"AAPL": _analysis(make_prediction, "AAPL", 10.0, 0.01)}
        perf = expected_performance({"AAPL": 0.5, "KEEP": 0.5}, analyses, 90)

        assert perf.expected_return == pytest.approx(0.5 * 0.10 * 365 / 90 * 100)
        assert perf.number_of_positions == 2


class TestDiversificationScore:
    def test_single_position(self, make_prediction):
        analyses = {"AAPL": _analysis(make_prediction, "AAPL", 1.0, 0.01)}
        assert diversification_score({"AAPL": 1.0}, analyses) == pytest.approx(5.0 + 25.0)

    def test_ten_uncorrelated_positions(self, make_prediction):
        symbols = [f"S{i}" for i in range(10)]
        analyses = {s: _analysis(make_prediction, s, 1.0, 0.01) for s in symbols}
        for a in analyses.values():
            a.correlations.update({s: 0.0 for s in symbols})

        score = diversification_score({s: 0.1 for s in symbols}, analyses)
        assert score == pytest.approx(100.0)

    def test_empty(self):
        assert diversification_score({}, {}) == 0.0


class TestImprovement:
    def test_turnover(self):
        assert turnover_pct({"AAA": 1.0}, {"AAA": 0.5, "BBB": 0.5}) == pytest.approx(50.0)
        assert turnover_pct({"AAA": 1.0}, {"AAA": 1.0}) == 0.0

    def test_overall_score_clamped(self, make_prediction):
        weak = {"AAPL": _analysis(make_prediction, "AAPL", -10.0, 0.02)}
        strong = {"AAPL": _analysis(make_prediction, "AAPL", 20.0, 0.02)}
        current = expected_performance({"AAPL": 1.0}, weak, 90)
        recommended = expected_performance({"AAPL": 1.0}, strong, 90)

        better = improvement_metrics(current, recommended, {"AAPL": 1.0}, {"AAPL": 1.0})
        worse = improvement_metrics(recommended, current, {"AAPL": 1.0}, {"AAPL": 1.0})

        assert better.return_improvement > 0
        assert better.overall_score == 100.0
        assert worse.overall_score == 0.0
        assert better.turnover_pct == 0.0


class TestConfidenceAndRisk:
    def test_ai_confidence_default(self):
        assert ai_confidence_score([]) == DEFAULT_AI_CONFIDENCE

    def test_ai_confidence_discounted_for_short_history(self, make_prediction):
        full = [_analysis(make_prediction, "AAPL", 1.0, 0.01, confidence=80.0, points=200)]
        none = [_analysis(make_prediction, "AAPL", 1.0, 0.01, confidence=80.0, points=0)]

        assert ai_confidence_score(full) == pytest.approx(80.0)
        assert ai_confidence_score(none) == pytest.approx(56.0)

    def test_risk_score_default_without_history(self):
        assert portfolio_risk_score({"AAPL": 1.0}, {"AAPL": [0.01] * 5}) == DEFAULT_RISK_SCORE

    def test_risk_score_scales_with_volatility(self):
        returns = [0.015, -0.015] * 20
        assert portfolio_risk_score({"AAPL": 1.0}, {"AAPL": returns}) == pytest.approx(50.0)

    def test_risk_score_capped(self):
        returns = [0.2, -0.2] * 20
        assert portfolio_risk_score({"AAPL": 1.0}, {"AAPL": returns}) == 100.0
