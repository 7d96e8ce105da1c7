"""Tests for turning target weights into trades."""

from __future__ import annotations

from datetime import date

import pytest

from stock_optimizer.models.indicator import IndicatorSnapshot
from stock_optimizer.optimizer.actions import (
    DEFAULT_ACTION_CONFIDENCE,
    build_actions,
    target_share_count,
)
from stock_optimizer.optimizer.analysis import SymbolAnalysis, TrendAnalysis
from stock_optimizer.taxonomy.portfolio_enums import TradeAction, TrendDirection


def _analysis(make_prediction, symbol: str, change_pct: float = 5.0,
              trend: TrendDirection = TrendDirection.NEUTRAL) -> SymbolAnalysis:
    return SymbolAnalysis(
        symbol=symbol,
        current_price=100.0,
        prediction=make_prediction(symbol, change_pct, confidence=70.0),
        latest_snapshot=IndicatorSnapshot(symbol=symbol, snapshot_date=date(2024, 12, 31), price=100.0),
        daily_returns=[],
        volatility=0.01,
        sharpe_ratio=0.5,
        trend=TrendAnalysis(trend=trend),
    )


class TestTargetShareCount:
    def test_rounds_toward_zero(self):
        assert target_share_count(1000.0, 0.25, 30.0) == 8

    def test_exact_multiple_survives_float_noise(self):
        assert target_share_count(1000.0, 0.3, 100.0) == 3

    def test_degenerate_inputs(self):
        assert target_share_count(1000.0, 0.0, 10.0) == 0
        assert target_share_count(1000.0, 0.5, 0.0) == 0


class TestBuildActions:
    def test_buy_and_sell(self, make_portfolio):
        portfolio = make_portfolio([("AAPL", 10, 100.0), ("MSFT", 10, 100.0)])

        actions = build_actions(
            portfolio, {"AAPL": 0.75, "MSFT": 0.25}, {}, {"AAPL": 100.0, "MSFT": 100.0}
        )
        by_symbol = {a.symbol: a for a in actions}

        assert by_symbol["AAPL"].action == TradeAction.BUY
        assert by_symbol["AAPL"].target_shares == 15
        assert by_symbol["AAPL"].share_delta == pytest.approx(5)
        assert by_symbol["AAPL"].estimated_impact == pytest.approx(500.0)
        assert by_symbol["MSFT"].action == TradeAction.SELL
        assert by_symbol["MSFT"].estimated_impact == pytest.approx(-500.0)
        assert by_symbol["AAPL"].confidence_score == DEFAULT_ACTION_CONFIDENCE

    def test_small_weight_change_is_hold(self, make_portfolio):
        portfolio = make_portfolio([("AAPL", 100, 10.0), ("MSFT", 100, 10.0)])

        actions = build_actions(
            portfolio, {"AAPL": 0.505, "MSFT": 0.495}, {}, {"AAPL": 10.0, "MSFT": 10.0}
        )

        assert {a.action for a in actions} == {TradeAction.HOLD}
        assert actions[0].reason == "Current position is close to optimal allocation"

    def test_symbol_dropped_from_target_is_sold_out(self, make_portfolio):
        portfolio = make_portfolio([("AAPL", 10, 100.0), ("MSFT", 10, 100.0)])

        actions = build_actions(portfolio, {"AAPL": 1.0}, {}, {})
        msft = next(a for a in actions if a.symbol == "MSFT")

        assert msft.action == TradeAction.SELL
        assert msft.target_shares == 0
        assert msft.target_weight == 0.0

    def test_new_position(self, make_portfolio, make_prediction):
        portfolio = make_portfolio([("AAPL", 20, 100.0)])
        analyses = {"NVDA": _analysis(make_prediction, "NVDA", change_pct=15.0)}

        actions = build_actions(
            portfolio, {"AAPL": 0.9, "NVDA": 0.1}, analyses, {"AAPL": 100.0, "NVDA": 50.0}
        )
        nvda = next(a for a in actions if a.symbol == "NVDA")

        assert nvda.action == TradeAction.BUY
        assert nvda.current_weight == 0.0
        assert nvda.target_shares == 4
        assert nvda.company_name == "NVIDIA Corporation"
        assert nvda.reason == "New position: High expected return potential"
        assert nvda.confidence_score == pytest.approx(70.0)

    def test_new_position_below_one_share_dropped(self, make_portfolio):
        portfolio = make_portfolio([("AAPL", 20, 100.0)])

        actions = build_actions(
            portfolio, {"AAPL": 0.99, "NVDA": 0.01}, {}, {"AAPL": 100.0, "NVDA": 500.0}
        )

        assert [a.symbol for a in actions] == ["AAPL"]

    def test_new_position_without_price_skipped(self, make_portfolio):
        portfolio = make_portfolio([("AAPL", 20, 100.0)])
        actions = build_actions(portfolio, {"AAPL": 0.5, "ZZZ": 0.5}, {}, {"AAPL": 100.0})
        assert [a.symbol for a in actions] == ["AAPL"]

    def test_sorted_by_absolute_impact(self, make_portfolio):
        portfolio = make_portfolio([("AAA", 10, 10.0), ("BBB", 10, 10.0), ("CCC", 10, 10.0)])
        prices = {"AAA": 10.0, "BBB": 10.0, "CCC": 10.0}

        actions = build_actions(portfolio, {"AAA": 0.2, "BBB": 0.1, "CCC": 0.7}, {}, prices)
        impacts = [abs(a.estimated_impact) for a in actions]

        assert impacts == sorted(impacts, reverse=True)
        assert actions[0].symbol == "CCC"

    def test_reasons_follow_analysis(self, make_portfolio, make_prediction):
        portfolio = make_portfolio([("AAPL", 10, 100.0), ("MSFT", 10, 100.0)])
        analyses = {
            "AAPL": _analysis(make_prediction, "AAPL", trend=TrendDirection.BULLISH),
            "MSFT": _analysis(make_prediction, "MSFT", trend=TrendDirection.BEARISH),
        }

        actions = build_actions(
            portfolio, {"AAPL": 0.75, "MSFT": 0.25}, analyses, {"AAPL": 100.0, "MSFT": 100.0}
        )
        by_symbol = {a.symbol: a for a in actions}

        assert by_symbol["AAPL"].reason == "Bullish trend with positive momentum"
        assert by_symbol["MSFT"].reason == "Bearish trend with negative momentum"

    def test_worthless_portfolio(self, make_portfolio):
        portfolio = make_portfolio([("AAPL", 0, 100.0)])
        assert build_actions(portfolio, {"AAPL": 1.0}, {}, {"AAPL": 100.0}) == []
