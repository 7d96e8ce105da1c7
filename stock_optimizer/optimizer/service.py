"""
Upgrade generation: the end-to-end "what should this portfolio look like"
pass. Nothing here changes holdings; ``recommendations.applier`` does that.

Flow for ``generate_upgrade(portfolio_id, risk_tolerance, expand_universe)``
---------------------------------------------------------------------------
1.  Load the portfolio (NOT_FOUND if missing); mark it OPTIMIZING.
2.  Candidates: current holdings in portfolio order, then, when expansion is
    requested and enabled, up to ``max_expansion_stocks`` ranked outsiders.
3.  Analyse each candidate: price history over ``historical_days``,
    indicator snapshots (recomputed when missing or stale) and a prediction.
    A failure excludes that symbol and is recorded in ``excluded_symbols``;
    an excluded current holding is pinned at its current weight instead of
    being dropped.
4.  Score, solve the bounded allocation, build actions and the performance
    comparison.
5.  Mark the portfolio OPTIMIZED. On any failure the previous status is
    restored and the error re-raised (non-domain errors are wrapped as
    OPTIMIZATION_FAILED).

All oracle and price lookups happen in step 3, before the solver runs.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Callable, Optional

from stock_optimizer.config import OptimizerConfig
from stock_optimizer.errors import OptimizerError
from stock_optimizer.indicators.service import IndicatorService
from stock_optimizer.models.portfolio import Portfolio
from stock_optimizer.models.prediction import Prediction
from stock_optimizer.models.recommendation import UpgradeRecommendation
from stock_optimizer.optimizer.actions import build_actions
from stock_optimizer.optimizer.allocation import solve_allocation
from stock_optimizer.optimizer.analysis import SymbolAnalysis, attach_correlations, build_analysis
from stock_optimizer.optimizer.performance import (
    ai_confidence_score,
    expected_performance,
    improvement_metrics,
)
from stock_optimizer.optimizer.scoring import compute_score, desirability
from stock_optimizer.optimizer.universe import select_expansion_candidates
from stock_optimizer.protocols import PortfolioStore, PredictionOracle, PriceHistorySource
from stock_optimizer.taxonomy.portfolio_enums import OptimizationStatus, recommendation_type_for
from stock_optimizer.utils.time_utils import today_utc, utcnow

logger = logging.getLogger(__name__)


class PortfolioUpgrader:
    """Generates upgrade recommendations for stored portfolios."""

    def __init__(
        self,
        portfolios: PortfolioStore,
        prices: PriceHistorySource,
        indicators: IndicatorService,
        oracle: PredictionOracle,
        config: Optional[OptimizerConfig] = None,
        as_of: Optional[date] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._portfolios = portfolios
        self._prices = prices
        self._indicators = indicators
        self._oracle = oracle
        self._config = config or OptimizerConfig()
        self._as_of = as_of
        self._clock = clock

    def generate_upgrade(
        self,
        portfolio_id: str,
        risk_tolerance: Optional[float] = None,
        expand_universe: bool = False,
    ) -> UpgradeRecommendation:
        """Compute a recommendation for ``portfolio_id`` without applying it.

        Args:
            portfolio_id: Portfolio to optimize.
            risk_tolerance: 0 (conservative) … 1 (aggressive); defaults to
                ``default_risk_tolerance``.
            expand_universe: Consider symbols not currently held.

        Raises:
            OptimizerError: NOT_FOUND, INVALID_ALLOCATION or OPTIMIZATION_FAILED.
        """
        if risk_tolerance is None:
            risk_tolerance = self._config.default_risk_tolerance
        if not 0.0 <= risk_tolerance <= 1.0:
            raise OptimizerError.invalid_allocation(
                f"risk_tolerance must be in [0, 1], got {risk_tolerance}.",
                portfolio_id=portfolio_id,
            )

        portfolio = self._portfolios.load_by_id(portfolio_id)
        if portfolio is None:
            raise OptimizerError.portfolio_not_found(portfolio_id)

        self._portfolios.save(portfolio.with_status(OptimizationStatus.OPTIMIZING))
        try:
            recommendation = self._compute(portfolio, risk_tolerance, expand_universe)
        except OptimizerError:
            self._portfolios.save(portfolio)
            raise
        except Exception as exc:
            self._portfolios.save(portfolio)
            raise OptimizerError.optimization_failed(portfolio_id, str(exc), exc) from exc

        self._portfolios.save(
            portfolio.recalculated().with_status(
                OptimizationStatus.OPTIMIZED, optimized_at=recommendation.generated_at
            )
        )
        logger.info(
            "Generated upgrade for %s: %d symbols, %d actions, %d excluded",
            portfolio_id,
            len(recommendation.recommended_allocations),
            len(recommendation.recommended_actions),
            len(recommendation.excluded_symbols),
            extra={"portfolio_id": portfolio_id},
        )
        return recommendation

    # ── Internal helpers ──────────────────────────────────────────────────────

    def _compute(
        self,
        portfolio: Portfolio,
        risk_tolerance: float,
        expand_universe: bool,
    ) -> UpgradeRecommendation:
        cfg = self._config
        as_of = self._as_of or today_utc()
        window = (as_of - timedelta(days=cfg.historical_days), as_of)

        candidates = list(portfolio.symbols)
        known_predictions: dict[str, Prediction] = {}
        excluded: dict[str, str] = {}

        expanded = expand_universe and cfg.enable_universe_expansion
        if expand_universe and not cfg.enable_universe_expansion:
            logger.info("Universe expansion requested but disabled by configuration.")
        if expanded:
            expansion = select_expansion_candidates(
                self._portfolios.find_symbols_across_all_data(),
                candidates,
                self._oracle,
                cfg.max_expansion_stocks,
            )
            candidates.extend(expansion.symbols)
            known_predictions.update(expansion.predictions)

        analyses: dict[str, SymbolAnalysis] = {}
        for symbol in candidates:
            try:
                analyses[symbol] = self._analyze(symbol, window, known_predictions.get(symbol))
            except OptimizerError as exc:
                excluded[symbol] = exc.message
                logger.warning(
                    "Excluding %s from optimization: %s", symbol, exc.message,
                    extra={"symbol": symbol, "portfolio_id": portfolio.portfolio_id},
                )
        attach_correlations(analyses)

        current = portfolio.allocations()
        pinned = {s: current.get(s, 0.0) for s in portfolio.symbols if s not in analyses}
        scores = {
            s: desirability(compute_score(analyses[s], risk_tolerance))
            for s in candidates if s in analyses
        }

        try:
            solved = solve_allocation(
                scores,
                cfg.min_stock_allocation,
                cfg.max_stock_allocation,
                pinned=pinned,
                order=candidates,
                iterations=cfg.optimization_iterations,
                epsilon=cfg.convergence_epsilon,
                tolerance=cfg.weight_tolerance,
            )
        except OptimizerError as exc:
            exc.portfolio_id = portfolio.portfolio_id
            raise

        prices = {s: a.current_price for s, a in analyses.items()}
        for symbol in pinned:
            bar = self._prices.latest_bar(symbol, on_or_before=as_of)
            if bar is not None:
                prices[symbol] = bar.close

        actions = build_actions(portfolio, solved.weights, analyses, prices)
        recommended_perf = expected_performance(solved.weights, analyses, cfg.prediction_horizon)
        current_perf = (
            expected_performance(current, analyses, cfg.prediction_horizon) if current else None
        )

        return UpgradeRecommendation(
            portfolio_id=portfolio.portfolio_id,
            risk_tolerance=risk_tolerance,
            universe_expanded=expanded,
            recommendation_type=recommendation_type_for(risk_tolerance),
            current_allocations=current,
            recommended_allocations=solved.weights,
            recommended_actions=actions,
            excluded_symbols=excluded,
            current_performance=current_perf,
            expected_performance=recommended_perf,
            improvement=(
                improvement_metrics(current_perf, recommended_perf, current, solved.weights)
                if current_perf else None
            ),
            ai_confidence_score=ai_confidence_score(list(analyses.values())),
            iterations_used=solved.iterations,
            converged=solved.converged,
            generated_at=self._clock(),
        )

    def _analyze(
        self,
        symbol: str,
        window: tuple[date, date],
        prediction: Optional[Prediction],
    ) -> SymbolAnalysis:
        bars = self._prices.get_bars(symbol, *window)
        if len(bars) < 2:
            raise OptimizerError.insufficient_data(
                symbol, f"{len(bars)} price bars in the last {self._config.historical_days} days"
            )
        snapshots = self._indicators.ensure_range(
            symbol, window[0], window[1], fresh_as_of=bars[-1].bar_date
        )

        if prediction is None:
            try:
                prediction = self._oracle.predict(symbol)
            except OptimizerError:
                raise
            except Exception as exc:
                raise OptimizerError.prediction_failed(symbol, exc) from exc

        return build_analysis(symbol, bars, snapshots, prediction)
