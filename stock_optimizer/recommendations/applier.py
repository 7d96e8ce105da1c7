"""
Apply a previously generated allocation to a portfolio.

Generation and application are separate so a caller can preview a
recommendation before committing to it. Applying is all-or-nothing: the
request is validated and every price is fetched before anything is written,
and the portfolio save plus its history record share one transaction.

Share counts:
    total_value = Σ shares × latest_close over current holdings
    shares      = floor(total_value × weight / latest_close)
A held symbol with no bar is valued at its stored price.
Symbols with zero weight, or whose weight buys less than one share, are
removed. Existing holdings keep their entry price and entry date; new ones
are entered at the latest close.

Applying weights equal to the current ones leaves every share count
unchanged; only the status and timestamps move.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Callable, Mapping, Optional

from stock_optimizer.config import OptimizerConfig
from stock_optimizer.errors import OptimizerError
from stock_optimizer.history.service import HistoryService
from stock_optimizer.models.portfolio import Holding, Portfolio
from stock_optimizer.optimizer.actions import target_share_count
from stock_optimizer.optimizer.analysis import daily_returns
from stock_optimizer.optimizer.performance import portfolio_risk_score
from stock_optimizer.optimizer.universe import company_name
from stock_optimizer.protocols import PortfolioStore, PriceHistorySource
from stock_optimizer.taxonomy.portfolio_enums import OptimizationStatus, recommendation_type_for
from stock_optimizer.tracking.tracker import PerformanceTracker
from stock_optimizer.utils.time_utils import today_utc, utcnow

logger = logging.getLogger(__name__)

ALLOCATION_SUM_TOLERANCE = 1e-3


class RecommendationApplier:
    """Rewrites a portfolio's holdings to match target weights."""

    def __init__(
        self,
        portfolios: PortfolioStore,
        prices: PriceHistorySource,
        history: HistoryService,
        tracker: Optional[PerformanceTracker] = None,
        config: Optional[OptimizerConfig] = None,
        as_of: Optional[date] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._portfolios = portfolios
        self._prices = prices
        self._history = history
        self._tracker = tracker
        self._config = config or OptimizerConfig()
        self._as_of = as_of
        self._clock = clock

    def apply_upgrade(
        self,
        portfolio_id: str,
        allocations: Mapping[str, float],
        risk_tolerance: Optional[float] = None,
    ) -> Portfolio:
        """Apply ``allocations`` (symbol → fraction) to the portfolio.

        Returns:
            The saved portfolio.

        Raises:
            OptimizerError: NOT_FOUND, INVALID_ALLOCATION (bad weights or an
                empty portfolio), INSUFFICIENT_DATA (a symbol has no price),
                OPTIMIZATION_FAILED (persistence). Nothing is written in any
                of these cases.
        """
        if risk_tolerance is None:
            risk_tolerance = self._config.default_risk_tolerance
        if not 0.0 <= risk_tolerance <= 1.0:
            raise OptimizerError.invalid_allocation(
                f"risk_tolerance must be in [0, 1], got {risk_tolerance}.",
                portfolio_id=portfolio_id,
            )
        weights = _normalized_weights(portfolio_id, allocations)

        portfolio = self._portfolios.load_by_id(portfolio_id)
        if portfolio is None:
            raise OptimizerError.portfolio_not_found(portfolio_id)

        # Every lookup happens before the portfolio is touched.
        as_of = self._as_of or today_utc()
        prices: dict[str, float] = {}
        for symbol, weight in weights.items():
            if weight <= 0:
                continue
            bar = self._prices.latest_bar(symbol, on_or_before=as_of)
            if bar is None:
                raise OptimizerError.insufficient_data(symbol, "no price available to size the position")
            prices[symbol] = bar.close

        held_prices = {s: prices[s] for s in portfolio.symbols if s in prices}
        for symbol in portfolio.symbols:
            if symbol not in held_prices:
                bar = self._prices.latest_bar(symbol, on_or_before=as_of)
                if bar is not None:
                    held_prices[symbol] = bar.close
        marked = portfolio.revalued(held_prices)
        total = marked.total_value
        if total <= 0:
            raise OptimizerError.invalid_allocation(
                f"Portfolio {portfolio_id} has no value to allocate.", portfolio_id=portfolio_id
            )
        window_start = as_of - timedelta(days=self._config.historical_days)
        returns = {s: daily_returns(self._prices.get_bars(s, window_start, as_of)) for s in prices}

        holdings: list[Holding] = []
        for symbol, price in prices.items():
            shares = target_share_count(total, weights[symbol], price)
            if shares < 1:
                logger.info("Dropping %s: weight %.4f buys no whole share", symbol, weights[symbol],
                            extra={"symbol": symbol, "portfolio_id": portfolio_id})
                continue
            existing = portfolio.holding(symbol)
            if existing is not None:
                holdings.append(existing.model_copy(update={"shares": float(shares), "current_price": price}))
            else:
                holdings.append(
                    Holding(
                        symbol=symbol,
                        company_name=company_name(symbol),
                        shares=shares,
                        entry_price=price,
                        entry_date=as_of,
                        current_price=price,
                    )
                )
        if not holdings:
            raise OptimizerError.invalid_allocation(
                "No target weight buys a whole share.", portfolio_id=portfolio_id
            )

        now = self._clock()
        rec_type = recommendation_type_for(risk_tolerance)
        updated = portfolio.model_copy(update={"holdings": holdings}).recalculated()
        updated = updated.model_copy(
            update={
                "risk_score": portfolio_risk_score(updated.allocations(), returns),
                "optimization_status": OptimizationStatus.UPGRADED_WITH_AI,
                "last_optimized_at": now,
                "has_ai_recommendations": True,
                "last_ai_recommendation_date": now,
                "ai_recommendation_type": rec_type,
            }
        )

        try:
            saved = self._portfolios.save(updated)
            self._history.record_ai_recommendation(
                portfolio, saved, risk_tolerance, rec_type, changed_at=now
            )
        except OptimizerError:
            raise
        except Exception as exc:
            raise OptimizerError.optimization_failed(
                portfolio_id, f"could not persist applied recommendation: {exc}", exc
            ) from exc

        if self._tracker is not None:
            self._tracker.record_application(saved, now)

        logger.info(
            "Applied %s recommendation to %s: %d holdings, value %.2f → %.2f",
            rec_type, portfolio_id, len(saved.holdings), total, saved.total_value,
            extra={"portfolio_id": portfolio_id},
        )
        return saved


# ── Helper ────────────────────────────────────────────────────────────────────

def _normalized_weights(portfolio_id: str, allocations: Mapping[str, float]) -> dict[str, float]:
    """Upper-case symbols and check weights are non-negative and sum to ~1."""
    if not allocations:
        raise OptimizerError.invalid_allocation("No allocations given.", portfolio_id=portfolio_id)

    weights: dict[str, float] = {}
    for raw, weight in allocations.items():
        symbol = raw.strip().upper()
        if symbol in weights:
            raise OptimizerError.invalid_allocation(
                f"Symbol {symbol} given more than once.", portfolio_id=portfolio_id
            )
        if weight < 0:
            raise OptimizerError.invalid_allocation(
                f"Weight for {symbol} is negative ({weight}).", portfolio_id=portfolio_id
            )
        weights[symbol] = float(weight)

    total = sum(weights.values())
    if abs(total - 1.0) > ALLOCATION_SUM_TOLERANCE:
        raise OptimizerError.invalid_allocation(
            f"Weights sum to {total:.6f}; expected 1.", portfolio_id=portfolio_id
        )
    return weights
