"""
Performance tracking for applied recommendations.

``record_application`` registers an entry when a recommendation is applied.
``run_sweep`` (weekly) refreshes every entry from the portfolio marked to
the latest close and evicts entries older than ``retention_days``:

    days_since_application = today − application_date   (calendar days)
    evict                 if days_since_application > retention_days
    latest_value_change   = current_value − initial_value
    latest_pct_change     = latest_value_change / initial_value × 100

Eviction is decided before the portfolio is loaded, so entries of deleted
portfolios still age out. A failure for one portfolio is logged and the
sweep moves on.

``get_performance`` compares an entry with the benchmark over the same
window:

    benchmark_return = (last_close − first_close) / first_close × 100
    outperformance   = latest_pct_change − benchmark_return

Portfolio and benchmark lookups are made without holding the store lock.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable, Optional

from stock_optimizer.models.market import PriceBar
from stock_optimizer.models.portfolio import Portfolio
from stock_optimizer.models.recommendation import (
    AggregateStats,
    PerformanceReport,
    RecommendationMetrics,
)
from stock_optimizer.tracking.metrics_store import RecommendationMetricsStore
from stock_optimizer.utils.time_utils import days_between, utcnow

logger = logging.getLogger(__name__)

DEFAULT_BENCHMARK = "^GSPC"
DEFAULT_RETENTION_DAYS = 180
NOT_FOUND_MESSAGE = "No AI recommendation performance data found for this portfolio"

PortfolioLoader = Callable[[str], Optional[Portfolio]]
BarLoader = Callable[[str, date, date], list[PriceBar]]
CloseLoader = Callable[[str, date], Optional[float]]


@dataclass
class SweepSummary:
    """Outcome of one ``run_sweep``."""

    updated: int = 0
    evicted: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def examined(self) -> int:
        return self.updated + len(self.evicted) + len(self.failed)


class PerformanceTracker:
    """Tracks realised performance of applied recommendations.

    Args:
        store: Shared metrics store.
        load_portfolio: Portfolio lookup by id (``None`` when deleted).
        load_bars: Benchmark bar lookup ``(symbol, from, to)``, oldest first.
        latest_close: Latest close ``(symbol, on_or_before)`` used to mark
            holdings to market during the sweep; stored prices are used when
            omitted or when a symbol has no bar.
        benchmark_symbol: Index to compare against.
        retention_days: Entries older than this are evicted by the sweep.
        clock: UTC clock.
    """

    def __init__(
        self,
        store: RecommendationMetricsStore,
        load_portfolio: PortfolioLoader,
        load_bars: BarLoader,
        latest_close: Optional[CloseLoader] = None,
        benchmark_symbol: str = DEFAULT_BENCHMARK,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._load_portfolio = load_portfolio
        self._load_bars = load_bars
        self._latest_close = latest_close
        self.benchmark_symbol = benchmark_symbol
        self.retention_days = retention_days
        self._clock = clock

    def record_application(
        self,
        portfolio: Portfolio,
        applied_at: Optional[datetime] = None,
    ) -> RecommendationMetrics:
        """Start tracking ``portfolio`` from its current value, replacing any prior entry."""
        applied_at = applied_at or self._clock()
        metrics = RecommendationMetrics(
            portfolio_id=portfolio.portfolio_id,
            application_date=applied_at,
            allocations=portfolio.allocations(),
            initial_value=portfolio.total_value,
            latest_value=portfolio.total_value,
            last_tracked_date=applied_at,
        )
        self._store.put(metrics)
        logger.info(
            "Tracking recommendation for %s (initial value %.2f)",
            portfolio.portfolio_id, portfolio.total_value,
            extra={"portfolio_id": portfolio.portfolio_id},
        )
        return metrics

    def run_sweep(self, now: Optional[datetime] = None) -> SweepSummary:
        """Refresh every tracked entry and evict those past retention."""
        now = now or self._clock()
        summary = SweepSummary()

        for portfolio_id in self._store.portfolio_ids():
            metrics = self._store.get(portfolio_id)
            if metrics is None:
                continue

            days = days_between(metrics.application_date, now)
            if days > self.retention_days:
                self._store.remove(portfolio_id)
                summary.evicted.append(portfolio_id)
                logger.info(
                    "Evicted tracking for %s after %d days", portfolio_id, days,
                    extra={"portfolio_id": portfolio_id},
                )
                continue

            try:
                portfolio = self._load_portfolio(portfolio_id)
                if portfolio is None:
                    raise LookupError(f"portfolio {portfolio_id} no longer exists")
                current_value = self._marked_to_market(portfolio, now).total_value
                updated = _refreshed(metrics, current_value, days, now)
            except Exception as exc:
                summary.failed[portfolio_id] = str(exc)
                logger.error(
                    "Performance sweep failed for %s: %s", portfolio_id, exc,
                    extra={"portfolio_id": portfolio_id},
                )
                continue

            if self._store.replace_if_present(updated):
                summary.updated += 1

        logger.info(
            "Performance sweep: %d updated, %d evicted, %d failed",
            summary.updated, len(summary.evicted), len(summary.failed),
        )
        return summary

    def get_performance(
        self,
        portfolio_id: str,
        now: Optional[datetime] = None,
    ) -> PerformanceReport:
        """Latest tracked figures plus a benchmark comparison.

        An untracked portfolio yields ``found=False``, not an error.
        """
        metrics = self._store.get(portfolio_id)
        if metrics is None:
            return PerformanceReport(found=False, portfolio_id=portfolio_id, message=NOT_FOUND_MESSAGE)

        now = now or self._clock()
        bars = self._load_bars(self.benchmark_symbol, metrics.application_date.date(), now.date())
        bench = benchmark_return(bars)

        return PerformanceReport(
            found=True,
            portfolio_id=portfolio_id,
            application_date=metrics.application_date,
            allocations=metrics.allocations,
            initial_value=metrics.initial_value,
            current_value=metrics.latest_value,
            value_change=metrics.latest_value_change,
            percentage_change=metrics.latest_pct_change,
            days_since_application=metrics.days_since_application,
            last_tracked_date=metrics.last_tracked_date,
            benchmark_symbol=self.benchmark_symbol,
            benchmark_return=bench,
            outperformance=metrics.latest_pct_change - bench,
        )

    def get_aggregate_stats(self) -> AggregateStats:
        """Summary of every tracked entry's latest percentage change."""
        entries = self._store.values()
        if not entries:
            return AggregateStats(recommendation_count=0)

        changes = [m.latest_pct_change for m in entries]
        positive = sum(1 for c in changes if c > 0)
        return AggregateStats(
            recommendation_count=len(changes),
            positive_count=positive,
            positive_performance_pct=positive / len(changes) * 100.0,
            average_performance=sum(changes) / len(changes),
            best_performance=max(changes),
            worst_performance=min(changes),
        )

    def _marked_to_market(self, portfolio: Portfolio, now: datetime) -> Portfolio:
        """``portfolio`` revalued at the latest close on or before ``now``."""
        if self._latest_close is None:
            return portfolio
        prices: dict[str, float] = {}
        for symbol in portfolio.symbols:
            close = self._latest_close(symbol, now.date())
            if close is not None:
                prices[symbol] = close
        return portfolio.revalued(prices)


def benchmark_return(bars: list[PriceBar]) -> float:
    """Percentage change from the first to the last close; 0 with fewer than two bars."""
    if len(bars) < 2 or bars[0].close <= 0:
        return 0.0
    return (bars[-1].close - bars[0].close) / bars[0].close * 100.0


# ── Helper ────────────────────────────────────────────────────────────────────

def _refreshed(
    metrics: RecommendationMetrics,
    current_value: float,
    days: int,
    now: datetime,
) -> RecommendationMetrics:
    change = current_value - metrics.initial_value
    pct = change / metrics.initial_value * 100.0 if metrics.initial_value > 0 else 0.0
    return metrics.model_copy(
        update={
            "latest_value": current_value,
            "latest_value_change": change,
            "latest_pct_change": pct,
            "days_since_application": days,
            "last_tracked_date": now,
        }
    )
