"""
``OptimizationEngine``: the in-process facade over the optimization core.

One engine per process. It owns the process-local pieces (the recommendation
metrics store, the performance tracker, the prediction cache) and opens a
fresh SQLite connection for every operation, so each generate or apply
commits as one transaction or rolls back entirely.

Usage::

    engine = OptimizationEngine(load_config())
    engine.init_db()
    rec = engine.generate_upgrade("p-1", risk_tolerance=0.7)
    engine.apply_upgrade("p-1", rec.recommended_allocations, risk_tolerance=0.7)
    engine.get_performance("p-1")
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import date, datetime
from typing import Callable, Mapping, Optional

from stock_optimizer.config import AppConfig
from stock_optimizer.db.connection import get_connection
from stock_optimizer.db.repositories.history_repo import HistoryRepository
from stock_optimizer.db.repositories.indicator_repo import IndicatorRepository
from stock_optimizer.db.repositories.market_repo import PriceBarRepository
from stock_optimizer.db.repositories.portfolio_repo import PortfolioRepository
from stock_optimizer.db.repositories.prediction_repo import PredictionRepository
from stock_optimizer.db.schema import apply_schema
from stock_optimizer.history.service import HistoryService
from stock_optimizer.indicators.service import IndicatorService
from stock_optimizer.models.history import HistoryRecord
from stock_optimizer.models.indicator import IndicatorSnapshot
from stock_optimizer.models.market import PriceBar
from stock_optimizer.models.meta import RunMetadata
from stock_optimizer.models.portfolio import Portfolio
from stock_optimizer.models.recommendation import (
    AggregateStats,
    PerformanceReport,
    UpgradeRecommendation,
)
from stock_optimizer.optimizer.service import PortfolioUpgrader
from stock_optimizer.pipeline.indicators import IndicatorStage
from stock_optimizer.pipeline.track import TrackPerformanceStage
from stock_optimizer.pipeline.verify import VerifyPredictionsStage
from stock_optimizer.prediction.oracle import (
    CachingOracle,
    StoredPredictionOracle,
    TrendPredictionOracle,
)
from stock_optimizer.protocols import PredictionOracle
from stock_optimizer.recommendations.applier import RecommendationApplier
from stock_optimizer.scheduler import PeriodicTask, SchedulerDaemon
from stock_optimizer.tracking.metrics_store import RecommendationMetricsStore
from stock_optimizer.tracking.tracker import PerformanceTracker
from stock_optimizer.utils.time_utils import parse_hhmm, utcnow

logger = logging.getLogger(__name__)


class OptimizationEngine:
    """Entry point for every optimization operation.

    Args:
        config: Application configuration.
        db_path: Overrides ``config.database.db_path``. Must be a file path;
            each operation opens its own connection.
        oracle: Prediction oracle to use instead of the stored/trend chain.
        metrics_store: Shared metrics store; a fresh one by default.
        as_of: Fixed "today" for price and prediction windows.
        clock: UTC clock for timestamps.
    """

    def __init__(
        self,
        config: AppConfig,
        db_path: Optional[str] = None,
        oracle: Optional[PredictionOracle] = None,
        metrics_store: Optional[RecommendationMetricsStore] = None,
        as_of: Optional[date] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.config = config
        self.db_path = db_path or config.database.db_path
        self.as_of = as_of
        self._clock = clock
        self._fixed_oracle = oracle
        self._prediction_cache: Optional[CachingOracle] = None

        self.metrics = metrics_store or RecommendationMetricsStore()
        self.tracker = PerformanceTracker(
            self.metrics,
            load_portfolio=self._load_portfolio,
            load_bars=self._load_bars,
            latest_close=self._latest_close,
            benchmark_symbol=config.tracker.benchmark_symbol,
            retention_days=config.tracker.retention_days,
            clock=clock,
        )

    def connect(self):
        return get_connection(
            self.db_path,
            wal_mode=self.config.database.wal_mode,
            busy_timeout_ms=self.config.database.busy_timeout_ms,
        )

    # ── Setup and data ────────────────────────────────────────────────────────

    def init_db(self) -> None:
        with self.connect() as conn:
            apply_schema(conn)

    def import_prices(self, bars: list[PriceBar]) -> int:
        with self.connect() as conn:
            return PriceBarRepository(conn).upsert_batch(bars)

    def create_portfolio(self, portfolio: Portfolio) -> Portfolio:
        """Store a new portfolio with recomputed figures and a CREATION record."""
        with self.connect() as conn:
            repo = PortfolioRepository(conn)
            if repo.load_by_id(portfolio.portfolio_id) is not None:
                raise ValueError(f"Portfolio {portfolio.portfolio_id} already exists.")
            saved = repo.save(portfolio.recalculated())
            HistoryService(HistoryRepository(conn), self._clock).record_creation(saved)
        return saved

    def get_portfolio(self, portfolio_id: str) -> Optional[Portfolio]:
        return self._load_portfolio(portfolio_id)

    def compute_indicators(
        self, symbol: str, from_date: date, to_date: date
    ) -> list[IndicatorSnapshot]:
        with self.connect() as conn:
            return self._indicator_service(conn).calculate_for_range(symbol, from_date, to_date)

    # ── Optimization ──────────────────────────────────────────────────────────

    def generate_upgrade(
        self,
        portfolio_id: str,
        risk_tolerance: Optional[float] = None,
        expand_universe: bool = False,
    ) -> UpgradeRecommendation:
        with self.connect() as conn:
            prices = PriceBarRepository(conn)
            upgrader = PortfolioUpgrader(
                PortfolioRepository(conn),
                prices,
                self._indicator_service(conn),
                self._oracle(conn),
                self.config.optimizer,
                as_of=self.as_of,
                clock=self._clock,
            )
            return upgrader.generate_upgrade(portfolio_id, risk_tolerance, expand_universe)

    def apply_upgrade(
        self,
        portfolio_id: str,
        allocations: Mapping[str, float],
        risk_tolerance: Optional[float] = None,
    ) -> Portfolio:
        """Apply ``allocations`` and start tracking the result once committed."""
        with self.connect() as conn:
            applier = RecommendationApplier(
                PortfolioRepository(conn),
                PriceBarRepository(conn),
                HistoryService(HistoryRepository(conn), self._clock),
                config=self.config.optimizer,
                as_of=self.as_of,
                clock=self._clock,
            )
            saved = applier.apply_upgrade(portfolio_id, allocations, risk_tolerance)
        self.tracker.record_application(saved, saved.last_ai_recommendation_date)
        return saved

    # ── Performance ───────────────────────────────────────────────────────────

    def get_performance(self, portfolio_id: str) -> PerformanceReport:
        return self.tracker.get_performance(portfolio_id)

    def get_aggregate_stats(self) -> AggregateStats:
        return self.tracker.get_aggregate_stats()

    # ── History ───────────────────────────────────────────────────────────────

    def get_portfolio_history(self, portfolio_id: str) -> list[HistoryRecord]:
        with self.connect() as conn:
            return HistoryService(HistoryRepository(conn), self._clock).get_portfolio_history(
                portfolio_id
            )

    def get_ai_recommendation_history(self, portfolio_id: str) -> list[HistoryRecord]:
        with self.connect() as conn:
            return HistoryService(
                HistoryRepository(conn), self._clock
            ).get_ai_recommendation_history(portfolio_id)

    def get_recent_changes(self, portfolio_id: str, days: int = 30) -> list[HistoryRecord]:
        with self.connect() as conn:
            return HistoryService(HistoryRepository(conn), self._clock).get_recent_changes(
                portfolio_id, days
            )

    # ── Scheduled jobs ────────────────────────────────────────────────────────

    def refresh_indicators(self, as_of: Optional[date] = None) -> RunMetadata:
        stage = IndicatorStage(self.config, self.db_path, self._clock)
        return stage.run(as_of=as_of or self.as_of)

    def verify_predictions(self, as_of: Optional[date] = None) -> RunMetadata:
        stage = VerifyPredictionsStage(self.config, self.db_path, self._clock)
        return stage.run(as_of=as_of or self.as_of)

    def run_performance_sweep(self, now: Optional[datetime] = None) -> RunMetadata:
        stage = TrackPerformanceStage(self.config, self.tracker, self.db_path, self._clock)
        return stage.run(now=now)

    def build_scheduler(self) -> SchedulerDaemon:
        """Daily indicator refresh plus verification, weekly performance sweep."""
        cfg = self.config.tracker

        def _daily() -> None:
            self.refresh_indicators()
            self.verify_predictions()

        return SchedulerDaemon(
            [
                PeriodicTask.daily("daily-refresh", parse_hhmm(cfg.indicator_refresh_time), _daily),
                PeriodicTask.weekly(
                    "performance-sweep",
                    cfg.sweep_weekday,
                    parse_hhmm(cfg.sweep_time),
                    self.run_performance_sweep,
                ),
            ]
        )

    # ── Internal helpers ──────────────────────────────────────────────────────

    def _indicator_service(self, conn: sqlite3.Connection) -> IndicatorService:
        return IndicatorService(
            PriceBarRepository(conn), IndicatorRepository(conn), self.config.indicators
        )

    def _oracle(self, conn: sqlite3.Connection) -> PredictionOracle:
        """Cached oracle whose misses go through this connection."""
        prices = PriceBarRepository(conn)
        inner = self._fixed_oracle or StoredPredictionOracle(
            PredictionRepository(conn),
            TrendPredictionOracle(prices, self.config.optimizer, as_of=self.as_of),
            as_of=self.as_of,
        )
        if self._prediction_cache is None:
            self._prediction_cache = CachingOracle(inner, self.config.optimizer.cache_timeout_minutes)
        return self._prediction_cache.with_inner(inner)

    def _load_portfolio(self, portfolio_id: str) -> Optional[Portfolio]:
        with self.connect() as conn:
            return PortfolioRepository(conn).load_by_id(portfolio_id)

    def _load_bars(self, symbol: str, from_date: date, to_date: date) -> list[PriceBar]:
        with self.connect() as conn:
            return PriceBarRepository(conn).get_bars(symbol, from_date, to_date)

    def _latest_close(self, symbol: str, on_or_before: date) -> Optional[float]:
        with self.connect() as conn:
            bar = PriceBarRepository(conn).latest_bar(symbol, on_or_before=on_or_before)
        return bar.close if bar is not None else None
