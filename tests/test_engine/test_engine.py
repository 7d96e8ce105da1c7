"""End-to-end tests for OptimizationEngine on a file-backed database."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from stock_optimizer.db.connection import get_connection
from stock_optimizer.errors import ErrorKind, OptimizerError
from stock_optimizer.engine import OptimizationEngine
from stock_optimizer.taxonomy.portfolio_enums import (
    ChangeType,
    OptimizationStatus,
    RecommendationType,
    TradeAction,
)

AS_OF = date(2024, 12, 31)
NOW = datetime(2024, 12, 31, 18, 0, tzinfo=timezone.utc)

AAPL_CLOSES = [150.0 + i * 0.2 + (i % 4) for i in range(250)]


@pytest.fixture
def config(app_config, loose_optimizer_config):
    return app_config.model_copy(update={"optimizer": loose_optimizer_config})


@pytest.fixture
def seeded_engine(config, make_bars, make_portfolio):
    def _build(oracle=None, **kwargs):
        engine = OptimizationEngine(
            config,
            oracle=oracle,
            as_of=AS_OF,
            clock=lambda: NOW,
            **kwargs,
        )
        engine.import_prices(make_bars("AAPL", AAPL_CLOSES))
        engine.create_portfolio(make_portfolio([("AAPL", 10, AAPL_CLOSES[-1])]))
        return engine

    return _build


class TestSinglePositionScenario:
    def test_generate_apply_track(self, seeded_engine, scripted_oracle, make_prediction):
        engine = seeded_engine(scripted_oracle({"AAPL": make_prediction("AAPL", 10.0)}))

        rec = engine.generate_upgrade("p-1", risk_tolerance=0.5)

        assert rec.recommended_allocations == pytest.approx({"AAPL": 1.0})
        assert [a.action for a in rec.recommended_actions] == [TradeAction.HOLD]
        assert engine.get_portfolio("p-1").optimization_status == OptimizationStatus.OPTIMIZED

        applied = engine.apply_upgrade("p-1", rec.recommended_allocations, risk_tolerance=0.5)

        assert applied.holding("AAPL").shares == 10
        assert applied.optimization_status == OptimizationStatus.UPGRADED_WITH_AI
        assert applied.ai_recommendation_type == RecommendationType.BALANCED

        history = engine.get_portfolio_history("p-1")
        assert [r.change_type for r in history] == [ChangeType.AI_RECOMMENDATION, ChangeType.CREATION]
        assert len(engine.get_ai_recommendation_history("p-1")) == 1

        report = engine.get_performance("p-1")
        assert report.found is True
        assert report.initial_value == pytest.approx(applied.total_value)
        assert report.benchmark_return == 0.0

        stats = engine.get_aggregate_stats()
        assert stats.recommendation_count == 1

    def test_apply_is_idempotent(self, seeded_engine, scripted_oracle, make_prediction):
        engine = seeded_engine(scripted_oracle({"AAPL": make_prediction("AAPL", 10.0)}))

        first = engine.apply_upgrade("p-1", {"AAPL": 1.0})
        second = engine.apply_upgrade("p-1", {"AAPL": 1.0})

        assert first.holding("AAPL").shares == second.holding("AAPL").shares == 10
        assert len(engine.get_ai_recommendation_history("p-1")) == 2
        assert engine.get_aggregate_stats().recommendation_count == 1

    def test_failed_apply_changes_nothing(self, seeded_engine, scripted_oracle):
        engine = seeded_engine(scripted_oracle({}))

        with pytest.raises(OptimizerError) as exc_info:
            engine.apply_upgrade("p-1", {"AAPL": 0.5, "ZZZ": 0.5})

        assert exc_info.value.kind == ErrorKind.INSUFFICIENT_DATA
        assert engine.get_portfolio("p-1").optimization_status == OptimizationStatus.NOT_OPTIMIZED
        assert engine.get_ai_recommendation_history("p-1") == []
        assert engine.get_performance("p-1").found is False


class TestEngineOperations:
    def test_create_portfolio_twice_rejected(self, seeded_engine, make_portfolio):
        engine = seeded_engine()
        with pytest.raises(ValueError):
            engine.create_portfolio(make_portfolio([("AAPL", 1, 1.0)]))

    def test_generate_not_found(self, seeded_engine):
        engine = seeded_engine()
        with pytest.raises(OptimizerError) as exc_info:
            engine.generate_upgrade("missing")
        assert exc_info.value.kind == ErrorKind.NOT_FOUND

    def test_default_oracle_chain_stores_prediction(self, seeded_engine, config):
        engine = seeded_engine()

        rec = engine.generate_upgrade("p-1")
        engine.generate_upgrade("p-1")

        assert rec.excluded_symbols == {}
        with get_connection(config.database.db_path) as conn:
            stored = conn.execute("SELECT COUNT(*) FROM stock_predictions;").fetchone()[0]
        assert stored == 1

    def test_compute_indicators(self, seeded_engine):
        engine = seeded_engine()
        snaps = engine.compute_indicators("AAPL", AS_OF - timedelta(days=9), AS_OF)
        assert len(snaps) == 10
        assert snaps[-1].sma200 is not None

    def test_recent_changes(self, seeded_engine):
        engine = seeded_engine()
        assert [r.change_type for r in engine.get_recent_changes("p-1", days=1)] == [ChangeType.CREATION]

    def test_scheduled_jobs(self, seeded_engine, scripted_oracle, make_prediction):
        engine = seeded_engine(scripted_oracle({"AAPL": make_prediction("AAPL", 10.0)}))
        engine.apply_upgrade("p-1", {"AAPL": 1.0})

        refresh = engine.refresh_indicators()
        verify = engine.verify_predictions()
        sweep = engine.run_performance_sweep(now=NOW + timedelta(days=7))

        assert refresh.status == "success"
        assert refresh.rows_processed == len(AAPL_CLOSES)
        assert verify.status == "success"
        assert sweep.rows_processed == 1
        assert engine.get_performance("p-1").days_since_application == 7

    def test_build_scheduler(self, seeded_engine):
        daemon = seeded_engine().build_scheduler()
        assert [t.name for t in daemon.tasks] == ["daily-refresh", "performance-sweep"]

    def test_shared_metrics_store(self, seeded_engine, config, scripted_oracle, make_prediction):
        engine = seeded_engine(scripted_oracle({"AAPL": make_prediction("AAPL", 10.0)}))
        engine.apply_upgrade("p-1", {"AAPL": 1.0})

        other = OptimizationEngine(config, metrics_store=engine.metrics, clock=lambda: NOW)

        assert other.get_performance("p-1").found is True


class TestMarkToMarket:
    def test_apply_sizes_against_latest_close(self, config, make_bars, make_portfolio, scripted_oracle):
        engine = OptimizationEngine(config, oracle=scripted_oracle({}), as_of=AS_OF, clock=lambda: NOW)
        engine.import_prices(make_bars("AAPL", AAPL_CLOSES))
        engine.create_portfolio(make_portfolio([("AAPL", 10, 150.0)]))

        applied = engine.apply_upgrade("p-1", {"AAPL": 1.0})

        assert applied.holding("AAPL").shares == 10
        assert applied.holding("AAPL").current_price == pytest.approx(AAPL_CLOSES[-1])
        assert applied.total_value == pytest.approx(10 * AAPL_CLOSES[-1])

    def test_sweep_reflects_price_move(self, seeded_engine, scripted_oracle, make_bars):
        engine = seeded_engine(scripted_oracle({}))
        engine.apply_upgrade("p-1", {"AAPL": 1.0})
        later = AS_OF + timedelta(days=30)
        engine.import_prices(make_bars("AAPL", [AAPL_CLOSES[-1] * 1.2], end=later))

        engine.run_performance_sweep(now=NOW + timedelta(days=30))
        report = engine.get_performance("p-1")

        assert report.current_value == pytest.approx(10 * AAPL_CLOSES[-1] * 1.2)
        assert report.percentage_change == pytest.approx(20.0)


class TestDefaultBounds:
    def test_single_holding_is_infeasible(self, app_config, make_bars, make_portfolio,
                                          scripted_oracle, make_prediction):
        engine = OptimizationEngine(
            app_config,
            oracle=scripted_oracle({"AAPL": make_prediction("AAPL", 10.0)}),
            as_of=AS_OF,
            clock=lambda: NOW,
        )
        engine.import_prices(make_bars("AAPL", AAPL_CLOSES))
        engine.create_portfolio(make_portfolio([("AAPL", 10, AAPL_CLOSES[-1])]))

        with pytest.raises(OptimizerError) as exc_info:
            engine.generate_upgrade("p-1", risk_tolerance=0.5)

        assert exc_info.value.kind == ErrorKind.INVALID_ALLOCATION
        assert exc_info.value.portfolio_id == "p-1"
