"""Tests for the trend, stored and caching prediction oracles."""

from __future__ import annotations

from datetime import date, timedelta

import pytest

from stock_optimizer.db.repositories.market_repo import PriceBarRepository
from stock_optimizer.db.repositories.prediction_repo import PredictionRepository
from stock_optimizer.errors import ErrorKind, OptimizerError
from stock_optimizer.prediction.oracle import (
    TREND_MODEL_VERSION,
    CachingOracle,
    StoredPredictionOracle,
    TrendPredictionOracle,
)

AS_OF = date(2024, 12, 31)


class _FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class _CountingOracle:
    def __init__(self, prediction=None, error: Exception | None = None) -> None:
        self.prediction = prediction
        self.error = error
        self.calls = 0

    def predict(self, symbol):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.prediction


# ── TrendPredictionOracle ─────────────────────────────────────────────────────

class TestTrendPredictionOracle:
    def test_linear_series_extrapolates(self, in_memory_db, make_bars):
        prices = PriceBarRepository(in_memory_db)
        prices.upsert_batch(make_bars("AAPL", [100.0 + i for i in range(60)]))

        p = TrendPredictionOracle(prices, as_of=AS_OF).predict("AAPL")

        assert p.current_price == pytest.approx(159.0)
        assert p.predicted_price == pytest.approx(159.0 + 90.0)
        assert p.confidence_score == pytest.approx(100.0)
        assert p.target_date == AS_OF + timedelta(days=90)
        assert p.model_version == TREND_MODEL_VERSION

    def test_flat_series_predicts_no_change(self, in_memory_db, make_bars):
        prices = PriceBarRepository(in_memory_db)
        prices.upsert_batch(make_bars("AAPL", [50.0] * 40))

        p = TrendPredictionOracle(prices, as_of=AS_OF).predict("AAPL")

        assert p.predicted_change_pct == pytest.approx(0.0, abs=1e-6)

    def test_steep_decline_floors_price(self, in_memory_db, make_bars):
        prices = PriceBarRepository(in_memory_db)
        prices.upsert_batch(make_bars("AAPL", [300.0 - 5 * i for i in range(40)]))

        p = TrendPredictionOracle(prices, as_of=AS_OF).predict("AAPL")

        assert p.predicted_price == pytest.approx(0.01)
        assert p.predicted_change_pct < -99.0

    def test_insufficient_bars(self, in_memory_db, make_bars):
        prices = PriceBarRepository(in_memory_db)
        prices.upsert_batch(make_bars("AAPL", [100.0] * 10))

        with pytest.raises(OptimizerError) as exc_info:
            TrendPredictionOracle(prices, as_of=AS_OF).predict("AAPL")

        assert exc_info.value.kind == ErrorKind.INSUFFICIENT_DATA
        assert exc_info.value.symbol == "AAPL"


# ── StoredPredictionOracle ────────────────────────────────────────────────────

class TestStoredPredictionOracle:
    def test_reuses_recent_prediction(self, in_memory_db, make_prediction):
        ledger = PredictionRepository(in_memory_db)
        ledger.insert(make_prediction("AAPL", 4.0))
        fallback = _CountingOracle(make_prediction("AAPL", 9.0))

        p = StoredPredictionOracle(ledger, fallback, as_of=AS_OF).predict("AAPL")

        assert p.predicted_change_pct == pytest.approx(4.0)
        assert fallback.calls == 0

    def test_generates_and_persists_when_stale(self, in_memory_db, make_prediction):
        ledger = PredictionRepository(in_memory_db)
        ledger.insert(make_prediction("AAPL", 4.0, as_of=AS_OF - timedelta(days=5)))
        fallback = _CountingOracle(make_prediction("AAPL", 9.0))
        oracle = StoredPredictionOracle(ledger, fallback, as_of=AS_OF)

        first = oracle.predict("AAPL")
        second = oracle.predict("AAPL")

        assert first.predicted_change_pct == pytest.approx(9.0)
        assert first.prediction_id is not None
        assert second.prediction_id == first.prediction_id
        assert fallback.calls == 1

    def test_foreign_errors_wrapped(self, in_memory_db):
        ledger = PredictionRepository(in_memory_db)
        oracle = StoredPredictionOracle(
            ledger, _CountingOracle(error=RuntimeError("model down")), as_of=AS_OF
        )

        with pytest.raises(OptimizerError) as exc_info:
            oracle.predict("AAPL")

        assert exc_info.value.kind == ErrorKind.PREDICTION_FAILED
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    def test_domain_errors_pass_through(self, in_memory_db):
        ledger = PredictionRepository(in_memory_db)
        err = OptimizerError.insufficient_data("AAPL", "none")
        oracle = StoredPredictionOracle(ledger, _CountingOracle(error=err), as_of=AS_OF)

        with pytest.raises(OptimizerError) as exc_info:
            oracle.predict("AAPL")

        assert exc_info.value is err


# ── CachingOracle ─────────────────────────────────────────────────────────────

class TestCachingOracle:
    def test_hit_within_ttl(self, make_prediction):
        clock = _FakeClock()
        inner = _CountingOracle(make_prediction("AAPL", 3.0))
        oracle = CachingOracle(inner, ttl_minutes=30, clock=clock)

        oracle.predict("AAPL")
        clock.now = 29 * 60
        oracle.predict("AAPL")

        assert inner.calls == 1

    def test_miss_after_ttl(self, make_prediction):
        clock = _FakeClock()
        inner = _CountingOracle(make_prediction("AAPL", 3.0))
        oracle = CachingOracle(inner, ttl_minutes=30, clock=clock)

        oracle.predict("AAPL")
        clock.now = 30 * 60 + 1
        oracle.predict("AAPL")

        assert inner.calls == 2

    def test_zero_ttl_disables_cache(self, make_prediction):
        inner = _CountingOracle(make_prediction("AAPL", 3.0))
        oracle = CachingOracle(inner, ttl_minutes=0, clock=_FakeClock())

        oracle.predict("AAPL")
        oracle.predict("AAPL")

        assert inner.calls == 2

    def test_failures_not_cached(self, make_prediction):
        inner = _CountingOracle(error=OptimizerError.prediction_failed("AAPL"))
        oracle = CachingOracle(inner, ttl_minutes=30, clock=_FakeClock())

        with pytest.raises(OptimizerError):
            oracle.predict("AAPL")
        inner.error = None
        inner.prediction = make_prediction("AAPL", 3.0)
        oracle.predict("AAPL")

        assert inner.calls == 2

    def test_invalidate(self, make_prediction):
        inner = _CountingOracle(make_prediction("AAPL", 3.0))
        oracle = CachingOracle(inner, ttl_minutes=30, clock=_FakeClock())

        oracle.predict("AAPL")
        oracle.invalidate("AAPL")
        oracle.predict("AAPL")
        oracle.invalidate()
        oracle.predict("AAPL")

        assert inner.calls == 3

    def test_with_inner_shares_cache(self, make_prediction):
        first_inner = _CountingOracle(make_prediction("AAPL", 3.0))
        second_inner = _CountingOracle(make_prediction("AAPL", 8.0))
        oracle = CachingOracle(first_inner, ttl_minutes=30, clock=_FakeClock())

        oracle.predict("AAPL")
        view = oracle.with_inner(second_inner)
        cached = view.predict("AAPL")
        second_inner.prediction = make_prediction("MSFT", 1.0)
        view.predict("MSFT")
        oracle.predict("MSFT")

        assert cached.predicted_change_pct == pytest.approx(3.0)
        assert second_inner.calls == 1
        assert first_inner.calls == 1
