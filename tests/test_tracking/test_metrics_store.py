"""Tests for the process-local recommendation metrics store."""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone

from stock_optimizer.models.recommendation import RecommendationMetrics
from stock_optimizer.tracking.metrics_store import RecommendationMetricsStore

APPLIED = datetime(2024, 6, 1, tzinfo=timezone.utc)


def _metrics(portfolio_id: str = "p-1", applied: datetime = APPLIED, value: float = 1000.0):
    return RecommendationMetrics(
        portfolio_id=portfolio_id,
        application_date=applied,
        allocations={"AAPL": 1.0},
        initial_value=1000.0,
        latest_value=value,
    )


class TestRecommendationMetricsStore:
    def test_put_get_remove(self):
        store = RecommendationMetricsStore()
        store.put(_metrics())

        assert "p-1" in store
        assert len(store) == 1
        assert store.get("p-1").latest_value == 1000.0
        assert store.remove("p-1") is True
        assert store.remove("p-1") is False
        assert store.get("p-1") is None

    def test_put_overwrites(self):
        store = RecommendationMetricsStore()
        store.put(_metrics(value=1000.0))
        store.put(_metrics(value=1200.0))
        assert store.get("p-1").latest_value == 1200.0
        assert len(store) == 1

    def test_replace_if_present(self):
        store = RecommendationMetricsStore()
        store.put(_metrics())

        assert store.replace_if_present(_metrics(value=1100.0)) is True
        assert store.get("p-1").latest_value == 1100.0

    def test_replace_skips_removed_entry(self):
        store = RecommendationMetricsStore()
        assert store.replace_if_present(_metrics()) is False
        assert store.get("p-1") is None

    def test_replace_skips_reregistered_entry(self):
        store = RecommendationMetricsStore()
        store.put(_metrics(applied=APPLIED + timedelta(days=3)))

        assert store.replace_if_present(_metrics(applied=APPLIED, value=5.0)) is False
        assert store.get("p-1").application_date == APPLIED + timedelta(days=3)

    def test_snapshots_are_copies(self):
        store = RecommendationMetricsStore()
        store.put(_metrics("p-1"))
        ids = store.portfolio_ids()
        values = store.values()
        store.put(_metrics("p-2"))

        assert ids == ["p-1"]
        assert len(values) == 1

    def test_clear(self):
        store = RecommendationMetricsStore()
        store.put(_metrics("p-1"))
        store.put(_metrics("p-2"))
        store.clear()
        assert len(store) == 0

    def test_concurrent_writers(self):
        store = RecommendationMetricsStore()

        def writer(prefix: str) -> None:
            for i in range(200):
                store.put(_metrics(f"{prefix}-{i}"))

        threads = [threading.Thread(target=writer, args=(f"t{n}",)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(store) == 800
