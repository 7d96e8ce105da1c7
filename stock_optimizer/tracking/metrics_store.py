"""
Process-local store of tracked recommendation metrics, one entry per portfolio.

Populated when a recommendation is applied, rewritten by the weekly sweep,
pruned once an entry is older than the retention window. Nothing here is
persisted: a restart starts empty.

The store is shared between the scheduler thread running the sweep and
callers reading performance, so every access goes through one lock. Entries
are frozen models, so a reader holding an entry never sees it change.
"""

from __future__ import annotations

import threading
from typing import Optional

from stock_optimizer.models.recommendation import RecommendationMetrics


class RecommendationMetricsStore:
    """Thread-safe ``portfolio_id → RecommendationMetrics`` map."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._entries: dict[str, RecommendationMetrics] = {}

    def put(self, metrics: RecommendationMetrics) -> None:
        """Insert or overwrite the entry for ``metrics.portfolio_id``."""
        with self._lock:
            self._entries[metrics.portfolio_id] = metrics

    def get(self, portfolio_id: str) -> Optional[RecommendationMetrics]:
        with self._lock:
            return self._entries.get(portfolio_id)

    def remove(self, portfolio_id: str) -> bool:
        """Drop the entry; returns whether one existed."""
        with self._lock:
            return self._entries.pop(portfolio_id, None) is not None

    def replace_if_present(self, metrics: RecommendationMetrics) -> bool:
        """Overwrite an existing entry only.

        The sweep uses this so an entry evicted or re-registered by another
        thread mid-sweep is not resurrected with stale figures.
        """
        with self._lock:
            current = self._entries.get(metrics.portfolio_id)
            if current is None or current.application_date != metrics.application_date:
                return False
            self._entries[metrics.portfolio_id] = metrics
            return True

    def portfolio_ids(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def values(self) -> list[RecommendationMetrics]:
        with self._lock:
            return list(self._entries.values())

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, portfolio_id: object) -> bool:
        with self._lock:
            return portfolio_id in self._entries
