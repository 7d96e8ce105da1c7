"""
Portfolio history: append audit records for each kind of change and read
them back.

Records are written with ``change_date`` from the service clock and the
before/after allocations as fractions of portfolio value.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from stock_optimizer.db.repositories.history_repo import HistoryRepository
from stock_optimizer.models.history import HistoryRecord
from stock_optimizer.models.portfolio import Portfolio
from stock_optimizer.taxonomy.portfolio_enums import (
    ChangeSource,
    ChangeType,
    RecommendationType,
)
from stock_optimizer.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

AI_MODEL_VERSION = "allocation_v1"

_AI_REASONS: dict[RecommendationType, str] = {
    RecommendationType.RISK_OPTIMIZED:   "Conservative risk-optimized AI portfolio",
    RecommendationType.BALANCED:         "Balanced AI portfolio optimization",
    RecommendationType.RETURN_OPTIMIZED: "Aggressive return-optimized AI portfolio",
}


def ai_reason(recommendation_type: RecommendationType) -> str:
    """Stock change reason for an applied recommendation of this type."""
    return _AI_REASONS[recommendation_type]


class HistoryService:
    """Writes and queries the append-only portfolio history."""

    def __init__(
        self,
        repo: HistoryRepository,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._repo = repo
        self._clock = clock

    # ── Recording ─────────────────────────────────────────────────────────────

    def record_creation(self, portfolio: Portfolio) -> HistoryRecord:
        return self._append(
            None, portfolio, ChangeType.CREATION, ChangeSource.USER, "Portfolio created"
        )

    def record_ai_recommendation(
        self,
        previous: Portfolio,
        updated: Portfolio,
        risk_tolerance: float,
        recommendation_type: RecommendationType,
        changed_at: Optional[datetime] = None,
    ) -> HistoryRecord:
        """Record an applied recommendation (AI_RECOMMENDATION / AI)."""
        return self._append(
            previous,
            updated,
            ChangeType.AI_RECOMMENDATION,
            ChangeSource.AI,
            ai_reason(recommendation_type),
            risk_tolerance=risk_tolerance,
            model_version=AI_MODEL_VERSION,
            changed_at=changed_at,
        )

    def record_user_update(
        self,
        previous: Portfolio,
        updated: Portfolio,
        reason: str = "Manual portfolio update",
    ) -> HistoryRecord:
        return self._append(previous, updated, ChangeType.UPDATE, ChangeSource.USER, reason)

    def record_scheduled_rebalance(
        self,
        previous: Portfolio,
        updated: Portfolio,
        reason: str = "Scheduled rebalance",
    ) -> HistoryRecord:
        return self._append(
            previous, updated, ChangeType.REBALANCE, ChangeSource.SCHEDULED, reason
        )

    # ── Queries ───────────────────────────────────────────────────────────────

    def get_portfolio_history(self, portfolio_id: str) -> list[HistoryRecord]:
        """Every record for the portfolio, newest first."""
        return self._repo.list_for_portfolio(portfolio_id)

    def get_ai_recommendation_history(self, portfolio_id: str) -> list[HistoryRecord]:
        return self._repo.list_by_change_type(portfolio_id, ChangeType.AI_RECOMMENDATION)

    def get_recent_changes(self, portfolio_id: str, days: int = 30) -> list[HistoryRecord]:
        """Records from the last ``days`` days, newest first."""
        if days < 0:
            raise ValueError(f"days must be >= 0, got {days}.")
        return self._repo.list_since(portfolio_id, self._clock() - timedelta(days=days))

    # ── Internal helpers ──────────────────────────────────────────────────────

    def _append(
        self,
        previous: Optional[Portfolio],
        updated: Portfolio,
        change_type: ChangeType,
        source: ChangeSource,
        reason: str,
        risk_tolerance: Optional[float] = None,
        model_version: Optional[str] = None,
        changed_at: Optional[datetime] = None,
    ) -> HistoryRecord:
        record = HistoryRecord(
            portfolio_id=updated.portfolio_id,
            user_id=updated.user_id,
            change_type=change_type,
            change_date=changed_at or self._clock(),
            previous_allocations=previous.allocations() if previous else {},
            new_allocations=updated.allocations(),
            previous_value=previous.total_value if previous else None,
            new_value=updated.total_value,
            risk_tolerance=risk_tolerance,
            change_source=source,
            change_reason=reason,
            ai_model_version=model_version,
        )
        history_id = self._repo.append(record)
        logger.debug(
            "History %s recorded for %s (id=%d)", change_type, updated.portfolio_id, history_id,
            extra={"portfolio_id": updated.portfolio_id},
        )
        return record.model_copy(update={"history_id": history_id})
