"""
Repository for the append-only portfolio history audit trail.

It has no update or delete method.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime

from stock_optimizer.db.repositories.base import BaseRepository, parse_datetime
from stock_optimizer.models.history import HistoryRecord
from stock_optimizer.taxonomy.portfolio_enums import ChangeSource, ChangeType

logger = logging.getLogger(__name__)


class HistoryRepository(BaseRepository):
    """Append/query access to ``portfolio_history``."""

    def append(self, record: HistoryRecord) -> int:
        """Append ``record`` and return its ``history_id``."""
        self.execute(
            """
            INSERT INTO portfolio_history (
                portfolio_id, user_id, change_type, change_date,
                previous_allocations, new_allocations, previous_value,
                new_value, risk_tolerance, change_source, change_reason,
                ai_model_version
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                record.portfolio_id,
                record.user_id,
                record.change_type.value,
                record.change_date.isoformat(),
                json.dumps(record.previous_allocations, sort_keys=True),
                json.dumps(record.new_allocations, sort_keys=True),
                record.previous_value,
                record.new_value,
                record.risk_tolerance,
                record.change_source.value,
                record.change_reason,
                record.ai_model_version,
            ),
        )
        return self.last_insert_rowid()

    def list_for_portfolio(self, portfolio_id: str) -> list[HistoryRecord]:
        """All records for a portfolio, newest first."""
        rows = self.fetchall(
            """
            SELECT * FROM portfolio_history
            WHERE portfolio_id = ?
            ORDER BY change_date DESC, history_id DESC;
            """,
            (portfolio_id,),
        )
        return [_row_to_record(r) for r in rows]

    def list_by_change_type(self, portfolio_id: str, change_type: ChangeType) -> list[HistoryRecord]:
        """Records of one ``change_type`` for a portfolio, newest first."""
        rows = self.fetchall(
            """
            SELECT * FROM portfolio_history
            WHERE portfolio_id = ? AND change_type = ?
            ORDER BY change_date DESC, history_id DESC;
            """,
            (portfolio_id, change_type.value),
        )
        return [_row_to_record(r) for r in rows]

    def list_since(self, portfolio_id: str, since: datetime) -> list[HistoryRecord]:
        """Records for a portfolio changed at or after ``since``, newest first."""
        rows = self.fetchall(
            """
            SELECT * FROM portfolio_history
            WHERE portfolio_id = ? AND change_date >= ?
            ORDER BY change_date DESC, history_id DESC;
            """,
            (portfolio_id, since.isoformat()),
        )
        return [_row_to_record(r) for r in rows]


def _row_to_record(row: sqlite3.Row) -> HistoryRecord:
    return HistoryRecord(
        history_id=row["history_id"],
        portfolio_id=row["portfolio_id"],
        user_id=row["user_id"],
        change_type=ChangeType(row["change_type"]),
        change_date=parse_datetime(row["change_date"]),
        previous_allocations=json.loads(row["previous_allocations"]),
        new_allocations=json.loads(row["new_allocations"]),
        previous_value=row["previous_value"],
        new_value=row["new_value"],
        risk_tolerance=row["risk_tolerance"],
        change_source=ChangeSource(row["change_source"]),
        change_reason=row["change_reason"],
        ai_model_version=row["ai_model_version"],
    )
