"""
Repository for computed technical indicator snapshots.

Snapshots are never updated in place: a recompute deletes the date range
first (``delete_range``) and inserts the fresh set (``insert_batch``).
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import date
from typing import Optional

from stock_optimizer.db.repositories.base import BaseRepository, parse_date
from stock_optimizer.models.indicator import IndicatorSnapshot

logger = logging.getLogger(__name__)

_COLUMNS = (
    "symbol, indicator_date, price, sma20, sma50, sma200, rsi14, "
    "macd_line, macd_signal, macd_histogram, "
    "bollinger_upper, bollinger_middle, bollinger_lower"
)


class IndicatorRepository(BaseRepository):
    """Read/write access to ``technical_indicators``."""

    def delete_range(self, symbol: str, from_date: date, to_date: date) -> int:
        """Delete snapshots for ``symbol`` inside ``[from_date, to_date]``.

        Returns:
            Number of rows deleted.
        """
        cursor = self.execute(
            """
            DELETE FROM technical_indicators
            WHERE symbol = ? AND indicator_date BETWEEN ? AND ?;
            """,
            (symbol, from_date.isoformat(), to_date.isoformat()),
        )
        return cursor.rowcount

    def insert_batch(self, snapshots: list[IndicatorSnapshot]) -> int:
        """Insert snapshots; callers clear the range first.

        Returns:
            Number of rows inserted.
        """
        if not snapshots:
            return 0
        self.executemany(
            f"INSERT INTO technical_indicators ({_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);",
            [
                (
                    s.symbol, s.snapshot_date.isoformat(), s.price,
                    s.sma20, s.sma50, s.sma200, s.rsi14,
                    s.macd_line, s.macd_signal, s.macd_histogram,
                    s.bollinger_upper, s.bollinger_middle, s.bollinger_lower,
                )
                for s in snapshots
            ],
        )
        return len(snapshots)

    def replace_range(
        self,
        symbol: str,
        from_date: date,
        to_date: date,
        snapshots: list[IndicatorSnapshot],
    ) -> int:
        """Atomically swap the stored range for ``snapshots``."""
        with self.savepoint("replace_indicators"):
            deleted = self.delete_range(symbol, from_date, to_date)
            inserted = self.insert_batch(snapshots)
        logger.debug(
            "Indicators %s [%s..%s]: deleted=%d inserted=%d",
            symbol, from_date, to_date, deleted, inserted,
        )
        return inserted

    def get_range(self, symbol: str, from_date: date, to_date: date) -> list[IndicatorSnapshot]:
        """Snapshots for ``symbol`` inside the range, oldest first."""
        rows = self.fetchall(
            f"""
            SELECT {_COLUMNS} FROM technical_indicators
            WHERE symbol = ? AND indicator_date BETWEEN ? AND ?
            ORDER BY indicator_date;
            """,
            (symbol, from_date.isoformat(), to_date.isoformat()),
        )
        return [_row_to_snapshot(r) for r in rows]

    def latest(self, symbol: str, on_or_before: Optional[date] = None) -> Optional[IndicatorSnapshot]:
        """Most recent snapshot for ``symbol``, optionally capped at a date."""
        cap = (on_or_before or date.max).isoformat()
        row = self.fetchone(
            f"""
            SELECT {_COLUMNS} FROM technical_indicators
            WHERE symbol = ? AND indicator_date <= ?
            ORDER BY indicator_date DESC LIMIT 1;
            """,
            (symbol, cap),
        )
        return _row_to_snapshot(row) if row else None


def _row_to_snapshot(row: sqlite3.Row) -> IndicatorSnapshot:
    return IndicatorSnapshot(
        symbol=row["symbol"],
        snapshot_date=parse_date(row["indicator_date"]),
        price=row["price"],
        sma20=row["sma20"],
        sma50=row["sma50"],
        sma200=row["sma200"],
        rsi14=row["rsi14"],
        macd_line=row["macd_line"],
        macd_signal=row["macd_signal"],
        macd_histogram=row["macd_histogram"],
        bollinger_upper=row["bollinger_upper"],
        bollinger_middle=row["bollinger_middle"],
        bollinger_lower=row["bollinger_lower"],
    )
