"""
Repository for daily price bars.

Satisfies the price-history collaborator: ``get_bars(symbol, from, to)``
returns bars in ascending date order.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import date
from typing import Optional

from stock_optimizer.db.repositories.base import BaseRepository, parse_date
from stock_optimizer.models.market import PriceBar

logger = logging.getLogger(__name__)


class PriceBarRepository(BaseRepository):
    """Read/write access to ``price_bars``."""

    def upsert_batch(self, bars: list[PriceBar]) -> int:
        """Insert bars, replacing any existing bar for the same (symbol, date).

        Returns:
            Number of bars written.
        """
        if not bars:
            return 0
        self.executemany(
            """
            INSERT INTO price_bars (
                symbol, bar_date, open, high, low, close, volume, adj_close
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (symbol, bar_date) DO UPDATE SET
                open = excluded.open,
                high = excluded.high,
                low = excluded.low,
                close = excluded.close,
                volume = excluded.volume,
                adj_close = excluded.adj_close;
            """,
            [
                (
                    b.symbol, b.bar_date.isoformat(), b.open, b.high, b.low,
                    b.close, b.volume, b.adj_close,
                )
                for b in bars
            ],
        )
        return len(bars)

    def get_bars(self, symbol: str, from_date: date, to_date: date) -> list[PriceBar]:
        """Bars for ``symbol`` with ``from_date <= bar_date <= to_date``, oldest first."""
        rows = self.fetchall(
            """
            SELECT * FROM price_bars
            WHERE symbol = ? AND bar_date BETWEEN ? AND ?
            ORDER BY bar_date;
            """,
            (symbol, from_date.isoformat(), to_date.isoformat()),
        )
        return [_row_to_bar(r) for r in rows]

    def latest_bar(self, symbol: str, on_or_before: Optional[date] = None) -> Optional[PriceBar]:
        """Most recent bar for ``symbol``, optionally capped at ``on_or_before``."""
        if on_or_before is None:
            row = self.fetchone(
                "SELECT * FROM price_bars WHERE symbol = ? ORDER BY bar_date DESC LIMIT 1;",
                (symbol,),
            )
        else:
            row = self.fetchone(
                """
                SELECT * FROM price_bars
                WHERE symbol = ? AND bar_date <= ?
                ORDER BY bar_date DESC LIMIT 1;
                """,
                (symbol, on_or_before.isoformat()),
            )
        return _row_to_bar(row) if row else None

    def latest_price(self, symbol: str, on_or_before: Optional[date] = None) -> Optional[float]:
        """Close of ``latest_bar``, or ``None``."""
        bar = self.latest_bar(symbol, on_or_before)
        return bar.close if bar else None

    def close_on(self, symbol: str, on_date: date) -> Optional[float]:
        """Close on ``on_date`` exactly, or ``None`` if there was no bar that day."""
        row = self.fetchone(
            "SELECT close FROM price_bars WHERE symbol = ? AND bar_date = ?;",
            (symbol, on_date.isoformat()),
        )
        return float(row["close"]) if row else None

    def distinct_symbols(self) -> list[str]:
        """Every symbol with at least one bar, alphabetically."""
        rows = self.fetchall("SELECT DISTINCT symbol FROM price_bars ORDER BY symbol;")
        return [r["symbol"] for r in rows]

    def count_bars(self, symbol: str) -> int:
        row = self.fetchone("SELECT COUNT(*) AS n FROM price_bars WHERE symbol = ?;", (symbol,))
        return int(row["n"]) if row else 0


def _row_to_bar(row: sqlite3.Row) -> PriceBar:
    return PriceBar(
        symbol=row["symbol"],
        bar_date=parse_date(row["bar_date"]),
        open=row["open"],
        high=row["high"],
        low=row["low"],
        close=row["close"],
        volume=row["volume"],
        adj_close=row["adj_close"],
    )
