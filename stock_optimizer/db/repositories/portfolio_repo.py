"""
Repository for portfolios and their holdings.

Satisfies the portfolio-store collaborator (``load_by_id``, ``save``,
``find_symbols_across_all_data``). ``save`` rewrites the portfolio row and
replaces its holdings inside one savepoint; holding order is preserved via
the ``position`` column.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Optional

from stock_optimizer.db.repositories.base import (
    BaseRepository,
    parse_date,
    parse_datetime,
    to_iso,
)
from stock_optimizer.models.portfolio import Holding, Portfolio
from stock_optimizer.taxonomy.portfolio_enums import OptimizationStatus, RecommendationType

logger = logging.getLogger(__name__)


class PortfolioRepository(BaseRepository):
    """Read/write access to ``portfolios`` and ``portfolio_holdings``."""

    def load_by_id(self, portfolio_id: str) -> Optional[Portfolio]:
        """Load a portfolio with its holdings, or ``None`` if it does not exist."""
        row = self.fetchone("SELECT * FROM portfolios WHERE portfolio_id = ?;", (portfolio_id,))
        if row is None:
            return None
        return _row_to_portfolio(row, self._load_holdings(portfolio_id))

    def save(self, portfolio: Portfolio) -> Portfolio:
        """Insert or update ``portfolio`` and replace its holdings atomically.

        Returns:
            The portfolio as passed in.
        """
        with self.savepoint("save_portfolio"):
            self.execute(
                """
                INSERT INTO portfolios (
                    portfolio_id, user_id, name, total_value, total_return,
                    total_return_pct, risk_score, optimization_status,
                    last_optimized_at, has_ai_recommendations,
                    last_ai_recommendation_date, ai_recommendation_type
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (portfolio_id) DO UPDATE SET
                    user_id = excluded.user_id,
                    name = excluded.name,
                    total_value = excluded.total_value,
                    total_return = excluded.total_return,
                    total_return_pct = excluded.total_return_pct,
                    risk_score = excluded.risk_score,
                    optimization_status = excluded.optimization_status,
                    last_optimized_at = excluded.last_optimized_at,
                    has_ai_recommendations = excluded.has_ai_recommendations,
                    last_ai_recommendation_date = excluded.last_ai_recommendation_date,
                    ai_recommendation_type = excluded.ai_recommendation_type,
                    updated_at = strftime('%Y-%m-%dT%H:%M:%SZ', 'now');
                """,
                (
                    portfolio.portfolio_id,
                    portfolio.user_id,
                    portfolio.name,
                    portfolio.total_value,
                    portfolio.total_return,
                    portfolio.total_return_pct,
                    portfolio.risk_score,
                    portfolio.optimization_status.value,
                    to_iso(portfolio.last_optimized_at),
                    int(portfolio.has_ai_recommendations),
                    to_iso(portfolio.last_ai_recommendation_date),
                    portfolio.ai_recommendation_type.value
                    if portfolio.ai_recommendation_type else None,
                ),
            )
            self.execute(
                "DELETE FROM portfolio_holdings WHERE portfolio_id = ?;",
                (portfolio.portfolio_id,),
            )
            self.executemany(
                """
                INSERT INTO portfolio_holdings (
                    portfolio_id, position, symbol, company_name, shares,
                    entry_price, entry_date, current_price, weight,
                    return_value, return_pct
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
                """,
                [
                    (
                        portfolio.portfolio_id, pos, h.symbol, h.company_name,
                        h.shares, h.entry_price, to_iso(h.entry_date),
                        h.current_price, h.weight, h.return_value, h.return_pct,
                    )
                    for pos, h in enumerate(portfolio.holdings)
                ],
            )
        return portfolio

    def delete(self, portfolio_id: str) -> bool:
        """Delete a portfolio (holdings cascade). Returns whether a row existed."""
        cursor = self.execute("DELETE FROM portfolios WHERE portfolio_id = ?;", (portfolio_id,))
        return cursor.rowcount > 0

    def find_all(self) -> list[Portfolio]:
        """Every portfolio, ordered by id."""
        rows = self.fetchall("SELECT * FROM portfolios ORDER BY portfolio_id;")
        return [_row_to_portfolio(r, self._load_holdings(r["portfolio_id"])) for r in rows]

    def find_stale(self, optimized_before: datetime) -> list[Portfolio]:
        """Portfolios never optimized, or last optimized before ``optimized_before``."""
        rows = self.fetchall(
            """
            SELECT * FROM portfolios
            WHERE last_optimized_at IS NULL OR last_optimized_at < ?
            ORDER BY portfolio_id;
            """,
            (optimized_before.isoformat(),),
        )
        return [_row_to_portfolio(r, self._load_holdings(r["portfolio_id"])) for r in rows]

    def find_symbols_across_all_data(self) -> set[str]:
        """Every tradable symbol known from holdings or price history.

        Index symbols (``^``-prefixed, e.g. the benchmark) are excluded.
        """
        rows = self.fetchall(
            """
            SELECT symbol FROM portfolio_holdings
            UNION
            SELECT symbol FROM price_bars;
            """
        )
        return {r["symbol"] for r in rows if not r["symbol"].startswith("^")}

    def _load_holdings(self, portfolio_id: str) -> list[Holding]:
        rows = self.fetchall(
            "SELECT * FROM portfolio_holdings WHERE portfolio_id = ? ORDER BY position;",
            (portfolio_id,),
        )
        return [_row_to_holding(r) for r in rows]


def _row_to_holding(row: sqlite3.Row) -> Holding:
    return Holding(
        symbol=row["symbol"],
        company_name=row["company_name"],
        shares=row["shares"],
        entry_price=row["entry_price"],
        entry_date=parse_date(row["entry_date"]),
        current_price=row["current_price"],
        weight=row["weight"],
        return_value=row["return_value"],
        return_pct=row["return_pct"],
    )


def _row_to_portfolio(row: sqlite3.Row, holdings: list[Holding]) -> Portfolio:
    rec_type = row["ai_recommendation_type"]
    return Portfolio(
        portfolio_id=row["portfolio_id"],
        user_id=row["user_id"],
        name=row["name"],
        holdings=holdings,
        total_value=row["total_value"],
        total_return=row["total_return"],
        total_return_pct=row["total_return_pct"],
        risk_score=row["risk_score"],
        optimization_status=OptimizationStatus(row["optimization_status"]),
        last_optimized_at=parse_datetime(row["last_optimized_at"]),
        has_ai_recommendations=bool(row["has_ai_recommendations"]),
        last_ai_recommendation_date=parse_datetime(row["last_ai_recommendation_date"]),
        ai_recommendation_type=RecommendationType(rec_type) if rec_type else None,
    )
