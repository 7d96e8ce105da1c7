"""
Repository for stored oracle predictions and their later verification.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import date
from typing import Optional

from stock_optimizer.db.repositories.base import BaseRepository, parse_date
from stock_optimizer.models.prediction import Prediction

logger = logging.getLogger(__name__)


class PredictionRepository(BaseRepository):
    """Read/write access to ``stock_predictions``."""

    def insert(self, prediction: Prediction) -> int:
        """Insert a prediction and return its ``prediction_id``."""
        self.execute(
            """
            INSERT INTO stock_predictions (
                symbol, prediction_date, target_date, current_price,
                predicted_price, predicted_change_pct, confidence_score,
                actual_price, actual_change_pct, verified, model_version
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                prediction.symbol,
                prediction.prediction_date.isoformat(),
                prediction.target_date.isoformat(),
                prediction.current_price,
                prediction.predicted_price,
                prediction.predicted_change_pct,
                prediction.confidence_score,
                prediction.actual_price,
                prediction.actual_change_pct,
                int(prediction.verified),
                prediction.model_version,
            ),
        )
        return self.last_insert_rowid()

    def latest_for_symbol(
        self,
        symbol: str,
        made_on_or_after: Optional[date] = None,
    ) -> Optional[Prediction]:
        """Most recent prediction for ``symbol``.

        Args:
            symbol: Ticker.
            made_on_or_after: Ignore predictions made before this date.
        """
        floor = (made_on_or_after or date.min).isoformat()
        row = self.fetchone(
            """
            SELECT * FROM stock_predictions
            WHERE symbol = ? AND prediction_date >= ?
            ORDER BY prediction_date DESC, prediction_id DESC
            LIMIT 1;
            """,
            (symbol, floor),
        )
        return _row_to_prediction(row) if row else None

    def get_unverified_due(self, as_of: date) -> list[Prediction]:
        """Unverified predictions whose ``target_date`` is on or before ``as_of``."""
        rows = self.fetchall(
            """
            SELECT * FROM stock_predictions
            WHERE verified = 0 AND target_date <= ?
            ORDER BY target_date, prediction_id;
            """,
            (as_of.isoformat(),),
        )
        return [_row_to_prediction(r) for r in rows]

    def verify(self, prediction_id: int, actual_price: float, actual_change_pct: float) -> None:
        """Record the realized outcome for one prediction."""
        self.execute(
            """
            UPDATE stock_predictions
            SET actual_price = ?, actual_change_pct = ?, verified = 1
            WHERE prediction_id = ?;
            """,
            (actual_price, actual_change_pct, prediction_id),
        )


def _row_to_prediction(row: sqlite3.Row) -> Prediction:
    return Prediction(
        prediction_id=row["prediction_id"],
        symbol=row["symbol"],
        prediction_date=parse_date(row["prediction_date"]),
        target_date=parse_date(row["target_date"]),
        current_price=row["current_price"],
        predicted_price=row["predicted_price"],
        predicted_change_pct=row["predicted_change_pct"],
        confidence_score=row["confidence_score"],
        actual_price=row["actual_price"],
        actual_change_pct=row["actual_change_pct"],
        verified=bool(row["verified"]),
        model_version=row["model_version"],
    )
