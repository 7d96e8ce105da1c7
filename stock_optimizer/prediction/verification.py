"""
Prediction verification: fill in realized outcomes once a target date passes.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from stock_optimizer.db.repositories.prediction_repo import PredictionRepository
from stock_optimizer.protocols import PriceHistorySource
from stock_optimizer.utils.time_utils import today_utc

logger = logging.getLogger(__name__)


def verify_predictions(
    predictions: PredictionRepository,
    prices: PriceHistorySource,
    as_of: Optional[date] = None,
) -> int:
    """Verify every unverified prediction whose target date is due.

    The realized price is the last close on or before ``target_date``.
    Predictions with no such bar after their ``prediction_date`` stay
    unverified and are retried on the next run.

    Returns:
        Number of predictions verified.
    """
    as_of = as_of or today_utc()
    verified = 0
    for p in predictions.get_unverified_due(as_of):
        bar = prices.latest_bar(p.symbol, on_or_before=p.target_date)
        if bar is None or bar.bar_date <= p.prediction_date:
            logger.debug("No realized close yet for %s (target %s)", p.symbol, p.target_date)
            continue
        actual_change = (bar.close - p.current_price) / p.current_price * 100.0
        predictions.verify(p.prediction_id, bar.close, actual_change)
        verified += 1

    logger.info("Verified %d predictions as of %s", verified, as_of)
    return verified
