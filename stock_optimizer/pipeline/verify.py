"""
Prediction verification stage: record realized prices for predictions
whose target date has passed.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from stock_optimizer.db.repositories.market_repo import PriceBarRepository
from stock_optimizer.db.repositories.prediction_repo import PredictionRepository
from stock_optimizer.models.meta import RunMetadata
from stock_optimizer.pipeline.base import PipelineStage
from stock_optimizer.prediction.verification import verify_predictions


class VerifyPredictionsStage(PipelineStage):
    """Verify every due, unverified prediction."""

    stage_name = "verify_predictions"

    def _execute(self, run: RunMetadata, as_of: Optional[date] = None, **kwargs) -> int:
        with self.connect() as conn:
            return verify_predictions(
                PredictionRepository(conn), PriceBarRepository(conn), as_of=as_of
            )
