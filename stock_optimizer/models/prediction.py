"""
Per-symbol return prediction model.

Predictions come from a ``PredictionOracle``. ``confidence_score`` is on a
0–100 scale. The ``actual_*`` fields stay empty until verification compares
the prediction against the realized close on ``target_date``.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator


class Prediction(BaseModel):
    """A predicted price move for one symbol.

    Attributes:
        prediction_id: DB PK; ``None`` before insertion.
        symbol: Ticker the prediction is for.
        prediction_date: Date the prediction was made.
        target_date: Date the predicted price refers to.
        current_price: Close on ``prediction_date``.
        predicted_price: Expected close on ``target_date``.
        predicted_change_pct: ``(predicted - current) / current * 100``.
        confidence_score: Oracle confidence, 0–100.
        actual_price: Realized close on ``target_date`` once verified.
        actual_change_pct: Realized percentage move once verified.
        verified: Whether the actual fields have been filled in.
        model_version: Identifier of the oracle that produced it.
    """

    model_config = ConfigDict(frozen=True)

    prediction_id: Optional[int] = None
    symbol: str
    prediction_date: date
    target_date: date
    current_price: float
    predicted_price: float
    predicted_change_pct: float
    confidence_score: float
    actual_price: Optional[float] = None
    actual_change_pct: Optional[float] = None
    verified: bool = False
    model_version: str = "trend_v1"

    @field_validator("confidence_score")
    @classmethod
    def validate_confidence(cls, v: float) -> float:
        if not 0.0 <= v <= 100.0:
            raise ValueError(f"confidence_score must be in [0, 100], got {v}.")
        return v

    @model_validator(mode="after")
    def validate_dates(self) -> "Prediction":
        if self.target_date < self.prediction_date:
            raise ValueError("target_date must not precede prediction_date.")
        return self

    @property
    def confidence_fraction(self) -> float:
        """``confidence_score`` rescaled to [0, 1]."""
        return self.confidence_score / 100.0
