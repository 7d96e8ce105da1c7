"""
Portfolio history audit record.

History is append-only: records are written once and never updated. The
allocation maps are fractions of portfolio value (symbol → 0..1).
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

from stock_optimizer.taxonomy.portfolio_enums import ChangeSource, ChangeType


class HistoryRecord(BaseModel):
    """One change to a portfolio's allocation."""

    model_config = ConfigDict(frozen=True)

    history_id: Optional[int] = None
    portfolio_id: str
    user_id: str
    change_type: ChangeType
    change_date: datetime
    previous_allocations: dict[str, float] = {}
    new_allocations: dict[str, float] = {}
    previous_value: Optional[float] = None
    new_value: Optional[float] = None
    risk_tolerance: Optional[float] = None
    change_source: ChangeSource
    change_reason: Optional[str] = None
    ai_model_version: Optional[str] = None

    @field_validator("risk_tolerance")
    @classmethod
    def validate_risk(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and not 0.0 <= v <= 1.0:
            raise ValueError(f"risk_tolerance must be in [0, 1], got {v}.")
        return v

    @property
    def value_change(self) -> Optional[float]:
        if self.previous_value is None or self.new_value is None:
            return None
        return self.new_value - self.previous_value
