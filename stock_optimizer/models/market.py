"""
Daily price bar model.

A ``PriceBar`` is immutable once recorded and unique per (symbol, date).
Bars arrive from an external ingestion job or the ``import-prices`` CLI
command; the optimizer only ever reads them.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator


class PriceBar(BaseModel):
    """One trading day of OHLCV data for a symbol.

    Attributes:
        symbol: Upper-case ticker, e.g. ``"AAPL"`` or ``"^GSPC"``.
        bar_date: Trading date.
        open: Opening price.
        high: Session high.
        low: Session low.
        close: Closing price; the series all indicators are computed from.
        volume: Shares traded.
        adj_close: Split/dividend adjusted close, when the source provides it.
    """

    model_config = ConfigDict(frozen=True)

    symbol: str
    bar_date: date
    open: float
    high: float
    low: float
    close: float
    volume: int = 0
    adj_close: Optional[float] = None

    @field_validator("symbol")
    @classmethod
    def normalize_symbol(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("symbol must be non-empty.")
        return v

    @field_validator("open", "high", "low", "close")
    @classmethod
    def validate_price_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"Prices must be positive, got {v}.")
        return v

    @field_validator("volume")
    @classmethod
    def validate_volume(cls, v: int) -> int:
        if v < 0:
            raise ValueError("volume must be non-negative.")
        return v

    @model_validator(mode="after")
    def validate_range(self) -> "PriceBar":
        if self.low > self.high:
            raise ValueError(f"low ({self.low}) must not exceed high ({self.high}).")
        return self
