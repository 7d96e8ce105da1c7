"""
Technical indicator snapshot model.

One ``IndicatorSnapshot`` is produced per input price bar. Every derived
field is ``None`` (never zero) when too little history precedes that date.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict


class IndicatorSnapshot(BaseModel):
    """Indicator values for one symbol on one date."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    snapshot_date: date
    price: float
    sma20: Optional[float] = None
    sma50: Optional[float] = None
    sma200: Optional[float] = None
    rsi14: Optional[float] = None
    macd_line: Optional[float] = None
    macd_signal: Optional[float] = None
    macd_histogram: Optional[float] = None
    bollinger_upper: Optional[float] = None
    bollinger_middle: Optional[float] = None
    bollinger_lower: Optional[float] = None

    @property
    def bollinger_position(self) -> Optional[float]:
        """Where ``price`` sits inside the band: 0 at lower, 1 at upper.

        ``None`` when the band is undefined; 0.5 for a zero-width band.
        """
        if self.bollinger_upper is None or self.bollinger_lower is None:
            return None
        width = self.bollinger_upper - self.bollinger_lower
        if width <= 0:
            return 0.5
        return (self.price - self.bollinger_lower) / width
