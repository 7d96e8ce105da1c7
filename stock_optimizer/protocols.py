"""
Collaborator contracts consumed by the optimizer services.

Services depend on these structural protocols, never on the SQLite
repositories directly; the repositories in ``stock_optimizer.db`` satisfy
them as-is, and tests can pass small fakes.
"""

from __future__ import annotations

from datetime import date
from typing import Optional, Protocol, runtime_checkable

from stock_optimizer.models.history import HistoryRecord
from stock_optimizer.models.indicator import IndicatorSnapshot
from stock_optimizer.models.market import PriceBar
from stock_optimizer.models.portfolio import Portfolio
from stock_optimizer.models.prediction import Prediction


@runtime_checkable
class PriceHistorySource(Protocol):
    """Price history lookup."""

    def get_bars(self, symbol: str, from_date: date, to_date: date) -> list[PriceBar]:
        """Bars inside the inclusive window, oldest first."""
        ...

    def latest_bar(self, symbol: str, on_or_before: Optional[date] = None) -> Optional[PriceBar]:
        ...


@runtime_checkable
class PredictionOracle(Protocol):
    """Per-symbol predictor. Raises ``OptimizerError`` (PREDICTION_FAILED or
    INSUFFICIENT_DATA) when it cannot answer for a symbol."""

    def predict(self, symbol: str) -> Prediction:
        ...


@runtime_checkable
class PortfolioStore(Protocol):
    def load_by_id(self, portfolio_id: str) -> Optional[Portfolio]:
        ...

    def save(self, portfolio: Portfolio) -> Portfolio:
        ...

    def find_symbols_across_all_data(self) -> set[str]:
        ...


@runtime_checkable
class HistoryStore(Protocol):
    def append(self, record: HistoryRecord) -> int:
        ...


@runtime_checkable
class IndicatorStore(Protocol):
    def replace_range(
        self,
        symbol: str,
        from_date: date,
        to_date: date,
        snapshots: list[IndicatorSnapshot],
    ) -> int:
        ...

    def get_range(self, symbol: str, from_date: date, to_date: date) -> list[IndicatorSnapshot]:
        ...
