"""
Shared pytest fixtures for the stock optimizer test suite.

Provides:
  - ``in_memory_db``: A fresh in-memory SQLite connection with the full
    schema applied. Created anew for each test that requests it.
  - ``db_file`` / ``app_config``: A schema-initialised database file under
    ``tmp_path`` and an ``AppConfig`` pointing at it, for code that opens
    its own connections (pipeline stages, the engine, the CLI).
  - Factories for bars, predictions, portfolios and a scripted oracle.
"""

from __future__ import annotations

import sqlite3
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Generator, Optional, Sequence

import pytest

from stock_optimizer.config import AppConfig, DatabaseConfig, OptimizerConfig
from stock_optimizer.db.connection import get_connection
from stock_optimizer.db.schema import apply_schema
from stock_optimizer.errors import OptimizerError
from stock_optimizer.models.market import PriceBar
from stock_optimizer.models.portfolio import Holding, Portfolio
from stock_optimizer.models.prediction import Prediction

AS_OF = date(2024, 12, 31)
NOW = datetime(2024, 12, 31, 18, 0, tzinfo=timezone.utc)


# ── Database fixtures ─────────────────────────────────────────────────────────

@pytest.fixture
def in_memory_db() -> Generator[sqlite3.Connection, None, None]:
    """Yield a fresh in-memory SQLite connection with the full schema applied.

    Foreign key enforcement is ON. Connection is closed after the test.
    """
    with get_connection(":memory:") as conn:
        apply_schema(conn)
        yield conn


@pytest.fixture
def db_file(tmp_path) -> str:
    """Path of a file database with the schema applied."""
    path = str(tmp_path / "test.db")
    with get_connection(path) as conn:
        apply_schema(conn)
    return path


@pytest.fixture
def app_config(db_file) -> AppConfig:
    """Default config bound to ``db_file``."""
    return AppConfig(database=DatabaseConfig(db_path=db_file))


# ── Domain object factories ───────────────────────────────────────────────────

def _bars(symbol: str, closes: Sequence[float], end: date = AS_OF) -> list[PriceBar]:
    start = end - timedelta(days=len(closes) - 1)
    return [
        PriceBar(
            symbol=symbol,
            bar_date=start + timedelta(days=i),
            open=c,
            high=c * 1.01,
            low=c * 0.99,
            close=c,
            volume=1_000_000,
        )
        for i, c in enumerate(closes)
    ]


@pytest.fixture
def make_bars() -> Callable[..., list[PriceBar]]:
    """``make_bars(symbol, closes, end=AS_OF)``: one bar per calendar day ending at ``end``."""
    return _bars


def _prediction(
    symbol: str,
    change_pct: float,
    confidence: float = 80.0,
    current_price: float = 100.0,
    as_of: date = AS_OF,
    horizon: int = 90,
) -> Prediction:
    return Prediction(
        symbol=symbol,
        prediction_date=as_of,
        target_date=as_of + timedelta(days=horizon),
        current_price=current_price,
        predicted_price=current_price * (1 + change_pct / 100.0),
        predicted_change_pct=change_pct,
        confidence_score=confidence,
    )


@pytest.fixture
def make_prediction() -> Callable[..., Prediction]:
    """``make_prediction(symbol, change_pct, confidence=80, current_price=100)``."""
    return _prediction


class ScriptedOracle:
    """Oracle returning canned predictions; symbols mapped to an exception raise it."""

    def __init__(self, outcomes: dict[str, Prediction | Exception]) -> None:
        self.outcomes = outcomes
        self.calls: list[str] = []

    def predict(self, symbol: str) -> Prediction:
        self.calls.append(symbol)
        outcome = self.outcomes.get(symbol)
        if outcome is None:
            raise OptimizerError.prediction_failed(symbol, detail="no scripted prediction")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def scripted_oracle() -> Callable[[dict], ScriptedOracle]:
    return ScriptedOracle


def _portfolio(
    holdings: Sequence[tuple[str, float, float]],
    portfolio_id: str = "p-1",
    user_id: str = "u-1",
    entry_price: Optional[float] = None,
) -> Portfolio:
    """Build a recalculated portfolio from ``(symbol, shares, price)`` triples."""
    return Portfolio(
        portfolio_id=portfolio_id,
        user_id=user_id,
        name="Test portfolio",
        holdings=[
            Holding(
                symbol=s,
                shares=shares,
                entry_price=entry_price or price,
                entry_date=date(2024, 1, 2),
                current_price=price,
            )
            for s, shares, price in holdings
        ],
    ).recalculated()


@pytest.fixture
def make_portfolio() -> Callable[..., Portfolio]:
    """``make_portfolio([(symbol, shares, price), ...], portfolio_id="p-1")``."""
    return _portfolio


@pytest.fixture
def loose_optimizer_config() -> OptimizerConfig:
    """Optimizer config allowing a single symbol to take the whole portfolio."""
    return OptimizerConfig(max_stock_allocation=1.0, min_stock_allocation=0.02)
