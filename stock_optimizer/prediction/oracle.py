"""
Prediction oracles.

The optimizer treats the oracle as a black box: ``predict(symbol)`` returns a
``Prediction`` or raises ``OptimizerError``. Three implementations compose:

``TrendPredictionOracle``
    Fits a least-squares line (numpy) to the trailing ``historical_days`` of
    closes and extrapolates it ``prediction_horizon`` days past the last
    close. Confidence is the fit's R² on a 0–100 scale.

``StoredPredictionOracle``
    Returns the latest stored prediction made within ``max_age_days``;
    otherwise asks its fallback oracle and persists the result.

``CachingOracle``
    Process-local TTL cache in front of any oracle (``cache_timeout_minutes``).
    Safe to share between threads; the wrapped oracle is always called
    outside the cache lock.
"""

from __future__ import annotations

import copy
import logging
import threading
import time
from datetime import date, timedelta
from typing import Callable, Optional, Protocol

import numpy as np

from stock_optimizer.config import OptimizerConfig
from stock_optimizer.errors import OptimizerError
from stock_optimizer.models.prediction import Prediction
from stock_optimizer.protocols import PredictionOracle, PriceHistorySource
from stock_optimizer.utils.time_utils import today_utc

logger = logging.getLogger(__name__)

TREND_MODEL_VERSION = "trend_v1"
MIN_TREND_BARS = 30


class TrendPredictionOracle:
    """Linear-trend extrapolation over recent closes."""

    def __init__(
        self,
        prices: PriceHistorySource,
        config: Optional[OptimizerConfig] = None,
        as_of: Optional[date] = None,
        min_bars: int = MIN_TREND_BARS,
    ) -> None:
        self._prices = prices
        self._config = config or OptimizerConfig()
        self._as_of = as_of
        self._min_bars = min_bars

    def predict(self, symbol: str) -> Prediction:
        as_of = self._as_of or today_utc()
        bars = self._prices.get_bars(
            symbol, as_of - timedelta(days=self._config.historical_days), as_of
        )
        if len(bars) < self._min_bars:
            raise OptimizerError.insufficient_data(
                symbol, f"{len(bars)} bars, need at least {self._min_bars} for a trend fit"
            )

        first = bars[0].bar_date
        x = np.array([(b.bar_date - first).days for b in bars], dtype=float)
        y = np.array([b.close for b in bars], dtype=float)

        slope, intercept = np.polyfit(x, y, 1)
        fitted = slope * x + intercept
        ss_res = float(np.sum((y - fitted) ** 2))
        ss_tot = float(np.sum((y - y.mean()) ** 2))
        r_squared = 1.0 - ss_res / ss_tot if ss_tot > 0 else 1.0

        current = float(y[-1])
        horizon = self._config.prediction_horizon
        predicted = max(current + float(slope) * horizon, 0.01)
        if not np.isfinite(predicted):
            raise OptimizerError.prediction_failed(symbol, detail="non-finite trend fit")

        return Prediction(
            symbol=symbol,
            prediction_date=as_of,
            target_date=as_of + timedelta(days=horizon),
            current_price=current,
            predicted_price=predicted,
            predicted_change_pct=(predicted - current) / current * 100.0,
            confidence_score=round(min(max(r_squared, 0.0), 1.0) * 100.0, 2),
            model_version=TREND_MODEL_VERSION,
        )


class _PredictionLedger(Protocol):
    def latest_for_symbol(
        self, symbol: str, made_on_or_after: Optional[date] = None
    ) -> Optional[Prediction]:
        ...

    def insert(self, prediction: Prediction) -> int:
        ...


class StoredPredictionOracle:
    """Prefer a recent stored prediction; generate and persist one otherwise."""

    def __init__(
        self,
        ledger: _PredictionLedger,
        fallback: PredictionOracle,
        max_age_days: int = 1,
        as_of: Optional[date] = None,
    ) -> None:
        self._ledger = ledger
        self._fallback = fallback
        self._max_age_days = max_age_days
        self._as_of = as_of

    def predict(self, symbol: str) -> Prediction:
        as_of = self._as_of or today_utc()
        stored = self._ledger.latest_for_symbol(
            symbol, made_on_or_after=as_of - timedelta(days=self._max_age_days)
        )
        if stored is not None:
            return stored

        try:
            fresh = self._fallback.predict(symbol)
        except OptimizerError:
            raise
        except Exception as exc:
            raise OptimizerError.prediction_failed(symbol, exc) from exc

        prediction_id = self._ledger.insert(fresh)
        logger.debug("Stored new prediction %d for %s", prediction_id, symbol)
        return fresh.model_copy(update={"prediction_id": prediction_id})


class CachingOracle:
    """In-process TTL cache around another oracle. Failures are not cached."""

    def __init__(
        self,
        inner: PredictionOracle,
        ttl_minutes: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._inner = inner
        self._ttl_seconds = ttl_minutes * 60
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, tuple[float, Prediction]] = {}

    def predict(self, symbol: str) -> Prediction:
        now = self._clock()
        with self._lock:
            hit = self._entries.get(symbol)
        if hit is not None and hit[0] > now:
            return hit[1]

        prediction = self._inner.predict(symbol)
        if self._ttl_seconds > 0:
            with self._lock:
                self._entries[symbol] = (now + self._ttl_seconds, prediction)
        return prediction

    def invalidate(self, symbol: Optional[str] = None) -> None:
        """Drop one symbol, or everything when ``symbol`` is ``None``."""
        with self._lock:
            if symbol is None:
                self._entries.clear()
            else:
                self._entries.pop(symbol, None)

    def with_inner(self, inner: PredictionOracle) -> "CachingOracle":
        """A view that shares this cache but sends misses to ``inner``."""
        view = copy.copy(self)
        view._inner = inner
        return view
