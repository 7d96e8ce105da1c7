"""
Indicator computation service: load bars, compute, replace stored range.

A request for ``(symbol, from, to)`` always recomputes from scratch. The
stored snapshots inside that range are deleted and replaced in a single
savepoint, so repeating a request never duplicates rows or leaves stale
ones behind.

The computation itself looks back ``warmup_days`` before ``from_date`` so
that long windows (SMA200) are defined inside the requested range; only
snapshots dated inside the range are stored and returned.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable, Optional

from stock_optimizer.config import IndicatorConfig
from stock_optimizer.errors import OptimizerError
from stock_optimizer.indicators.technical import compute_snapshots
from stock_optimizer.models.indicator import IndicatorSnapshot
from stock_optimizer.protocols import IndicatorStore, PriceHistorySource
from stock_optimizer.utils.time_utils import today_utc

logger = logging.getLogger(__name__)

# Calendar days of extra history loaded ahead of the requested range; 200
# trading days is roughly 290 calendar days.
DEFAULT_WARMUP_DAYS = 300


@dataclass
class RefreshSummary:
    """Outcome of ``IndicatorService.refresh_all``."""

    symbols_processed: int = 0
    snapshots_written: int = 0
    failed: dict[str, str] = field(default_factory=dict)


class IndicatorService:
    """Computes and stores indicator snapshots for symbols and date ranges."""

    def __init__(
        self,
        prices: PriceHistorySource,
        store: IndicatorStore,
        config: Optional[IndicatorConfig] = None,
        warmup_days: int = DEFAULT_WARMUP_DAYS,
    ) -> None:
        self._prices = prices
        self._store = store
        self._config = config or IndicatorConfig()
        self._warmup_days = warmup_days

    def calculate_for_range(
        self,
        symbol: str,
        from_date: date,
        to_date: date,
    ) -> list[IndicatorSnapshot]:
        """Recompute and store indicators for ``symbol`` in ``[from_date, to_date]``.

        Returns:
            The stored snapshots, oldest first.

        Raises:
            ValueError: If ``from_date > to_date``.
            OptimizerError: INSUFFICIENT_DATA if no bars fall inside the range.
        """
        if from_date > to_date:
            raise ValueError(f"from_date ({from_date}) must be <= to_date ({to_date}).")

        bars = self._prices.get_bars(
            symbol, from_date - timedelta(days=self._warmup_days), to_date
        )
        snapshots = [
            s for s in compute_snapshots(bars, self._config)
            if from_date <= s.snapshot_date <= to_date
        ]
        if not snapshots:
            raise OptimizerError.insufficient_data(
                symbol, f"no price bars between {from_date} and {to_date}"
            )

        self._store.replace_range(symbol, from_date, to_date, snapshots)
        logger.info(
            "Computed %d indicator snapshots for %s [%s..%s]",
            len(snapshots), symbol, from_date, to_date,
        )
        return snapshots

    def refresh_all(
        self,
        symbols: Iterable[str],
        as_of: Optional[date] = None,
    ) -> RefreshSummary:
        """Recompute the last ``refresh_lookback_days`` for every symbol.

        A failure for one symbol is logged and recorded; the rest still run.
        """
        to_date = as_of or today_utc()
        from_date = to_date - timedelta(days=self._config.refresh_lookback_days)
        summary = RefreshSummary()

        for symbol in symbols:
            try:
                written = self.calculate_for_range(symbol, from_date, to_date)
            except OptimizerError as exc:
                logger.warning("Indicator refresh skipped %s: %s", symbol, exc.message,
                               extra={"symbol": symbol})
                summary.failed[symbol] = exc.message
                continue
            summary.symbols_processed += 1
            summary.snapshots_written += len(written)

        logger.info(
            "Indicator refresh: %d symbols, %d snapshots, %d failed",
            summary.symbols_processed, summary.snapshots_written, len(summary.failed),
        )
        return summary

    def ensure_range(
        self,
        symbol: str,
        from_date: date,
        to_date: date,
        fresh_as_of: Optional[date] = None,
    ) -> list[IndicatorSnapshot]:
        """Stored snapshots for the range, recomputed when missing or stale.

        Stored data is stale when its newest snapshot predates ``fresh_as_of``
        (typically the date of the latest price bar).
        """
        stored = self._store.get_range(symbol, from_date, to_date)
        if stored and (fresh_as_of is None or stored[-1].snapshot_date >= fresh_as_of):
            return stored
        return self.calculate_for_range(symbol, from_date, to_date)
