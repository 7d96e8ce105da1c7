"""
Daily indicator refresh stage.

Recomputes ``refresh_lookback_days`` of indicators for every symbol known
to the system (held anywhere, or with stored price bars). A symbol that
fails is logged and skipped; the stage itself succeeds.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from stock_optimizer.db.repositories.indicator_repo import IndicatorRepository
from stock_optimizer.db.repositories.market_repo import PriceBarRepository
from stock_optimizer.db.repositories.portfolio_repo import PortfolioRepository
from stock_optimizer.indicators.service import IndicatorService
from stock_optimizer.models.meta import RunMetadata
from stock_optimizer.pipeline.base import PipelineStage

logger = logging.getLogger(__name__)


class IndicatorStage(PipelineStage):
    """Refresh indicator snapshots for all known symbols."""

    stage_name = "indicators"

    def _execute(
        self,
        run: RunMetadata,
        symbols: Optional[list[str]] = None,
        as_of: Optional[date] = None,
        **kwargs,
    ) -> int:
        with self.connect() as conn:
            if symbols is None:
                symbols = sorted(PortfolioRepository(conn).find_symbols_across_all_data())
            service = IndicatorService(
                PriceBarRepository(conn), IndicatorRepository(conn), self.config.indicators
            )
            summary = service.refresh_all(symbols, as_of=as_of)

        if summary.failed:
            logger.warning(
                "Indicator refresh skipped %d symbols: %s",
                len(summary.failed), ", ".join(sorted(summary.failed)),
            )
        return summary.snapshots_written
