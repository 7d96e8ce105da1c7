"""
Weekly performance sweep stage.

The tracker and its metrics store live in the calling process, so this
stage is handed the tracker rather than building one from the database.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

from stock_optimizer.config import AppConfig
from stock_optimizer.models.meta import RunMetadata
from stock_optimizer.pipeline.base import PipelineStage
from stock_optimizer.tracking.tracker import PerformanceTracker
from stock_optimizer.utils.time_utils import utcnow


class TrackPerformanceStage(PipelineStage):
    """Run ``PerformanceTracker.run_sweep`` under a run audit record."""

    stage_name = "track_performance"

    def __init__(
        self,
        config: AppConfig,
        tracker: PerformanceTracker,
        db_path: Optional[str] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        super().__init__(config, db_path, clock)
        self.tracker = tracker

    def _execute(self, run: RunMetadata, now: Optional[datetime] = None, **kwargs) -> int:
        summary = self.tracker.run_sweep(now)
        if summary.failed:
            run.error_message = f"{len(summary.failed)} portfolios failed: " + ", ".join(
                sorted(summary.failed)
            )
        return summary.examined
