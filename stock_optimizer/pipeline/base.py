"""
Base class for the scheduled jobs (indicator refresh, prediction
verification, performance sweep).

A stage wraps one job in a ``run_metadata`` audit row:

  1. ``run(**kwargs)`` opens a ``RunMetadata`` with the config in force.
  2. ``_execute(run, **kwargs)`` does the work and returns a row count.
     It may set ``run.error_message`` to note partial failures.
  3. The row is written with ``success`` or ``failed``; a failure is
     re-raised after it has been recorded.

Usage::

    run = IndicatorStage(config).run(as_of=date(2024, 12, 31))
    run.rows_processed
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Optional
from uuid import uuid4

from stock_optimizer.config import AppConfig
from stock_optimizer.db.connection import get_connection
from stock_optimizer.models.meta import RunMetadata
from stock_optimizer.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


class PipelineStage(ABC):
    """One audited job.

    Attributes:
        stage_name: One of ``VALID_PIPELINE_STAGES``.
        config: Configuration recorded with every run.
        db_path: Database the job and its audit row use.
    """

    stage_name: str

    def __init__(
        self,
        config: AppConfig,
        db_path: Optional[str] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.config = config
        self.db_path = db_path or config.database.db_path
        self._clock = clock

    def connect(self):
        return get_connection(
            self.db_path,
            wal_mode=self.config.database.wal_mode,
            busy_timeout_ms=self.config.database.busy_timeout_ms,
        )

    def run(self, **kwargs) -> RunMetadata:
        """Execute the job and record its outcome.

        Raises:
            Exception: Whatever ``_execute()`` raised, once the failed run
                has been recorded.
        """
        run = RunMetadata(
            run_slug=str(uuid4()),
            pipeline_stage=self.stage_name,
            config_snapshot=self.config.model_dump(mode="json"),
            started_at=self._clock(),
        )
        logger.info("[%s] starting run %s", self.stage_name, run.run_slug)

        try:
            run.rows_processed = self._execute(run=run, **kwargs)
        except Exception as exc:
            run.status = "failed"
            run.error_message = str(exc)
            run.finished_at = self._clock()
            logger.error("[%s] run %s failed: %s", self.stage_name, run.run_slug, exc)
            self._record(run)
            raise

        run.status = "success"
        run.finished_at = self._clock()
        logger.info(
            "[%s] run %s done: %d rows%s",
            self.stage_name, run.run_slug, run.rows_processed,
            f" ({run.error_message})" if run.error_message else "",
        )
        self._record(run)
        return run

    @abstractmethod
    def _execute(self, run: RunMetadata, **kwargs) -> int:
        """Do the job; return the number of rows written or examined."""
        ...

    def _record(self, run: RunMetadata) -> None:
        """Insert the audit row.

        A write failure is logged, not raised, so it cannot hide the job's
        own outcome.
        """
        from stock_optimizer.db.repositories.run_repo import RunMetadataRepository

        try:
            with self.connect() as conn:
                run.run_id = RunMetadataRepository(conn).insert_run(run)
        except Exception as exc:
            logger.error("Could not record run %s: %s", run.run_slug, exc)
