"""
Pipeline run metadata: the audit log for scheduled and CLI-driven jobs.

Every stage run records the full ``AppConfig`` it ran with in
``config_snapshot`` so a run can be reproduced later.

``RunMetadata`` is the only model in the package that is NOT frozen: its
``status``, ``rows_processed``, ``error_message`` and ``finished_at`` are
updated while the stage executes.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, field_validator

VALID_PIPELINE_STAGES = frozenset({"indicators", "verify_predictions", "track_performance"})
VALID_RUN_STATUSES = frozenset({"started", "success", "failed"})


class RunMetadata(BaseModel):
    """Pipeline execution audit record.

    Attributes:
        run_id: DB PK; ``None`` before insertion.
        run_slug: UUID4 string uniquely identifying this run.
        pipeline_stage: Which stage produced this record.
        status: ``started`` → ``success`` | ``failed``.
        config_snapshot: ``AppConfig.model_dump(mode="json")`` at run start.
        rows_processed: Records written or examined by the stage.
        error_message: Failure description when ``status == "failed"``.
        started_at: UTC start time.
        finished_at: UTC end time.
    """

    model_config = ConfigDict(frozen=False)

    run_id: Optional[int] = None
    run_slug: str
    pipeline_stage: str
    status: str = "started"
    config_snapshot: dict[str, Any]
    rows_processed: int = 0
    error_message: Optional[str] = None
    started_at: datetime
    finished_at: Optional[datetime] = None

    @field_validator("pipeline_stage")
    @classmethod
    def validate_pipeline_stage(cls, v: str) -> str:
        if v not in VALID_PIPELINE_STAGES:
            raise ValueError(
                f"Unknown pipeline_stage '{v}'. Must be one of {sorted(VALID_PIPELINE_STAGES)}."
            )
        return v

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        if v not in VALID_RUN_STATUSES:
            raise ValueError(
                f"Unknown status '{v}'. Must be one of {sorted(VALID_RUN_STATUSES)}."
            )
        return v
