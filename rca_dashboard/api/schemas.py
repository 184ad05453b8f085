"""Pydantic request/response schemas for the dashboard API.

Request schemas end with "Request", response schemas with "Response".
Field names are camelCase on the wire to match what the browser UI already
speaks to the RCA backend.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from rca_dashboard.models.job import JobRecord
from rca_dashboard.pipeline.poll_scheduler import SchedulerState

_CAMEL = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StartJobRequest(BaseModel):
    """Form submitted from the ingestion page.

    ``spaces`` and ``tags`` are free text, comma separated
    (e.g. ``"ENG, OPS"``); they are split and trimmed server-side.
    """

    model_config = _CAMEL

    sync_type: str = "INCREMENTAL"
    spaces: str = ""
    tags: str = ""
    limit: int | None = Field(default=None, gt=0)


class JobView(BaseModel):
    """One tracked job as rendered by the dashboard."""

    model_config = _CAMEL

    sync_id: str
    status: str
    message: str
    pages_fetched: int
    pages_processed: int
    pages_failed: int
    progress_percent: int = Field(ge=0, le=100)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    polling: SchedulerState | None = None
    # True when polling gave up while the job still looked RUNNING.
    stalled: bool = False

    @classmethod
    def from_record(
        cls,
        record: JobRecord,
        polling: SchedulerState | None = None,
        stalled: bool = False,
    ) -> JobView:
        return cls(
            sync_id=record.job_id,
            status=record.status.value,
            message=record.message,
            pages_fetched=record.discovered,
            pages_processed=record.processed,
            pages_failed=record.failed,
            progress_percent=record.progress_percent,
            started_at=record.started_at,
            completed_at=record.completed_at,
            polling=polling,
            stalled=stalled,
        )


class StartJobResponse(BaseModel):
    model_config = _CAMEL

    job_id: str
    job: JobView


class JobListResponse(BaseModel):
    model_config = _CAMEL

    jobs: list[JobView] = Field(default_factory=list)
    active: int = 0


class SearchRequest(BaseModel):
    model_config = _CAMEL

    query: str = Field(..., min_length=1, max_length=2000)
    top_k: int = Field(default=5, ge=1, le=50)
    mode: str = Field(default="all", pattern="^(all|symptoms|root-cause)$")


class HealthResponse(BaseModel):
    """Dashboard health plus the backend's own health answer."""

    status: str
    version: str
    backend: dict[str, object] = Field(default_factory=dict)
    active_jobs: int = 0


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None
