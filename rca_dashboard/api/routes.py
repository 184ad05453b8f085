"""FastAPI routes for the RCA dashboard.

# ─── API ROUTE MAP ────────────────────────────────────────────────────
#
# Endpoint                   Method  Description
# ─────────────────────────────────────────────────────────────────────
# /api/v1/jobs               POST    Start a sync job and begin polling it
# /api/v1/jobs               GET     Snapshot of every tracked job
# /api/v1/jobs/{sync_id}     GET     One tracked job
# /api/v1/jobs/{sync_id}     DELETE  Stop polling a job and forget it
# /api/v1/search             POST    Similar-incident search (pass-through)
# /api/v1/stats              GET     Corpus statistics (pass-through)
# /api/v1/health             GET     Dashboard + backend health
#
# The tracker and the backend client live on ``app.state`` (set up in
# main.py's lifespan) and are injected with ``Depends``.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, Response

from rca_dashboard import __version__
from rca_dashboard.api.middleware import status_code_for
from rca_dashboard.api.schemas import (
    ErrorResponse,
    HealthResponse,
    JobListResponse,
    JobView,
    SearchRequest,
    StartJobRequest,
    StartJobResponse,
)
from rca_dashboard.models.job import JobConfig, JobRecord
from rca_dashboard.models.rca import SearchResponse, StatsResponse
from rca_dashboard.pipeline.job_tracker import JobTracker
from rca_dashboard.providers.backend.rca_api_client import RcaApiClient
from rca_dashboard.utils.errors import RcaDashboardError, TransportError, ValidationError
from rca_dashboard.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api/v1")


def _get_tracker(request: Request) -> JobTracker:
    return request.app.state.job_tracker


def _get_rca_client(request: Request) -> RcaApiClient:
    return request.app.state.rca_client


TrackerDep = Annotated[JobTracker, Depends(_get_tracker)]
RcaClientDep = Annotated[RcaApiClient, Depends(_get_rca_client)]


def build_job_view(tracker: JobTracker, record: JobRecord) -> JobView:
    """Combine a record with its scheduler's state for rendering."""
    return JobView.from_record(
        record,
        polling=tracker.scheduler_state(record.job_id),
        stalled=tracker.is_stalled(record.job_id),
    )


# ---------------------------------------------------------------------------
# Sync jobs
# ---------------------------------------------------------------------------


@router.post(
    "/jobs",
    status_code=202,
    response_model=StartJobResponse,
    responses={422: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
    summary="Start an ingestion sync",
)
async def start_job(body: StartJobRequest, tracker: TrackerDep) -> StartJobResponse:
    """Start a sync job; returns as soon as the backend has assigned an id."""
    try:
        config = JobConfig.from_text(body.sync_type, body.spaces, body.tags, limit=body.limit)
        job_id = await tracker.start_job(config)
    except (ValidationError, TransportError) as exc:
        # Surfaced inline on the ingestion form.
        _logger.warning("start_job_rejected", error_type=type(exc).__name__, error=str(exc))
        raise HTTPException(status_code=status_code_for(exc), detail=exc.message) from exc

    record = tracker.get_job(job_id)
    if record is None:
        raise HTTPException(status_code=500, detail="Sync started but is no longer tracked")
    return StartJobResponse(job_id=job_id, job=build_job_view(tracker, record))


@router.get("/jobs", response_model=JobListResponse, summary="List tracked sync jobs")
async def list_jobs(tracker: TrackerDep) -> JobListResponse:
    snapshot = tracker.get_snapshot()
    jobs = [build_job_view(tracker, record) for record in snapshot.values()]
    return JobListResponse(jobs=jobs, active=tracker.active_count)


@router.get(
    "/jobs/{sync_id}",
    response_model=JobView,
    responses={404: {"model": ErrorResponse}},
    summary="Get one tracked sync job",
)
async def get_job(sync_id: str, tracker: TrackerDep) -> JobView:
    record = tracker.get_job(sync_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Sync not tracked: {sync_id}")
    return build_job_view(tracker, record)


@router.delete(
    "/jobs/{sync_id}",
    status_code=204,
    responses={404: {"model": ErrorResponse}},
    summary="Stop polling a sync job and discard it",
)
async def discard_job(sync_id: str, tracker: TrackerDep) -> Response:
    if not await tracker.discard(sync_id):
        raise HTTPException(status_code=404, detail=f"Sync not tracked: {sync_id}")
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Search / management pass-throughs
# ---------------------------------------------------------------------------


@router.post("/search", response_model=SearchResponse, summary="Search similar incidents")
async def search(body: SearchRequest, rca_client: RcaClientDep) -> SearchResponse:
    return await rca_client.search(body.query, top_k=body.top_k, mode=body.mode)  # type: ignore[arg-type]


@router.get("/stats", response_model=StatsResponse, summary="Corpus statistics")
async def stats(rca_client: RcaClientDep) -> StatsResponse:
    return await rca_client.get_stats()


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health(rca_client: RcaClientDep, tracker: TrackerDep) -> HealthResponse:
    try:
        backend = await rca_client.health()
        status = "ok"
    except RcaDashboardError as exc:
        backend = {"status": "unreachable", "error": exc.message}
        status = "degraded"
    return HealthResponse(
        status=status,
        version=__version__,
        backend=backend,
        active_jobs=tracker.active_count,
    )
