"""Pydantic data models for sync jobs and RCA backend payloads."""

from rca_dashboard.models.job import JobConfig, JobRecord, JobStatus, SyncType
from rca_dashboard.models.rca import (
    RcaPage,
    SearchResponse,
    SearchResult,
    SearchSummary,
    StatsResponse,
)

__all__ = [
    "JobConfig",
    "JobRecord",
    "JobStatus",
    "RcaPage",
    "SearchResponse",
    "SearchResult",
    "SearchSummary",
    "StatsResponse",
    "SyncType",
]
