"""Response models for the RCA analyzer's search and management endpoints.

These are plain pass-through shapes; the dashboard renders them and does no
ranking or scoring of its own.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# camelCase on the wire, snake_case in Python.
_CAMEL = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class SearchResult(BaseModel):
    """One similar incident returned by a search."""

    model_config = _CAMEL

    page_id: str
    title: str
    url: str = ""
    similarity_score: float = 0.0
    symptoms: str | None = None
    root_cause: str | None = None
    resolution: str | None = None
    incident_date: str | None = None


class SearchSummary(BaseModel):
    """Backend-generated summary across the returned incidents."""

    model_config = _CAMEL

    suggested_root_cause: str = ""
    confidence: Literal["High", "Medium", "Low"] = "Low"
    similar_incidents: int = 0


class SearchResponse(BaseModel):
    model_config = _CAMEL

    query: str
    results: list[SearchResult] = Field(default_factory=list)
    summary: SearchSummary | None = None
    execution_time_ms: int = 0


class StatsResponse(BaseModel):
    """Corpus statistics: total pages and a breakdown by processing status."""

    model_config = _CAMEL

    total_pages: int = 0
    # Keys: PENDING, PARSED, EMBEDDED, ERROR
    pages_by_status: dict[str, int] = Field(default_factory=dict)


class RcaPage(BaseModel):
    """An ingested post-mortem page as stored by the backend."""

    model_config = _CAMEL

    page_id: str
    space_key: str = ""
    title: str = ""
    url: str = ""
    tags: list[str] = Field(default_factory=list)
    last_modified: datetime | None = None
    ingested_at: datetime | None = None
    parsed_at: datetime | None = None
    embedding_generated_at: datetime | None = None
    status: Literal["PENDING", "PARSED", "EMBEDDED", "ERROR"] = "PENDING"
    error_message: str | None = None
