"""Sync job models: the request that starts an ingestion run and the
snapshot of its last known status.

All models are frozen.  The tracker never patches a record in place; every
poll result produces a whole new :class:`JobRecord` which replaces the stored
one (see :meth:`JobRecord.merged_with`).

Wire format (camelCase, as served by the RCA analyzer backend)::

    {"syncId": "abc123", "status": "RUNNING", "message": "",
     "pagesFetched": 10, "pagesProcessed": 4, "pagesFailed": 0,
     "startedAt": "2024-05-01T10:00:00", "completedAt": null}
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from rca_dashboard.utils import errors


class SyncType(str, Enum):  # noqa: UP042
    """Ingestion mode requested from the backend."""

    FULL = "FULL"                # Re-ingest every page in scope
    INCREMENTAL = "INCREMENTAL"  # Only new or updated pages


class JobStatus(str, Enum):  # noqa: UP042
    """Backend-reported job status.

    RUNNING → COMPLETED | FAILED.  There are no transitions out of a
    terminal state.
    """

    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self is not JobStatus.RUNNING


def split_filter_text(text: str | None) -> tuple[str, ...]:
    """Split a comma-separated filter string into trimmed, non-empty entries.

    >>> split_filter_text(" ENG, OPS ,,")
    ('ENG', 'OPS')
    """
    if not text:
        return ()
    return tuple(part.strip() for part in text.split(",") if part.strip())


# ---------------------------------------------------------------------------
# JobConfig: input to start a job
# ---------------------------------------------------------------------------
class JobConfig(BaseModel):
    """Parameters for one ingestion run.

    Empty ``spaces`` / ``tags`` mean "unscoped".
    """

    model_config = ConfigDict(frozen=True)

    sync_type: SyncType = SyncType.INCREMENTAL
    # Confluence space keys, e.g. ("ENG", "OPS").
    spaces: tuple[str, ...] = ()
    # Page labels, e.g. ("rca", "post-mortem").
    tags: tuple[str, ...] = ()
    # Optional cap on the number of pages the backend processes.
    limit: int | None = Field(default=None, gt=0)

    @classmethod
    def from_text(
        cls,
        sync_type: str | SyncType,
        spaces_text: str | None = "",
        tags_text: str | None = "",
        limit: int | None = None,
    ) -> JobConfig:
        """Build a config from the free-text form inputs of the dashboard.

        Raises
        ------
        ValidationError
            If ``sync_type`` is not FULL or INCREMENTAL, or ``limit`` is
            not positive.
        """
        try:
            mode = SyncType(str(getattr(sync_type, "value", sync_type)).strip().upper())
        except ValueError as exc:
            raise errors.ValidationError(
                f"Unknown sync type: {sync_type!r} (expected FULL or INCREMENTAL)"
            ) from exc

        if limit is not None and limit <= 0:
            raise errors.ValidationError(f"limit must be positive, got {limit}")

        return cls(
            sync_type=mode,
            spaces=split_filter_text(spaces_text),
            tags=split_filter_text(tags_text),
            limit=limit,
        )

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON body for ``POST /v1/ingestion/sync``."""
        payload: dict[str, Any] = {
            "syncType": self.sync_type.value,
            "spaces": list(self.spaces),
            "tags": list(self.tags),
        }
        if self.limit is not None:
            payload["limit"] = self.limit
        return payload


# ---------------------------------------------------------------------------
# JobRecord: last known status of one job
# ---------------------------------------------------------------------------
class JobRecord(BaseModel):
    """Snapshot of one sync job as last reported by the backend.

    Invariant: ``completed_at`` is set if and only if ``status`` is
    terminal.  A terminal snapshot that arrives without ``completedAt`` is
    stamped with the local UTC time; a running snapshot never keeps one.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    job_id: str = Field(alias="syncId", min_length=1)
    status: JobStatus = JobStatus.RUNNING
    message: str = ""
    # Pages discovered by the backend so far (pagesFetched on the wire).
    discovered: int = Field(default=0, alias="pagesFetched", ge=0)
    processed: int = Field(default=0, alias="pagesProcessed", ge=0)
    failed: int = Field(default=0, alias="pagesFailed", ge=0)
    started_at: datetime | None = Field(default=None, alias="startedAt")
    completed_at: datetime | None = Field(default=None, alias="completedAt")

    @field_validator("message", mode="before")
    @classmethod
    def _none_message_is_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("discovered", "processed", "failed", mode="before")
    @classmethod
    def _none_count_is_zero(cls, value: Any) -> Any:
        return 0 if value is None else value

    @model_validator(mode="before")
    @classmethod
    def _normalise_completion(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        try:
            status = JobStatus(data.get("status", JobStatus.RUNNING))
        except ValueError:
            # Let field validation report the bad status.
            return data

        data = dict(data)
        if status.is_terminal:
            if not data.get("completedAt") and not data.get("completed_at"):
                data["completedAt"] = datetime.now(tz=timezone.utc)  # noqa: UP017
        else:
            data.pop("completedAt", None)
            data.pop("completed_at", None)
        return data

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def progress_percent(self) -> int:
        """Processed / discovered as a whole percentage in [0, 100].

        Zero when nothing has been discovered yet.
        """
        if self.discovered <= 0:
            return 0
        percent = round(self.processed / self.discovered * 100)
        return max(0, min(100, percent))

    # ------------------------------------------------------------------
    # Merging
    # ------------------------------------------------------------------

    def with_start_time(self, now: datetime | None = None) -> JobRecord:
        """Return this record with ``started_at`` filled in if the backend left it out.

        Applied once to the start response only; later polls inherit the
        value through :meth:`merged_with`.
        """
        if self.started_at is not None:
            return self
        return self.model_copy(update={"started_at": now or datetime.now(tz=timezone.utc)})  # noqa: UP017

    def merged_with(self, newer: JobRecord) -> JobRecord:
        """Return the record that should replace ``self`` after a poll.

        ``newer`` replaces this record wholesale, except:

        - ``started_at`` is immutable once known;
        - counts never drop below previously observed values (a stale or
          duplicated response cannot move the progress bar backwards);
        - a terminal record is final and is returned unchanged.
        """
        if newer.job_id != self.job_id:
            raise ValueError(
                f"Cannot merge snapshot for {newer.job_id!r} into {self.job_id!r}"
            )
        if self.is_terminal:
            return self

        return newer.model_copy(
            update={
                "started_at": self.started_at or newer.started_at,
                "discovered": max(self.discovered, newer.discovered),
                "processed": max(self.processed, newer.processed),
                "failed": max(self.failed, newer.failed),
            }
        )

    def to_wire(self) -> dict[str, Any]:
        """Serialise using the backend's camelCase field names."""
        return self.model_dump(mode="json", by_alias=True)
