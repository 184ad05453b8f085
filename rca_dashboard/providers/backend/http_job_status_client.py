"""HTTP implementation of :class:`IJobStatusClient` for the RCA analyzer API.

Endpoints::

    POST {base}/v1/ingestion/sync            start a job
    GET  {base}/v1/ingestion/sync/{syncId}   current snapshot (404 if unknown)

An ``httpx.AsyncClient`` is injected so the connection pool is shared with
the rest of the app and tests can swap in an ``httpx.MockTransport``.
"""

from __future__ import annotations

from typing import Any

import httpx
import pydantic

from rca_dashboard.interfaces.job_status_client import IJobStatusClient
from rca_dashboard.models.job import JobConfig, JobRecord, JobStatus
from rca_dashboard.utils.errors import NotFoundError, TransportError, ValidationError
from rca_dashboard.utils.logging import get_logger

_PROVIDER = "ingestion"
_SYNC_PATH = "/v1/ingestion/sync"
_DEFAULT_TIMEOUT = 30.0


def backend_error_detail(response: httpx.Response) -> str:
    """Pull a human-readable message out of an error response body."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("message", "detail", "error"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    text = response.text.strip()
    return text[:200] if text else f"HTTP {response.status_code}"


class HttpJobStatusClient(IJobStatusClient):
    """Starts and polls sync jobs over HTTP/JSON.

    Parameters
    ----------
    http_client:
        Shared ``httpx.AsyncClient``.
    base_url:
        API root, e.g. ``http://localhost:8080/api``.
    timeout:
        Per-request timeout in seconds.  A timeout surfaces as
        :class:`TransportError`.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str,
        timeout: float = _DEFAULT_TIMEOUT,
    ) -> None:
        self._http = http_client
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._logger = get_logger(__name__)

    def get_provider_name(self) -> str:
        return _PROVIDER

    # ------------------------------------------------------------------
    # IJobStatusClient
    # ------------------------------------------------------------------

    async def start(self, config: JobConfig) -> JobRecord:
        payload = config.to_payload()
        response = await self._request("POST", _SYNC_PATH, json=payload)

        if response.status_code in (400, 422):
            detail = backend_error_detail(response)
            self._logger.warning("sync_start_rejected", status=response.status_code, detail=detail)
            raise ValidationError(detail, provider_name=_PROVIDER)
        self._raise_for_status(response, action="start sync")

        # The analyzer's SyncResponse carries no start time; the job starts now.
        record = self._parse_record(response).with_start_time()
        if record.status is not JobStatus.RUNNING:
            raise TransportError(
                f"Backend reported {record.status.value} for a newly started sync",
                provider_name=_PROVIDER,
                status_code=response.status_code,
            )

        self._logger.info(
            "sync_started",
            sync_id=record.job_id,
            sync_type=config.sync_type.value,
            spaces=list(config.spaces),
            tags=list(config.tags),
        )
        return record

    async def poll(self, job_id: str) -> JobRecord:
        response = await self._request("GET", f"{_SYNC_PATH}/{job_id}")

        if response.status_code == 404:
            raise NotFoundError(f"Sync not found: {job_id}", provider_name=_PROVIDER)
        self._raise_for_status(response, action="get sync status")

        return self._parse_record(response, job_id=job_id)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        url = f"{self._base_url}{path}"
        try:
            return await self._http.request(method, url, timeout=self._timeout, **kwargs)
        except httpx.HTTPError as exc:
            self._logger.warning(
                "backend_request_failed",
                method=method,
                url=url,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise TransportError(
                f"{method} {path} failed: {type(exc).__name__}: {exc}",
                provider_name=_PROVIDER,
            ) from exc

    def _raise_for_status(self, response: httpx.Response, *, action: str) -> None:
        if response.is_success:
            return
        detail = backend_error_detail(response)
        self._logger.warning(
            "backend_error_status",
            action=action,
            status=response.status_code,
            detail=detail,
        )
        raise TransportError(
            f"Could not {action}: HTTP {response.status_code} ({detail})",
            provider_name=_PROVIDER,
            status_code=response.status_code,
        )

    def _parse_record(self, response: httpx.Response, job_id: str | None = None) -> JobRecord:
        try:
            body = response.json()
        except ValueError as exc:
            raise TransportError(
                "Backend returned a non-JSON sync response",
                provider_name=_PROVIDER,
                status_code=response.status_code,
            ) from exc

        if not isinstance(body, dict):
            raise TransportError(
                "Backend returned an unexpected sync response shape",
                provider_name=_PROVIDER,
                status_code=response.status_code,
            )

        # Status responses may omit the id we asked about.
        if job_id is not None and not body.get("syncId"):
            body = {**body, "syncId": job_id}

        try:
            record = JobRecord.model_validate(body)
        except pydantic.ValidationError as exc:
            raise TransportError(
                f"Malformed sync response: {exc.error_count()} validation error(s)",
                provider_name=_PROVIDER,
                status_code=response.status_code,
            ) from exc

        if job_id is not None and record.job_id != job_id:
            raise TransportError(
                f"Asked for sync {job_id} but backend answered for {record.job_id}",
                provider_name=_PROVIDER,
                status_code=response.status_code,
            )
        return record
