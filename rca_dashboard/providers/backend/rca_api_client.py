"""Thin async client for the RCA analyzer's search and management endpoints.

Stateless request/response round trips used by the search page, the stats
page and the CLI.  Errors use the same taxonomy as the job status client.
"""

from __future__ import annotations

from typing import Any, Literal

import httpx
import pydantic

from rca_dashboard.models.rca import RcaPage, SearchResponse, StatsResponse
from rca_dashboard.providers.backend.http_job_status_client import backend_error_detail
from rca_dashboard.utils.errors import NotFoundError, TransportError, ValidationError
from rca_dashboard.utils.logging import get_logger

SearchMode = Literal["all", "symptoms", "root-cause"]

_SEARCH_PATHS: dict[str, str] = {
    "all": "/v1/search",
    "symptoms": "/v1/search/symptoms",
    "root-cause": "/v1/search/root-cause",
}
_DEFAULT_TOP_K = 5


class RcaApiClient:
    """Search, statistics, page lookup and health calls.

    Parameters
    ----------
    http_client:
        Shared ``httpx.AsyncClient``.
    base_url:
        API root, e.g. ``http://localhost:8080/api``.  The health endpoint
        lives one level above it (``http://localhost:8080/health``) unless
        ``health_url`` is given.
    timeout:
        Per-request timeout in seconds.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str,
        timeout: float = 30.0,
        health_url: str | None = None,
    ) -> None:
        self._http = http_client
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._health_url = health_url or self._default_health_url(self._base_url)
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def search(
        self,
        query: str,
        top_k: int = _DEFAULT_TOP_K,
        mode: SearchMode = "all",
    ) -> SearchResponse:
        """Run a similarity search over ingested post-mortems."""
        query = query.strip()
        if not query:
            raise ValidationError("Search query must not be empty", provider_name="search")
        if top_k <= 0:
            raise ValidationError(f"top_k must be positive, got {top_k}", provider_name="search")
        try:
            path = _SEARCH_PATHS[mode]
        except KeyError:
            raise ValidationError(f"Unknown search mode: {mode!r}", provider_name="search") from None

        body = await self._call("POST", path, provider="search", json={"query": query, "topK": top_k})
        result = self._validate(SearchResponse, body, provider="search")
        self._logger.info(
            "search_completed",
            mode=mode,
            results=len(result.results),
            execution_time_ms=result.execution_time_ms,
        )
        return result

    async def search_by_symptoms(self, query: str, top_k: int = _DEFAULT_TOP_K) -> SearchResponse:
        return await self.search(query, top_k=top_k, mode="symptoms")

    async def search_by_root_cause(self, query: str, top_k: int = _DEFAULT_TOP_K) -> SearchResponse:
        return await self.search(query, top_k=top_k, mode="root-cause")

    # ------------------------------------------------------------------
    # Management
    # ------------------------------------------------------------------

    async def get_stats(self) -> StatsResponse:
        body = await self._call("GET", "/v1/stats", provider="management")
        return self._validate(StatsResponse, body, provider="management")

    async def get_page(self, page_id: str) -> RcaPage:
        body = await self._call("GET", f"/v1/pages/{page_id}", provider="management")
        return self._validate(RcaPage, body, provider="management")

    async def ingest_page(self, page_id: str) -> None:
        """Ask the backend to (re)ingest one page by id."""
        await self._call("POST", f"/v1/ingestion/page/{page_id}", provider="ingestion", expect_body=False)
        self._logger.info("page_ingest_requested", page_id=page_id)

    async def health(self) -> dict[str, Any]:
        body = await self._call("GET", self._health_url, provider="health", absolute=True)
        return body if isinstance(body, dict) else {"status": str(body)}

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _default_health_url(base_url: str) -> str:
        root = base_url[: -len("/api")] if base_url.endswith("/api") else base_url
        return f"{root}/health"

    async def _call(
        self,
        method: str,
        path: str,
        *,
        provider: str,
        absolute: bool = False,
        expect_body: bool = True,
        **kwargs: Any,
    ) -> Any:
        url = path if absolute else f"{self._base_url}{path}"
        try:
            response = await self._http.request(method, url, timeout=self._timeout, **kwargs)
        except httpx.HTTPError as exc:
            self._logger.warning("backend_request_failed", method=method, url=url, error=str(exc))
            raise TransportError(
                f"{method} {url} failed: {type(exc).__name__}: {exc}",
                provider_name=provider,
            ) from exc

        if response.status_code == 404:
            raise NotFoundError(backend_error_detail(response), provider_name=provider)
        if response.status_code in (400, 422):
            raise ValidationError(backend_error_detail(response), provider_name=provider)
        if not response.is_success:
            raise TransportError(
                f"HTTP {response.status_code} from {method} {url} ({backend_error_detail(response)})",
                provider_name=provider,
                status_code=response.status_code,
            )

        if not expect_body:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise TransportError(
                f"Non-JSON response from {method} {url}",
                provider_name=provider,
                status_code=response.status_code,
            ) from exc

    @staticmethod
    def _validate(model: type[pydantic.BaseModel], body: Any, *, provider: str) -> Any:
        try:
            return model.model_validate(body)
        except pydantic.ValidationError as exc:
            raise TransportError(
                f"Malformed {model.__name__}: {exc.error_count()} validation error(s)",
                provider_name=provider,
            ) from exc
