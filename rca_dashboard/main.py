"""FastAPI application entry point and component wiring.

``_build_all`` creates the shared ``httpx.AsyncClient``, both backend
clients and the :class:`JobTracker`.  The application lifespan owns them:
on shutdown the tracker is torn down first (no poll task outlives the app),
then the HTTP client is closed.

Run locally with::

    python -m rca_dashboard.main
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import httpx
import structlog
import uvicorn
from fastapi import FastAPI, WebSocket

from rca_dashboard import __version__
from rca_dashboard.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from rca_dashboard.api.routes import router as api_router
from rca_dashboard.api.websocket import websocket_jobs
from rca_dashboard.config.settings import Settings
from rca_dashboard.pipeline.job_tracker import JobTracker
from rca_dashboard.providers.backend.http_job_status_client import HttpJobStatusClient
from rca_dashboard.providers.backend.rca_api_client import RcaApiClient
from rca_dashboard.utils.errors import ConfigurationError
from rca_dashboard.utils.logging import configure_logging, get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


def _build_all(
    app_settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict[str, Any]:
    """Construct every long-lived component from settings.

    Parameters
    ----------
    app_settings:
        Resolved settings.
    transport:
        Optional httpx transport; tests pass an ``httpx.MockTransport``.

    Raises
    ------
    ConfigurationError
        If ``rca_api_base_url`` is not an absolute http(s) URL.
    """
    try:
        base_url = httpx.URL(app_settings.rca_api_base_url)
    except httpx.InvalidURL:
        base_url = httpx.URL("")
    if base_url.scheme not in ("http", "https") or not base_url.host:
        raise ConfigurationError(
            f"RCA_API_BASE_URL must be an absolute http(s) URL, got {app_settings.rca_api_base_url!r}"
        )

    http_client = httpx.AsyncClient(
        timeout=app_settings.request_timeout_seconds,
        headers={"Content-Type": "application/json"},
        transport=transport,
    )
    status_client = HttpJobStatusClient(
        http_client,
        base_url=app_settings.rca_api_base_url,
        timeout=app_settings.request_timeout_seconds,
    )
    rca_client = RcaApiClient(
        http_client,
        base_url=app_settings.rca_api_base_url,
        timeout=app_settings.request_timeout_seconds,
    )
    job_tracker = JobTracker(
        status_client,
        interval=app_settings.poll_interval_seconds,
        max_retries=app_settings.poll_max_retries,
        retry_backoff=app_settings.poll_retry_backoff_seconds,
    )
    return {
        "http_client": http_client,
        "status_client": status_client,
        "rca_client": rca_client,
        "job_tracker": job_tracker,
    }


def create_app(
    app_settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Build and configure the FastAPI application."""
    resolved = app_settings or Settings()

    @asynccontextmanager
    async def _lifespan(application: FastAPI):  # noqa: ANN202
        components = _build_all(resolved, transport=transport)
        for key, value in components.items():
            setattr(application.state, key, value)

        _logger.info(
            "app_startup",
            version=__version__,
            environment=resolved.app_env,
            backend=resolved.rca_api_base_url,
            poll_interval=resolved.poll_interval_seconds,
        )
        try:
            yield
        finally:
            tracker: JobTracker = components["job_tracker"]
            await tracker.teardown()
            http_client: httpx.AsyncClient = components["http_client"]
            await http_client.aclose()
            _logger.info("app_shutdown", message="Pollers stopped, HTTP client closed")

    application = FastAPI(
        title="RCA Dashboard API",
        version=__version__,
        description=(
            "Start ingestion syncs of post-mortem pages, watch their progress, "
            "and search previously ingested incidents."
        ),
        lifespan=_lifespan,
    )

    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application, allowed_origins=resolved.get_cors_origins())

    application.include_router(api_router)

    @application.websocket("/ws/jobs")
    async def ws_jobs(websocket: WebSocket) -> None:
        await websocket_jobs(websocket)

    return application


if __name__ == "__main__":
    _settings = Settings()
    configure_logging(_settings.log_level)
    uvicorn.run(
        create_app(_settings),
        host=_settings.app_host,
        port=_settings.app_port,
    )
