"""WebSocket endpoint streaming sync-job updates to the dashboard.

On connect the client receives the full snapshot, then one message per
applied poll result::

    {"type": "snapshot", "jobs": [JobView, ...]}
    {"type": "update", "job": JobView}

The browser never polls the dashboard itself; the tracker's listener
interface pushes every change.  Sends run on the tracker's per-listener
delivery task, so a client that stops reading only loses its own updates.
"""

from __future__ import annotations

import contextlib

import structlog
from fastapi import WebSocket, WebSocketDisconnect

from rca_dashboard.api.routes import build_job_view
from rca_dashboard.models.job import JobRecord
from rca_dashboard.pipeline.job_tracker import JobTracker
from rca_dashboard.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


async def websocket_jobs(websocket: WebSocket) -> None:
    """Push tracker snapshots and updates to one WebSocket client."""
    tracker: JobTracker = websocket.app.state.job_tracker

    await websocket.accept()
    _logger.info("websocket_connected")

    async def _on_update(job_id: str, record: JobRecord) -> None:
        # The socket may close between the update and the send; the
        # finally block below unsubscribes.
        with contextlib.suppress(Exception):
            view = build_job_view(tracker, record)
            await websocket.send_json(
                {"type": "update", "job": view.model_dump(mode="json", by_alias=True)}
            )

    tracker.subscribe(_on_update)

    try:
        jobs = [
            build_job_view(tracker, record).model_dump(mode="json", by_alias=True)
            for record in tracker.get_snapshot().values()
        ]
        await websocket.send_json({"type": "snapshot", "jobs": jobs})

        while True:
            await websocket.receive_text()

    except WebSocketDisconnect:
        _logger.info("websocket_disconnected")

    finally:
        tracker.unsubscribe(_on_update)
