"""Job tracker: owns every sync job the operator started and its poller.

The tracker is the single writer of the ``job_id → JobRecord`` map.  Only
:meth:`JobTracker.start_job` and the poll schedulers' update callbacks ever
write it; everybody else reads immutable snapshots or subscribes to
updates.

# ─── DATA FLOW ────────────────────────────────────────────────────────
#
#   UI / CLI ──start_job(config)──→ JobTracker ──start()──→ status client
#                                      │
#                                      ├─ insert JobRecord
#                                      └─ attach PollScheduler(job_id)
#                                               │ poll() every interval
#                                               ▼
#   listeners ←──(job_id, record)── _apply_update(job_id, record)
#
# Sync listeners run inline.  A coroutine returned by an async listener is
# queued on that listener's own delivery task, so a slow subscriber (a
# browser that stopped reading its socket) never holds up a poll loop.  Its
# queue is bounded; updates beyond the backlog are dropped and logged.
#
# Completion is never inferred locally (e.g. from processed == discovered);
# only the backend's own COMPLETED / FAILED status ends a job.
#
# Teardown: ``async with JobTracker(...) as tracker:`` cancels every
# scheduler on exit, whichever way the block is left.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Coroutine, Mapping
from types import MappingProxyType, TracebackType
from typing import Any

import structlog

from rca_dashboard.interfaces.job_status_client import IJobStatusClient
from rca_dashboard.models.job import JobConfig, JobRecord, SyncType
from rca_dashboard.pipeline.poll_scheduler import (
    DEFAULT_POLL_INTERVAL,
    PollScheduler,
    SchedulerState,
    SleepFn,
)
from rca_dashboard.utils.errors import TransportError
from rca_dashboard.utils.logging import get_logger

# Receives (job_id, record) for every applied snapshot.  May be sync or async.
Listener = Callable[[str, JobRecord], "Awaitable[None] | None"]

# (job_id, coroutine returned by an async listener) awaiting delivery.
_Delivery = tuple[str, Coroutine[Any, Any, Any]]

DEFAULT_LISTENER_BACKLOG = 100


class JobTracker:
    """Tracks concurrently running sync jobs, one poll scheduler per job.

    Parameters
    ----------
    client:
        Backend status client (start + poll).
    interval:
        Seconds between polls of one job.
    max_retries:
        Transport-failure retries per tick before a job is left stalled.
    retry_backoff:
        Base backoff delay in seconds for those retries.
    sleep:
        Awaitable sleep handed to every scheduler.
    listener_backlog:
        Undelivered updates kept per async listener before new ones are
        dropped.
    """

    def __init__(
        self,
        client: IJobStatusClient,
        interval: float = DEFAULT_POLL_INTERVAL,
        max_retries: int = 0,
        retry_backoff: float = 1.0,
        sleep: SleepFn = asyncio.sleep,
        listener_backlog: int = DEFAULT_LISTENER_BACKLOG,
    ) -> None:
        if listener_backlog <= 0:
            raise ValueError(f"listener_backlog must be positive, got {listener_backlog}")

        self._client = client
        self._interval = interval
        self._max_retries = max_retries
        self._retry_backoff = retry_backoff
        self._sleep = sleep
        self._listener_backlog = listener_backlog

        self._jobs: dict[str, JobRecord] = {}
        self._schedulers: dict[str, PollScheduler] = {}
        self._listeners: list[Listener] = []
        self._deliveries: dict[Listener, tuple[asyncio.Queue[_Delivery], asyncio.Task[None]]] = {}
        self._closed = False
        self._logger: structlog.BoundLogger = get_logger(__name__)

    async def __aenter__(self) -> JobTracker:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.teardown()

    # ------------------------------------------------------------------
    # Starting jobs
    # ------------------------------------------------------------------

    async def start_job(self, config: JobConfig) -> str:
        """Start a sync job and begin watching it.

        Returns the backend-assigned id as soon as the job exists; does not
        wait for completion.

        Raises
        ------
        ValidationError
            The backend rejected ``config``.  Nothing is tracked.
        TransportError
            The start request failed, or the backend returned an id that
            is already being tracked.  Nothing new is tracked.
        RuntimeError
            The tracker has already been torn down.
        """
        if self._closed:
            raise RuntimeError("JobTracker has been torn down")

        record = (await self._client.start(config)).with_start_time()
        job_id = record.job_id

        if job_id in self._jobs:
            self._logger.error("duplicate_sync_id", sync_id=job_id)
            raise TransportError(
                f"Backend returned sync id {job_id} which is already tracked",
                provider_name=self._client.get_provider_name(),
            )

        self._jobs[job_id] = record

        if self._closed:
            # Torn down while the start request was in flight: keep the
            # record for visibility but attach no poller.
            self._logger.warning("sync_started_after_teardown", sync_id=job_id)
            return job_id

        scheduler = PollScheduler(
            job_id,
            self._client,
            on_update=lambda snapshot: self._apply_update(job_id, snapshot),
            interval=self._interval,
            max_retries=self._max_retries,
            retry_backoff=self._retry_backoff,
            sleep=self._sleep,
        )
        self._schedulers[job_id] = scheduler
        scheduler.start()

        self._logger.info(
            "sync_tracked",
            sync_id=job_id,
            sync_type=config.sync_type.value,
            active=self.active_count,
        )
        self._notify(job_id, record)
        return job_id

    async def start_job_from_text(
        self,
        sync_type: str | SyncType,
        spaces_text: str | None = "",
        tags_text: str | None = "",
    ) -> str:
        """Start a job from the dashboard's free-text, comma-separated inputs."""
        return await self.start_job(JobConfig.from_text(sync_type, spaces_text, tags_text))

    # ------------------------------------------------------------------
    # Reading state
    # ------------------------------------------------------------------

    def get_snapshot(self) -> Mapping[str, JobRecord]:
        """Return a read-only copy of every tracked job, keyed by id."""
        return MappingProxyType(dict(self._jobs))

    def get_job(self, job_id: str) -> JobRecord | None:
        return self._jobs.get(job_id)

    def scheduler_state(self, job_id: str) -> SchedulerState | None:
        scheduler = self._schedulers.get(job_id)
        return scheduler.state if scheduler is not None else None

    def is_stalled(self, job_id: str) -> bool:
        """True when polling gave up while the job still looked RUNNING.

        A stalled record is frozen at its last good snapshot and would
        otherwise be indistinguishable from a slow but healthy job.
        """
        record = self._jobs.get(job_id)
        scheduler = self._schedulers.get(job_id)
        if record is None or scheduler is None:
            return False
        return scheduler.state is SchedulerState.FAILED and not record.is_terminal

    async def wait_for(self, job_id: str) -> SchedulerState | None:
        """Wait until polling of ``job_id`` has stopped; return why it stopped."""
        scheduler = self._schedulers.get(job_id)
        if scheduler is None:
            return None
        return await scheduler.wait()

    @property
    def active_count(self) -> int:
        """Number of jobs whose scheduler is still ticking."""
        return sum(1 for s in self._schedulers.values() if not s.is_finished)

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> None:
        """Receive ``(job_id, record)`` for every applied snapshot."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        """Stop notifying ``listener`` and drop its undelivered updates."""
        if listener in self._listeners:
            self._listeners.remove(listener)
        self._stop_delivery(listener)

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def discard(self, job_id: str) -> bool:
        """Stop watching a job and forget it.  Returns False for unknown ids."""
        scheduler = self._schedulers.pop(job_id, None)
        record = self._jobs.pop(job_id, None)
        if scheduler is not None:
            scheduler.cancel()
            await scheduler.wait()
        if record is None:
            return False
        self._logger.info("sync_discarded", sync_id=job_id)
        return True

    async def teardown(self) -> None:
        """Cancel every scheduler and delivery task and wait for them.  Idempotent."""
        if self._closed and not self.active_count and not self._deliveries:
            return
        self._closed = True

        schedulers = list(self._schedulers.values())
        for scheduler in schedulers:
            scheduler.cancel()
        await asyncio.gather(*(s.wait() for s in schedulers))

        current = asyncio.current_task()
        drains = [self._stop_delivery(listener) for listener in list(self._deliveries)]
        await asyncio.gather(
            *(task for task in drains if task is not None and task is not current),
            return_exceptions=True,
        )

        self._logger.info("tracker_torn_down", jobs=len(self._jobs), schedulers=len(schedulers))

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _apply_update(self, job_id: str, snapshot: JobRecord) -> None:
        current = self._jobs.get(job_id)
        if current is None:
            return  # discarded while the poll was in flight

        merged = current.merged_with(snapshot)
        if merged is current or merged == current:
            return  # nothing changed; listeners are not re-notified

        self._jobs[job_id] = merged
        if merged.is_terminal:
            self._logger.info(
                "sync_finished",
                sync_id=job_id,
                status=merged.status.value,
                processed=merged.processed,
                failed=merged.failed,
            )
        self._notify(job_id, merged)

    def _notify(self, job_id: str, record: JobRecord) -> None:
        # Iterate over a copy: a listener may unsubscribe itself or another.
        for listener in list(self._listeners):
            if listener not in self._listeners:
                continue
            try:
                result = listener(job_id, record)
            except Exception as exc:
                self._log_listener_error(listener, job_id, exc)
                continue
            if asyncio.iscoroutine(result):
                self._enqueue(listener, job_id, result)

    def _enqueue(self, listener: Listener, job_id: str, coro: Coroutine[Any, Any, Any]) -> None:
        delivery = self._deliveries.get(listener)
        if delivery is None:
            queue: asyncio.Queue[_Delivery] = asyncio.Queue(maxsize=self._listener_backlog)
            task = asyncio.create_task(
                self._deliver(listener, queue),
                name=f"deliver-{_callback_name(listener)}",
            )
            delivery = self._deliveries[listener] = (queue, task)

        queue = delivery[0]
        try:
            queue.put_nowait((job_id, coro))
        except asyncio.QueueFull:
            coro.close()
            self._logger.warning(
                "listener_backlog_full",
                sync_id=job_id,
                backlog=queue.maxsize,
                callback=_callback_name(listener),
            )

    async def _deliver(self, listener: Listener, queue: asyncio.Queue[_Delivery]) -> None:
        """Await one listener's coroutines in the order they were produced."""
        while True:
            job_id, coro = await queue.get()
            try:
                await coro
            except Exception as exc:
                self._log_listener_error(listener, job_id, exc)

    def _stop_delivery(self, listener: Listener) -> asyncio.Task[None] | None:
        delivery = self._deliveries.pop(listener, None)
        if delivery is None:
            return None
        queue, task = delivery
        while not queue.empty():
            _, coro = queue.get_nowait()
            coro.close()
        task.cancel()
        return task

    def _log_listener_error(self, listener: Listener, job_id: str, exc: Exception) -> None:
        self._logger.warning(
            "listener_callback_error",
            sync_id=job_id,
            error=str(exc),
            callback=_callback_name(listener),
        )


def _callback_name(listener: Listener) -> str:
    return getattr(listener, "__name__", repr(listener))
