"""Per-job recurring poll loop.

One :class:`PollScheduler` watches exactly one sync job.  It waits one
period, polls the backend, publishes the snapshot to its owner, and repeats
until the backend reports a terminal status, polling fails for good, or the
owner cancels it.

# ─── HOW A SCHEDULER RUNS ─────────────────────────────────────────────
#
#   start()
#     └─ task: loop
#          sleep(interval)
#          poll(job_id) ──TransportError──→ backoff + retry (bounded)
#             │            ──NotFoundError──→ FAILED (stop, record frozen)
#             ▼
#          on_update(record)
#          record terminal? ──yes──→ COMPLETED (stop)
#
# - Each job gets its own asyncio task, so a slow or failing poll for one
#   job never delays another job's tick.
# - A tick never overlaps the previous one for the same job: the next
#   sleep starts only after the previous poll resolved.
# - cancel() can be called at any time; a result that lands after
#   cancellation is dropped, never published.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from enum import Enum

import structlog

from rca_dashboard.interfaces.job_status_client import IJobStatusClient
from rca_dashboard.models.job import JobRecord
from rca_dashboard.utils.errors import NotFoundError, TransportError
from rca_dashboard.utils.logging import get_logger

# Called with every successfully polled snapshot.  May be sync or async.
UpdateCallback = Callable[[JobRecord], "Awaitable[None] | None"]
SleepFn = Callable[[float], Awaitable[None]]

DEFAULT_POLL_INTERVAL = 2.0


class SchedulerState(str, Enum):  # noqa: UP042
    """Lifecycle of a poll scheduler."""

    PENDING = "PENDING"      # Created, not started
    ACTIVE = "ACTIVE"        # Ticking
    COMPLETED = "COMPLETED"  # Backend reported a terminal status
    FAILED = "FAILED"        # Finished in error; last good record is frozen
    CANCELLED = "CANCELLED"  # Stopped by the owner

    @property
    def is_finished(self) -> bool:
        return self not in (SchedulerState.PENDING, SchedulerState.ACTIVE)


class PollScheduler:
    """Polls one job at a fixed cadence until it is terminal.

    Parameters
    ----------
    job_id:
        The backend-assigned sync id to watch.
    client:
        Status client used for every tick.
    on_update:
        Receives each polled :class:`JobRecord`.  Errors it raises are
        logged and do not stop polling.
    interval:
        Seconds between ticks.
    max_retries:
        Extra attempts after a :class:`TransportError` before giving up.
        ``NotFoundError`` is never retried.
    retry_backoff:
        Base delay for exponential backoff between retries
        (``retry_backoff * 2**attempt``).
    sleep:
        Awaitable sleep used for every wait.  Tests inject a manual clock.
    """

    def __init__(
        self,
        job_id: str,
        client: IJobStatusClient,
        on_update: UpdateCallback,
        interval: float = DEFAULT_POLL_INTERVAL,
        max_retries: int = 0,
        retry_backoff: float = 1.0,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        if max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {max_retries}")

        self._job_id = job_id
        self._client = client
        self._on_update = on_update
        self._interval = interval
        self._max_retries = max_retries
        self._retry_backoff = retry_backoff
        self._sleep = sleep

        self._state = SchedulerState.PENDING
        self._error: BaseException | None = None
        self._ticks = 0
        self._task: asyncio.Task[None] | None = None
        self._logger: structlog.BoundLogger = get_logger(__name__).bind(sync_id=job_id)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def job_id(self) -> str:
        return self._job_id

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def is_finished(self) -> bool:
        return self._state.is_finished

    @property
    def error(self) -> BaseException | None:
        """The failure that stopped polling, if the scheduler finished in error."""
        return self._error

    @property
    def ticks(self) -> int:
        """Number of poll requests issued so far, retries included."""
        return self._ticks

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Begin ticking in a background task on the running loop."""
        if self._state is SchedulerState.CANCELLED:
            return
        if self._task is not None:
            raise RuntimeError(f"Scheduler for {self._job_id} already started")

        self._state = SchedulerState.ACTIVE
        self._task = asyncio.create_task(self._run(), name=f"poll-sync-{self._job_id}")
        self._logger.debug("scheduler_started", interval=self._interval)

    def cancel(self) -> None:
        """Stop polling now.  Safe to call any number of times, in any state."""
        if not self._state.is_finished:
            self._state = SchedulerState.CANCELLED
            self._logger.info("scheduler_cancelled", ticks=self._ticks)
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def wait(self) -> SchedulerState:
        """Wait until the background task has exited; return the final state."""
        if self._task is not None:
            await asyncio.wait({self._task})
        return self._state

    # ------------------------------------------------------------------
    # Poll loop
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        # The task inherited a copy of the starter's context (e.g. the
        # request_id of the POST that started the job); poll events outlive
        # that request and must not carry it.
        structlog.contextvars.clear_contextvars()
        try:
            while self._state is SchedulerState.ACTIVE:
                await self._sleep(self._interval)
                record = await self._poll_with_retry()
                if record is None or self._state is not SchedulerState.ACTIVE:
                    return

                await self._publish(record)

                if record.is_terminal:
                    self._finish(SchedulerState.COMPLETED)
                    self._logger.info(
                        "scheduler_finished",
                        status=record.status.value,
                        ticks=self._ticks,
                    )
                    return
        except asyncio.CancelledError:
            # Task cancelled from outside cancel(), e.g. event loop shutdown.
            if self._state is SchedulerState.ACTIVE:
                self._state = SchedulerState.CANCELLED
            raise
        except Exception as exc:
            self._logger.exception("scheduler_crashed", error=str(exc))
            self._finish(SchedulerState.FAILED, exc)

    async def _poll_with_retry(self) -> JobRecord | None:
        """Poll once, retrying transport failures with backoff.

        Returns ``None`` when polling has to stop (state is then FAILED).
        """
        attempt = 0
        while True:
            self._ticks += 1
            self._logger.debug("poll_tick", tick=self._ticks, attempt=attempt)
            try:
                return await self._client.poll(self._job_id)
            except NotFoundError as exc:
                self._logger.warning("poll_target_gone", error=str(exc))
                self._finish(SchedulerState.FAILED, exc)
                return None
            except TransportError as exc:
                if attempt >= self._max_retries:
                    self._logger.warning(
                        "poll_failed",
                        error=str(exc),
                        attempts=attempt + 1,
                    )
                    self._finish(SchedulerState.FAILED, exc)
                    return None

                delay = self._retry_backoff * (2 ** attempt)
                attempt += 1
                self._logger.info(
                    "poll_retry",
                    error=str(exc),
                    attempt=attempt,
                    max_retries=self._max_retries,
                    delay=delay,
                )
                await self._sleep(delay)
                if self._state is not SchedulerState.ACTIVE:
                    return None

    async def _publish(self, record: JobRecord) -> None:
        try:
            result = self._on_update(record)
            if asyncio.iscoroutine(result):
                await result
        except Exception as exc:
            self._logger.warning(
                "update_callback_error",
                error=str(exc),
                callback=getattr(self._on_update, "__name__", repr(self._on_update)),
            )

    def _finish(self, state: SchedulerState, error: BaseException | None = None) -> None:
        if self._state is SchedulerState.ACTIVE:
            self._state = state
            self._error = error
