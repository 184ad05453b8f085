"""Shared pytest fixtures for the RCA dashboard test suite."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import pytest

from rca_dashboard.config.settings import Settings
from rca_dashboard.interfaces.job_status_client import IJobStatusClient
from rca_dashboard.models.job import JobConfig, JobRecord, JobStatus
from rca_dashboard.utils.errors import TransportError

# ---------------------------------------------------------------------------
# Manual clock
# ---------------------------------------------------------------------------


async def _settle(rounds: int = 20) -> None:
    """Let every ready task run until it blocks again."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class ManualClock:
    """Drop-in replacement for ``asyncio.sleep`` driven by :meth:`advance`.

    Sleepers wake in deadline order; between two wake-ups every runnable
    task gets to run, so a woken poller can register its next sleep before
    the clock moves on.
    """

    def __init__(self) -> None:
        self.now = 0.0
        self._seq = 0
        self._waiters: list[tuple[float, int, asyncio.Future[None]]] = []

    async def sleep(self, delay: float) -> None:
        self._seq += 1
        entry = (self.now + delay, self._seq, asyncio.get_running_loop().create_future())
        self._waiters.append(entry)
        try:
            await entry[2]
        finally:
            if entry in self._waiters:
                self._waiters.remove(entry)

    @property
    def pending(self) -> int:
        """Number of tasks currently asleep on this clock."""
        return sum(1 for _, _, fut in self._waiters if not fut.done())

    async def advance(self, seconds: float) -> None:
        target = self.now + seconds
        await _settle()
        while True:
            due = sorted(
                (w for w in self._waiters if w[0] <= target and not w[2].done()),
                key=lambda w: (w[0], w[1]),
            )
            if not due:
                break
            entry = due[0]
            self._waiters.remove(entry)
            self.now = entry[0]
            entry[2].set_result(None)
            await _settle()
        self.now = target
        await _settle()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


# ---------------------------------------------------------------------------
# Scripted status client
# ---------------------------------------------------------------------------


class FakeStatusClient(IJobStatusClient):
    """Status client whose answers are scripted per test.

    ``poll`` consumes the job's script one outcome per call; the last
    outcome repeats.  An outcome that is an exception instance is raised.
    """

    def __init__(self) -> None:
        self.start_outcomes: list[JobRecord | Exception] = []
        self.poll_scripts: dict[str, list[JobRecord | Exception]] = {}
        self.start_calls: list[JobConfig] = []
        self.poll_calls: list[str] = []
        # Optional gates: the call blocks until the event is set.
        self.start_gate: asyncio.Event | None = None
        self.poll_gates: dict[str, asyncio.Event] = {}

    def queue_start(self, *outcomes: JobRecord | Exception) -> None:
        self.start_outcomes.extend(outcomes)

    def script_polls(self, job_id: str, *outcomes: JobRecord | Exception) -> None:
        self.poll_scripts.setdefault(job_id, []).extend(outcomes)

    def get_provider_name(self) -> str:
        return "fake"

    async def start(self, config: JobConfig) -> JobRecord:
        self.start_calls.append(config)
        if self.start_gate is not None:
            await self.start_gate.wait()
        outcome = self.start_outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def poll(self, job_id: str) -> JobRecord:
        self.poll_calls.append(job_id)
        gate = self.poll_gates.get(job_id)
        if gate is not None:
            await gate.wait()
        script = self.poll_scripts.get(job_id)
        if not script:
            raise TransportError(f"no scripted poll for {job_id}", provider_name="fake")
        outcome = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def fake_client() -> FakeStatusClient:
    return FakeStatusClient()


# ---------------------------------------------------------------------------
# Model factories
# ---------------------------------------------------------------------------


STARTED_AT = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)  # noqa: UP017


def _make_record(
    job_id: str = "abc123",
    status: JobStatus = JobStatus.RUNNING,
    discovered: int = 0,
    processed: int = 0,
    failed: int = 0,
    message: str = "",
    **extra: Any,
) -> JobRecord:
    data: dict[str, Any] = {
        "syncId": job_id,
        "status": status,
        "message": message,
        "pagesFetched": discovered,
        "pagesProcessed": processed,
        "pagesFailed": failed,
        "startedAt": STARTED_AT,
    }
    data.update(extra)
    return JobRecord.model_validate(data)


@pytest.fixture
def make_record() -> Callable[..., JobRecord]:
    """Factory for :class:`JobRecord` snapshots with test defaults."""
    return _make_record


@pytest.fixture
def test_settings() -> Callable[..., Settings]:
    """Build a Settings instance isolated from the environment's .env file."""

    def _build(**overrides: Any) -> Settings:
        defaults: dict[str, Any] = {
            "rca_api_base_url": "http://rca.test/api",
            "poll_interval_seconds": 0.01,
            "poll_max_retries": 0,
            "poll_retry_backoff_seconds": 0.0,
        }
        defaults.update(overrides)
        return Settings(_env_file=None, **defaults)

    return _build
