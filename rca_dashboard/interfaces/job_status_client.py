"""Abstract base class for the sync-job status service.

The job tracker only needs two operations from the backend: start a job
and read its current status.  Keeping the contract behind an ABC lets the
tracker be driven by the real HTTP client in production and by an
``AsyncMock`` or in-memory fake in tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from rca_dashboard.models.job import JobConfig, JobRecord


class IJobStatusClient(ABC):
    """Contract for starting ingestion jobs and polling their status.

    Implementations hold no job state of their own; every call is a
    network round trip.
    """

    @abstractmethod
    async def start(self, config: JobConfig) -> JobRecord:
        """Ask the backend to start a new ingestion job.

        Parameters
        ----------
        config:
            Sync mode plus space / tag filters.

        Returns
        -------
        JobRecord
            The initial snapshot: status ``RUNNING`` and zero counts.

        Raises
        ------
        TransportError
            Network failure, timeout, or 5xx response.
        ValidationError
            The backend rejected the config as malformed.
        """

    @abstractmethod
    async def poll(self, job_id: str) -> JobRecord:
        """Fetch the full current snapshot of a job (never a diff).

        Parameters
        ----------
        job_id:
            The ``syncId`` assigned by the backend at creation.

        Raises
        ------
        TransportError
            Network failure, timeout, or 5xx response.
        NotFoundError
            The backend no longer recognises ``job_id``.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier used in logs and error messages."""
