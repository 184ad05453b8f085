"""Abstract contracts for the external services the dashboard depends on."""

from rca_dashboard.interfaces.job_status_client import IJobStatusClient

__all__ = ["IJobStatusClient"]
