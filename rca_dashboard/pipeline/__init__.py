"""Sync-job tracking: per-job poll schedulers and the tracker that owns them."""

from rca_dashboard.pipeline.job_tracker import JobTracker
from rca_dashboard.pipeline.poll_scheduler import PollScheduler, SchedulerState

__all__ = ["JobTracker", "PollScheduler", "SchedulerState"]
