"""Scheduling of recurring sync runs."""

from .apsched_adapter import SYNC_JOB_ID, APSchedulerAdapter

__all__ = ["APSchedulerAdapter", "SYNC_JOB_ID"]
