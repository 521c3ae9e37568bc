"""Refresh scheduling for historical queries."""

from treemon.scheduling.refresh import HistoryTracker, RefreshConfig, RefreshScheduler, SchedulerState

__all__ = ["HistoryTracker", "RefreshConfig", "RefreshScheduler", "SchedulerState"]
