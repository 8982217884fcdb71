"""Progress callbacks."""

from .service import EVENT_ERROR, EVENT_PROGRESS, EVENT_READY, JobNotifier, ProgressReporter

__all__ = ["EVENT_ERROR", "EVENT_PROGRESS", "EVENT_READY", "JobNotifier", "ProgressReporter"]
