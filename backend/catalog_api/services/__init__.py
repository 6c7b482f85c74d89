"""Service layer helpers for the queue and background tasks."""

from .queue import JobQueueError, JobQueueService

__all__ = ["JobQueueError", "JobQueueService"]
