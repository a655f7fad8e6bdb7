"""Priority job queue module."""

from .models import (
    Job,
    JobType,
    JobPriority,
    JobState,
    JobStatus,
    EnqueueReceipt,
    ShutdownReport,
)
from .retry import RetryPolicy
from .queue import JobQueue, QueueConfig
from .handlers import build_handlers

__all__ = [
    "Job",
    "JobType",
    "JobPriority",
    "JobState",
    "JobStatus",
    "EnqueueReceipt",
    "ShutdownReport",
    "RetryPolicy",
    "JobQueue",
    "QueueConfig",
    "build_handlers",
]
