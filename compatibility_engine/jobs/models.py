"""
Job data types for the priority job queue.

Lifecycle:
    queued -> processing -> completed
    queued -> processing -> queued (retry after backoff) ... -> failed
    queued -> cancelled
"""

import uuid
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional


class JobType(Enum):
    """Kinds of asynchronous work the engine accepts."""
    BULK_COMPATIBILITY = "bulk-compatibility"
    GROUP_ANALYSIS = "group-analysis"
    ALGORITHM_COMPARISON = "algorithm-comparison"
    CACHE_WARM = "cache-warm"


class JobPriority(Enum):
    """Priority lanes, highest first."""
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"

    @classmethod
    def ordered(cls) -> List["JobPriority"]:
        return [cls.HIGH, cls.NORMAL, cls.LOW]


class JobState(Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED, JobState.CANCELLED)


# Per-type attempt timeouts in milliseconds
DEFAULT_TIMEOUTS_MS: Dict[str, int] = {
    JobType.BULK_COMPATIBILITY.value: 300000,
    JobType.GROUP_ANALYSIS.value: 600000,
    JobType.ALGORITHM_COMPARISON.value: 900000,
    JobType.CACHE_WARM.value: 180000,
}


@dataclass
class Job:
    """
    One unit of asynchronous work.

    Attributes:
        id: Job identifier
        type: JobType value
        priority: JobPriority value
        payload: Handler input
        retry_count: Retries performed so far
        max_retries: Retries allowed after the first attempt
        timeout_ms: Budget of a single attempt
        state: Current JobState
        progress: Latest progress reported by the handler
        result: Handler result once completed
        error: Last error message
        created_at / started_at / completed_at: Timestamps (seconds since epoch)
        available_at: Earliest dispatch time (retry backoff)
        processing_time: Duration of the last attempt in seconds
    """
    type: str
    payload: Dict[str, Any] = field(default_factory=dict)
    priority: str = JobPriority.NORMAL.value
    id: str = field(default_factory=lambda: f"job_{uuid.uuid4().hex[:12]}")
    retry_count: int = 0
    max_retries: Optional[int] = None
    timeout_ms: Optional[int] = None
    state: JobState = JobState.QUEUED
    progress: Dict[str, Any] = field(default_factory=dict)
    result: Any = None
    error: Optional[str] = None
    created_at: Optional[float] = None
    started_at: Optional[float] = None
    completed_at: Optional[float] = None
    available_at: float = 0.0
    processing_time: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["state"] = self.state.value
        return d


@dataclass
class JobStatus:
    """Snapshot of a job returned by JobQueue.status."""
    job_id: str
    state: str
    progress: Dict[str, Any]
    result: Any
    error: Optional[str]
    retry_count: int
    queue_position: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class EnqueueReceipt:
    """Returned by JobQueue.submit."""
    job_id: str
    queue_position: int
    estimated_start: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ShutdownReport:
    """
    Outcome of JobQueue.shutdown.

    Attributes:
        clean: True if no job was still running after the grace period
        terminated_job_ids: Jobs still running at the deadline, marked failed
        pending_job_ids: Jobs never dispatched
        waited_seconds: Time spent waiting for workers
    """
    clean: bool
    terminated_job_ids: List[str] = field(default_factory=list)
    pending_job_ids: List[str] = field(default_factory=list)
    waited_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
