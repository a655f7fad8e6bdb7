"""
Priority job queue with a fixed worker pool.

Scheduling Model:
- Three FIFO lanes (high, normal, low); a free worker always takes the
  oldest dispatchable job of the highest non-empty lane
- Running jobs are never preempted
- Retries go to the back of their lane and become dispatchable after the
  RetryPolicy backoff
- Each attempt runs under its timeout budget; a timeout is a failure
- Only queued jobs can be cancelled
- Shutdown stops dispatch, waits a bounded grace period, then marks still
  running jobs as terminated

All queue state is guarded by one threading.Condition.
"""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field, asdict
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from ..errors import JobNotFoundError, JobTimeoutError, ValidationError
from ..providers import ResultStore
from .models import (
    DEFAULT_TIMEOUTS_MS,
    EnqueueReceipt,
    Job,
    JobPriority,
    JobState,
    JobStatus,
    JobType,
    ShutdownReport,
)
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

ProgressReporter = Callable[[Dict[str, Any]], None]
JobHandler = Callable[[Job, ProgressReporter], Any]

DEFAULT_PROCESSING_SECONDS = 30.0


@dataclass
class QueueConfig:
    """
    Configuration for the job queue.

    Attributes:
        worker_pool_size: Number of worker threads
        timeout_ms: Attempt timeout per job type
        shutdown_grace_seconds: Default wait for running jobs on shutdown
        max_retained_jobs: Terminal jobs kept for status queries
    """
    worker_pool_size: int = 3
    timeout_ms: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_TIMEOUTS_MS))
    shutdown_grace_seconds: float = 30.0
    max_retained_jobs: int = 1000

    def validate(self) -> None:
        """Validate configuration values."""
        if self.worker_pool_size < 1:
            raise ValueError(f"worker_pool_size must be >= 1, got {self.worker_pool_size}")
        if self.max_retained_jobs < 1:
            raise ValueError("max_retained_jobs must be >= 1")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "QueueConfig":
        """Create from main config dictionary."""
        j = config.get("jobs", {}) or {}
        timeouts = dict(DEFAULT_TIMEOUTS_MS)
        timeouts.update(j.get("timeout_ms", {}) or {})
        return cls(
            worker_pool_size=j.get("worker_pool_size", 3),
            timeout_ms=timeouts,
            shutdown_grace_seconds=j.get("shutdown_grace_seconds", 30.0),
            max_retained_jobs=j.get("max_retained_jobs", 1000),
        )


class JobQueue:
    """
    Priority queue of jobs executed by a pool of worker threads.

    Attributes:
        config: QueueConfig
        retry_policy: RetryPolicy applied to every failed attempt
        result_store: Optional sink for completed results
    """

    def __init__(
        self,
        handlers: Dict[str, JobHandler],
        config: Optional[QueueConfig] = None,
        retry_policy: Optional[RetryPolicy] = None,
        result_store: Optional[ResultStore] = None,
        clock: Callable[[], float] = time.time
    ):
        self.config = config or QueueConfig()
        self.config.validate()
        self.retry_policy = retry_policy or RetryPolicy()
        self.retry_policy.validate()
        self.result_store = result_store
        self._handlers = dict(handlers)
        self._clock = clock

        self._cond = threading.Condition()
        self._lanes: Dict[str, Deque[Job]] = {p.value: deque() for p in JobPriority.ordered()}
        self._jobs: Dict[str, Job] = {}
        self._active: Dict[str, Job] = {}
        self._terminal_order: Deque[str] = deque()
        self._workers: List[threading.Thread] = []
        self._running = False
        self._stopped = False

        self._metrics = {
            "total_jobs": 0,
            "completed_jobs": 0,
            "failed_jobs": 0,
            "cancelled_jobs": 0,
            "retried_attempts": 0,
            "timed_out_attempts": 0,
        }
        self._processing_total = 0.0
        self._processing_count = 0

    def __enter__(self) -> "JobQueue":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Start the worker threads (no-op if already running)."""
        with self._cond:
            if self._running:
                return
            self._running = True
            self._stopped = False
            self._workers = []
            for i in range(self.config.worker_pool_size):
                worker = threading.Thread(target=self._worker_loop, name=f"job-worker-{i}", daemon=True)
                self._workers.append(worker)
                worker.start()
        logger.info(f"Started {self.config.worker_pool_size} job workers")

    def enqueue(self, job: Job) -> str:
        """
        Add a job to its priority lane.

        Args:
            job: Job to queue (defaults filled from config)

        Returns:
            Job id

        Raises:
            ValidationError: Unknown job type or priority, or duplicate id
        """
        if job.type not in self._handlers:
            raise ValidationError(f"No handler registered for job type: {job.type}")
        if job.priority not in self._lanes:
            raise ValidationError(f"Unknown priority: {job.priority}")

        now = self._clock()
        if job.max_retries is None:
            job.max_retries = self.retry_policy.max_retries
        if job.timeout_ms is None:
            job.timeout_ms = self.config.timeout_ms.get(
                job.type, DEFAULT_TIMEOUTS_MS[JobType.BULK_COMPATIBILITY.value])
        job.state = JobState.QUEUED
        job.created_at = job.created_at or now
        job.available_at = now

        with self._cond:
            if job.id in self._jobs:
                raise ValidationError(f"Duplicate job id: {job.id}")
            self._jobs[job.id] = job
            self._lanes[job.priority].append(job)
            self._metrics["total_jobs"] += 1
            self._cond.notify()

        logger.info(f"Queued job {job.id} ({job.type}, priority={job.priority})")
        return job.id

    def submit(
        self,
        job_type: str,
        payload: Dict[str, Any],
        priority: str = JobPriority.NORMAL.value,
        max_retries: Optional[int] = None,
        timeout_ms: Optional[int] = None
    ) -> EnqueueReceipt:
        """
        Create and queue a job.

        Returns:
            EnqueueReceipt with queue position and estimated start time
        """
        job = Job(
            type=job_type,
            payload=payload,
            priority=priority,
            max_retries=max_retries,
            timeout_ms=timeout_ms,
        )
        job_id = self.enqueue(job)
        with self._cond:
            position = self._queue_position(job) or 0
            average = self._average_processing_seconds()
        estimated_start = self._clock() + position / self.config.worker_pool_size * average
        return EnqueueReceipt(job_id=job_id, queue_position=position, estimated_start=estimated_start)

    def status(self, job_id: str) -> JobStatus:
        """
        Snapshot of a job.

        Raises:
            JobNotFoundError: Unknown (or no longer retained) job id
        """
        with self._cond:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(f"Unknown job id: {job_id}")
            return JobStatus(
                job_id=job.id,
                state=job.state.value,
                progress=dict(job.progress),
                result=job.result,
                error=job.error,
                retry_count=job.retry_count,
                queue_position=self._queue_position(job),
            )

    def wait(self, job_id: str, timeout: Optional[float] = None) -> JobStatus:
        """
        Block until a job reaches a terminal state or the timeout elapses.

        Returns early for a job left queued by shutdown(), since no worker
        will ever pick it up.

        Returns:
            JobStatus at return time
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while True:
                job = self._jobs.get(job_id)
                if job is None:
                    raise JobNotFoundError(f"Unknown job id: {job_id}")
                if job.state.is_terminal:
                    break
                if self._stopped and job.state == JobState.QUEUED:
                    break
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    break
                self._cond.wait(timeout=remaining)
        return self.status(job_id)

    def cancel(self, job_id: str) -> bool:
        """
        Cancel a job that is still queued.

        Returns:
            True if cancelled; False if unknown or already dispatched
        """
        with self._cond:
            job = self._jobs.get(job_id)
            if job is None or job.state != JobState.QUEUED:
                return False
            self._lanes[job.priority].remove(job)
            job.state = JobState.CANCELLED
            job.completed_at = self._clock()
            self._metrics["cancelled_jobs"] += 1
            self._retain(job)
            self._cond.notify_all()
        logger.info(f"Cancelled job {job_id}")
        return True

    def metrics(self) -> Dict[str, Any]:
        """Counters, lane sizes and average processing time."""
        with self._cond:
            metrics = dict(self._metrics)
            metrics["queue_sizes"] = {lane: len(jobs) for lane, jobs in self._lanes.items()}
            metrics["active_jobs"] = len(self._active)
            metrics["workers"] = len(self._workers)
            metrics["average_processing_seconds"] = self._average_processing_seconds()
        return metrics

    def shutdown(self, grace_seconds: Optional[float] = None) -> ShutdownReport:
        """
        Stop dispatching and wait for running jobs.

        Args:
            grace_seconds: Bound on the wait (config default if omitted)

        Returns:
            ShutdownReport naming jobs still running at the deadline
        """
        grace = self.config.shutdown_grace_seconds if grace_seconds is None else grace_seconds
        start = time.monotonic()
        with self._cond:
            self._running = False
            self._stopped = True
            self._cond.notify_all()
        logger.info(f"Shutting down job queue (grace={grace}s)")

        for worker in self._workers:
            remaining = max(0.0, grace - (time.monotonic() - start))
            worker.join(timeout=remaining)

        with self._cond:
            terminated = []
            for job in list(self._active.values()):
                job.state = JobState.FAILED
                job.error = "terminated: still running at shutdown"
                job.completed_at = self._clock()
                self._metrics["failed_jobs"] += 1
                terminated.append(job.id)
                self._retain(job)
            self._active.clear()
            pending = [job.id for lane in self._lanes.values() for job in lane]
            self._workers = []
            self._cond.notify_all()

        if terminated:
            logger.warning(f"Forcefully terminated {len(terminated)} running jobs: {terminated}")
        return ShutdownReport(
            clean=not terminated,
            terminated_job_ids=terminated,
            pending_job_ids=pending,
            waited_seconds=round(time.monotonic() - start, 3),
        )

    def _queue_position(self, job: Job) -> Optional[int]:
        """1-based position among queued jobs, counting higher lanes first. Must hold lock."""
        if job.state != JobState.QUEUED:
            return None
        ahead = 0
        for priority in JobPriority.ordered():
            lane = self._lanes[priority.value]
            if priority.value == job.priority:
                return ahead + lane.index(job) + 1
            ahead += len(lane)
        return None

    def _average_processing_seconds(self) -> float:
        if not self._processing_count:
            return DEFAULT_PROCESSING_SECONDS
        return self._processing_total / self._processing_count

    def _take_ready_job(self) -> Tuple[Optional[Job], Optional[float]]:
        """
        Pop the next dispatchable job. Must hold lock.

        Returns:
            Tuple of (job or None, seconds until the earliest backoff expires)
        """
        now = self._clock()
        earliest = None
        for priority in JobPriority.ordered():
            lane = self._lanes[priority.value]
            for job in lane:
                if job.available_at <= now:
                    lane.remove(job)
                    return job, None
                wait = job.available_at - now
                earliest = wait if earliest is None else min(earliest, wait)
        return None, earliest

    def _worker_loop(self) -> None:
        while True:
            with self._cond:
                while True:
                    if not self._running:
                        return
                    job, wait = self._take_ready_job()
                    if job is not None:
                        break
                    self._cond.wait(timeout=wait)
                job.state = JobState.PROCESSING
                job.started_at = self._clock()
                self._active[job.id] = job
            self._process(job)

    def _process(self, job: Job) -> None:
        """Run one attempt of a job and record its outcome."""
        attempt = job.retry_count
        logger.info(f"Processing job {job.id} (attempt {attempt + 1}/{job.max_retries + 1})")
        started = time.monotonic()
        try:
            result = self._run_with_timeout(job, attempt)
        except Exception as e:
            elapsed = time.monotonic() - started
            self._handle_failure(job, e, elapsed)
        else:
            elapsed = time.monotonic() - started
            self._complete(job, result, elapsed)

    def _run_with_timeout(self, job: Job, attempt: int) -> Any:
        """Run the handler in a helper thread bounded by job.timeout_ms."""
        handler = self._handlers[job.type]
        outcome: Dict[str, Any] = {}

        def report_progress(progress: Dict[str, Any]) -> None:
            with self._cond:
                if job.retry_count == attempt and job.state == JobState.PROCESSING:
                    job.progress = dict(progress)

        def target() -> None:
            try:
                outcome["result"] = handler(job, report_progress)
            except Exception as e:
                outcome["error"] = e

        runner = threading.Thread(target=target, name=f"{job.id}-attempt-{attempt}", daemon=True)
        runner.start()
        runner.join(timeout=job.timeout_ms / 1000.0)
        if runner.is_alive():
            with self._cond:
                self._metrics["timed_out_attempts"] += 1
            raise JobTimeoutError(f"Job {job.id} exceeded timeout of {job.timeout_ms}ms")
        if "error" in outcome:
            raise outcome["error"]
        return outcome.get("result")

    def _handle_failure(self, job: Job, error: BaseException, elapsed: float) -> None:
        message = f"{type(error).__name__}: {error}"
        with self._cond:
            if self._active.pop(job.id, None) is None:
                # already finalized by shutdown
                return
            job.processing_time = elapsed
            job.error = message
            if self.retry_policy.should_retry(job.retry_count, job.max_retries, error):
                job.retry_count += 1
                delay = self.retry_policy.delay(job.retry_count)
                job.state = JobState.QUEUED
                job.available_at = self._clock() + delay
                self._lanes[job.priority].append(job)
                self._metrics["retried_attempts"] += 1
                logger.warning(f"Job {job.id} failed ({message}); retry "
                               f"{job.retry_count}/{job.max_retries} in {delay:.1f}s")
            else:
                job.state = JobState.FAILED
                job.completed_at = self._clock()
                self._metrics["failed_jobs"] += 1
                self._retain(job)
                logger.error(f"Job {job.id} failed permanently after "
                             f"{job.retry_count} retries: {message}")
            self._cond.notify_all()

    def _complete(self, job: Job, result: Any, elapsed: float) -> None:
        with self._cond:
            if self._active.pop(job.id, None) is None:
                return
            job.state = JobState.COMPLETED
            job.result = result
            job.error = None
            job.processing_time = elapsed
            job.completed_at = self._clock()
            job.progress = dict(job.progress, percentage=100.0)
            self._metrics["completed_jobs"] += 1
            self._processing_total += elapsed
            self._processing_count += 1
            self._retain(job)
            self._cond.notify_all()
        logger.info(f"Job {job.id} completed in {elapsed:.2f}s")

        if self.result_store is not None:
            try:
                self.result_store.store_job_result(job.id, result)
            except Exception as e:
                logger.error(f"Failed to store result of job {job.id}: {e}", exc_info=True)

    def _retain(self, job: Job) -> None:
        """Track a terminal job and drop the oldest beyond the retention limit. Must hold lock."""
        self._terminal_order.append(job.id)
        while len(self._terminal_order) > self.config.max_retained_jobs:
            oldest = self._terminal_order.popleft()
            self._jobs.pop(oldest, None)
