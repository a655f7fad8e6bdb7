"""
Compatibility engine facade.

Wires the scorer, conflict detector, partitioner, batch orchestrator, result
cache and job queue together. All collaborators are injected at construction;
nothing is shared through module-level state, so several engines can coexist
(e.g. one per test).

Synchronous calls serve small inputs directly; large or long-running work
goes through the job queue and is polled with get_job_status.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .batch.orchestrator import BatchConfig, BatchOptions, BatchOrchestrator, BatchResult
from .cache.result_cache import CacheConfig, ResultCache
from .configs.loader import load_config, validate_config
from .conflicts.detector import ConflictConfig, ConflictDetector, ConflictReport
from .errors import ValidationError
from .jobs.handlers import build_handlers
from .jobs.models import EnqueueReceipt, JobPriority, JobStatus, JobType, ShutdownReport
from .jobs.queue import JobQueue, QueueConfig
from .jobs.retry import RetryPolicy
from .partitioning.models import Group, PartitionConfig, PartitionOptions, PartitionResult
from .partitioning.partitioner import GroupPartitioner
from .profiles.schema import Participant
from .providers import InMemoryProfileProvider, ProfileProvider, ResultStore
from .scoring.trait_scorer import (
    CompatibilityScore,
    GroupCompatibility,
    ProfileLike,
    ScoringConfig,
    TraitCompatibilityScorer,
)

logger = logging.getLogger(__name__)


@dataclass
class EngineConfig:
    """Configuration of every engine component."""
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    conflicts: ConflictConfig = field(default_factory=ConflictConfig)
    partitioning: PartitionConfig = field(default_factory=PartitionConfig)
    batch: BatchConfig = field(default_factory=BatchConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)
    retry: RetryPolicy = field(default_factory=RetryPolicy)

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "EngineConfig":
        """Create from main config dictionary."""
        return cls(
            scoring=ScoringConfig.from_config(config),
            conflicts=ConflictConfig.from_config(config),
            partitioning=PartitionConfig.from_config(config),
            batch=BatchConfig.from_config(config),
            cache=CacheConfig.from_config(config),
            queue=QueueConfig.from_config(config),
            retry=RetryPolicy.from_config(config),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scoring": self.scoring.to_dict(),
            "conflicts": self.conflicts.to_dict(),
            "partitioning": self.partitioning.to_dict(),
            "batch": self.batch.to_dict(),
            "cache": self.cache.to_dict(),
            "queue": self.queue.to_dict(),
            "retry": self.retry.to_dict(),
        }


def as_participants(items: Sequence[Any]) -> List[Participant]:
    """
    Convert participant records to Participant objects.

    Accepts Participant instances or record dictionaries with an id.

    Raises:
        ValidationError: A record has no id or an unsupported type
    """
    participants = []
    for item in items or []:
        if isinstance(item, Participant):
            participants.append(item)
        elif isinstance(item, Mapping):
            try:
                participants.append(Participant.from_dict(item))
            except ValueError as e:
                raise ValidationError(str(e)) from e
        else:
            raise ValidationError(f"Unsupported participant record: {type(item).__name__}")
    return participants


class CompatibilityEngine:
    """
    Facade over scoring, conflict detection, partitioning and the scaling layer.

    Attributes:
        config: EngineConfig
        provider: Source of participant profiles for id-based calls
        scorer: TraitCompatibilityScorer
        detector: ConflictDetector
        partitioner: GroupPartitioner
        cache: ResultCache for whole-batch results
        pair_cache: ResultCache for single pair scores
        orchestrator: BatchOrchestrator
        queue: JobQueue
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        provider: Optional[ProfileProvider] = None,
        result_store: Optional[ResultStore] = None,
        cache: Optional[ResultCache] = None
    ):
        self.config = config or EngineConfig()
        self.provider = provider if provider is not None else InMemoryProfileProvider()
        self.result_store = result_store

        self.scorer = TraitCompatibilityScorer(self.config.scoring)
        self.detector = ConflictDetector(self.config.conflicts)
        self.partitioner = GroupPartitioner(self.scorer, self.detector, self.config.partitioning)
        self.cache = cache if cache is not None else ResultCache.from_config(self.config.cache)
        self.pair_cache = ResultCache.from_config(self.config.cache, for_pairs=True)
        self.orchestrator = BatchOrchestrator(
            self.scorer, self.provider, self.cache, self.config.batch, pair_cache=self.pair_cache)
        self.queue = JobQueue(
            handlers=build_handlers(self.orchestrator, self.partitioner, self.detector),
            config=self.config.queue,
            retry_policy=self.config.retry,
            result_store=result_store,
        )
        logger.info("Compatibility engine initialized")

    def __enter__(self) -> "CompatibilityEngine":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    # Synchronous operations

    def compute_compatibility(self, profile_a: ProfileLike, profile_b: ProfileLike) -> CompatibilityScore:
        """Pairwise compatibility of two participants or raw profiles (never raises)."""
        return self.scorer.score(profile_a, profile_b)

    def compute_group_compatibility(self, participants: Sequence[Any]) -> GroupCompatibility:
        """Mean pairwise compatibility of a group."""
        return self.scorer.score_group(as_participants(participants))

    def detect_conflicts(self, participants: Sequence[Any], include_minor: bool = True) -> ConflictReport:
        """Conflict report over all pairs of a group."""
        return self.detector.detect(as_participants(participants), include_minor=include_minor)

    def partition(
        self,
        participants: Sequence[Any],
        target_group_size: Optional[int] = None,
        algorithm: Optional[str] = None,
        avoid_conflicts: Optional[bool] = None,
        seed: Optional[int] = None
    ) -> PartitionResult:
        """Partition participants and return the full result (groups, strategy, fallbacks)."""
        options = PartitionOptions(
            target_group_size=target_group_size,
            algorithm=algorithm,
            avoid_conflicts=avoid_conflicts,
            seed=seed,
        )
        return self.partitioner.partition(as_participants(participants), options)

    def partition_into_groups(
        self,
        participants: Sequence[Any],
        target_group_size: Optional[int] = None,
        algorithm: Optional[str] = None,
        avoid_conflicts: Optional[bool] = None,
        seed: Optional[int] = None
    ) -> List[Group]:
        """Partition participants into balanced groups."""
        return self.partition(participants, target_group_size, algorithm, avoid_conflicts, seed).groups

    def compute_all_pairs(
        self,
        participant_ids: Sequence[Any],
        algorithm_id: str = "trait-weighted",
        include_matrix: bool = False,
        cache_results: bool = True,
        force_recalculation: bool = False
    ) -> BatchResult:
        """Synchronous all-pairs computation over provider profiles."""
        options = BatchOptions(
            algorithm_id=algorithm_id,
            include_matrix=include_matrix,
            cache_results=cache_results,
            force_recalculation=force_recalculation,
        )
        return self.orchestrator.compute_all_pairs(participant_ids, options)

    # Asynchronous operations

    def _check_ids(self, participant_ids: Sequence[Any]) -> List[str]:
        ids = [str(pid) for pid in (participant_ids or [])]
        if len(ids) < 2:
            raise ValidationError("At least 2 participant ids are required")
        if len(set(ids)) != len(ids):
            raise ValidationError("Duplicate participant ids in request")
        return ids

    def submit_batch_job(
        self,
        participant_ids: Sequence[Any],
        priority: str = JobPriority.NORMAL.value,
        algorithm_id: str = "trait-weighted",
        include_matrix: bool = False,
        cache_results: bool = True
    ) -> EnqueueReceipt:
        """Queue an all-pairs computation."""
        ids = self._check_ids(participant_ids)
        if len(ids) > self.config.batch.max_batch_size:
            raise ValidationError(
                f"Batch of {len(ids)} exceeds max_batch_size={self.config.batch.max_batch_size}")
        payload = {
            "participant_ids": ids,
            "algorithm_id": algorithm_id,
            "include_matrix": include_matrix,
            "cache_results": cache_results,
        }
        return self.queue.submit(JobType.BULK_COMPATIBILITY.value, payload, priority=priority)

    def submit_group_analysis_job(
        self,
        participant_ids: Sequence[Any],
        target_group_size: Optional[int] = None,
        algorithm: Optional[str] = None,
        avoid_conflicts: Optional[bool] = None,
        include_conflicts: bool = True,
        seed: Optional[int] = None,
        priority: str = JobPriority.NORMAL.value
    ) -> EnqueueReceipt:
        """Queue a partition with per-group conflict analysis."""
        payload = {
            "participant_ids": self._check_ids(participant_ids),
            "target_group_size": target_group_size,
            "algorithm": algorithm,
            "avoid_conflicts": avoid_conflicts,
            "include_conflicts": include_conflicts,
            "seed": seed,
        }
        return self.queue.submit(JobType.GROUP_ANALYSIS.value, payload, priority=priority)

    def submit_algorithm_comparison_job(
        self,
        participant_ids: Sequence[Any],
        algorithms: Optional[List[str]] = None,
        target_group_size: Optional[int] = None,
        seed: Optional[int] = None,
        priority: str = JobPriority.LOW.value
    ) -> EnqueueReceipt:
        """Queue a side-by-side run of several partition strategies."""
        payload = {
            "participant_ids": self._check_ids(participant_ids),
            "algorithms": algorithms,
            "target_group_size": target_group_size,
            "seed": seed,
        }
        return self.queue.submit(JobType.ALGORITHM_COMPARISON.value, payload, priority=priority)

    def submit_cache_warm_job(
        self,
        participant_ids: Sequence[Any],
        batch_size: int = 20,
        priority: str = JobPriority.LOW.value
    ) -> EnqueueReceipt:
        """Queue precomputation of pair scores into the result cache."""
        payload = {"participant_ids": self._check_ids(participant_ids), "batch_size": batch_size}
        return self.queue.submit(JobType.CACHE_WARM.value, payload, priority=priority)

    def get_job_status(self, job_id: str) -> JobStatus:
        """Status of a job (raises JobNotFoundError for unknown ids)."""
        return self.queue.status(job_id)

    def wait_for_job(self, job_id: str, timeout: Optional[float] = None) -> JobStatus:
        """Block until a job is terminal or the timeout elapses."""
        return self.queue.wait(job_id, timeout=timeout)

    def cancel_job(self, job_id: str) -> bool:
        """Cancel a job that has not been dispatched yet."""
        return self.queue.cancel(job_id)

    def start(self) -> None:
        """Start the job workers."""
        self.queue.start()

    def shutdown(self, grace_seconds: Optional[float] = None) -> ShutdownReport:
        """Stop the job workers."""
        return self.queue.shutdown(grace_seconds)

    def metrics(self) -> Dict[str, Any]:
        """Queue, batch and cache metrics."""
        return {
            "queue": self.queue.metrics(),
            "batch": self.orchestrator.metrics(),
            "cache": self.cache.stats(),
            "pair_cache": self.pair_cache.stats(),
        }


def create_engine_from_config(
    config_path: Optional[str] = None,
    provider: Optional[ProfileProvider] = None,
    result_store: Optional[ResultStore] = None,
    config: Optional[Dict[str, Any]] = None
) -> CompatibilityEngine:
    """
    Build an engine from a YAML config file or an already loaded config dict.

    Config issues are logged as warnings; component validation still rejects
    values that cannot work.

    Args:
        config_path: Path to the YAML configuration file
        provider: Profile provider (empty in-memory provider if omitted)
        result_store: Optional job result sink
        config: Config dictionary used instead of config_path

    Returns:
        CompatibilityEngine
    """
    if config is None:
        if config_path is None:
            raise ValueError("Either config_path or config is required")
        config = load_config(config_path)

    for issue in validate_config(config):
        logger.warning(f"Config issue: {issue}")

    return CompatibilityEngine(
        config=EngineConfig.from_config(config),
        provider=provider,
        result_store=result_store,
    )
