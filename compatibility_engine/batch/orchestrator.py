"""
Batch orchestrator: all-pairs compatibility for a participant set.

Strategy Selection (P = n(n-1)/2 pairs):
- small_concurrent:  P <= 50,  every pair fanned out directly
- medium_chunked:    P <= 500, 4 chunks, intra-chunk then inter-chunk phase
- large_distributed: P > 500,  8 chunks, same phases, progress reported

Every phase is a bounded fan-out on a ThreadPoolExecutor and is fully
awaited before the next phase starts. Whole-batch results are cached under
an order-independent key with a TTL that grows with the strategy; a hit is
re-indexed to the caller's id order before it is returned. Single pair
scores live in a separate pair cache so overlapping batches reuse them
without evicting whole-batch entries.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field, asdict
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
from scipy.spatial.distance import squareform

from ..cache.result_cache import CacheConfig, ResultCache, make_cache_key
from ..errors import ComputationError, ValidationError
from ..profiles.schema import Participant
from ..providers import ProfileProvider
from ..scoring.trait_scorer import CompatibilityScore, TraitCompatibilityScorer
from .pairs import chunk_ids, chunk_plan, generate_pairs, pair_count, pair_indices

logger = logging.getLogger(__name__)


@dataclass
class BatchStrategy:
    """A batch execution strategy."""
    name: str
    n_chunks: int
    cache_ttl: float
    report_progress: bool = False


@dataclass
class BatchConfig:
    """
    Configuration for batch computation.

    Attributes:
        max_concurrency: Maximum computations in flight per phase
        max_batch_size: Maximum participants per batch
        small_max_pairs: Upper pair count of the small strategy
        medium_max_pairs: Upper pair count of the medium strategy
        medium_chunks: Chunk count of the medium strategy
        large_chunks: Chunk count of the large strategy
        cache_ttl: TTL in seconds per strategy size (small, medium, large)
        pair_cache: Whether single pair scores are cached
    """
    max_concurrency: int = 10
    max_batch_size: int = 500
    small_max_pairs: int = 50
    medium_max_pairs: int = 500
    medium_chunks: int = 4
    large_chunks: int = 8
    cache_ttl: Dict[str, float] = field(
        default_factory=lambda: {"small": 3600, "medium": 7200, "large": 14400})
    pair_cache: bool = True

    def validate(self) -> None:
        """Validate configuration values."""
        if self.max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {self.max_concurrency}")
        if self.max_batch_size < 2:
            raise ValueError(f"max_batch_size must be >= 2, got {self.max_batch_size}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "BatchConfig":
        """Create from main config dictionary."""
        b = config.get("batch", {}) or {}
        defaults = cls()
        ttl = dict(defaults.cache_ttl)
        ttl.update(b.get("cache_ttl", {}) or {})
        return cls(
            max_concurrency=b.get("max_concurrency", 10),
            max_batch_size=b.get("max_batch_size", 500),
            small_max_pairs=b.get("small_max_pairs", 50),
            medium_max_pairs=b.get("medium_max_pairs", 500),
            medium_chunks=b.get("medium_chunks", 4),
            large_chunks=b.get("large_chunks", 8),
            cache_ttl=ttl,
            pair_cache=b.get("pair_cache", True),
        )


@dataclass
class BatchOptions:
    """Per-call batch options."""
    algorithm_id: str = "trait-weighted"
    include_matrix: bool = False
    cache_results: bool = True
    force_recalculation: bool = False


@dataclass
class BatchProgress:
    """Progress of a chunked batch."""
    processed_chunks: int
    total_chunks: int
    percentage: float
    phase: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BatchResult:
    """
    Result of an all-pairs computation.

    Attributes:
        scores: One CompatibilityScore per unordered pair
        matrix: Optional symmetric n x n matrix with diagonal 100
        from_cache: True if served from the whole-batch cache entry
        meta: Strategy, counts, timing and cache key
    """
    scores: List[CompatibilityScore]
    matrix: Optional[np.ndarray] = None
    from_cache: bool = False
    meta: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scores": [s.to_dict() for s in self.scores],
            "matrix": self.matrix.tolist() if self.matrix is not None else None,
            "from_cache": self.from_cache,
            "meta": dict(self.meta),
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "BatchResult":
        matrix = d.get("matrix")
        return cls(
            scores=[CompatibilityScore.from_dict(s) for s in d["scores"]],
            matrix=np.asarray(matrix, dtype=float) if matrix is not None else None,
            from_cache=d.get("from_cache", False),
            meta=dict(d.get("meta", {})),
        )


def select_strategy(n_participants: int, config: Optional[BatchConfig] = None) -> BatchStrategy:
    """
    Choose the batch strategy for a participant count.

    Args:
        n_participants: Number of participants
        config: BatchConfig with thresholds

    Returns:
        BatchStrategy
    """
    config = config or BatchConfig()
    pairs = pair_count(n_participants)
    if pairs <= config.small_max_pairs:
        return BatchStrategy("small_concurrent", 1, config.cache_ttl["small"])
    if pairs <= config.medium_max_pairs:
        return BatchStrategy("medium_chunked", config.medium_chunks, config.cache_ttl["medium"])
    return BatchStrategy("large_distributed", config.large_chunks, config.cache_ttl["large"],
                         report_progress=True)


def align_batch_result(result: BatchResult, participant_ids: Sequence[str]) -> BatchResult:
    """
    Re-index a batch result to another order of the same participant ids.

    Scores follow the upper-triangle order of participant_ids with each pair
    oriented as (earlier id, later id); the matrix rows and columns are
    permuted the same way.

    Args:
        result: Result whose meta["participant_ids"] records its id order
        participant_ids: Requested order of the same ids

    Returns:
        New BatchResult in the requested order

    Raises:
        ValueError: The result covers a different id set
    """
    stored_ids = list(result.meta.get("participant_ids") or [])
    ids = list(participant_ids)
    if sorted(stored_ids) != sorted(ids):
        raise ValueError("Cached batch covers a different participant set")

    by_pair = {frozenset(score.pair): score for score in result.scores}
    scores = []
    for a, b in generate_pairs(ids):
        score = CompatibilityScore.from_dict(by_pair[frozenset((a, b))].to_dict())
        if score.participant_a != a:
            score.participant_a, score.participant_b = score.participant_b, score.participant_a
        scores.append(score)

    matrix = result.matrix
    if matrix is not None:
        position = {pid: i for i, pid in enumerate(stored_ids)}
        permutation = [position[pid] for pid in ids]
        matrix = matrix[np.ix_(permutation, permutation)]

    meta = dict(result.meta)
    meta["participant_ids"] = ids
    return BatchResult(scores=scores, matrix=matrix, from_cache=result.from_cache, meta=meta)


class BatchOrchestrator:
    """
    Orchestrator of all-pairs compatibility computation.

    Attributes:
        scorer: Pairwise scorer
        provider: Source of participant profiles
        cache: Optional cache for whole-batch results
        pair_cache: Optional cache for single pair scores, kept apart from
            ``cache`` so a large batch cannot evict whole-batch entries
        config: BatchConfig
    """

    def __init__(
        self,
        scorer: TraitCompatibilityScorer,
        provider: ProfileProvider,
        cache: Optional[ResultCache] = None,
        config: Optional[BatchConfig] = None,
        pair_cache: Optional[ResultCache] = None
    ):
        self.scorer = scorer
        self.provider = provider
        self.cache = cache
        self.config = config or BatchConfig()
        self.config.validate()

        if pair_cache is None and cache is not None and self.config.pair_cache:
            pair_cache = ResultCache.from_config(CacheConfig(default_ttl=cache.default_ttl), for_pairs=True)
        self.pair_cache = pair_cache if self.config.pair_cache else None

        self._metrics_lock = threading.Lock()
        self._metrics = {
            "processed": 0,
            "failed": 0,
            "served_from_cache": 0,
            "total_processing_time": 0.0,
        }

    def compute_all_pairs(
        self,
        participant_ids: Sequence[Any],
        options: Optional[BatchOptions] = None,
        on_progress: Optional[Callable[[BatchProgress], None]] = None
    ) -> BatchResult:
        """
        Compute compatibility for every unordered pair of participants.

        Args:
            participant_ids: Ids to fetch from the profile provider
            options: BatchOptions
            on_progress: Callback for chunk progress (large strategy only)

        Returns:
            BatchResult with n(n-1)/2 scores in the upper-triangle order of
            participant_ids, whether computed or served from cache

        Raises:
            ValidationError: Fewer than 2 ids, duplicates, too many ids or unknown ids
            ComputationError: The profile provider failed
        """
        options = options or BatchOptions()
        ids = [str(pid) for pid in (participant_ids or [])]
        self._validate(ids)

        strategy = select_strategy(len(ids), self.config)
        cache_key = make_cache_key(ids, self._fingerprint(options))

        if self.cache is not None and options.cache_results and not options.force_recalculation:
            hit, cached = self.cache.lookup(cache_key)
            if hit:
                try:
                    result = align_batch_result(BatchResult.from_dict(cached), ids)
                except (KeyError, TypeError, ValueError) as e:
                    logger.warning(f"Discarding unusable cached batch {cache_key[:12]}: {e}")
                    self.cache.invalidate(cache_key)
                else:
                    logger.info(f"Batch of {len(ids)} participants served from cache")
                    result.from_cache = True
                    self._record(served_from_cache=True)
                    return result

        start = time.time()
        logger.info(f"Computing {pair_count(len(ids))} pairs for {len(ids)} participants "
                    f"(strategy={strategy.name})")

        try:
            participants = self.fetch_participants(ids)
            if strategy.n_chunks == 1:
                results = self._run_phase([[pair] for pair in self._all_index_pairs(len(ids))],
                                          participants, options)
            else:
                results = self._run_chunked(participants, strategy, options, on_progress)
        except Exception:
            self._record(success=False, elapsed=time.time() - start)
            raise

        indices_a, indices_b = pair_indices(len(ids))
        scores = [results[(int(a), int(b))] for a, b in zip(indices_a, indices_b)]

        matrix = None
        if options.include_matrix:
            matrix = squareform(np.array([s.overall_score for s in scores], dtype=float))
            np.fill_diagonal(matrix, 100.0)

        elapsed = time.time() - start
        result = BatchResult(
            scores=scores,
            matrix=matrix,
            from_cache=False,
            meta={
                "strategy": strategy.name,
                "participant_count": len(ids),
                "participant_ids": ids,
                "pair_count": len(scores),
                "algorithm_id": options.algorithm_id,
                "duration_seconds": round(elapsed, 4),
                "cache_key": cache_key,
            },
        )
        self._record(success=True, elapsed=elapsed)

        if self.cache is not None and options.cache_results:
            self.cache.set(cache_key, result.to_dict(), ttl=strategy.cache_ttl)

        logger.info(f"Batch complete: {len(scores)} pairs in {result.meta['duration_seconds']}s")
        return result

    def metrics(self) -> Dict[str, Any]:
        """
        Batch counters.

        Returns:
            Dictionary with processed, failed and cache-served batch counts,
            total and average processing time of computed batches (seconds)
            and the success rate in percent
        """
        with self._metrics_lock:
            metrics = dict(self._metrics)
        attempts = metrics["processed"] + metrics["failed"]
        metrics["average_processing_time"] = (
            metrics["total_processing_time"] / attempts if attempts else 0.0)
        metrics["success_rate"] = round(100.0 * metrics["processed"] / attempts, 2) if attempts else 0.0
        return metrics

    def _record(self, success: bool = True, elapsed: float = 0.0, served_from_cache: bool = False) -> None:
        with self._metrics_lock:
            if served_from_cache:
                self._metrics["served_from_cache"] += 1
                return
            self._metrics["processed" if success else "failed"] += 1
            self._metrics["total_processing_time"] += elapsed

    def warm_pair_cache(self, participant_ids: Sequence[Any], batch_size: int = 20) -> Dict[str, Any]:
        """
        Precompute and cache single pair scores.

        Args:
            participant_ids: Ids whose pairs should be warmed
            batch_size: Pairs computed per fan-out round

        Returns:
            Dictionary with warmed, skipped and pair counts
        """
        ids = [str(pid) for pid in (participant_ids or [])]
        self._validate(ids)
        if self.pair_cache is None:
            raise ValidationError("No pair cache configured to warm")

        participants = self.fetch_participants(ids)
        position = {p.id: i for i, p in enumerate(participants)}
        pairs = [(position[a], position[b]) for a, b in generate_pairs(ids)]

        warmed = skipped = 0
        for batch in chunk_ids(pairs, max(1, -(-len(pairs) // max(1, batch_size)))):
            todo = []
            for pair in batch:
                hit, _ = self.pair_cache.lookup(self._pair_key(participants, pair))
                if hit:
                    skipped += 1
                else:
                    todo.append(pair)
            if todo:
                self._run_phase([[pair] for pair in todo], participants,
                                BatchOptions(force_recalculation=True))
                warmed += len(todo)

        logger.info(f"Warmed {warmed} pair scores ({skipped} already cached)")
        return {
            "warmed": warmed,
            "skipped": skipped,
            "participant_count": len(ids),
            "pair_count": len(pairs),
        }

    def fetch_participants(self, ids: Sequence[str]) -> List[Participant]:
        """
        Fetch profiles for ids with bounded concurrency.

        Raises:
            ValidationError: Some ids are unknown to the provider
            ComputationError: The provider raised
        """
        try:
            with ThreadPoolExecutor(max_workers=self.config.max_concurrency) as executor:
                profiles = list(executor.map(self.provider.get_participant, ids))
        except Exception as e:
            raise ComputationError(f"Profile fetch failed: {e}") from e

        missing = [pid for pid, profile in zip(ids, profiles) if profile is None]
        if missing:
            raise ValidationError(f"Unknown participant ids: {missing[:10]}")
        return [Participant(id=pid, profile=profile) for pid, profile in zip(ids, profiles)]

    def _validate(self, ids: List[str]) -> None:
        if len(ids) < 2:
            raise ValidationError("At least 2 participant ids are required")
        if len(set(ids)) != len(ids):
            raise ValidationError("Duplicate participant ids in batch request")
        if len(ids) > self.config.max_batch_size:
            raise ValidationError(
                f"Batch of {len(ids)} exceeds max_batch_size={self.config.max_batch_size}")

    def _fingerprint(self, options: BatchOptions) -> Dict[str, Any]:
        return {
            "algorithm_id": options.algorithm_id,
            "include_matrix": options.include_matrix,
            "scoring": self.scorer.config.fingerprint(),
        }

    def _pair_key(self, participants: List[Participant], pair: Tuple[int, int]) -> str:
        a, b = pair
        return make_cache_key(
            [participants[a].id, participants[b].id],
            {"pair": True, "scoring": self.scorer.config.fingerprint()},
        )

    @staticmethod
    def _all_index_pairs(n: int) -> List[Tuple[int, int]]:
        indices_a, indices_b = pair_indices(n)
        return list(zip(indices_a.tolist(), indices_b.tolist()))

    def _score_unit(
        self,
        participants: List[Participant],
        unit: List[Tuple[int, int]],
        options: BatchOptions
    ) -> Dict[Tuple[int, int], CompatibilityScore]:
        """Score one unit of pairs, consulting the pair cache first."""
        use_cache = self.pair_cache is not None
        scores = {}
        for a, b in unit:
            key = self._pair_key(participants, (a, b)) if use_cache else None
            if use_cache and options.cache_results and not options.force_recalculation:
                hit, cached = self.pair_cache.lookup(key)
                if hit:
                    score = CompatibilityScore.from_dict(cached)
                    # pair keys are order independent; align ids with this pair
                    if score.participant_a != participants[a].id:
                        score.participant_a, score.participant_b = score.participant_b, score.participant_a
                    scores[(a, b)] = score
                    continue
            score = self.scorer.score(participants[a], participants[b])
            if use_cache:
                self.pair_cache.set(key, score.to_dict())
            scores[(a, b)] = score
        return scores

    def _run_phase(
        self,
        units: List[List[Tuple[int, int]]],
        participants: List[Participant],
        options: BatchOptions,
        on_unit_done: Optional[Callable[[], None]] = None
    ) -> Dict[Tuple[int, int], CompatibilityScore]:
        """Run units with bounded concurrency and wait for all of them."""
        results: Dict[Tuple[int, int], CompatibilityScore] = {}
        with ThreadPoolExecutor(max_workers=self.config.max_concurrency) as executor:
            futures = [executor.submit(self._score_unit, participants, unit, options) for unit in units]
            for future in as_completed(futures):
                results.update(future.result())
                if on_unit_done is not None:
                    on_unit_done()
        return results

    def _run_chunked(
        self,
        participants: List[Participant],
        strategy: BatchStrategy,
        options: BatchOptions,
        on_progress: Optional[Callable[[BatchProgress], None]]
    ) -> Dict[Tuple[int, int], CompatibilityScore]:
        """Intra-chunk phase, then inter-chunk phase."""
        intra, inter = chunk_plan(len(participants), strategy.n_chunks)
        total = len(intra) + len(inter)
        processed = [0]

        def make_reporter(phase: str) -> Optional[Callable[[], None]]:
            if not (strategy.report_progress and on_progress):
                return None

            def report() -> None:
                processed[0] += 1
                progress = BatchProgress(
                    processed_chunks=processed[0],
                    total_chunks=total,
                    percentage=round(100.0 * processed[0] / total, 2),
                    phase=phase,
                )
                try:
                    on_progress(progress)
                except Exception as e:
                    logger.warning(f"Progress callback failed: {e}")
            return report

        results = self._run_phase(intra, participants, options, make_reporter("intra-chunk"))
        results.update(self._run_phase(inter, participants, options, make_reporter("inter-chunk")))
        return results
