"""
Group partitioner: splits a participant pool into balanced travel groups.

Key Design Decisions:
- Group count k = ceil(n / target_group_size), sizes differ by at most one
- Strategies are tried as a chain of typed StrategyResult values; a failed
  strategy records its reason and the next simpler one runs
- Hybrid = best of centroid and agglomerative, then swap refinement
- Conflict avoidance enters the objective as a severity-weighted penalty
- Deterministic for a fixed seed
"""

import logging
from typing import Dict, List, Optional, Sequence

import numpy as np

from ..conflicts.detector import ConflictDetector
from ..errors import ComputationError, ValidationError
from ..profiles.schema import Participant
from ..scoring.trait_scorer import TraitCompatibilityScorer
from .models import (
    ALGORITHMS,
    STRATEGY_CHAINS,
    Group,
    PartitionConfig,
    PartitionOptions,
    PartitionResult,
    StrategyResult,
    balanced_group_sizes,
)
from .strategies import (
    agglomerative_strategy,
    build_utility_matrix,
    centroid_strategy,
    is_valid_partition,
    partition_objective,
    refine_partition,
)

logger = logging.getLogger(__name__)


class GroupPartitioner:
    """
    Partitioner of participants into size-bounded groups.

    Attributes:
        scorer: Scorer used for the compatibility matrix
        detector: Detector used for conflict penalties and group summaries
        config: PartitionConfig with defaults and iteration caps
    """

    def __init__(
        self,
        scorer: Optional[TraitCompatibilityScorer] = None,
        detector: Optional[ConflictDetector] = None,
        config: Optional[PartitionConfig] = None
    ):
        self.scorer = scorer or TraitCompatibilityScorer()
        self.detector = detector or ConflictDetector()
        self.config = config or PartitionConfig()
        self.config.validate()

    def partition(
        self,
        participants: Sequence[Participant],
        options: Optional[PartitionOptions] = None
    ) -> PartitionResult:
        """
        Partition participants into balanced groups.

        Args:
            participants: Participants to group
            options: Per-call overrides of the configured defaults

        Returns:
            PartitionResult

        Raises:
            ValidationError: Fewer than 2 participants, duplicate ids,
                target size below 2 or unknown algorithm
            ComputationError: Every strategy in the chain failed
        """
        options = options or PartitionOptions()
        target = options.target_group_size if options.target_group_size is not None \
            else self.config.target_group_size
        algorithm = options.algorithm or self.config.algorithm
        avoid_conflicts = options.avoid_conflicts if options.avoid_conflicts is not None \
            else self.config.avoid_conflicts
        seed = options.seed if options.seed is not None else self.config.random_seed

        self._validate(participants, target, algorithm)
        n = len(participants)
        sizes = balanced_group_sizes(n, target)

        logger.info(f"Partitioning {n} participants into {len(sizes)} groups "
                    f"(target={target}, algorithm={algorithm}, avoid_conflicts={avoid_conflicts})")

        compatibility = self.scorer.score_matrix(participants)
        penalty = self.detector.pair_penalty_matrix(participants) if avoid_conflicts else None
        weight = self.config.conflict_penalty_weight if avoid_conflicts else 0.0
        utility = build_utility_matrix(compatibility, penalty, weight)

        if len(sizes) == 1:
            index_groups = [list(range(n))]
            used = algorithm
            fallbacks: Dict[str, str] = {}
        else:
            vectors = np.vstack([p.profile.to_vector() for p in participants])
            index_groups, used, fallbacks = self._run_chain(
                algorithm, vectors, utility, sizes, seed)

        objective = partition_objective(index_groups, utility)
        groups = self._annotate(participants, index_groups, compatibility)

        logger.info(f"Partition complete: {len(groups)} groups via {used} "
                    f"(objective={objective:.2f})")
        return PartitionResult(
            groups=groups,
            algorithm_requested=algorithm,
            algorithm_used=used,
            fallbacks=fallbacks,
            objective=round(objective, 4),
        )

    def _validate(self, participants: Sequence[Participant], target: int, algorithm: str) -> None:
        if participants is None or len(participants) < 2:
            raise ValidationError("At least 2 participants are required to form groups")
        ids = [p.id for p in participants]
        if len(set(ids)) != len(ids):
            raise ValidationError("Duplicate participant ids in partition request")
        if not isinstance(target, int) or isinstance(target, bool) or target < 2:
            raise ValidationError(f"target_group_size must be an integer >= 2, got {target!r}")
        if algorithm not in ALGORITHMS:
            raise ValidationError(f"Unknown algorithm: {algorithm}")

    def _run_chain(self, algorithm, vectors, utility, sizes, seed):
        """Try each strategy of the chain until one yields a valid partition."""
        fallbacks: Dict[str, str] = {}
        for strategy in STRATEGY_CHAINS[algorithm]:
            try:
                result = self._run_strategy(strategy, vectors, utility, sizes, seed)
            except Exception as e:
                logger.warning(f"Strategy {strategy} raised, result degraded: {e}")
                result = StrategyResult.failure(f"{type(e).__name__}: {e}")

            if result.ok and is_valid_partition(result.groups, len(vectors), sizes):
                return result.groups, strategy, fallbacks

            reason = result.reason or "invalid partition"
            logger.warning(f"Strategy {strategy} failed ({reason}); degraded to next strategy")
            fallbacks[strategy] = reason

        raise ComputationError(f"All partition strategies failed: {fallbacks}")

    def _run_strategy(self, strategy, vectors, utility, sizes, seed) -> StrategyResult:
        if strategy == "centroid":
            return centroid_strategy(vectors, sizes, seed=seed,
                                     max_iterations=self.config.max_iterations)
        if strategy == "hierarchical":
            return agglomerative_strategy(utility, sizes)

        candidates: List[List[List[int]]] = []
        for candidate in (centroid_strategy(vectors, sizes, seed=seed,
                                            max_iterations=self.config.max_iterations),
                          agglomerative_strategy(utility, sizes)):
            if candidate.ok:
                candidates.append(candidate.groups)
        if not candidates:
            return StrategyResult.failure("no base strategy produced a partition")

        best = max(candidates, key=lambda g: partition_objective(g, utility))
        refined, swaps = refine_partition(best, utility, self.config.refinement_iterations)
        logger.debug(f"Hybrid refinement: {swaps} swaps")
        return StrategyResult.success(refined)

    def _annotate(
        self,
        participants: Sequence[Participant],
        index_groups: List[List[int]],
        compatibility: np.ndarray
    ) -> List[Group]:
        """Attach ids, mean pairwise compatibility and conflict summary to each group."""
        groups = []
        for number, members in enumerate(index_groups, start=1):
            idx = np.asarray(members, dtype=int)
            if len(idx) >= 2:
                block = compatibility[np.ix_(idx, idx)]
                average = float(block[np.triu_indices(len(idx), k=1)].mean())
            else:
                average = 0.0
            group_participants = [participants[i] for i in members]
            report = self.detector.detect(group_participants)
            groups.append(Group(
                group_id=f"group_{number}",
                participant_ids=[p.id for p in group_participants],
                average_compatibility=round(average, 2),
                conflict_summary=report.summary(),
            ))
        return groups
