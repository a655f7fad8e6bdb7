"""
Data types and configuration for group partitioning.
"""

import math
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

ALGORITHMS = ["centroid", "hierarchical", "hybrid"]

# Strategies tried in order for each requested algorithm
STRATEGY_CHAINS: Dict[str, List[str]] = {
    "hybrid": ["hybrid", "centroid", "hierarchical"],
    "centroid": ["centroid", "hierarchical"],
    "hierarchical": ["hierarchical", "centroid"],
}


def balanced_group_sizes(n: int, target_group_size: int) -> List[int]:
    """
    Split n participants into ceil(n / target) groups whose sizes differ by at most one.

    Args:
        n: Number of participants
        target_group_size: Desired group size

    Returns:
        List of group sizes (largest first), summing to n
    """
    if n <= target_group_size:
        return [n]
    k = math.ceil(n / target_group_size)
    base, remainder = divmod(n, k)
    return [base + 1] * remainder + [base] * (k - remainder)


@dataclass
class PartitionConfig:
    """
    Configuration for the group partitioner.

    Attributes:
        target_group_size: Default desired group size
        algorithm: Default strategy (centroid, hierarchical, hybrid)
        avoid_conflicts: Whether conflict penalties enter the objective by default
        max_iterations: Iteration cap for centroid clustering
        refinement_iterations: Cap on accepted swaps during refinement
        conflict_penalty_weight: Weight of the conflict penalty in the objective
        random_seed: Default seed for centroid seeding
    """
    target_group_size: int = 6
    algorithm: str = "hybrid"
    avoid_conflicts: bool = True
    max_iterations: int = 100
    refinement_iterations: int = 200
    conflict_penalty_weight: float = 0.5
    random_seed: int = 42

    def validate(self) -> None:
        """Validate configuration values."""
        if self.algorithm not in ALGORITHMS:
            raise ValueError(f"Unknown algorithm: {self.algorithm}")
        if self.target_group_size < 2:
            raise ValueError(f"target_group_size must be >= 2, got {self.target_group_size}")
        if self.max_iterations < 1 or self.refinement_iterations < 0:
            raise ValueError("Iteration caps must be positive")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "PartitionConfig":
        """Create from main config dictionary."""
        p = config.get("partitioning", {}) or {}
        return cls(
            target_group_size=p.get("target_group_size", 6),
            algorithm=p.get("algorithm", "hybrid"),
            avoid_conflicts=p.get("avoid_conflicts", True),
            max_iterations=p.get("max_iterations", 100),
            refinement_iterations=p.get("refinement_iterations", 200),
            conflict_penalty_weight=p.get("conflict_penalty_weight", 0.5),
            random_seed=config.get("global", {}).get("random_seed", 42),
        )


@dataclass
class PartitionOptions:
    """Per-call partition options; unset fields fall back to PartitionConfig."""
    target_group_size: Optional[int] = None
    algorithm: Optional[str] = None
    avoid_conflicts: Optional[bool] = None
    seed: Optional[int] = None


@dataclass
class Group:
    """
    One travel group.

    Attributes:
        group_id: Sequential group identifier ("group_1", ...)
        participant_ids: Member ids
        average_compatibility: Mean pairwise compatibility of the members
        conflict_summary: Counts, overall risk and risk level of the members
    """
    group_id: str
    participant_ids: List[str]
    average_compatibility: float
    conflict_summary: Dict[str, Any] = field(default_factory=dict)

    @property
    def size(self) -> int:
        return len(self.participant_ids)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["size"] = self.size
        return d


@dataclass
class StrategyResult:
    """
    Outcome of one strategy attempt.

    Attributes:
        ok: True if `groups` is a valid partition
        groups: Index groups (lists of positions into the participant list)
        reason: Failure reason when not ok
    """
    ok: bool
    groups: List[List[int]] = field(default_factory=list)
    reason: Optional[str] = None

    @classmethod
    def success(cls, groups: List[List[int]]) -> "StrategyResult":
        return cls(ok=True, groups=groups)

    @classmethod
    def failure(cls, reason: str) -> "StrategyResult":
        return cls(ok=False, reason=reason)


@dataclass
class PartitionResult:
    """
    Result of a partition call.

    Attributes:
        groups: Annotated groups
        algorithm_requested: Strategy asked for
        algorithm_used: Strategy that produced the groups
        fallbacks: Strategy name -> failure reason for strategies that failed
        objective: Mean intra-group utility of the final partition
    """
    groups: List[Group]
    algorithm_requested: str
    algorithm_used: str
    fallbacks: Dict[str, str] = field(default_factory=dict)
    objective: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "groups": [g.to_dict() for g in self.groups],
            "algorithm_requested": self.algorithm_requested,
            "algorithm_used": self.algorithm_used,
            "fallbacks": dict(self.fallbacks),
            "objective": self.objective,
        }
