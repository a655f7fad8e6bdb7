"""Group partitioning module."""

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
    centroid_strategy,
    agglomerative_strategy,
    refine_partition,
    partition_objective,
)
from .partitioner import GroupPartitioner

__all__ = [
    "ALGORITHMS",
    "STRATEGY_CHAINS",
    "GroupPartitioner",
    "Group",
    "PartitionConfig",
    "PartitionOptions",
    "PartitionResult",
    "StrategyResult",
    "balanced_group_sizes",
    "centroid_strategy",
    "agglomerative_strategy",
    "refine_partition",
    "partition_objective",
]
