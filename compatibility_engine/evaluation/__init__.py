"""Evaluation module for score and partition analysis."""

from .metrics import (
    compute_score_distribution_stats,
    compute_partition_stability,
    compare_partitions,
    summarize_partition,
    sanity_check_monotonicity,
    EvaluationReport,
    create_evaluation_report
)

__all__ = [
    "compute_score_distribution_stats",
    "compute_partition_stability",
    "compare_partitions",
    "summarize_partition",
    "sanity_check_monotonicity",
    "EvaluationReport",
    "create_evaluation_report"
]
