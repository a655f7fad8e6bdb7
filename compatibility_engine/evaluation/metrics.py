"""
Evaluation metrics for compatibility scores and group partitions.

There is no ground truth for "good travel groups", so evaluation focuses on:
1. Score distribution analysis
2. Partition quality (size balance, intra-group compatibility, conflicts)
3. Stability of partitions across seeds (adjusted Rand index)
4. Sanity checks (monotonicity: closer trait profiles should score higher)

This module DOES NOT claim real-world predictive accuracy.
"""

import json
import logging
from dataclasses import asdict, dataclass, field
from itertools import combinations
from typing import Dict, List, Any, Optional, Sequence

import numpy as np
from scipy.stats import spearmanr
from sklearn.metrics import adjusted_rand_score

from ..partitioning.models import PartitionResult

logger = logging.getLogger(__name__)

DEFAULT_QUANTILES = (0.1, 0.25, 0.5, 0.75, 0.9)


@dataclass
class ScoreDistributionStats:
    """Summary statistics of pair scores."""
    mean: float
    std: float
    min: float
    max: float
    quantiles: Dict[str, float]  # {"p10": ..., "p50": ..., "p90": ...}

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PartitionQuality:
    """Summary of one partition."""
    algorithm: str
    group_count: int
    average_group_size: float
    size_spread: int  # largest minus smallest group
    average_compatibility: float
    total_conflicts: int
    objective: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class StabilityMetrics:
    """Partition stability across runs."""
    n_runs: int
    ari_mean: float  # mean pairwise adjusted Rand index
    ari_min: float
    identical_fraction: float  # share of run pairs with identical membership

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class MonotonicityCheck:
    """Rank agreement between pair scores and trait similarity."""
    correlation_with_similarity: float
    is_monotonic: bool
    n_violations: int
    violation_rate: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class EvaluationReport:
    """
    Evaluation report for one engine configuration.

    Documents score and partition behavior WITHOUT claiming predictive validity.
    """
    name: str
    distribution_stats: ScoreDistributionStats
    partition_quality: Optional[PartitionQuality] = None
    stability_metrics: Optional[StabilityMetrics] = None
    monotonicity_check: Optional[MonotonicityCheck] = None
    additional_metrics: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        sections = {
            "distribution_stats": self.distribution_stats,
            "partition_quality": self.partition_quality,
            "stability_metrics": self.stability_metrics,
            "monotonicity_check": self.monotonicity_check,
        }
        data: Dict[str, Any] = {"name": self.name}
        data.update({key: value.to_dict() for key, value in sections.items() if value is not None})
        data["additional_metrics"] = self.additional_metrics
        return data

    def save(self, filepath: str) -> None:
        with open(filepath, "w") as f:
            json.dump(self.to_dict(), f, indent=2)
        logger.info(f"Evaluation report '{self.name}' written to {filepath}")

    def summary(self) -> str:
        """Plain-text rendering for logs and the CLI."""
        stats = self.distribution_stats
        lines = [f"Evaluation Report: {self.name}", "=" * 50, "", "Pair scores:"]
        lines.append(f"  mean {stats.mean:.2f} +/- {stats.std:.2f} (range {stats.min:.2f} to {stats.max:.2f})")
        lines.append("  " + ", ".join(f"{name}={value:.2f}" for name, value in stats.quantiles.items()))

        quality = self.partition_quality
        if quality is not None:
            lines += [
                "",
                f"Partition via {quality.algorithm}: {quality.group_count} groups, "
                f"mean size {quality.average_group_size:.2f}, spread {quality.size_spread}",
                f"  compatibility {quality.average_compatibility:.2f}, "
                f"conflicts {quality.total_conflicts}, objective {quality.objective:.2f}",
            ]

        stability = self.stability_metrics
        if stability is not None:
            lines += [
                "",
                f"Stability over {stability.n_runs} runs: ARI mean {stability.ari_mean:.4f}, "
                f"min {stability.ari_min:.4f}, identical {stability.identical_fraction:.2%}",
            ]

        check = self.monotonicity_check
        if check is not None:
            lines += [
                "",
                f"Monotonicity: rho {check.correlation_with_similarity:.4f}, "
                f"monotonic={check.is_monotonic}, violations {check.violation_rate:.2%}",
            ]

        return "\n".join(lines)


def compute_score_distribution_stats(
    scores: Sequence[float],
    quantiles: Sequence[float] = DEFAULT_QUANTILES
) -> ScoreDistributionStats:
    """
    Summarize a set of pair scores.

    Empty input yields all-zero statistics.
    """
    values = np.asarray(scores, dtype=float)
    labels = [f"p{int(round(q * 100))}" for q in quantiles]
    if values.size == 0:
        return ScoreDistributionStats(0.0, 0.0, 0.0, 0.0, dict.fromkeys(labels, 0.0))

    points = np.percentile(values, [q * 100 for q in quantiles])
    return ScoreDistributionStats(
        mean=float(values.mean()),
        std=float(values.std()),
        min=float(values.min()),
        max=float(values.max()),
        quantiles={label: float(point) for label, point in zip(labels, points)},
    )



def partition_labels(result: PartitionResult, participant_ids: Sequence[str]) -> np.ndarray:
    """
    Convert a partition into a label vector aligned with participant_ids.

    Raises:
        KeyError: A participant id is missing from the partition
    """
    label_of = {}
    for label, group in enumerate(result.groups):
        for pid in group.participant_ids:
            label_of[pid] = label
    return np.array([label_of[pid] for pid in participant_ids])


def compare_partitions(
    a: PartitionResult,
    b: PartitionResult,
    participant_ids: Optional[Sequence[str]] = None
) -> float:
    """
    Adjusted Rand index between two partitions of the same participants.

    1.0 means identical membership regardless of group order.
    """
    if participant_ids is None:
        participant_ids = sorted(pid for g in a.groups for pid in g.participant_ids)
    return float(adjusted_rand_score(partition_labels(a, participant_ids),
                                     partition_labels(b, participant_ids)))


def summarize_partition(result: PartitionResult) -> PartitionQuality:
    """Quality summary of a partition."""
    sizes = [g.size for g in result.groups]
    return PartitionQuality(
        algorithm=result.algorithm_used,
        group_count=len(sizes),
        average_group_size=float(np.mean(sizes)) if sizes else 0.0,
        size_spread=(max(sizes) - min(sizes)) if sizes else 0,
        average_compatibility=float(np.mean([g.average_compatibility for g in result.groups]))
        if sizes else 0.0,
        total_conflicts=sum(g.conflict_summary.get("total_conflicts", 0) for g in result.groups),
        objective=result.objective,
    )


def compute_partition_stability(runs: List[PartitionResult]) -> StabilityMetrics:
    """
    Compute partition stability across multiple runs (e.g. different seeds).

    Args:
        runs: Partition results over the same participants

    Returns:
        StabilityMetrics instance
    """
    n_runs = len(runs)
    if n_runs < 2:
        logger.warning("Need at least 2 runs for stability analysis")
        return StabilityMetrics(n_runs=n_runs, ari_mean=1.0, ari_min=1.0, identical_fraction=1.0)

    ids = sorted(pid for g in runs[0].groups for pid in g.participant_ids)
    aris = [compare_partitions(a, b, ids) for a, b in combinations(runs, 2)]
    identical = [ari >= 1.0 - 1e-12 for ari in aris]

    return StabilityMetrics(
        n_runs=n_runs,
        ari_mean=float(np.mean(aris)),
        ari_min=float(np.min(aris)),
        identical_fraction=float(np.mean(identical)),
    )


def sanity_check_monotonicity(
    scores: np.ndarray,
    trait_distances: np.ndarray,
    threshold: float = 0.5
) -> MonotonicityCheck:
    """
    Check that compatibility falls as trait distance grows.

    Similarity is taken as the negated distance, so a well-behaved scorer
    has a strongly positive rank correlation.

    Args:
        scores: Pair compatibility scores
        trait_distances: Euclidean distance between the pair's trait vectors
        threshold: Correlation threshold for "is_monotonic" flag

    Returns:
        MonotonicityCheck instance
    """
    scores = np.asarray(scores, dtype=float)
    similarity = -np.asarray(trait_distances, dtype=float)

    correlation, _ = spearmanr(similarity, scores)
    if np.isnan(correlation):
        correlation = 0.0

    n_samples = len(scores)
    if n_samples > 1000:
        rng = np.random.RandomState(42)
        sample_idx = rng.choice(n_samples, size=1000, replace=False)
        scores, similarity = scores[sample_idx], similarity[sample_idx]

    sim_diff = similarity[None, :] - similarity[:, None]
    score_diff = scores[None, :] - scores[:, None]
    upper = np.triu_indices(len(scores), k=1)
    n_comparisons = len(upper[0])
    n_violations = int(np.sum((sim_diff * score_diff)[upper] < 0))
    violation_rate = n_violations / n_comparisons if n_comparisons > 0 else 0.0

    return MonotonicityCheck(
        correlation_with_similarity=float(correlation),
        is_monotonic=bool(correlation >= threshold),
        n_violations=n_violations,
        violation_rate=float(violation_rate)
    )


def create_evaluation_report(
    name: str,
    scores: Sequence[float],
    trait_distances: Optional[np.ndarray] = None,
    partition: Optional[PartitionResult] = None,
    stability_runs: Optional[List[PartitionResult]] = None,
    quantiles: Sequence[float] = DEFAULT_QUANTILES
) -> EvaluationReport:
    """
    Create a complete evaluation report.

    Args:
        name: Report name
        scores: Pair compatibility scores
        trait_distances: Trait distances per pair (for monotonicity check)
        partition: Partition to summarize
        stability_runs: Partitions from several seeds (for stability analysis)
        quantiles: Quantiles to compute

    Returns:
        EvaluationReport instance
    """
    monotonicity = None
    if trait_distances is not None and len(scores) > 1:
        monotonicity = sanity_check_monotonicity(np.asarray(scores), trait_distances)

    return EvaluationReport(
        name=name,
        distribution_stats=compute_score_distribution_stats(scores, quantiles),
        partition_quality=summarize_partition(partition) if partition else None,
        stability_metrics=compute_partition_stability(stability_runs) if stability_runs else None,
        monotonicity_check=monotonicity,
    )
