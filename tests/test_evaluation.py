"""
Tests for score and partition evaluation metrics.
"""

import json

import numpy as np
import pytest

from compatibility_engine.evaluation import (
    compare_partitions,
    compute_partition_stability,
    compute_score_distribution_stats,
    create_evaluation_report,
    sanity_check_monotonicity,
    summarize_partition,
)
from compatibility_engine.partitioning import Group, PartitionResult

pytestmark = pytest.mark.unit


def make_result(groups, objective=50.0):
    return PartitionResult(
        groups=[
            Group(group_id=f"group_{i + 1}", participant_ids=list(ids), average_compatibility=70.0,
                  conflict_summary={"total_conflicts": i})
            for i, ids in enumerate(groups)
        ],
        algorithm_requested="hybrid",
        algorithm_used="hybrid",
        objective=objective,
    )


class TestPartitionComparison:
    """Test adjusted Rand index comparisons."""

    def test_identical_up_to_relabeling(self):
        """Test group order does not affect agreement."""
        a = make_result([["a", "b"], ["c", "d"]])
        b = make_result([["d", "c"], ["b", "a"]])
        assert compare_partitions(a, b) == pytest.approx(1.0)

    def test_different_partitions(self):
        """Test different membership lowers agreement."""
        a = make_result([["a", "b"], ["c", "d"]])
        b = make_result([["a", "c"], ["b", "d"]])
        assert compare_partitions(a, b) < 1.0

    def test_stability(self):
        """Test stability over identical and differing runs."""
        same = make_result([["a", "b"], ["c", "d"]])
        other = make_result([["a", "c"], ["b", "d"]])
        stable = compute_partition_stability([same, same, same])
        assert stable.ari_mean == pytest.approx(1.0)
        assert stable.identical_fraction == 1.0
        mixed = compute_partition_stability([same, same, other])
        assert mixed.identical_fraction == pytest.approx(1 / 3)
        assert mixed.ari_min < 1.0

    def test_single_run(self):
        """Test one run is trivially stable."""
        assert compute_partition_stability([make_result([["a", "b"]])]).n_runs == 1

    def test_summary(self):
        """Test the partition quality summary."""
        quality = summarize_partition(make_result([["a", "b", "c"], ["d", "e"]], objective=61.5))
        assert quality.group_count == 2
        assert quality.size_spread == 1
        assert quality.total_conflicts == 1
        assert quality.objective == 61.5


class TestScoreMetrics:
    """Test score distribution and monotonicity checks."""

    def test_distribution(self):
        """Test summary statistics and quantiles."""
        stats = compute_score_distribution_stats([10.0, 20.0, 30.0, 40.0, 50.0])
        assert stats.mean == pytest.approx(30.0)
        assert stats.min == 10.0
        assert stats.quantiles["p50"] == pytest.approx(30.0)

    def test_empty_distribution(self):
        """Test empty input gives zeros."""
        assert compute_score_distribution_stats([]).mean == 0.0

    def test_monotonic_scores(self):
        """Test scores falling with distance are monotonic."""
        distances = np.linspace(0.0, 1.0, 20)
        check = sanity_check_monotonicity(100.0 - 50.0 * distances, distances)
        assert check.is_monotonic
        assert check.n_violations == 0

    def test_scorer_is_monotonic(self, make_pool):
        """Test real pair scores correlate with trait-vector proximity."""
        from compatibility_engine.scoring import TraitCompatibilityScorer
        participants = make_pool(15)
        scorer = TraitCompatibilityScorer()
        scores, distances = [], []
        for i in range(len(participants)):
            for j in range(i + 1, len(participants)):
                a, b = participants[i], participants[j]
                scores.append(scorer.score(a, b).overall_score)
                distances.append(float(np.linalg.norm(a.profile.to_vector() - b.profile.to_vector())))
        check = sanity_check_monotonicity(np.array(scores), np.array(distances))
        assert check.correlation_with_similarity > 0.3

    def test_report_saved(self, tmp_path):
        """Test a full report serializes to JSON."""
        report = create_evaluation_report(
            "unit",
            scores=[60.0, 70.0, 80.0],
            trait_distances=np.array([0.9, 0.5, 0.1]),
            partition=make_result([["a", "b"], ["c", "d"]]),
            stability_runs=[make_result([["a", "b"], ["c", "d"]])] * 2,
        )
        path = tmp_path / "report.json"
        report.save(str(path))
        data = json.loads(path.read_text())
        assert data["name"] == "unit"
        assert "unit" in report.summary()
