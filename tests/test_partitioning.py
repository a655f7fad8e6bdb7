"""
Tests for group partitioning: sizing, strategies, refinement and fallback.
"""

import numpy as np
import pytest

from compatibility_engine.errors import ComputationError, ValidationError
from compatibility_engine.partitioning import (
    ALGORITHMS,
    GroupPartitioner,
    PartitionConfig,
    PartitionOptions,
    balanced_group_sizes,
)
from compatibility_engine.partitioning import partitioner as partitioner_module
from compatibility_engine.partitioning.strategies import (
    agglomerative_strategy,
    build_utility_matrix,
    centroid_strategy,
    is_valid_partition,
    partition_objective,
    refine_partition,
)


def membership(result):
    return {frozenset(g.participant_ids) for g in result.groups}


@pytest.fixture
def partitioner():
    return GroupPartitioner()


@pytest.mark.unit
class TestGroupSizes:
    """Test balanced group sizing."""

    @pytest.mark.parametrize("n,target,expected", [
        (12, 6, [6, 6]),
        (13, 6, [5, 4, 4]),
        (5, 6, [5]),
        (6, 6, [6]),
        (7, 6, [4, 3]),
        (25, 4, [4, 4, 4, 4, 3, 3, 3]),
    ])
    def test_balanced_sizes(self, n, target, expected):
        """Test ceil(n / target) groups whose sizes differ by at most one."""
        assert balanced_group_sizes(n, target) == expected
        assert sum(expected) == n

    @pytest.mark.parametrize("target", [2, 3, 4, 6, 8])
    def test_groups_never_exceed_target(self, target):
        """Test no group is larger than the target, at the cost of smaller groups."""
        for n in range(target + 1, 60):
            sizes = balanced_group_sizes(n, target)
            assert max(sizes) <= target
            assert max(sizes) - min(sizes) <= 1
            assert len(sizes) == -(-n // target)


@pytest.mark.unit
class TestStrategies:
    """Test individual strategies on index level."""

    def test_utility_matrix(self):
        """Test penalties are subtracted and the diagonal zeroed."""
        compatibility = np.full((2, 2), 80.0)
        penalty = np.array([[0.0, 0.6], [0.6, 0.0]])
        utility = build_utility_matrix(compatibility, penalty, 0.5)
        assert utility[0, 1] == pytest.approx(80.0 - 30.0)
        assert utility[0, 0] == 0.0

    def test_objective_pooled_mean(self):
        """Test the objective averages over all intra-group pairs."""
        utility = np.zeros((5, 5))
        utility[0, 1] = utility[1, 0] = 90.0
        utility[2, 3] = utility[3, 2] = 30.0
        # pairs: (0,1)=90, (2,3)=30, (2,4)=0, (3,4)=0
        assert partition_objective([[0, 1], [2, 3, 4]], utility) == pytest.approx(30.0)
        assert partition_objective([[0], [1]], utility) == 0.0

    def test_refinement_finds_better_swap(self):
        """Test swap refinement reunites mutually compatible pairs."""
        utility = np.zeros((4, 4))
        utility[0, 1] = utility[1, 0] = 100.0
        utility[2, 3] = utility[3, 2] = 100.0
        refined, swaps = refine_partition([[0, 2], [1, 3]], utility)
        assert {tuple(g) for g in refined} == {(0, 1), (2, 3)}
        assert swaps == 1

    def test_refinement_never_worsens(self, pool):
        """Test refinement keeps or improves the objective."""
        from compatibility_engine.scoring import TraitCompatibilityScorer
        utility = build_utility_matrix(TraitCompatibilityScorer().score_matrix(pool))
        start = [list(range(0, 5)), list(range(5, 9)), list(range(9, 13))]
        refined, _ = refine_partition(start, utility)
        assert is_valid_partition(refined, 13, [5, 4, 4])
        assert partition_objective(refined, utility) >= partition_objective(start, utility)

    def test_refinement_respects_cap(self):
        """Test no swaps happen with a zero cap."""
        utility = np.zeros((4, 4))
        utility[0, 1] = utility[1, 0] = 100.0
        refined, swaps = refine_partition([[0, 2], [1, 3]], utility, max_swaps=0)
        assert swaps == 0
        assert refined == [[0, 2], [1, 3]]

    def test_centroid_valid_and_deterministic(self, make_pool):
        """Test centroid output is a valid partition and stable for a seed."""
        vectors = np.vstack([p.profile.to_vector() for p in make_pool(17)])
        sizes = balanced_group_sizes(17, 5)
        first = centroid_strategy(vectors, sizes, seed=3)
        second = centroid_strategy(vectors, sizes, seed=3)
        assert first.ok
        assert is_valid_partition(first.groups, 17, sizes)
        assert first.groups == second.groups

    def test_centroid_too_many_groups(self):
        """Test more groups than participants is a typed failure."""
        result = centroid_strategy(np.zeros((2, 9)), [1, 1, 1])
        assert not result.ok
        assert result.reason

    def test_agglomerative_valid(self, make_pool):
        """Test agglomerative output respects the size multiset."""
        from compatibility_engine.scoring import TraitCompatibilityScorer
        participants = make_pool(19)
        utility = build_utility_matrix(TraitCompatibilityScorer().score_matrix(participants))
        sizes = balanced_group_sizes(19, 6)
        result = agglomerative_strategy(utility, sizes)
        assert result.ok
        assert is_valid_partition(result.groups, 19, sizes)


@pytest.mark.unit
class TestGroupPartitioner:
    """Test the partitioner end to end."""

    @pytest.mark.parametrize("algorithm", ALGORITHMS)
    def test_twelve_into_two_groups_of_six(self, partitioner, make_pool, algorithm):
        """Test 12 participants with target 6 give two groups of six."""
        participants = make_pool(12)
        result = partitioner.partition(participants, PartitionOptions(target_group_size=6, algorithm=algorithm))
        assert [g.size for g in result.groups] == [6, 6]
        assert result.algorithm_used == algorithm
        assert result.fallbacks == {}

    @pytest.mark.parametrize("algorithm", ALGORITHMS)
    def test_thirteen_participants(self, partitioner, pool, algorithm):
        """Test 13 participants with target 6 give 2 or 3 balanced groups."""
        result = partitioner.partition(pool, PartitionOptions(target_group_size=6, algorithm=algorithm))
        sizes = [g.size for g in result.groups]
        assert len(sizes) in (2, 3)
        assert max(sizes) - min(sizes) <= 1

    @pytest.mark.parametrize("algorithm", ALGORITHMS)
    def test_every_participant_exactly_once(self, partitioner, make_pool, algorithm):
        """Test completeness and disjointness of the groups."""
        participants = make_pool(25, seed=3)
        result = partitioner.partition(participants, PartitionOptions(target_group_size=4, algorithm=algorithm))
        members = [pid for g in result.groups for pid in g.participant_ids]
        assert sorted(members) == sorted(p.id for p in participants)
        assert len(members) == len(set(members))

    @pytest.mark.parametrize("algorithm", ALGORITHMS)
    def test_deterministic_for_seed(self, partitioner, make_pool, algorithm):
        """Test identical inputs and seed reproduce identical groups."""
        participants = make_pool(20)
        options = PartitionOptions(target_group_size=5, algorithm=algorithm, seed=9)
        first = partitioner.partition(participants, options)
        second = partitioner.partition(participants, options)
        assert membership(first) == membership(second)
        assert first.objective == second.objective

    def test_hybrid_not_worse_than_components(self, partitioner, make_pool):
        """Test hybrid's objective is at least that of centroid and hierarchical."""
        participants = make_pool(18)
        objectives = {
            algorithm: partitioner.partition(participants, PartitionOptions(algorithm=algorithm)).objective
            for algorithm in ALGORITHMS
        }
        assert objectives["hybrid"] >= objectives["centroid"] - 1e-6
        assert objectives["hybrid"] >= objectives["hierarchical"] - 1e-6

    def test_small_pool_single_group(self, partitioner, pool):
        """Test fewer participants than the target form one group."""
        result = partitioner.partition(pool[:4], PartitionOptions(target_group_size=6))
        assert len(result.groups) == 1
        assert result.groups[0].size == 4
        assert result.groups[0].group_id == "group_1"
        assert result.algorithm_used == "hybrid"

    def test_strong_leaders_separated(self, partitioner, make_participant):
        """Test conflict avoidance places two strong leaders in different groups."""
        participants = [
            make_participant("lead_a", leadership_style=95),
            make_participant("lead_b", leadership_style=95),
            make_participant("c"),
            make_participant("d"),
        ]
        result = partitioner.partition(participants, PartitionOptions(target_group_size=2))
        for group in result.groups:
            assert not {"lead_a", "lead_b"} <= set(group.participant_ids)
            assert group.conflict_summary["total_conflicts"] == 0

    def test_groups_annotated(self, partitioner, pool):
        """Test groups carry ids, mean compatibility and conflict summary."""
        result = partitioner.partition(pool)
        for number, group in enumerate(result.groups, start=1):
            assert group.group_id == f"group_{number}"
            assert 0.0 <= group.average_compatibility <= 100.0
            assert {"total_conflicts", "overall_risk", "risk_level"} <= set(group.conflict_summary)
        d = result.to_dict()
        assert d["algorithm_requested"] == "hybrid"
        assert d["groups"][0]["size"] == result.groups[0].size

    @pytest.mark.parametrize("options", [
        PartitionOptions(target_group_size=1),
        PartitionOptions(algorithm="kmeans"),
    ])
    def test_invalid_options(self, partitioner, pool, options):
        """Test invalid targets and algorithms are rejected."""
        with pytest.raises(ValidationError):
            partitioner.partition(pool, options)

    def test_invalid_participants(self, partitioner, pool):
        """Test too few participants and duplicate ids are rejected."""
        with pytest.raises(ValidationError):
            partitioner.partition(pool[:1])
        with pytest.raises(ValidationError):
            partitioner.partition([pool[0], pool[0], pool[1]])

    def test_invalid_config(self):
        """Test configuration validation."""
        with pytest.raises(ValueError):
            GroupPartitioner(config=PartitionConfig(algorithm="random"))


@pytest.mark.unit
class TestFallbackChain:
    """Test strategy fallback when a strategy fails."""

    def test_falls_back_to_hierarchical(self, partitioner, pool, monkeypatch, caplog):
        """Test a failing centroid strategy degrades hybrid to hierarchical."""
        def broken(*args, **kwargs):
            raise RuntimeError("centroid unavailable")

        monkeypatch.setattr(partitioner_module, "centroid_strategy", broken)
        with caplog.at_level("WARNING"):
            result = partitioner.partition(pool, PartitionOptions(algorithm="hybrid"))
        assert result.algorithm_requested == "hybrid"
        assert result.algorithm_used == "hierarchical"
        assert set(result.fallbacks) == {"hybrid", "centroid"}
        assert "degraded" in caplog.text
        members = [pid for g in result.groups for pid in g.participant_ids]
        assert sorted(members) == sorted(p.id for p in pool)

    def test_typed_failure_falls_back(self, partitioner, pool, monkeypatch):
        """Test a strategy failure result moves on to the next strategy."""
        from compatibility_engine.partitioning import StrategyResult

        monkeypatch.setattr(partitioner_module, "agglomerative_strategy",
                            lambda *args, **kwargs: StrategyResult.failure("stuck"))
        result = partitioner.partition(pool, PartitionOptions(algorithm="hierarchical"))
        assert result.algorithm_used == "centroid"
        assert result.fallbacks == {"hierarchical": "stuck"}

    def test_all_strategies_fail(self, partitioner, pool, monkeypatch):
        """Test exhaustion of the chain raises ComputationError."""
        def broken(*args, **kwargs):
            raise RuntimeError("down")

        monkeypatch.setattr(partitioner_module, "centroid_strategy", broken)
        monkeypatch.setattr(partitioner_module, "agglomerative_strategy", broken)
        with pytest.raises(ComputationError):
            partitioner.partition(pool, PartitionOptions(algorithm="centroid"))
