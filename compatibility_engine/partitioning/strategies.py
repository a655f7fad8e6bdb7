"""
Clustering strategies for group partitioning.

All strategies work on participant positions (0..n-1) and return a
StrategyResult whose groups match a prescribed list of balanced sizes.

Strategies:
- Centroid: farthest-point seeding in the normalized trait space, then
  capacity-constrained nearest-centroid assignment and centroid recompute
- Agglomerative: average-linkage merging on the compatibility matrix with a
  size cap, followed by a rebalancing pass
- Refinement: best-improvement pairwise swaps between groups (hill climbing)

Objective:
    objective = mean over intra-group pairs of U[i, j]
    U = compatibility - conflict_penalty_weight * penalty * 100

Swaps never change group sizes, so the number of intra-group pairs is
constant and maximizing the pooled sum maximizes the mean.
"""

import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np
from sklearn.metrics.pairwise import euclidean_distances

from .models import StrategyResult

logger = logging.getLogger(__name__)

IMPROVEMENT_EPSILON = 1e-9


def build_utility_matrix(
    compatibility: np.ndarray,
    penalty: Optional[np.ndarray] = None,
    penalty_weight: float = 0.0
) -> np.ndarray:
    """
    Combine compatibility and conflict penalty into one pairwise utility.

    Args:
        compatibility: Symmetric n x n compatibility matrix (0-100)
        penalty: Symmetric n x n severity-weighted conflict matrix
        penalty_weight: Weight of the conflict penalty

    Returns:
        Symmetric n x n utility matrix with zero diagonal
    """
    utility = np.array(compatibility, dtype=float)
    if penalty is not None and penalty_weight > 0:
        utility = utility - penalty_weight * np.asarray(penalty, dtype=float) * 100.0
    np.fill_diagonal(utility, 0.0)
    return utility


def partition_objective(groups: Sequence[Sequence[int]], utility: np.ndarray) -> float:
    """Mean utility over all intra-group pairs (0 when no pairs exist)."""
    total = 0.0
    n_pairs = 0
    for members in groups:
        idx = np.asarray(members, dtype=int)
        if len(idx) < 2:
            continue
        block = utility[np.ix_(idx, idx)]
        total += float(np.triu(block, k=1).sum())
        n_pairs += len(idx) * (len(idx) - 1) // 2
    if n_pairs == 0:
        return 0.0
    return total / n_pairs


def is_valid_partition(groups: Sequence[Sequence[int]], n: int, sizes: Sequence[int]) -> bool:
    """True if groups cover 0..n-1 exactly once and match the size multiset."""
    flat = [i for members in groups for i in members]
    if sorted(flat) != list(range(n)):
        return False
    return sorted(len(g) for g in groups) == sorted(sizes)


def _farthest_point_seeds(vectors: np.ndarray, k: int, random_state: np.random.RandomState) -> List[int]:
    """Pick k seed positions: one at random, then repeatedly the farthest point."""
    n = len(vectors)
    seeds = [int(random_state.randint(n))]
    min_dist = euclidean_distances(vectors, vectors[seeds[0]:seeds[0] + 1]).ravel()
    while len(seeds) < k:
        min_dist[seeds] = -1.0
        candidate = int(np.argmax(min_dist))
        seeds.append(candidate)
        dist = euclidean_distances(vectors, vectors[candidate:candidate + 1]).ravel()
        min_dist = np.minimum(min_dist, dist)
    return seeds


def _capacity_assign(distances: np.ndarray, capacities: Sequence[int]) -> np.ndarray:
    """
    Assign each point to the nearest cluster that still has room.

    Candidate (point, cluster) pairs are visited by increasing distance, so
    the closest placements are committed first.
    """
    n, k = distances.shape
    remaining = np.array(capacities, dtype=int)
    labels = np.full(n, -1, dtype=int)
    order = np.argsort(distances, axis=None, kind="stable")
    assigned = 0
    for flat_idx in order:
        point, cluster = divmod(int(flat_idx), k)
        if labels[point] != -1 or remaining[cluster] == 0:
            continue
        labels[point] = cluster
        remaining[cluster] -= 1
        assigned += 1
        if assigned == n:
            break
    return labels


def centroid_strategy(
    vectors: np.ndarray,
    sizes: Sequence[int],
    seed: int = 42,
    max_iterations: int = 100
) -> StrategyResult:
    """
    Balanced centroid clustering over normalized trait vectors.

    Args:
        vectors: n x d array of trait vectors in [0, 1]
        sizes: Target size of each group
        seed: Seed for the first centroid
        max_iterations: Assignment / recompute iteration cap

    Returns:
        StrategyResult
    """
    n = len(vectors)
    k = len(sizes)
    if k > n:
        return StrategyResult.failure(f"cannot form {k} groups from {n} participants")

    random_state = np.random.RandomState(seed)
    seeds = _farthest_point_seeds(vectors, k, random_state)
    centroids = vectors[seeds].copy()

    labels = None
    for iteration in range(max_iterations):
        distances = euclidean_distances(vectors, centroids)
        new_labels = _capacity_assign(distances, sizes)
        if labels is not None and np.array_equal(labels, new_labels):
            logger.debug(f"Centroid clustering converged after {iteration} iterations")
            break
        labels = new_labels
        centroids = np.vstack([vectors[labels == c].mean(axis=0) for c in range(k)])

    groups = [sorted(np.flatnonzero(labels == c).tolist()) for c in range(k)]
    if not is_valid_partition(groups, n, sizes):
        return StrategyResult.failure("centroid assignment produced an invalid partition")
    return StrategyResult.success(groups)


def _rebalance(clusters: List[List[int]], sizes: Sequence[int], compatibility: np.ndarray) -> List[List[int]]:
    """
    Move members until every cluster has its target size.

    Clusters are matched to targets by size rank; each move relocates the
    member of an oversized cluster with the best affinity gain towards an
    undersized cluster.
    """
    clusters = sorted(clusters, key=len, reverse=True)
    targets = sorted(sizes, reverse=True)

    def affinity(member: int, group: List[int]) -> float:
        others = [x for x in group if x != member]
        if not others:
            return 0.0
        return float(compatibility[member, others].mean())

    while True:
        over = [c for c in range(len(clusters)) if len(clusters[c]) > targets[c]]
        under = [c for c in range(len(clusters)) if len(clusters[c]) < targets[c]]
        if not over:
            break
        best = None
        for source in over:
            for member in clusters[source]:
                leave = affinity(member, clusters[source])
                for dest in under:
                    gain = affinity(member, clusters[dest] + [member]) - leave
                    if best is None or gain > best[0]:
                        best = (gain, member, source, dest)
        _, member, source, dest = best
        clusters[source].remove(member)
        clusters[dest].append(member)
    return clusters


def agglomerative_strategy(compatibility: np.ndarray, sizes: Sequence[int]) -> StrategyResult:
    """
    Average-linkage agglomerative clustering with a size cap.

    Repeatedly merges the two clusters with the highest mean inter-cluster
    compatibility whose merged size does not exceed the largest target size.
    If no such pair exists, the two smallest clusters are merged.

    Args:
        compatibility: Symmetric n x n compatibility (or utility) matrix
        sizes: Target size of each group

    Returns:
        StrategyResult
    """
    n = compatibility.shape[0]
    k = len(sizes)
    max_size = max(sizes)

    members: List[List[int]] = [[i] for i in range(n)]
    link_sum = np.array(compatibility, dtype=float)
    cluster_size = np.ones(n)
    active = np.ones(n, dtype=bool)

    while active.sum() > k:
        average = link_sum / np.outer(cluster_size, cluster_size)
        allowed = np.outer(active, active)
        np.fill_diagonal(allowed, False)
        allowed &= (cluster_size[:, None] + cluster_size[None, :]) <= max_size

        if allowed.any():
            masked = np.where(allowed, average, -np.inf)
            a, b = np.unravel_index(int(np.argmax(masked)), masked.shape)
        else:
            alive = np.flatnonzero(active)
            a, b = alive[np.argsort(cluster_size[alive], kind="stable")[:2]]
        a, b = int(min(a, b)), int(max(a, b))

        link_sum[a, :] += link_sum[b, :]
        link_sum[:, a] += link_sum[:, b]
        cluster_size[a] += cluster_size[b]
        members[a].extend(members[b])
        members[b] = []
        active[b] = False

    clusters = [sorted(members[i]) for i in np.flatnonzero(active)]
    clusters = [sorted(c) for c in _rebalance(clusters, sizes, compatibility)]
    if not is_valid_partition(clusters, n, sizes):
        return StrategyResult.failure("agglomerative merge produced an invalid partition")
    return StrategyResult.success(clusters)


def refine_partition(
    groups: Sequence[Sequence[int]],
    utility: np.ndarray,
    max_swaps: int = 200
) -> Tuple[List[List[int]], int]:
    """
    Best-improvement swap hill climbing.

    For every pair of groups (g, h) and members i in g, j in h the change in
    the pooled intra-group utility from swapping i and j is

        delta = R[j,g] - R[i,g] + R[i,h] - R[j,h] - 2 U[i,j]

    where R[x, g] is the summed utility of x towards the members of g. The
    best swap is applied while it improves by more than IMPROVEMENT_EPSILON.

    Args:
        groups: Index groups to refine
        utility: Pairwise utility matrix with zero diagonal
        max_swaps: Cap on accepted swaps

    Returns:
        Tuple of (refined groups, number of swaps applied)
    """
    groups = [list(g) for g in groups]
    n = utility.shape[0]
    k = len(groups)
    if k < 2:
        return groups, 0

    swaps = 0
    while swaps < max_swaps:
        membership = np.zeros((n, k))
        for g, members in enumerate(groups):
            membership[members, g] = 1.0
        row_sums = utility @ membership

        best = (IMPROVEMENT_EPSILON, None)
        for g in range(k):
            gi = np.asarray(groups[g], dtype=int)
            for h in range(g + 1, k):
                hj = np.asarray(groups[h], dtype=int)
                side_g = row_sums[gi, h] - row_sums[gi, g]
                side_h = row_sums[hj, g] - row_sums[hj, h]
                delta = side_g[:, None] + side_h[None, :] - 2.0 * utility[np.ix_(gi, hj)]
                pos = np.unravel_index(int(np.argmax(delta)), delta.shape)
                if delta[pos] > best[0]:
                    best = (float(delta[pos]), (g, h, int(gi[pos[0]]), int(hj[pos[1]])))

        if best[1] is None:
            break
        g, h, i, j = best[1]
        groups[g][groups[g].index(i)] = j
        groups[h][groups[h].index(j)] = i
        swaps += 1

    logger.debug(f"Refinement applied {swaps} swaps")
    return [sorted(g) for g in groups], swaps
