"""
Pair enumeration and chunking for batch compatibility computation.

Key Design Decisions:
- Pairs are unordered: (A, B) and (B, A) are the same pair
- Self-pairs are never generated
- Pair order follows the upper triangle, row by row, which is the condensed
  order used by scipy.spatial.distance.squareform
- Chunked plans cover every pair exactly once: all intra-chunk pairs, then
  all pairs between chunk i and chunk j for i < j
"""

import logging
from itertools import combinations
from typing import Any, List, Sequence, Tuple

import numpy as np

logger = logging.getLogger(__name__)

IndexPair = Tuple[int, int]


def pair_count(n: int) -> int:
    """Number of unordered pairs among n participants."""
    return n * (n - 1) // 2


def generate_pairs(ids: Sequence[Any]) -> List[Tuple[Any, Any]]:
    """
    All unordered pairs of ids, in upper-triangle order.

    Args:
        ids: Participant ids

    Returns:
        List of (id_a, id_b) tuples, n(n-1)/2 long
    """
    return list(combinations(ids, 2))


def pair_indices(n: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Upper-triangle index arrays for n participants.

    Returns:
        Tuple of (indices_a, indices_b) with indices_a[i] < indices_b[i]
    """
    indices_a, indices_b = np.triu_indices(n, k=1)
    return indices_a, indices_b


def chunk_ids(ids: Sequence[Any], n_chunks: int) -> List[List[Any]]:
    """
    Split ids into at most n_chunks contiguous chunks of near-equal size.

    Args:
        ids: Items to split
        n_chunks: Desired number of chunks

    Returns:
        List of non-empty chunks
    """
    n_chunks = max(1, min(n_chunks, len(ids)))
    bounds = np.linspace(0, len(ids), n_chunks + 1).round().astype(int)
    return [list(ids[bounds[i]:bounds[i + 1]]) for i in range(n_chunks) if bounds[i + 1] > bounds[i]]


def intra_chunk_pairs(chunk: Sequence[int]) -> List[IndexPair]:
    """Pairs within one chunk of positions."""
    return [(a, b) if a < b else (b, a) for a, b in combinations(chunk, 2)]


def inter_chunk_pairs(chunk_a: Sequence[int], chunk_b: Sequence[int]) -> List[IndexPair]:
    """Pairs with one member in each of two disjoint chunks of positions."""
    return [(a, b) if a < b else (b, a) for a in chunk_a for b in chunk_b]


def chunk_plan(n: int, n_chunks: int) -> Tuple[List[List[IndexPair]], List[List[IndexPair]]]:
    """
    Build the two-phase work plan for n participants.

    Args:
        n: Number of participants
        n_chunks: Number of chunks c

    Returns:
        Tuple of (intra-chunk units, inter-chunk units); c + c(c-1)/2 units
        in total, together covering every pair exactly once
    """
    chunks = chunk_ids(list(range(n)), n_chunks)
    intra = [intra_chunk_pairs(chunk) for chunk in chunks]
    inter = [
        inter_chunk_pairs(chunks[i], chunks[j])
        for i in range(len(chunks))
        for j in range(i + 1, len(chunks))
    ]
    logger.debug(f"Chunk plan: {len(chunks)} chunks, {len(intra)} intra and {len(inter)} inter units")
    return intra, inter
