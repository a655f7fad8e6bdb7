"""Batch compatibility computation module."""

from .pairs import generate_pairs, chunk_ids, chunk_plan, pair_count
from .orchestrator import (
    BatchOrchestrator,
    BatchConfig,
    BatchOptions,
    BatchProgress,
    BatchResult,
    BatchStrategy,
    select_strategy,
)

__all__ = [
    "BatchOrchestrator",
    "BatchConfig",
    "BatchOptions",
    "BatchProgress",
    "BatchResult",
    "BatchStrategy",
    "select_strategy",
    "generate_pairs",
    "chunk_ids",
    "chunk_plan",
    "pair_count",
]
