"""Trait compatibility scoring module."""

from .trait_scorer import (
    TraitCompatibilityScorer,
    ScoringConfig,
    CompatibilityScore,
    GroupCompatibility,
)
from .dynamics import GroupDynamics, analyze_group_dynamics, diversity_score, trait_level

__all__ = [
    "TraitCompatibilityScorer",
    "ScoringConfig",
    "CompatibilityScore",
    "GroupCompatibility",
    "GroupDynamics",
    "analyze_group_dynamics",
    "diversity_score",
    "trait_level",
]
