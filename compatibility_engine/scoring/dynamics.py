"""
Group dynamics: how a group's trait composition looks as a whole.

Complements the mean pairwise score with:
1. Average value and a descriptive level per trait
2. Low-compatibility pairs (overall score below a threshold)
3. Diversity score from per-trait variance
4. Recommendations on group size, pairings and energy balance

Level Bands:
    >= 80 Very High, >= 60 High, >= 40 Moderate, >= 20 Low, else Very Low

Diversity Formula:
    diversity = min(100, mean_t(var_t) / 10)
    where var_t is the population variance of trait t across members.
    Age is excluded; it is not on the 0-100 trait scale.
"""

import logging
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from ..profiles.schema import Participant, TraitDimension, TRAIT_DIMENSIONS

logger = logging.getLogger(__name__)

GROUP_TRAITS: List[str] = [d for d in TRAIT_DIMENSIONS if d != TraitDimension.AGE.value]

LEVEL_BANDS = [(80.0, "Very High"), (60.0, "High"), (40.0, "Moderate"), (20.0, "Low")]

LOW_COMPATIBILITY_THRESHOLD = 60.0
MIN_COMFORTABLE_SIZE = 3
MAX_COMFORTABLE_SIZE = 8
HIGH_ENERGY = 80.0
LOW_ENERGY = 30.0


def trait_level(value: float) -> str:
    """Descriptive level of a 0-100 trait value."""
    for lower, label in LEVEL_BANDS:
        if value >= lower:
            return label
    return "Very Low"


def diversity_score(participants: Sequence[Participant]) -> float:
    """
    Trait diversity of a group in [0, 100].

    Returns:
        0 for fewer than two participants
    """
    if len(participants) < 2:
        return 0.0
    values = np.array([[p.profile[t] for t in GROUP_TRAITS] for p in participants], dtype=float)
    mean_variance = float(np.mean(np.var(values, axis=0)))
    return float(round(min(100.0, mean_variance / 10.0)))


@dataclass
class GroupDynamics:
    """
    Composition summary of one group.

    Attributes:
        group_size: Number of members
        average_traits: Mean value per trait
        trait_levels: Descriptive level per trait
        low_compatibility_pairs: (id_a, id_b, score) for pairs below the threshold
        diversity_score: Trait diversity in [0, 100]
        recommendations: Dicts with type, priority and message
    """
    group_size: int
    average_traits: Dict[str, float]
    trait_levels: Dict[str, str]
    low_compatibility_pairs: List[Dict[str, Any]] = field(default_factory=list)
    diversity_score: float = 0.0
    recommendations: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def recommend(
    group_size: int,
    average_traits: Dict[str, float],
    n_low_pairs: int
) -> List[Dict[str, str]]:
    """Size, pairing and energy-balance recommendations for a group."""
    recommendations = []

    if group_size < MIN_COMFORTABLE_SIZE:
        recommendations.append({
            "type": "size",
            "priority": "medium",
            "message": "Consider adding more participants for better group dynamics",
        })
    elif group_size > MAX_COMFORTABLE_SIZE:
        recommendations.append({
            "type": "size",
            "priority": "high",
            "message": "Large groups may be difficult to manage. Consider splitting into smaller groups",
        })

    if n_low_pairs > 0:
        recommendations.append({
            "type": "compatibility",
            "priority": "high",
            "message": f"{n_low_pairs} low-compatibility pairings detected. Review participant pairings",
        })

    energy = average_traits.get(TraitDimension.ENERGY_LEVEL.value, 50.0)
    if energy > HIGH_ENERGY:
        recommendations.append({
            "type": "balance",
            "priority": "medium",
            "message": "High-energy group. Ensure activities match the energy level",
        })
    elif energy < LOW_ENERGY:
        recommendations.append({
            "type": "balance",
            "priority": "medium",
            "message": "Low-energy group. Consider more relaxed activities",
        })

    return recommendations


def analyze_group_dynamics(
    participants: Sequence[Participant],
    pair_scores: Sequence[Any],
    low_threshold: float = LOW_COMPATIBILITY_THRESHOLD
) -> Optional[GroupDynamics]:
    """
    Summarize the trait composition of a group.

    Args:
        participants: Group members
        pair_scores: CompatibilityScore for each member pair
        low_threshold: Pairs scoring below this are flagged

    Returns:
        GroupDynamics, or None for fewer than two participants
    """
    if len(participants) < 2:
        return None

    averages = {
        trait: round(float(np.mean([p.profile[trait] for p in participants])), 2)
        for trait in GROUP_TRAITS
    }
    low_pairs = [
        {"participant_a": s.participant_a, "participant_b": s.participant_b, "score": s.overall_score}
        for s in pair_scores
        if s.overall_score < low_threshold
    ]

    dynamics = GroupDynamics(
        group_size=len(participants),
        average_traits=averages,
        trait_levels={trait: trait_level(value) for trait, value in averages.items()},
        low_compatibility_pairs=low_pairs,
        diversity_score=diversity_score(participants),
        recommendations=recommend(len(participants), averages, len(low_pairs)),
    )
    logger.debug(f"Group of {dynamics.group_size}: diversity {dynamics.diversity_score}, "
                 f"{len(low_pairs)} low pairs")
    return dynamics
