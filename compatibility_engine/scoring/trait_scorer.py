"""
Trait compatibility scoring between two participants.

This module computes a weighted compatibility score for a pair of trait
profiles, together with a per-dimension breakdown for explainability.

Per-Dimension Similarity:
- Linear dimensions: sim = 100 - |a - b|
- Age: near-maximal below a soft threshold, smooth exponential decay above it
- Leadership: two strong leaders clash (penalty), a strong/weak pairing
  complements, two weak leaders leave a leadership void

Aggregate Formula:
    overall = clip(sum_i(weight_i * sim_i), 0, 100)

Default Weights:
- Personality cluster (energy, social, communication): 40%
- Adventure style: 20%
- Travel style (risk, planning): 20%
- Age: 10%
- Leadership / experience: 10%

Scoring never raises: profiles are normalized at the boundary and any
unexpected failure degrades to a neutral score with zero confidence.
"""

import json
import logging
import math
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from ..profiles.schema import (
    Participant,
    TraitProfile,
    TraitDimension,
    TRAIT_DIMENSIONS,
    normalize_profile,
)
from .dynamics import GroupDynamics, analyze_group_dynamics

logger = logging.getLogger(__name__)

NEUTRAL_SCORE = 50.0

DEFAULT_WEIGHTS: Dict[str, float] = {
    "energy_level": 0.15,
    "social_preference": 0.15,
    "communication_style": 0.10,
    "adventure_style": 0.20,
    "risk_tolerance": 0.10,
    "planning_style": 0.10,
    "age": 0.10,
    "leadership_style": 0.05,
    "experience_level": 0.05,
}

ProfileLike = Union[Participant, TraitProfile, Dict[str, Any], None]


@dataclass
class ScoringConfig:
    """
    Configuration for trait compatibility scoring.

    Attributes:
        weights: Weight per dimension (re-normalized to sum to 1)
        age_threshold: Age gap (years) after which compatibility decays
        leadership_high: Leadership value above which a participant is a strong leader
        leadership_low: Leadership value below which a participant is a weak leader
        complement_gap: Minimum leadership gap for a strong/weak complement
    """
    weights: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_WEIGHTS))
    age_threshold: float = 15.0
    leadership_high: float = 75.0
    leadership_low: float = 30.0
    complement_gap: float = 40.0

    def validate(self) -> None:
        """Validate configuration values."""
        unknown = set(self.weights) - set(TRAIT_DIMENSIONS)
        if unknown:
            raise ValueError(f"Unknown scoring dimensions: {sorted(unknown)}")
        if any(w < 0 for w in self.weights.values()):
            raise ValueError("Scoring weights must be non-negative")
        if sum(self.weights.values()) <= 0:
            raise ValueError("Scoring weights must not all be zero")
        if self.age_threshold <= 0:
            raise ValueError(f"age_threshold must be positive, got {self.age_threshold}")

    def normalized_weights(self) -> np.ndarray:
        """Weights as a vector over TRAIT_DIMENSIONS, summing to 1."""
        vector = np.array([self.weights.get(dim, 0.0) for dim in TRAIT_DIMENSIONS], dtype=float)
        return vector / vector.sum()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    def fingerprint(self) -> str:
        """Stable string identifying this configuration (used in cache keys)."""
        return json.dumps(self.to_dict(), sort_keys=True)

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "ScoringConfig":
        """Create from main config dictionary."""
        scoring_config = config.get("scoring", {}) or {}
        weights = dict(DEFAULT_WEIGHTS)
        weights.update(scoring_config.get("weights", {}) or {})
        return cls(
            weights=weights,
            age_threshold=scoring_config.get("age_threshold", 15.0),
            leadership_high=scoring_config.get("leadership_high", 75.0),
            leadership_low=scoring_config.get("leadership_low", 30.0),
            complement_gap=scoring_config.get("complement_gap", 40.0),
        )


@dataclass
class CompatibilityScore:
    """
    Compatibility between two participants.

    Attributes:
        participant_a: Id of the first participant
        participant_b: Id of the second participant
        overall_score: Weighted score in [0, 100]
        breakdown: Per-dimension similarity in [0, 100]
        confidence: Share of non-defaulted dimensions across both profiles
        degraded: True if the score is a neutral fallback
    """
    participant_a: Optional[str]
    participant_b: Optional[str]
    overall_score: float
    breakdown: Dict[str, float]
    confidence: float
    degraded: bool = False

    @property
    def pair(self) -> Tuple[Optional[str], Optional[str]]:
        return (self.participant_a, self.participant_b)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "CompatibilityScore":
        """Create from dictionary."""
        return cls(**d)


@dataclass
class GroupCompatibility:
    """Mean pairwise compatibility of a participant set, with its group dynamics."""
    average_score: float
    pair_scores: List[CompatibilityScore]
    dynamics: Optional[GroupDynamics] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "average_score": self.average_score,
            "pair_scores": [s.to_dict() for s in self.pair_scores],
            "dynamics": self.dynamics.to_dict() if self.dynamics is not None else None,
        }


def _unpack(item: ProfileLike) -> Tuple[Optional[str], TraitProfile]:
    if isinstance(item, Participant):
        return item.id, item.profile
    return None, normalize_profile(item)


class TraitCompatibilityScorer:
    """
    Pure pairwise compatibility scorer.

    The scorer holds no mutable state; one instance can be shared across
    worker threads.

    Attributes:
        config: ScoringConfig with weights and non-linear rule parameters
    """

    def __init__(self, config: Optional[ScoringConfig] = None):
        """
        Initialize the scorer.

        Args:
            config: ScoringConfig instance (defaults used if omitted)
        """
        self.config = config or ScoringConfig()
        self.config.validate()
        self._weights = self.config.normalized_weights()

    def score(
        self,
        a: ProfileLike,
        b: ProfileLike,
        id_a: Optional[str] = None,
        id_b: Optional[str] = None,
    ) -> CompatibilityScore:
        """
        Compute compatibility between two participants or profiles.

        Args:
            a: Participant, TraitProfile or raw trait mapping
            b: Participant, TraitProfile or raw trait mapping
            id_a: Optional id override for a
            id_b: Optional id override for b

        Returns:
            CompatibilityScore (never raises)
        """
        pid_a, profile_a = _unpack(a)
        pid_b, profile_b = _unpack(b)
        pid_a = id_a if id_a is not None else pid_a
        pid_b = id_b if id_b is not None else pid_b

        try:
            similarities = self._dimension_similarities(profile_a, profile_b)
            overall = float(np.clip(np.dot(self._weights, similarities), 0.0, 100.0))
        except Exception as e:
            logger.warning(f"Scoring degraded for pair ({pid_a}, {pid_b}): {e}")
            return CompatibilityScore(
                participant_a=pid_a,
                participant_b=pid_b,
                overall_score=NEUTRAL_SCORE,
                breakdown={dim: NEUTRAL_SCORE for dim in TRAIT_DIMENSIONS},
                confidence=0.0,
                degraded=True,
            )

        defaulted = len(profile_a.defaulted) + len(profile_b.defaulted)
        confidence = 1.0 - defaulted / (2 * len(TRAIT_DIMENSIONS))

        return CompatibilityScore(
            participant_a=pid_a,
            participant_b=pid_b,
            overall_score=round(overall, 2),
            breakdown={
                dim: round(float(sim), 2) for dim, sim in zip(TRAIT_DIMENSIONS, similarities)
            },
            confidence=round(confidence, 4),
        )

    def score_group(self, participants: Sequence[Participant]) -> GroupCompatibility:
        """
        Compute mean pairwise compatibility for a group.

        Args:
            participants: Participants in the group

        Returns:
            GroupCompatibility (average 0, no pairs and no dynamics for fewer
            than 2 participants)
        """
        pair_scores = []
        for i in range(len(participants)):
            for j in range(i + 1, len(participants)):
                pair_scores.append(self.score(participants[i], participants[j]))

        if not pair_scores:
            return GroupCompatibility(average_score=0.0, pair_scores=[])

        average = float(np.mean([s.overall_score for s in pair_scores]))
        return GroupCompatibility(
            average_score=round(average, 2),
            pair_scores=pair_scores,
            dynamics=analyze_group_dynamics(participants, pair_scores),
        )

    def score_matrix(self, participants: Sequence[Participant]) -> np.ndarray:
        """
        Compute the symmetric n x n compatibility matrix (diagonal = 100).

        Args:
            participants: Participants to score

        Returns:
            numpy array (n x n)
        """
        n = len(participants)
        matrix = np.full((n, n), 100.0)
        for i in range(n):
            for j in range(i + 1, n):
                value = self.score(participants[i], participants[j]).overall_score
                matrix[i, j] = value
                matrix[j, i] = value
        return matrix

    def _dimension_similarities(self, a: TraitProfile, b: TraitProfile) -> np.ndarray:
        """Per-dimension similarity vector in TRAIT_DIMENSIONS order."""
        similarities = []
        for dim in TRAIT_DIMENSIONS:
            if dim == TraitDimension.AGE.value:
                similarities.append(self._age_similarity(a[dim], b[dim]))
            elif dim == TraitDimension.LEADERSHIP_STYLE.value:
                similarities.append(self._leadership_similarity(a[dim], b[dim]))
            else:
                similarities.append(100.0 - abs(a[dim] - b[dim]))
        return np.clip(np.asarray(similarities, dtype=float), 0.0, 100.0)

    def _age_similarity(self, age_a: float, age_b: float) -> float:
        """
        Age compatibility.

        Gaps up to the threshold lose at most 10 points; beyond it the
        score decays exponentially from 90 with the threshold as scale.
        """
        threshold = self.config.age_threshold
        gap = abs(age_a - age_b)
        if gap <= threshold:
            return 100.0 - gap * (10.0 / threshold)
        return 90.0 * math.exp(-(gap - threshold) / threshold)

    def _leadership_similarity(self, lead_a: float, lead_b: float) -> float:
        """Leadership compatibility (authority clash modeled as a penalty)."""
        high = self.config.leadership_high
        low = self.config.leadership_low
        if lead_a > high and lead_b > high:
            return max(15.0, 40.0 - (min(lead_a, lead_b) - high))
        if max(lead_a, lead_b) > high and abs(lead_a - lead_b) > self.config.complement_gap:
            return 90.0
        if lead_a < low and lead_b < low:
            return 60.0
        return 100.0 - abs(lead_a - lead_b)
