"""
Trait profile schema and normalization boundary.

Every raw participant record passes through `normalize_profile` before it
reaches scoring, conflict detection or partitioning. The boundary converts
loosely-typed input (missing keys, strings, NaN, out-of-range values) into a
fully-populated `TraitProfile`, so the algorithms never need null-checks.

Dimensions (0-100 scale unless noted):
- energy_level, social_preference, communication_style (personality cluster)
- adventure_style, risk_tolerance, planning_style (travel style)
- experience_level, leadership_style
- age (years, clamped to [0, 120])

Normalization never fails: invalid entries are replaced with a neutral
default and recorded in `defaulted`, which lowers `confidence`.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional

import numpy as np


class TraitDimension(Enum):
    """Named trait dimensions of a participant profile."""
    ENERGY_LEVEL = "energy_level"
    SOCIAL_PREFERENCE = "social_preference"
    ADVENTURE_STYLE = "adventure_style"
    RISK_TOLERANCE = "risk_tolerance"
    PLANNING_STYLE = "planning_style"
    COMMUNICATION_STYLE = "communication_style"
    EXPERIENCE_LEVEL = "experience_level"
    LEADERSHIP_STYLE = "leadership_style"
    AGE = "age"


TRAIT_DIMENSIONS: List[str] = [d.value for d in TraitDimension]

NEUTRAL_VALUE = 50.0
NEUTRAL_AGE = 30.0
SCALE_MIN = 0.0
SCALE_MAX = 100.0
AGE_MIN = 0.0
AGE_MAX = 120.0

# camelCase names used by upstream profile records
_ALIASES = {
    "energyLevel": "energy_level",
    "socialPreference": "social_preference",
    "adventureStyle": "adventure_style",
    "riskTolerance": "risk_tolerance",
    "planningStyle": "planning_style",
    "communicationStyle": "communication_style",
    "experienceLevel": "experience_level",
    "leadershipStyle": "leadership_style",
}


def _coerce_number(value: Any) -> Optional[float]:
    """Return a finite float for `value`, or None if it is not numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


@dataclass(frozen=True)
class TraitProfile:
    """
    Canonical, fully-populated trait profile.

    Attributes:
        values: Mapping of every dimension in TRAIT_DIMENSIONS to a float
        defaulted: Dimensions whose raw value was missing or invalid
    """
    values: Dict[str, float]
    defaulted: FrozenSet[str] = field(default_factory=frozenset)

    def __getitem__(self, dimension: str) -> float:
        return self.values[dimension]

    @property
    def confidence(self) -> float:
        """Share of dimensions backed by real data, in [0, 1]."""
        return 1.0 - len(self.defaulted) / len(TRAIT_DIMENSIONS)

    def is_defaulted(self, dimension: str) -> bool:
        return dimension in self.defaulted

    def to_vector(self) -> np.ndarray:
        """
        Convert to a feature vector in [0, 1] for clustering.

        Age is scaled by AGE_MAX so that it shares the unit range.

        Returns:
            numpy array of len(TRAIT_DIMENSIONS) floats
        """
        vector = []
        for dim in TRAIT_DIMENSIONS:
            if dim == TraitDimension.AGE.value:
                vector.append(self.values[dim] / AGE_MAX)
            else:
                vector.append(self.values[dim] / SCALE_MAX)
        return np.asarray(vector, dtype=float)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "values": dict(self.values),
            "defaulted": sorted(self.defaulted),
            "confidence": self.confidence,
        }


def normalize_profile(raw: Optional[Mapping[str, Any]]) -> TraitProfile:
    """
    Convert any raw trait mapping into a canonical TraitProfile.

    Rules:
    - Values are clamped to [0, 100] (age to [0, 120])
    - Missing or non-numeric entries become 50 (age 30) and are marked defaulted
    - camelCase aliases are accepted
    - A TraitProfile passed in is returned unchanged

    Args:
        raw: Raw mapping of dimension name to value (may be None)

    Returns:
        TraitProfile instance
    """
    if isinstance(raw, TraitProfile):
        return raw

    source: Dict[str, Any] = {}
    if isinstance(raw, Mapping):
        for key, value in raw.items():
            source[_ALIASES.get(key, key)] = value

    values = {}
    defaulted = set()
    for dim in TRAIT_DIMENSIONS:
        number = _coerce_number(source.get(dim))
        if dim == TraitDimension.AGE.value:
            if number is None:
                values[dim] = NEUTRAL_AGE
                defaulted.add(dim)
            else:
                values[dim] = min(AGE_MAX, max(AGE_MIN, number))
        else:
            if number is None:
                values[dim] = NEUTRAL_VALUE
                defaulted.add(dim)
            else:
                values[dim] = min(SCALE_MAX, max(SCALE_MIN, number))

    return TraitProfile(values=values, defaulted=frozenset(defaulted))


@dataclass(frozen=True)
class Participant:
    """
    One traveler: an identifier plus a normalized trait profile.

    Attributes:
        id: Participant identifier
        profile: Normalized TraitProfile
    """
    id: str
    profile: TraitProfile

    @classmethod
    def create(cls, participant_id: Any, traits: Optional[Mapping[str, Any]] = None) -> "Participant":
        """Create from an id and a raw trait mapping."""
        return cls(id=str(participant_id), profile=normalize_profile(traits))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Participant":
        """
        Create from a record dictionary.

        Traits are read from a nested "traits" or "personality" mapping when
        present, otherwise from the record itself.
        """
        participant_id = data.get("id", data.get("participant_id", data.get("user_id")))
        if participant_id is None:
            raise ValueError("Participant record has no id")
        traits = data.get("traits") or data.get("personality") or data
        return cls.create(participant_id, traits)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {"id": self.id, "traits": dict(self.profile.values)}
