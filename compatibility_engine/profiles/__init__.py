"""Trait profile schema and normalization boundary."""

from .schema import (
    TraitDimension,
    TraitProfile,
    Participant,
    normalize_profile,
    TRAIT_DIMENSIONS,
)

__all__ = [
    "TraitDimension",
    "TraitProfile",
    "Participant",
    "normalize_profile",
    "TRAIT_DIMENSIONS",
]
