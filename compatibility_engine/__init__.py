"""
Traveler Group Compatibility & Optimization Engine

This package turns a pool of participant trait profiles into pairwise and
group compatibility scores, interpersonal conflict reports and a partition
into size-bounded travel groups, plus the scaling layer around them
(batch strategies, bounded concurrency, priority job queue, result cache).

Key Design Decisions:
- One normalization boundary: raw trait records become TraitProfile objects
  before any algorithm sees them; bad values degrade, never raise
- Scoring is a weighted sum of per-dimension similarities with non-linear
  age and leadership rules
- Partitioning tries a typed chain of strategies (hybrid, centroid,
  agglomerative) and refines with swap hill climbing
- Service objects are injected into a CompatibilityEngine facade; there is
  no module-level shared state
"""

__version__ = "1.0.0"

from .engine import CompatibilityEngine, EngineConfig, create_engine_from_config
from .errors import (
    EngineError,
    ValidationError,
    ComputationError,
    JobFailure,
    JobTimeoutError,
    JobNotFoundError,
    CacheError,
)
from .profiles import Participant, TraitProfile, normalize_profile

__all__ = [
    "CompatibilityEngine",
    "EngineConfig",
    "create_engine_from_config",
    "EngineError",
    "ValidationError",
    "ComputationError",
    "JobFailure",
    "JobTimeoutError",
    "JobNotFoundError",
    "CacheError",
    "Participant",
    "TraitProfile",
    "normalize_profile",
]
