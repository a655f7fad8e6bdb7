"""Conflict detection module."""

from .detector import (
    ConflictDetector,
    ConflictConfig,
    ConflictReport,
    Conflict,
    suggest_resolutions,
    predict_group_success,
)

__all__ = [
    "ConflictDetector",
    "ConflictConfig",
    "ConflictReport",
    "Conflict",
    "suggest_resolutions",
    "predict_group_success",
]
