"""Data loading module for participant profiles."""

from .loaders import (
    load_participant_table,
    load_participants,
    create_synthetic_participants,
    participants_to_frame,
)

__all__ = [
    "load_participant_table",
    "load_participants",
    "create_synthetic_participants",
    "participants_to_frame",
]
