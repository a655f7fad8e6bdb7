"""
External collaborators consumed by the engine.

The engine does not own persistence. It reads participant profiles through a
ProfileProvider and hands finished job results to a ResultStore. In-memory
implementations are provided for tests, scripts and the CLI.
"""

import logging
import threading
from typing import Any, Dict, Iterable, Mapping, Optional

from .profiles.schema import Participant, TraitProfile, normalize_profile

logger = logging.getLogger(__name__)


class ProfileProvider:
    """Source of participant trait profiles."""

    def get_participant(self, participant_id: str) -> Optional[TraitProfile]:
        """
        Fetch the profile of one participant.

        Args:
            participant_id: Participant identifier

        Returns:
            TraitProfile, or None if the id is unknown
        """
        raise NotImplementedError


class ResultStore:
    """Sink for completed job results."""

    def store_job_result(self, job_id: str, result: Any) -> None:
        raise NotImplementedError


class InMemoryProfileProvider(ProfileProvider):
    """
    Dictionary-backed profile provider.

    Raw trait mappings are normalized on insert.
    """

    def __init__(self, profiles: Optional[Mapping[str, Any]] = None):
        self._profiles: Dict[str, TraitProfile] = {}
        self._lock = threading.Lock()
        for participant_id, traits in (profiles or {}).items():
            self.add(participant_id, traits)

    @classmethod
    def from_participants(cls, participants: Iterable[Participant]) -> "InMemoryProfileProvider":
        provider = cls()
        for participant in participants:
            provider.add(participant.id, participant.profile)
        return provider

    def add(self, participant_id: Any, traits: Any) -> None:
        with self._lock:
            self._profiles[str(participant_id)] = normalize_profile(traits)

    def get_participant(self, participant_id: str) -> Optional[TraitProfile]:
        with self._lock:
            return self._profiles.get(str(participant_id))

    def __len__(self) -> int:
        return len(self._profiles)


class InMemoryResultStore(ResultStore):
    """Dictionary-backed result store."""

    def __init__(self):
        self.results: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def store_job_result(self, job_id: str, result: Any) -> None:
        with self._lock:
            self.results[job_id] = result
        logger.debug(f"Stored result for job {job_id}")

    def get(self, job_id: str) -> Any:
        with self._lock:
            return self.results.get(job_id)
