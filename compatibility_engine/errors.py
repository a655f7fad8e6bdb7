"""
Error taxonomy for the compatibility engine.

Error Kinds:
- ValidationError: invalid call shape, surfaced immediately, never retried
- ComputationError: an internal scoring/clustering step failed
- JobFailure: a queued job raised or timed out (retried per policy)
- CacheError: a cache read/write failed (always degraded to a miss)
"""


class EngineError(Exception):
    """Base class for all engine errors."""


class ValidationError(EngineError, ValueError):
    """Invalid input: empty participant list, duplicate ids, bad sizes."""


class ComputationError(EngineError):
    """An internal scoring or clustering step failed."""


class JobFailure(EngineError):
    """A job attempt failed."""


class JobTimeoutError(JobFailure):
    """A job attempt exceeded its timeout budget."""


class JobNotFoundError(ValidationError, KeyError):
    """No job with the requested id is known to the queue."""

    def __str__(self) -> str:
        return Exception.__str__(self)


class CacheError(EngineError):
    """A cache backend operation failed."""
