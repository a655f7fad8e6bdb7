"""
Retry policy shared by every job type.

Backoff Formula:
    delay(retry) = min(base_delay * 2^(retry - 1), max_delay)

Validation errors describe a bad request; retrying cannot fix them.
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict

from ..errors import ValidationError


@dataclass
class RetryPolicy:
    """
    Exponential backoff retry policy.

    Attributes:
        max_retries: Default number of retries after the first attempt
        base_delay_seconds: Delay before the first retry
        max_delay_seconds: Upper bound of any delay
    """
    max_retries: int = 3
    base_delay_seconds: float = 30.0
    max_delay_seconds: float = 300.0

    def validate(self) -> None:
        """Validate configuration values."""
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.base_delay_seconds < 0 or self.max_delay_seconds < 0:
            raise ValueError("Retry delays must be non-negative")

    def should_retry(self, retry_count: int, max_retries: int, error: BaseException) -> bool:
        """
        Decide whether a failed attempt is retried.

        Args:
            retry_count: Retries already performed
            max_retries: Retries allowed for the job
            error: Exception of the failed attempt

        Returns:
            True if another attempt should be queued
        """
        if isinstance(error, ValidationError):
            return False
        return retry_count < max_retries

    def delay(self, retry_number: int) -> float:
        """Backoff in seconds before retry number `retry_number` (1-based)."""
        if retry_number < 1:
            return 0.0
        return float(min(self.base_delay_seconds * (2 ** (retry_number - 1)), self.max_delay_seconds))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "RetryPolicy":
        """Create from main config dictionary."""
        j = config.get("jobs", {}) or {}
        return cls(
            max_retries=j.get("max_retries", 3),
            base_delay_seconds=j.get("base_delay_seconds", 30.0),
            max_delay_seconds=j.get("max_delay_seconds", 300.0),
        )
