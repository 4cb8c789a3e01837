"""Retry policy for calls to the generative backend."""

from typing import Iterator

from pydantic import BaseModel, Field

from .config import Settings


class RetryPolicy(BaseModel):
    """Exponential backoff schedule.

    With the defaults an operation is tried three times, sleeping 1s and
    then 2s between attempts.
    """

    max_attempts: int = Field(default=3, ge=1)
    base_delay: float = Field(default=1.0, ge=0.0, description="Seconds")
    multiplier: float = Field(default=2.0, ge=1.0)
    max_delay: float = Field(default=30.0, ge=0.0, description="Seconds")

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay_seconds,
            multiplier=settings.retry_multiplier,
            max_delay=settings.retry_max_delay_seconds,
        )

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after the given failed attempt (1-based)."""
        return min(self.base_delay * self.multiplier ** (attempt - 1), self.max_delay)

    def delays(self) -> Iterator[float]:
        """Waits between consecutive attempts, one fewer than max_attempts."""
        for attempt in range(1, self.max_attempts):
            yield self.delay_for(attempt)
