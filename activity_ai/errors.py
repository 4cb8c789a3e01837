"""Error types raised by the recommendation pipeline."""

from typing import Optional


class RecommendationError(Exception):
    """Base class for recommendation pipeline errors."""


class PreconditionViolation(RecommendationError, ValueError):
    """Input to the pipeline is missing or cannot be decoded. Never retried."""


class TransportFailure(RecommendationError):
    """The generative backend could not be reached or answered with an error."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class GenerationFailed(RecommendationError):
    """All generation attempts for an activity were exhausted."""

    def __init__(self, activity_id: str, attempts: int, last_error: BaseException):
        super().__init__(
            f"Failed to generate recommendation for activity {activity_id} "
            f"after {attempts} attempts: {last_error}"
        )
        self.activity_id = activity_id
        self.attempts = attempts
        self.last_error = last_error


class PersistenceFailure(RecommendationError):
    """Writing or reading a recommendation from the store failed."""
