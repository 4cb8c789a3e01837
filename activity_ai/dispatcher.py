"""Drives one activity event through generation and persistence."""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import structlog
from pydantic import ValidationError

from . import metrics
from .errors import PersistenceFailure, PreconditionViolation, RecommendationError
from .generator import RecommendationGenerator
from .models import Activity, Recommendation
from .store import RecommendationStore

logger = structlog.get_logger(__name__)


class EventState(str, Enum):
    RECEIVED = "received"
    GENERATING = "generating"
    PERSISTING = "persisting"
    ACKED = "acked"
    FAILED_TERMINAL = "failed_terminal"


@dataclass
class DispatchResult:
    """Outcome of processing one event.

    ``state`` is ACKED or FAILED_TERMINAL. On failure ``failed_state`` is
    the stage that failed and ``error`` the exception that ended it.
    """

    state: EventState
    activity_id: Optional[str] = None
    recommendation: Optional[Recommendation] = None
    failed_state: Optional[EventState] = None
    error: Optional[BaseException] = None
    processing_time_ms: float = 0.0

    @property
    def acked(self) -> bool:
        return self.state is EventState.ACKED


def decode_activity(payload: Any) -> Activity:
    """Decode a broker payload into an Activity."""
    if payload is None:
        raise PreconditionViolation("Activity payload is missing")
    if isinstance(payload, Activity):
        return payload
    if not isinstance(payload, dict):
        raise PreconditionViolation(
            f"Activity payload must be an object, got {type(payload).__name__}"
        )
    try:
        return Activity.model_validate(payload)
    except ValidationError as e:
        raise PreconditionViolation(f"Invalid activity payload: {e}") from e


class ActivityDispatcher:
    """Runs Received -> Generating -> Persisting -> Acked for one event.

    An activity that already has a stored recommendation is acked with it
    without calling the backend. Any failure ends in FAILED_TERMINAL. The dispatcher never retries:
    retrying the backend is the generator's job, and a failed store write
    is left to alerting rather than repeated.
    """

    def __init__(self, generator: RecommendationGenerator, store: RecommendationStore):
        self.generator = generator
        self.store = store

    def _transition(self, state: EventState, activity_id: Optional[str], **kw: Any) -> None:
        logger.info("Activity event transition", state=state.value, activity_id=activity_id, **kw)

    def _fail(
        self,
        failed_state: EventState,
        activity_id: Optional[str],
        error: BaseException,
        start_time: float,
    ) -> DispatchResult:
        logger.error(
            "Activity event failed",
            state=EventState.FAILED_TERMINAL.value,
            failed_state=failed_state.value,
            activity_id=activity_id,
            error=str(error),
            error_type=type(error).__name__,
        )
        metrics.events_processed.labels(outcome="rejected").inc()
        return DispatchResult(
            state=EventState.FAILED_TERMINAL,
            activity_id=activity_id,
            failed_state=failed_state,
            error=error,
            processing_time_ms=(time.time() - start_time) * 1000,
        )

    def _ack(
        self, activity_id: str, recommendation: Recommendation, start_time: float
    ) -> DispatchResult:
        processing_time = (time.time() - start_time) * 1000
        self._transition(
            EventState.ACKED,
            activity_id,
            recommendation_id=recommendation.id,
            processing_time_ms=processing_time,
        )
        metrics.events_processed.labels(outcome="acked").inc()
        return DispatchResult(
            state=EventState.ACKED,
            activity_id=activity_id,
            recommendation=recommendation,
            processing_time_ms=processing_time,
        )

    async def dispatch(self, payload: Any) -> DispatchResult:
        """Process one event. Never raises for a processing failure."""
        start_time = time.time()
        activity_id = payload.get("id") if isinstance(payload, dict) else None
        self._transition(EventState.RECEIVED, activity_id)

        with metrics.processing_duration.time():
            try:
                activity = decode_activity(payload)
            except PreconditionViolation as e:
                return self._fail(EventState.RECEIVED, activity_id, e, start_time)
            activity_id = activity.id

            try:
                existing = await self.store.find_by_activity_id(activity_id)
            except PersistenceFailure as e:
                metrics.persistence_failures.inc()
                return self._fail(EventState.RECEIVED, activity_id, e, start_time)
            except Exception as e:
                metrics.persistence_failures.inc()
                logger.error("Unexpected store error", activity_id=activity_id, exc_info=True)
                failure = PersistenceFailure(str(e))
                failure.__cause__ = e
                return self._fail(EventState.RECEIVED, activity_id, failure, start_time)
            if existing is not None:
                logger.info(
                    "Recommendation already stored, skipping generation",
                    activity_id=activity_id,
                    recommendation_id=existing.id,
                )
                return self._ack(activity_id, existing, start_time)

            self._transition(EventState.GENERATING, activity_id)
            try:
                recommendation = await self.generator.generate(activity)
            except RecommendationError as e:
                return self._fail(EventState.GENERATING, activity_id, e, start_time)
            except Exception as e:
                logger.error("Unexpected generation error", activity_id=activity_id, exc_info=True)
                return self._fail(EventState.GENERATING, activity_id, e, start_time)

            self._transition(EventState.PERSISTING, activity_id)
            try:
                saved = await self.store.save(recommendation)
            except PersistenceFailure as e:
                metrics.persistence_failures.inc()
                return self._fail(EventState.PERSISTING, activity_id, e, start_time)
            except Exception as e:
                metrics.persistence_failures.inc()
                logger.error("Unexpected store error", activity_id=activity_id, exc_info=True)
                failure = PersistenceFailure(str(e))
                failure.__cause__ = e
                return self._fail(EventState.PERSISTING, activity_id, failure, start_time)

        return self._ack(activity_id, saved, start_time)

