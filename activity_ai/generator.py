"""Generates recommendations for activities using the Gemini backend."""

import asyncio
from typing import Awaitable, Callable, Optional

import structlog

from . import metrics
from .errors import GenerationFailed, PreconditionViolation, TransportFailure
from .gemini_client import GeminiClient
from .models import Activity, Recommendation
from .prompts import build_prompt
from .response_parser import parse
from .retry import RetryPolicy

logger = structlog.get_logger(__name__)

Parser = Callable[[Activity, Optional[str]], Recommendation]
Sleep = Callable[[float], Awaitable[None]]


class RecommendationGenerator:
    """Builds the prompt, calls the backend and parses the reply.

    Transport errors are retried according to the injected RetryPolicy.
    Exhausted retries raise GenerationFailed; a default recommendation is
    only ever produced by the parser for a malformed reply.
    """

    def __init__(
        self,
        client: GeminiClient,
        policy: Optional[RetryPolicy] = None,
        attempt_timeout: Optional[float] = None,
        parser: Parser = parse,
        sleep: Sleep = asyncio.sleep,
    ):
        """Initialize the generator.

        Args:
            client: Backend client exposing ``get_answer(prompt)``
            policy: Retry schedule, defaults to 3 attempts with 1s/2s backoff
            attempt_timeout: Upper bound in seconds for a single backend call
            parser: Converts a raw reply into a Recommendation
            sleep: Awaitable used between attempts
        """
        self.client = client
        self.policy = policy or RetryPolicy()
        self.attempt_timeout = attempt_timeout
        self.parser = parser
        self.sleep = sleep

    async def _call_backend(self, prompt: str) -> str:
        if self.attempt_timeout is None:
            return await self.client.get_answer(prompt)
        try:
            return await asyncio.wait_for(
                self.client.get_answer(prompt), timeout=self.attempt_timeout
            )
        except asyncio.TimeoutError as e:
            raise TransportFailure(
                f"Backend call exceeded {self.attempt_timeout}s"
            ) from e

    async def generate(self, activity: Optional[Activity]) -> Recommendation:
        """Generate a recommendation for an activity.

        Raises:
            PreconditionViolation: if no activity is given
            GenerationFailed: if every attempt failed
        """
        if activity is None:
            raise PreconditionViolation("Activity cannot be None")

        prompt = build_prompt(activity)
        logger.debug(
            "Generating recommendation",
            activity_id=activity.id,
            prompt_length=len(prompt),
        )

        max_attempts = self.policy.max_attempts
        last_error: Optional[Exception] = None

        for attempt in range(1, max_attempts + 1):
            metrics.generation_attempts.inc()
            try:
                raw_response = await self._call_backend(prompt)
                return self.parser(activity, raw_response)
            except Exception as e:
                last_error = e
                logger.warning(
                    "Generation attempt failed",
                    activity_id=activity.id,
                    attempt=attempt,
                    max_attempts=max_attempts,
                    error=str(e),
                    error_type=type(e).__name__,
                )

            if attempt < max_attempts:
                await self.sleep(self.policy.delay_for(attempt))

        metrics.generation_failures.inc()
        logger.error(
            "Recommendation generation failed",
            activity_id=activity.id,
            attempts=max_attempts,
            error=str(last_error),
        )
        raise GenerationFailed(activity.id, max_attempts, last_error) from last_error
