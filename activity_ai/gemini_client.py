"""Client for the Gemini generateContent API."""

import time
from typing import Any, Dict, Optional

import httpx
import structlog

from .config import Settings, settings as default_settings
from .errors import TransportFailure

logger = structlog.get_logger(__name__)


class GeminiClient:
    """Client for interacting with the Gemini text generation endpoint."""

    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or default_settings
        self.api_url = settings.gemini_api_url
        self.api_key = settings.gemini_api_key
        self.timeout = settings.gemini_timeout_seconds

    @staticmethod
    def build_request_body(prompt: str) -> Dict[str, Any]:
        """Request body for a single-turn text prompt."""
        return {"contents": [{"parts": [{"text": prompt}]}]}

    async def _make_request(self, data: Dict[str, Any]) -> str:
        """POST to the Gemini API and return the raw response body."""
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.post(
                    self.api_url,
                    params={"key": self.api_key},
                    json=data,
                    headers={"Content-Type": "application/json"},
                )
                response.raise_for_status()
                return response.text
            except httpx.HTTPStatusError as e:
                logger.error(
                    "HTTP error from Gemini",
                    status=e.response.status_code,
                    error=str(e),
                )
                raise TransportFailure(
                    f"Gemini returned HTTP {e.response.status_code}",
                    status_code=e.response.status_code,
                ) from e
            except httpx.TimeoutException as e:
                logger.error("Timeout calling Gemini", timeout=self.timeout)
                raise TransportFailure(
                    f"Gemini request timed out after {self.timeout}s"
                ) from e
            except httpx.RequestError as e:
                logger.error("Request error to Gemini", error=str(e))
                raise TransportFailure(f"Gemini request failed: {e}") from e

    async def get_answer(self, prompt: str) -> str:
        """Send a prompt and return the raw response envelope text."""
        start_time = time.time()

        answer = await self._make_request(self.build_request_body(prompt))

        processing_time = (time.time() - start_time) * 1000
        logger.info(
            "Gemini generation completed",
            processing_time_ms=processing_time,
            prompt_length=len(prompt),
            response_length=len(answer),
        )
        return answer

    async def health_check(self) -> bool:
        """Check whether the Gemini models endpoint is reachable."""
        models_url = self.api_url.split("/models/")[0] + "/models"
        try:
            async with httpx.AsyncClient(timeout=5) as client:
                response = await client.get(models_url, params={"key": self.api_key})
                return response.status_code == 200
        except Exception as e:
            logger.error("Gemini health check failed", error=str(e))
            return False
