"""Test configuration and fixtures for the activity recommendation service."""

import json
from datetime import datetime, timezone
from typing import Any, Callable, Dict
from unittest.mock import AsyncMock

import pytest

from activity_ai.config import Settings
from activity_ai.gemini_client import GeminiClient
from activity_ai.generator import RecommendationGenerator
from activity_ai.models import Activity, ActivityType
from activity_ai.retry import RetryPolicy
from activity_ai.store import InMemoryRecommendationStore


def wrap_in_envelope(text: str) -> str:
    """Wrap reply text the way the generateContent endpoint does."""
    return json.dumps(
        {
            "candidates": [
                {
                    "content": {"parts": [{"text": text}], "role": "model"},
                    "finishReason": "STOP",
                    "index": 0,
                }
            ],
            "usageMetadata": {"promptTokenCount": 310, "candidatesTokenCount": 420},
        }
    )


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        environment="test",
        kafka_bootstrap_servers="localhost:9092",
        gemini_api_key="test-key",
        store_backend="memory",
        log_level="DEBUG",
        shutdown_grace_seconds=1.0,
    )


@pytest.fixture
def sample_activity() -> Activity:
    """A 30 minute run."""
    return Activity(
        id="act-001",
        user_id="user-42",
        type=ActivityType.RUNNING,
        duration=30,
        calories_burned=300,
        start_time=datetime(2024, 5, 1, 7, 30, tzinfo=timezone.utc),
        additional_metrics={"heartRate": 150},
    )


@pytest.fixture
def activity_payload() -> Dict[str, Any]:
    """Activity event as it arrives on the wire."""
    return {
        "id": "act-001",
        "userId": "user-42",
        "type": "RUNNING",
        "duration": 30,
        "caloriesBurned": 300,
        "startTime": "2024-05-01T07:30:00Z",
        "additionalMetrics": {"heartRate": 150},
    }


@pytest.fixture
def full_content() -> Dict[str, Any]:
    """Application content with every section filled in."""
    return {
        "analysis": {
            "overall": "Solid steady-state run.",
            "pace": "Pace of 6:00/km was consistent.",
            "heartRate": "Average heart rate of 150 bpm sits in zone 3.",
            "caloriesBurned": "300 kcal is typical for this effort.",
        },
        "improvements": [
            {"area": "Cadence", "recommendation": "Aim for 170-180 steps per minute."},
            {"area": "Recovery", "recommendation": "Add a cool-down walk."},
        ],
        "suggestions": [
            {"workout": "Interval run", "description": "6 x 400m at 5k pace."},
        ],
        "safety": [
            "Warm up for 10 minutes",
            "Hydrate before and after",
            "Stop if you feel chest pain",
        ],
    }


@pytest.fixture
def envelope() -> Callable[[Any], str]:
    """Build a raw backend reply from content (dict) or raw text (str)."""

    def _build(content: Any, fenced: bool = False) -> str:
        text = content if isinstance(content, str) else json.dumps(content)
        if fenced:
            text = f"```json\n{text}\n```"
        return wrap_in_envelope(text)

    return _build


@pytest.fixture
def mock_gemini_client() -> AsyncMock:
    """Create mock Gemini client."""
    client = AsyncMock(spec=GeminiClient)
    client.health_check.return_value = True
    return client


@pytest.fixture
def recorded_sleeps() -> list:
    return []


@pytest.fixture
def fake_sleep(recorded_sleeps: list) -> Callable:
    """Zero-delay sleep that records requested delays."""

    async def _sleep(delay: float) -> None:
        recorded_sleeps.append(delay)

    return _sleep


@pytest.fixture
def generator(mock_gemini_client: AsyncMock, fake_sleep: Callable) -> RecommendationGenerator:
    return RecommendationGenerator(
        mock_gemini_client, policy=RetryPolicy(), sleep=fake_sleep
    )


@pytest.fixture
def memory_store() -> InMemoryRecommendationStore:
    return InMemoryRecommendationStore()
