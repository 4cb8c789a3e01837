"""Tests for data models."""

import pytest
from pydantic import ValidationError

from activity_ai.models import (
    Activity,
    ActivityType,
    GeminiResponse,
    ProcessingMetrics,
    Recommendation,
)


class TestActivity:
    def test_decode_camel_case_payload(self, activity_payload):
        activity = Activity.model_validate(activity_payload)

        assert activity.id == "act-001"
        assert activity.user_id == "user-42"
        assert activity.type is ActivityType.RUNNING
        assert activity.calories_burned == 300
        assert activity.additional_metrics == {"heartRate": 150}
        assert activity.start_time.year == 2024

    def test_decode_snake_case_payload(self):
        activity = Activity.model_validate(
            {
                "id": "a",
                "user_id": "u",
                "type": "YOGA",
                "duration": 45,
                "calories_burned": 0,
            }
        )

        assert activity.type is ActivityType.YOGA
        assert activity.additional_metrics == {}
        assert activity.start_time is None

    @pytest.mark.parametrize(
        "field,value",
        [("type", "SKYDIVING"), ("userId", ""), ("id", None), ("duration", "long")],
    )
    def test_rejects_invalid_values(self, activity_payload, field, value):
        activity_payload[field] = value

        with pytest.raises(ValidationError):
            Activity.model_validate(activity_payload)

    @pytest.mark.parametrize(
        "field,value", [("duration", 0), ("duration", -5), ("caloriesBurned", -1), ("caloriesBurned", None)]
    )
    def test_accepts_unusual_numbers(self, activity_payload, field, value):
        activity_payload[field] = value

        activity = Activity.model_validate(activity_payload)

        assert activity.model_dump(by_alias=True)[field] == value

    def test_numbers_are_optional(self):
        activity = Activity.model_validate({"id": "a", "userId": "u", "type": "HIIT"})

        assert activity.duration is None
        assert activity.calories_burned is None

    def test_is_immutable(self, sample_activity):
        with pytest.raises(ValidationError):
            sample_activity.duration = 60


class TestRecommendation:
    def _build(self, **overrides):
        fields = dict(
            activity_id="act-001",
            user_id="user-42",
            activity_type=ActivityType.CYCLING,
            analysis="Overall: good",
            improvements=["a"],
            suggestions=["b"],
            safety=["c"],
        )
        fields.update(overrides)
        return Recommendation(**fields)

    @pytest.mark.parametrize("field", ["improvements", "suggestions", "safety"])
    def test_lists_must_not_be_empty(self, field):
        with pytest.raises(ValidationError):
            self._build(**{field: []})

    def test_content_excludes_id_and_timestamp(self):
        recommendation = self._build(id="rec-1")

        content = recommendation.content()

        assert "id" not in content
        assert "created_at" not in content
        assert content["activity_type"] == "CYCLING"

    def test_serializes_camel_case(self):
        data = self._build().model_dump(by_alias=True)

        assert "activityId" in data
        assert "createdAt" in data


def test_gemini_response_first_text():
    envelope = GeminiResponse.model_validate(
        {"candidates": [{"content": {"parts": [{"text": "hello"}, {"text": "x"}]}}]}
    )
    assert envelope.first_text() == "hello"


@pytest.mark.parametrize(
    "data",
    [{}, {"candidates": []}, {"candidates": [{}]}, {"candidates": [{"content": {"parts": []}}]}],
)
def test_gemini_response_without_text(data):
    assert GeminiResponse.model_validate(data).first_text() is None


def test_processing_metrics_record():
    metrics = ProcessingMetrics()

    metrics.record(acked=True, processing_time_ms=100.0)
    metrics.record(acked=False, processing_time_ms=300.0)

    assert metrics.events_received == 2
    assert metrics.events_acked == 1
    assert metrics.events_rejected == 1
    assert metrics.average_processing_time == 200.0
    assert metrics.last_processed is not None
