"""
Prompt template for activity recommendations.

The schema example embedded in the prompt is the contract that
response_parser relies on: field names here and in
models.RecommendationContent must stay in sync.
"""

from typing import Any, Mapping

from .models import Activity

RESPONSE_SCHEMA_EXAMPLE = """{
  "analysis": {
    "overall": "Overall analysis here",
    "pace": "Pace analysis here",
    "heartRate": "Heart rate analysis here",
    "caloriesBurned": "Calories analysis here"
  },
  "improvements": [
    {
      "area": "Area name",
      "recommendation": "Detailed recommendation"
    }
  ],
  "suggestions": [
    {
      "workout": "Workout name",
      "description": "Detailed workout description"
    }
  ],
  "safety": [
    "Safety point 1",
    "Safety point 2"
  ]
}"""

ACTIVITY_PROMPT_TEMPLATE = """Analyze this fitness activity and provide detailed recommendations in the following EXACT JSON format:
{schema}

Analyze this activity:
Activity Type: {activity_type}
Duration: {duration} minutes
Calories Burned: {calories_burned}
Additional Metrics: {additional_metrics}

Provide detailed analysis focusing on performance, improvements, next workout suggestions, and safety guidelines.
Ensure the response follows the EXACT JSON format shown above."""


def format_metrics(metrics: Mapping[str, Any]) -> str:
    """Render additional metrics as plain text, sorted by name."""
    if not metrics:
        return "none"
    return ", ".join(f"{name}: {metrics[name]}" for name in sorted(metrics))


def build_prompt(activity: Activity) -> str:
    """Build the recommendation request for an activity.

    Pure and deterministic: the same activity always yields the same text.
    Values are rendered as-is, nothing is validated here.
    """
    activity_type = getattr(activity.type, "value", activity.type)
    return ACTIVITY_PROMPT_TEMPLATE.format(
        schema=RESPONSE_SCHEMA_EXAMPLE,
        activity_type=activity_type,
        duration=activity.duration,
        calories_burned=activity.calories_burned,
        additional_metrics=format_metrics(activity.additional_metrics),
    )
