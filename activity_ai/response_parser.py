"""Turns raw Gemini replies into Recommendation objects."""

import re
from dataclasses import dataclass
from typing import List, Optional, Union

import structlog
from pydantic import ValidationError

from . import metrics
from .models import (
    Activity,
    AnalysisSections,
    GeminiResponse,
    Recommendation,
    RecommendationContent,
)

logger = structlog.get_logger(__name__)

NO_IMPROVEMENTS = "No specific improvements provided"
NO_SUGGESTIONS = "No specific suggestions provided"
NO_SAFETY = "Follow general safety guidelines"

DEFAULT_ANALYSIS = "Unable to generate detailed analysis"
DEFAULT_IMPROVEMENTS = ("Continue with your current routine",)
DEFAULT_SUGGESTIONS = ("Consider consulting a fitness professional",)
DEFAULT_SAFETY = (
    "Always warm up before exercise",
    "Stay hydrated",
    "Listen to your body",
)

# (attribute, label) in narrative order
ANALYSIS_SECTIONS = (
    ("overall", "Overall"),
    ("pace", "Pace"),
    ("heart_rate", "Heart Rate"),
    ("calories_burned", "Calories"),
)

_LEADING_FENCE = re.compile(r"^```(?:json)?[ \t]*\n?", re.IGNORECASE)
_TRAILING_FENCE = re.compile(r"\n?```$")


@dataclass(frozen=True)
class ParseFailure:
    """Why a reply could not be turned into a recommendation."""

    reason: str


def strip_code_fence(text: str) -> str:
    """Remove a surrounding markdown code fence and whitespace."""
    text = text.strip()
    text = _LEADING_FENCE.sub("", text)
    text = _TRAILING_FENCE.sub("", text)
    return text.strip()


def extract_content(raw_payload: Optional[str]) -> Union[RecommendationContent, ParseFailure]:
    """Decode the envelope and the application content nested in it."""
    if raw_payload is None or not raw_payload.strip():
        return ParseFailure("empty payload")

    try:
        envelope = GeminiResponse.model_validate_json(raw_payload)
    except ValidationError as e:
        return ParseFailure(f"invalid envelope: {e.errors()[0]['msg']}")

    text = envelope.first_text()
    if text is None:
        return ParseFailure("envelope has no candidate text")

    text = strip_code_fence(text)
    if not text:
        return ParseFailure("candidate text is empty")

    try:
        return RecommendationContent.model_validate_json(text)
    except ValidationError as e:
        return ParseFailure(f"invalid content: {e.errors()[0]['msg']}")


def format_analysis(analysis: Optional[AnalysisSections]) -> str:
    if analysis is None:
        return ""
    narrative = ""
    for attribute, label in ANALYSIS_SECTIONS:
        value = getattr(analysis, attribute)
        if value is not None:
            narrative += f"{label}: {value}\n\n"
    return narrative.rstrip()


def _or_placeholder(items: List[str], placeholder: str) -> List[str]:
    return items if items else [placeholder]


def build_recommendation(activity: Activity, content: RecommendationContent) -> Recommendation:
    improvements = [f"{i.area}: {i.recommendation}" for i in content.improvements or []]
    suggestions = [f"{s.workout}: {s.description}" for s in content.suggestions or []]
    safety = list(content.safety or [])

    return Recommendation(
        activity_id=activity.id,
        user_id=activity.user_id,
        activity_type=activity.type,
        analysis=format_analysis(content.analysis),
        improvements=_or_placeholder(improvements, NO_IMPROVEMENTS),
        suggestions=_or_placeholder(suggestions, NO_SUGGESTIONS),
        safety=_or_placeholder(safety, NO_SAFETY),
    )


def try_parse(activity: Activity, raw_payload: Optional[str]) -> Union[Recommendation, ParseFailure]:
    content = extract_content(raw_payload)
    if isinstance(content, ParseFailure):
        return content
    try:
        return build_recommendation(activity, content)
    except ValidationError as e:
        return ParseFailure(f"invalid recommendation: {e.errors()[0]['msg']}")


def default_recommendation(activity: Activity) -> Recommendation:
    """Fallback used when the backend reply cannot be parsed."""
    return Recommendation(
        activity_id=activity.id,
        user_id=activity.user_id,
        activity_type=activity.type,
        analysis=DEFAULT_ANALYSIS,
        improvements=list(DEFAULT_IMPROVEMENTS),
        suggestions=list(DEFAULT_SUGGESTIONS),
        safety=list(DEFAULT_SAFETY),
    )


def parse(activity: Activity, raw_payload: Optional[str]) -> Recommendation:
    """Parse a raw Gemini reply into a Recommendation.

    Never raises for a bad reply. Empty or malformed payloads produce the
    default recommendation; a well-formed reply with an empty list gets
    that list's placeholder instead.
    """
    result = try_parse(activity, raw_payload)
    if isinstance(result, ParseFailure):
        metrics.parse_fallbacks.inc()
        logger.warning(
            "Unparseable AI response, using default recommendation",
            activity_id=activity.id,
            reason=result.reason,
        )
        return default_recommendation(activity)
    return result
