"""Data models for the activity recommendation service."""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ActivityType(str, Enum):
    """Kinds of fitness activity tracked upstream."""

    RUNNING = "RUNNING"
    WALKING = "WALKING"
    CYCLING = "CYCLING"
    SWIMMING = "SWIMMING"
    WEIGHT_TRAINING = "WEIGHT_TRAINING"
    YOGA = "YOGA"
    HIIT = "HIIT"
    CARDIO = "CARDIO"
    STRETCHING = "STRETCHING"
    OTHER = "OTHER"


class Activity(BaseModel):
    """Activity event consumed from Kafka. Wire names are camelCase."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    id: str = Field(..., min_length=1, description="Activity identifier")
    user_id: str = Field(..., min_length=1, description="Owning user identifier")
    type: ActivityType = Field(..., description="Activity type")
    # Rendered into the prompt as received
    duration: Optional[int] = Field(None, description="Duration in minutes")
    calories_burned: Optional[int] = Field(None, description="Calories burned")
    start_time: Optional[datetime] = Field(None, description="Activity start time")
    additional_metrics: Dict[str, Any] = Field(
        default_factory=dict, description="Additional metric name to value"
    )


class Recommendation(BaseModel):
    """AI-derived coaching feedback for one activity."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: Optional[str] = Field(None, description="Assigned by the store on save")
    activity_id: str = Field(..., description="Source activity identifier")
    user_id: str = Field(..., description="Owning user identifier")
    activity_type: ActivityType = Field(..., description="Copied from the activity")
    analysis: str = Field(..., description="Labeled analysis narrative")
    improvements: List[str] = Field(..., min_length=1)
    suggestions: List[str] = Field(..., min_length=1)
    safety: List[str] = Field(..., min_length=1)
    created_at: datetime = Field(default_factory=utcnow)

    def content(self) -> Dict[str, Any]:
        """Recommendation fields without the identifier and timestamp."""
        return self.model_dump(mode="json", exclude={"id", "created_at"})


# Gemini response envelope


class GeminiPart(BaseModel):
    text: Optional[str] = None


class GeminiContent(BaseModel):
    parts: List[GeminiPart] = Field(default_factory=list)
    role: Optional[str] = None


class GeminiCandidate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    content: Optional[GeminiContent] = None
    finish_reason: Optional[str] = None


class GeminiResponse(BaseModel):
    """Outer envelope returned by the generateContent endpoint."""

    candidates: List[GeminiCandidate] = Field(default_factory=list)

    def first_text(self) -> Optional[str]:
        """Text of the first part of the first candidate, if present."""
        if not self.candidates:
            return None
        content = self.candidates[0].content
        if content is None or not content.parts:
            return None
        return content.parts[0].text


# Application content nested inside the envelope text


def scalar_to_text(value: Any) -> Any:
    """Render JSON numbers and booleans as text; other values pass through."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return value


ScalarText = Annotated[str, BeforeValidator(scalar_to_text)]


class AnalysisSections(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    overall: Optional[ScalarText] = None
    pace: Optional[ScalarText] = None
    heart_rate: Optional[ScalarText] = None
    calories_burned: Optional[ScalarText] = None


class Improvement(BaseModel):
    area: str
    recommendation: str


class WorkoutSuggestion(BaseModel):
    workout: str
    description: str


class RecommendationContent(BaseModel):
    """Schema the prompt asks the model to answer with."""

    analysis: Optional[AnalysisSections] = None
    improvements: Optional[List[Improvement]] = None
    suggestions: Optional[List[WorkoutSuggestion]] = None
    safety: Optional[List[ScalarText]] = None


class HealthStatus(BaseModel):
    """Health check response model."""

    status: str = Field(..., description="Health status")
    timestamp: datetime = Field(default_factory=utcnow, description="Check timestamp")
    checks: Optional[Dict[str, bool]] = Field(
        None, description="Individual component checks"
    )


class ProcessingMetrics(BaseModel):
    """Counters for monitoring event processing."""

    events_received: int = Field(default=0, description="Events received")
    events_acked: int = Field(default=0, description="Events acknowledged")
    events_rejected: int = Field(default=0, description="Events rejected to the DLQ")
    total_processing_time: float = Field(
        default=0.0, description="Total processing time in milliseconds"
    )
    average_processing_time: float = Field(
        default=0.0, description="Average processing time in milliseconds"
    )
    last_processed: Optional[datetime] = Field(
        None, description="Last processing timestamp"
    )

    def record(self, acked: bool, processing_time_ms: float) -> None:
        self.events_received += 1
        if acked:
            self.events_acked += 1
        else:
            self.events_rejected += 1
        self.total_processing_time += processing_time_ms
        self.average_processing_time = self.total_processing_time / self.events_received
        self.last_processed = utcnow()
