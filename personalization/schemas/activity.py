"""
Activity (UsageLog) schemas — append-only inputs.

POST /activity/usage         → UsageEventRequest → UsageEventResponse
POST /activity/usage/batch   → UsageBatchRequest → UsageBatchResponse
POST /activity/sessions      → StudySessionRequest → StudySessionResponse
GET  /activity/sessions/{id} → SessionHistoryResponse
POST /activity/interactions  → InteractionRequest → InteractionResponse
GET  /streak/{user_id}       → StreakResponse
"""
from __future__ import annotations

from datetime import date, datetime
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from personalization.models.study_session import ActivityType
from personalization.models.usage_event import UsageAction

BATCH_MAX_ITEMS = 500


# ---------------------------------------------------------------------------
# Usage events
# ---------------------------------------------------------------------------

class UsageEventRequest(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    user_id: int
    tool_name: Annotated[str, Field(min_length=1, max_length=128, examples=["text_to_speech"])]
    action: UsageAction = UsageAction.use
    occurred_at: Optional[datetime] = Field(
        default=None,
        description="When it happened, with the client's UTC offset. Defaults to now.",
    )
    energy_level: Optional[int] = Field(default=None, ge=1, le=10)
    success_rating: Optional[int] = Field(default=None, ge=1, le=10)
    session_duration_minutes: Optional[int] = Field(default=None, ge=0)
    activity_context: Optional[str] = Field(default=None, max_length=128)

    @field_validator("tool_name", mode="before")
    @classmethod
    def strip_tool_name(cls, v: str) -> str:
        stripped = v.strip() if isinstance(v, str) else v
        if not stripped:
            raise ValueError("tool_name must not be empty after stripping whitespace")
        return stripped


class UsageEventResponse(BaseModel):
    id: int
    user_id: int
    tool_name: str
    action: str
    occurred_at: str
    time_of_day: str
    day_of_week: int
    energy_level: Optional[int] = None
    success_rating: Optional[int] = None


class UsageBatchRequest(BaseModel):
    items: list[UsageEventRequest] = Field(min_length=1, max_length=BATCH_MAX_ITEMS)


class UsageBatchItemResult(BaseModel):
    index: int
    ok: bool
    result: Optional[UsageEventResponse] = None
    error: Optional[str] = None


class UsageBatchResponse(BaseModel):
    total: int
    succeeded: int
    failed: int
    results: list[UsageBatchItemResult]


# ---------------------------------------------------------------------------
# Study sessions
# ---------------------------------------------------------------------------

class StudySessionRequest(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    user_id: int
    activity_type: ActivityType
    study_date: Optional[date] = Field(default=None, description="Defaults to today (UTC).")
    duration_minutes: Optional[int] = Field(default=None, ge=0)
    score: Optional[int] = Field(default=None, ge=0)
    max_score: Optional[int] = Field(default=None, ge=1)
    accessibility_tools_used: Optional[list[str]] = None

    @model_validator(mode="after")
    def score_within_max(self) -> "StudySessionRequest":
        if self.score is not None and self.max_score is not None and self.score > self.max_score:
            raise ValueError("score must not exceed max_score")
        return self


class StudySessionResponse(BaseModel):
    id: int
    user_id: int
    activity_type: str
    study_date: str
    duration_minutes: Optional[int] = None
    score_percentage: Optional[int] = None
    accessibility_tools_used: list[str] = Field(default_factory=list)


class SessionHistoryResponse(BaseModel):
    user_id: int
    total: int
    items: list[StudySessionResponse]


# ---------------------------------------------------------------------------
# Content interactions
# ---------------------------------------------------------------------------

class InteractionRequest(BaseModel):
    student_id: int
    content_id: int
    completion_percentage: int = Field(default=0, ge=0, le=100)
    engagement_score: Optional[float] = Field(default=None, ge=0, le=1)
    comprehension_score: Optional[float] = Field(default=None, ge=0, le=1)
    usefulness_rating: Optional[int] = Field(default=None, ge=1, le=5)
    was_helpful: Optional[bool] = None
    completed_at: Optional[datetime] = None


class InteractionResponse(BaseModel):
    id: int
    student_id: int
    content_id: int
    completion_percentage: int
    overall_success: Optional[float] = None
    positive_outcome: bool
    completed: bool


# ---------------------------------------------------------------------------
# Streak
# ---------------------------------------------------------------------------

class StreakResponse(BaseModel):
    user_id: int
    current_streak: int
    longest_streak: int
    last_active_date: Optional[str] = None
    active_today: bool
    total_active_days: int
