"""
Recommendation request / response schemas.

POST /recommendations/generate/{student_id}     → GenerateRequest → GenerateResponse
GET  /recommendations/student/{student_id}      → RecommendationListResponse
GET  /recommendations/{id}?student_id=          → RecommendationResponse
POST /recommendations/{id}/present              → StudentRef → RecommendationResponse
POST /recommendations/{id}/respond              → RespondRequest → RecommendationResponse
POST /recommendations/{id}/feedback             → FeedbackRequest → RecommendationResponse
POST /recommendations/expire                    → ExpireRequest → ExpiryResponse
GET  /recommendations/analytics/{student_id}    → AnalyticsResponse
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from personalization.models.recommendation import StudentResponse


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class GenerateRequest(BaseModel):
    top_n: Optional[int] = Field(
        default=None, ge=1, le=100,
        description="How many candidates to keep. Defaults to RECOMMENDATION_TOP_N.",
    )


class StudentRef(BaseModel):
    student_id: int = Field(description="Owner of the recommendation.")


class RespondRequest(StudentRef):
    model_config = ConfigDict(use_enum_values=True)

    response: StudentResponse = Field(
        description='"viewed" | "bookmarked" | "started" | "completed" | "ignored"',
        examples=["started"],
    )


class FeedbackRequest(StudentRef):
    rating: int = Field(ge=1, le=5, description="1 (poor) … 5 (excellent).")
    was_helpful: Optional[bool] = None


class ExpireRequest(BaseModel):
    now: Optional[datetime] = Field(
        default=None,
        description="Reference instant for the sweep. Defaults to the current UTC time.",
    )


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class ComponentScoresOut(BaseModel):
    confidence: float
    relevance: float
    accessibility_match: float
    learning_style_match: float
    difficulty_match: float
    success_prediction: float


class RecommendationResponse(BaseModel):
    id: int
    student_id: int
    content_id: int
    content_title: Optional[str] = None
    overall_score: float
    scores: ComponentScoresOut
    state: str = Field(description='"active" | "responded" | "expired"')
    is_active: bool
    priority_level: str
    reasoning: Optional[str] = None
    matching_factors: list[str] = Field(default_factory=list)
    algorithm_version: str
    generated_at: str
    expires_at: str
    presented: bool
    presented_at: Optional[str] = None
    student_response: Optional[str] = None
    responded_at: Optional[str] = None
    feedback_rating: Optional[int] = None
    was_helpful: Optional[bool] = None
    expired_at: Optional[str] = None
    superseded_by_id: Optional[int] = None


class GenerateResponse(BaseModel):
    student_id: int
    candidates_considered: int
    created: int
    superseded: int
    kept: int
    items: list[RecommendationResponse] = Field(description="Kept candidates, best first.")


class RecommendationListResponse(BaseModel):
    student_id: int
    total: int
    items: list[RecommendationResponse]


class ExpiryResponse(BaseModel):
    students_processed: int
    expired: int
    presented_timeouts: int
    ignored_deactivated: int
    total_deactivated: int
    failed_students: list[int]


class AnalyticsResponse(BaseModel):
    student_id: int
    total: int
    active: int
    presented: int
    responded: int
    expired: int
    by_response: dict[str, int]
    presentation_rate: float
    average_feedback_rating: Optional[float] = None
    helpful_rate: Optional[float] = None
