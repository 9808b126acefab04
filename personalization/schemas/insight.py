"""
Insight schemas.

POST /insights/analyze/{user_id}   → AnalyzeResponse
GET  /insights/{user_id}           → InsightListResponse (presentation-gated)
POST /insights/{id}/present        → UserRef → InsightResponse
POST /insights/{id}/respond        → InsightRespondRequest → InsightResponse
"""
from __future__ import annotations

import enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class InsightAnswer(str, enum.Enum):
    accepted = "accepted"
    rejected = "rejected"


class UserRef(BaseModel):
    user_id: int


class InsightRespondRequest(UserRef):
    model_config = ConfigDict(use_enum_values=True)

    response: InsightAnswer = Field(description='"accepted" | "rejected"')


class InsightResponse(BaseModel):
    id: int
    user_id: int
    insight_type: str
    bucket_key: str
    title: str
    description: str
    data: Optional[dict[str, Any]] = None
    confidence_score: float
    priority_level: str
    sample_count: int
    presented_to_user: bool
    presented_at: Optional[str] = None
    user_response: str
    responded_at: Optional[str] = None


class InsightListResponse(BaseModel):
    user_id: int
    total: int
    items: list[InsightResponse]


class AnalyzeResponse(BaseModel):
    user_id: int
    events_analyzed: int
    created: int
    merged: int
    skipped: int
    presentable: list[InsightResponse] = Field(
        description="Insights that pass the presentation gate after this run."
    )
