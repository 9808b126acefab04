"""
Achievement schemas.

POST /achievements/check/{user_id}             → CheckRequest → CheckResponse
GET  /achievements/user/{user_id}              → UserAchievementListResponse
GET  /achievements/user/{user_id}/progress     → ProgressListResponse
GET  /achievements/user/{user_id}/stats        → AchievementStatsResponse
POST /achievements/user/{user_id}/mark-viewed  → MarkViewedRequest → MarkViewedResponse
POST /achievements/initialize                  → InitializeResponse
"""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from personalization.models.achievement import RequirementType


class CheckRequest(BaseModel):
    metrics: Optional[dict[RequirementType, int]] = Field(
        default=None,
        description=(
            "Override values keyed by requirement type. "
            "Omitted keys are computed from stored activity."
        ),
        examples=[{"lessons_completed": 5, "days_streak": 3}],
    )


class AchievementOut(BaseModel):
    id: int
    name: str
    description: str
    icon: Optional[str] = None
    category: str
    points_value: int
    requirement_type: str
    requirement_value: int
    rarity: str


class UserAchievementOut(BaseModel):
    id: int
    achievement: AchievementOut
    progress_value: int
    is_new: bool
    earned_at: str


class CheckResponse(BaseModel):
    user_id: int
    newly_unlocked: list[UserAchievementOut] = Field(description="Highest points first.")
    points_earned: int


class UserAchievementListResponse(BaseModel):
    user_id: int
    total: int
    total_points: int
    new_count: int
    items: list[UserAchievementOut]


class ProgressOut(BaseModel):
    achievement: AchievementOut
    current_value: int
    percentage: int
    unlocked: bool


class ProgressListResponse(BaseModel):
    user_id: int
    items: list[ProgressOut]


class AchievementStatsResponse(BaseModel):
    user_id: int
    total_earned: int
    total_available: int = Field(description="Active definitions.")
    total_points: int
    completion_percentage: int
    recent_count: int = Field(description="Unlocks earned in the last 7 days.")
    by_category: dict[str, int]
    by_rarity: dict[str, int]


class MarkViewedRequest(BaseModel):
    user_achievement_ids: Optional[list[int]] = Field(
        default=None, description="Omit to mark every unlock as viewed."
    )


class MarkViewedResponse(BaseModel):
    user_id: int
    updated: int


class InitializeResponse(BaseModel):
    added: int
