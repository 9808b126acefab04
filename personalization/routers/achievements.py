"""
Achievements router.

POST /achievements/check/{user_id}             — unlock everything now earned
GET  /achievements/user/{user_id}              — unlocked achievements
GET  /achievements/user/{user_id}/progress     — progress toward each one
GET  /achievements/user/{user_id}/stats        — counts by category and rarity
POST /achievements/user/{user_id}/mark-viewed  — clear the "new" badge
POST /achievements/initialize                  — seed the default catalogue
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from personalization.db.base import get_db
from personalization.models.achievement import Achievement
from personalization.schemas.achievement import (
    AchievementOut,
    AchievementStatsResponse,
    CheckRequest,
    CheckResponse,
    InitializeResponse,
    MarkViewedRequest,
    MarkViewedResponse,
    ProgressListResponse,
    ProgressOut,
    UserAchievementListResponse,
    UserAchievementOut,
)
from personalization.schemas.common import NOT_FOUND, enum_value, iso
from personalization.services import achievements
from personalization.services.achievements import UnlockedAchievement

router = APIRouter(prefix="/achievements", tags=["achievements"])


def _achievement_to_out(a: Achievement) -> AchievementOut:
    return AchievementOut(
        id=a.id,
        name=a.name,
        description=a.description,
        icon=a.icon,
        category=enum_value(a.category),
        points_value=a.points_value,
        requirement_type=enum_value(a.requirement_type),
        requirement_value=a.requirement_value,
        rarity=enum_value(a.rarity),
    )


def _unlock_to_out(item: UnlockedAchievement) -> UserAchievementOut:
    ua = item.user_achievement
    return UserAchievementOut(
        id=ua.id,
        achievement=_achievement_to_out(item.achievement),
        progress_value=ua.progress_value,
        is_new=ua.is_new,
        earned_at=iso(ua.earned_at) or "",
    )


@router.post(
    "/check/{user_id}",
    response_model=CheckResponse,
    summary="Evaluate and unlock achievements",
)
def check_achievements(
    user_id: int,
    body: Optional[CheckRequest] = Body(default=None),
    db: Session = Depends(get_db),
):
    """
    Returns only achievements unlocked by this call, highest points first.
    Calling again with the same metrics unlocks nothing.
    """
    unlocked = achievements.evaluate(db, user_id, body.metrics if body else None)
    return CheckResponse(
        user_id=user_id,
        newly_unlocked=[_unlock_to_out(u) for u in unlocked],
        points_earned=sum(u.achievement.points_value for u in unlocked),
    )


@router.get(
    "/user/{user_id}",
    response_model=UserAchievementListResponse,
    summary="List a user's unlocked achievements (newest first)",
)
def list_user_achievements(user_id: int, db: Session = Depends(get_db)):
    items = achievements.list_user_achievements(db, user_id)
    return UserAchievementListResponse(
        user_id=user_id,
        total=len(items),
        total_points=sum(i.achievement.points_value for i in items),
        new_count=sum(1 for i in items if i.user_achievement.is_new),
        items=[_unlock_to_out(i) for i in items],
    )


@router.get(
    "/user/{user_id}/progress",
    response_model=ProgressListResponse,
    summary="Progress toward every visible achievement",
)
def achievement_progress(user_id: int, db: Session = Depends(get_db)):
    rows = achievements.progress(db, user_id)
    return ProgressListResponse(
        user_id=user_id,
        items=[
            ProgressOut(
                achievement=_achievement_to_out(p.achievement),
                current_value=p.current_value,
                percentage=p.percentage,
                unlocked=p.unlocked,
            )
            for p in rows
        ],
    )


@router.get(
    "/user/{user_id}/stats",
    response_model=AchievementStatsResponse,
    summary="Unlock counts by category and rarity",
)
def achievement_stats(user_id: int, db: Session = Depends(get_db)):
    s = achievements.stats(db, user_id)
    return AchievementStatsResponse(
        user_id=s.user_id,
        total_earned=s.total_earned,
        total_available=s.total_available,
        total_points=s.total_points,
        completion_percentage=s.completion_percentage,
        recent_count=s.recent_count,
        by_category=s.by_category,
        by_rarity=s.by_rarity,
    )


@router.post(
    "/user/{user_id}/mark-viewed",
    response_model=MarkViewedResponse,
    summary="Clear the 'new' flag on unlocked achievements",
    responses={**NOT_FOUND},
)
def mark_achievements_viewed(
    user_id: int,
    body: Optional[MarkViewedRequest] = Body(default=None),
    db: Session = Depends(get_db),
):
    updated = achievements.mark_viewed(
        db, user_id, body.user_achievement_ids if body else None
    )
    return MarkViewedResponse(user_id=user_id, updated=updated)


@router.post(
    "/initialize",
    response_model=InitializeResponse,
    summary="Seed the default achievement catalogue",
)
def initialize_achievements(db: Session = Depends(get_db)):
    """Idempotent: definitions are matched by name."""
    return InitializeResponse(added=achievements.ensure_default_achievements(db))
