"""
Achievement Evaluator.

evaluate()
----------
For every active definition the user has not unlocked yet, unlock it when
metrics[requirement_type] >= requirement_value. Metrics are computed from
stored activity; caller-supplied values override the computed ones.

Each insert runs in its own savepoint and relies on the
(user_id, achievement_id) unique constraint: a concurrent duplicate insert
is a silent no-op, so an achievement is never recorded twice.

Newly unlocked rows carry is_new=True until mark_viewed() clears it (one-way).

stats() counts unlocks per category and rarity (every enum member present,
zero when none), completion against active definitions (floored), and
unlocks earned within the last RECENT_DAYS.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from loguru import logger
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from personalization.core.clock import as_utc, utcnow
from personalization.core.errors import AchievementNotFoundError
from personalization.models.achievement import (
    Achievement,
    AchievementCategory,
    Rarity,
    RequirementType,
    UserAchievement,
)
from personalization.services.user_metrics import compute_metrics

RECENT_DAYS = 7


# ---------------------------------------------------------------------------
# Default catalogue
# ---------------------------------------------------------------------------

# (name, description, icon, category, points, requirement_type, value, rarity)
DEFAULT_ACHIEVEMENTS: list[tuple] = [
    ("First Steps", "Complete your first lesson!", "🌟", AchievementCategory.learning, 10, RequirementType.lessons_completed, 1, Rarity.common),
    ("Getting Started", "Complete 5 lessons", "⭐", AchievementCategory.learning, 25, RequirementType.lessons_completed, 5, Rarity.common),
    ("Learning Hero", "Complete 10 lessons", "🏆", AchievementCategory.learning, 50, RequirementType.lessons_completed, 10, Rarity.rare),
    ("Knowledge Master", "Complete 25 lessons", "👑", AchievementCategory.learning, 100, RequirementType.lessons_completed, 25, Rarity.epic),
    ("Super Learner", "Complete 50 lessons", "💎", AchievementCategory.learning, 200, RequirementType.lessons_completed, 50, Rarity.legendary),

    ("Day One", "Study for 1 day", "📚", AchievementCategory.streak, 5, RequirementType.days_streak, 1, Rarity.common),
    ("Three's a Charm", "Study for 3 days in a row", "🔥", AchievementCategory.streak, 15, RequirementType.days_streak, 3, Rarity.common),
    ("Week Warrior", "Study for 7 days in a row", "⚡", AchievementCategory.streak, 35, RequirementType.days_streak, 7, Rarity.rare),
    ("Unstoppable", "Study for 14 days in a row", "💪", AchievementCategory.streak, 75, RequirementType.days_streak, 14, Rarity.epic),
    ("Legend", "Study for 30 days in a row", "🏅", AchievementCategory.streak, 150, RequirementType.days_streak, 30, Rarity.legendary),

    ("Quiz Starter", "Take your first quiz", "🎯", AchievementCategory.quiz, 10, RequirementType.quizzes_completed, 1, Rarity.common),
    ("Smart Cookie", "Get 80% or higher on a quiz", "🍪", AchievementCategory.quiz, 20, RequirementType.quiz_score, 80, Rarity.common),
    ("Brilliant Mind", "Get 90% or higher on a quiz", "🧠", AchievementCategory.quiz, 30, RequirementType.quiz_score, 90, Rarity.rare),
    ("Perfect Score", "Get 100% on a quiz", "✨", AchievementCategory.quiz, 50, RequirementType.quiz_score, 100, Rarity.epic),

    ("Quick Learner", "Study for 30 minutes total", "⏰", AchievementCategory.time, 10, RequirementType.total_study_time, 30, Rarity.common),
    ("Dedicated Student", "Study for 2 hours total", "📖", AchievementCategory.time, 25, RequirementType.total_study_time, 120, Rarity.common),
    ("Study Champion", "Study for 5 hours total", "🎓", AchievementCategory.time, 50, RequirementType.total_study_time, 300, Rarity.rare),

    ("Tool Explorer", "Use 3 different accessibility tools", "🔧", AchievementCategory.accessibility, 15, RequirementType.tools_used_count, 3, Rarity.common),
    ("Accessibility Hero", "Use 5 different accessibility tools", "🦸", AchievementCategory.accessibility, 30, RequirementType.tools_used_count, 5, Rarity.rare),
]


def ensure_default_achievements(db: Session) -> int:
    """Insert any missing default definition (matched by name). Returns how many were added."""
    existing = {name for (name,) in db.query(Achievement.name).all()}
    added = 0
    for name, description, icon, category, points, req_type, req_value, rarity in DEFAULT_ACHIEVEMENTS:
        if name in existing:
            continue
        db.add(Achievement(
            name=name,
            description=description,
            icon=icon,
            category=category,
            points_value=points,
            requirement_type=req_type,
            requirement_value=req_value,
            rarity=rarity,
            is_active=True,
            is_hidden=False,
        ))
        added += 1
    if added:
        try:
            db.commit()
        except IntegrityError:
            # Seeded concurrently
            db.rollback()
            return 0
        logger.info("Seeded {} default achievements", added)
    return added


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class UnlockedAchievement:
    user_achievement: UserAchievement
    achievement: Achievement


@dataclass
class AchievementProgress:
    achievement: Achievement
    current_value: int
    percentage: int
    unlocked: bool


@dataclass
class AchievementStats:
    user_id: int
    total_earned: int
    total_available: int
    total_points: int
    completion_percentage: int
    recent_count: int
    by_category: dict[str, int]
    by_rarity: dict[str, int]


def _value(enum_or_str) -> str:
    return getattr(enum_or_str, "value", enum_or_str)


def _merge_metrics(
    db: Session,
    user_id: int,
    supplied: Optional[dict],
    today: Optional[date],
) -> dict[str, int]:
    metrics = {k.value: v for k, v in compute_metrics(db, user_id, today).items()}
    for key, value in (supplied or {}).items():
        metrics[RequirementType(_value(key)).value] = int(value)
    return metrics


def _unlocked_ids(db: Session, user_id: int) -> set[int]:
    rows = db.query(UserAchievement.achievement_id).filter(UserAchievement.user_id == user_id).all()
    return {r[0] for r in rows}


# ---------------------------------------------------------------------------
# Public: evaluation
# ---------------------------------------------------------------------------

def evaluate(
    db: Session,
    user_id: int,
    metrics: Optional[dict] = None,
    today: Optional[date] = None,
) -> list[UnlockedAchievement]:
    """
    Unlock everything the user now qualifies for.
    Returns only the newly unlocked achievements, highest points first.
    """
    values = _merge_metrics(db, user_id, metrics, today)
    already = _unlocked_ids(db, user_id)
    candidates = (
        db.query(Achievement)
        .filter(Achievement.is_active.is_(True))
        .order_by(Achievement.points_value.desc(), Achievement.id.asc())
        .all()
    )

    unlocked: list[UnlockedAchievement] = []
    now = utcnow()
    for achievement in candidates:
        if achievement.id in already:
            continue
        current = values.get(_value(achievement.requirement_type), 0)
        if current < achievement.requirement_value:
            continue

        row = UserAchievement(
            user_id=user_id,
            achievement_id=achievement.id,
            progress_value=current,
            is_new=True,
            earned_at=now,
        )
        savepoint = db.begin_nested()
        try:
            db.add(row)
            db.flush()
            savepoint.commit()
        except IntegrityError:
            # Unlocked concurrently
            savepoint.rollback()
            continue
        unlocked.append(UnlockedAchievement(user_achievement=row, achievement=achievement))

    db.commit()
    for item in unlocked:
        db.refresh(item.user_achievement)
        logger.info(
            "User {} unlocked '{}' ({} pts)",
            user_id, item.achievement.name, item.achievement.points_value,
        )

    unlocked.sort(key=lambda u: (-u.achievement.points_value, u.achievement.id))
    return unlocked


# ---------------------------------------------------------------------------
# Public: queries
# ---------------------------------------------------------------------------

def list_user_achievements(db: Session, user_id: int) -> list[UnlockedAchievement]:
    rows = (
        db.query(UserAchievement, Achievement)
        .join(Achievement, Achievement.id == UserAchievement.achievement_id)
        .filter(UserAchievement.user_id == user_id)
        .order_by(UserAchievement.earned_at.desc(), UserAchievement.id.desc())
        .all()
    )
    return [UnlockedAchievement(user_achievement=ua, achievement=a) for ua, a in rows]


def progress(
    db: Session,
    user_id: int,
    today: Optional[date] = None,
) -> list[AchievementProgress]:
    """Progress toward every visible active achievement. Hidden ones appear once unlocked."""
    values = _merge_metrics(db, user_id, None, today)
    already = _unlocked_ids(db, user_id)
    definitions = (
        db.query(Achievement)
        .filter(Achievement.is_active.is_(True))
        .order_by(Achievement.requirement_type, Achievement.requirement_value, Achievement.id)
        .all()
    )

    out: list[AchievementProgress] = []
    for a in definitions:
        unlocked = a.id in already
        if a.is_hidden and not unlocked:
            continue
        current = values.get(_value(a.requirement_type), 0)
        if unlocked:
            pct = 100
        else:
            pct = min(100, int(current * 100 / a.requirement_value)) if a.requirement_value else 100
        out.append(AchievementProgress(
            achievement=a, current_value=current, percentage=pct, unlocked=unlocked,
        ))
    return out


def stats(db: Session, user_id: int, now: Optional[datetime] = None) -> AchievementStats:
    now = now or utcnow()
    unlocks = list_user_achievements(db, user_id)
    total_available = db.query(Achievement).filter(Achievement.is_active.is_(True)).count()

    by_category = {c.value: 0 for c in AchievementCategory}
    by_rarity = {r.value: 0 for r in Rarity}
    for item in unlocks:
        by_category[_value(item.achievement.category)] += 1
        by_rarity[_value(item.achievement.rarity)] += 1

    since = now - timedelta(days=RECENT_DAYS)
    earned = len(unlocks)
    return AchievementStats(
        user_id=user_id,
        total_earned=earned,
        total_available=total_available,
        total_points=sum(i.achievement.points_value for i in unlocks),
        completion_percentage=earned * 100 // total_available if total_available else 0,
        recent_count=sum(1 for i in unlocks if as_utc(i.user_achievement.earned_at) >= since),
        by_category=by_category,
        by_rarity=by_rarity,
    )


def mark_viewed(db: Session, user_id: int, user_achievement_ids: Optional[list[int]] = None) -> int:
    """
    Clear is_new on the given unlocks (all of the user's when no ids are given).
    Ids belonging to another user are reported as not found.
    """
    q = db.query(UserAchievement.id).filter(UserAchievement.user_id == user_id)
    if user_achievement_ids:
        wanted = set(user_achievement_ids)
        owned = {r[0] for r in q.filter(UserAchievement.id.in_(wanted)).all()}
        missing = sorted(wanted - owned)
        if missing:
            raise AchievementNotFoundError(missing)
        target = owned
    else:
        target = {r[0] for r in q.all()}

    if not target:
        return 0
    changed = db.execute(
        update(UserAchievement)
        .where(UserAchievement.id.in_(target), UserAchievement.is_new.is_(True))
        .values(is_new=False)
        .execution_options(synchronize_session=False)
    ).rowcount
    db.commit()
    return changed
