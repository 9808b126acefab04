"""
Running per-user metrics keyed by achievement RequirementType.

  lessons_completed   sessions with activity_type "lesson_completed"
  quizzes_completed   sessions with activity_type "quiz_taken"
  quiz_score          best quiz percentage (score / max_score · 100)
  total_study_time    sum of duration_minutes
  days_streak         current streak
  tools_used_count    distinct accessibility tools across sessions and usage events
"""
from __future__ import annotations

import json
from datetime import date
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from personalization.models.achievement import RequirementType
from personalization.models.study_session import ActivityType, StudySession
from personalization.models.usage_event import UsageEvent
from personalization.services.streak import current_streak


def _count_activity(db: Session, user_id: int, activity: ActivityType) -> int:
    return (
        db.query(func.count(StudySession.id))
        .filter(StudySession.user_id == user_id, StudySession.activity_type == activity)
        .scalar()
        or 0
    )


def _best_quiz_percentage(db: Session, user_id: int) -> int:
    quizzes = (
        db.query(StudySession)
        .filter(
            StudySession.user_id == user_id,
            StudySession.activity_type == ActivityType.quiz_taken,
            StudySession.score.isnot(None),
        )
        .all()
    )
    percentages = [q.score_percentage for q in quizzes if q.score_percentage is not None]
    return max(percentages, default=0)


def _total_minutes(db: Session, user_id: int) -> int:
    total = (
        db.query(func.sum(StudySession.duration_minutes))
        .filter(StudySession.user_id == user_id)
        .scalar()
    )
    return int(total or 0)


def _distinct_tools(db: Session, user_id: int) -> int:
    tools: set[str] = set()
    raw_lists = (
        db.query(StudySession.accessibility_tools_used)
        .filter(
            StudySession.user_id == user_id,
            StudySession.accessibility_tools_used.isnot(None),
        )
        .all()
    )
    for (raw,) in raw_lists:
        try:
            names = json.loads(raw)
        except (ValueError, TypeError):
            continue
        if isinstance(names, list):
            tools.update(str(n).strip().lower() for n in names if str(n).strip())

    used = db.query(UsageEvent.tool_name).filter(UsageEvent.user_id == user_id).distinct().all()
    tools.update(name.strip().lower() for (name,) in used if name and name.strip())
    return len(tools)


def compute_metrics(
    db: Session,
    user_id: int,
    today: Optional[date] = None,
) -> dict[RequirementType, int]:
    return {
        RequirementType.lessons_completed: _count_activity(db, user_id, ActivityType.lesson_completed),
        RequirementType.quizzes_completed: _count_activity(db, user_id, ActivityType.quiz_taken),
        RequirementType.quiz_score: _best_quiz_percentage(db, user_id),
        RequirementType.total_study_time: _total_minutes(db, user_id),
        RequirementType.days_streak: current_streak(db, user_id, today),
        RequirementType.tools_used_count: _distinct_tools(db, user_id),
    }
