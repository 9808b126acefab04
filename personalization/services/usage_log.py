"""
UsageLog — append-only behavioral telemetry.

Three streams, all insert-only:
  UsageEvent          tool usage, feeds the pattern-insight miner
  StudySession        dated study activity, feeds streaks and achievements
  ContentInteraction  per-content outcomes, feeds success prediction

Time buckets (hour of occurred_at in the offset the client sent):
  [0, 6)  late_night       [12, 15) early_afternoon   [18, 21) early_evening
  [6, 9)  early_morning    [15, 18) late_afternoon    [21, 24) late_evening
  [9, 12) late_morning
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Optional

from loguru import logger
from sqlalchemy.orm import Session

from personalization.core.clock import as_utc, today, utcnow
from personalization.models.content_interaction import ContentInteraction
from personalization.models.study_session import StudySession
from personalization.models.usage_event import UsageEvent, UsageAction, TimeOfDay


# ---------------------------------------------------------------------------
# Derived fields
# ---------------------------------------------------------------------------

_BUCKET_UPPER_HOURS: list[tuple[int, TimeOfDay]] = [
    (6, TimeOfDay.late_night),
    (9, TimeOfDay.early_morning),
    (12, TimeOfDay.late_morning),
    (15, TimeOfDay.early_afternoon),
    (18, TimeOfDay.late_afternoon),
    (21, TimeOfDay.early_evening),
]


def time_of_day_bucket(moment: datetime) -> TimeOfDay:
    for upper, bucket in _BUCKET_UPPER_HOURS:
        if moment.hour < upper:
            return bucket
    return TimeOfDay.late_evening


def day_of_week_index(moment: datetime) -> int:
    """0 = Sunday … 6 = Saturday."""
    return (moment.weekday() + 1) % 7


# ---------------------------------------------------------------------------
# Usage events
# ---------------------------------------------------------------------------

@dataclass
class UsageEventInput:
    user_id: int
    tool_name: str
    action: str = UsageAction.use.value
    occurred_at: Optional[datetime] = None
    energy_level: Optional[int] = None
    success_rating: Optional[int] = None
    session_duration_minutes: Optional[int] = None
    activity_context: Optional[str] = None


def _build_event(item: UsageEventInput) -> UsageEvent:
    # Buckets use the wall-clock hour the client reported, storage is UTC
    moment = item.occurred_at or utcnow()
    return UsageEvent(
        user_id=item.user_id,
        tool_name=item.tool_name,
        action=item.action,
        occurred_at=as_utc(moment),
        time_of_day=time_of_day_bucket(moment),
        day_of_week=day_of_week_index(moment),
        energy_level=item.energy_level,
        success_rating=item.success_rating,
        session_duration_minutes=item.session_duration_minutes,
        activity_context=item.activity_context,
    )


def record_usage_event(db: Session, item: UsageEventInput) -> UsageEvent:
    event = _build_event(item)
    db.add(event)
    db.commit()
    db.refresh(event)
    return event


def record_usage_batch(db: Session, items: list[UsageEventInput]) -> list[dict[str, Any]]:
    """
    Append a list of events using one savepoint per item.
    A failure on one item does not cancel the others.
    """
    results: list[dict[str, Any]] = []
    for i, item in enumerate(items):
        savepoint = db.begin_nested()
        try:
            event = _build_event(item)
            db.add(event)
            db.flush()
            savepoint.commit()
            results.append({"index": i, "ok": True, "event": event, "error": None})
        except Exception as exc:
            savepoint.rollback()
            logger.warning("Usage batch item {} rejected: {}", i, exc)
            results.append({"index": i, "ok": False, "event": None, "error": str(exc)})

    db.commit()
    for r in results:
        if r["ok"]:
            db.refresh(r["event"])
    return results


def get_usage_events(
    db: Session,
    user_id: int,
    since: Optional[datetime] = None,
) -> list[UsageEvent]:
    """A user's usage history, oldest first."""
    q = db.query(UsageEvent).filter(UsageEvent.user_id == user_id)
    if since is not None:
        q = q.filter(UsageEvent.occurred_at >= since)
    return q.order_by(UsageEvent.occurred_at.asc(), UsageEvent.id.asc()).all()


def get_active_user_ids(db: Session) -> list[int]:
    rows = db.query(UsageEvent.user_id).distinct().all()
    return sorted(r[0] for r in rows)


# ---------------------------------------------------------------------------
# Study sessions
# ---------------------------------------------------------------------------

def record_study_session(
    db: Session,
    user_id: int,
    activity_type: str,
    study_date: Optional[date] = None,
    duration_minutes: Optional[int] = None,
    score: Optional[int] = None,
    max_score: Optional[int] = None,
    accessibility_tools_used: Optional[list[str]] = None,
) -> StudySession:
    session = StudySession(
        user_id=user_id,
        activity_type=activity_type,
        study_date=study_date or today(),
        duration_minutes=duration_minutes,
        score=score,
        max_score=max_score,
        accessibility_tools_used=(
            json.dumps(accessibility_tools_used) if accessibility_tools_used else None
        ),
    )
    db.add(session)
    db.commit()
    db.refresh(session)
    return session


def get_session_history(db: Session, user_id: int) -> list[StudySession]:
    return (
        db.query(StudySession)
        .filter(StudySession.user_id == user_id)
        .order_by(StudySession.study_date.desc(), StudySession.id.desc())
        .all()
    )


def get_study_dates(db: Session, user_id: int) -> set[date]:
    rows = (
        db.query(StudySession.study_date)
        .filter(StudySession.user_id == user_id)
        .distinct()
        .all()
    )
    return {r[0] for r in rows}


# ---------------------------------------------------------------------------
# Content interactions
# ---------------------------------------------------------------------------

def record_interaction(db: Session, **fields: Any) -> ContentInteraction:
    if fields.get("completed_at") is not None:
        fields["completed_at"] = as_utc(fields["completed_at"])
    interaction = ContentInteraction(**fields)
    db.add(interaction)
    db.commit()
    db.refresh(interaction)
    return interaction

