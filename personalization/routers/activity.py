"""
Activity router — append-only inputs to the UsageLog, plus the streak read.

POST /activity/usage         — one tool-usage event
POST /activity/usage/batch   — many events, one savepoint each
POST /activity/sessions      — one dated study session
GET  /activity/sessions/{id} — a user's session history, newest first
POST /activity/interactions  — one content interaction outcome
GET  /streak/{user_id}       — current and longest streak
"""
from __future__ import annotations

import json
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from personalization.core.errors import ContentNotFoundError
from personalization.db.base import get_db
from personalization.models.content_interaction import ContentInteraction
from personalization.models.study_session import StudySession
from personalization.models.usage_event import UsageEvent
from personalization.schemas.activity import (
    InteractionRequest,
    InteractionResponse,
    StreakResponse,
    SessionHistoryResponse,
    StudySessionRequest,
    StudySessionResponse,
    UsageBatchItemResult,
    UsageBatchRequest,
    UsageBatchResponse,
    UsageEventRequest,
    UsageEventResponse,
)
from personalization.schemas.common import INVALID, NOT_FOUND, enum_value, iso
from personalization.services import catalog, streak, usage_log
from personalization.services.usage_log import UsageEventInput

router = APIRouter(prefix="/activity", tags=["activity"])
streak_router = APIRouter(prefix="/streak", tags=["streak"])


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------

def _event_input(body: UsageEventRequest) -> UsageEventInput:
    return UsageEventInput(**body.model_dump())


def _event_to_response(ev: UsageEvent) -> UsageEventResponse:
    return UsageEventResponse(
        id=ev.id,
        user_id=ev.user_id,
        tool_name=ev.tool_name,
        action=enum_value(ev.action),
        occurred_at=iso(ev.occurred_at),
        time_of_day=enum_value(ev.time_of_day),
        day_of_week=ev.day_of_week,
        energy_level=ev.energy_level,
        success_rating=ev.success_rating,
    )


def _tools(raw: Optional[str]) -> list[str]:
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
    except (ValueError, TypeError):
        return []
    return [str(t) for t in parsed] if isinstance(parsed, list) else []


def _session_to_response(s: StudySession) -> StudySessionResponse:
    return StudySessionResponse(
        id=s.id,
        user_id=s.user_id,
        activity_type=enum_value(s.activity_type),
        study_date=str(s.study_date),
        duration_minutes=s.duration_minutes,
        score_percentage=s.score_percentage,
        accessibility_tools_used=_tools(s.accessibility_tools_used),
    )


def _interaction_to_response(i: ContentInteraction) -> InteractionResponse:
    return InteractionResponse(
        id=i.id,
        student_id=i.student_id,
        content_id=i.content_id,
        completion_percentage=i.completion_percentage,
        overall_success=i.overall_success,
        positive_outcome=i.is_positive_outcome,
        completed=i.is_completed,
    )


def _dec(value: Optional[float]) -> Optional[Decimal]:
    return None if value is None else Decimal(str(round(value, 2)))


# ---------------------------------------------------------------------------
# Usage events
# ---------------------------------------------------------------------------

@router.post(
    "/usage",
    response_model=UsageEventResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Append a tool-usage event",
    responses={**INVALID},
)
def record_usage(body: UsageEventRequest, db: Session = Depends(get_db)):
    return _event_to_response(usage_log.record_usage_event(db, _event_input(body)))


@router.post(
    "/usage/batch",
    response_model=UsageBatchResponse,
    status_code=status.HTTP_207_MULTI_STATUS,
    summary="Append many tool-usage events",
    responses={**INVALID},
)
def record_usage_batch(body: UsageBatchRequest, db: Session = Depends(get_db)):
    """
    Each item is written in its own savepoint; one bad item does not cancel
    the others. Always 207 so clients read per-item results.
    """
    raw = usage_log.record_usage_batch(db, [_event_input(i) for i in body.items])
    results = [
        UsageBatchItemResult(
            index=r["index"],
            ok=r["ok"],
            result=_event_to_response(r["event"]) if r["ok"] else None,
            error=r["error"],
        )
        for r in raw
    ]
    succeeded = sum(1 for r in results if r.ok)
    return UsageBatchResponse(
        total=len(results),
        succeeded=succeeded,
        failed=len(results) - succeeded,
        results=results,
    )


# ---------------------------------------------------------------------------
# Study sessions and interactions
# ---------------------------------------------------------------------------

@router.post(
    "/sessions",
    response_model=StudySessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record a study session",
    responses={**INVALID},
)
def record_session(body: StudySessionRequest, db: Session = Depends(get_db)):
    session = usage_log.record_study_session(db, **body.model_dump())
    return _session_to_response(session)


@router.get(
    "/sessions/{user_id}",
    response_model=SessionHistoryResponse,
    summary="A user's study sessions, newest first",
)
def session_history(user_id: int, db: Session = Depends(get_db)):
    sessions = usage_log.get_session_history(db, user_id)
    return SessionHistoryResponse(
        user_id=user_id,
        total=len(sessions),
        items=[_session_to_response(s) for s in sessions],
    )


@router.post(
    "/interactions",
    response_model=InteractionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record a content interaction outcome",
    responses={**NOT_FOUND, **INVALID},
)
def record_interaction(body: InteractionRequest, db: Session = Depends(get_db)):
    if catalog.get_content(db, body.content_id) is None:
        raise ContentNotFoundError(body.content_id)
    fields = body.model_dump()
    fields["engagement_score"] = _dec(body.engagement_score)
    fields["comprehension_score"] = _dec(body.comprehension_score)
    return _interaction_to_response(usage_log.record_interaction(db, **fields))


# ---------------------------------------------------------------------------
# GET /streak/{user_id}
# ---------------------------------------------------------------------------

@streak_router.get(
    "/{user_id}",
    response_model=StreakResponse,
    summary="Current and longest activity streak",
)
def get_streak(user_id: int, db: Session = Depends(get_db)):
    """
    The current streak survives until the end of a day with no activity:
    a user who studied yesterday but not yet today still has a live streak.
    """
    summary = streak.streak_summary(db, user_id)
    return StreakResponse(
        user_id=summary.user_id,
        current_streak=summary.current_streak,
        longest_streak=summary.longest_streak,
        last_active_date=str(summary.last_active_date) if summary.last_active_date else None,
        active_today=summary.active_today,
        total_active_days=summary.total_active_days,
    )
