"""
Pattern insight router.

POST /insights/analyze/{user_id}   — mine usage history and upsert insights
GET  /insights/{user_id}           — presentation-gated insights (top 3)
POST /insights/{id}/present        — mark as shown
POST /insights/{id}/respond        — accept or reject
"""
from __future__ import annotations

import json
from typing import Any, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from personalization.db.base import get_db
from personalization.models.adaptive_insight import AdaptiveInsight
from personalization.schemas.common import CONFLICT, NOT_FOUND, enum_value, iso
from personalization.schemas.insight import (
    AnalyzeResponse,
    InsightListResponse,
    InsightRespondRequest,
    InsightResponse,
    UserRef,
)
from personalization.services import pattern_insights

router = APIRouter(prefix="/insights", tags=["insights"])


def _parse_data(raw: Optional[str]) -> Optional[dict[str, Any]]:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (ValueError, TypeError):
        return None


def _insight_to_response(row: AdaptiveInsight) -> InsightResponse:
    return InsightResponse(
        id=row.id,
        user_id=row.user_id,
        insight_type=enum_value(row.insight_type),
        bucket_key=row.bucket_key,
        title=row.title,
        description=row.description,
        data=_parse_data(row.insight_data),
        confidence_score=float(row.confidence_score),
        priority_level=enum_value(row.priority_level),
        sample_count=row.sample_count,
        presented_to_user=row.presented_to_user,
        presented_at=iso(row.presented_at),
        user_response=enum_value(row.user_response),
        responded_at=iso(row.responded_at),
    )


@router.post(
    "/analyze/{user_id}",
    response_model=AnalyzeResponse,
    summary="Mine a user's usage history into insights",
)
def analyze_user(user_id: int, db: Session = Depends(get_db)):
    """
    Idempotent: re-running refreshes pending, unpresented insights in place
    and never touches ones the user has already seen or answered.
    """
    result = pattern_insights.analyze_user(db, user_id)
    presentable = pattern_insights.get_presentable(db, user_id)
    return AnalyzeResponse(
        user_id=user_id,
        events_analyzed=result.events_analyzed,
        created=len(result.created),
        merged=len(result.merged),
        skipped=result.skipped,
        presentable=[_insight_to_response(r) for r in presentable],
    )


@router.get(
    "/{user_id}",
    response_model=InsightListResponse,
    summary="Insights ready to show (high confidence, unseen, pending)",
)
def list_insights(user_id: int, db: Session = Depends(get_db)):
    rows = pattern_insights.get_presentable(db, user_id)
    return InsightListResponse(
        user_id=user_id,
        total=len(rows),
        items=[_insight_to_response(r) for r in rows],
    )


@router.post(
    "/{insight_id}/present",
    response_model=InsightResponse,
    summary="Mark an insight as shown",
    responses={**NOT_FOUND},
)
def present_insight(insight_id: int, body: UserRef, db: Session = Depends(get_db)):
    row = pattern_insights.present_insight(db, insight_id, body.user_id)
    return _insight_to_response(row)


@router.post(
    "/{insight_id}/respond",
    response_model=InsightResponse,
    summary="Accept or reject an insight",
    responses={**NOT_FOUND, **CONFLICT},
)
def respond_to_insight(
    insight_id: int,
    body: InsightRespondRequest,
    db: Session = Depends(get_db),
):
    row = pattern_insights.respond_insight(db, insight_id, body.user_id, body.response)
    return _insight_to_response(row)
