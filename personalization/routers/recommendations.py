"""
Recommendation lifecycle router.

POST /recommendations/generate/{student_id}    — score, rank and persist top N
GET  /recommendations/student/{student_id}     — active recommendations
GET  /recommendations/{id}?student_id=         — one recommendation, any state
POST /recommendations/{id}/present             — mark as shown (idempotent)
POST /recommendations/{id}/respond             — record the single response
POST /recommendations/{id}/feedback            — rate a responded recommendation
POST /recommendations/expire                   — run the expiry sweep
GET  /recommendations/analytics/{student_id}   — lifecycle counts and rates
"""
from __future__ import annotations

import json
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session

from personalization.db.base import get_db
from personalization.models.content import LearningContent
from personalization.models.recommendation import Recommendation
from personalization.schemas.common import CONFLICT, INVALID, NOT_FOUND, enum_value, iso
from personalization.schemas.recommendation import (
    AnalyticsResponse,
    ComponentScoresOut,
    ExpireRequest,
    ExpiryResponse,
    FeedbackRequest,
    GenerateRequest,
    GenerateResponse,
    RecommendationListResponse,
    RecommendationResponse,
    RespondRequest,
    StudentRef,
)
from personalization.services import recommendations as lifecycle

router = APIRouter(prefix="/recommendations", tags=["recommendations"])


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------

def _parse_factors(raw: Optional[str]) -> list[str]:
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
    except (ValueError, TypeError):
        return []
    return [str(f) for f in parsed] if isinstance(parsed, list) else []


def _titles(db: Session, rows: list[Recommendation]) -> dict[int, str]:
    ids = {r.content_id for r in rows}
    if not ids:
        return {}
    return dict(
        db.query(LearningContent.id, LearningContent.title)
        .filter(LearningContent.id.in_(ids))
        .all()
    )


def _rec_to_response(rec: Recommendation, title: Optional[str] = None) -> RecommendationResponse:
    return RecommendationResponse(
        id=rec.id,
        student_id=rec.student_id,
        content_id=rec.content_id,
        content_title=title,
        overall_score=float(rec.overall_score),
        scores=ComponentScoresOut(
            confidence=float(rec.confidence_score),
            relevance=float(rec.relevance_score),
            accessibility_match=float(rec.accessibility_match),
            learning_style_match=float(rec.learning_style_match),
            difficulty_match=float(rec.difficulty_match),
            success_prediction=float(rec.success_prediction),
        ),
        state=enum_value(rec.state),
        is_active=rec.is_active,
        priority_level=enum_value(rec.priority_level),
        reasoning=rec.reasoning,
        matching_factors=_parse_factors(rec.matching_factors),
        algorithm_version=rec.algorithm_version,
        generated_at=iso(rec.generated_at),
        expires_at=iso(rec.expires_at),
        presented=rec.presented,
        presented_at=iso(rec.presented_at),
        student_response=enum_value(rec.student_response),
        responded_at=iso(rec.responded_at),
        feedback_rating=rec.feedback_rating,
        was_helpful=rec.was_helpful,
        expired_at=iso(rec.expired_at),
        superseded_by_id=rec.superseded_by_id,
    )


def _one(db: Session, rec: Recommendation) -> RecommendationResponse:
    return _rec_to_response(rec, _titles(db, [rec]).get(rec.content_id))


# ---------------------------------------------------------------------------
# Generation and queries
# ---------------------------------------------------------------------------

@router.post(
    "/generate/{student_id}",
    response_model=GenerateResponse,
    summary="Generate and persist ranked recommendations",
    responses={**CONFLICT, **INVALID},
)
def generate_recommendations(
    student_id: int,
    body: Optional[GenerateRequest] = Body(default=None),
    db: Session = Depends(get_db),
):
    """
    Score every published, public candidate the student has not completed and
    keep the top N. Re-running with unchanged data creates nothing new.

    An empty catalog returns `items: []`, not an error.
    """
    result = lifecycle.generate(db, student_id, body.top_n if body else None)
    titles = _titles(db, result.items)
    return GenerateResponse(
        student_id=student_id,
        candidates_considered=result.candidates_considered,
        created=result.created,
        superseded=result.superseded,
        kept=result.kept,
        items=[_rec_to_response(r, titles.get(r.content_id)) for r in result.items],
    )


@router.get(
    "/student/{student_id}",
    response_model=RecommendationListResponse,
    summary="List a student's active recommendations (best first)",
)
def list_student_recommendations(
    student_id: int,
    include_presented: bool = Query(
        default=False, description="Also return rows already shown to the student."
    ),
    db: Session = Depends(get_db),
):
    rows = lifecycle.list_recommendations(db, student_id, include_presented)
    titles = _titles(db, rows)
    return RecommendationListResponse(
        student_id=student_id,
        total=len(rows),
        items=[_rec_to_response(r, titles.get(r.content_id)) for r in rows],
    )


@router.get(
    "/analytics/{student_id}",
    response_model=AnalyticsResponse,
    summary="Lifecycle counts and feedback rates for a student",
)
def recommendation_analytics(student_id: int, db: Session = Depends(get_db)):
    stats = lifecycle.analytics(db, student_id)
    return AnalyticsResponse(**asdict(stats))


@router.get(
    "/{recommendation_id}",
    response_model=RecommendationResponse,
    summary="Get one recommendation",
    responses={**NOT_FOUND},
)
def get_recommendation(
    recommendation_id: int,
    student_id: int = Query(description="Owner of the recommendation."),
    db: Session = Depends(get_db),
):
    """Inactive rows are returned too, so clients can read the final state."""
    return _one(db, lifecycle.get_recommendation(db, recommendation_id, student_id))


@router.post(
    "/expire",
    response_model=ExpiryResponse,
    summary="Deactivate due recommendations",
)
def expire_recommendations(
    body: Optional[ExpireRequest] = Body(default=None),
    db: Session = Depends(get_db),
):
    """
    Idempotent sweep: past TTL, presented but unanswered past the grace
    period, and ignored past the ignore grace period.
    """
    result = lifecycle.expire_due(db, body.now if body else None)
    return ExpiryResponse(
        students_processed=result.students_processed,
        expired=result.expired,
        presented_timeouts=result.presented_timeouts,
        ignored_deactivated=result.ignored_deactivated,
        total_deactivated=result.total_deactivated,
        failed_students=result.failed_students,
    )


# ---------------------------------------------------------------------------
# Lifecycle transitions
# ---------------------------------------------------------------------------

@router.post(
    "/{recommendation_id}/present",
    response_model=RecommendationResponse,
    summary="Mark a recommendation as shown",
    responses={**NOT_FOUND, **CONFLICT},
)
def present_recommendation(
    recommendation_id: int,
    body: StudentRef,
    db: Session = Depends(get_db),
):
    rec = lifecycle.present(db, recommendation_id, body.student_id)
    return _one(db, rec)


@router.post(
    "/{recommendation_id}/respond",
    response_model=RecommendationResponse,
    summary="Record the student's response",
    responses={**NOT_FOUND, **CONFLICT},
)
def respond_to_recommendation(
    recommendation_id: int,
    body: RespondRequest,
    db: Session = Depends(get_db),
):
    """Requires a presented, active recommendation. A second response is a 409."""
    rec = lifecycle.respond(db, recommendation_id, body.student_id, body.response)
    return _one(db, rec)


@router.post(
    "/{recommendation_id}/feedback",
    response_model=RecommendationResponse,
    summary="Rate a recommendation after responding",
    responses={**NOT_FOUND, **CONFLICT, **INVALID},
)
def recommendation_feedback(
    recommendation_id: int,
    body: FeedbackRequest,
    db: Session = Depends(get_db),
):
    rec = lifecycle.record_feedback(
        db, recommendation_id, body.student_id, body.rating, body.was_helpful
    )
    return _one(db, rec)
