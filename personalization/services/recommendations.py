"""
Recommendation Lifecycle Manager.

State machine per (student_id, content_id)
------------------------------------------
  none
   → active(presented=False)     generate
   → active(presented=True)      present
   → responded                   respond
   → expired                     expire_due / supersede / TTL

generate()
----------
  1. Load profile (defaults when missing), interaction history, published +
     public candidates. Content the student completed is ineligible.
  2. Score every candidate, rank by overall desc, then newest content, then id.
  3. For each of the top N:
       no active row                         → create
       active, unpresented, |Δscore| > 0.05  → supersede (old row expired)
       active row past expires_at            → replace
       otherwise                             → keep untouched
  Zero candidates is an empty result, not an error.

Concurrency
-----------
The partial unique index on (student_id, content_id) WHERE is_active plus
conditional `UPDATE … WHERE is_active` statements make a concurrent loser
see an IntegrityError or a zero rowcount. The loser rolls back and retries
the whole decision up to GENERATION_MAX_ATTEMPTS times, then raises
GenerationConflictError.

expire_due()
------------
Per-student savepoint; one student's failure is logged and skipped.
  (1) expires_at < now
  (2) presented, unanswered for PRESENTED_GRACE_HOURS
  (3) "ignored" for IGNORED_GRACE_HOURS (state stays "responded")
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from loguru import logger
from sqlalchemy import case, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from personalization.core.clock import as_utc, utcnow
from personalization.core.config import settings
from personalization.core.errors import (
    GenerationConflictError,
    InvalidRatingError,
    InvalidTopNError,
    RecommendationAlreadyRespondedError,
    RecommendationInactiveError,
    RecommendationNotFoundError,
    RecommendationNotPresentedError,
    RecommendationNotRespondedError,
)
from personalization.models.content import LearningContent
from personalization.models.content_interaction import ContentInteraction
from personalization.models.recommendation import (
    Recommendation,
    RecommendationState,
    StudentResponse,
)
from personalization.services.catalog import (
    CandidateFilter,
    get_candidates,
    increment_view_count,
)
from personalization.services.profile_store import default_profile, get_profile
from personalization.services.scoring import (
    ALGORITHM_VERSION,
    ComponentScores,
    InteractionRecord,
    score_candidate,
)

_VIEW_COUNTING_RESPONSES = {StudentResponse.viewed.value, StudentResponse.started.value}


class _StaleRecommendation(Exception):
    """A conditional update matched no row: another writer got there first."""


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class GenerationResult:
    student_id: int
    items: list[Recommendation] = field(default_factory=list)  # rank order
    created: int = 0
    superseded: int = 0
    kept: int = 0
    candidates_considered: int = 0


@dataclass
class ExpiryResult:
    students_processed: int = 0
    expired: int = 0
    presented_timeouts: int = 0
    ignored_deactivated: int = 0
    failed_students: list[int] = field(default_factory=list)

    @property
    def total_deactivated(self) -> int:
        return self.expired + self.presented_timeouts + self.ignored_deactivated


@dataclass
class RecommendationAnalytics:
    student_id: int
    total: int
    active: int
    presented: int
    responded: int
    expired: int
    by_response: dict[str, int]
    presentation_rate: float
    average_feedback_rating: Optional[float]
    helpful_rate: Optional[float]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _dec(value: float) -> Decimal:
    return Decimal(str(round(value, 4)))


def _value(enum_or_str) -> Optional[str]:
    if enum_or_str is None:
        return None
    return getattr(enum_or_str, "value", enum_or_str)


def _load_history(db: Session, student_id: int) -> list[InteractionRecord]:
    rows = (
        db.query(ContentInteraction, LearningContent)
        .join(LearningContent, LearningContent.id == ContentInteraction.content_id)
        .filter(ContentInteraction.student_id == student_id)
        .order_by(ContentInteraction.id.asc())
        .all()
    )
    return [
        InteractionRecord(
            content_id=content.id,
            subject_area=content.subject_area,
            difficulty_level=_value(content.difficulty_level),
            overall_success=interaction.overall_success,
            positive=interaction.is_positive_outcome,
            completed=interaction.is_completed,
        )
        for interaction, content in rows
    ]


def _completed_via_response(db: Session, student_id: int) -> set[int]:
    rows = (
        db.query(Recommendation.content_id)
        .filter(
            Recommendation.student_id == student_id,
            Recommendation.student_response == StudentResponse.completed,
        )
        .distinct()
        .all()
    )
    return {r[0] for r in rows}


def _rank_key(item: tuple[ComponentScores, LearningContent]) -> tuple:
    scores, content = item
    created = as_utc(content.created_at)
    created_ts = created.timestamp() if created else 0.0
    return (-scores.overall, -created_ts, -content.id)


def _new_row(
    student_id: int,
    content: LearningContent,
    scores: ComponentScores,
    now: datetime,
) -> Recommendation:
    return Recommendation(
        student_id=student_id,
        content_id=content.id,
        confidence_score=_dec(scores.confidence),
        relevance_score=_dec(scores.relevance),
        accessibility_match=_dec(scores.accessibility_match),
        learning_style_match=_dec(scores.learning_style_match),
        difficulty_match=_dec(scores.difficulty_match),
        success_prediction=_dec(scores.success_prediction),
        overall_score=_dec(scores.overall),
        state=RecommendationState.active,
        is_active=True,
        priority_level=scores.priority_level,
        reasoning=scores.reasoning(),
        matching_factors=json.dumps(list(scores.matching_factors)),
        algorithm_version=ALGORITHM_VERSION,
        generated_at=now,
        expires_at=now + timedelta(days=settings.RECOMMENDATION_TTL_DAYS),
        presented=False,
    )


def _expired_unless_responded():
    """Responded rows keep their state when deactivated."""
    return case(
        (Recommendation.state == RecommendationState.active.value, RecommendationState.expired.value),
        else_=Recommendation.state,
    )


def _retire(
    db: Session,
    rec: Recommendation,
    now: datetime,
    require_unpresented: bool,
) -> None:
    """Conditionally deactivate an active row. Raises _StaleRecommendation on a lost race."""
    stmt = (
        update(Recommendation)
        .where(Recommendation.id == rec.id, Recommendation.is_active.is_(True))
        .values(
            is_active=False,
            expired_at=now,
            state=_expired_unless_responded(),
        )
        .execution_options(synchronize_session=False)
    )
    if require_unpresented:
        stmt = stmt.where(Recommendation.presented.is_(False))
    if db.execute(stmt).rowcount != 1:
        raise _StaleRecommendation(f"recommendation {rec.id} changed concurrently")


def _get_owned(db: Session, recommendation_id: int, student_id: int) -> Recommendation:
    """Another student's id is reported exactly like an unknown one."""
    rec = db.get(Recommendation, recommendation_id)
    if rec is None or rec.student_id != student_id:
        raise RecommendationNotFoundError(recommendation_id)
    return rec


# ---------------------------------------------------------------------------
# Public: generation
# ---------------------------------------------------------------------------

def _generate_once(db: Session, student_id: int, top_n: int) -> GenerationResult:
    now = utcnow()
    result = GenerationResult(student_id=student_id)

    profile = get_profile(db, student_id) or default_profile(student_id)
    history = _load_history(db, student_id)
    completed = {h.content_id for h in history if h.completed}
    completed |= _completed_via_response(db, student_id)

    candidates = get_candidates(db, CandidateFilter(exclude_ids=frozenset(completed)))
    result.candidates_considered = len(candidates)
    if not candidates:
        return result

    scored = sorted(
        ((score_candidate(profile, c, history), c) for c in candidates),
        key=_rank_key,
    )[:top_n]

    active = {
        r.content_id: r
        for r in db.query(Recommendation)
        .filter(Recommendation.student_id == student_id, Recommendation.is_active.is_(True))
        .all()
    }

    for scores, content in scored:
        existing = active.get(content.id)

        if existing is None:
            row = _new_row(student_id, content, scores, now)
            db.add(row)
            db.flush()
            result.created += 1
            result.items.append(row)
            continue

        expires_at = as_utc(existing.expires_at)
        past_ttl = expires_at is not None and expires_at <= now
        drift = abs(_dec(scores.overall) - Decimal(existing.overall_score))
        should_supersede = (
            not existing.presented
            and drift > Decimal(str(settings.SUPERSEDE_THRESHOLD))
        )

        if not (past_ttl or should_supersede):
            result.kept += 1
            result.items.append(existing)
            continue

        _retire(db, existing, now, require_unpresented=not past_ttl)
        row = _new_row(student_id, content, scores, now)
        db.add(row)
        db.flush()
        db.execute(
            update(Recommendation)
            .where(Recommendation.id == existing.id)
            .values(superseded_by_id=row.id)
            .execution_options(synchronize_session=False)
        )
        result.superseded += 1
        result.items.append(row)

    return result


def generate(db: Session, student_id: int, top_n: Optional[int] = None) -> GenerationResult:
    """
    Score, rank and persist the top N recommendations for a student.
    Idempotent: unchanged data produces no new rows.
    Commits once per successful attempt.
    """
    top_n = settings.RECOMMENDATION_TOP_N if top_n is None else top_n
    if top_n < 1:
        raise InvalidTopNError(top_n)

    attempts = settings.GENERATION_MAX_ATTEMPTS
    for attempt in range(1, attempts + 1):
        try:
            result = _generate_once(db, student_id, top_n)
            db.commit()
        except (IntegrityError, _StaleRecommendation) as exc:
            db.rollback()
            logger.warning(
                "Generation for student {} conflicted (attempt {}/{}): {}",
                student_id, attempt, attempts, exc,
            )
            continue

        for row in result.items:
            db.refresh(row)
        logger.info(
            "Generated recommendations for student {}: {} created, {} superseded, {} kept",
            student_id, result.created, result.superseded, result.kept,
        )
        return result

    raise GenerationConflictError(student_id, attempts)


# ---------------------------------------------------------------------------
# Public: queries
# ---------------------------------------------------------------------------

def list_recommendations(
    db: Session,
    student_id: int,
    include_presented: bool = False,
) -> list[Recommendation]:
    q = db.query(Recommendation).filter(
        Recommendation.student_id == student_id,
        Recommendation.is_active.is_(True),
    )
    if not include_presented:
        q = q.filter(Recommendation.presented.is_(False))
    return q.order_by(Recommendation.overall_score.desc(), Recommendation.id.asc()).all()


def get_recommendation(db: Session, recommendation_id: int, student_id: int) -> Recommendation:
    return _get_owned(db, recommendation_id, student_id)


# ---------------------------------------------------------------------------
# Public: lifecycle transitions
# ---------------------------------------------------------------------------

def present(db: Session, recommendation_id: int, student_id: int) -> Recommendation:
    """Idempotent. presented_at is set on the first transition only."""
    rec = _get_owned(db, recommendation_id, student_id)
    if not rec.is_active:
        raise RecommendationInactiveError(rec.id, _value(rec.state))
    if rec.presented:
        return rec

    db.execute(
        update(Recommendation)
        .where(
            Recommendation.id == rec.id,
            Recommendation.is_active.is_(True),
            Recommendation.presented.is_(False),
        )
        .values(presented=True, presented_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    db.commit()
    db.refresh(rec)
    if not rec.is_active:
        raise RecommendationInactiveError(rec.id, _value(rec.state))
    return rec


def respond(
    db: Session,
    recommendation_id: int,
    student_id: int,
    response: str,
) -> Recommendation:
    """
    Record the student's single response. Requires an active, presented row.
    "viewed" and "started" bump the content's view counter in the same commit.
    """
    rec = _get_owned(db, recommendation_id, student_id)
    if rec.student_response is not None:
        raise RecommendationAlreadyRespondedError(rec.id, _value(rec.student_response))
    if not rec.is_active:
        raise RecommendationInactiveError(rec.id, _value(rec.state))
    if not rec.presented:
        raise RecommendationNotPresentedError(rec.id)

    response = _value(response)
    outcome = db.execute(
        update(Recommendation)
        .where(
            Recommendation.id == rec.id,
            Recommendation.is_active.is_(True),
            Recommendation.presented.is_(True),
            Recommendation.student_response.is_(None),
        )
        .values(
            student_response=StudentResponse(response),
            responded_at=utcnow(),
            state=RecommendationState.responded,
        )
        .execution_options(synchronize_session=False)
    )
    if outcome.rowcount != 1:
        db.rollback()
        db.refresh(rec)
        if rec.student_response is not None:
            raise RecommendationAlreadyRespondedError(rec.id, _value(rec.student_response))
        raise RecommendationInactiveError(rec.id, _value(rec.state))

    if response in _VIEW_COUNTING_RESPONSES:
        increment_view_count(db, rec.content_id)
    db.commit()
    db.refresh(rec)
    return rec


def record_feedback(
    db: Session,
    recommendation_id: int,
    student_id: int,
    rating: int,
    was_helpful: Optional[bool] = None,
) -> Recommendation:
    """Decorates a responded row. Never changes its lifecycle state."""
    if not 1 <= rating <= 5:
        raise InvalidRatingError(rating)
    rec = _get_owned(db, recommendation_id, student_id)
    if rec.student_response is None:
        raise RecommendationNotRespondedError(rec.id)

    rec.feedback_rating = rating
    if was_helpful is not None:
        rec.was_helpful = was_helpful
    db.commit()
    db.refresh(rec)
    return rec


# ---------------------------------------------------------------------------
# Public: expiry sweep
# ---------------------------------------------------------------------------

def _expire_student(db: Session, student_id: int, now: datetime, result: ExpiryResult) -> None:
    presented_cutoff = now - timedelta(hours=settings.PRESENTED_GRACE_HOURS)
    ignored_cutoff = now - timedelta(hours=settings.IGNORED_GRACE_HOURS)
    base = (
        update(Recommendation)
        .where(Recommendation.student_id == student_id, Recommendation.is_active.is_(True))
        .execution_options(synchronize_session=False)
    )

    expired = db.execute(
        base.where(Recommendation.expires_at < now).values(
            is_active=False,
            expired_at=now,
            state=_expired_unless_responded(),
        )
    ).rowcount

    timed_out = db.execute(
        base.where(
            Recommendation.presented.is_(True),
            Recommendation.student_response.is_(None),
            Recommendation.presented_at < presented_cutoff,
        ).values(is_active=False, expired_at=now, state=RecommendationState.expired)
    ).rowcount

    ignored = db.execute(
        base.where(
            Recommendation.student_response == StudentResponse.ignored,
            Recommendation.responded_at < ignored_cutoff,
        ).values(is_active=False, expired_at=now)
    ).rowcount

    result.expired += expired
    result.presented_timeouts += timed_out
    result.ignored_deactivated += ignored


def expire_due(db: Session, now: Optional[datetime] = None) -> ExpiryResult:
    """
    Deactivate every recommendation that is due. Idempotent: a second run
    with the same `now` changes nothing. One savepoint per student.
    """
    now = as_utc(now) or utcnow()
    result = ExpiryResult()
    student_ids = [
        r[0]
        for r in db.query(Recommendation.student_id)
        .filter(Recommendation.is_active.is_(True))
        .distinct()
        .order_by(Recommendation.student_id)
        .all()
    ]

    for student_id in student_ids:
        savepoint = db.begin_nested()
        try:
            _expire_student(db, student_id, now, result)
            savepoint.commit()
            result.students_processed += 1
        except Exception as exc:
            savepoint.rollback()
            result.failed_students.append(student_id)
            logger.opt(exception=exc).error("Expiry sweep failed for student {}", student_id)

    db.commit()
    db.expire_all()
    logger.info(
        "Expiry sweep: {} students, {} expired, {} presentation timeouts, {} ignored",
        result.students_processed, result.expired,
        result.presented_timeouts, result.ignored_deactivated,
    )
    return result


# ---------------------------------------------------------------------------
# Public: analytics
# ---------------------------------------------------------------------------

def analytics(db: Session, student_id: int) -> RecommendationAnalytics:
    rows = db.query(Recommendation).filter(Recommendation.student_id == student_id).all()
    total = len(rows)

    by_response: dict[str, int] = {r.value: 0 for r in StudentResponse}
    for row in rows:
        if row.student_response is not None:
            by_response[_value(row.student_response)] += 1

    presented = sum(1 for r in rows if r.presented)
    ratings = [r.feedback_rating for r in rows if r.feedback_rating is not None]
    helpful_votes = [r.was_helpful for r in rows if r.was_helpful is not None]

    return RecommendationAnalytics(
        student_id=student_id,
        total=total,
        active=sum(1 for r in rows if r.is_active),
        presented=presented,
        responded=sum(by_response.values()),
        expired=sum(1 for r in rows if _value(r.state) == RecommendationState.expired.value),
        by_response=by_response,
        presentation_rate=round(presented / total, 4) if total else 0.0,
        average_feedback_rating=round(sum(ratings) / len(ratings), 2) if ratings else None,
        helpful_rate=(
            round(sum(1 for v in helpful_votes if v) / len(helpful_votes), 4)
            if helpful_votes else None
        ),
    )
