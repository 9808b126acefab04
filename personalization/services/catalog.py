"""
Content catalog seam.

The catalog owns LearningContent; the engine only asks for candidates and
bumps view counters. Counters are incremented in SQL (`view_count + 1`) so
concurrent responders never lose an update.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from personalization.models.content import LearningContent, ContentStatus


@dataclass
class CandidateFilter:
    subject_area: Optional[str] = None
    exclude_ids: frozenset[int] = frozenset()
    published_only: bool = True
    public_only: bool = True


def get_candidates(db: Session, flt: Optional[CandidateFilter] = None) -> list[LearningContent]:
    """Return recommendable content matching the filter, newest first."""
    flt = flt or CandidateFilter()
    q = db.query(LearningContent)
    if flt.published_only:
        q = q.filter(LearningContent.status == ContentStatus.published)
    if flt.public_only:
        q = q.filter(LearningContent.is_public.is_(True))
    if flt.subject_area:
        q = q.filter(LearningContent.subject_area == flt.subject_area)
    if flt.exclude_ids:
        q = q.filter(LearningContent.id.notin_(flt.exclude_ids))
    return q.order_by(LearningContent.created_at.desc(), LearningContent.id.desc()).all()


def get_content(db: Session, content_id: int) -> Optional[LearningContent]:
    return db.get(LearningContent, content_id)


def increment_view_count(db: Session, content_id: int) -> None:
    """Atomic in-SQL increment. The caller commits."""
    db.execute(
        update(LearningContent)
        .where(LearningContent.id == content_id)
        .values(view_count=LearningContent.view_count + 1)
        .execution_options(synchronize_session=False)
    )
