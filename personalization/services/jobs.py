"""
Background jobs: each opens its own Session, runs one idempotent batch,
and closes the session. Safe to overlap with live traffic.

  run_expiry_sweep   — recommendations.expire_due
  run_insight_batch  — pattern_insights.analyze_all
  run_seed           — achievements.ensure_default_achievements
"""
from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional, TypeVar

from sqlalchemy.orm import Session

from personalization.db.base import SessionLocal
from personalization.services import achievements, pattern_insights, recommendations

T = TypeVar("T")


def _with_session(work: Callable[[Session], T], session_factory=SessionLocal) -> T:
    db = session_factory()
    try:
        return work(db)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def run_expiry_sweep(
    now: Optional[datetime] = None,
    session_factory=SessionLocal,
) -> recommendations.ExpiryResult:
    return _with_session(lambda db: recommendations.expire_due(db, now), session_factory)


def run_insight_batch(session_factory=SessionLocal) -> pattern_insights.InsightBatchResult:
    return _with_session(pattern_insights.analyze_all, session_factory)


def run_seed(session_factory=SessionLocal) -> int:
    return _with_session(achievements.ensure_default_achievements, session_factory)
