"""
Pattern Insight Engine — mines a user's tool-usage history into insights.

Dimensions   time_of_day bucket, day_of_week, tool_name, activity_context
             (events without a context are left out of that dimension)
Signals      energy   self-reported energy_level (1–10)
             success  1.0 when the event's session contains a "complete"
                      action, else 0.0; a session is a run of events with
                      gaps <= SESSION_WINDOW_MINUTES
             rating   self-reported success_rating (1–10)

Emission rule (per dimension × signal × bucket)
-----------------------------------------------
  n >= INSIGHT_MIN_SAMPLES
  overall population std > 0
  |bucket_mean - overall_mean| > overall_std        (i.e. |z| > 1)

  confidence = min(1, n / INSIGHT_FULL_CONFIDENCE_SAMPLES) · min(1, |z| / 2)
  stored     = confidence floored to 4 decimals
  priority   = high >= 0.8, medium >= 0.5, else low   (from the stored value)

Idempotency
-----------
Key (user_id, insight_type, bucket_key) is unique in `adaptive_insights`.
  no row                       → insert
  row pending and unpresented  → stats refreshed in place (merged)
  presented or answered        → left alone (skipped)

Presentation gate: not presented, confidence >= INSIGHT_PRESENT_THRESHOLD,
response pending; at most INSIGHT_PRESENTATION_LIMIT returned, best first.
"""
from __future__ import annotations

import json
import statistics
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import ROUND_FLOOR, Decimal
from typing import Callable, Optional

from loguru import logger
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from personalization.core.clock import as_utc, utcnow
from personalization.core.config import settings
from personalization.core.errors import InsightAlreadyRespondedError, InsightNotFoundError
from personalization.models.adaptive_insight import (
    AdaptiveInsight,
    InsightResponse,
    InsightType,
)
from personalization.models.recommendation import PriorityLevel
from personalization.models.usage_event import UsageAction, UsageEvent
from personalization.services.usage_log import get_active_user_ids, get_usage_events

_DAY_NAMES = ["sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday"]

_HIGH_PRIORITY_AT = 0.8
_MEDIUM_PRIORITY_AT = 0.5
_CONFIDENCE_STEP = Decimal("0.0001")

_SIGNAL_NOUNS = {
    "energy": "energy",
    "success": "completion rate",
    "rating": "success rating",
}


# ---------------------------------------------------------------------------
# Pure mining
# ---------------------------------------------------------------------------

def stored_confidence(confidence: float) -> Decimal:
    """Round down so a value under a threshold never reaches it once stored."""
    return Decimal(str(confidence)).quantize(_CONFIDENCE_STEP, rounding=ROUND_FLOOR)


def priority_for(confidence: Decimal) -> str:
    if confidence >= Decimal(str(_HIGH_PRIORITY_AT)):
        return PriorityLevel.high.value
    if confidence >= Decimal(str(_MEDIUM_PRIORITY_AT)):
        return PriorityLevel.medium.value
    return PriorityLevel.low.value


@dataclass(frozen=True)
class DetectedPattern:
    insight_type: str
    dimension: str
    signal: str
    bucket_key: str
    sample_count: int
    bucket_mean: float
    overall_mean: float
    overall_std: float
    z_score: float
    confidence: float

    @property
    def priority_level(self) -> str:
        return priority_for(stored_confidence(self.confidence))

    @property
    def direction(self) -> str:
        return "higher" if self.z_score > 0 else "lower"

    def bucket_label(self) -> str:
        if self.dimension == "time_of_day":
            return f"the {self.bucket_key.replace('_', ' ')}"
        if self.dimension == "day_of_week":
            return f"{self.bucket_key.capitalize()}s"
        if self.dimension == "activity_context":
            return self.bucket_key.replace("_", " ")
        return self.bucket_key

    def title(self) -> str:
        noun = _SIGNAL_NOUNS[self.signal]
        if self.dimension == "tool":
            return f"{self.direction.capitalize()} {noun} with {self.bucket_key}"
        if self.dimension == "activity_context":
            return f"{self.direction.capitalize()} {noun} during {self.bucket_label()}"
        return f"{self.direction.capitalize()} {noun} in {self.bucket_label()}"

    def description(self) -> str:
        if self.signal == "energy":
            return (
                f"Your energy averages {self.bucket_mean:.1f} for {self.bucket_label()} "
                f"versus {self.overall_mean:.1f} overall ({self.sample_count} sessions)."
            )
        if self.signal == "rating":
            return (
                f"You rate your sessions {self.bucket_mean:.1f}/10 for {self.bucket_label()} "
                f"versus {self.overall_mean:.1f} overall ({self.sample_count} ratings)."
            )
        return (
            f"You finish {self.bucket_mean:.0%} of sessions for {self.bucket_label()} "
            f"versus {self.overall_mean:.0%} overall ({self.sample_count} events)."
        )

    def data(self) -> dict:
        return {
            "dimension": self.dimension,
            "signal": self.signal,
            "bucket_mean": round(self.bucket_mean, 4),
            "overall_mean": round(self.overall_mean, 4),
            "overall_std": round(self.overall_std, 4),
            "z_score": round(self.z_score, 4),
        }


def _value(enum_or_str) -> str:
    return getattr(enum_or_str, "value", enum_or_str)


def session_success_flags(
    events: list[UsageEvent],
    window: timedelta,
) -> dict[int, float]:
    """Map event index → 1.0 if its session contains a complete action, else 0.0."""
    order = sorted(range(len(events)), key=lambda i: as_utc(events[i].occurred_at))
    flags: dict[int, float] = {}
    session: list[int] = []
    last: Optional[datetime] = None

    def close(indices: list[int]) -> None:
        done = any(_value(events[i].action) == UsageAction.complete.value for i in indices)
        for i in indices:
            flags[i] = 1.0 if done else 0.0

    for i in order:
        at = as_utc(events[i].occurred_at)
        if last is not None and at - last > window:
            close(session)
            session = []
        session.append(i)
        last = at
    if session:
        close(session)
    return flags


_DIMENSIONS: dict[str, Callable[[UsageEvent], Optional[str]]] = {
    "time_of_day": lambda e: _value(e.time_of_day),
    "day_of_week": lambda e: _DAY_NAMES[e.day_of_week % 7],
    "tool": lambda e: e.tool_name,
    "activity_context": lambda e: e.activity_context or None,
}


def mine_patterns(
    events: list[UsageEvent],
    min_samples: Optional[int] = None,
    full_confidence_samples: Optional[int] = None,
    window_minutes: Optional[int] = None,
) -> list[DetectedPattern]:
    """Pure: same events in, same patterns out. Sorted by confidence desc."""
    min_samples = min_samples or settings.INSIGHT_MIN_SAMPLES
    full = full_confidence_samples or settings.INSIGHT_FULL_CONFIDENCE_SAMPLES
    window = timedelta(minutes=window_minutes or settings.SESSION_WINDOW_MINUTES)
    if not events:
        return []

    success = session_success_flags(events, window)
    signals: dict[str, list[tuple[int, float]]] = {
        "energy": [
            (i, float(e.energy_level)) for i, e in enumerate(events) if e.energy_level is not None
        ],
        "success": [(i, success[i]) for i in range(len(events))],
        "rating": [
            (i, float(e.success_rating)) for i, e in enumerate(events)
            if e.success_rating is not None
        ],
    }

    patterns: list[DetectedPattern] = []
    for signal, samples in signals.items():
        if len(samples) < min_samples:
            continue
        values = [v for _, v in samples]
        overall_mean = statistics.fmean(values)
        overall_std = statistics.pstdev(values)
        if overall_std <= 0:
            continue

        for dimension, key_of in _DIMENSIONS.items():
            buckets: dict[str, list[float]] = defaultdict(list)
            for i, v in samples:
                key = key_of(events[i])
                if key is not None:
                    buckets[key].append(v)

            for bucket_key, bucket_values in sorted(buckets.items()):
                n = len(bucket_values)
                if n < min_samples:
                    continue
                bucket_mean = statistics.fmean(bucket_values)
                z = (bucket_mean - overall_mean) / overall_std
                if abs(z) <= 1.0:
                    continue
                confidence = min(1.0, n / full) * min(1.0, abs(z) / 2.0)
                patterns.append(DetectedPattern(
                    insight_type=InsightType(f"{dimension}_{signal}").value,
                    dimension=dimension,
                    signal=signal,
                    bucket_key=bucket_key,
                    sample_count=n,
                    bucket_mean=bucket_mean,
                    overall_mean=overall_mean,
                    overall_std=overall_std,
                    z_score=z,
                    confidence=max(0.0, min(1.0, confidence)),
                ))

    patterns.sort(key=lambda p: (-p.confidence, p.insight_type, p.bucket_key))
    return patterns


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

@dataclass
class InsightRunResult:
    user_id: int
    events_analyzed: int = 0
    created: list[AdaptiveInsight] = field(default_factory=list)
    merged: list[AdaptiveInsight] = field(default_factory=list)
    skipped: int = 0


@dataclass
class InsightBatchResult:
    users_processed: int = 0
    insights_created: int = 0
    insights_merged: int = 0
    failed_users: list[int] = field(default_factory=list)


def _apply(row: AdaptiveInsight, pattern: DetectedPattern) -> None:
    row.title = pattern.title()
    row.description = pattern.description()
    row.insight_data = json.dumps(pattern.data())
    row.confidence_score = stored_confidence(pattern.confidence)
    row.priority_level = pattern.priority_level
    row.sample_count = pattern.sample_count


def _find(db: Session, user_id: int, pattern: DetectedPattern) -> Optional[AdaptiveInsight]:
    return (
        db.query(AdaptiveInsight)
        .filter(
            AdaptiveInsight.user_id == user_id,
            AdaptiveInsight.insight_type == pattern.insight_type,
            AdaptiveInsight.bucket_key == pattern.bucket_key,
        )
        .first()
    )


def _analyze(db: Session, user_id: int) -> InsightRunResult:
    events = get_usage_events(db, user_id)
    result = InsightRunResult(user_id=user_id, events_analyzed=len(events))

    for pattern in mine_patterns(events):
        existing = _find(db, user_id, pattern)
        if existing is not None:
            if (
                not existing.presented_to_user
                and existing.user_response == InsightResponse.pending
            ):
                _apply(existing, pattern)
                result.merged.append(existing)
            else:
                result.skipped += 1
            continue

        row = AdaptiveInsight(
            user_id=user_id,
            insight_type=pattern.insight_type,
            bucket_key=pattern.bucket_key,
            presented_to_user=False,
            user_response=InsightResponse.pending,
        )
        _apply(row, pattern)
        savepoint = db.begin_nested()
        try:
            db.add(row)
            db.flush()
            savepoint.commit()
            result.created.append(row)
        except IntegrityError:
            # Inserted concurrently by another run
            savepoint.rollback()
            result.skipped += 1

    db.flush()
    return result


def analyze_user(db: Session, user_id: int) -> InsightRunResult:
    """Mine one user's history and upsert insights. Commits once."""
    result = _analyze(db, user_id)
    db.commit()
    for row in result.created + result.merged:
        db.refresh(row)
    logger.info(
        "Insight run for user {}: {} events, {} created, {} merged, {} skipped",
        user_id, result.events_analyzed, len(result.created),
        len(result.merged), result.skipped,
    )
    return result


def analyze_all(db: Session) -> InsightBatchResult:
    """
    Run the miner for every user with usage, one savepoint per user.
    A failure on one user does not cancel the others.
    """
    batch = InsightBatchResult()
    for user_id in get_active_user_ids(db):
        savepoint = db.begin_nested()
        try:
            result = _analyze(db, user_id)
            savepoint.commit()
            batch.users_processed += 1
            batch.insights_created += len(result.created)
            batch.insights_merged += len(result.merged)
        except Exception as exc:
            savepoint.rollback()
            batch.failed_users.append(user_id)
            logger.opt(exception=exc).error("Insight analysis failed for user {}", user_id)
    db.commit()
    logger.info(
        "Insight batch: {} users, {} created, {} merged, {} failed",
        batch.users_processed, batch.insights_created,
        batch.insights_merged, len(batch.failed_users),
    )
    return batch


# ---------------------------------------------------------------------------
# Public: presentation
# ---------------------------------------------------------------------------

def get_presentable(db: Session, user_id: int, limit: Optional[int] = None) -> list[AdaptiveInsight]:
    threshold = Decimal(str(settings.INSIGHT_PRESENT_THRESHOLD))
    return (
        db.query(AdaptiveInsight)
        .filter(
            AdaptiveInsight.user_id == user_id,
            AdaptiveInsight.presented_to_user.is_(False),
            AdaptiveInsight.user_response == InsightResponse.pending,
            AdaptiveInsight.confidence_score >= threshold,
        )
        .order_by(AdaptiveInsight.confidence_score.desc(), AdaptiveInsight.id.asc())
        .limit(limit or settings.INSIGHT_PRESENTATION_LIMIT)
        .all()
    )


def _get_owned(db: Session, insight_id: int, user_id: int) -> AdaptiveInsight:
    row = db.get(AdaptiveInsight, insight_id)
    if row is None or row.user_id != user_id:
        raise InsightNotFoundError(insight_id)
    return row


def present_insight(db: Session, insight_id: int, user_id: int) -> AdaptiveInsight:
    """Idempotent; presented_at is set once."""
    row = _get_owned(db, insight_id, user_id)
    if row.presented_to_user:
        return row
    db.execute(
        update(AdaptiveInsight)
        .where(AdaptiveInsight.id == row.id, AdaptiveInsight.presented_to_user.is_(False))
        .values(presented_to_user=True, presented_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    db.commit()
    db.refresh(row)
    return row


def respond_insight(
    db: Session,
    insight_id: int,
    user_id: int,
    response: str,
) -> AdaptiveInsight:
    row = _get_owned(db, insight_id, user_id)
    if _value(row.user_response) != InsightResponse.pending.value:
        raise InsightAlreadyRespondedError(row.id, _value(row.user_response))

    outcome = db.execute(
        update(AdaptiveInsight)
        .where(
            AdaptiveInsight.id == row.id,
            AdaptiveInsight.user_response == InsightResponse.pending,
        )
        .values(user_response=InsightResponse(_value(response)), responded_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if outcome.rowcount != 1:
        db.rollback()
        db.refresh(row)
        raise InsightAlreadyRespondedError(row.id, _value(row.user_response))
    db.commit()
    db.refresh(row)
    return row
