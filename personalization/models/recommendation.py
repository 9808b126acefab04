"""
Recommendation — one scored suggestion of a content item to a student.

Lifecycle per (student_id, content_id):
  none → active(presented=False) → active(presented=True) → responded | expired

At most one is_active row per pair. The partial unique index
`uq_recommendation_active_pair` enforces it on both Postgres and SQLite, so a
concurrent generator that loses the race gets an IntegrityError.

Rows are never deleted; superseded ones point at their replacement via
superseded_by_id.
"""
from datetime import datetime
from decimal import Decimal
from sqlalchemy import (
    Integer, String, Text, Boolean, DateTime, Enum, Numeric, ForeignKey, Index, func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column
import enum

from personalization.db.base import Base


class RecommendationState(str, enum.Enum):
    active = "active"
    responded = "responded"
    expired = "expired"


class PriorityLevel(str, enum.Enum):
    low = "low"
    medium = "medium"
    high = "high"


class StudentResponse(str, enum.Enum):
    viewed = "viewed"
    bookmarked = "bookmarked"
    started = "started"
    completed = "completed"
    ignored = "ignored"


class Recommendation(Base):
    __tablename__ = "recommendations"
    __table_args__ = (
        Index(
            "uq_recommendation_active_pair",
            "student_id",
            "content_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    student_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    content_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("learning_content.id"), nullable=False, index=True
    )

    confidence_score: Mapped[Decimal] = mapped_column(Numeric(5, 4), nullable=False)
    relevance_score: Mapped[Decimal] = mapped_column(Numeric(5, 4), nullable=False)
    accessibility_match: Mapped[Decimal] = mapped_column(Numeric(5, 4), nullable=False)
    learning_style_match: Mapped[Decimal] = mapped_column(Numeric(5, 4), nullable=False)
    difficulty_match: Mapped[Decimal] = mapped_column(Numeric(5, 4), nullable=False)
    success_prediction: Mapped[Decimal] = mapped_column(Numeric(5, 4), nullable=False)
    overall_score: Mapped[Decimal] = mapped_column(Numeric(5, 4), nullable=False, index=True)

    state: Mapped[str] = mapped_column(
        Enum(RecommendationState, name="recommendation_state_enum"),
        nullable=False,
        default=RecommendationState.active,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    priority_level: Mapped[str] = mapped_column(
        Enum(PriorityLevel, name="priority_level_enum"),
        nullable=False,
        default=PriorityLevel.medium,
    )
    reasoning: Mapped[str | None] = mapped_column(Text, nullable=True)
    matching_factors: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="JSON-encoded list of strings",
    )
    algorithm_version: Mapped[str] = mapped_column(String(32), nullable=False)

    generated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    presented: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    presented_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    student_response: Mapped[str | None] = mapped_column(
        Enum(StudentResponse, name="student_response_enum"), nullable=True
    )
    responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    feedback_rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    was_helpful: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    expired_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    superseded_by_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("recommendations.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
