"""
AdaptiveInsight — a confidence-scored behavioral pattern mined from usage.

One row per (user_id, insight_type, bucket_key); the unique constraint makes
re-running the miner idempotent. Once presented, only user_response and
responded_at change.

insight_data: JSON-encoded dict (bucket stats, overall stats, z-score).
"""
from datetime import datetime
from decimal import Decimal
from sqlalchemy import (
    Integer, String, Text, Boolean, DateTime, Enum, Numeric, UniqueConstraint, func,
)
from sqlalchemy.orm import Mapped, mapped_column
import enum

from personalization.db.base import Base
from personalization.models.recommendation import PriorityLevel


class InsightType(str, enum.Enum):
    time_of_day_energy = "time_of_day_energy"
    time_of_day_success = "time_of_day_success"
    day_of_week_energy = "day_of_week_energy"
    day_of_week_success = "day_of_week_success"
    tool_energy = "tool_energy"
    tool_success = "tool_success"
    activity_context_energy = "activity_context_energy"
    activity_context_success = "activity_context_success"
    time_of_day_rating = "time_of_day_rating"
    day_of_week_rating = "day_of_week_rating"
    tool_rating = "tool_rating"
    activity_context_rating = "activity_context_rating"


class InsightResponse(str, enum.Enum):
    pending = "pending"
    accepted = "accepted"
    rejected = "rejected"


class AdaptiveInsight(Base):
    __tablename__ = "adaptive_insights"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "insight_type", "bucket_key", name="uq_adaptive_insight_key"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    insight_type: Mapped[str] = mapped_column(
        Enum(InsightType, name="insight_type_enum"), nullable=False
    )
    bucket_key: Mapped[str] = mapped_column(String(128), nullable=False)
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    insight_data: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="JSON-encoded dict",
    )
    confidence_score: Mapped[Decimal] = mapped_column(Numeric(5, 4), nullable=False)
    priority_level: Mapped[str] = mapped_column(
        Enum(PriorityLevel, name="priority_level_enum"),
        nullable=False,
        default=PriorityLevel.low,
    )
    sample_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    presented_to_user: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    presented_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    user_response: Mapped[str] = mapped_column(
        Enum(InsightResponse, name="insight_response_enum"),
        nullable=False,
        default=InsightResponse.pending,
    )
    responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
