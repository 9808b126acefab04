"""
ContentInteraction — one student's recorded outcome on a content item.

Feeds success prediction (mean overall_success per subject) and the
mastery tier used by difficulty matching.

Ratios (engagement_score, comprehension_score) are 0..1;
usefulness_rating is 1..5.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional
from sqlalchemy import Integer, Boolean, DateTime, Numeric, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column

from personalization.db.base import Base

_USEFUL_AT_LEAST = 4
_COMPREHENSION_AT_LEAST = Decimal("0.7")


class ContentInteraction(Base):
    __tablename__ = "content_interactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    student_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    content_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("learning_content.id"), nullable=False, index=True
    )
    completion_percentage: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    engagement_score: Mapped[Decimal | None] = mapped_column(Numeric(3, 2), nullable=True)
    comprehension_score: Mapped[Decimal | None] = mapped_column(Numeric(3, 2), nullable=True)
    usefulness_rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    was_helpful: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None or self.completion_percentage >= 100

    @property
    def overall_success(self) -> Optional[float]:
        """Mean of the available {engagement, comprehension, usefulness/5}."""
        parts: list[float] = []
        if self.engagement_score is not None:
            parts.append(float(self.engagement_score))
        if self.comprehension_score is not None:
            parts.append(float(self.comprehension_score))
        if self.usefulness_rating is not None:
            parts.append(self.usefulness_rating / 5.0)
        if not parts:
            return None
        return sum(parts) / len(parts)

    @property
    def is_positive_outcome(self) -> bool:
        return (
            bool(self.was_helpful)
            and (self.usefulness_rating is None or self.usefulness_rating >= _USEFUL_AT_LEAST)
            and (
                self.comprehension_score is None
                or Decimal(self.comprehension_score) >= _COMPREHENSION_AT_LEAST
            )
        )
