"""
LearningContent — a recommendable item owned by the content catalog.

The engine only reads it, except for the atomic `view_count` increment.

learning_styles: comma-separated subset of visual|auditory|kinesthetic|reading.
Accessibility flags are nullable: None means "not classified".
"""
from datetime import datetime
from decimal import Decimal
from sqlalchemy import Integer, String, Text, Boolean, DateTime, Enum, Numeric, func
from sqlalchemy.orm import Mapped, mapped_column
import enum

from personalization.db.base import Base


class DifficultyLevel(str, enum.Enum):
    beginner = "beginner"
    intermediate = "intermediate"
    advanced = "advanced"
    expert = "expert"


class ContentStatus(str, enum.Enum):
    draft = "draft"
    published = "published"
    under_review = "under_review"
    rejected = "rejected"


class LearningContent(Base):
    __tablename__ = "learning_content"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    subject_area: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    difficulty_level: Mapped[str | None] = mapped_column(
        Enum(DifficultyLevel, name="difficulty_level_enum"), nullable=True
    )

    dyslexia_friendly: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    adhd_friendly: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    autism_friendly: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    learning_styles: Mapped[str | None] = mapped_column(String(128), nullable=True)
    estimated_duration: Mapped[int | None] = mapped_column(Integer, nullable=True)

    success_rate: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, default=Decimal("0"),
        comment="0-100, aggregate completion success",
    )
    rating_average: Mapped[Decimal] = mapped_column(
        Numeric(3, 2), nullable=False, default=Decimal("0")
    )
    rating_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    view_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    status: Mapped[str] = mapped_column(
        Enum(ContentStatus, name="content_status_enum"),
        nullable=False,
        default=ContentStatus.draft,
    )
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    @property
    def style_list(self) -> list[str]:
        if not self.learning_styles:
            return []
        return [s.strip().lower() for s in self.learning_styles.split(",") if s.strip()]

    @property
    def has_accessibility_metadata(self) -> bool:
        return any(
            flag is not None
            for flag in (self.dyslexia_friendly, self.adhd_friendly, self.autism_friendly)
        )
