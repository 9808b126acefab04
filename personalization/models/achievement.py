"""
Achievement definitions and per-user unlocks.

Achievement      — catalogue row: unlocks when metrics[requirement_type] >= requirement_value.
UserAchievement  — one row per (user_id, achievement_id); the unique constraint
                   guarantees an achievement is recorded at most once per user.
"""
from datetime import datetime
from sqlalchemy import (
    Integer, String, Text, Boolean, DateTime, Enum, ForeignKey, UniqueConstraint, func,
)
from sqlalchemy.orm import Mapped, mapped_column
import enum

from personalization.db.base import Base


class RequirementType(str, enum.Enum):
    lessons_completed = "lessons_completed"
    days_streak = "days_streak"
    quiz_score = "quiz_score"
    quizzes_completed = "quizzes_completed"
    total_study_time = "total_study_time"
    tools_used_count = "tools_used_count"


class AchievementCategory(str, enum.Enum):
    learning = "learning"
    streak = "streak"
    quiz = "quiz"
    time = "time"
    accessibility = "accessibility"


class Rarity(str, enum.Enum):
    common = "common"
    rare = "rare"
    epic = "epic"
    legendary = "legendary"


class Achievement(Base):
    __tablename__ = "achievements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    icon: Mapped[str | None] = mapped_column(String(16), nullable=True)
    category: Mapped[str] = mapped_column(
        Enum(AchievementCategory, name="achievement_category_enum"), nullable=False
    )
    points_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    requirement_type: Mapped[str] = mapped_column(
        Enum(RequirementType, name="requirement_type_enum"), nullable=False, index=True
    )
    requirement_value: Mapped[int] = mapped_column(Integer, nullable=False)
    rarity: Mapped[str] = mapped_column(
        Enum(Rarity, name="rarity_enum"), nullable=False, default=Rarity.common
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_hidden: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class UserAchievement(Base):
    __tablename__ = "user_achievements"
    __table_args__ = (
        UniqueConstraint("user_id", "achievement_id", name="uq_user_achievement"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    achievement_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("achievements.id"), nullable=False
    )
    progress_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_new: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    earned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
