"""
UserProfile — a learner's trait vector and categorical preferences.

Created with defaults on first access, edited explicitly (each edit bumps
`version`), never deleted. The scoring engine reads it; it never writes it.

Trait dimensions are 0–10 integers, default 5.
"""
from datetime import datetime
from sqlalchemy import Integer, DateTime, Enum, func
from sqlalchemy.orm import Mapped, mapped_column
import enum

from personalization.db.base import Base


class ReadingLevel(str, enum.Enum):
    beginner = "beginner"
    intermediate = "intermediate"
    advanced = "advanced"
    expert = "expert"


class LearningStyle(str, enum.Enum):
    visual = "visual"
    auditory = "auditory"
    kinesthetic = "kinesthetic"
    reading = "reading"
    mixed = "mixed"


class LearningEnvironment(str, enum.Enum):
    quiet = "quiet"
    ambient = "ambient"
    music = "music"
    collaborative = "collaborative"


class NaturalRhythm(str, enum.Enum):
    morning = "morning"
    afternoon = "afternoon"
    evening = "evening"
    night = "night"


TRAIT_FIELDS = (
    "hyperfocus_intensity",
    "attention_flexibility",
    "sensory_processing",
    "executive_function",
    "social_battery",
    "change_adaptability",
    "emotional_regulation",
    "information_processing",
    "creativity_expression",
    "structure_preference",
)

# Derived-need thresholds
READING_NEEDS_BELOW = 4
EXECUTIVE_SUPPORT_BELOW = 5
HIGH_SENSORY_ABOVE = 7


class UserProfile(Base):
    __tablename__ = "user_profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, unique=True, index=True)

    hyperfocus_intensity: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    attention_flexibility: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    sensory_processing: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    executive_function: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    social_battery: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    change_adaptability: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    emotional_regulation: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    information_processing: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    creativity_expression: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    structure_preference: Mapped[int] = mapped_column(Integer, nullable=False, default=5)

    optimal_session_length: Mapped[int] = mapped_column(Integer, nullable=False, default=25)
    learning_environment: Mapped[str] = mapped_column(
        Enum(LearningEnvironment, name="learning_environment_enum"),
        nullable=False,
        default=LearningEnvironment.quiet,
    )
    reading_level: Mapped[str] = mapped_column(
        Enum(ReadingLevel, name="reading_level_enum"),
        nullable=False,
        default=ReadingLevel.intermediate,
    )
    primary_learning_style: Mapped[str] = mapped_column(
        Enum(LearningStyle, name="learning_style_enum"),
        nullable=False,
        default=LearningStyle.mixed,
    )
    natural_rhythm: Mapped[str] = mapped_column(
        Enum(NaturalRhythm, name="natural_rhythm_enum"),
        nullable=False,
        default=NaturalRhythm.morning,
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    @property
    def has_significant_reading_needs(self) -> bool:
        return self.information_processing < READING_NEEDS_BELOW

    @property
    def needs_executive_support(self) -> bool:
        return self.executive_function < EXECUTIVE_SUPPORT_BELOW

    @property
    def has_high_sensory_processing(self) -> bool:
        return self.sensory_processing > HIGH_SENSORY_ABOVE
