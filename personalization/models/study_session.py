from datetime import datetime, date
from sqlalchemy import Integer, Text, Date, DateTime, Enum, func
from sqlalchemy.orm import Mapped, mapped_column
import enum

from personalization.db.base import Base


class ActivityType(str, enum.Enum):
    lesson_completed = "lesson_completed"
    quiz_taken = "quiz_taken"
    assessment_completed = "assessment_completed"
    content_discovery = "content_discovery"
    practice_session = "practice_session"
    reading_session = "reading_session"
    video_watched = "video_watched"
    interaction_completed = "interaction_completed"


class StudySession(Base):
    __tablename__ = "study_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    activity_type: Mapped[str] = mapped_column(
        Enum(ActivityType, name="activity_type_enum"), nullable=False
    )
    duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    study_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    accessibility_tools_used: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="JSON-encoded list of tool names",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    @property
    def score_percentage(self) -> int | None:
        if self.score is None or not self.max_score:
            return None
        return round(self.score * 100 / self.max_score)
