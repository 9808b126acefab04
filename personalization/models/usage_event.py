"""
UsageEvent — one time-stamped tool-usage record. Append-only, never edited.

time_of_day and day_of_week are derived from occurred_at at insert time
(see personalization.services.usage_log.time_of_day_bucket) so the insight
miner can group without recomputing.

day_of_week: 0 = Sunday … 6 = Saturday.
"""
from datetime import datetime
from sqlalchemy import Integer, String, DateTime, Enum, func
from sqlalchemy.orm import Mapped, mapped_column
import enum

from personalization.db.base import Base


class UsageAction(str, enum.Enum):
    start = "start"
    use = "use"
    complete = "complete"
    abandon = "abandon"


class TimeOfDay(str, enum.Enum):
    late_night = "late_night"
    early_morning = "early_morning"
    late_morning = "late_morning"
    early_afternoon = "early_afternoon"
    late_afternoon = "late_afternoon"
    early_evening = "early_evening"
    late_evening = "late_evening"


class UsageEvent(Base):
    __tablename__ = "usage_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    tool_name: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    action: Mapped[str] = mapped_column(
        Enum(UsageAction, name="usage_action_enum"),
        nullable=False,
        default=UsageAction.use,
    )
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    time_of_day: Mapped[str] = mapped_column(
        Enum(TimeOfDay, name="time_of_day_enum"), nullable=False
    )
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)
    energy_level: Mapped[int | None] = mapped_column(Integer, nullable=True)
    success_rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    session_duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    activity_context: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
