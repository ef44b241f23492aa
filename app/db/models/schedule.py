# app/db/models/schedule.py
from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Integer, String, Time
from sqlalchemy.sql import func

from app.db.base import Base

MANUAL_END_REASONS = ("NORMAL", "FORCED", "TIMEOUT")


class RecurringWindow(Base):
    """Daily access window, evaluated against today's date in the exam timezone."""

    __tablename__ = "daily_schedules"

    id = Column(Integer, primary_key=True, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    @property
    def session_id(self) -> str:
        return f"daily_{self.id}"


class ManualSession(Base):
    """Admin-started window for one (course, level)."""

    __tablename__ = "global_test_sessions"

    id = Column(Integer, primary_key=True, index=True)
    course_id = Column(String, nullable=False, index=True)
    level = Column(Integer, nullable=False)
    start_time = Column(DateTime, nullable=False)  # naive UTC
    duration_minutes = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    ended_reason = Column(Enum(*MANUAL_END_REASONS, name="session_end_reason"), nullable=True)
    forced_end = Column(Boolean, nullable=False, default=False)

    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
