# app/db/models/attempt.py
import uuid

from sqlalchemy import JSON, Column, DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.ext.mutable import MutableList

from app.db.base import Base


class Attempt(Base):
    """One student's run through a (course, level), graded as a unit."""

    __tablename__ = "test_sessions"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    course_id = Column(String, nullable=False)
    level = Column(Integer, nullable=False)

    # ordered, append-only, unique
    submission_ids = Column(MutableList.as_mutable(JSON), nullable=False, default=list)

    total_questions = Column(Integer, nullable=False, default=0)
    passed_count = Column(Integer, nullable=False, default=0)
    overall_status = Column(Enum("passed", "failed", name="attempt_status"), nullable=False, default="failed")

    started_at = Column(DateTime, nullable=False)
    completed_at = Column(DateTime, nullable=True)  # set once
    user_feedback = Column(Text, nullable=True)
