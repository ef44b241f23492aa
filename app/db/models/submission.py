from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.sql import func

from app.db.base import Base


class Submission(Base):
    """Per-question result written by the grading engine. Read-only here."""

    __tablename__ = "submissions"

    id = Column(String, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    challenge_id = Column(String, nullable=True)
    status = Column(String, nullable=True)  # "passed" / "failed" / "pending"
    passed = Column(Boolean, nullable=True)
    submitted_at = Column(DateTime, server_default=func.now())
