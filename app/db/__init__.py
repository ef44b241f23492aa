# app/db/__init__.py
# Importing app.db registers every model on Base.metadata

from app.db.base import Base
from app.db.models import (
    User,
    Course,
    RecurringWindow,
    ManualSession,
    AttendanceRecord,
    Attempt,
    Submission,
)

__all__ = [
    "Base",
    "User",
    "Course",
    "RecurringWindow",
    "ManualSession",
    "AttendanceRecord",
    "Attempt",
    "Submission",
]
