from app.db.base import Base
from app.db.models.user import User
from app.db.models.course import Course
from app.db.models.schedule import RecurringWindow, ManualSession
from app.db.models.attendance import AttendanceRecord
from app.db.models.attempt import Attempt
from app.db.models.submission import Submission

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
