from datetime import datetime, time
from typing import List, Optional

from pydantic import BaseModel, Field


class SessionOut(BaseModel):
    """Manual session or today's occurrence of a recurring window."""

    id: str
    type: str  # "manual" | "recurring"
    title: Optional[str] = None
    course_id: Optional[str] = None
    level: Optional[int] = None
    start_time: datetime
    end_time: datetime
    duration_minutes: float
    server_time: datetime
    is_active: bool
    is_expired: bool = False
    is_recurring: bool = False
    status: Optional[str] = None  # upcoming / live / ended
    ended_reason: Optional[str] = None
    forced_end: Optional[bool] = None
    created_by: Optional[int] = None


class SessionStart(BaseModel):
    course_id: str = Field(alias="courseId")
    level: int
    duration_minutes: int = Field(alias="durationMinutes", gt=0)

    class Config:
        populate_by_name = True


class SessionEnd(BaseModel):
    reason: str = "NORMAL"


class SessionValidity(BaseModel):
    session_id: str
    user_id: int
    valid: bool


class RecurringWindowIn(BaseModel):
    start_time: time
    end_time: time
    is_active: bool = True


class RecurringWindowOut(RecurringWindowIn):
    id: int

    class Config:
        from_attributes = True


class ScheduleUpdate(BaseModel):
    schedules: List[RecurringWindowIn]
