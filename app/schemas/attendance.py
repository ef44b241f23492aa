from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from app.core.attendance_state import AttendanceState
from app.schemas.session import SessionOut


class CamelModel(BaseModel):
    class Config:
        populate_by_name = True


class AttendanceRequest(CamelModel):
    course_id: str = Field(alias="courseId")
    level: int


class AttendanceLock(AttendanceRequest):
    reason: Optional[str] = None
    violation_count: int = Field(default=0, alias="violationCount", ge=0)


class AttendanceUnlock(CamelModel):
    attendance_id: int = Field(alias="attendanceId")
    action: str  # "continue" | "submit"


class AttendanceDecision(CamelModel):
    request_id: int = Field(alias="requestId")
    action: str  # "approve" | "reject"


class ManualApprove(CamelModel):
    user_id: int = Field(alias="userId")
    course_id: str = Field(alias="courseId")
    level: int


class BulkApprove(CamelModel):
    emails: List[str]
    course_id: str = Field(alias="courseId")
    level: int


class BulkApproveResult(CamelModel):
    approved: int
    not_found: List[str] = Field(serialization_alias="notFound")


class AttendanceOut(BaseModel):
    id: int
    user_id: int
    test_identifier: str
    session_id: Optional[str] = None
    state: AttendanceState
    status: str
    is_used: bool
    locked: bool
    locked_reason: Optional[str] = None
    violation_count: int
    requested_at: datetime
    approved_at: Optional[datetime] = None
    approved_by: Optional[int] = None

    class Config:
        from_attributes = True


class PendingRequestOut(AttendanceOut):
    full_name: str
    email: str
    roll_no: Optional[str] = None


class AttendanceStatus(BaseModel):
    status: str = "none"
    approvedAt: Optional[datetime] = None
    isUsed: bool = False
    isBlocked: bool = True
    locked: bool = False
    lockedReason: Optional[str] = None
    unlockAction: Optional[str] = None
    violationCount: int = 0
    session: Optional[SessionOut] = None
    levelEndTime: Optional[datetime] = None
    timerSource: Optional[str] = None
