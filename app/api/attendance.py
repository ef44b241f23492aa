from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.api.deps import get_clock, get_current_user, get_db, require_admin
from app.core.clock import Clock
from app.crud import attendance as crud_attendance
from app.crud import session as crud_session
from app.crud import user as crud_user
from app.db.models.user import User
from app.schemas.attendance import (
    AttendanceDecision,
    AttendanceLock,
    AttendanceOut,
    AttendanceRequest,
    AttendanceStatus,
    AttendanceUnlock,
    BulkApprove,
    BulkApproveResult,
    ManualApprove,
    PendingRequestOut,
)
from app.schemas.session import RecurringWindowOut, ScheduleUpdate, SessionOut
from app.schemas.user import UserOut

router = APIRouter()


# --- student ---

@router.post("/request", response_model=AttendanceOut)
def request_attendance(
    body: AttendanceRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    clock: Clock = Depends(get_clock),
):
    return crud_attendance.request_attendance(db, current_user.id, body.course_id, body.level, now=clock())


@router.get("/status", response_model=AttendanceStatus)
def get_status(
    course_id: str = Query(..., alias="courseId"),
    level: int = Query(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    clock: Clock = Depends(get_clock),
):
    return crud_attendance.get_status(db, current_user.id, course_id, level, now=clock())


@router.post("/lock", response_model=AttendanceOut)
def lock_attendance(
    body: AttendanceLock,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    clock: Clock = Depends(get_clock),
):
    return crud_attendance.lock_attendance(
        db,
        current_user.id,
        body.course_id,
        body.level,
        reason=body.reason,
        violation_count=body.violation_count,
        now=clock(),
    )


# --- admin ---

@router.post("/unlock", response_model=AttendanceOut)
def unlock_attendance(
    body: AttendanceUnlock,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    return crud_attendance.unlock_attendance(db, body.attendance_id, body.action)


@router.post("/approve", response_model=AttendanceOut)
def approve_request(
    body: AttendanceDecision,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    clock: Clock = Depends(get_clock),
):
    if body.action not in ("approve", "reject"):
        raise HTTPException(status_code=400, detail="action must be 'approve' or 'reject'")
    return crud_attendance.decide_request(
        db, body.request_id, admin.id, accept=body.action == "approve", now=clock()
    )


@router.post("/manual-approve", response_model=AttendanceOut)
def manual_approve(
    body: ManualApprove,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    clock: Clock = Depends(get_clock),
):
    return crud_attendance.manual_approve(db, body.user_id, body.course_id, body.level, admin.id, now=clock())


@router.post("/bulk-approve", response_model=BulkApproveResult)
def bulk_approve(
    body: BulkApprove,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    clock: Clock = Depends(get_clock),
):
    result = crud_attendance.bulk_approve(db, body.emails, body.course_id, body.level, admin.id, now=clock())
    return BulkApproveResult(**result)


@router.get("/requests", response_model=List[PendingRequestOut])
def list_requests(db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    return crud_attendance.list_pending(db)


@router.get("/schedule", response_model=List[RecurringWindowOut])
def get_schedule(db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    return crud_session.list_recurring_windows(db)


@router.post("/schedule", response_model=List[RecurringWindowOut])
def update_schedule(
    body: ScheduleUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    return crud_session.replace_recurring_windows(db, body.schedules)


@router.get("/unblocked-list", response_model=List[UserOut])
def unblocked_list(db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    return crud_user.get_unblocked_students(db)


@router.get("/active-sessions", response_model=List[SessionOut])
def active_sessions(
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    clock: Clock = Depends(get_clock),
):
    return crud_session.get_all_active(db, now=clock())
