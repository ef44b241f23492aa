# app/crud/attendance.py
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional
from zoneinfo import ZoneInfo

from sqlalchemy import case
from sqlalchemy.orm import Session

from app.core.attendance_state import AttendanceEvent, AttendanceState, next_state
from app.core.clock import utcnow
from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.core.timewindow import compute_level_end_time, resolve_time_limit
from app.crud.session import find_active, parse_daily_id
from app.crud.user import get_user_by_id, get_users_by_emails
from app.db.models.attendance import AttendanceRecord, make_test_identifier
from app.db.models.course import Course
from app.db.models.user import User
from app.schemas.attendance import AttendanceStatus

logger = logging.getLogger(__name__)

UNLOCK_ACTIONS = {
    "continue": AttendanceEvent.CONTINUE,
    "submit": AttendanceEvent.SUBMIT,
}
DEFAULT_LOCK_REASON = "Max violations reached"


def _require_test(course_id, level):
    if not course_id or level is None:
        raise ValidationError("Missing courseId or level")


def get_record(db: Session, attendance_id: int) -> Optional[AttendanceRecord]:
    return db.query(AttendanceRecord).filter(AttendanceRecord.id == attendance_id).first()


def get_latest_record(db: Session, user_id: int, test_identifier: str = None) -> Optional[AttendanceRecord]:
    q = db.query(AttendanceRecord).filter(AttendanceRecord.user_id == user_id)
    if test_identifier is not None:
        q = q.filter(AttendanceRecord.test_identifier == test_identifier)
    return q.order_by(AttendanceRecord.requested_at.desc(), AttendanceRecord.id.desc()).first()


def _record_for_session(db: Session, user_id: int, session_id: str) -> Optional[AttendanceRecord]:
    return (
        db.query(AttendanceRecord)
        .filter(AttendanceRecord.user_id == user_id, AttendanceRecord.session_id == session_id)
        .first()
    )


def _bypass_record(db: Session, user_id: int, test_identifier: str) -> Optional[AttendanceRecord]:
    return (
        db.query(AttendanceRecord)
        .filter(
            AttendanceRecord.user_id == user_id,
            AttendanceRecord.test_identifier == test_identifier,
            AttendanceRecord.session_id.is_(None),
        )
        .order_by(AttendanceRecord.requested_at.desc(), AttendanceRecord.id.desc())
        .first()
    )


def _from_previous_day(record: AttendanceRecord, window_start: datetime) -> bool:
    # "daily_<id>" tags repeat every day; a grant from an earlier occurrence is spent
    return parse_daily_id(record.session_id) is not None and record.requested_at < window_start


def request_attendance(
    db: Session,
    user_id: int,
    course_id: str,
    level: int,
    now: Optional[datetime] = None,
    tz: Optional[ZoneInfo] = None,
) -> AttendanceRecord:
    _require_test(course_id, level)
    if not get_user_by_id(db, user_id):
        raise NotFoundError(f"User profile [{user_id}] not found")

    now = now or utcnow()
    test_identifier = make_test_identifier(course_id, level)
    active = find_active(db, course_id, level, now=now, tz=tz)
    session_id = active.id if active else None

    if session_id:
        existing = _record_for_session(db, user_id, session_id)
    else:
        existing = _bypass_record(db, user_id, test_identifier)

    if existing:
        if existing.state != AttendanceState.USED and not (active and _from_previous_day(existing, active.start_time)):
            return existing

        # re-entry after the previous grant was consumed
        if existing.state != AttendanceState.USED:
            existing.state = next_state(existing.state, AttendanceEvent.EXPIRE)
        existing.state = next_state(existing.state, AttendanceEvent.REQUEST)
        existing.test_identifier = test_identifier
        existing.requested_at = now
        existing.approved_at = None
        existing.approved_by = None
        existing.locked_reason = None
        existing.locked_at = None
        existing.violation_count = 0
        db.commit()
        db.refresh(existing)
        logger.info(f"[Attendance] User {user_id} re-requested {test_identifier} (session {session_id})")
        return existing

    record = AttendanceRecord(
        user_id=user_id,
        test_identifier=test_identifier,
        session_id=session_id,
        state=next_state(None, AttendanceEvent.REQUEST),
        requested_at=now,
        violation_count=0,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    if session_id is None:
        logger.info(f"[Attendance] User {user_id} requested {test_identifier} with no live session (bypass)")
    return record


def _unlock_action(record: AttendanceRecord) -> Optional[str]:
    if record.locked or not record.locked_reason:
        return None
    if record.locked_reason == "Admin:submit":
        return "submit"
    if record.locked_reason == "Admin:continue":
        return "continue"
    return None


def get_status(
    db: Session,
    user_id: int,
    course_id: str,
    level: int,
    now: Optional[datetime] = None,
    tz: Optional[ZoneInfo] = None,
) -> AttendanceStatus:
    _require_test(course_id, level)
    now = now or utcnow()

    active = find_active(db, course_id, level, now=now, tz=tz)
    user = get_user_by_id(db, user_id)
    record = get_latest_record(db, user_id, make_test_identifier(course_id, level))

    response = AttendanceStatus(
        isBlocked=bool(user.is_blocked) if user else True,
        session=active,
    )

    if active:
        course = db.query(Course).filter(Course.id == course_id).first()
        time_limit = resolve_time_limit(course, level)
        response.levelEndTime, response.timerSource = compute_level_end_time(
            active.start_time, active.end_time, time_limit
        )

    # A record bound to another window, to none while one is live, or to an
    # earlier day of the same daily window says nothing about access to the
    # current one
    active_id = active.id if active else None
    if record is None or record.session_id != active_id or (active and _from_previous_day(record, active.start_time)):
        return response

    response.status = record.status
    response.approvedAt = record.approved_at
    response.isUsed = record.is_used
    response.locked = record.locked
    response.lockedReason = record.locked_reason
    response.unlockAction = _unlock_action(record)
    response.violationCount = record.violation_count or 0
    return response


def decide_request(
    db: Session,
    request_id: int,
    admin_id: int,
    accept: bool,
    now: Optional[datetime] = None,
) -> AttendanceRecord:
    record = get_record(db, request_id)
    if not record:
        raise NotFoundError("Attendance request not found")

    event = AttendanceEvent.APPROVE if accept else AttendanceEvent.REJECT
    record.state = next_state(record.state, event)
    record.approved_at = (now or utcnow()) if accept else None
    record.approved_by = admin_id
    db.commit()
    db.refresh(record)
    return record


def manual_approve(
    db: Session,
    user_id: int,
    course_id: str,
    level: int,
    admin_id: int,
    now: Optional[datetime] = None,
    tz: Optional[ZoneInfo] = None,
    commit: bool = True,
) -> AttendanceRecord:
    """Authorize a student ahead of their request; works with no live session too."""
    _require_test(course_id, level)
    if not user_id:
        raise ValidationError("Missing userId")
    if not get_user_by_id(db, user_id):
        raise NotFoundError(f"User {user_id} not found")

    now = now or utcnow()
    test_identifier = make_test_identifier(course_id, level)
    active = find_active(db, course_id, level, now=now, tz=tz)
    session_id = active.id if active else None

    record = _record_for_session(db, user_id, session_id) if session_id else None
    if record is None:
        record = get_latest_record(db, user_id, test_identifier)

    if record is None:
        record = AttendanceRecord(
            user_id=user_id,
            test_identifier=test_identifier,
            state=next_state(None, AttendanceEvent.MANUAL_APPROVE),
            requested_at=now,
            violation_count=0,
        )
        db.add(record)
    else:
        record.state = next_state(record.state, AttendanceEvent.MANUAL_APPROVE)
        if record.session_id != session_id or (active and _from_previous_day(record, active.start_time)):
            # rebound to the current window, so it counts as today's grant
            record.requested_at = now
            record.locked_reason = None
            record.violation_count = 0

    record.session_id = session_id
    record.approved_at = now
    record.approved_by = admin_id

    if commit:
        db.commit()
        db.refresh(record)
    else:
        db.flush()

    if session_id is None:
        logger.info(f"[Attendance] No active session for {test_identifier}. User {user_id} authorized in bypass mode.")
    return record


def bulk_approve(
    db: Session,
    emails: Iterable[str],
    course_id: str,
    level: int,
    admin_id: int,
    now: Optional[datetime] = None,
    tz: Optional[ZoneInfo] = None,
) -> Dict[str, object]:
    _require_test(course_id, level)
    emails = [e.strip() for e in emails if e and e.strip()]
    users = get_users_by_emails(db, emails)
    known = {u.email for u in users}

    approved = 0
    for user in users:
        try:
            manual_approve(db, user.id, course_id, level, admin_id, now=now, tz=tz, commit=False)
            approved += 1
        except ConflictError as e:
            logger.warning(f"[Attendance] Bulk approve skipped user {user.id}: {e.detail}")
    db.commit()

    return {"approved": approved, "not_found": [e for e in emails if e not in known]}


def lock_attendance(
    db: Session,
    user_id: int,
    course_id: str,
    level: int,
    reason: Optional[str] = None,
    violation_count: int = 0,
    now: Optional[datetime] = None,
) -> AttendanceRecord:
    _require_test(course_id, level)
    now = now or utcnow()
    test_identifier = make_test_identifier(course_id, level)

    record = get_latest_record(db, user_id, test_identifier)
    if record is None:
        # unblocked student without any grant (bypass)
        record = AttendanceRecord(
            user_id=user_id,
            test_identifier=test_identifier,
            session_id=None,
            state=next_state(None, AttendanceEvent.LOCK),
            requested_at=now,
            approved_at=now,
            locked_reason=reason or f"{DEFAULT_LOCK_REASON} (Bypass)",
        )
        db.add(record)
        logger.info(f"[Lock] Created locked bypass record for user {user_id}")
    else:
        record.state = next_state(record.state, AttendanceEvent.LOCK)
        record.locked_reason = reason or DEFAULT_LOCK_REASON

    record.violation_count = violation_count or 0
    record.locked_at = now
    db.commit()
    db.refresh(record)
    logger.info(f"[Lock] User {user_id} locked on {test_identifier}: {record.locked_reason}")
    return record


def unlock_attendance(db: Session, attendance_id: int, action: str) -> AttendanceRecord:
    if not attendance_id:
        raise ValidationError("attendanceId is required")
    event = UNLOCK_ACTIONS.get(action)
    if event is None:
        raise ValidationError("action must be 'continue' or 'submit'")

    record = get_record(db, attendance_id)
    if not record:
        raise NotFoundError("Attendance record not found")

    record.state = next_state(record.state, event)
    if event == AttendanceEvent.CONTINUE:
        record.violation_count = 0
        record.locked_at = None
        record.locked_reason = "Admin:continue"
    else:
        record.locked_reason = "Admin:submit"
    db.commit()
    db.refresh(record)
    return record


def mark_used(
    db: Session,
    record: AttendanceRecord,
    event: AttendanceEvent = AttendanceEvent.COMPLETE,
    commit: bool = True,
) -> AttendanceRecord:
    record.state = next_state(record.state, event)
    if commit:
        db.commit()
        db.refresh(record)
    return record


def consume_after_completion(db: Session, user_id: int, course_id: str, level: int) -> Optional[AttendanceRecord]:
    """Approved grant for this test becomes used once the attempt is finalized."""
    record = get_latest_record(db, user_id, make_test_identifier(course_id, level))
    if record is None or record.state != AttendanceState.APPROVED:
        return record
    return mark_used(db, record, AttendanceEvent.COMPLETE)


def list_pending(db: Session) -> List[dict]:
    rows = (
        db.query(AttendanceRecord, User)
        .join(User, AttendanceRecord.user_id == User.id)
        .filter(AttendanceRecord.state.in_([AttendanceState.REQUESTED, AttendanceState.LOCKED]))
        .order_by(
            case((AttendanceRecord.state == AttendanceState.LOCKED, 0), else_=1),
            AttendanceRecord.requested_at.asc(),
        )
        .all()
    )
    return [
        {
            "id": record.id,
            "user_id": record.user_id,
            "test_identifier": record.test_identifier,
            "session_id": record.session_id,
            "state": record.state,
            "status": record.status,
            "is_used": record.is_used,
            "locked": record.locked,
            "locked_reason": record.locked_reason,
            "violation_count": record.violation_count or 0,
            "requested_at": record.requested_at,
            "approved_at": record.approved_at,
            "approved_by": record.approved_by,
            "full_name": user.full_name,
            "email": user.email,
            "roll_no": user.roll_no,
        }
        for record, user in rows
    ]
