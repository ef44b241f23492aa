from datetime import time, timedelta

import pytest

from app.core.attendance_state import (
    AttendanceEvent,
    AttendanceState,
    TRANSITIONS,
    next_state,
)
from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.crud import attendance as crud_attendance
from app.crud import session as crud_session
from app.db.models.attendance import AttendanceRecord
from conftest import COURSE_ID, LEVEL

TEST_ID = f"{COURSE_ID}_{LEVEL}"


@pytest.fixture
def live_session(db, admin, clock):
    return crud_session.start_session(db, COURSE_ID, LEVEL, 60, admin.id, now=clock())


# --- transition table ---

def test_every_state_can_expire_to_used():
    for state in AttendanceState:
        assert next_state(state, AttendanceEvent.EXPIRE) == AttendanceState.USED


@pytest.mark.parametrize(
    "state, event",
    [
        (AttendanceState.REQUESTED, AttendanceEvent.LOCK),
        (AttendanceState.REJECTED, AttendanceEvent.LOCK),
        (AttendanceState.USED, AttendanceEvent.LOCK),
        (AttendanceState.LOCKED, AttendanceEvent.MANUAL_APPROVE),
        (AttendanceState.APPROVED, AttendanceEvent.CONTINUE),
        (AttendanceState.REQUESTED, AttendanceEvent.COMPLETE),
        (None, AttendanceEvent.APPROVE),
    ],
)
def test_invalid_transitions_conflict(state, event):
    with pytest.raises(ConflictError):
        next_state(state, event)


def test_unlock_paths_only_leave_locked():
    sources = {state for (state, event) in TRANSITIONS if event in (AttendanceEvent.CONTINUE, AttendanceEvent.SUBMIT)}
    assert sources == {AttendanceState.LOCKED}


# --- request ---

def test_request_is_idempotent_within_a_session(db, student, live_session, clock):
    first = crud_attendance.request_attendance(db, student.id, COURSE_ID, LEVEL, now=clock())
    clock.advance(minutes=1)
    again = crud_attendance.request_attendance(db, student.id, COURSE_ID, LEVEL, now=clock())

    assert again.id == first.id
    assert again.state == AttendanceState.REQUESTED
    assert again.session_id == str(live_session.id)
    assert db.query(AttendanceRecord).count() == 1


def test_request_keeps_existing_decision(db, admin, student, live_session, clock):
    record = crud_attendance.request_attendance(db, student.id, COURSE_ID, LEVEL, now=clock())
    crud_attendance.decide_request(db, record.id, admin.id, accept=False, now=clock())

    again = crud_attendance.request_attendance(db, student.id, COURSE_ID, LEVEL, now=clock())
    assert again.state == AttendanceState.REJECTED


def test_request_after_use_reopens_the_record(db, admin, student, live_session, clock):
    record = crud_attendance.manual_approve(db, student.id, COURSE_ID, LEVEL, admin.id, now=clock())
    crud_attendance.mark_used(db, record)

    clock.advance(minutes=2)
    again = crud_attendance.request_attendance(db, student.id, COURSE_ID, LEVEL, now=clock())
    assert again.id == record.id
    assert again.state == AttendanceState.REQUESTED
    assert again.approved_at is None
    assert again.requested_at == clock()


def test_request_without_live_session_is_bypass(db, student, clock):
    record = crud_attendance.request_attendance(db, student.id, COURSE_ID, LEVEL, now=clock())
    assert record.session_id is None
    assert record.test_identifier == TEST_ID

    again = crud_attendance.request_attendance(db, student.id, COURSE_ID, LEVEL, now=clock())
    assert again.id == record.id


def test_request_on_a_later_day_of_a_daily_window_starts_over(db, admin, student, clock, tz, make_window):
    window = make_window(time(11, 0), time(12, 0))
    record = crud_attendance.manual_approve(db, student.id, COURSE_ID, LEVEL, admin.id, now=clock(), tz=tz)
    assert record.session_id == window.session_id

    clock.advance(days=1)
    again = crud_attendance.request_attendance(db, student.id, COURSE_ID, LEVEL, now=clock(), tz=tz)
    assert again.id == record.id
    assert again.state == AttendanceState.REQUESTED
    assert again.approved_at is None


def test_request_validation(db, student, clock):
    with pytest.raises(ValidationError):
        crud_attendance.request_attendance(db, student.id, "", LEVEL, now=clock())
    with pytest.raises(NotFoundError):
        crud_attendance.request_attendance(db, 4242, COURSE_ID, LEVEL, now=clock())
    assert db.query(AttendanceRecord).count() == 0


# --- status ---

def test_status_without_record(db, student, clock):
    status = crud_attendance.get_status(db, student.id, COURSE_ID, LEVEL, now=clock())
    assert status.status == "none"
    assert status.session is None
    assert status.isBlocked is True


def test_status_reports_level_timer(db, student, course, live_session, clock):
    status = crud_attendance.get_status(db, student.id, COURSE_ID, LEVEL, now=clock())
    assert status.session.id == str(live_session.id)
    assert status.levelEndTime == clock() + timedelta(minutes=45)
    assert status.timerSource == "level_limit"


def test_status_is_none_once_a_new_session_takes_over(db, admin, student, live_session, clock):
    crud_attendance.manual_approve(db, student.id, COURSE_ID, LEVEL, admin.id, now=clock())
    assert crud_attendance.get_status(db, student.id, COURSE_ID, LEVEL, now=clock()).status == "approved"

    clock.advance(minutes=5)
    crud_session.start_session(db, COURSE_ID, LEVEL, 60, admin.id, now=clock())

    status = crud_attendance.get_status(db, student.id, COURSE_ID, LEVEL, now=clock())
    assert status.status == "none"
    assert status.approvedAt is None
    assert status.isUsed is False


def test_bypass_record_is_stale_while_a_session_is_live(db, admin, student, clock):
    crud_attendance.request_attendance(db, student.id, COURSE_ID, LEVEL, now=clock())
    crud_session.start_session(db, COURSE_ID, LEVEL, 60, admin.id, now=clock())
    assert crud_attendance.get_status(db, student.id, COURSE_ID, LEVEL, now=clock()).status == "none"


def test_status_is_none_for_a_daily_grant_from_yesterday(db, admin, student, clock, tz, make_window):
    make_window(time(11, 0), time(12, 0))
    crud_attendance.manual_approve(db, student.id, COURSE_ID, LEVEL, admin.id, now=clock(), tz=tz)
    assert crud_attendance.get_status(db, student.id, COURSE_ID, LEVEL, now=clock(), tz=tz).status == "approved"

    # same window, same local time, next day
    clock.advance(days=1)
    status = crud_attendance.get_status(db, student.id, COURSE_ID, LEVEL, now=clock(), tz=tz)
    assert status.status == "none"
    assert status.approvedAt is None
    assert status.session is not None


# --- admin decisions ---

def test_approve_and_reject(db, admin, make_user, live_session, clock):
    s1, s2 = make_user(), make_user()
    r1 = crud_attendance.request_attendance(db, s1.id, COURSE_ID, LEVEL, now=clock())
    r2 = crud_attendance.request_attendance(db, s2.id, COURSE_ID, LEVEL, now=clock())

    approved = crud_attendance.decide_request(db, r1.id, admin.id, accept=True, now=clock())
    rejected = crud_attendance.decide_request(db, r2.id, admin.id, accept=False, now=clock())

    assert approved.status == "approved"
    assert approved.approved_at == clock()
    assert approved.approved_by == admin.id
    assert rejected.status == "rejected"
    assert rejected.approved_by == admin.id

    with pytest.raises(NotFoundError):
        crud_attendance.decide_request(db, 999, admin.id, accept=True, now=clock())


def test_manual_approve_without_session_is_proactive(db, admin, student, clock):
    record = crud_attendance.manual_approve(db, student.id, COURSE_ID, LEVEL, admin.id, now=clock())
    assert record.state == AttendanceState.APPROVED
    assert record.session_id is None
    assert record.is_used is False


def test_manual_approve_upserts_and_rebinds(db, admin, student, clock):
    pending = crud_attendance.request_attendance(db, student.id, COURSE_ID, LEVEL, now=clock())
    session = crud_session.start_session(db, COURSE_ID, LEVEL, 60, admin.id, now=clock())

    record = crud_attendance.manual_approve(db, student.id, COURSE_ID, LEVEL, admin.id, now=clock())
    assert record.id == pending.id
    assert record.session_id == str(session.id)
    assert record.state == AttendanceState.APPROVED
    assert db.query(AttendanceRecord).count() == 1


def test_manual_approve_requires_unlock_first(db, admin, student, live_session, clock):
    crud_attendance.manual_approve(db, student.id, COURSE_ID, LEVEL, admin.id, now=clock())
    crud_attendance.lock_attendance(db, student.id, COURSE_ID, LEVEL, reason="Tab switch", violation_count=3, now=clock())
    with pytest.raises(ConflictError):
        crud_attendance.manual_approve(db, student.id, COURSE_ID, LEVEL, admin.id, now=clock())


def test_manual_approve_keeps_the_course_of_a_shared_daily_record(db, admin, student, clock, tz, make_window):
    window = make_window(time(11, 0), time(12, 0))
    other = crud_attendance.request_attendance(db, student.id, "other-course", LEVEL, now=clock(), tz=tz)
    assert other.session_id == window.session_id

    record = crud_attendance.manual_approve(db, student.id, COURSE_ID, LEVEL, admin.id, now=clock(), tz=tz)
    assert record.id == other.id
    assert record.test_identifier == f"other-course_{LEVEL}"
    assert record.state == AttendanceState.APPROVED
    assert db.query(AttendanceRecord).count() == 1


def test_bulk_approve(db, admin, make_user, live_session, clock):
    s1 = make_user(email="a@example.com")
    s2 = make_user(email="b@example.com")
    result = crud_attendance.bulk_approve(
        db, ["a@example.com", " b@example.com ", "ghost@example.com", ""], COURSE_ID, LEVEL, admin.id, now=clock()
    )
    assert result == {"approved": 2, "not_found": ["ghost@example.com"]}
    for user in (s1, s2):
        record = crud_attendance.get_latest_record(db, user.id, TEST_ID)
        assert record.state == AttendanceState.APPROVED
        assert record.session_id == str(live_session.id)


def test_bulk_approve_skips_locked_students(db, admin, make_user, live_session, clock):
    locked = make_user(email="locked@example.com")
    fine = make_user(email="fine@example.com")
    crud_attendance.manual_approve(db, locked.id, COURSE_ID, LEVEL, admin.id, now=clock())
    crud_attendance.lock_attendance(db, locked.id, COURSE_ID, LEVEL, now=clock())

    result = crud_attendance.bulk_approve(
        db, ["locked@example.com", "fine@example.com"], COURSE_ID, LEVEL, admin.id, now=clock()
    )
    assert result["approved"] == 1
    assert crud_attendance.get_latest_record(db, fine.id, TEST_ID).state == AttendanceState.APPROVED
    assert crud_attendance.get_latest_record(db, locked.id, TEST_ID).state == AttendanceState.LOCKED


# --- lock / unlock ---

def test_lock_is_last_write_wins(db, admin, student, live_session, clock):
    crud_attendance.manual_approve(db, student.id, COURSE_ID, LEVEL, admin.id, now=clock())
    crud_attendance.lock_attendance(db, student.id, COURSE_ID, LEVEL, reason="Copy/paste", violation_count=3, now=clock())
    record = crud_attendance.lock_attendance(db, student.id, COURSE_ID, LEVEL, reason="Fullscreen exit", violation_count=4, now=clock())

    assert record.locked is True
    assert record.locked_reason == "Fullscreen exit"
    assert record.violation_count == 4
    assert db.query(AttendanceRecord).count() == 1


def test_lock_without_record_creates_bypass_lock(db, student, clock):
    record = crud_attendance.lock_attendance(db, student.id, COURSE_ID, LEVEL, violation_count=3, now=clock())
    assert record.state == AttendanceState.LOCKED
    assert record.session_id is None
    assert record.locked_reason == "Max violations reached (Bypass)"


def test_cannot_lock_a_used_record(db, admin, student, live_session, clock):
    record = crud_attendance.manual_approve(db, student.id, COURSE_ID, LEVEL, admin.id, now=clock())
    crud_attendance.mark_used(db, record)
    with pytest.raises(ConflictError):
        crud_attendance.lock_attendance(db, student.id, COURSE_ID, LEVEL, now=clock())


def test_cannot_lock_a_pending_request(db, student, live_session, clock):
    record = crud_attendance.request_attendance(db, student.id, COURSE_ID, LEVEL, now=clock())
    with pytest.raises(ConflictError):
        crud_attendance.lock_attendance(db, student.id, COURSE_ID, LEVEL, violation_count=3, now=clock())

    db.expire_all()
    assert record.state == AttendanceState.REQUESTED
    assert record.locked is False


def test_unlock_continue_then_status(db, admin, student, live_session, clock):
    crud_attendance.manual_approve(db, student.id, COURSE_ID, LEVEL, admin.id, now=clock())
    locked = crud_attendance.lock_attendance(db, student.id, COURSE_ID, LEVEL, violation_count=3, now=clock())

    crud_attendance.unlock_attendance(db, locked.id, "continue")
    status = crud_attendance.get_status(db, student.id, COURSE_ID, LEVEL, now=clock())

    assert status.locked is False
    assert status.violationCount == 0
    assert status.status == "approved"
    assert status.isUsed is False
    assert status.unlockAction == "continue"


def test_unlock_submit_consumes_the_grant(db, admin, student, live_session, clock):
    crud_attendance.manual_approve(db, student.id, COURSE_ID, LEVEL, admin.id, now=clock())
    locked = crud_attendance.lock_attendance(db, student.id, COURSE_ID, LEVEL, violation_count=3, now=clock())

    record = crud_attendance.unlock_attendance(db, locked.id, "submit")
    assert record.state == AttendanceState.USED
    assert record.locked_reason == "Admin:submit"

    status = crud_attendance.get_status(db, student.id, COURSE_ID, LEVEL, now=clock())
    assert status.isUsed is True
    assert status.locked is False
    assert status.unlockAction == "submit"


def test_unlock_errors(db, admin, student, live_session, clock):
    record = crud_attendance.manual_approve(db, student.id, COURSE_ID, LEVEL, admin.id, now=clock())
    with pytest.raises(ValidationError):
        crud_attendance.unlock_attendance(db, record.id, "resume")
    with pytest.raises(NotFoundError):
        crud_attendance.unlock_attendance(db, 999, "continue")
    with pytest.raises(ConflictError):
        crud_attendance.unlock_attendance(db, record.id, "continue")


# --- queue / completion ---

def test_pending_queue_puts_locked_first(db, admin, make_user, live_session, clock):
    waiting = make_user(full_name="Waiting")
    crud_attendance.request_attendance(db, waiting.id, COURSE_ID, LEVEL, now=clock())

    clock.advance(minutes=1)
    cheater = make_user(full_name="Locked")
    crud_attendance.manual_approve(db, cheater.id, COURSE_ID, LEVEL, admin.id, now=clock())
    crud_attendance.lock_attendance(db, cheater.id, COURSE_ID, LEVEL, now=clock())

    done = make_user(full_name="Approved")
    crud_attendance.manual_approve(db, done.id, COURSE_ID, LEVEL, admin.id, now=clock())

    pending = crud_attendance.list_pending(db)
    assert [p["full_name"] for p in pending] == ["Locked", "Waiting"]
    assert pending[0]["locked"] is True


def test_consume_after_completion(db, admin, student, live_session, clock):
    crud_attendance.manual_approve(db, student.id, COURSE_ID, LEVEL, admin.id, now=clock())
    record = crud_attendance.consume_after_completion(db, student.id, COURSE_ID, LEVEL)
    assert record.state == AttendanceState.USED
    assert record.is_used is True
    assert record.status == "approved"

    # nothing to consume
    assert crud_attendance.consume_after_completion(db, student.id, "other", LEVEL) is None
