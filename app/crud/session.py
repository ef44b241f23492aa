# app/crud/session.py
"""
Session registry: admin-started manual sessions and recurring daily windows.

Precedence when resolving the live session for a (course, level):
an active, unexpired manual session always wins; otherwise the first
active daily window containing "now" (evaluated for today in the exam
timezone) is returned as a synthetic session "daily_<id>".
"""
import logging
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Union
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from app.core.attendance_state import AttendanceEvent, AttendanceState, next_state
from app.core.clock import utcnow
from app.core.config import settings
from app.core.errors import NotFoundError, ValidationError
from app.core.timewindow import (
    DEFAULT_GRACE,
    daily_window_bounds,
    manual_session_end,
    window_status,
)
from app.crud.user import block_students
from app.db.models.attendance import AttendanceRecord
from app.db.models.schedule import MANUAL_END_REASONS, ManualSession, RecurringWindow
from app.schemas.session import RecurringWindowIn, SessionOut

logger = logging.getLogger(__name__)

DAILY_PREFIX = "daily_"


def exam_timezone(tz: Optional[ZoneInfo] = None) -> ZoneInfo:
    return tz or ZoneInfo(settings.EXAM_TIMEZONE)


def parse_daily_id(session_id: Optional[str]) -> Optional[int]:
    """Window id for a "daily_<id>" tag, None for anything else."""
    if not session_id or not str(session_id).startswith(DAILY_PREFIX):
        return None
    try:
        return int(str(session_id)[len(DAILY_PREFIX):])
    except ValueError:
        return None


def _hhmm(t) -> str:
    return t.strftime("%H:%M")


def manual_session_out(session: ManualSession, now: datetime) -> SessionOut:
    end = manual_session_end(session.start_time, session.duration_minutes)
    is_expired = now > end
    if not session.is_active or is_expired:
        status = "ended"
    else:
        status = "live"
    return SessionOut(
        id=str(session.id),
        type="manual",
        title=f"Manual Session (Level {session.level})",
        course_id=session.course_id,
        level=session.level,
        start_time=session.start_time,
        end_time=end,
        duration_minutes=session.duration_minutes,
        server_time=now,
        is_active=bool(session.is_active),
        is_expired=is_expired,
        status=status,
        ended_reason=session.ended_reason,
        forced_end=bool(session.forced_end),
        created_by=session.created_by,
    )


def recurring_window_out(
    window: RecurringWindow,
    now: datetime,
    tz: ZoneInfo,
    index: int = None,
    course_id: str = None,
    level: int = None,
) -> SessionOut:
    start, end = daily_window_bounds(window.start_time, window.end_time, now, tz)
    status = window_status(start, end, now)
    label = f"{_hhmm(window.start_time)} - {_hhmm(window.end_time)}"
    return SessionOut(
        id=window.session_id,
        type="recurring",
        title=f"Session {index + 1}: {label}" if index is not None else f"Daily Session: {label}",
        course_id=course_id,
        level=level,
        start_time=start,
        end_time=end,
        duration_minutes=(end - start).total_seconds() / 60,
        server_time=now,
        is_active=status == "live",
        is_expired=status == "ended",
        is_recurring=True,
        status=status,
    )


def get_session(db: Session, session_id: int) -> Optional[ManualSession]:
    return db.query(ManualSession).filter(ManualSession.id == session_id).first()


def get_recurring_window(db: Session, window_id: int) -> Optional[RecurringWindow]:
    return db.query(RecurringWindow).filter(RecurringWindow.id == window_id).first()


def _active_windows(db: Session) -> List[RecurringWindow]:
    return (
        db.query(RecurringWindow)
        .filter(RecurringWindow.is_active.is_(True))
        .order_by(RecurringWindow.start_time, RecurringWindow.id)
        .all()
    )


def start_session(
    db: Session,
    course_id: str,
    level: int,
    duration_minutes: int,
    created_by: Optional[int],
    now: Optional[datetime] = None,
) -> ManualSession:
    """
    Start a manual session, superseding whatever is running for (course, level).

    Not serialized: two concurrent starts can both see "nothing active" and
    both insert. Admin session starts are operator-driven and rare.
    """
    if not course_id or level is None:
        raise ValidationError("courseId and level are required")
    if not duration_minutes or duration_minutes <= 0:
        raise ValidationError("durationMinutes must be positive")

    now = now or utcnow()

    running = (
        db.query(ManualSession)
        .filter(
            ManualSession.course_id == course_id,
            ManualSession.level == level,
            ManualSession.is_active.is_(True),
        )
        .all()
    )
    for old in running:
        old.is_active = False
        old.ended_reason = "FORCED"
        old.forced_end = True

    session = ManualSession(
        course_id=course_id,
        level=level,
        start_time=now,
        duration_minutes=duration_minutes,
        is_active=True,
        forced_end=False,
        created_by=created_by,
    )
    db.add(session)
    db.commit()
    db.refresh(session)

    if running:
        logger.info(
            f"[Sessions] Session {session.id} for {course_id}_{level} superseded "
            f"{[s.id for s in running]}"
        )
    else:
        logger.info(f"[Sessions] Session {session.id} started for {course_id}_{level} ({duration_minutes} min)")
    return session


def find_active(
    db: Session,
    course_id: str,
    level: int,
    now: Optional[datetime] = None,
    tz: Optional[ZoneInfo] = None,
) -> Optional[SessionOut]:
    now = now or utcnow()

    # 1. Manual session, highest priority
    manual = (
        db.query(ManualSession)
        .filter(
            ManualSession.course_id == course_id,
            ManualSession.level == level,
            ManualSession.is_active.is_(True),
        )
        .order_by(ManualSession.start_time.desc(), ManualSession.id.desc())
        .first()
    )
    if manual:
        formatted = manual_session_out(manual, now)
        if not formatted.is_expired:
            return formatted

    # 2. Recurring window covering "now" today
    tz = exam_timezone(tz)
    for window in _active_windows(db):
        start, end = daily_window_bounds(window.start_time, window.end_time, now, tz)
        if start <= now <= end:
            return recurring_window_out(window, now, tz, course_id=course_id, level=level)

    return None


def get_all_active(db: Session, now: Optional[datetime] = None, tz: Optional[ZoneInfo] = None) -> List[SessionOut]:
    now = now or utcnow()
    tz = exam_timezone(tz)

    sessions = [
        recurring_window_out(window, now, tz, index=i)
        for i, window in enumerate(_active_windows(db))
    ]

    manual = db.query(ManualSession).filter(ManualSession.is_active.is_(True)).all()
    sessions.extend(manual_session_out(s, now) for s in manual)

    return sorted(sessions, key=lambda s: s.start_time)


def has_live_session(db: Session, now: Optional[datetime] = None, tz: Optional[ZoneInfo] = None) -> bool:
    return any(s.status == "live" for s in get_all_active(db, now=now, tz=tz))


def end_session(
    db: Session,
    session_id: int,
    reason: str = "NORMAL",
    now: Optional[datetime] = None,
) -> SessionOut:
    if reason not in MANUAL_END_REASONS:
        raise ValidationError(f"reason must be one of {', '.join(MANUAL_END_REASONS)}")

    session = get_session(db, session_id)
    if not session:
        raise NotFoundError("Session not found")

    now = now or utcnow()
    session.is_active = False
    session.ended_reason = reason
    session.forced_end = reason == "FORCED"
    db.commit()

    # Best effort: the session stays ended even if this part fails
    try:
        records = (
            db.query(AttendanceRecord)
            .filter(
                AttendanceRecord.session_id == str(session_id),
                AttendanceRecord.state != AttendanceState.USED,
            )
            .all()
        )
        for record in records:
            record.state = next_state(record.state, AttendanceEvent.EXPIRE)

        user_ids = {r.user_id for r in records}
        blocked = block_students(db, user_ids)
        db.commit()
        if user_ids:
            logger.info(f"[Sessions] Session {session_id} ended ({reason}). Re-blocked {blocked} students.")
    except Exception as e:
        db.rollback()
        logger.exception(f"[Sessions] Graceful termination failed for session {session_id}: {e}")

    db.refresh(session)
    return manual_session_out(session, now)


def validate_session_active(
    db: Session,
    session_id: Optional[Union[str, int]],
    user_id: int,
    now: Optional[datetime] = None,
    grace: timedelta = DEFAULT_GRACE,
    tz: Optional[ZoneInfo] = None,
    bound_at: Optional[datetime] = None,
) -> bool:
    """Whether `session_id` still accepts work, allowing `grace` for late requests.

    `bound_at` is when the caller's grant was tied to the session; a daily grant
    bound before today's occurrence of its window no longer counts.
    """
    if not session_id:
        return False
    now = now or utcnow()

    daily_id = parse_daily_id(session_id)
    if daily_id is not None:
        window = get_recurring_window(db, daily_id)
        if not window or not window.is_active:
            return False
        start, end = daily_window_bounds(window.start_time, window.end_time, now, exam_timezone(tz))
        if bound_at is not None and bound_at < start:
            logger.warning(f"[Sessions] Daily session {session_id} grant for user {user_id} is from an earlier day")
            return False
        if now > end + grace:
            logger.warning(f"[Sessions] Daily session {session_id} expired for user {user_id}")
            return False
        return True

    try:
        manual_id = int(session_id)
    except (TypeError, ValueError):
        return False

    session = get_session(db, manual_id)
    if not session or not session.is_active:
        return False
    if now > manual_session_end(session.start_time, session.duration_minutes) + grace:
        logger.warning(f"[Sessions] Manual session {session_id} expired for user {user_id}")
        return False
    return True


def list_recurring_windows(db: Session) -> List[RecurringWindow]:
    return db.query(RecurringWindow).order_by(RecurringWindow.start_time, RecurringWindow.id).all()


def replace_recurring_windows(db: Session, windows: Iterable[RecurringWindowIn]) -> List[RecurringWindow]:
    windows = list(windows)
    for w in windows:
        # same-day windows only; one crossing midnight would never contain "now"
        if w.end_time <= w.start_time:
            raise ValidationError(
                f"Window {_hhmm(w.start_time)} - {_hhmm(w.end_time)} must end after it starts on the same day"
            )

    db.query(RecurringWindow).delete(synchronize_session=False)
    for w in windows:
        db.add(RecurringWindow(start_time=w.start_time, end_time=w.end_time, is_active=w.is_active))
    db.commit()
    logger.info(f"[Sessions] Daily schedule replaced with {len(windows)} windows")
    return list_recurring_windows(db)
