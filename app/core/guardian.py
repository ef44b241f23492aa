# app/core/guardian.py
"""
Background sweep that re-blocks students whose access window has elapsed.

Students are unblocked by an admin for the duration of a session. Nothing on
the client side can be trusted to block them again, so every `interval`
seconds the guardian looks at each unblocked student's latest attendance
record and, once the session it is bound to is over, blocks the student,
consumes the record and force-completes any attempt still open.
"""
import asyncio
import contextlib
import logging
import threading
from datetime import datetime
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from app.core.attendance_state import AttendanceEvent, next_state
from app.core.clock import Clock, utcnow
from app.core.errors import AccessControlError
from app.core.timewindow import daily_window_bounds, manual_session_end
from app.crud import attempt as crud_attempt
from app.crud import session as crud_session
from app.crud.attendance import get_latest_record
from app.crud.user import get_unblocked_students
from app.db.models.attendance import AttendanceRecord
from app.db.models.user import User

logger = logging.getLogger(__name__)

TERMINATION_FEEDBACK = "Session automatically terminated by System Guardian (time window expired)."


class SessionGuardian:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock = utcnow,
        interval: float = 60.0,
        startup_delay: float = 5.0,
        tz: Optional[ZoneInfo] = None,
    ):
        self.session_factory = session_factory
        self.clock = clock
        self.interval = interval
        self.startup_delay = startup_delay
        self.tz = tz

        self.is_processing = False
        self._flag_lock = threading.Lock()
        self._task: Optional[asyncio.Task] = None

    # --- lifecycle ---

    def start(self) -> None:
        """Schedule the periodic sweep on the running event loop. Calling twice is a no-op."""
        if self._task and not self._task.done():
            return
        logger.info(f"🛡️ [Guardian] Started (interval {self.interval}s, first sweep in {self.startup_delay}s)")
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        if not self._task:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("🛡️ [Guardian] Stopped")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _loop(self) -> None:
        await asyncio.sleep(self.startup_delay)
        while True:
            try:
                await asyncio.to_thread(self.run_once)
            except Exception as e:
                logger.exception(f"🔥 [Guardian] Sweep crashed: {e}")
            await asyncio.sleep(self.interval)

    # --- sweep ---

    def run_once(self) -> dict:
        """
        Run one sweep and return what it did.

        Returns immediately with `skipped=True` when another sweep is still
        in flight; overlapping ticks are dropped, not queued.
        """
        summary = {"skipped": False, "checked": 0, "blocked": 0, "attempts_completed": 0, "errors": 0}

        with self._flag_lock:
            if self.is_processing:
                summary["skipped"] = True
                return summary
            self.is_processing = True

        db = self.session_factory()
        try:
            now = self.clock()
            try:
                students = get_unblocked_students(db)
            except Exception as e:
                # the next tick is the retry
                logger.exception(f"❌ [Guardian] Could not list unblocked students: {e}")
                summary["errors"] += 1
                return summary

            if not students:
                return summary

            logger.info(f"🛡️ [Guardian] Checking {len(students)} unblocked students...")
            for student in students:
                summary["checked"] += 1
                try:
                    record = get_latest_record(db, student.id)
                    if record is None:
                        # unblocked by hand and has not requested yet
                        continue
                    if not self.is_expired(db, record, now):
                        continue
                    completed, failed = self._terminate(db, student, record, now)
                    summary["blocked"] += 1
                    summary["attempts_completed"] += completed
                    summary["errors"] += failed
                except Exception as e:
                    db.rollback()
                    summary["errors"] += 1
                    logger.exception(f"❌ [Guardian] Failed to process student {student.id}: {e}")
            return summary
        finally:
            db.close()
            with self._flag_lock:
                self.is_processing = False

    def is_expired(self, db: Session, record: AttendanceRecord, now: datetime) -> bool:
        session_id = record.session_id

        # bypass grant: only ends once nothing is live anywhere
        if not session_id:
            return not crud_session.has_live_session(db, now=now, tz=self.tz)

        daily_id = crud_session.parse_daily_id(session_id)
        if daily_id is not None:
            window = crud_session.get_recurring_window(db, daily_id)
            if not window or not window.is_active:
                return True
            # the window on the civil day the record was bound to it
            _, end = daily_window_bounds(
                window.start_time,
                window.end_time,
                record.requested_at or now,
                crud_session.exam_timezone(self.tz),
            )
            return now > end

        try:
            manual = crud_session.get_session(db, int(session_id))
        except ValueError:
            manual = None
        if not manual:
            return True
        return now > manual_session_end(manual.start_time, manual.duration_minutes)

    def _terminate(self, db: Session, student: User, record: AttendanceRecord, now: datetime):
        """Block, consume and force-complete for one student, committed together."""
        logger.info(f"🛡️ [Guardian] Session {record.session_id or 'bypass'} expired for {student.email}. Auto-blocking...")

        student.is_blocked = True
        record.state = next_state(record.state, AttendanceEvent.EXPIRE)

        completed = failed = 0
        for attempt in crud_attempt.list_open_attempts(db, student.id):
            try:
                crud_attempt.finalize_attempt(db, attempt, feedback=TERMINATION_FEEDBACK, now=now)
                completed += 1
                logger.info(f"🛡️ [Guardian] Force-completing attempt {attempt.id}")
            except AccessControlError as e:
                # finalize validates before writing, so the attempt is untouched
                failed += 1
                logger.warning(f"⚠️ [Guardian] Could not complete attempt {attempt.id}: {e.detail}")

        db.commit()
        return completed, failed
