import logging
from datetime import timedelta
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.api.deps import get_clock, get_current_user, get_db
from app.core.clock import Clock
from app.core.config import settings
from app.crud import attempt as crud_attempt
from app.crud import attendance as crud_attendance
from app.crud import session as crud_session
from app.db.models.attempt import Attempt
from app.db.models.attendance import make_test_identifier
from app.db.models.user import User
from app.schemas.attempt import (
    AttemptComplete,
    AttemptCreate,
    AttemptDetails,
    AttemptOut,
    AttemptSubmissionAdd,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _check_owner(attempt: Attempt, current_user: User):
    if current_user.role != "admin" and attempt.user_id != current_user.id:
        raise HTTPException(status_code=403, detail="Not your test session")


def _owned_attempt(db: Session, attempt_id: str, current_user: User) -> Attempt:
    attempt = crud_attempt.get_attempt(db, attempt_id)
    if not attempt:
        raise HTTPException(status_code=404, detail="Test session not found")
    _check_owner(attempt, current_user)
    return attempt


@router.post("/", response_model=AttemptOut)
def create_attempt(
    body: AttemptCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    clock: Clock = Depends(get_clock),
):
    return crud_attempt.create_attempt(db, current_user.id, body.course_id, body.level, now=clock())


@router.get("/user/{user_id}", response_model=List[AttemptOut])
def list_user_attempts(
    user_id: int,
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if current_user.role != "admin" and current_user.id != user_id:
        raise HTTPException(status_code=403, detail="Not your test sessions")
    return crud_attempt.list_user_attempts(db, user_id, limit=limit)


@router.get("/{attempt_id}", response_model=AttemptOut)
def get_attempt(
    attempt_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return _owned_attempt(db, attempt_id, current_user)


@router.get("/{attempt_id}/details", response_model=AttemptDetails)
def get_attempt_details(
    attempt_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _owned_attempt(db, attempt_id, current_user)
    return crud_attempt.get_attempt_with_submissions(db, attempt_id)


@router.post("/{attempt_id}/submissions", response_model=AttemptOut)
def add_submission(
    attempt_id: str,
    body: AttemptSubmissionAdd,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    clock: Clock = Depends(get_clock),
):
    attempt = _owned_attempt(db, attempt_id, current_user)

    # Late work is refused once the window the student was admitted to is over
    record = crud_attendance.get_latest_record(
        db, attempt.user_id, make_test_identifier(attempt.course_id, attempt.level)
    )
    if record is not None and record.session_id:
        valid = crud_session.validate_session_active(
            db,
            record.session_id,
            attempt.user_id,
            now=clock(),
            grace=timedelta(seconds=settings.EXPIRY_GRACE_SECONDS),
            bound_at=record.requested_at,
        )
        if not valid:
            logger.warning(f"⚠️ [Attempts] Rejected submission for {attempt_id}: session {record.session_id} is over")
            raise HTTPException(status_code=403, detail="Session has expired")

    return crud_attempt.add_submission(db, attempt_id, body.submission_id)


@router.put("/{attempt_id}/complete", response_model=AttemptOut)
def complete_attempt(
    attempt_id: str,
    body: AttemptComplete,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    clock: Clock = Depends(get_clock),
):
    _owned_attempt(db, attempt_id, current_user)
    attempt = crud_attempt.complete_attempt(db, attempt_id, feedback=body.user_feedback, now=clock())
    crud_attendance.consume_after_completion(db, attempt.user_id, attempt.course_id, attempt.level)
    return attempt
