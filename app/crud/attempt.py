# app/crud/attempt.py
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.clock import utcnow
from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.db.models.attempt import Attempt
from app.db.models.submission import Submission

logger = logging.getLogger(__name__)


def create_attempt(db: Session, user_id: int, course_id: str, level: int, now: Optional[datetime] = None) -> Attempt:
    if not user_id or not course_id or level is None:
        raise ValidationError("Missing required fields: user_id, course_id, level")

    attempt = Attempt(
        user_id=user_id,
        course_id=course_id,
        level=level,
        submission_ids=[],
        total_questions=0,
        passed_count=0,
        overall_status="failed",
        started_at=now or utcnow(),
    )
    db.add(attempt)
    db.commit()
    db.refresh(attempt)
    return attempt


def get_attempt(db: Session, attempt_id: str) -> Optional[Attempt]:
    return db.query(Attempt).filter(Attempt.id == attempt_id).first()


def _require_attempt(db: Session, attempt_id: str) -> Attempt:
    attempt = get_attempt(db, attempt_id)
    if not attempt:
        raise NotFoundError("Test session not found")
    return attempt


def add_submission(db: Session, attempt_id: str, submission_id: str) -> Attempt:
    if not submission_id:
        raise ValidationError("Missing submission_id")

    attempt = _require_attempt(db, attempt_id)
    if attempt.completed_at is not None:
        raise ConflictError("Test session is already completed")

    if submission_id not in attempt.submission_ids:
        attempt.submission_ids.append(submission_id)
    attempt.total_questions = len(attempt.submission_ids)
    db.commit()
    db.refresh(attempt)
    return attempt


def fetch_submissions(db: Session, submission_ids: List[str]) -> List[Submission]:
    if not submission_ids:
        return []
    return db.query(Submission).filter(Submission.id.in_(submission_ids)).all()


def _is_passed(submission: Submission) -> bool:
    return submission.passed is True or submission.status == "passed"


def finalize_attempt(
    db: Session,
    attempt: Attempt,
    feedback: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Attempt:
    """
    Grade and close `attempt` without committing.

    All checks run before anything is written, so a raised error leaves the
    attempt untouched. Grading is all-or-nothing: one failed (or missing)
    question fails the attempt.
    """
    if attempt.completed_at is not None:
        raise ConflictError("Test session is already completed")

    submission_ids = list(attempt.submission_ids or [])
    if not submission_ids:
        raise ConflictError("No submissions in this test session")

    submissions = fetch_submissions(db, submission_ids)
    if not submissions:
        raise NotFoundError("Unable to locate submissions for this session")

    passed_count = sum(1 for s in submissions if _is_passed(s))
    total_questions = len(submission_ids)

    attempt.total_questions = total_questions
    attempt.passed_count = passed_count
    attempt.overall_status = "passed" if passed_count == total_questions else "failed"
    attempt.completed_at = now or utcnow()
    if feedback:
        attempt.user_feedback = feedback
    return attempt


def complete_attempt(
    db: Session,
    attempt_id: str,
    feedback: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Attempt:
    attempt = _require_attempt(db, attempt_id)
    finalize_attempt(db, attempt, feedback=feedback, now=now)
    db.commit()
    db.refresh(attempt)
    logger.info(
        f"[Attempts] {attempt.id} completed: {attempt.passed_count}/{attempt.total_questions} "
        f"({attempt.overall_status})"
    )
    return attempt


def get_attempt_with_submissions(db: Session, attempt_id: str) -> Optional[dict]:
    attempt = get_attempt(db, attempt_id)
    if not attempt:
        return None

    submissions = fetch_submissions(db, list(attempt.submission_ids or []))
    submissions.sort(key=lambda s: (s.submitted_at is None, s.submitted_at))
    return {
        "id": attempt.id,
        "user_id": attempt.user_id,
        "course_id": attempt.course_id,
        "level": attempt.level,
        "submission_ids": list(attempt.submission_ids or []),
        "total_questions": attempt.total_questions,
        "passed_count": attempt.passed_count,
        "overall_status": attempt.overall_status,
        "started_at": attempt.started_at,
        "completed_at": attempt.completed_at,
        "user_feedback": attempt.user_feedback,
        "submissions": submissions,
    }


def list_user_attempts(db: Session, user_id: int, limit: int = 20) -> List[Attempt]:
    return (
        db.query(Attempt)
        .filter(Attempt.user_id == user_id)
        .order_by(Attempt.started_at.desc())
        .limit(limit)
        .all()
    )


def list_open_attempts(db: Session, user_id: int) -> List[Attempt]:
    return (
        db.query(Attempt)
        .filter(Attempt.user_id == user_id, Attempt.completed_at.is_(None))
        .order_by(Attempt.started_at)
        .all()
    )
