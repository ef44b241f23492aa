from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.api.deps import get_clock, get_db, require_admin
from app.core.clock import Clock
from app.core.config import settings
from app.crud import session as crud_session
from app.db.models.user import User
from app.schemas.session import SessionEnd, SessionOut, SessionStart, SessionValidity

router = APIRouter()


@router.post("/start", response_model=SessionOut)
def start_session(
    body: SessionStart,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    clock: Clock = Depends(get_clock),
):
    now = clock()
    session = crud_session.start_session(
        db, body.course_id, body.level, body.duration_minutes, created_by=admin.id, now=now
    )
    return crud_session.manual_session_out(session, now)


@router.post("/{session_id}/end", response_model=SessionOut)
def end_session(
    session_id: int,
    body: Optional[SessionEnd] = None,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    clock: Clock = Depends(get_clock),
):
    reason = body.reason if body else "NORMAL"
    return crud_session.end_session(db, session_id, reason=reason, now=clock())


@router.get("/{session_id}", response_model=SessionOut)
def get_session(
    session_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    clock: Clock = Depends(get_clock),
):
    session = crud_session.get_session(db, session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")
    return crud_session.manual_session_out(session, clock())


@router.get("/{session_id}/validate", response_model=SessionValidity)
def validate_session(
    session_id: str,
    user_id: int = Query(..., alias="userId"),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    clock: Clock = Depends(get_clock),
):
    valid = crud_session.validate_session_active(
        db,
        session_id,
        user_id,
        now=clock(),
        grace=timedelta(seconds=settings.EXPIRY_GRACE_SECONDS),
    )
    return SessionValidity(session_id=session_id, user_id=user_id, valid=valid)
