# app/api/admin.py
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_db
from app.crud import user as crud_user
from app.db.models.user import User
from app.schemas.user import BlockUpdate, UserOut

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/students", response_model=List[UserOut])
def get_students(
    blocked: Optional[bool] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if current_user.role != "admin":
        raise HTTPException(status_code=403, detail="Admins only")

    query = db.query(User).filter(User.role == "student")
    if blocked is not None:
        query = query.filter(User.is_blocked.is_(blocked))
    return query.order_by(User.full_name).all()


@router.put("/students/{student_id}/block", response_model=UserOut)
def set_student_block(
    student_id: int,
    body: BlockUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if current_user.role != "admin":
        raise HTTPException(status_code=403, detail="Admins only")

    student = crud_user.get_user_by_id(db, student_id)
    if not student or student.role != "student":
        raise HTTPException(status_code=404, detail="Student not found")

    student = crud_user.set_blocked(db, student_id, body.is_blocked)
    logger.info(f"[Admin] {current_user.email} set is_blocked={body.is_blocked} for student {student_id}")
    return student
