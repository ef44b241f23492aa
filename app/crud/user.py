from typing import Iterable, List

from sqlalchemy.orm import Session

from app.core.security import get_password_hash
from app.db.models.user import User


def get_user_by_email(db: Session, email: str):
    return db.query(User).filter(User.email == email).first()


def get_user_by_id(db: Session, user_id: int):
    return db.query(User).filter(User.id == user_id).first()


def get_users_by_emails(db: Session, emails: Iterable[str]) -> List[User]:
    emails = list(emails)
    if not emails:
        return []
    return db.query(User).filter(User.email.in_(emails)).all()


def create_user(db: Session, email: str, password: str, full_name: str, role: str = "student",
                roll_no: str = None, is_blocked: bool = None):
    db_user = User(
        email=email,
        hashed_password=get_password_hash(password),
        full_name=full_name,
        role=role,
        roll_no=roll_no,
        # only students are gated by the block flag
        is_blocked=(role == "student") if is_blocked is None else is_blocked,
    )
    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    return db_user


def get_unblocked_students(db: Session) -> List[User]:
    return (
        db.query(User)
        .filter(User.role == "student", User.is_blocked.is_(False))
        .order_by(User.updated_at.desc(), User.id)
        .all()
    )


def set_blocked(db: Session, user_id: int, is_blocked: bool, commit: bool = True):
    user = get_user_by_id(db, user_id)
    if not user:
        return None
    user.is_blocked = is_blocked
    if commit:
        db.commit()
        db.refresh(user)
    return user


def block_students(db: Session, user_ids: Iterable[int]) -> int:
    """Set is_blocked for the students among `user_ids`. Does not commit."""
    user_ids = list(set(user_ids))
    if not user_ids:
        return 0
    return (
        db.query(User)
        .filter(User.id.in_(user_ids), User.role == "student")
        .update({User.is_blocked: True}, synchronize_session="fetch")
    )
