from sqlalchemy import Boolean, Column, DateTime, Enum, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    role = Column(Enum("admin", "faculty", "student", name="user_role"), nullable=False)
    full_name = Column(String, nullable=False)
    roll_no = Column(String, nullable=True)

    # Students start blocked; access is granted by unblocking for a window
    is_blocked = Column(Boolean, nullable=False, default=True)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    attendance_records = relationship(
        "AttendanceRecord", back_populates="user", foreign_keys="AttendanceRecord.user_id"
    )
