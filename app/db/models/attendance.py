# app/db/models/attendance.py
from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from app.core.attendance_state import AttendanceState
from app.db.base import Base


def make_test_identifier(course_id, level) -> str:
    return f"{course_id}_{level}"


class AttendanceRecord(Base):
    __tablename__ = "test_attendance"
    __table_args__ = (
        UniqueConstraint("user_id", "session_id", name="uq_attendance_user_session"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    test_identifier = Column(String, nullable=False, index=True)  # "<course_id>_<level>"

    # Manual session id or "daily_<window id>"; NULL = bypass (no live session)
    session_id = Column(String, nullable=True, index=True)

    state = Column(
        Enum(AttendanceState, name="attendance_state", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=AttendanceState.REQUESTED,
    )

    locked_reason = Column(String, nullable=True)
    locked_at = Column(DateTime, nullable=True)
    violation_count = Column(Integer, nullable=False, default=0)

    requested_at = Column(DateTime, nullable=False)
    approved_at = Column(DateTime, nullable=True)
    approved_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    user = relationship("User", back_populates="attendance_records", foreign_keys=[user_id])

    # Legacy view of the state, kept for the status payload
    @property
    def status(self) -> str:
        if self.state in (AttendanceState.LOCKED, AttendanceState.USED):
            return AttendanceState.APPROVED.value if self.approved_at else AttendanceState.REQUESTED.value
        return AttendanceState(self.state).value

    @property
    def is_used(self) -> bool:
        return self.state == AttendanceState.USED

    @property
    def locked(self) -> bool:
        return self.state == AttendanceState.LOCKED
