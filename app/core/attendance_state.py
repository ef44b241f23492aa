# app/core/attendance_state.py
"""
Attendance access states and the transitions between them.

A record holds exactly one state. The legacy flags exposed over HTTP
(status / isUsed / locked) are derived from it, so combinations such as
"locked and rejected" cannot be stored.
"""
import enum
from typing import Optional

from app.core.errors import ConflictError


class AttendanceState(str, enum.Enum):
    REQUESTED = "requested"
    APPROVED = "approved"
    REJECTED = "rejected"
    LOCKED = "locked"
    USED = "used"


class AttendanceEvent(str, enum.Enum):
    REQUEST = "request"
    APPROVE = "approve"
    REJECT = "reject"
    LOCK = "lock"
    CONTINUE = "continue"    # admin unlock, student keeps going
    SUBMIT = "submit"        # admin unlock, attempt is force-finalized
    COMPLETE = "complete"    # attempt finished normally
    EXPIRE = "expire"        # window elapsed (session end / guardian)
    MANUAL_APPROVE = "manual_approve"


S = AttendanceState
E = AttendanceEvent

# None stands for "no record yet"
TRANSITIONS = {
    (None, E.REQUEST): S.REQUESTED,
    (None, E.LOCK): S.LOCKED,
    (None, E.MANUAL_APPROVE): S.APPROVED,

    (S.REQUESTED, E.REQUEST): S.REQUESTED,
    (S.REQUESTED, E.APPROVE): S.APPROVED,
    (S.REQUESTED, E.REJECT): S.REJECTED,
    (S.REQUESTED, E.EXPIRE): S.USED,
    (S.REQUESTED, E.MANUAL_APPROVE): S.APPROVED,

    (S.APPROVED, E.REQUEST): S.APPROVED,
    (S.APPROVED, E.APPROVE): S.APPROVED,
    (S.APPROVED, E.REJECT): S.REJECTED,
    (S.APPROVED, E.LOCK): S.LOCKED,
    (S.APPROVED, E.COMPLETE): S.USED,
    (S.APPROVED, E.EXPIRE): S.USED,
    (S.APPROVED, E.MANUAL_APPROVE): S.APPROVED,

    (S.REJECTED, E.REQUEST): S.REJECTED,
    (S.REJECTED, E.APPROVE): S.APPROVED,
    (S.REJECTED, E.REJECT): S.REJECTED,
    (S.REJECTED, E.EXPIRE): S.USED,
    (S.REJECTED, E.MANUAL_APPROVE): S.APPROVED,

    (S.LOCKED, E.REQUEST): S.LOCKED,
    (S.LOCKED, E.LOCK): S.LOCKED,
    (S.LOCKED, E.CONTINUE): S.APPROVED,
    (S.LOCKED, E.SUBMIT): S.USED,
    (S.LOCKED, E.EXPIRE): S.USED,

    # a consumed grant may be requested again
    (S.USED, E.REQUEST): S.REQUESTED,
    (S.USED, E.COMPLETE): S.USED,
    (S.USED, E.EXPIRE): S.USED,
    (S.USED, E.MANUAL_APPROVE): S.APPROVED,
}


def next_state(current: Optional[AttendanceState], event: AttendanceEvent) -> AttendanceState:
    if current is not None:
        current = AttendanceState(current)
    try:
        return TRANSITIONS[(current, AttendanceEvent(event))]
    except KeyError:
        label = current.value if current is not None else "none"
        raise ConflictError(f"Cannot {AttendanceEvent(event).value} attendance in state '{label}'")
