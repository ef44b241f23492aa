# app/core/clock.py
from datetime import datetime, timedelta, timezone
from typing import Callable

# All instants in the database are naive UTC
Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class FrozenClock:
    """Settable clock for sweeps and requests that need a controlled "now"."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now
