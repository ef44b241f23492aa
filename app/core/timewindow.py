# app/core/timewindow.py
"""
Level timer computation shared by the attendance status payload,
session validation and the guardian sweep.

The timer is global per level:

    level_end = MIN(schedule_end, schedule_start + time_limit_minutes)

so every student on the same level sees the same end time. Everything here
is pure: no database access, "now" is always passed in or read from the
clock once.
"""
import json
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Optional, Tuple
from zoneinfo import ZoneInfo

from app.core.clock import utcnow

DEFAULT_GRACE = timedelta(seconds=30)

SOURCE_SCHEDULE = "schedule"
SOURCE_LEVEL_LIMIT = "level_limit"
SOURCE_SCHEDULE_CAP = "schedule_cap"


def compute_level_end_time(
    schedule_start: datetime,
    schedule_end: datetime,
    time_limit_minutes: Optional[float],
) -> Tuple[datetime, str]:
    # No limit configured -> the whole schedule window
    if not time_limit_minutes or time_limit_minutes <= 0:
        return schedule_end, SOURCE_SCHEDULE

    level_end = schedule_start + timedelta(minutes=time_limit_minutes)
    if level_end < schedule_end:
        return level_end, SOURCE_LEVEL_LIMIT
    return schedule_end, SOURCE_SCHEDULE_CAP


def is_expired(
    schedule_start: datetime,
    schedule_end: datetime,
    time_limit_minutes: Optional[float],
    grace: timedelta = DEFAULT_GRACE,
    now: Optional[datetime] = None,
) -> bool:
    end_time, _ = compute_level_end_time(schedule_start, schedule_end, time_limit_minutes)
    now = now or utcnow()
    return now > end_time + grace


def _as_mapping(value: Any) -> dict:
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return {}
    return value if isinstance(value, dict) else {}


def _positive_minutes(value: Any) -> float:
    try:
        minutes = float(value)
    except (TypeError, ValueError):
        return 0
    return minutes if minutes > 0 else 0


def _config_field(course_config: Any, *names: str) -> Any:
    for name in names:
        if isinstance(course_config, dict):
            if name in course_config:
                return course_config[name]
        elif hasattr(course_config, name):
            return getattr(course_config, name)
    return None


def resolve_time_limit(course_config: Any, level: Any) -> float:
    """
    Time limit in minutes for a course level.

    Fallback chain: level_settings[level].timeLimit -> restrictions.timeLimit -> 0.
    `course_config` may be a dict, an ORM row or None; JSON columns may still
    be raw strings. Anything unparseable falls through to the next link.
    """
    if not course_config:
        return 0

    level_settings = _as_mapping(_config_field(course_config, "level_settings", "levelSettings"))
    per_level = _as_mapping(level_settings.get(str(level)))
    minutes = _positive_minutes(per_level.get("timeLimit"))
    if minutes:
        return minutes

    restrictions = _as_mapping(_config_field(course_config, "restrictions"))
    return _positive_minutes(restrictions.get("timeLimit"))


def local_today(now: datetime, tz: ZoneInfo) -> date:
    return now.replace(tzinfo=timezone.utc).astimezone(tz).date()


def daily_window_bounds(
    start_time: time,
    end_time: time,
    now: datetime,
    tz: ZoneInfo,
) -> Tuple[datetime, datetime]:
    """Absolute (naive UTC) start/end of a time-of-day window on today's civil date in `tz`."""
    today = local_today(now, tz)

    def _to_utc(t: time) -> datetime:
        local = datetime.combine(today, t.replace(tzinfo=None), tzinfo=tz)
        return local.astimezone(timezone.utc).replace(tzinfo=None)

    return _to_utc(start_time), _to_utc(end_time)


def window_status(start: datetime, end: datetime, now: datetime) -> str:
    if now > end:
        return "ended"
    if now >= start:
        return "live"
    return "upcoming"


def manual_session_end(start_time: datetime, duration_minutes: float) -> datetime:
    return start_time + timedelta(minutes=duration_minutes)
