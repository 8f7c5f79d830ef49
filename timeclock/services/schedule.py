from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
from typing import Any, Mapping
from zoneinfo import ZoneInfo

from timeclock.settings import get_settings

# date.weekday(): Monday == 0
WEEKDAY_KEYS: tuple[str, ...] = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)
LEGACY_WEEKDAY_TEMPLATE_KEY = "weekday"


@lru_cache
def attendance_timezone(name: str | None = None) -> ZoneInfo:
    raw_name = (name or get_settings().attendance_timezone or "").strip() or "America/Fortaleza"
    return ZoneInfo(raw_name)


def normalize_ts(ts_utc: datetime | None) -> datetime:
    if ts_utc is None:
        return datetime.now(timezone.utc)
    if ts_utc.tzinfo is None:
        return ts_utc.replace(tzinfo=timezone.utc)
    return ts_utc.astimezone(timezone.utc)


def to_local(ts_utc: datetime, tz: ZoneInfo) -> datetime:
    return normalize_ts(ts_utc).astimezone(tz)


def parse_hhmm(value: Any) -> time | None:
    if not isinstance(value, str):
        return None
    raw = value.strip()
    if not raw:
        return None
    try:
        hours_raw, minutes_raw = raw.split(":", 1)
        return time(int(hours_raw), int(minutes_raw[:2]))
    except ValueError:
        return None


def resolve_day_schedule(
    work_hours: Mapping[str, Any] | None,
    local_day: date,
) -> Mapping[str, Any] | None:
    """Return the schedule record that applies on ``local_day``, or None.

    A specific weekday key always wins. Older profiles only carry a
    ``weekday`` template for Monday to Friday; it counts as a work day unless
    it explicitly says otherwise.
    """
    if not isinstance(work_hours, Mapping):
        return None

    weekday_index = local_day.weekday()
    day_schedule = work_hours.get(WEEKDAY_KEYS[weekday_index])
    if isinstance(day_schedule, Mapping):
        return day_schedule if day_schedule.get("isWorkDay") is True else None

    if weekday_index < 5:
        template = work_hours.get(LEGACY_WEEKDAY_TEMPLATE_KEY)
        if isinstance(template, Mapping) and template.get("isWorkDay", True) is not False:
            return template
    return None


def _minutes_between(start: time | None, end: time | None) -> int:
    if start is None or end is None:
        return 0
    return (end.hour * 60 + end.minute) - (start.hour * 60 + start.minute)


def expected_work_for_day(work_hours: Mapping[str, Any] | None, local_day: date) -> timedelta:
    day_schedule = resolve_day_schedule(work_hours, local_day)
    if day_schedule is None:
        return timedelta(0)

    entry = parse_hhmm(day_schedule.get("entry"))
    exit_ = parse_hhmm(day_schedule.get("exit"))
    if entry is None or exit_ is None:
        return timedelta(0)

    break_minutes = _minutes_between(
        parse_hhmm(day_schedule.get("breakStart")),
        parse_hhmm(day_schedule.get("breakEnd")),
    )
    minutes = _minutes_between(entry, exit_) - max(0, break_minutes)
    return timedelta(minutes=max(0, minutes))


def scheduled_entry_local(
    work_hours: Mapping[str, Any] | None,
    local_day: date,
    tz: ZoneInfo,
) -> datetime | None:
    day_schedule = resolve_day_schedule(work_hours, local_day)
    if day_schedule is None:
        return None
    entry = parse_hhmm(day_schedule.get("entry"))
    if entry is None:
        return None
    return datetime.combine(local_day, entry, tzinfo=tz)
