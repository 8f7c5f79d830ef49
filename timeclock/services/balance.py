"""Worked time and signed balance against the weekly schedule.

Days are partitioned by local calendar date. A day only yields a balance once
it is complete (it has a ClockOut) or nothing was expected that day;
otherwise it is in progress and stays out of the period balance, so an open
ClockIn never shows up as a large deficit. Breaks only count once a ClockOut
closes the work they belong to.
"""

from __future__ import annotations

from collections import OrderedDict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Mapping, Protocol
from zoneinfo import ZoneInfo

from timeclock.models import EntryStatus, EntryType
from timeclock.services.schedule import expected_work_for_day, to_local


class EntryLike(Protocol):
    type: EntryType
    status: EntryStatus
    ts_utc: datetime
    justification: str | None


@dataclass
class DayBalance:
    day: date
    entries: list[Any] = field(default_factory=list)
    total_work: timedelta = timedelta(0)
    total_break: timedelta = timedelta(0)
    expected_work: timedelta = timedelta(0)
    is_complete: bool = False
    is_excused: bool = False
    excuse_justification: str | None = None

    @property
    def net_work(self) -> timedelta:
        return self.total_work - self.total_break

    @property
    def in_progress(self) -> bool:
        return not self.is_complete and self.expected_work > timedelta(0)

    @property
    def daily_balance(self) -> timedelta | None:
        if self.in_progress:
            return None
        return self.net_work - self.expected_work


@dataclass
class PeriodSummary:
    days: list[DayBalance]
    hours_worked: timedelta
    period_balance: timedelta

    @property
    def excused_days(self) -> list[DayBalance]:
        return [day for day in self.days if day.is_excused]


def format_signed_duration(value: timedelta | None, *, signed: bool = True) -> str:
    """Render as ``+HH:MM``/``-HH:MM`` truncated to the minute."""
    if value is None:
        return "in progress"
    total_seconds = int(value.total_seconds())
    total_minutes = abs(total_seconds) // 60
    negative = total_seconds < 0 and total_minutes > 0
    hours, minutes = divmod(total_minutes, 60)
    body = f"{hours:02d}:{minutes:02d}"
    if negative:
        return f"-{body}"
    return f"+{body}" if signed else body


def _pair_punches(day: DayBalance, entries: Sequence[EntryLike]) -> None:
    open_clock_in: datetime | None = None
    open_break_start: datetime | None = None
    # Closed breaks wait for a ClockOut before they count.
    pending_break = timedelta(0)

    for entry in entries:
        if entry.status == EntryStatus.REJECTED:
            continue
        if entry.type == EntryType.MEDICAL_CERTIFICATE:
            continue

        if entry.type == EntryType.CLOCK_IN:
            open_clock_in = entry.ts_utc
        elif entry.type == EntryType.BREAK_START:
            open_break_start = entry.ts_utc
        elif entry.type == EntryType.BREAK_END:
            if open_break_start is not None:
                pending_break += entry.ts_utc - open_break_start
                open_break_start = None
        elif entry.type == EntryType.CLOCK_OUT:
            day.is_complete = True
            if open_clock_in is not None:
                day.total_work += entry.ts_utc - open_clock_in
                open_clock_in = None
            day.total_break += pending_break
            pending_break = timedelta(0)


def compute_day_balances(
    entries: Iterable[EntryLike],
    work_hours: Mapping[str, Any] | None,
    tz: ZoneInfo,
) -> list[DayBalance]:
    ordered = sorted(entries, key=lambda item: item.ts_utc)

    by_day: OrderedDict[date, list[EntryLike]] = OrderedDict()
    for entry in ordered:
        by_day.setdefault(to_local(entry.ts_utc, tz).date(), []).append(entry)

    days: list[DayBalance] = []
    for local_day, day_entries in by_day.items():
        day = DayBalance(day=local_day, entries=list(day_entries))

        certificates = [
            item
            for item in day_entries
            if item.type == EntryType.MEDICAL_CERTIFICATE and item.status != EntryStatus.REJECTED
        ]
        if certificates:
            day.is_excused = True
            day.excuse_justification = certificates[0].justification
        else:
            day.expected_work = expected_work_for_day(work_hours, local_day)

        _pair_punches(day, day_entries)
        days.append(day)
    return days


def summarize_period(days: Sequence[DayBalance]) -> PeriodSummary:
    hours_worked = timedelta(0)
    period_balance = timedelta(0)
    for day in days:
        hours_worked += day.total_work
        if day.is_complete:
            period_balance += day.net_work - day.expected_work
    return PeriodSummary(days=list(days), hours_worked=hours_worked, period_balance=period_balance)


def compute_period_report(
    entries: Iterable[EntryLike],
    work_hours: Mapping[str, Any] | None,
    tz: ZoneInfo,
) -> PeriodSummary:
    return summarize_period(compute_day_balances(entries, work_hours, tz))
