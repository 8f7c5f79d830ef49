from __future__ import annotations

import enum
from collections.abc import Iterable
from datetime import datetime
from typing import Protocol

from timeclock.models import EntryStatus, EntryType


class WorkStatus(str, enum.Enum):
    CLOCKED_OUT = "CLOCKED_OUT"
    WORKING = "WORKING"
    ON_BREAK = "ON_BREAK"


class _StatusEntry(Protocol):
    type: EntryType
    status: EntryStatus
    ts_utc: datetime


_STATUS_BY_TYPE = {
    EntryType.CLOCK_IN: WorkStatus.WORKING,
    EntryType.BREAK_END: WorkStatus.WORKING,
    EntryType.BREAK_START: WorkStatus.ON_BREAK,
    EntryType.CLOCK_OUT: WorkStatus.CLOCKED_OUT,
}


def last_effective_entry(entries_newest_first: Iterable[_StatusEntry]) -> _StatusEntry | None:
    for entry in entries_newest_first:
        if entry.status == EntryStatus.REJECTED:
            continue
        if entry.type == EntryType.MEDICAL_CERTIFICATE:
            continue
        return entry
    return None


def derive_work_status(entries_newest_first: Iterable[_StatusEntry]) -> WorkStatus:
    entry = last_effective_entry(entries_newest_first)
    if entry is None:
        return WorkStatus.CLOCKED_OUT
    return _STATUS_BY_TYPE.get(entry.type, WorkStatus.CLOCKED_OUT)


def allowed_next_types(status: WorkStatus) -> list[EntryType]:
    if status == WorkStatus.WORKING:
        return [EntryType.BREAK_START, EntryType.CLOCK_OUT]
    if status == WorkStatus.ON_BREAK:
        return [EntryType.BREAK_END]
    return [EntryType.CLOCK_IN]
