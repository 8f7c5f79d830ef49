"""Lateness detection and the approval state a new punch starts in.

What "late" means depends on where the punch came from: an offline replay
has nobody to prompt, a kiosk is physically supervised, and a live
submission can still be asked for a justification.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from math import floor
from typing import Any, Mapping
from zoneinfo import ZoneInfo

from timeclock.errors import JustificationRequiredError
from timeclock.models import EntryStatus, EntryType
from timeclock.services.schedule import scheduled_entry_local, to_local

DEFAULT_TOLERANCE_MINUTES = 120
OFFLINE_LATE_JUSTIFICATION = "Offline punch registered late. Requires manager validation."


class Provenance(str, enum.Enum):
    INTERACTIVE = "INTERACTIVE"
    OFFLINE_REPLAY = "OFFLINE_REPLAY"
    KIOSK = "KIOSK"


@dataclass(frozen=True)
class LatenessDecision:
    status: EntryStatus
    justification: str | None
    message: str | None = None
    lateness_minutes: int | None = None

    @property
    def is_late(self) -> bool:
        return self.message is not None


def resolve_provenance(*, is_offline_replay: bool, is_kiosk: bool) -> Provenance:
    if is_offline_replay:
        return Provenance.OFFLINE_REPLAY
    if is_kiosk:
        return Provenance.KIOSK
    return Provenance.INTERACTIVE


def lateness_minutes(
    punch_ts: datetime,
    work_hours: Mapping[str, Any] | None,
    tz: ZoneInfo,
) -> int | None:
    punch_local = to_local(punch_ts, tz)
    scheduled = scheduled_entry_local(work_hours, punch_local.date(), tz)
    if scheduled is None:
        return None
    return floor((punch_local - scheduled).total_seconds() / 60)


def evaluate_lateness(
    *,
    entry_type: EntryType,
    punch_ts: datetime,
    work_hours: Mapping[str, Any] | None,
    tz: ZoneInfo,
    provenance: Provenance,
    justification: str | None,
    tolerance_minutes: int = DEFAULT_TOLERANCE_MINUTES,
) -> LatenessDecision:
    """Raises JustificationRequiredError for a late live ClockIn without text."""
    justification = (justification or "").strip() or None
    approved = LatenessDecision(status=EntryStatus.APPROVED, justification=justification)

    if entry_type != EntryType.CLOCK_IN or not work_hours:
        return approved

    minutes_late = lateness_minutes(punch_ts, work_hours, tz)
    if minutes_late is None or minutes_late <= tolerance_minutes:
        return approved

    if provenance == Provenance.OFFLINE_REPLAY:
        return LatenessDecision(
            status=EntryStatus.PENDING_APPROVAL,
            justification=justification or OFFLINE_LATE_JUSTIFICATION,
            message="Offline punch synchronized, awaiting manager approval.",
            lateness_minutes=minutes_late,
        )

    if provenance == Provenance.KIOSK:
        return LatenessDecision(
            status=EntryStatus.APPROVED,
            justification=f"Kiosk punch registered {minutes_late} min late.",
            message="Kiosk punch registered late.",
            lateness_minutes=minutes_late,
        )

    if justification is None:
        raise JustificationRequiredError(lateness_minutes=minutes_late)

    return LatenessDecision(
        status=EntryStatus.PENDING_APPROVAL,
        justification=justification,
        message="Clock-in registered, awaiting manager approval due to lateness.",
        lateness_minutes=minutes_late,
    )
