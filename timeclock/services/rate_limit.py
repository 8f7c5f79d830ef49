from __future__ import annotations

from datetime import datetime, timedelta
from math import ceil

from timeclock.services.schedule import normalize_ts


def cooldown_remaining_seconds(
    last_ts: datetime | None,
    now: datetime,
    cooldown: timedelta,
) -> int:
    """Seconds left before the next punch is allowed; 0 when allowed now."""
    if last_ts is None or cooldown <= timedelta(0):
        return 0
    elapsed = normalize_ts(now) - normalize_ts(last_ts)
    if elapsed >= cooldown:
        return 0
    return max(1, ceil((cooldown - elapsed).total_seconds()))


def cooldown_message(remaining_seconds: int) -> str:
    return f"Wait {remaining_seconds} more seconds before punching again."
