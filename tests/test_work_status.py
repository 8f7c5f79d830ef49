from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from timeclock.models import EntryStatus, EntryType
from timeclock.services.work_status import WorkStatus, allowed_next_types, derive_work_status

BASE = datetime(2024, 3, 4, 11, 0, tzinfo=timezone.utc)


def _entry(entry_type: EntryType, minutes: int, status: EntryStatus = EntryStatus.APPROVED):
    return SimpleNamespace(type=entry_type, status=status, ts_utc=BASE + timedelta(minutes=minutes))


class WorkStatusTests(unittest.TestCase):
    def test_no_history_is_clocked_out(self) -> None:
        self.assertEqual(derive_work_status([]), WorkStatus.CLOCKED_OUT)

    def test_latest_punch_decides_status(self) -> None:
        newest_first = [_entry(EntryType.BREAK_START, 240), _entry(EntryType.CLOCK_IN, 0)]
        self.assertEqual(derive_work_status(newest_first), WorkStatus.ON_BREAK)

    def test_rejected_and_certificate_entries_are_skipped(self) -> None:
        newest_first = [
            _entry(EntryType.MEDICAL_CERTIFICATE, 300),
            _entry(EntryType.CLOCK_OUT, 200, EntryStatus.REJECTED),
            _entry(EntryType.BREAK_END, 100),
        ]
        self.assertEqual(derive_work_status(newest_first), WorkStatus.WORKING)

    def test_pending_entries_still_count(self) -> None:
        newest_first = [_entry(EntryType.CLOCK_IN, 0, EntryStatus.PENDING_APPROVAL)]
        self.assertEqual(derive_work_status(newest_first), WorkStatus.WORKING)

    def test_allowed_next_types_follow_status(self) -> None:
        self.assertEqual(allowed_next_types(WorkStatus.CLOCKED_OUT), [EntryType.CLOCK_IN])
        self.assertEqual(allowed_next_types(WorkStatus.WORKING), [EntryType.BREAK_START, EntryType.CLOCK_OUT])
        self.assertEqual(allowed_next_types(WorkStatus.ON_BREAK), [EntryType.BREAK_END])


if __name__ == "__main__":
    unittest.main()
