from __future__ import annotations

from datetime import date

from sqlalchemy.orm import Session

from timeclock.models import Employee
from timeclock.schemas import (
    DayBalanceRead,
    EmployeeStatusResponse,
    PeriodReportRead,
    TimeEntryRead,
)
from timeclock.services.balance import DayBalance, compute_period_report, format_signed_duration
from timeclock.services.punches import list_entries_for_range, list_recent_entries
from timeclock.services.schedule import attendance_timezone
from timeclock.services.work_status import allowed_next_types, derive_work_status, last_effective_entry


def _day_to_read(day: DayBalance) -> DayBalanceRead:
    return DayBalanceRead(
        day=day.day,
        entries=[TimeEntryRead.model_validate(item) for item in day.entries],
        total_work=format_signed_duration(day.total_work, signed=False),
        total_break=format_signed_duration(day.total_break, signed=False),
        net_work=format_signed_duration(day.net_work, signed=False),
        expected_work=format_signed_duration(day.expected_work, signed=False),
        daily_balance=format_signed_duration(day.daily_balance),
        in_progress=day.in_progress,
        is_excused=day.is_excused,
        excuse_justification=day.excuse_justification,
    )


def build_period_report(
    db: Session,
    *,
    employee: Employee,
    start_date: date,
    end_date: date,
) -> PeriodReportRead:
    entries = list_entries_for_range(
        db,
        employee_id=employee.id,
        start_date=start_date,
        end_date=end_date,
    )
    summary = compute_period_report(entries, employee.work_hours, attendance_timezone())
    return PeriodReportRead(
        employee_id=employee.id,
        display_name=employee.display_name,
        start_date=start_date,
        end_date=end_date,
        days=[_day_to_read(day) for day in summary.days],
        hours_worked=format_signed_duration(summary.hours_worked, signed=False),
        period_balance=format_signed_duration(summary.period_balance),
    )


def build_employee_status(db: Session, *, employee_id: str) -> EmployeeStatusResponse:
    recent = list_recent_entries(db, employee_id=employee_id, limit=20)
    status = derive_work_status(recent)
    last_entry = last_effective_entry(recent)
    return EmployeeStatusResponse(
        employee_id=employee_id,
        work_status=status.value,
        allowed_next_types=allowed_next_types(status),
        last_entry=TimeEntryRead.model_validate(last_entry) if last_entry is not None else None,
    )
