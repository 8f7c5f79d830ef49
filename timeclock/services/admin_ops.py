from __future__ import annotations

from datetime import datetime, time, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from timeclock.errors import ApiError
from timeclock.models import (
    Company,
    CompanyLocation,
    Employee,
    EmployeeStatus,
    EntryStatus,
    EntryType,
    Kiosk,
    TimeEntry,
)
from timeclock.schemas import (
    CompanyUpsertRequest,
    EmployeeCreate,
    EmployeeUpdate,
    EntryEditRequest,
    MedicalCertificateRequest,
    dump_work_hours,
)
from timeclock.security import generate_kiosk_token, hash_kiosk_token
from timeclock.services.geocoding import geocode_address
from timeclock.services.schedule import attendance_timezone, normalize_ts

# Applied when an employee is created without a schedule.
DEFAULT_WORK_HOURS: dict[str, Any] = {
    "weekday": {
        "entry": "08:00",
        "breakStart": "12:00",
        "breakEnd": "13:00",
        "exit": "18:00",
    },
    "saturday": {
        "isWorkDay": False,
        "entry": "08:00",
        "breakStart": "12:00",
        "breakEnd": "12:00",
        "exit": "12:00",
    },
}


def resolve_admin_company_id(db: Session, claims: dict[str, Any], *, required: bool = True) -> int | None:
    admin_employee = db.get(Employee, str(claims["sub"]))
    company_id = admin_employee.company_id if admin_employee is not None else None
    if company_id is None and required:
        raise ApiError(
            status_code=400,
            code="ADMIN_WITHOUT_COMPANY",
            message="Administrator is not linked to a company. Register the company profile first.",
        )
    return company_id


def get_company(db: Session, claims: dict[str, Any]) -> Company:
    company_id = resolve_admin_company_id(db, claims, required=False)
    company = db.get(Company, company_id) if company_id is not None else None
    if company is None:
        raise ApiError(status_code=404, code="COMPANY_NOT_FOUND", message="Company profile not found.")
    return company


def upsert_company(db: Session, claims: dict[str, Any], payload: CompanyUpsertRequest) -> Company:
    resolved_locations: list[CompanyLocation] = []
    for position, item in enumerate(payload.locations):
        if item.location is not None:
            lat, lon = item.location.lat, item.location.lon
        else:
            lat, lon = geocode_address(item.full_address)
        resolved_locations.append(
            CompanyLocation(
                position=position,
                name=item.name.strip(),
                full_address=item.full_address.strip(),
                lat=lat,
                lon=lon,
                is_main=item.is_main,
            )
        )

    admin_id = str(claims["sub"])
    admin_employee = db.get(Employee, admin_id)
    company = None
    if admin_employee is not None and admin_employee.company_id is not None:
        company = db.get(Company, admin_employee.company_id)
    if company is None:
        company = Company(name=payload.name)
        db.add(company)

    company.name = payload.name.strip()
    company.tax_id = payload.tax_id
    company.locations.clear()
    db.flush()
    company.locations.extend(resolved_locations)

    if admin_employee is None:
        admin_employee = Employee(
            id=admin_id,
            display_name=claims.get("name") or claims.get("email") or admin_id,
            email=claims.get("email"),
            status=EmployeeStatus.ACTIVE,
            allowed_locations=[],
        )
        db.add(admin_employee)
    admin_employee.company = company

    db.commit()
    db.refresh(company)
    return company


def list_company_employees(db: Session, claims: dict[str, Any]) -> list[Employee]:
    company_id = resolve_admin_company_id(db, claims)
    return list(
        db.scalars(
            select(Employee)
            .where(Employee.company_id == company_id)
            .order_by(Employee.display_name, Employee.id)
        ).all()
    )


def get_company_employee(db: Session, claims: dict[str, Any], employee_id: str) -> Employee:
    company_id = resolve_admin_company_id(db, claims)
    employee = db.get(Employee, employee_id)
    if employee is None or employee.company_id != company_id:
        raise ApiError(status_code=404, code="EMPLOYEE_NOT_FOUND", message="Employee not found.")
    return employee


def _commit_employee(db: Session, employee: Employee) -> Employee:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ApiError(
            status_code=409,
            code="EMPLOYEE_CONFLICT",
            message="An employee with this id or e-mail already exists.",
        ) from exc
    db.refresh(employee)
    return employee


def create_employee(db: Session, claims: dict[str, Any], payload: EmployeeCreate) -> Employee:
    company_id = resolve_admin_company_id(db, claims)
    if db.get(Employee, payload.id) is not None:
        raise ApiError(
            status_code=409,
            code="EMPLOYEE_CONFLICT",
            message="An employee with this id or e-mail already exists.",
        )

    work_hours = dump_work_hours(payload.work_hours)
    employee = Employee(
        id=payload.id,
        display_name=payload.display_name.strip(),
        email=payload.email,
        company_id=company_id,
        status=payload.status,
        allowed_locations=list(payload.allowed_locations),
        work_hours=work_hours if work_hours is not None else dict(DEFAULT_WORK_HOURS),
        tax_id=payload.tax_id,
        job_title=payload.job_title,
    )
    db.add(employee)
    return _commit_employee(db, employee)


def update_employee(
    db: Session,
    claims: dict[str, Any],
    employee_id: str,
    payload: EmployeeUpdate,
) -> Employee:
    employee = get_company_employee(db, claims, employee_id)
    employee.display_name = payload.display_name.strip()
    employee.email = payload.email
    employee.status = payload.status
    employee.allowed_locations = list(payload.allowed_locations)
    employee.work_hours = dump_work_hours(payload.work_hours)
    employee.tax_id = payload.tax_id
    employee.job_title = payload.job_title
    return _commit_employee(db, employee)


def delete_employee(db: Session, claims: dict[str, Any], employee_id: str) -> None:
    if str(claims["sub"]) == employee_id:
        raise ApiError(
            status_code=400,
            code="CANNOT_DELETE_SELF",
            message="You cannot remove your own administrator account.",
        )
    employee = get_company_employee(db, claims, employee_id)
    db.delete(employee)
    db.commit()


def list_kiosks(db: Session, claims: dict[str, Any]) -> list[Kiosk]:
    company_id = resolve_admin_company_id(db, claims)
    return list(
        db.scalars(select(Kiosk).where(Kiosk.company_id == company_id).order_by(Kiosk.name, Kiosk.id)).all()
    )


def create_kiosk(db: Session, claims: dict[str, Any], name: str) -> tuple[Kiosk, str]:
    """Returns the kiosk and its plaintext token, which is never stored."""
    company_id = resolve_admin_company_id(db, claims)
    token = generate_kiosk_token()
    kiosk = Kiosk(
        company_id=company_id,
        name=name.strip(),
        token_hash=hash_kiosk_token(token),
        is_active=True,
    )
    db.add(kiosk)
    db.commit()
    db.refresh(kiosk)
    return kiosk, token


def delete_kiosk(db: Session, claims: dict[str, Any], kiosk_id: int) -> Kiosk:
    company_id = resolve_admin_company_id(db, claims)
    kiosk = db.get(Kiosk, kiosk_id)
    if kiosk is None:
        raise ApiError(status_code=404, code="KIOSK_NOT_FOUND", message="Kiosk not found.")
    if kiosk.company_id != company_id:
        raise ApiError(
            status_code=403,
            code="FORBIDDEN",
            message="Access denied. Kiosk does not belong to this company.",
        )
    db.delete(kiosk)
    db.commit()
    return kiosk


def list_pending_entries(db: Session, claims: dict[str, Any]) -> list[TimeEntry]:
    company_id = resolve_admin_company_id(db, claims)
    return list(
        db.scalars(
            select(TimeEntry)
            .join(Employee, Employee.id == TimeEntry.employee_id)
            .where(
                Employee.company_id == company_id,
                TimeEntry.status == EntryStatus.PENDING_APPROVAL,
            )
            .order_by(TimeEntry.ts_utc.asc(), TimeEntry.id.asc())
        ).all()
    )


def _get_company_entry(db: Session, claims: dict[str, Any], entry_id: int) -> TimeEntry:
    company_id = resolve_admin_company_id(db, claims)
    entry = db.get(TimeEntry, entry_id)
    if entry is None or entry.employee is None or entry.employee.company_id != company_id:
        raise ApiError(status_code=404, code="ENTRY_NOT_FOUND", message="Time entry not found.")
    return entry


def _require_pending(entry: TimeEntry) -> None:
    # Approved and rejected are final states.
    if entry.status != EntryStatus.PENDING_APPROVAL:
        raise ApiError(
            status_code=409,
            code="ENTRY_NOT_PENDING",
            message=f"Time entry is {entry.status.value} and no longer awaits a decision.",
        )


def approve_entry(db: Session, claims: dict[str, Any], entry_id: int) -> TimeEntry:
    entry = _get_company_entry(db, claims, entry_id)
    _require_pending(entry)
    entry.status = EntryStatus.APPROVED
    entry.rejection_reason = None
    db.commit()
    db.refresh(entry)
    return entry


def reject_entry(db: Session, claims: dict[str, Any], entry_id: int, reason: str) -> TimeEntry:
    entry = _get_company_entry(db, claims, entry_id)
    _require_pending(entry)
    entry.status = EntryStatus.REJECTED
    entry.rejection_reason = reason
    db.commit()
    db.refresh(entry)
    return entry


def _corrected_ts_utc(value: datetime) -> datetime:
    # Admins type corrections in local wall-clock time.
    if value.tzinfo is None:
        return value.replace(tzinfo=attendance_timezone()).astimezone(timezone.utc)
    return normalize_ts(value)


def edit_entry(db: Session, claims: dict[str, Any], entry_id: int, payload: EntryEditRequest) -> TimeEntry:
    entry = _get_company_entry(db, claims, entry_id)
    if entry.type == EntryType.MEDICAL_CERTIFICATE:
        raise ApiError(
            status_code=400,
            code="ENTRY_NOT_EDITABLE",
            message="Medical certificates cannot be edited as punches.",
        )
    if entry.original_ts_utc is None:
        entry.original_ts_utc = entry.ts_utc
    entry.ts_utc = _corrected_ts_utc(payload.new_timestamp)
    entry.type = payload.new_type
    entry.is_edited = True
    entry.edit_reason = payload.reason
    db.commit()
    db.refresh(entry)
    return entry


def register_medical_certificate(
    db: Session,
    claims: dict[str, Any],
    payload: MedicalCertificateRequest,
) -> TimeEntry:
    employee = get_company_employee(db, claims, payload.employee_id)
    # Noon keeps the record on the intended local day.
    local_noon = datetime.combine(payload.day, time(12, 0), tzinfo=attendance_timezone())
    entry = TimeEntry(
        employee_id=employee.id,
        display_name=employee.display_name,
        type=EntryType.MEDICAL_CERTIFICATE,
        ts_utc=local_noon.astimezone(timezone.utc),
        status=EntryStatus.APPROVED,
        justification=payload.reason.strip(),
        is_edited=False,
        is_offline=False,
        is_kiosk=False,
        created_at=datetime.now(timezone.utc),
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return entry
