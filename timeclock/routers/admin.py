from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from timeclock.audit import log_audit
from timeclock.db import get_db
from timeclock.models import AuditActorType
from timeclock.schemas import (
    ActionResponse,
    CompanyRead,
    CompanyUpsertRequest,
    EmployeeCreate,
    EmployeeRead,
    EmployeeUpdate,
    EntryEditRequest,
    EntryRejectRequest,
    KioskCreateRequest,
    KioskCreateResponse,
    KioskRead,
    MedicalCertificateRequest,
    PeriodReportRead,
    TimeEntryRead,
)
from timeclock.security import require_admin
from timeclock.services import admin_ops
from timeclock.services.reports import build_period_report

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])


def _audit(
    db: Session,
    request: Request,
    claims: dict[str, Any],
    *,
    action: str,
    entity_type: str,
    entity_id: str | int | None,
    details: dict[str, Any] | None = None,
) -> None:
    log_audit(
        db,
        actor_type=AuditActorType.ADMIN,
        actor_id=str(claims["sub"]),
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        request=request,
        details=details,
    )


@router.get("/company", response_model=CompanyRead)
def get_company(
    claims: dict[str, Any] = Depends(require_admin),
    db: Session = Depends(get_db),
) -> CompanyRead:
    return CompanyRead.model_validate(admin_ops.get_company(db, claims))


@router.put("/company", response_model=CompanyRead)
def upsert_company(
    payload: CompanyUpsertRequest,
    request: Request,
    claims: dict[str, Any] = Depends(require_admin),
    db: Session = Depends(get_db),
) -> CompanyRead:
    company = admin_ops.upsert_company(db, claims, payload)
    _audit(
        db,
        request,
        claims,
        action="COMPANY_UPSERTED",
        entity_type="company",
        entity_id=company.id,
        details={"name": company.name, "location_count": len(company.locations)},
    )
    return CompanyRead.model_validate(company)


@router.get("/employees", response_model=list[EmployeeRead])
def list_employees(
    claims: dict[str, Any] = Depends(require_admin),
    db: Session = Depends(get_db),
) -> list[EmployeeRead]:
    return [EmployeeRead.model_validate(item) for item in admin_ops.list_company_employees(db, claims)]


@router.post("/employees", response_model=EmployeeRead, status_code=status.HTTP_201_CREATED)
def create_employee(
    payload: EmployeeCreate,
    request: Request,
    claims: dict[str, Any] = Depends(require_admin),
    db: Session = Depends(get_db),
) -> EmployeeRead:
    employee = admin_ops.create_employee(db, claims, payload)
    _audit(
        db,
        request,
        claims,
        action="EMPLOYEE_CREATED",
        entity_type="employee",
        entity_id=employee.id,
        details={"display_name": employee.display_name},
    )
    return EmployeeRead.model_validate(employee)


@router.get("/employees/{employee_id}", response_model=EmployeeRead)
def get_employee(
    employee_id: str,
    claims: dict[str, Any] = Depends(require_admin),
    db: Session = Depends(get_db),
) -> EmployeeRead:
    return EmployeeRead.model_validate(admin_ops.get_company_employee(db, claims, employee_id))


@router.put("/employees/{employee_id}", response_model=EmployeeRead)
def update_employee(
    employee_id: str,
    payload: EmployeeUpdate,
    request: Request,
    claims: dict[str, Any] = Depends(require_admin),
    db: Session = Depends(get_db),
) -> EmployeeRead:
    employee = admin_ops.update_employee(db, claims, employee_id, payload)
    _audit(
        db,
        request,
        claims,
        action="EMPLOYEE_UPDATED",
        entity_type="employee",
        entity_id=employee.id,
        details={
            "status": employee.status.value,
            "allowed_locations": list(employee.allowed_locations or []),
        },
    )
    return EmployeeRead.model_validate(employee)


@router.delete("/employees/{employee_id}", response_model=ActionResponse)
def delete_employee(
    employee_id: str,
    request: Request,
    claims: dict[str, Any] = Depends(require_admin),
    db: Session = Depends(get_db),
) -> ActionResponse:
    admin_ops.delete_employee(db, claims, employee_id)
    _audit(db, request, claims, action="EMPLOYEE_DELETED", entity_type="employee", entity_id=employee_id)
    return ActionResponse(success="Employee removed.")


@router.get("/kiosks", response_model=list[KioskRead])
def list_kiosks(
    claims: dict[str, Any] = Depends(require_admin),
    db: Session = Depends(get_db),
) -> list[KioskRead]:
    return [KioskRead.model_validate(item) for item in admin_ops.list_kiosks(db, claims)]


@router.post("/kiosks", response_model=KioskCreateResponse, status_code=status.HTTP_201_CREATED)
def create_kiosk(
    payload: KioskCreateRequest,
    request: Request,
    claims: dict[str, Any] = Depends(require_admin),
    db: Session = Depends(get_db),
) -> KioskCreateResponse:
    kiosk, token = admin_ops.create_kiosk(db, claims, payload.name)
    _audit(
        db,
        request,
        claims,
        action="KIOSK_CREATED",
        entity_type="kiosk",
        entity_id=kiosk.id,
        details={"name": kiosk.name},
    )
    return KioskCreateResponse(
        success="Kiosk created.",
        kiosk=KioskRead.model_validate(kiosk),
        auth_token=token,
    )


@router.delete("/kiosks/{kiosk_id}", response_model=ActionResponse)
def delete_kiosk(
    kiosk_id: int,
    request: Request,
    claims: dict[str, Any] = Depends(require_admin),
    db: Session = Depends(get_db),
) -> ActionResponse:
    kiosk = admin_ops.delete_kiosk(db, claims, kiosk_id)
    _audit(
        db,
        request,
        claims,
        action="KIOSK_DELETED",
        entity_type="kiosk",
        entity_id=kiosk_id,
        details={"name": kiosk.name},
    )
    return ActionResponse(success="Kiosk removed.")


@router.get("/pending-entries", response_model=list[TimeEntryRead])
def list_pending_entries(
    claims: dict[str, Any] = Depends(require_admin),
    db: Session = Depends(get_db),
) -> list[TimeEntryRead]:
    return [TimeEntryRead.model_validate(item) for item in admin_ops.list_pending_entries(db, claims)]


@router.post("/entries/{entry_id}/approve", response_model=ActionResponse)
def approve_entry(
    entry_id: int,
    request: Request,
    claims: dict[str, Any] = Depends(require_admin),
    db: Session = Depends(get_db),
) -> ActionResponse:
    entry = admin_ops.approve_entry(db, claims, entry_id)
    _audit(db, request, claims, action="ENTRY_APPROVED", entity_type="time_entry", entity_id=entry.id)
    return ActionResponse(success="Time entry approved.", entry=TimeEntryRead.model_validate(entry))


@router.post("/entries/{entry_id}/reject", response_model=ActionResponse)
def reject_entry(
    entry_id: int,
    payload: EntryRejectRequest,
    request: Request,
    claims: dict[str, Any] = Depends(require_admin),
    db: Session = Depends(get_db),
) -> ActionResponse:
    entry = admin_ops.reject_entry(db, claims, entry_id, payload.reason)
    _audit(
        db,
        request,
        claims,
        action="ENTRY_REJECTED",
        entity_type="time_entry",
        entity_id=entry.id,
        details={"reason": entry.rejection_reason},
    )
    return ActionResponse(success="Time entry rejected.", entry=TimeEntryRead.model_validate(entry))


@router.put("/entries/{entry_id}", response_model=ActionResponse)
def edit_entry(
    entry_id: int,
    payload: EntryEditRequest,
    request: Request,
    claims: dict[str, Any] = Depends(require_admin),
    db: Session = Depends(get_db),
) -> ActionResponse:
    entry = admin_ops.edit_entry(db, claims, entry_id, payload)
    _audit(
        db,
        request,
        claims,
        action="ENTRY_EDITED",
        entity_type="time_entry",
        entity_id=entry.id,
        details={
            "type": entry.type.value,
            "ts_utc": entry.ts_utc.isoformat(),
            "original_ts_utc": entry.original_ts_utc.isoformat() if entry.original_ts_utc else None,
            "reason": entry.edit_reason,
        },
    )
    return ActionResponse(success="Time entry updated.", entry=TimeEntryRead.model_validate(entry))


@router.get("/reports/time-entries", response_model=PeriodReportRead)
def time_entries_report(
    employee_id: str = Query(..., min_length=1),
    start_date: date = Query(...),
    end_date: date = Query(...),
    claims: dict[str, Any] = Depends(require_admin),
    db: Session = Depends(get_db),
) -> PeriodReportRead:
    employee = admin_ops.get_company_employee(db, claims, employee_id)
    return build_period_report(db, employee=employee, start_date=start_date, end_date=end_date)


@router.post("/medical-certificate", response_model=ActionResponse, status_code=status.HTTP_201_CREATED)
def register_medical_certificate(
    payload: MedicalCertificateRequest,
    request: Request,
    claims: dict[str, Any] = Depends(require_admin),
    db: Session = Depends(get_db),
) -> ActionResponse:
    entry = admin_ops.register_medical_certificate(db, claims, payload)
    _audit(
        db,
        request,
        claims,
        action="MEDICAL_CERTIFICATE_REGISTERED",
        entity_type="time_entry",
        entity_id=entry.id,
        details={"employee_id": entry.employee_id, "day": payload.day.isoformat()},
    )
    return ActionResponse(success="Medical certificate registered.", entry=TimeEntryRead.model_validate(entry))
