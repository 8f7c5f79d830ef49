from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from timeclock.audit import client_ip, log_audit
from timeclock.db import get_db
from timeclock.models import AuditActorType, CompanyLocation
from timeclock.schemas import (
    CompanyLocationRead,
    EmployeeProfileRead,
    EmployeeStatusResponse,
    PeriodReportRead,
    PunchRequest,
    PunchResponse,
)
from timeclock.security import require_identity
from timeclock.services.punches import register_punch, resolve_punch_employee
from timeclock.services.reports import build_employee_status, build_period_report

router = APIRouter(tags=["punches"])


@router.post("/api/clock-in", response_model=PunchResponse, status_code=status.HTTP_201_CREATED)
def clock_in(
    payload: PunchRequest,
    request: Request,
    response: Response,
    claims: dict[str, Any] = Depends(require_identity),
    db: Session = Depends(get_db),
) -> PunchResponse:
    request.state.employee_id = str(claims["sub"])
    result = register_punch(
        db,
        claims=claims,
        payload=payload,
        request_ip=client_ip(request),
    )
    request.state.entry_id = result.entry.id
    request.state.punch_status = result.entry.status.value
    if result.duplicate:
        response.status_code = status.HTTP_200_OK
    else:
        log_audit(
            db,
            actor_type=AuditActorType.EMPLOYEE,
            actor_id=str(claims["sub"]),
            action="PUNCH_REGISTERED",
            entity_type="time_entry",
            entity_id=str(result.entry.id),
            request=request,
            details={
                "type": result.entry.type.value,
                "status": result.entry.status.value,
                "location_name": result.entry.location_name,
                "is_offline": result.entry.is_offline,
                "is_kiosk": result.entry.is_kiosk,
            },
        )
    return PunchResponse(
        success=result.message,
        entry_id=result.entry.id,
        status=result.entry.status,
        location_name=result.entry.location_name,
        duplicate=result.duplicate,
    )


@router.get("/api/me/profile", response_model=EmployeeProfileRead)
def my_profile(
    claims: dict[str, Any] = Depends(require_identity),
    db: Session = Depends(get_db),
) -> EmployeeProfileRead:
    employee = resolve_punch_employee(db, str(claims["sub"]))
    locations = db.scalars(
        select(CompanyLocation)
        .where(CompanyLocation.company_id == employee.company_id)
        .order_by(CompanyLocation.position, CompanyLocation.id)
    ).all()
    profile = EmployeeProfileRead.model_validate(employee)
    profile.company_locations = [CompanyLocationRead.model_validate(item) for item in locations]
    return profile


@router.get("/api/me/status", response_model=EmployeeStatusResponse)
def my_status(
    claims: dict[str, Any] = Depends(require_identity),
    db: Session = Depends(get_db),
) -> EmployeeStatusResponse:
    employee = resolve_punch_employee(db, str(claims["sub"]))
    return build_employee_status(db, employee_id=employee.id)


@router.get("/api/me/entries", response_model=PeriodReportRead)
def my_entries(
    start_date: date = Query(...),
    end_date: date = Query(...),
    claims: dict[str, Any] = Depends(require_identity),
    db: Session = Depends(get_db),
) -> PeriodReportRead:
    employee = resolve_punch_employee(db, str(claims["sub"]))
    return build_period_report(db, employee=employee, start_date=start_date, end_date=end_date)
