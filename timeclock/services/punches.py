from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from timeclock.errors import ApiError
from timeclock.models import (
    CompanyLocation,
    Employee,
    EntryStatus,
    EntryType,
    Kiosk,
    TimeEntry,
)
from timeclock.schemas import PunchRequest
from timeclock.settings import get_settings
from timeclock.services.lateness import evaluate_lateness, resolve_provenance
from timeclock.services.punch_policy import Accept, PunchContext, evaluate_punch_location
from timeclock.services.rate_limit import cooldown_message, cooldown_remaining_seconds
from timeclock.services.schedule import attendance_timezone, normalize_ts

logger = logging.getLogger("timeclock.punches")


@dataclass(frozen=True)
class PunchResult:
    entry: TimeEntry
    message: str
    duplicate: bool = False


def resolve_punch_employee(db: Session, employee_id: str) -> Employee:
    employee = db.get(Employee, employee_id)
    if employee is None or employee.company_id is None:
        raise ApiError(
            status_code=404,
            code="EMPLOYEE_NOT_FOUND",
            message="Employee profile or company link not found.",
        )
    if not employee.is_active:
        raise ApiError(
            status_code=403,
            code="EMPLOYEE_INACTIVE",
            message="Your user is inactive. Punches cannot be registered.",
        )
    return employee


def _resolve_last_effective_entry(db: Session, *, employee_id: str) -> TimeEntry | None:
    return db.scalar(
        select(TimeEntry)
        .where(
            TimeEntry.employee_id == employee_id,
            TimeEntry.status != EntryStatus.REJECTED,
            TimeEntry.type != EntryType.MEDICAL_CERTIFICATE,
        )
        .order_by(TimeEntry.ts_utc.desc(), TimeEntry.id.desc())
        .limit(1)
    )


def _resolve_duplicate_entry(
    db: Session,
    *,
    employee_id: str,
    idempotency_key: str,
    now_utc: datetime,
) -> TimeEntry | None:
    window = timedelta(hours=max(0, get_settings().idempotency_window_hours))
    return db.scalar(
        select(TimeEntry)
        .where(
            TimeEntry.employee_id == employee_id,
            TimeEntry.idempotency_key == idempotency_key,
            TimeEntry.created_at >= now_utc - window,
        )
        .order_by(TimeEntry.id.desc())
        .limit(1)
    )


def _load_company_locations(db: Session, company_id: int) -> list[CompanyLocation]:
    return list(
        db.scalars(
            select(CompanyLocation)
            .where(CompanyLocation.company_id == company_id)
            .order_by(CompanyLocation.position, CompanyLocation.id)
        ).all()
    )


def _load_company_kiosks(db: Session, company_id: int) -> list[Kiosk]:
    return list(
        db.scalars(
            select(Kiosk).where(
                Kiosk.company_id == company_id,
                Kiosk.is_active.is_(True),
            )
        ).all()
    )


def enforce_punch_cooldown(db: Session, *, employee_id: str, now_utc: datetime) -> None:
    last_entry = _resolve_last_effective_entry(db, employee_id=employee_id)
    if last_entry is None:
        return
    remaining = cooldown_remaining_seconds(
        last_entry.ts_utc,
        now_utc,
        timedelta(seconds=get_settings().punch_cooldown_seconds),
    )
    if remaining > 0:
        raise ApiError(
            status_code=429,
            code="PUNCH_COOLDOWN",
            message=cooldown_message(remaining),
            extra={"retry_after_seconds": remaining},
        )


def register_punch(
    db: Session,
    *,
    claims: dict[str, Any],
    payload: PunchRequest,
    request_ip: str | None,
    now_utc: datetime | None = None,
) -> PunchResult:
    settings = get_settings()
    employee_id = str(claims["sub"])
    received_at = normalize_ts(now_utc)
    is_offline_replay = payload.timestamp is not None
    punch_ts = normalize_ts(payload.timestamp) if is_offline_replay else received_at

    employee = resolve_punch_employee(db, employee_id)

    if punch_ts > received_at:
        # A device clock running ahead must not produce future entries.
        logger.warning(
            "punch_replay_timestamp_clamped",
            extra={
                "employee_id": employee.id,
                "captured_ts_utc": punch_ts.isoformat(),
                "received_ts_utc": received_at.isoformat(),
            },
        )
        punch_ts = received_at

    if payload.idempotency_key:
        existing = _resolve_duplicate_entry(
            db,
            employee_id=employee.id,
            idempotency_key=payload.idempotency_key,
            now_utc=received_at,
        )
        if existing is not None:
            logger.info(
                "punch_duplicate_ignored",
                extra={"employee_id": employee.id, "entry_id": existing.id},
            )
            return PunchResult(entry=existing, message="Punch already registered.", duplicate=True)

    if not is_offline_replay:
        enforce_punch_cooldown(db, employee_id=employee.id, now_utc=received_at)

    allowed_locations = list(employee.allowed_locations or [])
    context = PunchContext(
        allowed_locations=allowed_locations,
        company_id=employee.company_id,
        lat=payload.location.lat if payload.location else None,
        lon=payload.location.lon if payload.location else None,
        kiosk_token=payload.kiosk_token,
        locations=_load_company_locations(db, employee.company_id),
        kiosks=_load_company_kiosks(db, employee.company_id) if payload.kiosk_token else [],
        radius_m=settings.geofence_radius_m,
    )
    decision = evaluate_punch_location(context)
    if not isinstance(decision, Accept):
        logger.warning(
            "punch_location_rejected",
            extra={
                "employee_id": employee.id,
                "rule": decision.rule,
                "code": decision.code,
                "closest_distance_m": decision.closest_distance_m,
            },
        )
        raise ApiError(
            status_code=decision.status_code,
            code=decision.code,
            message=decision.message,
        )

    is_kiosk = decision.rule == "kiosk"
    lateness = evaluate_lateness(
        entry_type=payload.type,
        punch_ts=punch_ts,
        work_hours=employee.work_hours,
        tz=attendance_timezone(),
        provenance=resolve_provenance(is_offline_replay=is_offline_replay, is_kiosk=is_kiosk),
        justification=payload.justification,
        tolerance_minutes=settings.lateness_tolerance_minutes,
    )

    entry = TimeEntry(
        employee_id=employee.id,
        display_name=claims.get("name") or employee.display_name or claims.get("email") or employee.id,
        type=payload.type,
        ts_utc=punch_ts,
        lat=decision.lat,
        lon=decision.lon,
        location_name=decision.location_name,
        validated_ip=request_ip,
        status=lateness.status,
        justification=lateness.justification,
        is_edited=False,
        is_offline=is_offline_replay,
        is_kiosk=is_kiosk,
        idempotency_key=payload.idempotency_key,
        created_at=received_at,
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)

    logger.info(
        "punch_registered",
        extra={
            "employee_id": employee.id,
            "entry_id": entry.id,
            "entry_type": entry.type.value,
            "entry_status": entry.status.value,
            "rule": decision.rule,
            "is_offline": is_offline_replay,
            "lateness_minutes": lateness.lateness_minutes,
        },
    )

    message = lateness.message or f"'{payload.type.value}' registered at \"{decision.location_name}\"."
    return PunchResult(entry=entry, message=message)


def list_entries_for_range(
    db: Session,
    *,
    employee_id: str,
    start_date: date,
    end_date: date,
) -> list[TimeEntry]:
    if end_date < start_date:
        raise ApiError(
            status_code=422,
            code="INVALID_DATE_RANGE",
            message="end_date must not be before start_date.",
        )
    tz = attendance_timezone()
    start_utc = datetime.combine(start_date, time.min, tzinfo=tz).astimezone(timezone.utc)
    end_utc = datetime.combine(end_date + timedelta(days=1), time.min, tzinfo=tz).astimezone(timezone.utc)
    return list(
        db.scalars(
            select(TimeEntry)
            .where(
                TimeEntry.employee_id == employee_id,
                TimeEntry.ts_utc >= start_utc,
                TimeEntry.ts_utc < end_utc,
            )
            .order_by(TimeEntry.ts_utc.asc(), TimeEntry.id.asc())
        ).all()
    )


def list_recent_entries(db: Session, *, employee_id: str, limit: int = 50) -> list[TimeEntry]:
    return list(
        db.scalars(
            select(TimeEntry)
            .where(TimeEntry.employee_id == employee_id)
            .order_by(TimeEntry.ts_utc.desc(), TimeEntry.id.desc())
            .limit(limit)
        ).all()
    )
