from datetime import date, datetime
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, StringConstraints, field_validator

from timeclock.models import PUNCH_TYPES, EmployeeStatus, EntryStatus, EntryType
from timeclock.services.schedule import LEGACY_WEEKDAY_TEMPLATE_KEY, WEEKDAY_KEYS, parse_hhmm

SCHEDULE_KEYS = frozenset(WEEKDAY_KEYS) | {LEGACY_WEEKDAY_TEMPLATE_KEY}

# Mandatory free text; whitespace alone does not count.
Reason = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=2000)]


class Coordinates(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lon: float = Field(ge=-180, le=180)


class PunchRequest(BaseModel):
    type: EntryType
    location: Coordinates | None = None
    kiosk_token: str | None = Field(default=None, max_length=256)
    justification: str | None = Field(default=None, max_length=2000)
    # Present only when an offline queue replays a punch captured earlier.
    timestamp: datetime | None = None
    idempotency_key: str | None = Field(default=None, min_length=8, max_length=64)

    @field_validator("type")
    @classmethod
    def _only_punch_types(cls, value: EntryType) -> EntryType:
        if value not in PUNCH_TYPES:
            raise ValueError("type must be one of CLOCK_IN, BREAK_START, BREAK_END, CLOCK_OUT")
        return value


class PunchResponse(BaseModel):
    success: str
    entry_id: int | None = None
    status: EntryStatus
    location_name: str | None = None
    duplicate: bool = False


class TimeEntryRead(BaseModel):
    id: int
    employee_id: str
    display_name: str
    type: EntryType
    ts_utc: datetime
    lat: float | None = None
    lon: float | None = None
    location_name: str | None = None
    status: EntryStatus
    justification: str | None = None
    rejection_reason: str | None = None
    is_edited: bool = False
    edit_reason: str | None = None
    original_ts_utc: datetime | None = None
    is_offline: bool = False
    is_kiosk: bool = False

    model_config = ConfigDict(from_attributes=True)


class DayBalanceRead(BaseModel):
    day: date
    entries: list[TimeEntryRead]
    total_work: str
    total_break: str
    net_work: str
    expected_work: str
    daily_balance: str
    in_progress: bool
    is_excused: bool = False
    excuse_justification: str | None = None


class PeriodReportRead(BaseModel):
    employee_id: str
    display_name: str
    start_date: date
    end_date: date
    days: list[DayBalanceRead]
    hours_worked: str
    period_balance: str


class EmployeeStatusResponse(BaseModel):
    employee_id: str
    work_status: str
    allowed_next_types: list[EntryType]
    last_entry: TimeEntryRead | None = None


class DaySchedule(BaseModel):
    is_work_day: bool | None = Field(default=None, alias="isWorkDay")
    entry: str | None = None
    break_start: str | None = Field(default=None, alias="breakStart")
    break_end: str | None = Field(default=None, alias="breakEnd")
    exit: str | None = None

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("entry", "break_start", "break_end", "exit")
    @classmethod
    def _validate_hhmm(cls, value: str | None) -> str | None:
        if value is None or value == "":
            return None
        if parse_hhmm(value) is None:
            raise ValueError("time must use HH:MM")
        return value


def _validate_work_hours(value: dict[str, DaySchedule] | None) -> dict[str, DaySchedule] | None:
    if value is None:
        return None
    unknown = sorted(key for key in value if key not in SCHEDULE_KEYS)
    if unknown:
        raise ValueError(f"unknown schedule keys: {', '.join(unknown)}")
    return value


WorkHours = Annotated[dict[str, DaySchedule] | None, AfterValidator(_validate_work_hours)]


def dump_work_hours(value: dict[str, DaySchedule] | None) -> dict[str, Any] | None:
    if value is None:
        return None
    return {key: item.model_dump(by_alias=True, exclude_none=True) for key, item in value.items()}


class EmployeeCreate(BaseModel):
    id: str = Field(min_length=1, max_length=128)
    display_name: str = Field(min_length=1, max_length=255)
    email: str | None = Field(default=None, max_length=320)
    status: EmployeeStatus = EmployeeStatus.ACTIVE
    allowed_locations: list[str] = Field(default_factory=list)
    work_hours: WorkHours = None
    tax_id: str | None = None
    job_title: str | None = None


class EmployeeUpdate(BaseModel):
    display_name: str = Field(min_length=1, max_length=255)
    email: str | None = Field(default=None, max_length=320)
    status: EmployeeStatus = EmployeeStatus.ACTIVE
    allowed_locations: list[str] = Field(default_factory=list)
    work_hours: WorkHours = None
    tax_id: str | None = None
    job_title: str | None = None


class EmployeeRead(BaseModel):
    id: str
    display_name: str
    email: str | None = None
    company_id: int | None = None
    status: EmployeeStatus | None = None
    allowed_locations: list[str] = Field(default_factory=list)
    work_hours: dict[str, Any] | None = None
    tax_id: str | None = None
    job_title: str | None = None

    model_config = ConfigDict(from_attributes=True)


class CompanyLocationPayload(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    full_address: str = Field(min_length=1, max_length=1000)
    location: Coordinates | None = None
    is_main: bool = False


class CompanyUpsertRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    tax_id: str | None = Field(default=None, max_length=32)
    locations: list[CompanyLocationPayload] = Field(min_length=1)


class CompanyLocationRead(BaseModel):
    name: str
    full_address: str
    lat: float | None = None
    lon: float | None = None
    is_main: bool = False

    model_config = ConfigDict(from_attributes=True)


class CompanyRead(BaseModel):
    id: int | None = None
    name: str
    tax_id: str | None = None
    locations: list[CompanyLocationRead] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class EmployeeProfileRead(EmployeeRead):
    company_locations: list[CompanyLocationRead] = Field(default_factory=list)


class KioskCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)


class KioskRead(BaseModel):
    id: int
    name: str
    is_active: bool
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class KioskCreateResponse(BaseModel):
    success: str
    kiosk: KioskRead
    # Shown once; only a hash is stored.
    auth_token: str


class EntryRejectRequest(BaseModel):
    reason: Reason


class EntryEditRequest(BaseModel):
    new_timestamp: datetime
    new_type: EntryType
    reason: Reason

    @field_validator("new_type")
    @classmethod
    def _only_punch_types(cls, value: EntryType) -> EntryType:
        if value not in PUNCH_TYPES:
            raise ValueError("new_type must be a punch type")
        return value


class MedicalCertificateRequest(BaseModel):
    employee_id: str = Field(min_length=1, max_length=128)
    day: date
    reason: Reason


class ActionResponse(BaseModel):
    success: str
    entry: TimeEntryRead | None = None
