from datetime import date, datetime, time
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, EmailStr, field_validator

MAX_GUEST_NAME_LENGTH = 120
MAX_APPOINTMENT_NOTES_LENGTH = 2000
MAX_PHONE_LENGTH = 32


def normalize_timezone(value: str) -> str:
    normalized = value.strip()
    try:
        ZoneInfo(normalized)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError('Unknown timezone.') from exc
    return normalized


def _normalize_slot_time(value):
    if isinstance(value, str):
        parts = value.strip().split(':')
        if len(parts) not in (2, 3) or not all(part.isdigit() for part in parts):
            raise ValueError('Time must use the HH:MM format.')
        value = time(int(parts[0]), int(parts[1]))
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    return value


class CreateAppointmentRequest(BaseModel):
    appointment_date: date
    appointment_time: time
    guest_name: str
    guest_email: EmailStr
    guest_phone: str | None = None
    notes: str | None = None
    assessment_id: int | None = None

    @field_validator('appointment_time', mode='before')
    @classmethod
    def validate_appointment_time(cls, value):
        return _normalize_slot_time(value)

    @field_validator('guest_name')
    @classmethod
    def validate_guest_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Name is required.')
        if len(normalized) > MAX_GUEST_NAME_LENGTH:
            raise ValueError(f'Name must be {MAX_GUEST_NAME_LENGTH} characters or fewer.')
        return normalized

    @field_validator('guest_email')
    @classmethod
    def validate_guest_email(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator('guest_phone')
    @classmethod
    def validate_guest_phone(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        if not normalized:
            return None
        if len(normalized) > MAX_PHONE_LENGTH:
            raise ValueError('Phone number is too long.')
        return normalized

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_APPOINTMENT_NOTES_LENGTH:
            raise ValueError(f'Notes must be {MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')

        return normalized


class RescheduleAppointmentRequest(BaseModel):
    new_date: date
    new_time: time

    @field_validator('new_time', mode='before')
    @classmethod
    def validate_new_time(cls, value):
        return _normalize_slot_time(value)


class BusyPeriodsRequest(BaseModel):
    date: date
    timezone: str | None = None

    @field_validator('timezone')
    @classmethod
    def validate_timezone(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return normalize_timezone(value)


class BusyPeriodResponse(BaseModel):
    start: str
    end: str


class BusyPeriodsResponse(BaseModel):
    busy_periods: list[BusyPeriodResponse]
    configured: bool
    checked: bool = True


class AvailableDatesResponse(BaseModel):
    dates: list[date]
    timezone: str


class AvailableSlotsResponse(BaseModel):
    date: date
    slots: list[str]
    duration_minutes: int
    timezone: str
    calendar_checked: bool


class PublicSettingsResponse(BaseModel):
    appointment_duration_minutes: int
    advance_booking_days: int
    timezone: str


class BookedAppointmentResponse(BaseModel):
    id: int
    appointment_date: date
    appointment_time: time
    duration_minutes: int
    guest_name: str
    status: str
    meeting_join_url: str | None = None

    class Config:
        from_attributes = True


class AppointmentLookupResponse(BaseModel):
    id: int
    guest_name: str
    guest_email: str
    appointment_date: date
    appointment_time: time
    duration_minutes: int
    status: str
    meeting_join_url: str | None = None

    class Config:
        from_attributes = True


class AppointmentActionResponse(BaseModel):
    success: bool
    message: str
    appointment: AppointmentLookupResponse


class AdminAppointmentResponse(AppointmentLookupResponse):
    guest_phone: str | None = None
    notes: str | None = None
    meeting_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
