from datetime import date, datetime, time

from pydantic import BaseModel, Field, field_validator, model_validator

from backend.schemas.booking import normalize_timezone

MAX_BLOCKED_REASON_LENGTH = 255


class WorkingHoursEntry(BaseModel):
    day_of_week: int = Field(ge=0, le=6)
    start_time: time
    end_time: time
    is_available: bool = True

    @model_validator(mode='after')
    def validate_time_range(self) -> 'WorkingHoursEntry':
        if self.end_time <= self.start_time:
            raise ValueError('End time must be after start time.')
        return self

    class Config:
        from_attributes = True


class UpdateWorkingHoursRequest(BaseModel):
    days: list[WorkingHoursEntry]

    @field_validator('days')
    @classmethod
    def validate_unique_days(cls, value: list[WorkingHoursEntry]) -> list[WorkingHoursEntry]:
        seen = [entry.day_of_week for entry in value]
        if len(seen) != len(set(seen)):
            raise ValueError('Each day of the week may only appear once.')
        return value


class CreateBlockedDateRequest(BaseModel):
    blocked_date: date
    reason: str | None = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        if not normalized:
            return None
        if len(normalized) > MAX_BLOCKED_REASON_LENGTH:
            raise ValueError(f'Reason must be {MAX_BLOCKED_REASON_LENGTH} characters or fewer.')
        return normalized


class BlockedDateResponse(BaseModel):
    id: int
    blocked_date: date
    reason: str | None = None

    class Config:
        from_attributes = True


class AdminSettingsPayload(BaseModel):
    appointment_duration_minutes: int = Field(ge=5, le=480)
    buffer_minutes: int = Field(ge=0, le=240)
    advance_booking_days: int = Field(ge=1, le=365)
    default_monthly_capacity: int = Field(ge=0, le=1000)
    timezone: str

    @field_validator('timezone')
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        return normalize_timezone(value)


class CalendarStatusResponse(BaseModel):
    configured: bool
    calendar_id: str | None = None
    personal_calendar_configured: bool
    checked_at: datetime
