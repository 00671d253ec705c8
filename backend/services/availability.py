"""
Availability calculator.

Slots are derived from the weekly working hours, blocked dates, the booking
horizon and the slot step (duration + buffer), then thinned out by already
booked appointments and by calendar busy periods. The pure functions below
take every input explicitly; ``get_available_slots`` is the only piece that
touches the database and the calendar gateway.
"""
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional, Protocol
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from backend.core import config
from backend.core.errors import BookingError
from backend.models.admin_settings import (
    DEFAULT_ADVANCE_BOOKING_DAYS,
    DEFAULT_APPOINTMENT_DURATION_MINUTES,
    DEFAULT_BUFFER_MINUTES,
    DEFAULT_MONTHLY_CAPACITY,
    AdminSettings,
)
from backend.models.appointment import STATUS_CANCELLED, Appointment
from backend.models.blocked_date import BlockedDate
from backend.models.working_hours import WorkingHours
from backend.services.calendar_gateway import BusyPeriod

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SchedulingSettings:
    appointment_duration_minutes: int = DEFAULT_APPOINTMENT_DURATION_MINUTES
    buffer_minutes: int = DEFAULT_BUFFER_MINUTES
    advance_booking_days: int = DEFAULT_ADVANCE_BOOKING_DAYS
    default_monthly_capacity: int = DEFAULT_MONTHLY_CAPACITY
    timezone: str = config.DEFAULT_TIMEZONE

    @classmethod
    def from_model(cls, row: Optional[AdminSettings]) -> 'SchedulingSettings':
        if row is None:
            return cls()
        return cls(
            appointment_duration_minutes=row.appointment_duration_minutes or DEFAULT_APPOINTMENT_DURATION_MINUTES,
            buffer_minutes=row.buffer_minutes or 0,
            advance_booking_days=row.advance_booking_days or 0,
            default_monthly_capacity=row.default_monthly_capacity or DEFAULT_MONTHLY_CAPACITY,
            timezone=row.timezone or config.DEFAULT_TIMEZONE,
        )

    @property
    def slot_step_minutes(self) -> int:
        return self.appointment_duration_minutes + self.buffer_minutes

    def local_now(self) -> datetime:
        """Current wall-clock time in the scheduling timezone, without tzinfo."""
        return datetime.now(ZoneInfo(self.timezone)).replace(tzinfo=None, microsecond=0)


class DayHoursLike(Protocol):
    day_of_week: int
    start_time: time
    end_time: time
    is_available: bool


@dataclass(frozen=True)
class BookedInterval:
    start: time
    duration_minutes: int


@dataclass
class DaySlots:
    date: date
    slots: list[str]
    calendar_checked: bool


def day_of_week(day: date) -> int:
    """0 = Sunday ... 6 = Saturday."""
    return day.isoweekday() % 7


def to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def format_slot(minutes: int) -> str:
    return f'{minutes // 60:02d}:{minutes % 60:02d}'


def find_day_hours(working_hours: Iterable[DayHoursLike], day: date) -> Optional[DayHoursLike]:
    weekday = day_of_week(day)
    for row in working_hours:
        if row.day_of_week == weekday:
            return row
    return None


def is_date_available(
    day: date,
    settings: SchedulingSettings,
    working_hours: Sequence[DayHoursLike],
    blocked_dates: Iterable[date],
    today: date,
) -> bool:
    if day < today:
        return False

    if day > today + timedelta(days=settings.advance_booking_days):
        return False

    if day in set(blocked_dates):
        return False

    day_hours = find_day_hours(working_hours, day)
    return bool(day_hours and day_hours.is_available)


def generate_candidate_slots(day_hours: DayHoursLike, settings: SchedulingSettings) -> list[int]:
    """Slot starts as minutes after midnight, before any exclusions."""
    if settings.appointment_duration_minutes <= 0 or settings.slot_step_minutes <= 0:
        return []

    start = to_minutes(day_hours.start_time)
    end = to_minutes(day_hours.end_time)
    duration = settings.appointment_duration_minutes

    candidates = []
    current = start
    while current + duration <= end:
        candidates.append(current)
        current += settings.slot_step_minutes
    return candidates


def _overlaps(start: int, duration: int, other_start: int, other_end: int) -> bool:
    return start < other_end and start + duration > other_start


def compute_slots(
    day: date,
    settings: SchedulingSettings,
    working_hours: Sequence[DayHoursLike],
    blocked_dates: Iterable[date],
    booked: Iterable[BookedInterval] = (),
    busy_periods: Iterable[BusyPeriod] = (),
    now: Optional[datetime] = None,
) -> list[str]:
    """Ordered ``HH:MM`` slot starts that can still be booked on ``day``.

    ``now`` is a naive datetime in the scheduling timezone; it defaults to the
    current time there.
    """
    local_now = now or settings.local_now()

    if not is_date_available(day, settings, working_hours, blocked_dates, local_now.date()):
        return []

    day_hours = find_day_hours(working_hours, day)
    duration = settings.appointment_duration_minutes

    booked_windows = [
        (to_minutes(item.start), to_minutes(item.start) + (item.duration_minutes or duration))
        for item in booked
    ]
    busy_windows = [(to_minutes(period.start), to_minutes(period.end)) for period in busy_periods]
    earliest = to_minutes(local_now.time()) + 1 if day == local_now.date() else None

    slots = []
    for candidate in generate_candidate_slots(day_hours, settings):
        if earliest is not None and candidate < earliest:
            continue
        if any(_overlaps(candidate, duration, start, end) for start, end in booked_windows):
            continue
        if any(_overlaps(candidate, duration, start, end) for start, end in busy_windows):
            continue
        slots.append(format_slot(candidate))

    return slots


def is_bookable_slot(
    day: date,
    slot_time: time,
    settings: SchedulingSettings,
    working_hours: Sequence[DayHoursLike],
    blocked_dates: Iterable[date],
    now: datetime,
) -> bool:
    """Whether ``slot_time`` is one of the schedule's slots on ``day``, ignoring bookings."""
    candidates = compute_slots(day, settings, working_hours, blocked_dates, now=now)
    return slot_time.strftime('%H:%M') in candidates


def load_settings(db: Session) -> SchedulingSettings:
    return SchedulingSettings.from_model(db.query(AdminSettings).order_by(AdminSettings.id.asc()).first())


def load_working_hours(db: Session) -> list[WorkingHours]:
    return db.query(WorkingHours).order_by(WorkingHours.day_of_week.asc()).all()


def load_blocked_dates(db: Session) -> set[date]:
    return {blocked_date for (blocked_date,) in db.query(BlockedDate.blocked_date).all()}


def load_booked_intervals(db: Session, day: date, exclude_id: Optional[int] = None) -> list[BookedInterval]:
    query = db.query(Appointment.appointment_time, Appointment.duration_minutes).filter(
        Appointment.appointment_date == day,
        Appointment.status != STATUS_CANCELLED,
    )
    if exclude_id is not None:
        query = query.filter(Appointment.id != exclude_id)
    return [
        BookedInterval(start=appointment_time, duration_minutes=duration_minutes)
        for appointment_time, duration_minutes in query.all()
    ]


async def get_available_slots(
    db: Session,
    day: date,
    gateway=None,
    now: Optional[datetime] = None,
) -> DaySlots:
    settings = load_settings(db)
    working_hours = load_working_hours(db)
    blocked_dates = load_blocked_dates(db)
    local_now = now or settings.local_now()

    if not is_date_available(day, settings, working_hours, blocked_dates, local_now.date()):
        return DaySlots(date=day, slots=[], calendar_checked=False)

    booked = load_booked_intervals(db, day)

    busy_periods: list[BusyPeriod] = []
    calendar_checked = False
    if gateway is not None:
        try:
            result = await gateway.fetch_busy_periods(day, settings.timezone)
        except BookingError as exc:
            logger.warning('Calendar busy periods unavailable for %s, using local bookings only: %s', day, exc.detail)
        else:
            busy_periods = result.periods
            calendar_checked = result.configured and result.checked

    slots = compute_slots(day, settings, working_hours, blocked_dates, booked, busy_periods, now=local_now)
    return DaySlots(date=day, slots=slots, calendar_checked=calendar_checked)


def list_available_dates(db: Session, now: Optional[datetime] = None) -> list[date]:
    settings = load_settings(db)
    working_hours = load_working_hours(db)
    blocked_dates = load_blocked_dates(db)
    today = (now or settings.local_now()).date()

    return [
        today + timedelta(days=offset)
        for offset in range(settings.advance_booking_days + 1)
        if is_date_available(today + timedelta(days=offset), settings, working_hours, blocked_dates, today)
    ]
