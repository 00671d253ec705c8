import asyncio
from datetime import date, datetime, time, timedelta
from types import SimpleNamespace

import pytest

from backend.models.admin_settings import AdminSettings
from backend.models.appointment import STATUS_CANCELLED, Appointment
from backend.models.blocked_date import BlockedDate
from backend.services.availability import (
    BookedInterval,
    SchedulingSettings,
    compute_slots,
    day_of_week,
    generate_candidate_slots,
    get_available_slots,
    is_bookable_slot,
    is_date_available,
    list_available_dates,
)
from backend.services.calendar_gateway import BusyPeriod
from tests.backend.fakes import MONDAY_MORNING, FakeCalendarGateway, seed_weekday_hours

MONDAY = MONDAY_MORNING.date()

WEEKDAY_HOURS = [
    SimpleNamespace(day_of_week=day, start_time=time(9, 0), end_time=time(17, 0), is_available=True)
    for day in range(1, 6)
]


def _all_day_slots() -> list[str]:
    return [f'{minutes // 60:02d}:{minutes % 60:02d}' for minutes in range(9 * 60, 16 * 60 + 31, 30)]


def test_day_of_week_counts_from_sunday() -> None:
    assert day_of_week(date(2026, 1, 4)) == 0
    assert day_of_week(date(2026, 1, 5)) == 1
    assert day_of_week(date(2026, 1, 10)) == 6


def test_compute_slots_fills_working_day_with_default_settings() -> None:
    slots = compute_slots(MONDAY, SchedulingSettings(), WEEKDAY_HOURS, set(), now=MONDAY_MORNING)

    assert len(slots) == 16
    assert slots[0] == '09:00'
    assert slots[-1] == '16:30'
    assert slots == _all_day_slots()


def test_generate_candidate_slots_steps_by_duration_plus_buffer() -> None:
    settings = SchedulingSettings(appointment_duration_minutes=30, buffer_minutes=15)

    candidates = generate_candidate_slots(WEEKDAY_HOURS[0], settings)

    assert candidates[:3] == [540, 585, 630]
    assert candidates[-1] == 990
    assert len(candidates) == 11


def test_generate_candidate_slots_requires_full_appointment_before_close() -> None:
    day_hours = SimpleNamespace(day_of_week=1, start_time=time(9, 0), end_time=time(10, 20), is_available=True)
    settings = SchedulingSettings(appointment_duration_minutes=40)

    assert generate_candidate_slots(day_hours, settings) == [540, 580]


@pytest.mark.parametrize(
    'day',
    [
        date(2026, 1, 4),  # Sunday, no working hours
        date(2026, 1, 3),  # Saturday
        date(2026, 1, 2),  # before today
        MONDAY + timedelta(days=31),  # beyond the horizon
    ],
)
def test_compute_slots_returns_nothing_for_unbookable_dates(day: date) -> None:
    assert compute_slots(day, SchedulingSettings(), WEEKDAY_HOURS, set(), now=MONDAY_MORNING) == []


def test_compute_slots_allows_the_last_day_of_the_horizon() -> None:
    last_day = MONDAY + timedelta(days=31)
    settings = SchedulingSettings(advance_booking_days=31)

    assert compute_slots(last_day, settings, WEEKDAY_HOURS, set(), now=MONDAY_MORNING)[0] == '09:00'


def test_compute_slots_returns_nothing_for_blocked_date() -> None:
    assert compute_slots(MONDAY, SchedulingSettings(), WEEKDAY_HOURS, {MONDAY}, now=MONDAY_MORNING) == []


def test_compute_slots_skips_unavailable_day() -> None:
    hours = [
        SimpleNamespace(day_of_week=1, start_time=time(9, 0), end_time=time(17, 0), is_available=False),
    ]

    assert compute_slots(MONDAY, SchedulingSettings(), hours, set(), now=MONDAY_MORNING) == []


def test_compute_slots_drops_slots_that_already_started_today() -> None:
    slots = compute_slots(MONDAY, SchedulingSettings(), WEEKDAY_HOURS, set(), now=datetime(2026, 1, 5, 10, 0))

    assert slots[0] == '10:30'
    assert '10:00' not in slots


def test_compute_slots_excludes_booked_and_busy_overlaps() -> None:
    booked = [BookedInterval(start=time(10, 0), duration_minutes=30)]
    busy = [BusyPeriod(start=time(11, 15), end=time(12, 0))]

    slots = compute_slots(MONDAY, SchedulingSettings(), WEEKDAY_HOURS, set(), booked, busy, now=MONDAY_MORNING)

    assert '10:00' not in slots
    assert '11:00' not in slots
    assert '11:30' not in slots
    assert '09:30' in slots
    assert '10:30' in slots
    assert '12:00' in slots
    assert len(slots) == 13


def test_compute_slots_treats_adjacent_busy_period_as_free() -> None:
    busy = [BusyPeriod(start=time(9, 30), end=time(10, 0))]

    slots = compute_slots(MONDAY, SchedulingSettings(), WEEKDAY_HOURS, set(), busy_periods=busy, now=MONDAY_MORNING)

    assert '09:00' in slots
    assert '09:30' not in slots
    assert '10:00' in slots


def test_is_date_available_counts_today_as_bookable() -> None:
    assert is_date_available(MONDAY, SchedulingSettings(), WEEKDAY_HOURS, set(), MONDAY)


def test_is_bookable_slot_rejects_off_grid_times() -> None:
    settings = SchedulingSettings()

    assert is_bookable_slot(MONDAY, time(9, 30), settings, WEEKDAY_HOURS, set(), MONDAY_MORNING)
    assert not is_bookable_slot(MONDAY, time(9, 15), settings, WEEKDAY_HOURS, set(), MONDAY_MORNING)
    assert not is_bookable_slot(MONDAY, time(17, 0), settings, WEEKDAY_HOURS, set(), MONDAY_MORNING)


def test_get_available_slots_subtracts_bookings_and_calendar(db) -> None:
    seed_weekday_hours(db)
    db.add_all(
        [
            Appointment(
                appointment_date=MONDAY,
                appointment_time=time(9, 0),
                duration_minutes=30,
                guest_name='Ada',
                guest_email='ada@example.com',
                cancel_token='token-a',
            ),
            Appointment(
                appointment_date=MONDAY,
                appointment_time=time(9, 30),
                duration_minutes=30,
                guest_name='Grace',
                guest_email='grace@example.com',
                cancel_token='token-b',
                status=STATUS_CANCELLED,
            ),
        ]
    )
    db.commit()
    gateway = FakeCalendarGateway()
    gateway.busy_periods = [BusyPeriod(start=time(13, 0), end=time(14, 0))]

    result = asyncio.run(get_available_slots(db, MONDAY, gateway, now=MONDAY_MORNING))

    assert result.calendar_checked is True
    assert '09:00' not in result.slots
    assert '09:30' in result.slots
    assert '13:00' not in result.slots
    assert '13:30' not in result.slots
    assert len(result.slots) == 13


def test_get_available_slots_falls_back_to_local_bookings_when_calendar_fails(db) -> None:
    seed_weekday_hours(db)
    gateway = FakeCalendarGateway()
    gateway.fail_busy = True

    result = asyncio.run(get_available_slots(db, MONDAY, gateway, now=MONDAY_MORNING))

    assert result.calendar_checked is False
    assert result.slots == _all_day_slots()


def test_get_available_slots_reports_unconfigured_calendar(db) -> None:
    seed_weekday_hours(db)

    result = asyncio.run(get_available_slots(db, MONDAY, FakeCalendarGateway(configured=False), now=MONDAY_MORNING))

    assert result.calendar_checked is False
    assert len(result.slots) == 16


def test_get_available_slots_with_partially_read_calendar_is_not_checked(db) -> None:
    seed_weekday_hours(db)
    gateway = FakeCalendarGateway()
    gateway.busy_periods = [BusyPeriod(start=time(13, 0), end=time(14, 0))]
    gateway.busy_checked = False

    result = asyncio.run(get_available_slots(db, MONDAY, gateway, now=MONDAY_MORNING))

    assert result.calendar_checked is False
    assert '13:00' not in result.slots
    assert len(result.slots) == 14


def test_get_available_slots_uses_stored_settings(db) -> None:
    seed_weekday_hours(db)
    db.add(
        AdminSettings(
            appointment_duration_minutes=60,
            buffer_minutes=0,
            advance_booking_days=30,
            default_monthly_capacity=5,
            timezone='America/New_York',
        )
    )
    db.commit()

    result = asyncio.run(get_available_slots(db, MONDAY, None, now=MONDAY_MORNING))

    assert result.slots == ['09:00', '10:00', '11:00', '12:00', '13:00', '14:00', '15:00', '16:00']


def test_list_available_dates_skips_weekends_and_blocked_dates(db) -> None:
    seed_weekday_hours(db)
    db.add(BlockedDate(blocked_date=date(2026, 1, 7), reason='Offsite'))
    db.commit()

    dates = list_available_dates(db, now=MONDAY_MORNING)

    assert dates[:4] == [date(2026, 1, 5), date(2026, 1, 6), date(2026, 1, 8), date(2026, 1, 9)]
    assert all(day.isoweekday() < 6 for day in dates)
    assert dates[-1] <= MONDAY + timedelta(days=30)
