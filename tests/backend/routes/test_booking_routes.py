import asyncio
from datetime import date, time

import pytest
from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient
from pydantic import ValidationError

from backend.database import get_db
from backend.routes import booking_routes
from backend.routes.common import get_calendar_gateway
from backend.schemas.booking import BusyPeriodsRequest, CreateAppointmentRequest, RescheduleAppointmentRequest
from backend.services.availability import SchedulingSettings
from backend.services.calendar_gateway import BusyPeriod
from tests.backend.fakes import MONDAY_MORNING, FakeCalendarGateway, FakeNotifier, seed_weekday_hours

MONDAY = MONDAY_MORNING.date()


@pytest.fixture(autouse=True)
def frozen_clock(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('backend.routes.booking_routes.ensure_database_ready', lambda: None)
    monkeypatch.setattr(SchedulingSettings, 'local_now', lambda self: MONDAY_MORNING)


def _create(db, gateway, notifier=None, **overrides):
    payload = {
        'appointment_date': MONDAY,
        'appointment_time': '10:00',
        'guest_name': 'Ada Lovelace',
        'guest_email': 'ada@example.com',
    }
    payload.update(overrides)
    return asyncio.run(
        booking_routes.create_appointment(CreateAppointmentRequest(**payload), db, gateway, notifier or FakeNotifier())
    )


def test_get_public_settings_returns_defaults(db) -> None:
    settings = booking_routes.get_public_settings(db)

    assert settings.appointment_duration_minutes == 30
    assert settings.advance_booking_days == 30
    assert settings.timezone == 'America/New_York'


def test_list_dates_returns_bookable_days(db) -> None:
    seed_weekday_hours(db)

    response = booking_routes.list_dates(db)

    assert response.dates[0] == MONDAY
    assert date(2026, 1, 10) not in response.dates


def test_list_slots_reports_calendar_state(db, gateway) -> None:
    seed_weekday_hours(db)
    gateway.busy_periods = [BusyPeriod(start=time(9, 0), end=time(12, 0))]

    response = asyncio.run(booking_routes.list_slots(MONDAY, db, gateway))

    assert response.calendar_checked is True
    assert response.duration_minutes == 30
    assert response.slots[0] == '12:00'


def test_fetch_busy_periods_uses_stored_timezone_and_labels(db, gateway) -> None:
    gateway.busy_periods = [BusyPeriod(start=time(9, 0), end=time(9, 45))]

    response = asyncio.run(booking_routes.fetch_busy_periods(BusyPeriodsRequest(date=MONDAY), db, gateway))

    assert response.configured is True
    assert response.checked is True
    assert [period.model_dump() for period in response.busy_periods] == [{'start': '09:00', 'end': '09:45'}]


def test_fetch_busy_periods_when_calendar_not_configured(db) -> None:
    response = asyncio.run(
        booking_routes.fetch_busy_periods(BusyPeriodsRequest(date=MONDAY), db, FakeCalendarGateway(configured=False))
    )

    assert response.configured is False
    assert response.busy_periods == []


def test_create_appointment_maps_conflict_to_409(db, gateway) -> None:
    seed_weekday_hours(db)
    _create(db, gateway)

    with pytest.raises(HTTPException) as exception_info:
        _create(db, gateway, guest_email='grace@example.com')

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail['code'] == 'slot_conflict'


def test_create_appointment_maps_gateway_failure_to_502(db, gateway) -> None:
    seed_weekday_hours(db)
    gateway.fail_create = True

    with pytest.raises(HTTPException) as exception_info:
        _create(db, gateway)

    assert exception_info.value.status_code == 502


def test_create_appointment_request_rejects_bad_email() -> None:
    with pytest.raises(ValidationError):
        CreateAppointmentRequest(
            appointment_date=MONDAY,
            appointment_time='10:00',
            guest_name='Ada',
            guest_email='not-an-email',
        )


def test_lookup_reschedule_and_cancel_by_token(db, gateway) -> None:
    seed_weekday_hours(db)
    booked = _create(db, gateway)
    token = booked.cancel_token

    found = booking_routes.get_appointment(token, db)
    assert found.id == booked.id

    moved = asyncio.run(
        booking_routes.reschedule_appointment(
            token,
            RescheduleAppointmentRequest(new_date=date(2026, 1, 6), new_time='11:30'),
            db,
            gateway,
            FakeNotifier(),
        )
    )
    assert moved.success is True
    assert moved.appointment.appointment_date == date(2026, 1, 6)
    assert moved.appointment.appointment_time == time(11, 30)

    cancelled = asyncio.run(booking_routes.cancel_appointment(token, db, gateway, FakeNotifier()))
    assert cancelled.appointment.status == 'cancelled'

    with pytest.raises(HTTPException) as exception_info:
        asyncio.run(booking_routes.cancel_appointment(token, db, gateway, FakeNotifier()))
    assert exception_info.value.status_code == 400
    assert exception_info.value.detail['code'] == 'already_cancelled'


def test_get_appointment_with_unknown_token_returns_404(db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        booking_routes.get_appointment('nope', db)

    assert exception_info.value.status_code == 404


def test_busy_periods_request_rejects_unknown_timezone() -> None:
    with pytest.raises(ValidationError):
        BusyPeriodsRequest(date=MONDAY, timezone='Mars/Base')

    assert BusyPeriodsRequest(date=MONDAY, timezone=' Europe/London ').timezone == 'Europe/London'
    assert BusyPeriodsRequest(date=MONDAY, timezone='').timezone is None


def test_busy_periods_endpoint_returns_422_for_unknown_timezone(db) -> None:
    app = FastAPI()
    app.include_router(booking_routes.router, prefix='/booking')
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_calendar_gateway] = lambda: FakeCalendarGateway()

    with TestClient(app) as client:
        response = client.post('/booking/busy-periods', json={'date': '2026-01-05', 'timezone': 'Mars/Base'})

    assert response.status_code == 422
