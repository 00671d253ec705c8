from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.core.errors import BookingError
from backend.database import get_db
from backend.routes.common import (
    booking_http_error,
    database_unavailable,
    ensure_database_ready,
    get_calendar_gateway,
    get_notifier,
)
from backend.schemas.booking import (
    AppointmentActionResponse,
    AppointmentLookupResponse,
    AvailableDatesResponse,
    AvailableSlotsResponse,
    BookedAppointmentResponse,
    BusyPeriodResponse,
    BusyPeriodsRequest,
    BusyPeriodsResponse,
    CreateAppointmentRequest,
    PublicSettingsResponse,
    RescheduleAppointmentRequest,
)
from backend.services import appointments as appointment_service
from backend.services.availability import get_available_slots, list_available_dates, load_settings

router = APIRouter(tags=['booking'])


@router.get('/settings', response_model=PublicSettingsResponse)
def get_public_settings(db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        settings = load_settings(db)
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc

    return PublicSettingsResponse(
        appointment_duration_minutes=settings.appointment_duration_minutes,
        advance_booking_days=settings.advance_booking_days,
        timezone=settings.timezone,
    )


@router.get('/dates', response_model=AvailableDatesResponse)
def list_dates(db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        settings = load_settings(db)
        return AvailableDatesResponse(dates=list_available_dates(db), timezone=settings.timezone)
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.get('/slots', response_model=AvailableSlotsResponse)
async def list_slots(
    slot_date: date = Query(..., alias='date'),
    db: Session = Depends(get_db),
    gateway=Depends(get_calendar_gateway),
):
    ensure_database_ready()

    try:
        settings = load_settings(db)
        day_slots = await get_available_slots(db, slot_date, gateway)
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc

    return AvailableSlotsResponse(
        date=day_slots.date,
        slots=day_slots.slots,
        duration_minutes=settings.appointment_duration_minutes,
        timezone=settings.timezone,
        calendar_checked=day_slots.calendar_checked,
    )


@router.post('/busy-periods', response_model=BusyPeriodsResponse)
async def fetch_busy_periods(
    data: BusyPeriodsRequest,
    db: Session = Depends(get_db),
    gateway=Depends(get_calendar_gateway),
):
    timezone = data.timezone
    if not timezone:
        try:
            timezone = load_settings(db).timezone
        except SQLAlchemyError as exc:
            raise database_unavailable(exc) from exc

    try:
        result = await gateway.fetch_busy_periods(data.date, timezone)
    except BookingError as exc:
        raise booking_http_error(exc) from exc

    return BusyPeriodsResponse(
        busy_periods=[BusyPeriodResponse(**period.as_labels()) for period in result.periods],
        configured=result.configured,
        checked=result.configured and result.checked,
    )


@router.post('/appointments', response_model=BookedAppointmentResponse, status_code=status.HTTP_201_CREATED)
async def create_appointment(
    data: CreateAppointmentRequest,
    db: Session = Depends(get_db),
    gateway=Depends(get_calendar_gateway),
    notifier=Depends(get_notifier),
):
    ensure_database_ready()

    try:
        return await appointment_service.create_appointment(db, data, gateway, notifier)
    except BookingError as exc:
        raise booking_http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.get('/appointments/{token}', response_model=AppointmentLookupResponse)
def get_appointment(token: str, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return appointment_service.get_appointment_by_token(db, token)
    except BookingError as exc:
        raise booking_http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.post('/appointments/{token}/reschedule', response_model=AppointmentActionResponse)
async def reschedule_appointment(
    token: str,
    data: RescheduleAppointmentRequest,
    db: Session = Depends(get_db),
    gateway=Depends(get_calendar_gateway),
    notifier=Depends(get_notifier),
):
    ensure_database_ready()

    try:
        appointment = await appointment_service.reschedule_appointment(
            db, token, data.new_date, data.new_time, gateway, notifier
        )
    except BookingError as exc:
        raise booking_http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc

    return AppointmentActionResponse(
        success=True,
        message='Appointment rescheduled successfully',
        appointment=AppointmentLookupResponse.model_validate(appointment),
    )


@router.post('/appointments/{token}/cancel', response_model=AppointmentActionResponse)
async def cancel_appointment(
    token: str,
    db: Session = Depends(get_db),
    gateway=Depends(get_calendar_gateway),
    notifier=Depends(get_notifier),
):
    ensure_database_ready()

    try:
        appointment = await appointment_service.cancel_appointment(db, token, gateway, notifier)
    except BookingError as exc:
        raise booking_http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc

    return AppointmentActionResponse(
        success=True,
        message='Appointment cancelled successfully',
        appointment=AppointmentLookupResponse.model_validate(appointment),
    )
