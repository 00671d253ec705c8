"""
Appointment lifecycle: create, reschedule and cancel.

The appointments table is the authority on slot occupancy. The partial unique
index on (appointment_date, appointment_time) for non-cancelled rows turns a
lost race into an IntegrityError, which surfaces as ``SlotConflict``.

The calendar event is a side effect around the database write:

* create: event first, then the insert. A failed insert deletes the event
  again; a crash in between leaves an orphan for the reconciliation sweep.
* reschedule/cancel: the calendar call is best-effort and never blocks the
  local change. A reschedule whose commit fails moves the event back.

Emails are sent after the commit and their failures are only logged.
"""
import logging
import secrets
from datetime import date, datetime, time, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from backend.core import config
from backend.core.errors import GATEWAY_ERRORS, AlreadyCancelled, AppointmentNotFound, PastAppointment, SlotConflict
from backend.models.appointment import STATUS_CANCELLED, STATUS_CONFIRMED, Appointment
from backend.models.assessment import AssessmentResponse
from backend.schemas.booking import CreateAppointmentRequest
from backend.services.availability import (
    SchedulingSettings,
    is_bookable_slot,
    load_blocked_dates,
    load_settings,
    load_working_hours,
)

logger = logging.getLogger(__name__)

CANCEL_TOKEN_BYTES = 32


def generate_cancel_token() -> str:
    return secrets.token_urlsafe(CANCEL_TOKEN_BYTES)


def appointment_start(appointment: Appointment) -> datetime:
    return datetime.combine(appointment.appointment_date, appointment.appointment_time)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None, microsecond=0)


def find_conflicting_appointment(
    db: Session,
    appointment_date: date,
    appointment_time: time,
    exclude_id: Optional[int] = None,
) -> Optional[Appointment]:
    query = db.query(Appointment).filter(
        Appointment.appointment_date == appointment_date,
        Appointment.appointment_time == appointment_time,
        Appointment.status != STATUS_CANCELLED,
    )
    if exclude_id is not None:
        query = query.filter(Appointment.id != exclude_id)
    return query.first()


def get_appointment_by_token(db: Session, token: str) -> Appointment:
    normalized = (token or '').strip()
    if not normalized:
        raise AppointmentNotFound()

    appointment = db.query(Appointment).filter(Appointment.cancel_token == normalized).first()
    if appointment is None:
        raise AppointmentNotFound()
    return appointment


def _ensure_requested_slot(
    db: Session,
    settings: SchedulingSettings,
    slot_date: date,
    slot_time: time,
    local_now: datetime,
    exclude_id: Optional[int] = None,
) -> None:
    if find_conflicting_appointment(db, slot_date, slot_time, exclude_id=exclude_id):
        raise SlotConflict()

    if datetime.combine(slot_date, slot_time) <= local_now:
        raise PastAppointment('Appointments must be scheduled in the future.')

    if not is_bookable_slot(
        slot_date,
        slot_time,
        settings,
        load_working_hours(db),
        load_blocked_dates(db),
        local_now,
    ):
        raise SlotConflict('This time is not open for booking. Please pick another time.')


async def _discard_event(gateway, event_id: str) -> None:
    try:
        await gateway.delete_event(event_id)
    except GATEWAY_ERRORS:
        logger.exception('Failed to delete calendar event %s after an aborted booking; reconciliation will retry', event_id)


async def _restore_event_time(gateway, event_id: str, start: datetime, duration_minutes: int, timezone: str) -> None:
    try:
        await gateway.patch_event_time(event_id, start, duration_minutes, timezone)
        logger.info('Calendar event %s moved back to %s', event_id, start.isoformat())
    except GATEWAY_ERRORS:
        logger.exception('Failed to move calendar event %s back to %s after a rejected reschedule', event_id, start.isoformat())


def _link_assessment(db: Session, assessment_id: Optional[int], appointment: Appointment) -> None:
    if assessment_id is None:
        return

    try:
        assessment = db.query(AssessmentResponse).filter(AssessmentResponse.id == assessment_id).first()
        if assessment is None:
            logger.warning('Assessment %s not found, booking %s left unlinked', assessment_id, appointment.id)
            return
        assessment.appointment_id = appointment.id
        assessment.email = appointment.guest_email
        db.commit()
        logger.info('Assessment linked to appointment: %s', assessment_id)
    except SQLAlchemyError:
        db.rollback()
        logger.exception('Error linking assessment %s to appointment %s', assessment_id, appointment.id)


async def _notify(description: str, send, *args) -> None:
    if send is None:
        return
    try:
        await send(*args)
        logger.info('%s email sent', description)
    except Exception:
        logger.exception('Error sending %s email', description.lower())


async def create_appointment(
    db: Session,
    data: CreateAppointmentRequest,
    gateway,
    notifier=None,
    now: Optional[datetime] = None,
) -> Appointment:
    settings = load_settings(db)
    local_now = now or settings.local_now()

    _ensure_requested_slot(db, settings, data.appointment_date, data.appointment_time, local_now)

    start = datetime.combine(data.appointment_date, data.appointment_time)
    logger.info('Creating appointment for %s at %s', data.guest_email, start.isoformat())

    event = await gateway.create_event(
        start=start,
        duration_minutes=settings.appointment_duration_minutes,
        timezone=settings.timezone,
        summary=f'{config.MEETING_SUMMARY_PREFIX} {data.guest_name}',
        description=f'Strategy call with {data.guest_name}',
        guest_email=data.guest_email,
        guest_name=data.guest_name,
    )

    timestamp = _utcnow()
    appointment = Appointment(
        appointment_date=data.appointment_date,
        appointment_time=data.appointment_time,
        duration_minutes=settings.appointment_duration_minutes,
        guest_name=data.guest_name,
        guest_email=data.guest_email,
        guest_phone=data.guest_phone,
        notes=data.notes,
        status=STATUS_CONFIRMED,
        cancel_token=generate_cancel_token(),
        meeting_id=event.event_id,
        meeting_join_url=event.meet_link,
        created_at=timestamp,
        updated_at=timestamp,
    )

    try:
        db.add(appointment)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.warning('Slot %s was taken while booking, discarding event %s', start.isoformat(), event.event_id)
        await _discard_event(gateway, event.event_id)
        raise SlotConflict() from exc
    except SQLAlchemyError:
        db.rollback()
        await _discard_event(gateway, event.event_id)
        raise

    db.refresh(appointment)
    logger.info('Appointment created: %s', appointment.id)

    _link_assessment(db, data.assessment_id, appointment)
    await _notify('Confirmation', getattr(notifier, 'send_confirmation', None), appointment)

    return appointment


async def reschedule_appointment(
    db: Session,
    token: str,
    new_date: date,
    new_time: time,
    gateway,
    notifier=None,
    now: Optional[datetime] = None,
) -> Appointment:
    appointment = get_appointment_by_token(db, token)
    settings = load_settings(db)
    local_now = now or settings.local_now()

    if appointment.is_cancelled:
        raise AlreadyCancelled('This appointment has been cancelled.')

    previous_start = appointment_start(appointment)
    if previous_start <= local_now:
        raise PastAppointment('Cannot reschedule past appointments.')

    new_time = new_time.replace(second=0, microsecond=0)
    _ensure_requested_slot(db, settings, new_date, new_time, local_now, exclude_id=appointment.id)

    new_start = datetime.combine(new_date, new_time)
    appointment_id = appointment.id
    meeting_id = appointment.meeting_id
    duration_minutes = appointment.duration_minutes
    meet_link = appointment.meeting_join_url
    event_moved = False
    if meeting_id:
        try:
            refreshed_link = await gateway.patch_event_time(
                meeting_id,
                new_start,
                duration_minutes,
                settings.timezone,
            )
            event_moved = True
            if refreshed_link:
                meet_link = refreshed_link
        except GATEWAY_ERRORS:
            logger.exception('Error updating calendar event %s', meeting_id)

    appointment.appointment_date = new_date
    appointment.appointment_time = new_time
    appointment.meeting_join_url = meet_link
    appointment.updated_at = _utcnow()

    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.warning('Slot %s was taken while rescheduling appointment %s', new_start.isoformat(), appointment_id)
        if event_moved:
            await _restore_event_time(gateway, meeting_id, previous_start, duration_minutes, settings.timezone)
        raise SlotConflict() from exc
    except SQLAlchemyError:
        db.rollback()
        if event_moved:
            await _restore_event_time(gateway, meeting_id, previous_start, duration_minutes, settings.timezone)
        raise

    db.refresh(appointment)
    logger.info('Appointment rescheduled: %s', appointment.id)

    await _notify('Reschedule confirmation', getattr(notifier, 'send_reschedule', None), appointment, previous_start)

    return appointment


async def cancel_appointment(
    db: Session,
    token: str,
    gateway,
    notifier=None,
    now: Optional[datetime] = None,
) -> Appointment:
    appointment = get_appointment_by_token(db, token)

    if appointment.is_cancelled:
        raise AlreadyCancelled()

    settings = load_settings(db)
    local_now = now or settings.local_now()
    if appointment_start(appointment) <= local_now:
        raise PastAppointment('Cannot cancel past appointments.')

    if appointment.meeting_id:
        try:
            await gateway.delete_event(appointment.meeting_id)
        except GATEWAY_ERRORS:
            logger.exception('Error deleting calendar event %s', appointment.meeting_id)

    appointment.status = STATUS_CANCELLED
    appointment.updated_at = _utcnow()
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    db.refresh(appointment)
    logger.info('Appointment cancelled: %s', appointment.id)

    await _notify('Cancellation', getattr(notifier, 'send_cancellation', None), appointment)

    return appointment


def list_appointments(
    db: Session,
    status: Optional[str] = None,
    upcoming_only: bool = False,
    now: Optional[datetime] = None,
) -> list[Appointment]:
    query = db.query(Appointment)
    if status:
        query = query.filter(Appointment.status == status)
    if upcoming_only:
        today = (now or load_settings(db).local_now()).date()
        query = query.filter(Appointment.appointment_date >= today)
    return query.order_by(Appointment.appointment_date.asc(), Appointment.appointment_time.asc()).all()
