import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import get_current_admin
from backend.database import get_db
from backend.models.admin_settings import AdminSettings
from backend.models.blocked_date import BlockedDate
from backend.models.user import User
from backend.models.working_hours import WorkingHours
from backend.routes.common import database_unavailable, ensure_database_ready, get_calendar_gateway
from backend.schemas.admin import (
    AdminSettingsPayload,
    BlockedDateResponse,
    CalendarStatusResponse,
    CreateBlockedDateRequest,
    UpdateWorkingHoursRequest,
    WorkingHoursEntry,
)
from backend.schemas.booking import AdminAppointmentResponse
from backend.services.appointments import list_appointments
from backend.services.availability import load_settings

router = APIRouter(tags=['admin'])

logger = logging.getLogger(__name__)


@router.get('/working-hours', response_model=list[WorkingHoursEntry])
def list_working_hours(
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    ensure_database_ready()

    try:
        return db.query(WorkingHours).order_by(WorkingHours.day_of_week.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.put('/working-hours', response_model=list[WorkingHoursEntry])
def update_working_hours(
    data: UpdateWorkingHoursRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    ensure_database_ready()

    try:
        existing = {row.day_of_week: row for row in db.query(WorkingHours).all()}
        for entry in data.days:
            row = existing.get(entry.day_of_week)
            if row is None:
                row = WorkingHours(day_of_week=entry.day_of_week)
                db.add(row)
            row.start_time = entry.start_time
            row.end_time = entry.end_time
            row.is_available = entry.is_available
        db.commit()
        logger.info('Working hours updated by %s for days %s', admin.email, [entry.day_of_week for entry in data.days])

        return db.query(WorkingHours).order_by(WorkingHours.day_of_week.asc()).all()
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.get('/blocked-dates', response_model=list[BlockedDateResponse])
def list_blocked_dates(
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    ensure_database_ready()

    try:
        return db.query(BlockedDate).order_by(BlockedDate.blocked_date.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.post('/blocked-dates', response_model=BlockedDateResponse, status_code=status.HTTP_201_CREATED)
def create_blocked_date(
    data: CreateBlockedDateRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    ensure_database_ready()

    try:
        blocked_date = BlockedDate(blocked_date=data.blocked_date, reason=data.reason)
        db.add(blocked_date)
        db.commit()
        db.refresh(blocked_date)
        logger.info('Date %s blocked by %s', data.blocked_date, admin.email)

        return blocked_date
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail='This date is already blocked.',
        ) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.delete('/blocked-dates/{blocked_date_id}', status_code=status.HTTP_204_NO_CONTENT)
def remove_blocked_date(
    blocked_date_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    ensure_database_ready()

    try:
        blocked_date = db.query(BlockedDate).filter(BlockedDate.id == blocked_date_id).first()

        if not blocked_date:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Blocked date not found.',
            )

        db.delete(blocked_date)
        db.commit()
        logger.info('Date %s unblocked by %s', blocked_date.blocked_date, admin.email)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.get('/settings', response_model=AdminSettingsPayload)
def get_settings(
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    ensure_database_ready()

    try:
        settings = load_settings(db)
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc

    return AdminSettingsPayload(
        appointment_duration_minutes=settings.appointment_duration_minutes,
        buffer_minutes=settings.buffer_minutes,
        advance_booking_days=settings.advance_booking_days,
        default_monthly_capacity=settings.default_monthly_capacity,
        timezone=settings.timezone,
    )


@router.put('/settings', response_model=AdminSettingsPayload)
def update_settings(
    data: AdminSettingsPayload,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    ensure_database_ready()

    try:
        row = db.query(AdminSettings).order_by(AdminSettings.id.asc()).first()
        if row is None:
            row = AdminSettings()
            db.add(row)

        row.appointment_duration_minutes = data.appointment_duration_minutes
        row.buffer_minutes = data.buffer_minutes
        row.advance_booking_days = data.advance_booking_days
        row.default_monthly_capacity = data.default_monthly_capacity
        row.timezone = data.timezone
        db.commit()
        logger.info('Scheduling settings updated by %s', admin.email)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc

    return data


@router.get('/appointments', response_model=list[AdminAppointmentResponse])
def list_booked_appointments(
    appointment_status: str | None = Query(default=None, alias='status'),
    upcoming: bool = Query(default=False),
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    ensure_database_ready()

    try:
        return list_appointments(db, status=appointment_status, upcoming_only=upcoming)
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.get('/calendar-status', response_model=CalendarStatusResponse)
def calendar_status(
    gateway=Depends(get_calendar_gateway),
    admin: User = Depends(get_current_admin),
):
    return CalendarStatusResponse(
        configured=gateway.configured,
        calendar_id=gateway.calendar_id or None,
        personal_calendar_configured=bool(gateway.personal_calendar_id),
        checked_at=datetime.now(timezone.utc),
    )
