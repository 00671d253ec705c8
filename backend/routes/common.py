import logging

from fastapi import Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError

from backend.core.errors import BookingError
from backend.database import ensure_booking_schema
from backend.services.calendar_gateway import GoogleCalendarGateway
from backend.services.notifications import GmailNotifier

logger = logging.getLogger(__name__)

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and database credentials.'


def database_unavailable(exc: SQLAlchemyError) -> HTTPException:
    logger.error('Database error: %s', exc)
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=DATABASE_UNAVAILABLE_DETAIL,
    )


def booking_http_error(exc: BookingError) -> HTTPException:
    return HTTPException(
        status_code=exc.status_code,
        detail={'code': exc.code, 'message': exc.detail},
    )


def ensure_database_ready() -> None:
    try:
        ensure_booking_schema()
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


def get_calendar_gateway() -> GoogleCalendarGateway:
    return GoogleCalendarGateway.from_config()


def get_notifier(gateway: GoogleCalendarGateway = Depends(get_calendar_gateway)) -> GmailNotifier:
    return GmailNotifier.from_config(gateway)
