"""Error taxonomy for the booking subsystem.

Services raise these; the route layer maps them to HTTP responses via
``status_code`` and ``code`` so the booking UI can tell a taken slot apart
from a transient failure and from a dead reschedule/cancel link.
"""

from fastapi import status


class BookingError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST
    code = 'booking_error'
    default_detail = 'The booking request could not be completed.'

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class SlotConflict(BookingError):
    status_code = status.HTTP_409_CONFLICT
    code = 'slot_conflict'
    default_detail = 'This time slot is no longer available.'


class AppointmentNotFound(BookingError):
    status_code = status.HTTP_404_NOT_FOUND
    code = 'not_found'
    default_detail = 'Appointment not found or invalid token.'


class AlreadyCancelled(BookingError):
    code = 'already_cancelled'
    default_detail = 'This appointment has already been cancelled.'


class PastAppointment(BookingError):
    code = 'past_appointment'
    default_detail = 'Appointments in the past cannot be changed.'


class GatewayAuthFailure(BookingError):
    status_code = status.HTTP_502_BAD_GATEWAY
    code = 'gateway_auth_failure'
    default_detail = 'Failed to authenticate with the calendar provider.'


class GatewayWriteFailure(BookingError):
    status_code = status.HTTP_502_BAD_GATEWAY
    code = 'gateway_write_failure'
    default_detail = 'The calendar provider rejected the request.'


class ConfigurationMissing(BookingError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = 'configuration_missing'
    default_detail = 'Calendar credentials are not configured.'


# Failures from the calendar provider; these never reflect a user mistake.
GATEWAY_ERRORS = (GatewayAuthFailure, GatewayWriteFailure, ConfigurationMissing)
