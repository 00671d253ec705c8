"""
Reminder emails ahead of upcoming calls.

Meant to run every few minutes from a scheduler. Each confirmed appointment gets
a day-before reminder when it starts 23 to 25 hours from now and a starting-soon
reminder when it starts 45 to 75 minutes from now. A flag on the row is set
only after the email went out, so a failed send is retried on the next run and
a sent one is never repeated.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from backend.core.errors import GATEWAY_ERRORS
from backend.models.appointment import STATUS_CONFIRMED, Appointment
from backend.services.availability import load_settings

logger = logging.getLogger(__name__)

REMINDER_WINDOWS = {
    '24h': (timedelta(hours=23), timedelta(hours=25)),
    '1h': (timedelta(minutes=45), timedelta(minutes=75)),
}

SENT_FLAGS = {
    '24h': 'reminder_24h_sent',
    '1h': 'reminder_1h_sent',
}


@dataclass
class ReminderReport:
    checked: int = 0
    sent_24h: list[int] = field(default_factory=list)
    sent_1h: list[int] = field(default_factory=list)
    failed: list[tuple[int, str]] = field(default_factory=list)


def due_reminder(appointment: Appointment, now: datetime) -> Optional[str]:
    """Which reminder, if any, is due for this appointment at ``now``."""
    starts_in = datetime.combine(appointment.appointment_date, appointment.appointment_time) - now
    for reminder_type, (earliest, latest) in REMINDER_WINDOWS.items():
        if getattr(appointment, SENT_FLAGS[reminder_type]):
            continue
        if earliest <= starts_in <= latest:
            return reminder_type
    return None


def load_reminder_candidates(db: Session, now: datetime) -> list[Appointment]:
    latest = now + REMINDER_WINDOWS['24h'][1]
    return (
        db.query(Appointment)
        .filter(
            Appointment.status == STATUS_CONFIRMED,
            Appointment.appointment_date >= now.date(),
            Appointment.appointment_date <= latest.date(),
            or_(Appointment.reminder_24h_sent.is_(False), Appointment.reminder_1h_sent.is_(False)),
        )
        .order_by(Appointment.appointment_date.asc(), Appointment.appointment_time.asc())
        .all()
    )


async def send_due_reminders(db: Session, notifier, now: Optional[datetime] = None) -> ReminderReport:
    """Send every reminder that is due and record it on the appointment.

    ``now`` is wall-clock time in the scheduling timezone, the same clock the
    appointment date and time are stored in.
    """
    current = now or load_settings(db).local_now()
    appointments = load_reminder_candidates(db, current)
    report = ReminderReport(checked=len(appointments))

    for appointment in appointments:
        reminder_type = due_reminder(appointment, current)
        if reminder_type is None:
            continue

        logger.info('Sending %s reminder for appointment %s', reminder_type, appointment.id)
        try:
            await notifier.send_reminder(appointment, reminder_type)
        except GATEWAY_ERRORS:
            logger.exception('Failed to send %s reminder for appointment %s', reminder_type, appointment.id)
            report.failed.append((appointment.id, reminder_type))
            continue

        setattr(appointment, SENT_FLAGS[reminder_type], True)
        db.commit()
        if reminder_type == '24h':
            report.sent_24h.append(appointment.id)
        else:
            report.sent_1h.append(appointment.id)

    logger.info(
        'Reminder check at %s looked at %s appointments: %s day-before, %s starting-soon, %s failed',
        current.isoformat(),
        report.checked,
        len(report.sent_24h),
        len(report.sent_1h),
        len(report.failed),
    )
    return report
