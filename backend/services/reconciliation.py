"""
Orphaned calendar event sweep.

A booking creates its calendar event before the appointment row is committed.
If the process dies in between, or a compensating delete fails, the calendar
keeps an event no appointment points at. This sweep lists upcoming events
stamped by this service and deletes those that no active appointment owns.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.orm import Session

from backend.core.errors import GATEWAY_ERRORS
from backend.models.appointment import STATUS_CANCELLED, Appointment
from backend.services.availability import load_settings

logger = logging.getLogger(__name__)

# Events younger than this may belong to a booking whose insert is in flight.
DEFAULT_GRACE_MINUTES = 15


@dataclass
class ReconciliationReport:
    scanned: int = 0
    orphaned: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    dry_run: bool = False


def _parse_created(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    if value.endswith('Z'):
        value = value[:-1] + '+00:00'
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def active_meeting_ids(db: Session) -> set[str]:
    rows = db.query(Appointment.meeting_id).filter(
        Appointment.meeting_id.is_not(None),
        Appointment.status != STATUS_CANCELLED,
    ).all()
    return {meeting_id for (meeting_id,) in rows}


async def reconcile_calendar(
    db: Session,
    gateway,
    dry_run: bool = False,
    grace_minutes: int = DEFAULT_GRACE_MINUTES,
    now: Optional[datetime] = None,
) -> ReconciliationReport:
    settings = load_settings(db)
    current = now or datetime.now(timezone.utc)
    horizon = current + timedelta(days=settings.advance_booking_days + 1)
    cutoff = current - timedelta(minutes=grace_minutes)

    events = await gateway.list_events(current, horizon)
    known_ids = active_meeting_ids(db)
    report = ReconciliationReport(scanned=len(events), dry_run=dry_run)

    for event in events:
        event_id = event.get('id')
        if not event_id or event_id in known_ids:
            continue

        created = _parse_created(event.get('created'))
        if created is not None and created > cutoff:
            logger.info('Skipping recently created calendar event %s', event_id)
            continue

        report.orphaned.append(event_id)
        if dry_run:
            logger.info('Orphaned calendar event found (dry run): %s', event_id)
            continue

        try:
            await gateway.delete_event(event_id)
            report.deleted.append(event_id)
        except GATEWAY_ERRORS:
            logger.exception('Failed to delete orphaned calendar event %s', event_id)
            report.failed.append(event_id)

    logger.info(
        'Calendar reconciliation scanned %s events: %s orphaned, %s deleted, %s failed',
        report.scanned,
        len(report.orphaned),
        len(report.deleted),
        len(report.failed),
    )
    return report
