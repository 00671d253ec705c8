"""Email guests whose calls start tomorrow or within the hour.

Usage:
    python -m backend.send_reminders
"""
import argparse
import asyncio
import sys

from backend.core.logging_config import configure_logging
from backend.database import SessionLocal, ensure_booking_schema
from backend.services.calendar_gateway import GoogleCalendarGateway
from backend.services.notifications import GmailNotifier
from backend.services.reminders import send_due_reminders


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description='Send day-before and starting-soon reminder emails.')
    parser.parse_args(argv)

    configure_logging()

    gateway = GoogleCalendarGateway.from_config()
    notifier = GmailNotifier.from_config(gateway)
    if not gateway.configured or not notifier.enabled:
        print('Gmail sending is not configured or email notifications are disabled.', file=sys.stderr)
        sys.exit(1)

    ensure_booking_schema()
    db = SessionLocal()
    try:
        report = asyncio.run(send_due_reminders(db, notifier))
    finally:
        db.close()

    print(
        f'Checked {report.checked} appointments, {len(report.sent_24h)} day-before and '
        f'{len(report.sent_1h)} starting-soon reminders sent, {len(report.failed)} failed'
    )
    if report.failed:
        sys.exit(1)


if __name__ == '__main__':
    main()
