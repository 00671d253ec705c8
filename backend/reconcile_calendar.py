"""Delete booking-system calendar events that no appointment references.

Usage:
    python -m backend.reconcile_calendar [--dry-run] [--grace-minutes N]
"""
import argparse
import asyncio
import sys

from backend.core.logging_config import configure_logging
from backend.database import SessionLocal
from backend.services.calendar_gateway import GoogleCalendarGateway
from backend.services.reconciliation import DEFAULT_GRACE_MINUTES, reconcile_calendar


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description='Remove orphaned booking events from Google Calendar.')
    parser.add_argument('--dry-run', action='store_true', help='report orphans without deleting them')
    parser.add_argument('--grace-minutes', type=int, default=DEFAULT_GRACE_MINUTES)
    args = parser.parse_args(argv)

    configure_logging()

    gateway = GoogleCalendarGateway.from_config()
    if not gateway.configured:
        print('Google Calendar is not configured.', file=sys.stderr)
        sys.exit(1)

    db = SessionLocal()
    try:
        report = asyncio.run(
            reconcile_calendar(db, gateway, dry_run=args.dry_run, grace_minutes=args.grace_minutes)
        )
    finally:
        db.close()

    print(
        f'Scanned {report.scanned} events, {len(report.orphaned)} orphaned, '
        f'{len(report.deleted)} deleted, {len(report.failed)} failed'
        + (' (dry run)' if report.dry_run else '')
    )
    if report.failed:
        sys.exit(1)


if __name__ == '__main__':
    main()
