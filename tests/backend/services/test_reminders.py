import asyncio
from datetime import date, time

from backend.models.appointment import STATUS_CANCELLED, Appointment
from backend.services.reminders import due_reminder, send_due_reminders
from tests.backend.fakes import MONDAY_MORNING, FakeNotifier

TUESDAY = date(2026, 1, 6)


def _appointment(token: str, day: date, start: time, **overrides) -> Appointment:
    values = {
        'appointment_date': day,
        'appointment_time': start,
        'duration_minutes': 30,
        'guest_name': 'Ada',
        'guest_email': 'ada@example.com',
        'cancel_token': token,
        'meeting_join_url': 'https://meet.google.com/abc-defg-hij',
    }
    values.update(overrides)
    return Appointment(**values)


def test_sends_day_before_and_starting_soon_reminders_inside_their_windows(db) -> None:
    tomorrow = _appointment('token-tomorrow', TUESDAY, time(8, 30))
    soon = _appointment('token-soon', MONDAY_MORNING.date(), time(9, 0))
    later_today = _appointment('token-later', MONDAY_MORNING.date(), time(12, 0))
    too_far = _appointment('token-far', TUESDAY, time(10, 0))
    db.add_all([tomorrow, soon, later_today, too_far])
    db.commit()
    notifier = FakeNotifier()

    report = asyncio.run(send_due_reminders(db, notifier, now=MONDAY_MORNING))

    assert sorted(notifier.sent) == sorted([('reminder', tomorrow.id, '24h'), ('reminder', soon.id, '1h')])
    assert report.checked == 4
    assert report.sent_24h == [tomorrow.id]
    assert report.sent_1h == [soon.id]
    assert report.failed == []

    db.expire_all()
    assert tomorrow.reminder_24h_sent is True
    assert tomorrow.reminder_1h_sent is False
    assert soon.reminder_1h_sent is True
    assert soon.reminder_24h_sent is False
    assert later_today.reminder_24h_sent is False
    assert later_today.reminder_1h_sent is False


def test_reminder_is_not_sent_twice(db) -> None:
    soon = _appointment('token-soon', MONDAY_MORNING.date(), time(9, 0))
    db.add(soon)
    db.commit()
    notifier = FakeNotifier()

    asyncio.run(send_due_reminders(db, notifier, now=MONDAY_MORNING))
    second = asyncio.run(send_due_reminders(db, notifier, now=MONDAY_MORNING.replace(minute=10)))

    assert notifier.sent == [('reminder', soon.id, '1h')]
    assert second.sent_1h == []


def test_cancelled_appointments_get_no_reminder(db) -> None:
    db.add(_appointment('token-cancelled', TUESDAY, time(8, 0), status=STATUS_CANCELLED))
    db.commit()
    notifier = FakeNotifier()

    report = asyncio.run(send_due_reminders(db, notifier, now=MONDAY_MORNING))

    assert report.checked == 0
    assert notifier.sent == []


def test_failed_send_leaves_flag_unset_for_the_next_run(db) -> None:
    tomorrow = _appointment('token-tomorrow', TUESDAY, time(8, 0))
    db.add(tomorrow)
    db.commit()

    report = asyncio.run(send_due_reminders(db, FakeNotifier(fail=True), now=MONDAY_MORNING))

    assert report.failed == [(tomorrow.id, '24h')]
    db.expire_all()
    assert tomorrow.reminder_24h_sent is False

    retry = FakeNotifier()
    asyncio.run(send_due_reminders(db, retry, now=MONDAY_MORNING))

    assert retry.sent == [('reminder', tomorrow.id, '24h')]


def test_due_reminder_window_edges() -> None:
    at_23h = _appointment('a', TUESDAY, time(7, 0), reminder_24h_sent=False, reminder_1h_sent=False)
    at_25h = _appointment('b', TUESDAY, time(9, 0), reminder_24h_sent=False, reminder_1h_sent=False)
    past_25h = _appointment('c', TUESDAY, time(9, 1), reminder_24h_sent=False, reminder_1h_sent=False)
    at_45m = _appointment('d', MONDAY_MORNING.date(), time(8, 45), reminder_24h_sent=False, reminder_1h_sent=False)
    at_30m = _appointment('e', MONDAY_MORNING.date(), time(8, 30), reminder_24h_sent=False, reminder_1h_sent=False)
    already_sent = _appointment('f', TUESDAY, time(8, 0), reminder_24h_sent=True, reminder_1h_sent=False)

    assert due_reminder(at_23h, MONDAY_MORNING) == '24h'
    assert due_reminder(at_25h, MONDAY_MORNING) == '24h'
    assert due_reminder(past_25h, MONDAY_MORNING) is None
    assert due_reminder(at_45m, MONDAY_MORNING) == '1h'
    assert due_reminder(at_30m, MONDAY_MORNING) is None
    assert due_reminder(already_sent, MONDAY_MORNING) is None
