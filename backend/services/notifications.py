"""Guest notification emails for booked, moved, cancelled and upcoming calls."""
import logging
from datetime import date, datetime, time
from email.message import EmailMessage
from email.utils import formataddr
from html import escape

from backend.core import config
from backend.models.appointment import Appointment

logger = logging.getLogger(__name__)

REMINDER_SUBJECTS = {
    '24h': 'Reminder: Your Strategy Call is Tomorrow',
    '1h': 'Starting Soon: Your Strategy Call in 1 Hour',
}


def format_date_display(value: date) -> str:
    return f'{value.strftime("%A, %B")} {value.day}, {value.year}'


def format_time_display(value: time) -> str:
    hour12 = value.hour % 12 or 12
    period = 'PM' if value.hour >= 12 else 'AM'
    return f'{hour12}:{value.minute:02d} {period}'


def manage_links(appointment: Appointment, site_url: str) -> tuple[str, str]:
    token = appointment.cancel_token
    return (
        f'{site_url}/reschedule?token={token}',
        f'{site_url}/cancel-appointment?token={token}',
    )


class GmailNotifier:
    def __init__(
        self,
        gateway,
        sender_address: str,
        sender_name: str,
        site_url: str,
        enabled: bool = True,
    ) -> None:
        self.gateway = gateway
        self.sender_address = sender_address
        self.sender_name = sender_name
        self.site_url = site_url
        self.enabled = enabled

    @classmethod
    def from_config(cls, gateway) -> 'GmailNotifier':
        return cls(
            gateway=gateway,
            sender_address=config.EMAIL_SENDER_ADDRESS,
            sender_name=config.EMAIL_SENDER_NAME,
            site_url=config.SITE_URL,
            enabled=config.EMAIL_NOTIFICATIONS_ENABLED,
        )

    def build_message(self, appointment: Appointment, subject: str, html_body: str) -> EmailMessage:
        message = EmailMessage()
        message['From'] = formataddr((self.sender_name, self.sender_address))
        message['To'] = formataddr((appointment.guest_name, appointment.guest_email))
        message['Subject'] = subject
        message.set_content(html_body, subtype='html')
        return message

    async def _send(self, appointment: Appointment, subject: str, html_body: str) -> None:
        if not self.enabled:
            logger.info('Email notifications disabled, skipping "%s" for appointment %s', subject, appointment.id)
            return
        message = self.build_message(appointment, subject, html_body)
        await self.gateway.send_gmail_message(message, self.sender_address)

    async def send_confirmation(self, appointment: Appointment) -> None:
        html_body = (
            f'<p>Hi {escape(appointment.guest_name)},</p>'
            f'<p>Your strategy call is confirmed for '
            f'{format_date_display(appointment.appointment_date)} at '
            f'{format_time_display(appointment.appointment_time)} '
            f'({appointment.duration_minutes} minutes).</p>'
            f'{self._join_link(appointment)}'
            f'{self._manage_footer(appointment, "Need to change plans?")}'
        )
        await self._send(appointment, f'Your Strategy Call is Confirmed - {self.sender_name}', html_body)

    async def send_reschedule(self, appointment: Appointment, previous_start: datetime) -> None:
        html_body = (
            f'<p>Hi {escape(appointment.guest_name)},</p>'
            f'<p>Your strategy call has been rescheduled to '
            f'{format_date_display(appointment.appointment_date)} at '
            f'{format_time_display(appointment.appointment_time)}.</p>'
            f'<p>Previous: <s>{format_date_display(previous_start.date())} at '
            f'{format_time_display(previous_start.time())}</s></p>'
            f'{self._join_link(appointment)}'
            f'{self._manage_footer(appointment, "Need to make more changes?")}'
        )
        await self._send(appointment, f'Your Appointment Has Been Rescheduled - {self.sender_name}', html_body)

    async def send_reminder(self, appointment: Appointment, reminder_type: str) -> None:
        """Send the day-before ('24h') or starting-soon ('1h') reminder."""
        if reminder_type not in REMINDER_SUBJECTS:
            raise ValueError(f'Unknown reminder type: {reminder_type}')

        headline = 'Your strategy call is tomorrow!' if reminder_type == '24h' else 'Your strategy call starts in 1 hour!'
        html_body = (
            f'<h1>{headline}</h1>'
            f'<p>Hi {escape(appointment.guest_name)},</p>'
            f'<p>{format_date_display(appointment.appointment_date)} at '
            f'{format_time_display(appointment.appointment_time)} '
            f'({appointment.duration_minutes} minutes)</p>'
            f'{self._join_link(appointment)}'
            f'{self._manage_footer(appointment, "Need to make changes?")}'
        )
        await self._send(appointment, f'{REMINDER_SUBJECTS[reminder_type]} - {self.sender_name}', html_body)

    async def send_cancellation(self, appointment: Appointment) -> None:
        booking_url = escape(f'{self.site_url}/#booking', quote=True)
        html_body = (
            f'<p>Hi {escape(appointment.guest_name)},</p>'
            f'<p>Your strategy call on {format_date_display(appointment.appointment_date)} at '
            f'{format_time_display(appointment.appointment_time)} has been cancelled.</p>'
            f'<p>You can <a href="{booking_url}">book a new appointment</a> anytime.</p>'
        )
        await self._send(appointment, f'Appointment Cancelled - {self.sender_name}', html_body)

    def _join_link(self, appointment: Appointment) -> str:
        if not appointment.meeting_join_url:
            return ''
        return f'<p><a href="{escape(appointment.meeting_join_url, quote=True)}">Join Google Meet</a></p>'

    def _manage_footer(self, appointment: Appointment, prompt: str) -> str:
        reschedule_url, cancel_url = manage_links(appointment, self.site_url)
        return (
            f'<p>{prompt} <a href="{escape(reschedule_url, quote=True)}">Reschedule</a> | '
            f'<a href="{escape(cancel_url, quote=True)}">Cancel</a></p>'
        )
