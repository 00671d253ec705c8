"""
Google Calendar gateway.

Authenticates as a service account with domain-wide delegation and wraps the
handful of Calendar/Gmail endpoints the booking flow needs: create an event
with a Meet link, move an event, delete an event, list events and read busy
periods for a day.
"""
import base64
import json
import logging
import time as time_module
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from email.message import EmailMessage
from typing import Any, Optional
from urllib.parse import quote
from zoneinfo import ZoneInfo

import httpx
import jwt

from backend.core import config
from backend.core.errors import ConfigurationMissing, GatewayAuthFailure, GatewayWriteFailure

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"
GMAIL_SEND_URL = "https://gmail.googleapis.com/gmail/v1/users/me/messages/send"

CALENDAR_SCOPE = "https://www.googleapis.com/auth/calendar"
CALENDAR_READONLY_SCOPE = "https://www.googleapis.com/auth/calendar.readonly"
GMAIL_SEND_SCOPE = "https://www.googleapis.com/auth/gmail.send"

TOKEN_LIFETIME_SECONDS = 3600
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"

# Private extended property stamped on every event this service creates, so
# the reconciliation sweep only ever touches its own events.
EVENT_SOURCE_PROPERTY = "booking_source"
EVENT_SOURCE_VALUE = "vantage-booking"

END_OF_DAY = time(23, 59)


@dataclass(frozen=True)
class ServiceAccountCredentials:
    client_email: str
    private_key: str

    @classmethod
    def from_json(cls, raw: str) -> "ServiceAccountCredentials":
        try:
            payload = json.loads(raw)
        except (TypeError, ValueError) as exc:
            raise ConfigurationMissing("Invalid service account key format.") from exc

        client_email = payload.get("client_email") if isinstance(payload, dict) else None
        private_key = payload.get("private_key") if isinstance(payload, dict) else None
        if not client_email or not private_key:
            raise ConfigurationMissing("Service account key is missing client_email or private_key.")

        return cls(client_email=client_email, private_key=private_key)


@dataclass(frozen=True)
class BusyPeriod:
    start: time
    end: time

    def as_labels(self) -> dict[str, str]:
        return {"start": self.start.strftime("%H:%M"), "end": self.end.strftime("%H:%M")}


@dataclass
class BusyPeriodsResult:
    periods: list[BusyPeriod] = field(default_factory=list)
    configured: bool = True
    # False when any calendar listing failed and the periods may be incomplete.
    checked: bool = True


@dataclass(frozen=True)
class CreatedEvent:
    event_id: str
    meet_link: str


def build_assertion(
    credentials: ServiceAccountCredentials,
    scopes: list[str],
    subject: Optional[str] = None,
    issued_at: Optional[int] = None,
) -> str:
    """Sign the RS256 JWT exchanged for an OAuth access token."""
    now = issued_at if issued_at is not None else int(time_module.time())
    claims: dict[str, Any] = {
        "iss": credentials.client_email,
        "scope": " ".join(scopes),
        "aud": GOOGLE_TOKEN_URL,
        "iat": now,
        "exp": now + TOKEN_LIFETIME_SECONDS,
    }
    if subject:
        claims["sub"] = subject
    return jwt.encode(claims, credentials.private_key, algorithm="RS256")


async def fetch_access_token(
    client: httpx.AsyncClient,
    credentials: ServiceAccountCredentials,
    scopes: list[str],
    subject: Optional[str] = None,
) -> str:
    try:
        assertion = build_assertion(credentials, scopes, subject)
    except (ValueError, TypeError, jwt.PyJWTError) as exc:
        raise GatewayAuthFailure("Service account private key could not sign the token request.") from exc

    try:
        response = await client.post(
            GOOGLE_TOKEN_URL,
            data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
        )
    except httpx.HTTPError as exc:
        logger.error("Google token exchange request failed: %s", exc)
        raise GatewayAuthFailure() from exc

    if response.status_code != 200:
        logger.error("Google token exchange failed: %s", response.text)
        raise GatewayAuthFailure()

    access_token = response.json().get("access_token")
    if not access_token:
        logger.error("Google token exchange returned no access_token")
        raise GatewayAuthFailure()
    return access_token


def extract_meet_link(event: dict) -> Optional[str]:
    entry_points = (event.get("conferenceData") or {}).get("entryPoints") or []
    for entry_point in entry_points:
        if entry_point.get("entryPointType") == "video" and entry_point.get("uri"):
            return entry_point["uri"]
    return None


def _parse_event_datetime(value: str, zone: ZoneInfo) -> datetime:
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=zone)
    return parsed.astimezone(zone)


def extract_busy_periods(events: list[dict], day: date, timezone: str) -> list[BusyPeriod]:
    """Clip timed events to ``day`` in ``timezone``; all-day events are ignored."""
    zone = ZoneInfo(timezone)
    periods: list[BusyPeriod] = []

    for event in events:
        start_raw = (event.get("start") or {}).get("dateTime")
        end_raw = (event.get("end") or {}).get("dateTime")
        if not start_raw or not end_raw:
            continue

        event_start = _parse_event_datetime(start_raw, zone)
        event_end = _parse_event_datetime(end_raw, zone)
        if event_start.date() > day or event_end.date() < day:
            continue

        start = event_start.time().replace(second=0, microsecond=0) if event_start.date() == day else time(0, 0)
        end = event_end.time().replace(second=0, microsecond=0) if event_end.date() == day else END_OF_DAY
        if end <= start:
            continue
        periods.append(BusyPeriod(start=start, end=end))

    return periods


def merge_busy_periods(periods: list[BusyPeriod]) -> list[BusyPeriod]:
    if not periods:
        return []

    ordered = sorted(periods, key=lambda period: (period.start, period.end))
    merged = [ordered[0]]
    for current in ordered[1:]:
        last = merged[-1]
        if current.start <= last.end:
            if current.end > last.end:
                merged[-1] = BusyPeriod(start=last.start, end=current.end)
        else:
            merged.append(current)
    return merged


def _event_window(start: datetime, duration_minutes: int, timezone: str) -> dict[str, dict[str, str]]:
    end = start + timedelta(minutes=duration_minutes)
    return {
        "start": {"dateTime": start.isoformat(timespec="seconds"), "timeZone": timezone},
        "end": {"dateTime": end.isoformat(timespec="seconds"), "timeZone": timezone},
    }


class GoogleCalendarGateway:
    """Thin async client over the Google Calendar v3 and Gmail APIs.

    A fresh access token is requested for every operation; nothing is cached,
    so a credential never outlives the call that needed it.
    """

    def __init__(
        self,
        service_account_key: str = "",
        calendar_id: str = "",
        personal_calendar_id: str = "",
        impersonate_email: str = "",
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 15.0,
    ) -> None:
        self.service_account_key = service_account_key
        self.calendar_id = calendar_id
        self.personal_calendar_id = personal_calendar_id
        self.impersonate_email = impersonate_email or None
        self._transport = transport
        self._timeout = timeout

    @classmethod
    def from_config(cls) -> "GoogleCalendarGateway":
        return cls(
            service_account_key=config.GOOGLE_SERVICE_ACCOUNT_KEY,
            calendar_id=config.GOOGLE_CALENDAR_ID,
            personal_calendar_id=config.GOOGLE_PERSONAL_CALENDAR_ID,
            impersonate_email=config.GOOGLE_IMPERSONATE_EMAIL,
            timeout=config.GOOGLE_HTTP_TIMEOUT_SECONDS,
        )

    @property
    def configured(self) -> bool:
        return bool(self.service_account_key and self.calendar_id)

    def _credentials(self) -> ServiceAccountCredentials:
        if not self.configured:
            raise ConfigurationMissing()
        return ServiceAccountCredentials.from_json(self.service_account_key)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=self._timeout)

    def _events_url(self, calendar_id: str, event_id: Optional[str] = None) -> str:
        url = f"{GOOGLE_CALENDAR_API}/calendars/{quote(calendar_id, safe='')}/events"
        if event_id:
            url = f"{url}/{quote(event_id, safe='')}"
        return url

    async def create_event(
        self,
        *,
        start: datetime,
        duration_minutes: int,
        timezone: str,
        summary: str,
        description: str,
        guest_email: str,
        guest_name: str,
    ) -> CreatedEvent:
        credentials = self._credentials()
        body = {
            "summary": summary,
            "description": description,
            **_event_window(start, duration_minutes, timezone),
            "attendees": [{"email": guest_email, "displayName": guest_name}],
            "conferenceData": {
                "createRequest": {
                    "requestId": uuid.uuid4().hex,
                    "conferenceSolutionKey": {"type": "hangoutsMeet"},
                }
            },
            "extendedProperties": {"private": {EVENT_SOURCE_PROPERTY: EVENT_SOURCE_VALUE}},
            "guestsCanModify": False,
            "guestsCanInviteOthers": False,
            "reminders": {
                "useDefault": False,
                "overrides": [
                    {"method": "email", "minutes": 60},
                    {"method": "popup", "minutes": 15},
                ],
            },
        }

        async with self._client() as client:
            access_token = await fetch_access_token(
                client, credentials, [CALENDAR_SCOPE], self.impersonate_email
            )
            try:
                response = await client.post(
                    self._events_url(self.calendar_id),
                    params={"conferenceDataVersion": 1, "sendUpdates": "all"},
                    headers={"Authorization": f"Bearer {access_token}"},
                    json=body,
                )
            except httpx.HTTPError as exc:
                logger.error("Calendar event creation request failed: %s", exc)
                raise GatewayWriteFailure("Failed to create calendar event.") from exc

            if response.status_code not in (200, 201):
                logger.error("Google Calendar API error: %s", response.text)
                raise GatewayWriteFailure("Failed to create calendar event.")

            event = response.json()
            event_id = event.get("id")
            meet_link = extract_meet_link(event)
            if not event_id or not meet_link:
                logger.error("No Meet link in created event %s", event_id)
                if event_id:
                    await self._delete_with_client(client, access_token, event_id)
                raise GatewayWriteFailure("Google Meet link was not generated.")

        logger.info("Calendar event created: %s", event_id)
        return CreatedEvent(event_id=event_id, meet_link=meet_link)

    async def patch_event_time(
        self,
        event_id: str,
        start: datetime,
        duration_minutes: int,
        timezone: str,
    ) -> Optional[str]:
        """Move an event in place; returns the event's Meet link when present."""
        credentials = self._credentials()
        async with self._client() as client:
            access_token = await fetch_access_token(
                client, credentials, [CALENDAR_SCOPE], self.impersonate_email
            )
            try:
                response = await client.patch(
                    self._events_url(self.calendar_id, event_id),
                    params={"sendUpdates": "all"},
                    headers={"Authorization": f"Bearer {access_token}"},
                    json=_event_window(start, duration_minutes, timezone),
                )
            except httpx.HTTPError as exc:
                raise GatewayWriteFailure("Failed to update calendar event.") from exc

            if response.status_code != 200:
                logger.error("Failed to update calendar event %s: %s", event_id, response.text)
                raise GatewayWriteFailure("Failed to update calendar event.")

        logger.info("Calendar event updated: %s", event_id)
        return extract_meet_link(response.json())

    async def delete_event(self, event_id: str) -> None:
        credentials = self._credentials()
        async with self._client() as client:
            access_token = await fetch_access_token(
                client, credentials, [CALENDAR_SCOPE], self.impersonate_email
            )
            await self._delete_with_client(client, access_token, event_id, raise_on_error=True)

    async def _delete_with_client(
        self,
        client: httpx.AsyncClient,
        access_token: str,
        event_id: str,
        raise_on_error: bool = False,
    ) -> None:
        try:
            response = await client.delete(
                self._events_url(self.calendar_id, event_id),
                params={"sendUpdates": "all"},
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.HTTPError as exc:
            if raise_on_error:
                raise GatewayWriteFailure("Failed to delete calendar event.") from exc
            logger.error("Calendar event %s delete request failed: %s", event_id, exc)
            return

        # 404/410: the event is already gone, which is the desired outcome.
        if response.status_code in (200, 204, 404, 410):
            logger.info("Calendar event deleted: %s", event_id)
            return

        logger.error("Failed to delete calendar event %s: %s", event_id, response.text)
        if raise_on_error:
            raise GatewayWriteFailure("Failed to delete calendar event.")

    async def _list_calendar_events(
        self,
        client: httpx.AsyncClient,
        access_token: str,
        calendar_id: str,
        params: dict[str, Any],
    ) -> tuple[list[dict], bool]:
        """All pages of events, plus whether every page was read."""
        events: list[dict] = []
        page_params = dict(params)
        while True:
            try:
                response = await client.get(
                    self._events_url(calendar_id),
                    params=page_params,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
            except httpx.HTTPError as exc:
                logger.error("Failed to fetch calendar events from %s: %s", calendar_id, exc)
                return events, False

            if response.status_code != 200:
                logger.error("Failed to fetch calendar events from %s: %s", calendar_id, response.text)
                return events, False

            payload = response.json()
            events.extend(payload.get("items") or [])
            next_page = payload.get("nextPageToken")
            if not next_page:
                return events, True
            page_params["pageToken"] = next_page

    async def list_events(
        self,
        time_min: datetime,
        time_max: datetime,
        only_own_events: bool = True,
    ) -> list[dict]:
        credentials = self._credentials()
        params: dict[str, Any] = {
            "timeMin": time_min.isoformat(),
            "timeMax": time_max.isoformat(),
            "singleEvents": "true",
            "orderBy": "startTime",
        }
        if only_own_events:
            params["privateExtendedProperty"] = f"{EVENT_SOURCE_PROPERTY}={EVENT_SOURCE_VALUE}"

        async with self._client() as client:
            access_token = await fetch_access_token(
                client, credentials, [CALENDAR_READONLY_SCOPE], self.impersonate_email
            )
            events, _ = await self._list_calendar_events(client, access_token, self.calendar_id, params)
            return events

    async def fetch_busy_periods(self, day: date, timezone: str) -> BusyPeriodsResult:
        if not self.configured:
            logger.info("Google Calendar credentials not configured, returning empty busy periods")
            return BusyPeriodsResult(periods=[], configured=False)

        credentials = self._credentials()
        zone = ZoneInfo(timezone)
        params = {
            "timeMin": datetime.combine(day, time(0, 0), tzinfo=zone).isoformat(),
            "timeMax": datetime.combine(day, time(23, 59, 59), tzinfo=zone).isoformat(),
            "timeZone": timezone,
            "singleEvents": "true",
            "orderBy": "startTime",
        }
        calendar_ids = [self.calendar_id]
        if self.personal_calendar_id:
            calendar_ids.append(self.personal_calendar_id)

        async with self._client() as client:
            access_token = await fetch_access_token(
                client, credentials, [CALENDAR_READONLY_SCOPE], self.impersonate_email
            )
            events: list[dict] = []
            checked = True
            for calendar_id in calendar_ids:
                calendar_events, complete = await self._list_calendar_events(client, access_token, calendar_id, params)
                events.extend(calendar_events)
                checked = checked and complete

        logger.info("Found %s events for %s across %s calendar(s)", len(events), day, len(calendar_ids))
        periods = merge_busy_periods(extract_busy_periods(events, day, timezone))
        if not checked:
            logger.warning("Busy periods for %s are incomplete; at least one calendar could not be read", day)
        return BusyPeriodsResult(periods=periods, configured=True, checked=checked)

    async def send_gmail_message(self, message: EmailMessage, sender: str) -> str:
        """Send ``message`` through Gmail, impersonating the ``sender`` mailbox."""
        if not self.service_account_key:
            raise ConfigurationMissing("Google service account credentials not configured.")
        credentials = ServiceAccountCredentials.from_json(self.service_account_key)
        raw = base64.urlsafe_b64encode(message.as_bytes()).decode().rstrip("=")

        async with self._client() as client:
            access_token = await fetch_access_token(client, credentials, [GMAIL_SEND_SCOPE], sender)
            try:
                response = await client.post(
                    GMAIL_SEND_URL,
                    headers={"Authorization": f"Bearer {access_token}"},
                    json={"raw": raw},
                )
            except httpx.HTTPError as exc:
                raise GatewayWriteFailure("Failed to send email.") from exc

            if response.status_code != 200:
                logger.error("Gmail API error: %s", response.text)
                raise GatewayWriteFailure("Failed to send email.")

        message_id = response.json().get("id", "")
        logger.info("Email sent successfully: %s", message_id)
        return message_id