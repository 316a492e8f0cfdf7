"""
Google Calendar sync for appointments.

Events are written to a single school calendar with a service account. The
lifecycle manager treats every call here as best-effort: failures surface as
``ExternalServiceError`` and are logged by the caller, never propagated to
the booking request.
"""

import logging
import time
from datetime import datetime
from typing import Callable, Protocol
from urllib.parse import quote

import httpx
import jwt

from booking_backend.booking.errors import ExternalServiceError
from booking_backend.core import config
from booking_backend.models.appointment import Appointment
from booking_backend.models.user import User

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = 'https://oauth2.googleapis.com/token'
GOOGLE_CALENDAR_API = 'https://www.googleapis.com/calendar/v3'
CALENDAR_SCOPE = 'https://www.googleapis.com/auth/calendar'
JWT_BEARER_GRANT = 'urn:ietf:params:oauth:grant-type:jwt-bearer'
TOKEN_LIFETIME_SECONDS = 3600
TOKEN_REFRESH_MARGIN_SECONDS = 60


class CalendarClient(Protocol):
    enabled: bool

    def add_event(self, appointment: Appointment, user: User) -> str: ...

    def delete_event(self, event_id: str) -> None: ...

    def close(self) -> None: ...


class DisabledCalendarClient:
    """Stand-in used when no calendar credentials are configured."""

    enabled = False

    def add_event(self, appointment: Appointment, user: User) -> str:
        raise ExternalServiceError('Calendar sync is not configured.')

    def delete_event(self, event_id: str) -> None:
        raise ExternalServiceError('Calendar sync is not configured.')

    def close(self) -> None:
        pass


class ServiceAccountTokenProvider:
    """Exchanges a signed service-account assertion for an access token."""

    def __init__(self, client_email: str, private_key: str, http_client: httpx.Client) -> None:
        self.client_email = client_email
        self.private_key = private_key
        self.http_client = http_client
        self._access_token: str | None = None
        self._expires_at = 0.0

    def __call__(self) -> str:
        now = time.time()
        if self._access_token and now < self._expires_at - TOKEN_REFRESH_MARGIN_SECONDS:
            return self._access_token

        try:
            assertion = jwt.encode(
                {
                    'iss': self.client_email,
                    'scope': CALENDAR_SCOPE,
                    'aud': GOOGLE_TOKEN_URL,
                    'iat': int(now),
                    'exp': int(now) + TOKEN_LIFETIME_SECONDS,
                },
                self.private_key,
                algorithm='RS256',
            )
        except (jwt.PyJWTError, ValueError, TypeError) as exc:
            raise ExternalServiceError('Calendar service account key is invalid.') from exc

        response = self.http_client.post(
            GOOGLE_TOKEN_URL,
            data={'grant_type': JWT_BEARER_GRANT, 'assertion': assertion},
        )
        response.raise_for_status()
        try:
            payload = response.json()
            access_token = payload.get('access_token')
            expires_in = int(payload.get('expires_in') or TOKEN_LIFETIME_SECONDS)
        except (ValueError, TypeError, AttributeError) as exc:
            raise ExternalServiceError('Token response could not be parsed.') from exc

        if not access_token:
            raise ExternalServiceError('Token response did not contain an access token.')

        self._access_token = access_token
        self._expires_at = now + expires_in
        return access_token


def format_event_time(instant: datetime) -> str:
    # Stored instants are naive UTC.
    return f'{instant.isoformat()}Z'


def build_event(appointment: Appointment, user: User, time_zone: str, default_location: str) -> dict:
    summary_prefix = 'Examen' if appointment.is_exam else 'Rijles'

    if appointment.location is not None:
        location = appointment.location.format_address()
    elif appointment.custom_pickup_street:
        location = (
            f'{appointment.custom_pickup_street} {appointment.custom_pickup_house_number}, '
            f'{appointment.custom_pickup_postal_code} {appointment.custom_pickup_city}'
        )
    else:
        location = default_location

    return {
        'summary': f'{summary_prefix} - {user.full_name}',
        'start': {'dateTime': format_event_time(appointment.start_time), 'timeZone': time_zone},
        'end': {'dateTime': format_event_time(appointment.end_time), 'timeZone': time_zone},
        'location': location,
    }


class GoogleCalendarClient:
    enabled = True

    def __init__(
        self,
        calendar_id: str,
        token_provider: Callable[[], str],
        http_client: httpx.Client,
        time_zone: str = 'Europe/Amsterdam',
        default_location: str = '',
    ) -> None:
        self.calendar_id = calendar_id
        self.token_provider = token_provider
        self.http_client = http_client
        self.time_zone = time_zone
        self.default_location = default_location

    @property
    def events_url(self) -> str:
        return f'{GOOGLE_CALENDAR_API}/calendars/{quote(self.calendar_id, safe="")}/events'

    def _headers(self) -> dict[str, str]:
        return {'Authorization': f'Bearer {self.token_provider()}'}

    def add_event(self, appointment: Appointment, user: User) -> str:
        event = build_event(appointment, user, self.time_zone, self.default_location)
        try:
            response = self.http_client.post(self.events_url, headers=self._headers(), json=event)
            response.raise_for_status()
            event_id = response.json().get('id')
        except (httpx.HTTPError, ValueError, AttributeError) as exc:
            raise ExternalServiceError(f'Creating calendar event failed: {exc}') from exc

        if not event_id:
            raise ExternalServiceError('Calendar response did not contain an event id.')

        logger.info('Calendar event %s created for appointment %s', event_id, appointment.id)
        return event_id

    def delete_event(self, event_id: str) -> None:
        try:
            response = self.http_client.delete(
                f'{self.events_url}/{quote(event_id, safe="")}',
                headers=self._headers(),
            )
            if response.status_code in (404, 410):
                logger.info('Calendar event %s was already removed', event_id)
                return
            response.raise_for_status()
        except (httpx.HTTPError, ValueError) as exc:
            raise ExternalServiceError(f'Deleting calendar event failed: {exc}') from exc

        logger.info('Calendar event %s deleted', event_id)

    def close(self) -> None:
        self.http_client.close()


def create_calendar_client() -> CalendarClient:
    if not config.calendar_enabled():
        logger.info('Calendar sync disabled; CALENDAR_ID or service account credentials missing.')
        return DisabledCalendarClient()

    http_client = httpx.Client(timeout=config.CALENDAR_TIMEOUT_SECONDS)
    token_provider = ServiceAccountTokenProvider(
        client_email=config.CALENDAR_CLIENT_EMAIL,
        private_key=config.CALENDAR_PRIVATE_KEY,
        http_client=http_client,
    )
    return GoogleCalendarClient(
        calendar_id=config.CALENDAR_ID,
        token_provider=token_provider,
        http_client=http_client,
        time_zone=config.CALENDAR_TIME_ZONE,
        default_location=config.SCHOOL_NAME,
    )
