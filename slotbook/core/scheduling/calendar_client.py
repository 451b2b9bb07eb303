"""
HTTP client for the external shared calendar (Google Calendar v3 REST).

Each provider owns one calendar. The client exposes:
- Listing busy intervals for a day
- Creating a booking event
- Deleting an event
- Clearing all booking events of a day (admin)

No method raises into callers: every call returns a typed result that
distinguishes a confirmed answer from "could not determine".
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, tzinfo
from typing import Optional
from urllib.parse import quote

import httpx

from slotbook.config import get_settings
from slotbook.core.scheduling.clock import Clock, get_clock

logger = logging.getLogger(__name__)

# Summary prefix of events created for bookings; used to find them again.
BOOKING_EVENT_MARKER = "Booked"


def _parse_datetime(value: str) -> datetime:
    """Parse an RFC 3339 timestamp. Offset-less values are rejected."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        raise ValueError(f"timestamp without offset: {value}")
    return parsed


@dataclass
class BusyInterval:
    """A busy period on a calendar.

    All-day events carry no instants and busy the whole day.
    """

    start: Optional[datetime] = None
    end: Optional[datetime] = None
    all_day: bool = False

    @classmethod
    def from_event(cls, event: dict) -> "BusyInterval":
        """Create from a calendar event resource."""
        start = event.get("start", {})
        end = event.get("end", {})
        if "date" in start and "dateTime" not in start:
            return cls(all_day=True)
        return cls(
            start=_parse_datetime(start["dateTime"]),
            end=_parse_datetime(end["dateTime"]),
        )

    def overlaps(self, window_start: datetime, window_end: datetime) -> bool:
        """Half-open overlap test against [window_start, window_end)."""
        if self.all_day:
            return True
        return window_start < self.end and window_end > self.start

    def localized(self, tz: tzinfo) -> "BusyInterval":
        """Copy with naive instants read as local time in tz."""
        if self.all_day:
            return self
        start, end = self.start, self.end
        if start.tzinfo is None:
            start = start.replace(tzinfo=tz)
        if end.tzinfo is None:
            end = end.replace(tzinfo=tz)
        return BusyInterval(start=start, end=end)


@dataclass
class BusyResult:
    """Result of a busy-interval read."""

    success: bool
    intervals: list[BusyInterval] = field(default_factory=list)
    error_code: Optional[str] = None
    message: Optional[str] = None


@dataclass
class EventResult:
    """Result of an event create or delete."""

    success: bool
    event_id: Optional[str] = None
    error_code: Optional[str] = None
    message: Optional[str] = None


@dataclass
class ClearResult:
    """Result of clearing a day's booking events."""

    success: bool
    deleted_count: int = 0
    error_code: Optional[str] = None
    message: Optional[str] = None


class CalendarClient:
    """
    HTTP client for the calendar REST API.

    Endpoints used:
    - GET /calendars/{id}/events - List events in a time window
    - POST /calendars/{id}/events - Create event
    - DELETE /calendars/{id}/events/{event_id} - Delete event
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        access_token: Optional[str] = None,
        timeout: Optional[float] = None,
        clock: Optional[Clock] = None,
    ):
        """Initialize client.

        Args:
            base_url: Calendar API base URL (defaults to settings)
            access_token: Bearer token (defaults to settings)
            timeout: Request timeout in seconds (defaults to settings)
            clock: Business clock used for local day windows
        """
        settings = get_settings()
        self.base_url = base_url or settings.calendar_api_url
        self.access_token = (
            access_token if access_token is not None else settings.calendar_access_token
        )
        self.timeout = timeout if timeout is not None else settings.calendar_timeout
        self.clock = clock or get_clock()
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def is_configured(self) -> bool:
        """Whether credentials are available."""
        return bool(self.access_token)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers={"Authorization": f"Bearer {self.access_token}"},
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _events_path(self, calendar_id: str) -> str:
        return f"/calendars/{quote(calendar_id, safe='')}/events"

    async def _list_events(self, calendar_id: str, day: str) -> list[dict]:
        """Fetch every event of a local day, following pagination.

        Raises:
            httpx.HTTPError: On transport or HTTP status errors
            ValueError: On a body that is not an event list
        """
        client = await self._get_client()
        time_min, time_max = self.clock.day_bounds(day)

        params = {
            "timeMin": time_min.isoformat(),
            "timeMax": time_max.isoformat(),
            "timeZone": str(self.clock.tz),
            "singleEvents": "true",
            "orderBy": "startTime",
        }

        events: list[dict] = []
        while True:
            response = await client.get(self._events_path(calendar_id), params=params)
            response.raise_for_status()

            data = response.json()
            if not isinstance(data, dict):
                raise ValueError("event list is not a JSON object")
            events.extend(data.get("items", []))

            page_token = data.get("nextPageToken")
            if not page_token:
                return events
            params["pageToken"] = page_token

    # === Availability ===

    async def list_busy_intervals(self, calendar_id: str, day: str) -> BusyResult:
        """List busy intervals on a provider's calendar for a day.

        Args:
            calendar_id: Provider calendar identifier
            day: Local day (YYYY-MM-DD)

        Returns:
            BusyResult; success=False when the calendar could not be read
        """
        if not self.is_configured or not calendar_id:
            return BusyResult(success=False, error_code="not_configured")

        try:
            events = await self._list_events(calendar_id, day)
        except httpx.HTTPStatusError as e:
            logger.warning(f"Calendar read rejected for {calendar_id} on {day}: {e}")
            return BusyResult(success=False, error_code="http_error", message=str(e))
        except httpx.HTTPError as e:
            logger.warning(f"Calendar read failed for {calendar_id} on {day}: {e}")
            return BusyResult(success=False, error_code="connection_error", message=str(e))
        except ValueError as e:
            logger.warning(f"Unreadable calendar listing for {calendar_id} on {day}: {e}")
            return BusyResult(success=False, error_code="invalid_response", message=str(e))

        try:
            intervals = [
                BusyInterval.from_event(event)
                for event in events
                if event.get("status") != "cancelled"
            ]
        except (KeyError, ValueError) as e:
            logger.warning(f"Unreadable calendar event for {calendar_id}: {e}")
            return BusyResult(success=False, error_code="invalid_response", message=str(e))

        return BusyResult(success=True, intervals=intervals)

    # === Events ===

    async def create_event(
        self,
        calendar_id: str,
        day: str,
        slot: str,
        client_name: str,
        services: str,
        price: float,
        user_id: str,
        duration_minutes: int = 60,
    ) -> EventResult:
        """Create a booking event.

        Args:
            calendar_id: Provider calendar identifier
            day: Local day (YYYY-MM-DD)
            slot: Slot start (HH:MM)
            client_name: Client display name
            services: Service description
            price: Total price
            user_id: Client identity
            duration_minutes: Event length

        Returns:
            EventResult with the new event id on success
        """
        if not self.is_configured or not calendar_id:
            return EventResult(success=False, error_code="not_configured")

        client = await self._get_client()
        start = self.clock.slot_start(day, slot)
        end = start + timedelta(minutes=duration_minutes)
        tz_name = str(self.clock.tz)

        payload = {
            "summary": f"{BOOKING_EVENT_MARKER}: {client_name}",
            "description": (
                f"Services: {services}\n"
                f"Price: {price:.2f}\n"
                f"Client ID: {user_id}"
            ),
            "start": {"dateTime": start.isoformat(), "timeZone": tz_name},
            "end": {"dateTime": end.isoformat(), "timeZone": tz_name},
        }

        try:
            response = await client.post(self._events_path(calendar_id), json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            logger.error(f"Failed to create calendar event on {calendar_id}: {e}")
            return EventResult(
                success=False,
                error_code="connection_error",
                message="Unable to reach the calendar",
            )
        except ValueError as e:
            logger.error(f"Unreadable create response from {calendar_id}: {e}")
            return EventResult(success=False, error_code="invalid_response", message=str(e))

        event_id = data.get("id") if isinstance(data, dict) else None
        if not event_id:
            logger.error(f"Calendar returned no event id for {calendar_id}")
            return EventResult(success=False, error_code="invalid_response")

        return EventResult(success=True, event_id=event_id)

    async def delete_event(self, calendar_id: str, event_id: str) -> EventResult:
        """Delete an event. Already-deleted events count as success.

        Args:
            calendar_id: Provider calendar identifier
            event_id: Event to delete

        Returns:
            EventResult
        """
        if not self.is_configured or not calendar_id or not event_id:
            return EventResult(success=False, event_id=event_id, error_code="not_configured")

        client = await self._get_client()

        try:
            response = await client.delete(
                f"{self._events_path(calendar_id)}/{quote(event_id, safe='')}"
            )
            if response.status_code in (404, 410):
                return EventResult(success=True, event_id=event_id)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Failed to delete calendar event {event_id}: {e}")
            return EventResult(
                success=False,
                event_id=event_id,
                error_code="connection_error",
                message=str(e),
            )

        return EventResult(success=True, event_id=event_id)

    async def clear_booking_events(self, calendar_id: str, day: str) -> ClearResult:
        """Delete every booking event of a day.

        Only events whose summary carries the booking marker are removed.
        Local ledger rows are not touched.

        Args:
            calendar_id: Provider calendar identifier
            day: Local day (YYYY-MM-DD)

        Returns:
            ClearResult with the number of deleted events
        """
        if not self.is_configured or not calendar_id:
            return ClearResult(success=False, error_code="not_configured")

        try:
            events = await self._list_events(calendar_id, day)
        except httpx.HTTPError as e:
            logger.error(f"Failed to list events for clearing {calendar_id} on {day}: {e}")
            return ClearResult(success=False, error_code="connection_error", message=str(e))
        except ValueError as e:
            logger.error(f"Unreadable calendar listing for {calendar_id} on {day}: {e}")
            return ClearResult(success=False, error_code="invalid_response", message=str(e))

        deleted = 0
        for event in events:
            if BOOKING_EVENT_MARKER not in (event.get("summary") or ""):
                continue
            result = await self.delete_event(calendar_id, event["id"])
            if not result.success:
                return ClearResult(
                    success=False,
                    deleted_count=deleted,
                    error_code=result.error_code,
                    message=result.message,
                )
            deleted += 1

        return ClearResult(success=True, deleted_count=deleted)


# Singleton
_client: Optional[CalendarClient] = None


def get_calendar_client() -> CalendarClient:
    """Get singleton CalendarClient."""
    global _client
    if _client is None:
        _client = CalendarClient()
    return _client
