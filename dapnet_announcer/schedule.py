"""Schedule API client and announcer for dapnet-announcer."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone

import httpx
import structlog

from dapnet_announcer.config import Settings
from dapnet_announcer.models import Event, EventReady, NoOp, PollResult, TransientError

logger = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScheduleClient:
    """Fetches the event list from the schedule API."""

    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = settings.api_url
        self._client = httpx.AsyncClient(
            timeout=settings.http_timeout, transport=transport
        )

    async def fetch_events(self) -> list[Event]:
        """Fetch and parse the schedule. Raises httpx.HTTPError or ValueError."""
        logger.debug("fetching_schedule", url=self._url)
        response = await self._client.get(self._url)
        response.raise_for_status()
        data = response.json()

        if isinstance(data, dict):
            data = data.get("events", [])
        if not isinstance(data, list):
            raise ValueError("schedule response is not a list of events")

        events = []
        for record in data:
            event = self._record_to_event(record)
            if event:
                events.append(event)
        logger.info("schedule_fetched", count=len(events), skipped=len(data) - len(events))
        return events

    async def aclose(self) -> None:
        await self._client.aclose()

    @staticmethod
    def _record_to_event(record: object) -> Event | None:
        """Convert a schedule record to an Event, or None if malformed."""
        try:
            if not isinstance(record, dict):
                raise TypeError("record is not an object")

            start = record.get("start") or record["start_date"]
            start_time = datetime.fromisoformat(str(start))
            if start_time.tzinfo is None:
                start_time = start_time.replace(tzinfo=timezone.utc)

            return Event(
                venue=str(record["venue"]),
                title=str(record["title"]),
                start_time=start_time,
                event_id=int(record.get("id") or 0),
            )
        except (KeyError, TypeError, ValueError) as e:
            record_id = record.get("id") if isinstance(record, dict) else None
            logger.warning("failed_to_parse_event", event_id=record_id, error=str(e))
            return None


class Announcer:
    """Surfaces each scheduled event once, ahead of its start time.

    Events are announced in order of ``start_time - event_start_offset``; the
    schedule is re-fetched every ``refresh_interval`` seconds so that edits
    to the schedule are picked up. An event is remembered by its id (or by
    start time, venue and title when it has none), so renaming an announced
    event does not page it again. Events whose announcement time had already
    passed when the announcer was created are never announced.
    """

    def __init__(
        self,
        client: ScheduleClient,
        event_start_offset: timedelta,
        refresh_interval: float = 60.0,
        *,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._offset = event_start_offset
        self._refresh_interval = timedelta(seconds=refresh_interval)
        self._clock = clock
        self._sleep = sleep
        self._events: list[Event] = []
        self._next_refresh: datetime | None = None
        # Announcement times before this were missed while not running
        self._started_at = clock()
        self._announced: set[object] = set()

    def _announce_key(self, event: Event) -> tuple[datetime, int, str]:
        return (event.start_time - self._offset, event.event_id, event.title)

    @staticmethod
    def _identity(event: Event) -> object:
        """Identify an event across schedule refreshes."""
        if event.event_id:
            return event.event_id
        return (event.start_time, event.venue, event.title)

    def _is_pending(self, event: Event) -> bool:
        return (
            event.start_time - self._offset >= self._started_at
            and self._identity(event) not in self._announced
        )

    async def poll(self) -> PollResult:
        """Wait for and return the next poll result."""
        now = self._clock()

        if self._next_refresh is None or now >= self._next_refresh:
            self._next_refresh = now + self._refresh_interval
            try:
                self._events = sorted(
                    await self._client.fetch_events(), key=self._announce_key
                )
            except (httpx.HTTPError, ValueError) as e:
                return TransientError(reason=f"schedule refresh failed: {e}")

        upcoming = next((e for e in self._events if self._is_pending(e)), None)

        wake_at = self._next_refresh
        if upcoming is not None:
            wake_at = min(wake_at, upcoming.start_time - self._offset)

        delay = (wake_at - self._clock()).total_seconds()
        if delay > 0:
            await self._sleep(delay)

        if upcoming is not None and self._clock() >= upcoming.start_time - self._offset:
            self._announced.add(self._identity(upcoming))
            logger.info(
                "event_due",
                title=upcoming.title,
                venue=upcoming.venue,
                start_time=upcoming.start_time.isoformat(),
            )
            return EventReady(event=upcoming)

        return NoOp()
