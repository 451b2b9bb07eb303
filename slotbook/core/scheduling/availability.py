"""
Availability Resolver.

Computes bookable slots for a provider's day as

    all slots - ledger reservations - external calendar busy - past (today)

The external calendar is read-through and fail-open: when it cannot be
read, it contributes nothing and the ledger's unique constraint remains
the final guard at claim time.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Iterable, Optional

from slotbook.config import get_settings
from slotbook.core.scheduling.calendar_client import (
    BusyInterval,
    CalendarClient,
    get_calendar_client,
)
from slotbook.core.scheduling.catalog import Catalog, Provider, get_catalog
from slotbook.core.scheduling.clock import Clock, get_clock
from slotbook.core.scheduling.ledger import BookingLedger, get_booking_ledger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DayOption:
    """A bookable day offered in the date menu."""

    value: str  # YYYY-MM-DD
    display: str  # e.g. "Tue 20 Oct"


class AvailabilityResolver:
    """Merges ledger reservations with external busy intervals."""

    def __init__(
        self,
        ledger: Optional[BookingLedger] = None,
        calendar_client: Optional[CalendarClient] = None,
        catalog: Optional[Catalog] = None,
        clock: Optional[Clock] = None,
        slot_duration_minutes: Optional[int] = None,
    ):
        self._ledger = ledger or get_booking_ledger()
        self._calendar_client = calendar_client or get_calendar_client()
        self._catalog = catalog or get_catalog()
        self._clock = clock or get_clock()
        self._slot_duration = timedelta(
            minutes=slot_duration_minutes or get_settings().slot_duration_minutes
        )

    def blocked_by_calendar(self, day: str, intervals: Iterable[BusyInterval]) -> set[str]:
        """Slots whose one-unit window overlaps any busy interval."""
        blocked: set[str] = set()
        for interval in intervals:
            if interval.all_day:
                return set(self._catalog.time_slots)
            interval = interval.localized(self._clock.tz)
            for slot in self._catalog.time_slots:
                start = self._clock.slot_start(day, slot)
                if interval.overlaps(start, start + self._slot_duration):
                    blocked.add(slot)
        return blocked

    async def _calendar_busy(self, day: str, provider: Provider) -> set[str]:
        if not self._calendar_client.is_configured:
            return set()

        result = await self._calendar_client.list_busy_intervals(provider.calendar_id, day)
        if not result.success:
            logger.warning(
                f"Calendar unavailable for {provider.name} on {day} "
                f"({result.error_code}); treating as free"
            )
            return set()
        return self.blocked_by_calendar(day, result.intervals)

    async def available_slots(self, day: str, provider: Provider) -> list[str]:
        """Bookable slots of a provider's day, in catalog order.

        Args:
            day: Local day (YYYY-MM-DD)
            provider: Provider to check

        Returns:
            Subset of the catalog's slot list
        """
        busy = await self._ledger.reserved_slots(day, provider.name)
        busy |= await self._calendar_busy(day, provider)

        past_cutoff = None
        if day == self._clock.today_str():
            past_cutoff = self._clock.now_hhmm()

        return [
            slot
            for slot in self._catalog.time_slots
            if slot not in busy and (past_cutoff is None or slot > past_cutoff)
        ]

    async def is_day_available(self, day: str, provider: Provider) -> bool:
        return len(await self.available_slots(day, provider)) > 0

    async def next_available_days(
        self,
        provider: Provider,
        count: Optional[int] = None,
        closed_weekday: Optional[int] = None,
        lookahead: Optional[int] = None,
    ) -> list[DayOption]:
        """Next days with at least one free slot, starting today.

        Scanning stops after `count` days are found or `lookahead`
        calendar days were checked, whichever comes first.
        """
        settings = get_settings()
        count = count if count is not None else settings.offered_days
        closed_weekday = closed_weekday if closed_weekday is not None else settings.closed_weekday
        lookahead = lookahead if lookahead is not None else settings.lookahead_days

        today = self._clock.today()
        days: list[DayOption] = []

        for offset in range(lookahead):
            if len(days) >= count:
                break
            candidate = today + timedelta(days=offset)
            if candidate.weekday() == closed_weekday:
                continue
            value = candidate.isoformat()
            if await self.is_day_available(value, provider):
                days.append(DayOption(value=value, display=candidate.strftime("%a %d %b")))

        return days


# Singleton
_resolver: Optional[AvailabilityResolver] = None


def get_availability_resolver() -> AvailabilityResolver:
    """Get singleton AvailabilityResolver."""
    global _resolver
    if _resolver is None:
        _resolver = AvailabilityResolver()
    return _resolver
