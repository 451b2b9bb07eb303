"""Tests for the Availability Resolver."""

from datetime import datetime

import pytest

from slotbook.core.scheduling.availability import AvailabilityResolver
from slotbook.core.scheduling.calendar_client import BusyInterval, BusyResult
from slotbook.core.scheduling.catalog import Catalog
from slotbook.core.scheduling.ledger import BookingLedger

from tests.unit.support import TODAY, TOMORROW, TZ, make_reservation


class TestBlockedByCalendar:
    """Test mapping busy intervals onto slots."""

    def test_timed_event_blocks_overlapping_slots(self, resolver):
        """An event from 09:30 to 11:00 busies 09:00 and 10:00 only."""
        interval = BusyInterval(
            start=datetime(2026, 10, 21, 9, 30, tzinfo=TZ),
            end=datetime(2026, 10, 21, 11, 0, tzinfo=TZ),
        )

        blocked = resolver.blocked_by_calendar(TOMORROW, [interval])

        assert blocked == {"09:00", "10:00"}

    def test_event_ending_at_slot_start_does_not_block(self, resolver):
        """Intervals are half-open."""
        interval = BusyInterval(
            start=datetime(2026, 10, 21, 8, 0, tzinfo=TZ),
            end=datetime(2026, 10, 21, 9, 0, tzinfo=TZ),
        )

        blocked = resolver.blocked_by_calendar(TOMORROW, [interval])

        assert blocked == {"08:00"}

    def test_naive_event_read_as_business_time(self, resolver):
        interval = BusyInterval(
            start=datetime(2026, 10, 21, 9, 0),
            end=datetime(2026, 10, 21, 10, 0),
        )

        blocked = resolver.blocked_by_calendar(TOMORROW, [interval])

        assert blocked == {"09:00"}

    def test_all_day_event_blocks_every_slot(self, resolver, catalog):
        blocked = resolver.blocked_by_calendar(TOMORROW, [BusyInterval(all_day=True)])

        assert blocked == set(catalog.time_slots)


class TestAvailableSlots:
    """Test availableSlots."""

    @pytest.mark.asyncio
    async def test_all_slots_free(self, resolver, catalog):
        provider = catalog.providers[0]

        slots = await resolver.available_slots(TOMORROW, provider)

        assert slots == catalog.time_slots

    @pytest.mark.asyncio
    async def test_ledger_and_calendar_are_merged(self, session_factory, calendar, clock):
        """Slots 08:00 and 09:00; 09:00 booked and busy 09:00-09:30 -> only 08:00."""
        catalog = Catalog(time_slots=["08:00", "09:00"])
        ledger = BookingLedger(session_factory, calendar, catalog, clock)
        resolver = AvailabilityResolver(ledger, calendar, catalog, clock, slot_duration_minutes=60)
        provider = catalog.providers[0]

        await ledger.claim(TOMORROW, "09:00", provider.name, make_reservation())
        calendar.is_configured = True
        calendar.list_busy_intervals.return_value = BusyResult(
            success=True,
            intervals=[
                BusyInterval(
                    start=datetime(2026, 10, 21, 9, 0, tzinfo=TZ),
                    end=datetime(2026, 10, 21, 9, 30, tzinfo=TZ),
                )
            ],
        )

        slots = await resolver.available_slots(TOMORROW, provider)

        assert slots == ["08:00"]
        calendar.list_busy_intervals.assert_awaited_once_with(provider.calendar_id, TOMORROW)

    @pytest.mark.asyncio
    async def test_calendar_failure_is_fail_open(self, resolver, calendar, catalog):
        calendar.is_configured = True
        calendar.list_busy_intervals.return_value = BusyResult(
            success=False, error_code="connection_error"
        )

        slots = await resolver.available_slots(TOMORROW, catalog.providers[0])

        assert slots == catalog.time_slots

    @pytest.mark.asyncio
    async def test_unconfigured_calendar_is_not_called(self, resolver, calendar, catalog):
        await resolver.available_slots(TOMORROW, catalog.providers[0])

        calendar.list_busy_intervals.assert_not_called()

    @pytest.mark.asyncio
    async def test_today_drops_past_slots(self, resolver, catalog):
        """Now is 10:30, so 08:00 to 10:00 are gone."""
        slots = await resolver.available_slots(TODAY, catalog.providers[0])

        assert slots[0] == "11:00"
        assert "10:00" not in slots

    @pytest.mark.asyncio
    async def test_today_drops_slot_starting_now(self, resolver, catalog, clock):
        clock.current = datetime(2026, 10, 20, 11, 0, tzinfo=TZ)

        slots = await resolver.available_slots(TODAY, catalog.providers[0])

        assert slots[0] == "12:00"

    @pytest.mark.asyncio
    async def test_result_is_ordered_subset_of_catalog(self, resolver, ledger, catalog):
        provider = catalog.providers[1]
        for slot in ("12:00", "08:00", "17:00"):
            await ledger.claim(TOMORROW, slot, provider.name, make_reservation())

        slots = await resolver.available_slots(TOMORROW, provider)

        assert set(slots) <= set(catalog.time_slots)
        assert slots == [s for s in catalog.time_slots if s in slots]
        assert {"08:00", "12:00", "17:00"}.isdisjoint(slots)

    @pytest.mark.asyncio
    async def test_bookings_are_per_provider(self, resolver, ledger, catalog):
        await ledger.claim(TOMORROW, "08:00", catalog.providers[0].name, make_reservation())

        slots = await resolver.available_slots(TOMORROW, catalog.providers[1])

        assert "08:00" in slots


class TestNextAvailableDays:
    """Test the bounded date look-ahead."""

    @pytest.mark.asyncio
    async def test_skips_closed_weekday(self, resolver, catalog):
        days = await resolver.next_available_days(
            catalog.providers[0], count=7, closed_weekday=6, lookahead=30
        )

        assert [d.value for d in days] == [
            "2026-10-20",
            "2026-10-21",
            "2026-10-22",
            "2026-10-23",
            "2026-10-24",
            "2026-10-26",
            "2026-10-27",
        ]
        assert days[1].display == "Wed 21 Oct"

    @pytest.mark.asyncio
    async def test_skips_fully_booked_day(self, session_factory, calendar, clock):
        catalog = Catalog(time_slots=["15:00"])
        ledger = BookingLedger(session_factory, calendar, catalog, clock)
        resolver = AvailabilityResolver(ledger, calendar, catalog, clock, slot_duration_minutes=60)
        provider = catalog.providers[0]
        await ledger.claim(TOMORROW, "15:00", provider.name, make_reservation())

        days = await resolver.next_available_days(provider, count=2, closed_weekday=6, lookahead=30)

        assert [d.value for d in days] == [TODAY, "2026-10-22"]

    @pytest.mark.asyncio
    async def test_lookahead_bounds_the_scan(self, resolver, calendar, catalog):
        calendar.is_configured = True
        calendar.list_busy_intervals.return_value = BusyResult(
            success=True, intervals=[BusyInterval(all_day=True)]
        )

        days = await resolver.next_available_days(
            catalog.providers[0], count=7, closed_weekday=6, lookahead=10
        )

        assert days == []
        # Sunday 2026-10-25 is never checked
        assert calendar.list_busy_intervals.await_count == 9
