"""Shared fixtures: temporary SQLite database, fixed clock and mocked gateways."""

from unittest.mock import AsyncMock

import pytest

from slotbook.core.scheduling.availability import AvailabilityResolver
from slotbook.core.scheduling.calendar_client import (
    BusyResult,
    CalendarClient,
    ClearResult,
    EventResult,
)
from slotbook.core.scheduling.catalog import Catalog
from slotbook.core.scheduling.deferred import DeferredActionScheduler
from slotbook.core.scheduling.ledger import BookingLedger
from slotbook.core.scheduling.response import ResponseGenerator
from slotbook.infra.database import build_engine, build_session_factory, close_db, init_db
from slotbook.infra.notifications import NotificationService

from tests.unit.support import FIXED_NOW, FixedClock


@pytest.fixture
def clock():
    """Clock frozen on Tuesday 2026-10-20 10:30 local time."""
    return FixedClock(FIXED_NOW)


@pytest.fixture
def catalog():
    """Built-in catalog."""
    return Catalog()


@pytest.fixture
async def db_engine(tmp_path):
    """Fresh file-backed SQLite database."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'slotbook-test.sqlite'}")
    await init_db(engine)
    yield engine
    await close_db(engine)


@pytest.fixture
def session_factory(db_engine):
    return build_session_factory(db_engine)


@pytest.fixture
def calendar():
    """Calendar gateway mock; unconfigured unless a test says otherwise."""
    client = AsyncMock(spec=CalendarClient)
    client.is_configured = False
    client.list_busy_intervals.return_value = BusyResult(success=True, intervals=[])
    client.create_event.return_value = EventResult(success=True, event_id="evt-1")
    client.delete_event.return_value = EventResult(success=True, event_id="evt-1")
    client.clear_booking_events.return_value = ClearResult(success=True, deleted_count=0)
    return client


@pytest.fixture
def notifier():
    """Messaging gateway mock."""
    service = AsyncMock(spec=NotificationService)
    service.is_configured = True
    return service


@pytest.fixture
def responses(catalog):
    return ResponseGenerator(catalog=catalog)


@pytest.fixture
def ledger(session_factory, calendar, catalog, clock):
    return BookingLedger(
        session_factory=session_factory,
        calendar_client=calendar,
        catalog=catalog,
        clock=clock,
    )


@pytest.fixture
def resolver(ledger, calendar, catalog, clock):
    return AvailabilityResolver(
        ledger=ledger,
        calendar_client=calendar,
        catalog=catalog,
        clock=clock,
        slot_duration_minutes=60,
    )


@pytest.fixture
def scheduler(session_factory, notifier, responses, clock):
    return DeferredActionScheduler(
        session_factory=session_factory,
        notifier=notifier,
        responses=responses,
        clock=clock,
        interval_seconds=0.01,
    )
