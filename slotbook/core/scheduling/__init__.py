"""
Scheduling Module

Catalog, external calendar gateway, availability resolution, the booking
ledger and the deferred action scheduler.

Usage:
    from slotbook.core.scheduling import (
        get_availability_resolver,
        get_booking_ledger,
        get_deferred_scheduler,
    )

    slots = await get_availability_resolver().available_slots("2026-10-20", provider)
"""

# Catalog
from slotbook.core.scheduling.catalog import (
    Catalog,
    Provider,
    Service,
    get_catalog,
)

# Clock
from slotbook.core.scheduling.clock import Clock, get_clock

# Calendar Client
from slotbook.core.scheduling.calendar_client import (
    BusyInterval,
    BusyResult,
    CalendarClient,
    ClearResult,
    EventResult,
    get_calendar_client,
)

# Booking Ledger
from slotbook.core.scheduling.ledger import (
    BookingLedger,
    ClaimResult,
    Reservation,
    get_booking_ledger,
)

# Availability Resolver
from slotbook.core.scheduling.availability import (
    AvailabilityResolver,
    DayOption,
    get_availability_resolver,
)

# Response Generator
from slotbook.core.scheduling.response import (
    ResponseGenerator,
    get_response_generator,
)

# Deferred Action Scheduler
from slotbook.core.scheduling.deferred import (
    DeferredActionScheduler,
    DispatchReport,
    get_deferred_scheduler,
)

# Admin commands
from slotbook.core.scheduling.admin import AdminService, get_admin_service

__all__ = [
    # Catalog
    "Catalog",
    "Provider",
    "Service",
    "get_catalog",
    # Clock
    "Clock",
    "get_clock",
    # Calendar Client
    "BusyInterval",
    "BusyResult",
    "CalendarClient",
    "ClearResult",
    "EventResult",
    "get_calendar_client",
    # Booking Ledger
    "BookingLedger",
    "ClaimResult",
    "Reservation",
    "get_booking_ledger",
    # Availability Resolver
    "AvailabilityResolver",
    "DayOption",
    "get_availability_resolver",
    # Response Generator
    "ResponseGenerator",
    "get_response_generator",
    # Deferred Action Scheduler
    "DeferredActionScheduler",
    "DispatchReport",
    "get_deferred_scheduler",
    # Admin
    "AdminService",
    "get_admin_service",
]
