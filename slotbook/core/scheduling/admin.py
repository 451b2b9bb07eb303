"""
Administrative command surface.

Privileged commands available over the same text channel as clients:
the week-ahead booking report of a provider and bulk deletion of a
provider's booking events on one calendar day. Clearing the calendar
never touches ledger rows.
"""

import logging
from datetime import date, timedelta
from typing import Optional

import httpx

from slotbook.config import get_settings
from slotbook.core.scheduling.calendar_client import CalendarClient, get_calendar_client
from slotbook.core.scheduling.catalog import Catalog, get_catalog
from slotbook.core.scheduling.clock import Clock, get_clock
from slotbook.core.scheduling.ledger import BookingLedger, get_booking_ledger
from slotbook.core.scheduling.response import ResponseGenerator, get_response_generator
from slotbook.infra.notifications import NotificationService, get_notification_service

logger = logging.getLogger(__name__)

CLEAR_COMMAND = "!clearcal"
SCHEDULE_COMMAND = "!schedule"


class AdminService:
    """Admin identity checks and privileged commands."""

    def __init__(
        self,
        ledger: Optional[BookingLedger] = None,
        calendar_client: Optional[CalendarClient] = None,
        notifier: Optional[NotificationService] = None,
        responses: Optional[ResponseGenerator] = None,
        catalog: Optional[Catalog] = None,
        clock: Optional[Clock] = None,
        master_admin_ids: Optional[list[str]] = None,
    ):
        self._ledger = ledger or get_booking_ledger()
        self._calendar_client = calendar_client or get_calendar_client()
        self._notifier = notifier or get_notification_service()
        self._responses = responses or get_response_generator()
        self._catalog = catalog or get_catalog()
        self._clock = clock or get_clock()
        self.master_admin_ids = (
            master_admin_ids if master_admin_ids is not None
            else get_settings().master_admin_ids_list
        )

    def is_admin(self, user_id: str) -> bool:
        """Provider administrator contacts and master admins are admins."""
        if user_id in self.master_admin_ids:
            return True
        return any(p.admin_contact == user_id for p in self._catalog.providers)

    async def weekly_report(self, provider_query: str) -> str:
        """Bookings of the matching provider(s) from today through REPORT_DAYS ahead."""
        days = get_settings().report_days
        appointments = await self._ledger.list_week_ahead(provider_query, days=days)
        start = self._clock.today()
        end = start + timedelta(days=days)
        return self._responses.weekly_report(
            provider_query.strip(), start.isoformat(), end.isoformat(), appointments
        )

    async def clear_calendar_day(self, command: str) -> list[str]:
        """Handle "!clearcal <PROVIDER> <YYYY-MM-DD>".

        Args:
            command: Full command text as typed

        Returns:
            Replies for the admin, in order
        """
        parts = command.split()
        if len(parts) != 3:
            return [self._responses.clear_usage()]

        _, provider_name, day = parts
        provider = self._catalog.provider_by_name(provider_name)
        if provider is None:
            return [
                self._responses.clear_unknown_provider(provider_name),
                self._responses.clear_usage(),
            ]

        try:
            date.fromisoformat(day)
        except ValueError:
            return [self._responses.clear_invalid_date(), self._responses.clear_usage()]

        replies = [self._responses.clear_started(provider.name, day)]
        result = await self._calendar_client.clear_booking_events(provider.calendar_id, day)
        if not result.success:
            logger.error(
                f"Calendar clear failed for {provider.name} on {day}: "
                f"{result.error_code} {result.message or ''}"
            )
            replies.append(self._responses.clear_failed())
            return replies

        logger.info(f"Cleared {result.deleted_count} booking events for {provider.name} on {day}")
        replies.append(self._responses.clear_done(result.deleted_count, day))
        return replies

    async def request_access(self, user_id: str, contact_name: Optional[str]) -> int:
        """Forward an admin access request to every master admin.

        Returns:
            Number of master admins reached
        """
        text = self._responses.admin_access_request(contact_name or user_id, user_id)
        reached = 0
        for admin_id in self.master_admin_ids:
            try:
                await self._notifier.send_text(admin_id, text)
                reached += 1
            except httpx.HTTPError as e:
                logger.error(f"Access request to {admin_id} not delivered: {e}")
        logger.info(f"Admin access request from {user_id} sent to {reached} admins")
        return reached


# Singleton
_admin: Optional[AdminService] = None


def get_admin_service() -> AdminService:
    """Get singleton AdminService."""
    global _admin
    if _admin is None:
        _admin = AdminService()
    return _admin
