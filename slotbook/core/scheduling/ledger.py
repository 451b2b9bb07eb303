"""
Booking Ledger.

Owns appointment records. Claiming a slot is an insert guarded by the
(provider, date, slot) unique constraint, so two concurrent confirmations
for the same slot can never both succeed, whatever availability they saw.
"""

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from sqlalchemy import and_, delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from slotbook.core.scheduling.calendar_client import CalendarClient, get_calendar_client
from slotbook.core.scheduling.catalog import Catalog, get_catalog
from slotbook.core.scheduling.clock import Clock, get_clock
from slotbook.infra.database import async_session_factory
from slotbook.models.database import Appointment, ScheduledAction

logger = logging.getLogger(__name__)


@dataclass
class Reservation:
    """Client-side details of a booking being claimed."""

    client_name: str
    services: str
    price: float
    user_id: str


@dataclass
class ClaimResult:
    """Result of a claim attempt."""

    success: bool
    appointment_id: Optional[int] = None
    error_code: Optional[str] = None

    @classmethod
    def rejected(cls) -> "ClaimResult":
        return cls(success=False, error_code="slot_taken")


class BookingLedger:
    """Persisted appointment store with atomic claim-or-reject."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        calendar_client: Optional[CalendarClient] = None,
        catalog: Optional[Catalog] = None,
        clock: Optional[Clock] = None,
    ):
        self._session_factory = session_factory or async_session_factory
        self._calendar_client = calendar_client
        self._catalog = catalog
        self._clock = clock

    def _get_calendar_client(self) -> CalendarClient:
        if self._calendar_client is None:
            self._calendar_client = get_calendar_client()
        return self._calendar_client

    def _get_catalog(self) -> Catalog:
        if self._catalog is None:
            self._catalog = get_catalog()
        return self._catalog

    def _get_clock(self) -> Clock:
        if self._clock is None:
            self._clock = get_clock()
        return self._clock

    async def reserved_slots(self, day: str, provider_name: str) -> set[str]:
        """Slots already held in the ledger for a provider's day."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(Appointment.slot).where(
                    Appointment.date == day,
                    Appointment.provider_name == provider_name,
                )
            )
            return set(result.scalars().all())

    async def claim(
        self,
        day: str,
        slot: str,
        provider_name: str,
        reservation: Reservation,
        calendar_event_id: Optional[str] = None,
    ) -> ClaimResult:
        """Atomically turn a slot into an appointment.

        Args:
            day: Appointment day (YYYY-MM-DD)
            slot: Slot start (HH:MM)
            provider_name: Provider the slot belongs to
            reservation: Client details
            calendar_event_id: External event created for this booking

        Returns:
            ClaimResult; rejected with "slot_taken" when the slot is already held

        Raises:
            SQLAlchemyError: On storage failures other than the uniqueness check
        """
        appointment = Appointment(
            provider_name=provider_name,
            date=day,
            slot=slot,
            services=reservation.services,
            price=reservation.price,
            client_name=reservation.client_name,
            user_id=reservation.user_id,
            created_at=self._get_clock().storage_now(),
            calendar_event_id=calendar_event_id,
        )

        async with self._session_factory() as session:
            session.add(appointment)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                logger.info(
                    f"Claim rejected: {provider_name} {day} {slot} already taken"
                )
                return ClaimResult.rejected()

        logger.info(
            f"Appointment {appointment.id} claimed: {provider_name} {day} {slot}"
        )
        return ClaimResult(success=True, appointment_id=appointment.id)

    async def get(self, appointment_id: int) -> Optional[Appointment]:
        """Load an appointment by id."""
        async with self._session_factory() as session:
            return await session.get(Appointment, appointment_id)

    async def cancel(self, appointment_id: int) -> bool:
        """Cancel an appointment.

        Deletes the external calendar event first (best-effort), then the
        appointment and its pending scheduled actions.

        Returns:
            True if an appointment was deleted
        """
        async with self._session_factory() as session:
            appointment = await session.get(Appointment, appointment_id)
            if appointment is None:
                return False

            if appointment.calendar_event_id:
                provider = self._get_catalog().provider_by_name(appointment.provider_name)
                if provider:
                    result = await self._get_calendar_client().delete_event(
                        provider.calendar_id, appointment.calendar_event_id
                    )
                    if not result.success:
                        logger.warning(
                            f"Calendar event {appointment.calendar_event_id} not deleted "
                            f"({result.error_code}); cancelling appointment anyway"
                        )

            await session.execute(
                delete(ScheduledAction).where(
                    ScheduledAction.appointment_id == appointment_id
                )
            )
            await session.delete(appointment)
            await session.commit()

        logger.info(f"Appointment {appointment_id} cancelled")
        return True

    async def find_upcoming_for_user(self, user_id: str) -> Optional[Appointment]:
        """Nearest appointment at or after now for a user."""
        clock = self._get_clock()
        today = clock.today_str()
        now_hhmm = clock.now_hhmm()

        async with self._session_factory() as session:
            result = await session.execute(
                select(Appointment)
                .where(
                    Appointment.user_id == user_id,
                    or_(
                        Appointment.date > today,
                        and_(Appointment.date == today, Appointment.slot >= now_hhmm),
                    ),
                )
                .order_by(Appointment.date, Appointment.slot)
                .limit(1)
            )
            return result.scalars().first()

    async def record_feedback(self, appointment_id: int, score: int) -> bool:
        """Set (or overwrite) the feedback score.

        Returns:
            False if the appointment no longer exists
        """
        async with self._session_factory() as session:
            appointment = await session.get(Appointment, appointment_id)
            if appointment is None:
                logger.info(f"Feedback for missing appointment {appointment_id} ignored")
                return False
            appointment.feedback_score = score
            await session.commit()
        return True

    async def list_for_provider(
        self,
        provider_query: str,
        start: date,
        end: date,
    ) -> list[Appointment]:
        """Appointments of providers matching a name fragment within [start, end]."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(Appointment)
                .where(
                    Appointment.provider_name.ilike(f"%{provider_query.strip()}%"),
                    Appointment.date >= start.isoformat(),
                    Appointment.date <= end.isoformat(),
                )
                .order_by(Appointment.date, Appointment.slot)
            )
            return list(result.scalars().all())

    async def list_week_ahead(self, provider_query: str, days: int = 7) -> list[Appointment]:
        """Appointments from today through `days` ahead."""
        today = self._get_clock().today()
        return await self.list_for_provider(
            provider_query, today, today + timedelta(days=days)
        )


# Singleton
_ledger: Optional[BookingLedger] = None


def get_booking_ledger() -> BookingLedger:
    """Get singleton BookingLedger."""
    global _ledger
    if _ledger is None:
        _ledger = BookingLedger()
    return _ledger
