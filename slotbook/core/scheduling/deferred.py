"""
Deferred Action Scheduler.

Persists time-triggered side effects of a booking (reminder, feedback
request) and fires them from a periodic poll. Each action goes through
poll -> effect -> acknowledge, where acknowledging (deleting the row)
happens strictly after the effect succeeded. A crash or delivery failure
in between leaves the row pending, and the next tick retries it.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from slotbook.config import get_settings
from slotbook.core.scheduling.clock import Clock, get_clock, to_storage
from slotbook.core.scheduling.response import ResponseGenerator, get_response_generator
from slotbook.infra.database import async_session_factory
from slotbook.infra.notifications import NotificationService, get_notification_service
from slotbook.models.database import ActionKind, Appointment, ScheduledAction

logger = logging.getLogger(__name__)

# Called after a feedback request was delivered: (user_id, appointment_id)
FeedbackHook = Callable[[str, int], Awaitable[None]]


@dataclass
class DispatchReport:
    """Outcome counts of one dispatch tick."""

    delivered: int = 0
    skipped: int = 0
    discarded: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.delivered + self.skipped + self.discarded + self.failed


class DeferredActionScheduler:
    """Persisted queue of reminders and feedback requests."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        notifier: Optional[NotificationService] = None,
        responses: Optional[ResponseGenerator] = None,
        clock: Optional[Clock] = None,
        feedback_hook: Optional[FeedbackHook] = None,
        interval_seconds: Optional[float] = None,
    ):
        settings = get_settings()
        self._session_factory = session_factory or async_session_factory
        self._notifier = notifier or get_notification_service()
        self._responses = responses or get_response_generator()
        self._clock = clock or get_clock()
        self._feedback_hook = feedback_hook
        self.interval_seconds = (
            interval_seconds if interval_seconds is not None
            else settings.scheduler_interval_seconds
        )
        self.reminder_lead = timedelta(minutes=settings.reminder_lead_minutes)
        self.feedback_delay = timedelta(minutes=settings.feedback_delay_minutes)

        self._tick_lock = asyncio.Lock()
        self._stop_event: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None

    def set_feedback_hook(self, hook: FeedbackHook) -> None:
        """Register the callback run after a feedback request is delivered."""
        self._feedback_hook = hook

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    # === Scheduling ===

    async def schedule(
        self,
        user_id: str,
        kind: ActionKind,
        fire_at: datetime,
        appointment_id: int,
        appointment_slot_key: Optional[str] = None,
    ) -> bool:
        """Insert a scheduled action.

        Scheduling the same (appointment_id, kind) twice is a no-op.

        Args:
            user_id: Addressed user
            kind: Action kind
            fire_at: Aware fire time
            appointment_id: Referenced appointment
            appointment_slot_key: "YYYY-MM-DD HH:MM" of the appointment

        Returns:
            True if a new row was inserted
        """
        action = ScheduledAction(
            user_id=user_id,
            kind=kind,
            fire_at=to_storage(fire_at),
            appointment_id=appointment_id,
            appointment_slot_key=appointment_slot_key,
        )

        async with self._session_factory() as session:
            session.add(action)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                logger.debug(
                    f"{kind.value} for appointment {appointment_id} already scheduled"
                )
                return False

        logger.debug(f"Scheduled {kind.value} for appointment {appointment_id} at {fire_at}")
        return True

    async def schedule_for_appointment(
        self,
        appointment_id: int,
        user_id: str,
        day: str,
        slot: str,
    ) -> None:
        """Schedule the reminder and the feedback request of a new booking."""
        start = self._clock.slot_start(day, slot)
        slot_key = f"{day} {slot}"

        await self.schedule(
            user_id, ActionKind.REMINDER, start - self.reminder_lead, appointment_id, slot_key
        )
        await self.schedule(
            user_id, ActionKind.FEEDBACK_REQUEST, start + self.feedback_delay,
            appointment_id, slot_key,
        )

    async def pending_for_appointment(self, appointment_id: int) -> list[ScheduledAction]:
        """Pending actions of an appointment."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(ScheduledAction).where(
                    ScheduledAction.appointment_id == appointment_id
                )
            )
            return list(result.scalars().all())

    # === Dispatch ===

    async def _acknowledge(self, action_id: int) -> None:
        async with self._session_factory() as session:
            await session.execute(
                delete(ScheduledAction).where(ScheduledAction.id == action_id)
            )
            await session.commit()

    async def _load_due(self) -> list[tuple[ScheduledAction, Optional[Appointment]]]:
        now = self._clock.storage_now()
        async with self._session_factory() as session:
            result = await session.execute(
                select(ScheduledAction)
                .where(ScheduledAction.fire_at <= now)
                .order_by(ScheduledAction.fire_at, ScheduledAction.id)
            )
            actions = list(result.scalars().all())
            return [
                (action, await session.get(Appointment, action.appointment_id))
                for action in actions
            ]

    async def _deliver_reminder(self, action: ScheduledAction, appointment: Appointment) -> None:
        await self._notifier.send_text(
            action.user_id,
            self._responses.reminder(
                services=appointment.services,
                provider_name=appointment.provider_name,
                day=appointment.date,
                slot=appointment.slot,
                lead_minutes=int(self.reminder_lead.total_seconds() // 60),
            ),
        )

    async def _deliver_feedback_request(
        self, action: ScheduledAction, appointment: Appointment
    ) -> None:
        await self._notifier.send_text(
            action.user_id,
            self._responses.feedback_request(
                client_name=appointment.client_name,
                services=appointment.services,
                provider_name=appointment.provider_name,
            ),
        )
        if self._feedback_hook is not None:
            await self._feedback_hook(action.user_id, appointment.id)

    async def dispatch_due(self) -> DispatchReport:
        """Run one poll-dispatch-acknowledge pass over due actions.

        Returns:
            DispatchReport with per-outcome counts
        """
        report = DispatchReport()

        async with self._tick_lock:
            for action, appointment in await self._load_due():
                if appointment is None or (
                    action.appointment_slot_key
                    and action.appointment_slot_key != appointment.slot_key
                ):
                    logger.info(
                        f"Discarding stale {action.kind.value} {action.id}: "
                        f"appointment {action.appointment_id} no longer matches"
                    )
                    await self._acknowledge(action.id)
                    report.discarded += 1
                    continue

                if (
                    action.kind == ActionKind.FEEDBACK_REQUEST
                    and appointment.feedback_score is not None
                ):
                    await self._acknowledge(action.id)
                    report.skipped += 1
                    continue

                try:
                    if action.kind == ActionKind.REMINDER:
                        await self._deliver_reminder(action, appointment)
                    else:
                        await self._deliver_feedback_request(action, appointment)
                except Exception as e:
                    logger.warning(
                        f"Delivery of {action.kind.value} {action.id} failed, "
                        f"will retry next tick: {e}"
                    )
                    report.failed += 1
                    continue

                await self._acknowledge(action.id)
                report.delivered += 1

        if report.total:
            logger.info(
                f"Dispatch tick: {report.delivered} delivered, {report.skipped} skipped, "
                f"{report.discarded} discarded, {report.failed} failed"
            )
        return report

    # === Lifecycle ===

    async def run_forever(self) -> None:
        """Dispatch due actions every interval until stop() is called."""
        if self._stop_event is None:
            self._stop_event = asyncio.Event()

        while not self._stop_event.is_set():
            try:
                await self.dispatch_due()
            except Exception as e:
                logger.exception(f"Scheduler tick failed: {e}")

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass

    def start(self) -> None:
        """Start the background dispatch loop."""
        if self.is_running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self.run_forever())
        logger.info(f"Deferred action scheduler started (every {self.interval_seconds}s)")

    async def stop(self) -> None:
        """Stop the background loop and wait for the current tick."""
        if self._task is None:
            return
        if self._stop_event is not None:
            self._stop_event.set()
        await self._task
        self._task = None
        logger.info("Deferred action scheduler stopped")


# Singleton
_scheduler: Optional[DeferredActionScheduler] = None


def get_deferred_scheduler() -> DeferredActionScheduler:
    """Get singleton DeferredActionScheduler."""
    global _scheduler
    if _scheduler is None:
        _scheduler = DeferredActionScheduler()
    return _scheduler
