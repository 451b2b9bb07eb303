"""
Conversation Engine - Main Orchestrator.

Drives each user through provider -> services -> date -> slot -> name,
and the cancellation, feedback and admin side branches. Every message is
handled while holding the user's session lock, so state transitions of
one user never interleave.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

import httpx

from slotbook.core.conversation.flow import (
    Command,
    ConversationFlow,
    SelectionOutcome,
    clean_name,
    get_conversation_flow,
    parse_command,
    parse_index,
    parse_score,
)
from slotbook.core.scheduling.admin import AdminService, get_admin_service
from slotbook.core.scheduling.availability import (
    AvailabilityResolver,
    get_availability_resolver,
)
from slotbook.core.scheduling.calendar_client import CalendarClient, get_calendar_client
from slotbook.core.scheduling.catalog import Catalog, Provider, get_catalog
from slotbook.core.scheduling.deferred import DeferredActionScheduler, get_deferred_scheduler
from slotbook.core.scheduling.ledger import BookingLedger, Reservation, get_booking_ledger
from slotbook.core.scheduling.response import ResponseGenerator, get_response_generator
from slotbook.core.session import (
    ConversationState,
    ConversationStep,
    SessionManager,
    get_session_manager,
)
from slotbook.infra.notifications import NotificationService, get_notification_service

logger = logging.getLogger(__name__)


@dataclass
class EngineResponse:
    """Response from conversation engine."""

    user_id: str
    step: ConversationStep
    replies: list[str] = field(default_factory=list)
    appointment_id: Optional[int] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for API response."""
        result = {
            "user_id": self.user_id,
            "step": self.step.value,
            "replies": self.replies,
        }
        if self.appointment_id is not None:
            result["appointment_id"] = self.appointment_id
        return result


@dataclass
class _Turn:
    """Inputs and outputs of one inbound message."""

    user_id: str
    text: str
    contact_name: Optional[str] = None
    replies: list[str] = field(default_factory=list)
    appointment_id: Optional[int] = None

    def reply(self, text: str) -> None:
        self.replies.append(text)


class ConversationEngine:
    """
    Per-user finite-state machine for booking conversations.

    Coordinates:
    - Session state (per-user lock)
    - Availability and the booking ledger
    - External calendar events
    - Deferred reminders and feedback requests
    - Admin commands
    """

    def __init__(
        self,
        sessions: Optional[SessionManager] = None,
        availability: Optional[AvailabilityResolver] = None,
        ledger: Optional[BookingLedger] = None,
        calendar_client: Optional[CalendarClient] = None,
        scheduler: Optional[DeferredActionScheduler] = None,
        notifier: Optional[NotificationService] = None,
        response_generator: Optional[ResponseGenerator] = None,
        flow: Optional[ConversationFlow] = None,
        admin: Optional[AdminService] = None,
        catalog: Optional[Catalog] = None,
    ):
        self._sessions = sessions
        self._availability = availability
        self._ledger = ledger
        self._calendar_client = calendar_client
        self._scheduler = scheduler
        self._notifier = notifier
        self._response_generator = response_generator
        self._flow = flow
        self._admin = admin
        self._catalog = catalog

        self._handlers = {
            ConversationStep.IDLE: self._on_idle,
            ConversationStep.CHOOSING_PROVIDER: self._on_choosing_provider,
            ConversationStep.CHOOSING_SERVICES: self._on_choosing_services,
            ConversationStep.CHOOSING_DATE: self._on_choosing_date,
            ConversationStep.CHOOSING_SLOT: self._on_choosing_slot,
            ConversationStep.CONFIRMING_NAME: self._on_confirming_name,
            ConversationStep.CONFIRMING_CANCELLATION: self._on_confirming_cancellation,
            ConversationStep.AWAITING_FEEDBACK_SCORE: self._on_feedback_score,
            ConversationStep.AWAITING_ADMIN_TARGET_NAME: self._on_admin_target_name,
            ConversationStep.AWAITING_ADMIN_ACCESS_REQUEST: self._on_admin_access_request,
        }

    def _get_sessions(self) -> SessionManager:
        if self._sessions is None:
            self._sessions = get_session_manager()
        return self._sessions

    def _get_availability(self) -> AvailabilityResolver:
        if self._availability is None:
            self._availability = get_availability_resolver()
        return self._availability

    def _get_ledger(self) -> BookingLedger:
        if self._ledger is None:
            self._ledger = get_booking_ledger()
        return self._ledger

    def _get_calendar_client(self) -> CalendarClient:
        if self._calendar_client is None:
            self._calendar_client = get_calendar_client()
        return self._calendar_client

    def _get_scheduler(self) -> DeferredActionScheduler:
        if self._scheduler is None:
            self._scheduler = get_deferred_scheduler()
        return self._scheduler

    def _get_notifier(self) -> NotificationService:
        if self._notifier is None:
            self._notifier = get_notification_service()
        return self._notifier

    def _get_response_generator(self) -> ResponseGenerator:
        if self._response_generator is None:
            self._response_generator = get_response_generator()
        return self._response_generator

    def _get_flow(self) -> ConversationFlow:
        if self._flow is None:
            self._flow = get_conversation_flow()
        return self._flow

    def _get_admin(self) -> AdminService:
        if self._admin is None:
            self._admin = get_admin_service()
        return self._admin

    def _get_catalog(self) -> Catalog:
        if self._catalog is None:
            self._catalog = get_catalog()
        return self._catalog

    async def process(
        self,
        user_id: str,
        text: str,
        contact_name: Optional[str] = None,
    ) -> EngineResponse:
        """Process an inbound message.

        Replies are delivered to the user through the notification service
        and also returned.

        Args:
            user_id: Sender identity
            text: Message text
            contact_name: Sender display name, if the transport provides one

        Returns:
            EngineResponse with the replies and the resulting step
        """
        sessions = self._get_sessions()
        text = (text or "").strip()

        async with sessions.locked(user_id):
            state = sessions.get(user_id)
            if not text:
                return EngineResponse(user_id=user_id, step=state.step)

            turn = _Turn(user_id=user_id, text=text, contact_name=contact_name)
            try:
                state = await self._handle(state, turn)
            except Exception as e:
                logger.error(f"Error processing message from {user_id}: {e}", exc_info=True)
                turn.replies = [self._get_response_generator().generic_error()]
                turn.appointment_id = None
                state = state.reset()

            sessions.save(state)

            for reply in turn.replies:
                await self._send(user_id, reply)

        return EngineResponse(
            user_id=user_id,
            step=state.step,
            replies=turn.replies,
            appointment_id=turn.appointment_id,
        )

    async def on_feedback_requested(self, user_id: str, appointment_id: int) -> None:
        """Put a user in the feedback step after a feedback request went out."""
        sessions = self._get_sessions()
        async with sessions.locked(user_id):
            state = sessions.get(user_id).reset()
            sessions.save(
                state.advance(
                    ConversationStep.AWAITING_FEEDBACK_SCORE,
                    appointment_id=appointment_id,
                )
            )
        logger.debug(f"{user_id} awaiting feedback for appointment {appointment_id}")

    async def _send(self, user_id: str, text: str) -> None:
        try:
            await self._get_notifier().send_text(user_id, text)
        except httpx.HTTPError as e:
            logger.error(f"Reply to {user_id} not delivered: {e}")

    async def _handle(self, state: ConversationState, turn: _Turn) -> ConversationState:
        command = parse_command(turn.text)

        if command == Command.CLEAR_CALENDAR:
            return await self._on_clear_calendar(state, turn)
        if command == Command.SCHEDULE:
            return self._on_schedule(state, turn)
        if command == Command.CANCEL_APPOINTMENT:
            return await self._on_cancel_appointment(state, turn)
        if command == Command.BOOK:
            turn.reply(self._get_response_generator().provider_menu(self._get_catalog().providers))
            return state.reset().advance(ConversationStep.CHOOSING_PROVIDER)
        if command == Command.CANCEL and state.step != ConversationStep.IDLE:
            turn.reply(self._get_response_generator().flow_cancelled())
            return state.reset()

        return await self._handlers[state.step](state, turn)

    # === Global commands ===

    async def _on_clear_calendar(self, state: ConversationState, turn: _Turn) -> ConversationState:
        admin = self._get_admin()
        if not admin.is_admin(turn.user_id):
            turn.reply(self._get_response_generator().access_denied())
            return state

        for reply in await admin.clear_calendar_day(turn.text):
            turn.reply(reply)
        return state

    def _on_schedule(self, state: ConversationState, turn: _Turn) -> ConversationState:
        responses = self._get_response_generator()
        if self._get_admin().is_admin(turn.user_id):
            turn.reply(responses.admin_target_prompt())
            return state.reset().advance(ConversationStep.AWAITING_ADMIN_TARGET_NAME)

        turn.reply(responses.access_denied_with_request())
        return state.reset().advance(ConversationStep.AWAITING_ADMIN_ACCESS_REQUEST)

    async def _on_cancel_appointment(
        self, state: ConversationState, turn: _Turn
    ) -> ConversationState:
        responses = self._get_response_generator()
        appointment = await self._get_ledger().find_upcoming_for_user(turn.user_id)
        if appointment is None:
            turn.reply(responses.no_upcoming_appointment())
            return state.reset()

        turn.reply(responses.confirm_cancellation(appointment))
        return state.reset().advance(
            ConversationStep.CONFIRMING_CANCELLATION,
            appointment_id=appointment.id,
        )

    # === Per-step handlers ===

    async def _on_idle(self, state: ConversationState, turn: _Turn) -> ConversationState:
        if state.sent_idle_hint:
            return state
        turn.reply(self._get_response_generator().idle_hint())
        return state.advance(ConversationStep.IDLE, sent_idle_hint=True)

    async def _on_choosing_provider(
        self, state: ConversationState, turn: _Turn
    ) -> ConversationState:
        responses = self._get_response_generator()
        provider = self._get_catalog().find_provider(turn.text)
        if provider is None:
            turn.reply(responses.invalid_provider())
            return state

        turn.reply(responses.service_menu(()))
        return state.advance(
            ConversationStep.CHOOSING_SERVICES,
            provider_name=provider.name,
            services=(),
        )

    async def _on_choosing_services(
        self, state: ConversationState, turn: _Turn
    ) -> ConversationState:
        responses = self._get_response_generator()
        selection = self._get_flow().select_service(state.services, turn.text)
        outcome = selection.outcome

        if outcome == SelectionOutcome.CONTINUE:
            return await self._offer_days(state, turn)

        if outcome == SelectionOutcome.BUNDLE:
            turn.reply(responses.bundle_added(selection.service))
            return state.advance(ConversationStep.CHOOSING_SERVICES, services=selection.services)

        if outcome == SelectionOutcome.ADDED:
            turn.reply(responses.service_added(selection.service))
            turn.reply(responses.service_menu(selection.services))
            return state.advance(ConversationStep.CHOOSING_SERVICES, services=selection.services)

        if outcome == SelectionOutcome.SECOND_EXCLUSIVE:
            turn.reply(responses.second_exclusive_rejected())
        elif outcome == SelectionOutcome.ADDON_FIRST:
            turn.reply(responses.addon_without_exclusive())
        elif outcome == SelectionOutcome.DUPLICATE:
            turn.reply(responses.duplicate_addon(selection.service))
        elif outcome == SelectionOutcome.CONTINUE_BLOCKED:
            turn.reply(responses.continue_without_exclusive())
        else:
            turn.reply(responses.invalid_service())
        return state

    def _provider_of(self, state: ConversationState) -> Provider:
        provider = self._get_catalog().provider_by_name(state.provider_name or "")
        if provider is None:
            raise LookupError(f"Provider {state.provider_name!r} is not in the catalog")
        return provider

    async def _offer_days(self, state: ConversationState, turn: _Turn) -> ConversationState:
        responses = self._get_response_generator()
        provider = self._provider_of(state)
        days = await self._get_availability().next_available_days(provider)

        if not days:
            turn.reply(responses.no_days_available(provider.name))
            return state.reset()

        turn.reply(
            responses.date_menu(provider.name, state.service_names, state.total_price, days)
        )
        return state.advance(ConversationStep.CHOOSING_DATE, offered_days=tuple(days))

    async def _on_choosing_date(self, state: ConversationState, turn: _Turn) -> ConversationState:
        responses = self._get_response_generator()
        index = parse_index(turn.text, len(state.offered_days))
        if index is None:
            turn.reply(responses.invalid_date())
            return state

        day = state.offered_days[index]
        slots = await self._get_availability().available_slots(day.value, self._provider_of(state))
        if not slots:
            turn.reply(responses.day_filled_up(day))
            return state.reset()

        turn.reply(responses.slot_menu(slots))
        return state.advance(
            ConversationStep.CHOOSING_SLOT,
            chosen_date=day.value,
            offered_slots=tuple(slots),
        )

    async def _on_choosing_slot(self, state: ConversationState, turn: _Turn) -> ConversationState:
        responses = self._get_response_generator()
        index = parse_index(turn.text, len(state.offered_slots))
        if index is None:
            turn.reply(responses.invalid_slot())
            return state

        slot = state.offered_slots[index]
        turn.reply(
            responses.name_prompt(
                state.provider_name,
                state.chosen_date,
                slot,
                state.service_names,
                state.total_price,
            )
        )
        return state.advance(ConversationStep.CONFIRMING_NAME, chosen_slot=slot)

    async def _on_confirming_name(
        self, state: ConversationState, turn: _Turn
    ) -> ConversationState:
        name = clean_name(turn.text)
        if name is None:
            turn.reply(self._get_response_generator().name_too_short())
            return state
        return await self._confirm_and_claim(state, turn, name)

    async def _discard_event(self, provider: Provider, event_id: str) -> None:
        result = await self._get_calendar_client().delete_event(provider.calendar_id, event_id)
        if not result.success:
            logger.warning(
                f"Calendar event {event_id} of {provider.name} left behind "
                f"({result.error_code})"
            )

    async def _confirm_and_claim(
        self, state: ConversationState, turn: _Turn, client_name: str
    ) -> ConversationState:
        """Create the external event, claim the slot, schedule follow-ups.

        The external event is created first; if the claim then loses the
        race (or fails), the event is deleted again.
        A booking whose follow-ups cannot be scheduled is cancelled again.
        """
        responses = self._get_response_generator()
        calendar = self._get_calendar_client()
        provider = self._provider_of(state)
        day, slot = state.chosen_date, state.chosen_slot

        event_id: Optional[str] = None
        if calendar.is_configured:
            event = await calendar.create_event(
                provider.calendar_id,
                day,
                slot,
                client_name=client_name,
                services=state.service_names,
                price=state.total_price,
                user_id=state.user_id,
            )
            if not event.success:
                logger.error(
                    f"Booking aborted, calendar event not created for {provider.name} "
                    f"{day} {slot}: {event.error_code}"
                )
                turn.reply(responses.calendar_write_failed())
                return state.reset()
            event_id = event.event_id

        reservation = Reservation(
            client_name=client_name,
            services=state.service_names,
            price=state.total_price,
            user_id=state.user_id,
        )
        try:
            claim = await self._get_ledger().claim(
                day, slot, provider.name, reservation, calendar_event_id=event_id
            )
        except Exception:
            if event_id:
                await self._discard_event(provider, event_id)
            raise

        if not claim.success:
            if event_id:
                await self._discard_event(provider, event_id)
            turn.reply(responses.slot_lost())
            return state.reset()

        scheduler = self._get_scheduler()
        try:
            await scheduler.schedule_for_appointment(
                claim.appointment_id, state.user_id, day, slot
            )
        except Exception:
            logger.error(
                f"Follow-ups not scheduled for appointment {claim.appointment_id}; "
                f"withdrawing the booking"
            )
            await self._get_ledger().cancel(claim.appointment_id)
            raise

        turn.appointment_id = claim.appointment_id
        turn.reply(
            responses.booking_confirmed(
                provider.name,
                day,
                slot,
                state.service_names,
                state.total_price,
                reminder_minutes=int(scheduler.reminder_lead.total_seconds() // 60),
            )
        )
        if provider.admin_contact:
            await self._send(
                provider.admin_contact,
                responses.admin_new_booking(provider.name, client_name, day, slot),
            )
        return state.reset()

    async def _on_confirming_cancellation(
        self, state: ConversationState, turn: _Turn
    ) -> ConversationState:
        responses = self._get_response_generator()
        if turn.text != "1":
            turn.reply(responses.cancellation_kept())
            return state.reset()

        if await self._get_ledger().cancel(state.appointment_id):
            turn.reply(responses.cancellation_done())
        else:
            turn.reply(responses.cancellation_failed())
        return state.reset()

    async def _on_feedback_score(self, state: ConversationState, turn: _Turn) -> ConversationState:
        responses = self._get_response_generator()
        score = parse_score(turn.text)
        if score is None:
            turn.reply(responses.invalid_feedback())
            return state

        await self._get_ledger().record_feedback(state.appointment_id, score)
        turn.reply(responses.feedback_thanks())
        return state.reset()

    async def _on_admin_target_name(
        self, state: ConversationState, turn: _Turn
    ) -> ConversationState:
        turn.reply(await self._get_admin().weekly_report(turn.text))
        return state.reset()

    async def _on_admin_access_request(
        self, state: ConversationState, turn: _Turn
    ) -> ConversationState:
        responses = self._get_response_generator()
        if turn.text == "1":
            await self._get_admin().request_access(turn.user_id, turn.contact_name)
            turn.reply(responses.access_request_sent())
        else:
            turn.reply(responses.access_request_cancelled())
        return state.reset()


# Singleton
_engine: Optional[ConversationEngine] = None


def get_conversation_engine() -> ConversationEngine:
    """Get singleton ConversationEngine."""
    global _engine
    if _engine is None:
        _engine = ConversationEngine()
    return _engine


async def process_message(
    user_id: str,
    text: str,
    contact_name: Optional[str] = None,
) -> EngineResponse:
    """Convenience function to process a message.

    Args:
        user_id: Sender identity
        text: Message text
        contact_name: Optional sender display name

    Returns:
        EngineResponse
    """
    engine = get_conversation_engine()
    return await engine.process(user_id, text, contact_name)
