"""
Conversation state payload.

A ConversationState is immutable: every transition produces a new one,
and returning to idle starts from a fresh payload.
"""

from dataclasses import dataclass, replace
from typing import Optional

from slotbook.core.scheduling.availability import DayOption
from slotbook.core.scheduling.catalog import Service
from .state import ConversationStep, InvalidTransitionError, can_transition


@dataclass(frozen=True)
class ConversationState:
    """Per-user conversation state, process-local and never persisted."""

    user_id: str
    step: ConversationStep = ConversationStep.IDLE

    # Booking selections
    provider_name: Optional[str] = None
    services: tuple[Service, ...] = ()
    offered_days: tuple[DayOption, ...] = ()
    chosen_date: Optional[str] = None
    offered_slots: tuple[str, ...] = ()
    chosen_slot: Optional[str] = None

    # Appointment addressed by cancellation or feedback
    appointment_id: Optional[int] = None

    # Onboarding hint already sent since this state was created
    sent_idle_hint: bool = False

    @property
    def total_price(self) -> float:
        return sum(s.price for s in self.services)

    @property
    def service_names(self) -> str:
        return " + ".join(s.name for s in self.services)

    @property
    def has_exclusive(self) -> bool:
        return any(s.exclusive for s in self.services)

    def advance(self, step: ConversationStep, **changes) -> "ConversationState":
        """Return the state for `step`, validated against the transition table.

        Moving to idle discards everything collected so far.

        Raises:
            InvalidTransitionError: If the transition is not allowed
        """
        if not can_transition(self.step, step):
            raise InvalidTransitionError(self.step, step)

        if step == ConversationStep.IDLE:
            return ConversationState(user_id=self.user_id, **changes)
        return replace(self, step=step, **changes)

    def reset(self) -> "ConversationState":
        """Fresh idle state for the same user."""
        return self.advance(ConversationStep.IDLE)
