"""Conversation step machine."""

from enum import Enum
from typing import Set


class ConversationStep(str, Enum):
    """Steps of a user's conversation."""

    # Initial
    IDLE = "idle"

    # Booking
    CHOOSING_PROVIDER = "choosing_provider"
    CHOOSING_SERVICES = "choosing_services"
    CHOOSING_DATE = "choosing_date"
    CHOOSING_SLOT = "choosing_slot"
    CONFIRMING_NAME = "confirming_name"

    # Side branches
    CONFIRMING_CANCELLATION = "confirming_cancellation"
    AWAITING_FEEDBACK_SCORE = "awaiting_feedback_score"

    # Administrative
    AWAITING_ADMIN_TARGET_NAME = "awaiting_admin_target_name"
    AWAITING_ADMIN_ACCESS_REQUEST = "awaiting_admin_access_request"


class InvalidTransitionError(Exception):
    """Raised when a step change is not in the transition table."""

    def __init__(self, from_step: ConversationStep, to_step: ConversationStep):
        super().__init__(f"Invalid transition: {from_step.value} -> {to_step.value}")
        self.from_step = from_step
        self.to_step = to_step


# Steps reachable from anywhere: cancel/reset, global commands, and the
# scheduler's feedback prompt.
GLOBAL_TARGETS: Set[ConversationStep] = {
    ConversationStep.IDLE,
    ConversationStep.CHOOSING_PROVIDER,
    ConversationStep.CONFIRMING_CANCELLATION,
    ConversationStep.AWAITING_FEEDBACK_SCORE,
    ConversationStep.AWAITING_ADMIN_TARGET_NAME,
    ConversationStep.AWAITING_ADMIN_ACCESS_REQUEST,
}

# Forward transitions of the booking path
VALID_TRANSITIONS: dict[ConversationStep, Set[ConversationStep]] = {
    ConversationStep.IDLE: set(),
    ConversationStep.CHOOSING_PROVIDER: {ConversationStep.CHOOSING_SERVICES},
    ConversationStep.CHOOSING_SERVICES: {ConversationStep.CHOOSING_DATE},
    ConversationStep.CHOOSING_DATE: {ConversationStep.CHOOSING_SLOT},
    ConversationStep.CHOOSING_SLOT: {ConversationStep.CONFIRMING_NAME},
    ConversationStep.CONFIRMING_NAME: set(),
    ConversationStep.CONFIRMING_CANCELLATION: set(),
    ConversationStep.AWAITING_FEEDBACK_SCORE: set(),
    ConversationStep.AWAITING_ADMIN_TARGET_NAME: set(),
    ConversationStep.AWAITING_ADMIN_ACCESS_REQUEST: set(),
}


def can_transition(from_step: ConversationStep, to_step: ConversationStep) -> bool:
    """Check if a step change is valid. Staying on a step is always valid."""
    if to_step == from_step or to_step in GLOBAL_TARGETS:
        return True
    return to_step in VALID_TRANSITIONS.get(from_step, set())


def is_booking_step(step: ConversationStep) -> bool:
    """Check if step is part of the booking path."""
    return step in {
        ConversationStep.CHOOSING_PROVIDER,
        ConversationStep.CHOOSING_SERVICES,
        ConversationStep.CHOOSING_DATE,
        ConversationStep.CHOOSING_SLOT,
        ConversationStep.CONFIRMING_NAME,
    }
