"""
Session management module.

Per-user conversation state: the closed step enum with its transition
table, the immutable state payload and the in-process store that
serializes access per user.
"""

from .state import (
    ConversationStep,
    InvalidTransitionError,
    can_transition,
    is_booking_step,
)
from .models import ConversationState
from .manager import SessionManager, get_session_manager

__all__ = [
    # State
    "ConversationStep",
    "InvalidTransitionError",
    "can_transition",
    "is_booking_step",
    # Models
    "ConversationState",
    # Manager
    "SessionManager",
    "get_session_manager",
]
