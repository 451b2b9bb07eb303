"""
Conversation Flow.

Pure input interpretation for the conversation engine: command keywords,
menu index parsing, name and feedback score validation, and the service
selection rules. Nothing here touches storage or the network.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from slotbook.core.scheduling.admin import CLEAR_COMMAND, SCHEDULE_COMMAND
from slotbook.core.scheduling.catalog import Catalog, Service, get_catalog

logger = logging.getLogger(__name__)

MIN_NAME_LENGTH = 3
MIN_SCORE = 0
MAX_SCORE = 10


class Command(str, Enum):
    """Keywords recognized before any per-step handling."""

    NONE = "none"
    BOOK = "book"
    CANCEL = "cancel"
    CANCEL_APPOINTMENT = "cancel appointment"
    SCHEDULE = "schedule"
    CLEAR_CALENDAR = "clear_calendar"


class SelectionOutcome(str, Enum):
    """Result kinds of a service-step input."""

    ADDED = "added"
    BUNDLE = "bundle"
    CONTINUE = "continue"
    SECOND_EXCLUSIVE = "second_exclusive"
    ADDON_FIRST = "addon_first"
    DUPLICATE = "duplicate"
    CONTINUE_BLOCKED = "continue_blocked"
    INVALID = "invalid"


@dataclass(frozen=True)
class ServiceSelection:
    """Outcome of one input on the service step."""

    outcome: SelectionOutcome
    services: tuple[Service, ...]
    service: Optional[Service] = None

    @property
    def accepted(self) -> bool:
        return self.outcome in (SelectionOutcome.ADDED, SelectionOutcome.BUNDLE)


def parse_command(text: str) -> Command:
    """Classify a message as a global command."""
    tokens = text.strip().lower().split()
    normalized = " ".join(tokens)
    if tokens and tokens[0] == CLEAR_COMMAND:
        return Command.CLEAR_CALENDAR
    if normalized == SCHEDULE_COMMAND:
        return Command.SCHEDULE
    if normalized == Command.CANCEL_APPOINTMENT.value:
        return Command.CANCEL_APPOINTMENT
    if normalized == Command.CANCEL.value:
        return Command.CANCEL
    if normalized == Command.BOOK.value:
        return Command.BOOK
    return Command.NONE


def parse_index(text: str, size: int) -> Optional[int]:
    """1-based menu choice -> 0-based index, or None if out of range."""
    choice = text.strip()
    if not (choice.isascii() and choice.isdigit()):
        return None
    index = int(choice) - 1
    if 0 <= index < size:
        return index
    return None


def parse_score(text: str) -> Optional[int]:
    """Feedback score in [0, 10], or None."""
    value = text.strip()
    if not (value.isascii() and value.isdigit()):
        return None
    score = int(value)
    if MIN_SCORE <= score <= MAX_SCORE:
        return score
    return None


def clean_name(text: str) -> Optional[str]:
    """Client name, or None when shorter than the minimum."""
    name = " ".join(text.split())
    if len(name) < MIN_NAME_LENGTH:
        return None
    return name


class ConversationFlow:
    """Service selection rules over the catalog."""

    CONTINUE_KEYWORD = "continue"

    def __init__(self, catalog: Optional[Catalog] = None):
        self._catalog = catalog

    def _get_catalog(self) -> Catalog:
        if self._catalog is None:
            self._catalog = get_catalog()
        return self._catalog

    def select_service(self, current: Sequence[Service], text: str) -> ServiceSelection:
        """Apply one service-step input to the current selection.

        Rules:
            - at most one exclusive service (cut or bundle)
            - add-ons only once an exclusive service is held
            - each add-on at most once
            - the bundle replaces the selection
            - "continue" advances only with an exclusive service held

        Args:
            current: Services selected so far
            text: User input

        Returns:
            ServiceSelection with the (possibly unchanged) selection
        """
        current = tuple(current)
        has_exclusive = any(s.exclusive for s in current)

        if text.strip().lower() == self.CONTINUE_KEYWORD:
            if has_exclusive:
                return ServiceSelection(SelectionOutcome.CONTINUE, current)
            return ServiceSelection(SelectionOutcome.CONTINUE_BLOCKED, current)

        catalog = self._get_catalog()
        service = catalog.service_by_code(text)
        if service is None:
            return ServiceSelection(SelectionOutcome.INVALID, current)

        if service.exclusive and has_exclusive:
            return ServiceSelection(SelectionOutcome.SECOND_EXCLUSIVE, current, service)

        if not service.exclusive and not has_exclusive:
            return ServiceSelection(SelectionOutcome.ADDON_FIRST, current, service)

        if not service.exclusive and any(s.id == service.id for s in current):
            return ServiceSelection(SelectionOutcome.DUPLICATE, current, service)

        if catalog.bundle is not None and service.id == catalog.bundle.id:
            return ServiceSelection(SelectionOutcome.BUNDLE, (service,), service)

        return ServiceSelection(SelectionOutcome.ADDED, current + (service,), service)


# Singleton
_flow: Optional[ConversationFlow] = None


def get_conversation_flow() -> ConversationFlow:
    """Get singleton ConversationFlow."""
    global _flow
    if _flow is None:
        _flow = ConversationFlow()
    return _flow
