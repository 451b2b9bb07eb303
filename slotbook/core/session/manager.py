"""In-process session store for conversation state."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from .models import ConversationState

logger = logging.getLogger(__name__)


class SessionManager:
    """
    Per-user conversation state store.

    States live in process memory only. Every read-modify-write of a user's
    state must happen while holding that user's lock (see locked), so two
    near-simultaneous messages from the same user are handled one after the
    other. Locks are dropped once no task holds or waits on them.
    """

    def __init__(self):
        """Initialize session manager."""
        self._states: dict[str, ConversationState] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    def lock_for(self, user_id: str) -> asyncio.Lock:
        """Serializing lock of a user, created on first use."""
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock

    @asynccontextmanager
    async def locked(self, user_id: str) -> AsyncIterator[None]:
        """Hold a user's lock for one read-modify-write."""
        lock = self.lock_for(user_id)
        self._lock_users[user_id] = self._lock_users.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._lock_users.pop(user_id, 1) - 1
            if remaining:
                self._lock_users[user_id] = remaining
            else:
                self._locks.pop(user_id, None)

    def get(self, user_id: str) -> ConversationState:
        """
        Get a user's state, creating a fresh idle one on first contact.

        Args:
            user_id: User identity

        Returns:
            Current ConversationState
        """
        state = self._states.get(user_id)
        if state is None:
            state = ConversationState(user_id=user_id)
            self._states[user_id] = state
            logger.debug(f"Session created: {user_id}")
        return state

    def peek(self, user_id: str) -> Optional[ConversationState]:
        """Get a user's state without creating one."""
        return self._states.get(user_id)

    def save(self, state: ConversationState) -> None:
        """Replace a user's state wholesale."""
        self._states[state.user_id] = state
        logger.debug(f"Session saved: {state.user_id} -> {state.step.value}")

    def reset(self, user_id: str) -> ConversationState:
        """Return a user to a fresh idle state."""
        state = ConversationState(user_id=user_id)
        self._states[user_id] = state
        return state

    def clear(self) -> None:
        """Drop every session."""
        self._states.clear()
        self._locks.clear()
        self._lock_users.clear()

    @property
    def active_count(self) -> int:
        return len(self._states)


# Singleton
_manager: Optional[SessionManager] = None


def get_session_manager() -> SessionManager:
    """Get singleton SessionManager."""
    global _manager
    if _manager is None:
        _manager = SessionManager()
    return _manager
