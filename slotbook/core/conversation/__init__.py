"""
Conversation Module

Per-user booking conversation: input interpretation and the engine that
ties sessions, availability, the ledger and the scheduler together.

Usage:
    from slotbook.core.conversation import process_message

    response = await process_message(
        user_id="5585999990000@s.whatsapp.net",
        text="book",
    )
    print(response.replies)
    print(response.step)
"""

# Conversation Flow
from slotbook.core.conversation.flow import (
    Command,
    ConversationFlow,
    SelectionOutcome,
    ServiceSelection,
    get_conversation_flow,
    parse_command,
)

# Conversation Engine (main orchestrator)
from slotbook.core.conversation.engine import (
    ConversationEngine,
    EngineResponse,
    get_conversation_engine,
    process_message,
)

__all__ = [
    # Conversation Flow
    "Command",
    "ConversationFlow",
    "SelectionOutcome",
    "ServiceSelection",
    "get_conversation_flow",
    "parse_command",
    # Conversation Engine
    "ConversationEngine",
    "EngineResponse",
    "get_conversation_engine",
    "process_message",
]
