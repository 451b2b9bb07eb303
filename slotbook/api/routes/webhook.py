"""
Inbound Message Webhook.

The messaging transport posts every inbound text here; the conversation
engine handles it and delivers its replies through the notification
service. The replies are also echoed in the response body.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from slotbook.api.middleware.auth import require_webhook_token
from slotbook.core.conversation import (
    ConversationEngine,
    EngineResponse,
    get_conversation_engine,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhook", tags=["Webhook"])


class InboundMessage(BaseModel):
    """Inbound text message."""

    user_id: str = Field(
        ...,
        min_length=1,
        max_length=128,
        description="Stable sender identity",
        examples=["5585999990000@s.whatsapp.net"],
    )
    text: str = Field(
        default="",
        max_length=2000,
        description="Message text",
        examples=["book"],
    )
    contact_name: Optional[str] = Field(
        default=None,
        max_length=128,
        description="Sender display name, if the transport provides one",
    )


class MessageResponse(BaseModel):
    """Outcome of an inbound message."""

    user_id: str
    step: str = Field(..., description="Conversation step after the message")
    replies: list[str] = Field(default_factory=list)
    appointment_id: Optional[int] = Field(
        default=None,
        description="Appointment created by this message, if any",
    )


class ErrorResponse(BaseModel):
    """Error response."""

    error: str
    detail: Optional[str] = None


@router.post(
    "/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_200_OK,
    summary="Deliver an inbound message",
    description="Run an inbound user message through the conversation engine.",
    responses={
        200: {"description": "Message handled"},
        401: {"model": ErrorResponse, "description": "Unauthorized"},
        500: {"model": ErrorResponse, "description": "Internal server error"},
    },
    dependencies=[Depends(require_webhook_token)],
)
async def receive_message(
    message: InboundMessage,
    engine: ConversationEngine = Depends(get_conversation_engine),
) -> MessageResponse:
    """
    Handle one inbound message.

    Empty or whitespace-only text is ignored.
    """
    try:
        response: EngineResponse = await engine.process(
            user_id=message.user_id,
            text=message.text,
            contact_name=message.contact_name,
        )
    except Exception as e:
        logger.exception(f"Error processing inbound message: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to process message",
        )

    return MessageResponse(**response.to_dict())
