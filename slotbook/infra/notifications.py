"""
Notification Service

Outbound text delivery to a user identity through the messaging transport.

Every send is followed by a short pause to respect the transport's rate
limits. Failures raise, so callers that must know about delivery (the
deferred action scheduler) can leave their work pending.
"""

import asyncio
import logging
from typing import Optional

import httpx

from slotbook.config import get_settings

logger = logging.getLogger(__name__)


class NotificationService:
    """Sends text messages through the configured HTTP messaging endpoint.

    When no endpoint is configured, messages are logged instead of sent.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        send_delay: Optional[float] = None,
        timeout: Optional[float] = None,
    ):
        """Initialize notification service.

        Args:
            base_url: Messaging endpoint base URL (defaults to settings)
            token: Bearer token (defaults to settings)
            send_delay: Pause after each send in seconds (defaults to settings)
            timeout: Request timeout in seconds (defaults to settings)
        """
        settings = get_settings()
        self.base_url = base_url if base_url is not None else settings.messaging_api_url
        self.token = token if token is not None else settings.messaging_api_token
        self.send_delay = send_delay if send_delay is not None else settings.send_delay_seconds
        self.timeout = timeout if timeout is not None else settings.messaging_timeout
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def is_configured(self) -> bool:
        """Whether a real transport endpoint is configured."""
        return bool(self.base_url)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            headers = {}
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url or "",
                timeout=self.timeout,
                headers=headers,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def send_text(self, user_id: str, text: str) -> None:
        """Send a text message.

        Args:
            user_id: Recipient identity
            text: Message body

        Raises:
            httpx.HTTPError: If the transport rejects or cannot be reached
        """
        if not self.is_configured:
            logger.info(f"[log-only] message to {user_id}: {text}")
        else:
            client = await self._get_client()
            try:
                response = await client.post(
                    "/messages",
                    json={"to": user_id, "text": text},
                )
                response.raise_for_status()
            except httpx.HTTPError as e:
                logger.error(f"Failed to send message to {user_id}: {e}")
                raise

        if self.send_delay > 0:
            await asyncio.sleep(self.send_delay)


# Singleton
_service: Optional[NotificationService] = None


def get_notification_service() -> NotificationService:
    """Get singleton NotificationService."""
    global _service
    if _service is None:
        _service = NotificationService()
    return _service
