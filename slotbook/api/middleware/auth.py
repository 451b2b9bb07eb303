"""
Webhook Authentication

Inbound message webhooks carry a shared secret in the X-Webhook-Token
header, compared in constant time against WEBHOOK_TOKEN.
"""

import hmac
import logging
from typing import Optional

from fastapi import HTTPException, Request, Security, status
from fastapi.security import APIKeyHeader

from slotbook.config import get_settings

logger = logging.getLogger(__name__)

# Webhook token header scheme
webhook_token_header = APIKeyHeader(name="X-Webhook-Token", auto_error=False)


def mask_token(token: str) -> str:
    """Mask a token for logging, keeping the first 4 characters."""
    if len(token) <= 4:
        return "***"
    return f"{token[:4]}***"


def verify_token(provided: str, expected: str) -> bool:
    """Constant-time token comparison."""
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


async def require_webhook_token(
    request: Request,
    token: Optional[str] = Security(webhook_token_header),
) -> None:
    """
    FastAPI dependency that verifies the webhook shared secret.

    Without a configured WEBHOOK_TOKEN, requests are accepted only in
    development.

    Raises:
        HTTPException 401: Missing or wrong token
    """
    settings = get_settings()
    client_ip = request.client.host if request.client else "unknown"

    if not settings.webhook_token:
        if settings.is_development:
            return
        logger.error(f"Webhook rejected: WEBHOOK_TOKEN not configured | IP: {client_ip}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Webhook authentication not configured",
        )

    if not token:
        logger.warning(f"Webhook auth failed: No token provided | IP: {client_ip}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Webhook token required",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    if not verify_token(token, settings.webhook_token):
        logger.warning(f"Webhook auth failed: Invalid token {mask_token(token)} | IP: {client_ip}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook token",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    logger.debug(f"Webhook auth success | IP: {client_ip}")
