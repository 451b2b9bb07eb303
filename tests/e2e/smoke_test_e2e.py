"""
E2E Smoke Tests for Slotbook.

These tests drive a running server through the inbound message webhook.
The messaging transport and the external calendar may be unconfigured:
outbound messages are then only logged and bookings carry no event.

Scenarios:
1. Health check - verify service is up
2. Idle hint - first message gets the onboarding hint once
3. Booking flow - provider, services, date, slot, name
4. Cancel keyword - abandons the booking flow
5. Cancel appointment - finds and cancels the booking made in 3

Usage:
    pytest tests/e2e/smoke_test_e2e.py -v

Prerequisites:
    - Slotbook running at http://localhost:8000 (SLOTBOOK_URL)
    - WEBHOOK_TOKEN exported if the server requires one
"""

import os
import uuid
from typing import Optional

import httpx
import pytest

# Configuration from environment
SLOTBOOK_URL = os.getenv("SLOTBOOK_URL", "http://localhost:8000")
WEBHOOK_TOKEN = os.getenv("WEBHOOK_TOKEN", "")
TIMEOUT = float(os.getenv("E2E_TIMEOUT", "30"))


class WebhookClient:
    """Simple HTTP client for the message webhook."""

    def __init__(
        self,
        base_url: str = SLOTBOOK_URL,
        token: str = WEBHOOK_TOKEN,
        user_id: Optional[str] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.user_id = user_id or f"e2e-{uuid.uuid4().hex[:12]}"

    def send(self, text: str) -> dict:
        """Send one message as this client's user and return the response."""
        headers = {}
        if self.token:
            headers["X-Webhook-Token"] = self.token

        with httpx.Client(timeout=TIMEOUT) as client:
            response = client.post(
                f"{self.base_url}/webhook/messages",
                json={"user_id": self.user_id, "text": text, "contact_name": "E2E"},
                headers=headers,
            )
            response.raise_for_status()
            return response.json()


@pytest.fixture
def client():
    """Fresh user for each test."""
    return WebhookClient()


class TestHealthCheck:
    """Verify the service is up and responding."""

    def test_health_endpoint(self):
        with httpx.Client(timeout=TIMEOUT) as client:
            response = client.get(f"{SLOTBOOK_URL}/health")
            assert response.status_code == 200
            assert response.json().get("status") == "healthy"


class TestIdleHint:
    """Test onboarding hint."""

    def test_hint_sent_once(self, client):
        first = client.send("Hello")
        second = client.send("Hello?")

        assert first["step"] == "idle"
        assert len(first["replies"]) == 1
        assert second["replies"] == []


class TestBookingFlow:
    """Full booking over the webhook."""

    def test_book_and_cancel(self, client):
        assert client.send("book")["step"] == "choosing_provider"
        assert client.send("1")["step"] == "choosing_services"
        assert client.send("1")["step"] == "choosing_services"

        dates = client.send("continue")
        if dates["step"] != "choosing_date":
            pytest.skip("No bookable days for the first provider")

        slots = client.send("1")
        if slots["step"] != "choosing_slot":
            pytest.skip("First offered day filled up")

        assert client.send("1")["step"] == "confirming_name"

        booked = client.send("E2E Client")
        assert booked["step"] == "idle"
        assert booked.get("appointment_id") is not None

        prompt = client.send("cancel appointment")
        assert prompt["step"] == "confirming_cancellation"

        done = client.send("1")
        assert done["step"] == "idle"
        assert "cancelled" in done["replies"][0].lower()

    def test_cancel_keyword(self, client):
        client.send("book")
        client.send("2")

        response = client.send("cancel")

        assert response["step"] == "idle"
