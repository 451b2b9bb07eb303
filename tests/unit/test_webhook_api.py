"""Tests for the HTTP surface: webhook auth, message route and health checks."""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from slotbook.config import Settings
from slotbook.core.conversation import ConversationEngine, EngineResponse, get_conversation_engine
from slotbook.core.session import ConversationStep
from slotbook.main import app

AUTH_SETTINGS = "slotbook.api.middleware.auth.get_settings"


@pytest.fixture
def engine():
    """Conversation engine mock."""
    mock = AsyncMock(spec=ConversationEngine)
    mock.process.return_value = EngineResponse(
        user_id="user-1",
        step=ConversationStep.CHOOSING_PROVIDER,
        replies=["Who would you like to book with?"],
    )
    return mock


@pytest.fixture
def client(engine):
    """Test client without lifespan (no database or scheduler startup)."""
    app.dependency_overrides[get_conversation_engine] = lambda: engine
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def open_webhook():
    """Development settings without a webhook token."""
    with patch(AUTH_SETTINGS, return_value=Settings(webhook_token=None, app_env="development")):
        yield


@pytest.fixture
def protected_webhook():
    """Production settings with a webhook token."""
    with patch(AUTH_SETTINGS, return_value=Settings(webhook_token="secret", app_env="production")):
        yield


class TestMessageWebhook:
    """Test POST /webhook/messages."""

    def test_message_is_processed(self, client, engine, open_webhook):
        response = client.post(
            "/webhook/messages",
            json={"user_id": "user-1", "text": "book", "contact_name": "John"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["step"] == "choosing_provider"
        assert data["replies"] == ["Who would you like to book with?"]
        assert data["appointment_id"] is None
        engine.process.assert_awaited_once_with(
            user_id="user-1", text="book", contact_name="John"
        )

    def test_appointment_id_is_returned(self, client, engine, open_webhook):
        engine.process.return_value = EngineResponse(
            user_id="user-1", step=ConversationStep.IDLE, replies=["ok"], appointment_id=12
        )

        response = client.post("/webhook/messages", json={"user_id": "user-1", "text": "John Smith"})

        assert response.json()["appointment_id"] == 12

    def test_text_defaults_to_empty(self, client, engine, open_webhook):
        engine.process.return_value = EngineResponse(user_id="user-1", step=ConversationStep.IDLE)

        response = client.post("/webhook/messages", json={"user_id": "user-1"})

        assert response.status_code == 200
        assert response.json()["replies"] == []
        assert engine.process.await_args.kwargs["text"] == ""

    def test_missing_user_id_is_rejected(self, client, open_webhook):
        response = client.post("/webhook/messages", json={"user_id": "", "text": "book"})

        assert response.status_code == 422

    def test_engine_failure_is_500(self, client, engine, open_webhook):
        engine.process.side_effect = RuntimeError("boom")

        response = client.post("/webhook/messages", json={"user_id": "user-1", "text": "book"})

        assert response.status_code == 500


class TestWebhookAuth:
    """Test the shared-secret header."""

    def test_missing_token(self, client, protected_webhook):
        response = client.post("/webhook/messages", json={"user_id": "user-1", "text": "book"})

        assert response.status_code == 401

    def test_wrong_token(self, client, protected_webhook):
        response = client.post(
            "/webhook/messages",
            json={"user_id": "user-1", "text": "book"},
            headers={"X-Webhook-Token": "guess"},
        )

        assert response.status_code == 401

    def test_valid_token(self, client, engine, protected_webhook):
        response = client.post(
            "/webhook/messages",
            json={"user_id": "user-1", "text": "book"},
            headers={"X-Webhook-Token": "secret"},
        )

        assert response.status_code == 200
        engine.process.assert_awaited_once()

    def test_unconfigured_token_outside_development(self, client):
        with patch(AUTH_SETTINGS, return_value=Settings(webhook_token=None, app_env="production")):
            response = client.post("/webhook/messages", json={"user_id": "user-1", "text": "book"})

        assert response.status_code == 401


class TestHealth:
    """Test health checks."""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_live(self, client):
        response = client.get("/health/live")

        assert response.status_code == 200
        assert response.json()["status"] == "alive"

    def test_ready(self, client):
        with patch(
            "slotbook.api.routes.health.check_db_health", AsyncMock(return_value=True)
        ):
            response = client.get("/health/ready")

        assert response.status_code == 200
        checks = response.json()["checks"]
        assert checks["database"] == "ok"
        assert checks["scheduler"] == "stopped"

    def test_not_ready_when_database_down(self, client):
        with patch(
            "slotbook.api.routes.health.check_db_health", AsyncMock(return_value=False)
        ):
            response = client.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["status"] == "not_ready"

    def test_not_ready_when_database_check_raises(self, client):
        with patch(
            "slotbook.api.routes.health.check_db_health",
            AsyncMock(side_effect=RuntimeError("no such table")),
        ):
            response = client.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["checks"]["database"] == "failed"

    def test_live_reports_sessions(self, client):
        response = client.get("/health/live")

        assert response.json()["active_sessions"] >= 0
