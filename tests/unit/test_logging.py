"""Unit tests for logging service."""

from datetime import datetime, timezone
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
import structlog

from identityhub.models.user import User
from identityhub.services import notification_service
from identityhub.services.logging_service import configure_logging, get_logger, redact_sensitive


class TestRedactSensitive:
    """Tests for redact_sensitive processor."""

    def test_redacts_authorization(self):
        event_dict = {"authorization": "Bearer token123", "event": "test"}
        result = redact_sensitive(None, None, event_dict)
        assert result["authorization"] == "REDACTED"

    def test_redacts_password_fields(self):
        event_dict = {"password": "a", "new_password": "b", "event": "test"}
        result = redact_sensitive(None, None, event_dict)
        assert result["password"] == "REDACTED"
        assert result["new_password"] == "REDACTED"

    def test_redacts_secret_in_key_name(self):
        result = redact_sensitive(None, None, {"jwt_secret_key": "abc", "event": "test"})
        assert result["jwt_secret_key"] == "REDACTED"

    def test_redacts_token_values(self):
        event_dict = {
            "access_token": "a",
            "refresh_token": "b",
            "reset_token": "c",
            "confirmation_token": "d",
            "event": "test",
        }
        result = redact_sensitive(None, None, event_dict)
        assert {result[k] for k in event_dict if k != "event"} == {"REDACTED"}

    def test_case_insensitive_redaction(self):
        result = redact_sensitive(None, None, {"Authorization": "Bearer x"})
        assert result["Authorization"] == "REDACTED"

    def test_preserves_non_sensitive_fields(self):
        event_dict = {"correlation_id": "abc-123", "user_id": "u1", "revoked_count": 2}
        result = redact_sensitive(None, None, dict(event_dict))
        assert result == event_dict


class TestConfigureLogging:
    def test_json_output_is_redacted(self, capsys):
        configure_logging("INFO")
        logger = structlog.get_logger("test")

        logger.info("password_reset_issued", user_id="u1", reset_token="secret-value")

        out = capsys.readouterr().out
        assert "password_reset_issued" in out
        assert "secret-value" not in out
        assert "REDACTED" in out

    def test_get_logger_binds_name(self):
        configure_logging("DEBUG")
        logger = get_logger("unit")
        assert logger is not None


class TestLoggingNotifier:
    """The default notifier logs the hand-off, never the token itself."""

    @pytest.mark.asyncio
    async def test_tokens_absent_from_log_calls(self, monkeypatch):
        logger = MagicMock()
        monkeypatch.setattr(notification_service, "logger", logger)
        user = User(
            id=uuid4(),
            email="alice@example.com",
            username="alice@example.com",
            password_hash="x",
            created_at=datetime.now(timezone.utc),
        )
        notifier = notification_service.LoggingNotifier()

        await notifier.send_email_confirmation(user, "confirm-secret")
        await notifier.send_password_reset(user, "reset-secret")

        events = [c.args[0] for c in logger.info.call_args_list]
        assert events == ["email_confirmation_issued", "password_reset_issued"]
        for logged in logger.info.call_args_list:
            assert "confirm-secret" not in logged.kwargs.values()
            assert "reset-secret" not in logged.kwargs.values()
            assert logged.kwargs["user_id"] == str(user.id)
