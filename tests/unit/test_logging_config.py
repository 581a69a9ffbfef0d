"""Tests for logging configuration and secret redaction."""

import pytest
import structlog

from authcore.core.config import Settings
from authcore.core.logging_config import (
    REDACTED,
    configure_logging,
    redact_sensitive_fields,
)


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    structlog.reset_defaults()


class TestRedactSensitiveFields:
    """Test redact_sensitive_fields()."""

    def test_masks_secrets(self):
        """Password and token values are replaced."""
        event = {
            "event": "login",
            "password": "hunter2hunter2",
            "token": "abc",
            "user_id": "u1",
        }
        result = redact_sensitive_fields(None, "info", event)
        assert result["password"] == REDACTED
        assert result["token"] == REDACTED
        assert result["user_id"] == "u1"

    def test_leaves_other_events_untouched(self):
        """Events without sensitive keys pass through unchanged."""
        event = {"event": "user_registered", "user_id": "u1"}
        assert redact_sensitive_fields(None, "info", dict(event)) == event


class TestConfigureLogging:
    """Test configure_logging()."""

    def test_secrets_never_rendered(self, capsys):
        """Configured loggers redact before rendering."""
        configure_logging(Settings(environment="test", log_level="INFO"))
        structlog.get_logger("authcore.test").info(
            "password_updated", password="hunter2hunter2", user_id="u1"
        )
        err = capsys.readouterr().err
        assert "password_updated" in err
        assert "hunter2hunter2" not in err
        assert REDACTED in err

    def test_level_filtering(self, capsys):
        """Events below the configured level are dropped."""
        configure_logging(Settings(environment="test", log_level="WARNING"))
        structlog.get_logger("authcore.test").info("too_quiet")
        assert "too_quiet" not in capsys.readouterr().err

    def test_production_renders_json(self, capsys):
        """Production output is one JSON object per line."""
        configure_logging(
            Settings(
                environment="production",
                database_password="a-real-password",
                resend_api_key="re_live",
            )
        )
        structlog.get_logger("authcore.test").info("email_updated", user_id="u1")
        err = capsys.readouterr().err
        assert '"event": "email_updated"' in err
