"""Tests for logging configuration."""

from clip_archiver.logging import redact_secrets, setup_logging


def test_credentials_are_masked() -> None:
    event = {"event": "token_refreshed", "access_token": "abc", "channel": "alpha"}

    result = redact_secrets(None, "info", event)

    assert result["access_token"] == "***"
    assert result["channel"] == "alpha"


def test_empty_values_are_left_alone() -> None:
    assert redact_secrets(None, "info", {"key": None})["key"] is None


def test_setup_is_idempotent() -> None:
    import logging

    setup_logging()
    handlers = len(logging.getLogger().handlers)
    setup_logging()

    assert len(logging.getLogger().handlers) == handlers
