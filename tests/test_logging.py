"""Tests for chatrelay.core.logging."""

import logging
from unittest.mock import patch

import structlog

from chatrelay.core.config import Settings
from chatrelay.core.logging import QUIET_LOGGERS, add_app_context, setup_logging


def _configure(**overrides) -> None:
    with patch("chatrelay.core.logging.get_settings", return_value=Settings(**overrides)):
        setup_logging()


class TestSetupLogging:

    def test_quiets_provider_loggers(self):
        _configure()
        for name in QUIET_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING

    def test_db_echo_controls_sqlalchemy(self):
        _configure(db_echo=True)
        assert logging.getLogger("sqlalchemy.engine").level == logging.INFO
        _configure(db_echo=False)
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING

    def test_json_renderer_outside_debug(self):
        _configure(debug=False)
        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.processors.JSONRenderer)

    def test_console_renderer_in_debug(self):
        _configure(debug=True)
        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)


def test_app_context_added():
    with patch(
        "chatrelay.core.logging.get_settings",
        return_value=Settings(app_name="relay-test", app_version="9.9.9"),
    ):
        event = add_app_context(None, "info", {"event": "x"})
    assert event == {"event": "x", "app": "relay-test", "version": "9.9.9"}
