"""Tests for structlog configuration."""

import pytest
import structlog

from entity_audit.config import AuditSettings
from entity_audit.core.logging import configure_logging


@pytest.fixture(autouse=True)
def reset_structlog():
    """Restore structlog defaults after each test."""
    yield
    structlog.reset_defaults()


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_console_renderer(self):
        """Test that console rendering is the default."""
        configure_logging(AuditSettings(_env_file=None))

        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)

    def test_json_renderer(self):
        """Test that json_logs switches to JSON output."""
        configure_logging(AuditSettings(_env_file=None, json_logs=True))

        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.processors.JSONRenderer)

    def test_level_filtering(self, capsys):
        """Test that messages below the configured level are dropped."""
        configure_logging(
            AuditSettings(_env_file=None, log_level="WARNING", json_logs=True)
        )
        logger = structlog.get_logger("test")

        logger.info("hidden")
        logger.warning("shown")

        out = capsys.readouterr().out
        assert "hidden" not in out
        assert '"event": "shown"' in out
