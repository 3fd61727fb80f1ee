"""Structured logging setup via structlog."""

import logging

import structlog

from entity_audit.config import AuditSettings


def configure_logging(settings: AuditSettings) -> None:
    """Configure structlog for the host process.

    Hosts that already configure structlog can skip this; the package
    only ever calls ``structlog.get_logger()``.

    Args:
        settings: Audit settings providing log level and renderer choice
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            (
                structlog.processors.JSONRenderer()
                if settings.json_logs
                else structlog.dev.ConsoleRenderer()
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(settings.log_level)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


__all__ = [
    "configure_logging",
]
