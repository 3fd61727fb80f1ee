"""Audit configuration using pydantic-settings."""

from enum import Enum
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from entity_audit.core.constants import CORRELATION_AUTO, DEFAULT_EVENT_TYPE


class AuditMode(str, Enum):
    """Which entity types are included in audit events."""

    ALL = "all"
    OPT_IN = "opt_in"
    OPT_OUT = "opt_out"


class AuditHook(str, Enum):
    """When the assembled event is handed to the sink."""

    PRE_COMMIT = "pre_commit"
    POST_COMMIT = "post_commit"


class AuditSettings(BaseSettings):
    """Audit settings loaded from environment variables.

    Every setting can be overridden with an ``AUDIT_`` prefixed variable,
    e.g. ``AUDIT_MODE=opt_in`` or ``AUDIT_INCLUDE_ENTITIES=true``.
    """

    model_config = SettingsConfigDict(
        env_prefix="AUDIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Capture
    enabled: bool = True
    mode: AuditMode = AuditMode.OPT_OUT
    include_entities: bool = False
    validate_entities: bool = True
    hook: AuditHook = AuditHook.PRE_COMMIT

    # Correlation
    correlation_backend: str = CORRELATION_AUTO

    # Event naming, e.g. "orders:{database}"
    event_type: str = DEFAULT_EVENT_TYPE

    # Observability
    log_level: str = "INFO"
    json_logs: bool = False

    @field_validator("correlation_backend")
    @classmethod
    def normalize_backend(cls, v: str) -> str:
        """Lower-case the backend name so dialect names match directly."""
        return v.strip().lower()

    @field_validator("event_type")
    @classmethod
    def validate_event_type(cls, v: str) -> str:
        """Check that the template only uses the {database} placeholder.

        Raises:
            ValueError: If the template references other fields
        """
        try:
            v.format(database="")
        except (KeyError, IndexError, ValueError) as e:
            raise ValueError(
                f"event_type may only use the {{database}} placeholder: {e}"
            ) from e
        return v

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """Upper-case the log level.

        Raises:
            ValueError: If the level is not a standard logging level
        """
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


@lru_cache
def get_settings() -> AuditSettings:
    """Get cached settings instance."""
    return AuditSettings()
