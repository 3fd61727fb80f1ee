"""Error hierarchy for the audit package."""

from entity_audit.core.errors.exceptions import (
    AuditError,
    ConfigurationError,
    MappingError,
    SinkError,
)


__all__ = [
    "AuditError",
    "ConfigurationError",
    "MappingError",
    "SinkError",
]
