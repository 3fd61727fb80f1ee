"""Structured audit events for inserts, updates and deletes in SQLAlchemy sessions."""

from entity_audit.audit import (
    AsyncAuditInterceptor,
    AuditEvent,
    AuditEventAssembler,
    AuditInterceptor,
    ColumnChange,
    EntityChangeRecord,
    InMemorySink,
    LoggingSink,
    MutationKind,
    SchemaRegistry,
)
from entity_audit.config import AuditHook, AuditMode, AuditSettings, get_settings
from entity_audit.core.database import AuditIgnoreMixin, AuditMixin
from entity_audit.core.errors import AuditError, ConfigurationError, MappingError


__version__ = "0.1.0"

__all__ = [
    "AsyncAuditInterceptor",
    "AuditError",
    "AuditEvent",
    "AuditEventAssembler",
    "AuditHook",
    "AuditIgnoreMixin",
    "AuditInterceptor",
    "AuditMixin",
    "AuditMode",
    "AuditSettings",
    "ColumnChange",
    "ConfigurationError",
    "EntityChangeRecord",
    "InMemorySink",
    "LoggingSink",
    "MappingError",
    "MutationKind",
    "SchemaRegistry",
    "get_settings",
]
