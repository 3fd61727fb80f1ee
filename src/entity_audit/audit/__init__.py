"""Audit events for SQLAlchemy units of work.

Provides:
- AuditEvent / EntityChangeRecord / ColumnChange value types
- AuditEventAssembler building events from a session's pending changes
- AuditInterceptor / AsyncAuditInterceptor attaching capture to sessions
- Reference sinks (structured log, in-memory)
"""

from entity_audit.audit.assembler import AuditEventAssembler
from entity_audit.audit.correlation import ConnectionIntrospector, get_introspector
from entity_audit.audit.interceptor import AsyncAuditInterceptor, AuditInterceptor
from entity_audit.audit.models import (
    AuditEvent,
    ColumnChange,
    Correlation,
    EntityChangeRecord,
    MutationKind,
)
from entity_audit.audit.policy import InclusionPolicy
from entity_audit.audit.schema import EntitySchema, SchemaRegistry
from entity_audit.audit.sinks import (
    AsyncAuditSink,
    AsyncInMemorySink,
    AuditSink,
    InMemorySink,
    LoggingSink,
)
from entity_audit.audit.validation import EntityValidator, ValidatableEntity


__all__ = [
    "AsyncAuditInterceptor",
    "AsyncAuditSink",
    "AsyncInMemorySink",
    "AuditEvent",
    "AuditEventAssembler",
    "AuditInterceptor",
    "AuditSink",
    "ColumnChange",
    "ConnectionIntrospector",
    "Correlation",
    "EntityChangeRecord",
    "EntitySchema",
    "EntityValidator",
    "InMemorySink",
    "InclusionPolicy",
    "LoggingSink",
    "MutationKind",
    "SchemaRegistry",
    "ValidatableEntity",
    "get_introspector",
]
