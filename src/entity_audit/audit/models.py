"""Audit event value types.

An AuditEvent is built once per committed unit of work and is frozen
before it reaches the sink. Sequences are tuples and mappings are
read-only proxies, so the event cannot be altered after assembly.
"""

from collections.abc import Mapping
from datetime import UTC, datetime
from enum import Enum
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from entity_audit.audit.serialization import serialize_value


class MutationKind(str, Enum):
    """Kind of mutation recorded for an entity."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class ColumnChange(BaseModel):
    """A single modified column of an updated entity."""

    model_config = ConfigDict(frozen=True)

    column: str = Field(..., description="Mapped column name")
    original_value: Any = Field(None, description="Value before the update")
    new_value: Any = Field(None, description="Value after the update")


class EntityChangeRecord(BaseModel):
    """Change captured for one entity within a unit of work."""

    model_config = ConfigDict(frozen=True)

    table: str = Field(..., description="Mapped table name")
    entity_type: str = Field(..., description="Mapped class name")
    action: MutationKind = Field(..., description="Mutation kind")
    primary_key: Mapping[str, Any] = Field(
        default_factory=dict,
        validate_default=True,
        description="Primary key column -> value, in declaration order",
    )
    column_values: Mapping[str, Any] = Field(
        default_factory=dict,
        validate_default=True,
        description="Column -> value snapshot (original values for deletes)",
    )
    changes: tuple[ColumnChange, ...] | None = Field(
        None, description="Modified columns, populated for updates only"
    )
    valid: bool = Field(True, description="Whether entity validation passed")
    validation_results: tuple[str, ...] = Field(
        default_factory=tuple, description="Validation failure messages"
    )
    entity: Mapping[str, Any] | None = Field(
        None, description="Attribute snapshot when entities are included"
    )

    @field_validator("primary_key", "column_values", "entity")
    @classmethod
    def freeze_mapping(
        cls, v: Mapping[str, Any] | None
    ) -> Mapping[str, Any] | None:
        """Wrap mappings in a read-only view of a private copy."""
        if v is None:
            return None
        return MappingProxyType(dict(v))

    @field_serializer("primary_key", "column_values", "entity")
    def dump_mapping(self, v: Mapping[str, Any] | None) -> dict[str, Any] | None:
        return None if v is None else dict(v)


class Correlation(BaseModel):
    """Identifiers linking an event to the physical connection."""

    model_config = ConfigDict(frozen=True)

    database: str | None = None
    connection_id: str | None = None
    transaction_id: str | None = None


class AuditEvent(BaseModel):
    """All entity changes of one committed unit of work."""

    model_config = ConfigDict(frozen=True)

    event_type: str = Field(..., description="Event type, e.g. the database name")
    database: str | None = Field(None, description="Database name")
    connection_id: str | None = Field(None, description="Client connection id")
    transaction_id: str | None = Field(
        None, description="Transaction id, None outside a transaction"
    )
    entries: tuple[EntityChangeRecord, ...] = Field(
        default_factory=tuple, description="Captured entity changes, in order"
    )
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def to_json_dict(self) -> dict[str, Any]:
        """Return the event as JSON-compatible primitives.

        Column values keep whatever Python type the mapping produced, so
        they go through serialize_value rather than pydantic's JSON mode.
        """
        return serialize_value(self.model_dump())

    def __repr__(self) -> str:
        return (
            f"<AuditEvent(event_type={self.event_type}, "
            f"transaction_id={self.transaction_id}, entries={len(self.entries)})>"
        )
