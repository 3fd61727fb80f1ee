"""Column value, change and primary key extraction for tracked entries.

Values come from SQLAlchemy attribute history so the ORM's own dirty
tracking decides what changed. Attributes that are not loaded (expired
or deferred) report None; nothing here triggers a lazy load.
"""

from typing import Any

from sqlalchemy.orm.attributes import History

from entity_audit.audit.models import ColumnChange
from entity_audit.audit.schema import EntitySchema
from entity_audit.audit.tracking import EntityState, TrackedEntry
from entity_audit.core.errors import MappingError


def original_value(history: History) -> Any:
    """Value the attribute had when it was loaded or last flushed."""
    if history.deleted:
        return history.deleted[0]
    if history.unchanged:
        return history.unchanged[0]
    return None


def current_value(history: History) -> Any:
    """Value the attribute holds in memory."""
    if history.added:
        return history.added[0]
    if history.unchanged:
        return history.unchanged[0]
    return None


def _histories(entry: TrackedEntry) -> dict[str, History]:
    attrs = entry.instance_state.attrs
    return {column.key: attrs[column.key].history for column in entry.schema.columns}


def column_values(entry: TrackedEntry) -> dict[str, Any]:
    """Get every mapped column's value for a tracked entry.

    Deleted entries report original values; inserts and updates report
    current values.

    Args:
        entry: Tracked entry to read

    Returns:
        Dictionary of column name -> value, in mapper order
    """
    pick = original_value if entry.state is EntityState.DELETED else current_value
    histories = _histories(entry)
    return {
        column.name: pick(histories[column.key]) for column in entry.schema.columns
    }


def column_changes(entry: TrackedEntry) -> list[ColumnChange]:
    """Get the modified columns of an updated entry.

    A column counts as modified exactly when the ORM history reports net
    changes for it.

    Args:
        entry: Tracked entry in the MODIFIED state

    Returns:
        One ColumnChange per modified column, in mapper order
    """
    changes = []
    histories = _histories(entry)
    for column in entry.schema.columns:
        history = histories[column.key]
        if history.has_changes():
            changes.append(
                ColumnChange(
                    column=column.name,
                    original_value=original_value(history),
                    new_value=current_value(history),
                )
            )
    return changes


def entity_snapshot(entry: TrackedEntry) -> dict[str, Any]:
    """Get an attribute-keyed snapshot of the entity.

    Uses the same original/current rule as column_values, keyed by
    attribute name instead of column name.
    """
    pick = original_value if entry.state is EntityState.DELETED else current_value
    histories = _histories(entry)
    return {key: pick(history) for key, history in histories.items()}


def resolve_primary_key(schema: EntitySchema, instance: Any) -> dict[str, Any]:
    """Read the primary key of a live instance.

    Args:
        schema: Descriptor of the instance's type
        instance: The live mapped instance

    Returns:
        Dictionary of key column name -> value in declaration order,
        empty for keyless types

    Raises:
        MappingError: If a declared key attribute cannot be read
    """
    key = {}
    for attr in schema.primary_key:
        try:
            value = getattr(instance, attr)
        except AttributeError as e:
            raise MappingError(
                f"Cannot read primary key attribute '{attr}' of {schema.name}",
                entity_type=schema.name,
                attribute=attr,
            ) from e
        key[schema.column(attr).name] = value
    return key
