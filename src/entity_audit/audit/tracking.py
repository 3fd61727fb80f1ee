"""Enumeration of the tracked entities a unit of work will persist."""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from sqlalchemy import inspect
from sqlalchemy.orm import InstanceState, Session

from entity_audit.audit.models import MutationKind
from entity_audit.audit.policy import InclusionPolicy
from entity_audit.audit.schema import EntitySchema, SchemaRegistry


class EntityState(str, Enum):
    """Persistence state of a tracked entity within the unit of work."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    UNCHANGED = "unchanged"

    @property
    def action(self) -> MutationKind:
        """Mutation kind recorded for this state.

        Raises:
            ValueError: For UNCHANGED, which is never audited
        """
        if self is EntityState.UNCHANGED:
            raise ValueError("Unchanged entities have no mutation kind")
        return _ACTIONS[self]


_ACTIONS = {
    EntityState.ADDED: MutationKind.INSERT,
    EntityState.MODIFIED: MutationKind.UPDATE,
    EntityState.DELETED: MutationKind.DELETE,
}


@dataclass(frozen=True)
class TrackedEntry:
    """A tracked entity plus its mutation state and descriptor."""

    instance: Any
    state: EntityState
    schema: EntitySchema

    @property
    def instance_state(self) -> InstanceState[Any]:
        """SQLAlchemy instance state (attribute history, identity)."""
        return inspect(self.instance)


def enumerate_changes(
    session: Session,
    policy: InclusionPolicy,
    registry: SchemaRegistry,
) -> list[TrackedEntry]:
    """List the audited entities with pending inserts, updates or deletes.

    Walks ``session.new``, ``session.dirty`` and ``session.deleted`` in
    that order. Nothing is flushed, loaded or modified.

    Args:
        session: Session whose unit of work is scanned
        policy: Inclusion policy for entity types
        registry: Descriptor registry

    Returns:
        Tracked entries in capture order, empty if nothing is audited
    """
    candidates: list[tuple[Any, EntityState]] = [
        *((instance, EntityState.ADDED) for instance in session.new),
        *(
            (instance, EntityState.MODIFIED)
            for instance in session.dirty
            # dirty is optimistic: any attribute set event lands here
            if session.is_modified(instance, include_collections=False)
        ),
        *((instance, EntityState.DELETED) for instance in session.deleted),
    ]

    entries: list[TrackedEntry] = []
    for instance, state in candidates:
        schema = registry.get(type(instance))
        if policy.includes(schema):
            entries.append(TrackedEntry(instance=instance, state=state, schema=schema))

    return entries
