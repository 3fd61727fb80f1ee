"""Assembly of audit events from a session's unit of work."""

from collections.abc import Iterable

import structlog
from sqlalchemy import Connection
from sqlalchemy.orm import Session

from entity_audit.audit.correlation import ConnectionIntrospector, get_introspector
from entity_audit.audit.extractor import (
    column_changes,
    column_values,
    entity_snapshot,
    resolve_primary_key,
)
from entity_audit.audit.models import AuditEvent, Correlation, EntityChangeRecord
from entity_audit.audit.policy import InclusionPolicy
from entity_audit.audit.schema import SchemaRegistry
from entity_audit.audit.tracking import EntityState, TrackedEntry, enumerate_changes
from entity_audit.audit.validation import EntityValidator, ValidationOutcome
from entity_audit.config import AuditSettings


log = structlog.get_logger()


class AuditEventAssembler:
    """Build change records and audit events for a session.

    The assembler only reads: it never flushes, commits, loads or
    modifies the entities it inspects. It holds no per-commit state, so
    one instance can serve any number of sessions.
    """

    def __init__(
        self,
        settings: AuditSettings,
        registry: SchemaRegistry | None = None,
        introspector: ConnectionIntrospector | None = None,
    ) -> None:
        """Initialize the assembler.

        Args:
            settings: Audit settings (mode, entity snapshots, validation)
            registry: Entity descriptor registry, a private one if omitted
            introspector: Correlation strategy, from settings if omitted
        """
        self.settings = settings
        self.registry = registry if registry is not None else SchemaRegistry()
        self.introspector = introspector or get_introspector(
            settings.correlation_backend
        )
        self.policy = InclusionPolicy(settings.mode)
        self.validator = EntityValidator()

    def capture(self, session: Session) -> list[EntityChangeRecord]:
        """Build change records for the session's pending changes.

        Args:
            session: Session whose new/dirty/deleted sets are scanned

        Returns:
            Change records in capture order, empty if nothing is audited

        Raises:
            MappingError: If an entity's primary key cannot be read
        """
        entries = enumerate_changes(session, self.policy, self.registry)
        return [self.record(entry) for entry in entries]

    def record(self, entry: TrackedEntry) -> EntityChangeRecord:
        """Build the change record for one tracked entry."""
        values = column_values(entry)

        if self.settings.validate_entities:
            outcome = self.validator.validate(entry, values)
        else:
            outcome = ValidationOutcome(valid=True)

        return EntityChangeRecord(
            table=entry.schema.table,
            entity_type=entry.schema.name,
            action=entry.state.action,
            primary_key=resolve_primary_key(entry.schema, entry.instance),
            column_values=values,
            changes=(
                tuple(column_changes(entry))
                if entry.state is EntityState.MODIFIED
                else None
            ),
            valid=outcome.valid,
            validation_results=outcome.messages,
            entity=entity_snapshot(entry) if self.settings.include_entities else None,
        )

    def correlate(self, connection: Connection) -> Correlation:
        """Resolve correlation ids once for a unit of work."""
        return self.introspector.correlate(connection)

    def assemble(
        self,
        records: Iterable[EntityChangeRecord],
        correlation: Correlation | None,
    ) -> AuditEvent | None:
        """Fold change records into one audit event.

        Args:
            records: Change records of the unit of work
            correlation: Correlation ids shared by every record

        Returns:
            The audit event, or None if there is nothing to audit
        """
        entries = tuple(records)
        if not entries:
            return None

        correlation = correlation or Correlation()
        return AuditEvent(
            event_type=self.event_type(correlation),
            database=correlation.database,
            connection_id=correlation.connection_id,
            transaction_id=correlation.transaction_id,
            entries=entries,
        )

    def build(
        self,
        session: Session,
        connection: Connection | None = None,
    ) -> AuditEvent | None:
        """Capture, correlate and assemble in one pass.

        Args:
            session: Session whose pending changes are audited
            connection: Connection to correlate with; the session's
                current connection when omitted

        Returns:
            The audit event, or None if there is nothing to audit
        """
        records = self.capture(session)
        if not records:
            log.debug("audit_capture_empty")
            return None
        if connection is None:
            connection = session.connection()
        return self.assemble(records, self.correlate(connection))

    def event_type(self, correlation: Correlation) -> str:
        """Render the configured event type template."""
        return self.settings.event_type.format(database=correlation.database or "")
