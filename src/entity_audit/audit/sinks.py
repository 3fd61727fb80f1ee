"""Sink contracts and the reference sinks shipped with the package.

Durable sinks (tables, files, queues) live in the host application and
only need to satisfy AuditSink or AsyncAuditSink. Sinks report delivery
failures by raising SinkError.
"""

from typing import Protocol, runtime_checkable

import structlog

from entity_audit.audit.models import AuditEvent
from entity_audit.core.errors import SinkError


@runtime_checkable
class AuditSink(Protocol):
    """Receives one audit event per committed unit of work."""

    def write(self, event: AuditEvent) -> None: ...


@runtime_checkable
class AsyncAuditSink(Protocol):
    """Async variant, awaited by AsyncAuditInterceptor.commit()."""

    async def write(self, event: AuditEvent) -> None: ...


class LoggingSink:
    """Emit audit events as structured log lines."""

    def __init__(self, event_name: str = "audit_event") -> None:
        self.event_name = event_name
        self.log = structlog.get_logger("entity_audit.sink")

    def write(self, event: AuditEvent) -> None:
        """Log the event.

        Raises:
            SinkError: If the log output cannot be written
        """
        payload = event.to_json_dict()
        try:
            self.log.info(self.event_name, **payload)
        except (OSError, ValueError) as e:
            raise SinkError(
                "Audit event could not be logged",
                details={"event_type": event.event_type, "error": str(e)},
            ) from e


class InMemorySink:
    """Collect audit events in a list."""

    def __init__(self) -> None:
        self.events: list[AuditEvent] = []

    def write(self, event: AuditEvent) -> None:
        self.events.append(event)

    def clear(self) -> None:
        self.events.clear()

    @property
    def last(self) -> AuditEvent | None:
        return self.events[-1] if self.events else None


class AsyncInMemorySink(InMemorySink):
    """Collect audit events in a list from async commits."""

    async def write(self, event: AuditEvent) -> None:  # type: ignore[override]
        self.events.append(event)
