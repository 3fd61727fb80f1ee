"""Automatic audit capture via SQLAlchemy session event listeners.

Change records are captured in ``after_flush``, when the session still
exposes its pre-flush new/dirty/deleted sets and attribute history while
generated primary keys are already set on the instances. All flushes of
one commit cycle are folded into a single AuditEvent, handed to the sink
either just before the database commit or just after it.

Pending records live in ``session.info``; nothing is shared between
sessions and no locks are taken.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

import structlog
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session, SessionTransaction

from entity_audit.audit.assembler import AuditEventAssembler
from entity_audit.audit.correlation import ConnectionIntrospector
from entity_audit.audit.models import AuditEvent, Correlation, EntityChangeRecord
from entity_audit.audit.schema import SchemaRegistry
from entity_audit.audit.sinks import AsyncAuditSink, AuditSink
from entity_audit.config import AuditHook, AuditSettings
from entity_audit.core.constants import SESSION_BUFFER_KEY, SESSION_COMMITTED_KEY


log = structlog.get_logger()


@dataclass
class PendingCapture:
    """Records captured so far in the current commit cycle.

    Each record is tagged with the transaction it was flushed in so a
    savepoint rollback can drop exactly its own records.
    """

    records: list[tuple[SessionTransaction, EntityChangeRecord]] = field(
        default_factory=list
    )
    correlation: Correlation | None = None


def _current_transaction(session: Session) -> SessionTransaction | None:
    return session.get_nested_transaction() or session.get_transaction()


def _within(
    transaction: SessionTransaction | None,
    ancestor: SessionTransaction,
) -> bool:
    while transaction is not None:
        if transaction is ancestor:
            return True
        transaction = transaction.parent
    return False


def _listen_target(target: Any) -> Any:
    if isinstance(target, AsyncSession):
        return target.sync_session
    return target


class AuditInterceptor:
    """Attach audit capture to sessions and deliver events to a sink.

    Example:
        sink = LoggingSink()
        interceptor = AuditInterceptor(sink, settings=AuditSettings())
        interceptor.attach(SessionLocal)  # a sessionmaker

        with SessionLocal() as session:
            session.add(Order(number="A-1"))
            session.commit()  # sink.write() receives one AuditEvent
    """

    def __init__(
        self,
        sink: AuditSink,
        settings: AuditSettings | None = None,
        registry: SchemaRegistry | None = None,
        introspector: ConnectionIntrospector | None = None,
    ) -> None:
        """Initialize the interceptor.

        Args:
            sink: Receiver of assembled audit events
            settings: Audit settings, environment defaults if omitted
            registry: Entity descriptor registry
            introspector: Correlation strategy, from settings if omitted
        """
        self.sink = sink
        self.settings = settings if settings is not None else AuditSettings()
        self.assembler = AuditEventAssembler(
            self.settings,
            registry=registry,
            introspector=introspector,
        )

    @property
    def registry(self) -> SchemaRegistry:
        return self.assembler.registry

    def _listeners(self) -> dict[str, Any]:
        return {
            "after_flush": self._after_flush,
            "before_commit": self._before_commit,
            "after_commit": self._after_commit,
            "after_soft_rollback": self._after_soft_rollback,
            "after_transaction_end": self._after_transaction_end,
        }

    def attach(self, target: Any) -> None:
        """Start auditing a Session, Session subclass or sessionmaker.

        Does nothing when auditing is disabled in settings.

        Args:
            target: Session class, sessionmaker, Session or AsyncSession
        """
        if not self.settings.enabled:
            log.info("audit_disabled", target=repr(target))
            return

        target = _listen_target(target)
        for name, listener in self._listeners().items():
            if not event.contains(target, name, listener):
                event.listen(target, name, listener)

        log.debug(
            "audit_attached",
            target=repr(target),
            mode=self.settings.mode.value,
            hook=self.settings.hook.value,
        )

    def detach(self, target: Any) -> None:
        """Stop auditing a target previously passed to attach()."""
        target = _listen_target(target)
        for name, listener in self._listeners().items():
            if event.contains(target, name, listener):
                event.remove(target, name, listener)

    def is_attached(self, target: Any) -> bool:
        target = _listen_target(target)
        return event.contains(target, "after_flush", self._after_flush)

    @contextmanager
    def attached(self, target: Any) -> Iterator["AuditInterceptor"]:
        """Audit a target for the duration of a with-block."""
        self.attach(target)
        try:
            yield self
        finally:
            self.detach(target)

    def pending(self, session: Session | AsyncSession) -> list[EntityChangeRecord]:
        """Records captured in the current cycle and not yet delivered."""
        session = _listen_target(session)
        capture: PendingCapture | None = session.info.get(SESSION_BUFFER_KEY)
        if capture is None:
            return []
        return [record for _, record in capture.records]

    # Session event handlers

    def _after_flush(self, session: Session, _flush_context: Any) -> None:
        """Capture the changes this flush just wrote."""
        records = self.assembler.capture(session)
        if not records:
            return

        capture: PendingCapture = session.info.setdefault(
            SESSION_BUFFER_KEY, PendingCapture()
        )
        if capture.correlation is None:
            capture.correlation = self.assembler.correlate(session.connection())

        transaction = _current_transaction(session)
        capture.records.extend((transaction, record) for record in records)

    def _before_commit(self, session: Session) -> None:
        """Deliver the event before the database commit (pre-commit hook)."""
        if self.settings.hook is not AuditHook.PRE_COMMIT:
            return
        if session.in_nested_transaction():
            return

        session.flush()
        audit_event = self._pending_event(session)
        if audit_event is not None:
            # Sink errors propagate and abort the commit with the buffer intact
            self._deliver(audit_event)
        session.info.pop(SESSION_BUFFER_KEY, None)

    def _after_commit(self, session: Session) -> None:
        """Deliver the event after the database commit (post-commit hook)."""
        if session.in_nested_transaction():
            return

        audit_event = self._drain(session)
        if audit_event is None:
            return

        if self.settings.hook is AuditHook.PRE_COMMIT:
            # Outer commit issued while a savepoint was still open
            log.warning(
                "audit_event_delivered_after_commit",
                event_type=audit_event.event_type,
                entries=len(audit_event.entries),
            )

        try:
            self._deliver(audit_event)
        except Exception:
            log.exception(
                "audit_sink_failed",
                event_type=audit_event.event_type,
                transaction_id=audit_event.transaction_id,
                entries=len(audit_event.entries),
            )

    def _after_soft_rollback(
        self,
        session: Session,
        previous_transaction: SessionTransaction,
    ) -> None:
        """Drop records flushed inside the rolled-back transaction."""
        capture: PendingCapture | None = session.info.get(SESSION_BUFFER_KEY)
        if capture is None:
            return

        kept = [
            (transaction, record)
            for transaction, record in capture.records
            if not _within(transaction, previous_transaction)
        ]
        dropped = len(capture.records) - len(kept)
        capture.records = kept
        if dropped:
            log.debug("audit_records_discarded", count=dropped, reason="rollback")

    def _after_transaction_end(
        self,
        session: Session,
        transaction: SessionTransaction,
    ) -> None:
        """Reset the cycle when the outermost transaction ends."""
        if transaction.parent is not None:
            return
        capture: PendingCapture | None = session.info.pop(SESSION_BUFFER_KEY, None)
        if capture is not None and capture.records:
            log.debug(
                "audit_records_discarded",
                count=len(capture.records),
                reason="transaction_end",
            )

    # Delivery

    def _pending_event(self, session: Session) -> AuditEvent | None:
        capture: PendingCapture | None = session.info.get(SESSION_BUFFER_KEY)
        if capture is None:
            return None
        return self.assembler.assemble(
            [record for _, record in capture.records],
            capture.correlation,
        )

    def _drain(self, session: Session) -> AuditEvent | None:
        audit_event = self._pending_event(session)
        session.info.pop(SESSION_BUFFER_KEY, None)
        return audit_event

    def _deliver(self, audit_event: AuditEvent) -> None:
        self.sink.write(audit_event)
        self._log_delivered(audit_event)

    def _log_delivered(self, audit_event: AuditEvent) -> None:
        log.info(
            "audit_event_emitted",
            event_type=audit_event.event_type,
            connection_id=audit_event.connection_id,
            transaction_id=audit_event.transaction_id,
            entries=len(audit_event.entries),
        )


class AsyncAuditInterceptor(AuditInterceptor):
    """Audit AsyncSession commits with an awaitable sink.

    Listeners still capture on the underlying sync session; delivery
    happens in commit(), which awaits the sink before or after the
    database commit depending on the configured hook.

    Example:
        interceptor = AsyncAuditInterceptor(sink, settings=settings)
        interceptor.attach(AuditedSession)  # async_sessionmaker sync_session_class

        async with session_factory() as session:
            session.add(Order(number="A-1"))
            await interceptor.commit(session)
    """

    sink: AsyncAuditSink

    async def commit(self, session: AsyncSession) -> AuditEvent | None:
        """Commit the session and deliver its audit event.

        Events left behind by bare ``session.commit()`` calls are delivered
        first, oldest first.

        Args:
            session: Async session to commit

        Returns:
            The event of this commit, or None if nothing was audited

        Raises:
            Exception: Whatever the sink raises in pre-commit mode; the
                session is left uncommitted and its records stay buffered
        """
        sync_session = session.sync_session

        if not self.settings.enabled:
            await session.commit()
            return None

        await self._deliver_committed(sync_session)

        if self.settings.hook is AuditHook.PRE_COMMIT:
            await session.flush()
            audit_event = self._pending_event(sync_session)
            if audit_event is not None:
                await self.sink.write(audit_event)
                self._log_delivered(audit_event)
            sync_session.info.pop(SESSION_BUFFER_KEY, None)
            await session.commit()
            await self._deliver_committed(sync_session)
            return audit_event

        await session.commit()
        delivered = await self._deliver_committed(sync_session)
        return delivered[-1] if delivered else None

    async def _deliver_committed(self, session: Session) -> list[AuditEvent]:
        committed: list[AuditEvent] = session.info.pop(SESSION_COMMITTED_KEY, [])
        for audit_event in committed:
            await self._deliver_post_commit(audit_event)
        return committed

    async def _deliver_post_commit(self, audit_event: AuditEvent) -> None:
        try:
            await self.sink.write(audit_event)
        except Exception:
            log.exception(
                "audit_sink_failed",
                event_type=audit_event.event_type,
                transaction_id=audit_event.transaction_id,
                entries=len(audit_event.entries),
            )
            return
        self._log_delivered(audit_event)

    def _before_commit(self, session: Session) -> None:
        # Delivery is awaited in commit()
        return

    def _after_commit(self, session: Session) -> None:
        if session.in_nested_transaction():
            return
        audit_event = self._drain(session)
        if audit_event is None:
            return
        committed: list[AuditEvent] = session.info.setdefault(
            SESSION_COMMITTED_KEY, []
        )
        committed.append(audit_event)
        if self.settings.hook is AuditHook.PRE_COMMIT or len(committed) > 1:
            log.warning(
                "audit_event_deferred",
                reason="session committed without AsyncAuditInterceptor.commit()",
                pending=len(committed),
            )
