"""Tests for attaching and detaching the audit interceptor."""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session
from structlog.testing import capture_logs

from entity_audit.audit.interceptor import AuditInterceptor, _within
from entity_audit.config import AuditHook, AuditSettings


def make_settings(**overrides) -> AuditSettings:
    return AuditSettings(_env_file=None, **overrides)


class TestAttach:
    """Tests for attach/detach on session targets."""

    def test_attach_sessionmaker(self, session_factory, sink, settings):
        """Test that attaching registers the listeners once."""
        interceptor = AuditInterceptor(sink, settings=settings)

        interceptor.attach(session_factory)
        interceptor.attach(session_factory)

        assert interceptor.is_attached(session_factory)

    def test_detach(self, session_factory, sink, settings):
        """Test that detach removes the listeners."""
        interceptor = AuditInterceptor(sink, settings=settings)
        interceptor.attach(session_factory)

        interceptor.detach(session_factory)

        assert not interceptor.is_attached(session_factory)

    def test_attached_context(self, session_factory, sink, settings):
        """Test that attached() scopes the listeners to a block."""
        interceptor = AuditInterceptor(sink, settings=settings)

        with interceptor.attached(session_factory) as attached:
            assert attached is interceptor
            assert interceptor.is_attached(session_factory)

        assert not interceptor.is_attached(session_factory)

    def test_disabled_does_not_attach(self, session_factory, sink):
        """Test that a disabled interceptor leaves sessions alone."""
        interceptor = AuditInterceptor(sink, settings=make_settings(enabled=False))

        with capture_logs() as logs:
            interceptor.attach(session_factory)

        assert not interceptor.is_attached(session_factory)
        assert logs[0]["event"] == "audit_disabled"

    def test_async_session_uses_sync_session(self, sink, settings):
        """Test that an AsyncSession is audited through its sync session."""
        interceptor = AuditInterceptor(sink, settings=settings)
        async_session = AsyncSession()

        interceptor.attach(async_session)

        assert interceptor.is_attached(async_session.sync_session)

    def test_separate_interceptors(self, session_factory, sink, settings):
        """Test that interceptors track their own listeners."""
        first = AuditInterceptor(sink, settings=settings)
        second = AuditInterceptor(sink, settings=make_settings(hook=AuditHook.POST_COMMIT))

        first.attach(session_factory)

        assert first.is_attached(session_factory)
        assert not second.is_attached(session_factory)


class TestPending:
    """Tests for AuditInterceptor.pending."""

    def test_nothing_pending(self, sink, settings):
        """Test that a fresh session has no pending records."""
        interceptor = AuditInterceptor(sink, settings=settings)
        assert interceptor.pending(Session()) == []


class TestWithin:
    """Tests for the transaction ancestry helper."""

    def test_nested(self, savepoint_engine):
        """Test that a savepoint lies within its root transaction."""
        with Session(savepoint_engine) as session:
            root = session.begin()
            nested = session.begin_nested()

            assert _within(nested, root)
            assert _within(root, root)
            assert not _within(root, nested)
            assert not _within(None, root)

            nested.rollback()
            root.rollback()
