"""Pytest configuration and shared fixtures."""

from collections.abc import AsyncGenerator, Generator

import pytest
from sqlalchemy import Engine, create_engine, event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from entity_audit.audit import AsyncInMemorySink, InMemorySink, SchemaRegistry
from entity_audit.config import AuditSettings
from tests.models import Base


def _memory_engine(**kwargs) -> Engine:
    return create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        **kwargs,
    )


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    """Create an in-memory SQLite engine with all test tables."""
    engine = _memory_engine()
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def savepoint_engine() -> Generator[Engine, None, None]:
    """SQLite engine with working SAVEPOINT support.

    pysqlite's own transaction handling breaks SAVEPOINT, so BEGIN is
    emitted explicitly as recommended by the SQLAlchemy SQLite docs.
    """
    engine = _memory_engine()

    @event.listens_for(engine, "connect")
    def do_connect(dbapi_connection, _connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker[Session]:
    """Session factory bound to the test engine.

    Each sessionmaker generates its own Session subclass, so listeners
    attached to it never leak into other tests.
    """
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """Provide a session that is closed after the test."""
    with session_factory() as session:
        yield session


@pytest.fixture
def registry() -> SchemaRegistry:
    """Registry with every test model registered."""
    registry = SchemaRegistry()
    registry.register_all(Base)
    return registry


@pytest.fixture
def settings() -> AuditSettings:
    """Default audit settings, independent of the environment."""
    return AuditSettings(_env_file=None)


@pytest.fixture
def sink() -> InMemorySink:
    """Collecting sink."""
    return InMemorySink()


@pytest.fixture
async def async_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create an in-memory aiosqlite engine with all test tables."""
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def sync_session_class() -> type[Session]:
    """Fresh Session subclass to attach async audit listeners to."""
    return type("AuditedSession", (Session,), {})


@pytest.fixture
def async_session_factory(
    async_engine: AsyncEngine,
    sync_session_class: type[Session],
) -> async_sessionmaker[AsyncSession]:
    """Async session factory whose sync sessions use sync_session_class."""
    return async_sessionmaker(
        bind=async_engine,
        class_=AsyncSession,
        sync_session_class=sync_session_class,
        expire_on_commit=False,
    )


@pytest.fixture
def async_sink() -> AsyncInMemorySink:
    """Collecting async sink."""
    return AsyncInMemorySink()
