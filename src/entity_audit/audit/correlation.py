"""Connection and transaction correlation ids, one introspector per backend.

Every introspector implements the same ``correlate(connection)`` contract.
Ids that cannot be resolved are reported as None and never raise: an
autocommit statement has no transaction id, and some drivers expose no
usable connection id at all.
"""

from typing import Any

import structlog
from sqlalchemy import Connection, text
from sqlalchemy.exc import SQLAlchemyError

from entity_audit.audit.models import Correlation
from entity_audit.core.constants import (
    AUTOCOMMIT_ISOLATION,
    CORRELATION_AUTO,
    CORRELATION_NONE,
)
from entity_audit.core.errors import ConfigurationError


log = structlog.get_logger()


class ConnectionIntrospector:
    """Generic introspector working with any SQLAlchemy dialect.

    The connection id is derived from the DBAPI connection handle and the
    transaction id from the active SQLAlchemy transaction. Subclasses ask
    the server instead where it can tell.
    """

    name = "generic"

    def correlate(self, connection: Connection) -> Correlation:
        """Resolve correlation ids for a connection.

        Args:
            connection: Connection the unit of work runs on

        Returns:
            Correlation with every unresolvable id set to None
        """
        database = self._lookup("database", self.database, connection)
        connection_id = self._lookup("connection_id", self.connection_id, connection)

        transaction_id = None
        if self._lookup("transaction_active", self.transaction_active, connection):
            transaction_id = self._lookup(
                "transaction_id", self.transaction_id, connection
            )

        return Correlation(
            database=database,
            connection_id=connection_id,
            transaction_id=transaction_id,
        )

    def database(self, connection: Connection) -> Any:
        return connection.engine.url.database

    def connection_id(self, connection: Connection) -> Any:
        return f"{id(self._dbapi_connection(connection)):x}"

    def transaction_active(self, connection: Connection) -> bool:
        if self._autocommit(connection):
            return False
        return connection.in_transaction()

    def transaction_id(self, connection: Connection) -> Any:
        transaction = connection.get_transaction()
        if transaction is None:
            return None
        return f"{id(transaction):x}"

    def _dbapi_connection(self, connection: Connection) -> Any:
        return connection.connection.dbapi_connection

    def _autocommit(self, connection: Connection) -> bool:
        options = connection.get_execution_options()
        if options.get("isolation_level") == AUTOCOMMIT_ISOLATION:
            return True
        # psycopg, pymysql and friends expose a boolean autocommit flag
        dbapi_connection = self._dbapi_connection(connection)
        return getattr(dbapi_connection, "autocommit", False) is True

    def _lookup(self, field: str, resolver: Any, connection: Connection) -> Any:
        try:
            value = resolver(connection)
        except (SQLAlchemyError, AttributeError) as e:
            log.debug(
                "audit_correlation_unavailable",
                backend=self.name,
                field=field,
                error=str(e),
            )
            return None
        if value is None or isinstance(value, bool):
            return value
        return str(value)

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(name={self.name})>"


class SQLiteIntrospector(ConnectionIntrospector):
    """SQLite has no server-side connection or transaction ids.

    The native ``in_transaction`` flag of the sqlite3 connection decides
    whether a transaction is open, so autocommit statements report none.
    """

    name = "sqlite"

    def transaction_active(self, connection: Connection) -> bool:
        native = getattr(self._dbapi_connection(connection), "in_transaction", None)
        if native is not None:
            return bool(native)
        # async adapters hide the sqlite3 connection
        if self._autocommit(connection):
            return False
        return connection.in_transaction()

    def _autocommit(self, connection: Connection) -> bool:
        if super()._autocommit(connection):
            return True
        # pysqlite runs in autocommit when isolation_level is None
        return getattr(self._dbapi_connection(connection), "isolation_level", "") is None


class PostgreSQLIntrospector(ConnectionIntrospector):
    """Backend pid and the assigned transaction id from the server."""

    name = "postgresql"

    def connection_id(self, connection: Connection) -> Any:
        return connection.execute(text("SELECT pg_backend_pid()")).scalar()

    def transaction_id(self, connection: Connection) -> Any:
        return connection.execute(text("SELECT txid_current_if_assigned()")).scalar()


class MySQLIntrospector(ConnectionIntrospector):
    """Thread id and the InnoDB transaction id from the server."""

    name = "mysql"

    def connection_id(self, connection: Connection) -> Any:
        return connection.execute(text("SELECT CONNECTION_ID()")).scalar()

    def transaction_id(self, connection: Connection) -> Any:
        return connection.execute(
            text(
                "SELECT trx_id FROM information_schema.innodb_trx "
                "WHERE trx_mysql_thread_id = CONNECTION_ID()"
            )
        ).scalar()


class NullIntrospector(ConnectionIntrospector):
    """Correlation disabled: only the database name is reported."""

    name = CORRELATION_NONE

    def connection_id(self, connection: Connection) -> Any:
        return None

    def transaction_active(self, connection: Connection) -> bool:
        return False


INTROSPECTORS: dict[str, type[ConnectionIntrospector]] = {
    "generic": ConnectionIntrospector,
    "sqlite": SQLiteIntrospector,
    "postgresql": PostgreSQLIntrospector,
    "mysql": MySQLIntrospector,
    "mariadb": MySQLIntrospector,
    CORRELATION_NONE: NullIntrospector,
}


class AutoIntrospector(ConnectionIntrospector):
    """Pick the introspector matching the connection's dialect.

    Dialects without a dedicated introspector use the generic one.
    """

    name = CORRELATION_AUTO

    def __init__(self) -> None:
        self._by_dialect: dict[str, ConnectionIntrospector] = {}

    def for_dialect(self, dialect_name: str) -> ConnectionIntrospector:
        introspector = self._by_dialect.get(dialect_name)
        if introspector is None:
            introspector = INTROSPECTORS.get(dialect_name, ConnectionIntrospector)()
            self._by_dialect[dialect_name] = introspector
        return introspector

    def correlate(self, connection: Connection) -> Correlation:
        return self.for_dialect(connection.dialect.name).correlate(connection)


def get_introspector(backend: str) -> ConnectionIntrospector:
    """Create the introspector configured by name.

    Args:
        backend: "auto", "none", or a key of INTROSPECTORS

    Returns:
        Introspector instance

    Raises:
        ConfigurationError: If the backend is unknown
    """
    if backend == CORRELATION_AUTO:
        return AutoIntrospector()
    try:
        return INTROSPECTORS[backend]()
    except KeyError:
        raise ConfigurationError(
            f"Unknown correlation backend: {backend}",
            details={"available": sorted([CORRELATION_AUTO, *INTROSPECTORS])},
        ) from None
