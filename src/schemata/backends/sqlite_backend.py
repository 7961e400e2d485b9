"""SQLite connection backend using the stdlib sqlite3 module.

Features:
    - Autocommit mode with explicit BEGIN/COMMIT, so DDL can run inside
      schema-rebuild transactions
    - Path validation and parent directory creation
    - PRAGMA configuration via options
    - Transparent reconnect-and-retry when SQLite reports that the database
      schema changed under an open statement
"""

from __future__ import annotations

import logging
import re
import sqlite3
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ..errors import ConfigurationError, DialectError
from .base import DatabaseBackendBase, Dialect, Params, QueryResult
from .param_converter import ParamConverter

if TYPE_CHECKING:
    from ..config import ConnectionConfig

logger = logging.getLogger(__name__)

SCHEMA_CHANGED_PATTERN = re.compile(r"database schema has changed", re.IGNORECASE)


class SqliteBackend(DatabaseBackendBase):
    """SQLite backend using stdlib sqlite3.

    Example:
        backend = SqliteBackend()
        backend.connect(ConnectionConfig(adapter="sqlite", database="/data/app.db"))
        rows = backend.select_all("SELECT * FROM users WHERE id = ?", (42,))
        backend.disconnect()
    """

    dialect = Dialect.SQLITE

    DEFAULT_PRAGMAS: dict[str, str | int] = {
        "foreign_keys": "OFF",
        "busy_timeout": 30000,
    }

    def __init__(self) -> None:
        super().__init__()
        self._conn: sqlite3.Connection | None = None
        self._converter = ParamConverter(self.dialect)

    def connect(self, config: ConnectionConfig) -> None:
        """Connect to SQLite database.

        Creates parent directories of the database file if they don't exist
        and applies PRAGMA settings from ``config.options["pragmas"]``.

        Raises:
            ConfigurationError: If no database path is configured
        """
        self._config = config
        path = config.database
        if path is None:
            raise ConfigurationError("SQLite requires 'database' parameter")

        if path != ":memory:" and not path.startswith(":"):
            Path(path).parent.mkdir(parents=True, exist_ok=True)

        try:
            conn = sqlite3.connect(path, isolation_level=None)
        except sqlite3.Error as e:
            raise DialectError(str(e), dialect=self.dialect.value) from e
        conn.row_factory = sqlite3.Row

        pragmas = {**self.DEFAULT_PRAGMAS}
        pragmas["busy_timeout"] = config.timeout * 1000
        pragmas.update(config.options.get("pragmas", {}))
        for pragma, value in pragmas.items():
            try:
                conn.execute(f"PRAGMA {pragma}={value}")
            except sqlite3.Error as e:
                logger.warning(f"Failed to set PRAGMA {pragma}={value}: {e}")

        self._conn = conn
        self._transaction_depth = 0
        logger.debug(f"Connected to SQLite database: {path}")

    def disconnect(self) -> None:
        """Close SQLite connection.

        Safe to call multiple times or if not connected.
        """
        if self._conn is None:
            return
        self._conn.close()
        self._conn = None
        self._transaction_depth = 0
        logger.debug("Disconnected from SQLite database")

    @property
    def is_connected(self) -> bool:
        """Check if the native connection is open."""
        return self._conn is not None

    @property
    def sqlite_version(self) -> str:
        """Version of the linked SQLite library."""
        return sqlite3.sqlite_version

    def _run(self, sql: str, params: Params) -> QueryResult:
        """Run one statement, retrying once after a schema-change reconnect."""
        self._ensure_connected()
        try:
            return self._run_once(sql, params)
        except sqlite3.Error as e:
            if not SCHEMA_CHANGED_PATTERN.search(str(e)) or self.in_transaction:
                raise DialectError(str(e), code=_error_code(e), dialect=self.dialect.value) from e
            logger.debug(f"Schema changed under statement, reconnecting: {e}")

        self.reconnect()
        try:
            return self._run_once(sql, params)
        except sqlite3.Error as e:
            raise DialectError(str(e), code=_error_code(e), dialect=self.dialect.value) from e

    def _run_once(self, sql: str, params: Params) -> QueryResult:
        assert self._conn is not None
        cursor = self._conn.execute(
            self._converter.convert(sql, params), self._converter.convert_params(params)
        )
        if cursor.description:
            rows = [dict(row) for row in cursor.fetchall()]
            columns = [desc[0] for desc in cursor.description]
            return QueryResult(rows=rows, row_count=len(rows), columns=columns)

        return QueryResult(
            row_count=cursor.rowcount,
            last_insert_id=cursor.lastrowid if sql.lstrip().upper().startswith("INSERT") else None,
            affected_rows=cursor.rowcount,
        )

    def _begin(self) -> None:
        self._run("BEGIN", None)

    def _commit(self) -> None:
        self._run("COMMIT", None)

    def _rollback(self) -> None:
        assert self._conn is not None
        if self._conn.in_transaction:
            self._conn.execute("ROLLBACK")


def _error_code(error: sqlite3.Error) -> Any:
    """Extract the SQLite error code, when the Python build exposes it."""
    return getattr(error, "sqlite_errorname", None)
