"""PostgreSQL connection backend using psycopg2.

The connection runs in autocommit mode so a failed statement outside an
explicit transaction does not poison the session; schema adapters rely on
this when they try a direct ALTER first and fall back to an emulation.

Note:
    Requires the 'psycopg2' package: pip install schemata[postgresql]
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ..errors import DialectError
from .base import DatabaseBackendBase, Dialect, Params, QueryResult
from .param_converter import ParamConverter

if TYPE_CHECKING:
    from ..config import ConnectionConfig

logger = logging.getLogger(__name__)


def _import_psycopg2() -> Any:
    """Import psycopg2 with helpful error message if not installed."""
    try:
        import psycopg2
        import psycopg2.extras

        return psycopg2
    except ImportError as e:
        raise ImportError(
            "PostgreSQL backend requires 'psycopg2' package. "
            "Install with: pip install schemata[postgresql]"
        ) from e


class PostgresBackend(DatabaseBackendBase):
    """PostgreSQL backend using psycopg2.

    Example:
        backend = PostgresBackend()
        backend.connect(ConnectionConfig(
            adapter="postgresql",
            host="localhost",
            database="mydb",
            username="user",
            password="pass",
        ))
        version = backend.select_value("SHOW server_version_num")
        backend.disconnect()
    """

    dialect = Dialect.POSTGRESQL

    def __init__(self) -> None:
        super().__init__()
        self._conn: Any = None
        self._driver: Any = None
        self._converter = ParamConverter(self.dialect)

    def connect(self, config: ConnectionConfig) -> None:
        """Open the connection.

        Raises:
            DialectError: If connection fails
            ImportError: If psycopg2 is not installed
        """
        psycopg2 = _import_psycopg2()
        self._driver = psycopg2
        self._config = config

        try:
            conn = psycopg2.connect(
                host=config.host,
                port=config.port,
                dbname=config.database,
                user=config.username,
                password=config.password,
                connect_timeout=config.timeout,
                **config.options,
            )
        except psycopg2.Error as e:
            raise DialectError(str(e).strip(), code=e.pgcode, dialect=self.dialect.value) from e
        conn.autocommit = True
        self._conn = conn
        self._transaction_depth = 0

        if config.search_path:
            self.execute(f"SET search_path TO {config.search_path}")

        logger.debug(f"Connected to PostgreSQL: {config.host}:{config.port}/{config.database}")

    def disconnect(self) -> None:
        """Close the connection. Safe to call multiple times."""
        if self._conn is None:
            return
        self._conn.close()
        self._conn = None
        self._transaction_depth = 0
        logger.debug("Disconnected from PostgreSQL")

    @property
    def is_connected(self) -> bool:
        """Check if the native connection is open."""
        return self._conn is not None and not self._conn.closed

    def _run(self, sql: str, params: Params) -> QueryResult:
        self._ensure_connected()
        psycopg2 = self._driver
        try:
            with self._conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cursor:
                cursor.execute(
                    self._converter.convert(sql, params),
                    self._converter.convert_params(params) if params else None,
                )
                if cursor.description:
                    rows = [dict(row) for row in cursor.fetchall()]
                    columns = [desc[0] for desc in cursor.description]
                    return QueryResult(rows=rows, row_count=len(rows), columns=columns)
                return QueryResult(row_count=cursor.rowcount, affected_rows=cursor.rowcount)
        except psycopg2.Error as e:
            raise DialectError(str(e).strip(), code=e.pgcode, dialect=self.dialect.value) from e

    def _begin(self) -> None:
        self._run("BEGIN", None)

    def _commit(self) -> None:
        self._run("COMMIT", None)

    def _rollback(self) -> None:
        self._run("ROLLBACK", None)

    def last_insert_id(self) -> int | None:
        """Return the current session's most recently generated sequence value."""
        try:
            return self.select_value("SELECT lastval()")
        except DialectError as e:
            # lastval() is undefined until a sequence was used in this session
            logger.debug(f"No sequence value generated yet: {e.message}")
            return None
