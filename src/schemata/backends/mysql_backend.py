"""MySQL/MariaDB connection backend using PyMySQL.

Note:
    Requires the 'PyMySQL' package: pip install schemata[mysql]
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


def _import_pymysql() -> Any:
    """Import pymysql with helpful error message if not installed."""
    try:
        import pymysql
        import pymysql.cursors

        return pymysql
    except ImportError as e:
        raise ImportError(
            "MySQL backend requires 'PyMySQL' package. Install with: pip install schemata[mysql]"
        ) from e


class MysqlBackend(DatabaseBackendBase):
    """MySQL backend using PyMySQL in autocommit mode.

    Example:
        backend = MysqlBackend()
        backend.connect(ConnectionConfig(
            adapter="mysql",
            host="localhost",
            database="mydb",
            username="user",
            password="pass",
        ))
        tables = backend.select_values("SHOW TABLES")
        backend.disconnect()
    """

    dialect = Dialect.MYSQL

    def __init__(self) -> None:
        super().__init__()
        self._conn: Any = None
        self._driver: Any = None
        self._converter = ParamConverter(self.dialect)

    def connect(self, config: ConnectionConfig) -> None:
        """Open the connection.

        Raises:
            DialectError: If connection fails
            ImportError: If PyMySQL is not installed
        """
        pymysql = _import_pymysql()
        self._driver = pymysql
        self._config = config

        try:
            self._conn = pymysql.connect(
                host=config.host,
                port=config.port,
                database=config.database,
                user=config.username,
                password=config.password or "",
                charset=config.charset or "utf8mb4",
                connect_timeout=config.timeout,
                autocommit=True,
                cursorclass=pymysql.cursors.DictCursor,
                **config.options,
            )
        except pymysql.MySQLError as e:
            raise _wrap(e, self.dialect) from e
        self._transaction_depth = 0
        logger.debug(f"Connected to MySQL: {config.host}:{config.port}/{config.database}")

    def disconnect(self) -> None:
        """Close the connection. Safe to call multiple times."""
        if self._conn is None:
            return
        self._conn.close()
        self._conn = None
        self._transaction_depth = 0
        logger.debug("Disconnected from MySQL")

    @property
    def is_connected(self) -> bool:
        """Check if the native connection is open."""
        return self._conn is not None and self._conn.open

    def _run(self, sql: str, params: Params) -> QueryResult:
        self._ensure_connected()
        try:
            with self._conn.cursor() as cursor:
                affected = cursor.execute(
                    self._converter.convert(sql, params),
                    self._converter.convert_params(params) if params else None,
                )
                if cursor.description:
                    rows = list(cursor.fetchall())
                    columns = [desc[0] for desc in cursor.description]
                    return QueryResult(rows=rows, row_count=len(rows), columns=columns)
                return QueryResult(
                    row_count=affected,
                    last_insert_id=cursor.lastrowid or None,
                    affected_rows=affected,
                )
        except self._driver.MySQLError as e:
            raise _wrap(e, self.dialect) from e

    def _begin(self) -> None:
        self._conn.begin()

    def _commit(self) -> None:
        try:
            self._conn.commit()
        except self._driver.MySQLError as e:
            raise _wrap(e, self.dialect) from e

    def _rollback(self) -> None:
        try:
            self._conn.rollback()
        except self._driver.MySQLError as e:
            raise _wrap(e, self.dialect) from e


def _wrap(error: Exception, dialect: Dialect) -> DialectError:
    """Convert a PyMySQL error, whose args are (code, message), to DialectError."""
    if len(error.args) >= 2:
        return DialectError(str(error.args[1]), code=error.args[0], dialect=dialect.value)
    return DialectError(str(error), dialect=dialect.value)
