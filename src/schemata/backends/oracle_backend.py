"""Oracle connection backend using python-oracledb (thin mode).

Oracle reports column names in upper case; rows are returned with lower
cased keys so adapters can address metadata columns uniformly. LOB values
are read into str/bytes before rows leave the backend.

Note:
    Requires the 'oracledb' package: pip install schemata[oracle]
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


def _import_oracledb() -> Any:
    """Import oracledb with helpful error message if not installed."""
    try:
        import oracledb

        return oracledb
    except ImportError as e:
        raise ImportError(
            "Oracle backend requires 'oracledb' package. Install with: pip install schemata[oracle]"
        ) from e


class OracleBackend(DatabaseBackendBase):
    """Oracle backend using oracledb.

    Example:
        backend = OracleBackend()
        backend.connect(ConnectionConfig(
            adapter="oracle",
            dsn="dbhost:1521/FREEPDB1",
            username="app",
            password="pass",
        ))
        tables = backend.select_values("SELECT table_name FROM USER_TABLES")
        backend.disconnect()
    """

    dialect = Dialect.ORACLE

    def __init__(self) -> None:
        super().__init__()
        self._conn: Any = None
        self._driver: Any = None
        self._converter = ParamConverter(self.dialect)

    def connect(self, config: ConnectionConfig) -> None:
        """Open the connection.

        Raises:
            DialectError: If connection fails
            ImportError: If oracledb is not installed
        """
        oracledb = _import_oracledb()
        self._driver = oracledb
        self._config = config

        dsn = config.dsn or oracledb.makedsn(config.host, config.port, service_name=config.database)
        try:
            self._conn = oracledb.connect(
                user=config.username,
                password=config.password,
                dsn=dsn,
                **config.options,
            )
        except oracledb.Error as e:
            raise _wrap(e, self.dialect) from e
        self._conn.autocommit = True
        self._transaction_depth = 0
        logger.debug(f"Connected to Oracle: {dsn}")

    def disconnect(self) -> None:
        """Close the connection. Safe to call multiple times."""
        if self._conn is None:
            return
        self._conn.close()
        self._conn = None
        self._transaction_depth = 0
        logger.debug("Disconnected from Oracle")

    @property
    def is_connected(self) -> bool:
        """Check if the native connection is open."""
        return self._conn is not None

    def _run(self, sql: str, params: Params) -> QueryResult:
        self._ensure_connected()
        try:
            with self._conn.cursor() as cursor:
                cursor.execute(
                    self._converter.convert(sql, params), self._converter.convert_params(params)
                )
                if cursor.description:
                    columns = [desc[0].lower() for desc in cursor.description]
                    rows = [
                        {name: _read_lob(value) for name, value in zip(columns, row)}
                        for row in cursor.fetchall()
                    ]
                    return QueryResult(rows=rows, row_count=len(rows), columns=columns)
                return QueryResult(row_count=cursor.rowcount, affected_rows=cursor.rowcount)
        except self._driver.Error as e:
            raise _wrap(e, self.dialect) from e

    def _begin(self) -> None:
        self._conn.autocommit = False

    def _commit(self) -> None:
        try:
            self._conn.commit()
        except self._driver.Error as e:
            raise _wrap(e, self.dialect) from e
        finally:
            self._conn.autocommit = True

    def _rollback(self) -> None:
        try:
            self._conn.rollback()
        except self._driver.Error as e:
            raise _wrap(e, self.dialect) from e
        finally:
            self._conn.autocommit = True


def _read_lob(value: Any) -> Any:
    """Materialize LOB locators."""
    if hasattr(value, "read") and callable(value.read):
        return value.read()
    return value


def _wrap(error: Any, dialect: Dialect) -> DialectError:
    """Convert an oracledb error to DialectError, keeping the ORA code."""
    detail = error.args[0] if error.args else None
    code = getattr(detail, "code", None)
    message = getattr(detail, "message", None) or str(error)
    return DialectError(message, code=code, dialect=dialect.value)
