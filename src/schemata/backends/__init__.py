"""Connection backends consumed by the schema adapters.

Each backend wraps one native driver behind the DatabaseBackend protocol:
SQLite (stdlib sqlite3), PostgreSQL (psycopg2), MySQL/MariaDB (PyMySQL) and
Oracle (oracledb). Drivers for the remote engines are imported lazily on
connect(), so the package imports without them installed.

Usage:
    from schemata.backends import SqliteBackend
    from schemata.config import ConnectionConfig

    backend = SqliteBackend()
    backend.connect(ConnectionConfig(adapter="sqlite", database=":memory:"))
"""

from .base import DatabaseBackend, DatabaseBackendBase, Dialect, Params, QueryResult
from .mysql_backend import MysqlBackend
from .oracle_backend import OracleBackend
from .param_converter import ParamConverter, convert_sql_for_dialect
from .postgres_backend import PostgresBackend
from .sqlite_backend import SqliteBackend

BACKENDS: dict[Dialect, type[DatabaseBackendBase]] = {
    Dialect.SQLITE: SqliteBackend,
    Dialect.POSTGRESQL: PostgresBackend,
    Dialect.MYSQL: MysqlBackend,
    Dialect.ORACLE: OracleBackend,
}

__all__ = [
    # Core types
    "BACKENDS",
    "DatabaseBackend",
    "DatabaseBackendBase",
    "Dialect",
    "Params",
    "QueryResult",
    # Parameter conversion
    "ParamConverter",
    "convert_sql_for_dialect",
    # Backends
    "MysqlBackend",
    "OracleBackend",
    "PostgresBackend",
    "SqliteBackend",
]
