"""Schema model, definition builders and dialect schema adapters.

Usage:
    from schemata.backends import SqliteBackend
    from schemata.schema import SqliteSchema

    schema = SqliteSchema(backend)
    with schema.create_table("users") as t:
        t.string("name")
"""

from .base import BoundClause, SchemaBase, name_digest
from .cache import MemoryCache, SchemaCache
from .column import AUTOINCREMENT_KEY, COLUMN_TYPES, Column
from .definition import ColumnDefinition, TableDefinition
from .mysql import MysqlColumn, MysqlSchema
from .oracle import OracleColumn, OracleSchema
from .postgresql import PostgresqlColumn, PostgresqlSchema
from .sqlite import SqliteColumn, SqliteSchema
from .table import Index, Table
from ..backends.base import Dialect

SCHEMAS: dict[Dialect, type[SchemaBase]] = {
    Dialect.SQLITE: SqliteSchema,
    Dialect.POSTGRESQL: PostgresqlSchema,
    Dialect.MYSQL: MysqlSchema,
    Dialect.ORACLE: OracleSchema,
}

__all__ = [
    # Model
    "AUTOINCREMENT_KEY",
    "COLUMN_TYPES",
    "Column",
    "Index",
    "Table",
    # Builders
    "ColumnDefinition",
    "TableDefinition",
    # Cache
    "MemoryCache",
    "SchemaCache",
    # Adapters
    "SCHEMAS",
    "BoundClause",
    "SchemaBase",
    "name_digest",
    "MysqlColumn",
    "MysqlSchema",
    "OracleColumn",
    "OracleSchema",
    "PostgresqlColumn",
    "PostgresqlSchema",
    "SqliteColumn",
    "SqliteSchema",
]
