"""schemata - cross-engine relational schema abstraction.

Introspect and alter tables on SQLite, PostgreSQL, MySQL/MariaDB and Oracle
through one adapter interface, and version schema changes with migrations.

Usage:
    from schemata import connect

    schema = connect({"adapter": "sqlite", "database": "app.db"})
    with schema.create_table("users") as t:
        t.string("name", null=False)
    schema.add_index("users", "name")
"""

from .config import ConnectionConfig, DatabaseConfig, DatabaseConfigLoader
from .errors import (
    ConfigurationError,
    DialectError,
    DuplicatePrimaryKey,
    DuplicateVersion,
    InvalidIndexOptions,
    MigrationError,
    MigrationOrderError,
    SchemaDefinitionError,
    SchemaError,
    UnsupportedWidth,
)
from .factory import connect, schema_for
from .migration import Migration, Migrator
from .schema import (
    AUTOINCREMENT_KEY,
    Column,
    ColumnDefinition,
    Index,
    MemoryCache,
    MysqlSchema,
    OracleSchema,
    PostgresqlSchema,
    SchemaBase,
    SqliteSchema,
    Table,
    TableDefinition,
)

__version__ = "0.1.0"

__all__ = [
    # Entry points
    "connect",
    "schema_for",
    # Configuration
    "ConnectionConfig",
    "DatabaseConfig",
    "DatabaseConfigLoader",
    # Schema
    "AUTOINCREMENT_KEY",
    "Column",
    "ColumnDefinition",
    "Index",
    "MemoryCache",
    "MysqlSchema",
    "OracleSchema",
    "PostgresqlSchema",
    "SchemaBase",
    "SqliteSchema",
    "Table",
    "TableDefinition",
    # Migrations
    "Migration",
    "Migrator",
    # Errors
    "ConfigurationError",
    "DialectError",
    "DuplicatePrimaryKey",
    "DuplicateVersion",
    "InvalidIndexOptions",
    "MigrationError",
    "MigrationOrderError",
    "SchemaDefinitionError",
    "SchemaError",
    "UnsupportedWidth",
]
