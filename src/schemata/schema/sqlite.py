"""SQLite schema adapter.

SQLite's ``ALTER TABLE`` can only rename tables and add columns. Every other
change rebuilds the table: inside one transaction the table is copied into a
temporary ``altered_<table>``, dropped, and copied back from a definition a
callback has modified, together with its indexes and rows.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import replace
from pathlib import Path
from typing import Any

from ..backends.base import Dialect
from ..errors import SchemaError
from .base import SchemaBase
from .column import AUTOINCREMENT_KEY, Column
from .definition import TableDefinition
from .table import Index

logger = logging.getLogger(__name__)

ALTERED_PREFIX = "altered_"
TEMP_INDEX_PREFIX = "temp_"

DefinitionCallback = Callable[[TableDefinition], None]


class SqliteColumn(Column):
    """SQLite column.

    Defaults come back as SQL literals and are unquoted before casting.
    Binary values written as literals carry ``%00``/``%25`` escapes.
    """

    def extract_default(self, default: Any) -> Any:
        if isinstance(default, str):
            if default.upper() == "NULL":
                return None
            if self.type != "boolean":
                default = self.unquote(default)
        return super().extract_default(default)

    def binary_to_string(self, value: Any) -> bytes:
        if isinstance(value, (bytes, bytearray, memoryview)):
            return bytes(value)
        value = str(value).replace("%00", "\0").replace("%25", "%")
        try:
            return value.encode("latin-1")
        except UnicodeEncodeError:
            return value.encode("utf-8")

    def value_to_boolean(self, value: Any) -> bool | None:  # type: ignore[override]
        if value in ('"t"', "'t'"):
            return True
        if value in ('""', "''"):
            return None
        return super().value_to_boolean(value)

    @staticmethod
    def unquote(value: str) -> str:
        """Strip one level of SQL quotes, collapsing doubled quote characters."""
        first = value[:1]
        if first in ("'", '"'):
            value = value[1:]
            if value.endswith(first):
                value = value[:-1]
            value = value.replace(first * 2, first)
        return value


class SqliteSchema(SchemaBase):
    """Schema adapter for SQLite 3."""

    dialect = Dialect.SQLITE
    column_class = SqliteColumn
    DEFAULT_IDENTIFIER_LENGTH = 255

    NATIVE_DATABASE_TYPES: dict[str, Any] = {
        AUTOINCREMENT_KEY: "INTEGER PRIMARY KEY AUTOINCREMENT NOT NULL",
        "string": {"name": "varchar", "limit": 255},
        "text": {"name": "text", "limit": None},
        "mediumtext": {"name": "text", "limit": None},
        "longtext": {"name": "text", "limit": None},
        "integer": {"name": "int", "limit": None},
        "float": {"name": "float", "limit": None},
        "decimal": {"name": "decimal", "limit": None},
        "datetime": {"name": "datetime", "limit": None},
        "timestamp": {"name": "datetime", "limit": None},
        "time": {"name": "time", "limit": None},
        "date": {"name": "date", "limit": None},
        "binary": {"name": "blob", "limit": None},
        "boolean": {"name": "boolean", "limit": None},
    }

    # ==========================================================================
    # Quoting
    # ==========================================================================

    def quote_binary(self, value: bytes) -> str:
        """Quote bytes as a text literal with ``%`` and NUL escaped."""
        text = value.decode("latin-1").replace("'", "''").replace("%", "%25").replace("\0", "%00")
        return f"'{text}'"

    # ==========================================================================
    # Introspection
    # ==========================================================================

    def tables(self) -> list[str]:
        return self.select_values(
            "SELECT name FROM sqlite_master "
            "WHERE type = 'table' AND name NOT LIKE 'sqlite\\_%' ESCAPE '\\' "
            "UNION ALL SELECT name FROM sqlite_temp_master "
            "WHERE type = 'table' AND name NOT LIKE 'sqlite\\_%' ESCAPE '\\' "
            "ORDER BY name"
        )

    def _table_info(self, table: str) -> list[dict[str, Any]]:
        return self._cached_rows(
            f"tables/columns/{table}", f"PRAGMA table_info({self.quote_table_name(table)})"
        )

    def columns(self, table: str) -> dict[str, Column]:
        return {
            row["name"]: self.make_column(
                row["name"], row["dflt_value"], row["type"], not row["notnull"]
            )
            for row in self._table_info(table)
        }

    def primary_key(self, table: str) -> Index:
        # shares the column cache; pk holds the 1-based position in the key
        rows = sorted((row for row in self._table_info(table) if row["pk"]), key=lambda r: r["pk"])
        return self.make_index(table, "PRIMARY", True, True, [row["name"] for row in rows])

    def indexes(self, table: str) -> list[Index]:
        key = f"tables/indexes/{table}"
        rows = self.cache.get(key)
        if rows is None:
            rows = []
            for row in self.select_all(f"PRAGMA index_list({self.quote_table_name(table)})"):
                if row["name"].startswith("sqlite_autoindex"):
                    continue
                info = self.select_all(f"PRAGMA index_info({self.quote_column_name(row['name'])})")
                rows.append(
                    {
                        "name": row["name"],
                        "unique": bool(row["unique"]),
                        "columns": [r["name"] for r in sorted(info, key=lambda r: r["seqno"])],
                    }
                )
            self.cache.set(key, rows)
        return [
            self.make_index(table, row["name"], False, row["unique"], row["columns"]) for row in rows
        ]

    def table_sql(self, table: str) -> str | None:
        """The ``CREATE TABLE`` statement SQLite stored for a table."""
        return self.select_value(
            "SELECT sql FROM sqlite_master WHERE type = 'table' AND name = ? "
            "UNION ALL SELECT sql FROM sqlite_temp_master WHERE type = 'table' AND name = ?",
            [table, table],
        )

    # ==========================================================================
    # Tables
    # ==========================================================================

    def rename_table(self, name: str, new_name: str) -> None:
        self.clear_table_cache(name)
        self.execute(
            f"ALTER TABLE {self.quote_table_name(name)} RENAME TO {self.quote_table_name(new_name)}"
        )

    def alter_table(
        self,
        table: str,
        callback: DefinitionCallback | None = None,
        rename: dict[str, str] | None = None,
    ) -> None:
        """Rebuild a table, letting callback modify its definition.

        Args:
            table: Table to rebuild
            callback: Receives the TableDefinition of the rebuilt table
            rename: Column renames applied while rebuilding
        """
        self.clear_table_cache(table)
        altered = ALTERED_PREFIX + table
        with self.transaction():
            self._move_table(table, altered, rename=rename, temporary=True)
            self._move_table(altered, table, callback=callback)
        logger.debug(f"Rebuilt table {table}")

    def _move_table(
        self,
        from_table: str,
        to_table: str,
        *,
        rename: dict[str, str] | None = None,
        temporary: bool = False,
        callback: DefinitionCallback | None = None,
    ) -> None:
        self.copy_table(from_table, to_table, rename=rename, temporary=temporary, callback=callback)
        self.drop_table(from_table)

    def copy_table(
        self,
        from_table: str,
        to_table: str,
        rename: dict[str, str] | None = None,
        *,
        temporary: bool = False,
        callback: DefinitionCallback | None = None,
    ) -> None:
        """Create to_table with the structure, indexes and rows of from_table.

        Args:
            from_table: Source table
            to_table: Table to create
            rename: Map of source column names to new names
            temporary: Create to_table as a temporary table
            callback: Receives the TableDefinition before it is created
        """
        rename = rename or {}
        columns = self.columns(from_table)
        pk_columns = self.primary_key(from_table).columns
        autoincrement = len(pk_columns) == 1 and self._is_autoincrement(from_table, pk_columns[0])

        definition = self.create_table(to_table, False, temporary=temporary)
        for column in columns.values():
            name = rename.get(column.name, column.name)
            if autoincrement and column.name == pk_columns[0]:
                definition.column(name, AUTOINCREMENT_KEY)
                continue
            definition.column(
                name,
                column.type or column.sql_type or "",
                limit=column.limit,
                precision=column.precision,
                scale=column.scale or None,
                default=column.default,
                null=column.null,
            )
        if pk_columns and not autoincrement:
            definition.primary_key([rename.get(c, c) for c in pk_columns])

        if callback:
            callback(definition)
        definition.end()

        self._copy_table_indexes(from_table, to_table, rename)
        self._copy_table_contents(from_table, to_table, list(columns), rename)

    def _is_autoincrement(self, table: str, column: str) -> bool:
        pattern = rf"[\"`]?{re.escape(column)}[\"`]?\s+INTEGER\s+PRIMARY\s+KEY\s+AUTOINCREMENT"
        return bool(re.search(pattern, self.table_sql(table) or "", re.IGNORECASE))

    def _copy_table_indexes(self, from_table: str, to_table: str, rename: dict[str, str]) -> None:
        to_columns = set(self.columns(to_table))
        for index in self.indexes(from_table):
            name = index.name
            if to_table == ALTERED_PREFIX + from_table:
                name = TEMP_INDEX_PREFIX + name
            elif from_table == ALTERED_PREFIX + to_table and name.startswith(TEMP_INDEX_PREFIX):
                name = name[len(TEMP_INDEX_PREFIX):]

            columns = [c for c in (rename.get(c, c) for c in index.columns) if c in to_columns]
            if columns:
                self.add_index(
                    to_table,
                    columns,
                    unique=index.unique,
                    name=name.replace(f"_{from_table}_", f"_{to_table}_"),
                )

    def _copy_table_contents(
        self, from_table: str, to_table: str, columns: list[str], rename: dict[str, str]
    ) -> None:
        to_columns = set(self.columns(to_table))
        pairs = [(c, rename.get(c, c)) for c in columns if rename.get(c, c) in to_columns]
        if not pairs:
            return
        source = ", ".join(self.quote_column_name(src) for src, _ in pairs)
        target = ", ".join(self.quote_column_name(dst) for _, dst in pairs)
        self.execute(
            f"INSERT INTO {self.quote_table_name(to_table)} ({target}) "
            f"SELECT {source} FROM {self.quote_table_name(from_table)}"
        )

    # ==========================================================================
    # Columns
    # ==========================================================================

    def add_column(self, table: str, column: str, type: str, **options: Any) -> None:
        """Add a column; an autoincrement key requires a table rebuild."""
        if type != AUTOINCREMENT_KEY:
            super().add_column(table, column, type, **options)
            return
        self.alter_table(table, lambda definition: definition.primary_key(column))

    def remove_column(self, table: str, column: str) -> None:
        def drop(definition: TableDefinition) -> None:
            del definition[column]

        self.alter_table(table, drop)

    def change_column(self, table: str, column: str, type: str, **options: Any) -> None:
        if type == AUTOINCREMENT_KEY:
            self.alter_table(table, lambda definition: definition.primary_key(column))
            return

        def change(definition: TableDefinition) -> None:
            current = _column_definition(definition, table, column)
            changes: dict[str, Any] = {
                "type": type,
                "limit": options.get("limit"),
                "precision": options.get("precision"),
                "scale": options.get("scale"),
            }
            for key in ("default", "null"):
                if key in options:
                    changes[key] = options[key]
            definition[column] = replace(current, **changes)

        self.alter_table(table, change)

    def change_column_default(self, table: str, column: str, default: Any) -> None:
        def change(definition: TableDefinition) -> None:
            definition[column] = replace(_column_definition(definition, table, column), default=default)

        self.alter_table(table, change)

    def change_column_null(
        self, table: str, column: str, null: bool, default: Any = None
    ) -> None:
        if not null and default is not None:
            self._fill_nulls(table, column, default)

        def change(definition: TableDefinition) -> None:
            definition[column] = replace(_column_definition(definition, table, column), null=null)

        self.alter_table(table, change)

    def rename_column(self, table: str, column: str, new_name: str) -> None:
        if column not in self.columns(table):
            raise SchemaError(f"{table} does not have a column '{column}'")
        self.alter_table(table, rename={column: new_name})

    # ==========================================================================
    # Keys and indexes
    # ==========================================================================

    def add_primary_key(self, table: str, columns: str | Sequence[str]) -> None:
        names = [columns] if isinstance(columns, str) else list(columns)
        self.alter_table(table, lambda definition: definition.primary_key(names))

    def remove_primary_key(self, table: str) -> None:
        def drop(definition: TableDefinition) -> None:
            definition.primary_key(None)
            for column in definition:
                if column.type == AUTOINCREMENT_KEY:
                    definition[column.name] = replace(column, type="integer")

        self.alter_table(table, drop)

    def remove_index(
        self,
        table: str,
        columns: str | Sequence[str] | None = None,
        *,
        name: str | None = None,
    ) -> None:
        self.clear_table_cache(table)
        self.execute(f"DROP INDEX {self.quote_column_name(self.index_name(table, columns, name=name))}")

    # ==========================================================================
    # Databases
    # ==========================================================================

    def create_database(self, name: str, **options: Any) -> None:
        """Create a database file by attaching and detaching it."""
        alias = self.quote_column_name(f"new_{Path(name).stem}")
        self.execute(f"ATTACH DATABASE {self.quote_string(name)} AS {alias}")
        self.execute(f"DETACH DATABASE {alias}")

    def drop_database(self, name: str) -> None:
        """Delete a database file.

        Raises:
            SchemaError: If name is the database in use
        """
        if self.current_database() == str(Path(name).resolve()):
            raise SchemaError("SQLite cannot drop the database in use")
        Path(name).unlink(missing_ok=True)

    def current_database(self) -> str | None:
        """File of the main database; empty for in-memory databases."""
        for row in self.select_all("PRAGMA database_list"):
            if row["name"] == "main":
                return row["file"]
        return None


def _column_definition(definition: TableDefinition, table: str, column: str) -> Any:
    current = definition[column]
    if current is None:
        raise SchemaError(f"{table} does not have a column '{column}'")
    return current
