"""MySQL / MariaDB schema adapter."""

from __future__ import annotations

import logging
import re
from typing import Any

from ..backends.base import Dialect
from ..errors import DialectError, SchemaError
from .base import BoundClause, SchemaBase
from .column import AUTOINCREMENT_KEY, Column
from .definition import TableDefinition
from .table import Index

logger = logging.getLogger(__name__)

ENUM_PATTERN = re.compile(r"enum", re.IGNORECASE)

# MySQL escapes these characters with a backslash inside string literals
_ESCAPES = {
    "\\": "\\\\",
    "'": "\\'",
    '"': '\\"',
    "\0": "\\0",
    "\n": "\\n",
    "\r": "\\r",
    "\x1a": "\\Z",
}


class MysqlColumn(Column):
    """MySQL column.

    ``tinyint(1)`` is a boolean and ``enum(...)`` a string. MySQL reports an
    empty-string default for NOT NULL columns without a default; that forged
    default is dropped for every type that cannot hold an empty string.
    """

    HAS_EMPTY_STRING_DEFAULT = frozenset({"binary", "string", "text"})

    def __init__(
        self,
        name: str,
        default: Any = None,
        sql_type: str | None = None,
        null: bool = True,
    ):
        self.original_default = default
        super().__init__(name, default, sql_type, null)
        if self.is_missing_default_forged_as_empty_string():
            self.default = None

    def simplify_type(self, sql_type: str | None) -> str | None:
        if sql_type and "tinyint(1)" in sql_type.lower():
            return "boolean"
        if sql_type and ENUM_PATTERN.search(sql_type):
            return "string"
        return super().simplify_type(sql_type)

    def is_missing_default_forged_as_empty_string(self) -> bool:
        return (
            not self.null
            and self.original_default in (None, "")
            and self.type not in self.HAS_EMPTY_STRING_DEFAULT
        )


class MysqlSchema(SchemaBase):
    """Schema adapter for MySQL and MariaDB."""

    dialect = Dialect.MYSQL
    column_class = MysqlColumn
    DEFAULT_IDENTIFIER_LENGTH = 64

    NATIVE_DATABASE_TYPES: dict[str, Any] = {
        AUTOINCREMENT_KEY: "int(10) UNSIGNED NOT NULL AUTO_INCREMENT PRIMARY KEY",
        "string": {"name": "varchar", "limit": 255},
        "text": {"name": "text", "limit": None},
        "mediumtext": {"name": "mediumtext", "limit": None},
        "longtext": {"name": "longtext", "limit": None},
        "integer": {"name": "int", "limit": 11},
        "float": {"name": "float", "limit": None},
        "decimal": {"name": "decimal", "limit": None},
        "datetime": {"name": "datetime", "limit": None},
        "timestamp": {"name": "datetime", "limit": None},
        "time": {"name": "time", "limit": None},
        "date": {"name": "date", "limit": None},
        "binary": {"name": "longblob", "limit": None},
        "boolean": {"name": "tinyint", "limit": 1},
    }

    # ==========================================================================
    # Quoting
    # ==========================================================================

    def quote_string(self, value: str) -> str:
        return "'" + "".join(_ESCAPES.get(ch, ch) for ch in value) + "'"

    def quote_column_name(self, name: str) -> str:
        return "`" + str(name).replace("`", "``") + "`"

    def quote_table_name(self, name: str) -> str:
        return self.quote_column_name(name).replace(".", "`.`")

    # ==========================================================================
    # Dialect utilities
    # ==========================================================================

    def type_to_sql(
        self,
        type: str,
        limit: int | None = None,
        precision: int | None = None,
        scale: int | None = None,
        unsigned: bool | None = None,
    ) -> str:
        # unsigned integers need one digit less without an explicit limit
        if type == "integer" and unsigned and not limit:
            native = self.native_database_types().get(type)
            if isinstance(native, dict) and isinstance(native.get("limit"), int):
                limit = native["limit"] - 1

        sql = super().type_to_sql(type, limit, precision, scale, unsigned)
        if unsigned:
            sql += " UNSIGNED"
        return sql

    def add_column_options(self, sql: str, options: dict[str, Any]) -> str:
        """Add default/null options plus MySQL's ``after`` and ``autoincrement``."""
        sql = super().add_column_options(sql, options)
        if options.get("after"):
            sql += " AFTER " + self.quote_column_name(options["after"])
        if options.get("autoincrement"):
            sql += " AUTO_INCREMENT"
        return sql

    def build_clause(
        self,
        lhs: str,
        op: str,
        rhs: Any,
        bind: bool = False,
        params: dict[str, Any] | None = None,
    ) -> str | BoundClause:
        if op == "~":
            if bind:
                return f"{lhs} REGEXP ?", [rhs]
            return f"{lhs} REGEXP {rhs}"
        return super().build_clause(lhs, op, rhs, bind, params)

    # ==========================================================================
    # Introspection
    # ==========================================================================

    def tables(self) -> list[str]:
        return self.select_values("SHOW TABLES")

    def _field_rows(self, table: str) -> list[dict[str, Any]]:
        return self._cached_rows(
            f"tables/columns/{table}", f"SHOW FIELDS FROM {self.quote_table_name(table)}"
        )

    def columns(self, table: str) -> dict[str, Column]:
        return {
            row["Field"]: self.make_column(
                row["Field"], row["Default"], row["Type"], row["Null"] == "YES"
            )
            for row in self._field_rows(table)
        }

    def primary_key(self, table: str) -> Index:
        # shares the column cache
        columns = [row["Field"] for row in self._field_rows(table) if row["Key"] == "PRI"]
        return self.make_index(table, "PRIMARY", True, True, columns)

    def indexes(self, table: str) -> list[Index]:
        rows = self._cached_rows(
            f"tables/indexes/{table}", f"SHOW KEYS FROM {self.quote_table_name(table)}"
        )
        indexes: list[Index] = []
        current = None
        for row in rows:
            if row["Key_name"] == "PRIMARY":
                continue
            if row["Key_name"] != current:
                current = row["Key_name"]
                indexes.append(
                    self.make_index(table, current, False, str(row["Non_unique"]) == "0")
                )
            indexes[-1].columns.append(row["Column_name"])
        return indexes

    def _show_column(self, table: str, column: str) -> dict[str, Any]:
        row = self.select_one(
            f"SHOW COLUMNS FROM {self.quote_table_name(table)} LIKE {self.quote_string(column)}"
        )
        if row is None:
            raise SchemaError(f"{table} does not have a column '{column}'")
        return row

    # ==========================================================================
    # Alteration
    # ==========================================================================

    def end_table(self, definition: TableDefinition) -> None:
        """Create the table, as InnoDB with the connection charset by default."""
        options = definition.options
        if not options.get("options"):
            charset = options.get("charset") or self.charset
            options["options"] = f"ENGINE=InnoDB DEFAULT CHARSET={charset}"
        super().end_table(definition)

    def rename_table(self, name: str, new_name: str) -> None:
        self.clear_table_cache(name)
        self.execute(
            f"ALTER TABLE {self.quote_table_name(name)} RENAME {self.quote_table_name(new_name)}"
        )

    def change_column(self, table: str, column: str, type: str, **options: Any) -> None:
        """Change a column with ``CHANGE``.

        Converting a primary key column into an autoincrement key drops the
        existing primary key in the same statement.
        """
        self.clear_table_cache(table)
        quoted_table = self.quote_table_name(table)
        quoted_column = self.quote_column_name(column)

        row = self._show_column(table, column)
        if "default" not in options:
            current = self.make_column(column, row["Default"], row["Type"], row["Null"] == "YES")
            options["default"] = current.default
            options["column"] = current

        drop_pk = "DROP PRIMARY KEY, " if type == AUTOINCREMENT_KEY and row["Key"] == "PRI" else ""
        sql = (
            f"ALTER TABLE {quoted_table} {drop_pk}CHANGE {quoted_column} {quoted_column} "
            f"{self._type_sql(type, options)}"
        )
        if type != AUTOINCREMENT_KEY:
            sql = self.add_column_options(sql, options)
        self.execute(sql)

    def change_column_default(self, table: str, column: str, default: Any) -> None:
        self.clear_table_cache(table)
        row = self._show_column(table, column)
        current = self.make_column(column, row["Default"], row["Type"], row["Null"] == "YES")
        quoted_column = self.quote_column_name(column)
        self.execute(
            f"ALTER TABLE {self.quote_table_name(table)} CHANGE {quoted_column} {quoted_column} "
            f"{row['Type']} DEFAULT {self.quote(default, current)}"
        )

    def rename_column(self, table: str, column: str, new_name: str) -> None:
        self.clear_table_cache(table)
        row = self._show_column(table, column)
        self.execute(
            f"ALTER TABLE {self.quote_table_name(table)} CHANGE {self.quote_column_name(column)} "
            f"{self.quote_column_name(new_name)} {row['Type']}"
        )

    def remove_primary_key(self, table: str) -> None:
        self.clear_table_cache(table)
        self.execute(f"ALTER TABLE {self.quote_table_name(table)} DROP PRIMARY KEY")

    # ==========================================================================
    # Databases
    # ==========================================================================

    def create_database(self, name: str, **options: Any) -> None:
        self.execute(f"CREATE DATABASE {self.quote_table_name(name)}")

    def drop_database(self, name: str) -> None:
        self.execute(f"DROP DATABASE IF EXISTS {self.quote_table_name(name)}")

    def current_database(self) -> str | None:
        return self.select_value("SELECT DATABASE() AS db")

    # ==========================================================================
    # MySQL specific
    # ==========================================================================

    @property
    def charset(self) -> str:
        """Character set of query results."""
        return self.show_variable("character_set_results")

    def set_charset(self, charset: str) -> None:
        """Set the client and result character set."""
        self.execute("SET NAMES " + self.quote_string(self.mysql_charset_name(charset)))

    def mysql_charset_name(self, charset: str) -> str:
        """Normalize a charset name (``ISO-8859-1`` -> ``latin1``) and validate it.

        Raises:
            DialectError: If the server does not support the charset
        """
        name = re.sub(r"[^a-z0-9]", "", charset.lower())
        name = re.sub(r"iso8859(\d)", r"latin\1", name)
        valid = self.select_values("SHOW CHARACTER SET")
        if name not in valid:
            raise DialectError(
                f"{name} is not supported by MySQL ({', '.join(valid)})",
                dialect=self.dialect.value,
            )
        return name

    @property
    def collation(self) -> str:
        return self.show_variable("collation_database")

    def show_variable(self, name: str) -> str:
        """Return a server variable.

        Raises:
            DialectError: If the variable does not exist
        """
        row = self.select_one("SHOW VARIABLES LIKE " + self.quote_string(name))
        if not row or row.get("Variable_name") != name:
            raise DialectError(f"{name} is not a recognized variable", dialect=self.dialect.value)
        return row["Value"]
