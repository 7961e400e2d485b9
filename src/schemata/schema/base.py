"""Schema adapter base class.

A schema adapter owns one dialect's rules: the native type map, literal and
identifier quoting, DDL generation, operator translation and the table
alteration algorithms. It talks to the database only through an injected
DatabaseBackend, and memoizes introspection rows in a SchemaCache that every
alteration invalidates for the table it touches.

Dialect subclasses override the hooks below; callers only ever see this
surface:

    schema = SqliteSchema(backend)
    with schema.create_table("users") as t:
        t.string("name", null=False)
        t.timestamps()
    schema.add_index("users", "name", unique=True)
    schema.columns("users")["name"].type   # -> "string"
"""

from __future__ import annotations

import logging
import zlib
from abc import ABC, abstractmethod
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any

from ..backends.base import DatabaseBackend, Dialect, Params, QueryResult
from ..errors import InvalidIndexOptions, SchemaError
from .cache import MemoryCache, SchemaCache
from .column import AUTOINCREMENT_KEY, Column
from .definition import TableDefinition
from .table import Index, Table

logger = logging.getLogger(__name__)

# (sql, bound values) as returned by build_clause(..., bind=True)
BoundClause = tuple[str, list[Any]]


class SchemaBase(ABC):
    """Dialect-independent schema adapter behaviour.

    Attributes:
        backend: Connection collaborator statements are issued through
        cache: Introspection cache, keyed by ``tables/<kind>/<table>``
        identifier_length: Maximum identifier length of the engine
    """

    dialect: Dialect
    column_class: type[Column] = Column
    DEFAULT_IDENTIFIER_LENGTH = 64

    # Abstract type -> native name or {"name", "limit", "precision", "scale"}
    NATIVE_DATABASE_TYPES: dict[str, Any] = {}

    def __init__(
        self,
        backend: DatabaseBackend,
        cache: SchemaCache | None = None,
        identifier_length: int | None = None,
    ):
        self.backend = backend
        self.cache = cache if cache is not None else MemoryCache()
        self.identifier_length = identifier_length or self.DEFAULT_IDENTIFIER_LENGTH

    # ==========================================================================
    # Object factories
    # ==========================================================================

    def make_column(
        self, name: str, default: Any, sql_type: str | None = None, null: bool = True
    ) -> Column:
        return self.column_class(name, default, sql_type, null)

    def make_index(
        self,
        table: str,
        name: str,
        primary: bool = False,
        unique: bool = False,
        columns: list[str] | None = None,
    ) -> Index:
        return Index(table, name, primary, unique, list(columns or []))

    def make_table_definition(self, name: str, options: dict[str, Any] | None = None) -> TableDefinition:
        return TableDefinition(name, options, schema=self)

    # ==========================================================================
    # Data passthrough
    # ==========================================================================

    def execute(self, sql: str, params: Params = None) -> QueryResult:
        return self.backend.execute(sql, params)

    def select_all(self, sql: str, params: Params = None) -> list[dict[str, Any]]:
        return self.backend.select_all(sql, params)

    def select_one(self, sql: str, params: Params = None) -> dict[str, Any] | None:
        return self.backend.select_one(sql, params)

    def select_value(self, sql: str, params: Params = None) -> Any:
        return self.backend.select_value(sql, params)

    def select_values(self, sql: str, params: Params = None) -> list[Any]:
        return self.backend.select_values(sql, params)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Scope a transaction on the backend; nested scopes join the outer one."""
        with self.backend.transaction():
            yield

    def last_insert_id(self) -> int | None:
        return self.backend.last_insert_id()

    # ==========================================================================
    # Quoting
    # ==========================================================================

    def quote(self, value: Any, column: Any = None) -> str:
        """Render a Python value as an SQL literal.

        Args:
            value: Value to quote
            column: Column (or column definition) the value is meant for;
                dialects use its type to pick special literal forms

        Returns:
            SQL literal
        """
        if value is None:
            return "NULL"
        if value is True:
            return self.quote_true()
        if value is False:
            return self.quote_false()
        if isinstance(value, int):
            return str(value)
        if isinstance(value, float):
            return repr(value)
        if isinstance(value, Decimal):
            return str(value)
        if isinstance(value, (bytes, bytearray, memoryview)):
            return self.quote_binary(bytes(value))
        if isinstance(value, (datetime, date, time)):
            return self.quote_string(self.quoted_date(value))
        if isinstance(value, (list, tuple, set, frozenset)):
            return "(" + ", ".join(self.quote(v, column) for v in value) + ")"
        return self.quote_string(str(value))

    def quote_string(self, value: str) -> str:
        """Quote a string literal, doubling embedded single quotes."""
        return "'" + value.replace("'", "''") + "'"

    def quote_binary(self, value: bytes) -> str:
        return "X'" + value.hex() + "'"

    def quote_true(self) -> str:
        return "1"

    def quote_false(self) -> str:
        return "0"

    def quoted_date(self, value: date | time) -> str:
        if isinstance(value, datetime):
            return value.strftime("%Y-%m-%d %H:%M:%S")
        if isinstance(value, date):
            return value.strftime("%Y-%m-%d")
        return value.strftime("%H:%M:%S")

    def quote_column_name(self, name: str) -> str:
        return '"' + str(name).replace('"', '""') + '"'

    def quote_table_name(self, name: str) -> str:
        return self.quote_column_name(name)

    # ==========================================================================
    # Dialect utilities
    # ==========================================================================

    def native_database_types(self) -> dict[str, Any]:
        """Mapping of abstract types to the engine's native types."""
        return dict(self.NATIVE_DATABASE_TYPES)

    def type_to_sql(
        self,
        type: str,
        limit: int | None = None,
        precision: int | None = None,
        scale: int | None = None,
        unsigned: bool | None = None,
    ) -> str:
        """Render the native DDL type for an abstract type.

        Types without a native mapping are returned unchanged, so native type
        names can be passed straight through.
        """
        native = self.native_database_types().get(type)
        if not native:
            return type
        if isinstance(native, str):
            return native

        sql = native["name"]
        if type == "decimal" or native.get("precision"):
            precision = precision or native.get("precision")
            scale = scale or native.get("scale")
            if precision:
                sql += f"({precision}, {scale})" if scale else f"({precision})"
        else:
            limit = limit or native.get("limit")
            if limit and type != AUTOINCREMENT_KEY:
                sql += f"({limit})"
        return sql

    def add_column_options(self, sql: str, options: dict[str, Any]) -> str:
        """Append ``DEFAULT`` and ``NOT NULL`` clauses to a column fragment.

        Args:
            sql: Column fragment, e.g. ``"name" varchar(255)``
            options: ``default``, ``null`` and ``column`` (used for quoting)

        Returns:
            Column fragment with options
        """
        if options.get("default") is not None:
            sql += " DEFAULT " + self.quote(options["default"], options.get("column"))
        if options.get("null") is False:
            sql += " NOT NULL"
        return sql

    def build_clause(
        self,
        lhs: str,
        op: str,
        rhs: Any,
        bind: bool = False,
        params: dict[str, Any] | None = None,
    ) -> str | BoundClause:
        """Build a condition fragment for a logical operator.

        Args:
            lhs: Column or expression to test
            op: Operator: ``&``, ``|``, ``~`` (regex), ``IN``, ``LIKE`` or any
                plain comparison operator
            rhs: Comparison value
            bind: Return ``(sql, values)`` with ``?`` placeholders instead of
                inlined literals
            params: Operator parameters; ``begin`` makes ``LIKE`` match at
                the start of the value or of any word in it

        Returns:
            SQL fragment, or ``(sql, values)`` when bind is true
        """
        params = params or {}
        if op in ("&", "|"):
            if bind:
                return f"{lhs} {op} ?", [int(rhs)]
            return f"{lhs} {op} {int(rhs)}"

        if op == "~":
            if bind:
                return f"{lhs} {op} ?", [rhs]
            return f"{lhs} {op} {rhs}"

        if op == "IN":
            values = list(rhs) if isinstance(rhs, (list, tuple, set, frozenset)) else [rhs]
            if bind:
                return f"{lhs} IN ({', '.join('?' for _ in values)})", values
            return f"{lhs} IN {self.quote(values)}"

        if op == "LIKE":
            return self._like_clause(lhs, rhs, bind, bool(params.get("begin")))

        if bind:
            return f"{lhs} {op} ?", [rhs]
        return f"{lhs} {op} {self.quote(rhs)}"

    def like_expression(self, lhs: str, pattern: str) -> str:
        """Case-insensitive LIKE test of lhs against an already quoted pattern."""
        return f"LOWER({lhs}) LIKE LOWER({pattern})"

    def _like_clause(self, lhs: str, rhs: Any, bind: bool, begin: bool) -> str | BoundClause:
        if not begin:
            if bind:
                return self.like_expression(lhs, "?"), [f"%{rhs}%"]
            return self.like_expression(lhs, self.quote(f"%{rhs}%"))

        if bind:
            sql = f"({self.like_expression(lhs, '?')} OR {self.like_expression(lhs, '?')})"
            return sql, [f"{rhs}%", f"% {rhs}%"]
        return (
            f"({self.like_expression(lhs, self.quote(f'{rhs}%'))} OR "
            f"{self.like_expression(lhs, self.quote(f'% {rhs}%'))})"
        )

    def index_name(
        self,
        table: str,
        column: str | Sequence[str] | None = None,
        *,
        name: str | None = None,
    ) -> str:
        """Build the name of an index.

        Column names produce ``index_<table>_on_<col1>_and_<col2>``; without
        columns the explicit name is used. Names longer than the engine's
        identifier length are shortened deterministically.

        Raises:
            InvalidIndexOptions: If neither columns nor a name are given
        """
        if column:
            columns = [column] if isinstance(column, str) else list(column)
            return self.shorten_index_name(table, f"index_{table}_on_" + "_and_".join(columns), False)
        if name:
            return self.shorten_index_name(table, name, True)
        raise InvalidIndexOptions("You must specify the index name")

    def shorten_index_name(self, table: str, index: str, explicit: bool) -> str:
        """Fit an index name into the identifier length.

        Explicit names are cut; generated names keep a prefix and get a
        crc32 digest of the full name appended so that distinct column
        lists stay distinct.
        """
        limit = self.identifier_length
        if len(index) <= limit:
            return index
        if explicit:
            return index[:limit]
        return f"{index[: limit - 9]}_{name_digest(index)}"

    # ==========================================================================
    # Introspection
    # ==========================================================================

    @abstractmethod
    def tables(self) -> list[str]:
        """List the tables of the current database."""
        ...

    @abstractmethod
    def columns(self, table: str) -> dict[str, Column]:
        """Return a table's columns by name, in table order."""
        ...

    @abstractmethod
    def indexes(self, table: str) -> list[Index]:
        """Return a table's secondary indexes."""
        ...

    @abstractmethod
    def primary_key(self, table: str) -> Index:
        """Return a table's primary key (possibly without columns)."""
        ...

    def table(self, name: str) -> Table:
        """Return a snapshot of a table's structure."""
        return Table(
            name=name,
            primary_key=self.primary_key(name),
            columns=self.columns(name),
            indexes=self.indexes(name),
        )

    def column(self, table: str, name: str) -> Column:
        """Return one column of a table.

        Raises:
            SchemaError: If the table has no such column
        """
        column = self.columns(table).get(name)
        if column is None:
            raise SchemaError(f"{table} does not have a column '{name}'")
        return column

    def clear_table_cache(self, table: str) -> None:
        """Invalidate the cached introspection rows of a table."""
        self.cache.expire(f"tables/columns/{table}")
        self.cache.expire(f"tables/indexes/{table}")

    def _cached_rows(self, key: str, sql: str, params: Params = None) -> list[dict[str, Any]]:
        rows = self.cache.get(key)
        if rows is None:
            rows = self.select_all(sql, params)
            self.cache.set(key, rows)
        return rows

    # ==========================================================================
    # Tables
    # ==========================================================================

    def create_table(
        self,
        name: str,
        autoincrement_key: bool | str | list[str] = True,
        *,
        temporary: bool = False,
        force: bool = False,
        options: str | None = None,
        charset: str | None = None,
    ) -> TableDefinition:
        """Start a table definition bound to this adapter.

        Args:
            name: Table name
            autoincrement_key: True for an ``id`` autoincrement key, a column
                name for a differently named one, a list of column names for
                a plain (composite) primary key, False for no key
            temporary: Create a temporary table
            force: Drop an existing table of that name first
            options: Raw table options appended after the column list
            charset: Table character set (where the engine supports one)

        Returns:
            TableDefinition; call ``end()`` or use it as a context manager
        """
        definition = self.make_table_definition(
            name,
            {"temporary": temporary, "force": force, "options": options, "charset": charset},
        )
        if autoincrement_key is True:
            definition.primary_key("id")
        elif autoincrement_key:
            definition.primary_key(autoincrement_key)
        return definition

    def end_table(self, definition: TableDefinition) -> None:
        """Execute the ``CREATE TABLE`` of a finished definition."""
        options = definition.options
        if options.get("force") and definition.name in self.tables():
            self.drop_table(definition.name)
        self.clear_table_cache(definition.name)

        temporary = "TEMPORARY " if options.get("temporary") else ""
        sql = (
            f"CREATE {temporary}TABLE {self.quote_table_name(definition.name)} (\n"
            f"{definition.render(self)}\n)"
        )
        if options.get("options"):
            sql += f" {options['options']}"
        self.execute(sql)

    def drop_table(self, name: str) -> None:
        self.clear_table_cache(name)
        self.execute(f"DROP TABLE {self.quote_table_name(name)}")

    @abstractmethod
    def rename_table(self, name: str, new_name: str) -> None:
        ...

    # ==========================================================================
    # Columns
    # ==========================================================================

    def add_column(self, table: str, column: str, type: str, **options: Any) -> None:
        """Add a column.

        Options: ``limit``, ``precision``, ``scale``, ``unsigned``,
        ``default``, ``null`` and dialect-specific ones such as ``after``.
        """
        self.clear_table_cache(table)
        sql = (
            f"ALTER TABLE {self.quote_table_name(table)} ADD {self.quote_column_name(column)} "
            f"{self._type_sql(type, options)}"
        )
        self.execute(self.add_column_options(sql, options))

    def remove_column(self, table: str, column: str) -> None:
        self.clear_table_cache(table)
        self.execute(
            f"ALTER TABLE {self.quote_table_name(table)} DROP {self.quote_column_name(column)}"
        )

    @abstractmethod
    def change_column(self, table: str, column: str, type: str, **options: Any) -> None:
        """Change a column's type and options.

        Passing ``default`` (even None) replaces the default; omitting it
        keeps the current one.
        """
        ...

    @abstractmethod
    def change_column_default(self, table: str, column: str, default: Any) -> None:
        ...

    def change_column_null(
        self, table: str, column: str, null: bool, default: Any = None
    ) -> None:
        """Allow or forbid NULL in a column.

        When forbidding NULL with a default, existing NULLs are replaced by
        the default first.
        """
        current = self.column(table, column)
        if not null and default is not None:
            self._fill_nulls(table, column, default)
        self.change_column(table, column, current.type, null=null, **_dimensions(current))

    def _fill_nulls(self, table: str, column: str, default: Any) -> None:
        quoted = self.quote_column_name(column)
        self.execute(
            f"UPDATE {self.quote_table_name(table)} SET {quoted} = {self.quote(default)} "
            f"WHERE {quoted} IS NULL"
        )

    @abstractmethod
    def rename_column(self, table: str, column: str, new_name: str) -> None:
        ...

    def add_timestamps(self, table: str) -> None:
        """Add ``created_at`` and ``updated_at`` datetime columns."""
        self.add_column(table, "created_at", "datetime")
        self.add_column(table, "updated_at", "datetime")

    def remove_timestamps(self, table: str) -> None:
        self.remove_column(table, "created_at")
        self.remove_column(table, "updated_at")

    def _type_sql(self, type: str, options: dict[str, Any]) -> str:
        return self.type_to_sql(
            type,
            options.get("limit"),
            options.get("precision"),
            options.get("scale"),
            options.get("unsigned"),
        )

    # ==========================================================================
    # Keys and indexes
    # ==========================================================================

    def add_primary_key(self, table: str, columns: str | Sequence[str]) -> None:
        self.clear_table_cache(table)
        names = [columns] if isinstance(columns, str) else list(columns)
        quoted = ", ".join(self.quote_column_name(c) for c in names)
        self.execute(f"ALTER TABLE {self.quote_table_name(table)} ADD PRIMARY KEY ({quoted})")

    @abstractmethod
    def remove_primary_key(self, table: str) -> None:
        ...

    def add_index(
        self,
        table: str,
        columns: str | Sequence[str],
        *,
        unique: bool = False,
        name: str | None = None,
    ) -> str:
        """Create an index and return its name.

        Args:
            table: Table name
            columns: Column name or ordered column names
            unique: Create a unique index
            name: Explicit index name instead of the generated one
        """
        self.clear_table_cache(table)
        names = [columns] if isinstance(columns, str) else list(columns)
        index = self.index_name(table, name=name) if name else self.index_name(table, names)
        kind = "UNIQUE INDEX" if unique else "INDEX"
        quoted = ", ".join(self.quote_column_name(c) for c in names)
        self.execute(
            f"CREATE {kind} {self.quote_column_name(index)} "
            f"ON {self.quote_table_name(table)} ({quoted})"
        )
        return index

    def remove_index(
        self,
        table: str,
        columns: str | Sequence[str] | None = None,
        *,
        name: str | None = None,
    ) -> None:
        """Drop an index given its columns or its name."""
        self.clear_table_cache(table)
        index = self.index_name(table, columns, name=name)
        self.execute(
            f"DROP INDEX {self.quote_column_name(index)} ON {self.quote_table_name(table)}"
        )

    # ==========================================================================
    # Databases
    # ==========================================================================

    @abstractmethod
    def create_database(self, name: str, **options: Any) -> None:
        ...

    @abstractmethod
    def drop_database(self, name: str) -> None:
        ...

    @abstractmethod
    def current_database(self) -> str | None:
        ...


def name_digest(name: str) -> str:
    """Short non-cryptographic digest of an identifier."""
    return f"{zlib.crc32(name.encode('utf-8')):08x}"


def _dimensions(column: Column) -> dict[str, Any]:
    return {
        "limit": column.limit,
        "precision": column.precision,
        "scale": column.scale,
        "unsigned": column.unsigned or None,
    }
