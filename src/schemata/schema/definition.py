"""Column and table definition builders.

Builders accumulate pending column specs and render them to DDL for a
given schema adapter. Rendering takes the adapter as a parameter, so the
same definition renders for any dialect:

    definition = TableDefinition("sports")
    definition.string("name")
    definition.boolean("is_college")
    body = definition.render(mysql_schema)

A definition obtained from ``schema.create_table()`` is additionally bound
to that adapter, which ``end()`` hands the definition to for execution.
"""

from __future__ import annotations

import functools
from collections.abc import Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ..errors import DuplicatePrimaryKey, SchemaDefinitionError
from .column import AUTOINCREMENT_KEY, COLUMN_TYPES

if TYPE_CHECKING:
    from .base import SchemaBase


@dataclass
class ColumnDefinition:
    """A pending column spec.

    Attributes:
        name: Column name
        type: Abstract type (or a native type passed through verbatim)
        limit: Length / byte width
        precision: Numeric precision
        scale: Numeric scale
        unsigned: Unsigned integer flag (where supported)
        default: Default value (Python value, quoted at render time)
        null: True for NULL, False for NOT NULL, None to leave unspecified
        autoincrement: Autoincrement flag
    """

    name: str
    type: str
    limit: int | None = None
    precision: int | None = None
    scale: int | None = None
    unsigned: bool | None = None
    default: Any = None
    null: bool | None = None
    autoincrement: bool | None = None

    @property
    def sql_type(self) -> str:
        """The declared type; compared against native names when quoting."""
        return self.type

    def render_type(self, schema: SchemaBase) -> str:
        """Native type for the given adapter, or the declared type if unmapped."""
        try:
            return schema.type_to_sql(
                self.type, self.limit, self.precision, self.scale, self.unsigned
            )
        except SchemaDefinitionError:
            return self.type

    def render(self, schema: SchemaBase) -> str:
        """Render ``<quoted name> <native type> <options>`` for the adapter."""
        sql = f"{schema.quote_column_name(self.name)} {self.render_type(schema)}"
        return schema.add_column_options(
            sql, {"null": self.null, "default": self.default, "column": self}
        )

    def to_sql(self, schema: SchemaBase) -> str:
        return self.render(schema)


class TableDefinition:
    """A pending ``CREATE TABLE``.

    Columns keep declaration order; re-declaring a column replaces it in
    place. Declaring a column with the name of the scalar primary key raises
    DuplicatePrimaryKey.

    Shorthand column methods exist for every abstract type::

        t.string("name", limit=60)
        t.boolean("is_college", default=False)
    """

    def __init__(
        self,
        name: str,
        options: dict[str, Any] | None = None,
        schema: SchemaBase | None = None,
    ):
        self.name = name
        self.options: dict[str, Any] = dict(options or {})
        self._schema = schema
        self._columns: list[ColumnDefinition] = []
        self._primary_key: str | list[str] | None = None

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    @property
    def primary_key_columns(self) -> str | list[str] | None:
        return self._primary_key

    def primary_key(self, name: str | list[str] | None) -> TableDefinition:
        """Declare the primary key.

        A scalar name also adds an autoincrement key column of that name; a
        list declares a composite key rendered as a ``PRIMARY KEY(...)``
        clause. None clears the declaration.
        """
        if isinstance(name, str):
            self.column(name, AUTOINCREMENT_KEY)
        self._primary_key = list(name) if isinstance(name, (list, tuple)) else name
        return self

    def column(self, name: str, type: str, **options: Any) -> TableDefinition:
        """Append a column spec, or replace the existing spec of that name."""
        if isinstance(self._primary_key, str) and name == self._primary_key:
            raise DuplicatePrimaryKey(name)

        column = ColumnDefinition(
            name=name,
            type=type,
            limit=options.get("limit"),
            precision=options.get("precision"),
            scale=options.get("scale"),
            unsigned=options.get("unsigned"),
            default=options.get("default"),
            null=options.get("null"),
            autoincrement=options.get("autoincrement"),
        )
        for i, existing in enumerate(self._columns):
            if existing.name == name:
                self._columns[i] = column
                break
        else:
            self._columns.append(column)
        return self

    def timestamps(self) -> TableDefinition:
        """Add ``created_at`` and ``updated_at`` datetime columns."""
        return self.column("created_at", "datetime").column("updated_at", "datetime")

    def belongs_to(self, *names: str | list[str]) -> TableDefinition:
        """Add an integer ``<name>_id`` reference column per name."""
        for name in _flatten(names):
            self.column(f"{name}_id", "integer")
        return self

    references = belongs_to

    def __getattr__(self, method: str) -> Any:
        if method in COLUMN_TYPES:
            return functools.partial(self.column, type=method)
        raise AttributeError(f"'{type(self).__name__}' object has no attribute '{method}'")

    # ------------------------------------------------------------------
    # Column access
    # ------------------------------------------------------------------

    def __getitem__(self, name: str) -> ColumnDefinition | None:
        for column in self._columns:
            if column.name == name:
                return column
        return None

    def __setitem__(self, name: str, column: ColumnDefinition) -> None:
        for i, existing in enumerate(self._columns):
            if existing.name == name:
                self._columns[i] = column

    def __delitem__(self, name: str) -> None:
        self._columns = [c for c in self._columns if c.name != name]

    def __contains__(self, name: object) -> bool:
        return any(c.name == name for c in self._columns)

    def __iter__(self) -> Iterator[ColumnDefinition]:
        return iter(list(self._columns))

    def __len__(self) -> int:
        return len(self._columns)

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self._columns]

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render(self, schema: SchemaBase) -> str:
        """Render the ``CREATE TABLE`` body for the given adapter."""
        sql = "  " + ",\n  ".join(column.render(schema) for column in self._columns)
        if isinstance(self._primary_key, list) and self._primary_key:
            pk = ", ".join(schema.quote_column_name(c) for c in self._primary_key)
            sql += f",\n  PRIMARY KEY({pk})"
        return sql

    def to_sql(self, schema: SchemaBase | None = None) -> str:
        return self.render(self._bound(schema))

    def end(self) -> None:
        """Create the table through the owning adapter."""
        self._bound(None).end_table(self)

    def __enter__(self) -> TableDefinition:
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        if exc_type is None:
            self.end()

    def _bound(self, schema: SchemaBase | None) -> SchemaBase:
        schema = schema or self._schema
        if schema is None:
            raise SchemaDefinitionError(
                f"Table definition '{self.name}' is not bound to a schema adapter"
            )
        return schema


def _flatten(names: tuple[str | list[str], ...]) -> list[str]:
    flat: list[str] = []
    for name in names:
        if isinstance(name, (list, tuple)):
            flat.extend(name)
        else:
            flat.append(name)
    return flat
