"""Read-only Index and Table snapshots returned by introspection."""

from __future__ import annotations

from dataclasses import dataclass, field

from .column import Column


@dataclass
class Index:
    """An index on a table.

    Attributes:
        table: Table the index belongs to
        name: Index name (``PRIMARY`` for primary keys on most engines)
        primary: Whether this is the primary key
        unique: Whether the index enforces uniqueness
        columns: Indexed columns; order is significant
    """

    table: str
    name: str
    primary: bool = False
    unique: bool = False
    columns: list[str] = field(default_factory=list)

    def __str__(self) -> str:
        return ",".join(self.columns)


@dataclass
class Table:
    """Snapshot of a table's structure.

    Attributes:
        name: Table name
        primary_key: Primary key index (may have no columns)
        columns: Columns by name, in table order
        indexes: Secondary indexes
    """

    name: str
    primary_key: Index | None
    columns: dict[str, Column] = field(default_factory=dict)
    indexes: list[Index] = field(default_factory=list)

    def column(self, name: str) -> Column | None:
        """Return a column by name."""
        return self.columns.get(name)

    @property
    def column_names(self) -> list[str]:
        return list(self.columns)

    def __contains__(self, name: object) -> bool:
        return name in self.columns
