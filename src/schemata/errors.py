"""Exception hierarchy for schema introspection, alteration and migrations."""

from __future__ import annotations

from typing import Any


class SchemaError(Exception):
    """Base exception for all schemata errors."""

    pass


class DialectError(SchemaError):
    """
    A native driver call failed.

    Wraps the driver's own exception (available as ``__cause__``) so callers
    only ever need to catch one exception type per failure class.

    Attributes:
        message: Driver error message
        code: Driver/engine error code, if the driver exposes one
        dialect: Name of the dialect that raised it
    """

    def __init__(self, message: str, code: Any = None, dialect: str | None = None):
        self.message = message
        self.code = code
        self.dialect = dialect
        prefix = f"[{dialect}] " if dialect else ""
        suffix = f" (code: {code})" if code is not None else ""
        super().__init__(f"{prefix}{message}{suffix}")

    def __repr__(self) -> str:
        """Developer-friendly representation."""
        return f"DialectError(message={self.message!r}, code={self.code!r}, dialect={self.dialect!r})"


class ConfigurationError(SchemaError):
    """Connection configuration is missing required parameters or is invalid."""

    pass


class SchemaDefinitionError(SchemaError):
    """A table, column, index or migration set was described inconsistently."""

    pass


class DuplicatePrimaryKey(SchemaDefinitionError):
    """A column was declared with the same name as the table's primary key."""

    def __init__(self, column: str):
        self.column = column
        super().__init__(f"{column} has already been added as a primary key")


class DuplicateVersion(SchemaDefinitionError):
    """Two migration units share the same version number."""

    def __init__(self, version: int):
        self.version = version
        super().__init__(f"Multiple migrations have the version number {version}")


class UnsupportedWidth(SchemaDefinitionError):
    """No native integer type has the requested byte width."""

    def __init__(self, limit: Any):
        self.limit = limit
        super().__init__(
            f"No integer type has byte size {limit}. Use a numeric with precision 0 instead."
        )


class InvalidIndexOptions(SchemaDefinitionError):
    """Neither index columns nor an explicit index name were given."""

    pass


class MigrationError(SchemaError):
    """Migration discovery or execution failed."""

    pass


class MigrationOrderError(MigrationError):
    """
    A migration target version cannot be resolved.

    Attributes:
        version: The requested target version
        known_versions: Versions discovered in the migration set
    """

    def __init__(self, version: int, known_versions: list[int]):
        self.version = version
        self.known_versions = known_versions
        known = ", ".join(str(v) for v in known_versions) or "none"
        super().__init__(f"Unknown migration version {version} (known versions: {known})")

    def __repr__(self) -> str:
        """Developer-friendly representation."""
        return (
            f"MigrationOrderError(version={self.version!r}, "
            f"known_versions={self.known_versions!r})"
        )
