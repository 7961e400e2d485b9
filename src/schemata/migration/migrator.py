"""Versioned migration runner.

The migrator persists the applied version in a single-row bookkeeping table
and walks the ordered migration set up or down from it. Migration files are
named ``<version>_<name>.py`` and define a Migration subclass named after
the camelized ``<name>``:

    migrations/
    ├── 1_add_users_last_name.py    (class AddUsersLastName)
    └── 2_create_reminders.py       (class CreateReminders)
"""

from __future__ import annotations

import importlib.util
import inspect
import logging
import re
import sys
from collections.abc import Iterator, Sequence
from pathlib import Path
from typing import TYPE_CHECKING

from ..errors import DuplicateVersion, MigrationError, MigrationOrderError
from .base import Migration

if TYPE_CHECKING:
    from ..schema.base import SchemaBase

logger = logging.getLogger(__name__)

MIGRATION_FILE_PATTERN = re.compile(r"^(\d+)_([_a-z0-9]*)\.py$")

UP = "up"
DOWN = "down"


def camelize(name: str) -> str:
    """``add_users_last_name`` -> ``AddUsersLastName``."""
    return "".join(part[:1].upper() + part[1:] for part in name.split("_"))


class Migrator:
    """Applies migrations in version order and records the applied version.

    Args:
        schema: Schema adapter to migrate
        migrations_path: Directory searched recursively for migration files
        migrations: Migration subclasses with a declared ``version``, used in
            addition to discovered files
        schema_table_name: Name of the bookkeeping table

    Example:
        migrator = Migrator(schema, migrations_path="db/migrations")
        migrator.up()       # apply everything pending
        migrator.down(1)    # revert back to version 1
    """

    def __init__(
        self,
        schema: SchemaBase,
        migrations_path: str | Path | None = None,
        migrations: Sequence[type[Migration]] | None = None,
        schema_table_name: str = "schema_info",
    ):
        self.schema = schema
        self.migrations_path = Path(migrations_path) if migrations_path else None
        self.schema_table_name = schema_table_name
        self._migrations = list(migrations or [])
        self._direction: str | None = None
        self._target: int | None = None

        self.initialize_schema_information()

    # ==========================================================================
    # Public API
    # ==========================================================================

    def migrate(self, target: int | None = None) -> None:
        """Move to target (the latest version when omitted), up or down."""
        current = self.current_version()
        if target is None or current < target:
            self.up(target)
        elif current > target:
            self.down(target)

    def up(self, target: int | None = None) -> None:
        """Apply pending migrations, stopping after target if given."""
        self._run(UP, target)

    def down(self, target: int | None = None) -> None:
        """Revert applied migrations, stopping at target if given."""
        self._run(DOWN, target)

    def current_version(self) -> int:
        """Version recorded in the bookkeeping table; 0 when it does not exist."""
        if self.schema_table_name not in self.schema.tables():
            return 0
        version = self.schema.select_value(
            f"SELECT {self.schema.quote_column_name('version')} "
            f"FROM {self.schema.quote_table_name(self.schema_table_name)}"
        )
        return int(version or 0)

    def target_version(self) -> int:
        """Highest known migration version, 0 without migrations."""
        versions = list(self._versioned_classes())
        return versions[-1][0] if versions else 0

    def initialize_schema_information(self) -> None:
        """Create the bookkeeping table at version 0 unless it exists."""
        if self.schema_table_name in self.schema.tables():
            return
        with self.schema.create_table(self.schema_table_name, autoincrement_key=False) as t:
            t.column("version", "integer")
        self.schema.execute(
            f"INSERT INTO {self.schema.quote_table_name(self.schema_table_name)} "
            f"({self.schema.quote_column_name('version')}) VALUES (0)"
        )
        logger.debug(f"Created migration table {self.schema_table_name}")

    # ==========================================================================
    # Running
    # ==========================================================================

    def _run(self, direction: str, target: int | None) -> None:
        migrations = self.load_migrations()
        known = [m.version for m in migrations if m.version is not None]
        if target and target not in known:
            raise MigrationOrderError(target, known)

        self._direction = direction
        self._target = target
        if direction == UP:
            self.initialize_schema_information()
        else:
            migrations.reverse()

        for migration in migrations:
            version = migration.version or 0
            if self._has_reached_target(version):
                logger.info(f"Reached target version: {target}")
                return
            if self._is_irrelevant(version):
                continue

            logger.info(
                f"Migrating {'to' if direction == UP else 'from'} "
                f"{type(migration).__name__} ({version})"
            )
            migration.migrate(direction)
            self._set_schema_version(version)

    def _has_reached_target(self, version: int) -> bool:
        if self._target is None:
            return False
        if self._direction == UP:
            return version - 1 >= self._target
        return version <= self._target

    def _is_irrelevant(self, version: int) -> bool:
        current = self.current_version()
        if self._direction == UP:
            return version <= current
        return version > current

    def _set_schema_version(self, version: int) -> None:
        if self._direction == DOWN:
            version -= 1
        if not version:
            self.schema.drop_table(self.schema_table_name)
            return
        self.schema.execute(
            f"UPDATE {self.schema.quote_table_name(self.schema_table_name)} "
            f"SET {self.schema.quote_column_name('version')} = ?",
            [version],
        )

    # ==========================================================================
    # Discovery
    # ==========================================================================

    def load_migrations(self) -> list[Migration]:
        """Instantiate every known migration in ascending version order.

        Raises:
            DuplicateVersion: If two migrations share a version
            MigrationError: If a migration file lacks its class
        """
        return [cls(self.schema, version) for version, cls in self._versioned_classes()]

    def _versioned_classes(self) -> list[tuple[int, type[Migration]]]:
        found: dict[int, type[Migration]] = {}
        for version, cls in self._iter_migrations():
            if version in found:
                raise DuplicateVersion(version)
            found[version] = cls
        return sorted(found.items())

    def _iter_migrations(self) -> Iterator[tuple[int, type[Migration]]]:
        for cls in self._migrations:
            if cls.version is None:
                raise MigrationError(f"Migration {cls.__name__} does not declare a version")
            yield int(cls.version), cls

        if self.migrations_path is None:
            return
        if not self.migrations_path.is_dir():
            raise MigrationError(f"Migrations directory not found: {self.migrations_path}")

        for file_path in sorted(self.migrations_path.rglob("*.py")):
            match = MIGRATION_FILE_PATTERN.match(file_path.name)
            if match:
                yield int(match.group(1)), self._load_class(file_path, match.group(2))

    def _load_class(self, file_path: Path, name: str) -> type[Migration]:
        class_name = camelize(name)
        module_name = f"_schemata_migration_{file_path.stem}"
        spec = importlib.util.spec_from_file_location(module_name, file_path)
        if spec is None or spec.loader is None:
            raise MigrationError(f"Cannot load migration file {file_path}")

        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        spec.loader.exec_module(module)

        cls = getattr(module, class_name, None)
        if not (inspect.isclass(cls) and issubclass(cls, Migration)):
            raise MigrationError(f"{file_path} does not define the migration class {class_name}")
        return cls
