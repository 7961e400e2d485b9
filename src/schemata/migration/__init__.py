"""Versioned schema migrations."""

from .base import Migration
from .migrator import MIGRATION_FILE_PATTERN, Migrator, camelize

__all__ = [
    "MIGRATION_FILE_PATTERN",
    "Migration",
    "Migrator",
    "camelize",
]
