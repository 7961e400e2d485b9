"""Shared test configuration for schemata tests.

Provides:
- An in-memory SQLite schema adapter for end-to-end tests
- Recording fake backends and adapters for MySQL, PostgreSQL and Oracle
- The classic ``users`` table the alteration and migration tests start from
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from fake_backend import FakeBackend

from schemata.backends import Dialect, SqliteBackend
from schemata.config import ConnectionConfig
from schemata.schema import MysqlSchema, OracleSchema, PostgresqlSchema, SqliteSchema

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture
def sqlite_backend() -> Iterator[SqliteBackend]:
    """Connected in-memory SQLite backend."""
    backend = SqliteBackend()
    backend.connect(ConnectionConfig(adapter="sqlite", database=":memory:"))
    yield backend
    backend.disconnect()


@pytest.fixture
def sqlite_schema(sqlite_backend: SqliteBackend) -> SqliteSchema:
    return SqliteSchema(sqlite_backend)


@pytest.fixture
def users_schema(sqlite_schema: SqliteSchema) -> SqliteSchema:
    """SQLite schema with a populated-shape ``users`` table."""
    with sqlite_schema.create_table("users") as t:
        t.column("company_id", "integer", limit=11)
        t.column("name", "string", limit=255, default="")
        t.column("first_name", "string", limit=40, default="")
        t.column("approved", "boolean", default=True)
        t.column("type", "string", limit=255, default="")
        t.column("created_at", "datetime", default="0000-00-00 00:00:00")
        t.column("created_on", "date", default="0000-00-00")
        t.column("updated_at", "datetime", default="0000-00-00 00:00:00")
        t.column("updated_on", "date", default="0000-00-00")
    return sqlite_schema


@pytest.fixture
def mysql_backend() -> FakeBackend:
    return FakeBackend(Dialect.MYSQL)


@pytest.fixture
def mysql_schema(mysql_backend: FakeBackend) -> MysqlSchema:
    return MysqlSchema(mysql_backend)


@pytest.fixture
def pg_backend() -> FakeBackend:
    return FakeBackend(Dialect.POSTGRESQL)


@pytest.fixture
def pg_schema(pg_backend: FakeBackend) -> PostgresqlSchema:
    return PostgresqlSchema(pg_backend)


@pytest.fixture
def oracle_backend() -> FakeBackend:
    return FakeBackend(Dialect.ORACLE)


@pytest.fixture
def oracle_schema(oracle_backend: FakeBackend) -> OracleSchema:
    return OracleSchema(oracle_backend)


@pytest.fixture
def migrations_dir() -> Path:
    return FIXTURES_DIR / "migrations"


@pytest.fixture
def duplicate_migrations_dir() -> Path:
    """Migrations where two files claim version 2."""
    return FIXTURES_DIR / "migrations_with_duplicate"
