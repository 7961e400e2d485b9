"""Tests for the PostgreSQL schema adapter against a recording fake backend."""

from __future__ import annotations

import pytest
from fake_backend import FakeBackend

from schemata.errors import DialectError, UnsupportedWidth
from schemata.schema import AUTOINCREMENT_KEY
from schemata.schema.postgresql import PostgresqlColumn, PostgresqlSchema

COLUMNS_QUERY = r"format_type\(a\.atttypid"


def ddl(backend: FakeBackend) -> list[str]:
    """Recorded DDL, without the introspection queries."""
    return backend.executed(r"^(ALTER|CREATE|DROP|UPDATE|BEGIN|COMMIT|ROLLBACK)")


# ============================================================================
# Dialect utilities
# ============================================================================


class TestDialect:
    """Tests for PostgreSQL quoting, types and operators."""

    def test_quoting(self, pg_schema: PostgresqlSchema) -> None:
        assert pg_schema.quote(True) == "'t'"
        assert pg_schema.quote(False) == "'f'"
        assert pg_schema.quote(b"hi") == "E'\\\\x6869'"
        assert pg_schema.quote_column_name("name") == '"name"'

    def test_typed_quoting(self, pg_schema: PostgresqlSchema) -> None:
        assert pg_schema.quote(12.5, PostgresqlColumn("c", None, "money")) == "'12.5'"
        assert pg_schema.quote("<a/>", PostgresqlColumn("c", None, "xml")) == "xml '<a/>'"
        assert pg_schema.quote("hi", PostgresqlColumn("c", None, "bytea")) == "E'\\\\x6869'"

    def test_integer_widths(self, pg_schema: PostgresqlSchema) -> None:
        assert pg_schema.type_to_sql("integer") == "integer"
        assert pg_schema.type_to_sql("integer", 2) == "smallint"
        assert pg_schema.type_to_sql("integer", 4) == "integer"
        assert pg_schema.type_to_sql("integer", 8) == "bigint"
        with pytest.raises(UnsupportedWidth):
            pg_schema.type_to_sql("integer", 11)

    def test_other_types(self, pg_schema: PostgresqlSchema) -> None:
        assert pg_schema.type_to_sql("string") == "character varying(255)"
        assert pg_schema.type_to_sql("decimal", None, 5, 2) == "decimal(5, 2)"
        assert pg_schema.type_to_sql(AUTOINCREMENT_KEY) == "serial primary key"

    def test_bitwise_clause(self, pg_schema: PostgresqlSchema) -> None:
        assert pg_schema.build_clause("bitmap", "&", 2) == (
            "CASE WHEN CAST(bitmap AS VARCHAR) ~ '^-?[0-9]+$' "
            "THEN (CAST(bitmap AS INTEGER) & 2) ELSE 0 END"
        )

    def test_like_is_case_insensitive(self, pg_schema: PostgresqlSchema) -> None:
        assert pg_schema.build_clause("name", "LIKE", "x") == "name ILIKE '%x%'"
        assert pg_schema.build_clause("name", "LIKE", "x", bind=True) == (
            "name ILIKE ?",
            ["%x%"],
        )


# ============================================================================
# Introspection
# ============================================================================


class TestIntrospection:
    """Tests for catalog queries and their parsing."""

    def test_columns(self, pg_schema: PostgresqlSchema, pg_backend: FakeBackend) -> None:
        pg_backend.respond(
            COLUMNS_QUERY,
            [
                {
                    "attname": "id",
                    "format_type": "integer",
                    "adsrc": "nextval('users_id_seq'::regclass)",
                    "attnotnull": True,
                },
                {
                    "attname": "name",
                    "format_type": "character varying(40)",
                    "adsrc": "'x'::character varying",
                    "attnotnull": False,
                },
            ],
        )
        columns = pg_schema.columns("users")
        assert columns["id"].default is None
        assert columns["id"].null is False
        assert columns["name"].limit == 40
        assert columns["name"].default == "x"

    def test_primary_key(self, pg_schema: PostgresqlSchema, pg_backend: FakeBackend) -> None:
        pg_backend.respond(r"constraint_column_usage", [{"column_name": "id"}])
        assert pg_schema.primary_key("users").columns == ["id"]
        assert pg_backend.params[-1] == ["users", "users", "PRIMARY KEY"]

    def test_indexes(self, pg_schema: PostgresqlSchema, pg_backend: FakeBackend) -> None:
        pg_backend.respond(
            r"pg_index d",
            [
                {"relname": "index_users_on_a_and_b", "indisunique": True, "attname": "a"},
                {"relname": "index_users_on_a_and_b", "indisunique": True, "attname": "b"},
                {"relname": "index_users_on_c", "indisunique": "f", "attname": "c"},
            ],
        )
        indexes = pg_schema.indexes("users")
        assert [(i.name, i.unique, i.columns) for i in indexes] == [
            ("index_users_on_a_and_b", True, ["a", "b"]),
            ("index_users_on_c", False, ["c"]),
        ]

    def test_composite_index_keeps_key_order(
        self, pg_schema: PostgresqlSchema, pg_backend: FakeBackend
    ) -> None:
        """Columns come back in index key order, not table column order."""
        pg_backend.respond(
            r"pg_index d",
            [
                {"relname": "index_users_on_name_and_id", "indisunique": "f", "attname": "id", "position": 2},
                {"relname": "index_users_on_name_and_id", "indisunique": "f", "attname": "name", "position": 1},
            ],
        )
        [index] = pg_schema.indexes("users")
        assert index.columns == ["name", "id"]
        assert "ORDER BY i.relname, position" in pg_backend.executed(r"pg_index d")[0]


# ============================================================================
# Alteration
# ============================================================================


class TestChangeColumn:
    """Tests for type changes, their copy emulation and autoincrement keys."""

    def test_direct_type_change(self, pg_schema: PostgresqlSchema, pg_backend: FakeBackend) -> None:
        pg_schema.change_column("users", "name", "string", limit=100)
        assert pg_backend.statements == [
            'ALTER TABLE "users" ALTER COLUMN "name" TYPE character varying(100)'
        ]

    def test_default_and_null(self, pg_schema: PostgresqlSchema, pg_backend: FakeBackend) -> None:
        pg_schema.change_column("users", "approved", "boolean", default=False, null=False)
        assert pg_backend.statements == [
            'ALTER TABLE "users" ALTER COLUMN "approved" TYPE boolean',
            "ALTER TABLE \"users\" ALTER COLUMN \"approved\" SET DEFAULT 'f'",
            "UPDATE \"users\" SET \"approved\" = 'f' WHERE \"approved\" IS NULL",
            'ALTER TABLE "users" ALTER "approved" SET NOT NULL',
        ]

    def test_copy_emulation(self, pg_schema: PostgresqlSchema, pg_backend: FakeBackend) -> None:
        """A type the server refuses to coerce is converted through a temporary column."""
        pg_backend.respond(
            COLUMNS_QUERY,
            [{"attname": "approved", "format_type": "boolean", "adsrc": "true", "attnotnull": False}],
        )
        pg_backend.fail(r'ALTER COLUMN "approved" TYPE integer', "cannot be cast automatically")

        pg_schema.change_column("users", "approved", "integer")

        assert ddl(pg_backend) == [
            'ALTER TABLE "users" ALTER COLUMN "approved" TYPE integer',
            "BEGIN",
            'ALTER TABLE "users" ADD COLUMN "approved_change_tmp" integer',
            'UPDATE "users" SET "approved_change_tmp" = '
            'CAST(CASE WHEN "approved" IS TRUE THEN 1 ELSE 0 END AS integer)',
            'ALTER TABLE "users" DROP "approved"',
            'ALTER TABLE "users" RENAME COLUMN "approved_change_tmp" TO "approved"',
            "COMMIT",
        ]

    def test_failed_copy_rolls_back(self, pg_schema: PostgresqlSchema, pg_backend: FakeBackend) -> None:
        pg_backend.respond(
            COLUMNS_QUERY,
            [{"attname": "name", "format_type": "text", "adsrc": None, "attnotnull": False}],
        )
        pg_backend.fail(r'ALTER COLUMN "name" TYPE integer')
        pg_backend.fail(r"^UPDATE", "invalid input syntax for type integer")

        with pytest.raises(DialectError):
            pg_schema.change_column("users", "name", "integer")

        assert pg_backend.statements[-1] == "ROLLBACK"
        assert not pg_backend.executed(r"DROP \"name\"")

    def test_autoincrement_key(self, pg_schema: PostgresqlSchema, pg_backend: FakeBackend) -> None:
        """Converting to an autoincrement key attaches a sequence seeded past the maximum."""
        pg_backend.respond(
            r"SELECT constraint_name FROM information_schema.table_constraints",
            [{"constraint_name": "imp_sentmail_pkey"}],
        )
        pg_backend.respond(r"SHOW server_version_num", [{"server_version_num": "160002"}])

        pg_schema.change_column("imp_sentmail", "sentmail_id", AUTOINCREMENT_KEY)

        assert pg_backend.executed(r"^(ALTER|CREATE|DROP)") == [
            'ALTER TABLE "imp_sentmail" DROP CONSTRAINT "imp_sentmail_pkey" CASCADE',
            'ALTER TABLE "imp_sentmail" ALTER COLUMN "sentmail_id" TYPE integer',
            "DROP SEQUENCE imp_sentmail_sentmail_id_seq CASCADE",
            "CREATE SEQUENCE imp_sentmail_sentmail_id_seq",
            'ALTER TABLE "imp_sentmail" ALTER COLUMN "sentmail_id" '
            "SET DEFAULT NEXTVAL('imp_sentmail_sentmail_id_seq')",
            'ALTER SEQUENCE imp_sentmail_sentmail_id_seq OWNED BY "imp_sentmail"."sentmail_id"',
            'ALTER TABLE "imp_sentmail" ADD PRIMARY KEY ("sentmail_id")',
        ]
        setval = pg_backend.executed(r"setval")[0]
        assert "FROM pg_sequences" in setval
        assert 'MAX("sentmail_id")' in setval

    def test_autoincrement_tolerates_missing_objects(
        self, pg_schema: PostgresqlSchema, pg_backend: FakeBackend
    ) -> None:
        """Cleanup of a key or sequence that does not exist does not stop the conversion."""
        pg_backend.respond(
            r"SELECT constraint_name FROM information_schema.table_constraints",
            [{"constraint_name": "gone_pkey"}],
        )
        pg_backend.respond(r"SHOW server_version_num", [{"server_version_num": "90600"}])
        pg_backend.fail(r"DROP CONSTRAINT")
        pg_backend.fail(r"^DROP SEQUENCE", "sequence does not exist")

        pg_schema.change_column("t", "id", AUTOINCREMENT_KEY)

        assert pg_backend.executed(r"^CREATE SEQUENCE t_id_seq$")
        assert pg_backend.statements[-1] == 'ALTER TABLE "t" ADD PRIMARY KEY ("id")'
        assert "FROM t_id_seq" in pg_backend.executed(r"setval")[0]


class TestAlteration:
    """Tests for the remaining PostgreSQL alterations."""

    def test_add_column_backfills(self, pg_schema: PostgresqlSchema, pg_backend: FakeBackend) -> None:
        pg_schema.add_column("users", "age", "integer", default=0, null=False)
        assert pg_backend.statements == [
            'ALTER TABLE "users" ADD COLUMN "age" integer',
            'UPDATE "users" SET "age" = 0',
            'ALTER TABLE "users" ALTER COLUMN "age" SET DEFAULT 0',
            'UPDATE "users" SET "age" = 0 WHERE "age" IS NULL',
            'ALTER TABLE "users" ALTER "age" SET NOT NULL',
        ]

    def test_add_serial_column(self, pg_schema: PostgresqlSchema, pg_backend: FakeBackend) -> None:
        pg_schema.add_column("users", "seq", "integer", limit=8, autoincrement=True)
        assert pg_backend.statements == ['ALTER TABLE "users" ADD COLUMN "seq" BIGSERIAL']

    def test_change_column_null(self, pg_schema: PostgresqlSchema, pg_backend: FakeBackend) -> None:
        pg_schema.change_column_null("users", "name", True)
        assert pg_backend.statements == ['ALTER TABLE "users" ALTER "name" DROP NOT NULL']

    def test_rename(self, pg_schema: PostgresqlSchema, pg_backend: FakeBackend) -> None:
        pg_schema.rename_column("users", "name", "login")
        pg_schema.rename_table("users", "people")
        assert pg_backend.statements == [
            'ALTER TABLE "users" RENAME COLUMN "name" TO "login"',
            'ALTER TABLE "users" RENAME TO "people"',
        ]

    def test_remove_index(self, pg_schema: PostgresqlSchema, pg_backend: FakeBackend) -> None:
        pg_schema.remove_index("users", "name")
        assert pg_backend.statements == ['DROP INDEX "index_users_on_name"']

    def test_remove_primary_key_without_key(
        self, pg_schema: PostgresqlSchema, pg_backend: FakeBackend
    ) -> None:
        pg_schema.remove_primary_key("users")
        assert not pg_backend.executed(r"DROP CONSTRAINT")


# ============================================================================
# Databases and server settings
# ============================================================================


class TestServer:
    """Tests for database management and session settings."""

    def test_create_database(self, pg_schema: PostgresqlSchema, pg_backend: FakeBackend) -> None:
        pg_schema.create_database("app")
        pg_schema.create_database("app2", owner="bob", charset="latin1")
        assert pg_backend.statements == [
            "CREATE DATABASE \"app\" ENCODING = 'utf8'",
            "CREATE DATABASE \"app2\" ENCODING = 'latin1' OWNER = 'bob'",
        ]

    def test_drop_and_current(self, pg_schema: PostgresqlSchema, pg_backend: FakeBackend) -> None:
        pg_backend.respond(r"current_database\(\)", [{"current_database": "app"}])
        pg_schema.drop_database("old")
        assert pg_schema.current_database() == "app"
        assert pg_backend.statements[0] == 'DROP DATABASE IF EXISTS "old"'

    def test_search_path(self, pg_schema: PostgresqlSchema, pg_backend: FakeBackend) -> None:
        pg_schema.set_schema_search_path("app, public")
        pg_schema.set_schema_search_path(None)
        assert pg_backend.statements == ["SET search_path TO app, public"]
        assert pg_schema.schema_search_path == "app, public"
