"""Tests for the Column model: type inference, dimensions and default casting."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

import pytest

from schemata.schema import COLUMN_TYPES, Column
from schemata.schema.mysql import MysqlColumn
from schemata.schema.oracle import OracleColumn
from schemata.schema.postgresql import PostgresqlColumn
from schemata.schema.sqlite import SqliteColumn

# ============================================================================
# Type inference
# ============================================================================


class TestSimplifyType:
    """Tests for the ordered native-type -> abstract-type cascade."""

    @pytest.mark.parametrize(
        ("sql_type", "expected"),
        [
            ("varchar(255)", "string"),
            ("char(1)", "string"),
            ("int(11)", "integer"),
            ("bigint", "integer"),
            ("float", "float"),
            ("double", "float"),
            ("decimal(5,2)", "decimal"),
            ("decimal(5, 2)", "decimal"),
            ("datetime", "datetime"),
            ("timestamp", "timestamp"),
            ("time", "time"),
            ("date", "date"),
            ("text", "text"),
            ("clob", "text"),
            ("blob", "binary"),
            ("boolean", "boolean"),
        ],
    )
    def test_generic_types(self, sql_type: str, expected: str) -> None:
        """Each generic native type maps to its abstract type."""
        assert Column("c", None, sql_type).type == expected

    def test_decimal_without_scale_is_integer(self) -> None:
        """A zero-scale decimal is an integer."""
        assert Column("c", None, "decimal(10)").type == "integer"
        assert Column("c", None, "decimal(10,0)").type == "integer"

    def test_unknown_type_is_unset(self) -> None:
        """No matching rule leaves the abstract type unset."""
        column = Column("c", "POINT(1 2)", "geometry")
        assert column.type is None
        assert column.default == "POINT(1 2)"

    def test_missing_type(self) -> None:
        assert Column("c").type is None


class TestDimensions:
    """Tests for limit/precision/scale/unsigned parsing."""

    def test_limit(self) -> None:
        assert Column("c", None, "varchar(40)").limit == 40
        assert Column("c", None, "text").limit is None

    def test_precision_and_scale(self) -> None:
        column = Column("c", None, "decimal(10, 2)")
        assert column.precision == 10
        assert column.scale == 2

    def test_scale_defaults_to_zero(self) -> None:
        assert Column("c", None, "numeric(8)").scale == 0

    def test_unsigned(self) -> None:
        assert Column("c", None, "int(10) unsigned").unsigned is True
        assert Column("c", None, "int(10)").unsigned is False


# ============================================================================
# Default casting
# ============================================================================


class TestTypeCast:
    """Tests for casting raw default literals to Python values."""

    def test_integer(self) -> None:
        assert Column("c", "42", "int(11)").default == 42
        assert Column("c", "", "int(11)").default is None
        assert Column("c", "abc", "int(11)").default is None

    def test_float(self) -> None:
        assert Column("c", "1.5", "float").default == 1.5

    def test_decimal(self) -> None:
        assert Column("c", "1586.43", "decimal(10,2)").default == Decimal("1586.43")

    def test_datetime(self) -> None:
        column = Column("c", "2024-01-02 03:04:05", "datetime")
        assert column.default == datetime(2024, 1, 2, 3, 4, 5)

    def test_zero_date_is_null(self) -> None:
        """All-zero sentinel dates mean no default."""
        assert Column("c", "0000-00-00", "date").default is None
        assert Column("c", "0000-00-00 00:00:00", "datetime").default is None

    def test_date(self) -> None:
        assert Column("c", "2024-01-02", "date").default == date(2024, 1, 2)

    def test_time_uses_dummy_date(self) -> None:
        assert Column("c", "12:30:00", "time").default == datetime(2000, 1, 1, 12, 30)

    def test_boolean(self) -> None:
        assert Column("c", "t", "boolean").default is True
        assert Column("c", "1", "boolean").default is True
        assert Column("c", "0", "boolean").default is False

    def test_text_is_unchanged(self) -> None:
        assert Column("c", "hello", "varchar(255)").default == "hello"

    def test_recasting_is_stable(self) -> None:
        """Casting the string form of a cast value yields the same value."""
        for default, sql_type in [("42", "int(11)"), ("1.50", "decimal(5,2)"), ("t", "boolean")]:
            column = Column("c", default, sql_type)
            assert column.type_cast(str(column.default)) == column.default

    def test_flags(self) -> None:
        assert Column("c", None, "varchar(10)").is_text
        assert Column("c", None, "int").is_number
        assert not Column("c", None, "date").is_number


# ============================================================================
# Dialect columns
# ============================================================================


class TestMysqlColumn:
    """Tests for MySQL specific column rules."""

    def test_tinyint_one_is_boolean(self) -> None:
        assert MysqlColumn("c", "1", "tinyint(1)").default is True

    def test_enum_is_string(self) -> None:
        assert MysqlColumn("c", "a", "enum('a','b')").type == "string"

    def test_forged_empty_default_is_dropped(self) -> None:
        """NOT NULL columns report '' when they have no default."""
        assert MysqlColumn("c", "", "int(11)", False).default is None
        assert MysqlColumn("c", "", "varchar(255)", False).default == ""


class TestPostgresqlColumn:
    """Tests for PostgreSQL default expressions and types."""

    def test_string_default_expression(self) -> None:
        column = PostgresqlColumn("c", "'foo'::character varying", "character varying(255)")
        assert column.type == "string"
        assert column.limit == 255
        assert column.default == "foo"

    def test_function_default_is_null(self) -> None:
        column = PostgresqlColumn("id", "nextval('users_id_seq'::regclass)", "integer")
        assert column.type == "integer"
        assert column.default is None

    def test_numeric_and_boolean_defaults(self) -> None:
        assert PostgresqlColumn("c", "42", "integer").default == 42
        assert PostgresqlColumn("c", "true", "boolean").default is True
        assert PostgresqlColumn("c", "false", "boolean").default is False

    def test_date_default(self) -> None:
        assert PostgresqlColumn("c", "'2024-01-02'::date", "date").default == date(2024, 1, 2)

    def test_specific_types(self) -> None:
        assert PostgresqlColumn("c", None, "double precision").type == "float"
        assert PostgresqlColumn("c", None, "timestamp without time zone").type == "datetime"
        assert PostgresqlColumn("c", None, "bytea").type == "binary"
        assert PostgresqlColumn("c", None, "integer[]").type == "string"

    def test_integer_widths(self) -> None:
        assert PostgresqlColumn("c", None, "bigint").limit == 8
        assert PostgresqlColumn("c", None, "smallint").limit == 2

    def test_money(self) -> None:
        column = PostgresqlColumn("c", None, "money")
        assert column.type == "decimal"
        assert (column.precision, column.scale) == (19, 2)

    def test_bytea_hex_output(self) -> None:
        assert PostgresqlColumn("c", None, "bytea").binary_to_string("\\x6869") == b"hi"


class TestOracleColumn:
    """Tests for Oracle dictionary-driven columns."""

    def test_dimensions_from_dictionary(self) -> None:
        column = OracleColumn("name", "'foo' ", "VARCHAR2", True, 255, None, None)
        assert column.sql_type == "varchar2"
        assert column.type == "string"
        assert column.limit == 255
        assert column.default == "foo"

    def test_number_precision_one_is_boolean(self) -> None:
        assert OracleColumn("flag", "1", "NUMBER", False, 22, 1, 0).default is True

    def test_rendered_number_one_is_boolean(self) -> None:
        assert OracleColumn("flag", None, "NUMBER(1)").type == "boolean"
        assert OracleColumn("flag", None, "number(1, 0)").type == "boolean"
        assert OracleColumn("qty", None, "number(10)").type == "integer"

    def test_number_scale(self) -> None:
        assert OracleColumn("qty", "NULL", "NUMBER", True, 22, 10, 0).type == "integer"
        assert OracleColumn("price", None, "NUMBER", True, 22, 10, 2).type == "decimal"

    def test_null_default(self) -> None:
        assert OracleColumn("qty", "NULL", "NUMBER", True, 22, 10, 0).default is None


class TestSqliteColumn:
    """Tests for SQLite literal defaults."""

    def test_quoted_defaults_are_unquoted(self) -> None:
        assert SqliteColumn("c", "'foo'", "varchar(255)").default == "foo"
        assert SqliteColumn("c", "'it''s'", "varchar(255)").default == "it's"
        assert SqliteColumn("c", "''", "varchar(255)").default == ""

    def test_null_literal(self) -> None:
        assert SqliteColumn("c", "NULL", "int").default is None

    def test_booleans(self) -> None:
        assert SqliteColumn("c", "1", "boolean").default is True
        assert SqliteColumn("c", "'t'", "boolean").default is True
        assert SqliteColumn("c", "''", "boolean").default is None

    def test_binary_escapes(self) -> None:
        column = SqliteColumn("c", None, "blob")
        assert column.binary_to_string("a%00b%25") == b"a\0b%"
        assert column.binary_to_string(b"raw") == b"raw"


# ============================================================================
# Type round trip
# ============================================================================

SCHEMA_FIXTURES = ("sqlite_schema", "mysql_schema", "pg_schema", "oracle_schema")

# Abstract types rendered as a native type shared with another abstract type
NATIVE_ALIASES = {
    ("sqlite_schema", "timestamp"): "datetime",
    ("mysql_schema", "timestamp"): "datetime",
    ("pg_schema", "datetime"): "timestamp",
    ("oracle_schema", "datetime"): "date",
    ("oracle_schema", "timestamp"): "date",
    ("oracle_schema", "time"): "string",
}


class TestTypeRoundTrip:
    """Rendering an abstract type and reading it back recovers the type."""

    @pytest.mark.parametrize("abstract_type", COLUMN_TYPES)
    @pytest.mark.parametrize("schema_fixture", SCHEMA_FIXTURES)
    def test_round_trip(
        self, request: pytest.FixtureRequest, schema_fixture: str, abstract_type: str
    ) -> None:
        schema = request.getfixturevalue(schema_fixture)
        if abstract_type == "decimal":
            sql_type = schema.type_to_sql(abstract_type, precision=10, scale=2)
        else:
            sql_type = schema.type_to_sql(abstract_type)

        column = schema.make_column("c", None, sql_type)
        assert column.type == NATIVE_ALIASES.get((schema_fixture, abstract_type), abstract_type)
