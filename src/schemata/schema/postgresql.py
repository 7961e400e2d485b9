"""PostgreSQL schema adapter.

PostgreSQL reports column defaults as expressions (``'x'::character varying``,
``B'101'::"bit"``, ``nextval('t_id_seq'::regclass)``); PostgresqlColumn
unwraps the literal ones and maps everything else to None. Type changes the
server cannot coerce directly are emulated through a temporary column inside
a transaction.
"""

from __future__ import annotations

import logging
import re
from decimal import Decimal
from typing import Any

from ..backends.base import Dialect
from ..errors import DialectError, UnsupportedWidth
from .base import BoundClause, SchemaBase
from .column import AUTOINCREMENT_KEY, Column
from .table import Index

logger = logging.getLogger(__name__)

MONEY_PRECISION = 19

_GEOMETRIC = r'(?:point|line|lseg|box|"?path"?|polygon|circle)'
_NETWORK = r"(?:cidr|inet|macaddr)"

# (pattern, abstract type) rules for PostgreSQL specific types; matched against
# the whole format_type() string before the generic cascade
PG_TYPE_RULES: tuple[tuple[re.Pattern[str], str], ...] = tuple(
    (re.compile(pattern), abstract_type)
    for pattern, abstract_type in (
        (r"(?:real|double precision)", "float"),
        (r"money", "decimal"),
        (r"(?:character varying|bpchar)(?:\(\d+\))?", "string"),
        (r"bytea", "binary"),
        (r"timestamp with(?:out)? time zone", "datetime"),
        (r"interval", "string"),
        (_GEOMETRIC, "string"),
        (_NETWORK, "string"),
        (r"bit(?: varying)?(?:\(\d+\))?", "string"),
        (r"xml", "string"),
        (r"\D+\[\]", "string"),
        (r"oid", "integer"),
    )
)

# Default expression patterns whose first group is the literal value
PG_DEFAULT_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern)
    for pattern in (
        r"'(.*)'::(?:character varying|bpchar|text)",
        r"'(.*)'::bytea",
        r"'(.+)'::(?:time(?:stamp)? with(?:out)? time zone|date)",
        r"'(.*)'::interval",
        rf"'(.*)'::{_GEOMETRIC}",
        rf"'(.*)'::{_NETWORK}",
        r"B'(.*)'::\"?bit(?: varying)?\"?",
        r"'(.*)'::xml",
        r"'(.*)'::\"?\D+\"?\[\]",
    )
)

NUMERIC_DEFAULT = re.compile(r"-?\d+(\.\d*)?")
ESCAPE_STRING_DEFAULT = re.compile(r"E'(.*)'::(?:character varying|bpchar|text)")
OCTAL_ESCAPE = re.compile(r"\\(\d{3})")
BYTEA_ESCAPE = re.compile(r"\\'|\\\\|\\\d{3}")
HEX_DIGITS = re.compile(r"[0-9A-F]*", re.IGNORECASE)
BIT_DIGITS = re.compile(r"[01]*")


class PostgresqlColumn(Column):
    """PostgreSQL column with PostgreSQL type names and default expressions."""

    def __init__(
        self,
        name: str,
        default: Any = None,
        sql_type: str | None = None,
        null: bool = True,
    ):
        super().__init__(name, self.extract_value_from_default(default), sql_type, null)

    def simplify_type(self, sql_type: str | None) -> str | None:
        if sql_type:
            for pattern, abstract_type in PG_TYPE_RULES:
                if pattern.fullmatch(sql_type):
                    return abstract_type
        return super().simplify_type(sql_type)

    def extract_value_from_default(self, default: Any) -> Any:
        """Unwrap the literal from a default expression, or None for functions."""
        if default is None or isinstance(default, bool):
            return default
        default = str(default)

        if NUMERIC_DEFAULT.fullmatch(default):
            return default
        match = ESCAPE_STRING_DEFAULT.fullmatch(default)
        if match:
            return OCTAL_ESCAPE.sub(lambda m: chr(int(m.group(1), 8)), match.group(1))
        if default == "true":
            return True
        if default == "false":
            return False
        for pattern in PG_DEFAULT_PATTERNS:
            match = pattern.fullmatch(default)
            if match:
                return match.group(1)
        # blank, a user type or a function; the value is unknowable
        return None

    def binary_to_string(self, value: Any) -> bytes:
        """Decode bytea output in hex (``\\x...``) or escape format."""
        if isinstance(value, (bytes, bytearray, memoryview)):
            return bytes(value)
        value = str(value)
        if value.startswith("\\x"):
            return bytes.fromhex(value[2:])
        return BYTEA_ESCAPE.sub(_unescape_bytea, value).encode("latin-1")

    def extract_limit(self, sql_type: str | None) -> int | None:
        if sql_type and re.match(r"bigint", sql_type, re.IGNORECASE):
            return 8
        if sql_type and re.match(r"smallint", sql_type, re.IGNORECASE):
            return 2
        return super().extract_limit(sql_type)

    def extract_precision(self, sql_type: str | None) -> int | None:
        if sql_type and sql_type.startswith("money"):
            return MONEY_PRECISION
        return super().extract_precision(sql_type)

    def extract_scale(self, sql_type: str | None) -> int:
        if sql_type and sql_type.startswith("money"):
            return 2
        return super().extract_scale(sql_type)


def _unescape_bytea(match: re.Match[str]) -> str:
    token = match.group(0)
    if token == "\\'":
        return "'"
    if token == "\\\\":
        return "\\"
    return chr(int(token[1:], 8))


class PostgresqlSchema(SchemaBase):
    """Schema adapter for PostgreSQL."""

    dialect = Dialect.POSTGRESQL
    column_class = PostgresqlColumn
    DEFAULT_IDENTIFIER_LENGTH = 63

    NATIVE_DATABASE_TYPES: dict[str, Any] = {
        AUTOINCREMENT_KEY: "serial primary key",
        "string": {"name": "character varying", "limit": 255},
        "text": {"name": "text", "limit": None},
        "mediumtext": {"name": "text", "limit": None},
        "longtext": {"name": "text", "limit": None},
        "integer": {"name": "integer", "limit": None},
        "float": {"name": "float", "limit": None},
        "decimal": {"name": "decimal", "limit": None},
        "datetime": {"name": "timestamp", "limit": None},
        "timestamp": {"name": "timestamp", "limit": None},
        "time": {"name": "time", "limit": None},
        "date": {"name": "date", "limit": None},
        "binary": {"name": "bytea", "limit": None},
        "boolean": {"name": "boolean", "limit": None},
    }

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.schema_search_path: str | None = None

    # ==========================================================================
    # Quoting
    # ==========================================================================

    def quote(self, value: Any, column: Any = None) -> str:
        """Quote a value, using binary, xml, money and bit literals by column type."""
        if column is None:
            return super().quote(value, column)

        sql_type = column.sql_type or ""
        if isinstance(value, str) and column.type == "binary":
            return self.quote_binary(value.encode("utf-8"))
        if isinstance(value, str) and sql_type == "xml":
            return f"xml {self.quote_string(value)}"
        if sql_type == "money" and _is_numeric(value):
            # plain numeric input, escape syntax not allowed
            return f"'{value}'"
        if isinstance(value, str) and sql_type[:3] == "bit":
            if HEX_DIGITS.fullmatch(value):
                return f"X'{value}'"
            if BIT_DIGITS.fullmatch(value):
                return f"B'{value}'"
        return super().quote(value, column)

    def quote_true(self) -> str:
        return "'t'"

    def quote_false(self) -> str:
        return "'f'"

    def quote_binary(self, value: bytes) -> str:
        return "E'\\\\x" + value.hex() + "'"

    def quote_sequence_name(self, name: str) -> str:
        return "'" + name.replace('"', '""') + "'"

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
        """Render a native type; integer byte widths select smallint/integer/bigint.

        Raises:
            UnsupportedWidth: For integer limits above 8 bytes
        """
        if type != "integer":
            return super().type_to_sql(type, limit, precision, scale)
        if limit in (1, 2):
            return "smallint"
        if limit in (None, 3, 4):
            return "integer"
        if limit in (5, 6, 7, 8):
            return "bigint"
        raise UnsupportedWidth(limit)

    def like_expression(self, lhs: str, pattern: str) -> str:
        return f"{lhs} ILIKE {pattern}"

    def build_clause(
        self,
        lhs: str,
        op: str,
        rhs: Any,
        bind: bool = False,
        params: dict[str, Any] | None = None,
    ) -> str | BoundClause:
        if op in ("&", "|"):
            # non-integer text values evaluate to 0 instead of failing the cast
            template = (
                "CASE WHEN CAST({lhs} AS VARCHAR) ~ '^-?[0-9]+$' "
                "THEN (CAST({lhs} AS INTEGER) {op} {rhs}) ELSE 0 END"
            )
            if bind:
                return template.format(lhs=lhs, op=op, rhs="?"), [int(rhs)]
            return template.format(lhs=lhs, op=op, rhs=int(rhs))
        return super().build_clause(lhs, op, rhs, bind, params)

    # ==========================================================================
    # Introspection
    # ==========================================================================

    def tables(self) -> list[str]:
        return self.select_values(
            "SELECT table_name FROM information_schema.tables "
            "WHERE table_schema = ANY (CURRENT_SCHEMAS(false))"
        )

    def primary_key(self, table: str) -> Index:
        columns = self.select_values(
            """
            SELECT column_name
            FROM information_schema.constraint_column_usage
            WHERE table_name = ?
                AND constraint_name = (SELECT constraint_name
                                       FROM information_schema.table_constraints
                                       WHERE table_name = ?
                                           AND constraint_type = ?)
            """,
            [table, table, "PRIMARY KEY"],
        )
        return self.make_index(table, "PRIMARY", True, True, columns)

    def indexes(self, table: str) -> list[Index]:
        indkeys = " OR ".join(f"d.indkey[{i}] = a.attnum" for i in range(10))
        rows = self._cached_rows(
            f"tables/indexes/{table}",
            f"""
            SELECT DISTINCT i.relname, d.indisunique, a.attname,
                array_position(d.indkey::int2[], a.attnum) AS position
            FROM pg_class t, pg_class i, pg_index d, pg_attribute a
            WHERE i.relkind = 'i'
                AND d.indexrelid = i.oid
                AND d.indisprimary = 'f'
                AND t.oid = d.indrelid
                AND t.relname = {self.quote(table)}
                AND i.relnamespace IN (SELECT oid FROM pg_namespace
                                       WHERE nspname = ANY (CURRENT_SCHEMAS(false)))
                AND a.attrelid = t.oid
                AND ({indkeys})
            ORDER BY i.relname, position
            """,
        )
        # column order follows the position in indkey, not attnum
        grouped: dict[str, tuple[bool, list[tuple[int, str]]]] = {}
        for row in rows:
            unique = row["indisunique"] in (True, "t")
            _, columns = grouped.setdefault(row["relname"], (unique, []))
            columns.append((row.get("position") or 0, row["attname"]))
        indexes: list[Index] = []
        for name, (unique, columns) in grouped.items():
            ordered = [attname for _, attname in sorted(columns, key=lambda c: c[0])]
            indexes.append(self.make_index(table, name, False, unique, ordered))
        return indexes

    def columns(self, table: str) -> dict[str, Column]:
        rows = self._cached_rows(
            f"tables/columns/{table}",
            f"""
            SELECT a.attname, format_type(a.atttypid, a.atttypmod),
                pg_get_expr(d.adbin, d.adrelid) AS adsrc, a.attnotnull
            FROM pg_attribute a
            LEFT JOIN pg_attrdef d ON a.attrelid = d.adrelid AND a.attnum = d.adnum
            WHERE a.attrelid = {self.quote(table)}::regclass
                AND a.attnum > 0 AND NOT a.attisdropped
            ORDER BY a.attnum
            """,
        )
        return {
            row["attname"]: self.make_column(
                row["attname"], row["adsrc"], row["format_type"], not _truthy(row["attnotnull"])
            )
            for row in rows
        }

    # ==========================================================================
    # Alteration
    # ==========================================================================

    def rename_table(self, name: str, new_name: str) -> None:
        self.clear_table_cache(name)
        self.execute(
            f"ALTER TABLE {self.quote_table_name(name)} RENAME TO {self.quote_table_name(new_name)}"
        )

    def add_column(self, table: str, column: str, type: str, **options: Any) -> None:
        """Add a column; defaults and NOT NULL are applied to existing rows as well."""
        self.clear_table_cache(table)
        sql_type = self.type_to_sql(
            type, options.get("limit"), options.get("precision"), options.get("scale")
        )
        if options.get("autoincrement"):
            sql_type = "BIGSERIAL" if sql_type == "bigint" else "SERIAL"

        self.execute(
            f"ALTER TABLE {self.quote_table_name(table)} ADD COLUMN "
            f"{self.quote_column_name(column)} {sql_type}"
        )

        if "default" in options:
            self.execute(
                f"UPDATE {self.quote_table_name(table)} SET {self.quote_column_name(column)} = "
                f"{self.quote(options['default'])}"
            )
            self.change_column_default(table, column, options["default"])

        if options.get("null") is False:
            self.change_column_null(table, column, False, options.get("default"))

    def change_column(self, table: str, column: str, type: str, **options: Any) -> None:
        """Change a column's type.

        Tries ``ALTER COLUMN ... TYPE`` first. If the server cannot coerce the
        data, a temporary column of the new type is filled with the cast
        values and swapped in, inside one transaction. Converting into an
        autoincrement key attaches a fresh sequence seeded past the current
        maximum.
        """
        self.clear_table_cache(table)
        quoted_table = self.quote_table_name(table)
        quoted_column = self.quote_column_name(column)

        primary_key = type == AUTOINCREMENT_KEY
        if primary_key:
            type = "integer"
            options.update(autoincrement=True, limit=None, precision=None, scale=None)
            try:
                self.remove_primary_key(table)
            except DialectError as e:
                logger.debug(f"No primary key to remove on {table}: {e}")

        sql_type = self.type_to_sql(
            type, options.get("limit"), options.get("precision"), options.get("scale")
        )
        try:
            self.execute(f"ALTER TABLE {quoted_table} ALTER COLUMN {quoted_column} TYPE {sql_type}")
        except DialectError as e:
            logger.debug(f"Direct type change of {table}.{column} failed, copying data: {e}")
            self._change_column_by_copy(table, column, type, sql_type, options)

        if options.get("autoincrement"):
            self._attach_sequence(table, column)
        elif "default" in options:
            self.change_column_default(table, column, options["default"])

        if primary_key:
            self.add_primary_key(table, column)

        if options.get("null") is not None:
            self.change_column_null(table, column, options["null"], options.get("default"))

    def _change_column_by_copy(
        self, table: str, column: str, type: str, sql_type: str, options: dict[str, Any]
    ) -> None:
        old_type = self.column(table, column).type
        quoted_table = self.quote_table_name(table)
        quoted_column = self.quote_column_name(column)
        tmp_column = f"{column}_change_tmp"
        quoted_tmp = self.quote_column_name(tmp_column)

        with self.transaction():
            self.add_column(table, tmp_column, type, **options)
            if old_type == "boolean":
                # booleans cannot be cast to most types directly
                source = f"CASE WHEN {quoted_column} IS TRUE THEN 1 ELSE 0 END"
            else:
                source = quoted_column
            self.execute(f"UPDATE {quoted_table} SET {quoted_tmp} = CAST({source} AS {sql_type})")
            self.remove_column(table, column)
            self.rename_column(table, tmp_column, column)

    def _attach_sequence(self, table: str, column: str) -> None:
        sequence = self.default_sequence_name(table, column)
        try:
            self.execute(f"DROP SEQUENCE {sequence} CASCADE")
        except DialectError as e:
            logger.debug(f"Sequence {sequence} did not exist: {e}")
        self.execute(f"CREATE SEQUENCE {sequence}")
        self.reset_pk_sequence(table, column, sequence)

        # change_column_default() would quote the NEXTVAL call as a string
        self.clear_table_cache(table)
        quoted_table = self.quote_table_name(table)
        quoted_column = self.quote_column_name(column)
        self.execute(
            f"ALTER TABLE {quoted_table} ALTER COLUMN {quoted_column} "
            f"SET DEFAULT NEXTVAL({self.quote_sequence_name(sequence)})"
        )
        self.execute(f"ALTER SEQUENCE {sequence} OWNED BY {quoted_table}.{quoted_column}")

    def change_column_default(self, table: str, column: str, default: Any) -> None:
        self.clear_table_cache(table)
        self.execute(
            f"ALTER TABLE {self.quote_table_name(table)} ALTER COLUMN "
            f"{self.quote_column_name(column)} SET DEFAULT {self.quote(default)}"
        )

    def change_column_null(
        self, table: str, column: str, null: bool, default: Any = None
    ) -> None:
        self.clear_table_cache(table)
        if not null and default is not None:
            self._fill_nulls(table, column, default)
        action = "DROP" if null else "SET"
        self.execute(
            f"ALTER TABLE {self.quote_table_name(table)} ALTER "
            f"{self.quote_column_name(column)} {action} NOT NULL"
        )

    def rename_column(self, table: str, column: str, new_name: str) -> None:
        self.clear_table_cache(table)
        self.execute(
            f"ALTER TABLE {self.quote_table_name(table)} RENAME COLUMN "
            f"{self.quote_column_name(column)} TO {self.quote_column_name(new_name)}"
        )

    def remove_primary_key(self, table: str) -> None:
        """Drop the primary key constraint, if the table has one."""
        self.clear_table_cache(table)
        key_name = self.select_value(
            "SELECT constraint_name FROM information_schema.table_constraints "
            "WHERE table_name = ? AND constraint_type = ?",
            [table, "PRIMARY KEY"],
        )
        if key_name:
            self.execute(
                f"ALTER TABLE {self.quote_table_name(table)} DROP CONSTRAINT "
                f"{self.quote_column_name(key_name)} CASCADE"
            )

    def remove_index(
        self,
        table: str,
        columns: Any = None,
        *,
        name: str | None = None,
    ) -> None:
        self.clear_table_cache(table)
        self.execute(f"DROP INDEX {self.quote_column_name(self.index_name(table, columns, name=name))}")

    # ==========================================================================
    # Databases
    # ==========================================================================

    def create_database(self, name: str, **options: Any) -> None:
        """Create a database.

        Options: ``owner``, ``template``, ``charset`` (default utf8),
        ``tablespace`` and ``connection_limit``.
        """
        options = {"charset": "utf8", **options}
        clauses = {
            "owner": "OWNER = '{}'",
            "template": "TEMPLATE = {}",
            "charset": "ENCODING = '{}'",
            "tablespace": "TABLESPACE = {}",
            "connection_limit": "CONNECTION LIMIT = {}",
        }
        option_sql = "".join(
            " " + clauses[key].format(value) for key, value in options.items() if key in clauses
        )
        self.execute(f"CREATE DATABASE {self.quote_table_name(name)}{option_sql}")

    def drop_database(self, name: str) -> None:
        self.execute(f"DROP DATABASE IF EXISTS {self.quote_table_name(name)}")

    def current_database(self) -> str | None:
        return self.select_value("SELECT current_database()")

    # ==========================================================================
    # PostgreSQL specific
    # ==========================================================================

    @property
    def server_version(self) -> int:
        """Server version as an integer, e.g. 160002."""
        return int(self.select_value("SHOW server_version_num"))

    def encoding(self) -> str | None:
        """Encoding of the current database."""
        return self.select_value(
            "SELECT pg_encoding_to_char(pg_database.encoding) FROM pg_database "
            f"WHERE pg_database.datname LIKE {self.quote(self.current_database())}"
        )

    def set_schema_search_path(self, schema_csv: str | None) -> None:
        """Set the schema search path from a comma-separated schema list."""
        if schema_csv:
            self.execute(f"SET search_path TO {schema_csv}")
            self.schema_search_path = schema_csv

    def default_sequence_name(self, table: str, pk: str | None = None) -> str:
        default_pk, default_sequence = self.pk_and_sequence_for(table)
        if default_sequence:
            return default_sequence
        return f"{table}_{pk or default_pk or 'id'}_seq"

    def reset_pk_sequence(
        self, table: str, pk: str | None = None, sequence: str | None = None
    ) -> None:
        """Set a sequence so its next value follows the column's maximum."""
        if not pk or not sequence:
            default_pk, default_sequence = self.pk_and_sequence_for(table)
            pk = pk or default_pk
            sequence = sequence or default_sequence
        if not pk:
            return
        if not sequence:
            logger.warning(f"{table} has primary key {pk} with no default sequence")
            return

        quoted_sequence = self.quote_sequence_name(sequence)
        if self.server_version >= 100000:
            increment = (
                "SELECT increment_by FROM pg_sequences "
                f"WHERE schemaname = ANY (CURRENT_SCHEMAS(false)) AND sequencename = {quoted_sequence}"
            )
            minimum = (
                "SELECT min_value FROM pg_sequences "
                f"WHERE schemaname = ANY (CURRENT_SCHEMAS(false)) AND sequencename = {quoted_sequence}"
            )
        else:
            increment = f"SELECT increment_by FROM {sequence}"
            minimum = f"SELECT min_value FROM {sequence}"
        self.select_value(
            f"SELECT setval({quoted_sequence}, (SELECT COALESCE("
            f"MAX({self.quote_column_name(pk)}) + ({increment}), ({minimum})) "
            f"FROM {self.quote_table_name(table)}), false)"
        )

    def pk_and_sequence_for(self, table: str) -> tuple[str | None, str | None]:
        """Return the primary key column and the sequence feeding it."""
        row = self.select_one(
            f"""
            SELECT attr.attname, seq.relname
            FROM pg_class seq, pg_attribute attr, pg_depend dep,
                pg_namespace name, pg_constraint cons
            WHERE seq.oid = dep.objid
                AND seq.relkind = 'S'
                AND attr.attrelid = dep.refobjid
                AND attr.attnum = dep.refobjsubid
                AND attr.attrelid = cons.conrelid
                AND attr.attnum = cons.conkey[1]
                AND cons.contype = 'p'
                AND dep.refobjid = {self.quote(table)}::regclass
            """
        )
        if not row:
            row = self.select_one(
                f"""
                SELECT c.column_name AS attname,
                    pg_get_serial_sequence(t.table_name, c.column_name) AS relname
                FROM information_schema.key_column_usage AS c
                LEFT JOIN information_schema.table_constraints AS t
                    ON t.constraint_name = c.constraint_name
                WHERE t.table_name = {self.quote(table)} AND t.constraint_type = 'PRIMARY KEY'
                """
            )
        if not row:
            return None, None
        return row.get("attname"), row.get("relname")


def _is_numeric(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float, Decimal)):
        return True
    return isinstance(value, str) and NUMERIC_DEFAULT.fullmatch(value.strip()) is not None


def _truthy(value: Any) -> bool:
    return value in (True, "t", "true", 1)
