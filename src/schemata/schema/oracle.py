"""Oracle schema adapter.

Oracle has no identity columns in the versions this adapter targets, so
autoincrement keys are emulated: every (table, column) key gets a sequence
and a ``BEFORE INSERT`` trigger that pulls the next value into the new row
and records it in a shared single-row bookkeeping table. ``last_insert_id()``
reads that table.

Identifiers are not quoted, so Oracle folds them to upper case; metadata is
read back lower-cased.
"""

from __future__ import annotations

import logging
from typing import Any

from ..backends.base import Dialect
from ..errors import DialectError, SchemaError
from .base import BoundClause, SchemaBase, name_digest
from .column import AUTOINCREMENT_KEY, Column
from .definition import TableDefinition
from .table import Index

logger = logging.getLogger(__name__)

DEFAULT_AUTOINCREMENT_TABLE = "schema_autoincrement"

CLOB_TO_BLOB_FUNCTION = """
CREATE OR REPLACE FUNCTION CLOB_TO_BLOB (p_clob CLOB) RETURN BLOB
AS
    l_blob          BLOB;
    l_dest_offset   INTEGER := 1;
    l_source_offset INTEGER := 1;
    l_lang_context  INTEGER := DBMS_LOB.DEFAULT_LANG_CTX;
    l_warning       INTEGER := DBMS_LOB.WARN_INCONVERTIBLE_CHAR;
BEGIN
    DBMS_LOB.CREATETEMPORARY(l_blob, TRUE);
    DBMS_LOB.CONVERTTOBLOB
    (
        dest_lob     => l_blob,
        src_clob     => p_clob,
        amount       => DBMS_LOB.LOBMAXSIZE,
        dest_offset  => l_dest_offset,
        src_offset   => l_source_offset,
        blob_csid    => DBMS_LOB.DEFAULT_CSID,
        lang_context => l_lang_context,
        warning      => l_warning
    );
    RETURN l_blob;
END;
"""


class OracleColumn(Column):
    """Oracle column.

    Dimensions come from the data dictionary instead of the type string.
    ``number`` with precision 1 is a boolean.
    """

    def __init__(
        self,
        name: str,
        default: Any = None,
        sql_type: str | None = None,
        null: bool = True,
        length: int | None = None,
        precision: int | None = None,
        scale: int | None = None,
    ):
        self._dictionary_dimensions = (length, precision, scale)
        super().__init__(name, default, sql_type.lower() if sql_type else sql_type, null)

    def _extract_dimensions(self, sql_type: str | None) -> tuple[int | None, int | None, int]:
        length, precision, scale = self._dictionary_dimensions
        if length is None and precision is None and scale is None:
            return super()._extract_dimensions(sql_type)
        return (
            int(length) if length is not None else None,
            int(precision) if precision is not None else None,
            int(scale) if scale is not None else 0,
        )

    def simplify_type(self, sql_type: str | None) -> str | None:
        if sql_type and sql_type.lower().startswith("number") and self.precision == 1:
            return "boolean"
        return super().simplify_type(sql_type)

    def extract_default(self, default: Any) -> Any:
        """Strip the dictionary's default expression down to its literal."""
        if isinstance(default, str):
            default = default.strip()
            if default.upper() == "NULL" or not default:
                return None
            if len(default) >= 2 and default[0] == default[-1] == "'":
                default = default[1:-1].replace("''", "'")
        return super().extract_default(default)


class OracleSchema(SchemaBase):
    """Schema adapter for Oracle.

    Attributes:
        autoincrement_table: Bookkeeping table holding the last generated key
    """

    dialect = Dialect.ORACLE
    column_class = OracleColumn
    DEFAULT_IDENTIFIER_LENGTH = 30

    NATIVE_DATABASE_TYPES: dict[str, Any] = {
        AUTOINCREMENT_KEY: "number NOT NULL PRIMARY KEY",
        "string": {"name": "varchar2", "limit": 255},
        "text": {"name": "clob", "limit": None},
        "mediumtext": {"name": "clob", "limit": None},
        "longtext": {"name": "clob", "limit": None},
        "integer": {"name": "number", "limit": None},
        "bigint": {"name": "number", "limit": None},
        "float": {"name": "float", "limit": None},
        "decimal": {"name": "number", "limit": None},
        "datetime": {"name": "date", "limit": None},
        "timestamp": {"name": "date", "limit": None},
        "time": {"name": "varchar2", "limit": 8},
        "date": {"name": "date", "limit": None},
        "binary": {"name": "blob", "limit": None},
        "boolean": {"name": "number", "precision": 1, "scale": 0},
    }

    def __init__(
        self,
        backend: Any,
        cache: Any = None,
        identifier_length: int | None = None,
        autoincrement_table: str = DEFAULT_AUTOINCREMENT_TABLE,
    ):
        super().__init__(backend, cache, identifier_length)
        self.autoincrement_table = autoincrement_table

    def make_column(
        self,
        name: str,
        default: Any,
        sql_type: str | None = None,
        null: bool = True,
        length: int | None = None,
        precision: int | None = None,
        scale: int | None = None,
    ) -> Column:
        return OracleColumn(name, default, sql_type, null, length, precision, scale)

    def last_insert_id(self) -> int | None:
        """Key generated by the most recent insert into an autoincrement table."""
        value = self.select_value(f"SELECT id FROM {self.autoincrement_table}")
        return int(value) if value is not None else None

    # ==========================================================================
    # Quoting
    # ==========================================================================

    def quote_column_name(self, name: str) -> str:
        return name

    def quote_binary(self, value: bytes) -> str:
        return "'" + value.hex() + "'"

    # ==========================================================================
    # Dialect utilities
    # ==========================================================================

    def add_column_options(self, sql: str, options: dict[str, Any]) -> str:
        """Append ``DEFAULT`` and an explicit ``NULL``/``NOT NULL``.

        LOB columns never get a null clause.
        """
        if options.get("default") is not None:
            sql += " DEFAULT " + self.quote(options["default"], options.get("column"))

        column = options.get("column")
        if options.get("null") is not None and (
            column is None or column.type not in ("text", "binary")
        ):
            sql += " NULL" if options["null"] else " NOT NULL"
        return sql

    def build_clause(
        self,
        lhs: str,
        op: str,
        rhs: Any,
        bind: bool = False,
        params: dict[str, Any] | None = None,
    ) -> str | BoundClause:
        if op == "|":
            if bind:
                return f"{lhs} + ? - BITAND({lhs}, ?)", [int(rhs), int(rhs)]
            return f"{lhs} + {int(rhs)} - BITAND({lhs}, {int(rhs)})"
        if op == "&":
            if bind:
                return f"BITAND({lhs}, ?)", [int(rhs)]
            return f"BITAND({lhs}, {int(rhs)})"
        return super().build_clause(lhs, op, rhs, bind, params)

    def truncate(self, name: str, length: int | None = None) -> str:
        """Shorten an identifier, abbreviating each ``_`` separated part first."""
        length = length or self.identifier_length
        if len(name) > length:
            name = "_".join(part[:3] for part in name.split("_"))
        return name[:length]

    def shorten_index_name(self, table: str, index: str, explicit: bool) -> str:
        if len(index) <= self.identifier_length:
            return index
        if explicit:
            return self.truncate(index)
        return f"ind_{self.truncate(table, 15)}_{name_digest(index)}"[: self.identifier_length]

    # ==========================================================================
    # Introspection
    # ==========================================================================

    def tables(self) -> list[str]:
        return [name.lower() for name in self.select_values("SELECT table_name FROM USER_TABLES")]

    def columns(self, table: str) -> dict[str, Column]:
        rows = self._cached_rows(
            f"tables/columns/{table}",
            "SELECT COLUMN_NAME, DATA_DEFAULT, DATA_TYPE, NULLABLE, DATA_LENGTH, "
            "DATA_PRECISION, DATA_SCALE FROM USER_TAB_COLUMNS WHERE TABLE_NAME = ? "
            "ORDER BY COLUMN_ID",
            [table.upper()],
        )
        columns: dict[str, Column] = {}
        for row in rows:
            name = row["column_name"].lower()
            columns[name] = self.make_column(
                name,
                row["data_default"],
                row["data_type"],
                row["nullable"] != "N",
                row["data_length"],
                row["data_precision"],
                row["data_scale"],
            )
        return columns

    def primary_key(self, table: str) -> Index:
        key = f"tables/primarykeys/{table}"
        cached = self.cache.get(key)
        if cached is None:
            constraint = self.select_value(
                "SELECT CONSTRAINT_NAME FROM USER_CONSTRAINTS "
                "WHERE TABLE_NAME = ? AND CONSTRAINT_TYPE = 'P'",
                [table.upper()],
            )
            columns: list[str] = []
            if constraint:
                columns = [
                    c.lower()
                    for c in self.select_values(
                        "SELECT COLUMN_NAME FROM USER_CONS_COLUMNS "
                        "WHERE CONSTRAINT_NAME = ? ORDER BY POSITION",
                        [constraint],
                    )
                ]
            cached = {"name": constraint or "PRIMARY", "columns": columns}
            self.cache.set(key, cached)
        return self.make_index(table, cached["name"], True, True, cached["columns"])

    def indexes(self, table: str) -> list[Index]:
        rows = self._cached_rows(
            f"tables/indexes/{table}",
            "SELECT INDEX_NAME, UNIQUENESS FROM USER_INDEXES WHERE TABLE_NAME = ? "
            "AND INDEX_NAME NOT IN (SELECT INDEX_NAME FROM USER_LOBS)",
            [table.upper()],
        )
        primary = self.primary_key(table)
        indexes: list[Index] = []
        for row in rows:
            if row["index_name"] == primary.name:
                continue
            columns = self.select_values(
                "SELECT COLUMN_NAME FROM USER_IND_COLUMNS WHERE INDEX_NAME = ? "
                "ORDER BY COLUMN_POSITION",
                [row["index_name"]],
            )
            indexes.append(
                self.make_index(
                    table,
                    row["index_name"].lower(),
                    False,
                    row["uniqueness"] == "UNIQUE",
                    [c.lower() for c in columns],
                )
            )
        return indexes

    def clear_table_cache(self, table: str) -> None:
        super().clear_table_cache(table)
        self.cache.expire(f"tables/primarykeys/{table}")

    # ==========================================================================
    # Tables
    # ==========================================================================

    def end_table(self, definition: TableDefinition) -> None:
        """Create the table, then the trigger of its autoincrement key column."""
        super().end_table(definition)
        for column in definition:
            if column.type == AUTOINCREMENT_KEY:
                self.create_autoincrement_trigger(definition.name, column.name)

    def rename_table(self, name: str, new_name: str) -> None:
        self.clear_table_cache(name)
        self.execute(
            f"ALTER TABLE {self.quote_table_name(name)} RENAME TO {self.quote_table_name(new_name)}"
        )

    def drop_table(self, name: str) -> None:
        self.remove_autoincrement_trigger(name)
        super().drop_table(name)

    # ==========================================================================
    # Columns
    # ==========================================================================

    def add_column(self, table: str, column: str, type: str, **options: Any) -> None:
        self.clear_table_cache(table)
        sql = self.add_column_options(
            f"{self.quote_column_name(column)} {self._type_sql(type, options)}", options
        )
        self.execute(f"ALTER TABLE {self.quote_table_name(table)} ADD ({sql})")
        if type == AUTOINCREMENT_KEY:
            self.create_autoincrement_trigger(table, column)

    def remove_column(self, table: str, column: str) -> None:
        self.clear_table_cache(table)
        self.remove_autoincrement_trigger(table, column)
        self.execute(
            f"ALTER TABLE {self.quote_table_name(table)} DROP COLUMN {self.quote_column_name(column)}"
        )

    def change_column(self, table: str, column: str, type: str, **options: Any) -> None:
        """Change a column with ``MODIFY``.

        ``MODIFY`` cannot convert between LOB and non-LOB storage, so those
        changes copy the data through a temporary column inside a
        transaction. Changes that render to the current definition are
        skipped, because ``MODIFY`` rejects them.
        """
        current = self.column(table, column)
        was_null = current.null

        if type == "binary" and current.type == "binary":
            return

        current_options: dict[str, Any] = {"limit": current.limit, "default": current.default}
        if not current.null:
            current_options["null"] = False
        old = self.add_column_options(
            self.type_to_sql(
                current.type,
                None if current.type == "integer" or options.get("limit") is None else current.limit,
                None if options.get("precision") is None else current.precision,
                None if options.get("scale") is None else current.scale,
                None if options.get("unsigned") is None else current.unsigned,
            ),
            current_options,
        )
        new = self._type_sql(type, options)
        if old == self.add_column_options(new, options):
            return

        if type == AUTOINCREMENT_KEY:
            try:
                self.remove_autoincrement_trigger(table)
                self.remove_primary_key(table)
            except DialectError as e:
                logger.debug(f"No primary key to remove on {table}: {e}")
            if not was_null:
                # MODIFY fails on a NOT NULL that is already in place
                sql = self.add_column_options(
                    f"{self.quote_column_name(column)} "
                    + self.type_to_sql(
                        current.type,
                        None if current.type == "integer" else current.limit,
                        current.precision,
                        current.scale,
                        current.unsigned,
                    ),
                    {"null": True},
                )
                self.execute(f"ALTER TABLE {self.quote_table_name(table)} MODIFY ({sql})")
        elif options.get("null") is not None and was_null == options["null"]:
            # same for an unchanged NULL/NOT NULL
            del options["null"]
        elif options.get("null") is None and not was_null:
            options["null"] = True

        self.clear_table_cache(table)

        if type == "binary" and current.type != "binary":
            self.execute(CLOB_TO_BLOB_FUNCTION)
            self._copy_through_temporary(
                table, column, type, options, "CLOB_TO_BLOB({column})", "{column} IS NOT NULL"
            )
            return
        if type != "binary" and current.type == "binary":
            self._copy_through_temporary(table, column, type, options, "UTL_RAW.CAST_TO_VARCHAR2({column})")
            return
        if type == "text" and current.type != "text":
            self._copy_through_temporary(table, column, type, options, "TO_CLOB({column})")
            return
        if type != "text" and current.type == "text":
            self._copy_through_temporary(table, column, type, options, "DBMS_LOB.SUBSTR({column}, 4000)")
            return

        sql = self.add_column_options(f"{self.quote_column_name(column)} {new}", options)
        self.execute(f"ALTER TABLE {self.quote_table_name(table)} MODIFY ({sql})")

        if type == AUTOINCREMENT_KEY:
            self.create_autoincrement_trigger(table, column)

    def _copy_through_temporary(
        self,
        table: str,
        column: str,
        type: str,
        options: dict[str, Any],
        expression: str,
        condition: str | None = None,
    ) -> None:
        tmp_column = f"{column}_tmp"
        quoted_column = self.quote_column_name(column)
        sql = (
            f"UPDATE {self.quote_table_name(table)} SET {self.quote_column_name(tmp_column)} = "
            + expression.format(column=quoted_column)
        )
        if condition:
            sql += " WHERE " + condition.format(column=quoted_column)

        with self.transaction():
            self.add_column(table, tmp_column, type, **options)
            self.execute(sql)
            self.remove_column(table, column)
            self.rename_column(table, tmp_column, column)

    def change_column_default(self, table: str, column: str, default: Any) -> None:
        self.clear_table_cache(table)
        self.execute(
            f"ALTER TABLE {self.quote_table_name(table)} MODIFY "
            f"({self.quote_column_name(column)} DEFAULT {self.quote(default)})"
        )

    def rename_column(self, table: str, column: str, new_name: str) -> None:
        self.clear_table_cache(table)
        self.execute(
            f"ALTER TABLE {self.quote_table_name(table)} RENAME COLUMN "
            f"{self.quote_column_name(column)} TO {self.quote_column_name(new_name)}"
        )

    # ==========================================================================
    # Keys and indexes
    # ==========================================================================

    def remove_primary_key(self, table: str) -> None:
        self.clear_table_cache(table)
        self.execute(f"ALTER TABLE {self.quote_table_name(table)} DROP PRIMARY KEY")

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
    # Autoincrement emulation
    # ==========================================================================

    def create_autoincrement_trigger(self, table: str, column: str) -> None:
        """Attach a sequence and an insert trigger feeding the key column.

        The sequence starts past the column's current maximum. The trigger
        also records each generated key in the bookkeeping table.
        """
        if not self.select_value(
            "SELECT 1 FROM USER_TABLES WHERE TABLE_NAME = ?", [self.autoincrement_table.upper()]
        ):
            self.execute(f"CREATE TABLE {self.autoincrement_table} (id INTEGER)")
            self.execute(f"INSERT INTO {self.autoincrement_table} (id) VALUES (0)")

        prefix = f"{table}_{column}"
        sequence = self.truncate(f"{prefix}_seq")
        sql = f"CREATE SEQUENCE {sequence}"
        maximum = self.select_value(f"SELECT MAX({self.quote_column_name(column)}) FROM {table}")
        if maximum:
            sql += f" MINVALUE {int(maximum) + 1}"
        self.execute(sql)

        self.execute(
            f"CREATE OR REPLACE TRIGGER {self.truncate(f'{prefix}_trig')} "
            f"BEFORE INSERT ON {table} FOR EACH ROW DECLARE increment INTEGER; "
            f"BEGIN SELECT {sequence}.NEXTVAL INTO :NEW.{column} FROM dual; "
            f"SELECT {sequence}.CURRVAL INTO increment FROM dual; "
            f"UPDATE {self.autoincrement_table} SET id = increment; END;"
        )
        logger.debug(f"Created autoincrement trigger for {table}.{column}")

    def remove_autoincrement_trigger(self, table: str, column: str | None = None) -> None:
        """Drop the sequence and trigger of a single-column primary key.

        Missing objects are ignored.
        """
        pk = self.primary_key(table)
        if len(pk.columns) != 1 or (column and pk.columns[0] != column):
            return

        prefix = f"{table}_{pk.columns[0]}"
        for kind, suffix in (("SEQUENCE", "_seq"), ("TRIGGER", "_trig")):
            name = self.quote_column_name(self.truncate(prefix + suffix))
            try:
                self.execute(f"DROP {kind} {name}")
            except DialectError as e:
                logger.debug(f"{kind.capitalize()} {name} did not exist: {e}")

    # ==========================================================================
    # Databases
    # ==========================================================================

    def create_database(self, name: str, **options: Any) -> None:
        self.execute(f"CREATE DATABASE {self.quote_table_name(name)}")

    def drop_database(self, name: str) -> None:
        """Drop the current database; Oracle cannot drop any other.

        Raises:
            SchemaError: If name is not the current database
        """
        if self.current_database() != name:
            raise SchemaError("Oracle can only drop the current database")
        self.execute("DROP DATABASE")

    def current_database(self) -> str | None:
        return self.select_value("SELECT SYS_CONTEXT('USERENV', 'CURRENT_SCHEMA') FROM DUAL")
