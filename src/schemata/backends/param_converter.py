"""Parameter placeholder conversion from ``?`` to each driver's native style.

Schema adapters write every parameterized statement with qmark (``?``)
placeholders. Drivers disagree on the style they accept:

    - ? (qmark) - sqlite3
    - %s (format) - psycopg2, PyMySQL
    - :1, :2, ... (numeric) - oracledb

Conversion only happens when parameters are actually bound, so literal
question marks or percent signs in unparameterized DDL are left untouched.
"""

from __future__ import annotations

import re
from typing import Any

from .base import Dialect

# ? but not ?? and not inside a single-quoted literal
QMARK_PATTERN = re.compile(r"'(?:[^']|'')*'|(?<!\?)\?(?!\?)")
PERCENT_PATTERN = re.compile(r"%")


class ParamConverter:
    """Converts qmark placeholders to the target dialect's driver style.

    Example:
        converter = ParamConverter(Dialect.ORACLE)
        sql = "SELECT * FROM users WHERE id = ? AND status = ?"
        converter.convert(sql, (1, "active"))
        # Result: "SELECT * FROM users WHERE id = :1 AND status = :2"
    """

    def __init__(self, target_dialect: Dialect):
        self.target_dialect = target_dialect

    def convert(self, sql: str, params: Any = None) -> str:
        """Convert SQL placeholders to target dialect format.

        Args:
            sql: SQL statement with ? placeholders
            params: Bound parameters; nothing is converted without them

        Returns:
            SQL statement with placeholders in target dialect format
        """
        if not params:
            return sql

        target = self._target_format()
        if target == "qmark":
            return sql
        if target == "format":
            return self._convert_to_format(sql)
        return self._convert_to_numeric(sql)

    def convert_params(self, params: Any) -> tuple[Any, ...]:
        """Normalize parameters to a tuple."""
        if params is None:
            return ()
        return tuple(params)

    def _target_format(self) -> str:
        """Get the native placeholder format for target dialect."""
        if self.target_dialect in (Dialect.POSTGRESQL, Dialect.MYSQL):
            return "format"
        if self.target_dialect == Dialect.ORACLE:
            return "numeric"
        return "qmark"

    def _convert_to_format(self, sql: str) -> str:
        """Convert to %s placeholders, escaping literal percent signs."""

        def replace(match: re.Match[str]) -> str:
            token = match.group(0)
            if token == "?":
                return "%s"
            return PERCENT_PATTERN.sub("%%", token)

        # Percent signs outside literals must be doubled too
        escaped = []
        last = 0
        for match in QMARK_PATTERN.finditer(sql):
            escaped.append(PERCENT_PATTERN.sub("%%", sql[last : match.start()]))
            escaped.append(replace(match))
            last = match.end()
        escaped.append(PERCENT_PATTERN.sub("%%", sql[last:]))
        return "".join(escaped)

    def _convert_to_numeric(self, sql: str) -> str:
        """Convert to Oracle :1, :2 placeholders."""
        counter = [0]

        def replace(match: re.Match[str]) -> str:
            token = match.group(0)
            if token != "?":
                return token
            counter[0] += 1
            return f":{counter[0]}"

        return QMARK_PATTERN.sub(replace, sql)


def convert_sql_for_dialect(sql: str, dialect: Dialect, params: Any = None) -> str:
    """Convenience function to convert SQL placeholders for a dialect.

    Example:
        >>> convert_sql_for_dialect("SELECT * FROM t WHERE id = ?", Dialect.MYSQL, (1,))
        'SELECT * FROM t WHERE id = %s'
    """
    return ParamConverter(dialect).convert(sql, params)
