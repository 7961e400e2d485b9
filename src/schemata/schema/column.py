"""Column model: abstract type inference and default value casting.

A Column is built once from introspected metadata (name, raw default
literal, raw native type, nullability) and derives everything else:

    - ``type``: the abstract type, found by an ordered cascade of
      (pattern, abstract type) rules where the first match wins
    - ``limit``/``precision``/``scale``/``unsigned``: parsed from the
      parenthesized arguments of the native type
    - ``default``: the default literal cast to a Python value

Parsing is permissive: a native type no rule matches leaves ``type`` as
None, and an unparseable default casts to None. Nothing here raises for
unexpected engine metadata.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Any

logger = logging.getLogger(__name__)

AUTOINCREMENT_KEY = "autoincrementKey"

# Abstract types every dialect maps natively
COLUMN_TYPES: tuple[str, ...] = (
    "string",
    "text",
    "integer",
    "float",
    "decimal",
    "datetime",
    "timestamp",
    "time",
    "date",
    "binary",
    "boolean",
)

TEXT_TYPES = frozenset({"text", "string"})
NUMBER_TYPES = frozenset({"float", "integer", "decimal"})

# Fixed date used to anchor time-of-day values
DUMMY_DATE = "2000-01-01"

LIMIT_PATTERN = re.compile(r"\((.*)\)")
PRECISION_PATTERN = re.compile(r"^(numeric|decimal|number)\((\d+)(,\s*\d+)?\)", re.IGNORECASE)
SCALE_PATTERN = re.compile(r"^(numeric|decimal|number)\((\d+),\s*(\d+)\)", re.IGNORECASE)
UNSIGNED_PATTERN = re.compile(r"^int.*unsigned", re.IGNORECASE)
LEADING_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}")
NON_DIGITS = re.compile(r"\D")


def _rule(pattern: str, abstract_type: str, flags: int = re.IGNORECASE) -> tuple[re.Pattern[str], str]:
    return re.compile(pattern, flags), abstract_type


class Column:
    """An introspected table column.

    Attributes:
        name: Column name
        sql_type: Raw native type string, e.g. ``varchar(255)``
        type: Abstract type, or None when no rule matched
        null: Whether the column accepts NULL
        limit: Parenthesized length argument, if any
        precision: Numeric precision, if any
        scale: Numeric scale (0 when absent)
        unsigned: Whether an integer type is unsigned
        default: Default value cast to a Python value
    """

    # Ordered (pattern, abstract type) rules; first match wins
    TYPE_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
        _rule(r"int", "integer"),
        _rule(r"float|double", "float"),
        _rule(r"decimal|numeric|number", "decimal"),
        _rule(r"datetime", "datetime"),
        _rule(r"timestamp", "timestamp"),
        _rule(r"time", "time"),
        _rule(r"date", "date"),
        _rule(r"clob|text", "text"),
        _rule(r"blob|binary", "binary"),
        _rule(r"char|string", "string"),
        _rule(r"boolean", "boolean"),
    )

    def __init__(
        self,
        name: str,
        default: Any = None,
        sql_type: str | None = None,
        null: bool = True,
    ):
        self.name = name
        self.sql_type = sql_type
        self.null = null
        self.limit, self.precision, self.scale = self._extract_dimensions(sql_type)
        self.unsigned = self.extract_unsigned(sql_type)
        self.type = self.simplify_type(sql_type)
        self.default = self.extract_default(default)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(name={self.name!r}, sql_type={self.sql_type!r}, "
            f"type={self.type!r}, null={self.null!r}, default={self.default!r})"
        )

    @property
    def is_text(self) -> bool:
        """Whether the abstract type holds character data."""
        return self.type in TEXT_TYPES

    @property
    def is_number(self) -> bool:
        """Whether the abstract type holds numeric data."""
        return self.type in NUMBER_TYPES

    # ------------------------------------------------------------------
    # Type inference
    # ------------------------------------------------------------------

    def simplify_type(self, sql_type: str | None) -> str | None:
        """Map a native type string to its abstract type."""
        if not sql_type:
            return None
        for pattern, abstract_type in self.TYPE_RULES:
            if pattern.search(sql_type):
                return self._refine_type(abstract_type)
        return None

    def _refine_type(self, abstract_type: str) -> str:
        """Adjust a matched type using the parsed dimensions."""
        if abstract_type == "decimal" and not self.scale:
            return "integer"
        return abstract_type

    def _extract_dimensions(self, sql_type: str | None) -> tuple[int | None, int | None, int]:
        return (
            self.extract_limit(sql_type),
            self.extract_precision(sql_type),
            self.extract_scale(sql_type),
        )

    def extract_limit(self, sql_type: str | None) -> int | None:
        if not sql_type:
            return None
        match = LIMIT_PATTERN.search(sql_type)
        if not match:
            return None
        return _leading_int(match.group(1))

    def extract_precision(self, sql_type: str | None) -> int | None:
        if not sql_type:
            return None
        match = PRECISION_PATTERN.search(sql_type)
        return int(match.group(2)) if match else None

    def extract_scale(self, sql_type: str | None) -> int:
        if not sql_type:
            return 0
        match = SCALE_PATTERN.search(sql_type)
        return int(match.group(3)) if match else 0

    def extract_unsigned(self, sql_type: str | None) -> bool:
        return bool(sql_type and UNSIGNED_PATTERN.search(sql_type))

    # ------------------------------------------------------------------
    # Default values
    # ------------------------------------------------------------------

    def extract_default(self, default: Any) -> Any:
        """Unwrap the dialect's literal syntax from a default and cast it."""
        return self.type_cast(default)

    def type_cast(self, value: Any) -> Any:
        """Cast a raw value to the Python value of this column's abstract type."""
        if value is None:
            return None

        if self.type in TEXT_TYPES:
            return value
        if self.type == "integer":
            return self._value_to_number(value, int)
        if self.type == "float":
            return self._value_to_number(value, float)
        if self.type == "decimal":
            return self.value_to_decimal(value)
        if self.type in ("datetime", "timestamp"):
            return self.string_to_time(value)
        if self.type == "time":
            return self.string_to_dummy_time(value)
        if self.type == "date":
            return self.string_to_date(value)
        if self.type == "binary":
            return self.binary_to_string(value)
        if self.type == "boolean":
            return self.value_to_boolean(value)
        return value

    def binary_to_string(self, value: Any) -> bytes:
        """Decode a stored binary value."""
        if isinstance(value, (bytes, bytearray, memoryview)):
            return bytes(value)
        return str(value).encode("utf-8")

    def string_to_date(self, value: Any) -> date | None:
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        parsed = self._parse_datetime(value)
        return parsed.date() if parsed else None

    def string_to_time(self, value: Any) -> datetime | None:
        if isinstance(value, datetime):
            return value
        if isinstance(value, date):
            return datetime(value.year, value.month, value.day)
        return self._parse_datetime(value)

    def string_to_dummy_time(self, value: Any) -> datetime | None:
        """Parse a time of day anchored to a fixed dummy date."""
        if isinstance(value, datetime):
            return value
        if isinstance(value, time):
            return datetime.combine(date.fromisoformat(DUMMY_DATE), value)
        string = str(value).strip()
        if not string:
            return None
        if not LEADING_DATE_PATTERN.match(string):
            string = f"{DUMMY_DATE} {string}"
        return self.string_to_time(string)

    def value_to_boolean(self, value: Any) -> bool:
        if isinstance(value, bool):
            return value
        return str(value).lower() in ("true", "t", "1")

    def value_to_decimal(self, value: Any) -> Decimal | None:
        if isinstance(value, Decimal):
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return Decimal(str(value))
        string = str(value).strip()
        if not string:
            return None
        try:
            return Decimal(string)
        except InvalidOperation:
            logger.debug(f"Unparseable decimal default for {self.name}: {value!r}")
            return None

    def _value_to_number(self, value: Any, kind: type[int] | type[float]) -> Any:
        if isinstance(value, bool):
            return kind(value)
        if isinstance(value, (int, float, Decimal)):
            return kind(value)
        string = str(value).strip()
        if not string:
            return None
        try:
            return kind(string)
        except ValueError:
            pass
        try:
            return kind(float(string))
        except ValueError:
            logger.debug(f"Unparseable numeric default for {self.name}: {value!r}")
            return None

    def _parse_datetime(self, value: Any) -> datetime | None:
        string = str(value).strip()
        digits = NON_DIGITS.sub("", string)
        # all-zero sentinel dates such as 0000-00-00 map to NULL
        if not digits or int(digits) == 0:
            return None
        try:
            return datetime.fromisoformat(string)
        except ValueError:
            logger.debug(f"Unparseable date/time default for {self.name}: {value!r}")
            return None


def _leading_int(value: str) -> int | None:
    match = re.match(r"\s*(\d+)", value)
    return int(match.group(1)) if match else None
