"""Connection backend protocol and shared data classes.

This module defines the narrow interface the schema adapters consume from a
database connection, along with the shared result structure. Backends
issue SQL strings and return rows; they know nothing about schemas.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..config import ConnectionConfig

logger = logging.getLogger(__name__)


class Dialect(Enum):
    """Supported engine families."""

    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    ORACLE = "oracle"


@dataclass
class QueryResult:
    """Unified statement result across backends.

    Attributes:
        rows: Result rows as list of dicts (for SELECT queries)
        row_count: Number of rows returned (SELECT) or affected (DML)
        columns: Column names from result set
        last_insert_id: Last inserted row ID, where the driver reports one
        affected_rows: Number of rows affected by INSERT/UPDATE/DELETE
    """

    rows: list[dict[str, Any]] = field(default_factory=list)
    row_count: int = 0
    columns: list[str] = field(default_factory=list)
    last_insert_id: int | None = None
    affected_rows: int = 0


# Type alias for query parameters
Params = tuple[Any, ...] | list[Any] | None


@runtime_checkable
class DatabaseBackend(Protocol):
    """Protocol defining the connection collaborator used by schema adapters.

    SQL handed to a backend uses ``?`` placeholders; the backend converts them
    to its driver's native style. Driver failures surface as DialectError.
    """

    dialect: Dialect

    def connect(self, config: ConnectionConfig) -> None:
        """Open the native connection.

        Raises:
            DialectError: If the connection fails
        """
        ...

    def disconnect(self) -> None:
        """Close the native connection. Safe to call multiple times."""
        ...

    def reconnect(self) -> None:
        """Close and reopen the connection with the last configuration."""
        ...

    def execute(self, sql: str, params: Params = None) -> QueryResult:
        """Execute a statement and return its result.

        Raises:
            DialectError: If execution fails
        """
        ...

    def select_all(self, sql: str, params: Params = None) -> list[dict[str, Any]]:
        """Return every row of a query."""
        ...

    def select_one(self, sql: str, params: Params = None) -> dict[str, Any] | None:
        """Return the first row of a query, or None."""
        ...

    def select_value(self, sql: str, params: Params = None) -> Any:
        """Return the first column of the first row, or None."""
        ...

    def select_values(self, sql: str, params: Params = None) -> list[Any]:
        """Return the first column of every row."""
        ...

    def begin_transaction(self) -> None:
        """Begin a transaction."""
        ...

    def commit(self) -> None:
        """Commit the current transaction."""
        ...

    def rollback(self) -> None:
        """Rollback the current transaction."""
        ...

    def transaction(self) -> Any:
        """Context manager scoping a transaction."""
        ...

    def last_insert_id(self) -> int | None:
        """Return the id generated by the most recent INSERT."""
        ...

    @property
    def in_transaction(self) -> bool:
        """Check if currently in a transaction."""
        ...


class DatabaseBackendBase(ABC):
    """Abstract base class for backends.

    Provides the select helpers, the nestable transaction scope and the
    last-insert-id bookkeeping on top of four primitives. Subclasses must
    implement all abstract methods.
    """

    dialect: Dialect

    def __init__(self) -> None:
        self._config: ConnectionConfig | None = None
        self._transaction_depth = 0
        self._last_insert_id: int | None = None

    @abstractmethod
    def connect(self, config: ConnectionConfig) -> None:
        """Establish database connection."""
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Close database connection."""
        pass

    @abstractmethod
    def _run(self, sql: str, params: Params) -> QueryResult:
        """Run one statement through the driver, wrapping driver errors."""
        pass

    @abstractmethod
    def _begin(self) -> None:
        """Issue the native BEGIN."""
        pass

    @abstractmethod
    def _commit(self) -> None:
        """Issue the native COMMIT."""
        pass

    @abstractmethod
    def _rollback(self) -> None:
        """Issue the native ROLLBACK."""
        pass

    def reconnect(self) -> None:
        """Close and reopen the connection with the last configuration."""
        if self._config is None:
            raise RuntimeError("Not connected to database. Call connect() first.")
        config = self._config
        self.disconnect()
        self.connect(config)

    def execute(self, sql: str, params: Params = None) -> QueryResult:
        """Execute a statement, remembering any generated id."""
        logger.debug(f"Executing: {sql} {list(params) if params else ''}".rstrip())
        result = self._run(sql, params)
        if result.last_insert_id:
            self._last_insert_id = result.last_insert_id
        return result

    def select_all(self, sql: str, params: Params = None) -> list[dict[str, Any]]:
        """Return every row of a query."""
        return self.execute(sql, params).rows

    def select_one(self, sql: str, params: Params = None) -> dict[str, Any] | None:
        """Return the first row of a query, or None."""
        rows = self.select_all(sql, params)
        return rows[0] if rows else None

    def select_value(self, sql: str, params: Params = None) -> Any:
        """Return the first column of the first row, or None."""
        row = self.select_one(sql, params)
        if not row:
            return None
        return next(iter(row.values()))

    def select_values(self, sql: str, params: Params = None) -> list[Any]:
        """Return the first column of every row."""
        return [next(iter(row.values())) for row in self.select_all(sql, params) if row]

    def begin_transaction(self) -> None:
        """Begin a transaction."""
        self._ensure_connected()
        self._begin()
        self._transaction_depth = max(self._transaction_depth, 1)
        logger.debug("Started transaction")

    def commit(self) -> None:
        """Commit the current transaction."""
        self._ensure_connected()
        self._commit()
        self._transaction_depth = 0
        logger.debug("Committed transaction")

    def rollback(self) -> None:
        """Rollback the current transaction.

        Safe to call even if no transaction is active.
        """
        if not self.is_connected:
            self._transaction_depth = 0
            return
        try:
            self._rollback()
        finally:
            self._transaction_depth = 0
        logger.debug("Rolled back transaction")

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Scope a transaction.

        Nested scopes join the outermost one: only the outermost scope begins
        and commits. Any exception rolls the whole transaction back and is
        re-raised.
        """
        if self._transaction_depth:
            self._transaction_depth += 1
            try:
                yield
            finally:
                self._transaction_depth -= 1
            return

        self.begin_transaction()
        try:
            yield
            self.commit()
        except BaseException:
            self.rollback()
            raise

    def last_insert_id(self) -> int | None:
        """Return the id generated by the most recent INSERT."""
        return self._last_insert_id

    @property
    def in_transaction(self) -> bool:
        """Check if in transaction."""
        return self._transaction_depth > 0

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Check if the native connection is open."""
        pass

    def _ensure_connected(self) -> None:
        """Ensure database is connected.

        Raises:
            RuntimeError: If not connected
        """
        if not self.is_connected:
            raise RuntimeError("Not connected to database. Call connect() first.")
