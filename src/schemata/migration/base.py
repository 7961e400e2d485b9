"""Migration unit base class.

A migration is a versioned pair of ``up()`` and ``down()`` procedures. Inside
them, every attribute the migration does not define itself resolves to the
schema adapter, so schema operations read as plain method calls and are
logged with their arguments and timing:

    class CreateReminders(Migration):
        def up(self):
            with self.create_table("reminders") as t:
                t.text("content")
                t.datetime("remind_at")

        def down(self):
            self.drop_table("reminders")
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any

from ..backends.base import QueryResult

if TYPE_CHECKING:
    from ..schema.base import SchemaBase

logger = logging.getLogger(__name__)

ANNOUNCE_WIDTH = 75


class Migration:
    """Base class for migration units.

    Attributes:
        schema: Schema adapter the migration runs against
        version: Migration version (set by the migrator from the file name
            for discovered migrations, or declared on the class)
    """

    version: int | None = None

    def __init__(self, schema: SchemaBase, version: int | None = None):
        self.schema = schema
        if version is not None:
            self.version = version

    def migrate(self, direction: str) -> Any:
        """Run ``up`` or ``down``, announcing start, end and elapsed time.

        Directions the migration does not implement are a no-op.
        """
        # looked up on the class so the schema proxy never answers
        method = getattr(type(self), direction, None)
        if method is None:
            return None

        self.announce("migrating" if direction == "up" else "reverting")
        start_time = time.perf_counter()
        result = method(self)
        elapsed = time.perf_counter() - start_time
        self.announce(f"{'migrated' if direction == 'up' else 'reverted'} ({elapsed:.4f}s)")
        return result

    def announce(self, message: str) -> None:
        text = f"{self.version} {type(self).__name__}: {message}"
        logger.info(f"== {text} {'=' * max(0, ANNOUNCE_WIDTH - len(text))}")

    def say(self, message: str, subitem: bool = False) -> None:
        logger.info(f"{'   ->' if subitem else '--'} {message}")

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_") or name == "schema":
            raise AttributeError(f"'{type(self).__name__}' object has no attribute '{name}'")
        target = getattr(self.schema, name)
        if not callable(target):
            return target

        def proxy(*args: Any, **kwargs: Any) -> Any:
            arguments = [repr(a) for a in args] + [f"{k}={v!r}" for k, v in kwargs.items()]
            self.say(f"{name}({', '.join(arguments)})")

            start_time = time.perf_counter()
            result = target(*args, **kwargs)
            self.say(f"{time.perf_counter() - start_time:.4f}s", subitem=True)

            if isinstance(result, QueryResult):
                self.say(f"{result.affected_rows} rows", subitem=True)
            elif isinstance(result, int) and not isinstance(result, bool):
                self.say(f"{result} rows", subitem=True)
            return result

        return proxy
