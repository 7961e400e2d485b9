"""Build connected schema adapters from connection configuration.

Usage:
    from schemata import connect

    schema = connect({"adapter": "sqlite", "database": ":memory:"})
    schema = connect(DatabaseConfigLoader().load_config().get("production"))
"""

from __future__ import annotations

import logging
from typing import Any

from .backends import BACKENDS, DatabaseBackend, Dialect
from .config import ConnectionConfig
from .errors import ConfigurationError
from .schema import SCHEMAS, SchemaBase
from .schema.cache import SchemaCache
from .schema.oracle import OracleSchema
from .schema.postgresql import PostgresqlSchema

logger = logging.getLogger(__name__)


def connect(config: ConnectionConfig | dict[str, Any]) -> SchemaBase:
    """Open a backend for config and wrap it in the matching schema adapter.

    Raises:
        ConfigurationError: If the configuration is invalid
        DialectError: If the connection fails
    """
    if isinstance(config, dict):
        config = ConnectionConfig.from_dict(config)

    dialect = Dialect(config.adapter)
    backend = BACKENDS[dialect]()
    backend.connect(config)

    schema = schema_for(
        backend,
        identifier_length=config.identifier_length,
        autoincrement_table=config.autoincrement_table,
    )
    if isinstance(schema, PostgresqlSchema) and config.search_path:
        schema.set_schema_search_path(config.search_path)

    logger.info(f"Connected {dialect.value} schema adapter")
    return schema


def schema_for(
    backend: DatabaseBackend,
    cache: SchemaCache | None = None,
    identifier_length: int | None = None,
    autoincrement_table: str | None = None,
) -> SchemaBase:
    """Wrap an already connected backend in the adapter for its dialect.

    Raises:
        ConfigurationError: If no adapter exists for the backend's dialect
    """
    schema_class = SCHEMAS.get(backend.dialect)
    if schema_class is None:
        raise ConfigurationError(f"No schema adapter for dialect {backend.dialect}")

    if issubclass(schema_class, OracleSchema) and autoincrement_table:
        return schema_class(backend, cache, identifier_length, autoincrement_table=autoincrement_table)
    return schema_class(backend, cache, identifier_length)
