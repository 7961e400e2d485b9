"""Connection configuration models and the YAML configuration loader.

Configuration file location priority:
1. Explicit path passed to DatabaseConfigLoader
2. SCHEMATA_CONFIG environment variable
3. Standard location: ~/.schemata/database.yml

Example config file:
```yaml
default: development

connections:
  development:
    adapter: sqlite
    database: /var/lib/app/dev.db

  production:
    adapter: postgresql
    host: db.internal
    database: app
    username: app
    password: secret
    search_path: app,public
```
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

AdapterName = Literal["sqlite", "postgresql", "mysql", "oracle"]

DEFAULT_PORTS: dict[str, int] = {
    "postgresql": 5432,
    "mysql": 3306,
    "oracle": 1521,
}


class ConnectionConfig(BaseModel):
    """Database connection configuration.

    Attributes:
        adapter: Engine family (sqlite, postgresql, mysql, oracle)
        database: Database name, or the file path (":memory:" allowed) for SQLite
        host: Database server host
        port: Database server port (defaults per adapter)
        username: Database username
        password: Database password
        dsn: Oracle connect descriptor, used instead of host/port/database
        charset: Client character set (MySQL)
        search_path: Comma separated schema search path (PostgreSQL)
        timeout: Statement/lock timeout in seconds
        identifier_length: Override for the engine's maximum identifier length
        autoincrement_table: Bookkeeping table for emulated autoincrement (Oracle)
        options: Driver-specific connect() keyword arguments
    """

    adapter: AdapterName = Field(description="Database engine family")
    database: str | None = Field(default=None, description="Database name or SQLite path")
    host: str | None = Field(default=None, description="Database host")
    port: int | None = Field(default=None, description="Database port")
    username: str | None = Field(default=None, description="Database username")
    password: str | None = Field(default=None, description="Database password")
    dsn: str | None = Field(default=None, description="Oracle connect descriptor")
    charset: str | None = Field(default=None, description="Client character set")
    search_path: str | None = Field(default=None, description="PostgreSQL schema search path")
    timeout: int = Field(default=30, ge=1, le=3600, description="Timeout in seconds")
    identifier_length: int | None = Field(
        default=None, ge=1, description="Maximum identifier length override"
    )
    autoincrement_table: str = Field(
        default="schema_autoincrement",
        description="Table holding the last emulated autoincrement value",
    )
    options: dict[str, Any] = Field(default_factory=dict)

    @field_validator("port", mode="before")
    @classmethod
    def _validate_port(cls, v: Any) -> int | None:
        """Validate port, allowing None."""
        if v is None:
            return None
        try:
            port = int(v)
        except (ValueError, TypeError) as e:
            raise ValueError(f"Invalid port value: {v}") from e
        if not 1 <= port <= 65535:
            raise ValueError("port must be between 1 and 65535")
        return port

    @model_validator(mode="after")
    def _validate_connection_params(self) -> ConnectionConfig:
        """Validate connection parameters based on adapter."""
        if self.adapter == "sqlite":
            if not self.database:
                raise ValueError("SQLite requires 'database' parameter (file path or ':memory:')")
            return self

        if self.adapter == "oracle" and self.dsn:
            return self
        if not self.host:
            raise ValueError(f"{self.adapter} requires 'host' parameter")
        if not self.database:
            raise ValueError(f"{self.adapter} requires 'database' parameter")
        if self.port is None:
            self.port = DEFAULT_PORTS[self.adapter]
        return self

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConnectionConfig:
        """Build a config from a plain mapping.

        Raises:
            ConfigurationError: If required parameters are missing or invalid
        """
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid connection configuration: {e}") from e


class DatabaseConfig(BaseModel):
    """Named connection configurations."""

    default: str | None = Field(default=None, description="Name of the default connection")
    connections: dict[str, ConnectionConfig] = Field(default_factory=dict)

    def get(self, name: str | None = None) -> ConnectionConfig:
        """Return the named connection, or the default one.

        Raises:
            ConfigurationError: If the connection is not configured
        """
        key = name or self.default
        if key is None:
            if len(self.connections) == 1:
                return next(iter(self.connections.values()))
            raise ConfigurationError("No connection name given and no default configured")
        if key not in self.connections:
            available = ", ".join(sorted(self.connections)) or "none"
            raise ConfigurationError(f"Unknown connection '{key}' (available: {available})")
        return self.connections[key]


class DatabaseConfigLoader:
    """Loads DatabaseConfig from a YAML file."""

    ENV_VAR = "SCHEMATA_CONFIG"

    def __init__(self, config_path: str | Path | None = None):
        self._config: DatabaseConfig | None = None
        self._explicit_path = Path(config_path) if config_path else None

    def get_config_path(self) -> Path | None:
        """Determine config file path using priority order.

        Returns:
            Path to config file, or None if no file exists
        """
        if self._explicit_path:
            if self._explicit_path.exists():
                return self._explicit_path
            logger.warning(f"Explicit database config path does not exist: {self._explicit_path}")
            return None

        env_path_str = os.getenv(self.ENV_VAR)
        if env_path_str:
            env_path = Path(env_path_str).expanduser()
            if env_path.exists():
                return env_path
            logger.warning(f"{self.ENV_VAR} path does not exist: {env_path}")
            return None

        standard_path = Path.home() / ".schemata" / "database.yml"
        if standard_path.exists():
            return standard_path

        return None

    def load_config(self) -> DatabaseConfig:
        """Load and validate the configuration, caching the result.

        Raises:
            ConfigurationError: If no file is found or it fails validation
        """
        if self._config is not None:
            return self._config

        config_path = self.get_config_path()
        if config_path is None:
            raise ConfigurationError("No database configuration file found")

        logger.info(f"Loading database config from: {config_path}")

        try:
            with open(config_path, encoding="utf-8") as f:
                raw_config = yaml.safe_load(f)
            if not isinstance(raw_config, dict):
                raise ValueError("Config file must contain a YAML dictionary")
            config = DatabaseConfig.model_validate(raw_config)
        except (yaml.YAMLError, ValueError) as e:
            raise ConfigurationError(f"Failed to load database config from {config_path}: {e}") from e

        logger.info(f"Loaded database config: {len(config.connections)} connections")
        self._config = config
        return config
