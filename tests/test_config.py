"""Tests for connection configuration, the YAML loader and the adapter factory."""

from __future__ import annotations

from pathlib import Path

import pytest
from fake_backend import FakeBackend
from pydantic import ValidationError

from schemata import connect, schema_for
from schemata.backends import Dialect, SqliteBackend
from schemata.config import ConnectionConfig, DatabaseConfig, DatabaseConfigLoader
from schemata.errors import ConfigurationError
from schemata.schema import MemoryCache, OracleSchema, PostgresqlSchema, SqliteSchema

CONFIG_YAML = """\
default: development

connections:
  development:
    adapter: sqlite
    database: ":memory:"

  production:
    adapter: postgresql
    host: db.internal
    database: app
    username: app
    search_path: app,public
"""


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "database.yml"
    path.write_text(CONFIG_YAML)
    return path


# ============================================================================
# ConnectionConfig
# ============================================================================


class TestConnectionConfig:
    """Tests for per-adapter validation."""

    def test_sqlite(self) -> None:
        config = ConnectionConfig(adapter="sqlite", database=":memory:")
        assert config.port is None
        assert config.timeout == 30
        assert config.autoincrement_table == "schema_autoincrement"

    def test_sqlite_requires_database(self) -> None:
        with pytest.raises(ValidationError, match="database"):
            ConnectionConfig(adapter="sqlite")

    @pytest.mark.parametrize(
        ("adapter", "port"),
        [("postgresql", 5432), ("mysql", 3306), ("oracle", 1521)],
    )
    def test_default_ports(self, adapter: str, port: int) -> None:
        config = ConnectionConfig(adapter=adapter, host="db", database="app")
        assert config.port == port

    def test_server_requires_host(self) -> None:
        with pytest.raises(ValidationError, match="host"):
            ConnectionConfig(adapter="mysql", database="app")

    def test_oracle_dsn(self) -> None:
        config = ConnectionConfig(adapter="oracle", dsn="db/XEPDB1")
        assert config.host is None

    def test_port_validation(self) -> None:
        assert ConnectionConfig(adapter="mysql", host="db", database="app", port="3307").port == 3307
        with pytest.raises(ValidationError):
            ConnectionConfig(adapter="mysql", host="db", database="app", port=70000)

    def test_unknown_adapter(self) -> None:
        with pytest.raises(ValidationError):
            ConnectionConfig(adapter="mssql", host="db", database="app")

    def test_from_dict(self) -> None:
        config = ConnectionConfig.from_dict({"adapter": "sqlite", "database": "app.db"})
        assert config.database == "app.db"
        with pytest.raises(ConfigurationError):
            ConnectionConfig.from_dict({"adapter": "postgresql"})


class TestDatabaseConfig:
    """Tests for named connection lookup."""

    def test_default_and_named(self) -> None:
        config = DatabaseConfig(
            default="dev",
            connections={
                "dev": ConnectionConfig(adapter="sqlite", database="dev.db"),
                "test": ConnectionConfig(adapter="sqlite", database="test.db"),
            },
        )
        assert config.get().database == "dev.db"
        assert config.get("test").database == "test.db"
        with pytest.raises(ConfigurationError, match="available: dev, test"):
            config.get("prod")

    def test_single_connection_without_default(self) -> None:
        config = DatabaseConfig(
            connections={"only": ConnectionConfig(adapter="sqlite", database="a.db")}
        )
        assert config.get().database == "a.db"

    def test_no_default(self) -> None:
        with pytest.raises(ConfigurationError):
            DatabaseConfig().get()


# ============================================================================
# DatabaseConfigLoader
# ============================================================================


class TestDatabaseConfigLoader:
    """Tests for config file discovery and parsing."""

    def test_explicit_path(self, config_file: Path) -> None:
        config = DatabaseConfigLoader(config_file).load_config()
        assert config.default == "development"
        assert config.get("production").port == 5432
        assert config.get("production").search_path == "app,public"

    def test_result_is_cached(self, config_file: Path) -> None:
        loader = DatabaseConfigLoader(config_file)
        first = loader.load_config()
        config_file.write_text("not: [valid")
        assert loader.load_config() is first

    def test_env_var(self, config_file: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(DatabaseConfigLoader.ENV_VAR, str(config_file))
        assert DatabaseConfigLoader().get_config_path() == config_file

    def test_standard_location(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv(DatabaseConfigLoader.ENV_VAR, raising=False)
        monkeypatch.setenv("HOME", str(tmp_path))
        path = tmp_path / ".schemata" / "database.yml"
        path.parent.mkdir()
        path.write_text(CONFIG_YAML)
        assert DatabaseConfigLoader().get_config_path() == path

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="No database configuration"):
            DatabaseConfigLoader(tmp_path / "missing.yml").load_config()

    @pytest.mark.parametrize(
        "content",
        [
            "- just\n- a list\n",
            "connections: [unclosed\n",
            "connections:\n  bad:\n    adapter: sqlite\n",
        ],
    )
    def test_invalid_file(self, tmp_path: Path, content: str) -> None:
        path = tmp_path / "database.yml"
        path.write_text(content)
        with pytest.raises(ConfigurationError):
            DatabaseConfigLoader(path).load_config()


# ============================================================================
# Factory
# ============================================================================


class TestFactory:
    """Tests for building adapters from configuration."""

    def test_connect_sqlite(self) -> None:
        schema = connect({"adapter": "sqlite", "database": ":memory:", "identifier_length": 40})
        try:
            assert isinstance(schema, SqliteSchema)
            assert isinstance(schema.backend, SqliteBackend)
            assert schema.identifier_length == 40
            assert schema.tables() == []
        finally:
            schema.backend.disconnect()

    def test_connect_invalid(self) -> None:
        with pytest.raises(ConfigurationError):
            connect({"adapter": "sqlite"})

    def test_schema_for_dialect(self) -> None:
        cache = MemoryCache()
        schema = schema_for(FakeBackend(Dialect.POSTGRESQL), cache=cache)
        assert isinstance(schema, PostgresqlSchema)
        assert schema.cache is cache
        assert schema.identifier_length == 63

    def test_schema_for_oracle_bookkeeping_table(self) -> None:
        schema = schema_for(FakeBackend(Dialect.ORACLE), autoincrement_table="app_autoincrement")
        assert isinstance(schema, OracleSchema)
        assert schema.autoincrement_table == "app_autoincrement"
        assert schema.identifier_length == 30

    def test_sqlite_backend_without_path(self) -> None:
        """An unvalidated config without a path is refused by the backend itself."""
        config = ConnectionConfig.model_construct(adapter="sqlite", database=None)
        backend = SqliteBackend()
        with pytest.raises(ConfigurationError, match="database"):
            backend.connect(config)
        assert not backend.is_connected
