"""Tests for CrudConfig and DatabaseConfig."""

from pathlib import Path

import pytest

from crudforge.config import CrudConfig
from crudforge.persistence.config import DatabaseConfig, create_engine_from_config

_ENV_VARS = (
    "CRUDFORGE_SCHEMA_PATH",
    "CRUDFORGE_CACHE_ENABLED",
    "CRUDFORGE_CACHE_TTL",
    "CRUDFORGE_DEFAULT_PAGE_SIZE",
    "CRUDFORGE_MAX_PAGE_SIZE",
    "CRUDFORGE_DEBUG_MODE",
    "CRUDFORGE_DB_PATH",
    "DATABASE_URL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestCrudConfig:
    def test_defaults(self):
        config = CrudConfig.from_env()
        assert config.schema_path == Path("schema") / "crud6"
        assert config.cache_enabled is False
        assert config.default_page_size == 25
        assert config.max_page_size == 100
        assert config.database_url == "sqlite:///crudforge.db"

    def test_base_path(self, tmp_path):
        assert CrudConfig.from_env(tmp_path).schema_path == tmp_path / "schema" / "crud6"

    def test_env_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("CRUDFORGE_SCHEMA_PATH", str(tmp_path))
        monkeypatch.setenv("CRUDFORGE_CACHE_ENABLED", "yes")
        monkeypatch.setenv("CRUDFORGE_CACHE_TTL", "60")
        monkeypatch.setenv("CRUDFORGE_DEBUG_MODE", "1")
        config = CrudConfig.from_env()
        assert config.schema_path == tmp_path
        assert config.cache_enabled is True
        assert config.cache_ttl == 60
        assert config.debug_mode is True

    def test_default_page_size_clamped_to_max(self, monkeypatch):
        monkeypatch.setenv("CRUDFORGE_MAX_PAGE_SIZE", "50")
        monkeypatch.setenv("CRUDFORGE_DEFAULT_PAGE_SIZE", "80")
        config = CrudConfig.from_env()
        assert config.max_page_size == 50
        assert config.default_page_size == 50

    def test_bad_integer(self, monkeypatch):
        monkeypatch.setenv("CRUDFORGE_CACHE_TTL", "soon")
        with pytest.raises(ValueError, match="CRUDFORGE_CACHE_TTL"):
            CrudConfig.from_env()


class TestDatabaseConfig:
    def test_database_url_wins(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@localhost/db")
        monkeypatch.setenv("CRUDFORGE_DB_PATH", "/tmp/x.db")
        config = DatabaseConfig.from_env()
        assert config.is_postgresql
        assert config.sqlalchemy_url == "postgresql+psycopg://u:p@localhost/db"

    def test_db_path(self, monkeypatch):
        monkeypatch.setenv("CRUDFORGE_DB_PATH", "/tmp/x.db")
        assert DatabaseConfig.from_env().url == "sqlite:////tmp/x.db"

    def test_base_path_default(self, tmp_path):
        assert DatabaseConfig.from_env(tmp_path).url == f"sqlite:///{tmp_path / 'data' / 'crudforge.db'}"

    @pytest.mark.parametrize("url", ["sqlite://", "sqlite:///:memory:"])
    def test_memory(self, url):
        assert DatabaseConfig(url=url).is_memory

    def test_unsupported_scheme(self):
        with pytest.raises(ValueError, match="Unsupported"):
            create_engine_from_config(DatabaseConfig(url="mysql://localhost/db"))

    def test_postgres_alias(self):
        config = DatabaseConfig(url="postgres://u:p@localhost/db")
        assert config.is_postgresql
        assert config.sqlalchemy_url == "postgresql+psycopg://u:p@localhost/db"

    def test_explicit_driver_kept(self):
        config = DatabaseConfig(url="postgresql+psycopg2://u:p@localhost/db")
        assert config.sqlalchemy_url == "postgresql+psycopg2://u:p@localhost/db"

    def test_sqlite_file_is_not_memory(self):
        config = DatabaseConfig(url="sqlite:////tmp/x.db")
        assert config.is_sqlite
        assert not config.is_memory

    def test_invalid_url(self):
        with pytest.raises(ValueError, match="Invalid database URL"):
            create_engine_from_config(DatabaseConfig(url="not a url"))
