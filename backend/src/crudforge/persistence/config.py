"""Database configuration and engine factory."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.exc import ArgumentError
from sqlalchemy.pool import StaticPool

DEFAULT_DB_FILE = "crudforge.db"

# Backend name -> the driver used when the URL names none
_DEFAULT_DRIVERS = {
    "sqlite": None,
    "postgresql": "psycopg",
}

# Backend names accepted as spellings of a supported backend
_BACKEND_ALIASES = {"postgres": "postgresql"}


@dataclass
class DatabaseConfig:
    """Where records are read from: a SQLAlchemy-style database URL.

    Only sqlite and postgresql backends are served.
    """

    url: str

    @classmethod
    def from_env(cls, base_path: Path | None = None) -> DatabaseConfig:
        """Resolve the record store from the environment.

        ``DATABASE_URL`` is used as-is when set. Otherwise the store is a
        sqlite file: ``CRUDFORGE_DB_PATH`` if set, else ``data/crudforge.db``
        under *base_path*, else ``crudforge.db`` in the working directory.
        """
        url = os.environ.get("DATABASE_URL")
        if url:
            return cls(url=url)

        db_file = os.environ.get("CRUDFORGE_DB_PATH")
        if not db_file:
            db_file = str(base_path / "data" / DEFAULT_DB_FILE) if base_path else DEFAULT_DB_FILE
        return cls(url=f"sqlite:///{db_file}")

    @property
    def parsed_url(self) -> URL:
        """The URL parsed by SQLAlchemy.

        Raises:
            ValueError: If the URL cannot be parsed.
        """
        try:
            return make_url(self.url)
        except ArgumentError as exc:
            raise ValueError(f"Invalid database URL: {self.url!r}") from exc

    @property
    def backend(self) -> str:
        name = self.parsed_url.get_backend_name()
        return _BACKEND_ALIASES.get(name, name)

    @property
    def is_sqlite(self) -> bool:
        return self.backend == "sqlite"

    @property
    def is_postgresql(self) -> bool:
        return self.backend == "postgresql"

    @property
    def is_memory(self) -> bool:
        return self.is_sqlite and self.parsed_url.database in (None, "", ":memory:")

    @property
    def sqlalchemy_url(self) -> str:
        """The URL with the backend's default driver filled in.

        ``postgresql://`` and ``postgres://`` become ``postgresql+psycopg://``;
        a URL that already names a driver keeps it.
        """
        url = self.parsed_url
        backend = self.backend
        driver = _DEFAULT_DRIVERS.get(backend)
        if driver and "+" not in url.drivername:
            url = url.set(drivername=f"{backend}+{driver}")
        return url.render_as_string(hide_password=False)


def create_engine_from_config(config: DatabaseConfig, *, echo: bool = False) -> Engine:
    """Create the SQLAlchemy engine used for listing and record queries.

    Raises:
        ValueError: For unparseable URLs and unsupported backends.
    """
    if config.backend not in _DEFAULT_DRIVERS:
        raise ValueError(f"Unsupported database backend '{config.backend}': {config.url}")

    if config.is_memory:
        # One shared connection, or each checkout would see an empty database
        return create_engine(
            "sqlite://",
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    options = {"pool_pre_ping": True} if config.is_postgresql else {}
    return create_engine(config.sqlalchemy_url, echo=echo, **options)
