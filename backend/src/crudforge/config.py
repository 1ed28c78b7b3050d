"""Runtime configuration for the CRUD engine."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from crudforge.persistence.config import DatabaseConfig
from crudforge.persistence.query import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from crudforge.schema.cache import DEFAULT_TTL

_TRUE_VALUES = ("1", "true", "yes", "on")


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in _TRUE_VALUES


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got '{value}'") from e


@dataclass
class CrudConfig:
    """Engine configuration.

    Attributes:
        schema_path:       Directory holding one schema document per model.
        database:          Record-store connection configuration.
        cache_enabled:     Use the persistent cache backend, when one is given.
        cache_ttl:         Backend entry lifetime in seconds.
        default_page_size: Page size when a request gives none (or an invalid one).
        max_page_size:     Upper bound on any requested page size.
        debug_mode:        Verbose logging of schema and query handling.
    """

    schema_path: Path
    database: DatabaseConfig = field(default_factory=lambda: DatabaseConfig(url="sqlite:///crudforge.db"))
    cache_enabled: bool = False
    cache_ttl: int = DEFAULT_TTL
    default_page_size: int = DEFAULT_PAGE_SIZE
    max_page_size: int = MAX_PAGE_SIZE
    debug_mode: bool = False

    @property
    def database_url(self) -> str:
        return self.database.url

    @classmethod
    def from_env(cls, base_path: Path | None = None) -> CrudConfig:
        """Create config from environment variables.

        CRUDFORGE_SCHEMA_PATH defaults to {base_path}/schema/crud6, or
        schema/crud6 relative to the working directory. The database URL is
        resolved by ``DatabaseConfig.from_env``.
        """
        schema_path = os.environ.get("CRUDFORGE_SCHEMA_PATH")
        if schema_path:
            path = Path(schema_path)
        elif base_path:
            path = base_path / "schema" / "crud6"
        else:
            path = Path("schema") / "crud6"

        max_page_size = max(_env_int("CRUDFORGE_MAX_PAGE_SIZE", MAX_PAGE_SIZE), 1)
        default_page_size = _env_int("CRUDFORGE_DEFAULT_PAGE_SIZE", DEFAULT_PAGE_SIZE)

        return cls(
            schema_path=path,
            database=DatabaseConfig.from_env(),
            cache_enabled=_env_bool("CRUDFORGE_CACHE_ENABLED", False),
            cache_ttl=_env_int("CRUDFORGE_CACHE_TTL", DEFAULT_TTL),
            default_page_size=min(max(default_page_size, 1), max_page_size),
            max_page_size=max_page_size,
            debug_mode=_env_bool("CRUDFORGE_DEBUG_MODE", False),
        )
