"""
schema/cache.py — memoization of normalized schema documents.

Two tiers:

- An in-memory map, read without locking and replaced wholesale on every
  write (copy-on-write), so concurrent readers always see a complete map.
- An optional persistent ``CacheBackend`` (get/set/delete), consulted only
  when enabled. Backend failures are logged and treated as a miss.
"""

import logging
import threading
import time
from typing import Any, Protocol

from crudforge.schema.types import SchemaDocument

logger = logging.getLogger(__name__)

BACKEND_KEY_PREFIX = "crudforge_schema_"
DEFAULT_TTL = 3600


class CacheBackend(Protocol):
    """Persistent cache collaborator."""

    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any, ttl: int | None = None) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryCacheBackend:
    """Process-local ``CacheBackend`` with per-entry expiry."""

    def __init__(self, clock=time.monotonic):
        self._entries: dict[str, tuple[Any, float | None]] = {}
        self._clock = clock
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at is not None and self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        expires_at = self._clock() + ttl if ttl else None
        with self._lock:
            self._entries[key] = (value, expires_at)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._entries)


def cache_key(model: str, namespace: str | None = None) -> str:
    """Cache key for a model and its optional namespace."""
    return f"{model}:{namespace or 'default'}"


class SchemaCache:
    """Read-mostly cache of bound schema documents.

    The persistent backend stores the normalized mapping; the in-memory tier
    stores the bound ``SchemaDocument``.
    """

    def __init__(
        self,
        backend: CacheBackend | None = None,
        *,
        enabled: bool = False,
        ttl: int = DEFAULT_TTL,
    ):
        self._memory: dict[str, SchemaDocument] = {}
        self._write_lock = threading.Lock()
        self._backend = backend
        self._backend_enabled = enabled and backend is not None
        self._ttl = ttl
        # Keys written to the backend, so clear_all() can remove them
        self._backend_keys: set[str] = set()

    @property
    def backend_enabled(self) -> bool:
        return self._backend_enabled

    def get(self, model: str, namespace: str | None = None) -> SchemaDocument | None:
        key = cache_key(model, namespace)
        schema = self._memory.get(key)
        if schema is not None:
            logger.debug("Schema cache hit (memory): %s", key)
            return schema

        if not self._backend_enabled:
            logger.debug("Schema cache miss: %s", key)
            return None

        data = self._backend_get(key)
        if data is None:
            logger.debug("Schema cache miss: %s", key)
            return None

        logger.debug("Schema cache hit (backend): %s", key)
        schema = SchemaDocument.bind(data)
        self._store_memory(key, schema)
        return schema

    def set(self, model: str, schema: SchemaDocument, namespace: str | None = None) -> None:
        key = cache_key(model, namespace)
        self._store_memory(key, schema)
        if self._backend_enabled:
            self._backend_set(key, schema.to_dict())

    def get_or_load(self, model: str, namespace: str | None, loader) -> SchemaDocument:
        """Read-through: return the cached schema or build, store, and return it."""
        schema = self.get(model, namespace)
        if schema is None:
            schema = loader()
            self.set(model, schema, namespace)
        return schema

    def clear(self, model: str, namespace: str | None = None) -> None:
        key = cache_key(model, namespace)
        with self._write_lock:
            memory = dict(self._memory)
            memory.pop(key, None)
            self._memory = memory
        if self._backend_enabled:
            self._backend_delete(key)
        logger.debug("Cleared schema cache entry: %s", key)

    def clear_all(self) -> None:
        with self._write_lock:
            self._memory = {}
            backend_keys, self._backend_keys = self._backend_keys, set()
        if self._backend_enabled:
            for key in backend_keys:
                self._backend_delete(key)
        logger.debug("Cleared all schema cache entries")

    def __contains__(self, key: str) -> bool:
        return key in self._memory

    def __len__(self) -> int:
        return len(self._memory)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _store_memory(self, key: str, schema: SchemaDocument) -> None:
        with self._write_lock:
            memory = dict(self._memory)
            memory[key] = schema
            self._memory = memory

    def _backend_get(self, key: str) -> dict[str, Any] | None:
        try:
            data = self._backend.get(BACKEND_KEY_PREFIX + key)
        except Exception:
            logger.warning("Schema cache backend get failed for %s", key, exc_info=True)
            return None
        return data if isinstance(data, dict) else None

    def _backend_set(self, key: str, data: dict[str, Any]) -> None:
        try:
            self._backend.set(BACKEND_KEY_PREFIX + key, data, self._ttl)
        except Exception:
            logger.warning("Schema cache backend set failed for %s", key, exc_info=True)
            return
        with self._write_lock:
            self._backend_keys = self._backend_keys | {key}

    def _backend_delete(self, key: str) -> None:
        try:
            self._backend.delete(BACKEND_KEY_PREFIX + key)
        except Exception:
            logger.warning("Schema cache backend delete failed for %s", key, exc_info=True)
