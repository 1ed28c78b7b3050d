"""
service.py — composition root of the CRUD engine.

Pipeline per model: load -> validate -> normalize -> add actions -> bind ->
cache. Listing, related listing, and record reads run on top of the bound
schema.

Usage:
    from crudforge.config import CrudConfig
    from crudforge.service import CrudService

    service = CrudService(CrudConfig.from_env())
    result = service.list_records("users", {"sorts": {"name": "asc"}, "size": 10})
    result.to_dict()   # {"count": ..., "count_filtered": ..., "rows": [...]}
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable, Mapping
from typing import Any

from sqlalchemy.engine import Engine

from crudforge.config import CrudConfig
from crudforge.core.types import FieldKind
from crudforge.errors import (
    InvalidSchemaError,
    MissingRelationshipConfigError,
    RecordNotFoundError,
    SchemaNotFoundError,
)
from crudforge.persistence.config import create_engine_from_config
from crudforge.persistence.query import (
    ListingParams,
    ListingQuery,
    ListingResult,
    cast_value,
    fetch_record,
)
from crudforge.persistence.relationships import RelationshipResolver
from crudforge.schema.actions import ActionManager
from crudforge.schema.cache import CacheBackend, SchemaCache
from crudforge.schema.filter import ContextFilter
from crudforge.schema.loader import SchemaLoader
from crudforge.schema.normalizer import SchemaNormalizer
from crudforge.schema.types import Context, SchemaDocument
from crudforge.schema.validator import SchemaValidator

logger = logging.getLogger(__name__)


class CrudService:
    """Schema-driven record access for any model with a schema document.

    Args:
        config:         Engine configuration.
        engine:         SQLAlchemy engine; created from ``config.database`` on first use.
        cache_backend:  Persistent schema cache, used when ``config.cache_enabled``.
        has_permission: Permission check for action visibility. When omitted,
                        actions are filtered by scope only.
    """

    def __init__(
        self,
        config: CrudConfig,
        engine: Engine | None = None,
        cache_backend: CacheBackend | None = None,
        has_permission: Callable[[str], bool] | None = None,
    ):
        self.config = config
        self._engine = engine
        self._has_permission = has_permission

        self.loader = SchemaLoader(config.schema_path)
        self.validator = SchemaValidator()
        self.normalizer = SchemaNormalizer()
        self.action_manager = ActionManager(self.validator)
        self.context_filter = ContextFilter()
        self.cache = SchemaCache(cache_backend, enabled=config.cache_enabled, ttl=config.cache_ttl)

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            self._engine = create_engine_from_config(self.config.database, echo=self.config.debug_mode)
        return self._engine

    # ------------------------------------------------------------------
    # Schemas
    # ------------------------------------------------------------------

    def get_schema(self, model: str, namespace: str | None = None) -> SchemaDocument:
        """Return the bound schema for a model.

        Raises:
            SchemaNotFoundError: No schema document exists for the model.
            InvalidSchemaError: The document fails validation.
        """
        return self.cache.get_or_load(model, namespace, lambda: self._build_schema(model, namespace))

    def get_context_schema(
        self,
        model: str,
        contexts: str | list[str] | None,
        namespace: str | None = None,
    ) -> dict[str, Any]:
        """Return the view of a model's schema for one or more contexts."""
        schema = self.get_schema(model, namespace)
        return self.context_filter.filter(schema.to_dict(), contexts)

    def get_actions_for_scope(
        self, model: str, scope: str, namespace: str | None = None
    ) -> list[dict[str, Any]]:
        """Return the actions to render in a scope ("list" or "detail")."""
        schema = self.get_schema(model, namespace)
        actions = self.action_manager.filter_by_scope(schema.to_dict().get("actions", []), scope)
        if self._has_permission is not None:
            actions = self.action_manager.filter_by_permission(actions, self._has_permission)
        return copy.deepcopy(actions)

    def get_writable_columns(
        self, model: str, operation: str = "create", namespace: str | None = None
    ) -> list[str]:
        """Columns an insert ("create") or update ("update") may write."""
        return self.get_schema(model, namespace).writable_columns(operation)

    def clear_cache(self, model: str | None = None, namespace: str | None = None) -> None:
        if model is None:
            self.cache.clear_all()
        else:
            self.cache.clear(model, namespace)

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def list_records(
        self,
        model: str,
        params: ListingParams | Mapping[str, Any] | None = None,
        namespace: str | None = None,
    ) -> ListingResult:
        """List one page of a model's records."""
        schema = self.get_schema(model, namespace)
        query = ListingQuery.from_schema(schema)
        return query.execute(self.engine, self._params(params))

    def list_related_records(
        self,
        model: str,
        record_id: Any,
        relation_name: str,
        params: ListingParams | Mapping[str, Any] | None = None,
        namespace: str | None = None,
    ) -> ListingResult:
        """List one page of the records related to a parent record.

        Raises:
            MissingRelationshipConfigError: The relation is undeclared or has
                no usable relationship definition.
        """
        parent = self.get_schema(model, namespace)
        resolver = RelationshipResolver(lambda name: self.get_schema(name, namespace))
        try:
            plan = resolver.resolve(parent, relation_name, _coerce_id(parent, record_id))
        except MissingRelationshipConfigError as e:
            logger.warning("%s", e)
            raise

        related = self.get_schema(plan.related_model, namespace)
        query = ListingQuery.from_schema(related, listable=resolver.related_listable(plan, related))
        return query.execute(self.engine, self._params(params), plan)

    def get_record(self, model: str, record_id: Any, namespace: str | None = None) -> dict[str, Any]:
        """Fetch one record, projected to its detail-context columns.

        Raises:
            RecordNotFoundError: No such record (or it is soft-deleted).
        """
        schema = self.get_schema(model, namespace)
        columns = [
            f.name
            for f in schema.fields.values()
            if f.persisted and f.type != FieldKind.PASSWORD and Context.DETAIL.value in f.show_in
        ]
        record = fetch_record(self.engine, schema, _coerce_id(schema, record_id), columns)
        if record is None:
            raise RecordNotFoundError(model, record_id)
        return record

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _build_schema(self, model: str, namespace: str | None) -> SchemaDocument:
        try:
            raw = self.loader.load(model, namespace)
            self.validator.validate(raw, model)
        except (SchemaNotFoundError, InvalidSchemaError) as e:
            logger.warning("%s", e)
            raise

        normalized = self.normalizer.normalize(raw)
        return SchemaDocument.bind(self.action_manager.process(normalized))

    def _params(self, params: ListingParams | Mapping[str, Any] | None) -> ListingParams:
        if isinstance(params, ListingParams):
            return params
        return ListingParams.from_mapping(
            params,
            default_size=self.config.default_page_size,
            max_size=self.config.max_page_size,
        )


def _coerce_id(schema: SchemaDocument, record_id: Any) -> Any:
    """Cast a caller-supplied id (often a string) to the primary key's type."""
    pk = schema.fields.get(schema.primary_key)
    if pk is None or pk.cast not in ("int", "float"):
        return record_id
    try:
        return cast_value(record_id, pk.cast)
    except (TypeError, ValueError) as e:
        raise RecordNotFoundError(schema.model, record_id) from e
