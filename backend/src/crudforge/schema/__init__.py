"""Schema pipeline - load, validate, normalize, cache, and project schema documents.

Usage:
    from crudforge.schema import SchemaLoader, SchemaValidator, SchemaNormalizer

    raw = SchemaLoader(schema_path).load("users")
    SchemaValidator().validate(raw, "users")
    schema = SchemaDocument.bind(SchemaNormalizer().normalize(raw))
"""

from crudforge.schema.validator import SchemaValidator, ValidationIssue, validate_schema_dir
from crudforge.schema.actions import ActionManager
from crudforge.schema.cache import CacheBackend, InMemoryCacheBackend, SchemaCache
from crudforge.schema.filter import ContextFilter
from crudforge.schema.loader import SchemaLoader
from crudforge.schema.normalizer import SchemaNormalizer
from crudforge.schema.types import SchemaDocument

__all__ = [
    "ActionManager",
    "CacheBackend",
    "ContextFilter",
    "InMemoryCacheBackend",
    "SchemaCache",
    "SchemaDocument",
    "SchemaLoader",
    "SchemaNormalizer",
    "SchemaValidator",
    "ValidationIssue",
    "validate_schema_dir",
]
