"""Error taxonomy for crudforge.

Schema-pipeline errors indicate a configuration defect and are never retried.
Store errors raised by SQLAlchemy propagate unmodified.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from crudforge.schema.validator import ValidationIssue


class CrudError(Exception):
    """Base exception for all crudforge errors."""

    def __init__(self, message: str, *, model: str | None = None, key: str | None = None):
        super().__init__(message)
        self.message = message
        self.model = model
        self.key = key


class SchemaNotFoundError(CrudError, LookupError):
    """Raised when no schema document exists for a model."""

    def __init__(self, model: str, namespace: str | None = None):
        where = f" (namespace '{namespace}')" if namespace else ""
        super().__init__(f"Schema not found for model '{model}'{where}", model=model)
        self.namespace = namespace


class RecordNotFoundError(CrudError, LookupError):
    """Raised when a record does not exist in the backing table."""

    def __init__(self, model: str, record_id: object):
        super().__init__(f"Record '{record_id}' not found for model '{model}'", model=model)
        self.record_id = record_id


class InvalidSchemaError(CrudError, ValueError):
    """Raised when a schema document fails structural validation."""

    def __init__(self, model: str, issues: list[ValidationIssue]):
        self.issues = list(issues)
        first = self.issues[0] if self.issues else None
        summary = "; ".join(str(i) for i in self.issues) or "invalid schema"
        super().__init__(
            f"Invalid schema for model '{model}': {summary}",
            model=model,
            key=first.path if first else None,
        )


class MissingRelationshipConfigError(CrudError):
    """Raised when a requested relation has no usable relationship definition."""

    def __init__(self, model: str, relation: str, reason: str = ""):
        detail = f": {reason}" if reason else ""
        super().__init__(
            f"Model '{model}' has no relationship configuration for '{relation}'{detail}",
            model=model,
            key=relation,
        )
        self.relation = relation


@dataclass(frozen=True)
class RejectedField:
    """A sort, filter, or search request dropped because the field is not opted in."""

    kind: str  # "sort" | "filter" | "search"
    field: str
    reason: str = "not allowed"

    def __str__(self) -> str:
        return f"{self.kind}:{self.field} ({self.reason})"
