"""
schema/validator.py — structural validation of schema documents.

Two passes:

1. JSON Schema (Draft 2020-12) against the packaged ``model.schema.json``.
2. Semantic checks the JSON Schema cannot express: model name match, action
   scopes, many-to-many completeness, detail/relationship consistency.

Usage:
    from crudforge.schema.validator import SchemaValidator

    SchemaValidator().validate(raw_schema, "users")   # raises InvalidSchemaError

Detail entries that name a relation with no relationship definition are
reported as warnings: the defect is fatal only for requests of that relation.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError

from crudforge.core.types import is_known_type, known_type_names
from crudforge.errors import InvalidSchemaError

logger = logging.getLogger(__name__)

_SCHEMAS_DIR = Path(__file__).parent / "schemas"
_MODEL_SCHEMA = "model.schema.json"

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Errors raised by read_schema_document for a malformed file
PARSE_ERRORS = (json.JSONDecodeError, yaml.YAMLError)

MANY_TO_MANY_KEYS = ("pivot_table", "foreign_key", "related_key")
PIVOT_RELATIONSHIP_TYPES = ("many_to_many", "belongs_to_many_through")
THROUGH_EXPLICIT_KEYS = (
    "first_pivot_table",
    "first_foreign_key",
    "first_related_key",
    "second_pivot_table",
    "second_foreign_key",
    "second_related_key",
)


# ---------------------------------------------------------------------------
# Public data types
# ---------------------------------------------------------------------------


@dataclass
class ValidationIssue:
    """A single validation finding for a schema document."""

    source: str              # model name or file path
    message: str
    path: str = ""           # location within the document, e.g. "actions[2]/scope"
    severity: str = "error"  # "error" | "warning"

    def __str__(self) -> str:
        loc = f" at {self.path}" if self.path else ""
        return f"[{self.severity.upper()}] {self.source}{loc}: {self.message}"


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def _load_model_schema() -> dict[str, Any]:
    with (_SCHEMAS_DIR / _MODEL_SCHEMA).open() as fh:
        return json.load(fh)


@lru_cache(maxsize=1)
def _structural_validator() -> Draft202012Validator:
    return Draft202012Validator(_load_model_schema())


def _json_path(error: ValidationError) -> str:
    """Convert a jsonschema ValidationError path to a readable string."""
    parts = []
    for p in error.absolute_path:
        if isinstance(p, int):
            parts.append(f"[{p}]")
        else:
            parts.append(str(p))
    return "/".join(parts).replace("/[", "[")


# ---------------------------------------------------------------------------
# Validator
# ---------------------------------------------------------------------------


class SchemaValidator:
    """Validates raw schema documents before normalization."""

    def validate(self, schema: dict[str, Any], model: str) -> None:
        """Validate a schema, raising on any error-severity issue.

        Raises:
            InvalidSchemaError: With every error found, not only the first.
        """
        issues = self.collect_issues(schema, model)
        for issue in issues:
            if issue.severity == "warning":
                logger.warning("Schema warning: %s", issue)

        errors = [i for i in issues if i.severity == "error"]
        if errors:
            raise InvalidSchemaError(model, errors)

    def collect_issues(self, schema: dict[str, Any], model: str) -> list[ValidationIssue]:
        """Return all structural and semantic issues for a schema."""
        issues = [
            ValidationIssue(source=model, message=error.message, path=_json_path(error))
            for error in sorted(
                _structural_validator().iter_errors(schema), key=lambda e: list(e.path)
            )
        ]
        # Semantic checks assume the basic shape is sound
        if not isinstance(schema.get("fields"), dict):
            return issues

        issues.extend(self._check_model(schema, model))
        issues.extend(self._check_fields(schema, model))
        issues.extend(self._check_actions(schema, model))
        issues.extend(self._check_relationships(schema, model))
        issues.extend(self._check_details(schema, model))
        return issues

    def has_permission(self, schema: dict[str, Any], operation: str) -> bool:
        """Check whether the schema declares a permission key for an operation."""
        permissions = schema.get("permissions") or {}
        return bool(permissions.get(operation))

    # ------------------------------------------------------------------
    # Semantic checks
    # ------------------------------------------------------------------

    def _check_model(self, schema: dict, model: str) -> list[ValidationIssue]:
        issues = []
        declared = schema.get("model")
        if isinstance(declared, str) and declared != model:
            issues.append(
                ValidationIssue(
                    source=model,
                    path="model",
                    message=f"Schema model name '{declared}' does not match requested model '{model}'",
                )
            )
        pk = schema.get("primary_key", "id")
        if isinstance(pk, str) and pk not in schema["fields"]:
            issues.append(
                ValidationIssue(
                    source=model,
                    path="primary_key",
                    message=f"Primary key '{pk}' is not a declared field",
                    severity="warning",
                )
            )
        for name in (schema.get("default_sort") or {}):
            if name not in schema["fields"]:
                issues.append(
                    ValidationIssue(
                        source=model,
                        path=f"default_sort/{name}",
                        message=f"Default sort references unknown field '{name}'",
                    )
                )
        return issues

    def _check_fields(self, schema: dict, model: str) -> list[ValidationIssue]:
        issues = []
        for name, spec in schema["fields"].items():
            if not isinstance(spec, dict):
                continue
            field_type = spec.get("type", "string")
            if isinstance(field_type, str) and not is_known_type(field_type):
                issues.append(
                    ValidationIssue(
                        source=model,
                        path=f"fields/{name}/type",
                        message=(
                            f"Unknown field type '{field_type}' "
                            f"(expected one of: {', '.join(known_type_names())})"
                        ),
                    )
                )
        return issues

    def _check_actions(self, schema: dict, model: str) -> list[ValidationIssue]:
        issues = []
        seen: set[str] = set()
        for i, action in enumerate(schema.get("actions") or []):
            if not isinstance(action, dict):
                continue
            key = action.get("key", "")
            if not action.get("scope"):
                issues.append(
                    ValidationIssue(
                        source=model,
                        path=f"actions[{i}]/scope",
                        message=f"Action '{key}' must declare an explicit scope",
                    )
                )
            if key in seen:
                issues.append(
                    ValidationIssue(
                        source=model,
                        path=f"actions[{i}]/key",
                        message=f"Duplicate action key '{key}'",
                    )
                )
            seen.add(key)
            if action.get("type") == "field_update":
                target = action.get("field")
                if not target or target not in schema["fields"]:
                    issues.append(
                        ValidationIssue(
                            source=model,
                            path=f"actions[{i}]/field",
                            message=f"Action '{key}' updates unknown field '{target}'",
                        )
                    )
        return issues

    def _check_relationships(self, schema: dict, model: str) -> list[ValidationIssue]:
        issues = []
        relationships = [r for r in (schema.get("relationships") or []) if isinstance(r, dict)]
        names = {r.get("name") for r in relationships}
        for i, rel in enumerate(relationships):
            name = rel.get("name", "")
            rel_type = rel.get("type", "many_to_many")
            if rel_type == "many_to_many":
                for key in MANY_TO_MANY_KEYS:
                    if not rel.get(key):
                        issues.append(
                            ValidationIssue(
                                source=model,
                                path=f"relationships[{i}]/{key}",
                                message=f"many_to_many relationship '{name}' is missing '{key}'",
                            )
                        )
            elif rel_type == "belongs_to_many_through":
                through = rel.get("through")
                if through:
                    if through not in names or through == name:
                        issues.append(
                            ValidationIssue(
                                source=model,
                                path=f"relationships[{i}]/through",
                                message=(
                                    f"Relationship '{name}' goes through '{through}', "
                                    "which is not another relationship of this schema"
                                ),
                            )
                        )
                else:
                    missing = [k for k in THROUGH_EXPLICIT_KEYS if not rel.get(k)]
                    if missing:
                        issues.append(
                            ValidationIssue(
                                source=model,
                                path=f"relationships[{i}]",
                                message=(
                                    f"belongs_to_many_through relationship '{name}' needs "
                                    f"'through' or explicit keys (missing: {', '.join(missing)})"
                                ),
                            )
                        )
            elif rel_type == "direct" and not rel.get("foreign_key"):
                issues.append(
                    ValidationIssue(
                        source=model,
                        path=f"relationships[{i}]/foreign_key",
                        message=f"direct relationship '{name}' is missing 'foreign_key'",
                    )
                )
        return issues

    def _check_details(self, schema: dict, model: str) -> list[ValidationIssue]:
        issues = []
        rel_types = {
            r.get("name"): r.get("type")
            for r in (schema.get("relationships") or [])
            if isinstance(r, dict)
        }
        for i, detail in enumerate(schema.get("details") or []):
            if not isinstance(detail, dict):
                continue
            related = detail.get("model", "")
            rel_type = rel_types.get(related)
            if "foreign_key" in detail:
                fk = detail["foreign_key"]
                if not isinstance(fk, str) or not _IDENTIFIER.match(fk):
                    issues.append(
                        ValidationIssue(
                            source=model,
                            path=f"details[{i}]/foreign_key",
                            message=(
                                f"Detail '{related}' foreign_key must be omitted or a "
                                "non-empty column name"
                            ),
                        )
                    )
                elif rel_type in PIVOT_RELATIONSHIP_TYPES:
                    issues.append(
                        ValidationIssue(
                            source=model,
                            path=f"details[{i}]/foreign_key",
                            message=(
                                f"Detail '{related}' sets foreign_key but relationship "
                                f"'{related}' is {rel_type}; drop the foreign_key to "
                                "query through the pivot table"
                            ),
                        )
                    )
            elif related not in rel_types:
                issues.append(
                    ValidationIssue(
                        source=model,
                        path=f"details[{i}]",
                        message=(
                            f"Detail '{related}' has no foreign_key and no relationship "
                            "named the same"
                        ),
                        severity="warning",
                    )
                )
            elif rel_type == "direct":
                issues.append(
                    ValidationIssue(
                        source=model,
                        path=f"details[{i}]",
                        message=(
                            f"Detail '{related}' has no foreign_key but relationship "
                            f"'{related}' is direct"
                        ),
                    )
                )
        return issues


# ---------------------------------------------------------------------------
# Directory validation
# ---------------------------------------------------------------------------


def read_schema_document(path: Path) -> Any:
    """Parse a schema file: ``.json`` with the json module, anything else as YAML.

    Returns ``None`` for an empty file.
    """
    text = path.read_text()
    if not text.strip():
        return None
    if path.suffix == ".json":
        return json.loads(text)
    return yaml.safe_load(text)


def validate_schema_file(path: Path, validator: SchemaValidator | None = None) -> list[ValidationIssue]:
    """Validate a single schema document file; the model name is the file stem."""
    validator = validator or SchemaValidator()
    try:
        raw = read_schema_document(path)
    except PARSE_ERRORS as exc:
        return [ValidationIssue(source=str(path), message=f"Parse error: {exc}")]

    if raw is None:
        return [ValidationIssue(source=str(path), message="File is empty or contains only whitespace")]
    if not isinstance(raw, dict):
        return [ValidationIssue(source=str(path), message="Schema document must be a mapping")]

    issues = validator.collect_issues(raw, path.stem)
    for issue in issues:
        issue.source = str(path)
    return issues


def validate_schema_dir(schema_dir: Path, *, strict: bool = False) -> list[ValidationIssue]:
    """
    Validate every schema document under *schema_dir*, including one level of
    namespace subdirectories.

    Args:
        schema_dir: Root schema directory.
        strict:     If ``True``, warnings are escalated to errors.

    Returns:
        A flat list of issues across all files. Empty means all valid.
    """
    if not schema_dir.is_dir():
        return [
            ValidationIssue(
                source=str(schema_dir),
                message=f"Schema directory does not exist: {schema_dir}",
            )
        ]

    from crudforge.schema.loader import SCHEMA_EXTENSIONS

    validator = SchemaValidator()
    files = [p for p in sorted(schema_dir.iterdir()) if p.suffix in SCHEMA_EXTENSIONS]
    for sub in sorted(p for p in schema_dir.iterdir() if p.is_dir()):
        files.extend(p for p in sorted(sub.iterdir()) if p.suffix in SCHEMA_EXTENSIONS)

    all_issues: list[ValidationIssue] = []
    for path in files:
        file_issues = validate_schema_file(path, validator)
        if strict:
            for issue in file_issues:
                if issue.severity == "warning":
                    issue.severity = "error"
        all_issues.extend(file_issues)
    return all_issues
