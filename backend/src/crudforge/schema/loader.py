"""Load raw schema documents from the schema directory."""

import logging
import re
from pathlib import Path
from typing import Any

from crudforge.errors import InvalidSchemaError, SchemaNotFoundError
from crudforge.schema.validator import PARSE_ERRORS, ValidationIssue, read_schema_document

logger = logging.getLogger(__name__)

# Extensions tried in order
SCHEMA_EXTENSIONS = (".json", ".yaml", ".yml")

_MODEL_NAME = re.compile(r"^[A-Za-z0-9_-]+$")


class SchemaLoader:
    """Resolves a model name (and optional namespace) to a schema document.

    Layout::

        {schema_path}/{model}.json
        {schema_path}/{namespace}/{model}.json

    A namespaced lookup falls back to the un-namespaced document.
    """

    def __init__(self, schema_path: Path | str):
        self.schema_path = Path(schema_path)

    def get_schema_file_path(
        self, model: str, namespace: str | None = None, extension: str = ".json"
    ) -> Path:
        """Get the candidate file path for a model's schema."""
        base = self.schema_path / namespace if namespace else self.schema_path
        return base / f"{model}{extension}"

    def find_schema_file(self, model: str, namespace: str | None = None) -> Path | None:
        """Locate an existing schema file, or None."""
        if not _MODEL_NAME.match(model):
            return None
        if namespace is not None and not _MODEL_NAME.match(namespace):
            return None

        candidates: list[Path] = []
        if namespace:
            candidates.extend(
                self.get_schema_file_path(model, namespace, ext) for ext in SCHEMA_EXTENSIONS
            )
        candidates.extend(self.get_schema_file_path(model, None, ext) for ext in SCHEMA_EXTENSIONS)

        for path in candidates:
            if path.is_file():
                return path
        return None

    def load(self, model: str, namespace: str | None = None) -> dict[str, Any]:
        """Load the raw schema document for a model.

        Raises:
            SchemaNotFoundError: If no document exists for the model.
            InvalidSchemaError: If the document cannot be parsed into a mapping.
        """
        path = self.find_schema_file(model, namespace)
        if path is None:
            raise SchemaNotFoundError(model, namespace)

        schema = self.load_file(path, model)

        # Schemas found under a namespace directory inherit it as their connection
        if namespace and path.parent.name == namespace and path.parent != self.schema_path:
            schema.setdefault("connection", namespace)

        logger.debug("Loaded schema for model '%s' from %s", model, path)
        return schema

    def load_file(self, path: Path, model: str | None = None) -> dict[str, Any]:
        """Parse a single schema file."""
        name = model or path.stem
        try:
            data = read_schema_document(path)
        except PARSE_ERRORS as exc:
            raise InvalidSchemaError(
                name, [ValidationIssue(source=str(path), message=f"Parse error: {exc}")]
            ) from exc

        if not isinstance(data, dict):
            raise InvalidSchemaError(
                name,
                [ValidationIssue(source=str(path), message="Schema document must be a mapping")],
            )
        return data

    def list_models(self, namespace: str | None = None) -> list[str]:
        """List model names with a schema document."""
        base = self.schema_path / namespace if namespace else self.schema_path
        if not base.is_dir():
            return []
        models = {
            p.stem
            for p in base.iterdir()
            if p.is_file() and p.suffix in SCHEMA_EXTENSIONS and _MODEL_NAME.match(p.stem)
        }
        return sorted(models)
