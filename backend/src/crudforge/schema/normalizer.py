"""
schema/normalizer.py — rewrite raw schema documents into canonical form.

Steps run in a fixed order, each only filling in what is absent:

1. ORM-style field attributes (``nullable``, ``autoIncrement``, ``references`` ...)
2. Smartlookup attributes (nested ``lookup`` -> ``lookup_model/lookup_id/lookup_desc``)
3. Visibility flags -> ``show_in``
4. Legacy boolean types (``boolean-tgl`` -> ``{type: boolean, ui: toggle}``)
5. Top-level defaults (``primary_key``, ``timestamps``, ``soft_delete``)
6. Per-field policy (``sortable``, ``filterable``, ``listable`` as real booleans)

The result is a plain mapping: the wire contract handed to callers.
Normalizing a normalized document yields an identical document.
"""

import copy
import logging
from typing import Any

from crudforge.core.types import (
    BOOLEAN_UI_SUFFIXES,
    DEFAULT_BOOLEAN_UI,
    LEGACY_BOOLEAN_PATTERN,
    FieldKind,
)

logger = logging.getLogger(__name__)

TOP_LEVEL_DEFAULTS: dict[str, Any] = {
    "primary_key": "id",
    "timestamps": True,
    "soft_delete": False,
}

# Contexts a password field may never be shown in
_PASSWORD_HIDDEN = ("list", "detail")


def _is_boolean_type(field_type: Any) -> bool:
    if not isinstance(field_type, str):
        return False
    return field_type == FieldKind.BOOLEAN.value or bool(LEGACY_BOOLEAN_PATTERN.match(field_type))


class SchemaNormalizer:
    """Produces the canonical form of a schema document."""

    def normalize(self, schema: dict[str, Any]) -> dict[str, Any]:
        """Return a normalized deep copy of *schema*; the input is not modified."""
        result = copy.deepcopy(schema)
        fields = result.get("fields")
        if isinstance(fields, dict):
            for name, spec in fields.items():
                if not isinstance(spec, dict):
                    continue
                self._normalize_orm_attributes(spec)
                self._normalize_lookup_attributes(spec)
                self._normalize_visibility(spec)
                self._normalize_boolean_type(spec)
                self._normalize_policy(spec)

        for key, value in TOP_LEVEL_DEFAULTS.items():
            result.setdefault(key, value)

        logger.debug("Normalized schema for model '%s'", result.get("model"))
        return result

    # ------------------------------------------------------------------
    # Field steps
    # ------------------------------------------------------------------

    def _normalize_orm_attributes(self, spec: dict[str, Any]) -> None:
        """Map attribute names borrowed from common ORMs onto canonical keys."""
        if "nullable" in spec and "required" not in spec:
            spec["required"] = not spec["nullable"]
        if "required" in spec and "nullable" not in spec:
            spec["nullable"] = not spec["required"]

        if "autoIncrement" in spec and "auto_increment" not in spec:
            spec["auto_increment"] = spec["autoIncrement"]
        if "primaryKey" in spec and "primary" not in spec:
            spec["primary"] = spec["primaryKey"]

        if "validate" in spec and "validation" not in spec:
            spec["validation"] = spec["validate"]
        if "unique" in spec:
            spec.setdefault("validation", {}).setdefault("unique", spec["unique"])
        if "length" in spec:
            spec.setdefault("validation", {}).setdefault("length", {"max": spec["length"]})

        references = spec.get("references")
        if isinstance(references, dict):
            spec.setdefault(
                "lookup",
                {
                    "model": references.get("model", references.get("table")),
                    "id": references.get("key", references.get("id", "id")),
                    "desc": references.get("display", references.get("desc", "name")),
                },
            )
            if spec.get("type") in (None, FieldKind.INTEGER.value) and (
                "display" in references or "desc" in references
            ):
                spec["type"] = FieldKind.SMARTLOOKUP.value

        ui = spec.get("ui")
        if isinstance(ui, dict):
            for key in ("label", "show_in", "sortable", "filterable"):
                if key in ui:
                    spec.setdefault(key, ui[key])
            if "widget" in ui and _is_boolean_type(spec.get("type")):
                spec["ui"] = ui["widget"]
            elif ui.get("type") == "lookup" and spec.get("type") in (None, FieldKind.INTEGER.value):
                spec["type"] = FieldKind.SMARTLOOKUP.value

        if "defaultValue" in spec and "default" not in spec:
            spec["default"] = spec["defaultValue"]

    def _normalize_lookup_attributes(self, spec: dict[str, Any]) -> None:
        if spec.get("type") != FieldKind.SMARTLOOKUP.value:
            return
        lookup = spec.get("lookup")
        if isinstance(lookup, dict):
            for short in ("model", "id", "desc"):
                if short in lookup:
                    spec.setdefault(f"lookup_{short}", lookup[short])
        # Shorthand attributes
        for short in ("model", "id", "desc"):
            if short in spec:
                spec.setdefault(f"lookup_{short}", spec[short])

    def _normalize_visibility(self, spec: dict[str, Any]) -> None:
        """Derive ``show_in`` and the convenience flags from each other.

        Listing is opt-in: a field is listed only when ``listable`` is true or
        ``show_in`` contains ``list``. Password fields are never shown in
        list or detail.
        """
        is_password = spec.get("type") == FieldKind.PASSWORD.value
        show_in = spec.get("show_in")

        if isinstance(show_in, list):
            contexts: list[str] = []
            for context in show_in:
                expanded = ["create", "edit"] if context == "form" else [context]
                for c in expanded:
                    if c not in contexts:
                        contexts.append(c)
            if spec.get("listable") is True and "list" not in contexts:
                contexts.insert(0, "list")
        else:
            listable = spec.get("listable") is True
            editable = spec.get("editable", True) is not False
            viewable = spec.get("viewable", True) is not False
            contexts = []
            if listable:
                contexts.append("list")
            if editable:
                contexts.extend(["create", "edit"])
            if viewable:
                contexts.append("detail")

        if is_password:
            contexts = [c for c in contexts if c not in _PASSWORD_HIDDEN]

        spec["show_in"] = contexts
        spec["listable"] = "list" in contexts
        spec.setdefault("editable", "create" in contexts or "edit" in contexts)
        spec.setdefault("viewable", "detail" in contexts)

    def _normalize_boolean_type(self, spec: dict[str, Any]) -> None:
        field_type = spec.get("type", FieldKind.STRING.value)
        match = LEGACY_BOOLEAN_PATTERN.match(field_type) if isinstance(field_type, str) else None
        if match:
            spec["type"] = FieldKind.BOOLEAN.value
            spec.setdefault("ui", BOOLEAN_UI_SUFFIXES.get(match.group(1), DEFAULT_BOOLEAN_UI))
        elif field_type == FieldKind.BOOLEAN.value:
            spec.setdefault("ui", DEFAULT_BOOLEAN_UI)

    def _normalize_policy(self, spec: dict[str, Any]) -> None:
        """Settle the opt-in policy flags to real booleans.

        Computed fields are not columns and password fields are never
        sorted or searched.
        """
        excluded = spec.get("computed") is True or spec.get("type") == FieldKind.PASSWORD.value
        spec["sortable"] = spec.get("sortable") is True and not excluded
        spec["filterable"] = spec.get("filterable") is True and not excluded
        spec["listable"] = spec.get("listable") is True


def normalize_schema(schema: dict[str, Any]) -> dict[str, Any]:
    """Normalize a schema document with the default normalizer."""
    return SchemaNormalizer().normalize(schema)
