"""Context projection of normalized schema documents.

A context view is what an external caller may see of a schema for one usage
(list, form, detail, ...). Field maps of several contexts are merged key by
key, never replaced wholesale.
"""

import copy
import logging
from typing import Any

from crudforge.core.types import FieldKind
from crudforge.schema.types import Context

logger = logging.getLogger(__name__)

_LIST_OPTIONAL = ("width", "field_template")
_FORM_OPTIONAL = ("validation", "placeholder", "description", "default", "icon", "rows", "show_in")
_DETAIL_OPTIONAL = ("description", "field_template", "default")
_DETAIL_SCHEMA_KEYS = ("detail", "details", "relationships", "detail_editable", "render_mode", "title_field")
_LOOKUP_KEYS = ("lookup_model", "lookup_id", "lookup_desc", "model", "id", "desc")


def parse_contexts(contexts: str | list[str] | None) -> list[str]:
    """Split a comma-joined context string (or list) into context names."""
    if contexts is None:
        return []
    if isinstance(contexts, str):
        contexts = contexts.split(",")
    return [c.strip() for c in contexts if c and c.strip()]


class ContextFilter:
    """Projects a normalized schema mapping into context-specific views."""

    def filter(self, schema: dict[str, Any], contexts: str | list[str] | None = None) -> dict[str, Any]:
        """Return the view of *schema* for one or more contexts.

        ``None`` or ``"full"`` returns the whole schema. Unknown context names
        contribute nothing.
        """
        names = parse_contexts(contexts)
        if not names or names == [Context.FULL.value]:
            return copy.deepcopy(schema)
        if len(names) == 1:
            return self.filter_single(schema, names[0])
        return self.filter_multiple(schema, names)

    def filter_single(self, schema: dict[str, Any], context: str) -> dict[str, Any]:
        view = self._base(schema)
        data = self.context_data(schema, context)
        if data is None:
            logger.debug("Ignoring unknown context '%s' for model '%s'", context, schema.get("model"))
            return view
        fields = data.pop("fields", None)
        view.update(data)
        if fields is not None:
            view["fields"] = fields
        return view

    def filter_multiple(self, schema: dict[str, Any], contexts: list[str]) -> dict[str, Any]:
        view = self._base(schema)
        if "title_field" in schema:
            view["title_field"] = schema["title_field"]
        if "actions" in schema:
            view["actions"] = copy.deepcopy(schema["actions"])

        merged: dict[str, dict[str, Any]] = {}
        per_context: dict[str, dict[str, Any]] = {}
        for context in contexts:
            data = self.context_data(schema, context)
            if data is None:
                logger.debug("Ignoring unknown context '%s' for model '%s'", context, schema.get("model"))
                continue
            per_context[context] = data
            for name, field in data.get("fields", {}).items():
                target = merged.setdefault(name, {})
                for key, value in field.items():
                    target.setdefault(key, value)

        view["fields"] = merged
        view["contexts"] = per_context
        return view

    def context_data(self, schema: dict[str, Any], context: str) -> dict[str, Any] | None:
        """Context-specific payload, or None for an unknown context."""
        if context == Context.META.value:
            return {}
        if context == Context.LIST.value:
            return self._list_data(schema)
        if context in (Context.CREATE.value, Context.EDIT.value):
            return self._form_data(schema, context)
        if context == Context.FORM.value:
            return self._combined_form_data(schema)
        if context == Context.DETAIL.value:
            return self._detail_data(schema)
        return None

    # ------------------------------------------------------------------
    # Per-context payloads
    # ------------------------------------------------------------------

    def _base(self, schema: dict[str, Any]) -> dict[str, Any]:
        model = schema["model"]
        title = schema.get("title") or model.capitalize()
        view: dict[str, Any] = {
            "model": model,
            "title": title,
            "singular_title": schema.get("singular_title") or title,
            "primary_key": schema.get("primary_key", "id"),
        }
        for key in ("description", "permissions"):
            if key in schema:
                view[key] = copy.deepcopy(schema[key])
        return view

    def _list_data(self, schema: dict[str, Any]) -> dict[str, Any]:
        fields = {}
        for name, spec in schema.get("fields", {}).items():
            if _is_password(spec) or not _shown_in(spec, "list", default=spec.get("listable") is True):
                continue
            entry = {
                "type": spec.get("type", FieldKind.STRING.value),
                "label": spec.get("label", name),
                "sortable": spec.get("sortable", False),
                "filterable": spec.get("filterable", False),
            }
            _copy_present(spec, entry, _LIST_OPTIONAL)
            if "filter_type" in spec and spec.get("filterable"):
                entry["filter_type"] = spec["filter_type"]
            fields[name] = entry

        data: dict[str, Any] = {
            "fields": fields,
            "default_sort": copy.deepcopy(schema.get("default_sort", {})),
        }
        if "actions" in schema:
            data["actions"] = copy.deepcopy(schema["actions"])
        return data

    def _form_data(self, schema: dict[str, Any], context: str) -> dict[str, Any]:
        fields = {}
        for name, spec in schema.get("fields", {}).items():
            if not _shown_in(spec, context, default=spec.get("editable", True) is not False):
                continue
            entry = {
                "type": spec.get("type", FieldKind.STRING.value),
                "label": spec.get("label", name),
                "required": spec.get("required", False),
                "editable": spec.get("editable", True),
            }
            _copy_present(spec, entry, _FORM_OPTIONAL)
            if spec.get("type") == FieldKind.SMARTLOOKUP.value:
                _copy_present(spec, entry, _LOOKUP_KEYS)
            fields[name] = entry
        return {"fields": fields}

    def _combined_form_data(self, schema: dict[str, Any]) -> dict[str, Any]:
        fields = dict(self._form_data(schema, Context.CREATE.value)["fields"])
        for name, entry in self._form_data(schema, Context.EDIT.value)["fields"].items():
            fields.setdefault(name, entry)
        return {"fields": fields}

    def _detail_data(self, schema: dict[str, Any]) -> dict[str, Any]:
        fields = {}
        for name, spec in schema.get("fields", {}).items():
            if _is_password(spec) or not _shown_in(spec, "detail", default=spec.get("viewable", True) is not False):
                continue
            readonly = spec.get("readonly", False)
            entry = {
                "type": spec.get("type", FieldKind.STRING.value),
                "label": spec.get("label", name),
                "editable": spec.get("editable", not readonly),
                "readonly": readonly,
            }
            _copy_present(spec, entry, _DETAIL_OPTIONAL)
            fields[name] = entry

        data: dict[str, Any] = {"fields": fields}
        if "actions" in schema:
            data["actions"] = copy.deepcopy(schema["actions"])
        _copy_present(schema, data, _DETAIL_SCHEMA_KEYS)
        return data


def _is_password(spec: dict[str, Any]) -> bool:
    return spec.get("type") == FieldKind.PASSWORD.value


def _shown_in(spec: dict[str, Any], context: str, *, default: bool) -> bool:
    show_in = spec.get("show_in")
    if isinstance(show_in, list):
        return context in show_in
    return default


def _copy_present(source: dict[str, Any], target: dict[str, Any], keys: tuple[str, ...]) -> None:
    for key in keys:
        if key in source:
            target[key] = copy.deepcopy(source[key])
