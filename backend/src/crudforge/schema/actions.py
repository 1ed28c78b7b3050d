"""Action synthesis, toggle normalization, and scope filtering."""

import copy
import logging
from collections.abc import Callable
from typing import Any

from crudforge.schema.types import ActionScope, ActionType
from crudforge.schema.validator import SchemaValidator

logger = logging.getLogger(__name__)

PermissionChecker = Callable[[str], bool]

# (operation, key, scope, template) in insertion order
_DEFAULT_ACTIONS: list[tuple[str, str, str, dict[str, Any]]] = [
    (
        "create",
        "create_action",
        ActionScope.LIST.value,
        {
            "label": "CRUD6.CREATE",
            "icon": "plus",
            "type": ActionType.FORM.value,
            "style": "primary",
            "modal_config": {"type": "form", "title": "CRUD6.CREATE"},
        },
    ),
    (
        "update",
        "edit_action",
        ActionScope.DETAIL.value,
        {
            "label": "CRUD6.EDIT",
            "icon": "pen-to-square",
            "type": ActionType.FORM.value,
            "style": "primary",
            "modal_config": {"type": "form", "title": "CRUD6.EDIT"},
        },
    ),
    (
        "delete",
        "delete_action",
        ActionScope.DETAIL.value,
        {
            "label": "CRUD6.DELETE",
            "icon": "trash",
            "type": ActionType.DELETE.value,
            "style": "danger",
            "confirm": "CRUD6.DELETE_CONFIRM",
            "modal_config": {
                "type": "confirm",
                "buttons": "yes_no",
                "warning": "WARNING_CANNOT_UNDONE",
            },
        },
    ),
]


class ActionManager:
    """Builds the effective action list of a schema."""

    def __init__(self, validator: SchemaValidator | None = None):
        self._validator = validator or SchemaValidator()

    def process(self, schema: dict[str, Any]) -> dict[str, Any]:
        """Normalize toggle actions, then add default actions. Returns a copy."""
        result = copy.deepcopy(schema)
        result["actions"] = self.normalize_toggles(result.get("actions") or [], result)
        return self.synthesize_defaults(result)

    def synthesize_defaults(self, schema: dict[str, Any]) -> dict[str, Any]:
        """Prepend create/edit/delete actions for each declared permission.

        Skipped entirely when ``default_actions`` is false. A default is never
        added over an existing action with the same key.
        """
        if schema.get("default_actions") is False:
            logger.debug("Default actions disabled for model '%s'", schema.get("model"))
            return schema

        actions = list(schema.get("actions") or [])
        existing = {a.get("key") for a in actions}
        permissions = schema.get("permissions") or {}

        defaults = []
        for operation, key, scope, template in _DEFAULT_ACTIONS:
            if key in existing or not self._validator.has_permission(schema, operation):
                continue
            action = {"key": key, "scope": [scope], "permission": permissions[operation]}
            action.update(copy.deepcopy(template))
            defaults.append(action)

        if defaults:
            logger.debug(
                "Added default actions %s for model '%s'",
                [a["key"] for a in defaults],
                schema.get("model"),
            )
        schema["actions"] = defaults + actions
        return schema

    def normalize_toggles(self, actions: list[dict[str, Any]], schema: dict[str, Any]) -> list[dict[str, Any]]:
        """Ensure every toggle action asks for confirmation before running."""
        fields = schema.get("fields") or {}
        result = []
        for action in actions:
            if action.get("type") != ActionType.FIELD_UPDATE.value or not action.get("toggle"):
                result.append(action)
                continue

            action = dict(action)
            field_name = action.get("field", "")
            field_spec = fields.get(field_name) or {}
            if "confirm" not in action:
                action.setdefault(
                    "field_label",
                    field_spec.get("label") or field_name.replace("_", " ").capitalize(),
                )
                action["confirm"] = "CRUD6.TOGGLE_CONFIRM"

            modal = action.get("modal_config")
            if modal is None:
                action["modal_config"] = {"type": "confirm", "buttons": "yes_no"}
            elif "type" not in modal:
                action["modal_config"] = {**modal, "type": "confirm"}
            result.append(action)
        return result

    def filter_by_scope(self, actions: list[dict[str, Any]], scope: str) -> list[dict[str, Any]]:
        """Return the actions whose scope includes *scope*.

        Actions without a scope are never returned.
        """
        filtered = []
        for action in actions:
            action_scope = action.get("scope")
            if not action_scope:
                logger.debug("Excluding action '%s' with no scope", action.get("key"))
                continue
            if isinstance(action_scope, str):
                action_scope = [action_scope]
            if scope in action_scope:
                filtered.append(action)
        return filtered

    def filter_by_permission(
        self, actions: list[dict[str, Any]], has_permission: PermissionChecker
    ) -> list[dict[str, Any]]:
        """Drop actions whose permission key the checker denies."""
        return [a for a in actions if not a.get("permission") or has_permission(a["permission"])]
