"""Field type registry with storage, cast, and UI defaults."""

import re
from dataclasses import dataclass
from enum import Enum


class FieldKind(str, Enum):
    STRING = "string"
    INTEGER = "integer"
    FLOAT = "float"
    DECIMAL = "decimal"
    CURRENCY = "currency"
    BOOLEAN = "boolean"
    TEXT = "text"
    TEXTAREA = "textarea"
    DATE = "date"
    DATETIME = "datetime"
    EMAIL = "email"
    URL = "url"
    PHONE = "phone"
    ZIP = "zip"
    ADDRESS = "address"
    PASSWORD = "password"
    JSON = "json"
    MULTISELECT = "multiselect"
    SMARTLOOKUP = "smartlookup"


@dataclass
class FieldType:
    kind: FieldKind
    cast: str | None = None  # Python-side cast applied to stored values


# Built-in field types
FIELD_TYPES: dict[FieldKind, FieldType] = {
    FieldKind.STRING: FieldType(FieldKind.STRING),
    FieldKind.INTEGER: FieldType(FieldKind.INTEGER, "int"),
    FieldKind.FLOAT: FieldType(FieldKind.FLOAT, "float"),
    FieldKind.DECIMAL: FieldType(FieldKind.DECIMAL, "float"),
    FieldKind.CURRENCY: FieldType(FieldKind.CURRENCY, "float"),
    FieldKind.BOOLEAN: FieldType(FieldKind.BOOLEAN, "bool"),
    FieldKind.TEXT: FieldType(FieldKind.TEXT),
    FieldKind.TEXTAREA: FieldType(FieldKind.TEXTAREA),
    FieldKind.DATE: FieldType(FieldKind.DATE),
    FieldKind.DATETIME: FieldType(FieldKind.DATETIME),
    FieldKind.EMAIL: FieldType(FieldKind.EMAIL),
    FieldKind.URL: FieldType(FieldKind.URL),
    FieldKind.PHONE: FieldType(FieldKind.PHONE),
    FieldKind.ZIP: FieldType(FieldKind.ZIP),
    FieldKind.ADDRESS: FieldType(FieldKind.ADDRESS),
    FieldKind.PASSWORD: FieldType(FieldKind.PASSWORD),
    FieldKind.JSON: FieldType(FieldKind.JSON, "json"),
    FieldKind.MULTISELECT: FieldType(FieldKind.MULTISELECT, "json"),
    FieldKind.SMARTLOOKUP: FieldType(FieldKind.SMARTLOOKUP, "int"),
}

# Shorthand and legacy names accepted in schema documents
TYPE_ALIASES: dict[str, FieldKind] = {
    "int": FieldKind.INTEGER,
    "bool": FieldKind.BOOLEAN,
    "timestamp": FieldKind.DATETIME,
    "array": FieldKind.JSON,
}

# Legacy boolean suffix -> ui hint
BOOLEAN_UI_SUFFIXES: dict[str, str] = {
    "tgl": "toggle",
    "toggle": "toggle",
    "chk": "checkbox",
    "sel": "select",
    "yn": "select",
}

LEGACY_BOOLEAN_PATTERN = re.compile(r"^boolean-(tgl|toggle|chk|sel|yn)$")

DEFAULT_BOOLEAN_UI = "checkbox"


def is_known_type(type_name: str) -> bool:
    """Return True for canonical, alias, or legacy boolean type names."""
    if type_name in TYPE_ALIASES or LEGACY_BOOLEAN_PATTERN.match(type_name):
        return True
    try:
        FieldKind(type_name)
    except ValueError:
        return False
    return True


def known_type_names() -> list[str]:
    """All type names a schema document may declare."""
    legacy = [f"boolean-{suffix}" for suffix in BOOLEAN_UI_SUFFIXES]
    return [k.value for k in FieldKind] + list(TYPE_ALIASES) + legacy


def resolve_kind(type_name: str | None) -> FieldKind:
    """Map a declared type name to its canonical kind, defaulting to string."""
    if not type_name:
        return FieldKind.STRING
    if LEGACY_BOOLEAN_PATTERN.match(type_name):
        return FieldKind.BOOLEAN
    if type_name in TYPE_ALIASES:
        return TYPE_ALIASES[type_name]
    try:
        return FieldKind(type_name)
    except ValueError:
        return FieldKind.STRING


def get_field_type(type_name: str | None) -> FieldType:
    """Get field type definition, defaulting to string if unknown."""
    return FIELD_TYPES[resolve_kind(type_name)]


def get_cast(type_name: str | None) -> str | None:
    """Get the Python-side cast name for a field type."""
    return get_field_type(type_name).cast
