"""Bound schema types.

A normalized schema document (a plain mapping, the wire contract) is bound
once into these dataclasses. The query engine and relationship resolver read
table, column, and policy information only from here.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from crudforge.core.types import FieldKind, get_cast, resolve_kind


class Context(str, Enum):
    META = "meta"
    LIST = "list"
    CREATE = "create"
    EDIT = "edit"
    FORM = "form"
    DETAIL = "detail"
    FULL = "full"


class ActionType(str, Enum):
    FORM = "form"
    DELETE = "delete"
    FIELD_UPDATE = "field_update"
    API_CALL = "api_call"
    MODAL = "modal"


class ActionScope(str, Enum):
    LIST = "list"
    DETAIL = "detail"


class RelationType(str, Enum):
    DIRECT = "direct"
    MANY_TO_MANY = "many_to_many"
    BELONGS_TO_MANY_THROUGH = "belongs_to_many_through"


@dataclass(frozen=True)
class FieldPolicy:
    """Opt-in exposure of a field to listing operations."""

    sortable: bool = False
    filterable: bool = False
    listable: bool = False


@dataclass
class FieldDefinition:
    name: str
    type: FieldKind
    label: str
    ui: str | None = None
    required: bool = False
    readonly: bool = False
    editable: bool = True
    computed: bool = False
    auto_increment: bool = False
    default: Any = None
    show_in: list[str] = field(default_factory=list)
    validation: dict[str, Any] = field(default_factory=dict)
    policy: FieldPolicy = field(default_factory=FieldPolicy)

    @property
    def persisted(self) -> bool:
        """Whether the field maps to a real column."""
        return not self.computed

    @property
    def cast(self) -> str | None:
        return get_cast(self.type.value)


@dataclass
class RelationshipDefinition:
    name: str
    type: RelationType
    pivot_table: str | None = None
    foreign_key: str | None = None
    related_key: str | None = None
    through: str | None = None
    # Explicit two-hop keys, used when `through` is not declared
    first_pivot_table: str | None = None
    first_foreign_key: str | None = None
    first_related_key: str | None = None
    second_pivot_table: str | None = None
    second_foreign_key: str | None = None
    second_related_key: str | None = None


@dataclass
class DetailDefinition:
    model: str
    foreign_key: str | None = None
    list_fields: list[str] = field(default_factory=list)
    title: str | None = None

    @property
    def is_direct(self) -> bool:
        return self.foreign_key is not None


@dataclass
class SchemaDocument:
    """A normalized schema document bound to typed definitions."""

    model: str
    table: str
    primary_key: str
    fields: dict[str, FieldDefinition]
    data: dict[str, Any]
    timestamps: bool = True
    soft_delete: bool = False
    title: str = ""
    singular_title: str = ""
    connection: str | None = None
    permissions: dict[str, str] = field(default_factory=dict)
    relationships: dict[str, RelationshipDefinition] = field(default_factory=dict)
    details: list[DetailDefinition] = field(default_factory=list)
    default_sort: dict[str, str] = field(default_factory=dict)

    SOFT_DELETE_COLUMN = "deleted_at"

    @classmethod
    def bind(cls, data: dict[str, Any]) -> "SchemaDocument":
        """Bind a normalized schema mapping."""
        fields = {
            name: _bind_field(name, spec) for name, spec in data.get("fields", {}).items()
        }
        relationships = {}
        for rel in data.get("relationships", []):
            bound = _bind_relationship(rel)
            relationships[bound.name] = bound

        model = data["model"]
        title = data.get("title") or model.capitalize()
        return cls(
            model=model,
            table=data["table"],
            primary_key=data.get("primary_key", "id"),
            fields=fields,
            data=data,
            timestamps=bool(data.get("timestamps", True)),
            soft_delete=bool(data.get("soft_delete", False)),
            title=title,
            singular_title=data.get("singular_title") or title,
            connection=data.get("connection"),
            permissions=dict(data.get("permissions", {})),
            relationships=relationships,
            details=[_bind_detail(d) for d in data.get("details", [])],
            default_sort=dict(data.get("default_sort", {})),
        )

    # ------------------------------------------------------------------
    # Column sets
    # ------------------------------------------------------------------

    def columns(self) -> list[str]:
        """Names of persisted fields, in declared order."""
        return [f.name for f in self.fields.values() if f.persisted]

    def sortable_fields(self) -> list[str]:
        return [f.name for f in self.fields.values() if f.policy.sortable]

    def filterable_fields(self) -> list[str]:
        return [f.name for f in self.fields.values() if f.policy.filterable]

    def listable_fields(self) -> list[str]:
        return [f.name for f in self.fields.values() if f.policy.listable]

    def writable_columns(self, operation: str = "create") -> list[str]:
        """Column set for an insert ("create") or update ("update").

        Computed, auto-increment and non-editable fields are never written;
        the primary key is never updated.
        """
        columns = []
        for f in self.fields.values():
            if f.computed or f.auto_increment or not f.editable:
                continue
            if operation == "update" and f.name == self.primary_key:
                continue
            columns.append(f.name)
        return columns

    def column_casts(self) -> dict[str, str]:
        return {f.name: f.cast for f in self.fields.values() if f.persisted and f.cast}

    def get_detail(self, model: str) -> DetailDefinition | None:
        for detail in self.details:
            if detail.model == model:
                return detail
        return None

    def get_relationship(self, name: str) -> RelationshipDefinition | None:
        return self.relationships.get(name)

    def to_dict(self) -> dict[str, Any]:
        """Return the normalized mapping (the wire contract)."""
        return self.data


def _bind_field(name: str, spec: dict[str, Any]) -> FieldDefinition:
    # Computed fields have no column to select, sort, or filter on
    column = spec.get("computed") is not True
    return FieldDefinition(
        name=name,
        type=resolve_kind(spec.get("type")),
        label=spec.get("label", name),
        ui=spec.get("ui") if isinstance(spec.get("ui"), str) else None,
        required=bool(spec.get("required", False)),
        readonly=bool(spec.get("readonly", False)),
        editable=spec.get("editable", True) is not False,
        computed=bool(spec.get("computed", False)),
        auto_increment=bool(spec.get("auto_increment", False)),
        default=spec.get("default"),
        show_in=list(spec.get("show_in", [])),
        validation=dict(spec.get("validation") or {}),
        policy=FieldPolicy(
            sortable=column and spec.get("sortable") is True,
            filterable=column and spec.get("filterable") is True,
            listable=column and spec.get("listable") is True,
        ),
    )


def _bind_relationship(spec: dict[str, Any]) -> RelationshipDefinition:
    return RelationshipDefinition(
        name=spec["name"],
        type=RelationType(spec.get("type", RelationType.MANY_TO_MANY.value)),
        pivot_table=spec.get("pivot_table"),
        foreign_key=spec.get("foreign_key"),
        related_key=spec.get("related_key"),
        through=spec.get("through"),
        first_pivot_table=spec.get("first_pivot_table"),
        first_foreign_key=spec.get("first_foreign_key"),
        first_related_key=spec.get("first_related_key"),
        second_pivot_table=spec.get("second_pivot_table"),
        second_foreign_key=spec.get("second_foreign_key"),
        second_related_key=spec.get("second_related_key"),
    )


def _bind_detail(spec: dict[str, Any]) -> DetailDefinition:
    return DetailDefinition(
        model=spec["model"],
        foreign_key=spec.get("foreign_key"),
        list_fields=list(spec.get("list_fields", [])),
        title=spec.get("title"),
    )
