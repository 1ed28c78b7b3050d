"""
persistence/relationships.py — resolve a named relation into a query plan.

A detail declaration with a ``foreign_key`` is a direct relation: the related
table is filtered by ``foreign_key = parent id``. Without one, the same-named
relationship definition decides the plan:

- ``many_to_many``: one pivot hop
- ``belongs_to_many_through``: two pivot hops, the first being another
  relationship of the parent (``through``) or explicit ``first_*`` keys

Plans are built only from schema documents; the parent id is the only
caller-supplied value and it is always bound as a parameter.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from crudforge.core.types import FieldKind
from crudforge.errors import MissingRelationshipConfigError
from crudforge.schema.types import (
    RelationshipDefinition,
    RelationType,
    SchemaDocument,
)

logger = logging.getLogger(__name__)

MAX_RELATION_HOPS = 2

SchemaLookup = Callable[[str], SchemaDocument]


@dataclass(frozen=True)
class JoinStep:
    """One pivot hop: rows of ``table`` link ``foreign_key`` (near side) to ``related_key`` (far side)."""

    table: str
    foreign_key: str
    related_key: str

    def __str__(self) -> str:
        return f"{self.table}({self.foreign_key} -> {self.related_key})"


@dataclass(frozen=True)
class RelationPlan:
    """How to select the rows of a related model for one parent record.

    ``hops`` are ordered from the parent outward. The related rows are those
    whose ``related_key`` appears as the last hop's far-side key.
    """

    relation: str
    related_model: str
    related_table: str
    related_key: str
    parent_id: object
    hops: tuple[JoinStep, ...] = ()
    foreign_key: str | None = None
    list_fields: tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_direct(self) -> bool:
        return not self.hops

    @property
    def filter_table(self) -> str:
        return self.related_table if self.is_direct else self.hops[0].table

    @property
    def filter_column(self) -> str:
        return self.foreign_key if self.is_direct else self.hops[0].foreign_key

    def describe(self) -> str:
        target = f"{self.filter_table}.{self.filter_column} = {self.parent_id!r}"
        if self.is_direct:
            return f"{self.related_table} where {target}"
        chain = " -> ".join(str(h) for h in self.hops)
        return f"{self.related_table}.{self.related_key} via {chain} where {target}"


class RelationshipResolver:
    """Turns a relation name on a parent schema into a ``RelationPlan``.

    Args:
        get_schema: Looks up another model's bound schema by name; used for
            the related model and for intermediate models of chained relations.
    """

    def __init__(self, get_schema: SchemaLookup, max_hops: int = MAX_RELATION_HOPS):
        self._get_schema = get_schema
        self._max_hops = max_hops

    def resolve(self, parent: SchemaDocument, relation: str, parent_id: object) -> RelationPlan:
        """Build the plan for *relation* of the record *parent_id*.

        Raises:
            MissingRelationshipConfigError: If the relation is not declared, or
                the declaration cannot be turned into a plan.
        """
        detail = parent.get_detail(relation)
        relationship = parent.get_relationship(relation)
        if detail is None and relationship is None:
            raise MissingRelationshipConfigError(parent.model, relation, "not declared in details")

        related_model = detail.model if detail else relationship.name
        related = self._get_schema(related_model)
        list_fields = tuple(detail.list_fields) if detail else ()

        if detail is not None and detail.is_direct:
            foreign_key = detail.foreign_key
        elif detail is None and relationship.type == RelationType.DIRECT and relationship.foreign_key:
            foreign_key = relationship.foreign_key
        else:
            foreign_key = None

        if foreign_key:
            plan = RelationPlan(
                relation=relation,
                related_model=related.model,
                related_table=related.table,
                related_key=related.primary_key,
                parent_id=parent_id,
                foreign_key=foreign_key,
                list_fields=list_fields,
            )
        else:
            if relationship is None:
                raise MissingRelationshipConfigError(
                    parent.model,
                    relation,
                    "detail has no foreign_key and no relationship of the same name",
                )
            hops = self._hops(parent, relationship, visited=(parent.model,))
            plan = RelationPlan(
                relation=relation,
                related_model=related.model,
                related_table=related.table,
                related_key=related.primary_key,
                parent_id=parent_id,
                hops=tuple(hops),
                list_fields=list_fields,
            )

        logger.debug("Resolved relation %s.%s: %s", parent.model, relation, plan.describe())
        return plan

    def related_listable(self, plan: RelationPlan, related: SchemaDocument) -> list[str]:
        """Columns to project for a related listing.

        The detail's ``list_fields`` restricted to persisted columns of the
        related schema, or the related schema's own listable set.
        """
        if not plan.list_fields:
            return related.listable_fields()
        columns = set(related.columns())
        password = {n for n, f in related.fields.items() if f.type == FieldKind.PASSWORD}
        return [f for f in plan.list_fields if f in columns and f not in password]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _hops(
        self,
        owner: SchemaDocument,
        relationship: RelationshipDefinition,
        visited: tuple[str, ...],
    ) -> list[JoinStep]:
        if relationship.type == RelationType.DIRECT:
            raise MissingRelationshipConfigError(
                owner.model,
                relationship.name,
                "direct relationships need a detail entry with foreign_key",
            )

        if relationship.type == RelationType.MANY_TO_MANY:
            return [self._pivot_hop(owner, relationship)]

        # belongs_to_many_through
        if relationship.through:
            first = owner.get_relationship(relationship.through)
            if first is None or first.name == relationship.name:
                raise MissingRelationshipConfigError(
                    owner.model,
                    relationship.name,
                    f"through relationship '{relationship.through}' is not defined",
                )
            if first.name in visited:
                raise MissingRelationshipConfigError(
                    owner.model, relationship.name, f"relation chain loops at '{first.name}'"
                )
            first_hops = self._hops(owner, first, visited + (first.name,))
            intermediate = self._get_schema(first.name)
            second = intermediate.get_relationship(relationship.name)
            if second is not None and second.type == RelationType.MANY_TO_MANY:
                second_hop = self._pivot_hop(intermediate, second)
            else:
                second_hop = self._explicit_second_hop(owner, relationship)
            hops = first_hops + [second_hop]
        else:
            hops = [
                self._explicit_first_hop(owner, relationship),
                self._explicit_second_hop(owner, relationship),
            ]

        if len(hops) > self._max_hops:
            raise MissingRelationshipConfigError(
                owner.model,
                relationship.name,
                f"relation chain exceeds {self._max_hops} hops",
            )
        return hops

    def _pivot_hop(self, owner: SchemaDocument, rel: RelationshipDefinition) -> JoinStep:
        if not (rel.pivot_table and rel.foreign_key and rel.related_key):
            raise MissingRelationshipConfigError(
                owner.model, rel.name, "pivot_table, foreign_key and related_key are required"
            )
        return JoinStep(rel.pivot_table, rel.foreign_key, rel.related_key)

    def _explicit_first_hop(self, owner: SchemaDocument, rel: RelationshipDefinition) -> JoinStep:
        if not (rel.first_pivot_table and rel.first_foreign_key and rel.first_related_key):
            raise MissingRelationshipConfigError(
                owner.model, rel.name, "explicit first_* keys are incomplete"
            )
        return JoinStep(rel.first_pivot_table, rel.first_foreign_key, rel.first_related_key)

    def _explicit_second_hop(self, owner: SchemaDocument, rel: RelationshipDefinition) -> JoinStep:
        if not (rel.second_pivot_table and rel.second_foreign_key and rel.second_related_key):
            raise MissingRelationshipConfigError(
                owner.model, rel.name, "explicit second_* keys are incomplete"
            )
        return JoinStep(rel.second_pivot_table, rel.second_foreign_key, rel.second_related_key)

