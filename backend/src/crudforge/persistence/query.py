"""
persistence/query.py — paginated listing queries over schema-declared columns.

All identifiers come from the bound schema; request values (filters, search
text, record ids) only ever reach the database as bound parameters.

Request handling is fail-closed: a sort, filter, or search on a field that is
not opted in is dropped and recorded as a ``RejectedField``.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import String, cast, column, func, or_, select, table
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.sql import ColumnElement, Select, TableClause

from crudforge.errors import RejectedField
from crudforge.persistence.relationships import RelationPlan
from crudforge.schema.types import SchemaDocument

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 25
MAX_PAGE_SIZE = 100

SORT_DIRECTIONS = ("asc", "desc")
FILTER_OR_SEPARATOR = "||"
LIKE_ESCAPE = "\\"

# Flat query-string keys such as "sorts[name]" or "filters[email]"
_BRACKET_KEY = re.compile(r"^(sorts|filters)\[([^\]]*)\]$")


# ---------------------------------------------------------------------------
# Request parameters
# ---------------------------------------------------------------------------


@dataclass
class ListingParams:
    """Parsed listing request parameters. ``page`` is 0-based."""

    page: int = 0
    size: int = DEFAULT_PAGE_SIZE
    sorts: dict[str, str] = field(default_factory=dict)
    filters: dict[str, str] = field(default_factory=dict)
    search: str | None = None
    rejected: list[RejectedField] = field(default_factory=list)

    @property
    def offset(self) -> int:
        return self.page * self.size

    @classmethod
    def from_mapping(
        cls,
        params: Mapping[str, Any] | None,
        default_size: int = DEFAULT_PAGE_SIZE,
        max_size: int = MAX_PAGE_SIZE,
    ) -> ListingParams:
        """Parse raw request parameters.

        Invalid ``page`` becomes 0; invalid ``size`` becomes *default_size*,
        and any size is clamped to ``1..max_size``. Sort directions other
        than asc/desc are rejected.
        """
        params = params or {}
        result = cls()

        result.page = max(_as_int(params.get("page"), 0), 0)
        size = _as_int(params.get("size"), default_size)
        result.size = min(max(size, 1), max_size)

        sorts = dict(_as_mapping(params.get("sorts")))
        filters = dict(_as_mapping(params.get("filters")))
        for key, value in params.items():
            match = _BRACKET_KEY.match(str(key))
            if not match:
                continue
            target = sorts if match.group(1) == "sorts" else filters
            target[match.group(2)] = value

        for name, direction in sorts.items():
            normalized = str(direction).strip().lower() if direction is not None else ""
            if normalized in SORT_DIRECTIONS:
                result.sorts[str(name)] = normalized
            else:
                result.rejected.append(RejectedField("sort", str(name), f"invalid direction '{direction}'"))

        for name, value in filters.items():
            if value is None or str(value).strip() == "":
                continue
            result.filters[str(name)] = str(value).strip()

        search = params.get("search")
        if search is not None and str(search).strip():
            result.search = str(search).strip()

        return result


@dataclass
class ListingResult:
    """One page of a listing."""

    count: int
    count_filtered: int
    rows: list[dict[str, Any]]
    rejected: list[RejectedField] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"count": self.count, "count_filtered": self.count_filtered, "rows": self.rows}


@dataclass
class ListingStatements:
    """The three statements of a listing, plus what was dropped building them."""

    count: Select
    count_filtered: Select
    rows: Select
    rejected: list[RejectedField] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Query
# ---------------------------------------------------------------------------


class ListingQuery:
    """A listing over one table with opt-in sortable, filterable and listable sets.

    Args:
        table_name:       Backing table.
        primary_key:      Final ORDER BY tiebreaker.
        sortable:         Fields a request may sort on.
        filterable:       Fields a request may filter or search on.
        listable:         Fields projected into each row.
        soft_delete_column: When set, rows with a non-null value are excluded.
        default_sort:     Applied when the request asks for no valid sort.
        casts:            Field name -> cast applied to fetched values.
    """

    def __init__(
        self,
        table_name: str,
        primary_key: str = "id",
        sortable: Iterable[str] = (),
        filterable: Iterable[str] = (),
        listable: Iterable[str] = (),
        soft_delete_column: str | None = None,
        default_sort: Mapping[str, str] | None = None,
        casts: Mapping[str, str] | None = None,
    ):
        self.table_name = table_name
        self.primary_key = primary_key
        self.sortable = _clean(sortable)
        self.filterable = _clean(filterable)
        self.listable = _clean(listable)
        self.soft_delete_column = soft_delete_column
        self.default_sort = {
            k: str(v).lower()
            for k, v in (default_sort or {}).items()
            if k and str(v).lower() in SORT_DIRECTIONS
        }
        self.casts = dict(casts or {})

    @classmethod
    def from_schema(cls, schema: SchemaDocument, listable: Iterable[str] | None = None) -> ListingQuery:
        """Build a listing from a bound schema, optionally overriding the listable set."""
        columns = set(schema.columns())
        return cls(
            table_name=schema.table,
            primary_key=schema.primary_key,
            sortable=schema.sortable_fields(),
            filterable=schema.filterable_fields(),
            listable=schema.listable_fields() if listable is None else listable,
            soft_delete_column=SchemaDocument.SOFT_DELETE_COLUMN if schema.soft_delete else None,
            default_sort={k: v for k, v in schema.default_sort.items() if k in columns},
            casts=schema.column_casts(),
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def execute(
        self,
        bind: Engine | Connection,
        params: ListingParams | Mapping[str, Any] | None = None,
        plan: RelationPlan | None = None,
    ) -> ListingResult:
        """Run the count, filtered count, and page queries.

        Store errors propagate unmodified.
        """
        statements = self.build(params, plan)
        for r in statements.rejected:
            logger.debug("Dropped %s on %s: %s", r.kind, self.table_name, r)

        if isinstance(bind, Engine):
            with bind.connect() as conn:
                return self._run(conn, statements)
        return self._run(bind, statements)

    def build(
        self,
        params: ListingParams | Mapping[str, Any] | None = None,
        plan: RelationPlan | None = None,
    ) -> ListingStatements:
        """Build the listing statements without executing them."""
        if not isinstance(params, ListingParams):
            params = ListingParams.from_mapping(params)
        rejected = list(params.rejected)

        main = self._table(plan)
        base = self._base_conditions(main, plan)
        filters = self._filter_conditions(main, params, rejected)
        order_by = self._order_by(main, params, rejected)

        # An empty listable set still needs one selected column; rows project to {}
        projected = self.listable or [self.primary_key]
        return ListingStatements(
            count=select(func.count()).select_from(main).where(*base),
            count_filtered=select(func.count()).select_from(main).where(*base, *filters),
            rows=(
                select(*(main.c[name] for name in projected))
                .where(*base, *filters)
                .order_by(*order_by)
                .limit(params.size)
                .offset(params.offset)
            ),
            rejected=rejected,
        )

    # ------------------------------------------------------------------
    # Statement parts
    # ------------------------------------------------------------------

    def _table(self, plan: RelationPlan | None) -> TableClause:
        names = [self.primary_key, *self.sortable, *self.filterable, *self.listable]
        names.extend(self.default_sort)
        if self.soft_delete_column:
            names.append(self.soft_delete_column)
        if plan is not None:
            names.append(plan.related_key)
            if plan.is_direct:
                names.append(plan.foreign_key)
        return table(self.table_name, *(column(n) for n in dict.fromkeys(names)))

    def _base_conditions(self, main: TableClause, plan: RelationPlan | None) -> list[ColumnElement]:
        conditions: list[ColumnElement] = []
        if self.soft_delete_column:
            conditions.append(main.c[self.soft_delete_column].is_(None))
        if plan is not None:
            conditions.append(relation_condition(main, plan))
        return conditions

    def _filter_conditions(
        self, main: TableClause, params: ListingParams, rejected: list[RejectedField]
    ) -> list[ColumnElement]:
        conditions: list[ColumnElement] = []
        for name, value in params.filters.items():
            if name not in self.filterable:
                rejected.append(RejectedField("filter", name))
                continue
            alternatives = [v.strip() for v in value.split(FILTER_OR_SEPARATOR) if v.strip()]
            if not alternatives:
                continue
            conditions.append(or_(*(_like(main.c[name], v) for v in alternatives)))

        if params.search:
            if self.filterable:
                conditions.append(or_(*(_like(main.c[name], params.search) for name in self.filterable)))
            else:
                rejected.append(RejectedField("search", "*", "no filterable fields"))
        return conditions

    def _order_by(
        self, main: TableClause, params: ListingParams, rejected: list[RejectedField]
    ) -> list[ColumnElement]:
        sorts = {}
        for name, direction in params.sorts.items():
            if name not in self.sortable:
                rejected.append(RejectedField("sort", name))
                continue
            sorts[name] = direction
        if not sorts:
            sorts = dict(self.default_sort)

        order_by = [
            main.c[name].desc() if direction == "desc" else main.c[name].asc()
            for name, direction in sorts.items()
        ]
        if self.primary_key not in sorts:
            order_by.append(main.c[self.primary_key].asc())
        return order_by

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _run(self, conn: Connection, statements: ListingStatements) -> ListingResult:
        count = conn.execute(statements.count).scalar_one()
        count_filtered = conn.execute(statements.count_filtered).scalar_one()
        rows = [self._project(row) for row in conn.execute(statements.rows).mappings()]
        return ListingResult(
            count=count,
            count_filtered=count_filtered,
            rows=rows,
            rejected=statements.rejected,
        )

    def _project(self, row: Mapping[str, Any]) -> dict[str, Any]:
        return {name: cast_value(row[name], self.casts.get(name)) for name in self.listable}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def relation_condition(main: TableClause, plan: RelationPlan) -> ColumnElement:
    """WHERE condition selecting the related rows of one parent record.

    Direct relations filter the related table itself. Pivot relations select
    the related key through the chain of pivot hops::

        related.pk IN (SELECT hopN.related_key FROM hopN
                       JOIN hopN-1 ON hopN-1.related_key = hopN.foreign_key ...
                       WHERE hop1.foreign_key = :parent_id)
    """
    if plan.is_direct:
        return main.c[plan.foreign_key] == plan.parent_id

    hop_tables = [
        table(h.table, column(h.foreign_key), column(h.related_key)) for h in plan.hops
    ]
    last_hop, last = plan.hops[-1], hop_tables[-1]
    from_clause = last
    for i in range(len(plan.hops) - 2, -1, -1):
        near, far = hop_tables[i], hop_tables[i + 1]
        from_clause = from_clause.join(
            near, near.c[plan.hops[i].related_key] == far.c[plan.hops[i + 1].foreign_key]
        )
    first = hop_tables[0]
    subquery = (
        select(last.c[last_hop.related_key])
        .select_from(from_clause)
        .where(first.c[plan.hops[0].foreign_key] == plan.parent_id)
    )
    return main.c[plan.related_key].in_(subquery)


def fetch_record(
    bind: Engine | Connection,
    schema: SchemaDocument,
    record_id: Any,
    columns: Iterable[str],
) -> dict[str, Any] | None:
    """Fetch one record by primary key, projected to *columns*."""
    names = _clean(columns) or [schema.primary_key]
    cols = dict.fromkeys([schema.primary_key, *names])
    if schema.soft_delete:
        cols[SchemaDocument.SOFT_DELETE_COLUMN] = None
    main = table(schema.table, *(column(n) for n in cols))

    stmt = select(*(main.c[n] for n in names)).where(main.c[schema.primary_key] == record_id)
    if schema.soft_delete:
        stmt = stmt.where(main.c[SchemaDocument.SOFT_DELETE_COLUMN].is_(None))

    if isinstance(bind, Engine):
        with bind.connect() as conn:
            row = conn.execute(stmt).mappings().first()
    else:
        row = bind.execute(stmt).mappings().first()
    if row is None:
        return None
    casts = schema.column_casts()
    return {n: cast_value(row[n], casts.get(n)) for n in names}


def cast_value(value: Any, cast_name: str | None) -> Any:
    """Apply a field-type cast to a value read from the store."""
    if value is None or cast_name is None:
        return value
    if cast_name == "int":
        return int(value)
    if cast_name == "float":
        return float(value)
    if cast_name == "bool":
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "on")
        return bool(value)
    if cast_name == "json" and isinstance(value, str):
        return json.loads(value) if value else None
    return value


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so user input matches literally."""
    return (
        value.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


def _like(col: ColumnElement, value: str) -> ColumnElement:
    return cast(col, String).like(f"%{escape_like(value)}%", escape=LIKE_ESCAPE)


def _clean(names: Iterable[str]) -> list[str]:
    """Drop blank names, keeping order and removing duplicates."""
    return list(dict.fromkeys(n for n in names if isinstance(n, str) and n.strip()))


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_mapping(value: Any) -> Mapping[str, Any]:
    if isinstance(value, Mapping):
        return value
    return {}
