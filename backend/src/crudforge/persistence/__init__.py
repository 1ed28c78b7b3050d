"""Persistence layer - engine configuration, listing queries, and relation plans."""

from crudforge.persistence.config import DatabaseConfig, create_engine_from_config
from crudforge.persistence.query import ListingParams, ListingQuery, ListingResult, fetch_record
from crudforge.persistence.relationships import (
    MAX_RELATION_HOPS,
    JoinStep,
    RelationPlan,
    RelationshipResolver,
)

__all__ = [
    "DatabaseConfig",
    "JoinStep",
    "ListingParams",
    "ListingQuery",
    "ListingResult",
    "MAX_RELATION_HOPS",
    "RelationPlan",
    "RelationshipResolver",
    "create_engine_from_config",
    "fetch_record",
]
