"""Catalog of named queries executable on the storage nodes."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from moderia.errors import QueryError
from moderia.schemas import RecordKind


@dataclass(frozen=True)
class QueryDefinition:
    """Predefined query template."""

    query_id: str
    name: str
    description: str
    record_kind: RecordKind
    template: str
    variables: tuple[str, ...] = field(default_factory=tuple)


# Query definitions
QUERIES: dict[str, QueryDefinition] = {
    "find_services_by_type": QueryDefinition(
        query_id="find_services_by_type",
        name="Find Services by Type",
        description="Find available services by type",
        record_kind=RecordKind.SERVICE,
        template=(
            "SELECT * FROM service "
            "WHERE service_type = :service_type AND available = true "
            "ORDER BY date ASC, time ASC"
        ),
        variables=("service_type",),
    ),
    "find_bookings_by_client": QueryDefinition(
        query_id="find_bookings_by_client",
        name="Find Bookings by Client",
        description="Find all bookings for a client",
        record_kind=RecordKind.BOOKING,
        template=(
            "SELECT * FROM booking "
            "WHERE client_id = :client_id "
            "ORDER BY booking_date DESC"
        ),
        variables=("client_id",),
    ),
    "find_bookings_by_provider": QueryDefinition(
        query_id="find_bookings_by_provider",
        name="Find Bookings by Provider",
        description="Find all bookings for a provider",
        record_kind=RecordKind.BOOKING,
        template=(
            "SELECT * FROM booking "
            "WHERE provider_id = :provider_id "
            "ORDER BY booking_date DESC"
        ),
        variables=("provider_id",),
    ),
    "find_disputed_reviews": QueryDefinition(
        query_id="find_disputed_reviews",
        name="Find Disputed Reviews",
        description="Find all disputed reviews",
        record_kind=RecordKind.REVIEW,
        template=(
            "SELECT * FROM review "
            "WHERE disputed = true "
            "ORDER BY created_at DESC"
        ),
    ),
}


def get_query(query_id: str) -> QueryDefinition:
    """Get query by ID.

    Raises:
        QueryError: If the ID is not in the catalog
    """
    try:
        return QUERIES[query_id]
    except KeyError:
        raise QueryError(
            f"Query with ID '{query_id}' not found",
            details={"query_id": query_id, "known": sorted(QUERIES)},
        ) from None


def bind_variables(query: QueryDefinition, variables: dict[str, Any]) -> dict[str, Any]:
    """Check variables against the query's declared names.

    Raises:
        QueryError: If a variable is unknown or a declared one is missing
    """
    unknown = sorted(set(variables) - set(query.variables))
    if unknown:
        raise QueryError(
            f"Unknown variables for query '{query.query_id}': {', '.join(unknown)}",
            details={"unknown": unknown},
        )
    missing = [name for name in query.variables if variables.get(name) in (None, "")]
    if missing:
        raise QueryError(
            f"Missing variables for query '{query.query_id}': {', '.join(missing)}",
            details={"missing": missing},
        )
    return {name: variables[name] for name in query.variables}


def list_queries() -> list[QueryDefinition]:
    """All catalogued queries."""
    return list(QUERIES.values())
