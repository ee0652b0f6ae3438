"""MCP server exposing Moderia marketplace actions as agent tools."""

import logging
from typing import Any

from mcp.server.fastmcp import FastMCP

from moderia.config import load_config
from moderia.errors import EnvError, format_error_for_agent
from moderia.provider import MarketplaceActionProvider, dispatch_action
from moderia.schemas import ActionResult

logger = logging.getLogger(__name__)

mcp = FastMCP("moderia")

_provider: MarketplaceActionProvider | None = None


def get_provider() -> MarketplaceActionProvider:
    global _provider
    if _provider is None:
        _provider = MarketplaceActionProvider(load_config())
    return _provider


async def _run_action(name: str, params: dict[str, Any] | None = None) -> dict:
    """Run a provider action and return its result as a plain dict.

    Missing configuration is reported as a failed result, like any other
    action error.
    """
    try:
        provider = get_provider()
    except EnvError as e:
        logger.error(f"Cannot run {name}: {e.message}")
        result = ActionResult(success=False, message=format_error_for_agent(e))
    else:
        result = await dispatch_action(provider, name, params)
    return result.model_dump(mode="json")


@mcp.tool()
async def setup_schemas() -> dict:
    """Register the service, booking and review schemas on every storage node."""
    return await _run_action("setup_schemas")


@mcp.tool()
async def create_service(
    provider_id: str,
    provider_name: str,
    service_type: str,
    title: str,
    description: str,
    price: float,
    currency: str,
    duration_minutes: int,
    date: str,
    time: str,
    timezone: str,
    meeting_link: str | None = None,
    tags: list[str] | None = None,
) -> dict:
    """List a new service offering.

    service_type is one of: language_class, tutoring, consulting, coaching, other.
    Returns the new service_id.
    """
    return await _run_action("create_service", {
        "provider_id": provider_id,
        "provider_name": provider_name,
        "service_type": service_type,
        "title": title,
        "description": description,
        "price": price,
        "currency": currency,
        "duration_minutes": duration_minutes,
        "date": date,
        "time": time,
        "timezone": timezone,
        "meeting_link": meeting_link,
        "tags": tags or [],
    })


@mcp.tool()
async def create_booking(
    service_id: str,
    client_id: str,
    provider_id: str,
    booking_date: str,
    payment_amount: float,
    payment_currency: str,
    meeting_link: str,
    notes: str = "",
) -> dict:
    """Book a service for a client. Returns the new booking_id."""
    return await _run_action("create_booking", {
        "service_id": service_id,
        "client_id": client_id,
        "provider_id": provider_id,
        "booking_date": booking_date,
        "payment_amount": payment_amount,
        "payment_currency": payment_currency,
        "meeting_link": meeting_link,
        "notes": notes,
    })


@mcp.tool()
async def create_review(
    booking_id: str,
    service_id: str,
    client_id: str,
    provider_id: str,
    rating: int,
    comment: str,
    disputed: bool = False,
    dispute_reason: str | None = None,
) -> dict:
    """Review a booking with a rating from 1 to 5. Returns the new review_id."""
    return await _run_action("create_review", {
        "booking_id": booking_id,
        "service_id": service_id,
        "client_id": client_id,
        "provider_id": provider_id,
        "rating": rating,
        "comment": comment,
        "disputed": disputed,
        "dispute_reason": dispute_reason,
    })


@mcp.tool()
async def get_available_services(service_type: str | None = None) -> dict:
    """List available services, optionally narrowed to one service type."""
    params = {"service_type": service_type} if service_type else {}
    return await _run_action("get_available_services", params)


@mcp.tool()
async def get_client_bookings(client_id: str) -> dict:
    """List all bookings made by a client."""
    return await _run_action("get_client_bookings", {"client_id": client_id})


@mcp.tool()
async def get_provider_bookings(provider_id: str) -> dict:
    """List all bookings for a provider's services."""
    return await _run_action("get_provider_bookings", {"provider_id": provider_id})


@mcp.tool()
async def update_booking_status(
    booking_id: str,
    status: str,
    agent_notes: str | None = None,
) -> dict:
    """Change a booking's status (pending, confirmed, completed, cancelled, disputed).

    The change is acknowledged but not yet written to the storage nodes.
    """
    return await _run_action("update_booking_status", {
        "booking_id": booking_id,
        "status": status,
        "agent_notes": agent_notes,
    })


@mcp.tool()
async def resolve_dispute(review_id: str, resolution: str) -> dict:
    """Resolve a disputed review. Acknowledged but not yet written to the nodes."""
    return await _run_action("resolve_dispute", {
        "review_id": review_id,
        "resolution": resolution,
    })


@mcp.tool()
async def execute_query(query_id: str, variables: dict | None = None) -> dict:
    """Run a named query.

    Args:
        query_id: One of find_services_by_type, find_bookings_by_client,
            find_bookings_by_provider, find_disputed_reviews
        variables: Values for the query's variables, e.g. {"client_id": "..."}
    """
    return await _run_action("execute_query", {
        "query_id": query_id,
        "variables": variables or {},
    })


if __name__ == "__main__":
    mcp.run()
