"""CLI for Moderia - marketplace actions, API server and MCP server."""

from __future__ import annotations

import asyncio
import json
import logging
import uuid

import click

from moderia import __version__
from moderia.config import MarketplaceConfig, load_config
from moderia.errors import EnvError, format_error_for_agent
from moderia.provider import MarketplaceActionProvider
from moderia.schemas import ActionResult


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _load_config_or_exit() -> MarketplaceConfig:
    try:
        config = load_config()
    except EnvError as e:
        raise click.ClickException(format_error_for_agent(e)) from e
    _setup_logging(config.log_level)
    return config


def _echo_result(label: str, result: ActionResult, raw: bool = False) -> None:
    if raw:
        click.echo(json.dumps(result.model_dump(mode="json"), indent=2))
        return
    mark = "OK" if result.success else "FAILED"
    click.echo(f"[{mark}] {label}: {result.message}")


@click.group()
@click.version_option(version=__version__, prog_name="moderia")
def main() -> None:
    """Moderia - AI marketplace mediator data layer.

    Creates and lists services, bookings and reviews on the encrypted
    multi-node data service.
    """
    pass


@main.command()
@click.option("--port", default=8000, help="Port to run the API on")
@click.option("--host", default="127.0.0.1", help="Host to bind to")
@click.option("--reload", is_flag=True, help="Enable auto-reload for development")
def serve(port: int, host: str, reload: bool) -> None:
    """Start the Moderia HTTP API server."""
    import uvicorn

    _load_config_or_exit()
    click.echo(f"Starting Moderia API on {host}:{port}")
    uvicorn.run(
        "moderia.api:app",
        host=host,
        port=port,
        reload=reload,
    )


@main.command()
def mcp() -> None:
    """Run the MCP server exposing marketplace actions as agent tools.

    \b
    Configure in .mcp.json:
        {
            "mcpServers": {
                "moderia": {
                    "command": "moderia",
                    "args": ["mcp"]
                }
            }
        }
    """
    from mcp_moderia.server import mcp as mcp_server

    _load_config_or_exit()
    mcp_server.run()


@main.command()
def nodes() -> None:
    """Show configured storage nodes and whether they are usable."""
    from moderia.registry import NodeRegistry

    config = load_config(strict=False)
    registry = NodeRegistry.from_config(config)

    for node in registry.all_nodes():
        state = "usable" if node.usable else "unusable"
        click.echo(f"  {node.name}: {node.url or '<no url>'} ({state})")
    click.echo(f"{len(registry.usable_nodes())} of {len(registry.all_nodes())} nodes usable")


@main.command()
def queries() -> None:
    """List the named queries available to execute_query."""
    from moderia.queries import list_queries

    for query in list_queries():
        variables = ", ".join(query.variables) or "none"
        click.echo(f"  {query.query_id}: {query.description} (variables: {variables})")
        click.echo(f"    on {query.record_kind.value} records: {query.template}")


@main.command("setup-schemas")
@click.option("--raw", is_flag=True, help="Output raw JSON instead of formatted text")
def setup_schemas(raw: bool) -> None:
    """Register the service, booking and review schemas on every node."""
    provider = MarketplaceActionProvider(_load_config_or_exit())
    result = asyncio.run(provider.setup_schemas())

    if raw:
        _echo_result("setup", result, raw=True)
    else:
        for kind, outcome in result.schemas.items():
            _echo_result(f"{kind} schema", ActionResult(**outcome))

    if not result.success:
        raise SystemExit(1)


async def _run_demo(provider: MarketplaceActionProvider, raw: bool) -> bool:
    """Walk through a full marketplace flow. Returns True if every step succeeded."""
    results: list[ActionResult] = []

    def step(label: str, result: ActionResult) -> ActionResult:
        results.append(result)
        _echo_result(label, result, raw)
        return result

    provider_id = str(uuid.uuid4())
    client_id = str(uuid.uuid4())

    step("Schemas", await provider.setup_schemas())

    service = step("Create service", await provider.create_service({
        "provider_id": provider_id,
        "provider_name": "Demo Provider",
        "service_type": "language_class",
        "title": "Spanish Language Class",
        "description": "Learn Spanish with a native speaker",
        "price": 50,
        "currency": "USD",
        "duration_minutes": 60,
        "date": "2023-12-31",
        "time": "15:00",
        "timezone": "America/Mexico_City",
        "meeting_link": "https://meet.example.com/spanish-class",
        "tags": ["spanish", "beginner", "language"],
    }))
    service_id = getattr(service, "service_id", None) or str(uuid.uuid4())

    booking = step("Create booking", await provider.create_booking({
        "service_id": service_id,
        "client_id": client_id,
        "provider_id": provider_id,
        "booking_date": "2023-12-31",
        "payment_amount": 50,
        "payment_currency": "USD",
        "meeting_link": "https://meet.example.com/spanish-class-booking",
        "notes": "I would like to focus on conversation basics.",
    }))
    booking_id = getattr(booking, "booking_id", None) or str(uuid.uuid4())

    step("Create review", await provider.create_review({
        "booking_id": booking_id,
        "service_id": service_id,
        "client_id": client_id,
        "provider_id": provider_id,
        "rating": 5,
        "comment": "Excellent class! The instructor was very patient and helpful.",
    }))

    step("Available services", await provider.get_available_services())
    step("Client bookings", await provider.get_client_bookings({"client_id": client_id}))
    step("Provider bookings", await provider.get_provider_bookings({"provider_id": provider_id}))
    step("Update booking status", await provider.update_booking_status({
        "booking_id": booking_id,
        "status": "completed",
        "agent_notes": "The class was completed successfully.",
    }))

    disputed_service_id = str(uuid.uuid4())
    disputed_booking = step("Create booking for dispute", await provider.create_booking({
        "service_id": disputed_service_id,
        "client_id": client_id,
        "provider_id": provider_id,
        "booking_date": "2023-12-30",
        "payment_amount": 75,
        "payment_currency": "USD",
        "meeting_link": "https://meet.example.com/disputed-class",
        "notes": "Advanced lesson",
    }))
    disputed_review = step("Create disputed review", await provider.create_review({
        "booking_id": getattr(disputed_booking, "booking_id", None) or str(uuid.uuid4()),
        "service_id": disputed_service_id,
        "client_id": client_id,
        "provider_id": provider_id,
        "rating": 2,
        "comment": "The class was too advanced for me despite requesting a beginner level.",
        "disputed": True,
        "dispute_reason": "The client requested a beginner class but was enrolled in an advanced class.",
    }))
    step("Resolve dispute", await provider.resolve_dispute({
        "review_id": getattr(disputed_review, "review_id", None) or str(uuid.uuid4()),
        "resolution": "Partial refund issued and a beginner class offered.",
    }))
    step("Disputed reviews query", await provider.execute_query({
        "query_id": "find_disputed_reviews",
    }))

    return all(result.success for result in results)


@main.command()
@click.option("--raw", is_flag=True, help="Output raw JSON instead of formatted text")
def demo(raw: bool) -> None:
    """Run an end-to-end marketplace walkthrough against the configured nodes.

    \b
    Steps: register schemas, create a service, book it, review it, list
    services and bookings, update the booking, open and resolve a dispute,
    then run a named query.
    """
    provider = MarketplaceActionProvider(_load_config_or_exit())
    ok = asyncio.run(_run_demo(provider, raw))

    click.echo()
    if ok:
        click.echo("Demo completed: all steps succeeded")
    else:
        click.echo("Demo completed with failures")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
