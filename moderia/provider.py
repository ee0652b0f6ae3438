"""Action provider exposing marketplace actions to the agent tool layer.

Every action validates its input before any network call, builds records
locally (identifier and timestamps included), delegates to the fan-out
client, and returns an ``ActionResult``. Actions never raise: failures are
reported as ``success=False`` with a formatted message.
"""

from __future__ import annotations

import copy
import functools
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping

import httpx

from moderia.config import MarketplaceConfig, load_config
from moderia.errors import ConfigError, format_error_for_agent
from moderia.fanout import FanoutClient
from moderia.queries import get_query
from moderia.schemas import (
    ActionParams,
    ActionResult,
    BookingFilter,
    BookingRecord,
    ClientBookingsParams,
    CreateBookingParams,
    CreateReviewParams,
    CreateServiceParams,
    ExecuteQueryParams,
    NoParams,
    ProviderBookingsParams,
    RecordKind,
    ResolveDisputeParams,
    ReviewRecord,
    ServiceFilter,
    ServiceRecord,
    UpdateBookingStatusParams,
    parse_params,
    schema_payload,
)

logger = logging.getLogger(__name__)

Params = Mapping[str, Any] | ActionParams | None


def agent_action(**failure_payload: Any) -> Callable:
    """Turn any error raised by an action into a failed ActionResult.

    ``failure_payload`` holds the operation-specific fields returned on
    failure, e.g. an empty record list for reads.
    """

    def decorator(func: Callable[..., Awaitable[ActionResult]]) -> Callable:
        @functools.wraps(func)
        async def wrapper(self: MarketplaceActionProvider, params: Params = None) -> ActionResult:
            try:
                return await func(self, params)
            except Exception as e:
                logger.error(f"Action {func.__name__} failed: {e}")
                return ActionResult(
                    success=False,
                    message=format_error_for_agent(e),
                    **copy.deepcopy(failure_payload),
                )

        return wrapper

    return decorator


class MarketplaceActionProvider:
    """One coroutine per marketplace action."""

    def __init__(
        self,
        config: MarketplaceConfig,
        fanout: FanoutClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self.fanout = fanout or FanoutClient(config, transport=transport)

    def _schema_id(self, kind: RecordKind) -> str:
        schema_id = self.config.schema_id(kind)
        if not schema_id:
            raise ConfigError(f"No schema id configured for {kind.value} records")
        return schema_id

    async def _register_schema(self, kind: RecordKind) -> ActionResult:
        schema_id = self._schema_id(kind)
        await self.fanout.create_schema(schema_payload(kind, schema_id))
        return ActionResult(
            success=True,
            message=f"{kind.value.capitalize()} schema created successfully",
            schema_id=schema_id,
        )

    # --- Schema management ---

    @agent_action()
    async def create_service_schema(self, params: Params = None) -> ActionResult:
        parse_params(NoParams, params)
        return await self._register_schema(RecordKind.SERVICE)

    @agent_action()
    async def create_booking_schema(self, params: Params = None) -> ActionResult:
        parse_params(NoParams, params)
        return await self._register_schema(RecordKind.BOOKING)

    @agent_action()
    async def create_review_schema(self, params: Params = None) -> ActionResult:
        parse_params(NoParams, params)
        return await self._register_schema(RecordKind.REVIEW)

    @agent_action(schemas={})
    async def setup_schemas(self, params: Params = None) -> ActionResult:
        """Register all three schemas, one kind after another."""
        parse_params(NoParams, params)
        results = {
            RecordKind.SERVICE.value: await self.create_service_schema(),
            RecordKind.BOOKING.value: await self.create_booking_schema(),
            RecordKind.REVIEW.value: await self.create_review_schema(),
        }
        failed = [kind for kind, result in results.items() if not result.success]
        if failed:
            message = f"Schema setup failed for: {', '.join(failed)}"
        else:
            message = "All schemas created successfully"
        return ActionResult(
            success=not failed,
            message=message,
            schemas={kind: result.model_dump() for kind, result in results.items()},
        )

    # --- Record creation ---

    @agent_action()
    async def create_service(self, params: Params = None) -> ActionResult:
        """List a new service. Creates a new record on every call."""
        parsed: CreateServiceParams = parse_params(CreateServiceParams, params)
        schema_id = self._schema_id(RecordKind.SERVICE)
        record = ServiceRecord(**parsed.model_dump())

        await self.fanout.create_records(schema_id, [record.model_dump(mode="json")])
        return ActionResult(
            success=True,
            message="Service created successfully",
            service_id=record.id,
        )

    @agent_action()
    async def create_booking(self, params: Params = None) -> ActionResult:
        """Book a service.

        The referenced service is not looked up, and the booking starts out
        as ``confirmed`` rather than ``pending``.
        """
        parsed: CreateBookingParams = parse_params(CreateBookingParams, params)
        schema_id = self._schema_id(RecordKind.BOOKING)
        record = BookingRecord(**parsed.model_dump())

        # TODO: mark the booked service unavailable once updates are persisted
        await self.fanout.create_records(schema_id, [record.model_dump(mode="json")])
        return ActionResult(
            success=True,
            message="Booking created successfully",
            booking_id=record.id,
        )

    @agent_action()
    async def create_review(self, params: Params = None) -> ActionResult:
        parsed: CreateReviewParams = parse_params(CreateReviewParams, params)
        schema_id = self._schema_id(RecordKind.REVIEW)
        record = ReviewRecord(**parsed.model_dump())

        await self.fanout.create_records(schema_id, [record.model_dump(mode="json")])
        return ActionResult(
            success=True,
            message="Review created successfully",
            review_id=record.id,
        )

    # --- Reads ---

    @agent_action(services=[])
    async def get_available_services(self, params: Params = None) -> ActionResult:
        service_filter: ServiceFilter = parse_params(ServiceFilter, params)
        records = await self.fanout.read_records(
            self._schema_id(RecordKind.SERVICE), service_filter.to_filter()
        )
        return ActionResult(
            success=True,
            message="Available services retrieved successfully",
            services=records or [],
        )

    @agent_action(bookings=[])
    async def get_client_bookings(self, params: Params = None) -> ActionResult:
        parsed: ClientBookingsParams = parse_params(ClientBookingsParams, params)
        records = await self.fanout.read_records(
            self._schema_id(RecordKind.BOOKING),
            BookingFilter(client_id=parsed.client_id).to_filter(),
        )
        return ActionResult(
            success=True,
            message="Client bookings retrieved successfully",
            bookings=records or [],
        )

    @agent_action(bookings=[])
    async def get_provider_bookings(self, params: Params = None) -> ActionResult:
        parsed: ProviderBookingsParams = parse_params(ProviderBookingsParams, params)
        records = await self.fanout.read_records(
            self._schema_id(RecordKind.BOOKING),
            BookingFilter(provider_id=parsed.provider_id).to_filter(),
        )
        return ActionResult(
            success=True,
            message="Provider bookings retrieved successfully",
            bookings=records or [],
        )

    # --- Status changes (acknowledged, not persisted) ---

    @agent_action()
    async def update_booking_status(self, params: Params = None) -> ActionResult:
        """Validate a status change and acknowledge it.

        Nothing is written to the nodes: records are immutable from this
        layer, so the result carries ``persisted=False``.
        """
        parsed: UpdateBookingStatusParams = parse_params(UpdateBookingStatusParams, params)
        logger.info(
            f"Booking {parsed.booking_id} status change to {parsed.status.value} "
            "acknowledged without persisting"
        )
        return ActionResult(
            success=True,
            message=f"Booking status update to {parsed.status.value} acknowledged (not yet persisted)",
            booking_id=parsed.booking_id,
            status=parsed.status.value,
            persisted=False,
        )

    @agent_action()
    async def resolve_dispute(self, params: Params = None) -> ActionResult:
        """Validate a dispute resolution and acknowledge it without persisting."""
        parsed: ResolveDisputeParams = parse_params(ResolveDisputeParams, params)
        logger.info(f"Dispute on review {parsed.review_id} resolution acknowledged without persisting")
        return ActionResult(
            success=True,
            message="Dispute resolution acknowledged (not yet persisted)",
            review_id=parsed.review_id,
            persisted=False,
        )

    # --- Named queries ---

    @agent_action(results=[])
    async def execute_query(self, params: Params = None) -> ActionResult:
        parsed: ExecuteQueryParams = parse_params(ExecuteQueryParams, params)
        query = get_query(parsed.query_id)
        results = await self.fanout.execute_query(query.query_id, parsed.variables)
        return ActionResult(
            success=True,
            message=f"Query '{query.name}' executed successfully",
            results=results if results is not None else [],
        )


@dataclass(frozen=True)
class ActionSpec:
    """Tool-layer description of one provider action."""

    name: str
    description: str
    params_model: type[ActionParams]


ACTIONS: dict[str, ActionSpec] = {
    spec.name: spec
    for spec in [
        ActionSpec("create_service_schema", "Register the service schema on all nodes", NoParams),
        ActionSpec("create_booking_schema", "Register the booking schema on all nodes", NoParams),
        ActionSpec("create_review_schema", "Register the review schema on all nodes", NoParams),
        ActionSpec("setup_schemas", "Register all three schemas on all nodes", NoParams),
        ActionSpec("create_service", "List a new service offering", CreateServiceParams),
        ActionSpec("create_booking", "Book a service for a client", CreateBookingParams),
        ActionSpec("create_review", "Review a booking with a 1-5 rating", CreateReviewParams),
        ActionSpec("get_available_services", "List available services, optionally by type", ServiceFilter),
        ActionSpec("get_client_bookings", "List a client's bookings", ClientBookingsParams),
        ActionSpec("get_provider_bookings", "List a provider's bookings", ProviderBookingsParams),
        ActionSpec("update_booking_status", "Change a booking's status", UpdateBookingStatusParams),
        ActionSpec("resolve_dispute", "Resolve a disputed review", ResolveDisputeParams),
        ActionSpec("execute_query", "Run a named query from the catalog", ExecuteQueryParams),
    ]
}


async def dispatch_action(
    provider: MarketplaceActionProvider,
    name: str,
    params: Params = None,
) -> ActionResult:
    """Run an action by name.

    Raises:
        KeyError: If no action has this name
    """
    spec = ACTIONS[name]
    method = getattr(provider, spec.name)
    return await method(params)


def moderia_action_provider(
    transport: httpx.AsyncBaseTransport | None = None,
) -> MarketplaceActionProvider:
    """Create a provider from the environment.

    Raises:
        EnvError: If required configuration is missing
    """
    return MarketplaceActionProvider(load_config(), transport=transport)
