"""Pydantic schemas for marketplace records, action parameters and results."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from moderia.errors import DataError


class RecordKind(str, Enum):
    """Persisted record kinds."""

    SERVICE = "service"
    BOOKING = "booking"
    REVIEW = "review"


class ServiceType(str, Enum):
    """Closed set of service offerings."""

    LANGUAGE_CLASS = "language_class"
    TUTORING = "tutoring"
    CONSULTING = "consulting"
    COACHING = "coaching"
    OTHER = "other"


class BookingStatus(str, Enum):
    """Booking lifecycle states."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"


RATING_MIN = 1
RATING_MAX = 5


def _new_id() -> str:
    return str(uuid.uuid4())


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _dedupe(values: list[str]) -> list[str]:
    return list(dict.fromkeys(values))


# --- Records ---


class BaseRecord(BaseModel):
    """Fields shared by every record. Identity and timestamps are set locally."""

    id: str = Field(default_factory=_new_id)
    created_at: str = Field(default_factory=_utc_now)
    updated_at: str = Field(default_factory=_utc_now)
    # Informational only: field encryption happens in the remote store
    encrypted: bool = True


class ServiceRecord(BaseRecord):
    """A service offered by a provider."""

    provider_id: str
    provider_name: str
    service_type: ServiceType
    title: str
    description: str
    price: float = Field(..., ge=0)
    currency: str
    duration_minutes: int = Field(..., gt=0)
    date: str
    time: str
    timezone: str
    meeting_link: str | None = None
    available: bool = True
    tags: list[str] = Field(default_factory=list)

    @field_validator("tags")
    @classmethod
    def distinct_tags(cls, value: list[str]) -> list[str]:
        return _dedupe(value)


class BookingRecord(BaseRecord):
    """A client's booking of a service."""

    service_id: str
    client_id: str
    provider_id: str
    status: BookingStatus = BookingStatus.CONFIRMED
    booking_date: str
    payment_amount: float = Field(..., ge=0)
    payment_currency: str
    meeting_link: str
    notes: str = ""
    agent_notes: str | None = None


class ReviewRecord(BaseRecord):
    """A client's review of a completed booking."""

    booking_id: str
    service_id: str
    client_id: str
    provider_id: str
    rating: int = Field(..., ge=RATING_MIN, le=RATING_MAX)
    comment: str
    disputed: bool = False
    dispute_reason: str | None = None
    agent_resolution: str | None = None


# --- Action parameters ---


class ActionParams(BaseModel):
    """Flat parameter object accepted from the agent tool layer.

    Accepts both snake_case and camelCase keys; unknown keys are rejected.
    """

    model_config = ConfigDict(
        extra="forbid",
        populate_by_name=True,
        alias_generator=to_camel,
    )


class CreateServiceParams(ActionParams):
    provider_id: str = Field(..., min_length=1)
    provider_name: str = Field(..., min_length=1)
    service_type: ServiceType
    title: str = Field(..., min_length=1)
    description: str
    price: float = Field(..., ge=0)
    currency: str = Field(..., min_length=1)
    duration_minutes: int = Field(..., gt=0)
    date: str
    time: str
    timezone: str
    meeting_link: str | None = None
    tags: list[str] = Field(default_factory=list)

    @field_validator("tags")
    @classmethod
    def distinct_tags(cls, value: list[str]) -> list[str]:
        return _dedupe(value)


class CreateBookingParams(ActionParams):
    service_id: str = Field(..., min_length=1)
    client_id: str = Field(..., min_length=1)
    provider_id: str = Field(..., min_length=1)
    booking_date: str
    payment_amount: float = Field(..., ge=0)
    payment_currency: str = Field(..., min_length=1)
    meeting_link: str
    notes: str = ""


class CreateReviewParams(ActionParams):
    booking_id: str = Field(..., min_length=1)
    service_id: str = Field(..., min_length=1)
    client_id: str = Field(..., min_length=1)
    provider_id: str = Field(..., min_length=1)
    rating: int = Field(..., ge=RATING_MIN, le=RATING_MAX)
    comment: str
    disputed: bool = False
    dispute_reason: str | None = None


class ClientBookingsParams(ActionParams):
    client_id: str = Field(..., min_length=1)


class ProviderBookingsParams(ActionParams):
    provider_id: str = Field(..., min_length=1)


class UpdateBookingStatusParams(ActionParams):
    booking_id: str = Field(..., min_length=1)
    status: BookingStatus
    agent_notes: str | None = None


class ResolveDisputeParams(ActionParams):
    review_id: str = Field(..., min_length=1)
    resolution: str = Field(..., min_length=1)


class ExecuteQueryParams(ActionParams):
    query_id: str = Field(..., min_length=1)
    variables: dict[str, Any] = Field(default_factory=dict)


class NoParams(ActionParams):
    """Parameters for actions that take no input."""


# --- Read filters ---


class ServiceFilter(ActionParams):
    """Filter for listing available services."""

    service_type: ServiceType | None = None

    def to_filter(self) -> dict[str, Any]:
        query: dict[str, Any] = {"available": True}
        if self.service_type is not None:
            query["service_type"] = self.service_type.value
        return query


class BookingFilter(ActionParams):
    """Filter for listing bookings by one party."""

    client_id: str | None = None
    provider_id: str | None = None

    def to_filter(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


def parse_params(model: type[ActionParams], params: Any) -> Any:
    """Validate a raw parameter mapping, raising DataError on failure."""
    if isinstance(params, model):
        return params
    try:
        return model.model_validate(params or {})
    except ValidationError as e:
        problems = []
        for err in e.errors():
            location = ".".join(str(part) for part in err["loc"]) or "params"
            problems.append(f"{location}: {err['msg']}")
        raise DataError(
            f"Invalid parameters: {'; '.join(problems)}",
            details=e.errors(include_url=False),
        ) from e


# --- Results ---


class ActionResult(BaseModel):
    """Uniform outcome returned to the agent tool layer.

    Operation-specific payload (created id, matching records) sits beside
    ``success`` and ``message`` as extra fields.
    """

    model_config = ConfigDict(extra="allow")

    success: bool
    message: str


class NodeStatus(BaseModel):
    """Node configuration as reported by health checks."""

    name: str
    url: str
    usable: bool


class HealthResponse(BaseModel):
    """Health check response."""

    api: str = "healthy"
    usable_nodes: int = 0
    nodes: list[NodeStatus] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    """Error response for failed requests."""

    detail: str
    error_code: str | None = None


# --- Schema registration payloads ---


def _field(name: str, type_: str, encrypted: bool = False, **extra: str) -> dict[str, Any]:
    return {"name": name, "type": type_, "encrypted": encrypted, **extra}


_BASE_FIELDS = [
    _field("id", "string"),
    _field("created_at", "string"),
    _field("updated_at", "string"),
    _field("encrypted", "boolean"),
]

SCHEMA_FIELDS: dict[RecordKind, list[dict[str, Any]]] = {
    RecordKind.SERVICE: _BASE_FIELDS + [
        _field("provider_id", "string"),
        _field("provider_name", "string", encrypted=True),
        _field("service_type", "string"),
        _field("title", "string"),
        _field("description", "string", encrypted=True),
        _field("price", "number"),
        _field("currency", "string"),
        _field("duration_minutes", "number"),
        _field("date", "string"),
        _field("time", "string"),
        _field("timezone", "string"),
        _field("meeting_link", "string", encrypted=True),
        _field("available", "boolean"),
        _field("tags", "array", arrayType="string"),
    ],
    RecordKind.BOOKING: _BASE_FIELDS + [
        _field("service_id", "string"),
        _field("client_id", "string"),
        _field("provider_id", "string"),
        _field("status", "string"),
        _field("booking_date", "string"),
        _field("payment_amount", "number"),
        _field("payment_currency", "string"),
        _field("meeting_link", "string", encrypted=True),
        _field("notes", "string", encrypted=True),
        _field("agent_notes", "string", encrypted=True),
    ],
    RecordKind.REVIEW: _BASE_FIELDS + [
        _field("booking_id", "string"),
        _field("service_id", "string"),
        _field("client_id", "string"),
        _field("provider_id", "string"),
        _field("rating", "number"),
        _field("comment", "string", encrypted=True),
        _field("disputed", "boolean"),
        _field("dispute_reason", "string", encrypted=True),
        _field("agent_resolution", "string", encrypted=True),
    ],
}

SCHEMA_DESCRIPTIONS: dict[RecordKind, str] = {
    RecordKind.SERVICE: "Service offerings in the Moderia marketplace",
    RecordKind.BOOKING: "Bookings in the Moderia marketplace",
    RecordKind.REVIEW: "Reviews in the Moderia marketplace",
}


def schema_payload(kind: RecordKind, schema_id: str) -> dict[str, Any]:
    """Build the schema registration body for a record kind."""
    return {
        "id": schema_id,
        "name": kind.value,
        "description": SCHEMA_DESCRIPTIONS[kind],
        "fields": [dict(f) for f in SCHEMA_FIELDS[kind]],
    }
