"""Pytest configuration and fixtures for Moderia tests."""

from __future__ import annotations

import json
from collections import defaultdict
from typing import Any

import httpx
import pytest

from moderia.config import MarketplaceConfig, NodeConfig
from moderia.provider import MarketplaceActionProvider
from moderia.schemas import RecordKind

ENV_VARS = {
    "SV_ORG_DID": "did:nil:testnet:org",
    "SV_PRIVATE_KEY": "test-secret",
    "SV_NODE1_URL": "https://node1.test",
    "SV_NODE1_DID": "did:nil:testnet:node1",
    "SV_NODE2_URL": "https://node2.test",
    "SV_NODE2_DID": "did:nil:testnet:node2",
    "SV_NODE3_URL": "https://node3.test",
    "SV_NODE3_DID": "did:nil:testnet:node3",
    "SCHEMA_ID_SERVICE": "schema-service",
    "SCHEMA_ID_BOOKING": "schema-booking",
    "SCHEMA_ID_REVIEW": "schema-review",
}


class NodeStub:
    """In-memory stand-in for the storage nodes behind an httpx.MockTransport.

    Records every request, stores created records per node, and answers
    reads with records whose fields equal every filter value.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.failing_hosts: dict[str, int] = {}
        self.unreachable_hosts: set[str] = set()
        self.store: dict[str, dict[str, list[dict[str, Any]]]] = defaultdict(lambda: defaultdict(list))
        self.query_results: Any = []

    def fail(self, host: str, status_code: int = 500) -> None:
        self.failing_hosts[host] = status_code

    def hosts(self) -> list[str]:
        return [request.url.host for request in self.requests]

    def bodies(self) -> list[dict[str, Any]]:
        return [json.loads(request.content) for request in self.requests]

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host = request.url.host

        if host in self.unreachable_hosts:
            raise httpx.ConnectError("connection refused", request=request)
        if host in self.failing_hosts:
            return httpx.Response(self.failing_hosts[host], json={"error": "node failure"})

        body = json.loads(request.content)
        path = request.url.path

        if path == "/api/v1/schemas":
            return httpx.Response(200, json={"success": True, "data": body["id"]})
        if path == "/api/v1/data/create":
            self.store[host][body["schema"]].extend(body["data"])
            return httpx.Response(200, json={"success": True, "data": "created"})
        if path == "/api/v1/data/read":
            records = [
                record
                for record in self.store[host][body["schema"]]
                if all(record.get(key) == value for key, value in body["filter"].items())
            ]
            return httpx.Response(200, json={"success": True, "data": records})
        if path == "/api/v1/queries/execute":
            return httpx.Response(200, json={"success": True, "data": self.query_results})
        return httpx.Response(404, json={"error": f"no route {path}"})


def make_config(nodes: tuple[NodeConfig, ...] | None = None) -> MarketplaceConfig:
    if nodes is None:
        nodes = tuple(
            NodeConfig(name=f"NODE{i}", url=f"https://node{i}.test", did=f"did:nil:testnet:node{i}")
            for i in (1, 2, 3)
        )
    return MarketplaceConfig(
        org_did="did:nil:testnet:org",
        private_key="test-secret",
        nodes=nodes,
        schema_ids={
            RecordKind.SERVICE: "schema-service",
            RecordKind.BOOKING: "schema-booking",
            RecordKind.REVIEW: "schema-review",
        },
        request_timeout=5.0,
    )


@pytest.fixture
def config() -> MarketplaceConfig:
    """Configuration with three usable nodes."""
    return make_config()


@pytest.fixture
def empty_config() -> MarketplaceConfig:
    """Configuration where no node has both a URL and an identity."""
    return make_config((
        NodeConfig(name="NODE1", url="", did="did:nil:testnet:node1"),
        NodeConfig(name="NODE2", url="https://node2.test", did=""),
        NodeConfig(name="NODE3", url="", did=""),
    ))


@pytest.fixture
def node_stub() -> NodeStub:
    return NodeStub()


@pytest.fixture
def transport(node_stub: NodeStub) -> httpx.MockTransport:
    return httpx.MockTransport(node_stub.handle)


@pytest.fixture
def provider(config, transport) -> MarketplaceActionProvider:
    return MarketplaceActionProvider(config, transport=transport)


@pytest.fixture
def service_params() -> dict[str, Any]:
    return {
        "provider_id": "prov-1",
        "provider_name": "Ana Tutor",
        "service_type": "tutoring",
        "title": "Algebra tutoring",
        "description": "One-on-one algebra help",
        "price": 50,
        "currency": "USD",
        "duration_minutes": 60,
        "date": "2025-03-10",
        "time": "14:00",
        "timezone": "Europe/Madrid",
        "tags": ["math", "algebra"],
    }


@pytest.fixture
def booking_params() -> dict[str, Any]:
    return {
        "service_id": "svc-1",
        "client_id": "client-1",
        "provider_id": "prov-1",
        "booking_date": "2025-03-10",
        "payment_amount": 50,
        "payment_currency": "USD",
        "meeting_link": "https://meet.example.com/algebra",
    }


@pytest.fixture
def review_params() -> dict[str, Any]:
    return {
        "booking_id": "book-1",
        "service_id": "svc-1",
        "client_id": "client-1",
        "provider_id": "prov-1",
        "rating": 4,
        "comment": "Clear explanations",
    }


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Clear Moderia variables and run from an empty directory (no .env)."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    return monkeypatch


@pytest.fixture
def full_env(clean_env):
    """Set every required variable."""
    for name, value in ENV_VARS.items():
        clean_env.setenv(name, value)
    return clean_env
