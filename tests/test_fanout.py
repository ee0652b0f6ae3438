"""Tests for the multi-node fan-out client."""

import httpx
import pytest

from moderia.errors import ConfigError, NetworkError, QueryError
from moderia.fanout import (
    CREATE_DATA_PATH,
    READ_DATA_PATH,
    FanoutClient,
    FanoutResult,
    NodeOutcome,
    NodeSelector,
)


@pytest.fixture
def client(config, transport):
    return FanoutClient(config, transport=transport)


class TestFanoutResult:
    """Test all-nodes aggregation."""

    def test_all_ok_is_success(self):
        result = FanoutResult([NodeOutcome("NODE1", True), NodeOutcome("NODE2", True)])
        assert result.success is True

    def test_any_failure_is_failure(self):
        result = FanoutResult([NodeOutcome("NODE1", True), NodeOutcome("NODE2", False, error="500")])

        assert result.success is False
        assert result.failed_nodes == ["NODE2"]
        assert result.succeeded_nodes == ["NODE1"]

    def test_no_outcomes_is_failure(self):
        assert FanoutResult().success is False

    def test_raise_for_failure_names_nodes(self):
        result = FanoutResult([NodeOutcome("NODE1", True), NodeOutcome("NODE3", False, error="boom")])

        with pytest.raises(NetworkError) as exc_info:
            result.raise_for_failure()

        assert "NODE3 (boom)" in exc_info.value.message
        assert exc_info.value.details["succeeded_nodes"] == ["NODE1"]


class TestBroadcastWrite:
    """Test write fan-out to every node."""

    @pytest.mark.asyncio
    async def test_write_reaches_every_node(self, client, node_stub):
        """The same payload is sent once to each usable node."""
        payload = {"schema": "schema-service", "data": [{"id": "r-1"}]}

        result = await client.broadcast_write(client.registry.usable_nodes(), CREATE_DATA_PATH, payload)

        assert result.success is True
        assert sorted(node_stub.hosts()) == ["node1.test", "node2.test", "node3.test"]
        assert all(body == payload for body in node_stub.bodies())

    @pytest.mark.asyncio
    async def test_requests_carry_credentials(self, client, node_stub):
        """Every request has the bearer credential and JSON content type."""
        await client.broadcast_write(client.registry.usable_nodes(), CREATE_DATA_PATH, {"schema": "s", "data": []})

        for request in node_stub.requests:
            assert request.headers["Authorization"] == "Bearer test-secret"
            assert request.headers["Content-Type"] == "application/json"
            assert request.method == "POST"

    @pytest.mark.asyncio
    async def test_one_failing_node_fails_whole_write(self, client, node_stub):
        """One rejection fails the call; the other nodes keep their writes."""
        node_stub.fail("node2.test", 503)
        payload = {"schema": "schema-service", "data": [{"id": "r-1"}]}

        result = await client.broadcast_write(client.registry.usable_nodes(), CREATE_DATA_PATH, payload)

        assert result.success is False
        assert result.failed_nodes == ["NODE2"]
        assert result.succeeded_nodes == ["NODE1", "NODE3"]
        assert node_stub.store["node1.test"]["schema-service"] == [{"id": "r-1"}]
        assert node_stub.store["node3.test"]["schema-service"] == [{"id": "r-1"}]
        assert node_stub.store["node2.test"]["schema-service"] == []

    @pytest.mark.asyncio
    async def test_failure_outcome_carries_status_and_body(self, client, node_stub):
        node_stub.fail("node1.test", 400)

        result = await client.broadcast_write(client.registry.usable_nodes(), CREATE_DATA_PATH, {"schema": "s", "data": []})

        outcome = result.outcomes[0]
        assert outcome.status_code == 400
        assert "400" in outcome.error
        assert "node failure" in outcome.error

    @pytest.mark.asyncio
    async def test_unreachable_node_does_not_stop_others(self, client, node_stub):
        """Transport errors are recorded per node; other branches complete."""
        node_stub.unreachable_hosts.add("node1.test")

        result = await client.broadcast_write(client.registry.usable_nodes(), CREATE_DATA_PATH, {"schema": "s", "data": [{"id": 1}]})

        assert result.success is False
        assert result.failed_nodes == ["NODE1"]
        assert "ConnectError" in result.outcomes[0].error
        assert len(node_stub.requests) == 3

    @pytest.mark.asyncio
    async def test_invalid_url_is_a_failed_branch(self, config, node_stub):
        """A malformed node URL fails its own branch while the rest finish."""

        def handler(request):
            if request.url.host == "node2.test":
                raise httpx.InvalidURL("invalid port")
            return node_stub.handle(request)

        client = FanoutClient(config, transport=httpx.MockTransport(handler))
        result = await client.broadcast_write(
            client.registry.usable_nodes(), CREATE_DATA_PATH, {"schema": "s", "data": [{"id": 1}]}
        )

        assert result.success is False
        assert result.failed_nodes == ["NODE2"]
        assert "InvalidURL" in result.outcomes[1].error
        assert result.succeeded_nodes == ["NODE1", "NODE3"]

    @pytest.mark.asyncio
    async def test_body_success_false_counts_as_failure(self, config):
        """A 200 with success=false is a failed branch."""

        def handler(request):
            return httpx.Response(200, json={"success": False, "error": "duplicate"})

        client = FanoutClient(config, transport=httpx.MockTransport(handler))
        result = await client.broadcast_write(client.registry.usable_nodes(), CREATE_DATA_PATH, {})

        assert result.success is False
        assert len(result.failed_nodes) == 3

    @pytest.mark.asyncio
    async def test_no_nodes_raises_without_requests(self, empty_config, transport, node_stub):
        """No usable nodes fails fast with ConfigError."""
        client = FanoutClient(empty_config, transport=transport)

        with pytest.raises(ConfigError):
            await client.broadcast_write(client.registry.usable_nodes(), CREATE_DATA_PATH, {})

        assert node_stub.requests == []

    @pytest.mark.asyncio
    async def test_create_records_raises_on_partial_failure(self, client, node_stub):
        node_stub.fail("node3.test")

        with pytest.raises(NetworkError) as exc_info:
            await client.create_records("schema-service", [{"id": "r-1"}])

        assert exc_info.value.details["failed_nodes"] == ["NODE3"]


class TestReadOne:
    """Test single-node reads."""

    @pytest.mark.asyncio
    async def test_reads_first_usable_node_only(self, client, node_stub):
        node_stub.store["node1.test"]["schema-service"].append({"id": "a", "available": True})
        node_stub.store["node2.test"]["schema-service"].append({"id": "b", "available": True})

        records = await client.read_records("schema-service", {"available": True})

        assert records == [{"id": "a", "available": True}]
        assert node_stub.hosts() == ["node1.test"]
        assert node_stub.requests[0].url.path == READ_DATA_PATH
        assert node_stub.bodies()[0] == {"schema": "schema-service", "filter": {"available": True}}

    @pytest.mark.asyncio
    async def test_failing_read_node_has_no_fallback(self, client, node_stub):
        """A failing first node is not retried on another node."""
        node_stub.fail("node1.test", 500)

        with pytest.raises(NetworkError) as exc_info:
            await client.read_records("schema-service", {})

        assert exc_info.value.details["status"] == 500
        assert node_stub.hosts() == ["node1.test"]

    @pytest.mark.asyncio
    async def test_unreachable_read_node_raises_network_error(self, client, node_stub):
        node_stub.unreachable_hosts.add("node1.test")

        with pytest.raises(NetworkError):
            await client.read_records("schema-service", {})

        assert len(node_stub.requests) == 1

    @pytest.mark.asyncio
    async def test_invalid_url_read_raises_network_error(self, config):
        def handler(request):
            raise httpx.InvalidURL("invalid port")

        client = FanoutClient(config, transport=httpx.MockTransport(handler))

        with pytest.raises(NetworkError) as exc_info:
            await client.read_records("schema-service", {})

        assert exc_info.value.details["node"] == "NODE1"

    @pytest.mark.asyncio
    async def test_no_nodes_raises_without_requests(self, empty_config, transport, node_stub):
        client = FanoutClient(empty_config, transport=transport)

        with pytest.raises(ConfigError):
            await client.read_records("schema-service", {})

        assert node_stub.requests == []

    @pytest.mark.asyncio
    async def test_custom_selector(self, config, transport, node_stub):
        """Node selection is pluggable."""

        class LastNodeSelector(NodeSelector):
            def select(self, nodes):
                return nodes[-1]

        client = FanoutClient(config, selector=LastNodeSelector(), transport=transport)
        await client.read_records("schema-booking", {"client_id": "c-1"})

        assert node_stub.hosts() == ["node3.test"]


class TestExecuteQuery:
    """Test named query execution."""

    @pytest.mark.asyncio
    async def test_unknown_query_fails_before_http(self, client, node_stub):
        with pytest.raises(QueryError):
            await client.execute_query("not_a_query")

        assert node_stub.requests == []

    @pytest.mark.asyncio
    async def test_known_query_hits_one_node(self, client, node_stub):
        node_stub.query_results = [{"id": "rev-1", "disputed": True}]

        results = await client.execute_query("find_disputed_reviews")

        assert results == [{"id": "rev-1", "disputed": True}]
        assert len(node_stub.requests) == 1
        assert node_stub.requests[0].url.path == "/api/v1/queries/execute"
        assert node_stub.bodies()[0] == {"id": "find_disputed_reviews", "variables": {}}

    @pytest.mark.asyncio
    async def test_query_variables_forwarded(self, client, node_stub):
        await client.execute_query("find_bookings_by_client", {"client_id": "c-9"})

        assert node_stub.bodies()[0]["variables"] == {"client_id": "c-9"}
