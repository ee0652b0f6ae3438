"""Fan-out client issuing requests to the storage nodes.

Writes are broadcast to every usable node concurrently and succeed only if
all nodes succeed. There is no compensation: when some nodes accept a write
and others reject it, the accepted copies stay in place and the node set
diverges. Reads go to a single node chosen by a ``NodeSelector``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from moderia.config import MarketplaceConfig, NodeConfig
from moderia.errors import (
    DATA_CREATION_FAILED,
    DATA_RETRIEVAL_FAILED,
    QUERY_EXECUTION_FAILED,
    SCHEMA_CREATION_FAILED,
    ConfigError,
    NetworkError,
)
from moderia.queries import bind_variables, get_query
from moderia.registry import NodeRegistry

logger = logging.getLogger(__name__)

# Node API endpoints
CREATE_SCHEMA_PATH = "/api/v1/schemas"
CREATE_DATA_PATH = "/api/v1/data/create"
READ_DATA_PATH = "/api/v1/data/read"
EXECUTE_QUERY_PATH = "/api/v1/queries/execute"

# Characters of a failing response body kept in error messages
MAX_ERROR_BODY_CHARS = 300

# InvalidURL does not derive from HTTPError
REQUEST_ERRORS = (httpx.HTTPError, httpx.InvalidURL)


@dataclass
class NodeOutcome:
    """Result of one node's branch of a fan-out."""

    node: str
    ok: bool
    status_code: int | None = None
    body: Any = None
    error: str | None = None


@dataclass
class FanoutResult:
    """Aggregate of every node's outcome for one broadcast write."""

    outcomes: list[NodeOutcome] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """True only when every node reported success."""
        return bool(self.outcomes) and all(outcome.ok for outcome in self.outcomes)

    @property
    def succeeded_nodes(self) -> list[str]:
        return [outcome.node for outcome in self.outcomes if outcome.ok]

    @property
    def failed_nodes(self) -> list[str]:
        return [outcome.node for outcome in self.outcomes if not outcome.ok]

    def raise_for_failure(self, message: str = DATA_CREATION_FAILED) -> None:
        """Raise NetworkError if any node failed."""
        if self.success:
            return
        failures = [f"{o.node} ({o.error})" for o in self.outcomes if not o.ok]
        raise NetworkError(
            f"{message}: {'; '.join(failures)}",
            details={
                "failed_nodes": self.failed_nodes,
                "succeeded_nodes": self.succeeded_nodes,
            },
        )


class NodeSelector:
    """Chooses which node serves a read."""

    def select(self, nodes: list[NodeConfig]) -> NodeConfig:
        raise NotImplementedError


class FirstUsableSelector(NodeSelector):
    """Always read from the first usable node, with no fallback."""

    def select(self, nodes: list[NodeConfig]) -> NodeConfig:
        return nodes[0]


def _node_url(node: NodeConfig, path: str) -> str:
    return f"{node.url.rstrip('/')}{path}"


def _describe_failure(response: httpx.Response) -> str:
    text = response.text
    if len(text) > MAX_ERROR_BODY_CHARS:
        text = text[:MAX_ERROR_BODY_CHARS] + "..."
    status_line = f"{response.status_code} {response.reason_phrase}".strip()
    return f"{status_line}: {text}" if text else status_line


def _parse_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


def _body_reports_success(body: Any) -> bool:
    if isinstance(body, dict):
        return body.get("success", True) is not False
    return True


class FanoutClient:
    """HTTP client that fans writes out to all nodes and reads from one."""

    def __init__(
        self,
        config: MarketplaceConfig,
        registry: NodeRegistry | None = None,
        selector: NodeSelector | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            config: Immutable marketplace configuration
            registry: Node registry (built from config when omitted)
            selector: Read node selection policy (first usable by default)
            transport: Optional httpx transport, used to stub the nodes in tests
        """
        self.config = config
        self.registry = registry or NodeRegistry.from_config(config)
        self.selector = selector or FirstUsableSelector()
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.config.request_timeout,
            headers=self.config.auth_headers(),
            transport=self._transport,
        )

    async def _send_to_node(
        self,
        client: httpx.AsyncClient,
        node: NodeConfig,
        path: str,
        payload: dict[str, Any],
    ) -> NodeOutcome:
        """Run one branch of a fan-out; never raises for transport errors."""
        try:
            response = await client.post(_node_url(node, path), json=payload)
        except REQUEST_ERRORS as e:
            logger.warning(f"Node {node.name} unreachable for {path}: {e}")
            return NodeOutcome(node=node.name, ok=False, error=f"{type(e).__name__}: {e}")

        body = _parse_body(response)
        if not response.is_success:
            logger.warning(f"Node {node.name} rejected {path}: {response.status_code}")
            return NodeOutcome(
                node=node.name,
                ok=False,
                status_code=response.status_code,
                body=body,
                error=_describe_failure(response),
            )

        ok = _body_reports_success(body)
        logger.debug(f"Node {node.name} answered {path}: {response.status_code}, ok={ok}")
        return NodeOutcome(
            node=node.name,
            ok=ok,
            status_code=response.status_code,
            body=body,
            error=None if ok else "node reported success=false",
        )

    async def broadcast_write(
        self,
        nodes: list[NodeConfig],
        path: str,
        payload: dict[str, Any],
    ) -> FanoutResult:
        """Send the same write to every node concurrently.

        Waits for every branch. Failed branches do not cancel the others,
        and successful writes are not rolled back when another node fails.

        Raises:
            ConfigError: If there are no nodes to write to
        """
        if not nodes:
            raise ConfigError("No valid nodes configured")

        async with self._client() as client:
            outcomes = await asyncio.gather(
                *(self._send_to_node(client, node, path, payload) for node in nodes)
            )

        result = FanoutResult(outcomes=list(outcomes))
        if result.success:
            logger.info(f"Broadcast {path} accepted by {len(nodes)} node(s)")
        else:
            logger.error(
                f"Broadcast {path} failed on {result.failed_nodes}, "
                f"accepted by {result.succeeded_nodes}"
            )
        return result

    async def read_one(
        self,
        nodes: list[NodeConfig],
        path: str,
        body: dict[str, Any],
        failure_message: str = DATA_RETRIEVAL_FAILED,
    ) -> Any:
        """Send a read to one node and return its ``data`` payload.

        Raises:
            ConfigError: If there are no nodes to read from
            NetworkError: If the node is unreachable or answers with an error
        """
        if not nodes:
            raise ConfigError("No valid nodes configured")

        node = self.selector.select(nodes)
        async with self._client() as client:
            try:
                response = await client.post(_node_url(node, path), json=body)
            except REQUEST_ERRORS as e:
                logger.error(f"Read from {node.name} failed: {e}")
                raise NetworkError(
                    f"{failure_message}: {node.name} unreachable ({e})",
                    details={"node": node.name},
                ) from e

        if not response.is_success:
            raise NetworkError(
                f"{failure_message}: {_describe_failure(response)}",
                details={
                    "node": node.name,
                    "status": response.status_code,
                    "body": _parse_body(response),
                },
            )

        parsed = _parse_body(response)
        if isinstance(parsed, dict):
            if parsed.get("success") is False:
                raise NetworkError(
                    f"{failure_message}: {parsed.get('error') or 'node reported success=false'}",
                    details={"node": node.name, "body": parsed},
                )
            return parsed.get("data")
        return parsed

    # --- Endpoint helpers ---

    async def create_schema(self, payload: dict[str, Any]) -> FanoutResult:
        """Register a schema on every usable node."""
        result = await self.broadcast_write(
            self.registry.usable_nodes(), CREATE_SCHEMA_PATH, payload
        )
        result.raise_for_failure(SCHEMA_CREATION_FAILED)
        return result

    async def create_records(
        self, schema_id: str, records: list[dict[str, Any]]
    ) -> FanoutResult:
        """Write records to every usable node."""
        result = await self.broadcast_write(
            self.registry.usable_nodes(),
            CREATE_DATA_PATH,
            {"schema": schema_id, "data": records},
        )
        result.raise_for_failure(DATA_CREATION_FAILED)
        return result

    async def read_records(self, schema_id: str, filter: dict[str, Any]) -> Any:
        """Read matching records from one node."""
        return await self.read_one(
            self.registry.usable_nodes(),
            READ_DATA_PATH,
            {"schema": schema_id, "filter": filter},
        )

    async def execute_query(
        self, query_id: str, variables: dict[str, Any] | None = None
    ) -> Any:
        """Execute a catalogued query on one node.

        Raises:
            QueryError: If the query id is not in the catalog or the
                variables do not match it
        """
        query = get_query(query_id)
        bound = bind_variables(query, variables or {})
        return await self.read_one(
            self.registry.usable_nodes(),
            EXECUTE_QUERY_PATH,
            {"id": query.query_id, "variables": bound},
            failure_message=QUERY_EXECUTION_FAILED,
        )
