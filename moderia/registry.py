"""Registry of storage nodes derived from configuration."""

from __future__ import annotations

from moderia.config import MarketplaceConfig, NodeConfig
from moderia.errors import INVALID_NODE_CONFIG, ConfigError


class NodeRegistry:
    """Read-only view over the configured storage nodes."""

    def __init__(self, nodes: tuple[NodeConfig, ...] | list[NodeConfig]):
        self._nodes = {node.name: node for node in nodes}

    @classmethod
    def from_config(cls, config: MarketplaceConfig) -> NodeRegistry:
        return cls(config.nodes)

    def all_nodes(self) -> list[NodeConfig]:
        """All configured nodes, usable or not, in configuration order."""
        return list(self._nodes.values())

    def usable_nodes(self) -> list[NodeConfig]:
        """Nodes that have both an endpoint URL and an identity."""
        return [node for node in self._nodes.values() if node.usable]

    def get(self, name: str) -> NodeConfig:
        """Get a node by name.

        Raises:
            ConfigError: If no node has this name
        """
        try:
            return self._nodes[name]
        except KeyError:
            raise ConfigError(
                f"{INVALID_NODE_CONFIG}: unknown node '{name}'",
                details={"node": name},
            ) from None

    def validate(self, name: str) -> NodeConfig:
        """Check that a named node is usable and return it.

        Raises:
            ConfigError: If the node is unknown or lacks URL or identity
        """
        node = self.get(name)
        if not node.usable:
            missing = [label for label, value in (("url", node.url), ("did", node.did)) if not value]
            raise ConfigError(
                f"{INVALID_NODE_CONFIG} for {name}: missing {', '.join(missing)}",
                details={"node": name, "missing": missing},
            )
        return node
