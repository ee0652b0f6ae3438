"""Process-wide configuration, loaded once from the environment.

Values come from the process environment and an optional ``.env`` file.
The loaded ``MarketplaceConfig`` is immutable and is passed explicitly to
the node registry, fan-out client and action provider.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Mapping

from pydantic import ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from moderia.errors import MISSING_ENV_VARS, EnvError
from moderia.schemas import RecordKind

logger = logging.getLogger(__name__)

NODE_NAMES = ("NODE1", "NODE2", "NODE3")

DEFAULT_TIMEOUT = 30.0  # seconds
DEFAULT_LOG_LEVEL = "INFO"

REQUIRED_ENV_VARS = [
    "SV_ORG_DID",
    "SV_PRIVATE_KEY",
    *[f"SV_{name}_{suffix}" for name in NODE_NAMES for suffix in ("URL", "DID")],
    "SCHEMA_ID_SERVICE",
    "SCHEMA_ID_BOOKING",
    "SCHEMA_ID_REVIEW",
]


class EnvSettings(BaseSettings):
    """Raw environment values. Missing keys load as empty strings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    sv_org_did: str = ""
    sv_private_key: str = ""
    sv_node1_url: str = ""
    sv_node1_did: str = ""
    sv_node2_url: str = ""
    sv_node2_did: str = ""
    sv_node3_url: str = ""
    sv_node3_did: str = ""
    schema_id_service: str = ""
    schema_id_booking: str = ""
    schema_id_review: str = ""
    moderia_request_timeout: float = DEFAULT_TIMEOUT
    moderia_log_level: str = DEFAULT_LOG_LEVEL

    def missing(self) -> list[str]:
        """Names of required variables that are unset or empty."""
        return [name for name in REQUIRED_ENV_VARS if not getattr(self, name.lower())]


@dataclass(frozen=True)
class NodeConfig:
    """Connection info for one storage node."""

    name: str
    url: str
    did: str

    @property
    def usable(self) -> bool:
        return bool(self.url and self.did)


@dataclass(frozen=True)
class MarketplaceConfig:
    """Immutable configuration for the marketplace data layer."""

    org_did: str
    private_key: str
    nodes: tuple[NodeConfig, ...]
    schema_ids: Mapping[RecordKind, str] = field(default_factory=dict, hash=False)
    request_timeout: float = DEFAULT_TIMEOUT
    log_level: str = DEFAULT_LOG_LEVEL

    def __post_init__(self) -> None:
        # Read-only view so schema ids cannot be swapped after loading
        object.__setattr__(self, "schema_ids", MappingProxyType(dict(self.schema_ids)))

    def schema_id(self, kind: RecordKind) -> str:
        return self.schema_ids.get(kind, "")

    def auth_headers(self) -> dict[str, str]:
        """Static bearer credential sent with every node request."""
        return {
            "Authorization": f"Bearer {self.private_key}",
            "Content-Type": "application/json",
        }


def config_from_settings(settings: EnvSettings) -> MarketplaceConfig:
    """Build a MarketplaceConfig from loaded environment settings."""
    nodes = tuple(
        NodeConfig(
            name=name,
            url=getattr(settings, f"sv_{name.lower()}_url").strip(),
            did=getattr(settings, f"sv_{name.lower()}_did").strip(),
        )
        for name in NODE_NAMES
    )
    return MarketplaceConfig(
        org_did=settings.sv_org_did,
        private_key=settings.sv_private_key,
        nodes=nodes,
        schema_ids={
            RecordKind.SERVICE: settings.schema_id_service,
            RecordKind.BOOKING: settings.schema_id_booking,
            RecordKind.REVIEW: settings.schema_id_review,
        },
        request_timeout=settings.moderia_request_timeout,
        log_level=settings.moderia_log_level.upper(),
    )


def load_config(
    strict: bool = True,
    env_file: Path | str | None = ".env",
) -> MarketplaceConfig:
    """Load configuration from the environment.

    Args:
        strict: Raise EnvError when any required variable is missing
        env_file: Optional dotenv file read in addition to the environment

    Returns:
        MarketplaceConfig built from the environment

    Raises:
        EnvError: If strict and required variables are missing, or if any
            variable holds a value of the wrong type
    """
    try:
        settings = EnvSettings(_env_file=env_file)
    except ValidationError as e:
        invalid = [str(err["loc"][0]).upper() for err in e.errors() if err["loc"]]
        raise EnvError(
            f"Invalid environment variables: {', '.join(invalid)}",
            details={"invalid_vars": invalid},
        ) from e
    missing = settings.missing()
    if missing:
        if strict:
            raise EnvError(
                f"{MISSING_ENV_VARS}: {', '.join(missing)}",
                details={"missing_vars": missing},
            )
        logger.warning(f"Configuration incomplete, missing: {', '.join(missing)}")
    return config_from_settings(settings)
