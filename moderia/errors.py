"""Error types for the Moderia marketplace data layer."""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Machine-readable error codes."""

    ENV_ERROR = "ENV_ERROR"
    CONFIG_ERROR = "CONFIG_ERROR"
    SCHEMA_ERROR = "SCHEMA_ERROR"
    DATA_ERROR = "DATA_ERROR"
    QUERY_ERROR = "QUERY_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"


# Base messages, prefixed to the specific cause
MISSING_ENV_VARS = "Missing required environment variables"
INVALID_NODE_CONFIG = "Invalid node configuration"
SCHEMA_CREATION_FAILED = "Failed to create schema"
DATA_CREATION_FAILED = "Failed to create data"
DATA_RETRIEVAL_FAILED = "Failed to retrieve data"
QUERY_EXECUTION_FAILED = "Failed to execute query"


class ModeriaError(Exception):
    """Base error carrying a code and optional details."""

    code: ErrorCode = ErrorCode.DATA_ERROR

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details


class EnvError(ModeriaError):
    """Raised when required configuration is missing."""

    code = ErrorCode.ENV_ERROR


class ConfigError(ModeriaError):
    """Raised when a node or the whole node set is unusable."""

    code = ErrorCode.CONFIG_ERROR


class SchemaError(ModeriaError):
    """Raised when a schema definition cannot be registered."""

    code = ErrorCode.SCHEMA_ERROR


class DataError(ModeriaError):
    """Raised when input fails domain validation."""

    code = ErrorCode.DATA_ERROR


class QueryError(ModeriaError):
    """Raised for unknown or unexecutable named queries."""

    code = ErrorCode.QUERY_ERROR


class NetworkError(ModeriaError):
    """Raised when a node call fails or returns a non-success status."""

    code = ErrorCode.NETWORK_ERROR


def format_error_for_agent(error: BaseException) -> str:
    """Render an error as a one-line message for the calling agent."""
    if isinstance(error, ModeriaError):
        return f"Error [{error.code.value}]: {error.message}"
    return f"Error: {error}"
