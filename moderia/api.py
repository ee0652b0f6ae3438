"""HTTP surface exposing marketplace actions to agent tools and dashboards."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import Body, FastAPI, HTTPException
from fastapi.responses import JSONResponse

from moderia import __version__
from moderia.config import load_config
from moderia.errors import ModeriaError
from moderia.provider import ACTIONS, MarketplaceActionProvider, dispatch_action
from moderia.registry import NodeRegistry
from moderia.schemas import ActionResult, ErrorResponse, HealthResponse, NodeStatus

logger = logging.getLogger(__name__)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

app = FastAPI(
    title="Moderia Marketplace API",
    description="Marketplace actions backed by the encrypted multi-node data service",
    version=__version__,
)


# Global provider instance
_provider_instance: MarketplaceActionProvider | None = None


def get_provider() -> MarketplaceActionProvider:
    """Get or create the global action provider.

    Raises:
        EnvError: If required configuration is missing
    """
    global _provider_instance
    if _provider_instance is None:
        _provider_instance = MarketplaceActionProvider(load_config())
    return _provider_instance


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Report which configured nodes are usable."""
    registry = NodeRegistry.from_config(load_config(strict=False))
    nodes = [
        NodeStatus(name=node.name, url=node.url, usable=node.usable)
        for node in registry.all_nodes()
    ]
    return HealthResponse(
        api="healthy",
        usable_nodes=len(registry.usable_nodes()),
        nodes=nodes,
    )


@app.get("/actions")
async def list_actions() -> list[dict[str, Any]]:
    """Describe every action and its parameter schema."""
    return [
        {
            "name": spec.name,
            "description": spec.description,
            "parameters": spec.params_model.model_json_schema(by_alias=False),
        }
        for spec in ACTIONS.values()
    ]


@app.post("/actions/{name}")
async def run_action(
    name: str,
    params: dict[str, Any] | None = Body(default=None),
) -> JSONResponse:
    """Run one action.

    Args:
        name: Action name, e.g. ``create_service``
        params: Flat parameter object for the action

    Returns:
        The action's result; failures are reported with ``success: false``
    """
    if name not in ACTIONS:
        raise HTTPException(status_code=404, detail=f"Unknown action: {name}")

    logger.info(f"Received action request: {name}")
    result: ActionResult = await dispatch_action(get_provider(), name, params)
    logger.info(f"Completed action: {name}, success={result.success}")
    return JSONResponse(content=result.model_dump(mode="json"))


@app.exception_handler(ModeriaError)
async def moderia_exception_handler(request, exc: ModeriaError) -> JSONResponse:
    """Handle configuration errors raised outside of actions."""
    logger.error(f"Request failed: {exc.message}")
    return JSONResponse(
        status_code=503,
        content=ErrorResponse(detail=exc.message, error_code=exc.code.value).model_dump(),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request, exc: Exception) -> JSONResponse:
    """Handle uncaught exceptions."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            detail=str(exc),
            error_code="INTERNAL_ERROR",
        ).model_dump(),
    )
