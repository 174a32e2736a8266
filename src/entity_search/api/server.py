"""
HTTP API Server for Entity Search.

Exposes the Searcher operations over HTTP. Every search-like route accepts
GET (query parameters; ``filter``, ``sort``, ``lang`` and ``termLanguages``
are JSON-encoded) and POST (JSON body). Errors are returned as the
``to_dict()`` of the raised error: 400 for validation errors, 500 otherwise.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from entity_search import __version__
from entity_search.container import ApplicationContainer
from entity_search.shared.exceptions import EntitySearchError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_API_HOST = "127.0.0.1"
DEFAULT_API_PORT = 8080

JSON_PARAMS = ("filter", "sort", "lang", "termLanguages")

# (path suffix, Searcher method)
SEARCH_OPERATIONS = (
    ("search", "search"),
    ("autocomplete", "autocomplete"),
    ("formSearch", "form_search"),
    ("browseAll", "browse_all"),
    ("suggestedQueries", "suggested_queries"),
    ("view", "view"),
)


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    instance: str
    types: int
    version: str


Endpoint = Callable[[Request], Awaitable[JSONResponse]]


# =============================================================================
# Request decoding
# =============================================================================


def decode_query_params(params: dict[str, str]) -> dict[str, Any]:
    """
    Query parameters → raw operation input.

    Raises:
        ValidationError: NON_CONFORMING_FORMAT when a JSON parameter does not parse
    """
    raw: dict[str, Any] = {}
    for key, value in params.items():
        if key in JSON_PARAMS:
            try:
                raw[key] = json.loads(value)
            except ValueError:
                raise ValidationError(
                    f"Parameter '{key}' must be JSON encoded",
                    code="NON_CONFORMING_FORMAT",
                    field=key,
                ) from None
        elif key == "type" and "," in value:
            raw[key] = [part for part in value.split(",") if part]
        else:
            raw[key] = value
    return raw


async def read_input(request: Request) -> Any:
    """Raw input of a request: decoded query for GET, JSON body otherwise (``None`` if empty)."""
    if request.method == "GET":
        return decode_query_params(dict(request.query_params))

    body = await request.body()
    if not body:
        return None
    try:
        return json.loads(body)
    except ValueError:
        raise ValidationError("Request body must be JSON", code="NON_CONFORMING_FORMAT", field="body") from None


def serialize(result: Any) -> Any:
    return result.to_dict() if hasattr(result, "to_dict") else result


# =============================================================================
# Endpoints
# =============================================================================


def _searcher(request: Request) -> Any:
    return request.app.state.container.searcher()


def operation_endpoint(method_name: str, *, type_from_path: bool = False) -> Endpoint:
    """Endpoint calling ``Searcher.<method_name>(headers, raw_input)``."""

    async def endpoint(request: Request) -> JSONResponse:
        raw = await read_input(request)
        if type_from_path:
            raw = {**(raw or {}), "type": request.path_params["type"]}
        operation = getattr(_searcher(request), method_name)
        result = await operation(dict(request.headers), raw)
        return JSONResponse(serialize(result))

    endpoint.__name__ = method_name
    return endpoint


async def term_vectors_endpoint(request: Request) -> JSONResponse:
    raw = {"type": request.path_params["type"], "id": request.path_params["id"]}
    result = await _searcher(request).term_vectors(dict(request.headers), raw)
    return JSONResponse(result)


async def get_endpoint(request: Request) -> JSONResponse:
    raw = {"type": request.path_params["type"], "id": request.path_params["id"]}
    doc = await _searcher(request).get(dict(request.headers), raw)
    if doc is None:
        return JSONResponse(
            {"error": f"Document {raw['type']}/{raw['id']} not found", "code": "NOT_FOUND"},
            status_code=404,
        )
    return JSONResponse(doc)


async def health_endpoint(request: Request) -> HealthResponse:
    """Health check endpoint."""
    registry = request.app.state.container.registry()
    return HealthResponse(
        status="healthy",
        instance=registry.instance_name,
        types=len(registry.types),
        version=__version__,
    )


# =============================================================================
# Application
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    container: ApplicationContainer = app.state.container

    # Startup: fail fast on a broken configuration
    registry = container.registry()
    logger.info(f"HTTP API server initialized for '{registry.instance_name}'")

    yield

    # Shutdown
    logger.info("HTTP API server shutting down")
    await container.gateway().close()


def create_api_server(container: ApplicationContainer) -> FastAPI:
    """
    Create the FastAPI server.

    Args:
        container: Configured application container

    Returns:
        Configured FastAPI instance.
    """
    app = FastAPI(
        title="Entity Search API",
        description="Configuration-driven search over typed entity collections.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(exc.to_dict(), status_code=400)

    @app.exception_handler(EntitySearchError)
    async def service_error_handler(request: Request, exc: EntitySearchError) -> JSONResponse:
        return JSONResponse(exc.to_dict(), status_code=500)

    methods = ["GET", "POST"]

    app.add_api_route("/health", health_endpoint, methods=["GET"], response_model=HealthResponse)
    app.add_api_route("/intent", operation_endpoint("intent"), methods=methods)
    app.add_api_route("/explain/search", operation_endpoint("explain_search"), methods=methods)
    app.add_api_route("/explain/autocomplete", operation_endpoint("explain_autocomplete"), methods=methods)

    for suffix, method_name in SEARCH_OPERATIONS:
        app.add_api_route(f"/{suffix}", operation_endpoint(method_name), methods=methods)
    for suffix, method_name in SEARCH_OPERATIONS:
        app.add_api_route(f"/{{type}}/{suffix}", operation_endpoint(method_name, type_from_path=True), methods=methods)

    app.add_api_route("/{type}/{id}/termVectors", term_vectors_endpoint, methods=["GET"])
    app.add_api_route("/{type}/{id}", get_endpoint, methods=["GET"])

    return app


def run_api_server(container: ApplicationContainer, host: str = DEFAULT_API_HOST, port: int = DEFAULT_API_PORT):
    """
    Run the HTTP API server.

    Args:
        container: Configured application container
        host: Host to bind to (default: 127.0.0.1 for local only)
        port: Port to bind to (default: 8080)
    """
    import uvicorn

    logger.info(f"Starting HTTP API server on {host}:{port}")
    uvicorn.run(create_api_server(container), host=host, port=port, log_level="info")
