"""HTTP front end for the relay.

``POST /mcp`` takes one JSON-RPC request, relays it to the persistent
worker and returns the worker's response body.  Notifications (no
``id``) are forwarded and answered with 202.  ``GET /health`` reports
worker state and queue depth.

Usage:
    clarity-bridge relay                  # Listens on 127.0.0.1:3001
    clarity-bridge relay --port 9000      # Custom port
"""

from __future__ import annotations

import json
import logging
import math
from typing import TYPE_CHECKING, Any

from clarity_bridge.errors import NotReadyError, RelayError

if TYPE_CHECKING:
    from fastapi.responses import JSONResponse
    from starlette.requests import Request

    from clarity_bridge.config import BridgeConfig
    from clarity_bridge.relay import Relay

logger = logging.getLogger(__name__)


def _error_response(message: str, code: str, status_code: int) -> JSONResponse:
    """Return a structured error response and log the error."""
    from fastapi.responses import JSONResponse

    logger.warning("Relay error [%s] %s: %s", status_code, code, message)
    return JSONResponse(
        {"success": False, "error": code, "message": message},
        status_code=status_code,
    )


async def _parse_json_body(request: Request) -> dict[str, Any] | JSONResponse:
    """Parse and validate a JSON-RPC request body, returning 400 on failure."""
    try:
        body = await request.json()
    except (json.JSONDecodeError, ValueError, UnicodeDecodeError):
        return _error_response("Invalid JSON body", "VALIDATION_ERROR", 400)
    if not isinstance(body, dict):
        return _error_response("Request body must be a JSON object", "VALIDATION_ERROR", 400)
    if "id" not in body:
        # JSON-RPC notifications carry a method and no id.
        if isinstance(body.get("method"), str):
            return body
        return _error_response(
            "Request must carry an 'id' or be a notification with a 'method'", "VALIDATION_ERROR", 400
        )
    request_id = body["id"]
    if isinstance(request_id, float) and not math.isfinite(request_id):
        return _error_response("Request 'id' must be a finite number", "VALIDATION_ERROR", 400)
    if isinstance(request_id, bool) or not isinstance(request_id, (str, int, float)):
        return _error_response("Request must carry a string or number 'id'", "VALIDATION_ERROR", 400)
    return body


def create_app(relay: Relay, *, manage_lifecycle: bool = True) -> Any:
    """Create the FastAPI application bound to *relay*.

    With *manage_lifecycle* the app starts the worker on startup and stops
    it on shutdown.  Tests pass an already-driven relay and ``False``.
    """
    import contextlib
    from collections.abc import AsyncIterator

    from fastapi import FastAPI, Request
    from fastapi.responses import JSONResponse, Response

    # Expose Request in module globals so PEP 563 deferred annotations resolve
    globals()["Request"] = Request

    @contextlib.asynccontextmanager
    async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
        if manage_lifecycle:
            await relay.start()
        try:
            yield
        finally:
            if manage_lifecycle:
                await relay.stop()

    app = FastAPI(title="Clarity MCP Relay", docs_url=None, redoc_url=None, lifespan=_lifespan)
    app.state.relay = relay

    @app.post("/mcp")
    async def relay_request(request: Request) -> JSONResponse:
        if not relay.ready:
            return _error_response("Please wait for MCP to initialize", NotReadyError.code, 503)
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        try:
            if "id" not in body:
                await relay.notify(body)
                return Response(status_code=202)
            response = await relay.submit(body)
        except RelayError as exc:
            return _error_response(str(exc), exc.code, exc.status_code)
        return JSONResponse(response)

    @app.get("/health")
    async def health() -> JSONResponse:
        return JSONResponse(relay.health())

    return app


def main(config: BridgeConfig) -> None:
    """Start the relay server with the worker command from *config*."""
    import uvicorn

    from clarity_bridge.relay import Relay

    relay = Relay.from_config(config.relay)
    app = create_app(relay)

    host, port = config.relay.host, config.relay.port
    print(f"Clarity MCP relay: http://{host}:{port}")
    print(f"  MCP endpoint:  http://{host}:{port}/mcp")
    print(f"  Health check:  http://{host}:{port}/health")
    uvicorn.run(app, host=host, port=port, log_level="warning")
