"""FastAPI application exposing the relay service over HTTP."""

from __future__ import annotations

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from lyra.config import RelayConfig
from lyra.log import get_logger
from lyra.relay.service import CORS_HEADERS, RelayResult, RelayService, internal_error

logger = get_logger(__name__)


def _to_response(result: RelayResult) -> JSONResponse:
    return JSONResponse(status_code=result.status_code, content=result.body, headers=CORS_HEADERS)


def create_app(config: RelayConfig, http_client: httpx.AsyncClient | None = None) -> FastAPI:
    """Build the relay app. ``http_client`` overrides the outbound transport."""
    service = RelayService(config, http_client=http_client)

    app = FastAPI(
        title="LYRA Relay",
        description="Relays chat messages to the LYRA automation webhook",
        version="0.1.0",
        docs_url=None,
        redoc_url=None,
    )
    app.state.relay_service = service

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        headers = {**(exc.headers or {}), **CORS_HEADERS}
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=headers)

    @app.options("/{path:path}")
    async def preflight(path: str) -> Response:
        return Response(status_code=200, headers=CORS_HEADERS)

    @app.get("/health")
    async def health() -> JSONResponse:
        return JSONResponse(content={"status": "ok"}, headers=CORS_HEADERS)

    @app.post("/")
    async def relay(request: Request) -> JSONResponse:
        try:
            payload = await request.json()
            result = await service.relay(payload)
        except Exception as e:
            logger.exception("relay_internal_error", error=str(e))
            result = internal_error(e)
        return _to_response(result)

    logger.info(
        "relay_app_created",
        webhook_url=config.webhook_url,
        secret_configured=bool(config.auth_token),
    )
    return app
