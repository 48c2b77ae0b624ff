"""Main FastAPI application for the Messages bridge."""

import logging
from typing import Any, Mapping, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .api.routes import (
    batch_results,
    cancel_batch,
    count_tokens_endpoint,
    create_batch,
    get_batch,
    get_model,
    health,
    list_batches,
    list_models,
    messages_endpoint,
)
from .config_loader import load_config, server_settings
from .core.exceptions import ProxyError, anthropic_error_response, error_response_from_exception
from .core.registry import set_services
from .logging import setup_logging
from .services import build_services

logger = logging.getLogger("msgbridge")

ALLOWED_HEADERS = [
    "Content-Type",
    "Authorization",
    "anthropic-version",
    "anthropic-beta",
    "anthropic-dangerous-direct-browser-access",
]


async def root() -> dict:
    return {
        "message": "Anthropic Messages API to OpenAI bridge",
        "version": __version__,
        "endpoints": {
            "messages": "/v1/messages",
            "models": "/v1/models",
            "health": "/health",
        },
    }


async def _proxy_error_handler(request: Request, exc: ProxyError) -> JSONResponse:
    logger.error(f"Unhandled {exc.__class__.__name__} on {request.method} {request.url.path}: {exc.message}")
    return error_response_from_exception(exc)


async def _http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404:
        return anthropic_error_response(
            f"Endpoint {request.method} {request.url.path} not found",
            error_type="not_found_error",
            status_code=404,
        )
    error_type = "invalid_request_error" if exc.status_code < 500 else "api_error"
    return anthropic_error_response(str(exc.detail), error_type=error_type, status_code=exc.status_code)


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return anthropic_error_response("Internal server error", error_type="api_error", status_code=500)


def create_app(config: Optional[Mapping[str, Any]] = None) -> FastAPI:
    """Factory function to create the FastAPI application.

    Args:
        config: Parsed configuration; loaded from disk when omitted.

    Returns:
        The configured FastAPI application instance.
    """
    if config is None:
        config = load_config()

    services = build_services(config)
    set_services(services)

    app = FastAPI(title="msgbridge", version=__version__)
    app.state.services = services
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=ALLOWED_HEADERS,
    )

    app.add_exception_handler(ProxyError, _proxy_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)

    @app.on_event("startup")
    async def startup_event():
        """Handle application startup."""
        host, port = server_settings(config)
        logger.info("msgbridge starting up...")
        logger.info(f"Configured bind address {host}:{port}")
        logger.info(f"Available models: {', '.join(services.models.names())}")
        logger.info(f"Backend base URL: {services.backend.backend.base_url}")

    @app.on_event("shutdown")
    async def shutdown_event():
        """Stop batch workers and the cache sweep."""
        await services.close()
        logger.info("msgbridge shut down")

    # Register routes
    app.get("/")(root)
    app.get("/health")(health)
    app.get("/v1/models")(list_models)
    app.get("/v1/models/{model_id}")(get_model)
    app.post("/v1/messages")(messages_endpoint)
    app.post("/v1/messages/count_tokens")(count_tokens_endpoint)
    app.post("/v1/messages/batches")(create_batch)
    app.get("/v1/messages/batches")(list_batches)
    app.get("/v1/messages/batches/{batch_id}")(get_batch)
    app.post("/v1/messages/batches/{batch_id}/cancel")(cancel_batch)
    app.get("/v1/messages/batches/{batch_id}/results")(batch_results)

    logger.info("FastAPI application created")
    return app


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    setup_logging()
    config = load_config()
    host, port = server_settings(config)
    uvicorn.run(create_app(config), host=host, port=port)


__all__ = ["create_app", "run"]
