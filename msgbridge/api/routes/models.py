"""Models listing and health endpoints."""

import logging
from datetime import datetime, timezone

from fastapi import Response
from fastapi.responses import JSONResponse

from ... import __version__
from ...core.exceptions import ModelNotFoundError, error_response_from_exception
from ...core.models import ModelMapping
from ...core.registry import get_services

logger = logging.getLogger("msgbridge")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def model_info(mapping: ModelMapping) -> dict:
    """Describe a mapped model in Anthropic's model format plus OpenAI fields."""
    name = mapping.source_model
    now = _now_iso()
    return {
        "id": name,
        "type": "model",
        "display_name": mapping.description or name,
        "created_at": now,
        "updated_at": now,
        "max_tokens": mapping.max_tokens,
        "vision": "vision" in name or "3-5" in name,
        "tools": True,
        "computer_use": "3-5" in name,
        "web_search": False,
        "thinking": "sonnet" in name or "opus" in name,
        "description": f"{name} - Claude model adapted via OpenAI",
        "context_length": mapping.max_tokens,
        "object": "model",
        "owned_by": "anthropic",
    }


async def list_models() -> dict:
    """List available models.

    GET /v1/models

    Returns:
        A dictionary containing the list of available models.
    """
    logger.info("Received models list request")
    models = get_services().models.all_models()
    return {
        "object": "list",
        "data": [model_info(mapping) for mapping in models],
    }


async def get_model(model_id: str) -> Response:
    """GET /v1/models/{model_id}"""
    mapping = get_services().models.get(model_id)
    if mapping is None:
        return error_response_from_exception(ModelNotFoundError(f"Model {model_id} not found"))
    return JSONResponse(model_info(mapping))


async def health() -> dict:
    """GET /health"""
    return {"status": "ok", "timestamp": _now_iso(), "version": __version__}
