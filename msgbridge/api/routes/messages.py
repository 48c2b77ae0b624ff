"""Anthropic-compatible Messages API endpoints."""

import json
import logging
import time
import uuid
from typing import Any, Mapping

from fastapi import Request, Response
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.requests import ClientDisconnect

from ...core.exceptions import (
    InvalidRequestError,
    ProxyError,
    error_response_from_exception,
)
from ...core.registry import get_services

logger = logging.getLogger("msgbridge")

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


async def read_json_object(request: Request) -> Mapping[str, Any]:
    """Read the request body as a JSON object.

    Raises:
        InvalidRequestError: The body is not valid JSON or not an object.
    """
    body = await request.body()
    try:
        payload = json.loads(body or b"{}")
    except json.JSONDecodeError as exc:
        raise InvalidRequestError("Invalid JSON payload", code="invalid_json") from exc
    if not isinstance(payload, Mapping):
        raise InvalidRequestError("Request body must be a JSON object", code="invalid_json_shape")
    return payload


def _validate_messages_request(payload: Mapping[str, Any]) -> None:
    if not payload.get("model") or payload.get("messages") is None or not payload.get("max_tokens"):
        raise InvalidRequestError(
            "Missing required fields: model, messages, and max_tokens are required",
            code="missing_parameter",
        )
    messages = payload.get("messages")
    if not isinstance(messages, list) or not messages:
        raise InvalidRequestError("Messages must be a non-empty array")


async def messages_endpoint(request: Request) -> Response:
    """POST /v1/messages - Anthropic Messages API compatible endpoint."""
    req_id = uuid.uuid4().hex[:8]
    start_time = time.perf_counter()
    client_host = request.client.host if request.client else "unknown"
    logger.info(f"[{req_id}] Messages API request from {client_host}")

    services = get_services()
    try:
        payload = await read_json_object(request)
        _validate_messages_request(payload)
        mapping = services.messages.resolve_model(payload, req_id)
    except ClientDisconnect:
        logger.warning(f"[{req_id}] Client disconnected before the body was read")
        return Response(status_code=499)
    except ProxyError as exc:
        logger.warning(f"[{req_id}] Rejected messages request: {exc.message}")
        return error_response_from_exception(exc)

    if payload.get("stream"):
        logger.info(f"[{req_id}] Starting streaming response for {mapping.source_model} -> {mapping.target_model}")
        return StreamingResponse(
            services.messages.stream_message(payload, mapping, req_id),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    try:
        message = await services.messages.create_message(payload, mapping, req_id)
    except ProxyError as exc:
        elapsed = time.perf_counter() - start_time
        logger.error(f"[{req_id}] Messages request failed after {elapsed:.3f}s: {exc.message}")
        return error_response_from_exception(exc)

    elapsed = time.perf_counter() - start_time
    logger.info(
        f"[{req_id}] Completed non-streaming response for {mapping.source_model}, "
        f"stop_reason={message.get('stop_reason')}, took {elapsed:.3f}s"
    )
    return JSONResponse(message)


async def count_tokens_endpoint(request: Request) -> Response:
    """POST /v1/messages/count_tokens - estimate input tokens."""
    req_id = uuid.uuid4().hex[:8]
    services = get_services()
    try:
        payload = await read_json_object(request)
        if not payload.get("model") or not payload.get("messages"):
            raise InvalidRequestError("Missing required fields: model and messages are required")
        result = services.messages.count_tokens(payload)
    except ProxyError as exc:
        logger.warning(f"[{req_id}] Rejected count_tokens request: {exc.message}")
        return error_response_from_exception(exc)

    logger.debug(f"[{req_id}] Counted {result['input_tokens']} input tokens for {payload.get('model')}")
    return JSONResponse(result)
