"""Message Batches API endpoints."""

import json
import logging

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from ...core.exceptions import ProxyError, error_response_from_exception
from ...core.registry import get_services
from .messages import read_json_object

logger = logging.getLogger("msgbridge")


async def create_batch(request: Request) -> Response:
    """POST /v1/messages/batches"""
    services = get_services()
    try:
        payload = await read_json_object(request)
        job = services.batches.create(payload.get("requests"))
    except ProxyError as exc:
        logger.warning(f"Rejected batch: {exc.message}")
        return error_response_from_exception(exc)
    return JSONResponse(job.to_dict())


async def list_batches() -> dict:
    """GET /v1/messages/batches"""
    jobs = get_services().batches.list()
    return {
        "object": "list",
        "data": [job.to_dict() for job in jobs],
        "has_more": False,
        "first_id": jobs[0].id if jobs else None,
        "last_id": jobs[-1].id if jobs else None,
    }


async def get_batch(batch_id: str) -> Response:
    """GET /v1/messages/batches/{batch_id}"""
    try:
        job = get_services().batches.get(batch_id)
    except ProxyError as exc:
        return error_response_from_exception(exc)
    return JSONResponse(job.to_dict())


async def cancel_batch(batch_id: str) -> Response:
    """POST /v1/messages/batches/{batch_id}/cancel"""
    try:
        job = get_services().batches.cancel(batch_id)
    except ProxyError as exc:
        logger.info(f"Cannot cancel batch {batch_id}: {exc.message}")
        return error_response_from_exception(exc)
    return JSONResponse(job.to_dict())


async def batch_results(batch_id: str) -> Response:
    """GET /v1/messages/batches/{batch_id}/results - one JSON record per line."""
    try:
        records = get_services().batches.results(batch_id)
    except ProxyError as exc:
        return error_response_from_exception(exc)
    body = "\n".join(json.dumps(record, ensure_ascii=False) for record in records)
    return Response(content=body, media_type="application/jsonl")
