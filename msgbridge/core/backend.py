"""Chat backend configuration and HTTP client."""

import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Mapping, Optional

import httpx

from .exceptions import BackendError, BackendResponseError, ConfigurationError
from .sse import iter_sse_json
from .upstream_transport import get_upstream_transport

logger = logging.getLogger("msgbridge")

DEFAULT_TIMEOUT = 60
DEFAULT_BASE_URL = "https://api.openai.com/v1"
CHAT_COMPLETIONS_PATH = "/chat/completions"


@dataclass
class Backend:
    """Represents the OpenAI-compatible chat backend."""

    name: str
    base_url: str
    api_key: str
    timeout: Optional[float] = DEFAULT_TIMEOUT

    def build_url(self, path: str) -> str:
        """Build the full URL for a backend request."""
        base = self.base_url.rstrip("/")
        normalized_path = path or ""
        if not normalized_path.startswith("/"):
            normalized_path = f"/{normalized_path}"
        return f"{base}{normalized_path}"

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "Backend":
        section = config.get("backend") or {}
        if not isinstance(section, Mapping):
            raise ConfigurationError("'backend' section must be a mapping")
        timeout = section.get("timeout", DEFAULT_TIMEOUT)
        try:
            timeout = float(timeout) if timeout is not None else None
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid backend timeout: {timeout}") from exc
        return cls(
            name=str(section.get("name") or "openai"),
            base_url=str(section.get("base_url") or DEFAULT_BASE_URL),
            api_key=str(section.get("api_key") or ""),
            timeout=timeout,
        )


def format_httpx_error(exc: Any, backend: Backend, url: Optional[str] = None) -> str:
    """Produce a detailed, user-facing description of an httpx error."""
    parts = [exc.__class__.__name__]
    message = str(exc).strip()
    if message:
        parts.append(message)

    try:
        request = exc.request
    except (AttributeError, RuntimeError):
        request = None
    if request is not None:
        parts.append(f"request={request.method} {request.url}")
    elif url:
        parts.append(f"url={url}")

    if isinstance(exc, httpx.TimeoutException):
        timeout = backend.timeout or DEFAULT_TIMEOUT
        parts.append(f"timeout={timeout}s")

    return "; ".join(parts)


def _error_detail(body: bytes) -> str:
    """Pull a readable message out of an error body."""
    try:
        payload = json.loads(body)
    except (ValueError, UnicodeDecodeError):
        return body.decode("utf-8", errors="replace")[:500]
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
    return json.dumps(payload)[:500]


class BackendClient:
    """Sends chat completion requests to the configured backend."""

    def __init__(self, backend: Backend) -> None:
        self.backend = backend

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept-Encoding": "identity",
        }
        if self.backend.api_key:
            headers["Authorization"] = f"Bearer {self.backend.api_key}"
        return headers

    @property
    def url(self) -> str:
        return self.backend.build_url(CHAT_COMPLETIONS_PATH)

    async def create_chat_completion(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        """POST a non-streaming chat completion and return the decoded body.

        Raises:
            BackendError: Transport failure or non-2xx status.
            BackendResponseError: The body is not a JSON object.
        """
        url = self.url
        body = dict(payload)
        body["stream"] = False
        timeout = self.backend.timeout or DEFAULT_TIMEOUT
        transport = get_upstream_transport(url)

        logger.debug(f"Initiating non-streaming request to {url}")
        try:
            async with httpx.AsyncClient(
                timeout=timeout, transport=transport, follow_redirects=True
            ) as client:
                resp = await client.post(url, headers=self._headers(), json=body)
        except httpx.HTTPError as exc:
            detail = format_httpx_error(exc, self.backend, url)
            logger.error(f"Backend {self.backend.name} request failed: {detail}")
            raise BackendError(f"Backend request failed: {detail}") from exc

        logger.debug(f"Received response from {url}: status {resp.status_code}")
        if resp.status_code >= 400:
            detail = _error_detail(resp.content)
            logger.warning(f"Backend {self.backend.name} returned {resp.status_code}: {detail}")
            raise BackendError(
                f"Backend returned status {resp.status_code}: {detail}",
                status=resp.status_code,
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise BackendResponseError("Backend returned a non-JSON body") from exc
        if not isinstance(data, dict):
            raise BackendResponseError("Backend returned a non-object JSON body")
        return data

    async def stream_chat_completion(
        self, payload: Mapping[str, Any]
    ) -> AsyncIterator[dict[str, Any]]:
        """POST a streaming chat completion and yield decoded chunks.

        The HTTP connection is closed when the generator finishes or is
        closed early.
        """
        url = self.url
        body = dict(payload)
        body["stream"] = True
        timeout = self.backend.timeout or DEFAULT_TIMEOUT
        stream_timeout = httpx.Timeout(connect=timeout, read=timeout, write=timeout, pool=timeout)
        transport = get_upstream_transport(url)

        logger.debug(f"Sending streaming request to {url}")
        async with httpx.AsyncClient(
            timeout=stream_timeout, transport=transport, follow_redirects=True
        ) as client:
            try:
                async with client.stream(
                    "POST", url, headers=self._headers(), json=body
                ) as resp:
                    if resp.status_code >= 400:
                        data = await resp.aread()
                        detail = _error_detail(data)
                        logger.warning(
                            f"Streaming request to {url} returned error status {resp.status_code}"
                        )
                        raise BackendError(
                            f"Backend returned status {resp.status_code}: {detail}",
                            status=resp.status_code,
                        )
                    async for chunk in iter_sse_json(resp.aiter_bytes()):
                        yield chunk
            except httpx.HTTPError as exc:
                detail = format_httpx_error(exc, self.backend, url)
                logger.error(f"HTTP error during streaming to {url}: {detail}")
                raise BackendError(f"Backend stream failed: {detail}") from exc
