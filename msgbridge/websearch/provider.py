"""Client for the external web search service."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

import httpx

from ..core.exceptions import ConfigurationError
from ..core.upstream_transport import get_upstream_transport

logger = logging.getLogger("msgbridge")

DEFAULT_SEARCH_TIMEOUT = 60.0
DEFAULT_TOP_K = 10


@dataclass
class SearchSettings:
    base_url: str = ""
    api_key: str = ""
    timeout: float = DEFAULT_SEARCH_TIMEOUT
    top_k: int = DEFAULT_TOP_K

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "SearchSettings":
        section = config.get("web_search") or {}
        if not isinstance(section, Mapping):
            raise ConfigurationError("'web_search' section must be a mapping")
        try:
            timeout = float(section.get("timeout") or DEFAULT_SEARCH_TIMEOUT)
            top_k = int(section.get("top_k") or DEFAULT_TOP_K)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid web_search settings: {exc}") from exc
        return cls(
            base_url=str(section.get("base_url") or ""),
            api_key=str(section.get("api_key") or ""),
            timeout=timeout,
            top_k=top_k,
        )


def build_search_history(request: Mapping[str, Any]) -> list[dict[str, str]]:
    """Flatten system and messages into the provider's history format.

    Non-text blocks are included as their JSON encoding.
    """
    history: list[dict[str, str]] = []

    system = request.get("system")
    if isinstance(system, str) and system:
        history.append({"role": "system", "content": system})
    elif isinstance(system, list):
        for block in system:
            if isinstance(block, Mapping) and block.get("type") == "text":
                history.append({"role": "system", "content": str(block.get("text", ""))})
            else:
                history.append({"role": "system", "content": json.dumps(block, ensure_ascii=False)})

    for message in request.get("messages") or []:
        content = message.get("content")
        if isinstance(content, list):
            content = "\n".join(
                str(block.get("text", "")) if block.get("type") == "text"
                else json.dumps(block, ensure_ascii=False)
                for block in content
                if isinstance(block, Mapping)
            )
        history.append({"role": str(message.get("role")), "content": content or ""})
    return history


class WebSearchProvider:
    """Posts search queries to the configured search endpoint.

    Every failure (transport error, timeout, non-2xx status, malformed body)
    is logged and reported as ``None``.
    """

    def __init__(self, settings: SearchSettings) -> None:
        self.settings = settings

    async def search(
        self,
        query: str,
        request: Mapping[str, Any],
        req_id: str = "-",
    ) -> Optional[dict[str, Any]]:
        url = self.settings.base_url
        if not url:
            logger.warning(f"[{req_id}] Web search requested but no web_search.base_url is configured")
            return None

        body = {
            "history": build_search_history(request),
            "query": query,
            "query_rewrite": True,
            "top_k": self.settings.top_k,
            "content_type": "snippet",
        }
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.settings.api_key}",
        }

        logger.info(f"[{req_id}] Searching the web for: {query!r}")
        try:
            async with httpx.AsyncClient(
                timeout=self.settings.timeout,
                transport=get_upstream_transport(url),
            ) as client:
                resp = await client.post(url, headers=headers, json=body)
        except httpx.TimeoutException:
            logger.warning(f"[{req_id}] Web search timed out after {self.settings.timeout}s")
            return None
        except httpx.HTTPError as exc:
            logger.warning(f"[{req_id}] Web search request failed: {exc.__class__.__name__}: {exc}")
            return None

        if resp.status_code >= 400:
            logger.warning(f"[{req_id}] Web search returned {resp.status_code}: {resp.text[:500]}")
            return None

        try:
            payload = resp.json()
        except ValueError:
            logger.warning(f"[{req_id}] Web search returned a non-JSON body")
            return None
        if not isinstance(payload, dict):
            logger.warning(f"[{req_id}] Web search returned a non-object body")
            return None

        result = payload.get("result")
        count = len(result.get("search_result") or []) if isinstance(result, dict) else 0
        logger.debug(f"[{req_id}] Web search returned {count} results")
        return payload
