"""Two-phase web search that behaves like the native ``web_search`` server tool.

Phase 1 (search): the bridge queries the search provider and answers with a
text block, a ``server_tool_use`` block and a ``web_search_tool_result``
block. Each result is cached by link for the follow-up turn.

Phase 2 (answer): the client echoes the links back inside a ``tool_result``.
The bridge enriches them from the cache, asks the chat backend to
synthesize an answer, and falls back to a templated summary if the backend
cannot help.
"""

from __future__ import annotations

import base64
import json
import logging
import uuid
from datetime import date
from typing import Any, Mapping, Optional
from urllib.parse import urlparse

from ..cache import EphemeralCache
from ..core.backend import BackendClient
from ..core.exceptions import ProxyError, SearchProviderError
from ..core.models import ModelMapping
from ..core.tokenizer import CharacterTokenizer, Tokenizer
from ..messages.codec import openai_text
from ..messages.stream_adapter import StreamPacing, replay_message_as_events
from ..messages.translator import new_message_id
from ..types import ContentBlock, Message, WebSearchResultEntry
from .detector import WebSearchContext, detect_web_search, parse_search_result
from .provider import WebSearchProvider

logger = logging.getLogger("msgbridge")

ANSWER_SYSTEM_PROMPT = (
    "You are a helpful assistant that analyzes search results and provides "
    "comprehensive, well-structured responses."
)
ANSWER_MAX_TOKENS = 1000
ANSWER_TEMPERATURE = 0.7
PROMPT_EXCERPT_CHARS = 300
FALLBACK_EXCERPT_CHARS = 200


def new_server_tool_id() -> str:
    return f"srvtoolu_{uuid.uuid4().hex[:24]}"


def format_page_age(day: date) -> str:
    """Human-readable date such as ``June 19, 2025``."""
    return f"{day:%B} {day.day}, {day.year}"


def _encrypted_placeholder(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def _domain(url: str) -> str:
    try:
        return urlparse(url).hostname or "unknown"
    except ValueError:
        return "unknown"


class WebSearchOrchestrator:
    """Runs both search phases and replays them as streams when asked."""

    def __init__(
        self,
        provider: WebSearchProvider,
        cache: EphemeralCache,
        backend: BackendClient,
        tokenizer: Optional[Tokenizer] = None,
        today=date.today,
    ) -> None:
        self.provider = provider
        self.cache = cache
        self.backend = backend
        self.tokenizer = tokenizer or CharacterTokenizer()
        self.today = today

    def detect(self, request: Mapping[str, Any], req_id: str = "-") -> WebSearchContext:
        return detect_web_search(request, req_id)

    async def handle(
        self,
        request: Mapping[str, Any],
        mapping: ModelMapping,
        context: WebSearchContext,
        req_id: str = "-",
    ) -> Message:
        """Run whichever phase the detected context calls for."""
        if context.is_tool_result:
            return await self.answer(request, mapping, context, req_id)
        return await self.search(request, context, req_id)

    async def stream(
        self,
        request: Mapping[str, Any],
        mapping: ModelMapping,
        context: WebSearchContext,
        pacing: Optional[StreamPacing] = None,
        req_id: str = "-",
    ):
        message = await self.handle(request, mapping, context, req_id)
        async for event in replay_message_as_events(message, pacing):
            yield event

    def _estimate(self, text: str) -> int:
        return self.tokenizer.count(text)

    def _request_tokens(self, request: Mapping[str, Any]) -> int:
        return self._estimate(json.dumps(request, ensure_ascii=False, default=str))

    # ------------------------------------------------------------------
    # Phase 1
    # ------------------------------------------------------------------

    async def search(
        self,
        request: Mapping[str, Any],
        context: WebSearchContext,
        req_id: str = "-",
    ) -> Message:
        query = context.search_query or ""
        response = await self.provider.search(query, request, req_id)
        result = (response or {}).get("result")
        if not isinstance(result, Mapping) or result.get("search_result") is None:
            raise SearchProviderError(f"Web search failed for query: {query}")

        search_results = [r for r in result.get("search_result") or [] if isinstance(r, Mapping)]
        for item in search_results:
            if item.get("link"):
                self.cache.set(item["link"], dict(item))

        page_age = format_page_age(self.today())
        tool_use_id = new_server_tool_id()
        intro = f"I'll search for information about {query}."
        entries: list[WebSearchResultEntry] = [
            {
                "type": "web_search_result",
                "title": item.get("title", ""),
                "url": item.get("link", ""),
                "encrypted_content": _encrypted_placeholder(
                    item.get("content") or item.get("snippet") or ""
                ),
                "page_age": page_age,
            }
            for item in search_results
        ]
        usage = (response or {}).get("usage") or {}

        logger.info(f"[{req_id}] Web search for {query!r} returned {len(entries)} results")
        return {
            "id": new_message_id(),
            "type": "message",
            "role": "assistant",
            "model": request.get("model", ""),
            "content": [
                {"type": "text", "text": intro},
                {
                    "type": "server_tool_use",
                    "id": tool_use_id,
                    "name": "web_search",
                    "input": {"query": query},
                },
                {"type": "web_search_tool_result", "tool_use_id": tool_use_id, "content": entries},
            ],
            "stop_reason": "end_turn",
            "stop_sequence": None,
            "usage": {
                "input_tokens": self._request_tokens(request),
                "output_tokens": self._estimate(intro),
                "server_tool_use": {"web_search_requests": usage.get("search_count") or 1},
            },
        }

    # ------------------------------------------------------------------
    # Phase 2
    # ------------------------------------------------------------------

    def _enrich(self, link: Mapping[str, Any]) -> dict[str, Any]:
        url = str(link.get("url", ""))
        cached = self.cache.get(url) or {}
        return {
            "title": cached.get("title") or link.get("title", ""),
            "url": url,
            "content": cached.get("content") or cached.get("snippet") or "",
        }

    async def answer(
        self,
        request: Mapping[str, Any],
        mapping: ModelMapping,
        context: WebSearchContext,
        req_id: str = "-",
    ) -> Message:
        raw = context.tool_result_content or ""
        try:
            parsed = parse_search_result(raw)
        except ValueError as exc:
            raise SearchProviderError(f"Could not parse web search results: {exc}") from exc
        if parsed is None:
            raise SearchProviderError("No search results found in tool result request")

        query = context.search_query or parsed.query
        results = [self._enrich(link) for link in parsed.links if isinstance(link, Mapping)]
        answer = await self.compose_answer(query, results, mapping, req_id)

        page_age = format_page_age(self.today())
        entries: list[WebSearchResultEntry] = [
            {
                "type": "web_search_result",
                "title": r["title"],
                "url": r["url"],
                "encrypted_content": _encrypted_placeholder(r["content"] or r["title"]),
                "page_age": page_age,
            }
            for r in results
        ]
        content: list[ContentBlock] = [
            {"type": "web_search_tool_result", "tool_use_id": new_server_tool_id(), "content": entries},
            {"type": "text", "text": answer},
        ]
        return {
            "id": new_message_id(),
            "type": "message",
            "role": "assistant",
            "model": request.get("model", ""),
            "content": content,
            "stop_reason": "end_turn",
            "stop_sequence": None,
            "usage": {
                "input_tokens": self._request_tokens(request),
                "output_tokens": self._estimate(answer),
                "server_tool_use": {"web_search_requests": 1},
            },
        }

    async def compose_answer(
        self,
        query: str,
        results: list[dict[str, Any]],
        mapping: ModelMapping,
        req_id: str = "-",
    ) -> str:
        if not results:
            logger.info(f"[{req_id}] No search results to answer {query!r}")
            return f"I searched for \"{query}\" but couldn't find any relevant results."

        summaries = []
        for i, r in enumerate(results, 1):
            content = r["content"] or "No content available"
            if len(content) > PROMPT_EXCERPT_CHARS:
                content = content[:PROMPT_EXCERPT_CHARS] + "..."
            summaries.append(f"{i}. **{r['title']}**\n   URL: {r['url']}\n   Content: {content}")
        prompt = (
            f"Based on the following search results for \"{query}\", please provide a "
            f"comprehensive and well-structured response:\n\n" + "\n\n".join(summaries) +
            "\n\nPlease analyze and synthesize the information to provide a helpful "
            "answer to the query."
        )

        try:
            response = await self.backend.create_chat_completion({
                "model": mapping.target_model,
                "messages": [
                    {"role": "system", "content": ANSWER_SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                "max_tokens": ANSWER_MAX_TOKENS,
                "temperature": ANSWER_TEMPERATURE,
            })
        except ProxyError as exc:
            logger.warning(f"[{req_id}] Backend failed to compose search answer, using template: {exc}")
            return self.fallback_answer(query, results)

        choices = response.get("choices") or []
        text = openai_text((choices[0].get("message") or {}).get("content")) if choices else ""
        if not text.strip():
            logger.warning(f"[{req_id}] Backend returned an empty search answer, using template")
            return self.fallback_answer(query, results)
        return text

    @staticmethod
    def fallback_answer(query: str, results: list[dict[str, Any]]) -> str:
        summaries = []
        for i, r in enumerate(results, 1):
            content = r.get("content")
            excerpt = f"{content[:FALLBACK_EXCERPT_CHARS]}..." if content else "No content available"
            summaries.append(f"{i}. **{r.get('title', '')}**\n   URL: {r.get('url', '')}\n   Content: {excerpt}")

        domains = list(dict.fromkeys(_domain(str(r.get("url", ""))) for r in results))
        titles = ", ".join(str(r.get("title", "")) for r in results)
        summary = (
            f"Found {len(results)} relevant sources from {', '.join(domains)}. "
            f"The search covered topics related to: {titles}."
        )
        return (
            f"Based on the search results for \"{query}\", here's what I found:\n\n"
            + "\n\n".join(summaries)
            + f"\n\n**Summary:**\n{summary}"
        )
