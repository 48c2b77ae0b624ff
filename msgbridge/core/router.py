"""Model routing policy.

Picks the Anthropic model id a request should actually be served by. Rules
are checked in order and the first match wins:

1. a dedicated web search request goes to ``web_search``
2. prompts above ``long_context_threshold`` tokens go to ``long_context``
3. haiku requests go to ``background``
4. requests with ``thinking`` go to ``think``
5. everything else goes to ``default``

A rule only applies when its target is configured. Routing never fails the
request: any error falls back to ``default``.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from ..messages.thinking import thinking_requested
from .models import RouterPolicy
from .tokenizer import Tokenizer, count_request_tokens, system_text

logger = logging.getLogger("msgbridge")

WEB_SEARCH_TOOL_TYPE = "web_search_20250305"
WEB_SEARCH_TOOL_NAME = "web_search"
WEB_SEARCH_SYSTEM_MARKER = "You are an assistant for performing a web search tool use"


def is_web_search_tool(tool: Any) -> bool:
    return (
        isinstance(tool, Mapping)
        and tool.get("type") == WEB_SEARCH_TOOL_TYPE
        and tool.get("name") == WEB_SEARCH_TOOL_NAME
    )


def has_single_web_search_tool(request: Mapping[str, Any]) -> bool:
    tools = request.get("tools") or []
    return isinstance(tools, list) and len(tools) == 1 and is_web_search_tool(tools[0])


def route_model(
    request: Mapping[str, Any],
    policy: RouterPolicy,
    tokenizer: Optional[Tokenizer] = None,
    req_id: str = "-",
) -> str:
    """Return the model id the request should be served by."""
    try:
        return _route(request, policy, tokenizer, req_id)
    except Exception as exc:
        logger.warning(f"[{req_id}] Router error, using default model: {exc}")
        return policy.default


def _route(
    request: Mapping[str, Any],
    policy: RouterPolicy,
    tokenizer: Optional[Tokenizer],
    req_id: str,
) -> str:
    requested = str(request.get("model") or "")

    if (
        policy.web_search
        and has_single_web_search_tool(request)
        and WEB_SEARCH_SYSTEM_MARKER in system_text(request.get("system"))
    ):
        logger.info(f"[{req_id}] Routing {requested} -> {policy.web_search} (web search)")
        return policy.web_search

    if policy.long_context:
        token_count = count_request_tokens(
            request.get("messages") or [],
            request.get("system"),
            request.get("tools") or [],
            tokenizer,
        )
        if token_count > policy.long_context_threshold:
            logger.info(
                f"[{req_id}] Routing {requested} -> {policy.long_context} "
                f"(long context: {token_count} > {policy.long_context_threshold})"
            )
            return policy.long_context

    if policy.background and "haiku" in requested:
        logger.info(f"[{req_id}] Routing {requested} -> {policy.background} (background)")
        return policy.background

    if policy.think and thinking_requested(request):
        logger.info(f"[{req_id}] Routing {requested} -> {policy.think} (thinking)")
        return policy.think

    logger.info(f"[{req_id}] Routing {requested} -> {policy.default} (default)")
    return policy.default
