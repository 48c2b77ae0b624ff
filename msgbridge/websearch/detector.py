"""Web search request detection.

A web search conversation has two turns:

1. The client offers exactly one ``web_search_20250305`` tool and asks a
   question; the bridge performs the search itself.
2. The client sends back a ``tool_result`` whose text starts with
   ``Web search results for query:`` followed by a JSON array of links; the
   bridge turns those links into an answer.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from ..core.router import has_single_web_search_tool

logger = logging.getLogger("msgbridge")

TOOL_RESULT_MARKER = "Web search results for query:"

_QUERY_PATTERN = re.compile(
    r"(?:web search for (?:the )?query:?\s*|search for:?\s*)(.+?)(?:\.|$)",
    re.IGNORECASE,
)


@dataclass
class ParsedSearchResult:
    query: str
    links: list[dict[str, Any]]


@dataclass
class WebSearchContext:
    has_web_search: bool = False
    is_tool_result: bool = False
    search_query: Optional[str] = None
    conversation_history: list[dict[str, str]] = field(default_factory=list)
    tool_result_content: Optional[str] = None


def parse_search_result(text: str) -> Optional[ParsedSearchResult]:
    """Split ``<query text>[{"title": ..., "url": ...}, ...]`` into its parts.

    The array is found by scanning back from the last ``]`` to its matching
    ``[``. Returns None when the text has no bracketed span.

    Raises:
        ValueError: The bracketed span is not a JSON array.
    """
    last = text.rfind("]")
    if last == -1:
        return None

    depth = 0
    first = -1
    for i in range(last, -1, -1):
        if text[i] == "]":
            depth += 1
        elif text[i] == "[":
            depth -= 1
            if depth == 0:
                first = i
                break
    if first == -1:
        return None

    links = json.loads(text[first:last + 1])
    if not isinstance(links, list):
        raise ValueError("Search result links are not a JSON array")
    return ParsedSearchResult(query=_clean_query(text[:first]), links=links)


def _clean_query(prefix: str) -> str:
    query = prefix.strip()
    if query.startswith(TOOL_RESULT_MARKER):
        query = query[len(TOOL_RESULT_MARKER):].strip()
    if query.endswith("Links:"):
        query = query[:-len("Links:")].strip()
    if len(query) >= 2 and query[0] == query[-1] == '"':
        query = query[1:-1]
    return query


def message_text(content: Any, separator: str = " ") -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return separator.join(
            str(block.get("text", "")) if block.get("type") == "text" else ""
            for block in content
            if isinstance(block, Mapping)
        )
    return ""


def _last_user_message(messages: list[Any]) -> Optional[Mapping[str, Any]]:
    for message in reversed(messages):
        if isinstance(message, Mapping) and message.get("role") == "user":
            return message
    return None


def _find_search_tool_result(message: Optional[Mapping[str, Any]]) -> Optional[str]:
    if message is None or not isinstance(message.get("content"), list):
        return None
    for block in message["content"]:
        if (
            isinstance(block, Mapping)
            and block.get("type") == "tool_result"
            and isinstance(block.get("content"), str)
            and TOOL_RESULT_MARKER in block["content"]
        ):
            return block["content"]
    return None


def extract_search_query(text: str) -> str:
    match = _QUERY_PATTERN.search(text)
    if match:
        return match.group(1).strip()
    return text.strip()


def detect_web_search(request: Mapping[str, Any], req_id: str = "-") -> WebSearchContext:
    """Classify a request as a search turn, a search-result turn, or neither."""
    context = WebSearchContext()
    messages = request.get("messages") or []
    last_user = _last_user_message(messages)

    tool_result = _find_search_tool_result(last_user)
    if tool_result is not None:
        try:
            parsed = parse_search_result(tool_result)
        except ValueError:
            parsed = None
        context.search_query = parsed.query if parsed else None
        context.tool_result_content = tool_result
        logger.debug(f"[{req_id}] Detected web search tool result for query: {context.search_query}")

    if has_single_web_search_tool(request):
        context.has_web_search = True
        context.is_tool_result = tool_result is not None

        for message in messages:
            if not isinstance(message, Mapping):
                continue
            text = message_text(message.get("content")).strip()
            if text:
                context.conversation_history.append({"role": str(message.get("role")), "content": text})

        if tool_result is None and last_user is not None:
            context.search_query = extract_search_query(message_text(last_user.get("content")))
    elif tool_result is not None:
        # Search results are answered even without the tool definition
        context.has_web_search = True
        context.is_tool_result = True

    return context
