"""Content block codec between Anthropic Messages and OpenAI Chat.

Every Anthropic content block kind the bridge understands is listed in
``CONTENT_BLOCK_TYPES`` and has an explicit handler below. Blocks with any
other type are dropped with a warning instead of vanishing silently.

Forward direction (Anthropic -> OpenAI):
- text -> text part
- image -> image_url part (data URI or direct URL)
- document, thinking -> placeholder text parts
- server_tool_use, web_search_tool_result -> text summaries of earlier searches
- tool_use -> assistant tool_calls
- tool_result -> separate {"role": "tool"} messages

Reverse direction (OpenAI -> Anthropic): text and tool calls only.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Callable, Mapping, Optional

from ..types import ChatMessage, ContentBlock, ContentPart, ToolCall

logger = logging.getLogger("msgbridge")

CONTENT_BLOCK_TYPES = frozenset({
    "text",
    "image",
    "document",
    "thinking",
    "tool_use",
    "tool_result",
    "server_tool_use",
    "web_search_tool_result",
})


def _text_part(text: str) -> ContentPart:
    return {"type": "text", "text": text}


def _convert_text(block: Mapping[str, Any]) -> Optional[ContentPart]:
    return _text_part(str(block.get("text", "")))


def _convert_image(block: Mapping[str, Any]) -> Optional[ContentPart]:
    """Anthropic image source -> OpenAI image_url part.

    ``{"type": "base64", "media_type", "data"}`` becomes a data URI,
    ``{"type": "url", "url"}`` is used as-is. Anything else is omitted.
    """
    source = block.get("source") or {}
    source_type = source.get("type")

    if source_type == "base64":
        media_type = source.get("media_type", "image/png")
        url = f"data:{media_type};base64,{source.get('data', '')}"
    elif source_type == "url":
        url = source.get("url", "")
    else:
        url = ""

    if not url:
        logger.debug(f"Omitting image block with unsupported source: {source_type}")
        return None
    return {"type": "image_url", "image_url": {"url": url, "detail": "auto"}}


def _convert_document(block: Mapping[str, Any]) -> Optional[ContentPart]:
    # Chat backends have no document input
    source = block.get("source") or {}
    if source.get("type") == "base64":
        return _text_part(f"[Document: {source.get('media_type', 'application/pdf')}]")
    return _text_part("[Document content]")


def _convert_thinking(block: Mapping[str, Any]) -> Optional[ContentPart]:
    return _text_part(f"[Thinking: {block.get('thinking', '')}]")


def _convert_server_tool_use(block: Mapping[str, Any]) -> Optional[ContentPart]:
    query = (block.get("input") or {}).get("query", "")
    return _text_part(f"[Web search: {query}]")


def _convert_web_search_result(block: Mapping[str, Any]) -> Optional[ContentPart]:
    entries = block.get("content")
    if not isinstance(entries, list) or not entries:
        return _text_part("[Web search results: none]")
    lines = ["[Web search results:"]
    for i, entry in enumerate(entries, 1):
        if isinstance(entry, Mapping):
            lines.append(f"{i}. {entry.get('title', '')} ({entry.get('url', '')})")
    lines.append("]")
    return _text_part("\n".join(lines))


_PART_CONVERTERS: dict[str, Callable[[Mapping[str, Any]], Optional[ContentPart]]] = {
    "text": _convert_text,
    "image": _convert_image,
    "document": _convert_document,
    "thinking": _convert_thinking,
    "server_tool_use": _convert_server_tool_use,
    "web_search_tool_result": _convert_web_search_result,
}


def serialize_tool_input(input_data: Any) -> str:
    """Serialize tool input to the JSON string OpenAI expects."""
    if isinstance(input_data, str):
        return input_data
    return json.dumps(input_data if input_data is not None else {}, ensure_ascii=False)


def tool_use_to_call(block: Mapping[str, Any]) -> ToolCall:
    return {
        "id": block.get("id") or f"call_{uuid.uuid4().hex[:8]}",
        "type": "function",
        "function": {
            "name": block.get("name", ""),
            "arguments": serialize_tool_input(block.get("input", {})),
        },
    }


def tool_result_to_message(block: Mapping[str, Any]) -> ChatMessage:
    """One ``tool_result`` block -> one OpenAI tool message.

    Non-string content (block lists, objects) is JSON-encoded.
    """
    result_content = block.get("content")
    if isinstance(result_content, str):
        content_str = result_content
    elif result_content is None:
        content_str = ""
    else:
        content_str = json.dumps(result_content, ensure_ascii=False)

    if block.get("is_error"):
        content_str = f"[Error] {content_str}"

    return {
        "role": "tool",
        "tool_call_id": block.get("tool_use_id", ""),
        "content": content_str,
    }


def _simplify_parts(parts: list[ContentPart]) -> str | list[ContentPart] | None:
    if not parts:
        return None
    if len(parts) == 1 and parts[0].get("type") == "text":
        return parts[0]["text"]
    return parts


def _chat_role(role: Any) -> str:
    return "assistant" if role == "assistant" else "user"


def convert_message(message: Mapping[str, Any]) -> list[ChatMessage]:
    """Convert one Anthropic message into zero or more OpenAI messages.

    Tool results come first (one tool message each), followed by a single
    message carrying the remaining parts and any tool calls.
    """
    role = _chat_role(message.get("role"))
    content = message.get("content")

    if isinstance(content, str):
        return [{"role": role, "content": content}]

    if not isinstance(content, list):
        return [{"role": role, "content": str(content) if content else ""}]

    converted: list[ChatMessage] = []
    parts: list[ContentPart] = []
    tool_calls: list[ToolCall] = []

    for block in content:
        if not isinstance(block, Mapping):
            logger.warning(f"Skipping non-object content block: {type(block).__name__}")
            continue
        block_type = block.get("type", "")

        if block_type == "tool_result":
            converted.append(tool_result_to_message(block))
        elif block_type == "tool_use":
            tool_calls.append(tool_use_to_call(block))
        elif block_type in _PART_CONVERTERS:
            part = _PART_CONVERTERS[block_type](block)
            if part is not None:
                parts.append(part)
        else:
            logger.warning(f"Dropping unsupported content block type: {block_type!r}")

    simplified = _simplify_parts(parts)

    if role == "assistant":
        if tool_calls:
            # Assistant tool calls carry their text joined into one string
            text = "\n".join(p["text"] for p in parts if p.get("type") == "text")
            converted.append({"role": "assistant", "content": text, "tool_calls": tool_calls})
        elif simplified is not None:
            converted.append({"role": "assistant", "content": simplified})
    elif simplified is not None:
        converted.append({"role": role, "content": simplified})

    return converted


# ---------------------------------------------------------------------------
# Reverse direction
# ---------------------------------------------------------------------------


def parse_tool_arguments(raw: Any) -> dict[str, Any]:
    """Parse a tool call's JSON arguments; unparseable input is wrapped."""
    if isinstance(raw, Mapping):
        return dict(raw)
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except (TypeError, json.JSONDecodeError):
        return {"arguments": raw}
    if isinstance(parsed, dict):
        return parsed
    return {"arguments": raw}


def openai_text(content: Any) -> str:
    """Flatten OpenAI message content (string or parts) to text."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            str(part.get("text", ""))
            for part in content
            if isinstance(part, Mapping) and part.get("type") == "text"
        )
    return ""


def tool_calls_to_blocks(tool_calls: Optional[list[Mapping[str, Any]]]) -> list[ContentBlock]:
    blocks: list[ContentBlock] = []
    for call in tool_calls or []:
        function = call.get("function") or {}
        blocks.append({
            "type": "tool_use",
            "id": call.get("id") or f"toolu_{uuid.uuid4().hex[:12]}",
            "name": function.get("name", ""),
            "input": parse_tool_arguments(function.get("arguments")),
        })
    return blocks


def content_to_blocks(
    content: Any,
    tool_calls: Optional[list[Mapping[str, Any]]] = None,
) -> list[ContentBlock]:
    """Convert OpenAI assistant content and tool calls to Anthropic blocks."""
    blocks: list[ContentBlock] = []
    text = openai_text(content)
    if text:
        blocks.append({"type": "text", "text": text})
    blocks.extend(tool_calls_to_blocks(tool_calls))
    return blocks
