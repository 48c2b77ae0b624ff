"""Anthropic <-> OpenAI Messages translation.

This module translates between Anthropic Messages API format and OpenAI Chat
Completions API format, so Anthropic-format requests can be served by an
OpenAI-compatible backend.

Key mappings:
- Anthropic system (top-level) -> OpenAI system message
- Anthropic content blocks -> OpenAI content parts / tool_calls / tool messages
  (see ``codec``)
- Anthropic tools -> OpenAI function tools (tools without a schema are dropped)
- Anthropic tool_choice -> OpenAI tool_choice
- max_tokens is clamped to the model mapping and to ``HARD_MAX_TOKENS``

Reference:
- Anthropic Messages API: https://docs.anthropic.com/en/api/messages
- OpenAI Chat Completions: https://platform.openai.com/docs/api-reference/chat
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Mapping, Optional

from ..core.exceptions import BackendResponseError
from ..core.models import ModelMapping
from ..types import ChatCompletionRequest, ChatMessage, ChatTool, ContentBlock, Message
from .codec import content_to_blocks, convert_message, openai_text, tool_calls_to_blocks
from .thinking import ThinkingStrategy

logger = logging.getLogger("msgbridge")

# Many OpenAI-compatible gateways reject anything above this
HARD_MAX_TOKENS = 8192

STOP_REASON_MAP = {
    "stop": "end_turn",
    "length": "max_tokens",
    "tool_calls": "tool_use",
    "content_filter": "end_turn",
}


def new_message_id() -> str:
    return f"msg_{uuid.uuid4().hex[:24]}"


def _convert_system_to_openai(system: Any) -> Optional[ChatMessage]:
    """Convert Anthropic top-level system to an OpenAI system message.

    Anthropic allows system as string or array of text blocks; the blocks are
    joined with newlines.
    """
    if system is None:
        return None

    if isinstance(system, str):
        return {"role": "system", "content": system} if system else None

    text_parts: list[str] = []
    for block in system:
        if isinstance(block, Mapping) and block.get("type") == "text":
            text_parts.append(block.get("text", ""))
        else:
            logger.warning(f"Non-text block in system parameter: {block!r:.80}")

    if text_parts:
        return {"role": "system", "content": "\n".join(text_parts)}
    return None


def _convert_tool_choice(tool_choice: Any) -> str | dict[str, Any] | None:
    """Convert Anthropic tool_choice to OpenAI format.

    Anthropic: "auto" | "any" | "none" | {"type": "tool", "name": "..."}
    OpenAI: "auto" | "required" | "none" | {"type": "function", "function": {"name": "..."}}
    """
    if tool_choice is None:
        return None

    if isinstance(tool_choice, str):
        choice_type = tool_choice
    elif isinstance(tool_choice, Mapping):
        choice_type = tool_choice.get("type", "")
        if choice_type == "tool":
            return {"type": "function", "function": {"name": tool_choice.get("name", "")}}
    else:
        return None

    if choice_type == "any":
        return "required"
    if choice_type in ("auto", "none"):
        return choice_type
    return None


def _convert_tools(tools: Any) -> list[ChatTool]:
    """Convert Anthropic tools to OpenAI function tools.

    Tools without ``input_schema`` (server tools such as web search, or
    malformed definitions) are excluded rather than given a default schema.
    """
    if not tools:
        return []

    openai_tools: list[ChatTool] = []
    for tool in tools:
        if not isinstance(tool, Mapping) or "input_schema" not in tool:
            name = tool.get("name") if isinstance(tool, Mapping) else None
            logger.debug(f"Skipping tool without input_schema: {name}")
            continue
        openai_tools.append({
            "type": "function",
            "function": {
                "name": tool.get("name", ""),
                "description": tool.get("description", ""),
                "parameters": tool.get("input_schema") or {"type": "object", "properties": {}},
            },
        })
    return openai_tools


def clamp_max_tokens(requested: Any, mapping: ModelMapping) -> int:
    try:
        value = int(requested)
    except (TypeError, ValueError):
        value = mapping.max_tokens
    return max(1, min(value, mapping.max_tokens, HARD_MAX_TOKENS))


def messages_to_chat_completions(
    payload: Mapping[str, Any],
    mapping: ModelMapping,
) -> ChatCompletionRequest:
    """Translate an Anthropic Messages request to OpenAI Chat Completions.

    Args:
        payload: Anthropic Messages API request body
        mapping: Model mapping resolved for the request

    Returns:
        OpenAI Chat Completions API request body
    """
    openai_messages: list[ChatMessage] = []

    system_message = _convert_system_to_openai(payload.get("system"))
    if system_message:
        openai_messages.append(system_message)

    for message in payload.get("messages") or []:
        openai_messages.extend(convert_message(message))

    max_tokens = clamp_max_tokens(payload.get("max_tokens"), mapping)
    if payload.get("max_tokens") != max_tokens:
        logger.debug(
            f"Clamped max_tokens {payload.get('max_tokens')} -> {max_tokens} "
            f"(model limit {mapping.max_tokens}, hard limit {HARD_MAX_TOKENS})"
        )

    result: ChatCompletionRequest = {
        "model": mapping.target_model,
        "messages": openai_messages,
        "max_tokens": max_tokens,
        "stream": bool(payload.get("stream")),
    }

    for param in ("temperature", "top_p"):
        if payload.get(param) is not None:
            result[param] = payload[param]

    stop_sequences = payload.get("stop_sequences")
    if stop_sequences:
        result["stop"] = list(stop_sequences)

    tools = _convert_tools(payload.get("tools"))
    if tools:
        result["tools"] = tools
        result["tool_choice"] = _convert_tool_choice(payload.get("tool_choice")) or "auto"
    elif payload.get("tools"):
        logger.warning("No valid tools left after dropping tools without input_schema")

    return result


def convert_stop_reason(finish_reason: Optional[str]) -> str:
    """Convert OpenAI finish_reason to Anthropic stop_reason."""
    return STOP_REASON_MAP.get(finish_reason or "", "end_turn")


def _split_thinking(text: str, thinking: ThinkingStrategy) -> list[ContentBlock]:
    split = thinking.split(text)
    if split is None:
        return [{"type": "text", "text": text}]
    thought, answer = split
    blocks: list[ContentBlock] = [{"type": "thinking", "thinking": thought}]
    if answer.strip():
        blocks.append({"type": "text", "text": answer})
    return blocks


def chat_completion_to_messages(
    payload: Mapping[str, Any],
    model: str,
    *,
    thinking: Optional[ThinkingStrategy] = None,
    message_id: Optional[str] = None,
) -> Message:
    """Translate an OpenAI Chat Completions response to an Anthropic message.

    Args:
        payload: OpenAI Chat Completions API response body
        model: Anthropic model id reported back to the client
        thinking: Optional strategy that splits reasoning out of the text
        message_id: Message id to use (generated when omitted)

    Raises:
        BackendResponseError: The response carries no choice.
    """
    choices = payload.get("choices") or []
    if not choices:
        raise BackendResponseError("No choices in backend response")

    choice = choices[0]
    message = choice.get("message") or {}
    usage = payload.get("usage") or {}

    if thinking is not None:
        content_blocks: list[ContentBlock] = []
        text = openai_text(message.get("content"))
        if text:
            content_blocks.extend(_split_thinking(text, thinking))
        content_blocks.extend(tool_calls_to_blocks(message.get("tool_calls")))
    else:
        content_blocks = content_to_blocks(message.get("content"), message.get("tool_calls"))

    if not content_blocks:
        content_blocks = [{"type": "text", "text": ""}]

    return {
        "id": message_id or new_message_id(),
        "type": "message",
        "role": "assistant",
        "content": content_blocks,
        "model": model,
        "stop_reason": convert_stop_reason(choice.get("finish_reason")),
        "stop_sequence": None,
        "usage": {
            "input_tokens": usage.get("prompt_tokens") or 0,
            "output_tokens": usage.get("completion_tokens") or 0,
        },
    }
