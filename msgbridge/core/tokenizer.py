"""Token estimation for routing decisions and count_tokens.

Counts are estimates. The tokenizer is a small pluggable service so a real
model tokenizer can replace the character heuristic without touching callers.
"""

from __future__ import annotations

import json
import math
from typing import Any, Iterable, Mapping, Optional, Protocol


class Tokenizer(Protocol):
    def count(self, text: str) -> int:
        ...


class CharacterTokenizer:
    """Roughly four characters per token."""

    def __init__(self, chars_per_token: int = 4) -> None:
        self.chars_per_token = chars_per_token

    def count(self, text: str) -> int:
        if not text:
            return 0
        return math.ceil(len(text) / self.chars_per_token)


def _block_text(block: Mapping[str, Any]) -> str:
    block_type = block.get("type")
    if block_type == "text":
        return str(block.get("text", ""))
    if block_type == "thinking":
        return str(block.get("thinking", ""))
    if block_type == "tool_use":
        return json.dumps(block.get("input", {}), ensure_ascii=False)
    if block_type == "tool_result":
        content = block.get("content")
        if isinstance(content, str):
            return content
        if isinstance(content, list):
            return "".join(
                _block_text(item) for item in content if isinstance(item, Mapping)
            )
        return json.dumps(content, ensure_ascii=False) if content is not None else ""
    return ""


def system_text(system: Any) -> str:
    """Flatten a system prompt (string or text blocks) to plain text."""
    if isinstance(system, str):
        return system
    if isinstance(system, list):
        return "\n".join(
            str(block.get("text", ""))
            for block in system
            if isinstance(block, Mapping) and block.get("type") == "text"
        )
    return ""


def count_request_tokens(
    messages: Iterable[Mapping[str, Any]],
    system: Any = None,
    tools: Optional[Iterable[Mapping[str, Any]]] = None,
    tokenizer: Optional[Tokenizer] = None,
) -> int:
    """Estimate the prompt size of a Messages request."""
    tokenizer = tokenizer or CharacterTokenizer()
    total = 0

    for message in messages or []:
        content = message.get("content")
        if isinstance(content, str):
            total += tokenizer.count(content)
        elif isinstance(content, list):
            for block in content:
                if isinstance(block, Mapping):
                    total += tokenizer.count(_block_text(block))

    total += tokenizer.count(system_text(system))

    for tool in tools or []:
        parts = [str(tool.get("name", "")), str(tool.get("description", ""))]
        schema = tool.get("input_schema")
        if schema is not None:
            parts.append(json.dumps(schema, ensure_ascii=False))
        total += tokenizer.count("".join(parts))

    return total
