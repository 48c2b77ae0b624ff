"""Thinking extraction strategies.

Chat backends return a single text answer. When the client asked for
extended thinking, a strategy may split that answer into a ``thinking``
part and a ``text`` part.
"""

from __future__ import annotations

import re
from typing import Any, Mapping, Optional, Protocol

REASONING_PATTERN = re.compile(
    r"(?:let me think|reasoning|consider|analysis|because|therefore|however|thus|hence)",
    re.IGNORECASE,
)


class ThinkingStrategy(Protocol):
    def split(self, text: str) -> Optional[tuple[str, str]]:
        """Return ``(thinking, answer)`` or None to keep the text whole."""
        ...


class KeywordThinkingStrategy:
    """Splits reasoning-flavoured answers at the sentence midpoint.

    Fires when the text mentions a reasoning keyword, is longer than
    ``min_length`` characters and has at least three ``". "``-separated
    sentences. The first half of the sentences becomes the thinking.
    """

    def __init__(self, min_length: int = 100, pattern: re.Pattern = REASONING_PATTERN) -> None:
        self.min_length = min_length
        self.pattern = pattern

    def split(self, text: str) -> Optional[tuple[str, str]]:
        if len(text) <= self.min_length or not self.pattern.search(text):
            return None
        sentences = text.split(". ")
        if len(sentences) <= 2:
            return None
        middle = len(sentences) // 2
        return ". ".join(sentences[:middle]), ". ".join(sentences[middle:])


def thinking_requested(request: Mapping[str, Any]) -> bool:
    thinking = request.get("thinking")
    if isinstance(thinking, dict):
        return thinking.get("type", "enabled") != "disabled"
    return bool(thinking)
