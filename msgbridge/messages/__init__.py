"""Anthropic Messages API translation."""

from .codec import CONTENT_BLOCK_TYPES, content_to_blocks, convert_message
from .stream_adapter import ChatToMessagesStreamAdapter, StreamPacing, replay_message_as_events
from .thinking import KeywordThinkingStrategy, ThinkingStrategy, thinking_requested
from .translator import (
    HARD_MAX_TOKENS,
    chat_completion_to_messages,
    convert_stop_reason,
    messages_to_chat_completions,
)

__all__ = [
    "CONTENT_BLOCK_TYPES",
    "ChatToMessagesStreamAdapter",
    "HARD_MAX_TOKENS",
    "KeywordThinkingStrategy",
    "StreamPacing",
    "ThinkingStrategy",
    "chat_completion_to_messages",
    "content_to_blocks",
    "convert_message",
    "convert_stop_reason",
    "messages_to_chat_completions",
    "replay_message_as_events",
    "thinking_requested",
]
