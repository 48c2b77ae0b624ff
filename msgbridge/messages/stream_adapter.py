"""Stream adapter for converting OpenAI Chat Completions streams to Anthropic Messages SSE.

The adapter drains the whole backend stream before emitting anything and then
replays it as a well-formed Anthropic event sequence. Text deltas keep the
backend's chunking; tool calls are buffered per call index and emitted once
complete, after a short explanatory text block.

OpenAI Chat Completion Events:
    data: {"choices":[{"delta":{"role":"assistant"},"index":0}]}
    data: {"choices":[{"delta":{"content":"Hello"},"index":0}]}
    data: {"choices":[{"delta":{"tool_calls":[...]},"index":0}]}
    data: {"choices":[{"delta":{},"finish_reason":"stop","index":0}]}
    data: [DONE]

Anthropic Messages Events (in this order):
    message_start
    content_block_start / content_block_delta* / content_block_stop  (per block)
    message_delta
    message_stop

Pacing delays between slices are cosmetic; with ``StreamPacing.instant()``
the emitted content is identical, only faster.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import uuid
from dataclasses import dataclass, replace
from typing import Any, AsyncIterator, Mapping, Optional, Union

from ..core.sse import SSEDecoder, format_sse_event, DONE_SENTINEL
from ..types import ContentBlock, Message
from .translator import convert_stop_reason

logger = logging.getLogger("msgbridge")

DEFAULT_TOOL_EXPLANATIONS: dict[str, str] = {
    "get_weather": "I'll help you check the weather in that location.",
    "LS": "I'll list the files in that directory for you.",
    "Read": "I'll read that file for you.",
    "Write": "I'll write to that file.",
    "Bash": "I'll execute that command for you.",
}
FALLBACK_EXPLANATION = "I'll help you with that."

PLACEHOLDER_LOCATION = "San Francisco, CA"
_LOCATION_PATTERN = re.compile(r'"location"\s*:\s*"([^"]*)')


@dataclass(frozen=True)
class StreamPacing:
    """Slice sizes (characters) and delays (seconds) for synthesized deltas."""

    explanation_slice: int = 5
    explanation_delay: float = 0.01
    arguments_slice: int = 3
    arguments_delay: float = 0.015
    text_slice: int = 10
    text_delay: float = 0.03
    server_input_slice: int = 5
    server_input_delay: float = 0.02

    @classmethod
    def instant(cls) -> "StreamPacing":
        return replace(
            cls(),
            explanation_delay=0.0,
            arguments_delay=0.0,
            text_delay=0.0,
            server_input_delay=0.0,
        )


def _slices(text: str, size: int) -> list[str]:
    size = max(1, size)
    return [text[i:i + size] for i in range(0, len(text), size)]


async def _pause(delay: float) -> None:
    if delay > 0:
        await asyncio.sleep(delay)


def recover_tool_input(arguments: str) -> dict[str, Any]:
    """Parse accumulated tool arguments, falling back to a location guess.

    Truncated arguments (e.g. ``{"location": "San``) keep whatever location
    prefix can be matched; anything else gets a placeholder location.
    """
    try:
        parsed = json.loads(arguments or "{}")
        if isinstance(parsed, dict):
            return parsed
    except json.JSONDecodeError:
        pass

    match = _LOCATION_PATTERN.search(arguments or "")
    if match and match.group(1):
        location = match.group(1)
        if location == "San":
            location = PLACEHOLDER_LOCATION
        return {"location": location}
    logger.warning(f"Unrecoverable tool arguments, using placeholder: {arguments[:100]!r}")
    return {"location": PLACEHOLDER_LOCATION}


@dataclass
class _ToolCallBuffer:
    id: str = ""
    name: str = ""
    arguments: str = ""


class ChatToMessagesStreamAdapter:
    """Converts an OpenAI chat completion stream into Anthropic Messages SSE events.

    The adapter keeps the drained state (text deltas, buffered tool calls,
    usage, finish reason) so ``build_final_message`` can report the message
    that was streamed.
    """

    def __init__(
        self,
        message_id: str,
        model: str,
        *,
        explanations: Optional[Mapping[str, str]] = None,
        fallback_explanation: str = FALLBACK_EXPLANATION,
        pacing: Optional[StreamPacing] = None,
    ):
        """Initialize the stream adapter.

        Args:
            message_id: The message ID to use (e.g., "msg_xxx")
            model: Model name reported to the client
            explanations: Tool name -> explanatory sentence table
            fallback_explanation: Sentence for tools missing from the table
            pacing: Slice sizes and delays for synthesized deltas
        """
        self.message_id = message_id
        self.model = model
        self.explanations = dict(DEFAULT_TOOL_EXPLANATIONS if explanations is None else explanations)
        self.fallback_explanation = fallback_explanation
        self.pacing = pacing or StreamPacing()

        self.text_deltas: list[str] = []
        self.tool_calls: dict[int, _ToolCallBuffer] = {}
        self.input_tokens = 0
        self.output_tokens = 0
        self.finish_reason: Optional[str] = None
        self.chunk_count = 0

        self._content_blocks: list[ContentBlock] = []

    # ------------------------------------------------------------------
    # Draining
    # ------------------------------------------------------------------

    async def _iter_chunks(
        self, chat_stream: AsyncIterator[Union[bytes, Mapping[str, Any]]]
    ) -> AsyncIterator[Mapping[str, Any]]:
        """Yield parsed chunks from raw SSE bytes or already-decoded dicts."""
        decoder = SSEDecoder()
        async for item in chat_stream:
            if isinstance(item, Mapping):
                yield item
                continue
            for event in decoder.feed(item):
                if event.data is None:
                    continue
                data = event.data.strip()
                if data == DONE_SENTINEL:
                    continue
                try:
                    parsed = json.loads(data)
                except json.JSONDecodeError:
                    logger.debug(f"MessagesStreamAdapter: Failed to parse: {data[:100]}")
                    continue
                if isinstance(parsed, Mapping):
                    yield parsed

    def _absorb(self, chunk: Mapping[str, Any]) -> None:
        self.chunk_count += 1
        choices = chunk.get("choices") or []
        choice = choices[0] if choices else {}
        delta = choice.get("delta") or {}

        content = delta.get("content")
        if content:
            self.text_deltas.append(content)

        for tc in delta.get("tool_calls") or []:
            index = tc.get("index", 0) or 0
            buffer = self.tool_calls.setdefault(index, _ToolCallBuffer())
            if tc.get("id") and not buffer.id:
                buffer.id = tc["id"]
            function = tc.get("function") or {}
            if function.get("name") and not buffer.name:
                buffer.name = function["name"]
            if function.get("arguments"):
                buffer.arguments += function["arguments"]

        usage = chunk.get("usage")
        if usage:
            self.input_tokens = usage.get("prompt_tokens") or self.input_tokens
            self.output_tokens = usage.get("completion_tokens") or self.output_tokens

        # Keep draining after the first finish signal; tool fragments may follow
        if choice.get("finish_reason") and self.finish_reason is None:
            self.finish_reason = choice["finish_reason"]

    # ------------------------------------------------------------------
    # Replay
    # ------------------------------------------------------------------

    @property
    def named_tool_calls(self) -> list[_ToolCallBuffer]:
        return [self.tool_calls[i] for i in sorted(self.tool_calls) if self.tool_calls[i].name]

    @property
    def stop_reason(self) -> str:
        if self.named_tool_calls:
            return "tool_use"
        return convert_stop_reason(self.finish_reason)

    async def adapt_stream(
        self,
        chat_stream: AsyncIterator[Union[bytes, Mapping[str, Any]]],
    ) -> AsyncIterator[bytes]:
        """Drain the OpenAI stream, then yield Anthropic Messages SSE events.

        Args:
            chat_stream: OpenAI chunks, as raw SSE bytes or decoded dicts

        Yields:
            Anthropic Messages API SSE events as bytes
        """
        async for chunk in self._iter_chunks(chat_stream):
            self._absorb(chunk)

        logger.debug(
            f"Drained {self.chunk_count} chunks for {self.message_id}: "
            f"{len(self.text_deltas)} text deltas, {len(self.tool_calls)} tool calls"
        )

        yield self._emit_message_start()

        index = 0
        if self.text_deltas:
            self._content_blocks.append({"type": "text", "text": "".join(self.text_deltas)})
            yield self._emit_content_block_start(index, {"type": "text", "text": ""})
            for text in self.text_deltas:
                yield self._emit_content_block_delta(index, {"type": "text_delta", "text": text})
            yield self._emit_content_block_stop(index)
            index += 1

        tool_calls = self.named_tool_calls
        if tool_calls:
            explanation = self.explanations.get(tool_calls[0].name, self.fallback_explanation)
            self._content_blocks.append({"type": "text", "text": explanation})
            yield self._emit_content_block_start(index, {"type": "text", "text": ""})
            for piece in _slices(explanation, self.pacing.explanation_slice):
                yield self._emit_content_block_delta(index, {"type": "text_delta", "text": piece})
                await _pause(self.pacing.explanation_delay)
            yield self._emit_content_block_stop(index)
            index += 1

        for call in tool_calls:
            call_id = call.id or f"call_{uuid.uuid4().hex[:12]}"
            tool_input = recover_tool_input(call.arguments)
            self._content_blocks.append(
                {"type": "tool_use", "id": call_id, "name": call.name, "input": tool_input}
            )
            yield self._emit_content_block_start(
                index, {"type": "tool_use", "id": call_id, "name": call.name, "input": {}}
            )
            serialized = json.dumps(tool_input, ensure_ascii=False)
            for piece in _slices(serialized, self.pacing.arguments_slice):
                yield self._emit_content_block_delta(
                    index, {"type": "input_json_delta", "partial_json": piece}
                )
                await _pause(self.pacing.arguments_delay)
            yield self._emit_content_block_stop(index)
            index += 1

        yield self._emit_message_delta(self.stop_reason)
        yield self._emit_message_stop()

    # ------------------------------------------------------------------
    # Event helpers
    # ------------------------------------------------------------------

    def _emit_message_start(self) -> bytes:
        message = {
            "id": self.message_id,
            "type": "message",
            "role": "assistant",
            "content": [],
            "model": self.model,
            "stop_reason": None,
            "stop_sequence": None,
            "usage": {"input_tokens": 0, "output_tokens": 0},
        }
        return format_sse_event("message_start", {"type": "message_start", "message": message})

    def _emit_content_block_start(self, index: int, content_block: dict[str, Any]) -> bytes:
        return format_sse_event(
            "content_block_start",
            {"type": "content_block_start", "index": index, "content_block": content_block},
        )

    def _emit_content_block_delta(self, index: int, delta: dict[str, Any]) -> bytes:
        return format_sse_event(
            "content_block_delta",
            {"type": "content_block_delta", "index": index, "delta": delta},
        )

    def _emit_content_block_stop(self, index: int) -> bytes:
        return format_sse_event("content_block_stop", {"type": "content_block_stop", "index": index})

    def _emit_message_delta(self, stop_reason: str) -> bytes:
        return format_sse_event(
            "message_delta",
            {
                "type": "message_delta",
                "delta": {"stop_reason": stop_reason, "stop_sequence": None},
                "usage": {
                    "input_tokens": self.input_tokens,
                    "output_tokens": self.output_tokens,
                },
            },
        )

    def _emit_message_stop(self) -> bytes:
        return format_sse_event("message_stop", {"type": "message_stop"})

    def build_final_message(self) -> Message:
        """The message the replayed events describe (valid after ``adapt_stream``)."""
        return {
            "id": self.message_id,
            "type": "message",
            "role": "assistant",
            "content": list(self._content_blocks) or [{"type": "text", "text": ""}],
            "model": self.model,
            "stop_reason": self.stop_reason,
            "stop_sequence": None,
            "usage": {
                "input_tokens": self.input_tokens,
                "output_tokens": self.output_tokens,
            },
        }


async def replay_message_as_events(
    message: Mapping[str, Any],
    pacing: Optional[StreamPacing] = None,
) -> AsyncIterator[bytes]:
    """Stream a complete Anthropic message as Messages SSE events.

    Text blocks are sliced into ``text_delta`` events and ``server_tool_use``
    input into ``input_json_delta`` events; other blocks are sent whole in
    their ``content_block_start``.
    """
    pacing = pacing or StreamPacing()

    start_message = {
        "id": message.get("id"),
        "type": "message",
        "role": "assistant",
        "model": message.get("model"),
        "content": [],
        "stop_reason": None,
        "stop_sequence": None,
        "usage": {"input_tokens": 0, "output_tokens": 0},
    }
    yield format_sse_event("message_start", {"type": "message_start", "message": start_message})

    for index, block in enumerate(message.get("content") or []):
        block_type = block.get("type")
        if block_type == "text":
            start_block: dict[str, Any] = {"type": "text", "text": ""}
        elif block_type == "server_tool_use":
            start_block = {**block, "input": {}}
        else:
            start_block = dict(block)

        yield format_sse_event(
            "content_block_start",
            {"type": "content_block_start", "index": index, "content_block": start_block},
        )

        if block_type == "text":
            for piece in _slices(block.get("text", ""), pacing.text_slice):
                yield format_sse_event(
                    "content_block_delta",
                    {"type": "content_block_delta", "index": index,
                     "delta": {"type": "text_delta", "text": piece}},
                )
                await _pause(pacing.text_delay)
        elif block_type == "server_tool_use":
            serialized = json.dumps(block.get("input") or {}, ensure_ascii=False)
            for piece in _slices(serialized, pacing.server_input_slice):
                yield format_sse_event(
                    "content_block_delta",
                    {"type": "content_block_delta", "index": index,
                     "delta": {"type": "input_json_delta", "partial_json": piece}},
                )
                await _pause(pacing.server_input_delay)

        yield format_sse_event("content_block_stop", {"type": "content_block_stop", "index": index})

    yield format_sse_event(
        "message_delta",
        {
            "type": "message_delta",
            "delta": {
                "stop_reason": message.get("stop_reason"),
                "stop_sequence": message.get("stop_sequence"),
            },
            "usage": message.get("usage") or {},
        },
    )
    yield format_sse_event("message_stop", {"type": "message_stop"})
