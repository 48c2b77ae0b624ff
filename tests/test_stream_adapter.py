"""Tests for the OpenAI -> Anthropic stream adapter."""

import json

import pytest

from msgbridge.core.sse import SSEEvent
from msgbridge.messages.stream_adapter import (
    FALLBACK_EXPLANATION,
    ChatToMessagesStreamAdapter,
    StreamPacing,
    recover_tool_input,
    replay_message_as_events,
)
from msgbridge.testing import (
    assert_anthropic_sse_valid,
    build_openai_stream_chunks,
    collect_stream_text,
    collect_tool_input,
    sse_payloads,
)


async def _aiter(items):
    for item in items:
        yield item


async def _adapt(chunks, **kwargs):
    adapter = ChatToMessagesStreamAdapter(
        "msg_test", "claude-3-5-sonnet-20241022", pacing=StreamPacing.instant(), **kwargs
    )
    raw = b"".join([event async for event in adapter.adapt_stream(_aiter(chunks))])
    return adapter, sse_payloads(raw)


class TestTextStreaming:
    """Tests for plain text streams."""

    @pytest.mark.asyncio
    async def test_text_deltas_keep_backend_chunking(self):
        chunks = build_openai_stream_chunks(
            "Hello", usage={"prompt_tokens": 7, "completion_tokens": 2}
        )
        adapter, events = await _adapt(chunks)

        assert_anthropic_sse_valid(events)
        assert [e["type"] for e in events] == (
            ["message_start", "content_block_start"]
            + ["content_block_delta"] * 5
            + ["content_block_stop", "message_delta", "message_stop"]
        )
        assert events[0]["message"]["id"] == "msg_test"
        assert events[0]["message"]["model"] == "claude-3-5-sonnet-20241022"
        assert collect_stream_text(events) == "Hello"
        assert events[-2]["delta"]["stop_reason"] == "end_turn"
        assert events[-2]["usage"] == {"input_tokens": 7, "output_tokens": 2}

    @pytest.mark.asyncio
    async def test_accepts_raw_sse_bytes(self):
        chunks = build_openai_stream_chunks("Hi there", chunk_size=3)
        raw = [SSEEvent(data=json.dumps(c)).encode() for c in chunks] + [b"data: [DONE]\n\n"]
        # Split bytes across event boundaries
        joined = b"".join(raw)
        pieces = [joined[i:i + 17] for i in range(0, len(joined), 17)]
        _, events = await _adapt(pieces)
        assert collect_stream_text(events) == "Hi there"

    @pytest.mark.asyncio
    async def test_length_finish_reason(self):
        _, events = await _adapt(build_openai_stream_chunks("cut", finish_reason="length"))
        assert events[-2]["delta"]["stop_reason"] == "max_tokens"

    @pytest.mark.asyncio
    async def test_empty_stream_still_terminates_cleanly(self):
        _, events = await _adapt([])
        assert [e["type"] for e in events] == ["message_start", "message_delta", "message_stop"]
        assert events[1]["delta"]["stop_reason"] == "end_turn"


class TestToolCallStreaming:
    """Tests for buffered tool calls."""

    @pytest.mark.asyncio
    async def test_tool_call_gets_explanation_and_input(self):
        chunks = build_openai_stream_chunks(
            "",
            tool_calls=[{"id": "call_1", "name": "get_weather", "arguments": {"location": "Paris"}}],
            finish_reason="tool_calls",
            argument_chunk_size=4,
        )
        adapter, events = await _adapt(chunks)

        assert_anthropic_sse_valid(events)
        starts = [e for e in events if e["type"] == "content_block_start"]
        assert [s["content_block"]["type"] for s in starts] == ["text", "tool_use"]
        assert starts[1]["content_block"] == {"type": "tool_use", "id": "call_1", "name": "get_weather", "input": {}}
        assert collect_stream_text(events) == "I'll help you check the weather in that location."
        assert collect_tool_input(events, 1) == {"location": "Paris"}
        assert events[-2]["delta"]["stop_reason"] == "tool_use"

        final = adapter.build_final_message()
        assert final["stop_reason"] == "tool_use"
        assert final["content"][1]["input"] == {"location": "Paris"}

    @pytest.mark.asyncio
    async def test_text_then_tools_use_first_tool_explanation(self):
        chunks = build_openai_stream_chunks(
            "Sure.",
            tool_calls=[
                {"id": "call_1", "name": "Read", "arguments": {"path": "a.txt"}},
                {"id": "call_2", "name": "Bash", "arguments": {"command": "ls"}},
            ],
            finish_reason="tool_calls",
        )
        _, events = await _adapt(chunks)

        assert_anthropic_sse_valid(events)
        starts = [e["content_block"]["type"] for e in events if e["type"] == "content_block_start"]
        assert starts == ["text", "text", "tool_use", "tool_use"]
        assert collect_stream_text(events) == "Sure.I'll read that file for you."
        assert collect_tool_input(events, 2) == {"path": "a.txt"}
        assert collect_tool_input(events, 3) == {"command": "ls"}

    @pytest.mark.asyncio
    async def test_unknown_tool_uses_fallback_explanation(self):
        chunks = build_openai_stream_chunks(
            "", tool_calls=[{"name": "Deploy", "arguments": {}}], finish_reason="tool_calls"
        )
        _, events = await _adapt(chunks)
        assert collect_stream_text(events) == FALLBACK_EXPLANATION

    @pytest.mark.asyncio
    async def test_configured_explanations(self):
        chunks = build_openai_stream_chunks(
            "", tool_calls=[{"name": "Deploy", "arguments": {}}], finish_reason="tool_calls"
        )
        _, events = await _adapt(chunks, explanations={"Deploy": "Shipping it."})
        assert collect_stream_text(events) == "Shipping it."

    @pytest.mark.asyncio
    async def test_tool_use_wins_over_stop_finish_reason(self):
        chunks = build_openai_stream_chunks(
            "", tool_calls=[{"name": "LS", "arguments": {}}], finish_reason="stop"
        )
        _, events = await _adapt(chunks)
        assert events[-2]["delta"]["stop_reason"] == "tool_use"

    @pytest.mark.asyncio
    async def test_fragments_after_finish_are_still_absorbed(self):
        chunks = [
            {"choices": [{"index": 0, "delta": {"tool_calls": [
                {"index": 0, "id": "call_9", "function": {"name": "get_weather", "arguments": '{"loc'}}
            ]}}]},
            {"choices": [{"index": 0, "delta": {}, "finish_reason": "tool_calls"}]},
            {"choices": [{"index": 0, "delta": {"tool_calls": [
                {"index": 0, "function": {"arguments": 'ation": "Oslo"}'}}
            ]}}]},
        ]
        _, events = await _adapt(chunks)
        assert collect_tool_input(events, 1) == {"location": "Oslo"}

    @pytest.mark.asyncio
    async def test_nameless_tool_call_is_ignored(self):
        chunks = [
            {"choices": [{"index": 0, "delta": {"content": "ok"}}]},
            {"choices": [{"index": 0, "delta": {"tool_calls": [{"index": 0, "function": {"arguments": "{}"}}]}}]},
            {"choices": [{"index": 0, "delta": {}, "finish_reason": "stop"}]},
        ]
        _, events = await _adapt(chunks)
        starts = [e for e in events if e["type"] == "content_block_start"]
        assert len(starts) == 1
        assert events[-2]["delta"]["stop_reason"] == "end_turn"


class TestRecoverToolInput:
    def test_valid_json(self):
        assert recover_tool_input('{"a": 1}') == {"a": 1}

    def test_truncated_location(self):
        assert recover_tool_input('{"location": "Berl') == {"location": "Berl"}

    def test_truncated_san_becomes_san_francisco(self):
        assert recover_tool_input('{"location": "San') == {"location": "San Francisco, CA"}

    def test_garbage_gets_placeholder(self):
        assert recover_tool_input("{nonsense") == {"location": "San Francisco, CA"}

    def test_empty_arguments(self):
        assert recover_tool_input("") == {}


class TestReplayMessage:
    @pytest.mark.asyncio
    async def test_replays_text_and_server_tool_blocks(self):
        message = {
            "id": "msg_1",
            "model": "claude-3-5-sonnet-20241022",
            "content": [
                {"type": "text", "text": "I'll search for information about cats."},
                {"type": "server_tool_use", "id": "srvtoolu_1", "name": "web_search", "input": {"query": "cats"}},
                {"type": "web_search_tool_result", "tool_use_id": "srvtoolu_1", "content": []},
            ],
            "stop_reason": "end_turn",
            "stop_sequence": None,
            "usage": {"input_tokens": 3, "output_tokens": 4},
        }
        raw = b"".join([e async for e in replay_message_as_events(message, StreamPacing.instant())])
        events = sse_payloads(raw)

        assert_anthropic_sse_valid(events)
        assert collect_stream_text(events) == "I'll search for information about cats."
        assert collect_tool_input(events, 1) == {"query": "cats"}
        starts = [e["content_block"] for e in events if e["type"] == "content_block_start"]
        assert starts[1]["input"] == {}
        assert starts[2] == {"type": "web_search_tool_result", "tool_use_id": "srvtoolu_1", "content": []}
        assert events[-2]["usage"] == {"input_tokens": 3, "output_tokens": 4}

    @pytest.mark.asyncio
    async def test_pacing_does_not_change_content(self):
        message = {
            "id": "msg_2",
            "model": "m",
            "content": [{"type": "text", "text": "abcdefghijklmnopqrstuvwxyz"}],
            "stop_reason": "end_turn",
            "usage": {},
        }
        fast = b"".join([e async for e in replay_message_as_events(message, StreamPacing.instant())])
        slow_pacing = StreamPacing(text_delay=0.001)
        slow = b"".join([e async for e in replay_message_as_events(message, slow_pacing)])
        assert fast == slow
