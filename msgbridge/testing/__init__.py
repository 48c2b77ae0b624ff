"""Testing utilities for in-process bridge simulations."""

from .assertions import (
    assert_anthropic_message_valid,
    assert_anthropic_sse_valid,
    assert_batch_counts_consistent,
    assert_sse_event_sequence_valid,
    collect_stream_text,
    collect_tool_input,
    sse_payloads,
)
from .bridge_harness import BridgeHarness
from .fake_search import FakeSearchProvider
from .fake_upstream import FakeUpstream, StreamError, UpstreamResponse
from .response_builders import (
    WEB_SEARCH_TOOL,
    build_anthropic_request,
    build_openai_chat_response,
    build_openai_stream_chunks,
    build_search_response,
    build_search_tool_result_request,
    build_web_search_request,
)

__all__ = [
    # Core simulation classes
    "FakeUpstream",
    "UpstreamResponse",
    "StreamError",
    "FakeSearchProvider",
    "BridgeHarness",
    # Builders
    "WEB_SEARCH_TOOL",
    "build_anthropic_request",
    "build_openai_chat_response",
    "build_openai_stream_chunks",
    "build_search_response",
    "build_search_tool_result_request",
    "build_web_search_request",
    # Assertions
    "assert_anthropic_message_valid",
    "assert_anthropic_sse_valid",
    "assert_batch_counts_consistent",
    "assert_sse_event_sequence_valid",
    "collect_stream_text",
    "collect_tool_input",
    "sse_payloads",
]
