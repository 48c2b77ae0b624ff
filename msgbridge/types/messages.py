"""Types for the Anthropic Messages side of the bridge.

Requests arrive in this shape and every response, stream event, search
message and batch record the bridge produces follows it.
"""

from typing import Any, Literal
from typing_extensions import TypedDict

StopReason = Literal["end_turn", "max_tokens", "stop_sequence", "tool_use"]
BatchStatus = Literal["validating", "in_progress", "canceling", "ended"]


class ContentBlock(TypedDict, total=False):
    """A content block of a message.

    Attributes:
        type: One of "text", "image", "document", "thinking", "tool_use",
            "tool_result", "server_tool_use", "web_search_tool_result".
        text: Text content ("text" blocks).
        thinking: Reasoning text ("thinking" blocks).
        source: Media source ("image" and "document" blocks), either
            ``{"type": "base64", "media_type", "data"}`` or
            ``{"type": "url", "url"}``.
        id: Block identifier ("tool_use" and "server_tool_use").
        name: Tool name ("tool_use" and "server_tool_use").
        input: Tool arguments ("tool_use" and "server_tool_use").
        tool_use_id: The call a result answers ("tool_result" and
            "web_search_tool_result").
        content: Result payload ("tool_result" and "web_search_tool_result").
        is_error: Whether a tool result reports a failure.
    """
    type: str
    text: str
    thinking: str
    source: dict[str, Any]
    id: str
    name: str
    input: dict[str, Any]
    tool_use_id: str
    content: Any
    is_error: bool


class ConversationMessage(TypedDict, total=False):
    """A conversation turn; content is a string or a list of blocks."""
    role: str
    content: str | list[ContentBlock]


class ToolDefinition(TypedDict, total=False):
    """A client tool. Server tools (web search) carry ``type`` instead of a schema."""
    type: str
    name: str
    description: str
    input_schema: dict[str, Any]


class MessagesRequest(TypedDict, total=False):
    """Body of ``POST /v1/messages``."""
    model: str
    messages: list[ConversationMessage]
    max_tokens: int
    system: str | list[ContentBlock]
    tools: list[ToolDefinition]
    tool_choice: str | dict[str, Any]
    temperature: float
    top_p: float
    stop_sequences: list[str]
    stream: bool
    thinking: dict[str, Any]


class ServerToolUsage(TypedDict, total=False):
    web_search_requests: int


class MessageUsage(TypedDict, total=False):
    """Token usage; search messages also report server tool calls."""
    input_tokens: int
    output_tokens: int
    server_tool_use: ServerToolUsage


class Message(TypedDict, total=False):
    """A complete assistant message."""
    id: str
    type: str
    role: str
    content: list[ContentBlock]
    model: str
    stop_reason: StopReason | None
    stop_sequence: str | None
    usage: MessageUsage


class WebSearchResultEntry(TypedDict, total=False):
    """One entry of a ``web_search_tool_result`` block."""
    type: str
    title: str
    url: str
    encrypted_content: str
    page_age: str


class SearchResult(TypedDict, total=False):
    """A result as returned by the search provider, cached by ``link``."""
    link: str
    title: str
    content: str
    snippet: str
    position: int


class BatchRequestCounts(TypedDict):
    processing: int
    succeeded: int
    errored: int
    canceled: int


class BatchResultRecord(TypedDict, total=False):
    """One line of a batch results file."""
    custom_id: str
    result: dict[str, Any]
