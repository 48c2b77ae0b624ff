"""Types for the OpenAI Chat Completions side of the bridge.

These describe what the bridge sends to and reads from the chat backend.
Payloads stay plain dicts; the TypedDicts document their expected shape.
"""

from typing import Any
from typing_extensions import TypedDict


class FunctionCall(TypedDict, total=False):
    """Function name and JSON-encoded arguments of a tool call.

    In streamed deltas either field may be missing: the name usually arrives
    once, the arguments arrive as string fragments to be concatenated.
    """
    name: str | None
    arguments: str | None


class ToolCall(TypedDict, total=False):
    """A tool call requested by the assistant.

    Attributes:
        id: Call identifier, echoed back by the matching tool message.
        type: Always "function".
        function: Name and arguments.
        index: Position of the call; only present in streamed deltas.
    """
    id: str
    type: str
    function: FunctionCall
    index: int


class ContentPart(TypedDict, total=False):
    """One part of a multi-modal message ("text" or "image_url")."""
    type: str
    text: str | None
    image_url: dict[str, Any] | None


class ChatMessage(TypedDict, total=False):
    """A message in a chat conversation.

    Attributes:
        role: "system", "user", "assistant" or "tool".
        content: A string, a list of content parts, or None when the
            assistant only issues tool calls.
        tool_calls: Calls requested by the assistant.
        tool_call_id: The call a "tool" message answers.
    """
    role: str
    content: str | list[ContentPart] | None
    tool_calls: list[ToolCall] | None
    tool_call_id: str | None


class ChatTool(TypedDict, total=False):
    """A function tool offered to the model."""
    type: str
    function: dict[str, Any]


class ChatCompletionRequest(TypedDict, total=False):
    """Request body sent to ``/chat/completions``."""
    model: str
    messages: list[ChatMessage]
    max_tokens: int
    temperature: float
    top_p: float
    stop: list[str]
    tools: list[ChatTool]
    tool_choice: str | dict[str, Any]
    stream: bool


class Delta(TypedDict, total=False):
    """Incremental update of a streamed choice."""
    role: str | None
    content: str | None
    tool_calls: list[ToolCall] | None


class Choice(TypedDict, total=False):
    """A completion choice.

    Attributes:
        index: Position in the choices array.
        delta: Incremental content (streaming).
        message: Complete message (non-streaming).
        finish_reason: "stop", "length", "tool_calls" or "content_filter".
    """
    index: int
    delta: Delta | None
    message: ChatMessage | None
    finish_reason: str | None


class Usage(TypedDict, total=False):
    """Token usage reported by the backend."""
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


class ChatCompletionChunk(TypedDict, total=False):
    """One streamed chunk; usage usually only appears on the last one."""
    id: str
    object: str
    created: int
    model: str
    choices: list[Choice]
    usage: Usage | None


class ChatCompletionResponse(TypedDict, total=False):
    """A complete (non-streaming) chat completion."""
    id: str
    object: str
    created: int
    model: str
    choices: list[Choice]
    usage: Usage | None
