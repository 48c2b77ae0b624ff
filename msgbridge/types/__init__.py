"""Type definitions for the bridge."""

from .chat import (
    ChatCompletionChunk,
    ChatCompletionRequest,
    ChatCompletionResponse,
    ChatMessage,
    ChatTool,
    Choice,
    ContentPart,
    Delta,
    FunctionCall,
    ToolCall,
    Usage,
)
from .messages import (
    BatchRequestCounts,
    BatchResultRecord,
    BatchStatus,
    ContentBlock,
    ConversationMessage,
    Message,
    MessagesRequest,
    MessageUsage,
    SearchResult,
    StopReason,
    ToolDefinition,
    WebSearchResultEntry,
)

__all__ = [
    "BatchRequestCounts",
    "BatchResultRecord",
    "BatchStatus",
    "ChatCompletionChunk",
    "ChatCompletionRequest",
    "ChatCompletionResponse",
    "ChatMessage",
    "ChatTool",
    "Choice",
    "ContentBlock",
    "ContentPart",
    "ConversationMessage",
    "Delta",
    "FunctionCall",
    "Message",
    "MessagesRequest",
    "MessageUsage",
    "SearchResult",
    "StopReason",
    "ToolCall",
    "ToolDefinition",
    "Usage",
    "WebSearchResultEntry",
]
