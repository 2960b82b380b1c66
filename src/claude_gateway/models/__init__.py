"""Data models for Claude Gateway."""

from .claude import (
    ClaudeMessage,
    ClaudeMessagesRequest,
    ClaudeMessagesResponse,
    ClaudeStreamEvent,
    ClaudeTokenCountRequest,
)
from .openai import (
    OpenAIMessage,
    OpenAIMessagesRequest,
    OpenAIMessagesResponse,
    OpenAIStreamResponse,
)
from .responses import ResponsesRequest, ResponsesResponse

__all__ = [
    # Claude models
    "ClaudeMessage",
    "ClaudeMessagesRequest",
    "ClaudeMessagesResponse",
    "ClaudeStreamEvent",
    "ClaudeTokenCountRequest",

    # OpenAI models
    "OpenAIMessage",
    "OpenAIMessagesRequest",
    "OpenAIMessagesResponse",
    "OpenAIStreamResponse",

    # Responses models
    "ResponsesRequest",
    "ResponsesResponse",
]
