"""Upstream provider adapters for Claude Gateway."""

from .base import BaseProvider
from .gemini import GeminiModeProvider
from .openai import OpenAIProvider
from .responses import ResponsesProvider

__all__ = ["BaseProvider", "GeminiModeProvider", "OpenAIProvider", "ResponsesProvider"]
