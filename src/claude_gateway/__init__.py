"""Claude Gateway - Anthropic Messages API in front of OpenAI-style providers."""

__version__ = "0.1.0"
