"""
Shared test configuration and fixtures.
"""

import sys
from pathlib import Path

import httpx
import pytest
from dotenv import load_dotenv

# Add src to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root / "src"))

# Load environment from project root .env file
project_env_file = project_root / ".env"
if project_env_file.exists():
    load_dotenv(project_env_file)

from claude_gateway.config import GatewayConfig  # noqa: E402
from claude_gateway.thought_cache import ThoughtSignatureCache  # noqa: E402


@pytest.fixture
def thought_cache():
    """A fresh cache per test so signatures never leak between tests."""
    return ThoughtSignatureCache()


@pytest.fixture
def gateway_config():
    """Three providers, one per adapter type."""
    return GatewayConfig.model_validate({
        "providers": {
            "openai": {
                "type": "openai",
                "baseUrl": "https://api.openai.test/v1",
                "apiKey": "sk-openai",
                "models": {
                    "gpt-4o": {"name": "gpt-4o", "alias": "4o", "maxTokens": 4096},
                    "gpt-4o-mini": {"name": "gpt-4o-mini"},
                },
            },
            "hub": {
                "type": "modelhub",
                "baseUrl": "https://hub.test/api",
                "apiKey": "hub-key",
                "options": {"apiKeyParam": "ak", "mode": "responses"},
                "models": {
                    "o3": {"name": "o3-2025", "maxTokens": 16384,
                           "options": {"supportsTemperature": False}},
                },
            },
            "gemini": {
                "type": "gemini-mode",
                "baseUrl": "https://hub.test/api",
                "apiKey": "hub-key",
                "options": {"apiKeyParam": "ak"},
                "models": {
                    "gemini-pro": {"name": "gemini-2.5-pro", "maxTokens": 32768},
                },
            },
        },
        "modelMapping": {
            "claude-3-sonnet": "openai/gpt-4o",
            "haiku": "openai/gpt-4o-mini",
            "opus": "hub/o3",
        },
    }).validate_providers()


@pytest.fixture
def provider_config(gateway_config):
    return gateway_config.providers["openai"]


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it served."""

    def __init__(self, handler):
        self.requests = []

        def recording_handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(recording_handler)


@pytest.fixture
def mock_clients():
    """Build (client, stream_client, transport) backed by one handler."""
    def factory(handler):
        transport = RecordingTransport(handler)
        return (
            httpx.AsyncClient(transport=transport),
            httpx.AsyncClient(transport=transport),
            transport,
        )
    return factory


@pytest.fixture
def sse_body():
    """Frame raw ``data:`` payloads as an SSE body."""
    def frame(*payloads: str) -> bytes:
        return "".join(f"data: {payload}\n\n" for payload in payloads).encode()
    return frame


def pytest_collection_modifyitems(items):
    """Add integration marker to tests in integration directory."""
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
