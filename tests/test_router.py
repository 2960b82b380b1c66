"""Tests for model resolution and dispatch."""

from unittest.mock import AsyncMock

import pytest

from claude_gateway.errors import NotFoundError
from claude_gateway.models.openai import (
    OpenAIChoice,
    OpenAIMessage,
    OpenAIMessagesRequest,
    OpenAIMessagesResponse,
    OpenAIStreamChoice,
    OpenAIStreamDelta,
    OpenAIStreamResponse,
)
from claude_gateway.providers import GeminiModeProvider, OpenAIProvider, ResponsesProvider
from claude_gateway.router import ProviderRouter


def make_request(model: str) -> OpenAIMessagesRequest:
    return OpenAIMessagesRequest(model=model, messages=[OpenAIMessage(role="user", content="hi")])


@pytest.fixture
def router(gateway_config, thought_cache):
    return ProviderRouter(gateway_config, thought_cache=thought_cache)


class TestResolve:

    def test_explicit_path(self, router):
        assert router.resolve("hub/o3") == "hub/o3"

    def test_exact_mapping(self, router):
        assert router.resolve("claude-3-sonnet") == "openai/gpt-4o"

    def test_substring_mapping(self, router):
        assert router.resolve("claude-3-5-haiku-20241022") == "openai/gpt-4o-mini"
        assert router.resolve("CLAUDE-OPUS-4") == "hub/o3"

    def test_input_contained_in_mapping_key(self, router):
        assert router.resolve("sonnet") == "openai/gpt-4o"

    def test_model_key(self, router):
        assert router.resolve("gemini-pro") == "gemini/gemini-pro"

    def test_model_alias(self, router):
        assert router.resolve("4o") == "openai/gpt-4o"

    def test_unknown_model(self, router):
        with pytest.raises(NotFoundError, match="Model not found"):
            router.resolve("llama-3")

    def test_unknown_path_falls_through(self, router):
        with pytest.raises(NotFoundError):
            router.resolve("nope/missing")


class TestRoute:

    def test_adapter_per_type(self, router):
        adapter, provider, model = router.route("openai/gpt-4o")
        assert isinstance(adapter, OpenAIProvider)
        assert model.name == "gpt-4o"

        adapter, provider, _ = router.route("hub/o3")
        assert isinstance(adapter, ResponsesProvider)
        assert provider.type == "modelhub"

        adapter, _, _ = router.route("gemini/gemini-pro")
        assert isinstance(adapter, GeminiModeProvider)

    def test_modelhub_gemini_mode(self, gateway_config, thought_cache):
        gateway_config.providers["hub"].options.mode = "gemini"
        router = ProviderRouter(gateway_config, thought_cache=thought_cache)
        adapter, _, _ = router.route("hub/o3")
        assert isinstance(adapter, GeminiModeProvider)

    def test_adapters_shared_between_providers(self, router):
        hub_adapter, _, _ = router.route("hub/o3")
        assert router.adapters["openai-responses"] is hub_adapter

    def test_missing_path(self, router):
        with pytest.raises(NotFoundError):
            router.route("openai/gpt-5")


def fake_adapter():
    adapter = AsyncMock()
    adapter.name = "fake"
    adapter.chat_complete.return_value = OpenAIMessagesResponse(
        choices=[OpenAIChoice(message=OpenAIMessage(role="assistant", content="hi"), finish_reason="stop")]
    )
    return adapter


@pytest.mark.asyncio
async def test_chat_complete_dispatches_with_resolved_path(gateway_config):
    adapter = fake_adapter()
    router = ProviderRouter(gateway_config, adapters={"openai": adapter})

    response = await router.chat_complete(make_request("claude-3-sonnet"), client_api_key="sk-client")

    assert response.choices[0].message.content == "hi"
    request, provider, model = adapter.chat_complete.call_args.args[:3]
    assert request.model == "openai/gpt-4o"
    assert provider.base_url == "https://api.openai.test/v1"
    assert model.name == "gpt-4o"
    assert adapter.chat_complete.call_args.args[3] == "sk-client"


@pytest.mark.asyncio
async def test_chat_stream_dispatches(gateway_config):
    chunks = [
        OpenAIStreamResponse(choices=[OpenAIStreamChoice(delta=OpenAIStreamDelta(role="assistant"))]),
        OpenAIStreamResponse(choices=[OpenAIStreamChoice(delta=OpenAIStreamDelta(), finish_reason="stop")]),
    ]

    class StreamingAdapter:
        name = "fake"

        async def chat_stream(self, request, provider, model, client_api_key=None):
            for item in chunks:
                yield item

    router = ProviderRouter(gateway_config, adapters={"openai": StreamingAdapter()})
    received = [c async for c in router.chat_stream(make_request("haiku"))]
    assert received == chunks


@pytest.mark.asyncio
async def test_chat_stream_falls_back_when_streaming_unsupported(gateway_config):
    gateway_config.providers["openai"].models["gpt-4o"].options.supports_streaming = False
    adapter = fake_adapter()
    router = ProviderRouter(gateway_config, adapters={"openai": adapter})

    received = [c async for c in router.chat_stream(make_request("openai/gpt-4o"))]

    adapter.chat_complete.assert_awaited_once()
    adapter.chat_stream.assert_not_called()
    assert received[0].choices[0].delta.role == "assistant"
    assert received[1].choices[0].delta.content == "hi"
    assert received[-1].choices[0].finish_reason == "stop"


@pytest.mark.asyncio
async def test_unknown_model_fails_before_upstream(gateway_config):
    adapter = fake_adapter()
    router = ProviderRouter(gateway_config, adapters={"openai": adapter})
    with pytest.raises(NotFoundError):
        await router.chat_complete(make_request("llama-3"))
    adapter.chat_complete.assert_not_called()


@pytest.mark.asyncio
async def test_aclose_closes_adapters(gateway_config):
    adapter = fake_adapter()
    router = ProviderRouter(gateway_config, adapters={"openai": adapter})
    await router.aclose()
    adapter.aclose.assert_awaited_once()
