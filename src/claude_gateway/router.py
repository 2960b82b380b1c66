"""Model resolution and dispatch to provider adapters."""

import logging
from typing import AsyncIterator, Dict, Optional, Tuple

from .config import GatewayConfig, ModelConfig, ProviderConfig
from .errors import NotFoundError
from .models.openai import OpenAIMessagesRequest, OpenAIMessagesResponse, OpenAIStreamResponse
from .providers import BaseProvider, GeminiModeProvider, OpenAIProvider, ResponsesProvider
from .providers.base import response_to_chunks
from .thought_cache import ThoughtSignatureCache

logger = logging.getLogger(__name__)


class ProviderRouter:
    """Resolves client model names and dispatches to one adapter per adapter type.

    Adapters only hold HTTP client pools, so every provider of a type shares
    the same adapter instance.
    """

    def __init__(
        self,
        config: GatewayConfig,
        timeout: float = 30,
        stream_timeout: float = 300,
        adapters: Optional[Dict[str, BaseProvider]] = None,
        thought_cache: Optional[ThoughtSignatureCache] = None,
    ):
        self.config = config
        if adapters is None:
            adapters = {
                "openai": OpenAIProvider(timeout, stream_timeout, thought_cache=thought_cache),
                "openai-responses": ResponsesProvider(timeout, stream_timeout, thought_cache=thought_cache),
                "gemini-mode": GeminiModeProvider(timeout, stream_timeout, thought_cache=thought_cache),
            }
        self.adapters = adapters

    async def aclose(self) -> None:
        for adapter in self.adapters.values():
            await adapter.aclose()

    def resolve(self, model: str) -> str:
        """Resolve a client model name to a ``provider/model`` path.

        Rules, first match wins: an existing ``provider/model`` path; a model
        mapping entry (exact, then case-insensitive substring either way); a
        model key under any provider; a model alias under any provider.
        """
        if "/" in model and self.config.get_provider_model(model) is not None:
            return model

        mapping = self.config.model_mapping
        if model in mapping:
            return mapping[model]
        lowered = model.lower()
        for pattern, path in mapping.items():
            pattern_lowered = pattern.lower()
            if pattern_lowered in lowered or lowered in pattern_lowered:
                logger.debug(f"Model {model} matched mapping pattern {pattern}")
                return path

        for provider_name, provider in self.config.providers.items():
            if model in provider.models:
                return f"{provider_name}/{model}"

        for provider_name, provider in self.config.providers.items():
            for model_key, model_config in provider.models.items():
                if model_config.alias == model:
                    return f"{provider_name}/{model_key}"

        raise NotFoundError(f"Model not found: {model}")

    def adapter_type(self, provider: ProviderConfig) -> str:
        if provider.type == "modelhub":
            return "gemini-mode" if provider.options.mode == "gemini" else "openai-responses"
        return provider.type

    def route(self, path: str) -> Tuple[BaseProvider, ProviderConfig, ModelConfig]:
        found = self.config.get_provider_model(path)
        if found is None:
            raise NotFoundError(f"Model not found: {path}")
        provider, model = found
        adapter = self.adapters.get(self.adapter_type(provider))
        if adapter is None:
            raise NotFoundError(f"No adapter for provider type: {provider.type}")
        return adapter, provider, model

    def _dispatch(
        self, request: OpenAIMessagesRequest
    ) -> Tuple[OpenAIMessagesRequest, BaseProvider, ProviderConfig, ModelConfig]:
        path = self.resolve(request.model)
        adapter, provider, model = self.route(path)
        logger.info(f"Routing {request.model} -> {path} via {adapter.name}")
        return request.model_copy(update={"model": path}), adapter, provider, model

    async def chat_complete(
        self, request: OpenAIMessagesRequest, client_api_key: Optional[str] = None
    ) -> OpenAIMessagesResponse:
        request, adapter, provider, model = self._dispatch(request)
        return await adapter.chat_complete(request, provider, model, client_api_key)

    async def chat_stream(
        self, request: OpenAIMessagesRequest, client_api_key: Optional[str] = None
    ) -> AsyncIterator[OpenAIStreamResponse]:
        request, adapter, provider, model = self._dispatch(request)

        if not model.options.supports_streaming:
            logger.info(f"Model {model.name} does not support streaming, replaying a non-streaming response")
            response = await adapter.chat_complete(request, provider, model, client_api_key)
            for chunk in response_to_chunks(response):
                yield chunk
            return

        async for chunk in adapter.chat_stream(request, provider, model, client_api_key):
            yield chunk
