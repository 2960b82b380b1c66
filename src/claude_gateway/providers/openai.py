"""OpenAI Chat Completions provider implementation."""

import logging
from typing import Any, AsyncIterator, Dict, Optional

from ..config import ModelConfig, ProviderConfig
from ..models.openai import OpenAIMessagesRequest, OpenAIMessagesResponse, OpenAIStreamResponse
from .base import BaseProvider, parse_chunk

logger = logging.getLogger(__name__)


class OpenAIProvider(BaseProvider):
    """OpenAI API provider (``POST {base}/chat/completions``)."""

    name = "openai"
    endpoint = "/chat/completions"

    def build_payload(self, request: OpenAIMessagesRequest, model: ModelConfig, stream: bool) -> Dict[str, Any]:
        """Canonical request body for the upstream.

        Thought-signature side channels are only understood by Gemini-mode
        hosts and are stripped here. Streams ask for a trailing usage chunk.
        """
        prepared = self.prepare_request(request, model)
        prepared.stream = stream
        payload = prepared.model_dump(exclude_none=True)
        if stream:
            payload["stream_options"] = {"include_usage": True}
        for message in payload["messages"]:
            for tool_call in message.get("tool_calls") or []:
                tool_call.pop("signature", None)
                tool_call.pop("extra_content", None)
        return payload

    def request_headers(
        self,
        request: OpenAIMessagesRequest,
        provider: ProviderConfig,
        api_key: str,
        stream: bool = False,
    ) -> Dict[str, str]:
        return self.get_headers(provider, api_key, stream=stream)

    async def chat_complete(
        self,
        request: OpenAIMessagesRequest,
        provider: ProviderConfig,
        model: ModelConfig,
        client_api_key: Optional[str] = None,
    ) -> OpenAIMessagesResponse:
        api_key = self.resolve_api_key(provider, client_api_key)
        url = self.build_url(provider, self.endpoint, api_key)
        payload = self.build_payload(request, model, stream=False)
        logger.debug(f"{self.name} request to {self.endpoint}: {payload}")

        data = await self.post_json(url, payload, self.request_headers(request, provider, api_key))
        logger.debug(f"{self.name} response: {data}")
        return OpenAIMessagesResponse.model_validate(data)

    async def chat_stream(
        self,
        request: OpenAIMessagesRequest,
        provider: ProviderConfig,
        model: ModelConfig,
        client_api_key: Optional[str] = None,
    ) -> AsyncIterator[OpenAIStreamResponse]:
        api_key = self.resolve_api_key(provider, client_api_key)
        url = self.build_url(provider, self.endpoint, api_key)
        payload = self.build_payload(request, model, stream=True)
        headers = self.request_headers(request, provider, api_key, stream=True)
        logger.debug(f"{self.name} streaming request to {self.endpoint}: {payload}")

        async for data in self.iter_sse_data(url, payload, headers):
            chunk = parse_chunk(data)
            if chunk is not None:
                yield chunk
