"""Base provider class for upstream adapters."""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from .. import __version__
from ..config import ModelConfig, ProviderConfig
from ..errors import APIError, GatewayError, classify_upstream_error
from ..models.openai import (
    OpenAIFunctionCall,
    OpenAIMessagesRequest,
    OpenAIMessagesResponse,
    OpenAIStreamChoice,
    OpenAIStreamDelta,
    OpenAIStreamResponse,
    OpenAIToolCall,
)
from ..thought_cache import ThoughtSignatureCache, get_thought_cache

logger = logging.getLogger(__name__)

FALLBACK_MAX_TOKENS = 8192
QUERY_PARAM_KEY_ENV = "MODELHUB_API_KEY"


class BaseProvider(ABC):
    """Abstract base class for upstream adapters.

    An adapter instance is shared by every provider of its type, so it holds
    only HTTP client pools; provider and model descriptors are passed per call.
    """

    name = "base"
    default_api_key_env = "OPENAI_API_KEY"

    def __init__(
        self,
        timeout: float = 30,
        stream_timeout: float = 300,
        client: Optional[httpx.AsyncClient] = None,
        stream_client: Optional[httpx.AsyncClient] = None,
        thought_cache: Optional[ThoughtSignatureCache] = None,
    ):
        self.timeout = timeout
        self.stream_timeout = stream_timeout
        limits = httpx.Limits(max_keepalive_connections=20, max_connections=100)
        self.client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout), limits=limits)
        self.stream_client = stream_client or httpx.AsyncClient(
            timeout=httpx.Timeout(stream_timeout), limits=limits
        )
        self.thought_cache = thought_cache if thought_cache is not None else get_thought_cache()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()
        await self.stream_client.aclose()

    @abstractmethod
    async def chat_complete(
        self,
        request: OpenAIMessagesRequest,
        provider: ProviderConfig,
        model: ModelConfig,
        client_api_key: Optional[str] = None,
    ) -> OpenAIMessagesResponse:
        """Send a non-streaming request and return the canonical response."""

    @abstractmethod
    def chat_stream(
        self,
        request: OpenAIMessagesRequest,
        provider: ProviderConfig,
        model: ModelConfig,
        client_api_key: Optional[str] = None,
    ) -> AsyncIterator[OpenAIStreamResponse]:
        """Send a streaming request and yield canonical chunks."""

    def resolve_api_key(self, provider: ProviderConfig, client_api_key: Optional[str] = None) -> str:
        """Configured key, then the environment, then the client's own key."""
        default_env = QUERY_PARAM_KEY_ENV if provider.options.api_key_param else self.default_api_key_env
        return provider.resolve_api_key(default_env) or client_api_key or ""

    def build_url(self, provider: ProviderConfig, endpoint: str, api_key: str = "") -> str:
        url = f"{provider.base_url.rstrip('/')}{endpoint}"
        param = provider.options.api_key_param
        if param and api_key:
            url = str(httpx.URL(url).copy_add_param(param, api_key))
        return url

    def get_headers(
        self,
        provider: ProviderConfig,
        api_key: str = "",
        stream: bool = False,
    ) -> Dict[str, str]:
        """Get HTTP headers for upstream requests."""
        headers = {
            "Content-Type": "application/json",
            "User-Agent": f"claude-gateway/{__version__}",
        }
        if stream:
            headers["Accept"] = "text/event-stream"
        if api_key and not provider.options.api_key_param:
            headers["Authorization"] = f"Bearer {api_key}"
        headers.update(provider.options.headers)
        return headers

    async def post_json(self, url: str, payload: Dict[str, Any], headers: Dict[str, str]) -> Dict[str, Any]:
        """POST ``payload`` and return the decoded JSON body."""
        try:
            response = await asyncio.wait_for(
                self.client.post(url, json=payload, headers=headers),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise APIError(f"Upstream request timed out after {self.timeout}s") from e
        except httpx.TimeoutException as e:
            raise APIError(f"Upstream request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise APIError(f"Upstream connection failed: {e}") from e

        if response.status_code >= 400:
            logger.error(f"{self.name} upstream request failed: {response.status_code} - {response.text}")
            raise classify_upstream_error(response.status_code, response.text)

        try:
            return response.json()
        except json.JSONDecodeError as e:
            raise APIError(f"Failed to parse upstream response: {e}") from e

    async def iter_sse_data(
        self, url: str, payload: Dict[str, Any], headers: Dict[str, str]
    ) -> AsyncIterator[str]:
        """Yield the ``data:`` payloads of an SSE response until ``[DONE]``.

        The whole stream is bounded by ``stream_timeout``.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.stream_timeout
        try:
            async with self.stream_client.stream("POST", url, json=payload, headers=headers) as response:
                if response.status_code >= 400:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    logger.error(f"{self.name} upstream stream failed: {response.status_code} - {body}")
                    raise classify_upstream_error(response.status_code, body)

                async for line in response.aiter_lines():
                    if loop.time() > deadline:
                        raise APIError(f"Upstream stream timed out after {self.stream_timeout}s")
                    if not line.startswith("data:"):
                        continue
                    data = line[len("data:"):].strip()
                    if not data:
                        continue
                    if data == "[DONE]":
                        logger.debug("Streaming completed with [DONE] signal")
                        return
                    yield data
        except GatewayError:
            raise
        except httpx.TimeoutException as e:
            raise APIError(f"Upstream stream timed out: {e}") from e
        except httpx.HTTPError as e:
            raise APIError(f"Upstream stream failed: {e}") from e

    def prepare_request(self, request: OpenAIMessagesRequest, model: ModelConfig) -> OpenAIMessagesRequest:
        """Copy of ``request`` addressed to the upstream model with its defaults applied."""
        prepared = request.model_copy(update={"model": model.name}, deep=True)
        if prepared.max_tokens is None:
            prepared.max_tokens = model.max_tokens
        if prepared.temperature is None:
            prepared.temperature = model.temperature
        if prepared.tools and not model.options.supports_tools:
            logger.warning(f"Model {model.name} does not support tools, dropping {len(prepared.tools)} tools")
            prepared.tools = None
            prepared.tool_choice = None
        return prepared

    @staticmethod
    def effective_max_tokens(request_max_tokens: Optional[int], model: ModelConfig) -> int:
        """Larger of the request value and the model default (8192 when unset).

        Guards against clients that probe with ``max_tokens=1``.
        """
        return max(request_max_tokens or 0, model.max_tokens or FALLBACK_MAX_TOKENS)

    def store_signatures(self, response: OpenAIMessagesResponse) -> None:
        """Remember every thought signature carried by a response's tool calls."""
        for choice in response.choices:
            for tool_call in choice.message.tool_calls or []:
                signature = tool_call.thought_signature()
                if tool_call.id and signature:
                    self.thought_cache.store(tool_call.id, signature)


def parse_chunk(data: str) -> Optional[OpenAIStreamResponse]:
    """Decode one OpenAI-Chat SSE payload; malformed payloads are skipped."""
    try:
        return OpenAIStreamResponse.model_validate_json(data)
    except ValueError as e:
        logger.warning(f"Skipping malformed stream chunk: {e}")
        return None


def response_to_chunks(response: OpenAIMessagesResponse) -> List[OpenAIStreamResponse]:
    """Replay a non-streaming response as a canonical chunk sequence."""
    if not response.choices:
        raise APIError("No choices in upstream response")

    choice = response.choices[0]
    message = choice.message

    def chunk(delta: OpenAIStreamDelta, finish_reason: Optional[str] = None) -> OpenAIStreamResponse:
        return OpenAIStreamResponse(
            id=response.id,
            model=response.model,
            choices=[OpenAIStreamChoice(delta=delta, finish_reason=finish_reason)],
        )

    chunks = [chunk(OpenAIStreamDelta(role="assistant"))]
    text = message.text()
    if text:
        chunks.append(chunk(OpenAIStreamDelta(content=text)))
    for index, tool_call in enumerate(message.tool_calls or []):
        replayed = OpenAIToolCall(
            index=index,
            id=tool_call.id,
            function=OpenAIFunctionCall(
                name=tool_call.function.name,
                arguments=tool_call.function.arguments,
            ),
        )
        signature = tool_call.thought_signature()
        if signature:
            replayed.set_thought_signature(signature)
        chunks.append(chunk(OpenAIStreamDelta(tool_calls=[replayed])))

    final = chunk(OpenAIStreamDelta(), finish_reason=choice.finish_reason or "stop")
    final.usage = response.usage
    chunks.append(final)
    return chunks
