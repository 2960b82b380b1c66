"""Gemini-mode provider: OpenAI Chat on the wire, posted to ``/v2/crawl``."""

import json
import logging
from typing import Any, Dict, Optional

from ..config import ModelConfig, ProviderConfig
from ..models.openai import OpenAIMessagesRequest, OpenAIMessagesResponse
from ..schema_sanitizer import sanitize_tool_parameters
from .openai import OpenAIProvider

logger = logging.getLogger(__name__)


class GeminiModeProvider(OpenAIProvider):
    """Gemini models behind an OpenAI-compatible endpoint.

    Differences from plain OpenAI: tool schemas are reduced to the subset the
    host accepts, thought signatures are re-injected into assistant tool calls
    from the process-wide cache, and the session id travels in an ``extra``
    header for upstream context caching.
    """

    name = "gemini-mode"
    endpoint = "/v2/crawl"
    default_api_key_env = "MODELHUB_API_KEY"

    def build_payload(self, request: OpenAIMessagesRequest, model: ModelConfig, stream: bool) -> Dict[str, Any]:
        prepared = self.prepare_request(request, model)
        prepared.stream = stream
        prepared.max_tokens = self.effective_max_tokens(request.max_tokens, model)

        for tool in prepared.tools or []:
            tool.function.parameters = sanitize_tool_parameters(tool.function.parameters)

        injected = 0
        for message in prepared.messages:
            if message.role != "assistant":
                continue
            for tool_call in message.tool_calls or []:
                if tool_call.thought_signature():
                    continue
                signature = self.thought_cache.lookup(tool_call.id)
                if signature:
                    tool_call.set_thought_signature(signature)
                    injected += 1
        if injected:
            logger.debug(f"Injected {injected} cached thought signatures")

        return prepared.model_dump(exclude_none=True)

    def request_headers(
        self,
        request: OpenAIMessagesRequest,
        provider: ProviderConfig,
        api_key: str,
        stream: bool = False,
    ) -> Dict[str, str]:
        headers = self.get_headers(provider, api_key, stream=stream)
        if request.session_id:
            headers["extra"] = json.dumps({"session_id": request.session_id})
        return headers

    async def chat_complete(
        self,
        request: OpenAIMessagesRequest,
        provider: ProviderConfig,
        model: ModelConfig,
        client_api_key: Optional[str] = None,
    ) -> OpenAIMessagesResponse:
        response = await super().chat_complete(request, provider, model, client_api_key)
        self.store_signatures(response)
        return response
