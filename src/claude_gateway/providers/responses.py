"""OpenAI Responses API provider implementation."""

import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Set, Tuple

from ..config import ModelConfig, ProviderConfig
from ..errors import classify_upstream_error
from ..models.openai import (
    OpenAIChoice,
    OpenAIFunctionCall,
    OpenAIImagePart,
    OpenAIMessage,
    OpenAIMessagesRequest,
    OpenAIMessagesResponse,
    OpenAIStreamChoice,
    OpenAIStreamDelta,
    OpenAIStreamResponse,
    OpenAITextPart,
    OpenAIToolCall,
    OpenAIUsage,
)
from ..models.responses import ResponsesRequest, ResponsesResponse
from .base import BaseProvider

logger = logging.getLogger(__name__)


class ResponsesProvider(BaseProvider):
    """Upstream speaking the Responses dialect (``POST {base}/responses``).

    Chat history is flattened into ``input`` items; system prompts move to
    ``instructions``.
    """

    name = "openai-responses"
    endpoint = "/responses"

    def convert_request(self, request: OpenAIMessagesRequest, model: ModelConfig) -> ResponsesRequest:
        """Convert a canonical request into the Responses request shape.

        Function calls without a matching tool result are dropped since the
        upstream rejects unpaired calls. Assistant text that accompanies tool
        calls is dropped as well to keep each call adjacent to its output.
        """
        prepared = self.prepare_request(request, model)

        answered: Set[str] = {
            message.tool_call_id
            for message in prepared.messages
            if message.role == "tool" and message.tool_call_id
        }

        instructions: List[str] = []
        items: List[Dict[str, Any]] = []

        for message in prepared.messages:
            if message.role == "system":
                text = message.text()
                if text:
                    instructions.append(text)
            elif message.role == "tool":
                if not message.tool_call_id:
                    logger.warning("Tool message without tool_call_id, skipping")
                    continue
                items.append({
                    "type": "function_call_output",
                    "call_id": message.tool_call_id,
                    "output": message.text(),
                })
            elif message.role == "assistant":
                items.extend(self._assistant_items(message, answered))
            else:
                items.append({
                    "type": "message",
                    "role": message.role,
                    "content": self._input_parts(message),
                })

        temperature = prepared.temperature
        if not model.options.supports_temperature:
            if temperature is not None:
                logger.debug(f"Model {model.name} does not support temperature, omitting it")
            temperature = None

        tools = None
        if prepared.tools:
            tools = [
                {
                    "type": "function",
                    "name": tool.function.name,
                    "description": tool.function.description,
                    "parameters": tool.function.parameters,
                }
                for tool in prepared.tools
            ]

        return ResponsesRequest(
            model=model.name,
            input=items,
            instructions=" ".join(instructions) or None,
            max_output_tokens=self.effective_max_tokens(request.max_tokens, model),
            temperature=temperature,
            top_p=prepared.top_p,
            tools=tools,
            tool_choice=self._convert_tool_choice(prepared.tool_choice) if tools else None,
            user=prepared.user,
        )

    @staticmethod
    def _input_parts(message: OpenAIMessage) -> List[Dict[str, Any]]:
        if message.content is None:
            return [{"type": "input_text", "text": ""}]
        if isinstance(message.content, str):
            return [{"type": "input_text", "text": message.content}]
        parts = []
        for part in message.content:
            if isinstance(part, OpenAITextPart):
                parts.append({"type": "input_text", "text": part.text})
            elif isinstance(part, OpenAIImagePart):
                parts.append({"type": "input_image", "image_url": part.image_url.url})
        return parts

    @staticmethod
    def _assistant_items(message: OpenAIMessage, answered: Set[str]) -> List[Dict[str, Any]]:
        if not message.tool_calls:
            text = message.text()
            if not text:
                return []
            return [{
                "type": "message",
                "role": "assistant",
                "content": [{"type": "output_text", "text": text}],
            }]

        items = []
        for tool_call in message.tool_calls:
            if not tool_call.id:
                logger.warning("Tool call without id, skipping")
                continue
            if tool_call.id not in answered:
                logger.warning(f"Skipping orphan function_call with call_id={tool_call.id} (no matching output)")
                continue
            items.append({
                "type": "function_call",
                "call_id": tool_call.id,
                "name": tool_call.function.name,
                "arguments": tool_call.function.arguments or "",
            })
        return items

    @staticmethod
    def _convert_tool_choice(tool_choice: Any) -> Any:
        # Named choices are flat in the Responses dialect
        if isinstance(tool_choice, dict) and tool_choice.get("type") == "function":
            name = (tool_choice.get("function") or {}).get("name")
            return {"type": "function", "name": name}
        return tool_choice

    def convert_response(self, response: ResponsesResponse) -> OpenAIMessagesResponse:
        """Convert a Responses response to the canonical form; reasoning is discarded."""
        texts: List[str] = []
        tool_calls: List[OpenAIToolCall] = []

        for output in response.output:
            if output.type == "message":
                for content in output.content or []:
                    if content.type == "output_text" and content.text:
                        texts.append(content.text)
            elif output.type in ("function_call", "tool_use"):
                if output.name is None:
                    logger.warning("Function call output without a name, skipping")
                    continue
                tool_calls.append(OpenAIToolCall(
                    id=output.call_id or output.id,
                    function=OpenAIFunctionCall(name=output.name, arguments=output.arguments or ""),
                ))
            elif output.type == "reasoning":
                logger.debug(f"Discarding reasoning output with {len(output.summary or [])} summary items")
            else:
                logger.debug(f"Ignoring unknown output type: {output.type}")

        text = "".join(texts)
        usage = None
        if response.usage:
            usage = OpenAIUsage(
                prompt_tokens=response.usage.input_tokens,
                completion_tokens=response.usage.output_tokens,
                total_tokens=response.usage.total_tokens
                or response.usage.input_tokens + response.usage.output_tokens,
            )

        return OpenAIMessagesResponse(
            id=response.id,
            model=response.model,
            created=response.created_at or 0,
            choices=[OpenAIChoice(
                message=OpenAIMessage(
                    role="assistant",
                    content=text or None,
                    tool_calls=tool_calls or None,
                ),
                finish_reason=self._finish_reason(response.status, bool(tool_calls)),
            )],
            usage=usage,
        )

    @staticmethod
    def _finish_reason(status: Optional[str], has_tool_calls: bool) -> str:
        if has_tool_calls:
            return "tool_calls"
        if status == "incomplete":
            return "length"
        return "stop"

    def build_payload(self, request: OpenAIMessagesRequest, model: ModelConfig, stream: bool) -> Dict[str, Any]:
        payload = self.convert_request(request, model)
        if stream:
            payload.stream = True
        return payload.model_dump(exclude_none=True)

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
        logger.debug(f"Responses API request: {payload}")

        data = await self.post_json(url, payload, self.get_headers(provider, api_key))
        logger.debug(f"Responses API response: {data}")
        return self.convert_response(ResponsesResponse.model_validate(data))

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
        headers = self.get_headers(provider, api_key, stream=True)
        logger.debug(f"Responses API streaming request: {payload}")

        state = ResponsesStreamState()
        async for data in self.iter_sse_data(url, payload, headers):
            try:
                event = json.loads(data)
            except json.JSONDecodeError:
                logger.warning(f"Skipping malformed Responses event: {data[:200]}")
                continue
            chunk = state.convert_event(event)
            if chunk is not None:
                yield chunk


class ResponsesStreamState:
    """Maps Responses stream events onto canonical chunks.

    Function-call items are numbered in order of appearance; argument deltas
    reference their item by ``item_id`` and are emitted under the same
    tool-call index without an id.
    """

    def __init__(self):
        self.response_id = ""
        self._calls: Dict[str, Tuple[int, bool]] = {}

    def _chunk(
        self,
        delta: OpenAIStreamDelta,
        finish_reason: Optional[str] = None,
        usage: Optional[OpenAIUsage] = None,
    ) -> OpenAIStreamResponse:
        return OpenAIStreamResponse(
            id=self.response_id,
            choices=[OpenAIStreamChoice(delta=delta, finish_reason=finish_reason)],
            usage=usage,
        )

    def convert_event(self, event: Dict[str, Any]) -> Optional[OpenAIStreamResponse]:
        event_type = event.get("type", "")

        if event_type in ("response.created", "response.in_progress"):
            self.response_id = (event.get("response") or {}).get("id", self.response_id)
            return self._chunk(OpenAIStreamDelta(role="assistant"))

        if event_type == "response.output_text.delta":
            delta = event.get("delta")
            if isinstance(delta, str) and delta:
                return self._chunk(OpenAIStreamDelta(content=delta))
            return None

        if event_type == "response.output_item.added":
            item = event.get("item") or {}
            if item.get("type") != "function_call":
                return None
            index = len(self._calls)
            arguments = item.get("arguments") or ""
            self._calls[item.get("id") or item.get("call_id") or str(index)] = (index, bool(arguments))
            return self._chunk(OpenAIStreamDelta(tool_calls=[OpenAIToolCall(
                index=index,
                id=item.get("call_id") or item.get("id"),
                function=OpenAIFunctionCall(name=item.get("name"), arguments=arguments),
            )]))

        if event_type == "response.function_call_arguments.delta":
            call = self._calls.get(event.get("item_id", ""))
            delta = event.get("delta")
            if call is None or not delta:
                return None
            self._calls[event["item_id"]] = (call[0], True)
            return self._chunk(OpenAIStreamDelta(tool_calls=[OpenAIToolCall(
                index=call[0],
                function=OpenAIFunctionCall(arguments=delta),
            )]))

        if event_type == "response.output_item.done":
            # Arguments that only arrive with the finished item
            item = event.get("item") or {}
            call = self._calls.get(item.get("id") or item.get("call_id") or "")
            if call is None or call[1] or not item.get("arguments"):
                return None
            self._calls[item.get("id") or item.get("call_id")] = (call[0], True)
            return self._chunk(OpenAIStreamDelta(tool_calls=[OpenAIToolCall(
                index=call[0],
                function=OpenAIFunctionCall(arguments=item["arguments"]),
            )]))

        if event_type in ("response.completed", "response.done"):
            response = event.get("response") or {}
            usage = None
            if isinstance(response.get("usage"), dict):
                input_tokens = response["usage"].get("input_tokens", 0)
                output_tokens = response["usage"].get("output_tokens", 0)
                usage = OpenAIUsage(
                    prompt_tokens=input_tokens,
                    completion_tokens=output_tokens,
                    total_tokens=input_tokens + output_tokens,
                )
            finish_reason = "tool_calls" if self._calls else "stop"
            return self._chunk(OpenAIStreamDelta(), finish_reason=finish_reason, usage=usage)

        if event_type in ("response.failed", "error"):
            error = event.get("error") or (event.get("response") or {}).get("error") or {}
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise classify_upstream_error(None, message or json.dumps(event))

        return None
