"""Translation between the Claude Messages format and the canonical OpenAI form."""

import json
import logging
from typing import Any, Dict, List, Optional, Union

from .errors import APIError, InvalidRequestError
from .models.claude import (
    ClaudeImageContent,
    ClaudeMessage,
    ClaudeMessagesRequest,
    ClaudeMessagesResponse,
    ClaudeTextContent,
    ClaudeTool,
    ClaudeToolResultContent,
    ClaudeToolUseContent,
    ClaudeUnknownContent,
    ClaudeUsage,
    has_text,
)
from .models.openai import (
    OpenAIFunctionCall,
    OpenAIFunctionDefinition,
    OpenAIImagePart,
    OpenAIImageUrl,
    OpenAIMessage,
    OpenAIMessagesRequest,
    OpenAIMessagesResponse,
    OpenAITextPart,
    OpenAITool,
    OpenAIToolCall,
)
from .thought_cache import ThoughtSignatureCache, get_thought_cache
from .utils import extract_session_id, generate_message_id, generate_tool_use_id

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 4096
MAX_TOKENS_LIMIT = 100000
VALID_ROLES = ("user", "assistant", "system")

FINISH_REASON_MAPPING = {
    "stop": "end_turn",
    "length": "max_tokens",
    "content_filter": "stop_sequence",
    "tool_calls": "tool_use",
    "function_call": "tool_use",
}


def validate_request(request: ClaudeMessagesRequest) -> None:
    """Reject requests the upstream should never see.

    Raises ``InvalidRequestError`` with a human readable message.
    """
    if not request.model:
        raise InvalidRequestError("Model name cannot be empty")

    if request.max_tokens < 0:
        raise InvalidRequestError("max_tokens must be greater than 0")
    if request.max_tokens > MAX_TOKENS_LIMIT:
        raise InvalidRequestError(f"max_tokens cannot exceed {MAX_TOKENS_LIMIT}")

    if not request.messages:
        raise InvalidRequestError("Message list cannot be empty")

    for i, message in enumerate(request.messages):
        if not message.role:
            raise InvalidRequestError(f"Message {i} role cannot be empty")
        if message.role not in VALID_ROLES:
            raise InvalidRequestError(f"Message {i} role is invalid: {message.role}")
        # Assistant turns may be empty (tool-only turns)
        if message.role == "user" and message.is_empty():
            raise InvalidRequestError(f"Message {i} content cannot be empty")

    if request.temperature is not None and not 0.0 <= request.temperature <= 2.0:
        raise InvalidRequestError("temperature must be between 0.0 and 2.0")
    if request.top_p is not None and not 0.0 <= request.top_p <= 1.0:
        raise InvalidRequestError("top_p must be between 0.0 and 1.0")
    if request.top_k is not None and request.top_k <= 0:
        raise InvalidRequestError("top_k must be greater than 0")


def convert_request(
    request: ClaudeMessagesRequest,
    model_aliases: Optional[Dict[str, str]] = None,
) -> OpenAIMessagesRequest:
    """Convert a Claude request to the canonical OpenAI form.

    The model name is only passed through the alias table here; resolving it
    to a provider is the router's job.
    """
    messages: List[OpenAIMessage] = []

    # Add system message if present
    if request.system:
        system_text = has_text(request.system)
        if system_text:
            messages.append(OpenAIMessage(role="system", content=system_text))

    for message in request.messages:
        messages.extend(convert_message(message))

    model = request.model
    if model_aliases and model in model_aliases:
        model = model_aliases[model]
        logger.debug(f"Model alias applied: {request.model} -> {model}")

    openai_request = OpenAIMessagesRequest(
        model=model,
        messages=messages,
        max_tokens=request.max_tokens or DEFAULT_MAX_TOKENS,
        temperature=request.temperature,
        top_p=request.top_p,
        n=1,
        stream=bool(request.stream),
        stop=request.stop_sequences or None,
    )

    if request.tools:
        openai_request.tools = convert_tools(request.tools)
        if request.tool_choice:
            openai_request.tool_choice = convert_tool_choice(request.tool_choice)

    user_id = (request.metadata or {}).get("user_id")
    if isinstance(user_id, str) and user_id:
        openai_request.user = user_id
        openai_request.session_id = extract_session_id(user_id)

    return openai_request


def convert_message(message: ClaudeMessage) -> List[OpenAIMessage]:
    """Convert one Claude message; tool results become separate tool messages."""
    content = message.content

    if isinstance(content, str):
        return [OpenAIMessage(role=message.role, content=content)]

    if not isinstance(content, list):
        if content is None and not message.is_explicit_null():
            return [OpenAIMessage(role=message.role, content="")]
        logger.warning(f"Forwarding unrecognised {message.role} content as JSON text")
        return [OpenAIMessage(role=message.role, content=json.dumps(content, ensure_ascii=False))]

    parts: List[Union[OpenAITextPart, OpenAIImagePart]] = []
    tool_calls: List[OpenAIToolCall] = []
    tool_messages: List[OpenAIMessage] = []

    for block in content:
        if isinstance(block, ClaudeTextContent):
            parts.append(OpenAITextPart(text=block.text))
        elif isinstance(block, ClaudeImageContent):
            source = block.source
            if source.type != "base64":
                logger.warning(f"Unsupported image source type: {source.type}")
                continue
            parts.append(OpenAIImagePart(
                image_url=OpenAIImageUrl(url=f"data:{source.media_type};base64,{source.data}")
            ))
        elif isinstance(block, ClaudeToolUseContent):
            tool_call = OpenAIToolCall(
                id=block.id,
                type="function",
                function=OpenAIFunctionCall(
                    name=block.name,
                    arguments=json.dumps(block.input, ensure_ascii=False),
                ),
            )
            if block.thought_signature:
                tool_call.set_thought_signature(block.thought_signature)
            tool_calls.append(tool_call)
        elif isinstance(block, ClaudeToolResultContent):
            tool_messages.append(OpenAIMessage(
                role="tool",
                tool_call_id=block.tool_use_id,
                content=block.result_text(),
            ))
        elif isinstance(block, ClaudeUnknownContent):
            logger.debug(f"Skipping unsupported content block type: {block.type}")

    converted: List[OpenAIMessage] = []
    if parts or tool_calls or not tool_messages:
        openai_message = OpenAIMessage(role=message.role, content=_collapse_parts(parts, tool_calls))
        if tool_calls:
            openai_message.tool_calls = tool_calls
        converted.append(openai_message)
    converted.extend(tool_messages)
    return converted


def _collapse_parts(
    parts: List[Union[OpenAITextPart, OpenAIImagePart]],
    tool_calls: List[OpenAIToolCall],
) -> Optional[Union[str, List[Union[OpenAITextPart, OpenAIImagePart]]]]:
    if not parts:
        # Tool-call-only assistant turns carry null content
        return None if tool_calls else ""
    if len(parts) == 1 and isinstance(parts[0], OpenAITextPart):
        return parts[0].text
    return parts


def convert_tools(tools: List[ClaudeTool]) -> List[OpenAITool]:
    """Convert Claude tools format to OpenAI tools format."""
    openai_tools = []
    for tool in tools:
        # Claude: {"name": "...", "description": "...", "input_schema": {...}}
        # OpenAI: {"type": "function", "function": {"name": "...", "description": "...", "parameters": {...}}}
        parameters = dict(tool.input_schema) if tool.input_schema else {
            "type": "object",
            "properties": {},
        }
        openai_tools.append(OpenAITool(
            function=OpenAIFunctionDefinition(
                name=tool.name,
                description=tool.description,
                parameters=parameters,
            )
        ))
    logger.debug(f"Converted {len(tools)} Claude tools to OpenAI format")
    return openai_tools


def convert_tool_choice(tool_choice: Dict[str, Any]) -> Union[str, Dict[str, Any]]:
    """Convert Claude tool_choice format to OpenAI format."""
    # Claude format: {"type": "auto" | "any" | "none"} or {"type": "tool", "name": "function_name"}
    choice_type = tool_choice.get("type", "auto")
    if choice_type == "any":
        return "required"
    if choice_type == "none":
        return "none"
    if choice_type == "tool" and tool_choice.get("name"):
        return {"type": "function", "function": {"name": tool_choice["name"]}}
    return "auto"


def convert_finish_reason(finish_reason: Optional[str]) -> str:
    """Convert OpenAI finish reason to Claude stop reason; total over all inputs."""
    if finish_reason is None:
        return "end_turn"
    if finish_reason not in FINISH_REASON_MAPPING:
        logger.debug(f"Unknown finish_reason: {finish_reason}")
    return FINISH_REASON_MAPPING.get(finish_reason, "end_turn")


def parse_tool_arguments(arguments: Optional[str]) -> Dict[str, Any]:
    """Parse a stringified JSON arguments payload into a tool input object."""
    if arguments is None or arguments.strip() in ("", '""'):
        return {}
    try:
        parsed = json.loads(arguments)
    except json.JSONDecodeError:
        logger.warning(f"Tool call arguments are not valid JSON: {arguments[:200]}")
        return {}
    if not isinstance(parsed, dict):
        logger.warning(f"Tool call arguments are not a JSON object: {arguments[:200]}")
        return {}
    return parsed


def convert_response(
    response: OpenAIMessagesResponse,
    original_model: str,
    thought_cache: Optional[ThoughtSignatureCache] = None,
) -> ClaudeMessagesResponse:
    """Convert a canonical response to Claude format.

    ``original_model`` is the client-supplied name; the upstream model name is
    never echoed back.
    """
    if not response.choices:
        raise APIError("No choices in upstream response")

    cache = thought_cache if thought_cache is not None else get_thought_cache()
    choice = response.choices[0]
    message = choice.message

    content: List[Any] = []
    text = message.text()
    if text:
        content.append(ClaudeTextContent(text=text))

    for tool_call in message.tool_calls or []:
        if tool_call.type not in (None, "function"):
            logger.debug(f"Skipping tool call of type {tool_call.type}")
            continue
        tool_use_id = tool_call.id or generate_tool_use_id()
        signature = tool_call.thought_signature()
        if signature:
            cache.store(tool_use_id, signature)
        content.append(ClaudeToolUseContent(
            id=tool_use_id,
            name=tool_call.function.name or "",
            input=parse_tool_arguments(tool_call.function.arguments),
            thought_signature=signature,
        ))

    usage = response.usage
    return ClaudeMessagesResponse(
        id=generate_message_id(),
        model=original_model,
        content=content,
        stop_reason=convert_finish_reason(choice.finish_reason),
        usage=ClaudeUsage(
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
        ),
    )
