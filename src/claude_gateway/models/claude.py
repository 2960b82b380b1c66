"""Claude API data models."""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, model_serializer


class _CompactModel(BaseModel):
    """Omits unset optional attributes when serialised."""

    @model_serializer(mode="wrap")
    def _drop_none(self, handler):
        data = handler(self)
        return {key: value for key, value in data.items() if value is not None}


class ClaudeTextContent(BaseModel):
    """Claude text content block."""
    type: Literal["text"] = "text"
    text: str = ""


class ClaudeImageSource(_CompactModel):
    """Claude image source (base64 or url)."""
    type: str = "base64"
    media_type: str = "image/jpeg"
    data: str = ""
    url: Optional[str] = None


class ClaudeImageContent(BaseModel):
    """Claude image content block."""
    type: Literal["image"] = "image"
    source: ClaudeImageSource


class ClaudeToolUseContent(_CompactModel):
    """Claude tool use content block."""
    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: Dict[str, Any] = Field(default_factory=dict)
    thought_signature: Optional[str] = None
    cache_control: Optional[Dict[str, Any]] = None


class ClaudeToolResultContent(_CompactModel):
    """Claude tool result content block."""
    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: Optional[Union[str, List[Dict[str, Any]]]] = None
    is_error: Optional[bool] = None
    cache_control: Optional[Dict[str, Any]] = None

    def result_text(self) -> str:
        """Flatten the result payload to text."""
        if self.content is None:
            return ""
        if isinstance(self.content, str):
            return self.content
        return "".join(
            item.get("text", "")
            for item in self.content
            if isinstance(item, dict) and item.get("type") == "text"
        )


class ClaudeUnknownContent(BaseModel):
    """Any content block whose type the gateway does not recognise.

    Extra fields are kept so the block survives a round-trip untouched.
    """
    model_config = ConfigDict(extra="allow")

    type: str = "unknown"


_KNOWN_BLOCK_TYPES = {"text", "image", "tool_use", "tool_result"}


def _block_tag(value: Any) -> str:
    if isinstance(value, dict):
        block_type = value.get("type")
    else:
        block_type = getattr(value, "type", None)
    return block_type if block_type in _KNOWN_BLOCK_TYPES else "unknown"


ClaudeContentBlock = Annotated[
    Union[
        Annotated[ClaudeTextContent, Tag("text")],
        Annotated[ClaudeImageContent, Tag("image")],
        Annotated[ClaudeToolUseContent, Tag("tool_use")],
        Annotated[ClaudeToolResultContent, Tag("tool_result")],
        Annotated[ClaudeUnknownContent, Tag("unknown")],
    ],
    Discriminator(_block_tag),
]

# A message body is a string, a block list, or anything else kept verbatim.
ClaudeContent = Union[str, List[ClaudeContentBlock], Any]


def extract_text(content: Any) -> str:
    """Concatenate the text blocks of a content value, in order."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            block.text for block in content if isinstance(block, ClaudeTextContent)
        )
    return ""


def has_text(content: Any) -> str:
    """Textual projection used for the system prompt.

    Text and tool-result blocks contribute their text; blocks are joined with
    newlines. Tool-use and image blocks contribute nothing.
    """
    if isinstance(content, str):
        return content
    if not isinstance(content, list):
        return ""
    parts = []
    for block in content:
        if isinstance(block, ClaudeTextContent):
            parts.append(block.text)
        elif isinstance(block, ClaudeToolResultContent):
            parts.append(block.result_text())
    return "\n".join(part for part in parts if part)


def has_images(content: Any) -> bool:
    return isinstance(content, list) and any(
        isinstance(block, ClaudeImageContent) for block in content
    )


def has_tool_calls(content: Any) -> bool:
    return isinstance(content, list) and any(
        isinstance(block, ClaudeToolUseContent) for block in content
    )


def has_tool_results(content: Any) -> bool:
    return isinstance(content, list) and any(
        isinstance(block, ClaudeToolResultContent) for block in content
    )


def is_other(content: Any) -> bool:
    """True for escape-hatch content and for lists holding unknown blocks."""
    if content is None or isinstance(content, str):
        return False
    if isinstance(content, list):
        return any(isinstance(block, ClaudeUnknownContent) for block in content)
    return True


class ClaudeMessage(BaseModel):
    """Claude API message format."""
    role: str = Field(..., description="Message role: user, assistant, system")
    content: ClaudeContent = Field(
        default=None, union_mode="left_to_right", description="Message content"
    )

    def extract_text(self) -> str:
        return extract_text(self.content)

    def has_images(self) -> bool:
        return has_images(self.content)

    def has_tool_calls(self) -> bool:
        return has_tool_calls(self.content)

    def has_tool_results(self) -> bool:
        return has_tool_results(self.content)

    def is_explicit_null(self) -> bool:
        """``content: null`` sent on the wire, as opposed to an omitted field."""
        return self.content is None and "content" in self.model_fields_set

    def is_other(self) -> bool:
        return is_other(self.content) or self.is_explicit_null()

    def is_empty(self) -> bool:
        """True when the message carries nothing the upstream could use."""
        return not (
            self.extract_text().strip()
            or self.has_images()
            or self.has_tool_calls()
            or self.has_tool_results()
            or self.is_other()
        )


class ClaudeTool(BaseModel):
    """Claude tool definition."""
    model_config = ConfigDict(extra="allow")

    name: str
    description: Optional[str] = None
    input_schema: Dict[str, Any] = Field(default_factory=dict)


class ClaudeUsage(BaseModel):
    """Claude API usage statistics."""
    input_tokens: int = 0
    output_tokens: int = 0


class ClaudeMessagesRequest(BaseModel):
    """Claude API /v1/messages request format.

    Range checks live in ``converter.validate_request`` so that violations
    surface as ``invalid_request_error`` rather than schema errors.
    """
    model: str = Field(..., description="Claude model name")
    max_tokens: int = Field(default=0, description="Maximum tokens to generate")
    messages: List[ClaudeMessage] = Field(..., description="Conversation messages")
    system: Optional[Union[str, List[ClaudeContentBlock]]] = Field(
        default=None, description="System prompt"
    )
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    top_k: Optional[int] = None
    stream: Optional[bool] = Field(default=False, description="Enable streaming")
    stop_sequences: Optional[List[str]] = None
    tools: Optional[List[ClaudeTool]] = None
    tool_choice: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None


class ClaudeMessagesResponse(BaseModel):
    """Claude API /v1/messages response format."""
    id: str
    type: str = "message"
    role: str = "assistant"
    model: str
    content: List[ClaudeContentBlock]
    stop_reason: Optional[str] = None
    stop_sequence: Optional[str] = None
    usage: ClaudeUsage = Field(default_factory=ClaudeUsage)


class ClaudeTokenCountRequest(BaseModel):
    """Claude API token count request format."""
    model: str
    system: Optional[Union[str, List[ClaudeContentBlock]]] = None
    messages: List[ClaudeMessage]


class ClaudeTokenCountResponse(BaseModel):
    """Claude API token count response format."""
    input_tokens: int


class ClaudeError(BaseModel):
    type: str
    message: str


class ClaudeErrorResponse(BaseModel):
    """Anthropic error envelope.

    The assistant-shaped fields keep naive clients from tripping over a
    missing ``content`` or ``usage`` key.
    """
    type: str = "error"
    error: ClaudeError
    content: List[Dict[str, Any]] = Field(default_factory=list)
    role: str = "assistant"
    usage: ClaudeUsage = Field(default_factory=ClaudeUsage)


# Streaming events

class ClaudeTextDelta(BaseModel):
    type: Literal["text_delta"] = "text_delta"
    text: str


class ClaudeInputJsonDelta(BaseModel):
    type: Literal["input_json_delta"] = "input_json_delta"
    partial_json: str


class ClaudeMessageDelta(BaseModel):
    stop_reason: Optional[str] = None
    stop_sequence: Optional[str] = None


class MessageStartEvent(BaseModel):
    type: Literal["message_start"] = "message_start"
    message: ClaudeMessagesResponse


class ContentBlockStartEvent(BaseModel):
    type: Literal["content_block_start"] = "content_block_start"
    index: int
    content_block: ClaudeContentBlock


class ContentBlockDeltaEvent(BaseModel):
    type: Literal["content_block_delta"] = "content_block_delta"
    index: int
    delta: Union[ClaudeTextDelta, ClaudeInputJsonDelta]


class ContentBlockStopEvent(BaseModel):
    type: Literal["content_block_stop"] = "content_block_stop"
    index: int


class MessageDeltaEvent(BaseModel):
    type: Literal["message_delta"] = "message_delta"
    delta: ClaudeMessageDelta
    usage: ClaudeUsage = Field(default_factory=ClaudeUsage)


class MessageStopEvent(BaseModel):
    type: Literal["message_stop"] = "message_stop"


ClaudeStreamEvent = Union[
    MessageStartEvent,
    ContentBlockStartEvent,
    ContentBlockDeltaEvent,
    ContentBlockStopEvent,
    MessageDeltaEvent,
    MessageStopEvent,
]
