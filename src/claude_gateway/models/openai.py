"""OpenAI API data models.

These double as the gateway's canonical form: every provider adapter accepts an
``OpenAIMessagesRequest`` and returns ``OpenAIMessagesResponse`` or a sequence
of ``OpenAIStreamResponse`` chunks. Response-side fields are optional so that
upstreams omitting usage, fingerprints or model echoes still parse.
"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag


class OpenAITextPart(BaseModel):
    type: Literal["text"] = "text"
    text: str = ""


class OpenAIImageUrl(BaseModel):
    url: str
    detail: Optional[str] = None


class OpenAIImagePart(BaseModel):
    type: Literal["image_url"] = "image_url"
    image_url: OpenAIImageUrl


def _part_tag(value: Any) -> str:
    part_type = value.get("type") if isinstance(value, dict) else getattr(value, "type", None)
    return "image_url" if part_type == "image_url" else "text"


OpenAIContentPart = Annotated[
    Union[
        Annotated[OpenAITextPart, Tag("text")],
        Annotated[OpenAIImagePart, Tag("image_url")],
    ],
    Discriminator(_part_tag),
]


class OpenAIFunctionCall(BaseModel):
    """Function name and stringified JSON arguments of a tool call."""
    name: Optional[str] = None
    arguments: Optional[str] = None


class OpenAIToolCall(BaseModel):
    """OpenAI tool call.

    ``signature`` and ``extra_content`` carry thought signatures for thinking
    models; ``index`` is only present on streaming fragments.
    """
    model_config = ConfigDict(extra="allow")

    index: Optional[int] = None
    id: Optional[str] = None
    type: Optional[str] = "function"
    function: OpenAIFunctionCall = Field(default_factory=OpenAIFunctionCall)
    signature: Optional[str] = None
    extra_content: Optional[Dict[str, Any]] = None

    def thought_signature(self) -> Optional[str]:
        """Signature from the scalar side channel or ``extra_content.google``."""
        if self.signature:
            return self.signature
        google = (self.extra_content or {}).get("google")
        if isinstance(google, dict):
            signature = google.get("thought_signature")
            if isinstance(signature, str) and signature:
                return signature
        return None

    def set_thought_signature(self, signature: str) -> None:
        self.signature = signature
        extra = dict(self.extra_content or {})
        google = dict(extra.get("google") or {})
        google["thought_signature"] = signature
        extra["google"] = google
        self.extra_content = extra


class OpenAIMessage(BaseModel):
    """OpenAI API message format."""
    role: str = Field(..., description="Message role: system, user, assistant, tool")
    content: Optional[Union[str, List[OpenAIContentPart]]] = Field(
        default=None, description="Message content"
    )
    name: Optional[str] = Field(default=None, description="Message name")
    tool_calls: Optional[List[OpenAIToolCall]] = Field(default=None)
    tool_call_id: Optional[str] = Field(default=None)

    def text(self) -> str:
        """Concatenated text of the content, ignoring image parts."""
        if self.content is None:
            return ""
        if isinstance(self.content, str):
            return self.content
        return "".join(part.text for part in self.content if isinstance(part, OpenAITextPart))


class OpenAIFunctionDefinition(BaseModel):
    name: str
    description: Optional[str] = None
    parameters: Optional[Dict[str, Any]] = None


class OpenAITool(BaseModel):
    type: str = "function"
    function: OpenAIFunctionDefinition


class OpenAIUsage(BaseModel):
    """OpenAI API usage statistics."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class OpenAIChoice(BaseModel):
    """OpenAI API response choice."""
    index: int = 0
    message: OpenAIMessage = Field(default_factory=lambda: OpenAIMessage(role="assistant"))
    logprobs: Optional[Dict[str, Any]] = None
    finish_reason: Optional[str] = None


class OpenAIMessagesRequest(BaseModel):
    """OpenAI API /v1/chat/completions request format.

    ``session_id`` travels with the request inside the gateway and is never
    serialised into the body; adapters that support context caching send it as
    a header instead.
    """
    model: str = Field(..., description="Model name")
    messages: List[OpenAIMessage] = Field(..., description="Conversation messages")
    max_tokens: Optional[int] = Field(default=None)
    temperature: Optional[float] = Field(default=None)
    top_p: Optional[float] = Field(default=None)
    n: Optional[int] = Field(default=1, ge=1)
    stream: Optional[bool] = Field(default=False)
    stop: Optional[Union[str, List[str]]] = Field(default=None)
    user: Optional[str] = Field(default=None)
    tools: Optional[List[OpenAITool]] = Field(default=None)
    tool_choice: Optional[Union[str, Dict[str, Any]]] = Field(default=None)
    session_id: Optional[str] = Field(default=None, exclude=True)


class OpenAIMessagesResponse(BaseModel):
    """OpenAI API /v1/chat/completions response format."""
    id: str = ""
    object: str = "chat.completion"
    created: int = 0
    model: Optional[str] = None
    choices: List[OpenAIChoice] = Field(default_factory=list)
    usage: Optional[OpenAIUsage] = None
    system_fingerprint: Optional[str] = None


class OpenAIStreamDelta(BaseModel):
    """Delta carried by a streaming choice; every field may be absent."""
    role: Optional[str] = None
    content: Optional[str] = None
    tool_calls: Optional[List[OpenAIToolCall]] = None


class OpenAIStreamChoice(BaseModel):
    """OpenAI API streaming response choice."""
    index: int = 0
    delta: OpenAIStreamDelta = Field(default_factory=OpenAIStreamDelta)
    logprobs: Optional[Dict[str, Any]] = None
    finish_reason: Optional[str] = None


class OpenAIStreamResponse(BaseModel):
    """OpenAI API streaming response format."""
    id: str = ""
    object: str = "chat.completion.chunk"
    created: int = 0
    model: Optional[str] = None
    choices: List[OpenAIStreamChoice] = Field(default_factory=list)
    usage: Optional[OpenAIUsage] = None
    system_fingerprint: Optional[str] = None
