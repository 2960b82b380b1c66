"""OpenAI Responses API data models."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ResponsesRequest(BaseModel):
    """Responses API request.

    ``input`` holds heterogeneous items: ``message``, ``function_call`` and
    ``function_call_output``.
    """
    model: str
    input: List[Dict[str, Any]] = Field(default_factory=list)
    instructions: Optional[str] = None
    max_output_tokens: Optional[int] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    stream: Optional[bool] = None
    tools: Optional[List[Dict[str, Any]]] = None
    tool_choice: Optional[Any] = None
    user: Optional[str] = None


class ResponsesContent(BaseModel):
    type: str
    text: Optional[str] = None


class ResponsesOutput(BaseModel):
    """One item of the ``output`` array (message, function_call, reasoning...)."""
    type: str
    id: Optional[str] = None
    role: Optional[str] = None
    status: Optional[str] = None
    content: Optional[List[ResponsesContent]] = None
    call_id: Optional[str] = None
    name: Optional[str] = None
    arguments: Optional[str] = None
    summary: Optional[List[Any]] = None


class ResponsesUsage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: Optional[int] = None


class ResponsesResponse(BaseModel):
    id: str = ""
    model: Optional[str] = None
    status: Optional[str] = None
    output: List[ResponsesOutput] = Field(default_factory=list)
    usage: Optional[ResponsesUsage] = None
    created_at: Optional[int] = None
    incomplete_details: Optional[Dict[str, Any]] = None
