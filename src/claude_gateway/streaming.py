"""Canonical stream chunks to Anthropic stream events."""

import json
import logging
from typing import AsyncIterator, Dict, List, Optional

from .converter import convert_finish_reason
from .models.claude import (
    ClaudeInputJsonDelta,
    ClaudeMessageDelta,
    ClaudeMessagesResponse,
    ClaudeStreamEvent,
    ClaudeTextContent,
    ClaudeTextDelta,
    ClaudeToolUseContent,
    ClaudeUsage,
    ContentBlockDeltaEvent,
    ContentBlockStartEvent,
    ContentBlockStopEvent,
    MessageDeltaEvent,
    MessageStartEvent,
    MessageStopEvent,
)
from .models.openai import OpenAIStreamResponse, OpenAIToolCall
from .thought_cache import ThoughtSignatureCache, get_thought_cache
from .utils import generate_message_id, generate_tool_use_id

logger = logging.getLogger(__name__)

TEXT_BLOCK_INDEX = 0


class StreamTranslator:
    """Per-stream state machine turning canonical chunks into Anthropic events.

    Block 0 is always the text block and is opened together with
    ``message_start``. Every tool call gets the next free index. Tool-call
    fragments are matched to their block by id; fragments without an id are
    matched by their position in the upstream tool-call list.

    ``feed`` returns the events produced by one chunk. The finish reason is
    only recorded there: ``finish`` emits the terminal sequence once the
    upstream closes, so usage sent after the finish chunk is still reported.
    A stream that never carried a finish reason ends with ``end_turn``.
    """

    def __init__(self, original_model: str, thought_cache: Optional[ThoughtSignatureCache] = None):
        self.original_model = original_model
        self.thought_cache = thought_cache if thought_cache is not None else get_thought_cache()
        self.message_id = generate_message_id()
        self.started = False
        self.finished = False
        self.stop_reason: Optional[str] = None
        self.next_index = TEXT_BLOCK_INDEX + 1
        self.input_tokens = 0
        self.output_tokens = 0
        self._blocks_by_id: Dict[str, int] = {}
        self._blocks_by_position: Dict[int, int] = {}
        self._block_tool_ids: Dict[int, str] = {}

    @property
    def open_tool_indices(self) -> List[int]:
        return sorted(self._block_tool_ids)

    def feed(self, chunk: OpenAIStreamResponse) -> List[ClaudeStreamEvent]:
        if self.finished:
            logger.debug("Ignoring chunk received after the stream finished")
            return []

        if chunk.usage:
            self.input_tokens = chunk.usage.prompt_tokens or self.input_tokens
            self.output_tokens = chunk.usage.completion_tokens or self.output_tokens

        if self.stop_reason is not None:
            return []

        if not chunk.choices:
            return []

        events: List[ClaudeStreamEvent] = []
        choice = chunk.choices[0]
        delta = choice.delta

        if not self.started:
            if delta.role or delta.content or delta.tool_calls or choice.finish_reason:
                events.extend(self._start())
            else:
                return events

        if delta.content:
            events.append(ContentBlockDeltaEvent(
                index=TEXT_BLOCK_INDEX,
                delta=ClaudeTextDelta(text=delta.content),
            ))

        for position, tool_call in enumerate(delta.tool_calls or []):
            events.extend(self._tool_call_events(position, tool_call))

        if choice.finish_reason:
            self.stop_reason = convert_finish_reason(choice.finish_reason)

        return events

    def finish(self) -> List[ClaudeStreamEvent]:
        """Emit the terminal sequence after the upstream closed."""
        if self.finished:
            return []
        stop_reason = self.stop_reason
        if stop_reason is None:
            logger.warning("Upstream stream ended without a finish reason")
            stop_reason = "end_turn"
        events: List[ClaudeStreamEvent] = []
        if not self.started:
            events.extend(self._start())
        events.extend(self._terminal(stop_reason))
        return events

    def _start(self) -> List[ClaudeStreamEvent]:
        self.started = True
        message = ClaudeMessagesResponse(
            id=self.message_id,
            model=self.original_model,
            content=[],
            usage=ClaudeUsage(input_tokens=self.input_tokens, output_tokens=0),
        )
        return [
            MessageStartEvent(message=message),
            ContentBlockStartEvent(index=TEXT_BLOCK_INDEX, content_block=ClaudeTextContent(text="")),
        ]

    def _tool_call_events(self, position: int, tool_call: OpenAIToolCall) -> List[ClaudeStreamEvent]:
        events: List[ClaudeStreamEvent] = []
        key = tool_call.index if tool_call.index is not None else position
        signature = tool_call.thought_signature()

        index = None
        if tool_call.id:
            index = self._blocks_by_id.get(tool_call.id)
        if index is None and not tool_call.id:
            index = self._blocks_by_position.get(key)

        if index is None:
            index = self.next_index
            self.next_index += 1
            tool_use_id = tool_call.id or generate_tool_use_id()
            self._blocks_by_id[tool_use_id] = index
            self._blocks_by_position[key] = index
            self._block_tool_ids[index] = tool_use_id
            events.append(ContentBlockStartEvent(
                index=index,
                content_block=ClaudeToolUseContent(
                    id=tool_use_id,
                    name=tool_call.function.name or "",
                    input={},
                    thought_signature=signature,
                ),
            ))

        if signature:
            self.thought_cache.store(self._block_tool_ids[index], signature)

        if tool_call.function.arguments:
            events.append(ContentBlockDeltaEvent(
                index=index,
                delta=ClaudeInputJsonDelta(partial_json=tool_call.function.arguments),
            ))
        return events

    def _terminal(self, stop_reason: str) -> List[ClaudeStreamEvent]:
        self.finished = True
        events: List[ClaudeStreamEvent] = [ContentBlockStopEvent(index=TEXT_BLOCK_INDEX)]
        events.extend(ContentBlockStopEvent(index=index) for index in self.open_tool_indices)
        events.append(MessageDeltaEvent(
            delta=ClaudeMessageDelta(stop_reason=stop_reason),
            usage=ClaudeUsage(input_tokens=self.input_tokens, output_tokens=self.output_tokens),
        ))
        events.append(MessageStopEvent())
        return events


async def translate_stream(
    chunks: AsyncIterator[OpenAIStreamResponse],
    original_model: str,
    thought_cache: Optional[ThoughtSignatureCache] = None,
) -> AsyncIterator[ClaudeStreamEvent]:
    """Translate an async sequence of canonical chunks into Anthropic events.

    Events are yielded in upstream order. If the consumer stops iterating the
    generator is closed and the upstream iterator is abandoned with it.
    """
    translator = StreamTranslator(original_model, thought_cache)
    async for chunk in chunks:
        for event in translator.feed(chunk):
            yield event
    for event in translator.finish():
        yield event


def format_sse(event: ClaudeStreamEvent) -> str:
    """Serialise one event as an SSE frame."""
    return f"event: {event.type}\ndata: {json.dumps(event.model_dump(), ensure_ascii=False)}\n\n"
