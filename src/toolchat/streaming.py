"""Stream decoding primitives for provider responses.

Raw provider chunks (or a single buffered response) are decoded into
:class:`StreamChunk` objects. The :class:`ToolCallAccumulator`
reassembles tool calls whose arguments arrive in fragments across
multiple chunks.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

TOOL_CALL_FINISH_REASONS = ("tool_calls", "function_call")


@dataclass
class ToolCallFragment:
    """A fragment of a tool call from a streaming chunk."""

    index: int
    call_id: str | None = None
    name: str | None = None
    arguments_delta: str | None = None


@dataclass
class Usage:
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int = 0


@dataclass
class StreamChunk:
    """Normalised event decoded from any provider response."""

    content_delta: str | None = None
    tool_call_fragments: list[ToolCallFragment] | None = None
    finish_reason: str | None = None
    usage: Usage | None = None


@dataclass
class ToolCall:
    """A resolved tool call ready for execution."""

    id: str = ""
    name: str = ""
    arguments: str = ""


def _get(obj: Any, name: str, default: Any = None) -> Any:
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _usage(raw: Any) -> Usage | None:
    if raw is None:
        return None
    prompt = _get(raw, "prompt_tokens")
    completion = _get(raw, "completion_tokens")
    total = _get(raw, "total_tokens")
    if total is None:
        total = (prompt or 0) + (completion or 0)
    return Usage(prompt_tokens=prompt, completion_tokens=completion, total_tokens=total)


def decode_chunk(chunk: Any) -> StreamChunk | None:
    """Decode one raw streaming chunk.

    Returns ``None`` when the chunk carries nothing of interest (e.g.
    a role-only delta).
    """
    choices = _get(chunk, "choices") or []
    choice = choices[0] if choices else None
    delta = _get(choice, "delta")

    fragments = []
    for tc in _get(delta, "tool_calls") or []:
        function = _get(tc, "function")
        fragments.append(ToolCallFragment(
            index=_get(tc, "index", 0) or 0,
            call_id=_get(tc, "id"),
            name=_get(function, "name"),
            arguments_delta=_get(function, "arguments"),
        ))

    event = StreamChunk(
        content_delta=_get(delta, "content") or None,
        tool_call_fragments=fragments or None,
        finish_reason=_get(choice, "finish_reason"),
        usage=_usage(_get(chunk, "usage")),
    )
    if (
        event.content_delta is None
        and event.tool_call_fragments is None
        and event.finish_reason is None
        and event.usage is None
    ):
        return None
    return event


def decode_response(response: Any) -> list[StreamChunk]:
    """Decode a buffered (non-streaming) completion.

    Returns exactly one content event followed by one event per complete
    tool call, so buffered calls flow through the same accumulator as
    streamed ones.
    """
    choices = _get(response, "choices") or []
    choice = choices[0] if choices else None
    message = _get(choice, "message")
    tool_calls = _get(message, "tool_calls") or []

    finish_reason = _get(choice, "finish_reason")
    if finish_reason is None:
        finish_reason = "tool_calls" if tool_calls else "stop"

    events = [StreamChunk(
        content_delta=_get(message, "content") or "",
        finish_reason=finish_reason,
        usage=_usage(_get(response, "usage")),
    )]
    for index, tc in enumerate(tool_calls):
        function = _get(tc, "function")
        events.append(StreamChunk(tool_call_fragments=[ToolCallFragment(
            index=index,
            call_id=_get(tc, "id"),
            name=_get(function, "name"),
            arguments_delta=_get(function, "arguments"),
        )]))
    return events


async def decode_stream(chunks: AsyncIterable[Any]) -> AsyncIterator[StreamChunk]:
    """Decode an async sequence of raw chunks, closing it when done."""
    try:
        async for chunk in chunks:
            event = decode_chunk(chunk)
            if event is not None:
                yield event
    finally:
        closer = getattr(chunks, "close", None) or getattr(chunks, "aclose", None)
        if closer is not None:
            result = closer()
            if inspect.isawaitable(result):
                await result


class ToolCallAccumulator:
    """Assembles complete tool calls from streaming fragments.

    Argument fragments are always appended. Name fragments are merged
    differently: a fragment that starts with the name collected so far
    replaces it, anything else is appended. That accepts providers that
    resend the full name on every chunk as well as ones that stream it
    in pieces, at the cost of collapsing a name made of a repeated piece
    (``"echo"`` then ``"echo"`` stays ``"echo"``).
    """

    def __init__(self) -> None:
        self._pending: dict[int, ToolCall] = {}

    def feed(self, fragment: ToolCallFragment) -> None:
        if fragment.index not in self._pending:
            self._pending[fragment.index] = ToolCall()
        tc = self._pending[fragment.index]
        if fragment.call_id:
            tc.id = fragment.call_id
        if fragment.name:
            # Some providers repeat the full name, others stream it in pieces.
            if not tc.name or fragment.name.startswith(tc.name):
                tc.name = fragment.name
            else:
                tc.name += fragment.name
        if fragment.arguments_delta is not None:
            tc.arguments += fragment.arguments_delta

    def finalize(self) -> list[ToolCall]:
        """Return completed tool calls in index order.

        Slots that never received an id are dropped.
        """
        calls = []
        for index in sorted(self._pending):
            tc = self._pending[index]
            if not tc.id:
                logger.warning(f"Dropping tool call at index {index}: no id received")
                continue
            calls.append(tc)
        return calls

    def __len__(self) -> int:
        return len(self._pending)
