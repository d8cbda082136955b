"""Round loop driving one tool-augmented chat session."""

import asyncio
import inspect
import logging
import uuid
from collections.abc import Callable, Mapping
from contextlib import aclosing
from dataclasses import dataclass
from enum import Enum
from typing import Any

from toolchat import instrumentation as inst
from toolchat.collaborators import CredentialProvider, MessageSink, UsageRecorder
from toolchat.config import OrchestratorSettings, SamplingParams
from toolchat.errors import (
    MissingCredentialError,
    SessionSetupError,
    UnknownProviderError,
    classify_error,
)
from toolchat.executor import execute_tool_calls
from toolchat.message import Message
from toolchat.provider import ModelProvider
from toolchat.providers import ProviderConfig, supports_streaming, supports_system_prompt
from toolchat.streaming import (
    TOOL_CALL_FINISH_REASONS,
    StreamChunk,
    ToolCallAccumulator,
    decode_response,
    decode_stream,
)
from toolchat.tools import ToolCallRecord, ToolDefinition, tool_schemas

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[ProviderConfig, str | None], ModelProvider]

ERROR_PREFIX = "Error: "


class SessionState(Enum):
    INIT = "init"
    STREAMING = "streaming"
    EXECUTING_TOOLS = "executing_tools"
    DONE = "done"
    CANCELLED = "cancelled"
    ERRORED = "errored"

    @property
    def terminal(self) -> bool:
        return self in (SessionState.DONE, SessionState.CANCELLED, SessionState.ERRORED)


@dataclass
class SessionOptions:
    """Everything a caller supplies to start a session.

    Callbacks may be plain functions or coroutine functions.

    Args:
        conversation_id: Key passed to the message sink.
        provider_id: Provider registry key.
        model_id: Model to request.
        messages: Conversation history. Read, never mutated.
        system_prompt: Prepended unless the model rejects system prompts.
        enabled_tools: Names of registry tools offered to the model.
            ``None`` disables tool calling.
        params: Sampling parameters, defaulting to the orchestrator's.
        max_rounds: Overrides the orchestrator's round bound.
        on_token: ``(delta)`` for every content delta, in order.
        on_tool_call: ``(record)`` after each tool execution.
        on_done: ``(text, records)``; records is ``None`` when no tool
            ran during the session.
        on_error: ``(ClassifiedError)`` on failure. Never called on
            cancellation.
    """

    conversation_id: str
    provider_id: str
    model_id: str
    messages: list[Message]
    system_prompt: str | None = None
    enabled_tools: list[str] | None = None
    params: SamplingParams | None = None
    max_rounds: int | None = None
    on_token: Callable | None = None
    on_tool_call: Callable | None = None
    on_done: Callable | None = None
    on_error: Callable | None = None


async def _notify(callback: Callable | None, *args: Any) -> None:
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


def _requests_tools(finish_reason: str | None) -> bool:
    # A stream that ends without a finish reason is judged by its calls alone.
    return finish_reason is None or finish_reason in TOOL_CALL_FINISH_REASONS


class Session:
    """Ephemeral state and control flow of one ``send_stream`` call.

    The loop runs ``INIT -> STREAMING -> (EXECUTING_TOOLS -> STREAMING)*``
    and ends in ``DONE``, ``CANCELLED`` or ``ERRORED``. One network
    operation is in flight at a time; a round's tool calls may run
    concurrently but the next round waits for all of them.
    """

    def __init__(
        self,
        options: SessionOptions,
        *,
        providers: Mapping[str, ProviderConfig],
        credentials: CredentialProvider,
        provider_factory: ProviderFactory,
        tools: Mapping[str, ToolDefinition],
        sink: MessageSink,
        usage: UsageRecorder,
        settings: OrchestratorSettings,
        session_id: str | None = None,
    ):
        self.id = session_id or uuid.uuid4().hex
        self.options = options
        self.state = SessionState.INIT
        self.round_count = 0
        self.full_text = ""
        self.final_text: str | None = None
        self.max_rounds = options.max_rounds or settings.max_rounds
        self.records: list[ToolCallRecord] = []
        self.message_id: str | None = None
        self.error = None

        self._providers = providers
        self._credentials = credentials
        self._provider_factory = provider_factory
        self._tools = dict(tools)
        self._sink = sink
        self._usage = usage
        self._settings = settings
        self._provider_name = options.provider_id
        self._config: ProviderConfig | None = None
        self._task: asyncio.Task | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> asyncio.Task:
        """Schedule the session on the running event loop."""
        if self._task is not None:
            raise RuntimeError(f"Session {self.id} already started")
        self._task = asyncio.get_running_loop().create_task(
            self.run(), name=f"toolchat-session-{self.id}"
        )
        self._task.add_done_callback(self._on_task_done)
        return self._task

    def cancel(self) -> bool:
        """Abort the in-flight request. Dispatched tool calls finish on their own."""
        if self._task is None or self._task.done():
            return False
        logger.info(f"Stopping session {self.id} in state {self.state.value}")
        return self._task.cancel()

    async def wait(self) -> "Session":
        if self._task is not None:
            await asyncio.wait({self._task})
        return self

    @property
    def done(self) -> bool:
        return self.state.terminal

    def _on_task_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            self.state = SessionState.CANCELLED
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Session {self.id} callback raised: {exc!r}")

    async def run(self) -> None:
        """Drive the session to a terminal state and fire callbacks."""
        opts = self.options
        logger.info(
            f"Session {self.id} starting: {opts.provider_id}/{opts.model_id}, "
            f"{len(opts.messages)} messages"
        )
        try:
            text = await self._drive()
        except asyncio.CancelledError:
            self.state = SessionState.CANCELLED
            logger.info(f"Session {self.id} cancelled after {self.round_count} rounds")
            raise
        except Exception as e:
            await self._fail(e)
            return

        self.state = SessionState.DONE
        self.final_text = text
        logger.info(
            f"Session {self.id} done after {self.round_count + 1} rounds, "
            f"{len(self.records)} tool calls"
        )
        await _notify(opts.on_done, text, list(self.records) or None)

    async def _fail(self, exc: Exception) -> None:
        error = classify_error(exc, self._provider_name, self.options.model_id)
        if not error.user_visible:
            self.state = SessionState.CANCELLED
            return
        self.state = SessionState.ERRORED
        self.error = error
        logger.error(f"Session {self.id} failed ({error.kind.value}): {error.detail}")
        if self.message_id is not None:
            self._sink.update(
                self.options.conversation_id, self.message_id, ERROR_PREFIX + error.message
            )
        await _notify(self.options.on_error, error)

    # ------------------------------------------------------------------
    # Round loop
    # ------------------------------------------------------------------

    def _initialize(self) -> ModelProvider:
        opts = self.options
        config = self._providers.get(opts.provider_id)
        if config is None:
            raise UnknownProviderError(opts.provider_id)
        self._provider_name = config.name
        if not opts.model_id:
            raise SessionSetupError(f"No model selected for {config.name}")

        api_key = None
        if config.requires_key:
            api_key = self._credentials.get_key(config.id)
            if not api_key:
                raise MissingCredentialError(config.name)

        self._config = config
        return self._provider_factory(config, api_key)

    def _build_context(self) -> list[Message]:
        opts = self.options
        context = []
        if opts.system_prompt and supports_system_prompt(opts.model_id):
            context.append(Message.system(opts.system_prompt))
        for m in opts.messages:
            context.append(m if isinstance(m, Message) else Message.model_validate(m))
        return context

    async def _drive(self) -> str:
        opts = self.options
        async with inst.session_span(self.id, opts.provider_id, opts.model_id) as span:
            try:
                return await self._loop(span)
            except Exception as e:
                inst.record_error(span, e)
                raise

    async def _loop(self, span) -> str:
        opts = self.options
        provider = self._initialize()
        context = self._build_context()
        schemas = tool_schemas(self._tools.values()) or None
        streaming = supports_streaming(self._config, opts.model_id)
        params = (opts.params or self._settings.params).to_request(streaming)

        self.message_id = self._sink.append(opts.conversation_id, "")

        while True:
            self.state = SessionState.STREAMING
            self.full_text = ""
            if self.round_count:
                self._sink.update(opts.conversation_id, self.message_id, "")
            acc = ToolCallAccumulator()
            finish_reason = None

            logger.info(f"Session {self.id} round {self.round_count + 1}/{self.max_rounds}")
            async with inst.completion_span(
                opts.provider_id, opts.model_id, self.round_count + 1
            ) as round_span:
                events = self._events(provider, context, schemas, params, streaming)
                async with aclosing(events):
                    async for event in events:
                        await self._handle_event(event, acc, round_span)
                        if event.finish_reason:
                            finish_reason = event.finish_reason
                inst.record_finish_reason(round_span, finish_reason)

            calls = acc.finalize()
            if not calls or not _requests_tools(finish_reason):
                return self.full_text

            self.state = SessionState.EXECUTING_TOOLS
            logger.info(f"Session {self.id} executing {len(calls)} tool calls")
            # Shielded so a stop request leaves dispatched tools running.
            records = await asyncio.shield(execute_tool_calls(
                calls, self._tools, parallel=self._settings.parallel_tool_calls,
            ))

            context.append(Message.tool_request(self.full_text, calls))
            for record in records:
                context.append(Message.tool_reply(record.id, record.result.text))
                self.records.append(record)
                await _notify(opts.on_tool_call, record)

            last_text = self.full_text
            self.full_text = ""
            self.round_count += 1
            if self.round_count >= self.max_rounds:
                logger.warning(
                    f"Session {self.id} reached max rounds ({self.max_rounds})"
                )
                return last_text

    async def _events(self, provider, context, schemas, params, streaming):
        opts = self.options
        wire = [m.to_wire() for m in context]
        if streaming:
            chunks = await provider.stream_complete(
                opts.model_id, wire, tools=schemas, **params
            )
            async with aclosing(decode_stream(chunks)) as decoded:
                async for event in decoded:
                    yield event
        else:
            response = await provider.complete(
                opts.model_id, wire, tools=schemas, **params
            )
            for event in decode_response(response):
                yield event

    async def _handle_event(
        self, event: StreamChunk, acc: ToolCallAccumulator, span
    ) -> None:
        opts = self.options
        if event.content_delta:
            self.full_text += event.content_delta
            self._sink.update(opts.conversation_id, self.message_id, self.full_text)
            await _notify(opts.on_token, event.content_delta)
        for fragment in event.tool_call_fragments or ():
            acc.feed(fragment)
        if event.usage is not None:
            self._usage.add_usage(opts.provider_id, event.usage.total_tokens)
            inst.record_usage(span, event.usage)
