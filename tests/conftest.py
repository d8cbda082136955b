import asyncio
import json
from dataclasses import dataclass, field

import pytest

from toolchat.collaborators import InMemoryMessageSink, StaticCredentials, UsageLedger
from toolchat.config import OrchestratorSettings
from toolchat.message import Message
from toolchat.orchestrator import Orchestrator
from toolchat.provider import ModelProvider
from toolchat.providers import ModelInfo, ProviderConfig
from toolchat.session import SessionOptions
from toolchat.tools import ToolResult, tool


# ---------------------------------------------------------------------------
# Mock chunk / response dataclasses (mirror the OpenAI response shape)
# ---------------------------------------------------------------------------

@dataclass
class MockFunction:
    name: str | None = None
    arguments: str | None = None


@dataclass
class MockToolCallDelta:
    index: int
    id: str | None = None
    type: str | None = "function"
    function: MockFunction = field(default_factory=MockFunction)


@dataclass
class MockDelta:
    content: str | None = None
    tool_calls: list[MockToolCallDelta] | None = None
    role: str | None = None


@dataclass
class MockChunkChoice:
    delta: MockDelta
    finish_reason: str | None = None
    index: int = 0


@dataclass
class MockUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class MockChunk:
    choices: list[MockChunkChoice]
    usage: MockUsage | None = None


@dataclass
class MockToolCall:
    id: str
    function: MockFunction
    type: str = "function"


@dataclass
class MockMessage:
    content: str | None = None
    tool_calls: list[MockToolCall] | None = None


@dataclass
class MockChoice:
    message: MockMessage
    finish_reason: str | None = None


@dataclass
class MockResponse:
    choices: list[MockChoice]
    usage: MockUsage | None = None


class MockAPIError(Exception):
    """Stand-in for a provider error carrying an HTTP status."""

    def __init__(self, status_code: int, message: str = "provider error"):
        super().__init__(message)
        self.status_code = status_code


# ---------------------------------------------------------------------------
# Chunk builders
# ---------------------------------------------------------------------------

def content_chunk(text: str, finish_reason: str | None = None) -> MockChunk:
    return MockChunk(choices=[MockChunkChoice(
        delta=MockDelta(content=text), finish_reason=finish_reason,
    )])


def finish_chunk(finish_reason: str, usage: MockUsage | None = None) -> MockChunk:
    return MockChunk(
        choices=[MockChunkChoice(delta=MockDelta(), finish_reason=finish_reason)],
        usage=usage,
    )


def tool_chunk(
    index: int,
    call_id: str | None = None,
    name: str | None = None,
    arguments: str | None = None,
    finish_reason: str | None = None,
) -> MockChunk:
    delta = MockDelta(tool_calls=[MockToolCallDelta(
        index=index, id=call_id,
        function=MockFunction(name=name, arguments=arguments),
    )])
    return MockChunk(choices=[MockChunkChoice(delta=delta, finish_reason=finish_reason)])


def text_stream(text: str) -> list[MockChunk]:
    """A one-chunk answer ending the round with ``stop``."""
    return [content_chunk(text, finish_reason="stop")]


def tool_call_stream(
    name: str, args: dict, call_id: str = "call_1", pieces: int = 3,
) -> list[MockChunk]:
    """A single tool call whose arguments arrive in *pieces* fragments."""
    text = json.dumps(args)
    size = max(1, -(-len(text) // pieces))
    parts = [text[i:i + size] for i in range(0, len(text), size)]
    chunks = [tool_chunk(0, call_id=call_id, name=name, arguments=parts[0])]
    chunks += [tool_chunk(0, arguments=p) for p in parts[1:]]
    chunks.append(finish_chunk("tool_calls"))
    return chunks


def buffered_response(
    content: str | None = None,
    tool_calls: list[tuple[str, str, dict]] | None = None,
    usage: MockUsage | None = None,
) -> MockResponse:
    calls = [
        MockToolCall(id=call_id, function=MockFunction(name=name, arguments=json.dumps(args)))
        for call_id, name, args in tool_calls or []
    ]
    return MockResponse(
        choices=[MockChoice(message=MockMessage(content=content, tool_calls=calls or None))],
        usage=usage,
    )


# ---------------------------------------------------------------------------
# Mock provider
# ---------------------------------------------------------------------------

class MockStream:
    """Async chunk iterator that can pause mid-stream."""

    def __init__(self, chunks, pause_after: int | None = None, error=None):
        self._chunks = list(chunks)
        self._pause_after = pause_after
        self._error = error
        self.released = asyncio.Event()
        self.paused = asyncio.Event()
        self.closed = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for i, chunk in enumerate(self._chunks):
            if self._pause_after is not None and i == self._pause_after:
                self.paused.set()
                await self.released.wait()
            await asyncio.sleep(0)
            yield chunk
        if self._error is not None:
            raise self._error

    async def close(self):
        self.closed = True


class MockProvider(ModelProvider):
    """Provider that replays pre-queued rounds. No network calls."""

    def __init__(self, config: ProviderConfig | None = None):
        super().__init__(config or TEST_PROVIDER)
        self.rounds: list = []
        self.call_log: list[dict] = []
        self.models: list[str] = []
        self.error: Exception | None = None
        self.streams: list[MockStream] = []

    def _record(self, stream, model, messages, tools, params):
        self.call_log.append({
            "stream": stream, "model": model, "messages": messages,
            "tools": tools, "params": params,
        })
        if self.error is not None:
            raise self.error

    async def stream_complete(self, model, messages, tools=None, **params):
        self._record(True, model, messages, tools, params)
        item = self.rounds.pop(0)
        stream = item if hasattr(item, "__aiter__") else MockStream(item)
        self.streams.append(stream)
        return stream

    async def complete(self, model, messages, tools=None, **params):
        self._record(False, model, messages, tools, params)
        return self.rounds.pop(0)

    async def list_models(self):
        if self.error is not None:
            raise self.error
        return list(self.models)


TEST_PROVIDER = ProviderConfig(
    id="mock",
    name="Mock AI",
    base_url="http://mock.invalid/v1",
    requires_key=True,
    supports_models_endpoint=True,
    models=[ModelInfo(id="mock-model", name="Mock Model")],
)

LOCAL_PROVIDER = ProviderConfig(
    id="local",
    name="Local",
    base_url="http://localhost:9999/v1",
    requires_key=False,
    supports_streaming=False,
    models=[ModelInfo(id="local-model", name="Local Model")],
)


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------

@tool
def calculator(expr: str):
    """Evaluate a simple arithmetic expression.

    Args:
        expr: Expression such as ``2+2``.
    """
    left, right = expr.split("+")
    return ToolResult(text=str(int(left) + int(right)))


@tool
async def echo(text: str):
    """Echo text back."""
    return text


@tool
def explode():
    """Always fails."""
    raise ValueError("boom")


# ---------------------------------------------------------------------------
# Recorder for session callbacks
# ---------------------------------------------------------------------------

class CallbackRecorder:
    def __init__(self):
        self.tokens: list[str] = []
        self.tool_calls: list = []
        self.done: list[tuple] = []
        self.errors: list = []
        self.first_token = asyncio.Event()

    def on_token(self, delta):
        self.tokens.append(delta)
        self.first_token.set()

    def on_tool_call(self, record):
        self.tool_calls.append(record)

    def on_done(self, text, records):
        self.done.append((text, records))

    def on_error(self, error):
        self.errors.append(error)

    def options(self, **overrides) -> SessionOptions:
        values = dict(
            conversation_id="conv-1",
            provider_id="mock",
            model_id="mock-model",
            messages=[Message.user("2+2?")],
            on_token=self.on_token,
            on_tool_call=self.on_tool_call,
            on_done=self.on_done,
            on_error=self.on_error,
        )
        values.update(overrides)
        return SessionOptions(**values)


@pytest.fixture
def mock_provider():
    return MockProvider()


@pytest.fixture
def recorder():
    return CallbackRecorder()


@pytest.fixture
def sink():
    return InMemoryMessageSink()


@pytest.fixture
def usage():
    return UsageLedger()


@pytest.fixture
def make_orchestrator(mock_provider, sink, usage):
    """Factory fixture wiring an Orchestrator to the mock provider.

    ``factory_log`` collects every ``(config, api_key)`` the orchestrator
    asks a transport for.
    """
    def _make(
        tools=(calculator, echo, explode),
        keys=None,
        settings=None,
        providers=None,
        factory_log=None,
    ):
        def factory(config, api_key):
            if factory_log is not None:
                factory_log.append((config, api_key))
            return mock_provider

        return Orchestrator(
            providers=providers or {"mock": TEST_PROVIDER, "local": LOCAL_PROVIDER},
            credentials=StaticCredentials({"mock": "sk-test"} if keys is None else keys),
            tools=tools,
            sink=sink,
            usage=usage,
            settings=settings or OrchestratorSettings(),
            provider_factory=factory,
        )
    return _make
