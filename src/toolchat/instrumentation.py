"""OpenTelemetry tracing for chat sessions.

Tracing is off until :func:`instrument` is called. Every span helper
yields ``None`` while it is off, so call sites never branch on it.
"""

import importlib.util
import logging
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)

_tracer = None


def instrument(*, tracer_name: str = "toolchat") -> None:
    """Start emitting spans through the globally configured TracerProvider.

    Install the extra first: ``pip install toolchat[otel]``.

    Raises:
        ImportError: ``opentelemetry-api`` is missing.
    """
    global _tracer
    if importlib.util.find_spec("opentelemetry.trace") is None:
        raise ImportError(
            "Tracing needs opentelemetry-api; pip install toolchat[otel]"
        )
    from opentelemetry import trace

    _tracer = trace.get_tracer(tracer_name)
    if isinstance(_tracer, trace.NoOpTracer):
        logger.info("Tracing enabled without a TracerProvider; spans are dropped")
    else:
        logger.info(f"Tracing enabled as {tracer_name!r}")


def uninstrument() -> None:
    global _tracer
    _tracer = None


@asynccontextmanager
async def _span(name: str, attributes: dict, client: bool = False):
    if _tracer is None:
        yield None
        return
    extra = {}
    if client:
        from opentelemetry.trace import SpanKind
        extra["kind"] = SpanKind.CLIENT
    with _tracer.start_as_current_span(name, attributes=attributes, **extra) as span:
        yield span


def session_span(session_id: str, provider_id: str, model: str):
    """Span covering every round of one session."""
    return _span(f"invoke_agent {model}", {
        "gen_ai.operation.name": "invoke_agent",
        "gen_ai.conversation.id": session_id,
        "gen_ai.provider.name": provider_id,
        "gen_ai.request.model": model,
    })


def completion_span(provider_id: str, model: str, round_number: int):
    """Client span around a single provider request."""
    return _span(f"chat {model}", {
        "gen_ai.operation.name": "chat",
        "gen_ai.provider.name": provider_id,
        "gen_ai.request.model": model,
        "toolchat.round": round_number,
    }, client=True)


def tool_span(tool_name: str, call_id: str):
    return _span(f"execute_tool {tool_name}", {
        "gen_ai.operation.name": "execute_tool",
        "gen_ai.tool.name": tool_name,
        "gen_ai.tool.call.id": call_id,
    })


def record_usage(span, usage) -> None:
    if span is None or usage is None:
        return
    counts = {
        "gen_ai.usage.input_tokens": usage.prompt_tokens,
        "gen_ai.usage.output_tokens": usage.completion_tokens,
    }
    for key, value in counts.items():
        if value is not None:
            span.set_attribute(key, value)


def record_finish_reason(span, finish_reason: str | None) -> None:
    if span is not None and finish_reason is not None:
        span.set_attribute("gen_ai.response.finish_reasons", [finish_reason])


def record_error(span, exception: BaseException) -> None:
    """Mark *span* failed with *exception*. Does nothing when tracing is off."""
    if span is None:
        return
    from opentelemetry.trace import StatusCode

    span.set_status(StatusCode.ERROR, str(exception))
    span.record_exception(exception)
    span.set_attribute("error.type", type(exception).__qualname__)
