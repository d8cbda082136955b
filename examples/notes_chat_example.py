"""Streaming chat example: a note-taking assistant.

Demonstrates:
- Defining tools with @tool
- Streaming tokens to the terminal through on_token
- Carrying the conversation across turns
- Stopping a session that runs past --timeout

Usage:
    OPENAI_API_KEY=... python examples/notes_chat_example.py --provider openai --model gpt-4o-mini --trace
    python examples/notes_chat_example.py --provider ollama --model llama3.1
"""

import argparse
import asyncio

from toolchat import Message, Orchestrator, SessionOptions, tool
from toolchat.config import configure_logging
from toolchat.providers import PROVIDER_MAP

NOTES: dict[str, str] = {}


def setup_tracing(service_name: str):
    from opentelemetry import trace
    from opentelemetry.sdk.resources import SERVICE_NAME, Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import (
        SimpleSpanProcessor, ConsoleSpanExporter,
    )
    from toolchat.instrumentation import instrument

    provider = TracerProvider(
        resource=Resource({SERVICE_NAME: service_name})
    )
    provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(provider)
    instrument()


@tool
def add_note(title: str, content: str):
    """Save a note.

    Args:
        title: Short title used to look the note up later.
        content: Body of the note.
    """
    NOTES[title] = content
    return f"Saved note '{title}'."


@tool
def get_note(title: str):
    """Retrieve a note by title."""
    return NOTES.get(title, f"No note found with title '{title}'.")


@tool
def list_notes():
    """List all saved note titles."""
    if not NOTES:
        return "No notes yet."
    return ", ".join(NOTES)


async def main():
    parser = argparse.ArgumentParser(description="Notes chat")
    parser.add_argument("--provider", choices=PROVIDER_MAP, default="openai")
    parser.add_argument("--model", default="gpt-4o-mini")
    parser.add_argument("--trace", action="store_true")
    parser.add_argument("--verbose", action="store_true")
    parser.add_argument("--timeout", type=float, default=120.0)
    args = parser.parse_args()

    if args.verbose:
        configure_logging()
    if args.trace:
        setup_tracing("notes-chat")

    orchestrator = Orchestrator(tools=[add_note, get_note, list_notes])
    history: list[Message] = []

    print("Note-taking Assistant (Ctrl-D quits)\n")

    while True:
        try:
            user_input = input("You: ")
        except (KeyboardInterrupt, EOFError):
            print("\nGoodbye!")
            break

        history.append(Message.user(user_input))
        replies: list[str] = []
        print("Assistant: ", end="", flush=True)

        options = SessionOptions(
            conversation_id="notes",
            provider_id=args.provider,
            model_id=args.model,
            messages=list(history),
            system_prompt=(
                "You are a helpful note-taking assistant. "
                "Use the provided tools to manage the user's notes."
            ),
            enabled_tools=["add_note", "get_note", "list_notes"],
            on_token=lambda delta: print(delta, end="", flush=True),
            on_tool_call=lambda record: print(f"\n[{record.name}] {record.result.text}"),
            on_done=lambda text, records: replies.append(text),
            on_error=lambda error: print(f"\n{error.message}"),
        )
        session_id = orchestrator.send_stream(options)
        try:
            await asyncio.wait_for(orchestrator.session(session_id).wait(), args.timeout)
        except asyncio.TimeoutError:
            orchestrator.stop(session_id)
            print("\n[stopped]", end="")
        print("\n")

        if replies:
            history.append(Message.assistant(replies[0]))


if __name__ == "__main__":
    asyncio.run(main())
