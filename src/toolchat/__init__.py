from toolchat.errors import ClassifiedError, ErrorKind
from toolchat.instrumentation import instrument, uninstrument
from toolchat.message import Message, MessageRole
from toolchat.orchestrator import Orchestrator
from toolchat.providers import ModelInfo, ProviderConfig
from toolchat.session import Session, SessionOptions, SessionState
from toolchat.tools import ToolCallRecord, ToolDefinition, ToolResult, tool

__all__ = [
    "ClassifiedError",
    "ErrorKind",
    "Message",
    "MessageRole",
    "ModelInfo",
    "Orchestrator",
    "ProviderConfig",
    "Session",
    "SessionOptions",
    "SessionState",
    "ToolCallRecord",
    "ToolDefinition",
    "ToolResult",
    "instrument",
    "tool",
    "uninstrument",
]
