from enum import Enum
from typing import Any

from pydantic import BaseModel, field_serializer


class MessageRole(Enum):
    SYSTEM = "system"
    ASSISTANT = "assistant"
    USER = "user"
    TOOL = "tool"


class Message(BaseModel):
    """A role-tagged message in the conversation context.

    ``tool_calls`` is only meaningful on assistant messages and
    ``tool_call_id`` only on tool replies. Both are validated when the
    message is serialized for the wire, not through subclasses.
    """

    role: MessageRole
    content: str | None = None
    tool_calls: list[dict[str, Any]] | None = None
    tool_call_id: str | None = None

    @field_serializer("role")
    def serialize_role(self, role: MessageRole, _info) -> str:
        return role.value

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=MessageRole.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=MessageRole.USER, content=content)

    @classmethod
    def assistant(cls, content: str | None) -> "Message":
        return cls(role=MessageRole.ASSISTANT, content=content)

    @classmethod
    def tool_request(cls, content: str | None, calls) -> "Message":
        """Assistant message recording which tool calls were requested."""
        return cls(
            role=MessageRole.ASSISTANT,
            content=content or None,
            tool_calls=[
                {
                    "id": c.id,
                    "type": "function",
                    "function": {"name": c.name, "arguments": c.arguments},
                }
                for c in calls
            ],
        )

    @classmethod
    def tool_reply(cls, call_id: str, content: str) -> "Message":
        return cls(role=MessageRole.TOOL, content=content, tool_call_id=call_id)

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the OpenAI chat-completion message shape."""
        if self.tool_calls is not None and self.role is not MessageRole.ASSISTANT:
            raise ValueError(f"tool_calls are not allowed on {self.role.value} messages")
        if self.role is MessageRole.TOOL and not self.tool_call_id:
            raise ValueError("tool messages require a tool_call_id")

        wire: dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.tool_calls:
            wire["tool_calls"] = self.tool_calls
        if self.role is MessageRole.TOOL:
            wire["tool_call_id"] = self.tool_call_id
        elif self.content is None and not self.tool_calls:
            wire["content"] = ""
        return wire
