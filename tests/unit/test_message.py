import pytest

from toolchat.message import Message, MessageRole
from toolchat.streaming import ToolCall


def test_plain_message_wire_shape():
    assert Message.user("hi").to_wire() == {"role": "user", "content": "hi"}


def test_model_dump_serializes_role():
    assert Message.system("be brief").model_dump()["role"] == "system"


def test_tool_request_with_null_content():
    msg = Message.tool_request("", [ToolCall(id="call_1", name="calc", arguments='{"a": 1}')])
    assert msg.to_wire() == {
        "role": "assistant",
        "content": None,
        "tool_calls": [{
            "id": "call_1",
            "type": "function",
            "function": {"name": "calc", "arguments": '{"a": 1}'},
        }],
    }


def test_tool_request_keeps_accompanying_text():
    msg = Message.tool_request("Let me check.", [ToolCall(id="c", name="f", arguments="{}")])
    assert msg.to_wire()["content"] == "Let me check."


def test_tool_reply_carries_call_id():
    assert Message.tool_reply("call_1", "4").to_wire() == {
        "role": "tool", "content": "4", "tool_call_id": "call_1",
    }


def test_tool_calls_rejected_on_user_message():
    msg = Message(role=MessageRole.USER, content="x", tool_calls=[{"id": "c"}])
    with pytest.raises(ValueError):
        msg.to_wire()


def test_tool_reply_requires_call_id():
    with pytest.raises(ValueError):
        Message(role=MessageRole.TOOL, content="x").to_wire()


def test_validates_from_dict():
    msg = Message.model_validate({"role": "assistant", "content": "ok"})
    assert msg.role is MessageRole.ASSISTANT
