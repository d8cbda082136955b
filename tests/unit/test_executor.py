import asyncio

import pytest

from toolchat.errors import ErrorKind
from toolchat.executor import execute_tool_call, execute_tool_calls, parse_arguments
from toolchat.streaming import ToolCall
from toolchat.tools import ToolCallRecord, ToolResult, tool
from tests.conftest import calculator, echo, explode


REGISTRY = {t.name: t for t in (calculator, echo, explode)}


class TestParseArguments:
    def test_valid_object(self):
        assert parse_arguments(ToolCall("c1", "f", '{"a": 1}')) == {"a": 1}

    def test_empty_text(self):
        assert parse_arguments(ToolCall("c1", "f", "")) == {}

    def test_malformed_json_becomes_empty_object(self):
        assert parse_arguments(ToolCall("c1", "f", '{"a": ')) == {}

    def test_non_object_json_becomes_empty_object(self):
        assert parse_arguments(ToolCall("c1", "f", "[1, 2]")) == {}


class TestExecuteToolCall:
    @pytest.mark.asyncio
    async def test_success(self):
        record = await execute_tool_call(
            ToolCall("call_1", "calculator", '{"expr":"2+2"}'), REGISTRY,
        )
        assert record == ToolCallRecord(
            id="call_1", name="calculator", args={"expr": "2+2"}, result=ToolResult(text="4"),
        )

    @pytest.mark.asyncio
    async def test_unknown_tool(self):
        record = await execute_tool_call(ToolCall("c9", "unknown_tool", "{}"), REGISTRY)
        assert record.result.text == 'Tool "unknown_tool" not found'
        assert record.error is ErrorKind.TOOL_NOT_FOUND

    @pytest.mark.asyncio
    async def test_tool_exception_is_captured(self):
        record = await execute_tool_call(ToolCall("c1", "explode", "{}"), REGISTRY)
        assert record.error is ErrorKind.TOOL_EXECUTION_FAILURE
        assert "boom" in record.result.text

    @pytest.mark.asyncio
    async def test_bad_arguments_still_reply(self):
        # Malformed JSON -> {} -> missing required arg -> TypeError, captured.
        record = await execute_tool_call(ToolCall("c1", "echo", '{"text": '), REGISTRY)
        assert record.args == {}
        assert record.error is ErrorKind.TOOL_EXECUTION_FAILURE


class TestExecuteToolCalls:
    @pytest.mark.asyncio
    async def test_results_in_call_order_regardless_of_completion(self):
        finished = []

        @tool
        async def slow(text: str):
            """Slow."""
            await asyncio.sleep(0.02)
            finished.append("slow")
            return text

        @tool
        async def fast(text: str):
            """Fast."""
            finished.append("fast")
            return text

        registry = {"slow": slow, "fast": fast}
        calls = [ToolCall("c1", "slow", '{"text": "1"}'), ToolCall("c2", "fast", '{"text": "2"}')]

        records = await execute_tool_calls(calls, registry, parallel=True)

        assert finished == ["fast", "slow"]
        assert [r.id for r in records] == ["c1", "c2"]

    @pytest.mark.asyncio
    async def test_sequential(self):
        calls = [
            ToolCall("c1", "echo", '{"text": "a"}'),
            ToolCall("c2", "missing", "{}"),
            ToolCall("c3", "echo", '{"text": "b"}'),
        ]
        records = await execute_tool_calls(calls, REGISTRY, parallel=False)
        assert [r.result.text for r in records] == ["a", 'Tool "missing" not found', "b"]
