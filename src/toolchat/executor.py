import asyncio
import json
import logging
from collections.abc import Mapping

from toolchat import instrumentation as inst
from toolchat.errors import ErrorKind
from toolchat.streaming import ToolCall
from toolchat.tools import ToolCallRecord, ToolDefinition, ToolResult

logger = logging.getLogger(__name__)


def parse_arguments(call: ToolCall) -> dict:
    """Parse a call's argument text, falling back to an empty object."""
    if not call.arguments.strip():
        return {}
    try:
        args = json.loads(call.arguments)
    except json.JSONDecodeError as e:
        logger.warning(f"Invalid JSON in arguments for {call.name}: {e}")
        return {}
    if not isinstance(args, dict):
        logger.warning(f"Arguments for {call.name} are not an object; ignoring")
        return {}
    return args


async def execute_tool_call(
    call: ToolCall, registry: Mapping[str, ToolDefinition]
) -> ToolCallRecord:
    """Execute one finalized tool call. Never raises."""
    args = parse_arguments(call)

    tool_def = registry.get(call.name)
    if tool_def is None:
        logger.warning(f"Tool not found: {call.name}")
        return ToolCallRecord(
            id=call.id,
            name=call.name,
            args=args,
            result=ToolResult(text=f'Tool "{call.name}" not found'),
            error=ErrorKind.TOOL_NOT_FOUND,
        )

    logger.info(f"Calling {call.name} with {args}")
    async with inst.tool_span(call.name, call.id) as span:
        try:
            result = await tool_def.execute(args)
        except Exception as e:
            logger.error(f"Tool {call.name} raised: {e}")
            inst.record_error(span, e)
            return ToolCallRecord(
                id=call.id,
                name=call.name,
                args=args,
                result=ToolResult(text=f"Error executing {call.name}: {e}"),
                error=ErrorKind.TOOL_EXECUTION_FAILURE,
            )

    return ToolCallRecord(id=call.id, name=call.name, args=args, result=result)


async def execute_tool_calls(
    calls: list[ToolCall],
    registry: Mapping[str, ToolDefinition],
    parallel: bool = True,
) -> list[ToolCallRecord]:
    """Execute a round's tool calls, returning records in call order."""
    if parallel and len(calls) > 1:
        return list(await asyncio.gather(
            *(execute_tool_call(c, registry) for c in calls)
        ))
    return [await execute_tool_call(c, registry) for c in calls]
