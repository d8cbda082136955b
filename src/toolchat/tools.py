import inspect
import json
import re
from collections.abc import Iterable, Mapping
from typing import Any, Callable

from pydantic import BaseModel, Field

from toolchat.errors import ErrorKind


_JSON_TYPES = {
    "str": "string",
    "int": "integer",
    "float": "number",
    "bool": "boolean",
    "NoneType": "null",
    "dict": "object",
    "list": "array",
    "tuple": "array",
    "set": "array",
}


class ToolResult(BaseModel):
    """Normalized output of a tool execution.

    ``text`` is what the model sees in the tool reply; ``data`` is free
    for the caller's renderer.
    """

    text: str
    data: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def coerce(cls, value: Any) -> "ToolResult":
        if isinstance(value, ToolResult):
            return value
        if isinstance(value, str):
            return cls(text=value)
        if isinstance(value, Mapping) and isinstance(value.get("text"), str):
            return cls(text=value["text"], data=dict(value.get("data") or {}))
        return cls(text=json.dumps(value, default=str))


class ToolCallRecord(BaseModel):
    """Immutable outcome of one executed tool call."""

    model_config = {"frozen": True}

    id: str
    name: str
    args: dict[str, Any] = Field(default_factory=dict)
    result: ToolResult
    error: ErrorKind | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None


class ToolDefinition(BaseModel):
    """A callable capability offered to the model.

    Args:
        name: Tool name sent to the provider.
        description: Description shown to the model.
        parameters: JSON schema of the arguments object.
        func: Plain or async function invoked with the parsed arguments
            as keyword arguments.
    """

    model_config = {"arbitrary_types_allowed": True, "frozen": True}

    name: str
    description: str = ""
    parameters: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )
    func: Callable = Field(exclude=True)

    def schema(self) -> dict[str, Any]:
        """Return the OpenAI-compatible function tool schema."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

    async def execute(self, args: dict[str, Any]) -> ToolResult:
        result = self.func(**args)
        if inspect.isawaitable(result):
            result = await result
        return ToolResult.coerce(result)


def tool_schemas(tools: Iterable[ToolDefinition]) -> list[dict[str, Any]]:
    return [t.schema() for t in tools]


def _parse_param_descriptions(func: Callable) -> dict[str, str]:
    """Pull parameter descriptions from a Google-style ``Args:`` section."""
    doc = inspect.getdoc(func)
    if not doc:
        return {}

    descriptions: dict[str, str] = {}
    in_args = False
    current = None
    for line in doc.splitlines():
        stripped = line.strip()
        if stripped in ("Args:", "Arguments:", "Parameters:"):
            in_args = True
            continue
        if not in_args:
            continue
        if stripped and not line.startswith(" ") and stripped.endswith(":"):
            break
        match = re.match(r"^\s{0,8}(\w+)\s*(\([^)]*\))?\s*:\s*(.*)$", line)
        if match and (current is None or len(line) - len(line.lstrip()) <= 4):
            current = match.group(1)
            descriptions[current] = match.group(3).strip()
        elif current and stripped:
            descriptions[current] = f"{descriptions[current]}\n{stripped}".strip()
    return descriptions


def _build_parameters_schema(func: Callable) -> dict[str, Any]:
    descriptions = _parse_param_descriptions(func)
    properties = {}
    required = []
    for name, param in inspect.signature(func).parameters.items():
        if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
            continue
        annotation = param.annotation
        type_name = getattr(annotation, "__name__", "str")
        if annotation is inspect.Parameter.empty:
            type_name = "str"
        properties[name] = {
            "type": _JSON_TYPES.get(type_name, "string"),
            "description": descriptions.get(name, ""),
        }
        if param.default is inspect.Parameter.empty:
            required.append(name)
    return {"type": "object", "properties": properties, "required": required}


def tool(
    func: Callable | None = None,
    *,
    name: str | None = None,
    description: str | None = None,
):
    """Build a :class:`ToolDefinition` from a function.

    Usable bare (``@tool``) or with overrides
    (``@tool(name="calc")``).
    """
    def wrap(f: Callable) -> ToolDefinition:
        doc = inspect.getdoc(f) or ""
        return ToolDefinition(
            name=name or f.__name__,
            description=description if description is not None else doc.split("\n\n")[0].strip(),
            parameters=_build_parameters_schema(f),
            func=f,
        )

    if func is not None:
        return wrap(func)
    return wrap
