from __future__ import annotations

import builtins
import inspect
import json
import logging
import re
from typing import Any, Callable

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

# Parameters the executor injects itself; never exposed to the model.
_INJECTED_PARAMS = {"context"}

_JSON_TYPES = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    list: "array",
    tuple: "array",
    set: "array",
    dict: "object",
}


class LLMRecoverableError(Exception):
    """Raised by a tool to send a corrective message back to the model.

    The message is returned as ordinary tool output rather than an
    error, so the model can retry with better arguments.
    """


class ToolResult(BaseModel):
    """Outcome of executing one tool call.

    Exactly one of ``output`` / ``error`` is meaningful: ``error`` is
    set when the tool could not be found, its arguments could not be
    parsed, or it raised.
    """

    call_id: str
    tool_name: str
    arguments: dict | None = None
    output: Any = None
    error: str | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @property
    def content(self) -> str:
        """Text sent back to the model as the tool message."""
        if self.error is not None:
            return self.error
        if isinstance(self.output, str):
            return self.output
        return json.dumps(self.output, default=str)


def _json_type(annotation) -> str:
    if annotation is inspect.Parameter.empty:
        return "string"
    if isinstance(annotation, str):
        # Postponed annotations arrive as source text, e.g. "list[str] | None".
        base = annotation.split("|", 1)[0].split("[", 1)[0].strip()
        annotation = getattr(builtins, base, annotation)
    origin = getattr(annotation, "__origin__", None)
    return _JSON_TYPES.get(origin or annotation, "string")


def _parse_param_descriptions(func: Callable) -> dict[str, str]:
    """Pull parameter descriptions out of a Google or reST docstring."""
    doc = inspect.getdoc(func)
    if not doc:
        return {}

    descriptions = {}
    for match in re.finditer(r"^:param\s+(\w+):\s*(.+)$", doc, re.MULTILINE):
        descriptions[match.group(1)] = match.group(2).strip()
    if descriptions:
        return descriptions

    in_args = False
    current = None
    for line in doc.splitlines():
        stripped = line.strip()
        if stripped in ("Args:", "Arguments:", "Parameters:"):
            in_args = True
            continue
        if not in_args:
            continue
        if stripped and not line.startswith(" "):
            break
        match = re.match(r"^\s{2,8}(\w+)(?:\s*\([^)]*\))?:\s*(.*)$", line)
        if match:
            current = match.group(1)
            descriptions[current] = match.group(2).strip()
        elif stripped and current:
            descriptions[current] += "\n" + stripped
    return descriptions


def _build_parameters_schema(func: Callable) -> dict:
    signature = inspect.signature(func)
    descriptions = _parse_param_descriptions(func)
    properties = {}
    required = []
    for name, param in signature.parameters.items():
        if name in _INJECTED_PARAMS:
            continue
        properties[name] = {
            "type": _json_type(param.annotation),
            "description": descriptions.get(name, ""),
        }
        if param.default is inspect.Parameter.empty:
            required.append(name)
    return {"type": "object", "properties": properties, "required": required}


class Tool(BaseModel):
    """A named, described capability the model can call.

    ``func`` may be sync or async. Tools are usually created with the
    :func:`tool` decorator, which derives the parameter schema from the
    function signature and docstring; hand-written schemas can be given
    directly.
    """

    func: Callable = Field(exclude=True)
    name: str
    description: str = ""
    parameters_schema: dict = Field(
        default_factory=lambda: {"type": "object", "properties": {}, "required": []}
    )
    model_config = {"arbitrary_types_allowed": True}

    @property
    def wants_context(self) -> bool:
        return "context" in inspect.signature(self.func).parameters

    def model_dump(self, **kwargs):
        """Return the OpenAI function-tool schema."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters_schema,
            },
        }

    async def __call__(self, **kwargs) -> Any:
        output = self.func(**kwargs)
        if inspect.isawaitable(output):
            output = await output
        return output


def tool(func: Callable | None = None, *, name: str | None = None, description: str | None = None):
    """Turn a function into a :class:`Tool`.

    Usable bare (``@tool``) or with overrides
    (``@tool(name="lookup", description="...")``).
    """

    def wrap(f: Callable) -> Tool:
        doc = inspect.getdoc(f) or ""
        summary = doc.split("\n\n")[0].strip()
        return Tool(
            func=f,
            name=name or f.__name__,
            description=description if description is not None else summary,
            parameters_schema=_build_parameters_schema(f),
        )

    if func is not None:
        return wrap(func)
    return wrap


class ToolRegistry:
    """Explicitly constructed set of tools, looked up by name.

    Registration is expected to finish before conversation calls begin;
    afterwards the registry is only read, so one instance can be shared
    by concurrent calls.
    """

    def __init__(self, tools: list[Tool] | None = None):
        self._tools: dict[str, Tool] = {}
        if tools:
            self.register_many(tools)

    def register(self, t: Tool) -> None:
        if not t.name:
            raise ValueError("Tool name must be a non-empty string")
        if t.name in self._tools:
            logger.warning(f"Tool {t.name} already registered, replacing it")
        self._tools[t.name] = t
        logger.info(f"Registered tool: {t.name}")

    def register_many(self, tools: list[Tool]) -> None:
        for t in tools:
            self.register(t)

    def add_capability(self, capability) -> None:
        """Register every tool a :class:`~agentkai.capability.Capability` provides."""
        self.register_many(capability.tools())
        capability.on_attach(self)

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def list(self) -> list[Tool]:
        return list(self._tools.values())

    def names(self) -> list[str]:
        return list(self._tools)

    def schemas(self) -> list[dict]:
        return [t.model_dump() for t in self._tools.values()]

    def merged(self, extra: list[Tool] | None = None) -> "ToolRegistry":
        """Return a new registry of *extra* followed by this registry's tools.

        On a name collision the first occurrence wins and later ones
        are dropped.
        """
        combined = ToolRegistry()
        for t in [*(extra or []), *self._tools.values()]:
            if t.name in combined._tools:
                logger.debug(f"Dropping duplicate tool {t.name}")
                continue
            combined._tools[t.name] = t
        return combined

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)
