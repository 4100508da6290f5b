"""
Tool registry — tool definitions, permission filtering and execution.

Tool implementations live with the host application; this module only knows
how to describe them to a model (OpenAI function schemas), which ones a given
workspace may use, and how to call them so that failures come back as strings
rather than exceptions.

Usage:
    registry = ToolRegistry()
    registry.register(ToolDefinition.from_function(web_search))
    registry.register(ToolDefinition.from_function(deep_research,
                                                   model_group=ModelGroup.SLOW))
    toolset = registry.for_context(ctx)
    schemas = toolset.schemas()
    result = await toolset.execute("web_search", {"query": "..."})
"""

import asyncio
import inspect
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from routing.selector import ModelGroup

logger = logging.getLogger(__name__)


# ── Permissions ──

@dataclass
class PermissionContext:
    """Runtime permission set for a workspace.

    allowed_tools=None means all tools are permitted; an empty set means
    none; otherwise only the named tools. denied_tools always wins.
    """
    allowed_tools: Optional[set[str]] = None
    denied_tools: set[str] = field(default_factory=set)
    sandbox: bool = False
    workspace_path: str = ""


def check_tool_permission(tool_name: str, permissions: PermissionContext) -> bool:
    if tool_name in permissions.denied_tools:
        return False
    if permissions.allowed_tools is not None and tool_name not in permissions.allowed_tools:
        return False
    return True


def resolve_sandboxed_path(file_path: str, permissions: PermissionContext) -> str:
    """Resolve a path against the workspace; refuse escapes in sandbox mode."""
    root = os.path.realpath(permissions.workspace_path or ".")
    resolved = os.path.realpath(os.path.join(root, file_path))
    if permissions.sandbox:
        if os.path.commonpath([root, resolved]) != root:
            raise PermissionError(
                f'Path "{file_path}" escapes workspace sandbox at "{root}"')
    return resolved


@dataclass
class ToolContext:
    """What a tool may know about the turn it is running in."""
    workspace_id: str
    workspace_path: str
    session_id: str
    permissions: PermissionContext = field(default_factory=PermissionContext)
    channel_type: Optional[str] = None
    conversation_id: Optional[str] = None
    extras: dict = field(default_factory=dict)


# ── Definitions ──

def _build_parameters_schema(fn: Callable) -> dict:
    """Derive a JSON schema for fn's parameters from its type annotations."""
    sig = inspect.signature(fn)
    properties = {}
    required = []
    for name, param in sig.parameters.items():
        if name in ("ctx", "context") or param.kind in (
                inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue
        hint = fn.__annotations__.get(name, str)
        ptype = "string"
        if hint == int:
            ptype = "integer"
        elif hint == float:
            ptype = "number"
        elif hint == bool:
            ptype = "boolean"
        elif hint in (list, list[str]):
            ptype = "array"
        properties[name] = {"type": ptype, "description": f"The {name} parameter"}
        if param.default is inspect.Parameter.empty:
            required.append(name)
    return {"type": "object", "properties": properties, "required": required}


@dataclass
class ToolDefinition:
    name: str
    description: str
    parameters: dict
    execute: Callable[..., Any]
    model_group: Optional[ModelGroup] = None
    wants_context: bool = False

    @classmethod
    def from_function(cls, fn: Callable, name: str = None, description: str = None,
                      model_group: ModelGroup = None) -> "ToolDefinition":
        """Build a definition from a plain (sync or async) function.

        A parameter named `ctx` receives the ToolContext and is hidden from
        the model-facing schema.
        """
        params = inspect.signature(fn).parameters
        return cls(
            name=name or fn.__name__,
            description=description if description is not None else (fn.__doc__ or "").strip(),
            parameters=_build_parameters_schema(fn),
            execute=fn,
            model_group=model_group,
            wants_context="ctx" in params,
        )

    def to_schema(self) -> dict:
        """OpenAI function-calling schema."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class ToolSet:
    """Tools bound to one ToolContext, already filtered by permissions."""

    def __init__(self, tools: dict[str, ToolDefinition], ctx: ToolContext):
        self._tools = tools
        self.ctx = ctx

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def schemas(self) -> list[dict]:
        return [t.to_schema() for t in self._tools.values()]

    async def execute(self, name: str, arguments: dict) -> str:
        """Execute a tool by name. Never raises: errors come back as text."""
        tool = self._tools.get(name)
        if not tool:
            return f"Error: unknown tool '{name}'"
        try:
            kwargs = dict(arguments or {})
            if tool.wants_context:
                kwargs["ctx"] = self.ctx
            result = tool.execute(**kwargs)
            if asyncio.iscoroutine(result):
                result = await result
            return result if isinstance(result, str) else str(result)
        except Exception as e:
            logger.warning("Tool %s failed: %s", name, e)
            return f"Error executing {name}: {e}"


class ToolRegistry:
    """Central registry of every tool the host application provides."""

    def __init__(self):
        self._tools: dict[str, ToolDefinition] = {}

    def register(self, tool: ToolDefinition):
        if tool.name in self._tools:
            logger.debug("Replacing tool definition: %s", tool.name)
        self._tools[tool.name] = tool

    def get(self, name: str) -> Optional[ToolDefinition]:
        return self._tools.get(name)

    def all_tools(self) -> list[ToolDefinition]:
        return list(self._tools.values())

    def for_context(self, ctx: ToolContext) -> ToolSet:
        """Return the permission-filtered tools for a workspace/agent context."""
        permitted = {
            name: tool for name, tool in self._tools.items()
            if check_tool_permission(name, ctx.permissions)
        }
        return ToolSet(permitted, ctx)

    def tools_requesting_group(self, group: ModelGroup) -> list[str]:
        """Names of tools that require a model from the given group."""
        return [t.name for t in self._tools.values() if t.model_group == group]
