"""Tool catalog with per-role capability grants."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import ValidationError

from agent_pipeline.errors import InvalidToolDefinition, ToolNotFound
from agent_pipeline.tools.schemas import ToolDefinition

logger = logging.getLogger(__name__)

ToolInput = ToolDefinition | Mapping[str, Any]


def coerce_definition(definition: ToolInput) -> ToolDefinition:
    if isinstance(definition, ToolDefinition):
        return definition
    if not isinstance(definition, Mapping):
        raise InvalidToolDefinition(
            f"Tool definition must be a mapping, got {type(definition).__name__}"
        )
    missing = [
        key for key in ("name", "description", "parameters") if definition.get(key) in (None, "")
    ]
    if missing:
        raise InvalidToolDefinition(
            "Tool must have name, description, and parameters "
            f"(missing: {', '.join(missing)})"
        )
    try:
        return ToolDefinition.model_validate(dict(definition))
    except ValidationError as exc:
        name = definition.get("name")
        raise InvalidToolDefinition(f"Invalid definition for tool {name!r}: {exc}") from exc


class ToolRegistry:
    """Holds tool definitions and the set of roles allowed to use each one."""

    def __init__(self, tools: Iterable[ToolInput] = ()) -> None:
        self._lock = threading.RLock()
        self._tools: dict[str, ToolDefinition] = {}
        # Ordered sets: role -> {tool_name: None}
        self._role_grants: dict[str, dict[str, None]] = {}
        for tool in tools:
            self.register(tool)

    def register(self, definition: ToolInput) -> ToolDefinition:
        tool = coerce_definition(definition)
        with self._lock:
            previous = self._tools.get(tool.name)
            self._tools[tool.name] = tool
            if previous is not None:
                for role in previous.allowed_agents:
                    if role not in tool.allowed_agents:
                        self._role_grants.get(role, {}).pop(tool.name, None)
            for role in tool.allowed_agents:
                self._role_grants.setdefault(role, {})[tool.name] = None
        logger.debug(
            "tool_registry event=register tool=%s roles=%s",
            tool.name,
            ",".join(tool.allowed_agents),
        )
        return tool

    def unregister(self, name: str) -> bool:
        with self._lock:
            if name not in self._tools:
                return False
            del self._tools[name]
            for grants in self._role_grants.values():
                grants.pop(name, None)
        logger.debug("tool_registry event=unregister tool=%s", name)
        return True

    def get_tools_for_role(self, role: str) -> list[ToolDefinition]:
        with self._lock:
            grants = self._role_grants.get(role)
            if not grants:
                return []
            return [self._tools[name] for name in grants if name in self._tools]

    def get_tool(self, name: str) -> ToolDefinition | None:
        with self._lock:
            return self._tools.get(name)

    def has_tool(self, name: str) -> bool:
        with self._lock:
            return name in self._tools

    def require(self, name: str) -> ToolDefinition:
        tool = self.get_tool(name)
        if tool is None:
            raise ToolNotFound(name)
        return tool

    def is_granted(self, role: str, name: str) -> bool:
        with self._lock:
            return name in self._role_grants.get(role, {})

    def all_tools(self) -> list[ToolDefinition]:
        with self._lock:
            return list(self._tools.values())

    def tool_names(self) -> list[str]:
        with self._lock:
            return sorted(self._tools)

    def roles(self) -> list[str]:
        with self._lock:
            return sorted(role for role, grants in self._role_grants.items() if grants)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.has_tool(name)

    def __len__(self) -> int:
        with self._lock:
            return len(self._tools)


DEFAULT_TOOLS: tuple[dict[str, Any], ...] = (
    {
        "name": "web_search",
        "description": "Search the web for information",
        "parameters": {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "The search query"},
                "num_results": {
                    "type": "integer",
                    "description": "Number of results to return",
                    "default": 5,
                },
            },
            "required": ["query"],
        },
        "allowedAgents": ["executor", "thinker"],
    },
    {
        "name": "read_file",
        "description": "Read the contents of a file",
        "parameters": {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Path to the file to read"},
            },
            "required": ["path"],
        },
        "allowedAgents": ["executor"],
    },
    {
        "name": "write_file",
        "description": "Write content to a file",
        "parameters": {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Path to the file to write"},
                "content": {"type": "string", "description": "Content to write to the file"},
                "append": {
                    "type": "boolean",
                    "description": "Whether to append to the file or overwrite it",
                    "default": False,
                },
            },
            "required": ["path", "content"],
        },
        "allowedAgents": ["executor"],
    },
    {
        "name": "run_command",
        "description": "Run a shell command",
        "parameters": {
            "type": "object",
            "properties": {
                "command": {"type": "string", "description": "The command to run"},
                "cwd": {
                    "type": "string",
                    "description": "The working directory to run the command in",
                    "default": ".",
                },
            },
            "required": ["command"],
        },
        "allowedAgents": ["executor"],
    },
)


def register_default_tools(registry: ToolRegistry) -> int:
    for definition in DEFAULT_TOOLS:
        registry.register(definition)
    return len(DEFAULT_TOOLS)
