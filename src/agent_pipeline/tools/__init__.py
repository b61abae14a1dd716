"""Tool definitions, catalog and role-gated registry."""

from agent_pipeline.tools.registry import (
    DEFAULT_TOOLS,
    ToolRegistry,
    coerce_definition,
    register_default_tools,
)
from agent_pipeline.tools.schemas import ObjectSchema, ToolDefinition

__all__ = [
    "DEFAULT_TOOLS",
    "ObjectSchema",
    "ToolDefinition",
    "ToolRegistry",
    "coerce_definition",
    "register_default_tools",
]
