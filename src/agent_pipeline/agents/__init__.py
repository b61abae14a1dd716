"""Role agents and the chat-model boundary they call."""

from agent_pipeline.agents.llm import ChatModel, ChatReply, OpenAIChatModel, ToolCallRequest
from agent_pipeline.agents.role_agent import PhaseOutput, RoleAgent, ToolRunner

__all__ = [
    "ChatModel",
    "ChatReply",
    "OpenAIChatModel",
    "PhaseOutput",
    "RoleAgent",
    "ToolCallRequest",
    "ToolRunner",
]
