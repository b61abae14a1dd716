import asyncio
import sys
from collections.abc import Sequence
from typing import Any

import pytest

from agent_pipeline.agents.llm import ChatReply
from agent_pipeline.agents.role_agent import PhaseOutput
from agent_pipeline.execution.client import ExecutionClient
from agent_pipeline.orchestrator.events import EventBroadcaster
from agent_pipeline.orchestrator.system import AgentSystem
from agent_pipeline.storage.memory import InMemoryTaskStore
from agent_pipeline.tools.registry import ToolRegistry
from agent_pipeline.tools.schemas import ToolDefinition

ROLES = ("thinker", "planner", "executor", "reviewer")


class ScriptedAgent:
    """Role agent double returning a fixed output or raising."""

    def __init__(
        self,
        role: str,
        *,
        output: str | None = None,
        error: Exception | None = None,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.role = role
        self.output = output or f"{role} output"
        self.error = error
        self.gate = gate
        self.calls: list[tuple[str, str, list[PhaseOutput]]] = []

    async def process(
        self,
        input: str,
        context: str,
        previous_steps: Sequence[PhaseOutput] = (),
    ) -> str:
        self.calls.append((input, context, list(previous_steps)))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.output


class FakeChatModel:
    """Chat model double replaying scripted replies in order."""

    def __init__(self, replies: Sequence[ChatReply | Exception]) -> None:
        self.replies = list(replies)
        self.calls: list[dict[str, Any]] = []

    async def complete(
        self,
        *,
        messages: list[dict[str, Any]],
        tools: list[ToolDefinition],
    ) -> ChatReply:
        self.calls.append(
            {
                "messages": [dict(message) for message in messages],
                "tools": [tool.name for tool in tools],
            }
        )
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeToolRunner:
    def __init__(self, result: Any = None, error: Exception | None = None) -> None:
        self.result = {"ok": True} if result is None else result
        self.error = error
        self.calls: list[tuple[str, dict[str, Any] | None]] = []

    async def execute_tool(self, tool_name: str, args: dict[str, Any] | None = None) -> Any:
        self.calls.append((tool_name, args))
        if self.error is not None:
            raise self.error
        return self.result


def python_child(script: str) -> list[str]:
    return [sys.executable, "-c", script]


def idle_execution_client(**overrides: Any) -> ExecutionClient:
    options: dict[str, Any] = {
        "command": python_child("import time; time.sleep(30)"),
        "install_check_command": None,
        "timeout_s": 0.5,
        "stop_grace_s": 0.5,
    }
    options.update(overrides)
    return ExecutionClient(**options)


@pytest.fixture
def ping_tool() -> dict[str, Any]:
    return {
        "name": "ping",
        "description": "x",
        "parameters": {"type": "object", "properties": {}},
    }


@pytest.fixture
def scripted_agent() -> type[ScriptedAgent]:
    return ScriptedAgent


@pytest.fixture
def fake_chat_model() -> type[FakeChatModel]:
    return FakeChatModel


@pytest.fixture
def fake_tool_runner() -> type[FakeToolRunner]:
    return FakeToolRunner


@pytest.fixture
def child_command():
    return python_child


@pytest.fixture
def build_system():
    """Factory for an AgentSystem wired to scripted agents and an idle execution client."""

    def _build(
        *,
        agents: dict[str, ScriptedAgent] | None = None,
        max_retained_tasks: int = 1000,
    ) -> tuple[AgentSystem, dict[str, ScriptedAgent]]:
        scripted = {role: ScriptedAgent(role) for role in ROLES}
        scripted.update(agents or {})
        system = AgentSystem(
            registry=ToolRegistry(),
            execution_client=idle_execution_client(),
            agents=scripted,
            broadcaster=EventBroadcaster(),
            store=InMemoryTaskStore(max_retained_tasks=max_retained_tasks),
        )
        return system, scripted

    return _build
