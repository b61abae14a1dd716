"""Role agent: one model call per phase, with tool-call resolution."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from agent_pipeline.agents.llm import ChatModel, ChatReply, ToolCallRequest
from agent_pipeline.agents.prompts import DEFAULT_INSTRUCTION, ROLE_INSTRUCTIONS
from agent_pipeline.errors import AgentProcessingError, ToolNotFound
from agent_pipeline.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

SCREENSHOT_TOOLS = frozenset(
    {"browser_screen_capture", "browser_snapshot", "browser_take_screenshot"}
)


class ToolRunner(Protocol):
    async def execute_tool(self, tool_name: str, args: dict[str, Any] | None = None) -> Any: ...


@dataclass(frozen=True)
class PhaseOutput:
    """Output of an earlier phase handed to later roles."""

    role: str
    content: str


class RoleAgent:
    def __init__(
        self,
        role: str,
        *,
        model: ChatModel,
        registry: ToolRegistry,
        tool_runner: ToolRunner,
        timeout_s: float = 60.0,
    ) -> None:
        self.role = role
        self.model = model
        self.registry = registry
        self.tool_runner = tool_runner
        self.timeout_s = timeout_s

    async def process(
        self,
        input: str,
        context: str,
        previous_steps: Sequence[PhaseOutput] = (),
    ) -> str:
        logger.info("agent event=process role=%s input=%.50s", self.role, input)
        try:
            return await self._process(input, context, previous_steps)
        except AgentProcessingError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.error("agent event=failed role=%s reason=%s", self.role, exc)
            raise AgentProcessingError(self.role, str(exc) or type(exc).__name__) from exc

    async def _process(
        self,
        input: str,
        context: str,
        previous_steps: Sequence[PhaseOutput],
    ) -> str:
        # Looked up per call so tools registered after construction are offered.
        tools = self.registry.get_tools_for_role(self.role)
        logger.info(
            "agent event=tools role=%s count=%d tools=%s",
            self.role,
            len(tools),
            ",".join(tool.name for tool in tools),
        )
        messages: list[dict[str, Any]] = [
            {"role": "user", "content": self.build_prompt(input, context, previous_steps)}
        ]
        reply = await self._complete(messages, tools)
        if not reply.tool_calls:
            return reply.text

        results = await self._run_tool_calls(reply.tool_calls)
        messages.append({"role": "assistant", "content": reply.text})
        messages.append(
            {"role": "user", "content": f"Tool execution results: {json.dumps(results, default=str)}"}
        )
        followup = await self._complete(messages, tools)
        return f"{reply.text}\n\n{followup.text}"

    def build_prompt(
        self,
        input: str,
        context: str,
        previous_steps: Sequence[PhaseOutput] = (),
    ) -> str:
        prompt = f"{context}\n\n"
        if previous_steps:
            prompt += "Previous steps:\n"
            for step in previous_steps:
                prompt += f"\n## {step.role.upper()} AGENT OUTPUT:\n{step.content}\n"
            prompt += "\n"
        prompt += f"Task: {input}\n\n"
        prompt += ROLE_INSTRUCTIONS.get(self.role, DEFAULT_INSTRUCTION)
        return prompt

    async def _complete(self, messages: list[dict[str, Any]], tools: list) -> ChatReply:
        try:
            return await asyncio.wait_for(
                self.model.complete(messages=messages, tools=tools),
                timeout=self.timeout_s,
            )
        except asyncio.TimeoutError as exc:
            raise AgentProcessingError(
                self.role, f"model call timed out after {self.timeout_s:g}s"
            ) from exc

    async def _run_tool_calls(self, calls: Sequence[ToolCallRequest]) -> list[dict[str, Any]]:
        results: list[dict[str, Any]] = []
        for call in calls:
            if not self.registry.is_granted(self.role, call.name):
                self.registry.require(call.name)
                raise ToolNotFound(f"{call.name} (not granted to {self.role})")
            logger.info("agent event=tool_call role=%s tool=%s", self.role, call.name)
            result = await self.tool_runner.execute_tool(call.name, call.args)
            if call.name in SCREENSHOT_TOOLS and isinstance(result, dict):
                note = "Image data is available." if result.get("data") else ""
                result = {"message": f"Screenshot captured successfully. {note}".strip(), **result}
            results.append({"tool": call.name, "args": call.args, "result": result, "status": "success"})
        return results
