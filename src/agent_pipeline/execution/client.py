"""Client for the browser tool-execution server."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

import aiohttp

from agent_pipeline.errors import ToolExecutionError
from agent_pipeline.execution.supervisor import (
    READY_MARKERS,
    ProcessSupervisor,
    SessionState,
)
from agent_pipeline.tools.catalog import base_tools, normalize_tool_name, vision_tools
from agent_pipeline.tools.registry import ToolRegistry, coerce_definition
from agent_pipeline.tools.schemas import ToolDefinition

if TYPE_CHECKING:
    from agent_pipeline.config.settings import Settings

logger = logging.getLogger(__name__)

DEFAULT_COMMAND: tuple[str, ...] = ("npx", "@playwright/mcp")
DEFAULT_INSTALL_CHECK: tuple[str, ...] = ("npx", "--no-install", "playwright", "--version")


class ExecutionClient:
    """Owns one execution process and relays tool calls to it over HTTP.

    Callers never need to start the session first: `execute_tool` starts the
    process when it is not running. Calls are not retried.
    """

    def __init__(
        self,
        *,
        port: int = 3001,
        browser: str | None = "chrome",
        headless: bool = False,
        vision: bool = False,
        user_data_dir: str | None = None,
        executable_path: str | None = None,
        timeout_s: float = 60.0,
        stop_grace_s: float = 5.0,
        base_url: str | None = None,
        command: Sequence[str] = DEFAULT_COMMAND,
        install_check_command: Sequence[str] | None = DEFAULT_INSTALL_CHECK,
        ready_markers: Sequence[str] = READY_MARKERS,
    ) -> None:
        self.port = port
        self.browser = browser
        self.headless = headless
        self.vision = vision
        self.user_data_dir = user_data_dir
        self.executable_path = executable_path
        self.timeout_s = timeout_s
        self.base_url = (base_url or f"http://localhost:{port}").rstrip("/")
        self.command = list(command)
        self.supervisor = ProcessSupervisor(
            self.build_command(),
            startup_timeout_s=timeout_s,
            stop_grace_s=stop_grace_s,
            ready_markers=ready_markers,
            install_check_command=install_check_command,
            name="Playwright MCP server",
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> ExecutionClient:
        return cls(
            port=settings.execution_port,
            browser=settings.execution_browser,
            headless=settings.execution_headless,
            vision=settings.execution_vision,
            user_data_dir=settings.execution_user_data_dir,
            executable_path=settings.execution_executable_path,
            timeout_s=settings.execution_timeout_s,
            stop_grace_s=settings.execution_stop_grace_s,
            base_url=settings.execution_base_url,
            command=settings.execution_command,
            install_check_command=settings.execution_install_check_command or None,
        )

    def build_command(self) -> list[str]:
        args = list(self.command)
        if self.browser:
            args += ["--browser", self.browser]
        if self.headless:
            args.append("--headless")
        if self.port:
            args += ["--port", str(self.port)]
        if self.user_data_dir:
            args += ["--user-data-dir", self.user_data_dir]
        if self.executable_path:
            args += ["--executable-path", self.executable_path]
        if self.vision:
            args.append("--vision")
        return args

    @property
    def state(self) -> SessionState:
        return self.supervisor.state

    @property
    def is_running(self) -> bool:
        return self.supervisor.is_running

    async def start(self) -> None:
        await self.supervisor.start()

    async def stop(self) -> None:
        await self.supervisor.stop()

    async def __aenter__(self) -> ExecutionClient:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    async def execute_tool(self, tool_name: str, args: dict[str, Any] | None = None) -> Any:
        if not self.is_running:
            logger.info("execution_client event=lazy_start tool=%s", tool_name)
            await self.start()

        wire_name = normalize_tool_name(tool_name)
        url = f"{self.base_url}/api/tools/{wire_name}"
        logger.info("execution_client event=call tool=%s url=%s", wire_name, url)
        result = await self._post_json(wire_name, url, args or {})
        logger.debug("execution_client event=result tool=%s result=%s", wire_name, result)
        return result

    async def _post_json(self, tool_name: str, url: str, payload: dict[str, Any]) -> Any:
        timeout = aiohttp.ClientTimeout(total=self.timeout_s)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(
                    url,
                    json=payload,
                    headers={"Accept": "application/json"},
                ) as response:
                    body = await response.text()
                    status = response.status
        except asyncio.TimeoutError as exc:
            raise ToolExecutionError(
                tool_name, f"Request timed out after {self.timeout_s:g}s"
            ) from exc
        except aiohttp.ClientError as exc:
            raise ToolExecutionError(tool_name, f"Request failed: {exc}") from exc

        if not 200 <= status < 300:
            raise ToolExecutionError(tool_name, f"HTTP error {status}: {body}", status=status)
        if not body.strip():
            return {}
        try:
            return json.loads(body)
        except json.JSONDecodeError as exc:
            raise ToolExecutionError(
                tool_name, f"Failed to parse response: {exc}", status=status
            ) from exc

    def get_tool_definitions(self) -> list[ToolDefinition]:
        raw = base_tools()
        if self.vision:
            raw += vision_tools()
        return [coerce_definition(item) for item in raw]

    def register_tools(self, registry: ToolRegistry) -> int:
        definitions = self.get_tool_definitions()
        for definition in definitions:
            registry.register(definition)
        logger.info(
            "execution_client event=tools_registered count=%d vision=%s",
            len(definitions),
            self.vision,
        )
        return len(definitions)
