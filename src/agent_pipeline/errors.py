"""Error taxonomy shared by the registry, execution client and orchestrator."""

from __future__ import annotations


class AgentPipelineError(Exception):
    """Base class for every error raised by this package."""


class InvalidToolDefinition(AgentPipelineError):
    """A tool definition was rejected at registration time."""


class ToolNotFound(AgentPipelineError):
    def __init__(self, tool_name: str) -> None:
        super().__init__(f"Tool not found: {tool_name}")
        self.tool_name = tool_name


class ProcessStartupError(AgentPipelineError):
    """The execution process failed before reaching readiness."""


class ProcessStartupTimeoutError(ProcessStartupError):
    """No readiness marker appeared within the startup timeout."""

    def __init__(self, message: str, *, timeout_s: float, installed: bool | None = None) -> None:
        super().__init__(message)
        self.timeout_s = timeout_s
        # None means the installation probe was skipped or inconclusive.
        self.installed = installed


class ToolExecutionError(AgentPipelineError):
    """A wire call to the execution process failed."""

    def __init__(self, tool_name: str, message: str, *, status: int | None = None) -> None:
        super().__init__(f"Tool execution failed: {message}")
        self.tool_name = tool_name
        self.status = status


class AgentProcessingError(AgentPipelineError):
    def __init__(self, role: str, message: str) -> None:
        super().__init__(f"{role} agent failed: {message}")
        self.role = role


class TaskNotFound(AgentPipelineError):
    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task {task_id} not found")
        self.task_id = task_id
