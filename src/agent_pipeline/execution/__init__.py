"""Supervised execution process and the client that relays tool calls to it."""

from agent_pipeline.execution.client import ExecutionClient
from agent_pipeline.execution.supervisor import READY_MARKERS, ProcessSupervisor, SessionState

__all__ = ["ExecutionClient", "ProcessSupervisor", "READY_MARKERS", "SessionState"]
