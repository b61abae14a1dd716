"""Task records and the in-memory store."""

from agent_pipeline.storage.memory import InMemoryTaskStore
from agent_pipeline.storage.models import (
    TERMINAL_STATUSES,
    HistoryEntry,
    Task,
    TaskEvent,
    TaskStatus,
)

__all__ = [
    "HistoryEntry",
    "InMemoryTaskStore",
    "TERMINAL_STATUSES",
    "Task",
    "TaskEvent",
    "TaskStatus",
]
