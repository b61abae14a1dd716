"""Task records and live-update events."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

TaskStatus = Literal[
    "pending",
    "thinking",
    "planning",
    "executing",
    "reviewing",
    "completed",
    "failed",
]
TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "failed"})

EventType = Literal["task_started", "task_update"]


def utc_now() -> datetime:
    return datetime.now(UTC)


class WireModel(BaseModel):
    """Snake-case attributes, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class HistoryEntry(WireModel):
    """Output of one completed phase."""

    phase: str
    output: str
    timestamp: datetime = Field(default_factory=utc_now)


class Task(WireModel):
    """In-memory task state, mutated only by the orchestrator."""

    id: str
    prompt: str
    status: TaskStatus = "pending"
    history: list[HistoryEntry] = Field(default_factory=list)
    result: dict[str, Any] | None = None
    start_time: datetime = Field(default_factory=utc_now)
    end_time: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def snapshot(self) -> Task:
        return self.model_copy(deep=True)

    def status_payload(self) -> dict[str, Any]:
        """Shape returned by the status query: everything except the prompt."""
        payload = self.to_wire()
        payload.pop("prompt", None)
        return payload


class TaskEvent(WireModel):
    type: EventType
    task_id: str
    status: TaskStatus
    result: dict[str, Any] | None = None
    timestamp: datetime = Field(default_factory=utc_now)
