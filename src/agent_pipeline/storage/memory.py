"""In-memory task store with a bounded retention policy."""

from __future__ import annotations

import logging
import threading

from agent_pipeline.errors import TaskNotFound
from agent_pipeline.storage.models import Task

logger = logging.getLogger(__name__)


class InMemoryTaskStore:
    """Keeps tasks for the process lifetime, evicting the oldest finished ones.

    Tasks still running are never evicted, so the store can temporarily hold
    more than `max_retained_tasks` entries when that many are in flight.
    """

    def __init__(self, max_retained_tasks: int = 1000) -> None:
        if max_retained_tasks < 1:
            raise ValueError("max_retained_tasks must be at least 1")
        self.max_retained_tasks = max_retained_tasks
        self._tasks: dict[str, Task] = {}
        self._lock = threading.Lock()

    def add(self, task: Task) -> Task:
        with self._lock:
            self._tasks[task.id] = task
            evicted = self._evict_locked()
        for task_id in evicted:
            logger.info("task_store event=evicted task_id=%s", task_id)
        return task

    def get(self, task_id: str) -> Task:
        with self._lock:
            task = self._tasks.get(task_id)
        if task is None:
            raise TaskNotFound(task_id)
        return task

    def task_ids(self) -> list[str]:
        with self._lock:
            return list(self._tasks)

    def __contains__(self, task_id: object) -> bool:
        with self._lock:
            return task_id in self._tasks

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)

    def _evict_locked(self) -> list[str]:
        overflow = len(self._tasks) - self.max_retained_tasks
        if overflow <= 0:
            return []
        # dict order is insertion order, so the first terminal tasks are the oldest.
        victims = [task_id for task_id, task in self._tasks.items() if task.is_terminal][:overflow]
        for task_id in victims:
            del self._tasks[task_id]
        return victims
