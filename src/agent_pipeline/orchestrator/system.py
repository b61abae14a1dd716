"""Task orchestrator: drives each task through the four role phases."""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from collections.abc import Iterable, Mapping, Sequence
from typing import Any, Protocol

from agent_pipeline.agents.llm import ChatModel, OpenAIChatModel
from agent_pipeline.agents.role_agent import PhaseOutput, RoleAgent
from agent_pipeline.config.settings import Settings, get_settings
from agent_pipeline.errors import ProcessStartupError
from agent_pipeline.execution.client import ExecutionClient
from agent_pipeline.orchestrator.events import EventBroadcaster, Subscriber
from agent_pipeline.orchestrator.pipeline import (
    PHASES,
    Phase,
    PipelineState,
    build_pipeline,
    initial_state,
)
from agent_pipeline.storage.memory import InMemoryTaskStore
from agent_pipeline.storage.models import HistoryEntry, Task, TaskEvent, TaskStatus, utc_now
from agent_pipeline.tools.registry import (
    ToolInput,
    ToolRegistry,
    coerce_definition,
    register_default_tools,
)

logger = logging.getLogger(__name__)

RESULT_KEYS: tuple[str, ...] = tuple(phase.result_key for phase in PHASES)


class PhaseAgent(Protocol):
    async def process(
        self,
        input: str,
        context: str,
        previous_steps: Sequence[PhaseOutput] = (),
    ) -> str: ...


class AgentSystem:
    """Owns task state, sequences the role agents and publishes transitions."""

    def __init__(
        self,
        *,
        registry: ToolRegistry,
        execution_client: ExecutionClient,
        agents: Mapping[str, PhaseAgent],
        broadcaster: EventBroadcaster | None = None,
        store: InMemoryTaskStore | None = None,
        autostart_execution: bool = False,
    ) -> None:
        missing = [phase.role for phase in PHASES if phase.role not in agents]
        if missing:
            raise ValueError(f"Missing agents for roles: {', '.join(missing)}")
        self.registry = registry
        self.execution_client = execution_client
        self.agents = dict(agents)
        self.broadcaster = broadcaster or EventBroadcaster()
        self.store = store or InMemoryTaskStore()
        self.autostart_execution = autostart_execution
        self._pipeline = build_pipeline(self._run_phase)
        self._runs: dict[str, asyncio.Task[None]] = {}
        self._sequence = itertools.count(1)

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        *,
        model: ChatModel | None = None,
    ) -> AgentSystem:
        settings = settings or get_settings()
        registry = ToolRegistry()
        execution_client = ExecutionClient.from_settings(settings)
        execution_client.register_tools(registry)
        if settings.register_default_tools:
            register_default_tools(registry)

        chat_model = model or OpenAIChatModel.from_settings(settings)
        agents = {
            phase.role: RoleAgent(
                phase.role,
                model=chat_model,
                registry=registry,
                tool_runner=execution_client,
                timeout_s=settings.llm_timeout_s,
            )
            for phase in PHASES
        }
        return cls(
            registry=registry,
            execution_client=execution_client,
            agents=agents,
            store=InMemoryTaskStore(max_retained_tasks=settings.max_retained_tasks),
            autostart_execution=settings.execution_autostart,
        )

    async def start(self) -> None:
        if not self.autostart_execution:
            return
        try:
            await self.execution_client.start()
        except ProcessStartupError as exc:
            # Not fatal: the client starts again on the first tool call.
            logger.error("agent_system event=execution_start_failed reason=%s", exc)

    async def shutdown(self) -> None:
        await self.execution_client.stop()

    def subscribe(self, subscriber_id: str, callback: Subscriber) -> None:
        self.broadcaster.subscribe(subscriber_id, callback)

    def unsubscribe(self, subscriber_id: str) -> bool:
        return self.broadcaster.unsubscribe(subscriber_id)

    async def start_task(self, prompt: str, tools: Iterable[ToolInput] = ()) -> str:
        # Validate every ad hoc tool before registering any of them.
        definitions = [coerce_definition(tool) for tool in tools]
        for definition in definitions:
            self.registry.register(definition)

        task = self.store.add(Task(id=self._new_task_id(), prompt=prompt))
        logger.info(
            "task_run event=created task_id=%s extra_tools=%d",
            task.id,
            len(definitions),
        )
        self._publish("task_started", task)

        run = asyncio.create_task(self._run_pipeline(task.id), name=f"task-{task.id}")
        self._runs[task.id] = run
        run.add_done_callback(lambda _: self._runs.pop(task.id, None))
        return task.id

    def get_task_status(self, task_id: str) -> Task:
        return self.store.get(task_id).snapshot()

    async def wait_for_task(self, task_id: str, timeout_s: float | None = None) -> Task:
        self.store.get(task_id)
        run = self._runs.get(task_id)
        if run is not None:
            await asyncio.wait_for(asyncio.shield(run), timeout=timeout_s)
        return self.get_task_status(task_id)

    @property
    def running_task_ids(self) -> list[str]:
        return list(self._runs)

    async def _run_pipeline(self, task_id: str) -> None:
        task = self.store.get(task_id)
        try:
            final_state = await self._pipeline.ainvoke(initial_state(task.id, task.prompt))
        except Exception as exc:  # noqa: BLE001
            logger.exception("task_run event=failed task_id=%s status=%s", task_id, task.status)
            self._update_status(task, "failed", {"error": str(exc) or type(exc).__name__})
            return

        outputs = final_state.get("outputs", {})
        result: dict[str, Any] = {key: outputs.get(key) for key in RESULT_KEYS}
        # The review doubles as the final answer.
        result["finalResult"] = result["review"]
        self._update_status(task, "completed", result)
        logger.info(
            "task_run event=completed task_id=%s duration_s=%.2f",
            task_id,
            (task.end_time - task.start_time).total_seconds() if task.end_time else 0.0,
        )

    async def _run_phase(self, phase: Phase, state: PipelineState) -> str:
        task = self.store.get(state["task_id"])
        outputs = state.get("outputs", {})
        self._update_status(task, phase.status, dict(outputs) or None)

        previous_steps = [
            PhaseOutput(role=earlier.status, content=outputs[earlier.result_key])
            for earlier in PHASES
            if earlier.result_key in outputs
        ]
        output = await self.agents[phase.role].process(task.prompt, phase.context, previous_steps)
        task.history.append(HistoryEntry(phase=phase.status, output=output))
        return output

    def _update_status(
        self,
        task: Task,
        status: TaskStatus,
        result: dict[str, Any] | None = None,
    ) -> None:
        if task.is_terminal:
            logger.warning(
                "task_update event=ignored task_id=%s current=%s requested=%s",
                task.id,
                task.status,
                status,
            )
            return
        task.status = status
        if result is not None:
            task.result = result
        if task.is_terminal:
            task.end_time = utc_now()
        logger.info("task_update task_id=%s status=%s", task.id, status)
        self._publish("task_update", task, result)

    def _publish(self, event_type: str, task: Task, result: dict[str, Any] | None = None) -> None:
        event = TaskEvent(type=event_type, task_id=task.id, status=task.status, result=result)
        self.broadcaster.broadcast(event.to_wire())

    def _new_task_id(self) -> str:
        return f"{int(time.time() * 1000)}-{next(self._sequence)}"
