"""LangGraph assembly of the four-phase task pipeline."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypedDict

from langgraph.graph import END, StateGraph

from agent_pipeline.agents.prompts import (
    EXECUTOR_CONTEXT,
    PLANNER_CONTEXT,
    REVIEWER_CONTEXT,
    THINKER_CONTEXT,
)


class PipelineState(TypedDict, total=False):
    task_id: str
    prompt: str
    outputs: dict[str, str]


@dataclass(frozen=True)
class Phase:
    status: str
    role: str
    result_key: str
    context: str


PHASES: tuple[Phase, ...] = (
    Phase("thinking", "thinker", "thinking", THINKER_CONTEXT),
    Phase("planning", "planner", "planning", PLANNER_CONTEXT),
    Phase("executing", "executor", "execution", EXECUTOR_CONTEXT),
    Phase("reviewing", "reviewer", "review", REVIEWER_CONTEXT),
)
PHASE_ORDER: tuple[str, ...] = tuple(phase.status for phase in PHASES)

PhaseRunner = Callable[[Phase, PipelineState], Awaitable[str]]


def initial_state(task_id: str, prompt: str) -> PipelineState:
    return {"task_id": task_id, "prompt": prompt, "outputs": {}}


def build_pipeline(run_phase: PhaseRunner):
    """Wire the phases linearly; an exception in any node aborts the run."""
    graph = StateGraph(PipelineState)

    for phase in PHASES:
        graph.add_node(phase.status, _phase_node(phase, run_phase))

    graph.set_entry_point(PHASES[0].status)
    for current, following in zip(PHASES, PHASES[1:]):
        graph.add_edge(current.status, following.status)
    graph.add_edge(PHASES[-1].status, END)

    return graph.compile()


def _phase_node(phase: Phase, run_phase: PhaseRunner):
    async def run(state: PipelineState) -> PipelineState:
        output = await run_phase(phase, state)
        outputs = dict(state.get("outputs", {}))
        outputs[phase.result_key] = output
        return {"outputs": outputs}

    run.__name__ = f"{phase.status}_node"
    return run
