"""FastAPI app entrypoint for agent-pipeline."""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from agent_pipeline.config.settings import Settings, get_settings
from agent_pipeline.errors import InvalidToolDefinition, TaskNotFound
from agent_pipeline.orchestrator.system import AgentSystem

logger = logging.getLogger(__name__)


class StartTaskRequest(BaseModel):
    prompt: str = Field(min_length=1)
    tools: list[dict[str, Any]] = Field(default_factory=list)


class StartTaskResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    task_id: str = Field(serialization_alias="taskId")


def create_app(
    *,
    system: AgentSystem | None = None,
    settings_override: Settings | None = None,
) -> FastAPI:
    settings = settings_override or get_settings()
    agent_system = system or AgentSystem.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await agent_system.start()
        try:
            yield
        finally:
            await agent_system.shutdown()

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.system = agent_system
    app.state.settings = settings

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "service": settings.app_name}

    @app.get("/tools")
    def tools(role: str | None = None) -> dict[str, list[str]]:
        registry = agent_system.registry
        if role is None:
            return {"tools": registry.tool_names()}
        return {"tools": [tool.name for tool in registry.get_tools_for_role(role)]}

    @app.post("/api/start-task", response_model=StartTaskResponse, response_model_by_alias=True)
    async def start_task(payload: StartTaskRequest) -> StartTaskResponse:
        try:
            task_id = await agent_system.start_task(payload.prompt, payload.tools)
        except InvalidToolDefinition as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return StartTaskResponse(task_id=task_id)

    @app.get("/api/task/{task_id}")
    def get_task(task_id: str) -> dict[str, Any]:
        try:
            task = agent_system.get_task_status(task_id)
        except TaskNotFound as exc:
            raise HTTPException(status_code=404, detail="Task not found") from exc
        return task.status_payload()

    @app.get("/api/agent-stream")
    async def agent_stream(request: Request) -> StreamingResponse:
        subscriber_id = uuid.uuid4().hex
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        agent_system.subscribe(subscriber_id, queue.put_nowait)

        async def frames() -> AsyncIterator[str]:
            try:
                while not await request.is_disconnected():
                    try:
                        event = await asyncio.wait_for(
                            queue.get(), timeout=settings.stream_keepalive_s
                        )
                    except asyncio.TimeoutError:
                        yield ": keep-alive\n\n"
                        continue
                    yield f"data: {json.dumps(event)}\n\n"
            finally:
                agent_system.unsubscribe(subscriber_id)

        return StreamingResponse(
            frames(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    return app


# Module-level app for `uvicorn agent_pipeline.api.main:app`.
app = create_app()
