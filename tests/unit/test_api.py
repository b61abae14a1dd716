import json
import time

import pytest
from fastapi.testclient import TestClient

from agent_pipeline.api.main import create_app
from agent_pipeline.config.settings import Settings
from agent_pipeline.execution.client import ExecutionClient


def _client(system) -> TestClient:
    return TestClient(create_app(system=system, settings_override=Settings(app_name="pipeline-test")))


def _poll_until_terminal(client: TestClient, task_id: str) -> dict:
    for _ in range(200):
        payload = client.get(f"/api/task/{task_id}").json()
        if payload["status"] in {"completed", "failed"}:
            return payload
        time.sleep(0.01)
    raise AssertionError(f"task {task_id} did not finish")


def test_health(build_system) -> None:
    system, _ = build_system()

    with _client(system) as client:
        response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "pipeline-test"}


def test_tools_listing_by_role(build_system) -> None:
    system, _ = build_system()
    ExecutionClient().register_tools(system.registry)

    with _client(system) as client:
        everything = client.get("/tools").json()["tools"]
        thinker = client.get("/tools", params={"role": "thinker"}).json()["tools"]

    assert "browser_click" in everything
    assert thinker == ["browser_navigate", "browser_snapshot", "browser_take_screenshot"]


def test_start_task_then_poll_until_completed(build_system) -> None:
    system, _ = build_system()

    with _client(system) as client:
        response = client.post("/api/start-task", json={"prompt": "Find a recipe"})
        assert response.status_code == 200
        task_id = response.json()["taskId"]
        payload = _poll_until_terminal(client, task_id)

    assert payload["id"] == task_id
    assert payload["status"] == "completed"
    assert set(payload["result"]) == {"thinking", "planning", "execution", "review", "finalResult"}
    assert payload["result"]["finalResult"] == payload["result"]["review"]
    assert [entry["phase"] for entry in payload["history"]] == [
        "thinking",
        "planning",
        "executing",
        "reviewing",
    ]
    assert payload["endTime"] is not None
    assert "prompt" not in payload


def test_failed_task_reports_error(build_system, scripted_agent) -> None:
    system, _ = build_system(agents={"thinker": scripted_agent("thinker", error=RuntimeError("no model"))})

    with _client(system) as client:
        task_id = client.post("/api/start-task", json={"prompt": "Anything"}).json()["taskId"]
        payload = _poll_until_terminal(client, task_id)

    assert payload["status"] == "failed"
    assert payload["result"] == {"error": "no model"}


def test_start_task_registers_extra_tools(build_system, ping_tool) -> None:
    system, _ = build_system()

    with _client(system) as client:
        response = client.post("/api/start-task", json={"prompt": "ping it", "tools": [ping_tool]})
        executor_tools = client.get("/tools", params={"role": "executor"}).json()["tools"]

    assert response.status_code == 200
    assert executor_tools == ["ping"]


def test_start_task_rejects_empty_prompt(build_system) -> None:
    system, _ = build_system()

    with _client(system) as client:
        empty = client.post("/api/start-task", json={"prompt": ""})
        missing = client.post("/api/start-task", json={})

    assert empty.status_code == 422
    assert missing.status_code == 422
    assert len(system.store) == 0


def test_start_task_rejects_invalid_tool(build_system) -> None:
    system, _ = build_system()

    with _client(system) as client:
        response = client.post(
            "/api/start-task",
            json={"prompt": "Use a broken tool", "tools": [{"name": "broken", "description": "x"}]},
        )

    assert response.status_code == 400
    assert "parameters" in response.json()["detail"]
    assert len(system.store) == 0


def test_unknown_task_returns_404(build_system) -> None:
    system, _ = build_system()

    with _client(system) as client:
        response = client.get("/api/task/does-not-exist")

    assert response.status_code == 404
    assert response.json() == {"detail": "Task not found"}


class _StreamRequest:
    """Request stand-in whose disconnect flag the test controls."""

    def __init__(self) -> None:
        self.disconnected = False

    async def is_disconnected(self) -> bool:
        return self.disconnected


def _stream_endpoint(app):
    return next(route.endpoint for route in app.routes if getattr(route, "path", None) == "/api/agent-stream")


@pytest.mark.asyncio
async def test_agent_stream_frames_events_and_unsubscribes_on_disconnect(build_system) -> None:
    system, _ = build_system()
    app = create_app(system=system, settings_override=Settings(stream_keepalive_s=0.05))
    request = _StreamRequest()

    response = await _stream_endpoint(app)(request)
    frames = response.body_iterator

    assert response.media_type == "text/event-stream"
    assert system.broadcaster.subscriber_count == 1

    task_id = await system.start_task("Stream me")
    events = []
    while not events or events[-1]["status"] != "completed":
        frame = await frames.__anext__()
        if frame.startswith(":"):
            continue
        assert frame.startswith("data: ") and frame.endswith("\n\n")
        events.append(json.loads(frame.removeprefix("data: ")))

    assert [event["status"] for event in events] == [
        "pending",
        "thinking",
        "planning",
        "executing",
        "reviewing",
        "completed",
    ]
    assert all(event["taskId"] == task_id for event in events)

    assert await frames.__anext__() == ": keep-alive\n\n"

    request.disconnected = True
    with pytest.raises(StopAsyncIteration):
        await frames.__anext__()

    assert system.broadcaster.subscriber_count == 0
