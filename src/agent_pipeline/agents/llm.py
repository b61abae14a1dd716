"""Chat-model boundary used by the role agents, with an OpenAI-compatible adapter."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol
from urllib import error, request

from agent_pipeline.tools.schemas import ToolDefinition

if TYPE_CHECKING:
    from agent_pipeline.config.settings import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolCallRequest:
    """A tool invocation requested by the model."""

    name: str
    args: dict[str, Any] = field(default_factory=dict)
    call_id: str | None = None


@dataclass(frozen=True)
class ChatReply:
    text: str
    tool_calls: tuple[ToolCallRequest, ...] = ()


class ChatModel(Protocol):
    """Interface for one chat turn with optional function calling."""

    async def complete(
        self,
        *,
        messages: list[dict[str, Any]],
        tools: list[ToolDefinition],
    ) -> ChatReply: ...


class OpenAIChatModel:
    """Chat adapter for OpenAI-compatible `/chat/completions` endpoints."""

    def __init__(
        self,
        *,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: str = "https://api.openai.com/v1",
        timeout_s: float = 60.0,
        temperature: float = 0.7,
        max_tokens: int = 8192,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self.temperature = temperature
        self.max_tokens = max_tokens

    @classmethod
    def from_settings(cls, settings: Settings) -> OpenAIChatModel:
        api_key = settings.resolved_llm_api_key()
        if not api_key:
            logger.warning(
                "LLM API key is missing; phase calls will fail until "
                "AGENT_PIPELINE_LLM_API_KEY or OPENAI_API_KEY is set"
            )
        return cls(
            api_key=api_key,
            model=settings.llm_model,
            base_url=settings.llm_base_url,
            timeout_s=settings.llm_timeout_s,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
        )

    async def complete(
        self,
        *,
        messages: list[dict[str, Any]],
        tools: list[ToolDefinition],
    ) -> ChatReply:
        if not self.api_key:
            raise RuntimeError("LLM API key is missing")
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        if tools:
            payload["tools"] = [
                {"type": "function", "function": tool.to_function_declaration()}
                for tool in tools
            ]
        response_json = await asyncio.to_thread(self._request, payload)
        return self._parse_reply(response_json)

    def _request(self, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.base_url}/chat/completions"
        if _trace_enabled():
            logger.warning(
                "LLM trace request model=%s url=%s tools=%d",
                self.model,
                url,
                len(payload.get("tools", [])),
            )
        req = request.Request(
            url=url,
            data=json.dumps(payload).encode("utf-8"),
            method="POST",
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
        )
        try:
            with request.urlopen(req, timeout=self.timeout_s) as response:
                body = response.read().decode("utf-8")
        except error.HTTPError as exc:
            message = exc.read().decode("utf-8", errors="replace")
            raise RuntimeError(
                f"LLM request failed with status {exc.code}: {message[:400]}"
            ) from exc
        except error.URLError as exc:
            raise RuntimeError(f"LLM request failed: {exc.reason}") from exc

        try:
            return json.loads(body)
        except json.JSONDecodeError as exc:
            raise RuntimeError("LLM returned non-JSON response") from exc

    @staticmethod
    def _parse_reply(response_json: dict[str, Any]) -> ChatReply:
        choices = response_json.get("choices", [])
        if not choices:
            raise RuntimeError("LLM response did not contain choices")

        message = choices[0].get("message", {})
        content = message.get("content")
        if isinstance(content, str):
            text = content
        elif isinstance(content, list):
            text = "".join(
                item["text"]
                for item in content
                if isinstance(item, dict) and isinstance(item.get("text"), str)
            )
        else:
            text = ""

        calls: list[ToolCallRequest] = []
        for raw_call in message.get("tool_calls") or []:
            function = raw_call.get("function", {}) if isinstance(raw_call, dict) else {}
            name = function.get("name")
            if not isinstance(name, str) or not name:
                continue
            calls.append(
                ToolCallRequest(
                    name=name,
                    args=_parse_arguments(function.get("arguments")),
                    call_id=raw_call.get("id"),
                )
            )
        return ChatReply(text=text.strip(), tool_calls=tuple(calls))


def _parse_arguments(raw: Any) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except (TypeError, json.JSONDecodeError) as exc:
        raise RuntimeError(f"LLM tool call arguments were not valid JSON: {raw!r}") from exc
    if not isinstance(parsed, dict):
        raise RuntimeError("LLM tool call arguments must be a JSON object")
    return parsed


def _trace_enabled() -> bool:
    return os.getenv("AGENT_PIPELINE_LLM_TRACE", "0").strip() == "1"
