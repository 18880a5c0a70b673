"""OpenAI LLM provider implementation (also serves OpenAI-compatible gateways)."""

from __future__ import annotations

import json
import os
from collections.abc import AsyncIterator
from typing import Any

from openai import AsyncOpenAI

from ..models import Message
from .base import LLMProvider, StreamChunk, ToolCallDelta, ToolCallRequest


class OpenAIProvider(LLMProvider):
    """OpenAI-backed LLM provider using the Chat Completions API."""

    def __init__(
        self,
        default_model: str = "gpt-4.1-nano",
        api_key: str | None = None,
        base_url: str | None = None,
    ) -> None:
        self.default_model = default_model
        self.api_key = api_key or os.getenv("OPENAI_API_KEY") or ""
        self.base_url = base_url or os.getenv("OPENAI_BASE_URL")
        self._client: Any | None = None

    def _get_client(self) -> Any:
        if not self._client:
            kwargs: dict[str, Any] = {"api_key": self.api_key}
            if self.base_url:
                kwargs["base_url"] = self.base_url
            self._client = AsyncOpenAI(**kwargs)
        return self._client

    @staticmethod
    def _to_openai_messages(messages: list[Message]) -> list[dict[str, Any]]:
        """Convert internal Message objects into OpenAI chat message dicts."""
        out: list[dict[str, Any]] = []
        for m in messages:
            base: dict[str, Any] = {"role": m.role, "content": m.content}
            if m.role != "assistant" and base["content"] is None:
                base["content"] = ""
            # Assistant tool calls
            if m.role == "assistant" and m.tool_calls:
                oa_tool_calls: list[dict[str, Any]] = []
                for tc in m.tool_calls:
                    raw_args = tc.get("arguments") or ""
                    if not isinstance(raw_args, str):
                        raw_args = json.dumps(raw_args)
                    oa_tool_calls.append(
                        {
                            "id": tc.get("id") or "",
                            "type": "function",
                            "function": {"name": tc.get("name", "") or "", "arguments": raw_args},
                        }
                    )
                base["tool_calls"] = oa_tool_calls
            # Tool response messages
            if m.role == "tool":
                if m.tool_call_id:
                    base["tool_call_id"] = m.tool_call_id
                if m.name:
                    base["name"] = m.name
            out.append(base)
        return out

    @staticmethod
    def _parse_tool_calls(choice_message: Any) -> list[ToolCallRequest]:
        """Map OpenAI tool_calls into ToolCallRequest objects, keeping raw argument strings."""
        tool_calls: list[ToolCallRequest] = []
        for tc in getattr(choice_message, "tool_calls", None) or []:
            fn = getattr(tc, "function", None)
            name = getattr(fn, "name", "") if fn is not None else ""
            raw_args = getattr(fn, "arguments", "") if fn is not None else ""
            if isinstance(raw_args, dict):
                raw_args = json.dumps(raw_args)
            tool_calls.append(
                ToolCallRequest(
                    id=getattr(tc, "id", "") or "",
                    name=name or "",
                    arguments=raw_args or "",
                )
            )
        return tool_calls

    def _build_params(
        self,
        messages: list[Message],
        model: str | None,
        tools: list[dict[str, Any]] | None,
        max_tokens: int | None,
        kwargs: dict[str, Any],
    ) -> dict[str, Any]:
        params: dict[str, Any] = {
            "model": model or self.default_model,
            "messages": self._to_openai_messages(messages),
            **kwargs,
        }
        if tools:
            params["tools"] = tools
            params["tool_choice"] = "auto"
        if max_tokens is not None:
            params["max_completion_tokens"] = max_tokens
        return params

    async def chat(
        self,
        messages: list[Message],
        *,
        model: str | None = None,
        tools: list[dict[str, Any]] | None = None,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> tuple[str, list[ToolCallRequest]]:
        """Non-streaming chat using OpenAI Chat Completions."""
        client = self._get_client()
        params = self._build_params(messages, model, tools, max_tokens, kwargs)

        resp = await client.chat.completions.create(**params)
        if not resp.choices:
            return "", []

        choice = resp.choices[0].message
        content = choice.content or ""
        if isinstance(content, list):
            # Multi-part content; join text fragments
            content = "".join(
                part.get("text", "") if isinstance(part, dict) else str(part)
                for part in content
            )

        return content or "", self._parse_tool_calls(choice)

    async def stream_chat(
        self,
        messages: list[Message],
        *,
        model: str | None = None,
        tools: list[dict[str, Any]] | None = None,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> AsyncIterator[StreamChunk]:
        """Streaming chat; yields text deltas and raw tool-call fragments as they arrive."""
        client = self._get_client()
        params = self._build_params(messages, model, tools, max_tokens, kwargs)
        params["stream"] = True

        stream = await client.chat.completions.create(**params)
        content_parts: list[str] = []

        async for chunk in stream:
            if not chunk.choices:
                continue
            delta = getattr(chunk.choices[0], "delta", None)
            if delta is None:
                continue

            # Text deltas
            text_delta = getattr(delta, "content", None)
            if text_delta:
                content_parts.append(text_delta)
                yield StreamChunk(type="text_delta", content=text_delta)

            # Tool call deltas
            raw_tool_calls = getattr(delta, "tool_calls", None)
            if raw_tool_calls:
                deltas: list[ToolCallDelta] = []
                for position, tc in enumerate(raw_tool_calls):
                    idx = getattr(tc, "index", None)
                    fn = getattr(tc, "function", None)
                    deltas.append(
                        ToolCallDelta(
                            index=idx if isinstance(idx, int) else position,
                            id=getattr(tc, "id", None) or None,
                            name=(getattr(fn, "name", None) or None) if fn is not None else None,
                            arguments=(getattr(fn, "arguments", None) or "") if fn is not None else "",
                        )
                    )
                yield StreamChunk(type="tool_call_delta", tool_call_deltas=deltas)

        yield StreamChunk(type="done", content="".join(content_parts))
