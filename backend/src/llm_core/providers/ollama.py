"""Ollama LLM provider implementation."""

from __future__ import annotations

import json
import os
from collections.abc import AsyncIterator
from typing import Any

from ollama import AsyncClient

from ..models import Message
from .base import LLMProvider, StreamChunk, ToolCallDelta, ToolCallRequest


def _parse_arguments(raw: Any) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str) and raw:
        try:
            parsed = json.loads(raw)
        except ValueError:
            return {}
        return parsed if isinstance(parsed, dict) else {}
    return {}


def _message_to_chat(m: Message) -> dict[str, Any]:
    """Convert our Message to Ollama chat format (tool arguments as objects)."""
    out: dict[str, Any] = {"role": m.role, "content": m.content or ""}
    if m.tool_calls:
        out["tool_calls"] = [
            {
                "function": {
                    "name": tc.get("name", ""),
                    "arguments": _parse_arguments(tc.get("arguments")),
                },
            }
            for tc in m.tool_calls
        ]
    if m.tool_call_id:
        out["tool_call_id"] = m.tool_call_id
    if m.name:
        out["name"] = m.name
    return out


def _tool_schema_to_ollama(tool: dict[str, Any]) -> dict[str, Any]:
    """Normalize tool def to Ollama/OpenAI format."""
    if "function" in tool:
        return tool
    return {
        "type": "function",
        "function": {
            "name": tool.get("name", ""),
            "description": tool.get("description", ""),
            "parameters": tool.get("parameters", {"type": "object", "properties": {}}),
        },
    }


class OllamaProvider(LLMProvider):
    """Ollama-backed LLM provider.

    Ollama delivers each tool call whole, so every tool call becomes a single
    delta carrying its full JSON argument string and no id.
    """

    def __init__(self, default_model: str = "llama3.2", base_url: str | None = None):
        self.default_model = default_model
        self.base_url = base_url or os.getenv("OLLAMA_HOST") or "http://localhost:11434"

    async def chat(
        self,
        messages: list[Message],
        *,
        model: str | None = None,
        tools: list[dict[str, Any]] | None = None,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> tuple[str, list[ToolCallRequest]]:
        content_parts: list[str] = []
        tool_calls: list[ToolCallRequest] = []
        async for chunk in self.stream_chat(
            messages, model=model, tools=tools, max_tokens=max_tokens, **kwargs
        ):
            if chunk.type == "text_delta" and chunk.content:
                content_parts.append(chunk.content)
            for delta in chunk.tool_call_deltas:
                tool_calls.append(
                    ToolCallRequest(
                        id=delta.id or f"call_{len(tool_calls)}",
                        name=delta.name or "",
                        arguments=delta.arguments,
                    )
                )
        return "".join(content_parts), tool_calls

    async def stream_chat(
        self,
        messages: list[Message],
        *,
        model: str | None = None,
        tools: list[dict[str, Any]] | None = None,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> AsyncIterator[StreamChunk]:
        client = AsyncClient(host=self.base_url)
        chat_messages = [_message_to_chat(m) for m in messages]
        ollama_tools = [_tool_schema_to_ollama(t) for t in tools] if tools else None
        model_name = model or self.default_model
        options = dict(kwargs.pop("options", None) or {})
        if max_tokens is not None:
            options["num_predict"] = max_tokens
        content_parts: list[str] = []
        tool_index = 0

        try:
            stream = await client.chat(
                model=model_name,
                messages=chat_messages,
                tools=ollama_tools,
                stream=True,
                options=options or None,
            )
            async for chunk in stream:
                msg = getattr(chunk, "message", None)
                if msg is None:
                    continue
                delta = getattr(msg, "content", None) or ""
                if delta:
                    content_parts.append(delta)
                    yield StreamChunk(type="text_delta", content=delta)
                deltas: list[ToolCallDelta] = []
                for tc in getattr(msg, "tool_calls", None) or []:
                    fn = getattr(tc, "function", None)
                    if fn is None:
                        continue
                    args = getattr(fn, "arguments", None)
                    if not isinstance(args, str):
                        args = json.dumps(dict(args or {}))
                    deltas.append(
                        ToolCallDelta(
                            index=tool_index,
                            name=getattr(fn, "name", "") or None,
                            arguments=args,
                        )
                    )
                    tool_index += 1
                if deltas:
                    yield StreamChunk(type="tool_call_delta", tool_call_deltas=deltas)
            yield StreamChunk(type="done", content="".join(content_parts))
        finally:
            aclose = getattr(client, "aclose", None)
            if callable(aclose):
                await aclose()
