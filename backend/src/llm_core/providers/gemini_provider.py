"""Google Gemini LLM provider implementation."""

from __future__ import annotations

import json
import os
from collections.abc import AsyncIterator
from typing import Any

from google import genai
from google.genai import types as genai_types

from ..models import Message
from .base import LLMProvider, StreamChunk, ToolCallDelta, ToolCallRequest


def _loads_object(raw: Any) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except ValueError:
        return {"result": raw}
    return parsed if isinstance(parsed, dict) else {"result": parsed}


class GeminiProvider(LLMProvider):
    """Gemini provider using the google-genai SDK."""

    def __init__(
        self,
        default_model: str = "gemini-2.5-flash",
        api_key: str | None = None,
    ) -> None:
        self.default_model = default_model
        self.api_key = api_key or os.getenv("GOOGLE_API_KEY") or os.getenv(
            "GEMINI_API_KEY",
            "",
        )
        self._client: Any | None = None

    def _get_client(self) -> Any:
        if not self._client:
            self._client = genai.Client(
                api_key=self.api_key,
                http_options={"api_version": "v1beta"},
            )
        return self._client

    @staticmethod
    def _to_gemini_contents(messages: list[Message]) -> tuple[list[Any], str | None]:
        """Convert internal Message objects into Gemini contents and system instruction."""
        contents: list[genai_types.Content] = []
        system_instruction: str | None = None
        call_names: dict[str, str] = {}

        for m in messages:
            if m.role == "system":
                system_instruction = (m.content or "").strip() or system_instruction
                continue
            parts: list[genai_types.Part] = []
            if m.role == "tool":
                name = m.name or call_names.get(m.tool_call_id or "", "")
                parts.append(
                    genai_types.Part(
                        function_response=genai_types.FunctionResponse(
                            name=name,
                            response=_loads_object(m.content),
                        )
                    )
                )
                contents.append(genai_types.Content(role="user", parts=parts))
                continue
            role = "model" if m.role == "assistant" else "user"
            if m.content:
                # Construct Part directly to avoid signature issues with from_text()
                parts.append(genai_types.Part(text=m.content))
            for tc in m.tool_calls or []:
                call_names[tc.get("id", "")] = tc.get("name", "")
                parts.append(
                    genai_types.Part(
                        function_call=genai_types.FunctionCall(
                            name=tc.get("name", ""),
                            args=_loads_object(tc.get("arguments")),
                        )
                    )
                )
            if parts:
                contents.append(genai_types.Content(role=role, parts=parts))

        return contents, system_instruction

    @staticmethod
    def _to_gemini_tools(tools: list[dict[str, Any]] | None) -> list[Any] | None:
        """Convert function tools into Gemini Tool declarations."""
        if not tools:
            return None
        function_declarations: list[genai_types.FunctionDeclaration] = []
        for t in tools:
            fn = t.get("function") if "function" in t else t
            name = fn.get("name")
            if not name:
                continue
            function_declarations.append(
                genai_types.FunctionDeclaration(
                    name=name,
                    description=fn.get("description", ""),
                    parameters=fn.get("parameters") or {},
                )
            )
        if not function_declarations:
            return None
        return [genai_types.Tool(function_declarations=function_declarations)]

    def _build_config(
        self,
        system_instruction: str | None,
        tools: list[dict[str, Any]] | None,
        max_tokens: int | None,
    ) -> Any:
        config_args: dict[str, Any] = {}
        gemini_tools = self._to_gemini_tools(tools)
        if gemini_tools:
            config_args["tools"] = gemini_tools
            config_args["tool_config"] = genai_types.ToolConfig(
                function_calling_config=genai_types.FunctionCallingConfig(
                    mode=genai_types.FunctionCallingConfigMode.AUTO
                )
            )
        if system_instruction:
            config_args["system_instruction"] = system_instruction
        if max_tokens is not None:
            config_args["max_output_tokens"] = max_tokens
        return genai_types.GenerateContentConfig(**config_args)

    @staticmethod
    def _iter_parts(response: Any) -> list[Any]:
        parts: list[Any] = []
        for cand in getattr(response, "candidates", None) or []:
            content = getattr(cand, "content", None)
            if content and getattr(content, "parts", None):
                parts.extend(content.parts)
        return parts

    async def chat(
        self,
        messages: list[Message],
        *,
        model: str | None = None,
        tools: list[dict[str, Any]] | None = None,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> tuple[str, list[ToolCallRequest]]:
        """Non-streaming chat using Gemini generate_content."""
        client = self._get_client()
        contents, system_instruction = self._to_gemini_contents(messages)
        resp = await client.aio.models.generate_content(
            model=model or self.default_model,
            contents=contents,
            config=self._build_config(system_instruction, tools, max_tokens),
        )
        text_parts: list[str] = []
        tool_calls: list[ToolCallRequest] = []
        for part in self._iter_parts(resp):
            if getattr(part, "text", None):
                text_parts.append(part.text)
            fc = getattr(part, "function_call", None)
            if fc:
                tool_calls.append(
                    ToolCallRequest(
                        id=getattr(fc, "id", None) or f"call_{fc.name}_{len(tool_calls)}",
                        name=fc.name or "",
                        arguments=json.dumps(dict(fc.args) if fc.args else {}),
                    )
                )
        return "".join(text_parts), tool_calls

    async def stream_chat(
        self,
        messages: list[Message],
        *,
        model: str | None = None,
        tools: list[dict[str, Any]] | None = None,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> AsyncIterator[StreamChunk]:
        """Streaming chat for Gemini; function calls arrive whole, one delta each."""
        client = self._get_client()
        contents, system_instruction = self._to_gemini_contents(messages)
        stream = await client.aio.models.generate_content_stream(
            model=model or self.default_model,
            contents=contents,
            config=self._build_config(system_instruction, tools, max_tokens),
        )

        content_parts: list[str] = []
        tool_index = 0
        async for chunk in stream:
            deltas: list[ToolCallDelta] = []
            for part in self._iter_parts(chunk):
                text = getattr(part, "text", None)
                if text:
                    content_parts.append(text)
                    yield StreamChunk(type="text_delta", content=text)
                fc = getattr(part, "function_call", None)
                if fc:
                    deltas.append(
                        ToolCallDelta(
                            index=tool_index,
                            id=getattr(fc, "id", None) or None,
                            name=fc.name or None,
                            arguments=json.dumps(dict(fc.args) if fc.args else {}),
                        )
                    )
                    tool_index += 1
            if deltas:
                yield StreamChunk(type="tool_call_delta", tool_call_deltas=deltas)

        yield StreamChunk(type="done", content="".join(content_parts))
