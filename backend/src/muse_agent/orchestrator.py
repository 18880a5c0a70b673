"""Chat orchestrator: one user message in, one assistant reply out, with tool round trips."""

from __future__ import annotations

import asyncio
import inspect
import itertools
import json
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from src.llm_core import LLMProvider, Message, ToolCallDelta, ToolCallRequest, get_provider_for_model

from .config import (
    APOLOGY_MESSAGE,
    DEFAULT_MODEL,
    FOLLOWUP_HISTORY_WINDOW,
    HISTORY_WINDOW,
    MAX_COMPLETION_TOKENS,
    TOOL_FOLLOWUP_FALLBACK,
)
from .errors import ToolExecutionError, TransportError
from .models import ChatMessage, ChatResult, ToolCall
from .system_prompt_loader import FOLLOWUP_PERSONA_PROMPT, build_system_prompt
from .tools import ToolRegistry

logger = logging.getLogger(__name__)

OnChunk = Callable[[str], Awaitable[None] | None]


@dataclass
class OrchestratorOptions:
    """Options for the chat orchestrator."""

    model: str = DEFAULT_MODEL
    history_window: int = HISTORY_WINDOW
    followup_history_window: int = FOLLOWUP_HISTORY_WINDOW
    max_tokens: int | None = MAX_COMPLETION_TOKENS
    llm_provider: LLMProvider | None = None


class ToolCallAccumulator:
    """Reassembles streamed tool-call fragments keyed by their stream index.

    Argument strings are concatenated verbatim in arrival order; they are only
    expected to be valid JSON once the stream has ended.
    """

    def __init__(self) -> None:
        self._calls: dict[int, ToolCallRequest] = {}
        self._batch = uuid.uuid4().hex[:8]
        self._counter = itertools.count()

    def _fallback_id(self) -> str:
        return f"call_{self._batch}_{next(self._counter)}"

    def add(self, delta: ToolCallDelta) -> None:
        existing = self._calls.get(delta.index)
        if existing is None:
            self._calls[delta.index] = ToolCallRequest(
                id=delta.id or self._fallback_id(),
                name=delta.name or "",
                arguments=delta.arguments or "",
            )
            return
        if delta.name and not existing.name:
            existing.name = delta.name
        if delta.arguments:
            existing.arguments += delta.arguments

    def calls(self) -> list[ToolCallRequest]:
        return [self._calls[i] for i in sorted(self._calls)]

    def __len__(self) -> int:
        return len(self._calls)


def _history_messages(history: list[ChatMessage], window: int) -> list[Message]:
    if window <= 0:
        return []
    return [Message(role=m.role, content=m.content) for m in history[-window:]]


def _parse_arguments(raw: str) -> dict[str, Any]:
    if not raw:
        return {}
    parsed = json.loads(raw)
    if not isinstance(parsed, dict):
        raise ValueError("tool arguments must be a JSON object")
    return parsed


class ChatOrchestrator:
    """Builds the conversation context, calls the model and resolves tool calls."""

    def __init__(self, registry: ToolRegistry, options: OrchestratorOptions | None = None) -> None:
        self._registry = registry
        self._options = options or OrchestratorOptions()

    @property
    def options(self) -> OrchestratorOptions:
        return self._options

    def _resolve_provider(self, model: str | None) -> tuple[LLMProvider, str]:
        model = model or self._options.model
        if self._options.llm_provider is not None:
            return self._options.llm_provider, model
        return get_provider_for_model(model)

    def build_conversation_messages(
        self,
        message: str,
        history: list[ChatMessage],
        title: str | None,
        content: str | None,
    ) -> list[Message]:
        """System persona with document context, recent history, then the new user message."""
        return [
            Message(role="system", content=build_system_prompt(title, content)),
            *_history_messages(history, self._options.history_window),
            Message(role="user", content=message),
        ]

    async def process(
        self,
        message: str,
        history: list[ChatMessage],
        title: str | None = None,
        content: str | None = None,
        on_chunk: OnChunk | None = None,
        model: str | None = None,
    ) -> ChatResult:
        """
        Turn one user message into a final assistant reply.

        With `on_chunk`, the first completion is streamed and every text fragment
        is passed to `on_chunk` as it arrives. If the model requests tools, they
        are executed and a second, non-streamed completion narrates the results.
        """
        messages = self.build_conversation_messages(message, history, title, content)
        tools = await self._registry.get_definitions()
        provider, model_name = self._resolve_provider(model)

        if on_chunk is not None:
            streamed_text, tool_requests = await self._stream_completion(
                provider, model_name, messages, tools, on_chunk
            )
            if not tool_requests:
                return ChatResult(content=streamed_text)
        else:
            try:
                text, tool_requests = await provider.chat(
                    messages,
                    model=model_name,
                    tools=tools or None,
                    max_tokens=self._options.max_tokens,
                )
            except Exception as e:
                logger.exception("Completion request failed")
                raise TransportError("Completion request failed", cause=e) from e
            if not tool_requests:
                return ChatResult(content=text or APOLOGY_MESSAGE)

        executed = await self.execute_tool_calls(tool_requests)
        final = await self.generate_tool_response(
            provider, model_name, message, history, tool_requests, executed
        )
        return ChatResult(content=final, tool_calls=executed)

    async def _stream_completion(
        self,
        provider: LLMProvider,
        model_name: str,
        messages: list[Message],
        tools: list[dict[str, Any]],
        on_chunk: OnChunk,
    ) -> tuple[str, list[ToolCallRequest]]:
        content_parts: list[str] = []
        accumulator = ToolCallAccumulator()
        try:
            async for chunk in provider.stream_chat(
                messages,
                model=model_name,
                tools=tools or None,
                max_tokens=self._options.max_tokens,
            ):
                if chunk.type == "text_delta" and chunk.content:
                    content_parts.append(chunk.content)
                    delivered = on_chunk(chunk.content)
                    if inspect.isawaitable(delivered):
                        await delivered
                for delta in chunk.tool_call_deltas:
                    accumulator.add(delta)
        except Exception as e:
            logger.exception("Stream processing error")
            raise TransportError("Stream processing failed", cause=e) from e
        return "".join(content_parts), accumulator.calls()

    async def execute_tool_calls(self, requests: list[ToolCallRequest]) -> list[ToolCall]:
        """Run every requested tool concurrently; one failure never aborts the batch."""
        return list(await asyncio.gather(*(self._execute_one(req) for req in requests)))

    async def _execute_one(self, request: ToolCallRequest) -> ToolCall:
        arguments: dict[str, Any] = {}
        try:
            arguments = _parse_arguments(request.arguments)
            result = await self._registry.execute(request.name, arguments)
        except Exception as e:
            reason = e.message if isinstance(e, ToolExecutionError) else str(e) or "Unknown error"
            logger.warning("Tool execution failed for %s: %s", request.name, reason)
            return ToolCall(
                id=request.id,
                name=request.name,
                arguments=arguments,
                result={"error": f"Failed to execute {request.name}: {reason}"},
            )
        return ToolCall(id=request.id, name=request.name, arguments=arguments, result=result)

    def build_followup_messages(
        self,
        user_message: str,
        history: list[ChatMessage],
        requests: list[ToolCallRequest],
        results: list[ToolCall],
    ) -> list[Message]:
        """Persona, short history, the user message, the tool-call turn and one result per call id."""
        messages = [
            Message(role="system", content=FOLLOWUP_PERSONA_PROMPT),
            *_history_messages(history, self._options.followup_history_window),
            Message(role="user", content=user_message),
            Message.tool_call_turn([r.to_dict() for r in requests]),
        ]
        for index, result in enumerate(results):
            call_id = requests[index].id if index < len(requests) else result.id
            messages.append(Message.tool_result(call_id, result.name, result.result))
        return messages

    async def generate_tool_response(
        self,
        provider: LLMProvider,
        model_name: str,
        user_message: str,
        history: list[ChatMessage],
        requests: list[ToolCallRequest],
        results: list[ToolCall],
    ) -> str:
        messages = self.build_followup_messages(user_message, history, requests, results)
        try:
            text, _ = await provider.chat(
                messages,
                model=model_name,
                max_tokens=self._options.max_tokens,
            )
        except Exception as e:
            logger.exception("Tool follow-up completion failed")
            raise TransportError("Tool follow-up completion failed", cause=e) from e
        return text or TOOL_FOLLOWUP_FALLBACK
