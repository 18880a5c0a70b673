"""Abstract LLM provider interface for the completion client."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from ..models import Message


@dataclass
class ToolCallRequest:
    """A complete tool call requested by the model; `arguments` is the raw JSON string."""

    id: str
    name: str
    arguments: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "arguments": self.arguments}


@dataclass
class ToolCallDelta:
    """A fragment of a streamed tool call.

    `index` is the tool call's position in the stream. `id` and `name` usually
    arrive only on the first fragment; `arguments` is a piece of the JSON string.
    """

    index: int
    id: str | None = None
    name: str | None = None
    arguments: str = ""


@dataclass
class StreamChunk:
    """One chunk from an LLM stream."""

    type: str  # "text_delta" | "tool_call_delta" | "done"
    content: str = ""
    tool_call_deltas: list[ToolCallDelta] = field(default_factory=list)


class LLMProvider(ABC):
    """
    Abstract LLM provider. Implement this to plug in any backend (OpenAI, Ollama, Gemini).

    The orchestrator only depends on this interface.
    """

    @abstractmethod
    async def chat(
        self,
        messages: list[Message],
        *,
        model: str | None = None,
        tools: list[dict[str, Any]] | None = None,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> tuple[str, list[ToolCallRequest]]:
        """Non-streaming chat. Returns (content, tool_calls); tool selection is automatic when tools are given."""
        ...

    @abstractmethod
    def stream_chat(
        self,
        messages: list[Message],
        *,
        model: str | None = None,
        tools: list[dict[str, Any]] | None = None,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> AsyncIterator[StreamChunk]:
        """Stream chat; yields text deltas and tool-call deltas in arrival order, then a done chunk."""
        ...
