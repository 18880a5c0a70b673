"""Data models for conversations, documents, sessions and tools."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .config import DEFAULT_MODEL, DEFAULT_SESSION_TITLE


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


class CamelModel(BaseModel):
    """Base model that serializes with camelCase keys and accepts either form."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_api(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------


class ToolCall(CamelModel):
    """An executed tool call. `result` holds the tool output or {"error": ...}."""

    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    result: Any = None


class ChatMessage(CamelModel):
    """A single message in a conversation."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    role: Literal["user", "assistant", "system"]
    content: str = ""
    timestamp: int = Field(default_factory=now_ms)
    tool_calls: list[ToolCall] | None = None

    @classmethod
    def create(cls, role: str, content: str, tool_calls: list[ToolCall] | None = None) -> ChatMessage:
        return cls(role=role, content=content, tool_calls=tool_calls or None)


class ConversationState(CamelModel):
    """In-memory state owned by one conversation actor."""

    session_id: str
    messages: list[ChatMessage] = Field(default_factory=list)
    is_processing: bool = False
    streaming_message: str = ""
    model: str = DEFAULT_MODEL
    title: str = ""
    content: str = ""


class DocumentFields(CamelModel):
    title: str = ""
    content: str = ""


@dataclass
class ChatResult:
    """Final assistant reply produced by the orchestrator."""

    content: str
    tool_calls: list[ToolCall] | None = None


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

SessionStatus = Literal["draft", "published"]
MAX_TAG_LENGTH = 50


class SessionInfo(CamelModel):
    """Directory entry for one session; timestamps are epoch milliseconds."""

    id: str
    title: str = DEFAULT_SESSION_TITLE
    created_at: int = Field(default_factory=now_ms)
    last_active: int = Field(default_factory=now_ms)
    status: SessionStatus = "draft"
    tags: list[str] = Field(default_factory=list)
    summary: str = ""


def _validate_tags(tags: list[str] | None) -> list[str] | None:
    if tags is None:
        return None
    cleaned: list[str] = []
    for tag in tags:
        tag = tag.strip()
        if not tag:
            raise ValueError("tags must be non-empty strings")
        if len(tag) > MAX_TAG_LENGTH:
            raise ValueError(f"tags must be at most {MAX_TAG_LENGTH} characters")
        if tag not in cleaned:
            cleaned.append(tag)
    return cleaned


class SessionMetadataPatch(CamelModel):
    """Partial update for a SessionInfo. `id` and `createdAt` are accepted but never applied."""

    id: str | None = None
    created_at: int | None = None
    title: str | None = None
    last_active: int | None = None
    status: SessionStatus | None = None
    tags: list[str] | None = None
    summary: str | None = None

    @field_validator("tags")
    @classmethod
    def check_tags(cls, value: list[str] | None) -> list[str] | None:
        return _validate_tags(value)

    def changes(self) -> dict[str, Any]:
        """Fields explicitly set in the patch, by attribute name."""
        return self.model_dump(exclude_unset=True, exclude_none=True)


class CreateSessionRequest(CamelModel):
    title: str | None = None
    status: SessionStatus = "draft"
    tags: list[str] = Field(default_factory=list)
    summary: str = ""

    @field_validator("tags")
    @classmethod
    def check_tags(cls, value: list[str] | None) -> list[str] | None:
        return _validate_tags(value)


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


@dataclass
class ToolDef:
    """Tool definition for the orchestrator and LLM."""

    name: str
    description: str
    parameters: dict[str, Any]  # JSON Schema

    def to_tool_schema(self) -> dict[str, Any]:
        """Standard function-calling schema (OpenAI-style) for any LLM provider."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }
