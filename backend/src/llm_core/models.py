from __future__ import annotations

import json
from typing import Any, Literal

from pydantic import BaseModel


class Message(BaseModel):
    """
    One message sent to a completion API.

    An assistant tool-call turn has `content=None` and `tool_calls` entries of
    the form {"id", "name", "arguments"} with `arguments` as the raw JSON
    string. A tool result answers one of those ids through `tool_call_id`.
    """

    role: Literal["system", "user", "assistant", "tool"]
    content: str | None = ""
    tool_calls: list[dict[str, Any]] | None = None
    tool_call_id: str | None = None
    name: str | None = None

    @classmethod
    def tool_call_turn(cls, tool_calls: list[dict[str, Any]]) -> Message:
        return cls(role="assistant", content=None, tool_calls=tool_calls)

    @classmethod
    def tool_result(cls, tool_call_id: str, name: str, result: Any) -> Message:
        return cls(role="tool", content=json.dumps(result, default=str), tool_call_id=tool_call_id, name=name)


__all__ = ["Message"]
