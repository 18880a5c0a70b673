"""Chat router: per-session conversation endpoints backed by conversation actors."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from src.muse_agent import ConversationActor, ConversationHub, SessionDirectory


router = APIRouter(prefix="/api/chat/{session_id}", tags=["chat"])


class ChatRequest(BaseModel):
    """Request body for POST /chat."""

    message: str | None = Field(None, description="User message")
    model: str | None = Field(
        None,
        description=(
            "LLM model in 'provider:model' format (e.g. 'openai:gpt-4.1-nano', "
            "'gemini:gemini-2.5-flash'). A bare name is treated as an Ollama model."
        ),
    )
    stream: bool = Field(False, description="Stream the reply as chunked text")


class ModelRequest(BaseModel):
    model: str = Field(..., min_length=1)


class DocumentRequest(BaseModel):
    title: str | None = None
    content: str | None = None


def ok(data: Any = None) -> dict[str, Any]:
    if data is None:
        return {"success": True}
    return {"success": True, "data": data}


async def get_actor(session_id: str, request: Request) -> AsyncIterator[ConversationActor]:
    hub: ConversationHub = request.app.state.hub
    async with hub.checkout(session_id) as actor:
        yield actor


@router.get("/messages")
async def get_messages(actor: ConversationActor = Depends(get_actor)) -> dict[str, Any]:
    return ok(actor.get_state().to_api())


@router.post("/chat")
async def chat(
    session_id: str,
    body: ChatRequest,
    request: Request,
    actor: ConversationActor = Depends(get_actor),
):
    """Run one chat turn. With `stream`, the reply is sent as chunked plain text as it is generated."""
    result = await actor.send_message(body.message or "", model=body.model, stream=body.stream)
    directory: SessionDirectory = request.app.state.directory
    await directory.update_activity(session_id)
    if body.stream:
        return StreamingResponse(result, media_type="text/plain; charset=utf-8")
    return ok(actor.get_state().to_api())


@router.delete("/clear")
async def clear(actor: ConversationActor = Depends(get_actor)) -> dict[str, Any]:
    state = await actor.clear_messages()
    return ok(state.to_api())


@router.post("/model")
async def set_model(body: ModelRequest, actor: ConversationActor = Depends(get_actor)) -> dict[str, Any]:
    state = await actor.set_model(body.model)
    return ok(state.to_api())


@router.get("/document")
async def get_document(actor: ConversationActor = Depends(get_actor)) -> dict[str, Any]:
    return ok(actor.get_document().to_api())


@router.post("/document")
async def set_document(body: DocumentRequest, actor: ConversationActor = Depends(get_actor)) -> dict[str, Any]:
    await actor.set_document(title=body.title, content=body.content)
    return ok()
