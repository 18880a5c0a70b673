"""Sessions router: CRUD over the session directory."""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from src.muse_agent import ConversationHub, SessionDirectory, SessionMetadataPatch
from src.muse_agent.config import API_RESPONSES
from src.muse_agent.models import CreateSessionRequest

from .chat import ok


router = APIRouter(prefix="/api/sessions", tags=["sessions"])


class TitleRequest(BaseModel):
    title: str = Field(..., min_length=1)


def _directory(request: Request) -> SessionDirectory:
    return request.app.state.directory


def _not_found() -> HTTPException:
    return HTTPException(status_code=404, detail=API_RESPONSES["SESSION_NOT_FOUND"])


@router.get("")
async def list_sessions(request: Request) -> dict[str, Any]:
    sessions = await _directory(request).list()
    return ok([s.to_api() for s in sessions])


@router.post("")
async def create_session(body: CreateSessionRequest, request: Request) -> dict[str, Any]:
    session = await _directory(request).add(
        str(uuid.uuid4()),
        title=body.title,
        initial_metadata={"status": body.status, "tags": body.tags, "summary": body.summary},
    )
    return ok(session.to_api())


@router.delete("")
async def clear_sessions(request: Request) -> dict[str, Any]:
    deleted = await _directory(request).clear_all()
    return ok({"deleted": deleted})


@router.get("/stats")
async def session_stats(request: Request) -> dict[str, Any]:
    return ok({"count": await _directory(request).count()})


@router.get("/{session_id}")
async def get_session(session_id: str, request: Request) -> dict[str, Any]:
    session = await _directory(request).get(session_id)
    if session is None:
        raise _not_found()
    return ok(session.to_api())


@router.put("/{session_id}/title")
async def update_title(session_id: str, body: TitleRequest, request: Request) -> dict[str, Any]:
    if not await _directory(request).update_title(session_id, body.title):
        raise _not_found()
    return ok()


@router.put("/{session_id}/metadata")
async def update_metadata(session_id: str, body: SessionMetadataPatch, request: Request) -> dict[str, Any]:
    if not await _directory(request).update_metadata(session_id, body):
        raise _not_found()
    return ok()


@router.delete("/{session_id}")
async def delete_session(session_id: str, request: Request) -> dict[str, Any]:
    """Remove a session from the directory and drop its conversation and stored document."""
    if not await _directory(request).remove(session_id):
        raise _not_found()
    hub: ConversationHub = request.app.state.hub
    await hub.discard(session_id)
    return ok()
