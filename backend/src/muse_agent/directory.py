"""Session directory: the set of sessions, stored one key per session.

Older deployments kept every session in a single `sessions` blob. The first
access on a new instance migrates that blob to per-session keys; every
operation waits for that migration, and concurrent callers share one
migration task instead of racing.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from .config import (
    DEFAULT_SESSION_TITLE,
    LEGACY_SESSIONS_KEY,
    MIGRATION_MARKER_KEY,
    SESSION_PREFIX,
)
from .errors import MigrationError
from .models import SessionInfo, SessionMetadataPatch, now_ms
from .storage import KeyValueStore

logger = logging.getLogger(__name__)


def session_key(session_id: str) -> str:
    return f"{SESSION_PREFIX}{session_id}"


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def coerce_legacy_sessions(value: Any) -> dict[str, SessionInfo] | None:
    """Turn a legacy sessions blob into SessionInfo records.

    Missing or mistyped fields get safe defaults. Returns None when the blob is
    not a mapping or holds no usable entry.
    """
    if not isinstance(value, dict):
        return None
    now = now_ms()
    out: dict[str, SessionInfo] = {}
    for key, raw in value.items():
        if not isinstance(raw, dict):
            continue
        created_at = int(raw["createdAt"]) if _is_number(raw.get("createdAt")) else now
        tags = raw.get("tags")
        out[str(key)] = SessionInfo(
            id=raw["id"] if isinstance(raw.get("id"), str) else str(key),
            title=raw["title"] if isinstance(raw.get("title"), str) else DEFAULT_SESSION_TITLE,
            created_at=created_at,
            last_active=int(raw["lastActive"]) if _is_number(raw.get("lastActive")) else created_at,
            status="published" if raw.get("status") == "published" else "draft",
            tags=[t for t in tags if isinstance(t, str)] if isinstance(tags, list) else [],
            summary=raw["summary"] if isinstance(raw.get("summary"), str) else "",
        )
    return out or None


class SessionDirectory:
    """Single source of truth for sessions, backed by one storage partition."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store
        self._migration: asyncio.Task[bool] | None = None
        self._lock = asyncio.Lock()

    async def start(self) -> None:
        """Run the migration eagerly instead of on first access."""
        await self._ensure_migrated()

    # ------------------------------------------------------------------
    # Migration
    # ------------------------------------------------------------------

    async def _ensure_migrated(self) -> None:
        if self._migration is None:
            self._migration = asyncio.get_running_loop().create_task(self._migrate_legacy_if_needed())
        task = self._migration
        migrated = await asyncio.shield(task)
        if not migrated and self._migration is task:
            # Marker is still unset; the next access tries again.
            self._migration = None

    async def _migrate_legacy_if_needed(self) -> bool:
        """Returns True once the marker is set, False if migration failed."""
        try:
            await self._migrate_legacy()
        except MigrationError as e:
            logger.error("%s: %s", e.message, e.cause, exc_info=e.cause)
            return False
        return True

    async def _migrate_legacy(self) -> None:
        # Holds the operation lock so a retry never interleaves with callers
        # that went ahead after an earlier failure.
        async with self._lock:
            try:
                if await self._store.get(MIGRATION_MARKER_KEY):
                    return
                legacy_raw = await self._store.get(LEGACY_SESSIONS_KEY)
                legacy = coerce_legacy_sessions(legacy_raw)
                if legacy:
                    for session_id, session in legacy.items():
                        await self._put(session_id, session)
                    await self._store.delete(LEGACY_SESSIONS_KEY)
                    logger.info("Migrated %d legacy sessions to per-session keys", len(legacy))
                elif legacy_raw is not None:
                    logger.warning("Legacy sessions blob is malformed; nothing to migrate")
                await self._store.put(MIGRATION_MARKER_KEY, True)
            except Exception as e:
                raise MigrationError("Failed to migrate legacy sessions", cause=e) from e

    # ------------------------------------------------------------------
    # Storage helpers
    # ------------------------------------------------------------------

    async def _put(self, session_id: str, session: SessionInfo) -> None:
        await self._store.put(session_key(session_id), session.to_api())

    async def _load(self, session_id: str) -> SessionInfo | None:
        raw = await self._store.get(session_key(session_id))
        return self._parse(raw)

    @staticmethod
    def _parse(raw: Any) -> SessionInfo | None:
        if not isinstance(raw, dict):
            return None
        try:
            return SessionInfo.model_validate(raw)
        except PydanticValidationError:
            logger.warning("Skipping unreadable session record %r", raw.get("id"))
            return None

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def add(
        self,
        session_id: str,
        title: str | None = None,
        initial_metadata: dict[str, Any] | None = None,
    ) -> SessionInfo:
        await self._ensure_migrated()
        async with self._lock:
            now = now_ms()
            fields: dict[str, Any] = {
                "id": session_id,
                "title": title or DEFAULT_SESSION_TITLE,
                "created_at": now,
                "last_active": now,
                "status": "draft",
                "tags": [],
                "summary": "",
            }
            fields.update(initial_metadata or {})
            session = SessionInfo.model_validate(fields)
            await self._put(session_id, session)
            return session

    async def remove(self, session_id: str) -> bool:
        await self._ensure_migrated()
        async with self._lock:
            return await self._store.delete(session_key(session_id))

    async def update_activity(self, session_id: str) -> None:
        await self._ensure_migrated()
        async with self._lock:
            session = await self._load(session_id)
            if session is None:
                return
            await self._put(session_id, session.model_copy(update={"last_active": now_ms()}))

    async def update_title(self, session_id: str, title: str) -> bool:
        await self._ensure_migrated()
        async with self._lock:
            session = await self._load(session_id)
            if session is None:
                return False
            await self._put(session_id, session.model_copy(update={"title": title}))
            return True

    async def update_metadata(
        self,
        session_id: str,
        metadata: SessionMetadataPatch | dict[str, Any],
    ) -> bool:
        """Merge a partial patch; the stored id and created_at always win."""
        await self._ensure_migrated()
        patch = metadata if isinstance(metadata, SessionMetadataPatch) else SessionMetadataPatch.model_validate(metadata)
        async with self._lock:
            session = await self._load(session_id)
            if session is None:
                return False
            changes = patch.changes()
            changes["id"] = session.id
            changes["created_at"] = session.created_at
            merged = SessionInfo.model_validate({**session.model_dump(), **changes})
            await self._put(session_id, merged)
            return True

    async def list(self) -> list[SessionInfo]:
        """All sessions, most recently active first."""
        await self._ensure_migrated()
        async with self._lock:
            listed = await self._store.list(SESSION_PREFIX)
        sessions = [s for s in (self._parse(raw) for raw in listed.values()) if s is not None]
        return sorted(sessions, key=lambda s: s.last_active, reverse=True)

    async def count(self) -> int:
        """Number of readable sessions, consistent with `list`."""
        return len(await self.list())

    async def get(self, session_id: str) -> SessionInfo | None:
        await self._ensure_migrated()
        async with self._lock:
            return await self._load(session_id)

    async def clear_all(self) -> int:
        await self._ensure_migrated()
        async with self._lock:
            listed = await self._store.list(SESSION_PREFIX)
            if not listed:
                return 0
            return await self._store.delete_many(list(listed))
