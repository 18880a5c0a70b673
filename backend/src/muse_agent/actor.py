"""Per-session conversation actors.

A `ConversationActor` owns one session's conversation and document. Chat turns
are serialized by a per-actor lock; every other operation is a synchronous
state change and so is atomic on the event loop. Document edits reach durable
storage through a debounced write that is skipped when a newer edit exists.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Coroutine
from contextlib import asynccontextmanager
from typing import Any

from .config import (
    API_RESPONSES,
    CONVERSATION_NAMESPACE_PREFIX,
    DOC_CONTENT_KEY,
    DOC_PERSIST_DELAY,
    DOC_TITLE_KEY,
    HISTORY_WINDOW,
    STREAM_ERROR_MESSAGE,
)
from .errors import TransportError, ValidationError
from .models import ChatMessage, ConversationState, DocumentFields
from .orchestrator import ChatOrchestrator
from .storage import KeyValueStore

logger = logging.getLogger(__name__)


class ChunkChannel:
    """Single-consumer channel of text chunks with a closed terminal state.

    Writes never block and are dropped once the channel is closed, so the
    producing turn does not depend on anyone reading.
    """

    _CLOSED = object()

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, chunk: str) -> None:
        if self._closed or not chunk:
            return
        self._queue.put_nowait(chunk)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(self._CLOSED)

    def __aiter__(self) -> ChunkChannel:
        return self

    async def __anext__(self) -> str:
        item = await self._queue.get()
        if item is self._CLOSED:
            # Leave the marker for any later reads.
            self._queue.put_nowait(self._CLOSED)
            raise StopAsyncIteration
        return item

    async def read_all(self) -> str:
        return "".join([chunk async for chunk in self])


class ConversationActor:
    """Single-writer owner of one session's ConversationState."""

    def __init__(
        self,
        session_id: str,
        store: KeyValueStore,
        orchestrator: ChatOrchestrator,
        *,
        persist_delay: float = DOC_PERSIST_DELAY,
        history_window: int = HISTORY_WINDOW,
    ) -> None:
        self._store = store
        self._orchestrator = orchestrator
        self._persist_delay = persist_delay
        self._history_window = history_window
        self._state = ConversationState(session_id=session_id, model=orchestrator.options.model)
        self._turn_lock = asyncio.Lock()
        self._doc_seq = 0
        self._tasks: set[asyncio.Task[Any]] = set()
        self._discarded = False
        self._unsaved_document = False

    @property
    def session_id(self) -> str:
        return self._state.session_id

    @property
    def is_idle(self) -> bool:
        """True when nothing in memory differs from what storage holds."""
        state = self._state
        return (
            not state.messages
            and not state.is_processing
            and state.model == self._orchestrator.options.model
            and not self._unsaved_document
            and not self._tasks
            and not self._turn_lock.locked()
        )

    def discard(self) -> None:
        """Stop durable writes; the session's stored fields are being deleted."""
        self._discarded = True

    async def start(self) -> None:
        """Load persisted document fields; state changes only if something was stored."""
        try:
            stored_title, stored_content = await asyncio.gather(
                self._store.get(DOC_TITLE_KEY),
                self._store.get(DOC_CONTENT_KEY),
            )
        except Exception:
            logger.exception("Failed to load persisted document fields for session %s", self.session_id)
            return
        next_title = stored_title if isinstance(stored_title, str) else self._state.title
        next_content = stored_content if isinstance(stored_content, str) else self._state.content
        if next_title != self._state.title or next_content != self._state.content:
            self._state.title = next_title
            self._state.content = next_content

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_state(self) -> ConversationState:
        return self._state.model_copy(deep=True)

    def get_document(self) -> DocumentFields:
        return DocumentFields(title=self._state.title, content=self._state.content)

    # ------------------------------------------------------------------
    # Conversation
    # ------------------------------------------------------------------

    async def send_message(
        self,
        text: str,
        model: str | None = None,
        stream: bool = False,
    ) -> ChatMessage | ChunkChannel:
        """
        Run one chat turn.

        Returns the assistant message, or with `stream=True` a ChunkChannel fed
        by a background task that finishes the turn whether or not it is read.
        A turn waits for any turn already in flight on this actor.
        """
        if not text or not text.strip():
            raise ValidationError(API_RESPONSES["MISSING_MESSAGE"])
        message = text.strip()

        await self._turn_lock.acquire()
        if model and model != self._state.model:
            self._state.model = model
        history = self._recent_history()
        self._state.messages.append(ChatMessage.create("user", message))
        self._state.is_processing = True

        if stream:
            channel = ChunkChannel()
            self._spawn(self._run_streaming_turn(message, history, channel))
            return channel

        try:
            result = await self._orchestrator.process(
                message,
                history,
                self._state.title,
                self._state.content,
                model=self._state.model,
            )
            assistant = ChatMessage.create("assistant", result.content, result.tool_calls)
            self._state.messages.append(assistant)
            return assistant.model_copy(deep=True)
        except Exception as e:
            logger.exception("Chat handling error for session %s", self.session_id)
            raise TransportError(API_RESPONSES["PROCESSING_ERROR"], cause=e) from e
        finally:
            self._state.is_processing = False
            self._turn_lock.release()

    async def _run_streaming_turn(
        self,
        message: str,
        history: list[ChatMessage],
        channel: ChunkChannel,
    ) -> None:
        """Background half of a streaming turn. Caller holds the turn lock; released here."""

        def on_chunk(chunk: str) -> None:
            self._state.streaming_message += chunk
            channel.write(chunk)

        try:
            self._state.streaming_message = ""
            result = await self._orchestrator.process(
                message,
                history,
                self._state.title,
                self._state.content,
                on_chunk=on_chunk,
                model=self._state.model,
            )
            self._state.messages.append(ChatMessage.create("assistant", result.content, result.tool_calls))
        except Exception:
            logger.exception("Stream processing error for session %s", self.session_id)
            channel.write(STREAM_ERROR_MESSAGE)
        finally:
            self._state.streaming_message = ""
            self._state.is_processing = False
            channel.close()
            self._turn_lock.release()

    def _recent_history(self) -> list[ChatMessage]:
        if self._history_window <= 0:
            return []
        return list(self._state.messages[-self._history_window:])

    async def clear_messages(self) -> ConversationState:
        self._state.messages = []
        return self.get_state()

    async def set_model(self, model: str) -> ConversationState:
        self._state.model = model
        return self.get_state()

    # ------------------------------------------------------------------
    # Document
    # ------------------------------------------------------------------

    async def set_document(self, title: str | None = None, content: str | None = None) -> DocumentFields:
        """Update the document now and schedule a debounced durable write."""
        if title is not None:
            self._state.title = title
        if content is not None:
            self._state.content = content
        self._unsaved_document = True
        self._doc_seq += 1
        self._spawn(self._persist_document_later(self._doc_seq))
        return self.get_document()

    async def _persist_document_later(self, seq: int) -> None:
        await asyncio.sleep(self._persist_delay)
        if seq != self._doc_seq:
            # A newer edit scheduled its own write.
            return
        if self._discarded:
            return
        title, content = self._state.title, self._state.content
        try:
            await self._store.put(DOC_TITLE_KEY, title)
            await self._store.put(DOC_CONTENT_KEY, content)
        except Exception:
            logger.exception("Failed to persist document fields for session %s", self.session_id)
        else:
            if seq == self._doc_seq:
                self._unsaved_document = False

    # ------------------------------------------------------------------
    # Background tasks
    # ------------------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task[None]:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait for in-flight streaming turns and pending document writes."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class ConversationHub:
    """Creates one actor per session on first use, each bound to its own storage partition.

    Actors reached through `checkout` are dropped again once no request uses
    them and they hold nothing beyond their stored document.
    """

    def __init__(
        self,
        storage: Any,
        orchestrator: ChatOrchestrator,
        *,
        persist_delay: float = DOC_PERSIST_DELAY,
    ) -> None:
        self._storage = storage
        self._orchestrator = orchestrator
        self._persist_delay = persist_delay
        self._actors: dict[str, ConversationActor] = {}
        self._starting: dict[str, asyncio.Task[ConversationActor]] = {}
        self._users: dict[str, int] = {}

    def _partition(self, session_id: str) -> KeyValueStore:
        return self._storage.partition(f"{CONVERSATION_NAMESPACE_PREFIX}{session_id}")

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._actors

    async def get(self, session_id: str) -> ConversationActor:
        actor = self._actors.get(session_id)
        if actor is not None:
            return actor
        task = self._starting.get(session_id)
        if task is None:
            task = asyncio.get_running_loop().create_task(self._create(session_id))
            self._starting[session_id] = task
        return await asyncio.shield(task)

    async def _create(self, session_id: str) -> ConversationActor:
        try:
            actor = ConversationActor(
                session_id,
                self._partition(session_id),
                self._orchestrator,
                persist_delay=self._persist_delay,
            )
            await actor.start()
            self._actors[session_id] = actor
            return actor
        finally:
            self._starting.pop(session_id, None)

    @asynccontextmanager
    async def checkout(self, session_id: str) -> AsyncIterator[ConversationActor]:
        """Use a session's actor for the length of one request."""
        actor = await self.get(session_id)
        while self._actors.get(session_id) is not actor:
            # Released while this caller was resuming.
            actor = await self.get(session_id)
        self._users[session_id] = self._users.get(session_id, 0) + 1
        try:
            yield actor
        finally:
            remaining = self._users[session_id] - 1
            if remaining:
                self._users[session_id] = remaining
            else:
                del self._users[session_id]
                self._release_if_idle(session_id, actor)

    def _release_if_idle(self, session_id: str, actor: ConversationActor) -> None:
        if actor.is_idle and self._actors.get(session_id) is actor:
            del self._actors[session_id]
            logger.debug("Released idle actor for session %s", session_id)

    async def discard(self, session_id: str) -> None:
        """Drop a session's actor after its pending work and delete its stored document."""
        actor = self._actors.pop(session_id, None)
        if actor is not None:
            actor.discard()
            await actor.wait_idle()
        await self._partition(session_id).clear()

    async def close(self) -> None:
        await asyncio.gather(*(a.wait_idle() for a in list(self._actors.values())))
