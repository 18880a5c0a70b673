"""Run the FastAPI app for the InkSpill Muse backend."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI

from main_config import HOST, LOG_LEVEL, PORT
from src.llm_core import LLMProvider
from src.muse_agent import (
    ChatOrchestrator,
    ConversationHub,
    OrchestratorOptions,
    SessionDirectory,
    SQLiteStorage,
    get_default_registry,
)
from src.muse_agent.config import DIRECTORY_NAMESPACE, DOC_PERSIST_DELAY, STORE_DB_PATH, ensure_dirs
from src.routers import chat_router, register_exception_handlers, sessions_router

logger = logging.getLogger(__name__)


def create_app(
    storage: Any | None = None,
    provider: LLMProvider | None = None,
    persist_delay: float = DOC_PERSIST_DELAY,
) -> FastAPI:
    """
    Build the app. `storage` defaults to the SQLite store at STORE_DB_PATH and
    `provider` to the one named by each conversation's model string.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store = storage
        if store is None:
            ensure_dirs()
            store = SQLiteStorage(STORE_DB_PATH)
        directory = SessionDirectory(store.partition(DIRECTORY_NAMESPACE))
        await directory.start()
        orchestrator = ChatOrchestrator(get_default_registry(), OrchestratorOptions(llm_provider=provider))
        hub = ConversationHub(store, orchestrator, persist_delay=persist_delay)
        app.state.directory = directory
        app.state.hub = hub
        logger.info("Muse backend ready (model %s)", orchestrator.options.model)
        try:
            yield
        finally:
            await hub.close()
            store.close()
            logger.info("Muse backend stopped")

    app = FastAPI(title="InkSpill Muse", version="0.1.0", lifespan=lifespan)
    register_exception_handlers(app)
    app.include_router(chat_router)
    app.include_router(sessions_router)
    return app


logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=HOST,
        port=PORT,
        reload=True,
    )
