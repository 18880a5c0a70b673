"""Muse agent configuration: paths, storage keys and defaults."""

from __future__ import annotations

import os
from pathlib import Path

from main_config import (
    DB_DIR as _DB_DIR,
    MUSE_SYSTEM_PROMPT_PATH as _MUSE_SYSTEM_PROMPT_PATH,
    PROMPTS_DIR as _PROMPTS_DIR,
    STORE_DB_PATH as _STORE_DB_PATH,
)

from src.llm_core import DEFAULT_LLM_CORE_CONFIG

# Path objects for use in this package (main_config uses os.path strings)
DB_DIR = Path(_DB_DIR)
STORE_DB_PATH = Path(_STORE_DB_PATH)
PROMPTS_DIR = Path(_PROMPTS_DIR)
MUSE_SYSTEM_PROMPT_PATH = Path(_MUSE_SYSTEM_PROMPT_PATH)

DEFAULT_MODEL = DEFAULT_LLM_CORE_CONFIG.model
HISTORY_WINDOW = 10
FOLLOWUP_HISTORY_WINDOW = 3
MAX_COMPLETION_TOKENS = 16000

# Seconds of quiet before a document edit is written to storage.
DOC_PERSIST_DELAY = float(os.getenv("MUSE_DOC_PERSIST_DELAY", "0.7"))

DEFAULT_SESSION_TITLE = "Untitled Sketch"

# Storage keys
DOC_TITLE_KEY = "document_title"
DOC_CONTENT_KEY = "document_content"
LEGACY_SESSIONS_KEY = "sessions"
MIGRATION_MARKER_KEY = "sessions_migrated_v2"
SESSION_PREFIX = "session:"
DIRECTORY_NAMESPACE = "directory"
CONVERSATION_NAMESPACE_PREFIX = "conversation:"

STREAM_ERROR_MESSAGE = "Error processing stream."
APOLOGY_MESSAGE = "I apologize, but I encountered an issue."
TOOL_FOLLOWUP_FALLBACK = "Tool results processed successfully."

API_RESPONSES = {
    "MISSING_MESSAGE": "Message is required",
    "NOT_FOUND": "Not found",
    "SESSION_NOT_FOUND": "Session not found",
    "INTERNAL_ERROR": "Internal server error",
    "PROCESSING_ERROR": "Failed to process message",
}


def ensure_dirs() -> None:
    """Create the db directory if it does not exist."""
    DB_DIR.mkdir(parents=True, exist_ok=True)
    STORE_DB_PATH.parent.mkdir(parents=True, exist_ok=True)
