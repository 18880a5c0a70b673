"""Muse agent: per-session conversation actors, session directory and chat orchestration."""

from .actor import ChunkChannel, ConversationActor, ConversationHub
from .directory import SessionDirectory
from .errors import MigrationError, MuseError, ToolExecutionError, TransportError, ValidationError
from .models import (
    ChatMessage,
    ConversationState,
    DocumentFields,
    SessionInfo,
    SessionMetadataPatch,
    ToolCall,
)
from .orchestrator import ChatOrchestrator, OrchestratorOptions, ToolCallAccumulator
from .storage import InMemoryStorage, InMemoryStore, KeyValueStore, SQLiteStorage
from .tools import BaseTool, ToolRegistry, get_default_registry

__all__ = [
    "ChunkChannel",
    "ConversationActor",
    "ConversationHub",
    "SessionDirectory",
    "MuseError",
    "ValidationError",
    "ToolExecutionError",
    "TransportError",
    "MigrationError",
    "ChatMessage",
    "ConversationState",
    "DocumentFields",
    "SessionInfo",
    "SessionMetadataPatch",
    "ToolCall",
    "ChatOrchestrator",
    "OrchestratorOptions",
    "ToolCallAccumulator",
    "InMemoryStorage",
    "InMemoryStore",
    "KeyValueStore",
    "SQLiteStorage",
    "BaseTool",
    "ToolRegistry",
    "get_default_registry",
]
