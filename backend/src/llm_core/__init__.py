"""Completion client: provider-neutral messages, stream chunks and provider resolution."""

from .config import DEFAULT_LLM_CORE_CONFIG, LLMCoreConfig
from .core import get_provider_for_model, split_model
from .models import Message
from .providers import LLMProvider, StreamChunk, ToolCallDelta, ToolCallRequest

__all__ = [
    "Message",
    "LLMCoreConfig",
    "DEFAULT_LLM_CORE_CONFIG",
    "LLMProvider",
    "StreamChunk",
    "ToolCallDelta",
    "ToolCallRequest",
    "get_provider_for_model",
    "split_model",
]
