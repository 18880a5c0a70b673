"""LLM providers: pluggable completion backends."""

from .base import LLMProvider, StreamChunk, ToolCallDelta, ToolCallRequest
from .gemini_provider import GeminiProvider
from .ollama import OllamaProvider
from .openai_provider import OpenAIProvider

__all__ = [
    "LLMProvider",
    "StreamChunk",
    "ToolCallDelta",
    "ToolCallRequest",
    "OllamaProvider",
    "OpenAIProvider",
    "GeminiProvider",
]
