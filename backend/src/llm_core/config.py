from __future__ import annotations

import os
from dataclasses import dataclass, field


def _env(name: str) -> str | None:
    return os.getenv(name) or None


@dataclass
class LLMCoreConfig:
    """Default `provider:model` string and provider endpoints, read from the environment."""

    model: str = field(default_factory=lambda: os.getenv("MUSE_DEFAULT_MODEL", "openai:gpt-4.1-nano"))
    openai_base_url: str | None = field(default_factory=lambda: _env("OPENAI_BASE_URL"))
    ollama_host: str | None = field(default_factory=lambda: _env("OLLAMA_HOST"))


DEFAULT_LLM_CORE_CONFIG = LLMCoreConfig()
