from __future__ import annotations

from .config import DEFAULT_LLM_CORE_CONFIG, LLMCoreConfig
from .providers import GeminiProvider, LLMProvider, OllamaProvider, OpenAIProvider

PROVIDER_ALIASES = {"google": "gemini"}

_provider_cache: dict[str, LLMProvider] = {}


def split_model(model: str | None, config: LLMCoreConfig | None = None) -> tuple[str, str]:
    """
    Split a model string into (provider name, model name).

    "openai:gpt-4.1-nano" -> ("openai", "gpt-4.1-nano"); a name without a
    colon is an Ollama model. An empty model falls back to the configured one.
    """
    cfg = config or DEFAULT_LLM_CORE_CONFIG
    effective = (model or "").strip() or cfg.model
    if ":" not in effective:
        return "ollama", effective
    provider_name, raw_model = effective.split(":", 1)
    provider_name = provider_name.strip().lower()
    return PROVIDER_ALIASES.get(provider_name, provider_name), raw_model.strip() or cfg.model


def _build_provider(provider_name: str, model_name: str, cfg: LLMCoreConfig) -> LLMProvider:
    if provider_name == "openai":
        return OpenAIProvider(default_model=model_name, base_url=cfg.openai_base_url)
    if provider_name == "gemini":
        return GeminiProvider(default_model=model_name)
    # Unknown providers go to the local Ollama server.
    return OllamaProvider(default_model=model_name, base_url=cfg.ollama_host)


def get_provider_for_model(
    model: str | None,
    config: LLMCoreConfig | None = None,
) -> tuple[LLMProvider, str]:
    """Resolve the (cached) provider and the provider-side model name for a model string."""
    cfg = config or DEFAULT_LLM_CORE_CONFIG
    provider_name, model_name = split_model(model, cfg)
    provider = _provider_cache.get(provider_name)
    if provider is None:
        provider = _build_provider(provider_name, model_name, cfg)
        _provider_cache[provider_name] = provider
    return provider, model_name
