"""Utilities for loading and rendering the Muse system prompts."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from .config import MUSE_SYSTEM_PROMPT_PATH

FALLBACK_PERSONA_TEMPLATE = (
    "You are \"The Muse\", the writing companion inside InkSpill CMS. Speak warmly and keep "
    "advice practical, with 3 to 7 concrete suggestions.\n\n"
    "CURRENT SKETCH CONTEXT (your reference, not to be repeated verbatim unless asked):\n"
    "Title: {title}\n"
    "Content: {content}"
)

FOLLOWUP_PERSONA_PROMPT = (
    "You are The Muse of InkSpill CMS. Speak warmly and clearly. Weave tool results into "
    "actionable guidance with a touch of poetic ink-and-parchment metaphor."
)

_cached_template: Optional[str] = None


def _read_file(path: Path) -> str:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return ""
    except OSError:
        return ""
    return text.strip()


def get_persona_template() -> str:
    """Return the persona template, cached after first read.

    Falls back to a built-in template if the prompt file is missing or unreadable.
    """
    global _cached_template
    if _cached_template is None:
        _cached_template = _read_file(MUSE_SYSTEM_PROMPT_PATH) or FALLBACK_PERSONA_TEMPLATE
    return _cached_template


def build_system_prompt(title: str | None, content: str | None) -> str:
    """Render the persona prompt with the current document as read-only context."""
    return get_persona_template().format(
        title=title or "Untitled",
        content=content or "Empty Canvas",
    )
