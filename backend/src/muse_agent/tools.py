"""Tool protocol, registry and the built-in editorial tools."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import Any

from .errors import ToolExecutionError
from .models import ToolDef


class BaseTool(ABC):
    """Base class for Muse tools."""

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        ...

    @property
    @abstractmethod
    def parameters(self) -> dict[str, Any]:
        """JSON Schema for parameters."""
        ...

    @abstractmethod
    async def execute(self, params: dict[str, Any]) -> dict[str, Any]:
        ...

    def to_def(self) -> ToolDef:
        return ToolDef(name=self.name, description=self.description, parameters=self.parameters)

    def to_tool_schema(self) -> dict[str, Any]:
        """Standard function-calling schema for any LLM provider."""
        return self.to_def().to_tool_schema()


_WORD_RE = re.compile(r"[\w']+")
_SENTENCE_RE = re.compile(r"[.!?]+(?:\s|$)")
_HEADING_RE = re.compile(r"^\s{0,3}#{1,6}\s+\S", re.MULTILINE)
WORDS_PER_MINUTE = 200


def _words(text: str) -> list[str]:
    return _WORD_RE.findall(text)


# ---------------------------------------------------------------------------
# word_count
# ---------------------------------------------------------------------------


class WordCountTool(BaseTool):
    """Counts words, sentences and paragraphs and estimates reading time."""

    @property
    def name(self) -> str:
        return "word_count"

    @property
    def description(self) -> str:
        return "Count words, characters, sentences and paragraphs in a text and estimate its reading time."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "text": {"type": "string", "description": "The text to measure"},
            },
            "required": ["text"],
        }

    async def execute(self, params: dict[str, Any]) -> dict[str, Any]:
        text = params.get("text")
        if not isinstance(text, str):
            raise ValueError("text must be a string")
        words = _words(text)
        paragraphs = [p for p in re.split(r"\n\s*\n", text) if p.strip()]
        sentences = len(_SENTENCE_RE.findall(text))
        if words and sentences == 0:
            sentences = 1
        return {
            "words": len(words),
            "characters": len(text),
            "characters_no_spaces": len(re.sub(r"\s", "", text)),
            "sentences": sentences,
            "paragraphs": len(paragraphs),
            "reading_time_minutes": round(len(words) / WORDS_PER_MINUTE, 1),
        }


# ---------------------------------------------------------------------------
# seo_score
# ---------------------------------------------------------------------------


class SeoScoreTool(BaseTool):
    """Scores a draft for basic on-page SEO: title length, keyword coverage, structure."""

    TITLE_MIN = 30
    TITLE_MAX = 60
    MIN_WORDS = 300
    DENSITY_MIN = 0.5
    DENSITY_MAX = 2.5

    @property
    def name(self) -> str:
        return "seo_score"

    @property
    def description(self) -> str:
        return (
            "Score a draft's on-page SEO from 0 to 100 using title length, keyword placement and "
            "density, headings and length. Returns the score, per-check results and suggestions."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "title": {"type": "string", "description": "Post title"},
                "content": {"type": "string", "description": "Post body (markdown allowed)"},
                "keyword": {"type": "string", "description": "Focus keyword or phrase"},
            },
            "required": ["content"],
        }

    async def execute(self, params: dict[str, Any]) -> dict[str, Any]:
        title = params.get("title") or ""
        content = params.get("content")
        keyword = (params.get("keyword") or "").strip().lower()
        if not isinstance(content, str) or not isinstance(title, str):
            raise ValueError("title and content must be strings")

        words = _words(content)
        word_count = len(words)
        headings = len(_HEADING_RE.findall(content))
        checks: dict[str, bool] = {
            "title_length": self.TITLE_MIN <= len(title) <= self.TITLE_MAX,
            "has_headings": headings >= 2,
            "length": word_count >= self.MIN_WORDS,
        }
        suggestions: list[str] = []
        if not checks["title_length"]:
            suggestions.append(
                f"Keep the title between {self.TITLE_MIN} and {self.TITLE_MAX} characters (now {len(title)})."
            )
        if not checks["has_headings"]:
            suggestions.append("Break the body into sections with at least two headings.")
        if not checks["length"]:
            suggestions.append(f"Aim for at least {self.MIN_WORDS} words (now {word_count}).")

        density = 0.0
        if keyword:
            occurrences = content.lower().count(keyword)
            keyword_words = max(len(_words(keyword)), 1)
            density = round(occurrences * keyword_words * 100 / word_count, 2) if word_count else 0.0
            first_paragraph = content.strip().split("\n\n", 1)[0].lower()
            checks["keyword_in_title"] = keyword in title.lower()
            checks["keyword_in_intro"] = keyword in first_paragraph
            checks["keyword_density"] = self.DENSITY_MIN <= density <= self.DENSITY_MAX
            if not checks["keyword_in_title"]:
                suggestions.append(f"Work the keyword '{keyword}' into the title.")
            if not checks["keyword_in_intro"]:
                suggestions.append(f"Mention '{keyword}' in the opening paragraph.")
            if not checks["keyword_density"]:
                suggestions.append(
                    f"Adjust keyword density to {self.DENSITY_MIN}-{self.DENSITY_MAX}% (now {density}%)."
                )

        score = round(100 * sum(checks.values()) / len(checks))
        return {
            "score": score,
            "checks": checks,
            "word_count": word_count,
            "headings": headings,
            "keyword_density": density,
            "suggestions": suggestions,
        }


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class ToolRegistry:
    """Callable tools by name."""

    def __init__(self, tools: list[BaseTool] | None = None) -> None:
        self._tools: dict[str, BaseTool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: BaseTool) -> None:
        self._tools[tool.name] = tool

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    async def get_definitions(self) -> list[dict[str, Any]]:
        return [t.to_tool_schema() for t in self._tools.values()]

    async def execute(self, name: str, arguments: dict[str, Any]) -> Any:
        """Run one tool; raises ToolExecutionError if it is unknown or fails."""
        tool = self._tools.get(name)
        if tool is None:
            raise ToolExecutionError(name, f"Unknown tool: {name}")
        try:
            return await tool.execute(arguments)
        except ToolExecutionError:
            raise
        except Exception as e:
            raise ToolExecutionError(name, str(e), cause=e) from e


def get_default_registry() -> ToolRegistry:
    """Return a registry with the built-in editorial tools."""
    return ToolRegistry([WordCountTool(), SeoScoreTool()])
