"""Exception taxonomy for the Muse agent."""

from __future__ import annotations


class MuseError(Exception):
    """Base error. `status_code` is the HTTP status the API layer reports."""

    status_code = 500

    def __init__(self, message: str, cause: Exception | None = None):
        self.message = message
        self.cause = cause
        super().__init__(message)


class ValidationError(MuseError):
    """Rejected input (empty message, malformed tags). Never retried."""

    status_code = 400


class ToolExecutionError(MuseError):
    """A single tool call failed; converted to an inline error result."""

    def __init__(self, tool_name: str, message: str, cause: Exception | None = None):
        self.tool_name = tool_name
        super().__init__(message, cause=cause)


class TransportError(MuseError):
    """Completion API or storage failure."""


class MigrationError(MuseError):
    """Legacy session layout could not be migrated."""


__all__ = [
    "MuseError",
    "ValidationError",
    "ToolExecutionError",
    "TransportError",
    "MigrationError",
]
