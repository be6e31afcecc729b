"""Exception types raised by the triage memory subsystem.

Grading and reflection failures are not represented here: they are logged and
absorbed. Everything below is surfaced to the caller.
"""

from __future__ import annotations


class ScoringConfigError(ValueError):
    """Raised when a ScoringConfig holds out-of-range weights or thresholds."""

    def __init__(self, field: str, reason: str) -> None:
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid scoring config: {field} {reason}")


class MemoryPersistenceError(Exception):
    """Raised when a repository write or read fails.

    The caller must treat the whole batch as not persisted and decide on its
    own schedule whether to retry the sweep.
    """

    def __init__(
        self,
        *,
        agent_id: str,
        operation: str,
        underlying: Exception,
        count: int | None = None,
    ) -> None:
        self.agent_id = agent_id
        self.operation = operation
        self.underlying = underlying
        self.count = count
        message = f"Memory repository {operation} failed for agent '{agent_id}'"
        if count is not None:
            message += f" ({count} records)"
        message += f": {underlying}"
        super().__init__(message)


class EmbeddingError(Exception):
    """Raised when an embedder returns no usable vector for a query."""

    def __init__(self, *, query: str, reason: str) -> None:
        self.query = query
        self.reason = reason
        preview = query if len(query) <= 80 else query[:77] + "..."
        super().__init__(f"Embedding generation failed for query {preview!r}: {reason}")


class LocalLLMError(RuntimeError):
    """Raised when a local LLM invocation fails."""


__all__ = [
    "ScoringConfigError",
    "MemoryPersistenceError",
    "EmbeddingError",
    "LocalLLMError",
]
