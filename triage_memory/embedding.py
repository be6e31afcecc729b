"""Embedding client contract used to vectorize task queries."""

from __future__ import annotations

from typing import List, Optional, Protocol, Sequence

from .config import Config
from .local_llm import call_ollama_embed


class Embedder(Protocol):
    """Produces one embedding per input text.

    Implementations may return fewer vectors than inputs or empty vectors on
    soft failure; MemoryService treats that as "no embedding generated".
    """

    async def embed(self, texts: Sequence[str], dimension: int) -> List[List[float]]:
        ...


class OllamaEmbedder:
    """Embedder backed by a local Ollama ``/api/embed`` endpoint."""

    def __init__(
        self,
        *,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 60.0,
    ) -> None:
        self.model = model or Config.EMBEDDING_MODEL
        self.base_url = base_url or Config.LOCAL_LLM_BASE_URL
        self.timeout = timeout

    async def embed(self, texts: Sequence[str], dimension: int) -> List[List[float]]:
        vectors = await call_ollama_embed(
            texts=list(texts),
            model=self.model,
            dimension=dimension,
            base_url=self.base_url,
            timeout=self.timeout,
        )
        # Servers without Matryoshka support ignore ``dimensions``; truncate here.
        return [vector[:dimension] for vector in vectors]


__all__ = ["Embedder", "OllamaEmbedder"]
