"""
MemoryRepository interface for pluggable agent-memory storage.

The memory engines never talk to storage directly; MemoryService and
FeedbackCollector go through this contract. Two implementations ship with the
library:

1. InMemoryRepository - dict-based, data lost on exit (tests, prototyping)
2. JsonlRepository - one JSON Lines file per agent (small deployments, debugging)

Production deployments plug in a vector database by implementing the same
interface.

Contract notes:
- Every query is scoped to an agent_id; a memory owned by another agent is
  invisible (never returned, updated or deleted).
- find_nearest_by_agent() returns an empty list for an empty or invalid
  embedding, never an error.
- update_score_batch() and delete_batch() skip unknown IDs silently.
- Implementations hand out copies so callers cannot mutate stored records.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from .schemas import AgentMemory, ScoreUpdate
from .vector import cosine_similarity


class MemoryRepository(ABC):
    """Abstract base class for agent-memory storage backends."""

    @abstractmethod
    async def initialize(self) -> None:
        """
        Initialize the storage backend.

        Called once before use. Used to open connections, create
        directories, build indexes, etc.
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release backend resources."""
        pass

    @abstractmethod
    async def save(self, memory: AgentMemory) -> None:
        """
        Insert or replace a single memory.

        Args:
            memory: Memory to store
        """
        pass

    @abstractmethod
    async def save_batch(self, memories: Sequence[AgentMemory]) -> None:
        """
        Insert or replace several memories in one operation.

        Args:
            memories: Memories to store (may span agents)
        """
        pass

    @abstractmethod
    async def get(self, agent_id: str, memory_id: str) -> Optional[AgentMemory]:
        """
        Fetch one memory.

        Returns:
            The memory, or None if missing or owned by another agent
        """
        pass

    async def get_batch(
        self, agent_id: str, memory_ids: Sequence[str]
    ) -> Dict[str, AgentMemory]:
        """
        Fetch several memories by ID.

        Returns:
            memory_id -> memory for every ID that exists and is owned by
            ``agent_id``; missing IDs are left out
        """
        found: Dict[str, AgentMemory] = {}
        for memory_id in dict.fromkeys(memory_ids):
            memory = await self.get(agent_id, memory_id)
            if memory is not None:
                found[memory_id] = memory
        return found

    @abstractmethod
    async def find_nearest_by_agent(
        self, agent_id: str, embedding: Sequence[float], limit: int
    ) -> List[AgentMemory]:
        """
        Vector search scoped to one agent.

        Args:
            agent_id: Owning agent
            embedding: Query embedding
            limit: Maximum number of results

        Returns:
            Up to ``limit`` memories, nearest first. Empty for an empty
            embedding or a non-positive limit.
        """
        pass

    @abstractmethod
    async def update_score_batch(
        self, agent_id: str, updates: Mapping[str, ScoreUpdate]
    ) -> None:
        """
        Apply new scores and last-used timestamps.

        Args:
            agent_id: Owning agent
            updates: memory_id -> ScoreUpdate

        Raises:
            Exception: Any failure; callers treat it as nothing persisted
        """
        pass

    @abstractmethod
    async def delete_batch(self, agent_id: str, memory_ids: Sequence[str]) -> int:
        """
        Delete memories.

        Returns:
            Number of memories actually deleted
        """
        pass

    @abstractmethod
    async def list_by_agent(self, agent_id: str) -> List[AgentMemory]:
        """
        List every memory owned by ``agent_id``.

        Returns:
            Memories ordered by created_at, newest first
        """
        pass


def _nearest(
    memories: Iterable[AgentMemory], embedding: Sequence[float], limit: int
) -> List[AgentMemory]:
    """Rank memories by cosine similarity to ``embedding``, nearest first."""

    if limit <= 0 or not embedding:
        return []
    scored = [
        (cosine_similarity(embedding, memory.query_embedding), memory)
        for memory in memories
        if memory.has_embedding()
    ]
    scored.sort(key=lambda item: item[0], reverse=True)
    return [memory for _, memory in scored[:limit]]


def _newest_first(memories: Iterable[AgentMemory]) -> List[AgentMemory]:
    return sorted(memories, key=lambda m: m.created_at, reverse=True)


class InMemoryRepository(MemoryRepository):
    """Dict-based repository (no database, no files).

    Storage structure:
    - memories: Dict[memory_id, AgentMemory]

    Records are deep-copied on the way in and out, mirroring the isolation a
    real database gives callers.
    """

    def __init__(self) -> None:
        self.memories: Dict[str, AgentMemory] = {}

    async def initialize(self) -> None:
        pass

    async def close(self) -> None:
        # Data is kept after close so tests can inspect it.
        pass

    async def save(self, memory: AgentMemory) -> None:
        self.memories[memory.id] = memory.model_copy(deep=True)

    async def save_batch(self, memories: Sequence[AgentMemory]) -> None:
        for memory in memories:
            await self.save(memory)

    async def get(self, agent_id: str, memory_id: str) -> Optional[AgentMemory]:
        memory = self.memories.get(memory_id)
        if memory is None or memory.agent_id != agent_id:
            return None
        return memory.model_copy(deep=True)

    async def find_nearest_by_agent(
        self, agent_id: str, embedding: Sequence[float], limit: int
    ) -> List[AgentMemory]:
        owned = (m for m in self.memories.values() if m.agent_id == agent_id)
        return [m.model_copy(deep=True) for m in _nearest(owned, embedding, limit)]

    async def update_score_batch(
        self, agent_id: str, updates: Mapping[str, ScoreUpdate]
    ) -> None:
        for memory_id, update in updates.items():
            memory = self.memories.get(memory_id)
            if memory is None or memory.agent_id != agent_id:
                continue
            self.memories[memory_id] = memory.model_copy(
                update={"score": update.score, "last_used_at": update.last_used_at}
            )

    async def delete_batch(self, agent_id: str, memory_ids: Sequence[str]) -> int:
        deleted = 0
        for memory_id in memory_ids:
            memory = self.memories.get(memory_id)
            if memory is None or memory.agent_id != agent_id:
                continue
            del self.memories[memory_id]
            deleted += 1
        return deleted

    async def list_by_agent(self, agent_id: str) -> List[AgentMemory]:
        owned = [m.model_copy(deep=True) for m in self.memories.values() if m.agent_id == agent_id]
        return _newest_first(owned)


class JsonlRepository(MemoryRepository):
    """File-based repository using JSON Lines, one file per agent.

    Directory structure:
    ```
    {base_path}/
      bigquery.jsonl     # one AgentMemory per line
      slack.jsonl
    ```

    Mutations rewrite the agent's file through a temporary file and an atomic
    rename, so a crash mid-write leaves the previous version intact. All file
    I/O runs in a worker thread (asyncio.to_thread). A per-agent asyncio.Lock
    serializes writers inside one process; there is no cross-process locking.

    Vector search is a linear scan, fine for hundreds of memories per agent.
    """

    def __init__(self, base_path: Path | str = "agent_memories"):
        self.base_path = Path(base_path)
        self._locks: Dict[str, asyncio.Lock] = {}

    async def initialize(self) -> None:
        await asyncio.to_thread(self.base_path.mkdir, parents=True, exist_ok=True)

    async def close(self) -> None:
        return None

    async def save(self, memory: AgentMemory) -> None:
        await self.save_batch([memory])

    async def save_batch(self, memories: Sequence[AgentMemory]) -> None:
        by_agent: Dict[str, List[AgentMemory]] = {}
        for memory in memories:
            by_agent.setdefault(memory.agent_id, []).append(memory)

        for agent_id, batch in by_agent.items():
            async with self._lock(agent_id):
                stored = {m.id: m for m in await self._read(agent_id)}
                for memory in batch:
                    stored[memory.id] = memory
                await self._write(agent_id, stored.values())

    async def get(self, agent_id: str, memory_id: str) -> Optional[AgentMemory]:
        for memory in await self._read(agent_id):
            if memory.id == memory_id:
                return memory
        return None

    async def get_batch(
        self, agent_id: str, memory_ids: Sequence[str]
    ) -> Dict[str, AgentMemory]:
        wanted = set(memory_ids)
        return {m.id: m for m in await self._read(agent_id) if m.id in wanted}

    async def find_nearest_by_agent(
        self, agent_id: str, embedding: Sequence[float], limit: int
    ) -> List[AgentMemory]:
        if limit <= 0 or not embedding:
            return []
        return _nearest(await self._read(agent_id), embedding, limit)

    async def update_score_batch(
        self, agent_id: str, updates: Mapping[str, ScoreUpdate]
    ) -> None:
        if not updates:
            return
        async with self._lock(agent_id):
            memories = await self._read(agent_id)
            changed = [
                memory.model_copy(
                    update={
                        "score": updates[memory.id].score,
                        "last_used_at": updates[memory.id].last_used_at,
                    }
                )
                if memory.id in updates
                else memory
                for memory in memories
            ]
            await self._write(agent_id, changed)

    async def delete_batch(self, agent_id: str, memory_ids: Sequence[str]) -> int:
        targets = set(memory_ids)
        if not targets:
            return 0
        async with self._lock(agent_id):
            memories = await self._read(agent_id)
            kept = [memory for memory in memories if memory.id not in targets]
            deleted = len(memories) - len(kept)
            if deleted:
                await self._write(agent_id, kept)
        return deleted

    async def list_by_agent(self, agent_id: str) -> List[AgentMemory]:
        return _newest_first(await self._read(agent_id))

    def _lock(self, agent_id: str) -> asyncio.Lock:
        if agent_id not in self._locks:
            self._locks[agent_id] = asyncio.Lock()
        return self._locks[agent_id]

    def _path(self, agent_id: str) -> Path:
        # agent_id becomes a file name; it must not walk out of base_path.
        if (
            not agent_id
            or agent_id in (".", "..")
            or "/" in agent_id
            or "\\" in agent_id
            or "\x00" in agent_id
        ):
            raise ValueError(f"agent_id {agent_id!r} is not usable as a file name")
        return self.base_path / f"{agent_id}.jsonl"

    async def _read(self, agent_id: str) -> List[AgentMemory]:
        path = self._path(agent_id)

        def _load() -> List[str]:
            if not path.exists():
                return []
            return path.read_text("utf-8").splitlines()

        lines = await asyncio.to_thread(_load)
        return [AgentMemory.model_validate_json(line) for line in lines if line.strip()]

    async def _write(self, agent_id: str, memories: Iterable[AgentMemory]) -> None:
        path = self._path(agent_id)
        payload = "".join(
            json.dumps(memory.model_dump(mode="json")) + "\n" for memory in memories
        )

        def _replace() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_suffix(".jsonl.tmp")
            tmp_path.write_text(payload, "utf-8")
            tmp_path.replace(path)

        await asyncio.to_thread(_replace)


__all__ = ["MemoryRepository", "InMemoryRepository", "JsonlRepository"]
