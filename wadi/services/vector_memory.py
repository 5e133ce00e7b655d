"""Vector memory: per-project embeddings with cosine recall and pruning."""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
from sqlalchemy.orm import Session

from wadi.errors import DimensionMismatchError
from wadi.models.memory import MemoryEntry

logger = logging.getLogger(__name__)

SIMILARITY_THRESHOLD = 0.7
MAX_MEMORIES_PER_PROJECT = 1000
DEFAULT_SEARCH_LIMIT = 10
CONTEXT_SEARCH_LIMIT = 10
CHARS_PER_TOKEN = 4
CONTEXT_HEADER = "## Relevant Previous Interactions:\n\n"


@dataclass
class MemorySearchResult:
    id: uuid.UUID
    content: str
    similarity: float
    created_at: Optional[datetime]
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "content": self.content,
            "metadata": self.metadata,
            "similarity": self.similarity,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


def cosine_similarity(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    """
    Cosine similarity of two vectors.

    Returns 0.0 when either vector has zero norm.

    Raises:
        DimensionMismatchError: If the vectors differ in length
    """
    if len(vec_a) != len(vec_b):
        raise DimensionMismatchError(
            f"Vectors must have the same length: {len(vec_a)} != {len(vec_b)}"
        )

    a = np.asarray(vec_a, dtype=float)
    b = np.asarray(vec_b, dtype=float)
    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.dot(a, b) / (norm_a * norm_b))


def estimate_tokens(text: str) -> float:
    return len(text) / CHARS_PER_TOKEN


class VectorMemoryService:
    """Long-term memory backed by the relational store.

    Scoring happens in-process: every memory of the (user, project) is
    compared against the query embedding.
    """

    def __init__(self, db: Session, embedder, max_memories: int = MAX_MEMORIES_PER_PROJECT):
        """
        Args:
            db: Database session
            embedder: Object exposing ``embed(text) -> list[float]``
                (the provider client or an EmbeddingService)
            max_memories: Per-project cap enforced after every store
        """
        self.db = db
        self.embedder = embedder
        self.max_memories = max_memories

    def store(
        self,
        user_id: str,
        project_id: uuid.UUID,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
        run_id: Optional[uuid.UUID] = None,
        embedding: Optional[List[float]] = None,
    ) -> uuid.UUID:
        """Persist a memory (embedding it if needed) and prune the project."""
        if embedding is None:
            embedding = self.embedder.embed(content)

        entry = MemoryEntry(
            user_id=user_id,
            project_id=project_id,
            content=content,
            embedding=list(embedding),
            meta=metadata or {},
            run_id=run_id,
        )
        self.db.add(entry)
        self.db.commit()

        self._prune(project_id)
        return entry.memory_id

    def search(
        self,
        user_id: str,
        project_id: uuid.UUID,
        query: str,
        limit: int = DEFAULT_SEARCH_LIMIT,
    ) -> List[MemorySearchResult]:
        """Memories at or above the similarity threshold, best first."""
        query_embedding = self.embedder.embed(query)

        memories = (
            self.db.query(MemoryEntry)
            .filter(MemoryEntry.user_id == user_id, MemoryEntry.project_id == project_id)
            .all()
        )

        results = []
        for memory in memories:
            similarity = cosine_similarity(query_embedding, memory.embedding)
            if similarity < SIMILARITY_THRESHOLD:
                continue
            results.append(
                MemorySearchResult(
                    id=memory.memory_id,
                    content=memory.content,
                    similarity=similarity,
                    created_at=memory.created_at,
                    metadata=memory.meta or {},
                )
            )

        results.sort(key=lambda r: r.similarity, reverse=True)
        return results[:limit]

    def get_context(
        self,
        user_id: str,
        project_id: uuid.UUID,
        query: str,
        max_tokens: int = 2000,
    ) -> str:
        """
        Build a prompt context block from the most similar memories.

        Entries are added whole, in similarity order, until the next one
        would push the chars/4 token estimate past ``max_tokens``.
        """
        memories = self.search(user_id, project_id, query, CONTEXT_SEARCH_LIMIT)
        if not memories:
            return ""

        context = CONTEXT_HEADER
        current_tokens = 0.0
        for memory in memories:
            memory_text = (
                f"**Memory (Similarity: {memory.similarity * 100:.1f}%)**\n{memory.content}\n\n"
            )
            tokens = estimate_tokens(memory_text)
            if current_tokens + tokens > max_tokens:
                break
            context += memory_text
            current_tokens += tokens

        return context

    def list_memories(self, user_id: str, project_id: uuid.UUID, limit: int = 50) -> List[MemoryEntry]:
        return (
            self.db.query(MemoryEntry)
            .filter(MemoryEntry.user_id == user_id, MemoryEntry.project_id == project_id)
            .order_by(MemoryEntry.created_at.desc(), MemoryEntry.memory_pk.desc())
            .limit(limit)
            .all()
        )

    def delete_memory(self, memory_id: uuid.UUID, user_id: str) -> bool:
        deleted = (
            self.db.query(MemoryEntry)
            .filter(MemoryEntry.memory_id == memory_id, MemoryEntry.user_id == user_id)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return deleted > 0

    def clear_project(self, user_id: str, project_id: uuid.UUID) -> int:
        deleted = (
            self.db.query(MemoryEntry)
            .filter(MemoryEntry.user_id == user_id, MemoryEntry.project_id == project_id)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        logger.info(f"Cleared {deleted} memories for project {project_id}")
        return deleted

    def create_memory_from_run(
        self,
        user_id: str,
        project_id: uuid.UUID,
        run_id: uuid.UUID,
        input_text: str,
        output_text: str,
    ) -> uuid.UUID:
        """Remember a completed run as a query/response pair."""
        content = f"User Query: {input_text}\n\nAI Response: {output_text}"
        return self.store(
            user_id,
            project_id,
            content,
            metadata={
                "source": "ai_run",
                "input_length": len(input_text),
                "output_length": len(output_text),
            },
            run_id=run_id,
        )

    def _prune(self, project_id: uuid.UUID) -> None:
        """Delete the oldest memories beyond the per-project cap.

        Count and delete are separate statements, so concurrent stores can
        briefly leave the project above the cap until the next store.
        """
        count = self.db.query(MemoryEntry).filter(MemoryEntry.project_id == project_id).count()
        excess = count - self.max_memories
        if excess <= 0:
            return

        oldest = (
            self.db.query(MemoryEntry.memory_pk)
            .filter(MemoryEntry.project_id == project_id)
            .order_by(MemoryEntry.created_at.asc(), MemoryEntry.memory_pk.asc())
            .limit(excess)
            .all()
        )
        ids = [row.memory_pk for row in oldest]
        self.db.query(MemoryEntry).filter(MemoryEntry.memory_pk.in_(ids)).delete(
            synchronize_session=False
        )
        self.db.commit()
        logger.info(f"Pruned {len(ids)} memories from project {project_id}")
