"""
Embedding store contract and an in-memory reference implementation.
The learning engine only reads and writes vectors through IEmbeddingStore.
"""

import threading
from abc import ABC, abstractmethod
from typing import Dict, Optional, Sequence

import numpy as np

from .types import ENTITY_TYPES, EmbeddingTableStats


class IEmbeddingStore(ABC):
    """Abstract interface for embedding storage operations."""

    @abstractmethod
    def get_embedding(self, entity_type: str, entity_id: str) -> Optional[np.ndarray]:
        """Return the embedding for an entity, or None when absent."""
        pass

    @abstractmethod
    def set_embedding(self, entity_type: str, entity_id: str, embedding: Sequence[float]) -> bool:
        """Store an embedding. Returns False when the store rejected the write."""
        pass

    @abstractmethod
    def get_system_stats(self) -> Dict[str, object]:
        """Return store statistics; must include a ``table_stats`` mapping keyed by table name."""
        pass


class InMemoryEmbeddingStore(IEmbeddingStore):
    """Dictionary-backed embedding tables, one per entity type."""

    def __init__(
        self,
        dimension: int = 64,
        capacity_per_table: Optional[int] = None,
        entity_types: Sequence[str] = ENTITY_TYPES,
        rng: Optional[np.random.Generator] = None,
        max_memory_mb: Optional[float] = None,
    ):
        if dimension < 1:
            raise ValueError(f"Embedding dimension must be >= 1: {dimension}")

        self.dimension = dimension
        self.capacity_per_table = capacity_per_table
        self.max_memory_mb = max_memory_mb
        self._rng = rng if rng is not None else np.random.default_rng()
        self._lock = threading.Lock()
        self._tables: Dict[str, Dict[str, np.ndarray]] = {t: {} for t in entity_types}
        self._stats: Dict[str, EmbeddingTableStats] = {
            t: EmbeddingTableStats(table_name=t, dimension=dimension, capacity=capacity_per_table)
            for t in entity_types
        }

    def _table(self, entity_type: str) -> Dict[str, np.ndarray]:
        table = self._tables.get(entity_type)
        if table is None:
            raise ValueError(f"Invalid embedding type: {entity_type}")
        return table

    def get_embedding(self, entity_type: str, entity_id: str) -> Optional[np.ndarray]:
        """Return a copy of the stored embedding, or None."""
        table = self._table(entity_type)
        with self._lock:
            embedding = table.get(entity_id)
            stats = self._stats[entity_type]
            if embedding is None:
                stats.misses += 1
                return None
            stats.hits += 1
            return embedding.copy()

    def set_embedding(self, entity_type: str, entity_id: str, embedding: Sequence[float]) -> bool:
        """Store an embedding; rejects new keys once the table is full."""
        table = self._table(entity_type)
        vector = np.asarray(embedding, dtype=np.float64)
        if vector.shape != (self.dimension,):
            raise ValueError(
                f"Embedding dimension {vector.shape} does not match expected dimension {self.dimension}"
            )

        with self._lock:
            stats = self._stats[entity_type]
            if (
                entity_id not in table
                and self.capacity_per_table is not None
                and len(table) >= self.capacity_per_table
            ):
                stats.rejected_writes += 1
                return False

            table[entity_id] = vector.copy()
            stats.writes += 1
            stats.total_entries = len(table)
            return True

    def get_or_create_embedding(self, entity_type: str, entity_id: str) -> np.ndarray:
        """Return an existing embedding or create a random unit-length one."""
        existing = self.get_embedding(entity_type, entity_id)
        if existing is not None:
            return existing

        embedding = self._rng.uniform(-1.0, 1.0, self.dimension)
        norm = np.linalg.norm(embedding)
        if norm > 0:
            embedding = embedding / norm

        # A rejected write still hands back a usable embedding for this request
        self.set_embedding(entity_type, entity_id, embedding)
        return embedding

    def get_system_stats(self) -> Dict[str, object]:
        """Table counters plus vector memory; unhealthy once over ``max_memory_mb``."""
        with self._lock:
            table_stats = {name: stats.to_dict() for name, stats in self._stats.items()}
            memory_bytes = sum(v.nbytes for table in self._tables.values() for v in table.values())

        memory_usage_mb = memory_bytes / (1024 * 1024)
        return {
            "total_entries": sum(s["total_entries"] for s in table_stats.values()),
            "dimension": self.dimension,
            "memory_usage_mb": memory_usage_mb,
            "overall_health": self.max_memory_mb is None or memory_usage_mb <= self.max_memory_mb,
            "table_stats": table_stats,
        }

    def clear(self) -> None:
        """Clear all tables and reset their counters."""
        with self._lock:
            for name, table in self._tables.items():
                table.clear()
                self._stats[name] = EmbeddingTableStats(
                    table_name=name, dimension=self.dimension, capacity=self.capacity_per_table
                )

    def __len__(self) -> int:
        return sum(len(table) for table in self._tables.values())
