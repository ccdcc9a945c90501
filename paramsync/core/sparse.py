"""
Sparse update engine - per-entity embedding gradients staged for incremental sync.
"""

import time
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional

import numpy as np

from util.logging import logger

from ..vector.store import IEmbeddingStore
from .buffer import TrainingSample

USER_GRADIENT_SCALE = 0.1
AUTHOR_GRADIENT_SCALE = 0.1
TOPIC_GRADIENT_SCALE = 0.05
NOISE_SCALE = 0.1


@dataclass
class ParameterUpdate:
    """A staged embedding change waiting for the next sync pass."""

    entity_type: str
    entity_id: str
    embedding: np.ndarray
    gradient: np.ndarray
    timestamp: float

    @property
    def key(self) -> str:
        return parameter_key(self.entity_type, self.entity_id)


def parameter_key(entity_type: str, entity_id: str) -> str:
    return f"{entity_type}:{entity_id}"


class SparseUpdateEngine:
    """
    Applies scalar gradients to stored embeddings and stages the results.

    ``rng`` is anything with a numpy-style ``random(size)`` method; pass a
    seeded ``np.random.default_rng`` for reproducible embeddings.
    """

    def __init__(
        self,
        store: IEmbeddingStore,
        learning_rate: float = 0.01,
        rng=None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.learning_rate = learning_rate
        self._rng = rng if rng is not None else np.random.default_rng()
        self._clock = clock
        self.pending: Dict[str, ParameterUpdate] = {}

    def noise(self, size: int) -> np.ndarray:
        """Per-component perturbation drawn from (-0.05, 0.05)."""
        return (np.asarray(self._rng.random(size), dtype=np.float64) - 0.5) * NOISE_SCALE

    def update_embedding(self, entity_type: str, entity_id: str, gradient: float) -> Optional[ParameterUpdate]:
        """
        Perturb one embedding by ``gradient`` and write it back immediately.

        Returns the staged update, or None when the store has no embedding
        for the entity.
        """
        embedding = self.store.get_embedding(entity_type, entity_id)
        if embedding is None:
            return None

        embedding = np.asarray(embedding, dtype=np.float64)
        updated = embedding + self.learning_rate * gradient * self.noise(len(embedding))

        update = ParameterUpdate(
            entity_type=entity_type,
            entity_id=entity_id,
            embedding=updated,
            gradient=np.full(len(embedding), gradient, dtype=np.float64),
            timestamp=self._clock(),
        )
        self.pending[update.key] = update

        self.store.set_embedding(entity_type, entity_id, updated)
        return update

    def update_from_sample(self, sample: TrainingSample, error: float) -> int:
        """Update user, author and topic embeddings for a sample. Returns the number staged."""
        features = sample.features
        staged = 0

        if self.update_embedding("user", features.user_id, error * USER_GRADIENT_SCALE):
            staged += 1
        if self.update_embedding("author", features.author_id, error * AUTHOR_GRADIENT_SCALE):
            staged += 1
        for topic in features.content_topics:
            if self.update_embedding("topic", topic, error * TOPIC_GRADIENT_SCALE):
                staged += 1

        return staged

    def flush(self, updates: Mapping[str, ParameterUpdate]) -> int:
        """
        Push staged updates to the store.

        A failure on one key is logged and skipped; the caller decides
        what to remove from ``pending``. Returns the number of accepted writes.
        """
        update_count = 0
        for key, update in updates.items():
            try:
                if self.store.set_embedding(update.entity_type, update.entity_id, update.embedding):
                    update_count += 1
            except Exception as e:
                logger.log_sparse_sync_failure(key, e)
        return update_count

    def discard(self, updates: Mapping[str, ParameterUpdate]) -> None:
        """Remove the given updates unless they were replaced by a newer one."""
        for key, update in updates.items():
            if self.pending.get(key) is update:
                del self.pending[key]

    def clear(self) -> None:
        self.pending.clear()
