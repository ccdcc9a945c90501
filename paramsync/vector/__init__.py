"""
Embedding storage - sparse per-entity parameters consumed by the learning engine.
"""

# Package initialization for vector module
from .store import IEmbeddingStore, InMemoryEmbeddingStore
from .types import ENTITY_TYPES, EmbeddingTableStats

__all__ = [
    'IEmbeddingStore',
    'InMemoryEmbeddingStore',
    'EmbeddingTableStats',
    'ENTITY_TYPES'
]
