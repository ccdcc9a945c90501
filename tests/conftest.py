"""
Shared fixtures: virtual clock, deterministic noise source, embedding stores.
"""

import numpy as np
import pytest

from paramsync.core.config import LearningConfig
from paramsync.core.features import FeatureVector
from paramsync.core.heartbeat import Heartbeat
from paramsync.core.learning import RealTimeLearningSystem
from paramsync.vector.store import InMemoryEmbeddingStore


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FixedRng:
    """Noise source whose every draw is ``value``; 1.0 yields noise of +0.05 per component."""

    def __init__(self, value: float = 1.0):
        self.value = value

    def random(self, size=None):
        return np.full(size, self.value)


class HookedStore(InMemoryEmbeddingStore):
    """In-memory store that calls ``on_set`` before every write."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.on_set = None

    def set_embedding(self, entity_type, entity_id, embedding):
        if self.on_set is not None:
            self.on_set(entity_type, entity_id)
        return super().set_embedding(entity_type, entity_id, embedding)


def make_features(user_id="u1", author_id="a1", topics=("sports",), **dense) -> FeatureVector:
    return FeatureVector(user_id=user_id, author_id=author_id, content_topics=list(topics), **dense)


def seed_zero_embeddings(store, dimension=3, users=("u1",), authors=("a1",), topics=("sports",)):
    for user in users:
        store.set_embedding("user", user, [0.0] * dimension)
    for author in authors:
        store.set_embedding("author", author, [0.0] * dimension)
    for topic in topics:
        store.set_embedding("topic", topic, [0.0] * dimension)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def heartbeat(clock):
    return Heartbeat(clock=clock)


@pytest.fixture
def store():
    """Store with zero embeddings for u1, a1 and the sports topic."""
    store = HookedStore(dimension=3)
    seed_zero_embeddings(store)
    return store


@pytest.fixture
def make_engine(store, heartbeat, clock):
    """Factory for engines wired to the shared store, heartbeat and clock."""
    engines = []

    def _make(**config_overrides):
        engine = RealTimeLearningSystem(
            store,
            config=LearningConfig(**config_overrides),
            heartbeat=heartbeat,
            rng=FixedRng(),
            clock=clock,
        )
        engines.append(engine)
        return engine

    yield _make

    for engine in engines:
        engine.destroy()


@pytest.fixture
def engine(make_engine):
    return make_engine()
