"""
Training sample buffer and touched-key tracking.
Holds recent engagement observations for dense passes and the entity keys that need sparse sync.
"""

import math
from collections import deque
from dataclasses import dataclass
from typing import Iterable, List, Optional, Set

from .features import FeatureVector

ENGAGEMENT_SCORES = {
    "view": 0.1,
    "reaction": 0.3,
    "reply": 0.7,
    "renote": 0.5,
    "follow": 0.8,
    "bookmark": 0.6,
}
DEFAULT_ENGAGEMENT_SCORE = 0.1

HIGH_VALUE_SIGNALS = frozenset({"reply", "renote", "follow", "bookmark"})

RECENCY_DECAY_SEC = 60 * 60  # one hour


@dataclass(frozen=True)
class TrainingSample:
    """A single engagement observation."""

    features: FeatureVector
    engagement: float
    """Engagement strength in [0, 1]"""

    timestamp: float
    """Epoch seconds at which the engagement was recorded"""

    weight: float
    """Recency/intensity weight applied to this sample's error"""


def get_engagement_score(engagement_type: str) -> float:
    """Map an engagement type to its fixed strength score."""
    return ENGAGEMENT_SCORES.get(engagement_type, DEFAULT_ENGAGEMENT_SCORE)


def is_high_value_signal(engagement_type: str) -> bool:
    """High-value signals trigger immediate learning."""
    return engagement_type in HIGH_VALUE_SIGNALS


def calculate_sample_weight(engagement_score: float, timestamp: float, now: Optional[float] = None) -> float:
    """
    Weight a sample by engagement strength and recency.

    The engine records samples with ``now`` omitted, so a buffered sample keeps
    its age-zero weight ``1 + engagement_score`` for its whole life. Pass
    ``now`` to reweight an older observation.

    Args:
        engagement_score: Strength score of the engagement
        timestamp: When the engagement happened (epoch seconds)
        now: Reference time; defaults to ``timestamp`` (age zero)

    Returns:
        ``(1 + engagement_score) * exp(-age / 1h)``
    """
    if now is None:
        now = timestamp
    age = max(0.0, now - timestamp)
    return (1 + engagement_score) * math.exp(-age / RECENCY_DECAY_SEC)


class TrainingBuffer:
    """Bounded FIFO of training samples. Not thread-safe; the engine holds the lock."""

    def __init__(self, max_size: int):
        if max_size < 1:
            raise ValueError(f"Buffer size must be >= 1: {max_size}")
        self.max_size = max_size
        self._samples = deque()
        self.evicted_count = 0

    def append(self, sample: TrainingSample) -> Optional[TrainingSample]:
        """Append a sample, returning the evicted oldest sample if the buffer overflowed."""
        self._samples.append(sample)
        if len(self._samples) > self.max_size:
            self.evicted_count += 1
            return self._samples.popleft()
        return None

    def samples(self) -> List[TrainingSample]:
        """Return a copy of the buffered samples, oldest first."""
        return list(self._samples)

    def clear(self) -> None:
        self._samples.clear()

    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self):
        return iter(list(self._samples))


class TouchedKeyTracker:
    """Set of entity keys referenced since the last successful sync."""

    def __init__(self):
        self._keys: Set[str] = set()

    def track(self, features: FeatureVector) -> None:
        self._keys.update(features.entity_keys())

    def add(self, key: str) -> None:
        self._keys.add(key)

    def snapshot(self) -> Set[str]:
        return set(self._keys)

    def discard_all(self, keys: Iterable[str]) -> None:
        """Remove only the given keys, keeping anything touched since."""
        self._keys.difference_update(keys)

    def clear(self) -> None:
        self._keys.clear()

    def __contains__(self, key: str) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)
