"""
Real-time online learning with incremental parameter synchronization.
"""

from .core.config import VERSION, LearningConfig
from .core.features import FeatureVector
from .core.learning import RealTimeLearningSystem, SyncStats
from .vector import IEmbeddingStore, InMemoryEmbeddingStore

__version__ = VERSION

__all__ = [
    'LearningConfig',
    'FeatureVector',
    'RealTimeLearningSystem',
    'SyncStats',
    'IEmbeddingStore',
    'InMemoryEmbeddingStore'
]
