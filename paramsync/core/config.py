"""
Learning engine configuration.
Environment variables provide defaults; LearningConfig validates per-engine overrides.
"""

import os
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

# Synchronization
SYNC_INTERVAL_MS = int(os.getenv("SYNC_INTERVAL_MS", "300000"))  # 5 minutes
SNAPSHOT_INTERVAL_MS = int(os.getenv("SNAPSHOT_INTERVAL_MS", "86400000"))  # 24 hours
SPARSE_UPDATES_ENABLED = os.getenv("SPARSE_UPDATES_ENABLED", "true").lower() == "true"
DENSE_UPDATES_ENABLED = os.getenv("DENSE_UPDATES_ENABLED", "true").lower() == "true"
SYNC_CLEAR_MODE = os.getenv("SYNC_CLEAR_MODE", "started")  # started|all

# Training
MAX_TRAINING_BUFFER = int(os.getenv("MAX_TRAINING_BUFFER", "1000"))
LEARNING_RATE = float(os.getenv("LEARNING_RATE", "0.01"))
MOMENTUM_DECAY = float(os.getenv("MOMENTUM_DECAY", "0.9"))
GRADIENT_CLIPPING = float(os.getenv("GRADIENT_CLIPPING", "1.0"))
BUFFER_LOCK_TIMEOUT_SEC = float(os.getenv("BUFFER_LOCK_TIMEOUT_SEC", "0.1"))

# Snapshots (advisory only, never read back)
MAX_SNAPSHOTS = int(os.getenv("MAX_SNAPSHOTS", "7"))
SNAPSHOT_DIR = os.getenv("SNAPSHOT_DIR")

# Heartbeat
HEARTBEAT_ENABLED = os.getenv("HEARTBEAT_ENABLED", "true").lower() == "true"
HEARTBEAT_POLL_SEC = float(os.getenv("HEARTBEAT_POLL_SEC", "0.1"))

# Embedding store
EMBEDDING_DIMENSION = int(os.getenv("EMBEDDING_DIMENSION", "64"))

# Fault-tolerant sync
SYNC_MAX_RETRIES = int(os.getenv("SYNC_MAX_RETRIES", "3"))
SYNC_RETRY_DELAY_MS = int(os.getenv("SYNC_RETRY_DELAY_MS", "1000"))
SYNC_BACKOFF_MULTIPLIER = float(os.getenv("SYNC_BACKOFF_MULTIPLIER", "2"))
SYNC_FAILURE_THRESHOLD = int(os.getenv("SYNC_FAILURE_THRESHOLD", "5"))
SYNC_MAX_DURATION_MS = float(os.getenv("SYNC_MAX_DURATION_MS", "10000"))  # post-sync health limit
SYNC_MAX_STORE_MEMORY_MB = float(os.getenv("SYNC_MAX_STORE_MEMORY_MB", "20"))

VALID_CLEAR_MODES = ["started", "all"]

VERSION = "1.0.0"


class LearningConfig(BaseModel):
    """Per-engine learning configuration.

    Accepts snake_case field names or their camelCase aliases
    (``syncIntervalMs``, ``maxTrainingBuffer``, ...).
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    sync_interval_ms: int = SYNC_INTERVAL_MS
    max_training_buffer: int = MAX_TRAINING_BUFFER
    learning_rate: float = LEARNING_RATE
    momentum_decay: float = MOMENTUM_DECAY
    gradient_clipping: float = GRADIENT_CLIPPING
    enable_sparse_updates: bool = SPARSE_UPDATES_ENABLED
    enable_dense_updates: bool = DENSE_UPDATES_ENABLED
    snapshot_interval_ms: int = SNAPSHOT_INTERVAL_MS
    buffer_lock_timeout_sec: float = BUFFER_LOCK_TIMEOUT_SEC
    sync_clear_mode: str = SYNC_CLEAR_MODE
    max_snapshots: int = MAX_SNAPSHOTS
    snapshot_dir: Optional[str] = SNAPSHOT_DIR

    @field_validator('sync_interval_ms', 'snapshot_interval_ms')
    @classmethod
    def interval_must_be_positive(cls, v):
        if v < 1:
            raise ValueError('interval must be >= 1ms')
        return v

    @field_validator('max_training_buffer', 'max_snapshots')
    @classmethod
    def capacity_must_be_positive(cls, v):
        if v < 1:
            raise ValueError('capacity must be >= 1')
        return v

    @field_validator('learning_rate', 'gradient_clipping')
    @classmethod
    def must_be_positive(cls, v):
        if v <= 0:
            raise ValueError('value must be > 0')
        return v

    @field_validator('momentum_decay')
    @classmethod
    def decay_must_be_fraction(cls, v):
        if not 0 <= v < 1:
            raise ValueError('momentum_decay must be in [0, 1)')
        return v

    @field_validator('buffer_lock_timeout_sec')
    @classmethod
    def timeout_must_not_be_negative(cls, v):
        if v < 0:
            raise ValueError('buffer_lock_timeout_sec must be >= 0')
        return v

    @field_validator('sync_clear_mode')
    @classmethod
    def clear_mode_must_be_valid(cls, v):
        if v not in VALID_CLEAR_MODES:
            raise ValueError(f'sync_clear_mode must be one of: {VALID_CLEAR_MODES}')
        return v

    @property
    def sync_interval_sec(self) -> float:
        return self.sync_interval_ms / 1000

    @property
    def snapshot_interval_sec(self) -> float:
        return self.snapshot_interval_ms / 1000


def is_heartbeat_enabled():
    """Check if the engine should start its own heartbeat thread."""
    return HEARTBEAT_ENABLED


def get_heartbeat_poll_interval():
    """Get heartbeat polling interval in seconds."""
    return HEARTBEAT_POLL_SEC


def get_embedding_dimension():
    """Get the default embedding dimension for the in-memory store."""
    return EMBEDDING_DIMENSION


def validate_learning_config():
    """Validate the module-level settings and return any issues."""
    issues = []

    if SYNC_INTERVAL_MS < 1:
        issues.append("SYNC_INTERVAL_MS must be >= 1")

    if SNAPSHOT_INTERVAL_MS < 1:
        issues.append("SNAPSHOT_INTERVAL_MS must be >= 1")

    if MAX_TRAINING_BUFFER < 1:
        issues.append("MAX_TRAINING_BUFFER must be >= 1")

    if LEARNING_RATE <= 0:
        issues.append("LEARNING_RATE must be > 0")

    if not 0 <= MOMENTUM_DECAY < 1:
        issues.append("MOMENTUM_DECAY must be in [0, 1)")

    if GRADIENT_CLIPPING <= 0:
        issues.append("GRADIENT_CLIPPING must be > 0")

    if SYNC_CLEAR_MODE not in VALID_CLEAR_MODES:
        issues.append(f"Invalid SYNC_CLEAR_MODE: {SYNC_CLEAR_MODE}")

    if HEARTBEAT_POLL_SEC <= 0:
        issues.append("HEARTBEAT_POLL_SEC must be > 0")

    if SYNC_MAX_RETRIES < 1:
        issues.append("SYNC_MAX_RETRIES must be >= 1")

    if SYNC_MAX_DURATION_MS <= 0:
        issues.append("SYNC_MAX_DURATION_MS must be > 0")

    return issues
