"""
Real-time learning system - online learning with incremental parameter synchronization.

Engagements land in a bounded training buffer and mark the entities they touch.
High-value engagements are learned from immediately. A periodic sync pass pushes
staged sparse (embedding) updates to the embedding store and runs a dense
(linear model) pass over the buffer; a second periodic task captures snapshots.

All state lives on the RealTimeLearningSystem instance. Three locks guard it:

- ``_buffer_lock``: training buffer, touched keys, staged sparse updates
- ``_model_lock``: dense weights and momentum (always taken after the buffer lock)
- ``_sync_lock``: at most one sync pass at a time, never waited on
"""

import threading
import time
from dataclasses import asdict, dataclass, replace
from typing import Callable, Dict, List, Optional, Sequence, Set

from util.logging import logger

from ..vector.store import IEmbeddingStore
from .buffer import (
    TouchedKeyTracker,
    TrainingBuffer,
    TrainingSample,
    calculate_sample_weight,
    get_engagement_score,
    is_high_value_signal,
)
from .config import LearningConfig, is_heartbeat_enabled
from .dense import DenseParameterLearner
from .features import FeatureVector
from .heartbeat import Heartbeat
from .snapshots import ParameterSnapshot, SnapshotStore
from .sparse import ParameterUpdate, SparseUpdateEngine

SYNC_TASK = "incremental_sync"
SNAPSHOT_TASK = "snapshot"


@dataclass
class SyncStats:
    """Counters from the most recent sync pass plus running totals."""
    last_sync_time: float = 0.0
    next_sync_time: float = 0.0
    touched_keys_count: int = 0
    sparse_updates_count: int = 0
    dense_updates_count: int = 0
    sync_duration_ms: float = 0.0
    failure_count: int = 0
    success_count: int = 0
    dropped_engagements: int = 0

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


class RealTimeLearningSystem:
    """Online learner over an embedding store with periodic incremental sync."""

    def __init__(
        self,
        store: IEmbeddingStore,
        config: Optional[LearningConfig] = None,
        heartbeat: Optional[Heartbeat] = None,
        rng=None,
        clock: Callable[[], float] = time.time,
        initial_weights: Optional[Dict[str, float]] = None,
        name: str = "paramsync",
    ):
        """
        Initialize the learning system and register its periodic tasks.

        Args:
            store: Embedding store holding the sparse parameters
            config: Learning configuration, defaults from the environment
            heartbeat: Scheduler to register sync/snapshot tasks on; when omitted
                the engine creates and owns one, starting it if HEARTBEAT_ENABLED
            rng: Noise source for sparse updates (numpy Generator or compatible)
            clock: Wall clock in epoch seconds used for sample and stats timestamps
            initial_weights: Overrides for the default dense model weights
            name: Prefix for heartbeat task names
        """
        self.config = config or LearningConfig()
        self.store = store
        self.name = name
        self._clock = clock

        self._buffer = TrainingBuffer(self.config.max_training_buffer)
        self._touched = TouchedKeyTracker()
        self._dense = DenseParameterLearner(
            learning_rate=self.config.learning_rate,
            momentum_decay=self.config.momentum_decay,
            gradient_clipping=self.config.gradient_clipping,
            initial_weights=initial_weights,
        )
        self._sparse = SparseUpdateEngine(store, self.config.learning_rate, rng=rng, clock=clock)
        self._snapshots = SnapshotStore(self.config.max_snapshots, self.config.snapshot_dir)
        self._stats = SyncStats()

        self._buffer_lock = threading.Lock()
        self._model_lock = threading.RLock()
        self._sync_lock = threading.Lock()
        self._stats_lock = threading.Lock()

        self._owns_heartbeat = heartbeat is None
        self.heartbeat = heartbeat if heartbeat is not None else Heartbeat()

        self._start_periodic_tasks()
        if self._owns_heartbeat and is_heartbeat_enabled():
            self.heartbeat.start()

    # Task names

    @property
    def sync_task_name(self) -> str:
        return f"{self.name}.{SYNC_TASK}"

    @property
    def snapshot_task_name(self) -> str:
        return f"{self.name}.{SNAPSHOT_TASK}"

    def _start_periodic_tasks(self):
        self.heartbeat.register_task(self.sync_task_name, self.config.sync_interval_sec, self.perform_incremental_sync)
        self.heartbeat.register_task(self.snapshot_task_name, self.config.snapshot_interval_sec, self._periodic_snapshot)

        with self._stats_lock:
            self._stats.next_sync_time = self._clock() + self.config.sync_interval_sec

    # Engagement ingestion

    def record_engagement(self, features: FeatureVector, engagement_type: str) -> bool:
        """
        Buffer an engagement and track the entities it touches.

        High-value engagements (reply, renote, follow, bookmark) are also
        learned from immediately. Returns False when the buffer lock could not
        be acquired within ``buffer_lock_timeout_sec`` and the event was dropped.
        """
        if not self._buffer_lock.acquire(timeout=self.config.buffer_lock_timeout_sec):
            with self._stats_lock:
                self._stats.dropped_engagements += 1
                dropped = self._stats.dropped_engagements
            logger.log_engagement_dropped(engagement_type, self.config.buffer_lock_timeout_sec, dropped)
            return False

        try:
            engagement_score = get_engagement_score(engagement_type)
            timestamp = self._clock()
            sample = TrainingSample(
                features=features,
                engagement=engagement_score,
                timestamp=timestamp,
                weight=calculate_sample_weight(engagement_score, timestamp),
            )

            self._buffer.append(sample)
            self._touched.track(features)

            immediate = is_high_value_signal(engagement_type)
            if immediate:
                self._perform_immediate_learning(sample)

            touched_count = len(self._touched)
        finally:
            self._buffer_lock.release()

        with self._stats_lock:
            self._stats.touched_keys_count = touched_count

        logger.log_engagement(engagement_type, features.user_id, features.author_id, immediate)
        return True

    def _perform_immediate_learning(self, sample: TrainingSample):
        # Caller holds the buffer lock
        with self._model_lock:
            error = sample.engagement - self._dense.predict(sample.features)

        self._sparse.update_from_sample(sample, error)

        with self._model_lock:
            self._dense.update([sample])

    # Sparse and dense operations

    def update_embedding(self, entity_type: str, entity_id: str, gradient: float) -> Optional[ParameterUpdate]:
        """Apply a scalar gradient to one embedding and stage it for the next sync."""
        with self._buffer_lock:
            update = self._sparse.update_embedding(entity_type, entity_id, gradient)
            if update is not None:
                self._touched.add(update.key)
            return update

    def update_dense_parameters(self, samples: Sequence[TrainingSample]) -> Dict[str, float]:
        """Run one momentum step over ``samples``; returns the clipped gradients."""
        with self._model_lock:
            return self._dense.update(samples)

    def predict(self, features: FeatureVector) -> float:
        """Predict engagement in (0, 1) with the current dense weights."""
        with self._model_lock:
            return self._dense.predict(features)

    # Synchronization

    def perform_incremental_sync(self) -> Optional[SyncStats]:
        """
        Push staged sparse updates and run a dense pass over the buffer.

        Non-reentrant: while a pass is running, further calls log a warning and
        return None without touching any counter. On success returns a copy of
        the new stats. On failure the failure counter is incremented, touched
        keys and staged updates are kept for the next pass, and the exception
        propagates.
        """
        if not self._sync_lock.acquire(blocking=False):
            logger.log_sync_skipped("Sync already in progress")
            return None

        try:
            started_at = self._clock()
            start = time.monotonic()

            with self._buffer_lock:
                touched_at_start = self._touched.snapshot()
                pending_at_start = dict(self._sparse.pending)
                samples = self._buffer.samples()

            try:
                sparse_updates = 0
                dense_updates = 0

                if self.config.enable_sparse_updates and touched_at_start:
                    sparse_updates = self._sparse.flush(pending_at_start)

                if self.config.enable_dense_updates and samples:
                    dense_updates = self._sync_dense_parameters(samples)
            except Exception as e:
                with self._stats_lock:
                    self._stats.failure_count += 1
                    failure_count = self._stats.failure_count
                logger.log_sync_failure(e, failure_count)
                raise

            duration_ms = (time.monotonic() - start) * 1000

            with self._buffer_lock:
                self._clear_synced_state(touched_at_start, pending_at_start)

            with self._stats_lock:
                self._stats = replace(
                    self._stats,
                    last_sync_time=started_at,
                    next_sync_time=started_at + self.config.sync_interval_sec,
                    touched_keys_count=len(touched_at_start),
                    sparse_updates_count=sparse_updates,
                    dense_updates_count=dense_updates,
                    sync_duration_ms=duration_ms,
                    success_count=self._stats.success_count + 1,
                )
                result = replace(self._stats)

            logger.log_sync_pass(sparse_updates, dense_updates, duration_ms, len(touched_at_start))
            return result
        finally:
            self._sync_lock.release()

    def _sync_dense_parameters(self, samples: List[TrainingSample]) -> int:
        with self._model_lock:
            self._dense.update(samples)
            return len(self._dense)

    def _clear_synced_state(self, touched_at_start: Set[str], pending_at_start: Dict[str, ParameterUpdate]):
        # Caller holds the buffer lock
        if self.config.sync_clear_mode == "all":
            self._touched.clear()
            self._sparse.clear()
            return

        self._touched.discard_all(touched_at_start)
        self._sparse.discard(pending_at_start)
        # Keys restaged during the pass stay touched
        for update in self._sparse.pending.values():
            self._touched.add(update.key)

    @property
    def sync_in_progress(self) -> bool:
        return self._sync_lock.locked()

    # Snapshots

    def create_snapshot(self, description: Optional[str] = None) -> ParameterSnapshot:
        """Capture dense weights, momentum, store stats and sync stats."""
        with self._model_lock:
            weights = self._dense.get_weights()
            momentum = self._dense.get_momentum()

        return self._snapshots.create(
            timestamp=self._clock(),
            model_weights=weights,
            momentum=momentum,
            embedding_stats=self.store.get_system_stats(),
            sync_stats=self.get_sync_stats().to_dict(),
            description=description,
        )

    def _periodic_snapshot(self):
        self.create_snapshot("periodic-snapshot")

    def get_snapshots(self) -> List[ParameterSnapshot]:
        """Return retained snapshots, newest first."""
        return self._snapshots.list_snapshots()

    # Read-only views

    def get_sync_stats(self) -> SyncStats:
        with self._stats_lock:
            return replace(self._stats)

    def get_model_weights(self) -> Dict[str, float]:
        with self._model_lock:
            return self._dense.get_weights()

    def get_momentum(self) -> Dict[str, float]:
        with self._model_lock:
            return self._dense.get_momentum()

    def get_touched_keys(self) -> Set[str]:
        with self._buffer_lock:
            return self._touched.snapshot()

    def get_pending_updates(self) -> Dict[str, ParameterUpdate]:
        with self._buffer_lock:
            return dict(self._sparse.pending)

    def get_training_samples(self) -> List[TrainingSample]:
        with self._buffer_lock:
            return self._buffer.samples()

    def buffer_size(self) -> int:
        with self._buffer_lock:
            return len(self._buffer)

    # Teardown

    def destroy(self):
        """Cancel periodic tasks and clear in-memory state. Safe to call repeatedly."""
        self.heartbeat.unregister_task(self.sync_task_name)
        self.heartbeat.unregister_task(self.snapshot_task_name)
        if self._owns_heartbeat:
            self.heartbeat.stop()

        with self._buffer_lock:
            self._buffer.clear()
            self._touched.clear()
            self._sparse.clear()

        self._snapshots.clear()
