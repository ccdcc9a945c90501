"""
Fault-tolerant sync - retries incremental sync passes with exponential backoff,
verifies health after each pass and keeps an operation history for health reporting.
"""

import time
import uuid
from collections import deque
from dataclasses import asdict, dataclass
from typing import Callable, Dict, List, Optional, Tuple

from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from util.logging import logger

from .config import (
    SYNC_BACKOFF_MULTIPLIER,
    SYNC_FAILURE_THRESHOLD,
    SYNC_MAX_DURATION_MS,
    SYNC_MAX_RETRIES,
    SYNC_MAX_STORE_MEMORY_MB,
    SYNC_RETRY_DELAY_MS,
)
from .learning import RealTimeLearningSystem, SyncStats

HEALTH_WINDOW = 10


@dataclass
class SyncOperation:
    """Record of one (possibly retried) sync request."""
    id: str
    timestamp: float
    status: str  # success, failed, skipped
    attempts: int = 0
    parameters_changed: int = 0
    duration_ms: float = 0.0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


@dataclass
class SyncHealth:
    is_healthy: bool
    consecutive_failures: int
    last_success_time: float
    last_failure_time: float
    success_rate: float
    average_sync_time_ms: float
    current_version: int
    last_snapshot_time: float

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


class SyncError(Exception):
    """Raised when every sync attempt failed."""
    pass


class SyncHealthError(SyncError):
    """Raised inside an attempt when the post-sync health check fails."""
    pass


class FaultTolerantSync:
    """Wraps a learning system's sync pass with retries, health checks and bookkeeping."""

    def __init__(
        self,
        engine: RealTimeLearningSystem,
        max_retries: int = SYNC_MAX_RETRIES,
        retry_delay_ms: float = SYNC_RETRY_DELAY_MS,
        backoff_multiplier: float = SYNC_BACKOFF_MULTIPLIER,
        failure_threshold: int = SYNC_FAILURE_THRESHOLD,
        max_sync_duration_ms: float = SYNC_MAX_DURATION_MS,
        max_store_memory_mb: Optional[float] = SYNC_MAX_STORE_MEMORY_MB,
        history_limit: int = 50,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ):
        if max_retries < 1:
            raise ValueError(f"max_retries must be >= 1: {max_retries}")

        self.engine = engine
        self.max_retries = max_retries
        self.retry_delay_ms = retry_delay_ms
        self.backoff_multiplier = backoff_multiplier
        self.failure_threshold = failure_threshold
        self.max_sync_duration_ms = max_sync_duration_ms
        self.max_store_memory_mb = max_store_memory_mb
        self._sleep = sleep
        self._clock = clock
        self._history = deque(maxlen=history_limit)

        self.current_version = 1
        self.consecutive_failures = 0
        self.last_success_time = 0.0
        self.last_failure_time = 0.0

    def _retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=self.retry_delay_ms / 1000, exp_base=self.backoff_multiplier),
            retry=retry_if_exception_type(Exception),
            after=self._log_failed_attempt,
            sleep=self._sleep,
            reraise=False,
        )

    def retry_delay_sec(self, attempt: int) -> float:
        """Backoff delay after the given (1-based) failed attempt, as waited by tenacity."""
        return self.retry_delay_ms / 1000 * (self.backoff_multiplier ** (attempt - 1))

    def _log_failed_attempt(self, retry_state: RetryCallState):
        logger.warning(f"Sync attempt {retry_state.attempt_number} failed: {retry_state.outcome.exception()}")

    def perform_incremental_sync(self) -> SyncOperation:
        """
        Run the engine's sync pass, retrying failures with exponential backoff.

        A pass that completes but fails ``verify_sync_health`` counts as a
        failed attempt.

        Returns:
            SyncOperation: success, or skipped when another pass was running

        Raises:
            SyncError: every attempt failed; chained to the last error
        """
        operation = SyncOperation(
            id=f"op-{uuid.uuid4().hex[:12]}",
            timestamp=self._clock(),
            status="pending"
        )
        start = time.monotonic()
        stats = None

        try:
            for attempt in self._retrying():
                with attempt:
                    operation.attempts = attempt.retry_state.attempt_number
                    stats = self._attempt_sync()
        except RetryError as e:
            last_error = e.last_attempt.exception()
            operation.status = "failed"
            operation.error = str(last_error)
            operation.duration_ms = (time.monotonic() - start) * 1000
            self._on_sync_failure(operation)
            self._history.append(operation)
            raise SyncError(f"Sync failed after {self.max_retries} attempts: {last_error}") from last_error

        operation.duration_ms = (time.monotonic() - start) * 1000
        if stats is None:
            operation.status = "skipped"
        else:
            operation.status = "success"
            operation.parameters_changed = stats.sparse_updates_count + stats.dense_updates_count
            self._on_sync_success(operation)
        self._history.append(operation)
        return operation

    def _attempt_sync(self) -> Optional[SyncStats]:
        stats = self.engine.perform_incremental_sync()
        if stats is None:
            return None

        is_healthy, issues = self.verify_sync_health()
        if not is_healthy:
            raise SyncHealthError(f"Post-sync health check failed: {'; '.join(issues)}")
        return stats

    def verify_sync_health(self) -> Tuple[bool, List[str]]:
        """
        Check the embedding store and the last pass after a sync.

        Returns:
            (is_healthy, issues): issues is empty when healthy
        """
        issues = []

        try:
            store_stats = self.engine.store.get_system_stats()
            if not store_stats.get("overall_health", True):
                issues.append("Embedding system unhealthy")

            memory_mb = store_stats.get("memory_usage_mb", 0.0)
            if self.max_store_memory_mb is not None and memory_mb > self.max_store_memory_mb:
                issues.append(f"Memory usage too high: {memory_mb:.2f}MB")

            sync_stats = self.engine.get_sync_stats()
            if sync_stats.sync_duration_ms > self.max_sync_duration_ms:
                issues.append(f"Sync duration too long: {sync_stats.sync_duration_ms:.2f}ms")
        except Exception as e:
            issues.append(f"Health check failed: {e}")

        return not issues, issues

    def _on_sync_success(self, operation: SyncOperation):
        self.consecutive_failures = 0
        self.last_success_time = operation.timestamp
        self.current_version += 1
        logger.info(
            f"Sync successful: {operation.id} ({operation.parameters_changed} parameters, "
            f"{operation.duration_ms:.2f}ms, {operation.attempts} attempt(s))"
        )

    def _on_sync_failure(self, operation: SyncOperation):
        self.consecutive_failures += 1
        self.last_failure_time = operation.timestamp
        logger.error(f"Sync failed: {operation.id} - {operation.error}")

    def get_sync_history(self, limit: int = 50) -> List[SyncOperation]:
        """Return recorded operations, newest first."""
        operations = list(self._history)[-limit:]
        operations.reverse()
        return operations

    def get_sync_health(self) -> SyncHealth:
        """Summarize the recent sync record."""
        recent = [op for op in list(self._history)[-HEALTH_WINDOW:] if op.status != "skipped"]
        successful = [op for op in recent if op.status == "success"]

        success_rate = len(successful) / len(recent) if recent else 1.0
        average_time = (
            sum(op.duration_ms for op in successful) / len(successful) if successful else 0.0
        )

        latest_snapshot = self.engine.get_snapshots()
        last_snapshot_time = latest_snapshot[0].timestamp if latest_snapshot else 0.0

        return SyncHealth(
            is_healthy=self.consecutive_failures < self.failure_threshold,
            consecutive_failures=self.consecutive_failures,
            last_success_time=self.last_success_time,
            last_failure_time=self.last_failure_time,
            success_rate=success_rate,
            average_sync_time_ms=average_time,
            current_version=self.current_version,
            last_snapshot_time=last_snapshot_time
        )
