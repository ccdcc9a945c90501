"""
Structured operation logging for the online learning engine.
Every engagement, sync pass, snapshot and heartbeat task is logged as an operation record.
"""

import logging
from typing import Any, Dict

class StructuredLogger:
    """Structured logger for learning, synchronization and heartbeat operations."""

    def __init__(self, name: str = "paramsync"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None, level: int = logging.INFO):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        self.logger.log(level, message)

    def log_engagement(self, engagement_type: str, user_id: str, author_id: str, immediate: bool = False):
        """Log a recorded engagement."""
        details = {
            "engagement_type": engagement_type,
            "user_id": user_id,
            "author_id": author_id,
            "immediate_learning": immediate
        }
        self.log_operation("engagement.recorded", "success", details, level=logging.DEBUG)

    def log_engagement_dropped(self, engagement_type: str, timeout_sec: float, dropped_total: int):
        """Log an engagement dropped because the training buffer stayed locked."""
        details = {
            "engagement_type": engagement_type,
            "lock_timeout_sec": timeout_sec,
            "dropped_total": dropped_total,
            "message": "Training buffer locked - dropping engagement record"
        }
        self.log_operation("engagement.dropped", "dropped", details, level=logging.WARNING)

    def log_sync_pass(self, sparse_updates: int, dense_updates: int, duration_ms: float, touched_keys: int):
        """Log a completed incremental sync pass."""
        details = {
            "sparse_updates": sparse_updates,
            "dense_updates": dense_updates,
            "touched_keys": touched_keys,
            "duration_ms": round(duration_ms, 2),
            "message": f"Incremental sync completed: {sparse_updates} sparse + {dense_updates} dense updates in {duration_ms:.2f}ms"
        }
        self.log_operation("sync.incremental", "success", details)

    def log_sync_failure(self, error: Exception, failure_count: int):
        """Log a failed incremental sync pass."""
        details = {
            "error": str(error)[:100],
            "error_type": type(error).__name__,
            "failure_count": failure_count
        }
        self.log_operation("sync.incremental", "failed", details, level=logging.ERROR)

    def log_sync_skipped(self, reason: str):
        """Log a sync request that did not run."""
        self.log_operation("sync.incremental", "skipped", {"reason": reason}, level=logging.WARNING)

    def log_sparse_sync_failure(self, key: str, error: Exception):
        """Log a single parameter that could not be pushed to the embedding store."""
        details = {"key": key, "error": str(error)[:100]}
        self.log_operation("sync.sparse_parameter", "failed", details, level=logging.WARNING)

    def log_snapshot(self, snapshot_id: str, version: int, weights_count: int, tables_count: int, description: str = None):
        """Log snapshot creation."""
        details = {
            "snapshot_id": snapshot_id,
            "version": version,
            "model_weights": weights_count,
            "embedding_tables": tables_count
        }
        if description:
            details["description"] = description

        self.log_operation("snapshot.created", "success", details)

    def log_heartbeat_task(self, task_name: str, start_time: float, end_time: float, status: str = "success", details: Dict[str, Any] = None):
        """Log heartbeat task execution."""
        duration_ms = round((end_time - start_time) * 1000, 2)
        log_details = {"duration_ms": duration_ms}
        if details:
            log_details.update(details)
        elif status == "success":
            log_details["message"] = f"Heartbeat task '{task_name}' completed in {duration_ms}ms"
        elif status == "failed":
            log_details["message"] = f"Heartbeat task '{task_name}' failed after {duration_ms}ms"

        level = logging.ERROR if status == "failed" else logging.DEBUG
        self.log_operation(f"heartbeat.{task_name}", status, log_details, level=level)

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)

# Global logger instance
logger = StructuredLogger()
