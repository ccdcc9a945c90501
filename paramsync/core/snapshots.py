"""
Parameter snapshots - point-in-time diagnostic captures of model state.
Snapshots are advisory: nothing in the engine reads them back for recovery.
"""

import hashlib
import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from util.logging import logger


@dataclass
class ParameterSnapshot:
    """Captured dense model state plus store and sync statistics."""
    id: str
    timestamp: float
    version: int
    model_weights: Dict[str, float]
    momentum: Dict[str, float]
    embedding_stats: Dict[str, Any]
    sync_stats: Dict[str, Any]
    checksum: str = ""
    description: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert snapshot to dictionary for JSON serialization."""
        data = asdict(self)
        data["created_at"] = datetime.fromtimestamp(self.timestamp, tz=timezone.utc).isoformat()
        return data


class SnapshotError(Exception):
    """Custom exception for snapshot operations."""
    pass


def calculate_checksum(model_weights: Dict[str, float], embedding_stats: Dict[str, Any]) -> str:
    """Calculate SHA-256 checksum over the weights and embedding stats."""
    data = json.dumps(
        {"model_weights": model_weights, "embedding_stats": embedding_stats},
        sort_keys=True,
        default=str
    )
    return hashlib.sha256(data.encode()).hexdigest()


class SnapshotStore:
    """Keeps the most recent snapshots in memory, optionally mirroring them to JSON files."""

    def __init__(self, max_snapshots: int = 7, snapshot_dir: Optional[str] = None):
        if max_snapshots < 1:
            raise ValueError(f"max_snapshots must be >= 1: {max_snapshots}")
        self.max_snapshots = max_snapshots
        self.snapshot_dir = Path(snapshot_dir) if snapshot_dir else None
        self._snapshots: Dict[str, ParameterSnapshot] = {}
        self._version = 0

    def create(
        self,
        timestamp: float,
        model_weights: Dict[str, float],
        momentum: Dict[str, float],
        embedding_stats: Dict[str, Any],
        sync_stats: Dict[str, Any],
        description: Optional[str] = None,
    ) -> ParameterSnapshot:
        """Build, store and (optionally) export a snapshot."""
        self._version += 1
        snapshot = ParameterSnapshot(
            id=f"snapshot-{int(timestamp * 1000)}-{self._version}",
            timestamp=timestamp,
            version=self._version,
            model_weights=dict(model_weights),
            momentum=dict(momentum),
            embedding_stats=embedding_stats,
            sync_stats=dict(sync_stats),
            description=description,
            metadata={
                "created_by": "paramsync",
                "total_entries": embedding_stats.get("total_entries", 0),
                "updates_in_last_sync": sync_stats.get("sparse_updates_count", 0)
                + sync_stats.get("dense_updates_count", 0)
            }
        )
        snapshot.checksum = calculate_checksum(snapshot.model_weights, snapshot.embedding_stats)

        self._snapshots[snapshot.id] = snapshot
        self._cleanup_old_snapshots()

        if self.snapshot_dir is not None:
            self._export(snapshot)

        logger.log_snapshot(
            snapshot.id,
            snapshot.version,
            len(snapshot.model_weights),
            len(embedding_stats.get("table_stats", {})),
            description
        )
        return snapshot

    def _export(self, snapshot: ParameterSnapshot) -> Path:
        try:
            self.snapshot_dir.mkdir(parents=True, exist_ok=True)
            path = self.snapshot_dir / f"{snapshot.id}.json"
            with open(path, "w", encoding="utf-8") as f:
                json.dump(snapshot.to_dict(), f, indent=2, default=str)
            return path
        except OSError as e:
            raise SnapshotError(f"Failed to write snapshot {snapshot.id}: {e}") from e

    def _cleanup_old_snapshots(self):
        snapshots = self.list_snapshots()
        for snapshot in snapshots[self.max_snapshots:]:
            del self._snapshots[snapshot.id]

        removed = len(snapshots) - self.max_snapshots
        if removed > 0:
            logger.debug(f"Cleaned up {removed} old snapshots")

    def verify(self, snapshot: ParameterSnapshot) -> bool:
        """Recompute the checksum and compare it with the recorded one."""
        return calculate_checksum(snapshot.model_weights, snapshot.embedding_stats) == snapshot.checksum

    def list_snapshots(self) -> List[ParameterSnapshot]:
        """Return snapshots newest first."""
        return sorted(self._snapshots.values(), key=lambda s: (s.timestamp, s.version), reverse=True)

    def latest(self) -> Optional[ParameterSnapshot]:
        snapshots = self.list_snapshots()
        return snapshots[0] if snapshots else None

    def get(self, snapshot_id: str) -> Optional[ParameterSnapshot]:
        return self._snapshots.get(snapshot_id)

    def clear(self):
        self._snapshots.clear()

    def __len__(self) -> int:
        return len(self._snapshots)
