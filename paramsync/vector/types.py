"""
Embedding store types - per-entity vectors keyed by (entity type, entity id).
"""

from dataclasses import asdict, dataclass
from typing import Dict, Optional

ENTITY_TYPES = ("user", "author", "topic", "content")


@dataclass
class EmbeddingTableStats:
    """Counters for a single embedding table."""

    table_name: str
    """Entity type served by this table"""

    dimension: int
    """Length of every vector in the table"""

    total_entries: int = 0
    capacity: Optional[int] = None
    """Maximum number of entries, None when unbounded"""

    hits: int = 0
    misses: int = 0
    writes: int = 0
    rejected_writes: int = 0

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0

    def to_dict(self) -> Dict[str, object]:
        data = asdict(self)
        data["hit_rate"] = self.hit_rate
        return data
