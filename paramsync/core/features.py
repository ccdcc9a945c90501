"""
Ranking feature vector consumed by the learning engine.
Produced upstream by the feature extraction pipeline; validated here on entry.
"""

import math
from typing import Dict, List, Tuple

from pydantic import BaseModel, ConfigDict, field_validator

# Dense feature order is fixed: gradients and weight updates iterate in this order.
DENSE_FEATURE_NAMES = (
    "user_engagement_rate",
    "content_length_normalized",
    "content_age_hours",
    "social_proof_score",
    "author_user_affinity",
    "topic_similarity_score",
    "temporal_match_score",
    "community_size_factor",
    "personalization_strength",
    "discovery_boost",
)


class FeatureVector(BaseModel):
    model_config = ConfigDict(frozen=True)

    # Sparse features
    user_id: str
    author_id: str
    content_topics: Tuple[str, ...] = ()

    # Dense features
    user_engagement_rate: float = 0.0
    content_length_normalized: float = 0.0
    content_age_hours: float = 0.0
    social_proof_score: float = 0.0
    author_user_affinity: float = 0.0
    topic_similarity_score: float = 0.0
    temporal_match_score: float = 0.0
    community_size_factor: float = 0.0
    personalization_strength: float = 0.0
    discovery_boost: float = 0.0

    @field_validator('user_id', 'author_id')
    @classmethod
    def id_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('entity id cannot be empty')
        return v

    @field_validator(*DENSE_FEATURE_NAMES)
    @classmethod
    def feature_must_be_finite(cls, v):
        if not math.isfinite(v):
            raise ValueError('dense feature must be finite')
        return v

    def dense_values(self) -> Dict[str, float]:
        """Return the dense features keyed by name, in model order."""
        return {name: getattr(self, name) for name in DENSE_FEATURE_NAMES}

    def entity_keys(self) -> List[str]:
        """Return the touched-key strings this sample references."""
        keys = [f"user:{self.user_id}", f"author:{self.author_id}"]
        keys.extend(f"topic:{topic}" for topic in self.content_topics)
        return keys
