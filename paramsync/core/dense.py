"""
Dense parameter learner - linear ranking model trained with momentum gradient descent.
"""

import math
from typing import Dict, Optional, Sequence

from .buffer import TrainingSample
from .features import DENSE_FEATURE_NAMES, FeatureVector

DEFAULT_MODEL_WEIGHTS = {
    "user_engagement_rate": 0.25,
    "content_length_normalized": 0.15,
    "content_age_hours": -0.10,  # Negative because newer is better
    "social_proof_score": 0.20,
    "author_user_affinity": 0.30,
    "topic_similarity_score": 0.25,
    "temporal_match_score": 0.10,
    "community_size_factor": 0.05,
    "personalization_strength": 0.15,
    "discovery_boost": 0.10,
}

SIGMOID_CLAMP = 10.0


def sigmoid(x: float) -> float:
    """Logistic sigmoid with the input clamped to [-10, 10]."""
    x = max(-SIGMOID_CLAMP, min(SIGMOID_CLAMP, x))
    return 1 / (1 + math.exp(-x))


def clip_gradient(gradient: float, limit: float) -> float:
    return max(-limit, min(limit, gradient))


class DenseParameterLearner:
    """
    Linear model over the ten dense ranking features.

    Weights and momentum always share the same key set. Not thread-safe;
    the engine serializes access with its model lock.
    """

    def __init__(
        self,
        learning_rate: float = 0.01,
        momentum_decay: float = 0.9,
        gradient_clipping: float = 1.0,
        initial_weights: Optional[Dict[str, float]] = None,
    ):
        weights = dict(DEFAULT_MODEL_WEIGHTS)
        if initial_weights:
            unknown = set(initial_weights) - set(DENSE_FEATURE_NAMES)
            if unknown:
                raise ValueError(f"Unknown dense features: {sorted(unknown)}")
            weights.update(initial_weights)

        self.learning_rate = learning_rate
        self.momentum_decay = momentum_decay
        self.gradient_clipping = gradient_clipping
        self.weights: Dict[str, float] = {name: float(weights[name]) for name in DENSE_FEATURE_NAMES}
        self.momentum: Dict[str, float] = {name: 0.0 for name in DENSE_FEATURE_NAMES}

    def predict(self, features: FeatureVector) -> float:
        """Predict engagement in (0, 1) for a feature vector."""
        score = 0.0
        for name, value in features.dense_values().items():
            score += value * self.weights[name]
        return sigmoid(score)

    def update(self, samples: Sequence[TrainingSample]) -> Dict[str, float]:
        """
        Run one mini-batch momentum step over ``samples``.

        All predictions use the weights from before the step. Returns the
        clipped average gradient per feature (empty for an empty batch).
        """
        if not samples:
            return {}

        gradients = {name: 0.0 for name in DENSE_FEATURE_NAMES}

        for sample in samples:
            prediction = self.predict(sample.features)
            weighted_error = (sample.engagement - prediction) * sample.weight
            for name, value in sample.features.dense_values().items():
                gradients[name] += weighted_error * value

        clipped_gradients = {}
        for name in DENSE_FEATURE_NAMES:
            avg_gradient = gradients[name] / len(samples)
            clipped = clip_gradient(avg_gradient, self.gradient_clipping)

            self.momentum[name] = (
                self.momentum_decay * self.momentum[name]
                + (1 - self.momentum_decay) * clipped
            )
            self.weights[name] += self.learning_rate * self.momentum[name]
            clipped_gradients[name] = clipped

        return clipped_gradients

    def get_weights(self) -> Dict[str, float]:
        return dict(self.weights)

    def get_momentum(self) -> Dict[str, float]:
        return dict(self.momentum)

    def __len__(self) -> int:
        return len(self.weights)
