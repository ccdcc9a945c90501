"""
Tests for the training buffer, engagement scoring and touched-key tracking.
"""

import math

import pytest

from paramsync.core.buffer import (
    DEFAULT_ENGAGEMENT_SCORE,
    TouchedKeyTracker,
    TrainingBuffer,
    TrainingSample,
    calculate_sample_weight,
    get_engagement_score,
    is_high_value_signal,
)

from conftest import make_features


def _sample(user_id="u1", engagement=0.1, timestamp=0.0, weight=1.0):
    return TrainingSample(
        features=make_features(user_id=user_id),
        engagement=engagement,
        timestamp=timestamp,
        weight=weight
    )


class TestEngagementScoring:
    """Test the static engagement score table."""

    @pytest.mark.parametrize("engagement_type,score", [
        ("view", 0.1),
        ("reaction", 0.3),
        ("reply", 0.7),
        ("renote", 0.5),
        ("follow", 0.8),
        ("bookmark", 0.6),
    ])
    def test_known_scores(self, engagement_type, score):
        assert get_engagement_score(engagement_type) == score

    def test_unknown_type_uses_default(self):
        assert get_engagement_score("poke") == DEFAULT_ENGAGEMENT_SCORE == 0.1

    def test_high_value_signals(self):
        assert all(is_high_value_signal(t) for t in ["reply", "renote", "follow", "bookmark"])
        assert not any(is_high_value_signal(t) for t in ["view", "reaction", "poke"])


class TestSampleWeight:
    """Test recency/intensity weighting."""

    def test_weight_at_creation(self):
        """Age zero leaves only the engagement term: 1 + 0.7."""
        assert calculate_sample_weight(0.7, 5000.0) == pytest.approx(1.7)

    def test_weight_decays_with_age(self):
        weight = calculate_sample_weight(0.7, 0.0, now=3600.0)
        assert weight == pytest.approx(1.7 * math.exp(-1))

    def test_future_timestamp_treated_as_age_zero(self):
        assert calculate_sample_weight(0.5, 100.0, now=50.0) == pytest.approx(1.5)


class TestTrainingBuffer:
    """Test FIFO eviction and bounds."""

    def test_append_within_capacity(self):
        buffer = TrainingBuffer(max_size=2)
        assert buffer.append(_sample("u1")) is None
        assert len(buffer) == 1

    def test_evicts_oldest_first(self):
        buffer = TrainingBuffer(max_size=2)
        first = _sample("u1")
        buffer.append(first)
        buffer.append(_sample("u2"))

        evicted = buffer.append(_sample("u3"))

        assert evicted is first
        assert len(buffer) == 2
        assert [s.features.user_id for s in buffer.samples()] == ["u2", "u3"]
        assert buffer.evicted_count == 1

    def test_never_exceeds_capacity(self):
        buffer = TrainingBuffer(max_size=5)
        for i in range(50):
            buffer.append(_sample(f"u{i}"))
            assert len(buffer) <= 5
        assert [s.features.user_id for s in buffer] == [f"u{i}" for i in range(45, 50)]

    def test_samples_returns_copy(self):
        buffer = TrainingBuffer(max_size=2)
        buffer.append(_sample())
        buffer.samples().clear()
        assert len(buffer) == 1

    def test_invalid_capacity(self):
        with pytest.raises(ValueError, match="Buffer size must be >= 1"):
            TrainingBuffer(max_size=0)

    def test_samples_are_immutable(self):
        sample = _sample()
        with pytest.raises(AttributeError):
            sample.weight = 2.0


class TestTouchedKeyTracker:
    """Test touched-key tracking."""

    def test_track_features(self):
        tracker = TouchedKeyTracker()
        tracker.track(make_features("u1", "a1", ("sports", "music")))

        assert tracker.snapshot() == {"user:u1", "author:a1", "topic:sports", "topic:music"}

    def test_keys_are_unique(self):
        tracker = TouchedKeyTracker()
        tracker.track(make_features())
        tracker.track(make_features())
        assert len(tracker) == 3

    def test_discard_all_keeps_other_keys(self):
        tracker = TouchedKeyTracker()
        tracker.track(make_features("u1", "a1", ()))
        started = tracker.snapshot()
        tracker.add("user:u2")

        tracker.discard_all(started)

        assert tracker.snapshot() == {"user:u2"}
        assert "user:u1" not in tracker
