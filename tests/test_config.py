"""
Learning configuration defaults, aliases and validation.
"""

import pytest
from pydantic import ValidationError
from unittest.mock import patch

from paramsync.core.config import LearningConfig, validate_learning_config


class TestLearningConfigDefaults:
    """Test environment-derived defaults."""

    def test_defaults(self):
        config = LearningConfig()

        assert config.sync_interval_ms == 300000
        assert config.max_training_buffer == 1000
        assert config.learning_rate == 0.01
        assert config.momentum_decay == 0.9
        assert config.gradient_clipping == 1.0
        assert config.enable_sparse_updates is True
        assert config.enable_dense_updates is True
        assert config.snapshot_interval_ms == 86400000
        assert config.sync_clear_mode == "started"

    def test_interval_seconds(self):
        config = LearningConfig(sync_interval_ms=1500, snapshot_interval_ms=60000)
        assert config.sync_interval_sec == 1.5
        assert config.snapshot_interval_sec == 60.0

    def test_camel_case_aliases(self):
        config = LearningConfig(syncIntervalMs=1000, maxTrainingBuffer=10, enableDenseUpdates=False)

        assert config.sync_interval_ms == 1000
        assert config.max_training_buffer == 10
        assert config.enable_dense_updates is False

    def test_dump_by_alias(self):
        data = LearningConfig(learning_rate=0.05).model_dump(by_alias=True)
        assert data["learningRate"] == 0.05
        assert "gradientClipping" in data

    def test_frozen(self):
        config = LearningConfig()
        with pytest.raises(ValidationError):
            config.learning_rate = 0.5


class TestLearningConfigValidation:
    """Test invalid field values are rejected."""

    @pytest.mark.parametrize("field,value", [
        ("sync_interval_ms", 0),
        ("snapshot_interval_ms", -1),
        ("max_training_buffer", 0),
        ("max_snapshots", 0),
        ("learning_rate", 0.0),
        ("gradient_clipping", -1.0),
        ("momentum_decay", 1.0),
        ("momentum_decay", -0.1),
        ("buffer_lock_timeout_sec", -0.5),
        ("sync_clear_mode", "sometimes"),
    ])
    def test_invalid_values(self, field, value):
        with pytest.raises(ValidationError):
            LearningConfig(**{field: value})

    def test_zero_momentum_allowed(self):
        assert LearningConfig(momentum_decay=0.0).momentum_decay == 0.0

    def test_clear_mode_all_allowed(self):
        assert LearningConfig(sync_clear_mode="all").sync_clear_mode == "all"


class TestModuleSettings:
    """Test validation of the environment-level settings."""

    def test_defaults_are_valid(self):
        assert validate_learning_config() == []

    @patch('paramsync.core.config.LEARNING_RATE', 0.0)
    @patch('paramsync.core.config.SYNC_CLEAR_MODE', "never")
    def test_reports_issues(self):
        issues = validate_learning_config()
        assert "LEARNING_RATE must be > 0" in issues
        assert "Invalid SYNC_CLEAR_MODE: never" in issues
        assert len(issues) == 2

    @patch('paramsync.core.config.MOMENTUM_DECAY', 1.5)
    def test_reports_momentum_issue(self):
        assert validate_learning_config() == ["MOMENTUM_DECAY must be in [0, 1)"]
