"""
Tests for weight validation and the WeightManager accessor.
"""

import logging

import pytest

from churn_risk import DEFAULT_WEIGHTS, FACTOR_CATEGORIES
from churn_risk.errors import StorageError
from calibration import InMemoryWeightStore, WeightManager, validate_weights


class FailingStore(InMemoryWeightStore):
    """Store whose reads always fail."""

    def get_latest_version(self):
        raise StorageError("connection refused")


class TestValidateWeights:
    """Tests for weight map validation."""

    def test_defaults_are_valid(self):
        result = validate_weights(DEFAULT_WEIGHTS)
        assert result.is_valid
        assert result.errors == []

    def test_missing_category(self):
        """A map missing one category names it in the errors."""
        weights = dict(DEFAULT_WEIGHTS)
        del weights["tutor_consistency"]
        weights["student_engagement"] += 0.10

        result = validate_weights(weights)

        assert not result.is_valid
        assert any("tutor_consistency" in e for e in result.errors)
        assert result.errors[0] == "Missing required factors: tutor_consistency"

    def test_sum_must_be_one(self):
        weights = dict(DEFAULT_WEIGHTS, first_session_satisfaction=0.30)
        result = validate_weights(weights)

        assert not result.is_valid
        assert result.errors == ["Weights must sum to 1.0 (current sum: 1.050)"]

    def test_sum_within_tolerance(self):
        weights = dict(DEFAULT_WEIGHTS, first_session_satisfaction=0.2505)
        assert validate_weights(weights).is_valid

    def test_sum_outside_tolerance(self):
        weights = dict(DEFAULT_WEIGHTS, first_session_satisfaction=0.2515)
        assert not validate_weights(weights).is_valid

    @pytest.mark.parametrize("bad", [-0.1, 1.1])
    def test_out_of_range(self, bad):
        weights = dict(DEFAULT_WEIGHTS, tutor_consistency=bad)
        result = validate_weights(weights)

        assert not result.is_valid
        assert any(
            e.startswith("Invalid weight for tutor_consistency: must be between 0 and 1")
            for e in result.errors
        )

    @pytest.mark.parametrize("bad", ["0.1", None, True, float("nan")])
    def test_not_a_number(self, bad):
        weights = dict(DEFAULT_WEIGHTS, tutor_consistency=bad)
        result = validate_weights(weights)

        assert not result.is_valid
        assert "Invalid weight for tutor_consistency: must be a number" in result.errors

    def test_unknown_category(self):
        weights = dict(DEFAULT_WEIGHTS, tutor_consistency=0.05, homework_rate=0.05)
        result = validate_weights(weights)

        assert not result.is_valid
        assert "Unknown factors: homework_rate" in result.errors

    def test_never_raises_on_empty_map(self):
        result = validate_weights({})

        assert not result.is_valid
        assert result.errors[0].startswith("Missing required factors: first_session_satisfaction")
        assert result.errors[-1] == "Weights must sum to 1.0 (current sum: 0.000)"

    def test_integers_accepted(self):
        weights = {c: 0 for c in FACTOR_CATEGORIES}
        weights["avg_session_score"] = 1
        assert validate_weights(weights).is_valid


class TestWeightManager:
    """Tests for reading current weights and history."""

    def test_defaults_when_store_empty(self, manager):
        assert manager.get_current_weights() == DEFAULT_WEIGHTS
        assert manager.get_current_version() is None

    def test_latest_version_wins(self, manager, weight_store):
        first = dict(DEFAULT_WEIGHTS)
        second = dict(DEFAULT_WEIGHTS, first_session_satisfaction=0.20, follow_up_booking_rate=0.25)
        weight_store.create_version(first, "v1")
        weight_store.create_version(second, "v2")

        assert manager.get_current_version() == 2
        assert manager.get_current_weights() == second

    def test_partial_version_filled_from_defaults(self, manager, weight_store):
        weight_store.insert_weight_version(1, {"tutor_consistency": 0.2}, "partial")
        weights = manager.get_current_weights()

        assert weights["tutor_consistency"] == 0.2
        assert weights["first_session_satisfaction"] == DEFAULT_WEIGHTS["first_session_satisfaction"]
        assert set(weights) == set(FACTOR_CATEGORIES)

    def test_idempotent_reads(self, manager, weight_store):
        """Two reads without an update return identical maps."""
        weight_store.create_version(dict(DEFAULT_WEIGHTS), "v1")
        assert manager.get_current_weights() == manager.get_current_weights()

    def test_returned_map_is_a_copy(self, manager):
        weights = manager.get_current_weights()
        weights["tutor_consistency"] = 0.9
        assert manager.get_current_weights()["tutor_consistency"] == 0.10

    def test_storage_failure_falls_back_with_warning(self, caplog):
        manager = WeightManager(FailingStore())

        with caplog.at_level(logging.WARNING, logger="calibration.weights"):
            weights = manager.get_current_weights()

        assert weights == DEFAULT_WEIGHTS
        assert "using default weights" in caplog.text

    def test_storage_failure_strict_raises(self):
        manager = WeightManager(FailingStore())
        with pytest.raises(StorageError):
            manager.get_current_weights(strict=True)

    def test_validate_uses_config_tolerance(self, default_config):
        default_config.weight_sum_tolerance = 0.1
        manager = WeightManager(InMemoryWeightStore(), default_config)
        weights = dict(DEFAULT_WEIGHTS, first_session_satisfaction=0.30)

        assert manager.validate(weights).is_valid

    def test_audit_status_flags_versions_without_history(self, manager, weight_store):
        weight_store.create_version(dict(DEFAULT_WEIGHTS), "v1")
        audit = manager.audit_status()

        assert [a.version for a in audit] == [1]
        assert audit[0].status == "applied_without_full_audit"
        assert manager.unaudited_versions() == [1]
