"""Tests for AlgorithmSettings: merge and validation of configuration payloads."""

from datetime import timedelta

import pytest

from matchdesk.errors import ValidationError
from matchdesk.services.algorithm_settings import DEFAULT_SETTINGS, AlgorithmSettings


class TestDefaults:
    def test_default_weights_sum_to_100(self) -> None:
        assert DEFAULT_SETTINGS.weights.total() == 100

    def test_round_trip(self) -> None:
        again = AlgorithmSettings.from_dict(DEFAULT_SETTINGS.to_dict())
        assert again == DEFAULT_SETTINGS

    def test_acceptance_windows_by_urgency(self) -> None:
        assert DEFAULT_SETTINGS.acceptance_window("CRITICAL") == timedelta(minutes=10)
        assert DEFAULT_SETTINGS.acceptance_window("URGENT") == timedelta(minutes=30)
        assert DEFAULT_SETTINGS.acceptance_window("STANDARD") == timedelta(minutes=120)
        assert DEFAULT_SETTINGS.acceptance_window("FLEXIBLE") == timedelta(minutes=240)
        assert DEFAULT_SETTINGS.acceptance_window(None) == timedelta(minutes=120)

    def test_unknown_urgency_uses_standard_window(self) -> None:
        assert DEFAULT_SETTINGS.acceptance_window("someday") == timedelta(minutes=120)
        assert DEFAULT_SETTINGS.acceptance_window("validate") == timedelta(minutes=120)

    def test_offer_caps_per_level(self) -> None:
        assert DEFAULT_SETTINGS.max_offers_for_level(1) == 3
        assert DEFAULT_SETTINGS.max_offers_for_level(2) == 3
        assert DEFAULT_SETTINGS.max_offers_for_level(3) == 0
        assert DEFAULT_SETTINGS.broadcast_window() == timedelta(minutes=30)


class TestWeights:
    def test_rejects_sum_not_100(self) -> None:
        with pytest.raises(ValidationError, match="sum to 100"):
            AlgorithmSettings.from_dict({"weights": {"skill_match": 40}})

    def test_accepts_within_tolerance(self) -> None:
        s = AlgorithmSettings.from_dict({"weights": {
            "skill_match": 35.005, "timezone_fit": 20, "experience_match": 20,
            "workload_balance": 15, "performance_history": 10,
        }})
        assert s.weights.skill_match == 35.005

    def test_rejects_outside_tolerance(self) -> None:
        with pytest.raises(ValidationError):
            AlgorithmSettings.from_dict({"weights": {"skill_match": 35.02}})

    def test_rejects_negative_weight(self) -> None:
        with pytest.raises(ValidationError, match="weights.skill_match"):
            AlgorithmSettings.from_dict({"weights": {"skill_match": -5, "timezone_fit": 60}})

    def test_rejects_bool(self) -> None:
        with pytest.raises(ValidationError, match="must be a number"):
            AlgorithmSettings.from_dict({"weights": {"skill_match": True}})


class TestMerge:
    def test_partial_group_keeps_other_keys(self) -> None:
        s = AlgorithmSettings.from_dict({"escalation_settings": {"level1_max_offers": 5}})
        assert s.escalation.level1_max_offers == 5
        assert s.escalation.level2_max_offers == 3
        assert s.weights == DEFAULT_SETTINGS.weights

    def test_merges_over_given_base(self) -> None:
        base = AlgorithmSettings.from_dict({"workload_settings": {"max_active_tasks": 8}})
        s = AlgorithmSettings.from_dict({"bonus_modifiers": {"favorite_artist_bonus": 0}}, base=base)
        assert s.workload.max_active_tasks == 8
        assert s.bonus_modifiers.favorite_artist_bonus == 0

    def test_unknown_field_rejected(self) -> None:
        with pytest.raises(ValidationError, match="Unknown weights"):
            AlgorithmSettings.from_dict({"weights": {"vibes": 1}})

    def test_group_must_be_object(self) -> None:
        with pytest.raises(ValidationError, match="must be an object"):
            AlgorithmSettings.from_dict({"weights": [35, 20, 20, 15, 10]})

    def test_experience_matrix_partial_row(self) -> None:
        s = AlgorithmSettings.from_dict({"experience_matrix": {"EXPERT": {"JUNIOR": 10}}})
        assert s.experience_matrix.score("EXPERT", "JUNIOR") == 10
        assert s.experience_matrix.score("EXPERT", "MID") == 40
        # base untouched
        assert DEFAULT_SETTINGS.experience_matrix.score("EXPERT", "JUNIOR") == 0

    def test_experience_matrix_unknown_level(self) -> None:
        with pytest.raises(ValidationError, match="Unknown experience level"):
            AlgorithmSettings.from_dict({"experience_matrix": {"SIMPLE": {"GURU": 100}}})


class TestGroupRules:
    def test_peak_hours_order(self) -> None:
        with pytest.raises(ValidationError, match="peak_hours_start"):
            AlgorithmSettings.from_dict({"timezone_settings": {"peak_hours_start": "19:00"}})

    def test_peak_hours_format(self) -> None:
        with pytest.raises(ValidationError, match="HH:MM"):
            AlgorithmSettings.from_dict({"timezone_settings": {"peak_hours_end": "6pm"}})

    def test_window_must_be_positive(self) -> None:
        with pytest.raises(ValidationError, match="acceptance_windows.critical"):
            AlgorithmSettings.from_dict({"acceptance_windows": {"critical": 0}})

    def test_level2_not_stricter_than_level1(self) -> None:
        with pytest.raises(ValidationError, match="stricter"):
            AlgorithmSettings.from_dict({"escalation_settings": {"level2_skill_threshold": 90}})

    def test_exclusion_flags_are_booleans(self) -> None:
        with pytest.raises(ValidationError, match="true or false"):
            AlgorithmSettings.from_dict({"exclusion_rules": {"exclude_overloaded": "yes"}})
