"""
Unit tests for backflow test pass/fail rules.
"""

import pytest

from backflow.domain.test_reports.evaluation import (
    evaluate_result,
    repairs_needed,
    resolve_pressure_drop,
    validate_test_data,
)

pytestmark = pytest.mark.unit

GOOD_RPZ = {
    "check_valve_1": {"condition": "good", "reading": 6.2},
    "check_valve_2": {"condition": "good"},
    "relief_valve": {"condition": "good"},
}


class TestValidateTestData:
    def test_clean_readings(self):
        assert validate_test_data("rpz", 80.0, 72.0, 8.0, GOOD_RPZ) == []

    def test_non_positive_pressure(self):
        assert "Pressure readings must be positive" in validate_test_data("dc", 0, 72.0, 8.0, {})

    def test_negative_drop(self):
        assert "Pressure drop cannot be negative" in validate_test_data("dc", 70.0, 72.0, -2.0, {})

    def test_rpz_requires_components(self):
        errors = validate_test_data("rpz", 80.0, 72.0, 8.0, {"check_valve_1": "good"})
        assert errors == ["RPZ valve requires check valve and relief valve data"]

    def test_other_devices_do_not_require_components(self):
        assert validate_test_data("dc", 80.0, 72.0, 8.0, {}) == []

    def test_collects_every_problem(self):
        assert len(validate_test_data("rpz", -1.0, 72.0, -3.0, {})) == 3


class TestEvaluateResult:
    def test_passed(self):
        assert evaluate_result(GOOD_RPZ, 8.0) == "Passed"

    def test_failed_component(self):
        data = dict(GOOD_RPZ, relief_valve={"condition": "failed"})
        assert evaluate_result(data, 8.0) == "Failed"

    def test_low_pressure_drop_fails(self):
        assert evaluate_result(GOOD_RPZ, 4.9) == "Failed"

    def test_exact_threshold_passes(self):
        assert evaluate_result({}, 5.0) == "Passed"

    def test_poor_component_needs_repair(self):
        data = dict(GOOD_RPZ, check_valve_2="poor")
        assert evaluate_result(data, 8.0) == "Needs Repair"

    def test_failed_beats_poor(self):
        assert evaluate_result({"check_valve_1": "poor", "check_valve_2": "failed"}, 8.0) == "Failed"


class TestHelpers:
    def test_drop_defaults_to_difference(self):
        assert resolve_pressure_drop(80.0, 72.4, None) == 7.6

    def test_explicit_drop_wins(self):
        assert resolve_pressure_drop(80.0, 72.0, 6.5) == 6.5

    def test_repairs_needed(self):
        assert repairs_needed(GOOD_RPZ, "Passed") is False
        assert repairs_needed({"check_valve_1": "poor"}, "Needs Repair") is True
        assert repairs_needed({"check_valve_1": "failed"}, "Failed") is True
