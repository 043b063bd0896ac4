"""Pass/fail rules for a backflow assembly test"""

from typing import Optional

COMPONENTS = (
    "check_valve_1",
    "check_valve_2",
    "relief_valve",
    "shutoff_valve_inlet",
    "shutoff_valve_outlet",
)
RPZ_REQUIRED = ("check_valve_1", "check_valve_2", "relief_valve")
MIN_PRESSURE_DROP = 5.0


def _condition(test_data: dict, component: str) -> Optional[str]:
    value = (test_data or {}).get(component)
    if isinstance(value, dict):
        return value.get("condition")
    return value


def conditions(test_data: dict) -> list[str]:
    return [c for c in (_condition(test_data, name) for name in COMPONENTS) if c]


def resolve_pressure_drop(initial: float, final: float, pressure_drop: Optional[float]) -> float:
    if pressure_drop is not None:
        return pressure_drop
    return round(initial - final, 1)


def validate_test_data(
    device_type: Optional[str],
    initial_pressure: float,
    final_pressure: float,
    pressure_drop: float,
    test_data: dict,
) -> list[str]:
    """Return every problem with the readings; empty when they can be evaluated"""
    errors = []
    if initial_pressure <= 0 or final_pressure <= 0:
        errors.append("Pressure readings must be positive")
    if pressure_drop < 0:
        errors.append("Pressure drop cannot be negative")
    if device_type == "rpz" and any(_condition(test_data, c) is None for c in RPZ_REQUIRED):
        errors.append("RPZ valve requires check valve and relief valve data")
    return errors


def evaluate_result(test_data: dict, pressure_drop: float) -> str:
    """
    Passed, Failed or Needs Repair.

    A failed component or an insufficient pressure drop fails the test
    outright; a component in poor condition passes hydraulically but still
    needs repair.
    """
    found = conditions(test_data)
    if "failed" in found:
        return "Failed"
    if pressure_drop < MIN_PRESSURE_DROP:
        return "Failed"
    if "poor" in found:
        return "Needs Repair"
    return "Passed"


def repairs_needed(test_data: dict, status: str) -> bool:
    return status == "Needs Repair" or "poor" in conditions(test_data) or "failed" in conditions(test_data)
