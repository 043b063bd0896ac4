"""
Unit tests for appointment slot search and conflict rules.
"""

from datetime import date

import pytest

from backflow.domain.appointments.slot_finder import (
    MAX_APPOINTMENTS_PER_DAY,
    BookedSlot,
    detect_conflicts,
    find_next_available,
    has_conflict,
    parse_time,
    weighted_slots,
    within_working_hours,
)

pytestmark = pytest.mark.unit

FRIDAY = date(2025, 3, 7)
MONDAY = date(2025, 3, 10)
TUESDAY = date(2025, 3, 11)


def _clock(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}:00"


class TestParseTime:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("9:30 AM", "09:30:00"),
            ("12:00 PM", "12:00:00"),
            ("12:00 AM", "00:00:00"),
            ("3:00 pm", "15:00:00"),
            ("14:00", "14:00:00"),
            ("08:15:00", "08:15:00"),
        ],
    )
    def test_accepted_formats(self, raw, expected):
        assert parse_time(raw) == expected

    @pytest.mark.parametrize("raw", ["9:15 AM", "13:00 PM", "25:00", "noon", ""])
    def test_rejected_formats(self, raw):
        with pytest.raises(ValueError):
            parse_time(raw)


class TestWeightedSlots:
    def test_medium_priority_prefers_afternoon(self):
        times = [t for t, _ in weighted_slots("medium")]
        assert times == [
            "15:00:00",
            "10:00:00",
            "11:00:00",
            "14:00:00",
            "09:00:00",
            "13:00:00",
            "16:00:00",
        ]

    def test_high_priority_starts_in_the_morning(self):
        assert weighted_slots("high")[0] == ("09:00:00", 3)


class TestHasConflict:
    def test_overlapping_booking(self):
        booked = [BookedSlot(MONDAY, "10:00:00", 60, id=1)]
        assert has_conflict(MONDAY, "10:30:00", booked) is True

    def test_back_to_back_is_free(self):
        booked = [BookedSlot(MONDAY, "10:00:00", 60, id=1)]
        assert has_conflict(MONDAY, "11:00:00", booked) is False

    def test_other_day_ignored(self):
        booked = [BookedSlot(TUESDAY, "10:00:00", 60, id=1)]
        assert has_conflict(MONDAY, "10:00:00", booked) is False

    def test_missing_duration_defaults_to_an_hour(self):
        booked = [BookedSlot(MONDAY, "10:00:00", None, id=1)]
        assert has_conflict(MONDAY, "10:45:00", booked, duration=30) is True

    def test_excluded_appointment_does_not_conflict_with_itself(self):
        booked = [BookedSlot(MONDAY, "10:00:00", 60, id=7)]
        assert has_conflict(MONDAY, "10:00:00", booked, exclude_id=7) is False


class TestFindNextAvailable:
    def test_skips_weekend(self):
        slot = find_next_available(FRIDAY, [])
        assert slot.date == MONDAY
        assert slot.time == "15:00:00"
        assert slot.label == "3:00 PM"
        assert slot.days_out == 3

    def test_takes_next_weighted_slot_when_best_is_booked(self):
        booked = [BookedSlot(MONDAY, "15:00:00", 60, id=1)]
        slot = find_next_available(FRIDAY, booked)
        assert slot.date == MONDAY
        assert slot.time == "10:00:00"

    def test_full_day_is_skipped(self):
        booked = [
            BookedSlot(MONDAY, _clock(6 * 60 + 90 * i), 30, id=i) for i in range(MAX_APPOINTMENTS_PER_DAY)
        ]
        slot = find_next_available(FRIDAY, booked)
        assert slot.date == TUESDAY
        assert slot.days_out == 4

    def test_preference_flag(self):
        slot = find_next_available(FRIDAY, [], preferences=["09"])
        assert slot.matches_preference is False
        assert find_next_available(FRIDAY, [], preferences=["15"]).matches_preference is True

    def test_nothing_free_in_window(self):
        assert find_next_available(FRIDAY, [], search_days=2) is None

    def test_as_dict(self):
        payload = find_next_available(FRIDAY, []).as_dict()
        assert payload["date"] == "2025-03-10"
        assert set(payload) == {"date", "time", "label", "days_out", "matches_preference"}


class TestWorkingHours:
    hours = {"start": "08:00", "end": "17:00"}
    weekdays = [0, 1, 2, 3, 4]

    def test_visit_inside_hours(self):
        assert within_working_hours(MONDAY, "08:00:00", self.hours, self.weekdays) is True

    def test_visit_must_finish_before_close(self):
        assert within_working_hours(MONDAY, "16:30:00", self.hours, self.weekdays) is False

    def test_non_working_day(self):
        assert within_working_hours(date(2025, 3, 8), "10:00:00", self.hours, self.weekdays) is False

    def test_unconfigured_company_accepts_anything(self):
        assert within_working_hours(MONDAY, "06:00:00", None, None) is True


class TestDetectConflicts:
    def test_true_overlap_is_high(self):
        conflicts = detect_conflicts(
            [BookedSlot(MONDAY, "09:00:00", 60, id=1), BookedSlot(MONDAY, "09:30:00", 60, id=2)]
        )
        assert conflicts == [
            {
                "type": "overlap",
                "severity": "high",
                "date": "2025-03-10",
                "appointment_ids": [1, 2],
                "overlap_minutes": 30,
            }
        ]

    def test_inside_travel_buffer_is_medium(self):
        conflicts = detect_conflicts(
            [BookedSlot(MONDAY, "10:10:00", 60, id=2), BookedSlot(MONDAY, "09:00:00", 60, id=1)]
        )
        assert len(conflicts) == 1
        assert conflicts[0]["severity"] == "medium"
        assert conflicts[0]["appointment_ids"] == [1, 2]

    def test_well_spaced_day_is_clean(self):
        assert detect_conflicts([BookedSlot(MONDAY, "09:00:00", 60, id=1), BookedSlot(MONDAY, "11:00:00", 60, id=2)]) == []

    def test_overcapacity(self):
        day = [BookedSlot(MONDAY, _clock(6 * 60 + 90 * i), 30, id=i) for i in range(MAX_APPOINTMENTS_PER_DAY + 1)]
        conflicts = detect_conflicts(day)
        assert conflicts == [
            {
                "type": "overcapacity",
                "severity": "high",
                "date": "2025-03-10",
                "appointment_count": MAX_APPOINTMENTS_PER_DAY + 1,
                "max_capacity": MAX_APPOINTMENTS_PER_DAY,
            }
        ]
