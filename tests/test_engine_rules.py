"""
tests/test_engine_rules.py — Event Derivation & Volunteer Hours
================================================================
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from nssportal.engine.attendance import (
    credit_hours,
    debit_hours,
    hours_for_attendance,
    max_hours_for,
)
from nssportal.engine.derivation import (
    default_schedule,
    derive_event,
    event_type_for,
)
from nssportal.errors import ValidationError

NOW = datetime(2026, 3, 15, 10, 0, tzinfo=UTC)


class TestEventTypeLookup:
    @pytest.mark.parametrize(
        "category,expected",
        [
            ("cleanliness", "cleanliness drive"),
            ("health", "health camp"),
            ("education", "awareness campaign"),
            ("safety", "awareness campaign"),
            ("environment", "tree plantation"),
            ("water", "other"),
            ("not-a-category", "other"),
        ],
    )
    def test_lookup(self, category, expected):
        assert event_type_for(category) == expected


class TestDefaultSchedule:
    def test_defaults_to_a_week_out(self):
        s = default_schedule(NOW)
        assert s.start == NOW + timedelta(days=7)
        assert s.end == s.start + timedelta(hours=4)
        assert s.registration_deadline == s.start - timedelta(days=1)

    def test_explicit_date_wins(self):
        when = datetime(2026, 4, 1, 9, 0, tzinfo=UTC)
        s = default_schedule(NOW, when)
        assert s.start == when
        assert s.end == datetime(2026, 4, 1, 13, 0, tzinfo=UTC)

    def test_naive_date_treated_as_utc(self):
        s = default_schedule(NOW, datetime(2026, 4, 1, 9, 0))
        assert s.start.tzinfo is not None


class TestDeriveEvent:
    def test_fields(self):
        derived = derive_event(
            title="Broken tap",
            description="Leaking all day",
            category="water",
            location="Hostel B",
            images=["a.jpg"],
            now=NOW,
            event_details="Bring spanners",
        )
        assert derived.title == "Community Service: Broken tap"
        assert derived.description == "Leaking all day\n\nBring spanners"
        assert derived.event_type == "other"
        assert derived.status == "published"
        assert derived.location == "Hostel B"
        assert derived.images == ["a.jpg"]


class TestVolunteerHours:
    def test_supplied_hours_win(self):
        assert hours_for_attendance(NOW, NOW + timedelta(hours=4), 2.5) == 2.5

    def test_whole_hours_of_duration(self):
        assert hours_for_attendance(NOW, NOW + timedelta(hours=3, minutes=50)) == 3.0

    def test_minimum_one_hour(self):
        assert hours_for_attendance(NOW, NOW + timedelta(minutes=20)) == 1.0

    def test_negative_rejected(self):
        with pytest.raises(ValidationError):
            hours_for_attendance(NOW, NOW, -1)

    @pytest.mark.parametrize("bad", [float("inf"), float("-inf"), float("nan")])
    def test_non_finite_rejected(self, bad):
        with pytest.raises(ValidationError, match="finite"):
            hours_for_attendance(NOW, NOW + timedelta(hours=4), bad)

    def test_capped_per_event_day(self):
        end = NOW + timedelta(hours=4)
        assert max_hours_for(NOW, end) == 24.0
        assert hours_for_attendance(NOW, end, 24) == 24.0
        with pytest.raises(ValidationError, match="exceed 24"):
            hours_for_attendance(NOW, end, 24.5)
        with pytest.raises(ValidationError):
            hours_for_attendance(NOW, end, 1e17)

    def test_multi_day_event_cap(self):
        assert max_hours_for(NOW, NOW + timedelta(days=2)) == 72.0

    @pytest.mark.parametrize("total,hours", [(0.0, 4.0), (7.3, 0.1), (12.45, 3.33), (0.1, 0.2)])
    def test_credit_then_debit_is_exact(self, total, hours):
        assert debit_hours(credit_hours(total, hours), hours) == total

    def test_debit_floors_at_zero(self):
        assert debit_hours(1.0, 3.0) == 0.0
