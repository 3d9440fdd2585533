"""
Unit tests for config_flags module.
"""
from datetime import time

import pytest

from runafit.lib.config_flags import (
    BookingRules,
    FeatureFlags,
    StudioCalendar,
    get_booking_rules,
    set_booking_rules,
    get_feature_flags,
    set_feature_flags,
    get_studio_calendar,
    reset_all_configs,
)


@pytest.mark.unit
def test_booking_rules_defaults():
    rules = BookingRules()

    assert rules.late_cancel_hours == 2
    assert rules.low_credit_threshold == 1
    assert rules.expiry_warning_days == 5


@pytest.mark.unit
def test_booking_rules_validation():
    with pytest.raises(ValueError):
        BookingRules(late_cancel_hours=-1)

    with pytest.raises(ValueError):
        BookingRules(expiry_warning_days=365)


@pytest.mark.unit
def test_default_calendar_weekdays():
    calendar = StudioCalendar()

    assert sorted(calendar.weekly_slots) == [0, 1, 2, 3, 4]
    assert len(calendar.weekly_slots[0]) == 10
    assert calendar.weekly_slots[1] == [time(7), time(8), time(9)]
    assert calendar.shift_boundary_hour == 14


@pytest.mark.unit
def test_feature_flags_defaults():
    flags = FeatureFlags()

    assert flags.credit_warnings_enabled is True
    assert flags.random_unit_assignment is True


@pytest.mark.unit
def test_set_and_reset_configs():
    set_booking_rules(BookingRules(late_cancel_hours=6))
    set_feature_flags(FeatureFlags(credit_warnings_enabled=False))

    assert get_booking_rules().late_cancel_hours == 6
    assert get_feature_flags().credit_warnings_enabled is False

    reset_all_configs()

    assert get_booking_rules().late_cancel_hours == 2
    assert get_feature_flags().credit_warnings_enabled is True


@pytest.mark.unit
def test_get_returns_same_instance():
    assert get_studio_calendar() is get_studio_calendar()
