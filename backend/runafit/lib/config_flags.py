"""
Studio configuration and feature toggles.

Provides centralized configuration for:
- The weekly class calendar (which hours are bookable on which weekday)
- Booking rules (late cancellation window, credit warning thresholds)
- Feature flags
"""
from datetime import time
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from runafit.lib.logging import get_logger


logger = get_logger(__name__)


MORNING_TIMES = [time(7), time(8), time(9)]
EVENING_TIMES = [time(17), time(18), time(19), time(20), time(21), time(22), time(23)]


class StudioCalendar(BaseModel):
    """
    Weekly class calendar, keyed by weekday (Monday=0 ... Sunday=6).

    Monday, Wednesday and Friday run morning and evening classes,
    Tuesday and Thursday mornings only, weekends are closed.
    """

    weekly_slots: dict[int, list[time]] = Field(
        default_factory=lambda: {
            0: MORNING_TIMES + EVENING_TIMES,
            1: list(MORNING_TIMES),
            2: MORNING_TIMES + EVENING_TIMES,
            3: list(MORNING_TIMES),
            4: MORNING_TIMES + EVENING_TIMES,
        },
        description="Bookable class start times per weekday"
    )
    shift_boundary_hour: int = Field(
        default=14,
        ge=0,
        le=23,
        description="Classes starting before this hour belong to the morning shift"
    )

    @field_validator("weekly_slots")
    @classmethod
    def _check_weekdays(cls, value: dict[int, list[time]]) -> dict[int, list[time]]:
        for weekday, times in value.items():
            if weekday < 0 or weekday > 6:
                raise ValueError(f"weekday must be 0..6, got {weekday}")
            value[weekday] = sorted(set(times))
        return value


class BookingRules(BaseModel):
    """Rules applied by the reservation engine."""

    late_cancel_hours: int = Field(
        default=2,
        ge=0,
        le=48,
        description="Cancellations closer than this to the class need an explicit confirmation"
    )
    low_credit_threshold: int = Field(
        default=1,
        ge=0,
        le=10,
        description="Warn when the client's remaining credits drop to this value or below"
    )
    expiry_warning_days: int = Field(
        default=5,
        ge=0,
        le=60,
        description="Warn when the client's current pack expires within this many days"
    )


class FeatureFlags(BaseModel):
    """Feature flags for enabling/disabling functionality."""

    credit_warnings_enabled: bool = Field(
        default=True,
        description="Emit low balance / expiring pack warnings"
    )
    random_unit_assignment: bool = Field(
        default=True,
        description="Assign a random free bed on single bookings (first free bed when disabled)"
    )


# Global configuration instances (can be overridden)
_studio_calendar: Optional[StudioCalendar] = None
_booking_rules: Optional[BookingRules] = None
_feature_flags: Optional[FeatureFlags] = None


def get_studio_calendar() -> StudioCalendar:
    """Get the studio calendar configuration."""
    global _studio_calendar
    if _studio_calendar is None:
        _studio_calendar = StudioCalendar()
        logger.info("Initialized default studio calendar")
    return _studio_calendar


def set_studio_calendar(calendar: StudioCalendar) -> None:
    """Override the studio calendar configuration."""
    global _studio_calendar
    _studio_calendar = calendar
    logger.info("Updated studio calendar", extra={
        "open_weekdays": sorted(calendar.weekly_slots),
    })


def get_booking_rules() -> BookingRules:
    """Get booking rules configuration."""
    global _booking_rules
    if _booking_rules is None:
        _booking_rules = BookingRules()
        logger.info("Initialized default booking rules")
    return _booking_rules


def set_booking_rules(rules: BookingRules) -> None:
    """Override booking rules configuration."""
    global _booking_rules
    _booking_rules = rules
    logger.info("Updated booking rules", extra={
        "late_cancel_hours": rules.late_cancel_hours,
    })


def get_feature_flags() -> FeatureFlags:
    """Get feature flags configuration."""
    global _feature_flags
    if _feature_flags is None:
        _feature_flags = FeatureFlags()
        logger.info("Initialized default feature flags")
    return _feature_flags


def set_feature_flags(flags: FeatureFlags) -> None:
    """Override feature flags configuration."""
    global _feature_flags
    _feature_flags = flags
    logger.info("Updated feature flags")


def reset_all_configs() -> None:
    """Reset all configurations to defaults (useful for testing)."""
    global _studio_calendar, _booking_rules, _feature_flags
    _studio_calendar = None
    _booking_rules = None
    _feature_flags = None
    logger.info("Reset all configurations to defaults")
