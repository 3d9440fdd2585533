"""
Studio calendar: which class times are bookable on a given date.

Pure functions over the configured StudioCalendar, no I/O.
"""
import calendar
import unicodedata
from datetime import date, time
from typing import Optional, Union

from runafit.lib.config_flags import StudioCalendar, get_studio_calendar
from runafit.models.clients import Shift


WEEKDAY_NAMES = {
    "monday": 0, "lunes": 0,
    "tuesday": 1, "martes": 1,
    "wednesday": 2, "miercoles": 2,
    "thursday": 3, "jueves": 3,
    "friday": 4, "viernes": 4,
    "saturday": 5, "sabado": 5,
    "sunday": 6, "domingo": 6,
}


def _fold(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text.strip().lower())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def weekday_from_name(value: Union[str, int]) -> int:
    """
    Resolve a weekday to Monday=0 ... Sunday=6.

    Accepts ints, digit strings and English or Spanish names
    ("Miércoles", "wednesday").
    """
    if isinstance(value, int):
        weekday = value
    elif isinstance(value, str) and value.strip().isdigit():
        weekday = int(value.strip())
    elif isinstance(value, str) and _fold(value) in WEEKDAY_NAMES:
        return WEEKDAY_NAMES[_fold(value)]
    else:
        raise ValueError(f"Unknown weekday: {value!r}")

    if weekday < 0 or weekday > 6:
        raise ValueError(f"Weekday out of range: {weekday}")
    return weekday


def parse_class_time(value: Union[str, time]) -> time:
    """Parse "9", "09:00" or "09:00:00" into a time."""
    if isinstance(value, time):
        return value
    text = value.strip()
    if text.isdigit():
        return time(int(text))
    return time.fromisoformat(text)


def shift_of(class_time: time, studio_calendar: Optional[StudioCalendar] = None) -> Shift:
    cal = studio_calendar or get_studio_calendar()
    return Shift.MORNING if class_time.hour < cal.shift_boundary_hour else Shift.EVENING


def slots_for_weekday(weekday: int, studio_calendar: Optional[StudioCalendar] = None) -> list[time]:
    cal = studio_calendar or get_studio_calendar()
    return list(cal.weekly_slots.get(weekday, []))


def slots_for_date(
    target_date: date,
    shift: Optional[Shift] = None,
    studio_calendar: Optional[StudioCalendar] = None,
) -> list[time]:
    """
    Bookable class times on target_date, ascending.

    Args:
        target_date: Day to look up
        shift: Only return times in this shift
        studio_calendar: Calendar to use instead of the configured one
    """
    cal = studio_calendar or get_studio_calendar()
    times = slots_for_weekday(target_date.weekday(), cal)
    if shift is not None:
        times = [t for t in times if shift_of(t, cal) == shift]
    return times


def offers(weekday: int, class_time: time, studio_calendar: Optional[StudioCalendar] = None) -> bool:
    return class_time in slots_for_weekday(weekday, studio_calendar)


def is_offered(target_date: date, class_time: time, studio_calendar: Optional[StudioCalendar] = None) -> bool:
    return offers(target_date.weekday(), class_time, studio_calendar)


def end_of_month(target_date: date) -> date:
    last_day = calendar.monthrange(target_date.year, target_date.month)[1]
    return target_date.replace(day=last_day)
