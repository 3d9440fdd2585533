"""
Availability: which beds are still free for a class slot.

Every booking path (single booking, series, materializer, API) asks this
service; none of them query occupancy on their own.
"""
from dataclasses import dataclass
from datetime import date, time
from typing import Optional

from sqlalchemy.orm import Session

from runafit.lib.clock import StudioClock
from runafit.lib.settings import settings
from runafit.models.clients import Shift
from runafit.services import calendar_service
from runafit.services.credit_ledger import CreditLedger
from runafit.services.reservation_store import ReservationStore


@dataclass
class SlotAvailability:
    class_time: time
    shift: Shift
    free_units: list[int]
    bed_count: int
    started: bool

    @property
    def free_count(self) -> int:
        return len(self.free_units)

    @property
    def is_full(self) -> bool:
        return not self.free_units


class AvailabilityService:
    """Read-only view of free beds."""

    def __init__(
        self,
        db_session: Session,
        clock: Optional[StudioClock] = None,
        store: Optional[ReservationStore] = None,
        bed_count: Optional[int] = None,
    ):
        self.db = db_session
        self.clock = clock or StudioClock()
        if store is None:
            store = ReservationStore(db_session, CreditLedger(db_session, self.clock))
        self.store = store
        self.bed_count = bed_count or settings.bed_count

    @property
    def all_units(self) -> set[int]:
        return set(range(1, self.bed_count + 1))

    def list_free_units(self, class_date: date, class_time: time) -> set[int]:
        """
        Free beds for the slot; empty when fully booked or the date is past.
        """
        if class_date < self.clock.today():
            return set()
        return self.all_units - self.store.occupied_units(class_date, class_time)

    def day_availability(self, class_date: date, shift: Optional[Shift] = None) -> list[SlotAvailability]:
        """Every offered slot on class_date with its free beds."""
        times = calendar_service.slots_for_date(class_date, shift=shift)
        if not times:
            return []

        past_day = class_date < self.clock.today()
        occupied = {} if past_day else self.store.occupied_by_time(class_date)
        now = self.clock.now()

        slots = []
        for class_time in times:
            free = set() if past_day else self.all_units - occupied.get(class_time, set())
            slots.append(SlotAvailability(
                class_time=class_time,
                shift=calendar_service.shift_of(class_time),
                free_units=sorted(free),
                bed_count=self.bed_count,
                started=self.clock.starts_at(class_date, class_time) <= now,
            ))
        return slots
