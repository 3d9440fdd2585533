"""
Admin agenda: who is booked in each class over a date range.
"""
from dataclasses import dataclass, field
from datetime import date, time
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from runafit.lib.settings import settings
from runafit.models.clients import Client
from runafit.models.reservations import Reservation, ReservationStatus
from runafit.services.errors import InvalidInput


MAX_AGENDA_DAYS = 62


@dataclass
class AgendaEntry:
    reservation_id: UUID
    client_id: UUID
    client_name: str
    resource_unit: int
    status: ReservationStatus


@dataclass
class AgendaSlot:
    class_date: date
    class_time: time
    bed_count: int
    entries: list[AgendaEntry] = field(default_factory=list)

    @property
    def occupancy(self) -> int:
        return len(self.entries)

    @property
    def free_units(self) -> list[int]:
        taken = {entry.resource_unit for entry in self.entries}
        return [unit for unit in range(1, self.bed_count + 1) if unit not in taken]


class AgendaService:
    def __init__(self, db_session: Session, bed_count: Optional[int] = None):
        self.db = db_session
        self.bed_count = bed_count or settings.bed_count

    def agenda(self, start: date, end: date, studio_id: Optional[int] = None) -> list[AgendaSlot]:
        """Live reservations between start and end (inclusive), grouped by class."""
        if start > end:
            raise InvalidInput("Agenda start must not be after end", {"start": str(start), "end": str(end)})
        if (end - start).days > MAX_AGENDA_DAYS:
            raise InvalidInput(f"Agenda range is limited to {MAX_AGENDA_DAYS} days")

        stmt = (
            select(Reservation, Client.name)
            .join(Client, Client.id == Reservation.client_id)
            .where(
                Reservation.class_date >= start,
                Reservation.class_date <= end,
                Reservation.status != ReservationStatus.CANCELLED,
            )
            .order_by(Reservation.class_date, Reservation.class_time, Reservation.resource_unit)
        )
        if studio_id is not None:
            stmt = stmt.where(Client.studio_id == studio_id)

        slots: dict[tuple[date, time], AgendaSlot] = {}
        for reservation, client_name in self.db.execute(stmt).all():
            key = (reservation.class_date, reservation.class_time)
            slot = slots.get(key)
            if slot is None:
                slot = slots[key] = AgendaSlot(
                    class_date=reservation.class_date,
                    class_time=reservation.class_time,
                    bed_count=self.bed_count,
                )
            slot.entries.append(AgendaEntry(
                reservation_id=reservation.id,
                client_id=reservation.client_id,
                client_name=client_name,
                resource_unit=reservation.resource_unit,
                status=reservation.status,
            ))
        return list(slots.values())
