"""
Admin Agenda Routes - who is booked in each class.

Provides:
- GET /admin/agenda?start=&end=: live reservations grouped by class, with occupancy
"""
from datetime import date, time
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from runafit.api.dependencies import get_db, require_admin
from runafit.lib.logging import get_logger
from runafit.lib.request_context import SessionContext
from runafit.models.reservations import ReservationStatus
from runafit.services.agenda_service import AgendaService


logger = get_logger(__name__)
router = APIRouter(prefix="/admin/agenda", tags=["admin", "agenda"])


class AgendaEntryOut(BaseModel):
    reservation_id: UUID
    client_id: UUID
    client_name: str
    resource_unit: int
    status: ReservationStatus


class AgendaSlotOut(BaseModel):
    class_date: date
    class_time: time
    occupancy: int
    bed_count: int
    free_units: List[int]
    entries: List[AgendaEntryOut]


@router.get("", response_model=List[AgendaSlotOut])
def get_agenda(
    start: date = Query(..., description="First day (inclusive)"),
    end: date = Query(..., description="Last day (inclusive)"),
    studio_id: Optional[int] = Query(None),
    admin: SessionContext = Depends(require_admin),
    db: Session = Depends(get_db),
) -> List[AgendaSlotOut]:
    """Classes with at least one live reservation between start and end."""
    logger.info(f"GET /admin/agenda ({start} to {end})")
    slots = AgendaService(db).agenda(start, end, studio_id=studio_id)
    return [
        AgendaSlotOut(
            class_date=slot.class_date,
            class_time=slot.class_time,
            occupancy=slot.occupancy,
            bed_count=slot.bed_count,
            free_units=slot.free_units,
            entries=[
                AgendaEntryOut(
                    reservation_id=e.reservation_id,
                    client_id=e.client_id,
                    client_name=e.client_name,
                    resource_unit=e.resource_unit,
                    status=e.status,
                )
                for e in slot.entries
            ],
        )
        for slot in slots
    ]
