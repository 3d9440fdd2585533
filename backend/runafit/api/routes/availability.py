"""
Availability routes.

Provides:
- GET /availability: class slots of a day with their free beds
- GET /availability/units: free beds of one slot
"""
from datetime import date, time
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from runafit.api.dependencies import get_clock, get_db, get_session_context
from runafit.lib.clock import StudioClock
from runafit.lib.request_context import SessionContext
from runafit.models.clients import Shift
from runafit.services.availability_service import AvailabilityService


router = APIRouter(prefix="/availability", tags=["availability"])


class SlotResponse(BaseModel):
    """One class slot of the day."""
    class_time: time
    shift: Shift
    free_units: List[int] = Field(description="Free bed numbers")
    free_count: int
    bed_count: int
    started: bool = Field(description="Class already started, not bookable")


class DayAvailabilityResponse(BaseModel):
    class_date: date
    slots: List[SlotResponse]


class FreeUnitsResponse(BaseModel):
    class_date: date
    class_time: time
    free_units: List[int]


@router.get("", response_model=DayAvailabilityResponse)
def get_day_availability(
    day: date = Query(..., alias="date", description="Class date (YYYY-MM-DD)"),
    shift: Optional[Shift] = Query(None, description="Only this shift; defaults to the session's preference"),
    all_shifts: bool = Query(False, description="Ignore the shift preference"),
    session: SessionContext = Depends(get_session_context),
    clock: StudioClock = Depends(get_clock),
    db: Session = Depends(get_db),
) -> DayAvailabilityResponse:
    """
    Class slots offered on a date with their free beds.

    Without an explicit shift the client's preferred shift is used.
    """
    if shift is None and not all_shifts:
        shift = session.shift_preference

    slots = AvailabilityService(db, clock).day_availability(day, shift=shift)
    return DayAvailabilityResponse(
        class_date=day,
        slots=[
            SlotResponse(
                class_time=slot.class_time,
                shift=slot.shift,
                free_units=slot.free_units,
                free_count=slot.free_count,
                bed_count=slot.bed_count,
                started=slot.started,
            )
            for slot in slots
        ],
    )


@router.get("/units", response_model=FreeUnitsResponse)
def get_free_units(
    day: date = Query(..., alias="date", description="Class date (YYYY-MM-DD)"),
    class_time: time = Query(..., alias="time", description="Class start time (HH:MM)"),
    session: SessionContext = Depends(get_session_context),
    clock: StudioClock = Depends(get_clock),
    db: Session = Depends(get_db),
) -> FreeUnitsResponse:
    """Free beds for one class slot (empty when full or in the past)."""
    free = AvailabilityService(db, clock).list_free_units(day, class_time)
    return FreeUnitsResponse(class_date=day, class_time=class_time, free_units=sorted(free))
