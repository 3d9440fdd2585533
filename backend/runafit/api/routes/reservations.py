"""
Reservation routes.

Provides:
- POST /reservations: book a class (random free bed)
- POST /reservations/series: repeat a class every week until the end of the month
- GET /reservations/me: upcoming reservations of the caller
- POST /reservations/{id}/cancel: cancel and get the credit back
"""
from datetime import date, time
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from runafit.api.dependencies import get_clock, get_db, get_notifier, get_session_context
from runafit.api.middleware.error_handler import (
    BookingRejectedException,
    ForbiddenException,
    NotFoundException,
)
from runafit.lib.clock import StudioClock
from runafit.lib.logging import get_logger
from runafit.lib.request_context import SessionContext
from runafit.models.reservations import ReservationStatus
from runafit.services.notification_service import NotificationService
from runafit.services.outcomes import CancellationStatus, FailureReason, SeriesReport, UnitPolicy
from runafit.services.recurring_booking_service import RecurringBookingService
from runafit.services.reservation_service import ReservationService


logger = get_logger(__name__)
router = APIRouter(prefix="/reservations", tags=["reservations"])


# Request/Response Models
class BookingRequest(BaseModel):
    class_date: date = Field(..., description="Class date (YYYY-MM-DD)")
    class_time: time = Field(..., description="Class start time (HH:MM)")
    client_id: Optional[UUID] = Field(None, description="Admins only: book on behalf of this client")


class BookingResponse(BaseModel):
    status: str = "confirmed"
    reservation_id: UUID
    class_date: date
    class_time: time
    resource_unit: int
    credit_lot_id: UUID
    remaining_credits: int
    message: str


class SeriesRequest(BaseModel):
    class_date: date = Field(..., description="First date of the series")
    class_time: time
    accept_partial: bool = Field(False, description="Book what the credits allow when they do not cover every date")
    client_id: Optional[UUID] = None


class SeriesDateResponse(BaseModel):
    class_date: date
    success: bool
    reason: Optional[FailureReason] = None
    resource_unit: Optional[int] = None
    reservation_id: Optional[UUID] = None


class SeriesResponse(BaseModel):
    status: str = Field(description="completed or confirmation_required")
    class_time: time
    requested: int
    max_bookable: int
    success_count: int
    failure_count: int
    results: List[SeriesDateResponse]


class ReservationItem(BaseModel):
    id: UUID
    class_date: date
    class_time: time
    resource_unit: int
    status: ReservationStatus

    model_config = {"from_attributes": True}


class CancelRequest(BaseModel):
    confirm_late: bool = Field(False, description="Acknowledge a cancellation close to class start")


class CancelResponse(BaseModel):
    status: CancellationStatus
    reservation_id: UUID
    message: Optional[str] = None
    hours_until_start: Optional[float] = None
    remaining_credits: Optional[int] = None


def _target_client(session: SessionContext, client_id: Optional[UUID]) -> UUID:
    if client_id is None or client_id == session.client_id:
        return session.client_id
    if not session.is_admin:
        raise ForbiddenException("Clients can only book for themselves")
    return client_id


def series_response(report: SeriesReport) -> SeriesResponse:
    return SeriesResponse(
        status="confirmation_required" if report.confirmation_required else "completed",
        class_time=report.class_time,
        requested=len(report.plan.candidate_dates),
        max_bookable=report.max_bookable,
        success_count=report.success_count,
        failure_count=report.failure_count,
        results=[
            SeriesDateResponse(
                class_date=r.class_date,
                success=r.success,
                reason=r.reason,
                resource_unit=r.resource_unit,
                reservation_id=r.reservation_id,
            )
            for r in report.results
        ],
    )


# Routes
@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def book_reservation(
    request: BookingRequest,
    session: SessionContext = Depends(get_session_context),
    clock: StudioClock = Depends(get_clock),
    notifier: NotificationService = Depends(get_notifier),
    db: Session = Depends(get_db),
) -> BookingResponse:
    """
    Book a class.

    Clients get a random free bed. An administrator booking for a client
    gets the first free bed.

    Raises:
        BookingRejectedException: 409 for duplicate day/slot, full slot or a
            lost race; 422 for no credit, unknown or past slot
    """
    client_id = _target_client(session, request.client_id)
    by_admin = client_id != session.client_id

    outcome = ReservationService(db, clock, notifier).book(
        session,
        client_id,
        request.class_date,
        request.class_time,
        unit_policy=UnitPolicy.STICKY if by_admin else UnitPolicy.RANDOM,
        entry="admin" if by_admin else "client",
    )
    if not outcome.success:
        raise BookingRejectedException(outcome.reason, outcome.message)

    return BookingResponse(
        reservation_id=outcome.reservation_id,
        class_date=outcome.class_date,
        class_time=outcome.class_time,
        resource_unit=outcome.resource_unit,
        credit_lot_id=outcome.credit_lot_id,
        remaining_credits=outcome.remaining_credits,
        message=outcome.message,
    )


@router.post("/series", response_model=SeriesResponse)
def book_series(
    request: SeriesRequest,
    session: SessionContext = Depends(get_session_context),
    clock: StudioClock = Depends(get_clock),
    notifier: NotificationService = Depends(get_notifier),
    db: Session = Depends(get_db),
) -> SeriesResponse:
    """
    Repeat a class every week until the end of the month.

    When the credits do not cover every week and accept_partial is false,
    nothing is booked and the response says how many weeks could be.
    """
    client_id = _target_client(session, request.client_id)
    report = RecurringBookingService(db, clock, notifier).repeat_rest_of_month(
        session,
        client_id,
        request.class_date,
        request.class_time,
        accept_partial=request.accept_partial,
    )
    return series_response(report)


@router.get("/me", response_model=List[ReservationItem])
def my_reservations(
    session: SessionContext = Depends(get_session_context),
    clock: StudioClock = Depends(get_clock),
    db: Session = Depends(get_db),
) -> List[ReservationItem]:
    """Upcoming live reservations of the caller, soonest first."""
    service = ReservationService(db, clock)
    reservations = service.store.upcoming_for_client(session.client_id, clock.today())
    return [ReservationItem.model_validate(r) for r in reservations]


@router.post("/{reservation_id}/cancel", response_model=CancelResponse)
def cancel_reservation(
    reservation_id: UUID,
    request: Optional[CancelRequest] = None,
    session: SessionContext = Depends(get_session_context),
    clock: StudioClock = Depends(get_clock),
    notifier: NotificationService = Depends(get_notifier),
    db: Session = Depends(get_db),
) -> CancelResponse:
    """
    Cancel a reservation.

    Returns status confirmation_required (and changes nothing) when the class
    starts within the late-cancel window and confirm_late was not set.
    Cancelling twice returns already_cancelled.
    """
    confirm_late = request.confirm_late if request else False
    outcome = ReservationService(db, clock, notifier).cancel(session, reservation_id, confirm_late=confirm_late)

    if outcome.status == CancellationStatus.REJECTED:
        if outcome.reason == FailureReason.NOT_FOUND:
            raise NotFoundException("Reservation", str(reservation_id))
        if outcome.reason == FailureReason.NOT_OWNER:
            raise ForbiddenException(outcome.message)
        raise BookingRejectedException(outcome.reason, outcome.message)

    return CancelResponse(
        status=outcome.status,
        reservation_id=outcome.reservation_id,
        message=outcome.message,
        hours_until_start=outcome.hours_until_start,
        remaining_credits=outcome.remaining_credits,
    )
