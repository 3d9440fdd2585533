"""
Result types returned by the booking engine.

Expected business conditions (slot full, no credit, duplicate day...) are
reported through these values instead of exceptions.
"""
from dataclasses import dataclass, field
from datetime import date, time
from typing import Optional
from uuid import UUID
import enum

from runafit.models.reservations import Reservation


class FailureReason(str, enum.Enum):
    """Why a booking or cancellation was rejected."""
    DUPLICATE_DAY_BOOKING = "duplicate_day_booking"
    DUPLICATE_SLOT_BOOKING = "duplicate_slot_booking"
    SLOT_FULL = "slot_full"
    NO_CREDIT_AVAILABLE = "no_credit_available"
    CONCURRENT_CONFLICT = "concurrent_conflict"
    SLOT_NOT_OFFERED = "slot_not_offered"
    SLOT_IN_PAST = "slot_in_past"
    ALREADY_OCCURRED = "already_occurred"
    NOT_FOUND = "not_found"
    NOT_OWNER = "not_owner"


USER_MESSAGES = {
    FailureReason.DUPLICATE_DAY_BOOKING: "You already have a class booked on this day.",
    FailureReason.DUPLICATE_SLOT_BOOKING: "You already have this class booked.",
    FailureReason.SLOT_FULL: "This class is full. Please choose another time.",
    FailureReason.NO_CREDIT_AVAILABLE: "You have no credits valid for this date.",
    FailureReason.CONCURRENT_CONFLICT: "That bed was just taken. Please choose another slot.",
    FailureReason.SLOT_NOT_OFFERED: "There is no class at this time.",
    FailureReason.SLOT_IN_PAST: "This class has already started.",
    FailureReason.ALREADY_OCCURRED: "This class already took place and cannot be cancelled.",
    FailureReason.NOT_FOUND: "Reservation not found.",
    FailureReason.NOT_OWNER: "You can only cancel your own reservations.",
}

# Rejections the API reports as 409 Conflict; the rest are 422
CONFLICT_REASONS = frozenset({
    FailureReason.DUPLICATE_DAY_BOOKING,
    FailureReason.DUPLICATE_SLOT_BOOKING,
    FailureReason.SLOT_FULL,
    FailureReason.CONCURRENT_CONFLICT,
})


class UnitPolicy(str, enum.Enum):
    """How a bed is chosen among the free ones."""
    RANDOM = "random"
    STICKY = "sticky"


@dataclass
class BookingOutcome:
    success: bool
    class_date: date
    class_time: time
    reason: Optional[FailureReason] = None
    message: Optional[str] = None
    reservation_id: Optional[UUID] = None
    resource_unit: Optional[int] = None
    credit_lot_id: Optional[UUID] = None
    remaining_credits: Optional[int] = None

    @classmethod
    def booked(cls, reservation: Reservation, remaining_credits: int) -> "BookingOutcome":
        return cls(
            success=True,
            class_date=reservation.class_date,
            class_time=reservation.class_time,
            reservation_id=reservation.id,
            resource_unit=reservation.resource_unit,
            credit_lot_id=reservation.credit_lot_id,
            remaining_credits=remaining_credits,
            message="Reservation confirmed.",
        )

    @classmethod
    def rejected(cls, reason: FailureReason, class_date: date, class_time: time) -> "BookingOutcome":
        return cls(
            success=False,
            class_date=class_date,
            class_time=class_time,
            reason=reason,
            message=USER_MESSAGES[reason],
        )


class CancellationStatus(str, enum.Enum):
    CANCELLED = "cancelled"
    ALREADY_CANCELLED = "already_cancelled"
    CONFIRMATION_REQUIRED = "confirmation_required"
    REJECTED = "rejected"


@dataclass
class CancellationOutcome:
    status: CancellationStatus
    reservation_id: UUID
    reason: Optional[FailureReason] = None
    message: Optional[str] = None
    hours_until_start: Optional[float] = None
    credit_lot_id: Optional[UUID] = None
    remaining_credits: Optional[int] = None

    @property
    def success(self) -> bool:
        return self.status == CancellationStatus.CANCELLED

    @classmethod
    def rejected(cls, reason: FailureReason, reservation_id: UUID) -> "CancellationOutcome":
        return cls(
            status=CancellationStatus.REJECTED,
            reservation_id=reservation_id,
            reason=reason,
            message=USER_MESSAGES[reason],
        )


@dataclass
class AtomicCancelResult:
    """Result of the store's atomic cancel primitive."""
    success: bool
    message: str


@dataclass
class SeriesPlan:
    candidate_dates: list[date]
    available_credits: int

    @property
    def max_bookable(self) -> int:
        return min(len(self.candidate_dates), self.available_credits)

    @property
    def requires_confirmation(self) -> bool:
        return self.max_bookable < len(self.candidate_dates)


@dataclass
class SeriesDateResult:
    class_date: date
    success: bool
    reason: Optional[FailureReason] = None
    resource_unit: Optional[int] = None
    reservation_id: Optional[UUID] = None

    @classmethod
    def from_outcome(cls, outcome: BookingOutcome) -> "SeriesDateResult":
        return cls(
            class_date=outcome.class_date,
            success=outcome.success,
            reason=outcome.reason,
            resource_unit=outcome.resource_unit,
            reservation_id=outcome.reservation_id,
        )


@dataclass
class SeriesReport:
    class_time: time
    plan: SeriesPlan
    confirmation_required: bool = False
    results: list[SeriesDateResult] = field(default_factory=list)

    @property
    def max_bookable(self) -> int:
        return self.plan.max_bookable

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failure_count(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def booked_dates(self) -> list[date]:
        return [r.class_date for r in self.results if r.success]

    @property
    def reasons_by_date(self) -> dict[date, FailureReason]:
        return {r.class_date: r.reason for r in self.results if not r.success}


@dataclass
class MaterializationReport:
    client_id: UUID
    entries: list[tuple[int, time]]
    series: list[SeriesReport] = field(default_factory=list)

    @property
    def booked_count(self) -> int:
        return sum(report.success_count for report in self.series)

    @property
    def failed_count(self) -> int:
        return sum(report.failure_count for report in self.series)
