"""
Reservation transaction: book a bed for a class, cancel it again.

book() runs the checks in order (calendar, one class per day, same slot,
free beds, credit) and then writes reservation and credit debit in one
transaction. Checks before the write only spare obviously futile attempts;
the live-reservation unique indexes decide races at commit.

Both operations return an outcome object for every business condition and
only raise on infrastructure failures.
"""
import random
from datetime import date, time
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from runafit.lib.clock import StudioClock
from runafit.lib.config_flags import get_booking_rules, get_feature_flags
from runafit.lib.logging import get_logger
from runafit.lib.metrics import get_metrics_collector
from runafit.lib.request_context import SessionContext
from runafit.models.credit_lots import CreditLot
from runafit.models.reservations import Reservation, ReservationStatus, SLOT_UNIT_INDEX
from runafit.services import calendar_service
from runafit.services.availability_service import AvailabilityService
from runafit.services.credit_ledger import CreditLedger
from runafit.services.errors import NoCreditAvailable, InsufficientCredit, ReservationConflict
from runafit.services.notification_service import NotificationService
from runafit.services.outcomes import (
    BookingOutcome,
    CancellationOutcome,
    CancellationStatus,
    FailureReason,
    UnitPolicy,
)
from runafit.services.reservation_store import ReservationStore


logger = get_logger(__name__)


class ReservationService:
    """Books and cancels reservations for one database session."""

    def __init__(
        self,
        db_session: Session,
        clock: Optional[StudioClock] = None,
        notifier: Optional[NotificationService] = None,
        availability: Optional[AvailabilityService] = None,
        rng: Optional[random.Random] = None,
    ):
        self.db = db_session
        self.clock = clock or StudioClock()
        self.ledger = CreditLedger(db_session, self.clock, notifier)
        self.store = ReservationStore(db_session, self.ledger)
        self.availability = availability or AvailabilityService(db_session, self.clock, self.store)
        self.rng = rng or random.Random()
        self.metrics = get_metrics_collector()

    def pick_unit(
        self,
        free_units: set[int],
        policy: UnitPolicy = UnitPolicy.RANDOM,
        preferred_unit: Optional[int] = None,
    ) -> int:
        """
        Choose a bed among the free ones.

        RANDOM spreads clients over the room (first free bed when the
        random_unit_assignment flag is off). STICKY keeps the preferred bed
        when it is free, else the first free bed.
        """
        ordered = sorted(free_units)
        if policy == UnitPolicy.STICKY:
            if preferred_unit in free_units:
                return preferred_unit
            return ordered[0]
        if not get_feature_flags().random_unit_assignment:
            return ordered[0]
        return self.rng.choice(ordered)

    def _reject(
        self,
        reason: FailureReason,
        client_id: UUID,
        class_date: date,
        class_time: time,
    ) -> BookingOutcome:
        self.metrics.increment_rejected(reason.value)
        logger.info("Booking rejected", extra={
            "reason": reason.value,
            "client_id": str(client_id),
            "class_date": class_date.isoformat(),
            "class_time": class_time.isoformat(),
        })
        return BookingOutcome.rejected(reason, class_date, class_time)

    def book(
        self,
        session: SessionContext,
        client_id: UUID,
        class_date: date,
        class_time: time,
        unit_policy: UnitPolicy = UnitPolicy.RANDOM,
        preferred_unit: Optional[int] = None,
        entry: str = "client",
    ) -> BookingOutcome:
        """
        Book one class for a client.

        Args:
            session: Acting session (client or admin)
            client_id: Client the reservation is for
            class_date: Class date
            class_time: Class start time (studio local)
            unit_policy: RANDOM for single bookings, STICKY for series
            preferred_unit: Bed to keep under the STICKY policy
            entry: Entry point label for metrics (client, series, admin)

        Returns:
            BookingOutcome, successful or carrying the FailureReason
        """
        if not calendar_service.is_offered(class_date, class_time):
            return self._reject(FailureReason.SLOT_NOT_OFFERED, client_id, class_date, class_time)

        if self.clock.starts_at(class_date, class_time) <= self.clock.now():
            return self._reject(FailureReason.SLOT_IN_PAST, client_id, class_date, class_time)

        if self.store.live_for_client_on(client_id, class_date):
            return self._reject(FailureReason.DUPLICATE_DAY_BOOKING, client_id, class_date, class_time)

        if self.store.client_holds_slot(client_id, class_date, class_time):
            return self._reject(FailureReason.DUPLICATE_SLOT_BOOKING, client_id, class_date, class_time)

        free_units = self.availability.list_free_units(class_date, class_time)
        if not free_units:
            return self._reject(FailureReason.SLOT_FULL, client_id, class_date, class_time)

        try:
            lot = self.ledger.select_consumable_lot(client_id, class_date)
        except NoCreditAvailable:
            return self._reject(FailureReason.NO_CREDIT_AVAILABLE, client_id, class_date, class_time)

        reservation = Reservation(
            client_id=client_id,
            credit_lot_id=lot.id,
            class_date=class_date,
            class_time=class_time,
            resource_unit=self.pick_unit(free_units, unit_policy, preferred_unit),
            status=ReservationStatus.CONFIRMED,
        )

        try:
            try:
                self.store.insert_with_debit(reservation)
            except InsufficientCredit:
                # Another request spent the selected lot; pick again once
                logger.info("Selected credit lot drained before debit", extra={
                    "credit_lot_id": str(lot.id),
                    "client_id": str(client_id),
                })
                lot = self.ledger.select_consumable_lot(client_id, class_date)
                reservation.credit_lot_id = lot.id
                self.store.insert_with_debit(reservation)
        except ReservationConflict as exc:
            reason = (
                FailureReason.CONCURRENT_CONFLICT
                if exc.index_name in (SLOT_UNIT_INDEX, None)
                else FailureReason.DUPLICATE_DAY_BOOKING
            )
            return self._reject(reason, client_id, class_date, class_time)
        except NoCreditAvailable:
            return self._reject(FailureReason.NO_CREDIT_AVAILABLE, client_id, class_date, class_time)
        except InsufficientCredit:
            return self._reject(FailureReason.CONCURRENT_CONFLICT, client_id, class_date, class_time)

        self.metrics.increment_booked(entry)
        logger.info("Reservation booked", extra={
            "reservation_id": str(reservation.id),
            "client_id": str(client_id),
            "class_date": class_date.isoformat(),
            "class_time": class_time.isoformat(),
            "resource_unit": reservation.resource_unit,
            "credit_lot_id": str(lot.id),
            "entry": entry,
        })

        outcome = BookingOutcome.booked(reservation, remaining_credits=lot.remaining_credits)
        if session.client_id == client_id:
            self.ledger.check_balance_warning(session, client_id)
        return outcome

    def cancel(
        self,
        session: SessionContext,
        reservation_id: UUID,
        confirm_late: bool = False,
    ) -> CancellationOutcome:
        """
        Cancel a reservation and give its credit back.

        Cancelling inside the late window needs confirm_late=True; without it
        the outcome asks for confirmation and nothing changes. Cancelling a
        cancelled reservation reports already_cancelled and restores nothing.
        """
        reservation = self.store.get(reservation_id)
        if reservation is None:
            return self._cancel_rejected(FailureReason.NOT_FOUND, reservation_id)
        if not session.can_act_for(reservation.client_id):
            return self._cancel_rejected(FailureReason.NOT_OWNER, reservation_id)

        if reservation.status == ReservationStatus.CANCELLED:
            return self._already_cancelled(reservation_id)

        starts_at = self.clock.starts_at(reservation.class_date, reservation.class_time)
        now = self.clock.now()
        if starts_at <= now:
            return self._cancel_rejected(FailureReason.ALREADY_OCCURRED, reservation_id)

        hours_left = (starts_at - now).total_seconds() / 3600
        if hours_left < get_booking_rules().late_cancel_hours and not confirm_late:
            self.metrics.increment_cancelled("confirmation_required")
            return CancellationOutcome(
                status=CancellationStatus.CONFIRMATION_REQUIRED,
                reservation_id=reservation_id,
                hours_until_start=round(hours_left, 2),
                message="The class starts soon. Confirm to cancel anyway.",
            )

        lot_id = reservation.credit_lot_id
        result = self.store.cancel_atomic(reservation_id, lot_id)
        if not result.success:
            if result.message == "already cancelled":
                return self._already_cancelled(reservation_id)
            return self._cancel_rejected(FailureReason.NOT_FOUND, reservation_id)

        lot = self.db.get(CreditLot, lot_id)
        self.metrics.increment_cancelled("cancelled")
        logger.info("Reservation cancelled", extra={
            "reservation_id": str(reservation_id),
            "client_id": str(reservation.client_id),
            "credit_lot_id": str(lot_id),
            "late": hours_left < get_booking_rules().late_cancel_hours,
        })
        return CancellationOutcome(
            status=CancellationStatus.CANCELLED,
            reservation_id=reservation_id,
            hours_until_start=round(hours_left, 2),
            credit_lot_id=lot_id,
            remaining_credits=lot.remaining_credits if lot else None,
            message="Reservation cancelled, your credit was returned.",
        )

    def _already_cancelled(self, reservation_id: UUID) -> CancellationOutcome:
        self.metrics.increment_cancelled("already_cancelled")
        return CancellationOutcome(
            status=CancellationStatus.ALREADY_CANCELLED,
            reservation_id=reservation_id,
            message="This reservation was already cancelled.",
        )

    def _cancel_rejected(self, reason: FailureReason, reservation_id: UUID) -> CancellationOutcome:
        self.metrics.increment_cancelled("rejected")
        logger.info("Cancellation rejected", extra={
            "reason": reason.value,
            "reservation_id": str(reservation_id),
        })
        return CancellationOutcome.rejected(reason, reservation_id)
