"""
Reservation persistence primitives.

The two write primitives here are the only places a reservation and its
credit lot are mutated, each in a single transaction:

- insert_with_debit: lock lot, take one credit, insert reservation, commit
- cancel_atomic: lock reservation, flip to cancelled, give the credit back, commit

The live-reservation unique indexes are the arbiter for concurrent writers;
a violation is reported as ReservationConflict naming the index.
"""
from collections import defaultdict
from datetime import date, datetime, time, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from runafit.lib.logging import get_logger
from runafit.models.reservations import (
    Reservation,
    ReservationStatus,
    SLOT_UNIT_INDEX,
    CLIENT_DAY_INDEX,
)
from runafit.services.credit_ledger import CreditLedger
from runafit.services.errors import ReservationConflict
from runafit.services.outcomes import AtomicCancelResult


logger = get_logger(__name__)


def resolve_violated_index(exc: IntegrityError) -> Optional[str]:
    """
    Name the live-reservation index an IntegrityError came from.

    PostgreSQL reports the constraint name through the driver diagnostics;
    SQLite only lists the columns, so fall back to matching the message.
    """
    orig = getattr(exc, "orig", None)
    diag = getattr(orig, "diag", None)
    constraint = getattr(diag, "constraint_name", None) if diag else None
    if constraint in (SLOT_UNIT_INDEX, CLIENT_DAY_INDEX):
        return constraint

    message = str(orig or exc)
    if SLOT_UNIT_INDEX in message or "reservations.resource_unit" in message:
        return SLOT_UNIT_INDEX
    if CLIENT_DAY_INDEX in message or "reservations.client_id" in message:
        return CLIENT_DAY_INDEX
    return None


def _live():
    return Reservation.status != ReservationStatus.CANCELLED


class ReservationStore:
    """Queries and atomic writes over the reservations table."""

    def __init__(self, db_session: Session, ledger: CreditLedger):
        self.db = db_session
        self.ledger = ledger

    # ===== Reads =====

    def get(self, reservation_id: UUID) -> Optional[Reservation]:
        """Fetch from the store, refreshing any copy held by the session."""
        stmt = (
            select(Reservation)
            .where(Reservation.id == reservation_id)
            .execution_options(populate_existing=True)
        )
        return self.db.scalars(stmt).one_or_none()

    def live_for_client_on(self, client_id: UUID, class_date: date) -> list[Reservation]:
        stmt = select(Reservation).where(
            Reservation.client_id == client_id,
            Reservation.class_date == class_date,
            _live(),
        )
        return list(self.db.scalars(stmt).all())

    def client_holds_slot(self, client_id: UUID, class_date: date, class_time: time) -> bool:
        stmt = select(Reservation.id).where(
            Reservation.client_id == client_id,
            Reservation.class_date == class_date,
            Reservation.class_time == class_time,
            _live(),
        )
        return self.db.scalar(stmt.limit(1)) is not None

    def occupied_units(self, class_date: date, class_time: time) -> set[int]:
        stmt = select(Reservation.resource_unit).where(
            Reservation.class_date == class_date,
            Reservation.class_time == class_time,
            _live(),
        )
        return set(self.db.scalars(stmt).all())

    def occupied_by_time(self, class_date: date) -> dict[time, set[int]]:
        stmt = select(Reservation.class_time, Reservation.resource_unit).where(
            Reservation.class_date == class_date,
            _live(),
        )
        occupied: dict[time, set[int]] = defaultdict(set)
        for class_time, unit in self.db.execute(stmt).all():
            occupied[class_time].add(unit)
        return occupied

    def upcoming_for_client(self, client_id: UUID, from_date: date) -> list[Reservation]:
        stmt = (
            select(Reservation)
            .where(
                Reservation.client_id == client_id,
                Reservation.class_date >= from_date,
                _live(),
            )
            .order_by(Reservation.class_date, Reservation.class_time)
        )
        return list(self.db.scalars(stmt).all())

    # ===== Atomic writes =====

    def insert_with_debit(self, reservation: Reservation) -> Reservation:
        """
        Insert a reservation and take one credit from its lot, all or nothing.

        Raises:
            ReservationConflict: a live-reservation unique index rejected the row
            InsufficientCredit: the lot ran out since it was selected
        """
        try:
            lot = self.ledger.lock_lot(reservation.credit_lot_id)
            self.ledger.decrement(lot)
            self.db.add(reservation)
            self.db.flush()
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            index_name = resolve_violated_index(exc)
            logger.info("Reservation insert lost on unique index", extra={
                "index": index_name,
                "class_date": reservation.class_date.isoformat(),
                "class_time": reservation.class_time.isoformat(),
                "resource_unit": reservation.resource_unit,
            })
            raise ReservationConflict(index_name) from exc
        except Exception:
            self.db.rollback()
            raise
        return reservation

    def cancel_atomic(self, reservation_id: UUID, credit_lot_id: UUID) -> AtomicCancelResult:
        """
        Cancel a reservation and restore one credit to the lot it was charged to.

        The reservation row is locked first, so of two concurrent cancels the
        second sees the cancelled status and reports "already cancelled".
        """
        try:
            stmt = (
                select(Reservation)
                .where(Reservation.id == reservation_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            reservation = self.db.scalars(stmt).one_or_none()

            if reservation is None:
                self.db.rollback()
                return AtomicCancelResult(success=False, message="reservation not found")
            if reservation.status == ReservationStatus.CANCELLED:
                self.db.rollback()
                return AtomicCancelResult(success=False, message="already cancelled")
            if reservation.credit_lot_id != credit_lot_id:
                self.db.rollback()
                return AtomicCancelResult(success=False, message="credit lot does not match reservation")

            reservation.status = ReservationStatus.CANCELLED
            reservation.cancelled_at = datetime.now(timezone.utc)
            lot = self.ledger.lock_lot(credit_lot_id)
            self.ledger.restore(lot)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        return AtomicCancelResult(success=True, message="cancelled")
