"""
Integration tests for reservation invariants: bed uniqueness, one class per
day, credit conservation and idempotent cancellation.
"""
import random
from datetime import date, time
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from runafit.lib.config_flags import BookingRules, FeatureFlags, set_booking_rules, set_feature_flags
from runafit.models import CreditLot, CreditLotStatus, Reservation, ReservationStatus
from runafit.models.reservations import CLIENT_DAY_INDEX, SLOT_UNIT_INDEX
from runafit.services.errors import InsufficientCredit, ReservationConflict
from runafit.services.outcomes import CancellationStatus, FailureReason, UnitPolicy
from runafit.services.reservation_service import ReservationService


MONDAY = date(2026, 3, 9)
WEDNESDAY = date(2026, 3, 11)


@pytest.fixture
def booker(db, clock, notifier):
    return ReservationService(db, clock, notifier, rng=random.Random(7))


def _live_count(db, **filters):
    stmt = select(func.count()).select_from(Reservation).where(
        Reservation.status != ReservationStatus.CANCELLED
    )
    for column, value in filters.items():
        stmt = stmt.where(getattr(Reservation, column) == value)
    return db.scalar(stmt)


@pytest.mark.integration
def test_store_rejects_second_live_row_on_same_bed(db, booker, make_client, make_lot):
    """The slot/bed unique index holds even when checks are skipped."""
    first, second = make_client(name="First"), make_client(name="Second")
    first_lot, second_lot = make_lot(first), make_lot(second)

    booker.store.insert_with_debit(Reservation(
        client_id=first.id, credit_lot_id=first_lot.id,
        class_date=MONDAY, class_time=time(9), resource_unit=3,
    ))

    with pytest.raises(ReservationConflict) as exc_info:
        booker.store.insert_with_debit(Reservation(
            client_id=second.id, credit_lot_id=second_lot.id,
            class_date=MONDAY, class_time=time(9), resource_unit=3,
        ))

    assert exc_info.value.index_name == SLOT_UNIT_INDEX
    db.refresh(second_lot)
    assert second_lot.remaining_credits == 8
    assert _live_count(db, class_date=MONDAY, class_time=time(9), resource_unit=3) == 1


@pytest.mark.integration
def test_store_rejects_second_live_row_on_same_day(db, booker, make_client, make_lot):
    """The client/day unique index holds even when checks are skipped."""
    client = make_client()
    lot = make_lot(client)

    booker.store.insert_with_debit(Reservation(
        client_id=client.id, credit_lot_id=lot.id,
        class_date=MONDAY, class_time=time(9), resource_unit=1,
    ))

    with pytest.raises(ReservationConflict) as exc_info:
        booker.store.insert_with_debit(Reservation(
            client_id=client.id, credit_lot_id=lot.id,
            class_date=MONDAY, class_time=time(18), resource_unit=1,
        ))

    assert exc_info.value.index_name == CLIENT_DAY_INDEX
    db.refresh(lot)
    assert lot.remaining_credits == 7


@pytest.mark.integration
def test_cancelled_row_frees_bed_and_day(db, booker, make_client, make_lot, session_for):
    """A cancelled reservation no longer blocks the bed or the client's day."""
    client = make_client()
    make_lot(client)
    session = session_for(client)

    booked = booker.book(session, client.id, WEDNESDAY, time(9), UnitPolicy.STICKY, preferred_unit=2)
    assert booker.cancel(session, booked.reservation_id).success

    rebooked = booker.book(session, client.id, WEDNESDAY, time(9), UnitPolicy.STICKY, preferred_unit=2)

    assert rebooked.success
    assert rebooked.resource_unit == 2
    assert _live_count(db, client_id=client.id, class_date=WEDNESDAY) == 1


@pytest.mark.integration
def test_same_slot_twice_is_duplicate_day(booker, make_client, make_lot, session_for):
    """The day check runs before the slot check."""
    client = make_client()
    make_lot(client)
    session = session_for(client)
    booker.book(session, client.id, WEDNESDAY, time(9))

    outcome = booker.book(session, client.id, WEDNESDAY, time(9))

    assert outcome.reason == FailureReason.DUPLICATE_DAY_BOOKING


@pytest.mark.integration
def test_unknown_and_past_slots_rejected(booker, make_client, make_lot, session_for):
    client = make_client()
    make_lot(client)
    session = session_for(client)

    tuesday_evening = booker.book(session, client.id, date(2026, 3, 10), time(18))
    started = booker.book(session, client.id, date(2026, 3, 6), time(8))
    saturday = booker.book(session, client.id, date(2026, 3, 7), time(9))

    assert tuesday_evening.reason == FailureReason.SLOT_NOT_OFFERED
    assert started.reason == FailureReason.SLOT_IN_PAST
    assert saturday.reason == FailureReason.SLOT_NOT_OFFERED


@pytest.mark.integration
def test_later_class_today_is_bookable(booker, make_client, make_lot, session_for):
    client = make_client()
    make_lot(client)

    outcome = booker.book(session_for(client), client.id, date(2026, 3, 6), time(9))

    assert outcome.success


@pytest.mark.integration
def test_credit_conservation(db, booker, make_client, make_lot, session_for):
    """remaining == total - live reservations charged to the lot."""
    client = make_client()
    lot = make_lot(client, total=5)
    session = session_for(client)

    outcomes = [booker.book(session, client.id, d, time(9)) for d in (
        date(2026, 3, 9), date(2026, 3, 10), date(2026, 3, 11), date(2026, 3, 12),
    )]
    booker.cancel(session, outcomes[1].reservation_id)
    booker.cancel(session, outcomes[1].reservation_id)

    db.refresh(lot)
    assert lot.remaining_credits == lot.total_credits - _live_count(db, credit_lot_id=lot.id)
    assert lot.remaining_credits == 2


@pytest.mark.integration
def test_cancel_twice_restores_once(db, booker, make_client, make_lot, session_for):
    client = make_client()
    lot = make_lot(client, total=4)
    session = session_for(client)
    booked = booker.book(session, client.id, WEDNESDAY, time(9))

    first = booker.cancel(session, booked.reservation_id)
    second = booker.cancel(session, booked.reservation_id)

    assert first.status == CancellationStatus.CANCELLED
    assert second.status == CancellationStatus.ALREADY_CANCELLED
    db.refresh(lot)
    assert lot.remaining_credits == 4


@pytest.mark.integration
def test_atomic_cancel_primitive_is_idempotent(db, booker, make_client, make_lot, session_for):
    client = make_client()
    lot = make_lot(client, total=4)
    booked = booker.book(session_for(client), client.id, WEDNESDAY, time(9))

    first = booker.store.cancel_atomic(booked.reservation_id, lot.id)
    second = booker.store.cancel_atomic(booked.reservation_id, lot.id)

    assert first.success is True
    assert second.success is False
    assert second.message == "already cancelled"
    db.refresh(lot)
    assert lot.remaining_credits == 4


@pytest.mark.integration
def test_atomic_cancel_checks_lot(db, booker, make_client, make_lot, session_for):
    client = make_client()
    lot = make_lot(client)
    other_lot = make_lot(client)
    booked = booker.book(session_for(client), client.id, WEDNESDAY, time(9))
    paying_lot_id = booked.credit_lot_id
    wrong_lot_id = other_lot.id if paying_lot_id == lot.id else lot.id

    result = booker.store.cancel_atomic(booked.reservation_id, wrong_lot_id)

    assert result.success is False
    assert result.message == "credit lot does not match reservation"
    assert booker.store.get(booked.reservation_id).status == ReservationStatus.CONFIRMED


@pytest.mark.integration
def test_last_credit_exhausts_lot_and_cancel_reactivates(db, booker, make_client, make_lot, session_for):
    client = make_client()
    lot = make_lot(client, total=3, remaining=1)
    session = session_for(client)

    booked = booker.book(session, client.id, WEDNESDAY, time(9))
    db.refresh(lot)
    assert lot.remaining_credits == 0
    assert lot.status == CreditLotStatus.EXHAUSTED

    empty = booker.book(session, client.id, date(2026, 3, 12), time(9))
    assert empty.reason == FailureReason.NO_CREDIT_AVAILABLE

    booker.cancel(session, booked.reservation_id)
    db.refresh(lot)
    assert lot.remaining_credits == 1
    assert lot.status == CreditLotStatus.ACTIVE


@pytest.mark.integration
def test_decrement_never_goes_negative(db, booker, make_client, make_lot):
    client = make_client()
    lot = make_lot(client, total=2, remaining=0)

    with pytest.raises(InsufficientCredit):
        booker.ledger.decrement(lot)

    assert lot.remaining_credits == 0


def _drain_after_selection(monkeypatch, db, ledger, times):
    """
    Make the first `times` selected lots run dry before the debit, the way a
    parallel booking by the same client spending them would.
    """
    select = ledger.select_consumable_lot
    drained = []

    def _select_then_drain(client_id, target_date):
        lot = select(client_id, target_date)
        if len(drained) < times:
            lot.remaining_credits = 0
            lot.status = CreditLotStatus.EXHAUSTED
            db.commit()
            drained.append(lot.id)
        return lot

    monkeypatch.setattr(ledger, "select_consumable_lot", _select_then_drain)
    return drained


@pytest.mark.integration
def test_drained_lot_falls_back_to_next_lot(db, booker, make_client, make_lot, session_for, monkeypatch):
    client = make_client()
    sooner = make_lot(client, total=4, remaining=1, expires_in_days=10)
    later = make_lot(client, total=4, remaining=4, expires_in_days=30)
    drained = _drain_after_selection(monkeypatch, db, booker.ledger, times=1)

    outcome = booker.book(session_for(client), client.id, MONDAY, time(9))

    assert drained == [sooner.id]
    assert outcome.success
    assert outcome.credit_lot_id == later.id
    assert outcome.remaining_credits == 3
    db.refresh(sooner)
    db.refresh(later)
    assert sooner.remaining_credits == 0
    assert later.remaining_credits == 3
    assert _live_count(db, client_id=client.id) == 1


@pytest.mark.integration
def test_drained_only_lot_is_no_credit(db, booker, make_client, make_lot, session_for, monkeypatch):
    client = make_client()
    lot = make_lot(client, total=4, remaining=1)
    _drain_after_selection(monkeypatch, db, booker.ledger, times=1)

    outcome = booker.book(session_for(client), client.id, MONDAY, time(9))

    assert outcome.reason == FailureReason.NO_CREDIT_AVAILABLE
    assert _live_count(db, client_id=client.id) == 0
    db.refresh(lot)
    assert lot.remaining_credits == 0


@pytest.mark.integration
def test_lot_drained_twice_is_concurrent_conflict(db, booker, make_client, make_lot, session_for, monkeypatch):
    client = make_client()
    sooner = make_lot(client, total=4, remaining=1, expires_in_days=10)
    later = make_lot(client, total=4, remaining=2, expires_in_days=30)
    drained = _drain_after_selection(monkeypatch, db, booker.ledger, times=2)

    outcome = booker.book(session_for(client), client.id, MONDAY, time(9))

    assert drained == [sooner.id, later.id]
    assert outcome.reason == FailureReason.CONCURRENT_CONFLICT
    assert _live_count(db, client_id=client.id) == 0
    db.refresh(sooner)
    db.refresh(later)
    assert sooner.remaining_credits == 0
    assert later.remaining_credits == 0


@pytest.mark.integration
def test_earliest_expiring_lot_pays_first(db, booker, make_client, make_lot, session_for):
    client = make_client()
    later = make_lot(client, total=8, expires_in_days=40, purchased_days_ago=10)
    sooner = make_lot(client, total=8, expires_in_days=20, purchased_days_ago=1)

    outcome = booker.book(session_for(client), client.id, WEDNESDAY, time(9))

    assert outcome.credit_lot_id == sooner.id
    db.refresh(later)
    assert later.remaining_credits == 8


@pytest.mark.integration
def test_expiry_tie_goes_to_older_purchase(booker, make_client, make_lot, session_for):
    client = make_client()
    newer = make_lot(client, expires_in_days=20, purchased_days_ago=1)
    older = make_lot(client, expires_in_days=20, purchased_days_ago=5)

    outcome = booker.book(session_for(client), client.id, WEDNESDAY, time(9))

    assert outcome.credit_lot_id == older.id
    assert outcome.credit_lot_id != newer.id


@pytest.mark.integration
def test_late_cancel_needs_confirmation(db, clock, booker, make_client, make_lot, session_for):
    client = make_client()
    lot = make_lot(client, total=4)
    session = session_for(client)
    booked = booker.book(session, client.id, WEDNESDAY, time(9))
    clock.moment = clock.starts_at(WEDNESDAY, time(7, 30))

    asked = booker.cancel(session, booked.reservation_id)

    assert asked.status == CancellationStatus.CONFIRMATION_REQUIRED
    assert asked.hours_until_start == 1.5
    assert booker.store.get(booked.reservation_id).status == ReservationStatus.CONFIRMED

    confirmed = booker.cancel(session, booked.reservation_id, confirm_late=True)

    assert confirmed.status == CancellationStatus.CANCELLED
    db.refresh(lot)
    assert lot.remaining_credits == 4


@pytest.mark.integration
def test_late_window_is_configurable(clock, booker, make_client, make_lot, session_for):
    set_booking_rules(BookingRules(late_cancel_hours=0))
    client = make_client()
    make_lot(client)
    session = session_for(client)
    booked = booker.book(session, client.id, WEDNESDAY, time(9))
    clock.moment = clock.starts_at(WEDNESDAY, time(8, 55))

    assert booker.cancel(session, booked.reservation_id).status == CancellationStatus.CANCELLED


@pytest.mark.integration
def test_cannot_cancel_class_that_started(clock, booker, make_client, make_lot, session_for):
    client = make_client()
    make_lot(client)
    session = session_for(client)
    booked = booker.book(session, client.id, WEDNESDAY, time(9))
    clock.moment = clock.starts_at(WEDNESDAY, time(9, 10))

    outcome = booker.cancel(session, booked.reservation_id, confirm_late=True)

    assert outcome.status == CancellationStatus.REJECTED
    assert outcome.reason == FailureReason.ALREADY_OCCURRED


@pytest.mark.integration
def test_cancel_permissions(booker, make_client, make_lot, session_for, admin_session):
    owner, stranger = make_client(name="Owner"), make_client(name="Stranger")
    make_lot(owner)
    booked = booker.book(session_for(owner), owner.id, WEDNESDAY, time(9))

    denied = booker.cancel(session_for(stranger), booked.reservation_id)
    allowed = booker.cancel(admin_session, booked.reservation_id)

    assert denied.reason == FailureReason.NOT_OWNER
    assert allowed.status == CancellationStatus.CANCELLED


@pytest.mark.integration
def test_cancel_unknown_reservation(booker, make_client, session_for):
    outcome = booker.cancel(session_for(make_client()), uuid4())

    assert outcome.reason == FailureReason.NOT_FOUND


@pytest.mark.integration
def test_cancel_returns_credit_to_expired_lot(db, booker, make_client, make_lot, session_for):
    """The credit goes back to the lot it came from, which stays expired."""
    client = make_client()
    lot = make_lot(client, total=4)
    session = session_for(client)
    booked = booker.book(session, client.id, WEDNESDAY, time(9))
    lot.status = CreditLotStatus.EXPIRED
    db.commit()

    outcome = booker.cancel(session, booked.reservation_id)

    assert outcome.success
    db.refresh(lot)
    assert lot.remaining_credits == 4
    assert lot.status == CreditLotStatus.EXPIRED


@pytest.mark.integration
def test_first_free_bed_when_random_assignment_off(booker, make_client, make_lot, session_for):
    set_feature_flags(FeatureFlags(random_unit_assignment=False))
    client = make_client()
    make_lot(client)

    outcome = booker.book(session_for(client), client.id, WEDNESDAY, time(9))

    assert outcome.resource_unit == 1


@pytest.mark.integration
def test_free_units_shrink_as_beds_fill(booker, make_client, make_lot, session_for):
    client = make_client()
    make_lot(client)

    outcome = booker.book(session_for(client), client.id, WEDNESDAY, time(9))
    free = booker.availability.list_free_units(WEDNESDAY, time(9))

    assert outcome.resource_unit not in free
    assert len(free) == 5
    assert booker.availability.list_free_units(date(2026, 3, 5), time(9)) == set()


@pytest.mark.integration
def test_lots_in_store_untouched_by_rejections(db, booker, make_client, make_lot, session_for):
    client = make_client()
    make_lot(client, total=4)
    session = session_for(client)
    booker.book(session, client.id, WEDNESDAY, time(9))
    booker.book(session, client.id, WEDNESDAY, time(8))
    booker.book(session, client.id, date(2026, 3, 7), time(9))

    total = db.scalar(select(func.sum(CreditLot.remaining_credits)).where(CreditLot.client_id == client.id))
    assert total == 3
