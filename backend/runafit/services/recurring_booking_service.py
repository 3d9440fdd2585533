"""
Recurring bookings: expand a weekly (weekday, time) into dates and book them.

Each date is booked in its own transaction; a failed date never undoes or
stops the others. When the client cannot pay for every date the caller must
accept the reduced series explicitly before anything is booked.
"""
from datetime import date, time, timedelta
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from runafit.lib.clock import StudioClock
from runafit.lib.logging import get_logger
from runafit.lib.metrics import get_metrics_collector
from runafit.lib.request_context import SessionContext
from runafit.services import calendar_service
from runafit.services.notification_service import NotificationService
from runafit.services.outcomes import SeriesDateResult, SeriesPlan, SeriesReport, UnitPolicy
from runafit.services.reservation_service import ReservationService


logger = get_logger(__name__)


def expand(start_date: date, weekday: int, horizon_end: date) -> list[date]:
    """
    Dates falling on `weekday` from start_date through horizon_end, inclusive.

    >>> expand(date(2026, 3, 6), 0, date(2026, 3, 31))
    [datetime.date(2026, 3, 9), datetime.date(2026, 3, 16), datetime.date(2026, 3, 23), datetime.date(2026, 3, 30)]
    """
    offset = (weekday - start_date.weekday()) % 7
    current = start_date + timedelta(days=offset)
    dates = []
    while current <= horizon_end:
        dates.append(current)
        current += timedelta(days=7)
    return dates


def expand_rest_of_month(start_date: date) -> list[date]:
    """start_date and the same weekday every week until the end of its month."""
    return expand(start_date, start_date.weekday(), calendar_service.end_of_month(start_date))


class RecurringBookingService:
    """Plans and books weekly series."""

    def __init__(
        self,
        db_session: Session,
        clock: Optional[StudioClock] = None,
        notifier: Optional[NotificationService] = None,
        reservations: Optional[ReservationService] = None,
    ):
        self.db = db_session
        self.clock = clock or StudioClock()
        self.reservations = reservations or ReservationService(db_session, self.clock, notifier)
        self.ledger = self.reservations.ledger
        self.metrics = get_metrics_collector()

    def plan(self, client_id: UUID, candidate_dates: Iterable[date]) -> SeriesPlan:
        """How many of the dates the client's current credits can pay for."""
        return SeriesPlan(
            candidate_dates=list(candidate_dates),
            available_credits=self.ledger.total_remaining(client_id),
        )

    def book_series(
        self,
        session: SessionContext,
        client_id: UUID,
        candidate_dates: Iterable[date],
        class_time: time,
        preferred_unit: Optional[int] = None,
        accept_partial: bool = False,
        entry: str = "series",
    ) -> SeriesReport:
        """
        Book class_time on every candidate date.

        Args:
            session: Acting session
            client_id: Client to book for
            candidate_dates: Dates to try, in order
            class_time: Class start time
            preferred_unit: Bed to keep across the series when free
            accept_partial: Proceed even if credits cover fewer dates than requested
            entry: Entry point label for metrics

        Returns:
            SeriesReport; confirmation_required=True and no results when the
            plan falls short and accept_partial is False
        """
        plan = self.plan(client_id, candidate_dates)
        report = SeriesReport(class_time=class_time, plan=plan)

        if plan.requires_confirmation and not accept_partial:
            report.confirmation_required = True
            logger.info("Series needs confirmation", extra={
                "client_id": str(client_id),
                "requested": len(plan.candidate_dates),
                "max_bookable": plan.max_bookable,
            })
            return report

        sticky_unit = preferred_unit
        for class_date in plan.candidate_dates:
            outcome = self.reservations.book(
                session,
                client_id,
                class_date,
                class_time,
                unit_policy=UnitPolicy.STICKY,
                preferred_unit=sticky_unit,
                entry=entry,
            )
            if outcome.success:
                sticky_unit = outcome.resource_unit
            report.results.append(SeriesDateResult.from_outcome(outcome))
            self.metrics.increment_series("booked" if outcome.success else "failed")

        logger.info("Series booked", extra={
            "client_id": str(client_id),
            "class_time": class_time.isoformat(),
            "success_count": report.success_count,
            "failure_count": report.failure_count,
        })
        return report

    def repeat_rest_of_month(
        self,
        session: SessionContext,
        client_id: UUID,
        start_date: date,
        class_time: time,
        accept_partial: bool = False,
    ) -> SeriesReport:
        """
        Book the same weekday and time every week until the end of the month.

        If the client already holds that class on start_date, the series keeps
        its bed and starts the following week.
        """
        dates = expand_rest_of_month(start_date)
        preferred_unit = None
        for reservation in self.reservations.store.live_for_client_on(client_id, start_date):
            if reservation.class_time == class_time:
                preferred_unit = reservation.resource_unit
                dates = [d for d in dates if d != start_date]
                break

        return self.book_series(
            session,
            client_id,
            dates,
            class_time,
            preferred_unit=preferred_unit,
            accept_partial=accept_partial,
        )
