"""
Fixed weekly schedules and their materialization into reservations.

Saving a schedule replaces the client's whole set of entries, then books
each entry for the rest of the current month. Entries are processed in the
order given, so when two land on the same date the first one keeps the day.
"""
from datetime import date, time
from typing import Iterable, Optional, Union
from uuid import UUID

from sqlalchemy import select, delete
from sqlalchemy.orm import Session

from runafit.lib.clock import StudioClock
from runafit.lib.logging import get_logger
from runafit.lib.request_context import SessionContext
from runafit.models.clients import Client
from runafit.models.fixed_schedule import FixedScheduleEntry
from runafit.services import calendar_service
from runafit.services.errors import InvalidInput, NotPermitted, RecordNotFound
from runafit.services.notification_service import NotificationService
from runafit.services.outcomes import MaterializationReport
from runafit.services.recurring_booking_service import RecurringBookingService, expand


logger = get_logger(__name__)

ScheduleInput = tuple[Union[int, str], Union[time, str]]


def normalize_entries(entries: Iterable[ScheduleInput]) -> list[tuple[int, time]]:
    """
    Parse and validate schedule entries against the studio calendar.

    Duplicate (weekday, time) pairs are dropped, first occurrence kept.

    Raises:
        InvalidInput: with one error per offending entry index
    """
    normalized: list[tuple[int, time]] = []
    errors: dict[str, str] = {}
    for index, (raw_weekday, raw_time) in enumerate(entries):
        try:
            weekday = calendar_service.weekday_from_name(raw_weekday)
            class_time = calendar_service.parse_class_time(raw_time)
        except ValueError as exc:
            errors[str(index)] = str(exc)
            continue
        if not calendar_service.offers(weekday, class_time):
            errors[str(index)] = f"No class at {class_time.strftime('%H:%M')} on weekday {weekday}"
            continue
        if (weekday, class_time) not in normalized:
            normalized.append((weekday, class_time))

    if errors:
        raise InvalidInput("Invalid fixed schedule entries", errors)
    return normalized


class ScheduleMaterializer:
    """Admin flow: persist a fixed schedule and pre-book it."""

    def __init__(
        self,
        db_session: Session,
        clock: Optional[StudioClock] = None,
        notifier: Optional[NotificationService] = None,
        series: Optional[RecurringBookingService] = None,
    ):
        self.db = db_session
        self.clock = clock or StudioClock()
        self.series = series or RecurringBookingService(db_session, self.clock, notifier)

    def get_fixed_schedule(self, client_id: UUID) -> list[FixedScheduleEntry]:
        stmt = (
            select(FixedScheduleEntry)
            .where(FixedScheduleEntry.client_id == client_id)
            .order_by(FixedScheduleEntry.weekday, FixedScheduleEntry.class_time)
        )
        return list(self.db.scalars(stmt).all())

    def replace_entries(self, client_id: UUID, entries: list[tuple[int, time]]) -> None:
        """Delete every entry of the client and insert `entries`, one transaction."""
        try:
            self.db.execute(delete(FixedScheduleEntry).where(FixedScheduleEntry.client_id == client_id))
            self.db.add_all([
                FixedScheduleEntry(client_id=client_id, weekday=weekday, class_time=class_time)
                for weekday, class_time in entries
            ])
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def set_fixed_schedule(
        self,
        session: SessionContext,
        client_id: UUID,
        entries: Iterable[ScheduleInput],
        today: Optional[date] = None,
    ) -> MaterializationReport:
        """
        Replace the client's fixed schedule and book it until the end of the month.

        Args:
            session: Acting session, must be an administrator
            client_id: Client whose schedule is replaced
            entries: (weekday, time) pairs; weekday as 0-6 or a name
            today: First day to book from (studio today by default)

        Raises:
            NotPermitted: session is not an administrator
            RecordNotFound: client does not exist
            InvalidInput: an entry is not a class on the studio calendar
        """
        if not session.is_admin:
            raise NotPermitted("Only administrators can set fixed schedules")
        if self.db.get(Client, client_id) is None:
            raise RecordNotFound("Client", client_id)

        normalized = normalize_entries(entries)
        self.replace_entries(client_id, normalized)

        today = today or self.clock.today()
        horizon_end = calendar_service.end_of_month(today)
        now = self.clock.now()
        report = MaterializationReport(client_id=client_id, entries=normalized)

        for weekday, class_time in normalized:
            dates = [
                d for d in expand(today, weekday, horizon_end)
                if self.clock.starts_at(d, class_time) > now
            ]
            report.series.append(self.series.book_series(
                session,
                client_id,
                dates,
                class_time,
                accept_partial=True,
                entry="admin",
            ))

        logger.info("Fixed schedule materialized", extra={
            "client_id": str(client_id),
            "entry_count": len(normalized),
            "booked_count": report.booked_count,
            "failed_count": report.failed_count,
        })
        return report
