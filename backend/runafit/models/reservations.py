"""
Reservation model - one client on one bed for one class slot.
"""
from datetime import date, time, datetime, timezone
from typing import Optional
from uuid import uuid4, UUID
import enum

from sqlalchemy import (
    Integer, Date, Time, DateTime, ForeignKey, Uuid,
    Enum as SQLEnum, CheckConstraint, Index,
)
from sqlalchemy.orm import Mapped, mapped_column

from runafit.lib.db import Base


class ReservationStatus(str, enum.Enum):
    """
    Reservation status state machine.
    pending/confirmed -> cancelled only; a cancelled row is never revived.
    """
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


SLOT_UNIT_INDEX = "uq_reservation_slot_unit"
CLIENT_DAY_INDEX = "uq_reservation_client_day"


class Reservation(Base):
    """
    Reservation entity.

    Store-enforced rules on live (non-cancelled) rows:
    - one reservation per (class_date, class_time, resource_unit)
    - one reservation per (client_id, class_date)
    """
    __tablename__ = "reservations"

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )

    client_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    credit_lot_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("credit_lots.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    # Slot
    class_date: Mapped[date] = mapped_column(Date, nullable=False)
    class_time: Mapped[time] = mapped_column(Time, nullable=False)
    resource_unit: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[ReservationStatus] = mapped_column(
        SQLEnum(
            ReservationStatus,
            name="reservation_status",
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=ReservationStatus.CONFIRMED,
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        CheckConstraint("resource_unit >= 1", name="reservation_unit_positive"),
        CheckConstraint(
            "cancelled_at IS NULL OR status = 'cancelled'",
            name="reservation_cancelled_at_only_when_cancelled",
        ),
        Index("ix_reservations_slot", "class_date", "class_time"),
    )

    @property
    def is_live(self) -> bool:
        return self.status != ReservationStatus.CANCELLED

    def starts_at(self, tz) -> datetime:
        """Class start as an aware datetime in the studio timezone."""
        return datetime.combine(self.class_date, self.class_time, tzinfo=tz)

    def __repr__(self) -> str:
        return (
            f"<Reservation(id={self.id}, {self.class_date} {self.class_time} "
            f"bed={self.resource_unit}, status={self.status})>"
        )


# Partial unique indexes: cancelled rows free their bed and their day
Index(
    SLOT_UNIT_INDEX,
    Reservation.class_date,
    Reservation.class_time,
    Reservation.resource_unit,
    unique=True,
    postgresql_where=Reservation.status != ReservationStatus.CANCELLED,
    sqlite_where=Reservation.status != ReservationStatus.CANCELLED,
)
Index(
    CLIENT_DAY_INDEX,
    Reservation.client_id,
    Reservation.class_date,
    unique=True,
    postgresql_where=Reservation.status != ReservationStatus.CANCELLED,
    sqlite_where=Reservation.status != ReservationStatus.CANCELLED,
)
