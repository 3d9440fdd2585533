"""
CreditLot model - one purchased pack instance and its remaining credits.
"""
from datetime import date, datetime, timezone
from typing import Optional
from uuid import uuid4, UUID
import enum

from sqlalchemy import (
    String, Numeric, Integer, Date, DateTime, ForeignKey, Uuid,
    Enum as SQLEnum, CheckConstraint, Index,
)
from sqlalchemy.orm import Mapped, mapped_column

from runafit.lib.db import Base


class CreditLotStatus(str, enum.Enum):
    """Lifecycle of a credit lot."""
    ACTIVE = "active"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"


class CreditLot(Base):
    """
    Credit lot entity.

    Invariant: 0 <= remaining_credits <= total_credits.
    A lot can pay for a class on date D iff it is not expired,
    remaining_credits > 0 and expiry_date >= D.
    """
    __tablename__ = "credit_lots"

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
    pack_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("packs.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Balance
    total_credits: Mapped[int] = mapped_column(Integer, nullable=False)
    remaining_credits: Mapped[int] = mapped_column(Integer, nullable=False)
    carried_over_credits: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Credits rolled in from a renewed lot",
    )

    # Validity
    purchase_date: Mapped[date] = mapped_column(Date, nullable=False)
    expiry_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    status: Mapped[CreditLotStatus] = mapped_column(
        SQLEnum(
            CreditLotStatus,
            name="credit_lot_status",
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=CreditLotStatus.ACTIVE,
    )

    # Payment record (the gateway itself is external)
    amount_paid: Mapped[Optional[float]] = mapped_column(Numeric(10, 2), nullable=True)
    payment_method: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        CheckConstraint(
            "remaining_credits >= 0 AND remaining_credits <= total_credits",
            name="credit_lot_remaining_in_range",
        ),
        Index("ix_credit_lots_client_status", "client_id", "status"),
    )

    @property
    def used_credits(self) -> int:
        return self.total_credits - self.remaining_credits

    def covers(self, target_date: date) -> bool:
        """True when this lot can pay for a class on target_date."""
        return (
            self.status != CreditLotStatus.EXPIRED
            and self.remaining_credits > 0
            and self.expiry_date >= target_date
        )

    def __repr__(self) -> str:
        return (
            f"<CreditLot(id={self.id}, remaining={self.remaining_credits}/"
            f"{self.total_credits}, expires={self.expiry_date}, status={self.status})>"
        )
