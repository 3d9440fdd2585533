"""
Pack model - class-credit packs an administrator can sell.
"""
from uuid import uuid4, UUID

from sqlalchemy import String, Numeric, Integer, Boolean, Uuid, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from runafit.lib.db import Base


class Pack(Base):
    """
    Pack entity - a catalogue entry (e.g. "8 classes, 30 days").
    Selling one creates a CreditLot for the client.
    """
    __tablename__ = "packs"

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )

    studio_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    class_count: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[float] = mapped_column(Numeric(10, 2), nullable=False)
    duration_days: Mapped[int] = mapped_column(Integer, nullable=False)

    # Inactive packs stay for history but cannot be sold
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        CheckConstraint("class_count > 0", name="pack_class_count_positive"),
        CheckConstraint("duration_days > 0", name="pack_duration_positive"),
    )

    def __repr__(self) -> str:
        return f"<Pack(id={self.id}, name={self.name}, classes={self.class_count})>"
