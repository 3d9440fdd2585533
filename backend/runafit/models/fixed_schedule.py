"""
FixedScheduleEntry model - a client's recurring weekly class.
"""
from datetime import time
from uuid import uuid4, UUID

from sqlalchemy import Integer, Time, ForeignKey, Uuid, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from runafit.lib.db import Base


class FixedScheduleEntry(Base):
    """
    (client, weekday, time) commitment. Weekday uses Monday=0 ... Sunday=6.
    The whole set for a client is replaced on every edit.
    """
    __tablename__ = "fixed_schedule"

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
    weekday: Mapped[int] = mapped_column(Integer, nullable=False)
    class_time: Mapped[time] = mapped_column(Time, nullable=False)

    __table_args__ = (
        UniqueConstraint("client_id", "weekday", "class_time", name="uq_fixed_schedule_entry"),
        CheckConstraint("weekday BETWEEN 0 AND 6", name="fixed_schedule_weekday_range"),
    )

    def __repr__(self) -> str:
        return f"<FixedScheduleEntry(client_id={self.client_id}, weekday={self.weekday}, time={self.class_time})>"
