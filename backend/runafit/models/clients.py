"""
Client model - studio members and administrators.
"""
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4, UUID
import enum

from sqlalchemy import String, Integer, Boolean, DateTime, Uuid, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from runafit.lib.db import Base


class ClientRole(str, enum.Enum):
    """Role of a registered person."""
    CLIENT = "client"
    ADMIN = "admin"


class Shift(str, enum.Enum):
    """Time-of-day shift a client usually attends."""
    MORNING = "morning"
    EVENING = "evening"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Client(Base):
    """
    Client entity - created by admin registration, never hard-deleted.
    """
    __tablename__ = "clients"

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )

    # Identity
    dni: Mapped[str] = mapped_column(
        String(8),
        unique=True,
        nullable=False,
        index=True,
        comment="National identity number, 7-8 digits",
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    role: Mapped[ClientRole] = mapped_column(
        SQLEnum(ClientRole, name="client_role", values_callable=_enum_values),
        nullable=False,
        default=ClientRole.CLIENT,
    )

    # Studio assignment
    studio_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    shift_preference: Mapped[Optional[Shift]] = mapped_column(
        SQLEnum(Shift, name="shift", values_callable=_enum_values),
        nullable=True,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

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

    def __repr__(self) -> str:
        return f"<Client(id={self.id}, name={self.name}, role={self.role})>"
