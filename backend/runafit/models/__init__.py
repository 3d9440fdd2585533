"""
SQLAlchemy models package.
Import all models here to ensure they're registered with Base.metadata.
"""
from runafit.models.clients import Client, ClientRole, Shift
from runafit.models.packs import Pack
from runafit.models.credit_lots import CreditLot, CreditLotStatus
from runafit.models.reservations import Reservation, ReservationStatus
from runafit.models.fixed_schedule import FixedScheduleEntry

__all__ = [
    "Client",
    "ClientRole",
    "Shift",
    "Pack",
    "CreditLot",
    "CreditLotStatus",
    "Reservation",
    "ReservationStatus",
    "FixedScheduleEntry",
]
