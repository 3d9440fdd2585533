"""
Domain errors raised inside the booking engine.

Booking and cancellation convert these into typed outcomes before they
reach a caller. Admin services let the lookup/validation ones propagate and
the API maps them to HTTP responses.
"""
from datetime import date
from typing import Any, Dict, Optional
from uuid import UUID


class BookingEngineError(Exception):
    """Base class for engine errors."""


class NoCreditAvailable(BookingEngineError):
    """No credit lot of the client can pay for a class on the target date."""

    def __init__(self, client_id: UUID, target_date: date):
        self.client_id = client_id
        self.target_date = target_date
        super().__init__(f"No credit lot of client {client_id} covers {target_date.isoformat()}")


class InsufficientCredit(BookingEngineError):
    """Decrement attempted on a lot with nothing left."""

    def __init__(self, lot_id: UUID):
        self.lot_id = lot_id
        super().__init__(f"Credit lot {lot_id} has no remaining credits")


class ReservationConflict(BookingEngineError):
    """A live-reservation unique index rejected the insert at commit time."""

    def __init__(self, index_name: Optional[str]):
        self.index_name = index_name
        super().__init__(f"Reservation violates unique index {index_name or '<unknown>'}")


class RecordNotFound(BookingEngineError, LookupError):
    def __init__(self, resource: str, resource_id: Optional[Any] = None):
        self.resource = resource
        self.resource_id = str(resource_id) if resource_id is not None else None
        super().__init__(f"{resource} {self.resource_id or ''} not found".replace("  ", " "))


class InvalidInput(BookingEngineError, ValueError):
    def __init__(self, message: str, errors: Optional[Dict[str, Any]] = None):
        self.message = message
        self.errors = errors or {}
        super().__init__(message)


class DuplicateRecord(BookingEngineError):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class NotPermitted(BookingEngineError, PermissionError):
    def __init__(self, message: str = "Operation requires an administrator"):
        self.message = message
        super().__init__(message)
