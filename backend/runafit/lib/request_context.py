"""
Request context utilities: correlation id lookup and the per-request
session context handed to the booking engine.
"""
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from fastapi import Request

from runafit.models.clients import ClientRole, Shift


@dataclass(frozen=True)
class SessionContext:
    """
    Who is acting and in which login session.

    Built from the bearer token at the API edge and passed explicitly into
    every engine operation.
    """
    client_id: UUID
    role: ClientRole
    session_id: str
    studio_id: Optional[int] = None
    shift_preference: Optional[Shift] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ClientRole.ADMIN

    def can_act_for(self, client_id: UUID) -> bool:
        """Admins act for anyone, clients only for themselves."""
        return self.is_admin or self.client_id == client_id


def get_correlation_id(request: Request) -> Optional[str]:
    """
    Get the correlation ID from the current request.

    Args:
        request: FastAPI Request object

    Returns:
        Correlation ID string or None if not available
    """
    return getattr(request.state, "correlation_id", None)
