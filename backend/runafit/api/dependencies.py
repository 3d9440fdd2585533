"""
API dependencies for FastAPI dependency injection.

Provides database sessions, the studio clock and the session context
decoded from the bearer token.
"""
from uuid import UUID

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jwt.exceptions import InvalidTokenError

from runafit.api.middleware.error_handler import ForbiddenException, UnauthorizedException
from runafit.lib.clock import StudioClock
from runafit.lib.db import get_db as get_db_session
from runafit.lib.jwt import get_session_claims
from runafit.lib.request_context import SessionContext
from runafit.models.clients import ClientRole, Shift
from runafit.services.notification_service import NotificationService, get_notification_service


# Re-export get_db for convenience
get_db = get_db_session


# HTTP Bearer token security scheme
security = HTTPBearer(auto_error=False)


def get_clock() -> StudioClock:
    """Studio clock; tests override this dependency with a FixedClock."""
    return StudioClock()


def get_notifier() -> NotificationService:
    return get_notification_service()


def get_session_context(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> SessionContext:
    """
    Dependency to build the acting session from the JWT bearer token.

    Raises:
        UnauthorizedException: 401 if the token is missing or invalid
    """
    if credentials is None:
        raise UnauthorizedException("Missing bearer token")

    try:
        claims = get_session_claims(credentials.credentials)
        shift = claims.get("shift")
        return SessionContext(
            client_id=UUID(claims["sub"]),
            role=ClientRole(claims["role"]),
            session_id=str(claims["sid"]),
            studio_id=claims.get("studio_id"),
            shift_preference=Shift(shift) if shift else None,
        )
    except (InvalidTokenError, ValueError) as exc:
        raise UnauthorizedException(f"Could not validate credentials: {exc}")


def require_admin(
    session: SessionContext = Depends(get_session_context),
) -> SessionContext:
    """Dependency for admin-only routes."""
    if not session.is_admin:
        raise ForbiddenException("Administrator access required")
    return session
