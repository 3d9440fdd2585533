"""JWT session token generation and validation utilities.

Tokens carry the session claims the booking engine needs:
sub (client id), role, studio_id, shift and sid (session id).
"""
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import uuid4

import jwt
from jwt.exceptions import InvalidTokenError

from runafit.lib.settings import settings


def create_access_token(
    client_id: str,
    role: str,
    studio_id: Optional[int] = None,
    shift: Optional[str] = None,
    session_id: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create a JWT access token for a client or admin.

    Args:
        client_id: UUID of the client (stored in 'sub' claim)
        role: "client" or "admin"
        studio_id: Studio the client belongs to
        shift: Preferred shift ("morning" / "evening")
        session_id: Login session identifier, generated when omitted
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.jwt_expiration_minutes)

    now = datetime.now(timezone.utc)

    payload = {
        "sub": client_id,
        "role": role,
        "studio_id": studio_id,
        "shift": shift,
        "sid": session_id or uuid4().hex,
        "iat": now,
        "exp": now + expires_delta,
    }

    return jwt.encode(
        payload,
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
    )


def verify_token(token: str) -> dict:
    """Verify and decode a JWT token.

    Raises:
        InvalidTokenError: If token is invalid, expired, or signature doesn't match
    """
    return jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[settings.jwt_algorithm],
    )


def get_session_claims(token: str) -> dict:
    """Extract the session claims from a token.

    Raises:
        InvalidTokenError: If token is invalid or required claims are missing
    """
    payload = verify_token(token)
    for claim in ("sub", "role", "sid"):
        if not payload.get(claim):
            raise InvalidTokenError(f"Missing '{claim}' claim")
    return payload
