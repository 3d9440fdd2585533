"""Tests for JWT session token utilities."""
from datetime import timedelta

import pytest
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError

from runafit.lib.jwt import create_access_token, get_session_claims, verify_token


CLIENT_ID = "123e4567-e89b-12d3-a456-426614174000"


@pytest.mark.unit
def test_create_and_verify_token():
    token = create_access_token(CLIENT_ID, "client", studio_id=2, shift="morning", session_id="abc")

    payload = verify_token(token)
    assert payload["sub"] == CLIENT_ID
    assert payload["role"] == "client"
    assert payload["studio_id"] == 2
    assert payload["shift"] == "morning"
    assert payload["sid"] == "abc"
    assert "iat" in payload
    assert "exp" in payload


@pytest.mark.unit
def test_session_id_generated_when_missing():
    first = verify_token(create_access_token(CLIENT_ID, "client"))
    second = verify_token(create_access_token(CLIENT_ID, "client"))

    assert first["sid"] and second["sid"]
    assert first["sid"] != second["sid"]


@pytest.mark.unit
def test_expired_token():
    token = create_access_token(CLIENT_ID, "admin", expires_delta=timedelta(seconds=-1))

    with pytest.raises(ExpiredSignatureError):
        verify_token(token)


@pytest.mark.unit
def test_tampered_token():
    token = create_access_token(CLIENT_ID, "client")

    with pytest.raises(InvalidTokenError):
        verify_token(token[:-2] + ("AA" if not token.endswith("AA") else "BB"))


@pytest.mark.unit
def test_session_claims_require_role():
    token = create_access_token(CLIENT_ID, "")

    with pytest.raises(InvalidTokenError, match="role"):
        get_session_claims(token)
