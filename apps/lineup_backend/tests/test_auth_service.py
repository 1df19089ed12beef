"""
Tests for bearer token verification.
"""

from datetime import timedelta

from jose import jwt

from lineup_backend.services import auth_service


def test_token_round_trip_keeps_claims():
    token = auth_service.create_access_token({"user_id": 12, "email": "coach@example.com"})
    payload = auth_service.verify_token(token)
    assert payload["user_id"] == 12
    assert payload["email"] == "coach@example.com"
    assert "exp" in payload


def test_expired_token_is_rejected():
    token = auth_service.create_access_token({"user_id": 12}, expires_delta=timedelta(seconds=-5))
    assert auth_service.verify_token(token) is None


def test_token_signed_with_other_key_is_rejected():
    token = jwt.encode({"user_id": 12}, "not-the-server-key", algorithm=auth_service.JWT_ALGORITHM)
    assert auth_service.verify_token(token) is None


def test_garbage_token_is_rejected():
    assert auth_service.verify_token("not.a.jwt") is None
