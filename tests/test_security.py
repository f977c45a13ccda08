from datetime import datetime, timedelta

import pytest
from jose import jwt

from bytestore.config import settings
from bytestore.core.security import Principal, create_access_token, decode_access_token, is_admin, is_admin_or_owner
from bytestore.core.timestamps import parse_iso, to_iso


def test_token_round_trip_carries_claims():
    token = create_access_token({"id": 42, "role": "CLIENTE", "nombre": "Ana", "correo": "ana@example.com"})
    principal = decode_access_token(token)
    assert principal == Principal(id="42", role="CLIENTE", name="Ana", email="ana@example.com")


def test_expired_token_is_rejected():
    token = create_access_token({"id": "1", "role": "CLIENTE"}, expires_delta=timedelta(minutes=-5))
    assert decode_access_token(token) is None


def test_token_signed_with_other_secret_is_rejected():
    token = jwt.encode({"id": "1", "role": "CLIENTE"}, "another-secret", algorithm=settings.JWT_ALGORITHM)
    assert decode_access_token(token) is None


def test_token_without_role_is_rejected():
    assert decode_access_token(create_access_token({"id": "1"})) is None


def test_authorization_predicates():
    admin = Principal(id="9", role=settings.ADMIN_ROLE)
    user = Principal(id="7", role="CLIENTE")
    assert is_admin(admin)
    assert not is_admin(user)
    assert is_admin_or_owner(user, 7)
    assert is_admin_or_owner(user, "7")
    assert not is_admin_or_owner(user, "8")
    assert not is_admin_or_owner(user, None)
    assert is_admin_or_owner(admin, "8")


def test_timestamps():
    assert to_iso(datetime(2024, 1, 2, 3, 4, 5)) == "2024-01-02T03:04:05.000Z"
    assert to_iso(None) is None
    assert parse_iso("2024-01-02T03:04:05Z") == datetime(2024, 1, 2, 3, 4, 5)
    assert parse_iso("2024-01-02T05:04:05+02:00") == datetime(2024, 1, 2, 3, 4, 5)
    with pytest.raises(ValueError):
        parse_iso("next tuesday")
    with pytest.raises(ValueError):
        parse_iso(1704164645)
