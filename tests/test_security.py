from datetime import timedelta

import pytest
from jose import JWTError, jwt
from starlette.responses import Response

from territory_api.core.cookies import SECONDS_PER_DAY, clear_session_cookie, expires_at_time, set_session_cookie
from territory_api.core.security import (
    PASSWORD_PATTERN,
    create_token,
    get_password_hash,
    get_token_user_id,
    parse_duration,
    verify_password,
    verify_token,
)


def test_password_hash_roundtrip():
    hashed = get_password_hash("Secret#123")
    assert hashed != "Secret#123"
    assert verify_password("Secret#123", hashed)
    assert not verify_password("Secret#124", hashed)


def test_verify_password_without_hash():
    assert not verify_password("Secret#123", None)
    assert not verify_password("Secret#123", "not-a-bcrypt-hash")


@pytest.mark.parametrize(
    "password, valid",
    [
        ("Secret#123", True),
        ("secret#123", False),
        ("SECRET#123", False),
        ("Secret1234", False),
        ("Sec#1", False),
        ("A" * 60 + "a#1b", True),
        ("A" * 62 + "a#1b", False),
    ],
)
def test_password_pattern(password, valid):
    assert bool(PASSWORD_PATTERN.match(password)) is valid


@pytest.mark.parametrize(
    "value, expected",
    [
        ("1h", timedelta(hours=1)),
        ("7d", timedelta(days=7)),
        ("30s", timedelta(seconds=30)),
        ("2w", timedelta(weeks=2)),
        (90, timedelta(seconds=90)),
    ],
)
def test_parse_duration(value, expected):
    assert parse_duration(value) == expected


def test_parse_duration_rejects_garbage():
    with pytest.raises(ValueError):
        parse_duration("soon")


def test_token_carries_user_id():
    token = create_token("user-1", "1h")
    payload = verify_token(token)
    assert payload["userId"] == "user-1"
    assert payload["exp"] - payload["iat"] == 3600


def test_tokens_issued_together_are_distinct():
    first, second = create_token("user-1", "7d"), create_token("user-1", "7d")
    assert first != second
    assert verify_token(first)["jti"] != verify_token(second)["jti"]


def test_tampered_token_is_rejected():
    header, _, signature = create_token("user-1").split(".")
    other_payload = create_token("user-2").split(".")[1]
    forged = jwt.encode({"userId": "user-2"}, "another-secret", algorithm="HS256")
    with pytest.raises(JWTError):
        verify_token(".".join([header, other_payload, signature]))
    with pytest.raises(JWTError):
        verify_token(forged)
    assert get_token_user_id(forged) is None


def test_expired_token_is_rejected():
    token = create_token("user-1", timedelta(seconds=-10))
    with pytest.raises(JWTError):
        verify_token(token)


def test_session_cookie_attributes():
    response = Response()
    set_session_cookie(response, "sessionToken", "abc", 7)
    header = response.headers["set-cookie"]
    assert "sessionToken=abc" in header
    assert f"Max-Age={7 * SECONDS_PER_DAY}" in header
    assert "HttpOnly" in header
    assert "Path=/" in header
    assert "SameSite=lax" in header


def test_clear_session_cookie_expires_it():
    response = Response()
    clear_session_cookie(response, "sessionToken")
    header = response.headers["set-cookie"]
    assert "sessionToken=" in header
    assert "Max-Age=0" in header


def test_expires_at_time_is_in_the_future():
    delta = expires_at_time(7) - expires_at_time(0)
    assert timedelta(days=7) - timedelta(seconds=5) < delta <= timedelta(days=7) + timedelta(seconds=5)
