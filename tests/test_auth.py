import base64
import hashlib
import hmac
import json

import pytest

from auth import (
    DEBUG_USER_HEADER,
    AuthError,
    USER_ID_RE,
    derive_user_id,
    issue_token,
    resolve_user_id,
    verify_token,
)
from config import Settings

USER = "u_" + "a" * 32
SECRET = "test-secret"


def _b64(raw: bytes) -> bytes:
    return base64.urlsafe_b64encode(raw).rstrip(b"=")


def _sign(payload: dict, secret: str = SECRET) -> str:
    encoded = _b64(json.dumps(payload, separators=(",", ":")).encode("utf-8"))
    signature = _b64(hmac.new(secret.encode("utf-8"), encoded, hashlib.sha256).digest())
    return (encoded + b"." + signature).decode("ascii")


def _settings(**overrides) -> Settings:
    values = {
        "database_url": "sqlite://",
        "timezone": "UTC",
        "auth_secret": SECRET,
        "dev_mode": False,
        "log_level": "INFO",
    }
    values.update(overrides)
    return Settings(**values)


def _status(exc_info) -> int:
    return exc_info.value.status_code


def test_issued_token_round_trips() -> None:
    token = issue_token(USER, SECRET, expires_in=60, now=1_000)
    assert verify_token(token, SECRET, now=1_030) == USER


def test_token_format_is_plain_hmac_sha256() -> None:
    token = issue_token(USER, SECRET, expires_in=60, now=1_000)
    assert token == _sign({"sub": USER, "exp": 1_060})

    external = _sign({"sub": USER})
    assert verify_token(external, SECRET) == USER


def test_tampered_payload_is_unauthorized() -> None:
    token = _sign({"sub": USER})
    forged_payload = _sign({"sub": "u_" + "b" * 32}).split(".")[0]
    forged = forged_payload + "." + token.split(".")[1]

    with pytest.raises(AuthError) as excinfo:
        verify_token(forged, SECRET)
    assert _status(excinfo) == 401

    with pytest.raises(AuthError) as excinfo:
        verify_token(token, "other-secret")
    assert _status(excinfo) == 401


def test_expired_token_is_unauthorized() -> None:
    token = issue_token(USER, SECRET, expires_in=60, now=1_000)
    with pytest.raises(AuthError) as excinfo:
        verify_token(token, SECRET, now=2_000)
    assert _status(excinfo) == 401


def test_malformed_tokens_are_bad_requests() -> None:
    with pytest.raises(AuthError) as excinfo:
        verify_token("no-separator", SECRET)
    assert _status(excinfo) == 400

    with pytest.raises(AuthError) as excinfo:
        verify_token(_sign({"sub": "alice"}), SECRET)
    assert _status(excinfo) == 400

    with pytest.raises(AuthError) as excinfo:
        verify_token(_sign(["not", "an", "object"]), SECRET)
    assert _status(excinfo) == 400


def test_issue_token_rejects_non_canonical_user_ids() -> None:
    with pytest.raises(ValueError):
        issue_token("alice", SECRET)


def test_derived_user_ids_are_canonical_and_stable() -> None:
    user_id = derive_user_id("alice@example.com")
    assert USER_ID_RE.match(user_id)
    assert derive_user_id("alice@example.com") == user_id
    assert derive_user_id("bob@example.com") != user_id


def test_bearer_header_resolution() -> None:
    token = issue_token(USER, SECRET)
    assert resolve_user_id({"Authorization": f"Bearer {token}"}, _settings()) == USER

    for headers in ({}, {"Authorization": "Basic abc"}, {"Authorization": "Bearer "}):
        with pytest.raises(AuthError) as excinfo:
            resolve_user_id(headers, _settings())
        assert _status(excinfo) == 401

    with pytest.raises(AuthError) as excinfo:
        resolve_user_id({"Authorization": f"Bearer {token}"}, _settings(auth_secret=""))
    assert _status(excinfo) == 401


def test_dev_mode_trusts_debug_header() -> None:
    settings = _settings(dev_mode=True)
    assert resolve_user_id({DEBUG_USER_HEADER: USER}, settings) == USER

    with pytest.raises(AuthError) as excinfo:
        resolve_user_id({}, settings)
    assert _status(excinfo) == 401

    with pytest.raises(AuthError) as excinfo:
        resolve_user_id({DEBUG_USER_HEADER: "alice"}, settings)
    assert _status(excinfo) == 400
