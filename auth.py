"""Resolving the canonical user id for a request.

Two modes:

* dev mode (``LEDGER_DEV_MODE``): the user id is taken verbatim from the
  ``X-Debug-User`` header. Never enable this in production.
* bearer tokens: ``Authorization: Bearer <payload>.<signature>`` where
  ``payload`` is the base64url JSON ``{"sub": <user id>, "exp": <unix secs>}``
  and ``signature`` the base64url HMAC-SHA256 of the encoded payload, keyed
  with ``LEDGER_AUTH_SECRET``.

Canonical user ids are ``u_`` followed by 32 lowercase hex characters.
"""

import hashlib
import json
import re
import time
from typing import Mapping, Optional

from itsdangerous import BadData, BadSignature, Signer
from itsdangerous.encoding import base64_decode, base64_encode

from config import Settings

USER_ID_RE = re.compile(r"^u_[0-9a-f]{32}$")
DEBUG_USER_HEADER = "X-Debug-User"


class AuthError(Exception):
    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def unauthorized() -> AuthError:
    return AuthError(401, "Unauthorized")


def bad_request() -> AuthError:
    return AuthError(400, "Bad Request")


def is_valid_user_id(value: object) -> bool:
    return isinstance(value, str) and USER_ID_RE.match(value) is not None


def derive_user_id(identifier: str) -> str:
    digest = hashlib.sha256(identifier.encode("utf-8")).hexdigest()
    return "u_" + digest[:32]


def _signer(secret: str) -> Signer:
    return Signer(
        secret, sep=".", key_derivation="none", digest_method=hashlib.sha256
    )


def issue_token(
    user_id: str,
    secret: str,
    expires_in: Optional[int] = 3600,
    now: Optional[float] = None,
) -> str:
    if not is_valid_user_id(user_id):
        raise ValueError(f"Invalid user id: {user_id}")
    payload: dict[str, object] = {"sub": user_id}
    if expires_in is not None:
        issued = int(now if now is not None else time.time())
        payload["exp"] = issued + expires_in
    encoded = base64_encode(json.dumps(payload, separators=(",", ":")))
    return _signer(secret).sign(encoded).decode("ascii")


def verify_token(token: str, secret: str, now: Optional[float] = None) -> str:
    if "." not in token:
        raise bad_request()
    try:
        encoded = _signer(secret).unsign(token)
    except BadSignature as exc:
        raise unauthorized() from exc

    try:
        payload = json.loads(base64_decode(encoded).decode("utf-8"))
    except (BadData, UnicodeDecodeError, ValueError) as exc:
        raise bad_request() from exc
    if not isinstance(payload, dict):
        raise bad_request()

    exp = payload.get("exp")
    current = now if now is not None else time.time()
    if isinstance(exp, (int, float)) and not isinstance(exp, bool) and exp < int(current):
        raise unauthorized()

    sub = payload.get("sub")
    if not is_valid_user_id(sub):
        raise bad_request()
    return sub


def resolve_user_id(headers: Mapping[str, str], settings: Settings) -> str:
    if settings.dev_mode:
        debug_user = (headers.get(DEBUG_USER_HEADER) or "").strip()
        if not debug_user:
            raise unauthorized()
        if not is_valid_user_id(debug_user):
            raise bad_request()
        return debug_user

    header = headers.get("Authorization") or ""
    if not header.startswith("Bearer "):
        raise unauthorized()
    token = header[len("Bearer "):]
    if not token or not settings.auth_secret:
        raise unauthorized()
    return verify_token(token, settings.auth_secret)
