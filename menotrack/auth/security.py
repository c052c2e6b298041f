"""Signed bearer tokens for authenticated sessions."""
from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from ..config import settings
from ..errors import InvalidToken, TokenExpired


SESSION_TOKEN_TTL = timedelta(hours=settings.SESSION_TTL_HOURS)
REMEMBER_ME_TOKEN_TTL = timedelta(days=settings.REMEMBER_ME_TTL_DAYS)
BEARER_PREFIX = "Bearer "


@dataclass
class SessionTokenData:
    """Information extracted from a verified session token."""

    account_id: int
    email: Optional[str]
    expires_at: datetime

    @property
    def is_expired(self) -> bool:
        return datetime.now(timezone.utc) >= self.expires_at


def token_ttl(remember_me: bool = False) -> timedelta:
    """Return the session lifetime for a login."""

    return REMEMBER_ME_TOKEN_TTL if remember_me else SESSION_TOKEN_TTL


def describe_ttl(lifetime: timedelta) -> str:
    """Render ``lifetime`` the way clients expect it (``24h``, ``30d``)."""

    seconds = int(lifetime.total_seconds())
    if seconds % 86400 == 0 and seconds >= 86400 * 2:
        return f"{seconds // 86400}d"
    if seconds % 3600 == 0:
        return f"{seconds // 3600}h"
    return f"{seconds}s"


def create_session_token(account_id: int, email: str, expires_at: datetime) -> str:
    """Create a signed token identifying the account with an expiry timestamp."""

    payload = {
        "sub": int(account_id),
        "eml": email,
        "exp": int(expires_at.timestamp()),
        "nonce": secrets.token_hex(8),
    }
    payload_bytes = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode()
    signature = hmac.new(_secret_key(), payload_bytes, hashlib.sha256).digest()
    return f"{_b64encode(payload_bytes)}.{_b64encode(signature)}"


def verify_session_token(token: str, *, now: Optional[datetime] = None) -> SessionTokenData:
    """Validate ``token`` and return the decoded data.

    Raises :class:`InvalidToken` for structural or signature problems and
    :class:`TokenExpired` once the embedded expiry has passed.
    """

    if not token or token.count(".") != 1:
        raise InvalidToken()
    try:
        payload_b64, signature_b64 = token.split(".", 1)
        payload_bytes = _b64decode(payload_b64)
        signature = _b64decode(signature_b64)
    except (ValueError, binascii.Error) as exc:
        raise InvalidToken() from exc

    expected_signature = hmac.new(
        _secret_key(), payload_bytes, hashlib.sha256
    ).digest()
    if not hmac.compare_digest(signature, expected_signature):
        raise InvalidToken()

    try:
        payload = json.loads(payload_bytes.decode("utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise InvalidToken() from exc
    if not isinstance(payload, dict):
        raise InvalidToken()

    account_id = _coerce_int(payload.get("sub"))
    expires_ts = _coerce_int(payload.get("exp"))
    email = payload.get("eml")
    if account_id is None or expires_ts is None:
        raise InvalidToken()

    expires_at = datetime.fromtimestamp(expires_ts, tz=timezone.utc)
    current = now or datetime.now(timezone.utc)
    if expires_at <= current:
        raise TokenExpired()

    clean_email = str(email) if email is not None else None
    return SessionTokenData(account_id=account_id, email=clean_email, expires_at=expires_at)


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the credential from an ``Authorization`` header, if well formed."""

    if not authorization or not authorization.startswith(BEARER_PREFIX):
        return None
    token = authorization[len(BEARER_PREFIX):].strip()
    return token or None


def _secret_key() -> bytes:
    secret = settings.SESSION_SECRET
    if not secret:
        raise RuntimeError("SESSION_SECRET must be configured")
    return secret.encode("utf-8")


def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _b64decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def _coerce_int(value: object) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


__all__ = [
    "BEARER_PREFIX",
    "REMEMBER_ME_TOKEN_TTL",
    "SESSION_TOKEN_TTL",
    "SessionTokenData",
    "create_session_token",
    "describe_ttl",
    "extract_bearer_token",
    "token_ttl",
    "verify_session_token",
]
