"""Authentication helpers and models."""

from .passwords import hash_password, needs_rehash, verify_password
from .security import (
    REMEMBER_ME_TOKEN_TTL,
    SESSION_TOKEN_TTL,
    create_session_token,
    verify_session_token,
)
from .service import init_auth_storage
from .sessions import Identity, issue_session, resolve_bearer

__all__ = [
    "Identity",
    "REMEMBER_ME_TOKEN_TTL",
    "SESSION_TOKEN_TTL",
    "create_session_token",
    "hash_password",
    "init_auth_storage",
    "issue_session",
    "needs_rehash",
    "resolve_bearer",
    "verify_password",
    "verify_session_token",
]
