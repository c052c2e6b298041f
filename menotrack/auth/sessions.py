"""Issue, resolve and revoke server-side sessions."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import delete, or_, update
from sqlmodel import Session, select

from ..errors import (
    BearerError,
    InvalidOrExpiredSession,
    InvalidToken,
    TokenExpired,
    Unauthenticated,
)
from .models import Account, AuthSession
from .security import (
    create_session_token,
    describe_ttl,
    extract_bearer_token,
    token_ttl,
    verify_session_token,
)

logger = logging.getLogger(__name__)


@dataclass
class IssuedSession:
    """A freshly minted token and the session row recording it."""

    token: str
    record: AuthSession
    expires_in: str

    @property
    def expires_at(self) -> datetime:
        return self.record.expires_at


@dataclass(frozen=True)
class Identity:
    """The caller resolved from a bearer token."""

    account_id: int
    email: str
    first_name: str
    last_name: str
    session_id: int
    is_admin: bool = False


class AuthFailure(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    INVALID_TOKEN = "invalid_token"
    TOKEN_EXPIRED = "token_expired"
    INVALID_OR_EXPIRED_SESSION = "invalid_or_expired_session"


_FAILURE_ERRORS = {
    AuthFailure.UNAUTHENTICATED: Unauthenticated,
    AuthFailure.INVALID_TOKEN: InvalidToken,
    AuthFailure.TOKEN_EXPIRED: TokenExpired,
    AuthFailure.INVALID_OR_EXPIRED_SESSION: InvalidOrExpiredSession,
}


@dataclass(frozen=True)
class AuthOutcome:
    """Either a resolved :class:`Identity` or the reason none was found."""

    identity: Optional[Identity] = None
    failure: Optional[AuthFailure] = None

    @property
    def ok(self) -> bool:
        return self.identity is not None

    def to_error(self) -> BearerError:
        if self.failure is None:
            raise ValueError("a successful outcome has no error")
        return _FAILURE_ERRORS[self.failure]()


def _now() -> datetime:
    return datetime.now(timezone.utc)


def issue_session(
    db: Session,
    account: Account,
    *,
    remember_me: bool = False,
    now: Optional[datetime] = None,
) -> IssuedSession:
    """Mint a token for ``account`` and stage its session row on ``db``.

    The token's embedded expiry and the row's ``expires_at`` come from the
    same whole-second instant, so they always agree. The caller commits.
    """

    if account.id is None:
        raise ValueError("account must be persisted before issuing a session")

    lifetime: timedelta = token_ttl(remember_me)
    issued_at = (now or _now()).replace(microsecond=0)
    expires_at = issued_at + lifetime

    token = create_session_token(account.id, account.email, expires_at)
    record = AuthSession(
        account_id=account.id,
        token=token,
        expires_at=expires_at,
        is_active=True,
    )
    db.add(record)
    return IssuedSession(token=token, record=record, expires_in=describe_ttl(lifetime))


def resolve_bearer(
    db: Session,
    authorization: Optional[str],
    *,
    now: Optional[datetime] = None,
) -> AuthOutcome:
    """Resolve an ``Authorization`` header value to an :class:`AuthOutcome`."""

    token = extract_bearer_token(authorization)
    if token is None:
        return AuthOutcome(failure=AuthFailure.UNAUTHENTICATED)

    current = now or _now()
    try:
        verify_session_token(token, now=current)
    except TokenExpired:
        return AuthOutcome(failure=AuthFailure.TOKEN_EXPIRED)
    except InvalidToken:
        return AuthOutcome(failure=AuthFailure.INVALID_TOKEN)

    row = db.exec(
        select(AuthSession, Account)
        .join(Account, Account.id == AuthSession.account_id)
        .where(AuthSession.token == token)
        .where(AuthSession.is_active.is_(True))
        .where(AuthSession.expires_at > current)
        .where(Account.is_active.is_(True))
    ).first()
    if row is None:
        return AuthOutcome(failure=AuthFailure.INVALID_OR_EXPIRED_SESSION)

    session_row, account = row
    return AuthOutcome(
        identity=Identity(
            account_id=account.id,
            email=account.email,
            first_name=account.first_name,
            last_name=account.last_name,
            session_id=session_row.id,
            is_admin=bool(account.is_admin),
        )
    )


def deactivate_session(db: Session, session_id: int) -> int:
    """Deactivate exactly one session. Returns the number of rows changed."""

    result = db.exec(
        update(AuthSession)
        .where(AuthSession.id == session_id)
        .where(AuthSession.is_active.is_(True))
        .values(is_active=False)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


def deactivate_account_sessions(db: Session, account_id: int) -> int:
    """Deactivate every active session of ``account_id`` in one statement.

    Deactivation is monotonic, so re-running after a partial failure is safe.
    """

    result = db.exec(
        update(AuthSession)
        .where(AuthSession.account_id == account_id)
        .where(AuthSession.is_active.is_(True))
        .values(is_active=False)
        .execution_options(synchronize_session=False)
    )
    changed = result.rowcount or 0
    logger.info("Revoked %d session(s) for account %s", changed, account_id)
    return changed


def purge_stale_sessions(db: Session, *, now: Optional[datetime] = None) -> int:
    """Delete session rows that are expired or deactivated."""

    current = now or _now()
    result = db.exec(
        delete(AuthSession).where(
            or_(AuthSession.is_active.is_(False), AuthSession.expires_at <= current)
        ).execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount or 0


__all__ = [
    "AuthFailure",
    "AuthOutcome",
    "Identity",
    "IssuedSession",
    "deactivate_account_sessions",
    "deactivate_session",
    "issue_session",
    "purge_stale_sessions",
    "resolve_bearer",
]
