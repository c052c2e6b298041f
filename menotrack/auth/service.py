"""Account lifecycle operations and storage bootstrap."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict, Mapping, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, SQLModel, select

from .. import database
from ..config import settings
from ..errors import Conflict, InvalidInput, NotFound, Unauthorized, operation_boundary
from .models import Account, AccountGoals, MenopauseStage
from .passwords import hash_password, needs_rehash, verify_password
from .sessions import (
    IssuedSession,
    deactivate_account_sessions,
    deactivate_session,
    issue_session,
)

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8
PROFILE_FIELDS = ("first_name", "last_name", "age", "menopause_stage", "newsletter")


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def init_auth_storage() -> None:
    """Ensure tables exist and seed the initial administrator."""

    SQLModel.metadata.create_all(database.engine)

    with database.SessionLocal() as session:
        _seed_initial_admin(session)


def _seed_initial_admin(session: Session) -> None:
    """Create or promote the configured admin when no admin exists yet."""

    existing_admin = session.exec(
        select(Account).where(Account.is_admin.is_(True))
    ).first()
    if existing_admin:
        return

    email = normalize_email(settings.INITIAL_ADMIN_EMAIL)
    password = settings.INITIAL_ADMIN_PASSWORD
    if not email or not password:
        return

    account = find_account_by_email(session, email)
    if account is not None:
        account.is_admin = True
        session.commit()
        logger.info("Promoted existing account %s to administrator", account.id)
        return

    account = create_account(
        session,
        first_name="Admin",
        last_name="User",
        email=email,
        age=18,
        password=password,
        is_admin=True,
    )
    session.commit()
    logger.info("Seeded initial administrator account %s", account.id)


def find_account_by_email(session: Session, email: str) -> Optional[Account]:
    """Return the account registered with ``email`` regardless of status."""

    return session.exec(
        select(Account).where(Account.email == normalize_email(email))
    ).first()


def create_account(
    session: Session,
    *,
    first_name: str,
    last_name: str,
    email: str,
    age: int,
    password: str,
    menopause_stage: Optional[MenopauseStage] = None,
    newsletter: Optional[bool] = False,
    is_admin: bool = False,
    last_login: Optional[datetime] = None,
) -> Account:
    """Stage a new account and its zeroed goals record on ``session``.

    Raises :class:`Conflict` when the email is already taken. The caller
    commits, so the account and its goals land in the same transaction.
    """

    normalized_email = normalize_email(email)
    if not normalized_email:
        raise ValueError("email cannot be empty")
    if find_account_by_email(session, normalized_email) is not None:
        raise Conflict()

    account = Account(
        first_name=first_name.strip(),
        last_name=last_name.strip(),
        email=normalized_email,
        password_hash=hash_password(password),
        age=age,
        menopause_stage=menopause_stage or MenopauseStage.NOT_SURE,
        newsletter=bool(newsletter),
        is_active=True,
        is_admin=is_admin,
        last_login=last_login,
    )
    session.add(account)
    try:
        session.flush()
    except IntegrityError as exc:
        # Lost the race against a concurrent registration for this email.
        session.rollback()
        raise Conflict() from exc

    session.add(AccountGoals(account_id=account.id))
    return account


@lru_cache(maxsize=1)
def _placeholder_hash() -> str:
    return hash_password("menotrack-placeholder-password")


def _active_account(session: Session, account_id: int) -> Account:
    account = session.get(Account, account_id)
    if account is None or not account.is_active:
        raise NotFound()
    return account


@operation_boundary("registration")
def register_account(
    session: Session,
    *,
    first_name: str,
    last_name: str,
    email: str,
    age: int,
    password: str,
    menopause_stage: Optional[MenopauseStage] = None,
    newsletter: Optional[bool] = False,
    now: Optional[datetime] = None,
) -> Tuple[Account, IssuedSession]:
    """Create an account, its goals and a first session in one transaction."""

    current = now or datetime.now(timezone.utc)
    account = create_account(
        session,
        first_name=first_name,
        last_name=last_name,
        email=email,
        age=age,
        password=password,
        menopause_stage=menopause_stage,
        newsletter=newsletter,
        last_login=current,
    )
    issued = issue_session(session, account, now=current)
    session.commit()
    logger.info("Registered account %s", account.id)
    return account, issued


@operation_boundary("login")
def login(
    session: Session,
    *,
    email: str,
    password: str,
    remember_me: bool = False,
    now: Optional[datetime] = None,
) -> Tuple[Account, IssuedSession]:
    """Check credentials and open a new session.

    Unknown emails and wrong passwords fail identically.
    """

    account = session.exec(
        select(Account)
        .where(Account.email == normalize_email(email))
        .where(Account.is_active.is_(True))
    ).first()
    if account is None:
        # Keep the response time close to a real password check.
        verify_password(password, _placeholder_hash())
        logger.info("Login rejected: no active account matches")
        raise Unauthorized()
    if not verify_password(password, account.password_hash):
        logger.info("Login rejected for account %s: bad password", account.id)
        raise Unauthorized()

    if needs_rehash(account.password_hash):
        account.password_hash = hash_password(password)

    current = now or datetime.now(timezone.utc)
    issued = issue_session(session, account, remember_me=remember_me, now=current)
    account.last_login = current
    session.commit()
    logger.info("Account %s signed in (expires in %s)", account.id, issued.expires_in)
    return account, issued


@operation_boundary("logout")
def logout(session: Session, session_id: int) -> None:
    """Deactivate the caller's current session only."""

    deactivate_session(session, session_id)
    session.commit()


@operation_boundary("profile lookup")
def get_profile(session: Session, account_id: int) -> Dict[str, Any]:
    account = _active_account(session, account_id)
    goals = session.get(AccountGoals, account_id)
    profile = account.public_view()
    if goals is not None:
        profile.update(goals.public_view())
    return profile


@operation_boundary("profile update")
def update_profile(
    session: Session,
    account_id: int,
    changes: Mapping[str, Any],
) -> Dict[str, Any]:
    """Apply ``changes`` to the editable profile fields.

    Email and password are never touched here.
    """

    account = _active_account(session, account_id)
    for field_name in PROFILE_FIELDS:
        if field_name not in changes:
            continue
        value = changes[field_name]
        if value is None:
            continue
        if type(value) is str:
            value = value.strip()
        setattr(account, field_name, value)
    session.commit()
    logger.info("Updated profile for account %s", account_id)
    return account.public_view()


@operation_boundary("password change")
def change_password(
    session: Session,
    account_id: int,
    *,
    current_password: str,
    new_password: str,
) -> None:
    """Replace the password and sign the account out everywhere."""

    if not new_password or len(new_password) < MIN_PASSWORD_LENGTH:
        raise InvalidInput(
            f"New password must be at least {MIN_PASSWORD_LENGTH} characters"
        )

    account = _active_account(session, account_id)
    if not verify_password(current_password, account.password_hash):
        raise Unauthorized("Current password is incorrect")

    account.password_hash = hash_password(new_password)
    deactivate_account_sessions(session, account_id)
    session.commit()
    logger.info("Password changed for account %s", account_id)


@operation_boundary("account deletion")
def delete_account(session: Session, account_id: int, *, password: str) -> None:
    """Soft-delete the account and revoke all of its sessions."""

    account = _active_account(session, account_id)
    if not verify_password(password, account.password_hash):
        raise Unauthorized("Password is incorrect")

    account.is_active = False
    deactivate_account_sessions(session, account_id)
    session.commit()
    logger.info("Deactivated account %s", account_id)


__all__ = [
    "MIN_PASSWORD_LENGTH",
    "change_password",
    "create_account",
    "delete_account",
    "find_account_by_email",
    "get_profile",
    "init_auth_storage",
    "login",
    "logout",
    "normalize_email",
    "register_account",
    "update_profile",
]
