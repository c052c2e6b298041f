"""FastAPI dependencies for authentication."""
from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request
from sqlmodel import Session

from ..database import get_session
from ..errors import ForbiddenNotAdmin
from .sessions import AuthOutcome, Identity, resolve_bearer


def _resolve(request: Request, session: Session) -> AuthOutcome:
    outcome = resolve_bearer(session, request.headers.get("Authorization"))
    request.state.identity = outcome.identity
    return outcome


def get_current_identity(
    request: Request,
    session: Session = Depends(get_session),
) -> Identity:
    """Return the authenticated :class:`Identity` or raise ``401``."""

    outcome = _resolve(request, session)
    if outcome.identity is None:
        raise outcome.to_error()
    return outcome.identity


def get_optional_identity(
    request: Request,
    session: Session = Depends(get_session),
) -> Optional[Identity]:
    """Return the caller's :class:`Identity`, or ``None`` for guests."""

    return _resolve(request, session).identity


def require_admin(identity: Identity = Depends(get_current_identity)) -> Identity:
    """Ensure the current account has administrator privileges."""

    if not identity.is_admin:
        raise ForbiddenNotAdmin()
    return identity


__all__ = ["get_current_identity", "get_optional_identity", "require_admin"]
