from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlmodel import Session, select

from .auth.dependencies import require_admin
from .auth.models import Account
from .auth.sessions import Identity, deactivate_account_sessions
from .database import get_session
from .errors import NotFound

router = APIRouter(prefix="/api/admin", tags=["admin"])

logger = logging.getLogger(__name__)


@router.get("/accounts")
def list_accounts(
    include_inactive: bool = False,
    _: Identity = Depends(require_admin),
    session: Session = Depends(get_session),
) -> Dict[str, Any]:
    """Return every account, optionally including soft-deleted ones."""

    statement = select(Account).order_by(Account.id)
    if not include_inactive:
        statement = statement.where(Account.is_active.is_(True))
    accounts = session.exec(statement).all()
    return {
        "success": True,
        "data": {
            "accounts": [
                {**account.public_view(), "isActive": bool(account.is_active)}
                for account in accounts
            ]
        },
    }


@router.post("/accounts/{account_id}/revoke-sessions")
def revoke_account_sessions(
    account_id: int,
    admin: Identity = Depends(require_admin),
    session: Session = Depends(get_session),
) -> Dict[str, Any]:
    """Sign an account out of every device."""

    if session.get(Account, account_id) is None:
        raise NotFound()
    revoked = deactivate_account_sessions(session, account_id)
    session.commit()
    logger.info("Admin %s revoked sessions for account %s", admin.account_id, account_id)
    return {"success": True, "data": {"revoked": revoked}}
