#!/usr/bin/env python3
"""Management helpers for bootstrapping the MenoTrack server."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Iterable

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from menotrack import database
from menotrack.auth.passwords import hash_password
from menotrack.auth.service import create_account, find_account_by_email, init_auth_storage
from menotrack.auth.sessions import deactivate_account_sessions, purge_stale_sessions
from menotrack.config import settings


def _command_create_admin(args: argparse.Namespace) -> int:
    init_auth_storage()
    with database.SessionLocal() as session:
        existing = find_account_by_email(session, args.email)
        if existing:
            if not args.force:
                print(f"Account '{existing.email}' already exists; skipping")
                return 0
            existing.password_hash = hash_password(args.password)
            existing.is_admin = True
            existing.is_active = True
            deactivate_account_sessions(session, existing.id)
            session.commit()
            print(f"Updated password for existing admin '{existing.email}'")
            return 0

        account = create_account(
            session,
            first_name=args.first_name,
            last_name=args.last_name,
            email=args.email,
            age=args.age,
            password=args.password,
            is_admin=True,
        )
        session.commit()
        print(f"Created admin '{account.email}' (id={account.id})")
        return 0


def _command_purge_sessions(args: argparse.Namespace) -> int:
    init_auth_storage()
    with database.SessionLocal() as session:
        removed = purge_stale_sessions(session)
    print(f"Removed {removed} expired or inactive session(s)")
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--database-url",
        dest="database_url",
        help="Override the account database URL",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    create_admin = subparsers.add_parser(
        "create-admin", help="Create or update an administrator account",
    )
    create_admin.add_argument("--email", required=True)
    create_admin.add_argument("--password", required=True)
    create_admin.add_argument("--first-name", dest="first_name", default="Admin")
    create_admin.add_argument("--last-name", dest="last_name", default="User")
    create_admin.add_argument("--age", type=int, default=18)
    create_admin.add_argument(
        "--force",
        action="store_true",
        help="Reset the password and grant admin if the account already exists",
    )
    create_admin.set_defaults(func=_command_create_admin)

    purge = subparsers.add_parser(
        "purge-sessions", help="Delete expired and deactivated session rows",
    )
    purge.set_defaults(func=_command_purge_sessions)

    return parser


def main(argv: Iterable[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    if args.database_url:
        database.reset_session_factory(args.database_url)
        settings.AUTH_DB_URL = args.database_url

    handler = getattr(args, "func", None)
    if handler is None:
        parser.print_help()
        return 1

    return handler(args)


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
