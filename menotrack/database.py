"""Database helpers for working with the account and session store."""
from __future__ import annotations

from typing import Any, Iterator

from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker
from sqlmodel import Session, create_engine

from .config import settings


def _ensure_sqlite_directory(database_url: str) -> None:
    """Create the parent directory for SQLite databases when needed."""

    try:
        url = make_url(database_url)
    except Exception:
        return

    if not url.drivername.startswith("sqlite"):
        return

    database = url.database
    if not database or database in {":memory:", ""}:
        return

    path = settings.resolve_data_path(database)
    path.parent.mkdir(parents=True, exist_ok=True)


def _build_engine(database_url: str):
    """Engine for the accounts, sessions and goals tables."""

    _ensure_sqlite_directory(database_url)
    connect_args: dict[str, Any] = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_engine(database_url, connect_args=connect_args, future=True)


def _build_session_factory(bind) -> sessionmaker:
    # Issued session rows stay readable after the registration and login commits.
    return sessionmaker(
        bind=bind,
        class_=Session,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


engine = _build_engine(settings.AUTH_DB_URL)
SessionLocal = _build_session_factory(engine)


def reset_session_factory(database_url: str | None = None) -> None:
    """Point the account store at ``database_url`` and rebuild its engine.

    The previous engine is disposed. Used by the management CLI's
    ``--database-url`` and by tests that each get a temporary SQLite file.
    """

    global engine, SessionLocal

    if database_url is not None:
        settings.AUTH_DB_URL = database_url
    engine.dispose()
    engine = _build_engine(settings.AUTH_DB_URL)
    SessionLocal = _build_session_factory(engine)


def get_session() -> Iterator[Session]:
    """Yield one account-store session per request, closed afterwards."""

    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


__all__ = ["engine", "SessionLocal", "get_session", "reset_session_factory"]
