from __future__ import annotations

import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict

import pytest
from fastapi.testclient import TestClient

# Cheap hashes keep the suite fast; production keeps the configured cost.
os.environ.setdefault("BCRYPT_ROUNDS", "4")

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from menotrack import database
from menotrack.auth.service import init_auth_storage
from menotrack.config import settings


class FakeClock:
    """Controllable time source for the rate limiter."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture()
def db_url(tmp_path):
    original_url = settings.AUTH_DB_URL
    db_path = tmp_path / "menotrack.sqlite3"
    url = f"sqlite:///{db_path}"
    database.reset_session_factory(url)
    try:
        yield url
    finally:
        database.reset_session_factory(original_url)


@pytest.fixture()
def db_session(db_url):
    init_auth_storage()
    with database.SessionLocal() as session:
        yield session


@pytest.fixture()
def client(db_url, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(settings, "AUTH_ATTEMPT_LIMIT", 1000, raising=False)
    monkeypatch.setattr(settings, "INITIAL_ADMIN_EMAIL", "", raising=False)
    monkeypatch.setattr(settings, "INITIAL_ADMIN_PASSWORD", "", raising=False)

    from menotrack.main import app as fastapi_app

    with TestClient(fastapi_app) as client:
        yield client


def registration_payload(**overrides: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "firstName": "Ada",
        "lastName": "Lovelace",
        "email": "a@x.com",
        "age": 30,
        "password": "Secret12!",
        "confirmPassword": "Secret12!",
        "menopauseStage": "perimenopausal",
        "newsletter": True,
    }
    payload.update(overrides)
    return payload


def bearer(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
