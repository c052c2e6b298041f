from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlmodel import select

from menotrack.auth import service
from menotrack.auth.models import Account, AccountGoals, AuthSession, MenopauseStage, as_utc
from menotrack.auth.passwords import verify_password
from menotrack.auth.sessions import AuthFailure, resolve_bearer
from menotrack.config import settings
from menotrack.errors import Conflict, InternalError, InvalidInput, NotFound, Unauthorized


def _register(db_session, email: str = "a@x.com", password: str = "Secret12!", **kwargs):
    params = dict(
        first_name="Ada",
        last_name="Lovelace",
        email=email,
        age=30,
        password=password,
    )
    params.update(kwargs)
    return service.register_account(db_session, **params)


def test_register_creates_account_goals_and_session(db_session) -> None:
    account, issued = _register(db_session, email="  A@X.com ")

    assert account.email == "a@x.com"
    assert account.menopause_stage == MenopauseStage.NOT_SURE
    assert account.is_active is True
    assert account.is_admin is False
    assert verify_password("Secret12!", account.password_hash)

    goals = db_session.get(AccountGoals, account.id)
    assert goals is not None
    assert goals.public_view() == {
        "daysTracked": 0,
        "symptomsLogged": 0,
        "medicationsTaken": 0,
        "goalsAchieved": 0,
    }

    outcome = resolve_bearer(db_session, f"Bearer {issued.token}")
    assert outcome.identity.account_id == account.id
    assert "passwordHash" not in account.public_view()
    assert "password_hash" not in account.public_view()


def test_register_duplicate_email_conflicts_case_insensitively(db_session) -> None:
    _register(db_session)
    with pytest.raises(Conflict):
        _register(db_session, email="A@X.COM", first_name="Other", age=60)


def test_register_conflicts_with_deleted_account(db_session) -> None:
    account, _ = _register(db_session)
    service.delete_account(db_session, account.id, password="Secret12!")
    with pytest.raises(Conflict):
        _register(db_session)


def test_unique_constraint_catches_registration_race(db_session, monkeypatch) -> None:
    _register(db_session)
    monkeypatch.setattr(service, "find_account_by_email", lambda *_args, **_kwargs: None)

    with pytest.raises(Conflict):
        _register(db_session)

    assert len(db_session.exec(select(Account)).all()) == 1


def test_login_updates_last_login_and_issues_session(db_session) -> None:
    account, _ = _register(db_session)
    moment = datetime(2026, 5, 4, 10, 0, 0, 250000, tzinfo=timezone.utc)

    logged_in, issued = service.login(
        db_session, email="A@x.com", password="Secret12!", now=moment
    )

    assert logged_in.id == account.id
    assert as_utc(logged_in.last_login) == moment
    assert issued.expires_in == "24h"
    assert as_utc(issued.expires_at) == moment.replace(microsecond=0) + timedelta(hours=24)


def test_login_remember_me_lasts_thirty_days(db_session) -> None:
    _register(db_session)
    moment = datetime(2026, 5, 4, 10, 0, 0, tzinfo=timezone.utc)

    _, issued = service.login(
        db_session, email="a@x.com", password="Secret12!", remember_me=True, now=moment
    )

    assert issued.expires_in == "30d"
    stored = db_session.get(AuthSession, issued.record.id)
    assert as_utc(stored.expires_at) == moment + timedelta(days=30)


def test_login_failures_are_indistinguishable(db_session) -> None:
    _register(db_session)

    with pytest.raises(Unauthorized) as wrong_password:
        service.login(db_session, email="a@x.com", password="not-the-one")
    with pytest.raises(Unauthorized) as unknown_email:
        service.login(db_session, email="nobody@x.com", password="Secret12!")

    assert wrong_password.value.message == unknown_email.value.message
    assert wrong_password.value.to_payload() == unknown_email.value.to_payload()


def test_login_with_corrupt_hash_is_internal_error(db_session) -> None:
    account, _ = _register(db_session)
    account.password_hash = "corrupted"
    db_session.commit()

    with pytest.raises(InternalError) as excinfo:
        service.login(db_session, email="a@x.com", password="Secret12!")
    assert excinfo.value.message == "Internal server error during login"


def test_logout_deactivates_only_that_session(db_session) -> None:
    _register(db_session)
    _, first = service.login(db_session, email="a@x.com", password="Secret12!")
    _, second = service.login(db_session, email="a@x.com", password="Secret12!")

    service.logout(db_session, first.record.id)

    assert resolve_bearer(db_session, f"Bearer {first.token}").failure == (
        AuthFailure.INVALID_OR_EXPIRED_SESSION
    )
    assert resolve_bearer(db_session, f"Bearer {second.token}").ok


def test_get_profile_merges_goals(db_session) -> None:
    account, _ = _register(db_session, menopause_stage=MenopauseStage.MENOPAUSAL)
    goals = db_session.get(AccountGoals, account.id)
    goals.days_tracked = 12
    db_session.commit()

    profile = service.get_profile(db_session, account.id)
    assert profile["id"] == account.id
    assert profile["firstName"] == "Ada"
    assert profile["menopauseStage"] == "menopausal"
    assert profile["daysTracked"] == 12
    assert profile["goalsAchieved"] == 0


def test_get_profile_missing_account(db_session) -> None:
    with pytest.raises(NotFound):
        service.get_profile(db_session, 9999)


def test_update_profile_changes_only_supplied_fields(db_session) -> None:
    account, _ = _register(db_session)

    view = service.update_profile(
        db_session,
        account.id,
        {"first_name": " Grace ", "age": 55, "email": "evil@x.com", "password_hash": "x"},
    )

    assert view["firstName"] == "Grace"
    assert view["lastName"] == "Lovelace"
    assert view["age"] == 55
    assert view["email"] == "a@x.com"
    refreshed = db_session.get(Account, account.id)
    assert verify_password("Secret12!", refreshed.password_hash)


def test_change_password_revokes_every_session(db_session) -> None:
    account, registered = _register(db_session)
    _, other = service.login(db_session, email="a@x.com", password="Secret12!")

    service.change_password(
        db_session,
        account.id,
        current_password="Secret12!",
        new_password="Brand-new-pass",
    )

    for issued in (registered, other):
        outcome = resolve_bearer(db_session, f"Bearer {issued.token}")
        assert outcome.failure == AuthFailure.INVALID_OR_EXPIRED_SESSION

    with pytest.raises(Unauthorized):
        service.login(db_session, email="a@x.com", password="Secret12!")
    _, fresh = service.login(db_session, email="a@x.com", password="Brand-new-pass")
    assert resolve_bearer(db_session, f"Bearer {fresh.token}").ok


def test_change_password_errors(db_session) -> None:
    account, _ = _register(db_session)

    with pytest.raises(InvalidInput) as short:
        service.change_password(
            db_session, account.id, current_password="Secret12!", new_password="short"
        )
    assert short.value.message == "New password must be at least 8 characters"

    with pytest.raises(Unauthorized) as wrong:
        service.change_password(
            db_session, account.id, current_password="nope-nope", new_password="long-enough"
        )
    assert wrong.value.message == "Current password is incorrect"

    with pytest.raises(NotFound):
        service.change_password(
            db_session, 4242, current_password="Secret12!", new_password="long-enough"
        )


def test_delete_account_soft_deletes(db_session) -> None:
    account, issued = _register(db_session)

    with pytest.raises(Unauthorized) as wrong:
        service.delete_account(db_session, account.id, password="incorrect")
    assert wrong.value.message == "Password is incorrect"

    service.delete_account(db_session, account.id, password="Secret12!")

    stored = db_session.get(Account, account.id)
    assert stored is not None
    assert stored.is_active is False
    assert resolve_bearer(db_session, f"Bearer {issued.token}").failure == (
        AuthFailure.INVALID_OR_EXPIRED_SESSION
    )
    with pytest.raises(NotFound):
        service.get_profile(db_session, account.id)
    with pytest.raises(Unauthorized):
        service.login(db_session, email="a@x.com", password="Secret12!")
    with pytest.raises(NotFound):
        service.delete_account(db_session, account.id, password="Secret12!")


def test_init_auth_storage_seeds_admin(db_url, monkeypatch) -> None:
    from menotrack import database

    monkeypatch.setattr(settings, "INITIAL_ADMIN_EMAIL", "Root@X.com")
    monkeypatch.setattr(settings, "INITIAL_ADMIN_PASSWORD", "ultra-secret")

    service.init_auth_storage()
    service.init_auth_storage()

    with database.SessionLocal() as session:
        admins = session.exec(select(Account).where(Account.is_admin.is_(True))).all()
        assert len(admins) == 1
        assert admins[0].email == "root@x.com"
        assert verify_password("ultra-secret", admins[0].password_hash)
        assert session.get(AccountGoals, admins[0].id) is not None


def test_init_auth_storage_promotes_existing_account(db_session, monkeypatch) -> None:
    account, _ = _register(db_session, email="boss@x.com")
    monkeypatch.setattr(settings, "INITIAL_ADMIN_EMAIL", "boss@x.com")
    monkeypatch.setattr(settings, "INITIAL_ADMIN_PASSWORD", "ignored-pass")

    service.init_auth_storage()

    db_session.expire_all()
    promoted = db_session.get(Account, account.id)
    assert promoted.is_admin is True
    assert verify_password("Secret12!", promoted.password_hash)
