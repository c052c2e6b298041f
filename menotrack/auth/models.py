"""SQLModel tables for accounts, sessions and tracking goals."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import Boolean, Column, DateTime, Enum as SAEnum, String
from sqlalchemy.sql import func
from sqlmodel import Field, SQLModel


class MenopauseStage(str, Enum):
    PREMENOPAUSAL = "premenopausal"
    PERIMENOPAUSAL = "perimenopausal"
    MENOPAUSAL = "menopausal"
    POSTMENOPAUSAL = "postmenopausal"
    NOT_SURE = "not-sure"


def _utcnow() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive timestamps read back from SQLite."""

    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _timestamp_column() -> Column:
    return Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )


class Account(SQLModel, table=True):
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    first_name: str = Field(sa_column=Column(String(50), nullable=False))
    last_name: str = Field(sa_column=Column(String(50), nullable=False))
    email: str = Field(
        sa_column=Column(String(255), unique=True, index=True, nullable=False)
    )
    password_hash: str = Field(sa_column=Column(String(255), nullable=False))
    age: int = Field(nullable=False)
    menopause_stage: MenopauseStage = Field(
        default=MenopauseStage.NOT_SURE,
        sa_column=Column(
            SAEnum(
                MenopauseStage,
                name="menopause_stage",
                values_callable=lambda members: [member.value for member in members],
            ),
            nullable=False,
        ),
    )
    newsletter: bool = Field(default=False, nullable=False)
    is_active: bool = Field(
        default=True,
        sa_column=Column(Boolean, nullable=False, index=True, default=True),
    )
    is_admin: bool = Field(default=False, nullable=False)
    created_at: datetime = Field(default_factory=_utcnow, sa_column=_timestamp_column())
    last_login: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )

    def public_view(self) -> Dict[str, Any]:
        """Serialize the account for clients; never exposes the hash."""

        last_login = as_utc(self.last_login)
        created_at = as_utc(self.created_at)
        return {
            "id": self.id,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "email": self.email,
            "age": self.age,
            "menopauseStage": MenopauseStage(self.menopause_stage).value,
            "newsletter": bool(self.newsletter),
            "isAdmin": bool(self.is_admin),
            "createdAt": created_at.isoformat() if created_at else None,
            "lastLogin": last_login.isoformat() if last_login else None,
        }


class AuthSession(SQLModel, table=True):
    """Server-side record binding an issued token to an account."""
    __tablename__ = "user_sessions"

    id: Optional[int] = Field(default=None, primary_key=True)
    account_id: int = Field(foreign_key="users.id", nullable=False, index=True)
    token: str = Field(sa_column=Column(String(512), nullable=False, index=True))
    expires_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )
    is_active: bool = Field(
        default=True,
        sa_column=Column(Boolean, nullable=False, index=True, default=True),
    )
    created_at: datetime = Field(default_factory=_utcnow, sa_column=_timestamp_column())


class AccountGoals(SQLModel, table=True):
    __tablename__ = "user_goals"

    account_id: int = Field(foreign_key="users.id", primary_key=True)
    days_tracked: int = Field(default=0, nullable=False)
    symptoms_logged: int = Field(default=0, nullable=False)
    medications_taken: int = Field(default=0, nullable=False)
    goals_achieved: int = Field(default=0, nullable=False)

    def public_view(self) -> Dict[str, int]:
        return {
            "daysTracked": self.days_tracked,
            "symptomsLogged": self.symptoms_logged,
            "medicationsTaken": self.medications_taken,
            "goalsAchieved": self.goals_achieved,
        }


__all__ = [
    "Account",
    "AccountGoals",
    "AuthSession",
    "MenopauseStage",
    "as_utc",
]
