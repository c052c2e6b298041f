from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from sqlmodel import Session

from .auth import service
from .auth.dependencies import get_current_identity, get_optional_identity
from .auth.models import MenopauseStage
from .auth.sessions import Identity, IssuedSession
from .auth.throttling import ThrottledRoute
from .database import get_session
from .errors import NotImplementedFeature

router = APIRouter(prefix="/auth", tags=["auth"])
# Register and login count against the per-address attempt limit.
throttled_router = APIRouter(route_class=ThrottledRoute)


def _check_name(value: Optional[str], label: str) -> Optional[str]:
    if value is None:
        return None
    cleaned = value.strip()
    if not 2 <= len(cleaned) <= 50:
        raise ValueError(f"{label} must be 2-50 characters")
    return cleaned


def _check_age(value: Optional[int]) -> Optional[int]:
    if value is None:
        return None
    if not 18 <= value <= 100:
        raise ValueError("Age must be between 18-100")
    return value


class RegisterRequest(BaseModel):
    """Payload for creating a new account."""

    first_name: str = Field(..., alias="firstName")
    last_name: str = Field(..., alias="lastName")
    email: EmailStr
    age: int
    password: str
    confirm_password: str = Field(..., alias="confirmPassword")
    menopause_stage: Optional[MenopauseStage] = Field(default=None, alias="menopauseStage")
    newsletter: Optional[bool] = None

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("first_name")
    @classmethod
    def _clean_first_name(cls, value: str) -> str:
        return _check_name(value, "First name")

    @field_validator("last_name")
    @classmethod
    def _clean_last_name(cls, value: str) -> str:
        return _check_name(value, "Last name")

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return service.normalize_email(value)

    @field_validator("age")
    @classmethod
    def _check_age_range(cls, value: int) -> int:
        return _check_age(value)

    @field_validator("password")
    @classmethod
    def _check_password(cls, value: str) -> str:
        if len(value) < service.MIN_PASSWORD_LENGTH:
            raise ValueError(
                f"Password must be at least {service.MIN_PASSWORD_LENGTH} characters"
            )
        return value

    @model_validator(mode="after")
    def _passwords_match(self) -> "RegisterRequest":
        if self.confirm_password != self.password:
            raise ValueError("Passwords do not match")
        return self


class LoginRequest(BaseModel):
    """Payload for signing in."""

    email: EmailStr
    password: str = Field(..., min_length=1)
    remember_me: bool = Field(default=False, alias="rememberMe")

    model_config = ConfigDict(populate_by_name=True)


class ProfileUpdateRequest(BaseModel):
    """Editable profile fields; omitted fields stay unchanged."""

    first_name: Optional[str] = Field(default=None, alias="firstName")
    last_name: Optional[str] = Field(default=None, alias="lastName")
    age: Optional[int] = None
    menopause_stage: Optional[MenopauseStage] = Field(default=None, alias="menopauseStage")
    newsletter: Optional[bool] = None

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("first_name")
    @classmethod
    def _clean_first_name(cls, value: Optional[str]) -> Optional[str]:
        return _check_name(value, "First name")

    @field_validator("last_name")
    @classmethod
    def _clean_last_name(cls, value: Optional[str]) -> Optional[str]:
        return _check_name(value, "Last name")

    @field_validator("age")
    @classmethod
    def _check_age_range(cls, value: Optional[int]) -> Optional[int]:
        return _check_age(value)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., alias="currentPassword")
    new_password: str = Field(default="", alias="newPassword")

    model_config = ConfigDict(populate_by_name=True)


class DeleteAccountRequest(BaseModel):
    password: str


def _session_payload(user: Dict[str, Any], issued: IssuedSession) -> Dict[str, Any]:
    return {"user": user, "token": issued.token, "expiresIn": issued.expires_in}


@throttled_router.post("/register", status_code=status.HTTP_201_CREATED)
def register(
    payload: RegisterRequest,
    session: Session = Depends(get_session),
) -> Dict[str, Any]:
    account, issued = service.register_account(
        session,
        first_name=payload.first_name,
        last_name=payload.last_name,
        email=payload.email,
        age=payload.age,
        password=payload.password,
        menopause_stage=payload.menopause_stage,
        newsletter=payload.newsletter,
    )
    return {
        "success": True,
        "message": "User registered successfully",
        "data": _session_payload(account.public_view(), issued),
    }


@throttled_router.post("/login")
def login(
    payload: LoginRequest,
    session: Session = Depends(get_session),
) -> Dict[str, Any]:
    account, issued = service.login(
        session,
        email=payload.email,
        password=payload.password,
        remember_me=payload.remember_me,
    )
    return {
        "success": True,
        "message": "Login successful",
        "data": _session_payload(account.public_view(), issued),
    }


@router.post("/google", status_code=status.HTTP_501_NOT_IMPLEMENTED)
def sign_in_with_google() -> Dict[str, Any]:
    raise NotImplementedFeature(
        "Google sign-in is not implemented yet. Please use email and password."
    )


@router.get("/status")
def auth_status(
    identity: Optional[Identity] = Depends(get_optional_identity),
) -> Dict[str, Any]:
    if identity is None:
        return {"success": True, "data": {"authenticated": False, "user": None}}
    return {
        "success": True,
        "data": {
            "authenticated": True,
            "user": {
                "id": identity.account_id,
                "email": identity.email,
                "firstName": identity.first_name,
                "lastName": identity.last_name,
            },
        },
    }


@router.post("/logout")
def logout(
    identity: Identity = Depends(get_current_identity),
    session: Session = Depends(get_session),
) -> Dict[str, Any]:
    service.logout(session, identity.session_id)
    return {"success": True, "message": "Logout successful"}


@router.get("/profile")
def get_profile(
    identity: Identity = Depends(get_current_identity),
    session: Session = Depends(get_session),
) -> Dict[str, Any]:
    profile = service.get_profile(session, identity.account_id)
    return {"success": True, "data": {"user": profile}}


@router.put("/profile")
def update_profile(
    payload: ProfileUpdateRequest,
    identity: Identity = Depends(get_current_identity),
    session: Session = Depends(get_session),
) -> Dict[str, Any]:
    user = service.update_profile(
        session,
        identity.account_id,
        payload.model_dump(exclude_unset=True),
    )
    return {
        "success": True,
        "message": "Profile updated successfully",
        "data": {"user": user},
    }


@router.put("/change-password")
def change_password(
    payload: ChangePasswordRequest,
    identity: Identity = Depends(get_current_identity),
    session: Session = Depends(get_session),
) -> Dict[str, Any]:
    service.change_password(
        session,
        identity.account_id,
        current_password=payload.current_password,
        new_password=payload.new_password,
    )
    return {
        "success": True,
        "message": "Password changed successfully. Please login again.",
    }


@router.delete("/account")
def delete_account(
    payload: DeleteAccountRequest,
    identity: Identity = Depends(get_current_identity),
    session: Session = Depends(get_session),
) -> Dict[str, Any]:
    service.delete_account(session, identity.account_id, password=payload.password)
    return {"success": True, "message": "Account deleted successfully"}


router.include_router(throttled_router)
