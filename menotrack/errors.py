"""Error taxonomy shared by the authentication routes and services."""
from __future__ import annotations

import logging
from functools import wraps
from typing import Any, Callable, Dict, List, Optional

from fastapi import status

logger = logging.getLogger(__name__)


class AuthError(Exception):
    """Base class for errors that map onto a client-facing response."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def headers(self) -> Optional[Dict[str, str]]:
        return None

    def to_payload(self) -> Dict[str, Any]:
        return {"success": False, "message": self.message}


class ValidationFailed(AuthError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Validation failed"

    def __init__(self, errors: List[Dict[str, Any]], message: Optional[str] = None) -> None:
        super().__init__(message)
        self.errors = errors

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload["errors"] = self.errors
        return payload


class InvalidInput(AuthError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid input"


class Conflict(AuthError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "User with this email already exists"


class Unauthorized(AuthError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid email or password"


class BearerError(AuthError):
    """Missing or unusable bearer credential."""

    status_code = status.HTTP_401_UNAUTHORIZED

    @property
    def headers(self) -> Optional[Dict[str, str]]:
        return {"WWW-Authenticate": "Bearer"}


class Unauthenticated(BearerError):
    default_message = "Access token required"


class InvalidToken(BearerError):
    default_message = "Invalid token"


class TokenExpired(BearerError):
    default_message = "Token expired"


class InvalidOrExpiredSession(BearerError):
    default_message = "Invalid or expired session"


class ForbiddenNotAdmin(AuthError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Admin access required"


class NotFound(AuthError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "User not found"


class RateLimited(AuthError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "Too many authentication attempts. Please try again later."

    def __init__(self, retry_after: int = 0, message: Optional[str] = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after

    @property
    def headers(self) -> Optional[Dict[str, str]]:
        if self.retry_after > 0:
            return {"Retry-After": str(self.retry_after)}
        return None


class InternalError(AuthError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"


class NotImplementedFeature(AuthError):
    status_code = status.HTTP_501_NOT_IMPLEMENTED
    default_message = "Not implemented"


def operation_boundary(operation_name: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Translate unexpected failures inside ``operation_name`` to ``InternalError``.

    Taxonomy errors pass through untouched. Anything else is logged with its
    traceback and replaced by a generic message so no internal detail
    reaches the client.
    """

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return func(*args, **kwargs)
            except InternalError as exc:
                logger.error("Internal failure during %s: %s", operation_name, exc)
                raise InternalError(
                    f"Internal server error during {operation_name}"
                ) from exc
            except AuthError:
                raise
            except Exception as exc:
                logger.exception("Unexpected error during %s", operation_name)
                raise InternalError(
                    f"Internal server error during {operation_name}"
                ) from exc

        return wrapper

    return decorator


__all__ = [
    "AuthError",
    "BearerError",
    "Conflict",
    "ForbiddenNotAdmin",
    "InternalError",
    "InvalidInput",
    "InvalidOrExpiredSession",
    "InvalidToken",
    "NotFound",
    "NotImplementedFeature",
    "RateLimited",
    "TokenExpired",
    "Unauthenticated",
    "Unauthorized",
    "ValidationFailed",
    "operation_boundary",
]
