"""Password hashing helpers."""
from passlib.context import CryptContext

from ..config import settings
from ..errors import InternalError


_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS,
)


def hash_password(password: str) -> str:
    """Hash ``password`` using a strong adaptive hash."""

    if not isinstance(password, str):
        raise TypeError("password must be a string")
    return _context.hash(password)


def verify_password(password: str, hashed_password: str) -> bool:
    """Return ``True`` if ``password`` matches ``hashed_password``.

    A mismatch is reported as ``False``; a digest that cannot be parsed is a
    storage problem and raises :class:`InternalError`.
    """

    if not password or not hashed_password:
        return False
    try:
        return _context.verify(password, hashed_password)
    except ValueError as exc:
        raise InternalError("Stored password hash is unreadable") from exc


def needs_rehash(hashed_password: str) -> bool:
    """Return ``True`` if the hash should be upgraded."""

    if not hashed_password:
        return True
    return _context.needs_update(hashed_password)


__all__ = ["hash_password", "verify_password", "needs_rehash"]
