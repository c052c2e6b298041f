"""Helpers for throttling repeated authentication attempts."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Awaitable, Callable, Dict, Optional

from fastapi import Request, Response
from fastapi.routing import APIRoute

from ..config import settings
from ..errors import RateLimited


_TimeProvider = Callable[[], datetime]

logger = logging.getLogger(__name__)


def _default_time_provider() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RateLimitState:
    """Simple container describing a rate-limit decision."""

    allowed: bool
    retry_after: int = 0


@dataclass
class _Bucket:
    count: int
    reset_time: datetime


class AuthRateLimiter:
    """Fixed-window attempt counter keyed by client address."""

    def __init__(
        self,
        *,
        max_attempts: int,
        window_seconds: int,
        time_provider: Optional[_TimeProvider] = None,
    ) -> None:
        if max_attempts <= 0:
            raise ValueError("max_attempts must be greater than zero")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be greater than zero")

        self._max_attempts = max_attempts
        self._window = timedelta(seconds=window_seconds)
        self._time_provider: _TimeProvider = time_provider or _default_time_provider
        self._buckets: Dict[str, _Bucket] = {}
        self._next_prune: Optional[datetime] = None
        self._lock = Lock()

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    @property
    def tracked_addresses(self) -> int:
        with self._lock:
            return len(self._buckets)

    def _now(self) -> datetime:
        return self._time_provider()

    def _prune_expired_locked(self, *, now: datetime) -> None:
        # Runs at most once per window.
        if self._next_prune is not None and now < self._next_prune:
            return
        expired = [
            address
            for address, bucket in self._buckets.items()
            if now > bucket.reset_time
        ]
        for address in expired:
            del self._buckets[address]
        self._next_prune = now + self._window

    def check(self, address: str) -> RateLimitState:
        """Count an attempt from ``address`` and decide whether it may proceed."""

        with self._lock:
            now = self._now()
            self._prune_expired_locked(now=now)
            bucket = self._buckets.get(address)
            if bucket is None or now > bucket.reset_time:
                bucket = _Bucket(count=0, reset_time=now + self._window)
                self._buckets[address] = bucket
            bucket.count += 1

            if bucket.count > self._max_attempts:
                retry_after = int((bucket.reset_time - now).total_seconds())
                return RateLimitState(allowed=False, retry_after=max(retry_after, 1))
            return RateLimitState(allowed=True)

    def reset(self, address: Optional[str] = None) -> None:
        """Forget the bucket for ``address`` or every bucket."""

        with self._lock:
            if address is None:
                self._buckets.clear()
            else:
                self._buckets.pop(address, None)


_auth_rate_limiter: AuthRateLimiter | None = None


def get_auth_rate_limiter() -> AuthRateLimiter:
    """Return the process-wide limiter configured from settings."""

    if _auth_rate_limiter is None:
        reset_auth_rate_limiter()
    assert _auth_rate_limiter is not None
    return _auth_rate_limiter


def reset_auth_rate_limiter(limiter: Optional[AuthRateLimiter] = None) -> None:
    """Replace the global limiter, primarily for startup and tests."""

    global _auth_rate_limiter
    if limiter is not None:
        _auth_rate_limiter = limiter
        return

    _auth_rate_limiter = AuthRateLimiter(
        max_attempts=settings.AUTH_ATTEMPT_LIMIT,
        window_seconds=settings.AUTH_ATTEMPT_WINDOW,
    )


def client_address(request: Request) -> str:
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def enforce_auth_rate_limit(request: Request) -> None:
    """Count the attempt and raise :class:`RateLimited` once over the limit."""

    address = client_address(request)
    state = get_auth_rate_limiter().check(address)
    if not state.allowed:
        logger.warning("Authentication rate limit exceeded for %s", address)
        raise RateLimited(retry_after=state.retry_after)


class ThrottledRoute(APIRoute):
    """Route that counts the attempt before the request body is decoded."""

    def get_route_handler(self) -> Callable[[Request], Awaitable[Response]]:
        handler = super().get_route_handler()

        async def throttled_handler(request: Request) -> Response:
            enforce_auth_rate_limit(request)
            return await handler(request)

        return throttled_handler


__all__ = [
    "AuthRateLimiter",
    "RateLimitState",
    "ThrottledRoute",
    "client_address",
    "enforce_auth_rate_limit",
    "get_auth_rate_limiter",
    "reset_auth_rate_limiter",
]
