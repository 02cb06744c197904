"""
Rate limiting for the access API.

Code redemption is limited per IP to slow down code guessing; the rest of
the API is limited per principal (or per IP when unauthenticated).
"""

import time
from typing import Callable, Optional, Tuple

from fastapi import Request, Response, status
from starlette.middleware.base import BaseHTTPMiddleware

from agora.config import get_settings
from agora.kernel.identity.jwt import get_jwt_manager
from agora.logging_config import get_logger

logger = get_logger(__name__)


def _get_client_ip(request: Request) -> str:
    """Get client IP from request (X-Forwarded-For or direct)."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def _get_principal_from_bearer(request: Request) -> Optional[str]:
    """Subject of a valid bearer token, if any. Resolution proper happens later."""
    auth = request.headers.get("authorization")
    if not auth or not auth.lower().startswith("bearer "):
        return None
    token = auth[7:].strip()
    if not token:
        return None
    payload = get_jwt_manager().verify_access_token(token)
    return payload.sub if payload else None


class InMemoryRateLimitStore:
    """Fixed-window in-memory store. Key -> (count, window_start_ts)."""

    def __init__(self):
        self._data: dict[str, Tuple[int, float]] = {}

    def check_and_incr(
        self,
        scope: str,
        identifier: str,
        limit: int,
        window_seconds: int,
    ) -> bool:
        """Returns True if under limit (and increments). False if over limit (no increment)."""
        key = f"{scope}:{identifier}"
        now = time.monotonic()
        entry = self._data.get(key)
        if entry is None or now - entry[1] >= window_seconds:
            self._data[key] = (1, now)
            return True
        count, start = entry
        if count >= limit:
            return False
        self._data[key] = (count + 1, start)
        return True

    def cleanup_old(self, max_age_seconds: int = 3600):
        """Remove entries older than max_age_seconds to avoid unbounded growth."""
        now = time.monotonic()
        stale = [k for k, (_, start) in self._data.items() if now - start > max_age_seconds]
        for k in stale:
            self._data.pop(k, None)

    def clear(self):
        self._data.clear()


# Module-level store (single process)
_store: Optional[InMemoryRateLimitStore] = None


def get_store() -> InMemoryRateLimitStore:
    global _store
    if _store is None:
        _store = InMemoryRateLimitStore()
    return _store


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Rate limit by scope:
    - redeem: POST {prefix}/auth/redeem -> per IP
    - api: other {prefix} routes -> per principal (or IP)
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        settings = get_settings()
        if not settings.rate_limit_enabled:
            return await call_next(request)

        path = request.url.path or ""
        if not path.startswith(settings.api_v1_prefix):
            return await call_next(request)

        store = get_store()
        store.cleanup_old(max_age_seconds=7200)

        if path == f"{settings.api_v1_prefix}/auth/redeem" and request.method == "POST":
            scope = "redeem"
            limit = settings.rate_limit_auth_per_minute
            identifier = _get_client_ip(request)
        else:
            scope = "api"
            limit = settings.rate_limit_api_per_minute
            identifier = _get_principal_from_bearer(request) or _get_client_ip(request)

        if not store.check_and_incr(scope, identifier, limit, 60):
            logger.warning("Rate limit exceeded", extra={"scope": scope, "path": path})
            return Response(
                content='{"detail":"Too many requests. Please try again later."}',
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                media_type="application/json",
            )
        return await call_next(request)
