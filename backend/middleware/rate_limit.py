"""
In-memory rate limiting for the BookNest API.

Uses a simple sliding-window counter per client IP and scope. Auth endpoints
share the "auth" scope; every other API route shares the "general" scope.
For production, replace with Redis-backed limiter.
"""
import time
import logging
from collections import defaultdict
from typing import Optional

from fastapi import Request

from config import settings
from domain.errors import RateLimitError

logger = logging.getLogger(__name__)

AUTH_SCOPE = "auth"
GENERAL_SCOPE = "general"


class RateLimiter:
    """
    Simple in-memory sliding-window rate limiter.

    Tracks request timestamps per key ("IP:scope" or "IP:route").
    Not suitable for multi-worker deployments (use Redis instead).
    """

    def __init__(self):
        # {key: [timestamp1, timestamp2, ...]}
        self._requests: dict[str, list[float]] = defaultdict(list)

    def _cleanup(self, key: str, window_seconds: int):
        """Remove expired timestamps from the window."""
        now = time.time()
        cutoff = now - window_seconds
        self._requests[key] = [
            ts for ts in self._requests[key] if ts > cutoff
        ]

    def check(self, key: str, max_requests: int, window_seconds: int) -> bool:
        """
        Check if a request is allowed under the rate limit.

        Args:
            key: Unique identifier (e.g., "IP:auth")
            max_requests: Maximum allowed requests in the window
            window_seconds: Time window in seconds

        Returns:
            True if allowed, False if rate-limited
        """
        self._cleanup(key, window_seconds)

        if len(self._requests[key]) >= max_requests:
            return False

        self._requests[key].append(time.time())
        return True

    def remaining(self, key: str, max_requests: int, window_seconds: int) -> int:
        """Get the number of remaining requests in the current window."""
        self._cleanup(key, window_seconds)
        return max(0, max_requests - len(self._requests[key]))

    def reset(self) -> None:
        self._requests.clear()


# Global rate limiter instance
_limiter = RateLimiter()


def rate_limit(max_requests: int = 10, window_seconds: int = 60, scope: Optional[str] = None):
    """
    FastAPI dependency factory for rate limiting.

    Usage:
        @router.post("/login")
        async def login(..., _rate=Depends(rate_limit(50, 3600, scope="auth"))):
            ...

    Args:
        max_requests: Maximum requests allowed in the window
        window_seconds: Time window in seconds
        scope: Shared bucket name; when omitted each route path gets its own bucket
    """
    async def _check_rate_limit(request: Request):
        client_ip = request.client.host if request.client else "unknown"
        bucket = scope or request.url.path
        key = f"{client_ip}:{bucket}"

        if not _limiter.check(key, max_requests, window_seconds):
            remaining = _limiter.remaining(key, max_requests, window_seconds)
            logger.warning(
                f"Rate limit exceeded: {client_ip} on {request.url.path} "
                f"[{bucket}] ({max_requests}/{window_seconds}s)"
            )
            raise RateLimitError(
                f"Too many requests from this IP. Maximum {max_requests} requests "
                f"per {window_seconds} seconds. Try again later.",
                details={"scope": bucket, "limit": max_requests, "windowSeconds": window_seconds},
                headers={
                    "Retry-After": str(window_seconds),
                    "X-RateLimit-Limit": str(max_requests),
                    "X-RateLimit-Remaining": str(remaining),
                },
            )

    return _check_rate_limit


def auth_rate_limit():
    """Shared limiter for signup, login and password-reset endpoints."""
    return rate_limit(settings.auth_rate_limit, settings.auth_rate_window_seconds, scope=AUTH_SCOPE)


def general_rate_limit():
    """Shared limiter applied to every API router."""
    return rate_limit(settings.general_rate_limit, settings.general_rate_window_seconds, scope=GENERAL_SCOPE)
