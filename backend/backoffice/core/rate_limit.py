"""
Rate Limiting Module

In-memory sliding-window rate limiter for unauthenticated endpoints such as
login. Good enough for a single API process; a multi-instance deployment
needs a shared store.
"""
import logging
import time
from collections import defaultdict
from typing import Iterable, Optional, Tuple

from fastapi import Request

from backoffice.core.config import settings
from backoffice.core.exceptions import DomainError

logger = logging.getLogger(__name__)


class RateLimitExceededError(DomainError):
    status_code = 429
    title = "Too Many Requests"

    def __init__(self, endpoint: str, retry_after: int):
        super().__init__(f"Rate limit exceeded for {endpoint}. Try again later.")
        self.retry_after = retry_after


class InMemoryRateLimiter:
    """Tracks request timestamps per (endpoint, ip)."""

    def __init__(self, cleanup_interval: int = 60):
        self._windows: dict[str, dict[str, list[float]]] = defaultdict(lambda: defaultdict(list))
        self._cleanup_interval = cleanup_interval
        self._last_cleanup = time.time()

    def reset(self) -> None:
        self._windows.clear()
        self._last_cleanup = time.time()

    def tracked_ips(self, endpoint: str) -> int:
        return len(self._windows.get(endpoint, {}))

    def _cleanup_old_entries(self, window_seconds: int) -> None:
        """Drop expired timestamps, then empty ip and endpoint keys. Runs at most once per interval."""
        now = time.time()
        if now - self._last_cleanup < self._cleanup_interval:
            return

        self._last_cleanup = now
        cutoff = now - window_seconds

        for endpoint in list(self._windows.keys()):
            ips = self._windows[endpoint]
            for ip in list(ips.keys()):
                recent = [ts for ts in ips[ip] if ts > cutoff]
                if recent:
                    ips[ip] = recent
                else:
                    del ips[ip]
            if not ips:
                del self._windows[endpoint]

    def is_rate_limited(
        self,
        endpoint: str,
        ip: str,
        max_requests: int,
        window_seconds: int = 60,
    ) -> Tuple[bool, int]:
        """
        Record a request and report whether it exceeds the window limit.

        Returns:
            Tuple of (is_limited, requests_remaining)
        """
        self._cleanup_old_entries(window_seconds)

        now = time.time()
        cutoff = now - window_seconds

        recent = [ts for ts in self._windows[endpoint][ip] if ts > cutoff]

        if len(recent) >= max_requests:
            self._windows[endpoint][ip] = recent
            logger.warning(
                f"Rate limit exceeded for {endpoint}",
                extra={
                    "event": "rate_limit_exceeded",
                    "endpoint": endpoint,
                    "ip": ip,
                    "total_requests": len(recent),
                    "max_requests": max_requests,
                },
            )
            return True, 0

        recent.append(now)
        self._windows[endpoint][ip] = recent
        return False, max_requests - len(recent)


# Global rate limiter instance
rate_limiter = InMemoryRateLimiter()


def get_rate_limits() -> dict[str, dict[str, int]]:
    return {
        "login": {
            "max_requests": settings.LOGIN_RATE_LIMIT,
            "window_seconds": settings.LOGIN_RATE_WINDOW_SECONDS,
        },
    }


def get_client_ip(request: Request, trusted_proxies: Optional[Iterable[str]] = None) -> str:
    """
    Get client IP from request.

    Forwarded headers are honoured only when the direct peer is listed in
    ``TRUSTED_PROXIES``.
    """
    peer = request.client.host if request.client else None
    if trusted_proxies is None:
        trusted_proxies = settings.trusted_proxies_list

    if peer is not None and peer in trusted_proxies:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            # first entry is the originating client
            return forwarded.split(",")[0].strip()

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip.strip()

    return peer or "unknown"


def check_rate_limit(endpoint: str, request: Request) -> None:
    """
    Check rate limit for an endpoint.

    Raises:
        RateLimitExceededError: If the caller's IP is over the limit
    """
    limits = get_rate_limits()
    if endpoint not in limits:
        return

    config = limits[endpoint]
    is_limited, _ = rate_limiter.is_rate_limited(
        endpoint=endpoint,
        ip=get_client_ip(request),
        max_requests=config["max_requests"],
        window_seconds=config["window_seconds"],
    )
    if is_limited:
        raise RateLimitExceededError(endpoint, config["window_seconds"])
