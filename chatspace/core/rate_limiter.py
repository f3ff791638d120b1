"""
Simple In-Memory Rate Limiter for the authentication endpoints.

Uses a sliding window per client IP. Process-local, like presence:
multiple instances each keep their own windows.
"""

import time
import logging
from typing import Dict, List, Tuple
from dataclasses import dataclass
from threading import Lock

from fastapi import HTTPException, Request, status

from chatspace.core.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

# How often is_allowed sweeps keys nobody has touched since their window closed
SWEEP_INTERVAL_SECONDS = 60


@dataclass
class RateLimitConfig:
    """Configuration for rate limiting."""
    max_requests: int  # Maximum requests allowed
    window_seconds: int  # Time window in seconds


class RateLimiter:
    """Thread-safe in-memory rate limiter using a sliding window."""

    def __init__(self):
        # Request timestamps per key; a key exists only while its window holds requests
        self._requests: Dict[str, List[float]] = {}
        self._lock = Lock()
        self._last_sweep = time.time()

        self.configs = {
            "signup_ip": RateLimitConfig(max_requests=10, window_seconds=3600),
            "login_ip": RateLimitConfig(max_requests=10, window_seconds=900),
            "refresh_ip": RateLimitConfig(max_requests=30, window_seconds=900),
        }

    def _cleanup_old_requests(self, key: str, window_seconds: int, now: float) -> List[float]:
        """Remove timestamps outside the current window; drop the key once it is empty."""
        cutoff = now - window_seconds
        recent = [ts for ts in self._requests.get(key, ()) if ts > cutoff]
        if recent:
            self._requests[key] = recent
        else:
            self._requests.pop(key, None)
        return recent

    def _sweep(self, now: float) -> int:
        """Prune every key. Caller holds the lock."""
        removed = 0
        for key in list(self._requests):
            limit_type = key.split(":", 1)[0]
            config = self.configs.get(limit_type)
            if config is None:
                del self._requests[key]
                removed += 1
            elif not self._cleanup_old_requests(key, config.window_seconds, now):
                removed += 1
        self._last_sweep = now
        if removed:
            logger.debug(f"Rate limiter dropped {removed} expired keys")
        return removed

    def cleanup_all(self) -> int:
        """Remove all expired entries. Returns how many keys were dropped."""
        with self._lock:
            return self._sweep(time.time())

    def is_allowed(self, limit_type: str, identifier: str) -> Tuple[bool, int]:
        """
        Check if a request is allowed under rate limiting.

        Args:
            limit_type: Type of rate limit (e.g., "login_ip")
            identifier: Unique identifier (IP address)

        Returns:
            Tuple of (is_allowed: bool, retry_after_seconds: int)
        """
        if limit_type not in self.configs:
            logger.warning(f"Unknown rate limit type: {limit_type}")
            return True, 0

        config = self.configs[limit_type]
        key = f"{limit_type}:{identifier}"

        with self._lock:
            now = time.time()
            if now - self._last_sweep >= SWEEP_INTERVAL_SECONDS:
                self._sweep(now)

            recent = self._cleanup_old_requests(key, config.window_seconds, now)

            if len(recent) >= config.max_requests:
                retry_after = int(min(recent) + config.window_seconds - now) + 1
                return False, max(retry_after, 1)

            self._requests[key] = recent + [now]
            return True, 0

    def tracked_keys(self) -> int:
        """Number of keys currently holding timestamps."""
        with self._lock:
            return len(self._requests)

    def clear(self) -> None:
        """Forget every window."""
        with self._lock:
            self._requests.clear()


# Global rate limiter instance
rate_limiter = RateLimiter()


def get_client_ip(request: Request) -> str:
    """
    Client IP for rate limiting.

    Forwarding headers are honoured only when the direct peer is one of
    TRUSTED_PROXIES.
    """
    peer = request.client.host if request.client else None

    if peer and peer in settings.trusted_proxies_list:
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip.strip()

    return peer or "unknown"


def check_rate_limit(request: Request, limit_type: str) -> None:
    """Raise 429 when the caller's IP has exhausted `limit_type`."""
    client_ip = get_client_ip(request)
    allowed, retry_after = rate_limiter.is_allowed(limit_type, client_ip)
    if not allowed:
        logger.warning(f"Rate limit exceeded for {limit_type}: {client_ip}")
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"Too many requests. Please try again in {retry_after} seconds.",
            headers={"Retry-After": str(retry_after)},
        )
