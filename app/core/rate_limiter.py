"""
Simple In-Memory Rate Limiter for the credential endpoints.

Uses a sliding window approach to limit login and refresh attempts per IP
and per username. For production with multiple instances, consider
Redis-based rate limiting.
"""

import time
import logging
from collections import defaultdict
from typing import Dict, List, Tuple
from dataclasses import dataclass
from threading import Lock

from app.core.errors import ApiError, ErrorKind

logger = logging.getLogger(__name__)

# How often is_allowed sweeps expired keys out of the map
SWEEP_INTERVAL_SECONDS = 60


@dataclass
class RateLimitConfig:
    """Configuration for rate limiting."""
    max_requests: int  # Maximum requests allowed
    window_seconds: int  # Time window in seconds


class RateLimiter:
    """
    Thread-safe in-memory rate limiter using sliding window.

    For production with multiple backend instances, replace with Redis.
    """

    def __init__(self):
        # Store request timestamps per key
        self._requests: Dict[str, List[float]] = defaultdict(list)
        self._lock = Lock()
        self._last_sweep = time.time()

        self.configs = {
            # Login: 10 attempts per 15 minutes per IP
            "login_ip": RateLimitConfig(max_requests=10, window_seconds=900),
            # Login: 5 attempts per 15 minutes per username
            "login_username": RateLimitConfig(max_requests=5, window_seconds=900),
            # Refresh: 30 rotations per 15 minutes per IP
            "refresh_ip": RateLimitConfig(max_requests=30, window_seconds=900),
        }

    def _cleanup_old_requests(self, key: str, window_seconds: int) -> None:
        """Remove timestamps outside the current window; drop the key once empty."""
        cutoff = time.time() - window_seconds
        recent = [ts for ts in self._requests.get(key, ()) if ts > cutoff]
        if recent:
            self._requests[key] = recent
        else:
            self._requests.pop(key, None)

    def _sweep(self, now: float) -> None:
        """Drop every key whose window has fully expired. Caller holds the lock."""
        self._last_sweep = now
        before = len(self._requests)
        for key in list(self._requests):
            config = self.configs.get(key.split(":", 1)[0])
            self._cleanup_old_requests(key, config.window_seconds if config else 0)
        if len(self._requests) < before:
            logger.debug(f"Rate limiter dropped {before - len(self._requests)} expired keys")

    def is_allowed(self, limit_type: str, identifier: str) -> Tuple[bool, int]:
        """
        Check if a request is allowed under rate limiting, recording it if so.

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
            self._cleanup_old_requests(key, config.window_seconds)

            timestamps = self._requests.get(key, [])
            if len(timestamps) >= config.max_requests:
                retry_after = int(min(timestamps) + config.window_seconds - now) + 1
                return False, max(retry_after, 1)

            self._requests[key].append(now)
            return True, 0

    def reset(self, limit_type: str, identifier: str) -> None:
        """Reset rate limit for a specific key (e.g., after a successful login)."""
        key = f"{limit_type}:{identifier}"
        with self._lock:
            self._requests.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._requests.clear()


# Global rate limiter instance
rate_limiter = RateLimiter()


def check_rate_limit(limit_type: str, identifier: str) -> None:
    """Raise a RATE_LIMITED ApiError when the window is exhausted."""
    allowed, retry_after = rate_limiter.is_allowed(limit_type, identifier)
    if not allowed:
        logger.warning(f"Rate limit exceeded for {limit_type}: {identifier[:20]}...")
        raise ApiError(
            ErrorKind.RATE_LIMITED,
            f"Too many requests. Please try again in {retry_after} seconds.",
            headers={"Retry-After": str(retry_after)},
        )


def get_client_ip(request) -> str:
    """Extract client IP from request, handling proxies."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # Take the first IP (client IP)
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    if request.client:
        return request.client.host

    return "unknown"
